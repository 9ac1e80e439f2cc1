from repairbi.parser import make_record_id, parse_records, records_to_frame


class TestParseRecords:
    """Record parser over the sample ledger"""

    def test_bad_date_row_dropped(self, records):
        assert len(records) == 4
        assert all(r.customer_name != "박지민" for r in records)

    def test_source_order_preserved(self, records):
        assert [r.date for r in records] == ["2024-11-01", "2024-03-05", "2024-11-15", "2024-12-01"]

    def test_first_row_normalized(self, records):
        r = records[0]
        assert r.year == 2024 and r.month == 11 and r.day == 1
        assert r.category == "가방"
        assert r.sub_category == "워크인"
        assert r.brand == "Chanel"
        assert r.description == "클래식 플랩, 모서리 수선"
        assert r.customer_name == "김수아"
        assert r.phone == "010-1234-5678"
        assert r.phone_key == "01012345678"

    def test_money_and_net_profit(self, records):
        r = records[0]
        assert r.sales == 190000
        assert r.cost == 50000
        assert r.net_profit == 140000
        for rec in records:
            assert rec.cost >= 0
            assert rec.net_profit == rec.sales - rec.cost

    def test_missing_cost_is_zero(self, records):
        assert records[2].cost == 0
        assert records[2].net_profit == 30000

    def test_brand_always_canonical(self, records):
        assert [r.brand for r in records] == ["Chanel", "Chanel", "Gucci", "Others"]

    def test_phone_formatting(self, records):
        assert records[1].phone == "010-9876-5432"
        assert records[2].phone == "0000000000"

    def test_deterministic_ids(self, records):
        r = records[0]
        assert r.id == make_record_id("2024-11-01", "01012345678", 190000)
        assert r.id.startswith("tx-")
        assert len({rec.id for rec in records}) == len(records)

    def test_idempotent(self, ledger_csv):
        assert parse_records(ledger_csv) == parse_records(ledger_csv)

    def test_ids_survive_row_reordering(self, ledger_csv):
        header, *rows = ledger_csv.strip().split("\n")
        shuffled = "\n".join([header] + rows[::-1])
        before = {r.id: r for r in parse_records(ledger_csv)}
        after = {r.id: r for r in parse_records(shuffled)}
        assert before == after


class TestHeadersAndLayout:

    def test_english_headers_any_order(self):
        text = (
            "Customer Name,Phone,Sales,Date,Brand,Cost,Sub_Category,Category\n"
            "Kim,010-2222-3333,\"55,000\",2024-05-02,Hermes,\"5,000\",Delivery,Dye\n"
        )
        [r] = parse_records(text)
        assert r.date == "2024-05-02"
        assert r.brand == "Hermes"
        assert r.sub_category == "Delivery"
        assert r.category == "Dye"
        assert r.sales == 55000 and r.cost == 5000
        assert r.customer_name == "Kim"

    def test_defaults_when_columns_missing(self):
        [r] = parse_records("date,sales\n2024-01-02,1000\n")
        assert r.category == "Other"
        assert r.sub_category == "Other"
        assert r.brand == "Others"
        assert r.phone == ""

    def test_brand_from_description_when_no_brand_column(self):
        [r] = parse_records("날짜,내용,매출\n2024-01-02,샤넬 가방 모서리,1000\n")
        assert r.brand == "Chanel"

    def test_quoted_delimiter_and_newline(self):
        text = 'date,description,sales\n2024-01-02,"strap, buckle\nand lining",1000\n'
        [r] = parse_records(text)
        assert r.description == "strap, buckle and lining"

    def test_bom_header(self):
        [r] = parse_records("\ufeff날짜,매출\n2024-01-02,1000\n")
        assert r.sales == 1000

    def test_no_date_column_drops_everything(self):
        assert parse_records("brand,sales\nchanel,1000\n") == []


class TestDegenerateInput:

    def test_empty(self):
        assert parse_records("") == []
        assert parse_records("   \n") == []

    def test_header_only(self):
        assert parse_records("날짜,브랜드,매출\n") == []

    def test_short_and_long_rows(self):
        text = "date,brand,sales\n2024-01-02,chanel\n2024-01-03,dior,100,extra,extra\n2024-01-04,prada,300\n"
        records = parse_records(text)
        assert [r.date for r in records] == ["2024-01-02", "2024-01-03", "2024-01-04"]
        assert records[0].sales == 0
        assert records[1].brand == "Dior"
        assert records[1].sales == 100

    def test_extra_note_cell_keeps_row(self):
        text = "date,brand,sales\n2024-01-02,chanel,100\n2024-01-03,dior,200,memo\n"
        records = parse_records(text)
        assert [r.date for r in records] == ["2024-01-02", "2024-01-03"]
        assert records[1].sales == 200

    def test_trailing_comma_on_every_row(self):
        text = "날짜,브랜드,매출\n2024-01-02,샤넬,1000,\n2024-01-03,구찌,2000,\n"
        records = parse_records(text)
        assert [r.date for r in records] == ["2024-01-02", "2024-01-03"]
        assert [r.brand for r in records] == ["Chanel", "Gucci"]
        assert [r.sales for r in records] == [1000, 2000]

    def test_duplicate_headers_first_wins(self):
        [r] = parse_records("date,sales,sales\n2024-01-02,100,900\n")
        assert r.sales == 100

    def test_strict_mode_requires_phone(self):
        text = "date,phone,sales\n2024-01-02,,100\n2024-01-03,010-1111-2222,200\n"
        assert len(parse_records(text)) == 2
        strict = parse_records(text, require_phone=True)
        assert [r.date for r in strict] == ["2024-01-03"]

    def test_negative_sales_clamped(self):
        [r] = parse_records("date,sales,cost\n2024-01-02,-5000,1000\n")
        assert r.sales == 0
        assert r.net_profit == -1000


class TestFrame:

    def test_frame_columns(self, records):
        df = records_to_frame(records)
        assert len(df) == 4
        assert {"ts", "phone_key", "net_profit"} <= set(df.columns)
        assert df["sales"].sum() == 1_500_000

    def test_empty_frame(self):
        df = records_to_frame([])
        assert df.empty
        assert "ts" in df.columns
