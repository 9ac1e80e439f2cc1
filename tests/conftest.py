import matplotlib

matplotlib.use("Agg")

import pytest

from repairbi.parser import make_record_id, parse_records
from repairbi.records import TransactionRecord
from repairbi.normalizers import phone_digits, normalize_phone


LEDGER_CSV = """날짜,카테고리,채널,브랜드,내용,고객명,연락처,매출,지출
"2024. 11. 1",가방,워크인,샤넬,"클래식 플랩, 모서리 수선","김수아 [C / 수아]",010-1234-5678,"190,000","-50,000"
2024/3/5,지갑,택배,CHANEL,지갑 염색,이민호,01098765432,"80,000",0
not a date,신발,워크인,구찌,밑창 교체,박지민,010-5555-1212,"50,000","10,000"
2024-11-15,신발,워크인,gucci,굽 교체,,0000000000,"30,000",
2024-12-01,가방,택배,unknown,리폼,김수아,010-1234-5678,"1,200,000","300,000"
"""


@pytest.fixture
def ledger_csv():
    return LEDGER_CSV


@pytest.fixture
def records(ledger_csv):
    return parse_records(ledger_csv)


def make_record(date, phone="010-1234-5678", sales=100_000, cost=0, category="가방",
                brand="Chanel", name="고객", sub_category="워크인", description=""):
    """Build a canonical record directly, bypassing CSV parsing."""
    y, m, d = (int(p) for p in date.split("-"))
    phone = normalize_phone(phone)
    return TransactionRecord(
        id=make_record_id(date, phone_digits(phone), sales),
        date=date,
        year=y,
        month=m,
        day=d,
        category=category,
        sub_category=sub_category,
        brand=brand,
        description=description,
        sales=sales,
        cost=cost,
        customer_name=name,
        phone=phone,
    )


@pytest.fixture
def record_factory():
    return make_record
