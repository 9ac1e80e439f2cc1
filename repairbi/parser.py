"""
repairbi.parser

Raw spreadsheet CSV text -> ordered list of canonical TransactionRecord.

Column order and naming in the feed are not fixed, so headers are matched by
fragment (English and Korean labels). Rows whose date cannot be read are
dropped; nothing in here raises on bad data.
"""

from __future__ import annotations

import hashlib
import io
import logging
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .normalizers import (
    BRAND_ALIASES,
    OTHERS_BRAND,
    clean_name,
    clean_string,
    normalize_brand,
    normalize_phone,
    parse_currency,
    parse_date_parts,
    phone_digits,
)
from .records import TransactionRecord
from .utils import resolve_columns

logger = logging.getLogger(__name__)

DEFAULT_LABEL = "Other"

# Evaluation order matters: "sub_category" must be claimed before "category",
# and "customer phone" before "customer".
FIELD_PATTERNS: Dict[str, Tuple[str, ...]] = {
    "date": ("날짜", "date", "접수일", "일자"),
    "sub_category": ("sub_category", "subcategory", "sub category", "채널", "channel", "구분", "세부"),
    "category": ("카테고리", "category", "분류"),
    "brand": ("브랜드", "brand"),
    "description": ("내용", "description", "품명", "비고"),
    "phone": ("전화", "phone", "연락처", "mobile", "휴대폰"),
    "customer_name": ("고객", "customer", "성함", "이름", "name"),
    "sales": ("매출", "sales", "금액", "revenue"),
    "cost": ("비용", "cost", "지출", "외주"),
}


def make_record_id(date: str, phone_key: str, sales: int) -> str:
    """
    Content-derived id: the same (date, phone, sales) always maps to the same id.
    Two genuinely different rows sharing all three values collide.
    """
    seed = f"{date}|{phone_key}|{sales}"
    return "tx-" + hashlib.sha1(seed.encode("utf-8")).hexdigest()[:12]


def _unique_headers(names: Sequence[str]) -> List[str]:
    """Repeat labels get ".1", ".2", ... suffixes, like pandas' own header mangling."""
    seen: Dict[str, int] = {}
    out = []
    for name in names:
        n = seen.get(name, 0)
        seen[name] = n + 1
        out.append(name if n == 0 else f"{name}.{n}")
    return out


def read_frame(text: str) -> pd.DataFrame:
    """
    Split CSV text into an all-string DataFrame.

    Quoted delimiters are data (RFC 4180). Values are matched to headers by
    position: cells beyond the header width (trailing commas, stray notes)
    are cut off and short rows are padded with "". Empty input gives an empty
    frame.
    """
    text = (text or "").lstrip("\ufeff")
    if not text.strip():
        return pd.DataFrame()

    options = dict(
        header=None,
        dtype=str,
        keep_default_na=False,
        na_values=[],
        skip_blank_lines=True,
        engine="python",
    )
    try:
        width = pd.read_csv(io.StringIO(text), nrows=1, **options).shape[1]
        trimmed = []

        def trim(cells: List[str]) -> List[str]:
            trimmed.append(len(cells))
            return cells[:width]

        raw = pd.read_csv(io.StringIO(text), on_bad_lines=trim, **options)
    except pd.errors.EmptyDataError:
        return pd.DataFrame()

    if trimmed:
        logger.debug(f"Cut {len(trimmed)} rows down to the {width} header columns")

    raw = raw.fillna("")
    frame = raw.iloc[1:].reset_index(drop=True)
    frame.columns = _unique_headers([str(h) for h in raw.iloc[0].tolist()])
    return frame


def _row_to_record(
    row: Dict[str, str],
    cols: Dict[str, str],
    require_phone: bool,
    brand_aliases: Sequence[Tuple[str, str]],
) -> Optional[TransactionRecord]:
    def get(name: str) -> str:
        col = cols.get(name)
        return row.get(col, "") if col else ""

    parts = parse_date_parts(get("date"))
    if parts is None:
        return None

    phone = normalize_phone(get("phone"))
    key = phone_digits(phone)
    if require_phone and not key:
        return None

    sales = max(parse_currency(get("sales")), 0)
    cost = abs(parse_currency(get("cost")))
    description = clean_string(get("description"))

    brand = normalize_brand(get("brand"), brand_aliases)
    if brand == OTHERS_BRAND and not clean_string(get("brand")):
        brand = normalize_brand(description, brand_aliases)

    return TransactionRecord(
        id=make_record_id(parts.iso, key, sales),
        date=parts.iso,
        year=parts.year,
        month=parts.month,
        day=parts.day,
        category=clean_string(get("category")) or DEFAULT_LABEL,
        sub_category=clean_string(get("sub_category")) or DEFAULT_LABEL,
        brand=brand,
        description=description,
        sales=sales,
        cost=cost,
        customer_name=clean_name(get("customer_name")),
        phone=phone,
    )


def parse_records(
    text: str,
    *,
    require_phone: bool = False,
    brand_aliases: Sequence[Tuple[str, str]] = BRAND_ALIASES,
) -> List[TransactionRecord]:
    """
    Parse raw feed text into canonical records, preserving source row order.

    Parameters
    ----------
    text : str
        CSV text with a header row.
    require_phone : bool
        Strict mode: also drop rows without any phone digits.
    brand_aliases : sequence of (alias, canonical)
        Brand dictionary used for canonicalization.
    """
    frame = read_frame(text)
    if frame.empty:
        logger.info("Feed contained no data rows")
        return []

    cols = resolve_columns(list(frame.columns), FIELD_PATTERNS)
    logger.debug(f"Detected columns: {cols}")
    if "date" not in cols:
        logger.warning(f"No date column among headers {list(frame.columns)}; every row is dropped")

    records = []
    for row in frame.to_dict("records"):
        rec = _row_to_record(row, cols, require_phone, brand_aliases)
        if rec is not None:
            records.append(rec)

    dropped = len(frame) - len(records)
    if dropped:
        logger.debug(f"Dropped {dropped} of {len(frame)} rows (unreadable date or missing phone)")
    logger.info(f"Parsed {len(records)} transactions")
    return records


def records_to_frame(records: Sequence[TransactionRecord]) -> pd.DataFrame:
    """DataFrame view of the records with a parsed ``ts`` timestamp column."""
    columns = list(TransactionRecord.__dataclass_fields__)
    df = pd.DataFrame([r.to_dict() for r in records], columns=columns)
    df["phone_key"] = [r.phone_key for r in records]
    df["ts"] = pd.to_datetime(df["date"], format="%Y-%m-%d")
    for col in ("sales", "cost", "net_profit"):
        df[col] = df[col].astype("int64")
    return df
