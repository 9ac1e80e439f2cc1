"""
repairbi.normalizers

Single-field canonicalizers applied by the record parser.

Every function here is total: bad input produces a documented fallback value
(``""``, ``0``, ``None`` or ``"Others"``) instead of an exception.
"""

from __future__ import annotations

import math
import re
from datetime import date
from typing import NamedTuple, Optional, Sequence, Tuple

OTHERS_BRAND = "Others"

# Ordered (alias, canonical) pairs; the first alias found in the text wins.
BRAND_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("chanel", "Chanel"), ("샤넬", "Chanel"),
    ("hermes", "Hermes"), ("에르메스", "Hermes"),
    ("louis", "Louis Vuitton"), ("루이비통", "Louis Vuitton"), ("lv", "Louis Vuitton"),
    ("gucci", "Gucci"), ("구찌", "Gucci"),
    ("dior", "Dior"), ("디올", "Dior"),
    ("prada", "Prada"), ("프라다", "Prada"),
    ("goyard", "Goyard"), ("고야드", "Goyard"),
    ("bottega", "Bottega Veneta"), ("보테가", "Bottega Veneta"),
    ("balenciaga", "Balenciaga"), ("발렌시아가", "Balenciaga"),
    ("miumiu", "Miu Miu"), ("miu miu", "Miu Miu"), ("미우미우", "Miu Miu"),
    ("saint", "Saint Laurent"), ("생로랑", "Saint Laurent"), ("ysl", "Saint Laurent"),
    ("fendi", "Fendi"), ("펜디", "Fendi"),
    ("burberry", "Burberry"), ("버버리", "Burberry"),
)

KNOWN_BRANDS = frozenset(canonical for _, canonical in BRAND_ALIASES)

# Months until an item of this kind usually comes back for service.
CATEGORY_DURABILITY: Tuple[Tuple[Tuple[str, ...], int], ...] = (
    (("가방", "bag"), 18),
    (("지갑", "wallet"), 12),
    (("신발", "shoe"), 6),
    (("벨트", "belt"), 12),
    (("의류", "cloth", "apparel"), 24),
)
DEFAULT_DURABILITY_MONTHS = 12

_WHITESPACE = re.compile(r"\s+")
_NON_DIGIT = re.compile(r"\D")
_NON_NUMERIC = re.compile(r"[^\d.\-]")
_DATE_PARTS = re.compile(r"(?<!\d)(\d{4})\D+(\d{1,2})(?!\d)(?:\D+(\d{1,2})(?!\d))?")
_PLACEHOLDER_TAIL = re.compile(r"(\d)\1{3}$")


class DateParts(NamedTuple):
    year: int
    month: int
    day: int

    @property
    def iso(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d}"


def _is_missing(value: object) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def clean_string(value: object) -> str:
    """Collapse whitespace/newlines to single spaces and trim."""
    if _is_missing(value):
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def parse_date_parts(value: object) -> Optional[DateParts]:
    """
    Pull year/month/day out of loosely formatted date text.

    Handles "2024. 11. 1", "2024/3/5", "2024-11-01", "2024년 11월 1일" and
    year-month only values ("2024.11" -> day 1). Returns None when no 4-digit
    year or month can be found or the parts do not form a calendar date.
    """
    text = clean_string(value)
    if not text:
        return None
    m = _DATE_PARTS.search(text)
    if not m:
        return None
    year, month = int(m.group(1)), int(m.group(2))
    day = int(m.group(3)) if m.group(3) else 1
    try:
        date(year, month, day)
    except ValueError:
        return None
    return DateParts(year, month, day)


def parse_currency(value: object) -> int:
    """
    "190,000" -> 190000, "-50,000" -> -50000, "₩ 2,500,000원" -> 2500000.

    Anything unparseable (including empty input) is 0.
    """
    if _is_missing(value) or isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) else 0
    cleaned = _NON_NUMERIC.sub("", str(value))
    if not cleaned:
        return 0
    try:
        return int(float(cleaned))
    except ValueError:
        return 0


def clean_name(value: object) -> str:
    """ "김수아 [C / 수아]" -> "김수아" """
    return clean_string(value).split("[", 1)[0].strip()


def normalize_brand(text: object, aliases: Sequence[Tuple[str, str]] = BRAND_ALIASES) -> str:
    """Map a free-text brand mention to a canonical brand or "Others"."""
    t = clean_string(text).lower()
    if not t:
        return OTHERS_BRAND
    for alias, canonical in aliases:
        if alias in t:
            return canonical
    return OTHERS_BRAND


def phone_digits(value: object) -> str:
    return _NON_DIGIT.sub("", clean_string(value))


def normalize_phone(value: object) -> str:
    """Format 11-digit Korean mobile numbers as XXX-XXXX-XXXX; pass others through."""
    raw = clean_string(value)
    digits = _NON_DIGIT.sub("", raw)
    if len(digits) == 11 and digits.startswith("01"):
        return f"{digits[:3]}-{digits[3:7]}-{digits[7:]}"
    return raw


def is_valid_phone(value: object) -> bool:
    """
    Whether a phone can identify a customer.

    Numbers shorter than 8 digits and placeholders ending in four identical
    digits ("0000", "1111", ...) cannot.
    """
    digits = phone_digits(value)
    if len(digits) < 8:
        return False
    return _PLACEHOLDER_TAIL.search(digits) is None


def durability_months(category: object) -> int:
    """Expected months between services for an item category."""
    t = clean_string(category).lower()
    for keywords, months in CATEGORY_DURABILITY:
        if any(k in t for k in keywords):
            return months
    return DEFAULT_DURABILITY_MONTHS
