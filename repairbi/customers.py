"""
repairbi.customers

Group canonical transactions into per-customer histories keyed by the
digits-only phone, then run the retention engine over every group.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional, Sequence

import pandas as pd

from .normalizers import is_valid_phone, phone_digits
from .records import CustomerProfile, TransactionRecord
from .retention import DEFAULT_RULES, ScoringRules, analyze_customer

logger = logging.getLogger(__name__)


def group_by_customer(records: Sequence[TransactionRecord]) -> Dict[str, List[TransactionRecord]]:
    """
    phone_key -> that customer's transactions in date order.

    Records whose phone cannot identify a customer (too short, placeholder)
    are left out; they still count in aggregate analytics.
    """
    groups: Dict[str, List[TransactionRecord]] = {}
    skipped = 0
    for rec in records:
        if not is_valid_phone(rec.phone):
            skipped += 1
            continue
        groups.setdefault(rec.phone_key, []).append(rec)

    for key in groups:
        groups[key].sort(key=lambda r: r.date)

    if skipped:
        logger.debug(f"{skipped} transactions without a usable phone left out of customer grouping")
    return groups


def reference_date(records: Sequence[TransactionRecord]) -> Optional[str]:
    """Latest transaction date in the dataset; the deterministic "today"."""
    return max((r.date for r in records), default=None)


def build_profiles(
    records: Sequence[TransactionRecord],
    reference: Optional[str] = None,
    rules: ScoringRules = DEFAULT_RULES,
) -> List[CustomerProfile]:
    """
    Profiles for every identifiable customer, highest VIP score first.

    ``reference`` defaults to the latest date across all records.
    """
    reference = reference or reference_date(records)
    if reference is None:
        return []

    groups = group_by_customer(records)
    profiles = [analyze_customer(history, reference, rules) for history in groups.values()]
    profiles.sort(key=lambda p: (-p.vip_score, p.phone_key))
    logger.info(f"Built {len(profiles)} customer profiles (reference date {reference})")
    return profiles


def profiles_to_frame(profiles: Sequence[CustomerProfile]) -> pd.DataFrame:
    rows = [p.to_dict() for p in profiles]
    return pd.DataFrame(rows)


def customer_history(records: Sequence[TransactionRecord], phone: str) -> List[TransactionRecord]:
    """All transactions of one customer, newest first."""
    key = phone_digits(phone)
    if not key:
        return []
    matches = [r for r in records if r.phone_key == key]
    return sorted(matches, key=lambda r: r.date, reverse=True)
