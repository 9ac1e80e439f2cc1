"""
Spreadsheet-friendly CSV export of canonical records.

The header is fixed and uses the shop's Korean ledger labels, so an exported
file can be fed straight back into ``parse_records``.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Sequence

import pandas as pd

from .records import TransactionRecord

logger = logging.getLogger(__name__)

BOM = "\ufeff"

EXPORT_COLUMNS = (
    ("date", "날짜"),
    ("category", "카테고리"),
    ("brand", "브랜드"),
    ("description", "내용"),
    ("sub_category", "채널"),
    ("customer_name", "고객명"),
    ("phone", "전화번호"),
    ("sales", "매출"),
    ("cost", "지출"),
    ("net_profit", "순수익"),
)


def export_frame(records: Sequence[TransactionRecord]) -> pd.DataFrame:
    fields = [f for f, _ in EXPORT_COLUMNS]
    df = pd.DataFrame([r.to_dict() for r in records], columns=fields)
    return df.rename(columns=dict(EXPORT_COLUMNS))


def to_csv_text(records: Sequence[TransactionRecord]) -> str:
    """BOM-prefixed CSV; values containing a comma, quote or newline are quoted."""
    body = export_frame(records).to_csv(index=False, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    return BOM + body


def write_csv(records: Sequence[TransactionRecord], path: str | Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(to_csv_text(records), encoding="utf-8")
    logger.info(f"Exported {len(records)} transactions to {path}")
    return path
