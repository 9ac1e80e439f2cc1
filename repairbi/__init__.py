"""
Top-level package for the repair-shop ledger analytics core.
"""

__all__ = [
    "ProjectConfig",
    "run_all",
    "load_transactions",
    "parse_records",
    "build_profiles",
    "analyze_customer",
    "TransactionRecord",
    "CustomerProfile",
]

from .customers import build_profiles
from .parser import parse_records
from .pipeline import ProjectConfig, load_transactions, run_all  # convenience re-export
from .records import CustomerProfile, TransactionRecord
from .retention import analyze_customer
