"""
Canonical record shapes.

TransactionRecord is what the parser emits; CustomerProfile is a derived
projection over a customer's transactions. Both are frozen: reprocessing a
feed builds new objects instead of mutating old ones.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Optional, Tuple

from .normalizers import phone_digits

# Segments, in the priority order the engine evaluates them.
VIP = "VIP"
HIGH_POTENTIAL = "HighPotential"
RISK = "Risk"
LOST = "Lost"
NEW = "New"
REGULAR = "Regular"
SEGMENTS = (VIP, HIGH_POTENTIAL, RISK, LOST, NEW, REGULAR)

# Outreach tone per segment group.
CONCIERGE = "Concierge"
ADVISOR = "Advisor"
INCENTIVIZER = "Incentivizer"


@dataclass(frozen=True)
class TransactionRecord:
    """
    One repair/service transaction after normalization.

    ``cost`` is a positive outlay and ``net_profit`` is always
    ``sales - cost``.
    """
    id: str
    date: str
    year: int
    month: int
    day: int
    category: str
    sub_category: str
    brand: str
    description: str
    sales: int
    cost: int
    customer_name: str
    phone: str
    net_profit: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "net_profit", self.sales - self.cost)

    @property
    def phone_key(self) -> str:
        """Digits-only phone used for customer matching."""
        return phone_digits(self.phone)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class NextVisitWindow:
    """Golden window: the date range a customer's next visit is expected in."""
    start: str
    end: str
    expected: str


@dataclass(frozen=True)
class CustomerProfile:
    phone_key: str
    phone: str
    display_name: str
    visit_count: int
    total_spend: int
    first_visit_date: str
    last_visit_date: str
    recency_days: int
    average_inter_purchase_days: float
    vip_score: int
    segment: str
    churn_probability: float
    next_visit_window: Optional[NextVisitWindow]
    days_until_next_visit: Optional[int]
    explanations: Tuple[str, ...]
    preferred_category: str
    clv: float
    retention_score: float
    persona: str

    def to_dict(self) -> Dict[str, Any]:
        """Flat dict for tables; the window is split into start/end columns."""
        out = asdict(self)
        window = out.pop("next_visit_window")
        out["next_visit_start"] = window["start"] if window else None
        out["next_visit_end"] = window["end"] if window else None
        out["explanations"] = ", ".join(self.explanations)
        return out
