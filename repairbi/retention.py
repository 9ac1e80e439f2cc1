"""
repairbi.retention

Per-customer RFM scoring, segmentation, churn probability and next-visit
("golden window") prediction.

Everything is a deterministic function of a customer's history and an
explicit reference date; nothing reads the clock. The churn figure is a
closed-form logistic rule, not a trained model.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from .normalizers import durability_months, phone_digits
from .records import (
    ADVISOR,
    CONCIERGE,
    HIGH_POTENTIAL,
    INCENTIVIZER,
    LOST,
    NEW,
    REGULAR,
    RISK,
    VIP,
    CustomerProfile,
    NextVisitWindow,
    TransactionRecord,
)

TAG_RECENT = "recent visitor"
TAG_LONG_ABSENCE = "long absence"
TAG_LOYAL = "loyal (5+ visits)"
TAG_RETURNING = "returning customer"
TAG_HIGH_SPEND = "high spend"
TAG_SOLID_SPEND = "solid spend"
TAG_PATTERN = "regular visit pattern"
TAG_OVERDUE = "overdue for visit"


@dataclass(frozen=True)
class ScoringRules:
    """Thresholds and weights of the VIP score, segments and churn curve."""
    recent_days: int = 30
    warm_days: int = 90
    recent_points: int = 40
    warm_points: int = 20
    absence_penalty: int = 20

    loyal_visits: int = 5
    loyal_points: int = 30
    returning_visits: int = 2
    returning_points: int = 10

    high_spend: int = 3_000_000
    high_spend_points: int = 30
    mid_spend: int = 1_000_000
    mid_spend_points: int = 10

    contact_digits: int = 10
    contact_points: int = 5

    vip_score: int = 80
    high_potential_score: int = 60
    risk_days: int = 120
    lost_days: int = 365
    new_days: int = 60

    # churn = sigmoid(recency / (cycle * cycle_scale) - midpoint)
    churn_cycle_scale: float = 1.0
    churn_midpoint: float = 2.0
    churn_floor: float = 0.01
    churn_ceiling: float = 0.99
    lost_churn: float = 0.99
    new_customer_churn: float = 0.2

    window_months: int = 1
    clv_multiplier: float = 1.2


DEFAULT_RULES = ScoringRules()


def _to_date(value: str) -> date:
    return date.fromisoformat(value)


def days_between(earlier: str, later: str) -> int:
    return (_to_date(later) - _to_date(earlier)).days


def vip_score(
    recency_days: int,
    visit_count: int,
    total_spend: int,
    phone: str = "",
    rules: ScoringRules = DEFAULT_RULES,
) -> Tuple[int, List[str]]:
    """Additive 0-100 score plus the tags of the rules that fired."""
    score = 0
    tags: List[str] = []

    if recency_days < rules.recent_days:
        score += rules.recent_points
        tags.append(TAG_RECENT)
    elif recency_days < rules.warm_days:
        score += rules.warm_points
    else:
        score -= rules.absence_penalty
        tags.append(TAG_LONG_ABSENCE)

    if visit_count >= rules.loyal_visits:
        score += rules.loyal_points
        tags.append(TAG_LOYAL)
    elif visit_count >= rules.returning_visits:
        score += rules.returning_points
        tags.append(TAG_RETURNING)

    if total_spend > rules.high_spend:
        score += rules.high_spend_points
        tags.append(TAG_HIGH_SPEND)
    elif total_spend > rules.mid_spend:
        score += rules.mid_spend_points
        tags.append(TAG_SOLID_SPEND)

    if len(phone_digits(phone)) >= rules.contact_digits:
        score += rules.contact_points

    return int(min(100, max(0, score))), tags


def assign_segment(
    score: int,
    recency_days: int,
    visit_count: int,
    rules: ScoringRules = DEFAULT_RULES,
) -> str:
    """First matching rule wins."""
    if score >= rules.vip_score:
        return VIP
    if score >= rules.high_potential_score:
        return HIGH_POTENTIAL
    if recency_days > rules.risk_days and visit_count > 1:
        return RISK
    if recency_days > rules.lost_days:
        return LOST
    if visit_count == 1 and recency_days < rules.new_days:
        return NEW
    return REGULAR


def churn_probability(
    recency_days: float,
    cycle_days: float,
    rules: ScoringRules = DEFAULT_RULES,
) -> float:
    """
    Logistic curve over how overdue a customer is relative to their cycle.

    Crosses 0.5 when recency is ``churn_midpoint`` times the (scaled) cycle.
    Non-decreasing in recency for a fixed cycle.
    """
    scaled_cycle = max(float(cycle_days) * rules.churn_cycle_scale, 1.0)
    risk = float(recency_days) / scaled_cycle
    p = 1.0 / (1.0 + np.exp(-(risk - rules.churn_midpoint)))
    return float(np.clip(p, rules.churn_floor, rules.churn_ceiling))


def persona_for(segment: str) -> str:
    if segment == VIP:
        return CONCIERGE
    if segment in (RISK, LOST):
        return INCENTIVIZER
    return ADVISOR


def expected_next_visit(
    last_visit: str,
    average_gap_days: float,
    preferred_category: str,
) -> pd.Timestamp:
    """
    Last visit plus the customer's own cycle, or plus the category's service
    interval when there is only one visit day to go on.
    """
    last = pd.Timestamp(last_visit)
    if average_gap_days > 0:
        return last + pd.Timedelta(days=int(round(average_gap_days)))
    return last + pd.DateOffset(months=durability_months(preferred_category))


def visit_window(expected: pd.Timestamp, rules: ScoringRules = DEFAULT_RULES) -> NextVisitWindow:
    spread = pd.DateOffset(months=rules.window_months)
    return NextVisitWindow(
        start=(expected - spread).strftime("%Y-%m-%d"),
        end=(expected + spread).strftime("%Y-%m-%d"),
        expected=expected.strftime("%Y-%m-%d"),
    )


def _preferred_category(history: Sequence[TransactionRecord]) -> str:
    top = max(history, key=lambda r: r.sales)
    return top.category


def _latest_non_empty(history: Sequence[TransactionRecord], attr: str) -> str:
    for rec in reversed(history):
        value = getattr(rec, attr)
        if value:
            return value
    return ""


def analyze_customer(
    history: Sequence[TransactionRecord],
    reference_date: str,
    rules: ScoringRules = DEFAULT_RULES,
) -> CustomerProfile:
    """
    Build one customer's profile.

    Parameters
    ----------
    history : sequence of TransactionRecord
        The customer's transactions; any order, must be non-empty.
    reference_date : str
        ``YYYY-MM-DD`` stand-in for "today", normally the latest date in the
        whole dataset.
    """
    if not history:
        raise ValueError("analyze_customer needs at least one transaction")

    history = sorted(history, key=lambda r: r.date)
    first_visit = history[0].date
    last_visit = history[-1].date
    visit_days = sorted({r.date for r in history})

    recency = max(0, days_between(last_visit, reference_date))
    visit_count = len(history)
    total_spend = int(sum(r.sales for r in history))
    phone = _latest_non_empty(history, "phone")

    if len(visit_days) > 1:
        avg_gap = days_between(first_visit, last_visit) / (len(visit_days) - 1)
    else:
        avg_gap = 0.0

    score, tags = vip_score(recency, visit_count, total_spend, phone, rules)
    segment = assign_segment(score, recency, visit_count, rules)

    preferred = _preferred_category(history)
    expected = expected_next_visit(last_visit, avg_gap, preferred)
    cycle_days = (expected - pd.Timestamp(last_visit)).days

    churn = churn_probability(recency, cycle_days, rules)
    if segment == LOST:
        churn = rules.lost_churn
    elif segment == NEW:
        churn = rules.new_customer_churn

    window: Optional[NextVisitWindow] = None
    days_until: Optional[int] = None
    if segment not in (RISK, LOST):
        window = visit_window(expected, rules)
        days_until = cycle_days - recency
        tags.append(TAG_PATTERN if days_until > 0 else TAG_OVERDUE)

    return CustomerProfile(
        phone_key=phone_digits(phone),
        phone=phone,
        display_name=_latest_non_empty(history, "customer_name"),
        visit_count=visit_count,
        total_spend=total_spend,
        first_visit_date=first_visit,
        last_visit_date=last_visit,
        recency_days=recency,
        average_inter_purchase_days=round(avg_gap, 1),
        vip_score=score,
        segment=segment,
        churn_probability=churn,
        next_visit_window=window,
        days_until_next_visit=days_until,
        explanations=tuple(dict.fromkeys(tags)),
        preferred_category=preferred,
        clv=round(total_spend * rules.clv_multiplier, 1),
        retention_score=round(100 - churn * 100, 1),
        persona=persona_for(segment),
    )
