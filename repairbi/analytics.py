"""
repairbi.analytics

Read-only reducers over the canonical transactions, shaped as plain lists of
dicts so a chart layer can consume them directly. Each one accepts an empty
sequence and returns empty or zeroed output.
"""

from __future__ import annotations

import calendar
import math
import re
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from .customers import group_by_customer
from .normalizers import OTHERS_BRAND, is_valid_phone
from .parser import records_to_frame
from .records import LOST, CustomerProfile, TransactionRecord

WEEKDAYS = ("Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun")
BREAKDOWN_KEYS = ("brand", "sub_category", "category", "menu")
BREAKDOWN_METRICS = ("revenue", "profit", "count")

# After-service ("A/S") as a standalone token, or the Korean words for
# redo / fix / again.
_REWORK = re.compile(r"(?<![a-z])a/?s(?![a-z])|재작업|수정|다시")

VVIP_SHARE = 0.01
VVIP_FALLBACK = 2_000_000
QUOTE_BUCKET = 50_000


@dataclass(frozen=True)
class GoalTargets:
    yearly: int = 450_000_000
    monthly: int = 37_500_000


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _margin(profit: float, revenue: float) -> float:
    return float(profit / revenue) if revenue else 0.0


def is_rework(description: str, category: str) -> bool:
    """True when the job text marks a redo of earlier work."""
    return bool(_REWORK.search(f"{description} {category}".lower()))


def summary_metrics(records: Sequence[TransactionRecord]) -> Dict[str, Any]:
    """Headline totals: revenue, net profit, margin, count, average ticket."""
    revenue = int(sum(r.sales for r in records))
    profit = int(sum(r.net_profit for r in records))
    count = len(records)
    return {
        "revenue": revenue,
        "net_profit": profit,
        "margin": _margin(profit, revenue),
        "count": count,
        "avg_ticket": revenue / count if count else 0.0,
    }


def _period_labels(ts: pd.Series, freq: str) -> pd.Series:
    if freq == "day":
        return ts.dt.strftime("%Y-%m-%d")
    if freq == "week":
        iso = ts.dt.isocalendar()
        return iso["year"].astype(str) + "-W" + iso["week"].astype(int).map("{:02d}".format)
    if freq == "month":
        return ts.dt.strftime("%Y-%m")
    raise ValueError(f"Unknown frequency: {freq!r} (expected day, week or month)")


def revenue_series(records: Sequence[TransactionRecord], freq: str = "day") -> List[Dict[str, Any]]:
    """
    Revenue/profit per day, ISO week ("2024-W05") or month ("2024-11"),
    in chronological order.
    """
    if freq not in ("day", "week", "month"):
        raise ValueError(f"Unknown frequency: {freq!r} (expected day, week or month)")
    if not records:
        return []
    df = records_to_frame(records)
    df["period"] = _period_labels(df["ts"], freq)
    grouped = (
        df.groupby("period", sort=True)
        .agg(revenue=("sales", "sum"), profit=("net_profit", "sum"), count=("id", "size"))
        .reset_index()
    )
    return [
        {"period": row["period"], "revenue": int(row["revenue"]), "profit": int(row["profit"]), "count": int(row["count"])}
        for row in grouped.to_dict("records")
    ]


def weekday_distribution(records: Sequence[TransactionRecord]) -> List[Dict[str, Any]]:
    """Seven rows, Monday first, always present even with no data."""
    revenue = np.zeros(7, dtype=np.int64)
    profit = np.zeros(7, dtype=np.int64)
    count = np.zeros(7, dtype=np.int64)
    for r in records:
        idx = date(r.year, r.month, r.day).weekday()
        revenue[idx] += r.sales
        profit[idx] += r.net_profit
        count[idx] += 1
    return [
        {"weekday": WEEKDAYS[i], "revenue": int(revenue[i]), "profit": int(profit[i]), "count": int(count[i])}
        for i in range(7)
    ]


def breakdown(
    records: Sequence[TransactionRecord],
    by: str = "brand",
    metric: str = "revenue",
    top_n: Optional[int] = None,
    brand: Optional[str] = None,
) -> List[Dict[str, Any]]:
    """
    Per-brand / channel / category / menu totals ranked by ``metric``.

    ``menu`` keys rows by "<brand> <category>". ``brand`` narrows the input
    to one brand first. margin = profit / revenue (0 when revenue is 0);
    asp = revenue / count; rework_rate = rework_count / count.
    """
    if by not in BREAKDOWN_KEYS:
        raise ValueError(f"Cannot break down by {by!r}; choose one of {BREAKDOWN_KEYS}")
    if metric not in BREAKDOWN_METRICS:
        raise ValueError(f"Unknown metric {metric!r}; choose one of {BREAKDOWN_METRICS}")
    if brand is not None:
        records = [r for r in records if r.brand == brand]
    if not records:
        return []

    df = records_to_frame(records)
    df["menu"] = df["brand"] + " " + df["category"]
    df["rework"] = [is_rework(r.description, r.category) for r in records]
    grouped = (
        df.groupby(by, sort=False)
        .agg(
            count=("id", "size"),
            revenue=("sales", "sum"),
            profit=("net_profit", "sum"),
            rework_count=("rework", "sum"),
        )
        .reset_index()
        .sort_values([metric, by], ascending=[False, True], kind="mergesort")
    )
    if top_n is not None:
        grouped = grouped.head(top_n)

    out = []
    for row in grouped.to_dict("records"):
        count, revenue, profit = row["count"], row["revenue"], row["profit"]
        out.append({
            "name": row[by],
            "count": int(count),
            "revenue": int(revenue),
            "profit": int(profit),
            "margin": _margin(profit, revenue),
            "asp": revenue / count if count else 0.0,
            "rework_count": int(row["rework_count"]),
            "rework_rate": float(row["rework_count"] / count) if count else 0.0,
        })
    return out


def seasonality_heatmap(records: Sequence[TransactionRecord]) -> List[Dict[str, Any]]:
    """Revenue per calendar month (rows, Jan..Dec) and weekday (columns, Mon..Sun)."""
    grid = np.zeros((12, 7), dtype=np.int64)
    for r in records:
        grid[r.month - 1, date(r.year, r.month, r.day).weekday()] += r.sales
    return [
        {"month": m + 1, **{WEEKDAYS[d]: int(grid[m, d]) for d in range(7)}}
        for m in range(12)
    ]


def goal_attainment(
    records: Sequence[TransactionRecord],
    year: int,
    month: Optional[int] = None,
    as_of: Optional[date] = None,
    targets: GoalTargets = GoalTargets(),
) -> Dict[str, Any]:
    """
    Progress against the yearly (``month=None``) or monthly revenue target.

    ``percent`` is capped at 100. ``projection`` extrapolates the run rate to
    the full period, but only when ``as_of`` lies inside the period;
    otherwise it is 0.
    """
    in_period = [r for r in records if r.year == year and (month is None or r.month == month)]
    revenue = int(sum(r.sales for r in in_period))
    target = targets.yearly if month is None else targets.monthly

    projection = 0.0
    if as_of is not None and as_of.year == year:
        if month is None:
            elapsed = as_of.timetuple().tm_yday
            total = 366 if calendar.isleap(year) else 365
            projection = revenue / elapsed * total
        elif as_of.month == month:
            projection = revenue / as_of.day * calendar.monthrange(year, month)[1]

    return {
        "period": f"{year}" if month is None else f"{year}-{month:02d}",
        "target": target,
        "revenue": revenue,
        "percent": min(100, _round_half_up(revenue / target * 100)) if target else 0,
        "remaining": max(0, target - revenue),
        "projection": projection,
        "on_track": projection >= target if projection else revenue >= target,
    }


def _month_index(year: int, month: int) -> int:
    return year * 12 + (month - 1)


def cohort_retention(records: Sequence[TransactionRecord], months: int = 6) -> List[Dict[str, Any]]:
    """
    First-visit-month cohorts with the share of each cohort seen again
    0..``months`` months later, as integer percentages. Offset 0 is 100 by
    construction. Only customers with a usable phone take part.
    """
    visits: Dict[str, set] = {}
    for r in records:
        if not is_valid_phone(r.phone):
            continue
        visits.setdefault(r.phone_key, set()).add(_month_index(r.year, r.month))

    cohorts: Dict[int, List[set]] = {}
    for month_set in visits.values():
        first = min(month_set)
        offsets = {m - first for m in month_set}
        cohorts.setdefault(first, []).append(offsets)

    rows = []
    for first in sorted(cohorts):
        members = cohorts[first]
        total = len(members)
        retention = [
            _round_half_up(sum(1 for offsets in members if i in offsets) / total * 100)
            for i in range(months + 1)
        ]
        year, month0 = divmod(first, 12)
        rows.append({"cohort": f"{year}-{month0 + 1:02d}", "customers": total, "retention": retention})
    return rows


def brand_month_matrix(records: Sequence[TransactionRecord], top_n: int = 5) -> List[Dict[str, Any]]:
    """Monthly revenue of the top-``top_n`` brands; one dict per month."""
    if not records:
        return []
    top = [b["name"] for b in breakdown(records, by="brand", metric="revenue", top_n=top_n)]
    df = records_to_frame(records)
    df = df[df["brand"].isin(top)].copy()
    df["period"] = _period_labels(df["ts"], "month")
    pivot = df.pivot_table(index="period", columns="brand", values="sales", aggfunc="sum", fill_value=0)
    pivot = pivot.reindex(columns=top, fill_value=0).sort_index()
    return [
        {"period": period, **{brand: int(v) for brand, v in row.items()}}
        for period, row in pivot.iterrows()
    ]


# ---------------------------------------------------------------------------
# Customer-level summaries
# ---------------------------------------------------------------------------

def _customer_row(phone_key: str, history: Sequence[TransactionRecord]) -> Dict[str, Any]:
    dates = sorted(date.fromisoformat(r.date) for r in history)
    gaps = [(b - a).days for a, b in zip(dates, dates[1:])]
    phone = next((r.phone for r in reversed(history) if r.phone), "")
    name = next((r.customer_name for r in reversed(history) if r.customer_name), "")
    return {
        "phone_key": phone_key,
        "phone": phone,
        "name": name or f"고객({phone_key[-4:]})",
        "visit_count": len(history),
        "total_spend": int(sum(r.sales for r in history)),
        "first_visit": history[0].date,
        "last_visit": history[-1].date,
        "avg_cycle": _round_half_up(sum(gaps) / len(gaps)) if gaps else 0,
    }


def retention_summary(
    records: Sequence[TransactionRecord],
    top_loyal: int = 50,
    top_frequent: int = 10,
) -> Dict[str, Any]:
    """
    Returning-customer rate, VVIP spend threshold and the top customer lists.

    The VVIP threshold is the spend of the customer at the top-1% rank
    (VVIP_FALLBACK when there are no spending customers). ``return_rate`` is
    a percentage with one decimal.
    """
    customers = [_customer_row(key, history) for key, history in group_by_customer(records).items()]
    customers.sort(key=lambda c: c["phone_key"])

    spends = sorted((c["total_spend"] for c in customers), reverse=True)
    idx = max(0, math.floor(len(spends) * VVIP_SHARE) - 1)
    threshold = spends[idx] if spends and spends[idx] else VVIP_FALLBACK

    returning = sum(1 for c in customers if c["visit_count"] > 1)
    return {
        "total": len(customers),
        "returning": returning,
        "return_rate": round(returning / len(customers) * 100, 1) if customers else 0.0,
        "vvip_threshold": threshold,
        "top_loyal": sorted(customers, key=lambda c: -c["total_spend"])[:top_loyal],
        "top_frequent": sorted(customers, key=lambda c: -c["visit_count"])[:top_frequent],
    }


def retention_totals(
    profiles: Sequence[CustomerProfile],
    reference: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Headline figures over built profiles: total CLV, mean retention score and
    how many customers' golden window has already opened by ``reference``
    (default: the latest last-visit date among the profiles).
    """
    reference = reference or max((p.last_visit_date for p in profiles), default=None)
    opened = sum(
        1 for p in profiles
        if p.next_visit_window is not None and reference and p.next_visit_window.start <= reference
    )
    return {
        "total_clv": float(sum(p.clv for p in profiles)),
        "avg_retention_score": float(np.mean([p.retention_score for p in profiles])) if profiles else 0.0,
        "action_required": opened,
    }


def golden_window_list(
    profiles: Sequence[CustomerProfile],
    reference: Optional[str] = None,
    limit: int = 50,
) -> List[CustomerProfile]:
    """Customers whose window has not closed yet, earliest window start first."""
    reference = reference or max((p.last_visit_date for p in profiles), default=None)
    upcoming = [
        p for p in profiles
        if p.segment != LOST and p.next_visit_window is not None and p.next_visit_window.end > reference
    ]
    upcoming.sort(key=lambda p: (p.next_visit_window.start, p.phone_key))
    return upcoming[:limit]


# ---------------------------------------------------------------------------
# Quote reference prices
# ---------------------------------------------------------------------------

def quote_options(records: Sequence[TransactionRecord]) -> Dict[str, List[str]]:
    """Brands (without "Others") and categories to pick a quote filter from."""
    return {
        "brands": sorted({r.brand for r in records if r.brand and r.brand != OTHERS_BRAND}),
        "categories": sorted({r.category for r in records if r.category}),
    }


def _bucket_label(start: int, size: int) -> str:
    return f"{start // 10_000:,}~{(start + size) // 10_000:,}만"


def quote_statistics(
    records: Sequence[TransactionRecord],
    brand: Optional[str] = None,
    category: Optional[str] = None,
    keyword: Optional[str] = None,
    bucket_size: int = QUOTE_BUCKET,
) -> Dict[str, Any]:
    """
    Past prices of comparable jobs.

    Filters are exact on brand/category and case-insensitive substring on
    description or channel for ``keyword``; only paid jobs (sales > 0) count.
    ``buckets`` is a price histogram in ``bucket_size`` steps, cheapest first,
    and ``records`` the matching jobs newest first.
    """
    needle = (keyword or "").lower()
    matches = [
        r for r in records
        if r.sales > 0
        and (brand is None or r.brand == brand)
        and (category is None or r.category == category)
        and (not needle or needle in r.description.lower() or needle in r.sub_category.lower())
    ]
    matches.sort(key=lambda r: r.date, reverse=True)
    if not matches:
        return {"count": 0, "avg": 0, "median": 0.0, "min": 0, "max": 0, "buckets": [], "records": []}

    prices = np.array([r.sales for r in matches], dtype=np.int64)
    starts = (prices // bucket_size) * bucket_size
    values, counts = np.unique(starts, return_counts=True)
    return {
        "count": len(matches),
        "avg": _round_half_up(prices.mean()),
        "median": float(np.median(prices)),
        "min": int(prices.min()),
        "max": int(prices.max()),
        "buckets": [
            {"start": int(s), "end": int(s) + bucket_size, "label": _bucket_label(int(s), bucket_size), "count": int(c)}
            for s, c in zip(values, counts)
        ],
        "records": matches,
    }
