"""
repairbi.pipeline

End-to-end run over the repair-shop ledger.

Main entrypoint:
    from repairbi import run_all, ProjectConfig
    run_all(ProjectConfig(feed_path="ledger.csv", out_dir="out"))

This will:
    - load the raw ledger text (published sheet URL or local file)
    - parse it into canonical transactions
    - build per-customer retention profiles
    - compute revenue series, brand/channel breakdowns and cohort retention
    - write all outputs to <out_dir> as CSVs and PNGs
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import matplotlib.pyplot as plt
import pandas as pd

from .analytics import breakdown, cohort_retention, retention_totals, revenue_series, summary_metrics
from .customers import build_profiles, profiles_to_frame
from .errors import FeedNotConfiguredError, FeedUnavailableError
from .export import write_csv
from .parser import parse_records
from .records import SEGMENTS, CustomerProfile, TransactionRecord
from .sources import DEFAULT_TIMEOUT, load_feed_text
from .utils import finish_fig

logger = logging.getLogger(__name__)

# LoadResult.status values
READY = "ready"
EMPTY = "empty"
UNAVAILABLE = "unavailable"
UNCONFIGURED = "unconfigured"


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

@dataclass
class ProjectConfig:
    """
    Configuration for the pipeline.

    Attributes
    ----------
    feed_url : str, optional
        CSV export URL of the published ledger sheet.
    feed_path : Path, optional
        Local CSV file; takes precedence over ``feed_url``.
    out_dir : Path
        Directory where all derived CSVs and plots will be written.
    show_plots : bool
        Whether to display plots (useful in notebooks).
    save_plots : bool
        Whether to save plots as PNGs under out_dir.
    require_phone : bool
        Strict parsing: drop rows without a phone number.
    timeout : float
        HTTP timeout in seconds for ``feed_url``.
    log_level : str
        Root logging level name.
    log_file : Path, optional
        Also log to this file when set.
    """
    feed_url: Optional[str] = None
    feed_path: Optional[Path] = None
    out_dir: Path = Path("out")
    show_plots: bool = False
    save_plots: bool = True
    require_phone: bool = False
    timeout: float = DEFAULT_TIMEOUT
    log_level: str = "INFO"
    log_file: Optional[Path] = None

    def __post_init__(self):
        self.out_dir = Path(self.out_dir)
        if self.feed_path is not None:
            self.feed_path = Path(self.feed_path)
        if self.log_file is not None:
            self.log_file = Path(self.log_file)

    @classmethod
    def from_env(cls, **overrides) -> "ProjectConfig":
        """Defaults, overridden by REPAIRBI_* environment variables, overridden by kwargs."""
        env = {
            "feed_url": os.getenv("REPAIRBI_FEED_URL"),
            "feed_path": os.getenv("REPAIRBI_FEED_PATH"),
            "out_dir": os.getenv("REPAIRBI_OUT_DIR"),
            "log_level": os.getenv("REPAIRBI_LOG_LEVEL"),
            "log_file": os.getenv("REPAIRBI_LOG_FILE"),
        }
        strict = os.getenv("REPAIRBI_REQUIRE_PHONE")
        if strict:
            env["require_phone"] = strict.strip().lower() in ("1", "true", "yes", "on")
        timeout = os.getenv("REPAIRBI_TIMEOUT")
        if timeout and timeout.replace(".", "", 1).isdigit():
            env["timeout"] = float(timeout)

        kwargs = {k: v for k, v in env.items() if v not in (None, "")}
        kwargs.update(overrides)
        return cls(**kwargs)

    @property
    def transactions_path(self) -> Path:
        return self.out_dir / "transactions.csv"

    @property
    def profiles_path(self) -> Path:
        return self.out_dir / "customer_profiles.csv"


def setup_logging(config: ProjectConfig) -> None:
    """Stream handler always, file handler when ``log_file`` is set."""
    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if config.log_file:
        config.log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))

    logging.basicConfig(
        level=getattr(logging, str(config.log_level).upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

@dataclass
class LoadResult:
    """
    Outcome of one load.

    ``status`` tells the caller what to show: ``ready`` (records present),
    ``empty`` (source read, no usable rows -> prompt for a file),
    ``unavailable`` (transport failed -> offer a retry) or ``unconfigured``
    (no source yet -> ask for a connection or upload).
    """
    status: str
    records: List[TransactionRecord] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == READY


def load_transactions(config: ProjectConfig) -> LoadResult:
    try:
        text = load_feed_text(config.feed_url, config.feed_path, timeout=config.timeout)
    except FeedNotConfiguredError as e:
        logger.warning(str(e))
        return LoadResult(UNCONFIGURED, error=str(e))
    except FeedUnavailableError as e:
        return LoadResult(UNAVAILABLE, error=str(e))

    records = parse_records(text, require_phone=config.require_phone)
    if not records:
        return LoadResult(EMPTY, error="Data source contained no usable rows")
    return LoadResult(READY, records)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------

def plot_segment_counts(profiles: List[CustomerProfile], config: ProjectConfig) -> None:
    counts = pd.Series([p.segment for p in profiles], dtype=object).value_counts()
    counts = counts.reindex(SEGMENTS, fill_value=0)

    fig, ax = plt.subplots(figsize=(8, 4))
    ax.bar(counts.index, counts.values)
    ax.set_xlabel("Segment")
    ax.set_ylabel("Customers")
    ax.set_title("Customers by Segment")
    for i, v in enumerate(counts.values):
        ax.text(i, v, str(int(v)), ha="center", va="bottom", fontsize=8)
    finish_fig(fig, "segment_counts.png", out_dir=config.out_dir, show=config.show_plots, save=config.save_plots)


def plot_monthly_revenue(monthly: List[Dict[str, Any]], config: ProjectConfig) -> None:
    periods = [m["period"] for m in monthly]
    fig, ax = plt.subplots(figsize=(10, 4))
    ax.bar(periods, [m["revenue"] for m in monthly], label="Revenue")
    ax.plot(periods, [m["profit"] for m in monthly], color="black", marker="o", label="Net profit")
    ax.set_xlabel("Month")
    ax.set_ylabel("KRW")
    ax.set_title("Revenue and Net Profit per Month")
    ax.legend()
    fig.autofmt_xdate()
    finish_fig(fig, "monthly_revenue.png", out_dir=config.out_dir, show=config.show_plots, save=config.save_plots)


def write_report(
    records: List[TransactionRecord],
    profiles: List[CustomerProfile],
    config: ProjectConfig,
) -> Dict[str, Any]:
    config.out_dir.mkdir(parents=True, exist_ok=True)

    write_csv(records, config.transactions_path)
    profiles_to_frame(profiles).to_csv(config.profiles_path, index=False, encoding="utf-8-sig")

    monthly = revenue_series(records, freq="month")
    pd.DataFrame(monthly, columns=["period", "revenue", "profit", "count"]).to_csv(
        config.out_dir / "monthly_revenue.csv", index=False
    )

    brands = breakdown(records, by="brand", metric="revenue")
    pd.DataFrame(brands, columns=["name", "count", "revenue", "profit", "margin", "asp", "rework_count", "rework_rate"]).to_csv(
        config.out_dir / "brand_breakdown.csv", index=False, encoding="utf-8-sig"
    )

    cohorts = cohort_retention(records)
    cohort_rows = [
        {"cohort": c["cohort"], "customers": c["customers"], **{f"m{i}": v for i, v in enumerate(c["retention"])}}
        for c in cohorts
    ]
    pd.DataFrame(cohort_rows).to_csv(config.out_dir / "cohort_retention.csv", index=False)

    plot_segment_counts(profiles, config)
    if monthly:
        plot_monthly_revenue(monthly, config)

    return {
        "summary": summary_metrics(records),
        "monthly": monthly,
        "brands": brands,
        "cohorts": cohorts,
        "retention": retention_totals(profiles),
    }


# ---------------------------------------------------------------------------
# Main entrypoint
# ---------------------------------------------------------------------------

def run_all(config: ProjectConfig) -> Dict[str, Any]:
    """
    Run the full pipeline with the given configuration.

    Returns a dict with the load ``status`` and, when data was available,
    the records, profiles and aggregate results.
    """
    logger.info("Step 1: loading ledger")
    loaded = load_transactions(config)
    if not loaded.ok:
        logger.warning(f"Pipeline stopped ({loaded.status}): {loaded.error}")
        return {"status": loaded.status, "error": loaded.error}

    logger.info("Step 2: building customer profiles")
    profiles = build_profiles(loaded.records)

    logger.info("Step 3: aggregating and writing report")
    report = write_report(loaded.records, profiles, config)

    logger.info(f"Pipeline completed. Outputs written to: {config.out_dir}")
    return {"status": loaded.status, "records": loaded.records, "profiles": profiles, **report}


if __name__ == "__main__":
    cfg = ProjectConfig.from_env()
    setup_logging(cfg)
    run_all(cfg)
