from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence

import matplotlib.pyplot as plt


# -----------------------------
# Header matching
# -----------------------------
def norm_header(s: object) -> str:
    """Lowercase, drop a stray BOM and surrounding quotes/whitespace."""
    return str(s).replace("\ufeff", "").strip().strip('"').strip().lower()


def detect_columns(columns: Sequence[str], patterns: Sequence[str]) -> List[str]:
    """
    Case-insensitive substring match of header fragments over column names.
    Returns matching ORIGINAL column names, de-duplicated, in column order.
    """
    pats = [p.lower() for p in patterns]
    return [c for c in columns if any(p in norm_header(c) for p in pats)]


def first_match(columns: Sequence[str], patterns: Sequence[str]) -> Optional[str]:
    """Return the first detected column or None."""
    cols = detect_columns(columns, patterns)
    return cols[0] if cols else None


def resolve_columns(
    columns: Sequence[str],
    field_patterns: Mapping[str, Sequence[str]],
) -> Dict[str, str]:
    """
    Assign each column to at most one logical field.

    A column goes to the first field (in ``field_patterns`` order) whose
    fragments it contains; a field keeps the first column that claims it.
    Columns matching nothing are ignored.
    """
    resolved: Dict[str, str] = {}
    for col in columns:
        for name, patterns in field_patterns.items():
            if first_match([col], patterns) is None:
                continue
            resolved.setdefault(name, col)
            break
    return resolved


# -----------------------------
# Plot helper
# -----------------------------
def finish_fig(
    fig: plt.Figure,
    filename: Optional[str] = None,
    *,
    out_dir: Optional[str | Path] = None,
    show: bool = False,
    save: bool = True,
    dpi: int = 150
) -> Optional[Path]:
    """
    Save &/or show a Matplotlib figure, then close it.
    Returns the written path when the figure was saved.
    """
    path = None
    if save and filename:
        path = Path(out_dir if out_dir is not None else ".") / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, bbox_inches="tight", dpi=dpi)

    if show:
        plt.show()

    plt.close(fig)
    return path

