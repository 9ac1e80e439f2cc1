"""
repairbi.sources

Retrieval of the raw ledger text: a published Google Sheet CSV URL or a
local file. Failures here are transport failures and are raised as
FeedUnavailableError so they are never confused with "no usable rows".
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import requests

from .errors import FeedNotConfiguredError, FeedUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


def fetch_feed(url: str, timeout: float = DEFAULT_TIMEOUT, bust_cache: bool = True) -> str:
    """
    GET the CSV export of a published sheet.

    A ``t=<epoch ms>`` parameter defeats the sheet's edge cache so edits show
    up on the next load.
    """
    params = {"t": int(time.time() * 1000)} if bust_cache else None
    logger.info(f"Fetching ledger from {url}")
    try:
        response = requests.get(url, params=params, timeout=timeout)
    except requests.RequestException as e:
        logger.error(f"Ledger request failed: {e}")
        raise FeedUnavailableError(url, str(e)) from e

    if response.status_code != 200:
        logger.error(f"Ledger source answered {response.status_code}")
        raise FeedUnavailableError(url, f"HTTP {response.status_code}")

    response.encoding = response.encoding or "utf-8"
    if response.encoding.lower() == "iso-8859-1":
        # text/csv without a charset header defaults to latin-1
        response.encoding = "utf-8"
    return response.text


def read_feed(path: str | Path) -> str:
    """Read a locally uploaded CSV (UTF-8, BOM allowed)."""
    path = Path(path)
    try:
        return path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Could not read {path}: {e}")
        raise FeedUnavailableError(str(path), str(e)) from e


def load_feed_text(
    url: Optional[str] = None,
    path: Optional[str | Path] = None,
    timeout: float = DEFAULT_TIMEOUT,
) -> str:
    """Local file wins over URL; with neither, FeedNotConfiguredError."""
    if path:
        return read_feed(path)
    if url:
        return fetch_feed(url, timeout=timeout)
    raise FeedNotConfiguredError("No ledger URL or file configured")
