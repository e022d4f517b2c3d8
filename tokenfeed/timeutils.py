"""
Single source for "now". Supports deterministic mode for tests via
TOKENFEED_DETERMINISTIC_TIME (unix seconds or ISO format, e.g. 2026-01-01T00:00:00Z).
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone


def _fixed_epoch_s() -> float | None:
    fixed = os.environ.get("TOKENFEED_DETERMINISTIC_TIME", "").strip()
    if not fixed:
        return None
    try:
        return float(fixed)
    except ValueError:
        pass
    if fixed.endswith("Z"):
        fixed = fixed[:-1] + "+00:00"
    dt = datetime.fromisoformat(fixed)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def now_s() -> float:
    """Current unix time in seconds (float)."""
    fixed = _fixed_epoch_s()
    return fixed if fixed is not None else time.time()


def now_ms() -> int:
    """Current unix time in integer milliseconds."""
    return int(now_s() * 1000)


def now_utc_iso() -> str:
    """Current UTC time in ISO format (seconds)."""
    return datetime.fromtimestamp(now_s(), tz=timezone.utc).isoformat(timespec="seconds")


def ms_to_iso(ms: int) -> str:
    return datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
