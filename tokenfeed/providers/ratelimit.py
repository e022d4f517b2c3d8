"""
Per-provider call spacing and per-credential usage windows.

Two independent mechanisms:
- Spacing (hard): each lane (provider, or provider:role such as
  "birdeye:holders") admits one call per min_interval_s. Callers sleep until
  last_call + min_interval_s; slots are reserved under the lock so concurrent
  threads queue up instead of bursting.
- Usage windows (advisory): calls are counted per credential in a rolling
  one-minute window. Crossing soft_limit_per_minute logs a warning and is
  reported by usage(); it never blocks.
"""
from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, Optional, TypeVar

logger = logging.getLogger(__name__)

WINDOW_SECONDS = 60.0

T = TypeVar("T")


@dataclass
class CredentialUsage:
    credential_id: str
    window_start: float
    count: int = 0


class RateLimiter:
    """
    Usage:
        limiter = RateLimiter(min_interval_s=0.5, soft_limit_per_minute=20)
        with limiter.permit("birdeye:holders", credential_id=api_key):
            resp = requests.get(...)
    """

    def __init__(
        self,
        min_interval_s: float = 0.5,
        soft_limit_per_minute: int = 20,
        lane_intervals: Optional[Dict[str, float]] = None,
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._min_interval_s = min_interval_s
        self._soft_limit = soft_limit_per_minute
        self._lane_intervals = dict(lane_intervals or {})
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep
        self._next_slot: Dict[str, float] = {}
        self._usage: Dict[str, CredentialUsage] = {}
        self._lock = threading.Lock()

    def interval_for(self, lane: str) -> float:
        if lane in self._lane_intervals:
            return self._lane_intervals[lane]
        provider = lane.split(":", 1)[0]
        return self._lane_intervals.get(provider, self._min_interval_s)

    def acquire(self, lane: str, credential_id: Optional[str] = None) -> float:
        """
        Block until the lane admits another call; returns seconds waited.
        The call is counted against credential_id (or the lane) in its window.
        """
        interval = self.interval_for(lane)
        with self._lock:
            now = self._clock()
            slot = max(now, self._next_slot.get(lane, now))
            self._next_slot[lane] = slot + interval
            self._count_call(credential_id or lane, now)
        wait = slot - now
        if wait > 0:
            logger.debug("Rate limiter: %s waiting %.3fs", lane, wait)
            self._sleep(wait)
        return wait

    @contextmanager
    def permit(self, lane: str, credential_id: Optional[str] = None) -> Iterator[None]:
        self.acquire(lane, credential_id)
        yield

    def _count_call(self, credential_id: str, now: float) -> None:
        usage = self._usage.get(credential_id)
        if usage is None or now - usage.window_start >= WINDOW_SECONDS:
            usage = CredentialUsage(credential_id=credential_id, window_start=now)
            self._usage[credential_id] = usage
        usage.count += 1
        if usage.count == self._soft_limit + 1:
            logger.warning(
                "Credential %s exceeded soft limit (%d calls/min)",
                _mask(credential_id),
                self._soft_limit,
            )

    def usage(self, credential_id: str) -> CredentialUsage:
        """Snapshot of the current window; a fresh zero window if it has elapsed."""
        now = self._clock()
        with self._lock:
            usage = self._usage.get(credential_id)
            if usage is None or now - usage.window_start >= WINDOW_SECONDS:
                return CredentialUsage(credential_id=credential_id, window_start=now)
            return CredentialUsage(usage.credential_id, usage.window_start, usage.count)

    def is_over_soft_limit(self, credential_id: str) -> bool:
        return self.usage(credential_id).count > self._soft_limit

    def teardown(self) -> None:
        with self._lock:
            self._next_slot.clear()
            self._usage.clear()


def _mask(credential_id: str) -> str:
    if len(credential_id) <= 8:
        return credential_id
    return credential_id[:8] + "..."


def throttled(
    limiter: RateLimiter,
    lane: str,
    func: Callable[[], T],
    credential_id: Optional[str] = None,
) -> Callable[[], T]:
    """Wrap func so every invocation (including retries) first takes a lane slot."""

    def call() -> T:
        limiter.acquire(lane, credential_id)
        return func()

    return call
