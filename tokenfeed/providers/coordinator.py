"""
Request coordination: in-flight deduplication plus retry with exponential
backoff around a single unit of work.

Concurrent callers presenting the same fingerprint share one provider call
and observe the same result (or the same exception). Only errors classified
as transient are retried; permanent errors and empty results propagate
immediately. In-flight bookkeeping is dropped once a call settles.
"""
from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, TypeVar

from .errors import ProviderError, is_transient

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for retry with exponential backoff."""

    max_retries: int = 3
    base_delay_s: float = 2.0
    max_delay_s: float = 30.0
    backoff_factor: float = 2.0

    def delay_for(self, attempt: int, retry_after_s: Optional[float] = None) -> float:
        """Delay before retry number attempt+1 (attempt is 0-based)."""
        if retry_after_s is not None:
            return min(retry_after_s, self.max_delay_s)
        return min(self.max_delay_s, self.base_delay_s * (self.backoff_factor ** attempt))


def backoff_delays(cfg: RetryConfig) -> List[float]:
    """Full delay schedule for a call that fails transiently on every attempt."""
    return [cfg.delay_for(attempt) for attempt in range(cfg.max_retries)]


def resilient_call(
    func: Callable[[], T],
    retry_config: Optional[RetryConfig] = None,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "call",
) -> T:
    """
    Execute func, retrying transient failures with backoff.

    Raises the last exception once retries are exhausted, or the first
    non-transient exception immediately.
    """
    cfg = retry_config or RetryConfig()
    attempt = 0
    while True:
        try:
            return func()
        except Exception as exc:
            if not is_transient(exc):
                raise
            if attempt >= cfg.max_retries:
                logger.warning(
                    "%s: giving up after %d attempts: %s", label, attempt + 1, exc
                )
                raise
            hint = exc.retry_after_s if isinstance(exc, ProviderError) else None
            delay = cfg.delay_for(attempt, hint)
            logger.debug(
                "%s: attempt %d/%d failed (%s); retrying in %.2fs",
                label, attempt + 1, cfg.max_retries + 1, exc, delay,
            )
            sleep(delay)
            attempt += 1


class RequestCoordinator:
    """
    Deduplicates concurrent identical requests and applies retry-with-backoff.

    Usage:
        coordinator = RequestCoordinator(RetryConfig(max_retries=3))
        batch = coordinator.execute("geckoterminal:solana:pool:1h", lambda: adapter.fetch_ohlcv(q))
    """

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        sleep: Optional[Callable[[float], None]] = None,
    ) -> None:
        self._retry_config = retry_config or RetryConfig()
        self._sleep = sleep or time.sleep
        self._inflight: Dict[str, Future] = {}
        self._lock = threading.Lock()
        self.calls_started = 0
        self.calls_joined = 0

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry_config

    def in_flight(self) -> int:
        with self._lock:
            return len(self._inflight)

    def execute(
        self,
        fingerprint: str,
        unit_of_work: Callable[[], T],
        retry_config: Optional[RetryConfig] = None,
    ) -> T:
        with self._lock:
            future = self._inflight.get(fingerprint)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[fingerprint] = future
                self.calls_started += 1
            else:
                self.calls_joined += 1

        if not owner:
            logger.debug("Joining in-flight request %s", fingerprint)
            return future.result()

        try:
            result = resilient_call(
                unit_of_work,
                retry_config=retry_config or self._retry_config,
                sleep=self._sleep,
                label=fingerprint,
            )
        except Exception as exc:
            self._settle(fingerprint)
            if not future.cancelled():
                future.set_exception(exc)
            raise
        self._settle(fingerprint)
        if not future.cancelled():
            future.set_result(result)
        return result

    def _settle(self, fingerprint: str) -> None:
        with self._lock:
            self._inflight.pop(fingerprint, None)

    def teardown(self) -> None:
        with self._lock:
            pending = list(self._inflight.values())
            self._inflight.clear()
        for future in pending:
            future.cancel()
