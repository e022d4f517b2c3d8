"""
Provider error taxonomy.

Every adapter failure is expressed as a ProviderError tagged with an
ErrorKind so the RequestCoordinator can decide retryability and the
FallbackOrchestrator can decide whether to advance:

- TRANSIENT: 429/502/503/504, connection reset, timeout, explicit rate-limit
  signal. Retried with backoff.
- PERMANENT: other 4xx/5xx, malformed or unexpected payload. Not retried;
  the next provider is tried.
- EMPTY: well-formed response without usable rows. Not retried; the next
  provider is tried.
"""
from __future__ import annotations

import enum
from typing import Optional

from tokenfeed.errors import TokenFeedError

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503, 504})

_RATE_LIMIT_MARKERS = ("rate limit", "too many requests")


class ErrorKind(enum.Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    EMPTY = "empty"


class ProviderError(TokenFeedError):
    """Failure of a single provider call, tagged for retry decisions."""

    def __init__(
        self,
        provider: str,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.PERMANENT,
        status: Optional[int] = None,
        retry_after_s: Optional[float] = None,
    ) -> None:
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.kind = kind
        self.status = status
        self.retry_after_s = retry_after_s

    @property
    def is_transient(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT


class NoDataError(ProviderError):
    """Structurally valid response that carried zero usable rows."""

    def __init__(self, provider: str, message: str = "no data") -> None:
        super().__init__(provider, message, kind=ErrorKind.EMPTY)


def kind_for_status(status: int) -> ErrorKind:
    if status in TRANSIENT_STATUS_CODES:
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


def looks_rate_limited(message: str) -> bool:
    lowered = message.lower()
    return any(marker in lowered for marker in _RATE_LIMIT_MARKERS)


def is_transient(exc: BaseException) -> bool:
    """True for errors the coordinator should retry."""
    if isinstance(exc, ProviderError):
        return exc.is_transient
    return looks_rate_limited(str(exc))


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Retry-After header in seconds; HTTP-date form is ignored."""
    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None
