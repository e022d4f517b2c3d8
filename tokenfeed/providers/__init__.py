"""
Provider architecture for token market data.

Adapters for candle, pair, holder and security sources, plus the shared
request machinery around them: error classification, rate limiting,
in-flight deduplication with retry/backoff, and a config-driven registry.
"""

from __future__ import annotations

from .base import (
    HolderProvider,
    OHLCVBatch,
    OHLCVProvider,
    OHLCVQuery,
    ProviderHealth,
    ProviderStatus,
    SecurityProvider,
    TokenRef,
)
from .coordinator import RequestCoordinator, RetryConfig, resilient_call
from .errors import ErrorKind, NoDataError, ProviderError
from .ratelimit import CredentialUsage, RateLimiter
from .registry import ProviderRegistry

__all__ = [
    "CredentialUsage",
    "ErrorKind",
    "HolderProvider",
    "NoDataError",
    "OHLCVBatch",
    "OHLCVProvider",
    "OHLCVQuery",
    "ProviderError",
    "ProviderHealth",
    "ProviderRegistry",
    "ProviderStatus",
    "RateLimiter",
    "RequestCoordinator",
    "RetryConfig",
    "SecurityProvider",
    "TokenRef",
    "resilient_call",
]
