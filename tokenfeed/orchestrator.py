"""
Fallback orchestration for OHLCV requests.

A request is fingerprinted over (token, timeframe, cursor, row count). A cache
hit returns immediately. Otherwise the candle providers are tried once each
in priority order, every call going through the rate limiter and the request
coordinator (dedup + retry of transient errors). The first usable batch is
normalized and returned; empty, exhausted or permanently failing providers
are logged and skipped. When every provider fails the request is answered
with a flagged synthetic series (or ProviderExhaustedError when synthesis is
disabled). Both outcomes are cached with the same TTL.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

from tokenfeed.cache import CacheStore
from tokenfeed.candles import Candle, normalize
from tokenfeed.errors import ProviderExhaustedError
from tokenfeed.providers.base import OHLCVProvider, OHLCVQuery, ProviderHealth, TokenRef
from tokenfeed.providers.coordinator import RequestCoordinator, RetryConfig
from tokenfeed.providers.errors import NoDataError, ProviderError
from tokenfeed.providers.ratelimit import RateLimiter, throttled
from tokenfeed.synthetic import SYNTHETIC_PROVIDER, synthesize
from tokenfeed.tokens import resolve_token

logger = logging.getLogger(__name__)

DEFAULT_LIMITS: Dict[str, int] = {
    "1m": 1440,
    "5m": 2016,
    "15m": 2016,
    "1h": 2000,
    "4h": 1800,
    "1d": 1000,
    "1w": 520,
}
FALLBACK_LIMIT = 2000

SYNTHETIC_REASON = "Using simulated OHLC data - real data temporarily unavailable"
CLOSE_ONLY_REASON = "Real price data - OHLC not available from provider"

# The whole-request call is only deduplicated; providers retry individually.
_NO_RETRY = RetryConfig(max_retries=0)


@dataclass(frozen=True)
class NormalizedResult:
    candles: Tuple[Candle, ...]
    is_synthetic: bool
    source_label: str
    has_ohlc: bool
    fallback_reason: Optional[str] = None
    errors: Tuple[str, ...] = field(default=(), compare=False)

    def candle_dicts(self) -> List[dict]:
        return [c.to_dict() for c in self.candles]


def default_limit(timeframe: str) -> int:
    return DEFAULT_LIMITS.get(timeframe, FALLBACK_LIMIT)


def request_fingerprint(token_id: str, timeframe: str, before: Optional[int], limit: int) -> str:
    return f"ohlcv:{token_id}:{timeframe}:{before or 'latest'}:{limit}"


class FallbackOrchestrator:
    """
    Usage:
        orch = FallbackOrchestrator(registry.build_ohlcv_chain(priority), cache, coordinator, limiter)
        result = orch.get_market_data("wif", "1h")
        result.is_synthetic, result.source_label, result.candles
    """

    def __init__(
        self,
        providers: List[OHLCVProvider],
        cache: CacheStore,
        coordinator: RequestCoordinator,
        limiter: RateLimiter,
        synthesize_on_exhaustion: bool = True,
        cache_ttl_s: Optional[float] = None,
        resolver: Callable[[str], TokenRef] = resolve_token,
    ) -> None:
        self._providers = list(providers)
        self._cache = cache
        self._coordinator = coordinator
        self._limiter = limiter
        self._synthesize = synthesize_on_exhaustion
        self._ttl_s = cache_ttl_s
        self._resolver = resolver
        self._health: Dict[str, ProviderHealth] = {
            p.provider_name: ProviderHealth(provider_name=p.provider_name) for p in self._providers
        }
        self._health_lock = threading.Lock()

    @property
    def provider_names(self) -> List[str]:
        return [p.provider_name for p in self._providers]

    def get_market_data(
        self,
        token_id: str,
        timeframe: str,
        before: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> NormalizedResult:
        """
        Candles for token/timeframe, newest page ending before `before` (unix s).

        Never raises provider errors; raises ProviderExhaustedError only when
        synthesis is disabled and every provider failed.
        """
        token = self._resolver(token_id)
        rows = int(limit) if limit else default_limit(timeframe)
        key = request_fingerprint(token.token_id, timeframe, before, rows)

        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Cache hit %s", key)
            return cached

        query = OHLCVQuery(token=token, timeframe=timeframe, limit=rows, before=before)
        return self._coordinator.execute(
            key, lambda: self._fetch(key, query), retry_config=_NO_RETRY
        )

    def _fetch(self, key: str, query: OHLCVQuery) -> NormalizedResult:
        errors: List[str] = []
        for provider in self._providers:
            name = provider.provider_name
            if not provider.supports(query):
                logger.debug("%s does not support %s/%s", name, query.token.token_id, query.timeframe)
                continue

            call = throttled(
                self._limiter,
                getattr(provider, "lane", name),
                lambda p=provider: p.fetch_ohlcv(query),
                getattr(provider, "credential_id", None),
            )
            try:
                batch = self._coordinator.execute(f"{name}:{key}", call)
            except NoDataError as exc:
                errors.append(str(exc))
                self._record(name, empty=True)
                logger.info("%s returned no data for %s, trying next provider", name, key)
                continue
            except Exception as exc:
                msg = str(exc) if isinstance(exc, ProviderError) else f"{name}: {type(exc).__name__}: {exc}"
                errors.append(msg)
                self._record(name, error=msg)
                logger.warning("Provider failed for %s: %s", key, msg)
                continue

            candles = normalize(batch.rows, batch.volumes, batch.multiplier)
            if not candles:
                errors.append(f"{name}: no usable rows")
                self._record(name, empty=True)
                continue

            self._record(name)
            result = NormalizedResult(
                candles=tuple(candles),
                is_synthetic=False,
                source_label=name,
                has_ohlc=batch.has_ohlc,
                fallback_reason=None if batch.has_ohlc else CLOSE_ONLY_REASON,
                errors=tuple(errors),
            )
            logger.info("%s: %d candles from %s", key, len(candles), name)
            self._cache.put(key, result, self._ttl_s)
            return result

        if not self._synthesize:
            raise ProviderExhaustedError(
                f"All OHLCV providers failed for {key}: {'; '.join(errors) or 'none applicable'}"
            )

        logger.warning("All OHLCV providers failed for %s, using synthetic data", key)
        end_ms = int(query.before) * 1000 - 1 if query.before else None
        batch = synthesize(query.token.token_id, query.timeframe, query.limit, end_ms=end_ms)
        result = NormalizedResult(
            candles=tuple(normalize(batch.rows, batch.volumes)),
            is_synthetic=True,
            source_label=SYNTHETIC_PROVIDER,
            has_ohlc=True,
            fallback_reason=SYNTHETIC_REASON,
            errors=tuple(errors),
        )
        self._cache.put(key, result, self._ttl_s)
        return result

    def _record(self, name: str, error: Optional[str] = None, empty: bool = False) -> None:
        with self._health_lock:
            health = self._health.setdefault(name, ProviderHealth(provider_name=name))
            if error is not None:
                health.record_failure(error)
            elif empty:
                health.record_empty()
            else:
                health.record_success()

    def health(self) -> Dict[str, dict]:
        """Per-provider health snapshot."""
        with self._health_lock:
            return {name: h.to_dict() for name, h in self._health.items()}
