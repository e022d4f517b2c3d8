"""
Tests for the OHLCV fallback orchestrator.

Verifies that:
- Providers are tried in priority order and the first usable batch wins
- Empty and failing providers are skipped without aborting the request
- Transient failures are retried before moving on
- Exhaustion yields flagged synthetic data (or raises when disabled)
- Results are cached per fingerprint for the TTL
"""
from __future__ import annotations

import pytest

from tests.fakes import (
    FakeClock,
    FakeOHLCVProvider,
    FakeOHLCVProviderAlwaysFail,
    FakeOHLCVProviderEmpty,
    FakeOHLCVProviderFailNThenSucceed,
    make_rows,
)
from tokenfeed.cache import CacheStore
from tokenfeed.candles import normalize
from tokenfeed.errors import ProviderExhaustedError
from tokenfeed.orchestrator import (
    CLOSE_ONLY_REASON,
    SYNTHETIC_REASON,
    FallbackOrchestrator,
    default_limit,
    request_fingerprint,
)
from tokenfeed.providers.coordinator import RequestCoordinator, RetryConfig
from tokenfeed.providers.errors import ErrorKind
from tokenfeed.providers.ratelimit import RateLimiter


def _orchestrator(providers, clock=None, **kwargs):
    clock = clock or FakeClock()
    cache = CacheStore(default_ttl_s=30.0, clock=clock)
    coordinator = RequestCoordinator(RetryConfig(max_retries=2, base_delay_s=1.0), sleep=clock.sleep)
    limiter = RateLimiter(min_interval_s=0.0, clock=clock, sleep=clock.sleep)
    return FallbackOrchestrator(providers, cache, coordinator, limiter, **kwargs), cache


def test_empty_then_success_skips_rest():
    a = FakeOHLCVProviderEmpty("a")
    b = FakeOHLCVProvider("b", rows=make_rows(5))
    c = FakeOHLCVProvider("c")
    orch, _ = _orchestrator([a, b, c])

    result = orch.get_market_data("wif", "1h")

    assert result.is_synthetic is False
    assert result.source_label == "b"
    assert list(result.candles) == normalize(make_rows(5))
    assert a.call_count == 1
    assert b.call_count == 1
    assert c.call_count == 0


def test_permanent_failure_advances_without_retry():
    a = FakeOHLCVProviderAlwaysFail("a", kind=ErrorKind.PERMANENT)
    b = FakeOHLCVProvider("b")
    orch, _ = _orchestrator([a, b])
    result = orch.get_market_data("wif", "1h")
    assert result.source_label == "b"
    assert a.call_count == 1
    assert "a: always fails" in result.errors


def test_transient_failure_retried_then_succeeds():
    clock = FakeClock()
    a = FakeOHLCVProviderFailNThenSucceed("a", fail_times=2)
    b = FakeOHLCVProvider("b")
    orch, _ = _orchestrator([a, b], clock=clock)
    result = orch.get_market_data("wif", "1h")
    assert result.source_label == "a"
    assert a.call_count == 3
    assert b.call_count == 0
    assert clock.sleeps == [1.0, 2.0]


def test_transient_exhaustion_moves_to_next_provider():
    a = FakeOHLCVProviderAlwaysFail("a", kind=ErrorKind.TRANSIENT)
    b = FakeOHLCVProvider("b")
    orch, _ = _orchestrator([a, b])
    assert orch.get_market_data("wif", "1h").source_label == "b"
    assert a.call_count == 3


def test_unsupported_provider_not_called():
    a = FakeOHLCVProvider("a", supported=False)
    b = FakeOHLCVProvider("b")
    orch, _ = _orchestrator([a, b])
    assert orch.get_market_data("wif", "1h").source_label == "b"
    assert a.call_count == 0


def test_unusable_rows_count_as_empty():
    a = FakeOHLCVProvider("a", rows=[(1000, None, None, None, None)])
    b = FakeOHLCVProvider("b")
    orch, _ = _orchestrator([a, b])
    assert orch.get_market_data("wif", "1h").source_label == "b"
    assert orch.health()["a"]["empty_count"] == 1


def test_close_only_batch_flagged():
    a = FakeOHLCVProvider("a", rows=[(1000, 5, 5, 5, 5)], has_ohlc=False)
    orch, _ = _orchestrator([a])
    result = orch.get_market_data("wif", "1h")
    assert result.has_ohlc is False
    assert result.fallback_reason == CLOSE_ONLY_REASON


def test_multiplier_folds_rows():
    a = FakeOHLCVProvider("a", rows=make_rows(14), multiplier=7)
    orch, _ = _orchestrator([a])
    assert len(orch.get_market_data("wif", "1w").candles) == 2


def test_exhaustion_returns_flagged_synthetic():
    a = FakeOHLCVProviderEmpty("a")
    b = FakeOHLCVProviderAlwaysFail("b")
    orch, _ = _orchestrator([a, b])
    result = orch.get_market_data("wif", "1h", limit=48)
    assert result.is_synthetic is True
    assert result.source_label == "synthetic"
    assert result.fallback_reason == SYNTHETIC_REASON
    assert len(result.candles) == 48
    assert len(result.errors) == 2


def test_synthetic_respects_before_cursor():
    orch, _ = _orchestrator([FakeOHLCVProviderEmpty("a")])
    before = 1_767_225_600
    result = orch.get_market_data("wif", "1h", before=before, limit=10)
    assert result.is_synthetic
    assert result.candles[-1].time < before * 1000


def test_exhaustion_raises_when_synthesis_disabled():
    orch, _ = _orchestrator([FakeOHLCVProviderEmpty("a")], synthesize_on_exhaustion=False)
    with pytest.raises(ProviderExhaustedError):
        orch.get_market_data("wif", "1h")


def test_cache_ttl():
    clock = FakeClock()
    a = FakeOHLCVProvider("a")
    orch, _ = _orchestrator([a], clock=clock, cache_ttl_s=30.0)

    first = orch.get_market_data("wif", "1h")
    clock.advance(29.0)
    assert orch.get_market_data("wif", "1h") is first
    assert a.call_count == 1

    clock.advance(2.0)
    orch.get_market_data("wif", "1h")
    assert a.call_count == 2


def test_synthetic_result_is_cached_too():
    a = FakeOHLCVProviderEmpty("a")
    orch, _ = _orchestrator([a])
    first = orch.get_market_data("wif", "1h")
    assert orch.get_market_data("wif", "1h") is first
    assert a.call_count == 1


def test_fingerprint_covers_every_parameter():
    a = FakeOHLCVProvider("a")
    orch, cache = _orchestrator([a])
    orch.get_market_data("wif", "1h")
    orch.get_market_data("wif", "4h")
    orch.get_market_data("wif", "1h", before=1_700_000_000)
    orch.get_market_data("wif", "1h", limit=10)
    assert a.call_count == 4
    assert cache.contains(request_fingerprint("wif", "1h", None, default_limit("1h")))
    assert cache.contains(request_fingerprint("wif", "1h", 1_700_000_000, default_limit("1h")))


def test_query_passes_cursor_and_limit():
    a = FakeOHLCVProvider("a")
    orch, _ = _orchestrator([a])
    orch.get_market_data("solana", "15m", before=1_700_000_000, limit=100)
    q = a.queries[0]
    assert (q.timeframe, q.before, q.limit) == ("15m", 1_700_000_000, 100)
    assert q.token.network == "solana"


def test_health_tracks_outcomes():
    a = FakeOHLCVProviderAlwaysFail("a")
    b = FakeOHLCVProvider("b")
    orch, _ = _orchestrator([a, b])
    orch.get_market_data("wif", "1h")
    health = orch.health()
    assert health["a"]["fail_count"] == 1
    assert health["b"]["status"] == "OK"
    assert health["b"]["last_ok_at"] is not None
