"""
Tests for the trending list: enrichment, caching, stale-address reuse and the fixed fallback list.
"""
from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from tests.fakes import FakeBirdeye, FakeClock, FakeDexscreener
from tokenfeed.cache import CacheStore
from tokenfeed.providers.coordinator import RequestCoordinator, RetryConfig
from tokenfeed.providers.dexscreener import DexscreenerProvider
from tokenfeed.providers.ratelimit import RateLimiter
from tokenfeed.trending import ADDRESSES_KEY, FALLBACK_TOKENS, TrendingService, fallback_tokens

A = "AAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAAA1"
B = "BBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBBB2"
C = "CCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCCC3"


def _service(birdeye, dex, clock=None):
    clock = clock or FakeClock()
    cache = CacheStore(default_ttl_s=30.0, clock=clock)
    service = TrendingService(
        birdeye,
        dex,
        cache,
        RequestCoordinator(RetryConfig(max_retries=0), sleep=clock.sleep),
        RateLimiter(min_interval_s=0.0, clock=clock, sleep=clock.sleep),
        addresses_ttl_s=3600.0,
        tokens_ttl_s=3.0,
    )
    return service, cache, clock


def test_enriched_in_rank_order_skipping_unpriced():
    birdeye = FakeBirdeye([A, B, C])
    dex = FakeDexscreener({A: 1.5, C: 0.02})
    service, _, _ = _service(birdeye, dex)

    tokens = service.get_trending()

    assert [t.address for t in tokens] == [A, C]
    assert [t.rank for t in tokens] == [1, 3]
    assert tokens[0].price == 1.5
    assert tokens[0].symbol == "TKN"
    assert tokens[0].is_fallback is False
    assert tokens[0].to_dict()["priceChange24h"] == 4.2


def test_token_list_cached_briefly():
    birdeye = FakeBirdeye([A])
    dex = FakeDexscreener({A: 1.0})
    service, _, clock = _service(birdeye, dex)

    first = service.get_trending()
    assert service.get_trending() is first
    assert dex.call_count == 1

    clock.advance(4.0)
    service.get_trending()
    assert dex.call_count == 2
    assert birdeye.call_count == 1


def test_stale_addresses_reused_when_refresh_fails():
    birdeye = FakeBirdeye([A, B])
    dex = FakeDexscreener({A: 1.0, B: 2.0})
    service, cache, _ = _service(birdeye, dex)
    service.get_trending()

    cache.invalidate()
    birdeye.fail = True
    tokens = service.get_trending()

    assert [t.address for t in tokens] == [A, B]
    assert birdeye.call_count == 2
    assert not cache.contains(ADDRESSES_KEY)


def test_birdeye_failure_without_history_returns_fallback():
    service, _, _ = _service(FakeBirdeye(fail=True), FakeDexscreener({A: 1.0}))
    tokens = service.get_trending()
    assert [t.symbol for t in tokens] == [s for _, s, _ in FALLBACK_TOKENS]
    assert all(t.is_fallback and t.price == 0.0 for t in tokens)


def test_no_details_returns_fallback():
    service, _, _ = _service(FakeBirdeye([A, B]), FakeDexscreener(fail=True))
    tokens = service.get_trending()
    assert tokens == fallback_tokens()


def test_fallback_dict_shape():
    d = fallback_tokens()[0].to_dict()
    assert d["symbol"] == "SOL"
    assert d["rank"] == 1
    assert d["isFallback"] is True
    assert d["network"] == "solana"


@patch("tokenfeed.providers.http.requests.get")
def test_quote_side_token_priced_from_native_ratio(mock_get):
    resp = MagicMock()
    resp.status_code = 200
    resp.headers = {}
    resp.json.return_value = {
        "pairs": [
            {
                "chainId": "solana",
                "pairAddress": "Pool1",
                "baseToken": {"address": B, "symbol": "BIG", "name": "Big Token"},
                "quoteToken": {"address": A, "symbol": "QT", "name": "Quote Token"},
                "priceNative": "4.0",
                "priceUsd": "2.0",
                "priceChange": {"h24": 12.0},
                "marketCap": 9_000_000,
                "liquidity": {"usd": 100_000},
            }
        ]
    }
    mock_get.return_value = resp
    service, _, _ = _service(FakeBirdeye([A]), DexscreenerProvider())

    (token,) = service.get_trending()

    assert token.symbol == "QT"
    assert token.price == pytest.approx(0.5)
    assert token.price_change_24h == 0.0
    assert token.market_cap == 0.0
