"""
Trending token list.

Birdeye supplies the ranked addresses (cached for an hour; the last good list
is reused when a refresh fails), DexScreener supplies per-token details from
each token's most liquid pair. The assembled list is cached for a few seconds.
When nothing can be fetched the caller gets a fixed list of well-known tokens
flagged is_fallback with zero prices.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from tokenfeed.cache import CacheStore
from tokenfeed.providers.birdeye import BirdeyeClient, BirdeyeRole
from tokenfeed.providers.coordinator import RequestCoordinator
from tokenfeed.providers.dexscreener import DexscreenerProvider, token_side
from tokenfeed.providers.errors import ProviderError
from tokenfeed.providers.ratelimit import RateLimiter, throttled

logger = logging.getLogger(__name__)

ADDRESSES_KEY = "trending:addresses"
TOKENS_KEY = "trending:tokens"

# (address, symbol, name)
FALLBACK_TOKENS: Tuple[Tuple[str, str, str], ...] = (
    ("So11111111111111111111111111111111111111112", "SOL", "Solana"),
    ("EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v", "USDC", "USD Coin"),
    ("Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB", "USDT", "Tether"),
    ("DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263", "BONK", "Bonk"),
    ("EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm", "WIF", "dogwifhat"),
)


@dataclass(frozen=True)
class TrendingToken:
    address: str
    name: str
    symbol: str
    price: float
    price_change_24h: float
    volume_24h: float
    market_cap: float
    rank: int
    network: str = "solana"
    image: Optional[str] = None
    is_fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "name": self.name,
            "symbol": self.symbol,
            "image": self.image,
            "price": self.price,
            "priceChange24h": self.price_change_24h,
            "volume24h": self.volume_24h,
            "marketCap": self.market_cap,
            "network": self.network,
            "rank": self.rank,
            "isFallback": self.is_fallback,
        }


def fallback_tokens() -> List[TrendingToken]:
    return [
        TrendingToken(
            address=address,
            name=name,
            symbol=symbol,
            price=0.0,
            price_change_24h=0.0,
            volume_24h=0.0,
            market_cap=0.0,
            rank=i,
            is_fallback=True,
        )
        for i, (address, symbol, name) in enumerate(FALLBACK_TOKENS, start=1)
    ]


class TrendingService:
    def __init__(
        self,
        birdeye: BirdeyeClient,
        dexscreener: DexscreenerProvider,
        cache: CacheStore,
        coordinator: RequestCoordinator,
        limiter: RateLimiter,
        addresses_ttl_s: float = 3600.0,
        tokens_ttl_s: float = 3.0,
        limit: int = 20,
    ) -> None:
        self._birdeye = birdeye
        self._dex = dexscreener
        self._cache = cache
        self._coordinator = coordinator
        self._limiter = limiter
        self._addresses_ttl_s = addresses_ttl_s
        self._tokens_ttl_s = tokens_ttl_s
        self._limit = limit
        self._last_addresses: List[str] = []

    def _addresses(self) -> List[str]:
        cached = self._cache.get(ADDRESSES_KEY)
        if cached is not None:
            return cached
        role = BirdeyeRole.TRENDING
        call = throttled(
            self._limiter,
            self._birdeye.lane(role),
            lambda: self._birdeye.get_trending_addresses(self._limit),
            self._birdeye.credential(role),
        )
        try:
            addresses = self._coordinator.execute(ADDRESSES_KEY, call)
        except ProviderError as exc:
            if self._last_addresses:
                logger.warning("Trending refresh failed, reusing %d stale addresses: %s", len(self._last_addresses), exc)
                return list(self._last_addresses)
            raise
        self._last_addresses = list(addresses)
        self._cache.put(ADDRESSES_KEY, list(addresses), self._addresses_ttl_s)
        return list(addresses)

    def _details(self, address: str, rank: int) -> Optional[TrendingToken]:
        call = throttled(self._limiter, self._dex.provider_name, lambda: self._dex.get_best_pair(address))
        try:
            pair = self._coordinator.execute(f"pair:{address}", call)
        except ProviderError as exc:
            logger.info("No DexScreener details for %s: %s", address, exc)
            return None
        side = token_side(pair, address)
        # change and market cap describe the base token only
        is_base = side["address"] == pair.base_address
        return TrendingToken(
            address=address,
            name=side["name"],
            symbol=side["symbol"],
            price=pair.usd_price_of(address) or 0.0,
            price_change_24h=pair.price_change_h24 if is_base else 0.0,
            volume_24h=pair.volume_h24,
            market_cap=(pair.market_cap or 0.0) if is_base else 0.0,
            rank=rank,
            image=pair.image_url,
        )

    def get_trending(self) -> List[TrendingToken]:
        """Ranked trending tokens; never raises for provider failures."""
        cached = self._cache.get(TOKENS_KEY)
        if cached is not None:
            return cached
        try:
            addresses = self._addresses()
        except ProviderError as exc:
            logger.error("Failed to fetch trending tokens: %s", exc)
            return fallback_tokens()

        tokens = [
            t for t in (self._details(a, rank) for rank, a in enumerate(addresses, start=1)) if t is not None
        ]
        if not tokens:
            logger.warning("No trending token details available, using fallback list")
            return fallback_tokens()
        self._cache.put(TOKENS_KEY, tokens, self._tokens_ttl_s)
        return tokens
