"""
Daily volume / market-cap series and recent trades for one token.

The token's most liquid DexScreener pair gives the supply estimate
(FDV / price, else market cap / price, else a flagged default). Birdeye's
daily history supplies close and USD volume; market cap per day is close
times that supply. Series are cached for five minutes, trade lists briefly.
Provider failures yield an empty series or trade list, never invented rows.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tokenfeed.cache import CacheStore
from tokenfeed.providers.base import HistoricalPoint, PairQuote, TransactionRecord
from tokenfeed.providers.birdeye import BirdeyeClient, BirdeyeRole
from tokenfeed.providers.coordinator import RequestCoordinator
from tokenfeed.providers.dexscreener import DexscreenerProvider
from tokenfeed.providers.errors import NoDataError, ProviderError
from tokenfeed.providers.ratelimit import RateLimiter, throttled

logger = logging.getLogger(__name__)

TIMEFRAME_DAYS: Dict[str, int] = {"1W": 7, "2W": 14, "1M": 30}
DEFAULT_SUPPLY = 1_000_000_000.0
# extra daily rows requested so gaps at the edges still leave `days` points
_HISTORY_PADDING_DAYS = 5


@dataclass(frozen=True)
class SupplyEstimate:
    supply: float
    is_circulating: bool  # False when the default was used


@dataclass(frozen=True)
class VolumeMarketCapPoint:
    time_ms: int
    volume_usd: float
    market_cap_usd: float
    price_usd: float

    def to_dict(self) -> dict:
        return {
            "date": self.time_ms,
            "volumeUsd": self.volume_usd,
            "marketCapUsd": self.market_cap_usd,
            "priceUsd": self.price_usd,
        }


@dataclass(frozen=True)
class VolumeMarketCapSeries:
    address: str
    timeframe: str
    pool_address: Optional[str] = None
    supply: Optional[SupplyEstimate] = None
    points: List[VolumeMarketCapPoint] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "address": self.address,
            "timeframe": self.timeframe,
            "poolAddress": self.pool_address,
            "supply": self.supply.supply if self.supply else None,
            "isCirculating": self.supply.is_circulating if self.supply else False,
            "data": [p.to_dict() for p in self.points],
        }


def transaction_to_dict(tx: TransactionRecord) -> dict:
    return {
        "txId": tx.tx_id,
        "time": tx.time,
        "side": tx.side,
        "owner": tx.owner,
        "volumeUsd": tx.volume_usd,
        "priceUsd": tx.price_usd,
    }


def estimate_supply(pair: PairQuote, address: str, default_supply: float = DEFAULT_SUPPLY) -> SupplyEstimate:
    """FDV / price, then market cap / price; pair caps only describe the base token."""
    price = pair.usd_price_of(address)
    is_base = pair.base_address.lower() == address.lower()
    if is_base and price and price > 0:
        if pair.fdv:
            return SupplyEstimate(pair.fdv / price, True)
        if pair.market_cap:
            return SupplyEstimate(pair.market_cap / price, True)
    return SupplyEstimate(default_supply, False)


def volume_market_cap_points(
    history: List[HistoricalPoint], supply: SupplyEstimate, days: int
) -> List[VolumeMarketCapPoint]:
    recent = sorted(history, key=lambda p: p.time_ms)[-days:] if days > 0 else []
    return [
        VolumeMarketCapPoint(
            time_ms=p.time_ms,
            volume_usd=p.volume_usd,
            market_cap_usd=p.price_usd * supply.supply,
            price_usd=p.price_usd,
        )
        for p in recent
    ]


class MarketStatsService:
    def __init__(
        self,
        birdeye: BirdeyeClient,
        dexscreener: DexscreenerProvider,
        cache: CacheStore,
        coordinator: RequestCoordinator,
        limiter: RateLimiter,
        series_ttl_s: float = 300.0,
        transactions_ttl_s: float = 15.0,
        default_supply: float = DEFAULT_SUPPLY,
    ) -> None:
        self._birdeye = birdeye
        self._dex = dexscreener
        self._cache = cache
        self._coordinator = coordinator
        self._limiter = limiter
        self._series_ttl_s = series_ttl_s
        self._transactions_ttl_s = transactions_ttl_s
        self._default_supply = default_supply

    def _birdeye_call(self, role: BirdeyeRole, key: str, func):
        call = throttled(self._limiter, self._birdeye.lane(role), func, self._birdeye.credential(role))
        return self._coordinator.execute(key, call)

    def get_volume_market_cap(self, address: str, timeframe: str = "1W") -> VolumeMarketCapSeries:
        """Daily volume and market cap over 1W / 2W / 1M. Empty points when unavailable."""
        days = TIMEFRAME_DAYS.get(timeframe)
        if days is None:
            raise ValueError(f"unsupported timeframe {timeframe!r}; expected one of {sorted(TIMEFRAME_DAYS)}")
        key = f"volmcap:{address}:{timeframe}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        pair_call = throttled(self._limiter, self._dex.provider_name, lambda: self._dex.get_best_pair(address))
        try:
            pair = self._coordinator.execute(f"pair:{address}", pair_call)
        except ProviderError as exc:
            logger.info("No primary pool for %s: %s", address, exc)
            return VolumeMarketCapSeries(address, timeframe)

        supply = estimate_supply(pair, address, self._default_supply)
        if not supply.is_circulating:
            logger.info("Supply for %s unknown, assuming %.0f", address, supply.supply)
        try:
            history = self._birdeye_call(
                BirdeyeRole.HISTORICAL,
                f"historical:{address}:{days}",
                lambda: self._birdeye.get_historical(address, days + _HISTORY_PADDING_DAYS),
            )
        except NoDataError as exc:
            logger.info("No daily history for %s: %s", address, exc)
            history = []
        except ProviderError as exc:
            logger.warning("Daily history for %s failed: %s", address, exc)
            history = []

        series = VolumeMarketCapSeries(
            address,
            timeframe,
            pool_address=pair.pair_address,
            supply=supply,
            points=volume_market_cap_points(history, supply, days),
        )
        if series.points:
            self._cache.put(key, series, self._series_ttl_s)
        return series

    def get_recent_transactions(self, address: str, limit: int = 30) -> List[TransactionRecord]:
        """Newest swaps first. Empty when Birdeye cannot answer."""
        key = f"transactions:{address}:{limit}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        try:
            txs = self._birdeye_call(
                BirdeyeRole.TRANSACTIONS, key, lambda: self._birdeye.get_transactions(address, limit)
            )
        except ProviderError as exc:
            logger.warning("Recent transactions for %s failed: %s", address, exc)
            return []
        txs = list(txs)[:limit]
        self._cache.put(key, txs, self._transactions_ttl_s)
        return txs

    def clear(self, address: Optional[str] = None) -> int:
        """Drop cached series and trades for one token, or all of them."""
        if address is None:
            return self._cache.invalidate(prefix="volmcap:") + self._cache.invalidate(prefix="transactions:")
        return self._cache.invalidate(prefix=f"volmcap:{address}:") + self._cache.invalidate(
            prefix=f"transactions:{address}:"
        )
