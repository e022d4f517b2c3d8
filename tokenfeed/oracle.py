"""
Background USD reference-price oracle.

A daemon thread refreshes a small set of reference assets on a fixed
interval from the most liquid Dexscreener pair of each asset. A price is
usable only while younger than the TTL; stale or missing prices read as
None, and price_or_default() substitutes the configured fallback.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from tokenfeed.providers.coordinator import RequestCoordinator, RetryConfig
from tokenfeed.providers.dexscreener import DexscreenerProvider
from tokenfeed.providers.errors import ProviderError
from tokenfeed.providers.ratelimit import RateLimiter, throttled
from tokenfeed.timeutils import now_ms

logger = logging.getLogger(__name__)

SOL_MINT = "So11111111111111111111111111111111111111112"
USDC_MINT = "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v"
USDT_MINT = "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB"
MSOL_MINT = "mSoLzYCxHdYgdzU16g5QSh3i5K3z3KZK7ytfqcJm7So"

BASE_SYMBOL = "SOL"
STABLE_SYMBOLS = frozenset({"USDC", "USDT"})

DEFAULT_PRICES: Dict[str, float] = {"SOL": 240.0, "USDC": 1.0, "USDT": 1.0}

_REFRESH_RETRY = RetryConfig(max_retries=1, base_delay_s=1.0, max_delay_s=5.0)


@dataclass(frozen=True)
class ReferenceAsset:
    address: str
    symbol: str
    decimals: int = 9


REFERENCE_ASSETS = (
    ReferenceAsset(SOL_MINT, "SOL", 9),
    ReferenceAsset(USDC_MINT, "USDC", 6),
    ReferenceAsset(USDT_MINT, "USDT", 6),
    ReferenceAsset(MSOL_MINT, "mSOL", 9),
)


@dataclass(frozen=True)
class ReferencePrice:
    asset_id: str
    symbol: str
    usd_price: float
    last_updated: float  # clock() seconds, used for TTL checks
    updated_at_ms: int  # wall clock, for display

    def to_dict(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "symbol": self.symbol,
            "usd_price": self.usd_price,
            "last_updated": self.updated_at_ms,
        }


class PriceOracleCache:
    """
    Usage:
        oracle = PriceOracleCache(DexscreenerProvider(), limiter=limiter, coordinator=coordinator)
        oracle.start()
        oracle.price_of(SOL_MINT)            # None until refreshed, or once stale
        oracle.price_or_default(SOL_MINT)    # falls back to DEFAULT_PRICES
        oracle.stop()
    """

    def __init__(
        self,
        source: DexscreenerProvider,
        limiter: Optional[RateLimiter] = None,
        coordinator: Optional[RequestCoordinator] = None,
        refresh_interval_s: float = 15.0,
        ttl_s: float = 30.0,
        default_prices: Optional[Dict[str, float]] = None,
        assets=REFERENCE_ASSETS,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._source = source
        self._limiter = limiter or RateLimiter(min_interval_s=0.0)
        self._coordinator = coordinator or RequestCoordinator(retry_config=_REFRESH_RETRY)
        self._refresh_interval_s = refresh_interval_s
        self._ttl_s = ttl_s
        self._defaults = dict(DEFAULT_PRICES if default_prices is None else default_prices)
        self._assets: Dict[str, ReferenceAsset] = {a.address: a for a in assets}
        self._clock = clock or time.monotonic
        self._prices: Dict[str, ReferencePrice] = {}
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    # --- refresh ---

    def _fetch_price(self, address: str) -> Optional[float]:
        call = throttled(
            self._limiter,
            self._source.provider_name,
            lambda: self._source.get_best_pair(address),
        )
        pair = self._coordinator.execute(f"price:{address}", call, retry_config=_REFRESH_RETRY)
        price = pair.usd_price_of(address)
        return price if price is not None and price > 0 else None

    def _store(self, asset: ReferenceAsset, price: float) -> ReferencePrice:
        entry = ReferencePrice(
            asset_id=asset.address,
            symbol=asset.symbol,
            usd_price=price,
            last_updated=self._clock(),
            updated_at_ms=now_ms(),
        )
        with self._lock:
            self._prices[asset.address] = entry
        return entry

    def refresh_asset(self, address: str) -> Optional[float]:
        with self._lock:
            asset = self._assets.get(address)
        if asset is None:
            raise KeyError(f"untracked asset {address}")
        try:
            price = self._fetch_price(address)
        except ProviderError as exc:
            logger.warning("Price refresh failed for %s: %s", asset.symbol, exc)
            return None
        if price is None:
            logger.info("No usable price for %s", asset.symbol)
            return None
        self._store(asset, price)
        logger.debug("Updated %s: $%.4f", asset.symbol, price)
        return price

    def refresh(self) -> int:
        """Refresh every tracked asset once; returns how many prices were updated."""
        with self._lock:
            addresses = list(self._assets)
        return sum(1 for a in addresses if self.refresh_asset(a) is not None)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self.refresh()
            except Exception:
                logger.exception("Price oracle refresh loop error")
            self._stop.wait(self._refresh_interval_s)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="price-oracle", daemon=True)
        self._thread.start()
        logger.info("Price oracle started (interval %.0fs, ttl %.0fs)", self._refresh_interval_s, self._ttl_s)

    def stop(self, timeout_s: float = 5.0) -> None:
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout=timeout_s)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def teardown(self) -> None:
        self.stop()
        with self._lock:
            self._prices.clear()

    # --- tracking ---

    def add_asset(self, address: str, symbol: Optional[str] = None, decimals: int = 9) -> Optional[float]:
        """Track an extra asset and fetch its price right away."""
        with self._lock:
            if address not in self._assets:
                self._assets[address] = ReferenceAsset(address, symbol or address[:8], decimals)
        return self.refresh_asset(address)

    def symbol_of(self, asset_id: str) -> Optional[str]:
        with self._lock:
            asset = self._assets.get(asset_id)
        return asset.symbol if asset else None

    def address_of(self, symbol: str) -> Optional[str]:
        with self._lock:
            for asset in self._assets.values():
                if asset.symbol == symbol:
                    return asset.address
        return None

    # --- reads ---

    def price_of(self, asset_id: str) -> Optional[float]:
        """Fresh USD price, or None when missing or older than the TTL."""
        now = self._clock()
        with self._lock:
            entry = self._prices.get(asset_id)
        if entry is None:
            return None
        if now - entry.last_updated > self._ttl_s:
            logger.debug("Price for %s is stale (%.1fs old)", entry.symbol, now - entry.last_updated)
            return None
        return entry.usd_price

    def price_by_symbol(self, symbol: str) -> Optional[float]:
        address = self.address_of(symbol)
        return self.price_of(address) if address else None

    def default_price(self, asset_id: str) -> Optional[float]:
        symbol = self.symbol_of(asset_id)
        return self._defaults.get(symbol) if symbol else None

    def price_or_default(self, asset_id: str) -> Optional[float]:
        price = self.price_of(asset_id)
        return price if price is not None else self.default_price(asset_id)

    def usd_value(self, asset_id: str, amount: float) -> float:
        price = self.price_of(asset_id)
        return amount * price if price is not None else 0.0

    def swap_price(
        self,
        in_asset: str,
        in_amount: float,
        out_asset: str,
        out_amount: float,
    ) -> float:
        """
        USD price per output unit implied by a swap. Stable legs give a direct
        ratio, then the base asset (SOL) leg, then both legs priced independently.
        Returns 0.0 when nothing can be priced.
        """
        if in_amount <= 0 or out_amount <= 0:
            return 0.0
        in_symbol = self.symbol_of(in_asset)
        out_symbol = self.symbol_of(out_asset)

        if in_symbol in STABLE_SYMBOLS:
            return in_amount / out_amount
        if out_symbol in STABLE_SYMBOLS:
            return out_amount / in_amount

        base_price = self.price_by_symbol(BASE_SYMBOL)
        if base_price and in_symbol == BASE_SYMBOL:
            return in_amount * base_price / out_amount
        if base_price and out_symbol == BASE_SYMBOL:
            return out_amount * base_price / in_amount

        in_usd = self.usd_value(in_asset, in_amount)
        out_usd = self.usd_value(out_asset, out_amount)
        if in_usd > 0 and out_usd > 0:
            return in_usd / out_amount
        return 0.0

    def snapshot(self) -> Dict[str, ReferencePrice]:
        with self._lock:
            return dict(self._prices)
