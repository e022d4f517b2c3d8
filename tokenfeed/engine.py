"""
Engine: constructs and owns every shared store and service.

One CacheStore, RateLimiter and RequestCoordinator are created per engine
and passed by reference to the orchestrator, oracle and token services, so
independent engines (and tests) never share state. teardown() stops the
oracle thread and clears every store.
"""
from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from tokenfeed.cache import CacheStore
from tokenfeed.config import get_config
from tokenfeed.market_stats import MarketStatsService
from tokenfeed.oracle import PriceOracleCache
from tokenfeed.orchestrator import FallbackOrchestrator
from tokenfeed.providers.birdeye import BirdeyeClient
from tokenfeed.providers.coordinator import RequestCoordinator
from tokenfeed.providers.defaults import (
    create_birdeye_client,
    create_default_registry,
    load_provider_config,
    load_retry_config,
)
from tokenfeed.providers.dexscreener import DexscreenerProvider
from tokenfeed.providers.http import set_user_agent
from tokenfeed.providers.ratelimit import RateLimiter
from tokenfeed.providers.registry import ProviderRegistry
from tokenfeed.stream.decoder import SwapEventDecoder, TradeEvent
from tokenfeed.stream.transport import StreamStatus, TransactionStream
from tokenfeed.token_info import HolderService, SecurityService
from tokenfeed.trending import TrendingService

logger = logging.getLogger(__name__)


class Engine:
    """
    Usage:
        engine = Engine.from_config()
        result = engine.orchestrator.get_market_data("wif", "1h")
        engine.teardown()
    """

    def __init__(
        self,
        cfg: dict,
        registry: Optional[ProviderRegistry] = None,
        birdeye: Optional[BirdeyeClient] = None,
        dexscreener: Optional[DexscreenerProvider] = None,
        cache: Optional[CacheStore] = None,
        limiter: Optional[RateLimiter] = None,
        coordinator: Optional[RequestCoordinator] = None,
    ) -> None:
        self.cfg = cfg
        timeout_s = float(cfg["http"]["timeout_s"])
        rate = cfg["rate_limit"]
        set_user_agent(cfg["http"].get("user_agent"))

        self.cache = cache or CacheStore(default_ttl_s=float(cfg["cache"]["ttl_s"]))
        self.limiter = limiter or RateLimiter(
            min_interval_s=float(rate["min_interval_s"]),
            soft_limit_per_minute=int(rate["soft_limit_per_minute"]),
            lane_intervals=rate.get("lane_intervals"),
        )
        self.coordinator = coordinator or RequestCoordinator(load_retry_config(cfg))
        self.birdeye = birdeye or create_birdeye_client(cfg)
        self.dexscreener = dexscreener or DexscreenerProvider(timeout_s=timeout_s)
        self.registry = registry or create_default_registry(cfg, birdeye=self.birdeye)

        priorities = load_provider_config(cfg)
        self.orchestrator = FallbackOrchestrator(
            self.registry.build_ohlcv_chain(priorities["ohlcv_priority"]),
            self.cache,
            self.coordinator,
            self.limiter,
            synthesize_on_exhaustion=bool(cfg["ohlcv"]["synthesize_on_exhaustion"]),
            cache_ttl_s=float(cfg["cache"]["ttl_s"]),
        )

        oracle_cfg = cfg["oracle"]
        self.oracle = PriceOracleCache(
            self.dexscreener,
            limiter=self.limiter,
            coordinator=self.coordinator,
            refresh_interval_s=float(oracle_cfg["refresh_interval_s"]),
            ttl_s=float(oracle_cfg["ttl_s"]),
            default_prices=oracle_cfg.get("default_prices"),
        )

        trending_cfg = cfg["trending"]
        self.trending = TrendingService(
            self.birdeye,
            self.dexscreener,
            self.cache,
            self.coordinator,
            self.limiter,
            addresses_ttl_s=float(trending_cfg["addresses_ttl_s"]),
            tokens_ttl_s=float(trending_cfg["tokens_ttl_s"]),
            limit=int(trending_cfg["limit"]),
        )
        self.security = SecurityService(
            self.registry.build_security_chain(priorities["solana_security_priority"]),
            self.registry.build_security_chain(priorities["evm_security_priority"]),
            self.coordinator,
            self.limiter,
        )
        self.holders = HolderService(
            self.registry.build_holders_chain(priorities["holders_priority"]),
            self.cache,
            self.coordinator,
            self.limiter,
            ttl_s=float(cfg["holders"]["ttl_s"]),
        )
        stats_cfg = cfg["market_stats"]
        self.market_stats = MarketStatsService(
            self.birdeye,
            self.dexscreener,
            self.cache,
            self.coordinator,
            self.limiter,
            series_ttl_s=float(stats_cfg["series_ttl_s"]),
            transactions_ttl_s=float(stats_cfg["transactions_ttl_s"]),
            default_supply=float(stats_cfg["default_supply"]),
        )
        logger.info("Engine ready (OHLCV chain: %s)", ", ".join(self.orchestrator.provider_names))

    @classmethod
    def from_config(cls, cfg: Optional[dict] = None) -> "Engine":
        return cls(cfg or get_config())

    def stream_for(
        self,
        mint: str,
        on_trade: Callable[[TradeEvent], None],
        on_status: Optional[Callable[[StreamStatus], None]] = None,
    ) -> TransactionStream:
        """Transaction stream for one mint, priced through this engine's oracle."""
        stream_cfg = self.cfg["stream"]
        decoder = SwapEventDecoder(
            mint,
            oracle=self.oracle,
            dust_threshold=float(stream_cfg["dust_threshold"]),
        )
        return TransactionStream(
            stream_cfg["url"],
            decoder,
            on_trade,
            on_status,
            api_key=self.cfg["credentials"].get("helius"),
            ping_interval_s=float(stream_cfg["ping_interval_s"]),
            reconnect_base_delay_s=float(stream_cfg["reconnect_base_delay_s"]),
            max_reconnect_attempts=int(stream_cfg["max_reconnect_attempts"]),
        )

    def health(self) -> Dict[str, dict]:
        return {
            "ohlcv": self.orchestrator.health(),
            "oracle": {k: v.to_dict() for k, v in self.oracle.snapshot().items()},
            "cache": {"entries": len(self.cache)},
        }

    def teardown(self) -> None:
        self.oracle.teardown()
        self.coordinator.teardown()
        self.limiter.teardown()
        self.cache.teardown()
        logger.info("Engine torn down")
