"""
Default provider registry configuration.

Registers built-in adapters and reads priority lists from config.yaml.
To add a new provider, register it here and add it to the priority list.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from tokenfeed.config import get_config

from .birdeye import BirdeyeClient, BirdeyeHolderProvider, BirdeyeRole
from .coordinator import RetryConfig
from .goplus import GoPlusSecurityProvider
from .helius import HeliusHolderProvider
from .ohlcv.birdeye_ohlcv import BirdeyeOHLCVProvider
from .ohlcv.coingecko import CoinGeckoOHLCVProvider
from .ohlcv.cryptocompare import CryptoCompareOHLCVProvider
from .ohlcv.geckoterminal import GeckoTerminalOHLCVProvider
from .registry import ProviderRegistry
from .rugcheck import RugCheckSecurityProvider

logger = logging.getLogger(__name__)

# Default provider priority (config.yaml can override these)
DEFAULT_OHLCV_PRIORITY = ["geckoterminal", "cryptocompare", "coingecko"]
DEFAULT_HOLDERS_PRIORITY = ["birdeye", "helius"]
DEFAULT_SOLANA_SECURITY_PRIORITY = ["rugcheck", "goplus"]
DEFAULT_EVM_SECURITY_PRIORITY = ["goplus"]


def create_birdeye_client(cfg: Optional[dict] = None) -> BirdeyeClient:
    cfg = cfg or get_config()
    creds = cfg.get("credentials", {})
    keys = {role: creds.get(f"birdeye_{role.value}", "") for role in BirdeyeRole}
    return BirdeyeClient(keys, timeout_s=float(cfg["http"]["timeout_s"]))


def create_default_registry(
    cfg: Optional[dict] = None,
    birdeye: Optional[BirdeyeClient] = None,
) -> ProviderRegistry:
    """Create a registry with all built-in adapters, configured from cfg."""
    cfg = cfg or get_config()
    timeout_s = float(cfg["http"]["timeout_s"])
    creds = cfg.get("credentials", {})
    birdeye = birdeye or create_birdeye_client(cfg)

    registry = ProviderRegistry()
    registry.register_ohlcv("geckoterminal", GeckoTerminalOHLCVProvider(timeout_s=timeout_s))
    registry.register_ohlcv(
        "cryptocompare",
        CryptoCompareOHLCVProvider(api_key=creds.get("cryptocompare"), timeout_s=timeout_s),
    )
    registry.register_ohlcv("coingecko", CoinGeckoOHLCVProvider(timeout_s=timeout_s))
    registry.register_ohlcv(
        "birdeye_ohlcv",
        BirdeyeOHLCVProvider(
            api_key=birdeye.credential(BirdeyeRole.HISTORICAL), timeout_s=timeout_s
        ),
    )
    registry.register_holders("birdeye", BirdeyeHolderProvider(birdeye))
    registry.register_holders("helius", HeliusHolderProvider(api_key=creds.get("helius")))
    registry.register_security("rugcheck", RugCheckSecurityProvider(timeout_s=timeout_s))
    registry.register_security("goplus", GoPlusSecurityProvider(timeout_s=timeout_s))
    return registry


def load_provider_config(cfg: Optional[dict] = None) -> Dict[str, List[str]]:
    """
    Priority lists from config.

    Expected YAML structure:
        providers:
          ohlcv_priority: ["geckoterminal", "cryptocompare", "coingecko"]
          holders_priority: ["birdeye", "helius"]
          solana_security_priority: ["rugcheck", "goplus"]
          evm_security_priority: ["goplus"]
    """
    providers = (cfg or get_config()).get("providers", {})
    return {
        "ohlcv_priority": list(providers.get("ohlcv_priority") or DEFAULT_OHLCV_PRIORITY),
        "holders_priority": list(providers.get("holders_priority") or DEFAULT_HOLDERS_PRIORITY),
        "solana_security_priority": list(
            providers.get("solana_security_priority") or DEFAULT_SOLANA_SECURITY_PRIORITY
        ),
        "evm_security_priority": list(
            providers.get("evm_security_priority") or DEFAULT_EVM_SECURITY_PRIORITY
        ),
    }


def load_retry_config(cfg: Optional[dict] = None) -> RetryConfig:
    retry = (cfg or get_config()).get("retry", {})
    return RetryConfig(
        max_retries=int(retry.get("max_retries", 3)),
        base_delay_s=float(retry.get("base_delay_s", 2.0)),
        max_delay_s=float(retry.get("max_delay_s", 30.0)),
        backoff_factor=float(retry.get("backoff_factor", 2.0)),
    )
