"""
Provider registry: central catalog of available adapters.

Adapters register themselves here by name. A config priority list then
decides which of them are tried, and in what order, for each request type
(ohlcv, holders, security).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, Union

from .base import HolderProvider, OHLCVProvider, SecurityProvider

logger = logging.getLogger(__name__)

OHLCV = "ohlcv"
HOLDERS = "holders"
SECURITY = "security"

_KINDS = (OHLCV, HOLDERS, SECURITY)


class ProviderRegistry:
    """
    Registry mapping provider names to classes/instances, per request type.

    Usage:
        registry = ProviderRegistry()
        registry.register_ohlcv("geckoterminal", GeckoTerminalOHLCVProvider)
        registry.register_ohlcv("coingecko", CoinGeckoOHLCVProvider())

        chain = registry.build_ohlcv_chain(["geckoterminal", "coingecko"])
    """

    def __init__(self) -> None:
        self._factories: Dict[str, Dict[str, Any]] = {k: {} for k in _KINDS}
        self._instances: Dict[str, Dict[str, Any]] = {k: {} for k in _KINDS}

    def _register(self, kind: str, name: str, factory: Any) -> None:
        self._factories[kind][name] = factory
        self._instances[kind].pop(name, None)
        logger.debug("Registered %s provider: %s", kind, name)

    def _get(self, kind: str, name: str) -> Any:
        instances = self._instances[kind]
        if name not in instances:
            factory = self._factories[kind].get(name)
            if factory is None:
                raise KeyError(
                    f"Unknown {kind} provider '{name}'. "
                    f"Available: {list(self._factories[kind])}"
                )
            instances[name] = factory() if isinstance(factory, type) else factory
        return instances[name]

    def _build_chain(self, kind: str, priority: Optional[List[str]]) -> List[Any]:
        names = priority or list(self._factories[kind])
        unknown = [n for n in names if n not in self._factories[kind]]
        if unknown:
            logger.warning("Ignoring unknown %s providers in priority list: %s", kind, unknown)
        return [self._get(kind, n) for n in names if n in self._factories[kind]]

    def register_ohlcv(
        self, name: str, factory: Union[Type[OHLCVProvider], OHLCVProvider]
    ) -> None:
        """Register a candle provider by name."""
        self._register(OHLCV, name, factory)

    def register_holders(
        self, name: str, factory: Union[Type[HolderProvider], HolderProvider]
    ) -> None:
        self._register(HOLDERS, name, factory)

    def register_security(
        self, name: str, factory: Union[Type[SecurityProvider], SecurityProvider]
    ) -> None:
        self._register(SECURITY, name, factory)

    def get_ohlcv(self, name: str) -> OHLCVProvider:
        """Get or instantiate a candle provider by name."""
        return self._get(OHLCV, name)

    def get_holders(self, name: str) -> HolderProvider:
        return self._get(HOLDERS, name)

    def get_security(self, name: str) -> SecurityProvider:
        return self._get(SECURITY, name)

    def names(self, kind: str) -> List[str]:
        return list(self._factories[kind])

    def build_ohlcv_chain(self, priority: Optional[List[str]] = None) -> List[OHLCVProvider]:
        """Ordered candle providers from a priority list (unknown names skipped)."""
        return self._build_chain(OHLCV, priority)

    def build_holders_chain(self, priority: Optional[List[str]] = None) -> List[HolderProvider]:
        return self._build_chain(HOLDERS, priority)

    def build_security_chain(self, priority: Optional[List[str]] = None) -> List[SecurityProvider]:
        return self._build_chain(SECURITY, priority)
