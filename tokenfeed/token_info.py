"""
Token security and holder lookups.

Both walk an ordered provider chain through the rate limiter and request
coordinator and return the first usable answer. Failures are logged and the
next provider is tried; when every provider fails the caller gets None
(security) or an empty list (holders), never fabricated data.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from tokenfeed.cache import CacheStore
from tokenfeed.providers.base import HolderProvider, HolderRecord, SecurityProvider, TokenSecurity
from tokenfeed.providers.coordinator import RequestCoordinator
from tokenfeed.providers.errors import NoDataError, ProviderError
from tokenfeed.providers.ratelimit import RateLimiter, throttled

logger = logging.getLogger(__name__)

PERFECT_SCORE = 99


@dataclass(frozen=True)
class SafetyScore:
    score: int
    verified: bool
    renounced: bool
    honeypot: bool
    buy_tax_pct: float
    sell_tax_pct: float
    bullets: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "verified": self.verified,
            "renounced": self.renounced,
            "honeypot": self.honeypot,
            "buyTaxPct": self.buy_tax_pct,
            "sellTaxPct": self.sell_tax_pct,
            "bullets": list(self.bullets),
        }


def _tax_deduction(tax: float) -> int:
    if tax > 10:
        return 15
    if tax > 5:
        return 8
    if tax > 0:
        return 3
    return 0


def calculate_safety_score(security: Optional[TokenSecurity]) -> SafetyScore:
    """
    Score a scan result from 0 to 99. Missing data scores as the worst case
    (honeypot, 100% taxes, unverified).
    """
    if security is None:
        return SafetyScore(
            score=0,
            verified=False,
            renounced=False,
            honeypot=True,
            buy_tax_pct=100.0,
            sell_tax_pct=100.0,
            bullets=[0, 0, 0, 0],
        )

    score = PERFECT_SCORE
    if security.honeypot:
        score -= 30
    score -= _tax_deduction(security.buy_tax)
    score -= _tax_deduction(security.sell_tax)
    if security.blacklist:
        score -= 20
    if not security.no_mint:
        score -= 10
    if not security.can_burn:
        score -= 5
    if not security.has_renounced:
        score -= 8
    if security.is_proxy:
        score -= 10

    total_tax = security.buy_tax + security.sell_tax
    bullets = [
        0 if security.honeypot else PERFECT_SCORE,
        PERFECT_SCORE if total_tax == 0 else max(0, int(PERFECT_SCORE - total_tax * 2)),
        0 if security.blacklist else PERFECT_SCORE,
        PERFECT_SCORE if security.no_mint and security.has_renounced else 50,
    ]
    return SafetyScore(
        score=max(0, score),
        verified=True,
        renounced=security.has_renounced,
        honeypot=security.honeypot,
        buy_tax_pct=security.buy_tax,
        sell_tax_pct=security.sell_tax,
        bullets=bullets,
    )


class SecurityService:
    """Solana tokens go through the solana chain (RugCheck, GoPlus); anything else through the EVM chain."""

    def __init__(
        self,
        solana_chain: List[SecurityProvider],
        evm_chain: List[SecurityProvider],
        coordinator: RequestCoordinator,
        limiter: RateLimiter,
    ) -> None:
        self._solana = list(solana_chain)
        self._evm = list(evm_chain)
        self._coordinator = coordinator
        self._limiter = limiter

    def get_security(self, address: str, network: str = "solana") -> Optional[TokenSecurity]:
        chain = self._solana if network == "solana" else self._evm
        for provider in chain:
            name = provider.provider_name
            call = throttled(self._limiter, name, lambda p=provider: p.get_security(address, network))
            try:
                return self._coordinator.execute(f"security:{name}:{network}:{address}", call)
            except ProviderError as exc:
                logger.warning("Security scan via %s failed for %s: %s", name, address, exc)
        logger.error("All security providers failed for %s on %s", address, network)
        return None


class HolderService:
    def __init__(
        self,
        providers: List[HolderProvider],
        cache: CacheStore,
        coordinator: RequestCoordinator,
        limiter: RateLimiter,
        ttl_s: float = 300.0,
    ) -> None:
        self._providers = list(providers)
        self._cache = cache
        self._coordinator = coordinator
        self._limiter = limiter
        self._ttl_s = ttl_s

    def get_holders(self, address: str, limit: int = 20) -> List[HolderRecord]:
        """Top holders, largest first. Empty when no provider can answer."""
        key = f"holders:{address}:{limit}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached

        for provider in self._providers:
            name = provider.provider_name
            call = throttled(
                self._limiter,
                getattr(provider, "lane", name),
                lambda p=provider: p.get_holders(address, limit),
                getattr(provider, "credential_id", None),
            )
            try:
                holders = self._coordinator.execute(f"{name}:{key}", call)
            except NoDataError as exc:
                logger.info("%s has no holders for %s: %s", name, address, exc)
                continue
            except ProviderError as exc:
                logger.warning("Holder lookup via %s failed for %s: %s", name, address, exc)
                continue
            self._cache.put(key, list(holders), self._ttl_s)
            return list(holders)

        logger.error("All holder providers failed for %s", address)
        return []
