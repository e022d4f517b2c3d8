"""
Dexscreener pair listing provider.

Uses the public Dexscreener API (no authentication required):
  GET https://api.dexscreener.com/latest/dex/tokens/{address}
  GET https://api.dexscreener.com/latest/dex/pairs/{chain}/{address}

Used by the price oracle (reference USD prices), trending enrichment and
pool discovery. The most liquid pair involving a token is its primary pair.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .base import PairQuote
from .errors import NoDataError, ProviderError
from .http import DEFAULT_TIMEOUT_S, _safe_get, _to_float, _to_int, get_json, require_dict

logger = logging.getLogger(__name__)

DEX_BASE_URL = "https://api.dexscreener.com"


def _pairs_from_payload(provider: str, data: Any) -> List[Dict[str, Any]]:
    """Extract the pair dicts from the various Dexscreener response shapes."""
    if isinstance(data, list):
        return [p for p in data if isinstance(p, dict)]
    payload = require_dict(provider, data)
    if payload.get("error"):
        raise ProviderError(provider, f"Dex API error: {payload['error']}")

    pairs = payload.get("pairs")
    if isinstance(pairs, list):
        return [p for p in pairs if isinstance(p, dict)]
    if isinstance(pairs, dict):
        return [pairs]
    pair = payload.get("pair")
    if isinstance(pair, dict):
        return [pair]
    if pairs is None and pair is None:
        return []
    raise ProviderError(provider, f"Unexpected Dex response shape. Keys: {list(payload.keys())}")


def parse_pair(pair: Dict[str, Any]) -> Optional[PairQuote]:
    base_address = _safe_get(pair, "baseToken.address")
    quote_address = _safe_get(pair, "quoteToken.address")
    if not base_address or not quote_address:
        return None
    return PairQuote(
        chain_id=str(pair.get("chainId") or ""),
        pair_address=str(pair.get("pairAddress") or ""),
        dex_id=pair.get("dexId"),
        base_address=str(base_address),
        base_symbol=str(_safe_get(pair, "baseToken.symbol", "")),
        base_name=str(_safe_get(pair, "baseToken.name", "")),
        quote_address=str(quote_address),
        quote_symbol=str(_safe_get(pair, "quoteToken.symbol", "")),
        quote_name=str(_safe_get(pair, "quoteToken.name", "")),
        price_usd=_to_float(pair.get("priceUsd")),
        liquidity_usd=_to_float(_safe_get(pair, "liquidity.usd"), 0.0),
        volume_h24=_to_float(_safe_get(pair, "volume.h24"), 0.0),
        price_change_h24=_to_float(_safe_get(pair, "priceChange.h24"), 0.0),
        market_cap=_to_float(pair.get("marketCap")),
        fdv=_to_float(pair.get("fdv")),
        image_url=_safe_get(pair, "info.imageUrl"),
        pair_created_at=_to_int(pair.get("pairCreatedAt")),
        price_native=_to_float(pair.get("priceNative")),
    )


def parse_pairs(provider: str, data: Any) -> List[PairQuote]:
    quotes = [q for q in (parse_pair(p) for p in _pairs_from_payload(provider, data)) if q]
    if not quotes:
        raise NoDataError(provider, "no pairs")
    return quotes


def best_pair(pairs: List[PairQuote], address: str) -> Optional[PairQuote]:
    """Most liquid pair that has the token on either side."""
    relevant = [p for p in pairs if p.involves(address)]
    if not relevant:
        return None
    return max(relevant, key=lambda p: p.liquidity_usd)


def token_side(pair: PairQuote, address: str) -> Dict[str, str]:
    """Name/symbol/address of `address` within the pair (base or quote side)."""
    if pair.base_address.lower() == address.lower():
        return {"address": pair.base_address, "symbol": pair.base_symbol, "name": pair.base_name}
    return {"address": pair.quote_address, "symbol": pair.quote_symbol, "name": pair.quote_name}


class DexscreenerProvider:
    """Fetch DEX pairs from the Dexscreener public API."""

    def __init__(
        self,
        base_url: str = DEX_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "dexscreener"

    def get_token_pairs(self, address: str) -> List[PairQuote]:
        url = f"{self._base_url}/latest/dex/tokens/{address}"
        data = get_json(self.provider_name, url, timeout_s=self._timeout_s)
        return parse_pairs(self.provider_name, data)

    def get_pair(self, chain_id: str, pair_address: str) -> PairQuote:
        url = f"{self._base_url}/latest/dex/pairs/{chain_id}/{pair_address}"
        data = get_json(self.provider_name, url, timeout_s=self._timeout_s)
        return parse_pairs(self.provider_name, data)[0]

    def get_best_pair(self, address: str) -> PairQuote:
        """Primary (most liquid) pair for a token; NoDataError if none involve it."""
        pair = best_pair(self.get_token_pairs(address), address)
        if pair is None:
            raise NoDataError(self.provider_name, f"no pair involves {address}")
        return pair
