"""
Helius JSON-RPC provider: largest token accounts as a holders fallback.

  POST https://mainnet.helius-rpc.com/?api-key=KEY
       {"jsonrpc": "2.0", "id": "tokenfeed-getTokenLargestAccounts",
        "method": "getTokenLargestAccounts", "params": [mint, {"commitment": "confirmed"}]}

A second getTokenSupply call supplies the denominator for holder percentages.

JSON-RPC error -32600 / -32429 are rate limits (transient).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .base import HolderRecord
from .errors import ErrorKind, NoDataError, ProviderError, looks_rate_limited
from .http import _safe_get, _to_float, post_json, require_dict

logger = logging.getLogger(__name__)

HELIUS_RPC_URL = "https://mainnet.helius-rpc.com/"

_RATE_LIMIT_CODES = {-32600, -32429}


def _raise_rpc_error(provider: str, payload: Dict[str, Any]) -> None:
    error = payload.get("error")
    if error:
        code = error.get("code") if isinstance(error, dict) else None
        message = str(error.get("message") if isinstance(error, dict) else error)
        transient = code in _RATE_LIMIT_CODES or looks_rate_limited(message)
        raise ProviderError(
            provider,
            f"rpc error {code}: {message}",
            kind=ErrorKind.TRANSIENT if transient else ErrorKind.PERMANENT,
        )


def parse_token_supply(provider: str, data: Any) -> Optional[float]:
    """UI-unit total supply from a getTokenSupply response, None when absent."""
    payload = require_dict(provider, data)
    _raise_rpc_error(provider, payload)
    value = _safe_get(payload, "result.value")
    if not isinstance(value, dict):
        return None
    supply = _to_float(value.get("uiAmount"))
    if supply is None:
        supply = _to_float(value.get("uiAmountString"))
    return supply if supply and supply > 0 else None


def parse_largest_accounts(
    provider: str, data: Any, limit: int, total_supply: Optional[float] = None
) -> List[HolderRecord]:
    payload = require_dict(provider, data)
    _raise_rpc_error(provider, payload)
    accounts = _safe_get(payload, "result.value")
    if accounts is None:
        raise NoDataError(provider, "no result.value")
    if not isinstance(accounts, list):
        raise ProviderError(provider, f"result.value is {type(accounts).__name__}")
    rows = [a for a in accounts if isinstance(a, dict)][:limit]
    holders = []
    for rank, acct in enumerate(rows, start=1):
        balance = _to_float(acct.get("uiAmount"), 0.0)
        pct = (balance / total_supply) * 100.0 if total_supply and total_supply > 0 else 0.0
        holders.append(
            HolderRecord(address=str(acct.get("address") or ""), balance=balance, percentage=pct, rank=rank)
        )
    if not holders:
        raise NoDataError(provider, "no accounts")
    return holders


class HeliusHolderProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        rpc_url: str = HELIUS_RPC_URL,
        timeout_s: float = 10.0,
    ) -> None:
        self._api_key = api_key or ""
        self._rpc_url = rpc_url
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "helius"

    @property
    def lane(self) -> str:
        return self.provider_name

    @property
    def credential_id(self) -> Optional[str]:
        return self._api_key or None

    def _rpc(self, method: str, params: List[Any]) -> Any:
        body = {"jsonrpc": "2.0", "id": f"tokenfeed-{method}", "method": method, "params": params}
        return post_json(
            self.provider_name,
            self._rpc_url,
            body,
            params={"api-key": self._api_key},
            timeout_s=self._timeout_s,
        )

    def get_token_supply(self, address: str) -> Optional[float]:
        data = self._rpc("getTokenSupply", [address, {"commitment": "confirmed"}])
        return parse_token_supply(self.provider_name, data)

    def get_holders(self, address: str, limit: int) -> List[HolderRecord]:
        if not self._api_key:
            raise ProviderError(self.provider_name, "no API key configured")
        data = self._rpc("getTokenLargestAccounts", [address, {"commitment": "confirmed"}])
        holders = parse_largest_accounts(self.provider_name, data, limit)
        try:
            supply = self.get_token_supply(address)
        except ProviderError as exc:
            logger.warning("Helius supply lookup failed for %s, percentages left at 0: %s", address, exc)
            return holders
        return parse_largest_accounts(self.provider_name, data, limit, total_supply=supply)
