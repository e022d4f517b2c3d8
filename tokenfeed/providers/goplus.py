"""
GoPlus token security provider.

  GET https://api.gopluslabs.io/api/v1/token_security/{chain_id}?contract_addresses=ADDR
  GET https://api.gopluslabs.io/api/v1/solana/token_security?contract_addresses=ADDR

Flags come back as "0"/"1" strings keyed by contract address.
"""
from __future__ import annotations

from typing import Any, Dict

from .base import TokenSecurity
from .errors import ErrorKind, NoDataError, ProviderError, looks_rate_limited
from .http import DEFAULT_TIMEOUT_S, _to_float, get_json, require_dict

GOPLUS_BASE_URL = "https://api.gopluslabs.io/api/v1"

CHAIN_IDS: Dict[str, str] = {
    "ethereum": "1",
    "eth": "1",
    "bsc": "56",
    "polygon": "137",
    "arbitrum": "42161",
    "avalanche": "43114",
    "base": "8453",
    "solana": "solana",
}


def chain_id_for(network: str) -> str:
    return CHAIN_IDS.get(network.lower(), "1")


def _flag(record: Dict[str, Any], key: str) -> bool:
    return str(record.get(key) or "0") == "1"


def parse_token_security(provider: str, data: Any, address: str) -> TokenSecurity:
    payload = require_dict(provider, data)
    code = payload.get("code")
    if code not in (None, 1):
        message = str(payload.get("message") or f"code {code}")
        kind = ErrorKind.TRANSIENT if looks_rate_limited(message) else ErrorKind.PERMANENT
        raise ProviderError(provider, message, kind=kind)
    result = payload.get("result")
    if not isinstance(result, dict):
        raise NoDataError(provider, "no result")
    record = result.get(address.lower()) or result.get(address)
    if not isinstance(record, dict):
        raise NoDataError(provider, f"no record for {address}")
    return TokenSecurity(
        honeypot=_flag(record, "is_honeypot"),
        buy_tax=_to_float(record.get("buy_tax"), 0.0),
        sell_tax=_to_float(record.get("sell_tax"), 0.0),
        blacklist=_flag(record, "is_blacklisted"),
        no_mint=str(record.get("is_mintable") or "0") == "0",
        can_burn=False,
        is_proxy=_flag(record, "is_proxy"),
        has_renounced=_flag(record, "is_renounced"),
        source=provider,
    )


class GoPlusSecurityProvider:
    def __init__(
        self,
        base_url: str = GOPLUS_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "goplus"

    def get_security(self, address: str, network: str) -> TokenSecurity:
        chain_id = chain_id_for(network)
        if chain_id == "solana":
            url = f"{self._base_url}/solana/token_security"
        else:
            url = f"{self._base_url}/token_security/{chain_id}"
        data = get_json(
            self.provider_name,
            url,
            params={"contract_addresses": address},
            timeout_s=self._timeout_s,
        )
        return parse_token_security(self.provider_name, data, address)
