"""
RugCheck token report provider (Solana only).

  GET https://api.rugcheck.xyz/v1/tokens/{mint}/report

RugCheck reports authorities and holder concentration, not taxes or
honeypot status; those fields are reported as clean.
"""
from __future__ import annotations

from typing import Any

from .base import TokenSecurity
from .errors import NoDataError
from .http import DEFAULT_TIMEOUT_S, _to_float, _to_int, get_json, require_dict

RUGCHECK_BASE_URL = "https://api.rugcheck.xyz/v1"


def parse_report(provider: str, data: Any) -> TokenSecurity:
    payload = require_dict(provider, data)
    token = payload.get("token")
    if not isinstance(token, dict):
        raise NoDataError(provider, "no token section")
    meta = payload.get("tokenMeta") if isinstance(payload.get("tokenMeta"), dict) else {}

    no_mint = token.get("mintAuthority") is None
    no_freeze = token.get("freezeAuthority") is None
    holders = [h for h in (payload.get("topHolders") or []) if isinstance(h, dict)]
    concentration = sum(_to_float(h.get("pct"), 0.0) for h in holders[:10])

    decimals = _to_int(token.get("decimals"))
    supply = _to_float(token.get("supply"))
    total_supply = supply / (10 ** decimals) if supply is not None and decimals is not None else None

    return TokenSecurity(
        honeypot=False,
        buy_tax=0.0,
        sell_tax=0.0,
        blacklist=False,
        no_mint=no_mint,
        can_burn=not no_freeze,
        is_proxy=False,
        has_renounced=no_mint and no_freeze,
        source=provider,
        top_holders_concentration=concentration,
        total_supply=total_supply,
        decimals=decimals,
        immutable_metadata=not bool(meta.get("mutable", True)),
    )


class RugCheckSecurityProvider:
    def __init__(
        self,
        base_url: str = RUGCHECK_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "rugcheck"

    def get_security(self, address: str, network: str = "solana") -> TokenSecurity:
        url = f"{self._base_url}/tokens/{address}/report"
        data = get_json(self.provider_name, url, timeout_s=self._timeout_s)
        return parse_report(self.provider_name, data)
