"""
Birdeye token OHLCV provider (API key required, HISTORICAL role).

  GET https://public-api.birdeye.so/defi/ohlcv?address=MINT&type=1H&time_from=..&time_to=..
  data.items[] = {unixTime, o, h, l, c, v}

Serves Solana mint addresses only. Registered but not in the default
priority list; enable it through providers.ohlcv_priority.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

from tokenfeed.synthetic import interval_ms
from tokenfeed.timeutils import now_s
from tokenfeed.tokens import is_solana_address

from ..base import OHLCVBatch, OHLCVQuery
from ..birdeye import BIRDEYE_BASE_URL, BirdeyeRole, items_of, unwrap
from ..errors import NoDataError
from ..http import DEFAULT_TIMEOUT_S, _to_float, get_json

BIRDEYE_TYPES: Dict[str, str] = {
    "1m": "1m",
    "5m": "5m",
    "15m": "15m",
    "1h": "1H",
    "4h": "4H",
    "1d": "1D",
    "1w": "1W",
}


def parse_items(provider: str, data: Any) -> OHLCVBatch:
    rows = []
    volumes = []
    for item in items_of(provider, unwrap(provider, data)):
        ts = _to_float(item.get("unixTime") or item.get("unix_time"))
        o, h, l, c = (_to_float(item.get(k)) for k in ("o", "h", "l", "c"))
        if ts is None or None in (o, h, l, c):
            continue
        rows.append((int(ts * 1000), o, h, l, c))
        volumes.append(_to_float(item.get("v"), 0.0))
    if not rows:
        raise NoDataError(provider, "empty ohlcv items")
    return OHLCVBatch(provider_name=provider, rows=tuple(rows), volumes=tuple(volumes))


class BirdeyeOHLCVProvider:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = BIRDEYE_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._api_key = api_key or ""
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "birdeye_ohlcv"

    @property
    def lane(self) -> str:
        return f"birdeye:{BirdeyeRole.HISTORICAL.value}"

    @property
    def credential_id(self) -> Optional[str]:
        return self._api_key or None

    def supports(self, query: OHLCVQuery) -> bool:
        return bool(self._api_key) and is_solana_address(query.token.token_id)

    def fetch_ohlcv(self, query: OHLCVQuery) -> OHLCVBatch:
        time_to = int(query.before) if query.before else int(now_s())
        span_s = query.limit * interval_ms(query.timeframe) // 1000
        params = {
            "address": query.token.token_id,
            "type": BIRDEYE_TYPES.get(query.timeframe, "1H"),
            "time_from": time_to - span_s,
            "time_to": time_to,
        }
        headers = {"x-chain": "solana", "X-API-KEY": self._api_key}
        data = get_json(
            self.provider_name,
            f"{self._base_url}/defi/ohlcv",
            params=params,
            headers=headers,
            timeout_s=self._timeout_s,
        )
        return parse_items(self.provider_name, data)
