"""
GeckoTerminal pool OHLCV provider.

Public API, no authentication:
  GET https://api.geckoterminal.com/api/v2/networks/{network}/pools/{pool}/ohlcv/{timeframe}
      ?aggregate=N&limit=N&before_timestamp=unix_s

Response: data.attributes.ohlcv_list = [[ts_s, open, high, low, close, volume], ...]
(newest first).
"""
from __future__ import annotations

from typing import Any, Dict, Tuple

from ..base import OHLCVBatch, OHLCVQuery
from ..errors import NoDataError, ProviderError
from ..http import DEFAULT_TIMEOUT_S, _safe_get, _to_float, get_json, require_dict

GECKOTERMINAL_BASE_URL = "https://api.geckoterminal.com/api/v2"
MAX_LIMIT = 1000

# timeframe -> (path timeframe, aggregate, normalizer multiplier)
TIMEFRAMES: Dict[str, Tuple[str, int, int]] = {
    "1m": ("minute", 1, 1),
    "5m": ("minute", 5, 1),
    "15m": ("minute", 15, 1),
    "1h": ("hour", 1, 1),
    "4h": ("hour", 4, 1),
    "1d": ("day", 1, 1),
    "1w": ("day", 1, 7),
}


def timeframe_params(timeframe: str) -> Tuple[str, int, int]:
    return TIMEFRAMES.get(timeframe, ("hour", 1, 1))


def parse_ohlcv_list(provider: str, data: Any, multiplier: int = 1) -> OHLCVBatch:
    """ohlcv payload -> OHLCVBatch; raises NoDataError / ProviderError."""
    payload = require_dict(provider, data)
    ohlcv_list = _safe_get(payload, "data.attributes.ohlcv_list")
    if ohlcv_list is None:
        raise NoDataError(provider, "no ohlcv_list in response")
    if not isinstance(ohlcv_list, list):
        raise ProviderError(provider, f"ohlcv_list is {type(ohlcv_list).__name__}")
    rows = []
    volumes = []
    for item in ohlcv_list:
        if not isinstance(item, (list, tuple)) or len(item) < 5:
            raise ProviderError(provider, f"malformed ohlcv row: {item!r}")
        ts = _to_float(item[0])
        o, h, l, c = (_to_float(v) for v in item[1:5])
        if ts is None or None in (o, h, l, c):
            continue
        rows.append((int(ts * 1000), o, h, l, c))
        volumes.append(_to_float(item[5], 0.0) if len(item) > 5 else 0.0)
    if not rows:
        raise NoDataError(provider, "empty ohlcv_list")
    return OHLCVBatch(
        provider_name=provider,
        rows=tuple(rows),
        volumes=tuple(volumes),
        has_ohlc=True,
        multiplier=multiplier,
    )


class GeckoTerminalOHLCVProvider:
    """Pool candles by network + pool address."""

    def __init__(
        self,
        base_url: str = GECKOTERMINAL_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "geckoterminal"

    def supports(self, query: OHLCVQuery) -> bool:
        return bool(query.token.network and query.token.pool_address)

    def fetch_ohlcv(self, query: OHLCVQuery) -> OHLCVBatch:
        path_tf, aggregate, multiplier = timeframe_params(query.timeframe)
        url = (
            f"{self._base_url}/networks/{query.token.network}"
            f"/pools/{query.token.pool_address}/ohlcv/{path_tf}"
        )
        params: Dict[str, Any] = {
            "aggregate": aggregate,
            "limit": min(query.limit * multiplier, MAX_LIMIT),
        }
        if query.before:
            params["before_timestamp"] = int(query.before)
        data = get_json(self.provider_name, url, params=params, timeout_s=self._timeout_s)
        return parse_ohlcv_list(self.provider_name, data, multiplier)
