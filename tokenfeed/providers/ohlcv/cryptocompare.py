"""
CryptoCompare historical OHLCV provider.

  GET https://min-api.cryptocompare.com/data/v2/{histominute|histohour|histoday}
      ?fsym=ETH&tsym=USD&limit=N&aggregate=N&toTs=unix_s

Only tokens with a known CryptoCompare symbol are supported. 4h and 1w are
built from 1h / 1d rows by the candle normalizer (multiplier).
"""
from __future__ import annotations

from typing import Any, Dict, Optional, Tuple

from ..base import OHLCVBatch, OHLCVQuery
from ..errors import ErrorKind, NoDataError, ProviderError, looks_rate_limited
from ..http import DEFAULT_TIMEOUT_S, _safe_get, _to_float, get_json, require_dict

CRYPTOCOMPARE_BASE_URL = "https://min-api.cryptocompare.com/data/v2"
MAX_LIMIT = 2000

# timeframe -> (endpoint, aggregate, normalizer multiplier)
TIMEFRAMES: Dict[str, Tuple[str, int, int]] = {
    "1m": ("histominute", 1, 1),
    "5m": ("histominute", 5, 1),
    "15m": ("histominute", 15, 1),
    "1h": ("histohour", 1, 1),
    "4h": ("histohour", 1, 4),
    "1d": ("histoday", 1, 1),
    "1w": ("histoday", 1, 7),
}


def timeframe_params(timeframe: str) -> Tuple[str, int, int]:
    return TIMEFRAMES.get(timeframe, ("histohour", 1, 1))


def parse_histo(provider: str, data: Any, multiplier: int = 1) -> OHLCVBatch:
    payload = require_dict(provider, data)
    if payload.get("Response") == "Error":
        message = str(payload.get("Message") or "error response")
        kind = ErrorKind.TRANSIENT if looks_rate_limited(message) else ErrorKind.PERMANENT
        raise ProviderError(provider, message, kind=kind)
    items = _safe_get(payload, "Data.Data")
    if items is None:
        raise NoDataError(provider, "no Data.Data in response")
    if not isinstance(items, list):
        raise ProviderError(provider, f"Data.Data is {type(items).__name__}")
    rows = []
    volumes = []
    for item in items:
        if not isinstance(item, dict):
            raise ProviderError(provider, f"malformed histo row: {item!r}")
        ts = _to_float(item.get("time"))
        o, h, l, c = (_to_float(item.get(k)) for k in ("open", "high", "low", "close"))
        if ts is None or None in (o, h, l, c):
            continue
        # pre-listing buckets come back zero-filled
        if o == h == l == c == 0:
            continue
        rows.append((int(ts * 1000), o, h, l, c))
        volumes.append(_to_float(item.get("volumeto")) or _to_float(item.get("volumefrom"), 0.0))
    if not rows:
        raise NoDataError(provider, "empty histo series")
    return OHLCVBatch(
        provider_name=provider,
        rows=tuple(rows),
        volumes=tuple(volumes),
        has_ohlc=True,
        multiplier=multiplier,
    )


class CryptoCompareOHLCVProvider:
    """Exchange-aggregate candles for major symbols."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = CRYPTOCOMPARE_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._api_key = api_key or ""
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "cryptocompare"

    @property
    def credential_id(self) -> Optional[str]:
        return self._api_key or None

    def supports(self, query: OHLCVQuery) -> bool:
        return query.token.cryptocompare_symbol is not None

    def fetch_ohlcv(self, query: OHLCVQuery) -> OHLCVBatch:
        symbol = query.token.cryptocompare_symbol
        if symbol is None:
            raise NoDataError(self.provider_name, f"no symbol for {query.token.token_id}")
        endpoint, aggregate, multiplier = timeframe_params(query.timeframe)
        params: Dict[str, Any] = {
            "fsym": symbol,
            "tsym": "USD",
            "limit": min(query.limit * multiplier, MAX_LIMIT),
        }
        if aggregate > 1:
            params["aggregate"] = aggregate
        if query.before:
            params["toTs"] = int(query.before)
        headers = {"authorization": f"Apikey {self._api_key}"} if self._api_key else None
        data = get_json(
            self.provider_name,
            f"{self._base_url}/{endpoint}",
            params=params,
            headers=headers,
            timeout_s=self._timeout_s,
        )
        return parse_histo(self.provider_name, data, multiplier)
