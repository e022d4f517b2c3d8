"""
CoinGecko market chart provider (close prices only).

  GET https://api.coingecko.com/api/v3/coins/{id}/market_chart?vs_currency=usd&days=N
  GET https://api.coingecko.com/api/v3/coins/{id}/market_chart/range?vs_currency=usd&from=..&to=..

Rows are flat candles (open=high=low=close), so batches carry has_ohlc=False.
"""
from __future__ import annotations

from typing import Any, Dict

from ..base import OHLCVBatch, OHLCVQuery
from ..errors import NoDataError, ProviderError
from ..http import DEFAULT_TIMEOUT_S, _to_float, get_json, require_dict

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"

DAYS_BY_TIMEFRAME: Dict[str, int] = {
    "1m": 1,
    "5m": 7,
    "15m": 30,
    "1h": 90,
    "4h": 365,
    "1d": 1095,
    "1w": 3650,
}


def days_for(timeframe: str) -> int:
    return DAYS_BY_TIMEFRAME.get(timeframe, 90)


def parse_market_chart(provider: str, data: Any) -> OHLCVBatch:
    payload = require_dict(provider, data)
    prices = payload.get("prices")
    if prices is None:
        raise NoDataError(provider, "no prices in response")
    if not isinstance(prices, list):
        raise ProviderError(provider, f"prices is {type(prices).__name__}")
    volume_by_ts: Dict[int, float] = {}
    for point in payload.get("total_volumes") or []:
        if isinstance(point, (list, tuple)) and len(point) >= 2:
            ts = _to_float(point[0])
            if ts is not None:
                volume_by_ts[int(ts)] = _to_float(point[1], 0.0)
    rows = []
    volumes = []
    for point in prices:
        if not isinstance(point, (list, tuple)) or len(point) < 2:
            raise ProviderError(provider, f"malformed price point: {point!r}")
        ts = _to_float(point[0])
        price = _to_float(point[1])
        if ts is None or price is None:
            continue
        rows.append((int(ts), price, price, price, price))
        volumes.append(volume_by_ts.get(int(ts), 0.0))
    if not rows:
        raise NoDataError(provider, "empty price series")
    return OHLCVBatch(
        provider_name=provider,
        rows=tuple(rows),
        volumes=tuple(volumes),
        has_ohlc=False,
    )


class CoinGeckoOHLCVProvider:
    def __init__(
        self,
        base_url: str = COINGECKO_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s

    @property
    def provider_name(self) -> str:
        return "coingecko"

    def supports(self, query: OHLCVQuery) -> bool:
        return query.token.coingecko_id is not None

    def fetch_ohlcv(self, query: OHLCVQuery) -> OHLCVBatch:
        coin_id = query.token.coingecko_id
        if coin_id is None:
            raise NoDataError(self.provider_name, f"no coin id for {query.token.token_id}")
        days = days_for(query.timeframe)
        if query.before:
            url = f"{self._base_url}/coins/{coin_id}/market_chart/range"
            params: Dict[str, Any] = {
                "vs_currency": "usd",
                "from": int(query.before) - days * 86400,
                "to": int(query.before),
            }
        else:
            url = f"{self._base_url}/coins/{coin_id}/market_chart"
            params = {"vs_currency": "usd", "days": days}
        data = get_json(self.provider_name, url, params=params, timeout_s=self._timeout_s)
        return parse_market_chart(self.provider_name, data)
