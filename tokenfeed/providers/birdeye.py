"""
Birdeye API client: holders, swap transactions, daily historical series and
trending addresses.

All field-name assumptions for Birdeye responses live in this module.
Each endpoint family has its own credential role so their rate-limit windows
do not interfere:

  HOLDERS       GET /defi/v3/token/holder?address=..&offset=0&limit=N
  TRANSACTIONS  GET /defi/v3/token/txs?address=..&tx_type=swap&sort_by=block_unix_time
  HISTORICAL    GET /defi/ohlcv?address=..&type=1D&time_from=..&time_to=..
  TRENDING      GET /defi/token_trending?limit=N

Response envelope: {"success": bool, "data": {...}}. success=false is a
permanent failure; a successful envelope without items is NoDataError.
"""

from __future__ import annotations

import enum
import logging
from typing import Any, Dict, List, Optional

from tokenfeed.timeutils import now_s

from .base import HistoricalPoint, HolderRecord, TransactionRecord
from .errors import ErrorKind, NoDataError, ProviderError, looks_rate_limited
from .http import DEFAULT_TIMEOUT_S, _to_float, _to_int, get_json, require_dict

logger = logging.getLogger(__name__)

BIRDEYE_BASE_URL = "https://public-api.birdeye.so"
MAX_PAGE = 50


class BirdeyeRole(str, enum.Enum):
    HOLDERS = "holders"
    HISTORICAL = "historical"
    TRANSACTIONS = "transactions"
    TRENDING = "trending"


def unwrap(provider: str, data: Any) -> Dict[str, Any]:
    """Validate the success envelope and return its data object."""
    payload = require_dict(provider, data)
    if not payload.get("success"):
        message = str(payload.get("message") or "unsuccessful response")
        kind = ErrorKind.TRANSIENT if looks_rate_limited(message) else ErrorKind.PERMANENT
        raise ProviderError(provider, message, kind=kind)
    inner = payload.get("data")
    if inner is None:
        raise NoDataError(provider, "empty data")
    if not isinstance(inner, dict):
        raise ProviderError(provider, f"data is {type(inner).__name__}")
    return inner


def items_of(provider: str, inner: Dict[str, Any], key: str = "items") -> List[Dict[str, Any]]:
    items = inner.get(key)
    if items is None:
        raise NoDataError(provider, f"no {key}")
    if not isinstance(items, list):
        raise ProviderError(provider, f"{key} is {type(items).__name__}")
    return [i for i in items if isinstance(i, dict)]


def parse_holders(
    provider: str,
    data: Any,
    limit: int,
    total_supply: Optional[float] = None,
) -> List[HolderRecord]:
    items = items_of(provider, unwrap(provider, data))
    holders = []
    for rank, item in enumerate(items[:limit], start=1):
        balance = _to_float(item.get("ui_amount"), 0.0)
        pct = (balance / total_supply) * 100.0 if total_supply and total_supply > 0 else 0.0
        holders.append(
            HolderRecord(
                address=str(item.get("owner") or item.get("address") or ""),
                balance=balance,
                percentage=pct,
                rank=rank,
            )
        )
    if not holders:
        raise NoDataError(provider, "no holders")
    return holders


def parse_transactions(provider: str, data: Any) -> List[TransactionRecord]:
    items = items_of(provider, unwrap(provider, data))
    out = []
    for item in items:
        tx_id = item.get("tx_hash") or item.get("txHash")
        ts = _to_int(item.get("block_unix_time") or item.get("blockUnixTime"))
        if not tx_id or ts is None:
            continue
        out.append(
            TransactionRecord(
                tx_id=str(tx_id),
                time=ts,
                side=str(item.get("side") or "").lower(),
                owner=str(item.get("owner") or ""),
                volume_usd=_to_float(item.get("volume_usd"), 0.0),
                price_usd=_to_float(item.get("price")),
            )
        )
    return out


def parse_historical(provider: str, data: Any) -> List[HistoricalPoint]:
    items = items_of(provider, unwrap(provider, data))
    points = []
    for item in items:
        ts = _to_int(item.get("unixTime") or item.get("unix_time"))
        if ts is None:
            continue
        points.append(
            HistoricalPoint(
                time_ms=ts * 1000,
                volume_usd=_to_float(item.get("v_usd") or item.get("v"), 0.0),
                price_usd=_to_float(item.get("c"), 0.0),
            )
        )
    if not points:
        raise NoDataError(provider, "no historical points")
    return sorted(points, key=lambda p: p.time_ms)


def parse_trending(provider: str, data: Any, limit: int) -> List[str]:
    tokens = items_of(provider, unwrap(provider, data), key="tokens")
    addresses = [str(t["address"]) for t in tokens if t.get("address")]
    if not addresses:
        raise NoDataError(provider, "no trending tokens")
    return addresses[:limit]


class BirdeyeClient:
    """
    Birdeye endpoints with one API key per role.

    Usage:
        client = BirdeyeClient({BirdeyeRole.HOLDERS: "key-a", BirdeyeRole.TRENDING: "key-b"})
        client.get_holders("So111...", limit=20)
    """

    def __init__(
        self,
        api_keys: Optional[Dict[BirdeyeRole, str]] = None,
        base_url: str = BIRDEYE_BASE_URL,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        chain: str = "solana",
    ) -> None:
        self._api_keys = {BirdeyeRole(k): v for k, v in (api_keys or {}).items() if v}
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._chain = chain

    @property
    def provider_name(self) -> str:
        return "birdeye"

    def credential(self, role: BirdeyeRole) -> Optional[str]:
        return self._api_keys.get(role)

    def has_credential(self, role: BirdeyeRole) -> bool:
        return role in self._api_keys

    def lane(self, role: BirdeyeRole) -> str:
        return f"{self.provider_name}:{role.value}"

    def _get(self, role: BirdeyeRole, path: str, params: Dict[str, Any]) -> Any:
        key = self._api_keys.get(role)
        if not key:
            raise ProviderError(self.provider_name, f"no API key for role {role.value}")
        headers = {"x-chain": self._chain, "X-API-KEY": key}
        return get_json(
            self.provider_name,
            f"{self._base_url}{path}",
            params=params,
            headers=headers,
            timeout_s=self._timeout_s,
        )

    def get_holders(
        self, address: str, limit: int = 20, total_supply: Optional[float] = None
    ) -> List[HolderRecord]:
        data = self._get(
            BirdeyeRole.HOLDERS,
            "/defi/v3/token/holder",
            {"address": address, "offset": 0, "limit": min(limit, MAX_PAGE), "ui_amount_mode": "scaled"},
        )
        return parse_holders(self.provider_name, data, limit, total_supply)

    def get_transactions(self, address: str, limit: int = 30) -> List[TransactionRecord]:
        data = self._get(
            BirdeyeRole.TRANSACTIONS,
            "/defi/v3/token/txs",
            {
                "address": address,
                "offset": 0,
                "limit": min(limit, MAX_PAGE),
                "sort_by": "block_unix_time",
                "sort_type": "desc",
                "tx_type": "swap",
                "ui_amount_mode": "scaled",
            },
        )
        return parse_transactions(self.provider_name, data)

    def get_historical(self, address: str, days: int = 7) -> List[HistoricalPoint]:
        """Daily close and USD volume over the last `days` days."""
        to_ts = int(now_s())
        data = self._get(
            BirdeyeRole.HISTORICAL,
            "/defi/ohlcv",
            {"address": address, "type": "1D", "time_from": to_ts - days * 86400, "time_to": to_ts},
        )
        return parse_historical(self.provider_name, data)

    def get_trending_addresses(self, limit: int = 20) -> List[str]:
        data = self._get(BirdeyeRole.TRENDING, "/defi/token_trending", {"limit": limit})
        addresses = parse_trending(self.provider_name, data, limit)
        logger.debug("Birdeye trending: %d addresses", len(addresses))
        return addresses


class BirdeyeHolderProvider:
    """HolderProvider view over BirdeyeClient (HOLDERS role)."""

    def __init__(self, client: BirdeyeClient) -> None:
        self._client = client

    @property
    def provider_name(self) -> str:
        return self._client.provider_name

    @property
    def lane(self) -> str:
        return self._client.lane(BirdeyeRole.HOLDERS)

    @property
    def credential_id(self) -> Optional[str]:
        return self._client.credential(BirdeyeRole.HOLDERS)

    def get_holders(self, address: str, limit: int) -> List[HolderRecord]:
        return self._client.get_holders(address, limit)
