"""
Provider interfaces and provider-neutral data contracts.

Adapters implement one of three protocols:
- OHLCVProvider: candle series for a token/timeframe (GeckoTerminal, CryptoCompare, ...)
- HolderProvider: largest holders of a token (Birdeye, Helius)
- SecurityProvider: token security scan (GoPlus, RugCheck)

Data leaves an adapter only as the frozen dataclasses below; provider field
names never pass this layer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Optional, Protocol, Tuple, runtime_checkable

from tokenfeed.timeutils import now_utc_iso

# (time_ms, open, high, low, close)
OHLCRow = Tuple[int, float, float, float, float]


class ProviderStatus(enum.Enum):
    """Health status of a data provider."""

    OK = "OK"
    DEGRADED = "DEGRADED"
    DOWN = "DOWN"


@dataclass(frozen=True)
class TokenRef:
    """Resolved identity of a token across providers."""

    token_id: str
    network: str
    pool_address: str
    symbol: str
    cryptocompare_symbol: Optional[str] = None
    coingecko_id: Optional[str] = None


@dataclass(frozen=True)
class OHLCVQuery:
    token: TokenRef
    timeframe: str
    limit: int
    before: Optional[int] = None  # unix seconds, backward paging cursor


@dataclass(frozen=True)
class OHLCVBatch:
    """
    Raw candle rows from one provider, in provider generation order.

    volumes is index-aligned with rows. has_ohlc is False when the provider
    only supplied close prices (open=high=low=close). multiplier > 1 asks the
    normalizer to fold rows into a coarser timeframe.
    """

    provider_name: str
    rows: Tuple[OHLCRow, ...]
    volumes: Tuple[float, ...] = ()
    has_ohlc: bool = True
    multiplier: int = 1

    def is_empty(self) -> bool:
        return len(self.rows) == 0


@dataclass(frozen=True)
class PairQuote:
    """One DEX trading pair as reported by a pair-listing provider."""

    chain_id: str
    pair_address: str
    dex_id: Optional[str]
    base_address: str
    base_symbol: str
    base_name: str
    quote_address: str
    quote_symbol: str
    quote_name: str
    price_usd: Optional[float]
    liquidity_usd: float = 0.0
    volume_h24: float = 0.0
    price_change_h24: float = 0.0
    market_cap: Optional[float] = None
    fdv: Optional[float] = None
    image_url: Optional[str] = None
    pair_created_at: Optional[int] = None
    price_native: Optional[float] = None  # base token priced in quote token units

    def involves(self, address: str) -> bool:
        a = address.lower()
        return self.base_address.lower() == a or self.quote_address.lower() == a

    def usd_price_of(self, address: str) -> Optional[float]:
        """USD price of either side. priceUsd always quotes the base token."""
        if self.price_usd is None:
            return None
        a = address.lower()
        if self.base_address.lower() == a:
            return self.price_usd
        if self.quote_address.lower() == a and self.price_native:
            return self.price_usd / self.price_native
        return None


@dataclass(frozen=True)
class HolderRecord:
    address: str
    balance: float
    percentage: float
    rank: int


@dataclass(frozen=True)
class HistoricalPoint:
    time_ms: int
    volume_usd: float
    price_usd: float


@dataclass(frozen=True)
class TransactionRecord:
    """One recent swap of a token as reported by an indexer."""

    tx_id: str
    time: int  # unix seconds
    side: str  # "buy" | "sell"
    owner: str
    volume_usd: float
    price_usd: Optional[float] = None


@dataclass(frozen=True)
class TokenSecurity:
    """Provider-neutral security scan result."""

    honeypot: bool
    buy_tax: float
    sell_tax: float
    blacklist: bool
    no_mint: bool
    can_burn: bool
    is_proxy: bool
    has_renounced: bool
    source: str
    top_holders_concentration: Optional[float] = None
    total_supply: Optional[float] = None
    decimals: Optional[int] = None
    immutable_metadata: Optional[bool] = None


@dataclass
class ProviderHealth:
    """Mutable health state for a single provider instance."""

    provider_name: str
    status: ProviderStatus = ProviderStatus.OK
    last_ok_at: Optional[str] = None
    fail_count: int = 0
    empty_count: int = 0
    last_error: Optional[str] = None
    calls: int = field(default=0)

    def record_success(self) -> None:
        self.calls += 1
        self.status = ProviderStatus.OK
        self.fail_count = 0
        self.last_ok_at = now_utc_iso()
        self.last_error = None

    def record_empty(self) -> None:
        self.calls += 1
        self.empty_count += 1

    def record_failure(self, error: str) -> None:
        self.calls += 1
        self.fail_count += 1
        self.last_error = error[:500]
        if self.fail_count >= 5:
            self.status = ProviderStatus.DOWN
        elif self.fail_count >= 2:
            self.status = ProviderStatus.DEGRADED

    def to_dict(self) -> dict:
        return {
            "provider": self.provider_name,
            "status": self.status.value,
            "last_ok_at": self.last_ok_at,
            "fail_count": self.fail_count,
            "empty_count": self.empty_count,
            "last_error": self.last_error,
            "calls": self.calls,
        }


@runtime_checkable
class OHLCVProvider(Protocol):
    """Protocol for candle providers."""

    @property
    def provider_name(self) -> str: ...

    def supports(self, query: OHLCVQuery) -> bool:
        """False when this provider cannot serve the token/timeframe at all."""
        ...

    def fetch_ohlcv(self, query: OHLCVQuery) -> OHLCVBatch:
        """Fetch one page of candles; raises ProviderError / NoDataError."""
        ...


@runtime_checkable
class HolderProvider(Protocol):
    @property
    def provider_name(self) -> str: ...

    def get_holders(self, address: str, limit: int) -> list[HolderRecord]: ...


@runtime_checkable
class SecurityProvider(Protocol):
    @property
    def provider_name(self) -> str: ...

    def get_security(self, address: str, network: str) -> TokenSecurity: ...
