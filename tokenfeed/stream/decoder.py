"""
Reconstruct trade events from streamed ledger transaction records.

decode() is a pure function of one record plus oracle price lookups:
failed transactions and records not touching the tracked mint are dropped,
tracked-asset deltas below the dust threshold are dropped, the sign of the
delta gives the side, and the largest non-tracked balance delta in the same
record (or, failing that, the largest native lamport delta) is the counter
asset used for pricing.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Tuple

from tokenfeed.errors import TokenFeedError
from tokenfeed.oracle import DEFAULT_PRICES, REFERENCE_ASSETS, SOL_MINT, PriceOracleCache
from tokenfeed.providers.http import _to_float, _to_int
from tokenfeed.timeutils import now_s

logger = logging.getLogger(__name__)

DUST_THRESHOLD = 1e-6
LAMPORTS_PER_SOL = 1_000_000_000
UNKNOWN_VENUE = "Unknown DEX"
UNKNOWN_TRADER = "Unknown"

_REFERENCE_SYMBOLS = {a.address: a.symbol for a in REFERENCE_ASSETS}

# program id -> display name
KNOWN_VENUES: Dict[str, str] = {
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8": "Raydium",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc": "Orca",
    "JUP4Fb2cqiRUcaTHdrPC8h2gNsA2ETXiPDD33WcGuJB": "Jupiter",
    "9WzDXwBbmkg8ZTbNMqUxvQRAyrZzDsGYdLVL9zYtAWWM": "Jupiter V6",
}


class DecodeError(TokenFeedError):
    """Record is structurally not a transaction notification."""


class Side(str, enum.Enum):
    BUY = "BUY"
    SELL = "SELL"


@dataclass(frozen=True)
class TradeEvent:
    time: int  # unix seconds
    side: Side
    amount: float
    price_per_unit: float  # counter-asset units per tracked unit
    usd_value: float
    trader: str
    tx_id: str
    source: str
    counter_asset: Optional[str] = None

    def to_dict(self) -> dict:
        d = asdict(self)
        d["side"] = self.side.value
        return d


@dataclass(frozen=True)
class BalanceDelta:
    account_index: int
    mint: str
    owner: Optional[str]
    delta: float


def _list_of(container: Dict[str, Any], key: str) -> List[Any]:
    value = container.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"{key} is {type(value).__name__}")
    return value


def _ui_amount(balance: Dict[str, Any]) -> float:
    ui = balance.get("uiTokenAmount")
    if ui is None:
        ui = {}
    if not isinstance(ui, dict):
        raise DecodeError(f"uiTokenAmount is {type(ui).__name__}")
    amount = _to_float(ui.get("uiAmount"))
    if amount is None:
        amount = _to_float(ui.get("uiAmountString"))
    if amount is None:
        raw = _to_float(ui.get("amount"))
        decimals = _to_int(ui.get("decimals")) or 0
        amount = raw / (10 ** decimals) if raw is not None else 0.0
    return amount


def token_deltas(meta: Dict[str, Any]) -> List[BalanceDelta]:
    """Per (account index, mint) deltas, including accounts present on one side only."""
    pre: Dict[Tuple[int, str], Dict[str, Any]] = {}
    post: Dict[Tuple[int, str], Dict[str, Any]] = {}
    for target, key in ((pre, "preTokenBalances"), (post, "postTokenBalances")):
        for bal in _list_of(meta, key):
            if isinstance(bal, dict) and bal.get("mint") is not None:
                target[(_to_int(bal.get("accountIndex")) or 0, str(bal["mint"]))] = bal
    deltas = []
    for index, mint in list(pre) + [k for k in post if k not in pre]:
        before, after = pre.get((index, mint)), post.get((index, mint))
        owner = (after or before or {}).get("owner")
        delta = (_ui_amount(after) if after else 0.0) - (_ui_amount(before) if before else 0.0)
        deltas.append(BalanceDelta(index, mint, owner, delta))
    return deltas


def native_delta(meta: Dict[str, Any]) -> Optional[float]:
    """Largest-magnitude lamport change across accounts, in SOL."""
    pre = _list_of(meta, "preBalances")
    post = _list_of(meta, "postBalances")
    if not pre or len(pre) != len(post):
        return None
    best = 0.0
    for a, b in zip(pre, post):
        change = ((_to_float(b, 0.0)) - (_to_float(a, 0.0))) / LAMPORTS_PER_SOL
        if abs(change) > abs(best):
            best = change
    return best if best != 0 else None


def _account_keys(tx: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Account keys as [{pubkey, signer}] for both plain and jsonParsed encodings."""
    message = tx.get("message")
    if message is None:
        return []
    if not isinstance(message, dict):
        raise DecodeError(f"message is {type(message).__name__}")
    keys = _list_of(message, "accountKeys")
    out = []
    for i, key in enumerate(keys):
        if isinstance(key, dict):
            out.append({"pubkey": str(key.get("pubkey") or ""), "signer": bool(key.get("signer"))})
        else:
            out.append({"pubkey": str(key), "signer": i == 0})
    return out


def find_trader(keys: List[Dict[str, Any]]) -> str:
    for key in keys:
        if key["signer"] and key["pubkey"]:
            return key["pubkey"]
    return keys[0]["pubkey"] if keys and keys[0]["pubkey"] else UNKNOWN_TRADER


def find_venue(keys: List[Dict[str, Any]]) -> str:
    present = {k["pubkey"] for k in keys}
    for program_id, name in KNOWN_VENUES.items():
        if program_id in present:
            return name
    return UNKNOWN_VENUE


def unwrap_record(record: Any) -> Tuple[Dict[str, Any], Dict[str, Any], Optional[int], str]:
    """
    (transaction, meta, block_time, signature) from either record shape:
    {transaction: {signatures, message}, meta, blockTime} or the enhanced
    {signature, transaction: {transaction: {...}, meta: {...}}}.
    """
    if not isinstance(record, dict):
        raise DecodeError(f"record is {type(record).__name__}")
    outer = record
    if "meta" not in record and isinstance(record.get("transaction"), dict) and "meta" in record["transaction"]:
        outer = record["transaction"]
    tx = outer.get("transaction")
    meta = outer.get("meta")
    if not isinstance(tx, dict) or not isinstance(meta, dict):
        raise DecodeError("record lacks transaction/meta")
    signatures = _list_of(tx, "signatures")
    signature = record.get("signature") or (signatures[0] if signatures else "")
    block_time = _to_int(outer.get("blockTime") or record.get("blockTime"))
    return tx, meta, block_time, str(signature)


class SwapEventDecoder:
    """
    Usage:
        decoder = SwapEventDecoder(tracked_mint, oracle)
        event = decoder.decode(notification["params"]["result"])   # TradeEvent or None
    """

    def __init__(
        self,
        tracked_mint: str,
        oracle: Optional[PriceOracleCache] = None,
        dust_threshold: float = DUST_THRESHOLD,
        fallback_prices: Optional[Dict[str, float]] = None,
    ) -> None:
        self.tracked_mint = tracked_mint
        self._oracle = oracle
        self._dust = dust_threshold
        self._fallback = dict(DEFAULT_PRICES if fallback_prices is None else fallback_prices)

    def _usd_price(self, asset_id: str) -> Optional[float]:
        if self._oracle is not None:
            price = self._oracle.price_or_default(asset_id)
            if price is not None:
                return price
        symbol = _REFERENCE_SYMBOLS.get(asset_id)
        return self._fallback.get(symbol) if symbol else None

    def _tracked_delta(self, deltas: List[BalanceDelta], trader: str) -> Optional[float]:
        tracked = [d for d in deltas if d.mint == self.tracked_mint]
        if not tracked:
            return None
        owned = [d for d in tracked if d.owner and d.owner == trader]
        if owned:
            return sum(d.delta for d in owned)
        return tracked[0].delta

    def _counter(self, deltas: List[BalanceDelta], trader: str) -> Optional[BalanceDelta]:
        others = [d for d in deltas if d.mint != self.tracked_mint and abs(d.delta) > self._dust]
        if not others:
            return None
        owned = [d for d in others if d.owner and d.owner == trader]
        return max(owned or others, key=lambda d: abs(d.delta))

    def decode(self, record: Any) -> Optional[TradeEvent]:
        """TradeEvent for a swap touching the tracked mint, else None."""
        tx, meta, block_time, signature = unwrap_record(record)
        if meta.get("err"):
            logger.debug("Skipping failed transaction %s", signature)
            return None

        deltas = token_deltas(meta)
        if not any(d.mint == self.tracked_mint for d in deltas):
            return None

        keys = _account_keys(tx)
        trader = find_trader(keys)
        tracked_delta = self._tracked_delta(deltas, trader)
        if tracked_delta is None or abs(tracked_delta) < self._dust:
            return None

        side = Side.BUY if tracked_delta > 0 else Side.SELL
        amount = abs(tracked_delta)

        counter = self._counter(deltas, trader)
        if counter is not None:
            counter_asset = counter.mint
            counter_amount = abs(counter.delta)
        else:
            sol = native_delta(meta)
            if sol is None:
                counter_asset, counter_amount = None, 0.0
            else:
                counter_asset, counter_amount = SOL_MINT, abs(sol)

        price_per_unit = counter_amount / amount if counter_amount else 0.0
        usd_price = self._usd_price(counter_asset) if counter_asset else None
        usd_value = counter_amount * usd_price if usd_price is not None else 0.0

        return TradeEvent(
            time=block_time if block_time is not None else int(now_s()),
            side=side,
            amount=amount,
            price_per_unit=price_per_unit,
            usd_value=usd_value,
            trader=trader,
            tx_id=signature,
            source=find_venue(keys),
            counter_asset=counter_asset,
        )
