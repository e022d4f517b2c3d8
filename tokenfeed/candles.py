"""
Canonical candle schema and the normalizer that produces it.

normalize() turns raw provider rows into an ordered series:
1. volumes are joined to rows by index position (generation order), missing
   volume defaults to 0.0;
2. rows with non-numeric OHLC fields are dropped;
3. stable sort by timestamp;
4. rows repeating an earlier timestamp are dropped (first occurrence wins);
5. optionally every m consecutive candles are folded into one
   (first open, max high, min low, last close, summed volume).

Output timestamps are strictly increasing.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

_OHLC = ["time", "open", "high", "low", "close"]
_COLUMNS = _OHLC + ["volume"]


@dataclass(frozen=True)
class Candle:
    time: int  # unix ms, bucket start
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


def _frame_from_rows(
    rows: Sequence[Sequence[float]],
    volumes: Optional[Sequence[Optional[float]]],
) -> pd.DataFrame:
    df = pd.DataFrame([list(r)[:5] for r in rows], columns=_OHLC)
    vols = list(volumes or [])
    df["volume"] = [vols[i] if i < len(vols) else 0.0 for i in range(len(df))]
    df = df.apply(pd.to_numeric, errors="coerce")
    df = df.replace([np.inf, -np.inf], np.nan)
    df = df.dropna(subset=_OHLC)
    df["volume"] = df["volume"].fillna(0.0)
    df["time"] = df["time"].astype("int64")
    return df


def _order_and_dedupe(df: pd.DataFrame) -> pd.DataFrame:
    df = df.sort_values("time", kind="mergesort")
    df = df.drop_duplicates(subset="time", keep="first")
    return df.reset_index(drop=True)


def _fold(df: pd.DataFrame, multiplier: int) -> pd.DataFrame:
    if multiplier <= 1 or df.empty:
        return df
    groups = np.arange(len(df)) // multiplier
    return df.groupby(groups, sort=True).agg(
        time=("time", "first"),
        open=("open", "first"),
        high=("high", "max"),
        low=("low", "min"),
        close=("close", "last"),
        volume=("volume", "sum"),
    ).reset_index(drop=True)


def _to_candles(df: pd.DataFrame) -> List[Candle]:
    return [
        Candle(
            time=int(row.time),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in df[_COLUMNS].itertuples(index=False)
    ]


def normalize(
    rows: Sequence[Sequence[float]],
    volumes: Optional[Sequence[Optional[float]]] = None,
    multiplier: int = 1,
) -> List[Candle]:
    """Raw (time_ms, open, high, low, close) rows -> ordered, deduplicated candles."""
    if not rows:
        return []
    df = _frame_from_rows(rows, volumes)
    df = _order_and_dedupe(df)
    df = _fold(df, multiplier)
    return _to_candles(df)


def aggregate(candles: Sequence[Candle], multiplier: int) -> List[Candle]:
    """Fold every `multiplier` consecutive candles of a normalized series into one."""
    if multiplier <= 1 or not candles:
        return list(candles)
    df = pd.DataFrame([c.to_dict() for c in candles], columns=_COLUMNS)
    return _to_candles(_fold(df, multiplier))


def from_close_prices(
    prices: Iterable[Tuple[float, float]],
    volumes: Optional[Iterable[Tuple[float, float]]] = None,
) -> List[Candle]:
    """Price-only series [(time_ms, price)] -> flat candles (open=high=low=close)."""
    rows = [(t, p, p, p, p) for t, p in prices]
    vols = [v for _, v in volumes] if volumes is not None else None
    return normalize(rows, vols)


def is_strictly_increasing(candles: Sequence[Candle]) -> bool:
    return all(a.time < b.time for a, b in zip(candles, candles[1:]))
