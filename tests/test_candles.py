"""
Tests for the candle normalizer: ordering, dedup, volume join, aggregation.
"""
from __future__ import annotations

import random

from tokenfeed.candles import (
    Candle,
    aggregate,
    from_close_prices,
    is_strictly_increasing,
    normalize,
)


def test_sorts_ascending():
    rows = [(3000, 3, 3, 3, 3), (1000, 1, 1, 1, 1), (2000, 2, 2, 2, 2)]
    out = normalize(rows)
    assert [c.time for c in out] == [1000, 2000, 3000]
    assert [c.close for c in out] == [1.0, 2.0, 3.0]


def test_duplicate_timestamp_keeps_first_occurrence():
    rows = [(1000, 1, 1, 1, 1), (2000, 2, 2, 2, 2), (1000, 9, 9, 9, 9)]
    out = normalize(rows)
    assert len(out) == 2
    assert out[0].close == 1.0


def test_volume_joined_by_index_and_missing_defaults_to_zero():
    rows = [(1000, 1, 1, 1, 1), (2000, 2, 2, 2, 2), (3000, 3, 3, 3, 3)]
    out = normalize(rows, volumes=[10.0, 20.0])
    assert [c.volume for c in out] == [10.0, 20.0, 0.0]


def test_volume_follows_its_row_through_sorting():
    rows = [(2000, 2, 2, 2, 2), (1000, 1, 1, 1, 1)]
    out = normalize(rows, volumes=[200.0, 100.0])
    assert [(c.time, c.volume) for c in out] == [(1000, 100.0), (2000, 200.0)]


def test_non_numeric_rows_dropped():
    rows = [(1000, 1, 1, 1, 1), (2000, None, 2, 2, 2), (3000, "x", 3, 3, 3), (4000, 4, 4, 4, 4)]
    out = normalize(rows)
    assert [c.time for c in out] == [1000, 4000]


def test_empty_input():
    assert normalize([]) == []


def test_fold_multiplier():
    rows = [(i * 1000, 10 + i, 20 + i, 5 + i, 15 + i) for i in range(7)]
    out = normalize(rows, volumes=[1.0] * 7, multiplier=3)
    assert len(out) == 3
    first = out[0]
    assert first == Candle(time=0, open=10.0, high=22.0, low=5.0, close=17.0, volume=3.0)
    # trailing partial group still folds
    assert out[2].time == 6000
    assert out[2].volume == 1.0


def test_aggregate_on_normalized_series():
    candles = normalize([(i * 1000, 1, 2, 0.5, 1.5) for i in range(4)], volumes=[2.0] * 4)
    out = aggregate(candles, 2)
    assert [c.time for c in out] == [0, 2000]
    assert all(c.volume == 4.0 for c in out)
    assert aggregate(candles, 1) == candles


def test_from_close_prices_is_flat():
    out = from_close_prices([(2000, 5.0), (1000, 4.0)], volumes=[(2000, 50.0), (1000, 40.0)])
    assert out[0] == Candle(time=1000, open=4.0, high=4.0, low=4.0, close=4.0, volume=40.0)


def test_output_strictly_increasing_for_messy_input():
    rnd = random.Random(7)
    for _ in range(25):
        times = [rnd.randrange(0, 40) * 60_000 for _ in range(60)]
        rows = [(t, 1.0, 2.0, 0.5, 1.5) for t in times]
        out = normalize(rows, volumes=[1.0] * rnd.randrange(0, 60))
        assert is_strictly_increasing(out)
        assert len(out) == len(set(times))
