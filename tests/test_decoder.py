"""
Tests for SwapEventDecoder: side, amount, unit price, USD value, filtering.
"""
from __future__ import annotations

import pytest

from tests.fakes import FakeClock, FakeDexscreener
from tokenfeed.oracle import SOL_MINT, USDC_MINT, PriceOracleCache
from tokenfeed.providers.coordinator import RequestCoordinator, RetryConfig
from tokenfeed.providers.ratelimit import RateLimiter
from tokenfeed.stream.decoder import (
    UNKNOWN_VENUE,
    DecodeError,
    Side,
    SwapEventDecoder,
    native_delta,
    token_deltas,
)

TRACKED = "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm"
TRADER = "TraderWa11et1111111111111111111111111111111"
POOL = "PoolVau1t111111111111111111111111111111111"
RAYDIUM = "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8"


def _balance(index, mint, owner, amount, decimals=6):
    return {
        "accountIndex": index,
        "mint": mint,
        "owner": owner,
        "uiTokenAmount": {"uiAmount": amount, "decimals": decimals, "amount": str(int(amount * 10**decimals))},
    }


def _record(pre, post, *, err=None, block_time=1_767_225_600, keys=None, pre_lamports=None, post_lamports=None):
    keys = keys if keys is not None else [
        {"pubkey": TRADER, "signer": True},
        {"pubkey": POOL, "signer": False},
        {"pubkey": RAYDIUM, "signer": False},
    ]
    return {
        "signature": "sig-1",
        "transaction": {
            "transaction": {"signatures": ["sig-1"], "message": {"accountKeys": keys}},
            "meta": {
                "err": err,
                "preTokenBalances": pre,
                "postTokenBalances": post,
                "preBalances": pre_lamports or [],
                "postBalances": post_lamports or [],
            },
        },
        "blockTime": block_time,
    }


def _swap(tracked_delta, counter_mint, counter_delta, **kwargs):
    pre = [
        _balance(1, TRACKED, TRADER, 5000.0),
        _balance(2, counter_mint, TRADER, 50.0),
    ]
    post = [
        _balance(1, TRACKED, TRADER, 5000.0 + tracked_delta),
        _balance(2, counter_mint, TRADER, 50.0 + counter_delta),
    ]
    return _record(pre, post, **kwargs)


def _oracle_with(prices):
    clock = FakeClock()
    oracle = PriceOracleCache(
        FakeDexscreener(prices),
        limiter=RateLimiter(min_interval_s=0.0, clock=clock, sleep=clock.sleep),
        coordinator=RequestCoordinator(RetryConfig(max_retries=0)),
        clock=clock,
    )
    oracle.refresh()
    return oracle


def test_buy_priced_through_oracle():
    decoder = SwapEventDecoder(TRACKED, oracle=_oracle_with({SOL_MINT: 200.0}))
    event = decoder.decode(_swap(1000.0, SOL_MINT, -5.0))
    assert event is not None
    assert event.side is Side.BUY
    assert event.amount == pytest.approx(1000.0)
    assert event.price_per_unit == pytest.approx(0.005)
    assert event.usd_value == pytest.approx(1000.0)
    assert event.trader == TRADER
    assert event.tx_id == "sig-1"
    assert event.time == 1_767_225_600
    assert event.source == "Raydium"
    assert event.counter_asset == SOL_MINT


def test_sell():
    decoder = SwapEventDecoder(TRACKED, oracle=_oracle_with({SOL_MINT: 200.0}))
    event = decoder.decode(_swap(-250.0, SOL_MINT, 1.25))
    assert event.side is Side.SELL
    assert event.amount == pytest.approx(250.0)
    assert event.usd_value == pytest.approx(250.0)


def test_stale_oracle_uses_fallback_price():
    decoder = SwapEventDecoder(TRACKED, oracle=_oracle_with({}))
    event = decoder.decode(_swap(1000.0, SOL_MINT, -5.0))
    assert event.usd_value == pytest.approx(5.0 * 240.0)


def test_no_oracle_uses_fallback_table():
    decoder = SwapEventDecoder(TRACKED, fallback_prices={"USDC": 1.0})
    event = decoder.decode(_swap(100.0, USDC_MINT, -20.0))
    assert event.usd_value == pytest.approx(20.0)
    assert event.price_per_unit == pytest.approx(0.2)


def test_unknown_counter_asset_has_zero_usd():
    decoder = SwapEventDecoder(TRACKED)
    event = decoder.decode(_swap(100.0, "SomeOtherMint1111111111111111111111111111", -20.0))
    assert event.usd_value == 0.0
    assert event.price_per_unit == pytest.approx(0.2)


def test_dust_delta_dropped():
    decoder = SwapEventDecoder(TRACKED)
    assert decoder.decode(_swap(1e-9, SOL_MINT, -5.0)) is None


def test_failed_transaction_dropped():
    decoder = SwapEventDecoder(TRACKED)
    assert decoder.decode(_swap(1000.0, SOL_MINT, -5.0, err={"InstructionError": [0, "Custom"]})) is None


def test_record_without_tracked_mint_dropped():
    decoder = SwapEventDecoder("NotTrackedMint11111111111111111111111111111")
    assert decoder.decode(_swap(1000.0, SOL_MINT, -5.0)) is None


def test_native_fallback_when_no_counter_token():
    pre = [_balance(1, TRACKED, TRADER, 0.0)]
    post = [_balance(1, TRACKED, TRADER, 400.0)]
    record = _record(
        pre,
        post,
        pre_lamports=[10_000_000_000, 1_000_000],
        post_lamports=[8_000_000_000, 1_000_000],
    )
    event = SwapEventDecoder(TRACKED, fallback_prices={"SOL": 100.0}).decode(record)
    assert event.counter_asset == SOL_MINT
    assert event.price_per_unit == pytest.approx(2.0 / 400.0)
    assert event.usd_value == pytest.approx(200.0)


def test_account_present_only_after_counts_fully():
    post = [_balance(3, TRACKED, TRADER, 75.0)]
    deltas = token_deltas({"preTokenBalances": [], "postTokenBalances": post})
    assert [(d.mint, d.delta) for d in deltas] == [(TRACKED, 75.0)]


def test_largest_counter_delta_wins():
    pre = [
        _balance(1, TRACKED, TRADER, 0.0),
        _balance(2, USDC_MINT, TRADER, 100.0),
        _balance(3, SOL_MINT, TRADER, 1.0),
    ]
    post = [
        _balance(1, TRACKED, TRADER, 10.0),
        _balance(2, USDC_MINT, TRADER, 60.0),
        _balance(3, SOL_MINT, TRADER, 0.99),
    ]
    event = SwapEventDecoder(TRACKED).decode(_record(pre, post))
    assert event.counter_asset == USDC_MINT
    assert event.usd_value == pytest.approx(40.0)


def test_plain_string_keys_and_unknown_venue():
    record = _swap(10.0, USDC_MINT, -1.0, keys=[TRADER, POOL], block_time=None)
    event = SwapEventDecoder(TRACKED).decode(record)
    assert event.trader == TRADER
    assert event.source == UNKNOWN_VENUE
    assert event.time > 0


def test_flat_record_shape():
    nested = _swap(10.0, USDC_MINT, -1.0)
    flat = {
        "transaction": nested["transaction"]["transaction"],
        "meta": nested["transaction"]["meta"],
        "blockTime": 1_767_225_600,
    }
    event = SwapEventDecoder(TRACKED).decode(flat)
    assert event.tx_id == "sig-1"
    assert event.side is Side.BUY


def test_malformed_record_raises():
    with pytest.raises(DecodeError):
        SwapEventDecoder(TRACKED).decode({"foo": 1})
    with pytest.raises(DecodeError):
        SwapEventDecoder(TRACKED).decode(["not", "a", "dict"])


def test_wrongly_typed_nested_fields_raise_decode_error():
    decoder = SwapEventDecoder(TRACKED)
    bad_amount = _swap(10.0, USDC_MINT, -1.0)
    bad_amount["transaction"]["meta"]["preTokenBalances"][0]["uiTokenAmount"] = 0
    with pytest.raises(DecodeError):
        decoder.decode(bad_amount)

    bad_balances = _swap(10.0, USDC_MINT, -1.0)
    bad_balances["transaction"]["meta"]["postTokenBalances"] = {"0": "x"}
    with pytest.raises(DecodeError):
        decoder.decode(bad_balances)

    bad_message = _swap(10.0, USDC_MINT, -1.0)
    bad_message["transaction"]["transaction"]["message"] = "opaque"
    with pytest.raises(DecodeError):
        decoder.decode(bad_message)

    bad_keys = _swap(10.0, USDC_MINT, -1.0)
    bad_keys["transaction"]["transaction"]["message"]["accountKeys"] = 7
    with pytest.raises(DecodeError):
        decoder.decode(bad_keys)


def test_native_delta_requires_matching_lengths():
    assert native_delta({"preBalances": [1, 2], "postBalances": [1]}) is None
    assert native_delta({"preBalances": [5], "postBalances": [5]}) is None


def test_event_to_dict():
    event = SwapEventDecoder(TRACKED).decode(_swap(10.0, USDC_MINT, -1.0))
    d = event.to_dict()
    assert d["side"] == "BUY"
    assert d["tx_id"] == "sig-1"
