"""
Tests for the streaming transport: subscribe handshake, ordered dispatch,
status callbacks, reconnect backoff and unsubscribe on stop. No live network.
"""
from __future__ import annotations

import asyncio
import contextlib
import json

import aiohttp

from tokenfeed.stream.decoder import DecodeError, SwapEventDecoder
from tokenfeed.stream.transport import (
    PING_MESSAGE,
    StreamStatus,
    TransactionStream,
    reconnect_delay,
    subscribe_request,
    unsubscribe_request,
)

MINT = "EKpQGSJtjMFqKZ9KQanSqYXRcF8fBopzLHYxdM65zcjm"


class FakeDecoder:
    tracked_mint = MINT

    def decode(self, record):
        if record == "bad":
            raise DecodeError("malformed")
        if record == "crash":
            raise RuntimeError("decoder bug")
        return record.get("event")


class FakeMsg:
    def __init__(self, payload, type_=aiohttp.WSMsgType.TEXT):
        self.type = type_
        self.data = json.dumps(payload) if not isinstance(payload, str) else payload


class FakeWS:
    def __init__(self, frames, hold_open=False):
        self.frames = list(frames)
        self.hold_open = hold_open
        self.sent = []
        self.closed = False
        self._closed_event = asyncio.Event()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.closed = True
        return False

    def __aiter__(self):
        return self

    async def __anext__(self):
        await asyncio.sleep(0)
        if self.frames and not self.closed:
            return self.frames.pop(0)
        if self.hold_open and not self.closed:
            await self._closed_event.wait()
        raise StopAsyncIteration

    async def send_json(self, obj):
        self.sent.append(obj)

    async def close(self):
        self.closed = True
        self._closed_event.set()

    def exception(self):
        return None


class FakeSession:
    def __init__(self, connections):
        self._connections = connections
        self.urls = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def ws_connect(self, url):
        self.urls.append(url)
        ws = self._connections.pop(0)
        if isinstance(ws, Exception):
            raise ws
        return ws


def _notification(event):
    return {"jsonrpc": "2.0", "method": "transactionNotification", "params": {"result": {"event": event}}}


def _stream(connections, trades, statuses, sleeps=None, **kwargs):
    session = FakeSession(connections)

    async def fake_sleep(delay):
        if sleeps is not None:
            sleeps.append(delay)

    stream = TransactionStream(
        "wss://stream.example",
        FakeDecoder(),
        trades.append,
        statuses.append,
        api_key="secret-key-123456",
        session_factory=lambda: session,
        sleep=fake_sleep,
        **kwargs,
    )
    return stream, session


def test_subscribe_request_shape():
    req = subscribe_request(MINT)
    assert req["id"] == 420
    assert req["method"] == "transactionSubscribe"
    assert req["params"][0] == {"accountInclude": [MINT]}
    assert req["params"][1]["encoding"] == "jsonParsed"
    assert req["params"][1]["maxSupportedTransactionVersion"] == 0
    assert unsubscribe_request(77)["params"] == [77]


def test_reconnect_delay_doubles():
    assert [reconnect_delay(1.0, n) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]


def test_session_dispatches_in_order():
    trades, statuses = [], []

    async def scenario():
        ws = FakeWS(
            [
                FakeMsg({"jsonrpc": "2.0", "id": 420, "result": 77}),
                FakeMsg(_notification("t1")),
                FakeMsg({"jsonrpc": "2.0", "id": "ping", "result": "pong"}),
                FakeMsg("not json"),
                FakeMsg(_notification(None)),
                FakeMsg(_notification("t2")),
            ]
        )
        stream, session = _stream([ws], trades, statuses, max_reconnect_attempts=0)
        await stream.run()
        return stream, session, ws

    stream, session, ws = asyncio.run(scenario())

    assert trades == ["t1", "t2"]
    assert stream.trades_emitted == 2
    assert ws.sent[0] == subscribe_request(MINT)
    assert session.urls == ["wss://stream.example/?api-key=secret-key-123456"]
    assert statuses == [StreamStatus.CONNECTING, StreamStatus.CONNECTED, StreamStatus.DISCONNECTED]


def test_server_error_sets_error_status():
    trades, statuses = [], []

    async def scenario():
        stream, _ = _stream([], trades, statuses)
        stream.handle_message({"jsonrpc": "2.0", "id": 420, "error": {"code": -32602, "message": "bad"}})
        return stream

    stream = asyncio.run(scenario())
    assert stream.status is StreamStatus.ERROR
    assert statuses == [StreamStatus.ERROR]
    assert stream.subscription_id is None


def test_malformed_record_and_failing_subscriber_do_not_stop_dispatch():
    statuses = []
    seen = []

    def on_trade(event):
        seen.append(event)
        if event == "boom":
            raise RuntimeError("subscriber bug")

    async def scenario():
        stream = TransactionStream("wss://x", FakeDecoder(), on_trade, statuses.append)
        worker = asyncio.create_task(stream.process_queue())
        stream.handle_message({"method": "transactionNotification", "params": {"result": "bad"}})
        stream.handle_message(_notification("boom"))
        stream.handle_message(_notification("after"))
        await stream.drain()
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker

    asyncio.run(scenario())
    assert seen == ["boom", "after"]


def test_reconnects_with_backoff_until_attempts_spent():
    trades, statuses, sleeps = [], [], []

    async def scenario():
        failures = [aiohttp.ClientConnectionError("refused") for _ in range(4)]
        stream, session = _stream(failures, trades, statuses, sleeps=sleeps, max_reconnect_attempts=3)
        await stream.run()
        return session

    session = asyncio.run(scenario())
    assert len(session.urls) == 4
    assert sleeps == [1.0, 2.0, 4.0]
    assert StreamStatus.ERROR in statuses
    assert statuses[-1] is StreamStatus.DISCONNECTED


def test_successful_connection_resets_attempts():
    trades, statuses, sleeps = [], [], []

    async def scenario():
        connections = [
            aiohttp.ClientConnectionError("refused"),
            FakeWS([FakeMsg(_notification("t1"))]),
            aiohttp.ClientConnectionError("refused"),
        ]
        stream, _ = _stream(connections, trades, statuses, sleeps=sleeps, max_reconnect_attempts=1)
        await stream.run()

    asyncio.run(scenario())
    assert trades == ["t1"]
    assert sleeps == [1.0, 1.0]


def test_stop_unsubscribes_and_closes():
    trades, statuses = [], []

    async def scenario():
        ws = FakeWS([FakeMsg({"jsonrpc": "2.0", "id": 420, "result": 77})], hold_open=True)
        stream, _ = _stream([ws], trades, statuses, ping_interval_s=3600.0)
        task = asyncio.create_task(stream.run())
        for _ in range(200):
            if stream.subscription_id is not None:
                break
            await asyncio.sleep(0)
        await stream.stop()
        await asyncio.wait_for(task, timeout=5)
        return ws

    ws = asyncio.run(scenario())
    assert ws.closed
    assert unsubscribe_request(77) in ws.sent
    assert PING_MESSAGE not in ws.sent
    assert statuses[-1] is StreamStatus.DISCONNECTED


def test_unexpected_decoder_error_skips_only_that_record():
    seen = []

    async def scenario():
        stream = TransactionStream("wss://x", FakeDecoder(), seen.append)
        worker = asyncio.create_task(stream.process_queue())
        stream.handle_message({"method": "transactionNotification", "params": {"result": "crash"}})
        stream.handle_message(_notification("after"))
        await stream.drain()
        assert not worker.done()
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker

    asyncio.run(scenario())
    assert seen == ["after"]


def test_wrongly_typed_balance_fields_do_not_stop_real_decoder():
    seen = []
    bad = {
        "signature": "sig-bad",
        "transaction": {
            "transaction": {"signatures": ["sig-bad"], "message": {"accountKeys": []}},
            "meta": {
                "err": None,
                "preTokenBalances": [{"accountIndex": 0, "mint": MINT, "owner": "w", "uiTokenAmount": 0}],
                "postTokenBalances": [],
            },
        },
    }

    async def scenario():
        stream = TransactionStream("wss://x", SwapEventDecoder(MINT), seen.append)
        worker = asyncio.create_task(stream.process_queue())
        stream.handle_message({"method": "transactionNotification", "params": {"result": bad}})
        stream.handle_message({"method": "transactionNotification", "params": {"result": "not a record"}})
        await stream.drain()
        assert not worker.done()
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker

    asyncio.run(scenario())
    assert seen == []


def test_stream_built_outside_event_loop_runs_under_asyncio_run():
    trades, statuses = [], []
    ws = FakeWS([FakeMsg(_notification("t1"))])
    stream, _ = _stream([ws], trades, statuses, max_reconnect_attempts=0)
    assert stream._queue is None

    asyncio.run(stream.run())

    assert trades == ["t1"]
    assert statuses[-1] is StreamStatus.DISCONNECTED
