"""
Streaming transport for ledger transaction notifications.

One aiohttp websocket per tracked mint. The receive loop only parses frames
and enqueues notification payloads; a separate task drains the queue in
arrival order, decodes each record and hands trade events to the subscriber.
Keepalive pings go out on a fixed interval and dropped connections are
re-established with exponential backoff up to a bounded number of attempts.
"""
from __future__ import annotations

import asyncio
import contextlib
import enum
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import aiohttp

from tokenfeed.providers.ratelimit import _mask

from .decoder import DecodeError, SwapEventDecoder, TradeEvent

logger = logging.getLogger(__name__)

SUBSCRIBE_ID = 420
UNSUBSCRIBE_ID = 2
PING_MESSAGE = {"jsonrpc": "2.0", "id": "ping", "method": "ping"}

_STOP = object()


class StreamStatus(str, enum.Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


def subscribe_request(mint: str) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": SUBSCRIBE_ID,
        "method": "transactionSubscribe",
        "params": [
            {"accountInclude": [mint]},
            {
                "commitment": "processed",
                "encoding": "jsonParsed",
                "transactionDetails": "full",
                "showRewards": True,
                "maxSupportedTransactionVersion": 0,
            },
        ],
    }


def unsubscribe_request(subscription_id: Any) -> dict:
    return {
        "jsonrpc": "2.0",
        "id": UNSUBSCRIBE_ID,
        "method": "transactionUnsubscribe",
        "params": [subscription_id],
    }


def reconnect_delay(base_delay_s: float, attempt: int) -> float:
    """Delay before reconnect attempt n (1-based): base * 2^(n-1)."""
    return base_delay_s * (2 ** max(0, attempt - 1))


class TransactionStream:
    """
    Usage:
        stream = TransactionStream(url, SwapEventDecoder(mint, oracle), on_trade, on_status, api_key=key)
        task = asyncio.create_task(stream.run())
        ...
        await stream.stop()
    """

    def __init__(
        self,
        url: str,
        decoder: SwapEventDecoder,
        on_trade: Callable[[TradeEvent], None],
        on_status: Optional[Callable[[StreamStatus], None]] = None,
        api_key: Optional[str] = None,
        ping_interval_s: float = 30.0,
        reconnect_base_delay_s: float = 1.0,
        max_reconnect_attempts: int = 10,
        session_factory: Optional[Callable[[], aiohttp.ClientSession]] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        self.url = url.rstrip("/")
        self.decoder = decoder
        self.on_trade = on_trade
        self.on_status = on_status
        self._api_key = api_key or ""
        self.ping_interval_s = ping_interval_s
        self.reconnect_base_delay_s = reconnect_base_delay_s
        self.max_reconnect_attempts = max_reconnect_attempts
        self._session_factory = session_factory or aiohttp.ClientSession
        self._sleep = sleep or asyncio.sleep
        self._queue: Optional[asyncio.Queue] = None
        self._ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._stopping = False
        self.subscription_id: Any = None
        self.status = StreamStatus.DISCONNECTED
        self.trades_emitted = 0

    @property
    def tracked_mint(self) -> str:
        return self.decoder.tracked_mint

    @property
    def queue(self) -> asyncio.Queue:
        """Record queue, created on first use so it binds to the running loop."""
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    @property
    def connect_url(self) -> str:
        return f"{self.url}/?api-key={self._api_key}" if self._api_key else self.url

    def _set_status(self, status: StreamStatus) -> None:
        self.status = status
        if self.on_status is not None:
            try:
                self.on_status(status)
            except Exception:
                logger.exception("Stream status callback failed")

    # --- receive side ---

    def handle_text(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning("Dropping unparseable stream frame (%d bytes)", len(raw or ""))
            return
        if isinstance(message, dict):
            self.handle_message(message)

    def handle_message(self, message: dict) -> None:
        """Route one JSON-RPC frame: confirmation, server error, or notification."""
        if message.get("id") == SUBSCRIBE_ID and message.get("result") is not None:
            self.subscription_id = message["result"]
            logger.info("Subscription confirmed for %s: %s", self.tracked_mint, self.subscription_id)
            return
        if message.get("error"):
            logger.error("Stream server error: %s", message["error"])
            self._set_status(StreamStatus.ERROR)
            return
        if message.get("method") == "transactionNotification":
            result = (message.get("params") or {}).get("result")
            if result is not None:
                self.queue.put_nowait(result)

    # --- decode-and-dispatch side ---

    def _dispatch(self, record: Any) -> None:
        try:
            event = self.decoder.decode(record)
        except DecodeError as exc:
            logger.warning("Skipping malformed stream record: %s", exc)
            return
        except Exception:
            logger.exception("Decoder failed on stream record; skipping it")
            return
        if event is None:
            return
        self.trades_emitted += 1
        try:
            self.on_trade(event)
        except Exception:
            logger.exception("Trade callback failed for %s", event.tx_id)

    async def process_queue(self) -> None:
        """Drain records in arrival order until stop() enqueues the sentinel."""
        while True:
            record = await self.queue.get()
            try:
                if record is _STOP:
                    return
                self._dispatch(record)
            finally:
                self.queue.task_done()

    async def drain(self) -> None:
        await self.queue.join()

    # --- connection ---

    async def _keepalive(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            await asyncio.sleep(self.ping_interval_s)
            try:
                await ws.send_json(PING_MESSAGE)
            except (aiohttp.ClientError, ConnectionError) as exc:
                logger.warning("Keepalive ping failed: %s", exc)
                return
            logger.debug("Sent keepalive ping")

    async def _connect_once(self) -> None:
        self._set_status(StreamStatus.CONNECTING)
        logger.info("Connecting stream for %s (key %s)", self.tracked_mint, _mask(self._api_key) or "none")
        async with self._session_factory() as session:
            async with session.ws_connect(self.connect_url) as ws:
                self._ws = ws
                self._set_status(StreamStatus.CONNECTED)
                await ws.send_json(subscribe_request(self.tracked_mint))
                pinger = asyncio.create_task(self._keepalive(ws))
                try:
                    async for msg in ws:
                        if msg.type == aiohttp.WSMsgType.TEXT:
                            self.handle_text(msg.data)
                        elif msg.type == aiohttp.WSMsgType.ERROR:
                            logger.warning("Stream connection error: %s", ws.exception())
                            self._set_status(StreamStatus.ERROR)
                            break
                finally:
                    pinger.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await pinger
                    self._ws = None
                    self.subscription_id = None
        self._set_status(StreamStatus.DISCONNECTED)

    async def run(self) -> None:
        """Connect, stream and reconnect until stop() or reconnect attempts run out."""
        self._stopping = False
        self._queue = asyncio.Queue()
        dispatcher = asyncio.create_task(self.process_queue())
        attempts = 0
        try:
            while not self._stopping:
                try:
                    await self._connect_once()
                    attempts = 0
                except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
                    logger.warning("Stream connection failed: %s", exc)
                    self._set_status(StreamStatus.ERROR)
                if self._stopping:
                    break
                if attempts >= self.max_reconnect_attempts:
                    logger.error("Max reconnection attempts reached for %s", self.tracked_mint)
                    break
                attempts += 1
                delay = reconnect_delay(self.reconnect_base_delay_s, attempts)
                logger.info(
                    "Reconnecting in %.1fs (attempt %d/%d)", delay, attempts, self.max_reconnect_attempts
                )
                await self._sleep(delay)
        finally:
            self.queue.put_nowait(_STOP)
            await dispatcher
            if self.status != StreamStatus.DISCONNECTED:
                self._set_status(StreamStatus.DISCONNECTED)

    async def stop(self) -> None:
        """Unsubscribe and close; run() returns once the socket is gone."""
        self._stopping = True
        ws = self._ws
        if ws is None or ws.closed:
            return
        if self.subscription_id is not None:
            try:
                await ws.send_json(unsubscribe_request(self.subscription_id))
            except (aiohttp.ClientError, ConnectionError) as exc:
                logger.warning("Unsubscribe failed: %s", exc)
        await ws.close()
