"""
Top-level CLI dispatcher: tokenfeed <command> [args...].
Every command builds one Engine from config, prints JSON, and tears it down.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import asdict
from typing import Any, List, Optional

from tokenfeed._version import __version__
from tokenfeed.engine import Engine
from tokenfeed.market_stats import TIMEFRAME_DAYS, transaction_to_dict
from tokenfeed.token_info import calculate_safety_score

logger = logging.getLogger(__name__)


def _print_json(obj: Any) -> None:
    print(json.dumps(obj, indent=2, default=str), flush=True)


def _cmd_price_data(engine: Engine, args: argparse.Namespace) -> int:
    from tokenfeed.api import price_payload
    from tokenfeed.tokens import resolve_token

    result = engine.orchestrator.get_market_data(
        args.address, args.timeframe, before=args.before, limit=args.limit
    )
    payload = price_payload(result, resolve_token(args.address).symbol)
    if args.tail:
        payload["data"] = payload["data"][-args.tail:]
    _print_json(payload)
    return 0


def _cmd_trending(engine: Engine, args: argparse.Namespace) -> int:
    _print_json([t.to_dict() for t in engine.trending.get_trending()])
    return 0


def _cmd_security(engine: Engine, args: argparse.Namespace) -> int:
    security = engine.security.get_security(args.address, args.chain)
    score = calculate_safety_score(security)
    _print_json({"security": asdict(security) if security else None, "safety": score.to_dict()})
    return 0 if security is not None else 1


def _cmd_holders(engine: Engine, args: argparse.Namespace) -> int:
    holders = engine.holders.get_holders(args.address, args.limit)
    _print_json([asdict(h) for h in holders])
    return 0


def _cmd_volume_marketcap(engine: Engine, args: argparse.Namespace) -> int:
    series = engine.market_stats.get_volume_market_cap(args.address, args.timeframe)
    _print_json(series.to_dict())
    return 0 if series.points else 1


def _cmd_transactions(engine: Engine, args: argparse.Namespace) -> int:
    txs = engine.market_stats.get_recent_transactions(args.address, args.limit)
    _print_json([transaction_to_dict(tx) for tx in txs])
    return 0


def _cmd_stream(engine: Engine, args: argparse.Namespace) -> int:
    def on_trade(event) -> None:
        print(json.dumps(event.to_dict()), flush=True)

    def on_status(status) -> None:
        logger.info("Stream status: %s", status.value)

    engine.oracle.start()
    stream = engine.stream_for(args.mint, on_trade, on_status)

    async def _run() -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, lambda: asyncio.ensure_future(stream.stop()))
            except NotImplementedError:
                # Windows event loops have no signal handlers; Ctrl+C raises instead.
                pass
        await stream.run()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0


def _cmd_api(engine: Engine, args: argparse.Namespace) -> int:
    import uvicorn

    from tokenfeed.api import create_app

    uvicorn.run(create_app(engine), host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


_COMMANDS = {
    "price-data": _cmd_price_data,
    "trending": _cmd_trending,
    "security": _cmd_security,
    "holders": _cmd_holders,
    "volume-marketcap": _cmd_volume_marketcap,
    "transactions": _cmd_transactions,
    "stream": _cmd_stream,
    "api": _cmd_api,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tokenfeed", description="Token market data engine CLI")
    parser.add_argument("--version", action="version", version=f"tokenfeed {__version__}")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    sub = parser.add_subparsers(dest="command", help="command")

    p = sub.add_parser("price-data", help="Candles for a token (falls back across providers)")
    p.add_argument("address", help="Token slug (wif, solana, ...) or contract address")
    p.add_argument("--timeframe", default="1h", choices=["1m", "5m", "15m", "1h", "4h", "1d", "1w"])
    p.add_argument("--before", type=int, default=None, help="Unix-second cursor for older pages")
    p.add_argument("--limit", type=int, default=None)
    p.add_argument("--tail", type=int, default=0, help="Print only the last N candles")

    sub.add_parser("trending", help="Trending tokens")

    p = sub.add_parser("security", help="Security scan and safety score")
    p.add_argument("address")
    p.add_argument("--chain", default="solana")

    p = sub.add_parser("holders", help="Top holders")
    p.add_argument("address")
    p.add_argument("--limit", type=int, default=20)

    p = sub.add_parser("volume-marketcap", help="Daily volume and market cap")
    p.add_argument("address")
    p.add_argument("--timeframe", default="1W", choices=sorted(TIMEFRAME_DAYS))

    p = sub.add_parser("transactions", help="Recent swaps")
    p.add_argument("address")
    p.add_argument("--limit", type=int, default=30)

    p = sub.add_parser("stream", help="Print live trades for a mint until interrupted")
    p.add_argument("mint")

    p = sub.add_parser("api", help="Serve the REST API")
    p.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    p.add_argument("--port", type=int, default=8000, help="Port (default: 8000)")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    if not args.command:
        parser.print_help()
        return 0

    engine = Engine.from_config()
    try:
        return _COMMANDS[args.command](engine, args)
    finally:
        engine.teardown()


if __name__ == "__main__":
    raise SystemExit(main())
