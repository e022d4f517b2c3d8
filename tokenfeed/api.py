"""
Read-only REST API over the engine using FastAPI. No auth.

Every response is JSON; internal failures become HTTP 500 with
success=false so the display layer never has to parse an HTML error page.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query
from fastapi.responses import JSONResponse

from ._version import __version__
from .engine import Engine
from .market_stats import transaction_to_dict
from .orchestrator import NormalizedResult
from .timeutils import now_ms
from .tokens import resolve_token

logger = logging.getLogger(__name__)


def price_payload(result: NormalizedResult, symbol: str) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "success": True,
        "data": result.candle_dicts(),
        "hasOHLC": result.has_ohlc,
        "symbol": symbol,
        "lastUpdate": now_ms(),
        "isSynthetic": result.is_synthetic,
        "source": result.source_label,
    }
    if result.fallback_reason:
        payload["fallbackReason"] = result.fallback_reason
    return payload


def create_app(engine: Engine, start_oracle: bool = True) -> FastAPI:
    """App bound to one engine; the oracle runs for the app's lifetime."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if start_oracle:
            engine.oracle.start()
        try:
            yield
        finally:
            engine.teardown()

    app = FastAPI(title="tokenfeed market data API", version=__version__, lifespan=lifespan)
    app.state.engine = engine

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "version": __version__}

    @app.get("/providers/health")
    def providers_health() -> Dict[str, Any]:
        return engine.health()

    @app.get("/price-data")
    def price_data(
        address: str = Query(..., min_length=1),
        timeframe: str = "1h",
        chain: str = "solana",
        before: Optional[int] = None,
        limit: Optional[int] = Query(None, ge=1),
    ):
        symbol = resolve_token(address).symbol
        try:
            result = engine.orchestrator.get_market_data(address, timeframe, before=before, limit=limit)
        except Exception as exc:
            logger.exception("price-data failed for %s %s on %s", address, timeframe, chain)
            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": str(exc) or type(exc).__name__,
                    "data": [],
                    "hasOHLC": False,
                    "symbol": symbol,
                    "lastUpdate": now_ms(),
                },
            )
        return price_payload(result, symbol)

    @app.get("/trending")
    def trending():
        try:
            tokens = engine.trending.get_trending()
        except Exception as exc:
            logger.exception("trending failed")
            return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
        return {"success": True, "data": [t.to_dict() for t in tokens]}

    @app.get("/volume-marketcap")
    def volume_marketcap(
        address: str = Query(..., min_length=1),
        timeframe: str = Query("1W", pattern="^(1W|2W|1M)$"),
    ):
        try:
            series = engine.market_stats.get_volume_market_cap(address, timeframe)
        except Exception as exc:
            logger.exception("volume-marketcap failed for %s %s", address, timeframe)
            return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
        return {"success": True, **series.to_dict()}

    @app.get("/transactions")
    def transactions(address: str = Query(..., min_length=1), limit: int = Query(30, ge=1, le=50)):
        try:
            txs = engine.market_stats.get_recent_transactions(address, limit)
        except Exception as exc:
            logger.exception("transactions failed for %s", address)
            return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})
        return {"success": True, "data": [transaction_to_dict(tx) for tx in txs]}

    return app


def create_default_app() -> FastAPI:
    """Factory for `uvicorn --factory tokenfeed.api:create_default_app`."""
    return create_app(Engine.from_config())
