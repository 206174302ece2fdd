from __future__ import annotations

import asyncio
import logging
import traceback
from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache
from typing import Any

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tradebot import __version__
from tradebot.utils.config_loader import load_config, resolve_path
from tradebot.utils.journal import TradeJournal, records

logger = logging.getLogger(__name__)

# Thread pool for blocking journal reads so they don't freeze the event loop.
_db_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="journal_ro")


@lru_cache(maxsize=1)
def get_journal() -> TradeJournal:
    cfg = load_config()
    path = str((cfg.get("journal") or {}).get("path", "tradebot.db"))
    return TradeJournal(resolve_path(path))


app = FastAPI(
    title="Trading Bot Status API",
    version=__version__,
)

# Local dev defaults.
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
    allow_credentials=False,
    allow_methods=["GET"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return a clean JSON 500 instead of a stack trace."""
    logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}")
    logger.debug(traceback.format_exc())
    return JSONResponse(
        status_code=500,
        content={
            "detail": f"Internal server error: {type(exc).__name__}",
            "message": str(exc)[:200],
        },
    )


async def _run_in_executor(func, *args, timeout_seconds: float = 3.0, **kwargs):
    """
    Run a blocking journal read in the thread pool with a timeout.
    Returns None if the read takes longer than timeout_seconds.
    """
    loop = asyncio.get_running_loop()
    try:
        return await asyncio.wait_for(
            loop.run_in_executor(_db_executor, lambda: func(*args, **kwargs)),
            timeout=timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(f"Journal read timed out after {timeout_seconds}s: {func.__name__}")
        return None


@app.get("/api/health")
async def health(journal: TradeJournal = Depends(get_journal)) -> dict[str, Any]:
    db_ok = False
    db_error = None
    try:
        conn = journal._connect_ro()
        try:
            conn.execute("SELECT 1").fetchone()
        finally:
            conn.close()
        db_ok = True
    except Exception as e:
        db_error = str(e)

    return {
        "status": "ok" if db_ok else "degraded",
        "db_path": journal.path,
        "db_ok": db_ok,
        "db_error": db_error,
    }


@app.get("/api/status")
async def status(journal: TradeJournal = Depends(get_journal)) -> dict[str, Any]:
    row = await _run_in_executor(journal.get_status)
    if row is None:
        return {"position": None, "last_buy_price": None, "last_price": None, "current_step": None, "last_update": None}
    return row


@app.get("/api/history/events")
async def history_events(
    limit: int = Query(200, ge=1, le=5000),
    journal: TradeJournal = Depends(get_journal),
) -> list[dict[str, Any]]:
    return records(await _run_in_executor(journal.get_events, limit=limit))


@app.get("/api/history/trades")
async def history_trades(journal: TradeJournal = Depends(get_journal)) -> list[dict[str, Any]]:
    return records(await _run_in_executor(journal.get_trades))


@app.get("/api/history/prices")
async def history_prices(
    limit: int = Query(100, ge=1, le=5000),
    journal: TradeJournal = Depends(get_journal),
) -> list[dict[str, Any]]:
    return records(await _run_in_executor(journal.get_prices, limit=limit))
