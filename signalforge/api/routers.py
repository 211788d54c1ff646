"""Internal API routers: /status, /signals, /journal, /command endpoints.

No business logic.  Delegates to the market context, the engine manager and
the command dispatcher injected at startup.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from signalforge.commands.dispatcher import normalize_symbol

logger = logging.getLogger("signalforge.api")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_context = None          # Set via configure_routers()
_engine_manager = None   # Set via configure_routers()
_dispatcher = None       # Set via configure_routers()
_journal = None          # Set via configure_routers()


def configure_routers(
    context,
    engine_manager=None,
    dispatcher=None,
    journal=None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        context: The shared ``MarketDataContext``.
        engine_manager: An ``EngineManager`` for pipeline status.
        dispatcher: A ``CommandDispatcher`` behind ``POST /command``.
        journal: The ``TradeJournal`` reported by ``/journal``.
    """
    global _context, _engine_manager, _dispatcher, _journal  # noqa: PLW0603
    _context = context
    _engine_manager = engine_manager
    _dispatcher = dispatcher
    _journal = journal


def _require_context():
    if _context is None:
        raise HTTPException(status_code=503, detail="Pipeline not started")
    return _context


# ── Status ───────────────────────────────────────────────────────────────


@router.get("/status")
async def get_status():
    """Pipeline status plus context counters."""
    context = _require_context()
    pipelines = _engine_manager.get_status()["pipelines"] if _engine_manager else {}
    return {
        "pipelines": pipelines,
        "signals_in_memory": len(context.signal_history),
        "watch_list": context.watch_list,
        "entanglement_nodes": len(context.entanglement),
        "coherence_scores": context.coherence_scores,
    }


@router.get("/status/{pipeline_name}")
async def get_pipeline_status(pipeline_name: str):
    if _engine_manager is None:
        raise HTTPException(status_code=404, detail=f"Unknown pipeline: {pipeline_name}")
    status = _engine_manager.get_status(pipeline_name)
    if "error" in status:
        raise HTTPException(status_code=404, detail=status["error"])
    return status


# ── Signals ──────────────────────────────────────────────────────────────


@router.get("/signals")
async def get_signals(limit: int = Query(default=50, ge=1, le=500)):
    """Most recent signals, newest first."""
    context = _require_context()
    signals = [s.to_dict() for s in context.recent_signals(limit)]
    return {"signals": signals, "count": len(signals)}


@router.get("/signals/{symbol}")
async def get_symbol_signal(symbol: str, timeframe: Optional[str] = None):
    """Latest signal for *symbol* (optionally for one timeframe)."""
    context = _require_context()
    normalized = normalize_symbol(symbol)
    signal = context.latest_signal(normalized, timeframe)
    if signal is None:
        raise HTTPException(status_code=404, detail=f"No signal for {normalized}")
    return signal.to_dict()


# ── Journal & commands ───────────────────────────────────────────────────


@router.get("/journal")
async def get_journal(limit: int = Query(default=50, ge=1, le=1000)):
    if _journal is None:
        return {"stats": None, "trades": []}
    return {"stats": _journal.stats(), "trades": _journal.trades[-limit:][::-1]}


@router.post("/command")
async def post_command(body: dict):
    """Run a text command (``{"text": "/signal BTC 1h"}``) and return the reply."""
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Command dispatcher not configured")
    text = body.get("text")
    if not isinstance(text, str) or not text.strip():
        raise HTTPException(status_code=422, detail="'text' must be a non-empty string")
    reply = await _dispatcher.handle(text, body.get("destination"))
    return {"reply": reply}
