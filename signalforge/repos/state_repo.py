"""State repository: JSON persistence for the market context and trade journal."""

import json
import logging
import math
import os
import pathlib
import time
from typing import Any, Optional

from signalforge.market.context import MarketDataContext

logger = logging.getLogger("signalforge.repos.state")

MAX_TRADE_HISTORY = 1000
STATE_VERSION = 1


class TradeJournal:
    """Closed-trade log with running expectancy.

    Args:
        records: Previously persisted trades, oldest first.
        limit: Maximum trades retained; the oldest are dropped first.
    """

    def __init__(self, records: Optional[list[dict]] = None, limit: int = MAX_TRADE_HISTORY) -> None:
        self._limit = limit
        self.trades: list[dict] = list(records or [])[-limit:]

    # ── Write ────────────────────────────────────────────────────────────

    def log_outcome(
        self,
        symbol: str,
        direction: str,
        entry: float,
        exit: float,
        pnl: float,
        confidence: float = 0.0,
        stop_loss: float = 0.0,
        take_profit: float = 0.0,
        market_type: str = "futures",
        leverage: float = 1.0,
        timestamp: Optional[int] = None,
    ) -> Optional[dict]:
        """Append one closed trade and return the stored record.

        Returns ``None`` (and stores nothing) if the symbol is empty or a
        price or P&L is not finite.
        """
        if not symbol or not all(math.isfinite(v) for v in (entry, exit, pnl)):
            logger.warning("Rejected trade outcome for %r: non-finite values", symbol)
            return None

        trade = {
            "symbol": symbol,
            "direction": direction,
            "entry": round(entry, 6),
            "exit": round(exit, 6),
            "pnl": round(pnl, 2),
            "confidence": round(confidence or 0.0, 2),
            "stop_loss": round(stop_loss or 0.0, 6),
            "take_profit": round(take_profit or 0.0, 6),
            "timestamp": timestamp if timestamp is not None else int(time.time() * 1000),
            "market_type": market_type,
            "leverage": leverage,
        }
        self.trades.append(trade)
        del self.trades[:-self._limit]
        return trade

    # ── Read ─────────────────────────────────────────────────────────────

    def stats(self) -> dict[str, Any]:
        """Win/loss counts, averages and expectancy over retained trades.

            expectancy = P(win) × avg_win − P(loss) × |avg_loss|

        Break-even trades count towards neither side.  Expectancy is 0 until
        there is at least one win and one loss.
        """
        wins = [t["pnl"] for t in self.trades if t["pnl"] > 0]
        losses = [t["pnl"] for t in self.trades if t["pnl"] < 0]
        total = len(wins) + len(losses)

        avg_win = sum(wins) / len(wins) if wins else 0.0
        avg_loss = sum(losses) / len(losses) if losses else 0.0
        win_rate = len(wins) / total * 100 if total else 0.0

        expectancy = 0.0
        if wins and losses:
            p_win = win_rate / 100
            expectancy = p_win * avg_win - (1 - p_win) * abs(avg_loss)

        return {
            "wins": len(wins),
            "losses": len(losses),
            "total": total,
            "win_rate": round(win_rate, 2),
            "avg_win": round(avg_win, 2),
            "avg_loss": round(avg_loss, 2),
            "expectancy": round(expectancy, 2),
            "total_pnl": round(sum(wins) + sum(losses), 2),
            "trades": len(self.trades),
        }


class StateRepo:
    """Reads and writes the process state as one JSON document.

    Args:
        path: Location of the state file; parent directories are created.
    """

    def __init__(self, path: str) -> None:
        self._path = pathlib.Path(path)

    @property
    def path(self) -> pathlib.Path:
        return self._path

    def save(self, state: dict[str, Any]) -> None:
        """Write *state* atomically (temp file, then rename)."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(state, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self._path)

    def load(self) -> dict[str, Any]:
        """Return the stored state, or an empty state if there is none.

        A corrupt file is logged and treated as empty.
        """
        empty = {
            "entanglement_matrix": {},
            "coherence_scores": {},
            "trade_history": [],
            "watch_list": {},
            "meta": {},
        }
        if not self._path.exists():
            return empty
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read state %s: %s", self._path, exc)
            return empty
        if not isinstance(data, dict):
            logger.warning("State file %s does not hold an object", self._path)
            return empty
        empty.update(data)
        return empty

    # ── Context helpers ──────────────────────────────────────────────────

    def snapshot(self, context: MarketDataContext, journal: TradeJournal) -> dict[str, Any]:
        return {
            "entanglement_matrix": context.entanglement,
            "coherence_scores": context.coherence_scores,
            "trade_history": journal.trades,
            "watch_list": context.watch_list,
            "meta": {
                "version": STATE_VERSION,
                "saved_at": int(time.time() * 1000),
                "signals_in_memory": len(context.signal_history),
            },
        }

    def persist(self, context: MarketDataContext, journal: TradeJournal) -> None:
        self.save(self.snapshot(context, journal))
        logger.debug("State saved to %s", self._path)

    def restore(self, context: MarketDataContext) -> TradeJournal:
        """Load saved maps into *context* and return the restored journal."""
        state = self.load()
        context.entanglement.update(state.get("entanglement_matrix") or {})
        context.coherence_scores.update(state.get("coherence_scores") or {})
        context.watch_list.update(state.get("watch_list") or {})
        return TradeJournal(state.get("trade_history") or [])
