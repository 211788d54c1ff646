"""Market data context: the process-level shared state of the pipeline.

One ``MarketDataContext`` is created by the orchestrator and passed by
reference to every component that needs a cache or a cross-call map.
Nothing here is a module-level singleton, so tests get a fresh context each.
"""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Optional

PRICE_TTL_SECONDS = 1.0
CANDLE_TTL_SECONDS = 30.0
DEFAULT_HISTORY_LIMIT = 500


@dataclass
class _CacheEntry:
    value: Any
    stored_at: float


class MarketDataContext:
    """Shared caches and maps for one running process.

    Args:
        history_limit: Maximum number of signals retained; the oldest entry
            is evicted first.
        clock: Monotonic time source (seconds).  Injected for tests.
    """

    def __init__(
        self,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._clock = clock
        self._cache: dict[str, _CacheEntry] = {}
        self._history_limit = history_limit
        self._signal_history: OrderedDict[str, Any] = OrderedDict()
        self.coherence_scores: dict[str, float] = {}
        self.entanglement: dict[str, dict] = {}
        self.watch_list: dict[str, dict] = {}

    # ── TTL cache ────────────────────────────────────────────────────────

    def cache_get(self, key: str, ttl: float) -> Optional[Any]:
        """Return the cached value for *key* if younger than *ttl* seconds."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= ttl:
            return None
        return entry.value

    def cache_put(self, key: str, value: Any) -> None:
        self._cache[key] = _CacheEntry(value=value, stored_at=self._clock())

    def cache_clear(self) -> None:
        self._cache.clear()

    # ── Signal history ───────────────────────────────────────────────────

    def record_signal(self, key: str, signal: Any) -> None:
        """Store *signal* under *key*, evicting the oldest beyond the limit."""
        self._signal_history[key] = signal
        self._signal_history.move_to_end(key)
        while len(self._signal_history) > self._history_limit:
            self._signal_history.popitem(last=False)

    @property
    def signal_history(self) -> dict[str, Any]:
        """Snapshot of the history map, oldest first."""
        return dict(self._signal_history)

    def recent_signals(self, limit: int = 50) -> list[Any]:
        """Return up to *limit* signals, newest first."""
        items = list(self._signal_history.values())
        items.reverse()
        return items[:limit]

    def latest_signal(self, symbol: str, timeframe: Optional[str] = None) -> Optional[Any]:
        for sig in reversed(self._signal_history.values()):
            if sig.symbol != symbol:
                continue
            if timeframe is not None and sig.timeframe != timeframe:
                continue
            return sig
        return None

    # ── Watch list ───────────────────────────────────────────────────────

    def watch(self, symbol: str, timeframe: str = "1h") -> None:
        self.watch_list[symbol] = {"timeframe": timeframe}

    def unwatch(self, symbol: str) -> bool:
        return self.watch_list.pop(symbol, None) is not None
