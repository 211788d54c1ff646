"""SignalEngine: the scan loop for one pipeline.

Each cycle asks the assembler for a signal on every (symbol, timeframe) of
the pipeline, sends alerts for high-confidence signals and persists state.
One symbol failing never stops the batch.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from signalforge.config import Config
from signalforge.models.pipeline_config import PipelineConfig
from signalforge.notify.telegram import NotificationSink
from signalforge.repos.state_repo import StateRepo, TradeJournal
from signalforge.signals.assembler import SignalAssembler
from signalforge.signals.formatting import format_signal
from signalforge.signals.models import Signal

logger = logging.getLogger("signalforge.engine")

ALERT_COOLDOWN_SECONDS = 30 * 60


class SignalEngine:
    """Polls one pipeline's symbols and timeframes.

    Args:
        config: Global configuration (alert threshold).
        pipeline: Symbols, timeframes and poll interval to scan.
        assembler: Signal generator bound to this pipeline.
        sink: Destination for alerts.
        state_repo: When given, state is persisted after every cycle.
        journal: Trade journal persisted alongside the context.
        clock: Monotonic seconds, used for alert cooldowns.
    """

    def __init__(
        self,
        config: Config,
        pipeline: PipelineConfig,
        assembler: SignalAssembler,
        sink: NotificationSink,
        state_repo: Optional[StateRepo] = None,
        journal: Optional[TradeJournal] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config
        self._pipeline = pipeline
        self._assembler = assembler
        self._sink = sink
        self._state_repo = state_repo
        self._journal = journal or TradeJournal()
        self._clock = clock
        self._last_alert: dict[tuple[str, str], float] = {}
        self._running = False
        self._cycle_count = 0

    @property
    def name(self) -> str:
        return self._pipeline.name

    @property
    def pipeline(self) -> PipelineConfig:
        return self._pipeline

    @property
    def running(self) -> bool:
        return self._running

    @property
    def cycle_count(self) -> int:
        return self._cycle_count

    def stop(self) -> None:
        """Signal the engine to stop after the current cycle."""
        self._running = False

    # ── Single cycle ─────────────────────────────────────────────────────

    async def scan_once(self) -> list[dict]:
        """Scan every (symbol, timeframe) once.

        Returns one dict per pair:

        - ``{"action": "signal", "direction": ..., "confidence": ..., "alerted": bool}``
        - ``{"action": "skipped"}`` when the assembler returned ``None``
        - ``{"action": "error", "reason": "..."}`` on an unexpected exception
        """
        results: list[dict] = []
        for symbol in self._pipeline.symbols:
            for timeframe in self._pipeline.timeframes:
                entry = {"symbol": symbol, "timeframe": timeframe}
                try:
                    signal = await self._assembler.generate(symbol, timeframe)
                    if signal is None:
                        entry["action"] = "skipped"
                    else:
                        entry.update(
                            action="signal",
                            direction=signal.direction,
                            confidence=signal.confidence,
                            alerted=await self._maybe_alert(signal),
                        )
                except Exception as exc:
                    logger.exception("Scan of %s %s failed", symbol, timeframe)
                    entry.update(action="error", reason=str(exc))
                results.append(entry)
        return results

    async def _maybe_alert(self, signal: Signal) -> bool:
        if signal.calibrated_confidence < self._config.alert_threshold:
            return False

        key = (signal.symbol, signal.timeframe)
        now = self._clock()
        last = self._last_alert.get(key)
        if last is not None and now - last < ALERT_COOLDOWN_SECONDS:
            logger.debug("Alert for %s %s suppressed by cooldown", *key)
            return False

        await self._sink.send(None, format_signal(signal))
        self._last_alert[key] = now
        return True

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        poll_interval: Optional[int] = None,
        max_cycles: int = 0,
    ) -> list[list[dict]]:
        """Run scan cycles until stopped.

        Args:
            poll_interval: Seconds between cycles.  Defaults to the
                           pipeline's ``poll_interval_seconds``.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            Per-cycle result lists.
        """
        if poll_interval is None:
            poll_interval = self._pipeline.poll_interval_seconds

        self._running = True
        history: list[list[dict]] = []
        cycle = 0

        while self._running:
            cycle += 1
            self._cycle_count += 1
            try:
                results = await self.scan_once()
                history.append(results)
                signals = sum(1 for r in results if r["action"] == "signal")
                logger.info(
                    "Pipeline '%s' cycle %d: %d signal(s) from %d pair(s)",
                    self.name, cycle, signals, len(results),
                )
                if self._state_repo is not None:
                    self._state_repo.persist(self._assembler.context, self._journal)
            except Exception as exc:
                logger.error("Pipeline '%s' cycle %d error: %s", self.name, cycle, exc)
                history.append([{"action": "error", "reason": str(exc)}])

            if max_cycles > 0 and cycle >= max_cycles:
                break

            # Interruptible sleep, checks _running every second
            for _ in range(poll_interval):
                if not self._running:
                    break
                await asyncio.sleep(1)

        self._running = False
        return history
