"""EngineManager: runs one SignalEngine per enabled pipeline concurrently.

Pipelines come from ``pipelines.json`` (or a single default synthesised from
env).  They share one data source and one market context, so related-symbol
caches and the signal history are visible across pipelines.
"""

import asyncio
import logging
from typing import Optional

from signalforge.config import Config
from signalforge.engine import SignalEngine
from signalforge.market.context import MarketDataContext
from signalforge.market.source import DataSource
from signalforge.models.pipeline_config import PipelineConfig
from signalforge.notify.telegram import NotificationSink
from signalforge.repos.state_repo import StateRepo, TradeJournal
from signalforge.risk.gate import RiskGate
from signalforge.signals.assembler import SignalAssembler
from signalforge.strategy.noise import SeededNoise
from signalforge.strategy.regime import RegimeClassifier

logger = logging.getLogger("signalforge.engine_manager")


class EngineManager:
    """Lifecycle manager for one-or-many scan pipelines.

    Args:
        config: Global ``Config`` loaded from ``.env``.
        source: Shared data source.
        context: Shared market context.
        sink: Alert destination.
        pipelines: Pipeline definitions; disabled ones are ignored.
        gate: Should-trade gate shared by every assembler.
        state_repo: Optional persistence for context and journal.
        journal: Trade journal, shared by every engine.
    """

    def __init__(
        self,
        config: Config,
        source: DataSource,
        context: MarketDataContext,
        sink: NotificationSink,
        pipelines: list[PipelineConfig],
        gate: Optional[RiskGate] = None,
        state_repo: Optional[StateRepo] = None,
        journal: Optional[TradeJournal] = None,
    ) -> None:
        self._config = config
        self._source = source
        self._context = context
        self._sink = sink
        self._pipelines = [p for p in pipelines if p.enabled]
        self._gate = gate
        self._state_repo = state_repo
        self._journal = journal or TradeJournal()
        self._engines: dict[str, SignalEngine] = {}
        self._tasks: dict[str, asyncio.Task] = {}

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def engines(self) -> dict[str, SignalEngine]:
        """Map of pipeline-name → ``SignalEngine``."""
        return dict(self._engines)

    @property
    def pipeline_names(self) -> list[str]:
        return list(self._engines.keys())

    def build_engines(self) -> None:
        """Instantiate a ``SignalEngine`` per enabled pipeline."""
        classifier = RegimeClassifier(seed=self._config.noise_seed)
        for pipeline in self._pipelines:
            assembler = SignalAssembler(
                config=self._config,
                source=self._source,
                context=self._context,
                pipeline=pipeline,
                gate=self._gate,
                classifier=classifier,
                noise=SeededNoise(self._config.noise_seed),
            )
            self._engines[pipeline.name] = SignalEngine(
                config=self._config,
                pipeline=pipeline,
                assembler=assembler,
                sink=self._sink,
                state_repo=self._state_repo,
                journal=self._journal,
            )
            logger.info(
                "Registered pipeline '%s': %s on %s (%s)",
                pipeline.name,
                ",".join(pipeline.symbols),
                ",".join(pipeline.timeframes),
                pipeline.market_type,
            )

    async def run_all(self, max_cycles: int = 0) -> dict[str, list[list[dict]]]:
        """Launch all pipelines concurrently and wait for them to finish.

        Returns:
            ``{pipeline_name: [cycle_results]}`` for every pipeline.
        """
        if not self._engines:
            self.build_engines()

        tasks = {
            name: asyncio.create_task(engine.run(max_cycles=max_cycles))
            for name, engine in self._engines.items()
        }
        self._tasks = tasks

        results: dict[str, list[list[dict]]] = {}
        for name, task in tasks.items():
            try:
                results[name] = await task
            except Exception as exc:  # pragma: no cover
                logger.error("Pipeline '%s' crashed: %s", name, exc)
                results[name] = [[{"action": "error", "reason": str(exc)}]]
        return results

    def stop_all(self) -> None:
        """Signal every engine to stop gracefully."""
        for name, engine in self._engines.items():
            engine.stop()
            logger.info("Stop signal sent to pipeline '%s'.", name)

    def stop_pipeline(self, name: str) -> bool:
        """Stop one pipeline.  Returns ``False`` if *name* is unknown."""
        engine = self._engines.get(name)
        if engine is None:
            return False
        engine.stop()
        logger.info("Stop signal sent to pipeline '%s'.", name)
        return True

    def get_status(self, name: Optional[str] = None) -> dict:
        """Aggregated or per-pipeline status."""
        if name is not None:
            engine = self._engines.get(name)
            if engine is None:
                return {"error": f"Unknown pipeline: {name}"}
            return self._engine_status(engine)

        return {
            "pipelines": {n: self._engine_status(e) for n, e in self._engines.items()}
        }

    @staticmethod
    def _engine_status(engine: SignalEngine) -> dict:
        return {
            "name": engine.name,
            "symbols": list(engine.pipeline.symbols),
            "timeframes": list(engine.pipeline.timeframes),
            "market_type": engine.pipeline.market_type,
            "running": engine.running,
            "cycle_count": engine.cycle_count,
        }
