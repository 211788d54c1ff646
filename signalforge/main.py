"""SignalForge: application entry point.

Boots the FastAPI internal server and provides the CLI entry point for the
continuous scanner and one-shot scans.
"""

import logging

from fastapi import FastAPI

from signalforge.api.routers import router

app = FastAPI(title="SignalForge Internal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("signalforge")


@app.get("/health")
async def health():
    """Liveness probe."""
    return {"status": "ok"}


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio
    import pathlib
    import signal

    from signalforge.api.routers import configure_routers
    from signalforge.commands.dispatcher import CommandDispatcher
    from signalforge.config import load_config, load_pipelines
    from signalforge.engine_manager import EngineManager
    from signalforge.market.bitget_client import BitgetClient
    from signalforge.market.context import MarketDataContext
    from signalforge.market.source import CachedDataSource
    from signalforge.notify.telegram import TelegramSink
    from signalforge.repos.state_repo import StateRepo
    from signalforge.risk.gate import DominanceRiskGate
    from signalforge.signals.assembler import SignalAssembler

    parser = argparse.ArgumentParser(description="SignalForge crypto signal scanner")
    parser.add_argument(
        "--mode",
        choices=["serve", "scan"],
        default="serve",
        help="serve: API + continuous scanning; scan: one pass, then exit",
    )
    parser.add_argument("--env", help="Path to a .env file")
    parser.add_argument(
        "--pipelines",
        default="pipelines.json",
        help="Pipeline definitions (default: pipelines.json)",
    )
    parser.add_argument(
        "--engine-only",
        action="store_true",
        help="Run the scanners without the API server",
    )
    args = parser.parse_args()

    config = load_config(args.env)
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    context = MarketDataContext()
    client = BitgetClient(config)
    source = CachedDataSource(client, context)
    state_repo = StateRepo(config.state_path)
    journal = state_repo.restore(context)
    gate = DominanceRiskGate(http=client, source=source)
    sink = TelegramSink(config)

    pipelines = load_pipelines(config, pathlib.Path(args.pipelines))
    manager = EngineManager(
        config=config,
        source=source,
        context=context,
        sink=sink,
        pipelines=pipelines,
        gate=gate,
        state_repo=state_repo,
        journal=journal,
    )
    manager.build_engines()

    symbols = sorted({s for p in pipelines if p.enabled for s in p.symbols})
    dispatcher = CommandDispatcher(
        assembler=SignalAssembler(config, source, context, gate=gate),
        sink=sink,
        symbols=symbols,
        journal=journal,
    )
    configure_routers(
        context=context,
        engine_manager=manager,
        dispatcher=dispatcher,
        journal=journal,
    )

    def handle_shutdown(signum, frame):
        logger.info("Shutdown signal received, stopping gracefully.")
        manager.stop_all()

    signal.signal(signal.SIGINT, handle_shutdown)

    if args.mode == "scan":
        asyncio.run(_run_scan_once(manager))
    elif args.engine_only:
        asyncio.run(_run_engines_only(manager))
    else:
        asyncio.run(_run_engine_manager(manager, config.api_port))


async def _run_engine_manager(manager, port: int = 8080) -> None:
    """Start the API server and all pipelines concurrently."""
    import asyncio
    import uvicorn

    logger.info("Starting SignalForge with %d pipeline(s).", len(manager.pipeline_names))

    uvi_config = uvicorn.Config(
        app,
        host="0.0.0.0",
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(uvi_config)

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        server.serve(),
        manager.run_all(),
        return_exceptions=True,
    )
    logger.info("SignalForge stopped. Results: %s", results)


async def _run_engines_only(manager) -> None:
    """Run the scanners without starting the API server."""
    logger.info(
        "Starting SignalForge scanners (no API) with %d pipeline(s).",
        len(manager.pipeline_names),
    )
    await manager.run_all()
    logger.info("SignalForge scanners stopped.")


async def _run_scan_once(manager) -> None:
    """Run a single cycle of every pipeline and log a summary per pair."""
    results = await manager.run_all(max_cycles=1)
    for name, cycles in results.items():
        for entry in cycles[0] if cycles else []:
            logger.info(
                "[%s] %s %s: %s %s",
                name,
                entry.get("symbol", "?"),
                entry.get("timeframe", "?"),
                entry.get("action"),
                entry.get("direction", ""),
            )


if __name__ == "__main__":
    _run_cli()
