"""One-shot script to generate and print a signal for one symbol.

Usage (from the repository root):
    python -m scripts.signal_once --symbol BTCUSDT --timeframe 1h
    python -m scripts.signal_once --symbol ETH --market spot --no-mtf
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from signalforge.commands.dispatcher import normalize_symbol
from signalforge.config import load_config
from signalforge.market.bitget_client import BitgetClient
from signalforge.market.context import MarketDataContext
from signalforge.market.source import CachedDataSource
from signalforge.models.pipeline_config import PipelineConfig
from signalforge.risk.gate import DominanceRiskGate
from signalforge.signals.assembler import SignalAssembler
from signalforge.signals.formatting import format_no_signal, format_signal


async def _main(symbol: str, timeframe: str, market: str | None, confirm_mtf: bool) -> None:
    config = load_config()
    context = MarketDataContext()
    client = BitgetClient(config, market_type=market)
    source = CachedDataSource(client, context)
    pipeline = None
    if market is not None:
        pipeline = PipelineConfig(
            name="once",
            market_type=market,
            leverage=config.leverage if market == "futures" else 1.0,
            risk_reward=config.risk_reward,
            symbols=[symbol],
            timeframes=[timeframe],
        )
    assembler = SignalAssembler(
        config,
        source,
        context,
        pipeline=pipeline,
        gate=DominanceRiskGate(http=client, source=source),
        confirm_mtf=confirm_mtf,
    )
    signal = await assembler.generate(symbol, timeframe)
    if signal is None:
        print(format_no_signal(symbol, timeframe))
    else:
        print(format_signal(signal))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate one SignalForge signal")
    parser.add_argument("--symbol", default="BTCUSDT")
    parser.add_argument("--timeframe", default="1h")
    parser.add_argument("--market", choices=["futures", "spot"], default=None)
    parser.add_argument("--no-mtf", action="store_true", help="Skip 15m/1h/4h confirmation")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    asyncio.run(
        _main(normalize_symbol(args.symbol), args.timeframe, args.market, not args.no_mtf)
    )
