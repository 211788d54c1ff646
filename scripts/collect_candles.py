"""One-shot script to download normalized candles to a JSON file.

The output is a list of ``Candle.to_dict()`` objects,
oldest first, suitable for offline fixtures.

Usage (from the repository root):
    python -m scripts.collect_candles --symbol BTCUSDT --timeframe 1h --limit 500
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from signalforge.config import load_config
from signalforge.market.bitget_client import BitgetClient

logger = logging.getLogger("signalforge.collect_candles")


async def _main(symbol: str, timeframe: str, limit: int, out: Path) -> None:
    config = load_config()
    client = BitgetClient(config)
    candles = await client.fetch_candles(symbol, timeframe, limit=limit)
    if not candles:
        logger.error("No candles returned for %s %s", symbol, timeframe)
        sys.exit(1)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(json.dumps([c.to_dict() for c in candles], indent=2), encoding="utf-8")
    logger.info("Saved %d candles → %s", len(candles), out)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Download Bitget candles")
    parser.add_argument("--symbol", default="BTCUSDT")
    parser.add_argument("--timeframe", default="1h")
    parser.add_argument("--limit", type=int, default=200)
    parser.add_argument("--out", default=None)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    out = Path(args.out or f"data/candles_{args.symbol}_{args.timeframe}.json")
    asyncio.run(_main(args.symbol, args.timeframe, args.limit, out))
