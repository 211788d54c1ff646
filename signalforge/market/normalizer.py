"""Candle normalizer: raw exchange klines to an ordered ``Candle`` sequence.

Pure functions, no I/O.  Exchanges return klines as arrays of strings
``[timestamp, open, high, low, close, volume, quoteVolume?, ...]``, often
newest-first and occasionally with duplicated or garbage rows.
"""

import logging
import math
from typing import Any, Optional, Sequence

from signalforge.errors import InsufficientData
from signalforge.market.models import Candle

logger = logging.getLogger("signalforge.market.normalizer")


def _to_float(value: Any) -> Optional[float]:
    """Parse *value* as a finite float, or return ``None``."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_kline_row(row: Sequence[Any]) -> Optional[Candle]:
    """Convert one raw kline into a ``Candle``.

    Returns ``None`` for malformed rows: too few fields, or a timestamp /
    OHLC value that is not a finite number.  A missing or unparseable
    volume counts as zero; a missing quote volume is derived as
    ``volume * (close + open) / 2``.
    """
    if row is None or len(row) < 5:
        return None

    timestamp = _to_float(row[0])
    open_ = _to_float(row[1])
    high = _to_float(row[2])
    low = _to_float(row[3])
    close = _to_float(row[4])
    if None in (timestamp, open_, high, low, close):
        return None

    volume = _to_float(row[5]) if len(row) > 5 else None
    if volume is None:
        volume = 0.0

    quote_volume = _to_float(row[6]) if len(row) > 6 else None
    if quote_volume is None:
        quote_volume = volume * (close + open_) / 2

    return Candle(
        timestamp=int(timestamp),
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
        quote_volume=quote_volume,
    )


def normalize_klines(
    rows: Sequence[Sequence[Any]],
    min_rows: int = 20,
) -> list[Candle]:
    """Normalise raw klines into an ascending, de-duplicated candle list.

    Malformed rows are dropped and reported in the log.  When two rows share
    a timestamp the one appearing later in *rows* wins.

    Raises ``InsufficientData`` if fewer than *min_rows* valid candles remain.
    """
    by_timestamp: dict[int, Candle] = {}
    dropped = 0
    for row in rows or []:
        candle = parse_kline_row(row)
        if candle is None:
            dropped += 1
            continue
        by_timestamp[candle.timestamp] = candle

    if dropped:
        logger.warning("Dropped %d malformed kline row(s)", dropped)

    candles = [by_timestamp[ts] for ts in sorted(by_timestamp)]
    if len(candles) < min_rows:
        raise InsufficientData(min_rows, len(candles))
    return candles
