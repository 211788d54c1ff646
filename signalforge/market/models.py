"""Market data models: typed representations of exchange candles."""

from dataclasses import dataclass


@dataclass(frozen=True)
class Candle:
    """A single OHLCV bar, normalised from one raw exchange kline.

    ``timestamp`` is the bar open time in epoch milliseconds.
    """

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float
    quote_volume: float = 0.0

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "quote_volume": self.quote_volume,
            "is_bullish": self.is_bullish,
        }


# ── Exchange timeframe metadata ──────────────────────────────────────────

BITGET_TIMEFRAMES: dict[str, str] = {
    "1min": "1min",
    "5m": "5min",
    "15m": "15min",
    "30m": "30min",
    "1h": "1H",
    "2h": "2H",
    "4h": "4H",
    "1d": "1D",
    "1w": "1W",
    "1M": "1M",
}

TIMEFRAME_SECONDS: dict[str, int] = {
    "1min": 60,
    "5m": 300,
    "15m": 900,
    "30m": 1800,
    "1h": 3600,
    "2h": 7200,
    "4h": 14400,
    "1d": 86400,
    "1w": 604800,
    "1M": 2592000,
}
