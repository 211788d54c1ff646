"""Multi-timeframe confirmation and confidence calibration.

A consensus direction is checked against the 15m, 1h and 4h structure of the
same symbol; the share of agreeing timeframes scales the reported
(calibrated) confidence together with the trading session and volatility.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Sequence

from signalforge.market.models import Candle
from signalforge.strategy.indicators import finite_or
from signalforge.strategy.models import BUY
from signalforge.strategy.sr_levels import calculate_levels

logger = logging.getLogger("signalforge.strategy.mtf")

CONFIRMATION_TIMEFRAMES = ("15m", "1h", "4h")
MTF_CANDLE_LIMIT = 100


@dataclass(frozen=True)
class TimeframeCheck:
    timeframe: str
    confirms: bool
    bias: str = "NEUTRAL"
    bos: bool = False
    choch: bool = False
    support_levels: int = 0
    resistance_levels: int = 0


@dataclass(frozen=True)
class Confirmation:
    score: float  # 0-100
    label: str  # "STRONG", "MODERATE" or "WEAK"
    details: tuple[TimeframeCheck, ...] = ()


@dataclass(frozen=True)
class Session:
    name: str
    weight: float


# ── Structure helpers ────────────────────────────────────────────────────


def candle_bias(candles: Sequence[Candle]) -> str:
    """BUY_STRONG / SELL_STRONG on two same-colour closes, else BUY / SELL
    by the last candle's colour."""
    if len(candles) < 2:
        return "NEUTRAL"
    last, prev = candles[-1], candles[-2]
    if last.is_bullish and prev.is_bullish:
        return "BUY_STRONG"
    if last.is_bearish and prev.is_bearish:
        return "SELL_STRONG"
    return "BUY" if last.is_bullish else "SELL"


def break_of_structure(candles: Sequence[Candle], window: int = 20) -> bool:
    """Last candle trades beyond the high or low of the preceding window."""
    if len(candles) < window:
        return False
    recent = candles[-window:-1]
    last = candles[-1]
    return last.high > max(c.high for c in recent) or last.low < min(c.low for c in recent)


def change_of_character(candles: Sequence[Candle]) -> bool:
    """A close through the previous candle's extreme after a move the other way."""
    if len(candles) < 3:
        return False
    c1, c2, c3 = candles[-3], candles[-2], candles[-1]
    return (c3.close > c2.high and c2.close < c1.low) or (
        c3.close < c2.low and c2.close > c1.high
    )


def check_timeframe(timeframe: str, candles: Optional[Sequence[Candle]], direction: str) -> TimeframeCheck:
    """Does *timeframe* agree with *direction*?

    Agreement is any of: matching candle bias, a break of structure, a change
    of character, or price holding above the nearest support (BUY) / below
    the nearest resistance (SELL).
    """
    if not candles or len(candles) < 10:
        return TimeframeCheck(timeframe=timeframe, confirms=False)

    bias = candle_bias(candles)
    bos = break_of_structure(candles)
    choch = change_of_character(candles)
    levels = calculate_levels(candles)
    last_close = candles[-1].close

    if direction == BUY:
        level_ok = bool(levels.support) and last_close > levels.support[0].price
        confirms = "BUY" in bias or bos or choch or level_ok
    else:
        level_ok = bool(levels.resistance) and last_close < levels.resistance[0].price
        confirms = "SELL" in bias or bos or choch or level_ok

    return TimeframeCheck(
        timeframe=timeframe,
        confirms=confirms,
        bias=bias,
        bos=bos,
        choch=choch,
        support_levels=len(levels.support),
        resistance_levels=len(levels.resistance),
    )


def summarize(checks: Sequence[TimeframeCheck]) -> Confirmation:
    if not checks:
        return Confirmation(score=0.0, label="WEAK")
    score = sum(1 for c in checks if c.confirms) / len(checks) * 100
    if score >= 66:
        label = "STRONG"
    elif score >= 33:
        label = "MODERATE"
    else:
        label = "WEAK"
    return Confirmation(score=score, label=label, details=tuple(checks))


async def confirm_timeframes(
    source,
    symbol: str,
    direction: str,
    timeframes: Sequence[str] = CONFIRMATION_TIMEFRAMES,
) -> Confirmation:
    """Fetch each confirmation timeframe from *source* and score agreement.

    A timeframe whose candles are unavailable counts as not confirming.
    """
    checks = []
    for tf in timeframes:
        candles = await source.fetch_candles(symbol, tf, MTF_CANDLE_LIMIT)
        if candles is None:
            logger.info("No %s candles for %s confirmation", tf, symbol)
        checks.append(check_timeframe(tf, candles, direction))
    return summarize(checks)


# ── Calibration ──────────────────────────────────────────────────────────


def session_for(now: datetime) -> Session:
    """Trading session of a UTC instant; weekends weigh 0.7× as much."""
    now = now.astimezone(timezone.utc)
    weekend = 0.7 if now.weekday() >= 5 else 1.0
    hour = now.hour
    if hour < 7:
        return Session("ASIA", 0.9 * weekend)
    if hour < 13:
        return Session("LONDON", 1.1 * weekend)
    if hour < 21:
        return Session("NEW_YORK", 1.2 * weekend)
    return Session("OFF", 0.8 * weekend)


def calibrate_confidence(
    base_confidence: float,
    confirmation_score: float,
    volatility_regime: str,
    market_type: str = "futures",
    now: Optional[datetime] = None,
) -> float:
    """Scale a 0-100 confidence by confirmation, session and volatility.

        ×1.2 if confirmation ≥ 80, ×1.1 if ≥ 60
        × session weight
        ×0.9 for futures
        ×0.8 in VERY_HIGH volatility, ×1.1 in LOW

    Clamped to [0, 100].  Non-positive input returns 0.
    """
    base_confidence = finite_or(base_confidence, 0.0)
    if base_confidence <= 0:
        return 0.0

    calibrated = base_confidence
    if confirmation_score >= 80:
        calibrated *= 1.2
    elif confirmation_score >= 60:
        calibrated *= 1.1

    calibrated *= session_for(now or datetime.now(timezone.utc)).weight

    if market_type == "futures":
        calibrated *= 0.9
    if volatility_regime == "VERY_HIGH":
        calibrated *= 0.8
    elif volatility_regime == "LOW":
        calibrated *= 1.1

    return max(0.0, min(100.0, calibrated))
