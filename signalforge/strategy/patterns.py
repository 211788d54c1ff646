"""Candlestick pattern registry and detector.

Each pattern is a predicate over 1-3 consecutive candles plus a static
confidence weight.  ``PatternAccuracyTracker`` can re-weight a pattern from
observed outcomes.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from signalforge.market.models import Candle
from signalforge.strategy.models import PatternMatch

logger = logging.getLogger("signalforge.strategy.patterns")


@dataclass(frozen=True)
class PatternSpec:
    name: str
    size: int  # number of consecutive candles the predicate reads
    confidence: float
    detect: Callable[..., bool]


# ── Predicates ───────────────────────────────────────────────────────────


def _upper_shadow(c: Candle) -> float:
    return c.high - max(c.open, c.close)


def _lower_shadow(c: Candle) -> float:
    return min(c.open, c.close) - c.low


def is_bullish_engulfing(c1: Candle, c2: Candle) -> bool:
    """Bearish candle followed by a bullish one whose body engulfs it."""
    return (
        c1.is_bearish
        and c2.is_bullish
        and c2.open < c1.close
        and c2.close > c1.open
        and c2.body >= c1.body * 0.8
    )


def is_bearish_engulfing(c1: Candle, c2: Candle) -> bool:
    """Bullish candle followed by a bearish one whose body engulfs it."""
    return (
        c1.is_bullish
        and c2.is_bearish
        and c2.open > c1.close
        and c2.close < c1.open
        and c2.body >= c1.body * 0.8
    )


def is_hammer(c: Candle) -> bool:
    """Small bullish body, long lower wick, almost no upper wick."""
    return (
        c.is_bullish
        and _lower_shadow(c) > c.body * 2
        and _upper_shadow(c) < c.body * 0.3
        and c.range > c.body * 3
    )


def is_shooting_star(c: Candle) -> bool:
    """Small bearish body, long upper wick, almost no lower wick."""
    return (
        c.is_bearish
        and _upper_shadow(c) > c.body * 2
        and _lower_shadow(c) < c.body * 0.3
        and c.range > c.body * 3
    )


def is_doji(c: Candle) -> bool:
    """Body no larger than a tenth of the range (flat candles included)."""
    return c.body <= c.range * 0.1


def is_morning_star(c1: Candle, c2: Candle, c3: Candle) -> bool:
    return (
        c1.is_bearish
        and c2.body < c2.range * 0.3
        and c3.is_bullish
        and c3.close > (c1.open + c1.close) / 2
    )


def is_evening_star(c1: Candle, c2: Candle, c3: Candle) -> bool:
    return (
        c1.is_bullish
        and c2.body < c2.range * 0.3
        and c3.is_bearish
        and c3.close < (c1.open + c1.close) / 2
    )


DEFAULT_PATTERNS: tuple[PatternSpec, ...] = (
    PatternSpec("BULLISH_ENGULFING", 2, 0.7, is_bullish_engulfing),
    PatternSpec("BEARISH_ENGULFING", 2, 0.7, is_bearish_engulfing),
    PatternSpec("HAMMER", 1, 0.65, is_hammer),
    PatternSpec("SHOOTING_STAR", 1, 0.65, is_shooting_star),
    PatternSpec("DOJI", 1, 0.6, is_doji),
    PatternSpec("MORNING_STAR", 3, 0.75, is_morning_star),
    PatternSpec("EVENING_STAR", 3, 0.75, is_evening_star),
)


# ── Accuracy tracking ────────────────────────────────────────────────────


class PatternAccuracyTracker:
    """Blends observed hit-rate into a pattern's confidence.

    After at least *min_observations* outcomes for a pattern, each new
    outcome sets ``confidence = 0.8 × accuracy + 0.2 × confidence``.
    """

    def __init__(
        self,
        patterns: Sequence[PatternSpec] = DEFAULT_PATTERNS,
        min_observations: int = 10,
    ) -> None:
        self._confidence = {p.name: p.confidence for p in patterns}
        self._stats: dict[str, list[int]] = {}
        self._min_observations = min_observations

    def confidence(self, name: str, default: float = 0.0) -> float:
        return self._confidence.get(name, default)

    def record(self, name: str, success: bool) -> float:
        """Record one outcome for *name* and return its current confidence."""
        successes, attempts = self._stats.get(name, [0, 0])
        attempts += 1
        if success:
            successes += 1
        self._stats[name] = [successes, attempts]

        if attempts >= self._min_observations and name in self._confidence:
            accuracy = successes / attempts
            updated = round(accuracy * 0.8 + self._confidence[name] * 0.2, 3)
            logger.debug("Pattern %s confidence %.3f -> %.3f", name, self._confidence[name], updated)
            self._confidence[name] = updated
        return self._confidence.get(name, 0.0)


# ── Detection ────────────────────────────────────────────────────────────


def scan_patterns(
    candles: Sequence[Candle],
    lookback: int = 10,
    patterns: Sequence[PatternSpec] = DEFAULT_PATTERNS,
    tracker: Optional[PatternAccuracyTracker] = None,
) -> list[PatternMatch]:
    """Every pattern match in the trailing *lookback* candles.

    ``position`` is the index, within that window, of the first candle the
    pattern reads.  Multi-candle patterns are only tested where they fit.
    """
    recent = list(candles[-lookback:]) if lookback > 0 else []
    matches: list[PatternMatch] = []
    for i in range(len(recent)):
        for spec in patterns:
            if i + spec.size > len(recent):
                continue
            if not spec.detect(*recent[i:i + spec.size]):
                continue
            confidence = tracker.confidence(spec.name, spec.confidence) if tracker else spec.confidence
            matches.append(
                PatternMatch(
                    pattern=spec.name,
                    confidence=confidence,
                    position=i,
                    timestamp=recent[i].timestamp,
                )
            )
    return matches


def detect_patterns(
    candles: Sequence[Candle],
    lookback: int = 10,
    top: int = 3,
    patterns: Sequence[PatternSpec] = DEFAULT_PATTERNS,
    tracker: Optional[PatternAccuracyTracker] = None,
) -> list[PatternMatch]:
    """The *top* most confident distinct (pattern, position) matches."""
    if len(candles) < 3:
        return []

    seen: set[tuple[str, int]] = set()
    unique: list[PatternMatch] = []
    ranked = sorted(
        scan_patterns(candles, lookback, patterns, tracker),
        key=lambda m: m.confidence,
        reverse=True,
    )
    for match in ranked:
        key = (match.pattern, match.position)
        if key in seen:
            continue
        seen.add(key)
        unique.append(match)
    return unique[:top]
