"""Cross-asset resonance: lagged return co-movement between related symbols.

For every (symbol, other, lag) the mean product of log returns is folded
into a slowly moving node stored in ``MarketDataContext.entanglement``.
Strongly co-moving symbols amplify a signal, inversely moving ones dampen it.
"""

import logging
from dataclasses import dataclass
from typing import Mapping, Sequence

from signalforge.market.context import MarketDataContext
from signalforge.market.models import Candle
from signalforge.strategy.indicators import finite_or, log_returns

logger = logging.getLogger("signalforge.strategy.resonance")

TEMPORAL_DEPTH = 3

# Compared against raw mean return products, not normalised correlations.
# Per-candle moves of a few percent give products around 1e-3 or less, so
# only per-candle log returns near 0.55 clear it and resonance is 0 in ordinary
# markets.  Partners come from the watch list, which starts empty until
# /watch or restored state fills it.
INFLUENCE_THRESHOLD = 0.3


@dataclass(frozen=True)
class Influence:
    symbol: str
    strength: float
    correlation: float


@dataclass(frozen=True)
class Propagation:
    amplifiers: tuple[Influence, ...] = ()
    dampeners: tuple[Influence, ...] = ()
    resonance: float = 0.0


@dataclass
class _LagMetric:
    lag: int
    correlation: float
    weight: float


def lagged_return_product(
    returns: Sequence[float],
    other_returns: Sequence[float],
    lag: int,
) -> float:
    """Mean of ``r[i] × r_other[i - lag]`` over the overlapping range."""
    products = [returns[i] * other_returns[i - lag] for i in range(lag, len(returns))]
    if not products:
        return 0.0
    return finite_or(sum(products) / len(products), 0.0)


class EntanglementNetwork:
    """Maintains the lagged co-movement matrix inside a market context."""

    def __init__(self, context: MarketDataContext, depth: int = TEMPORAL_DEPTH) -> None:
        self._matrix = context.entanglement
        self._depth = depth

    def update(self, symbol: str, other: str, correlation: float, lag: int = 0) -> dict:
        """Fold one correlation sample into the (symbol, other, lag) node.

            correlation ← 0.9 × correlation + 0.1 × sample
            weight      ← clamp(0.95 × weight + 0.05 × |sample|, 0.1, 1)
        """
        key = f"{symbol}_{other}_{lag}"
        node = self._matrix.setdefault(
            key, {"correlation": 0.0, "weight": 0.1, "temporal_lag": lag, "updates": 0}
        )
        node["updates"] += 1
        node["correlation"] = node["correlation"] * 0.9 + correlation * 0.1
        node["weight"] = max(0.1, min(1.0, node["weight"] * 0.95 + abs(correlation) * 0.05))
        return node

    def influences(
        self,
        symbol: str,
        candles_by_symbol: Mapping[str, Sequence[Candle]],
    ) -> dict[str, list[_LagMetric]]:
        """Per related symbol, the sample correlation and node weight at each lag.

        Only symbols with the same number of candles as *symbol* are compared.
        """
        base = candles_by_symbol.get(symbol)
        if not base:
            return {}
        returns = log_returns(base)

        result: dict[str, list[_LagMetric]] = {}
        for other, other_candles in candles_by_symbol.items():
            if other == symbol or not other_candles or len(other_candles) != len(base):
                continue
            other_returns = log_returns(other_candles)
            if len(other_returns) != len(returns):
                continue
            metrics = []
            for lag in range(self._depth + 1):
                if lag >= len(returns):
                    break
                sample = lagged_return_product(returns, other_returns, lag)
                node = self.update(symbol, other, sample, lag)
                metrics.append(_LagMetric(lag, sample, node["weight"]))
            if metrics:
                result[other] = metrics
        return result

    def propagate(
        self,
        symbol: str,
        candles_by_symbol: Mapping[str, Sequence[Candle]],
    ) -> Propagation:
        """Classify each related symbol as amplifier or dampener.

        The weight-averaged correlation must exceed 0.3 in magnitude to
        count.  Resonance is the sum of amplifier strengths minus dampener
        strengths.
        """
        amplifiers: list[Influence] = []
        dampeners: list[Influence] = []
        resonance = 0.0

        for other, metrics in self.influences(symbol, candles_by_symbol).items():
            total_weight = sum(m.weight for m in metrics)
            if total_weight <= 0:
                continue
            avg = finite_or(sum(m.correlation * m.weight for m in metrics) / total_weight, 0.0)
            if abs(avg) <= INFLUENCE_THRESHOLD:
                continue
            influence = Influence(other, round(abs(avg), 3), round(avg, 3))
            if avg > 0:
                amplifiers.append(influence)
                resonance += abs(avg)
            else:
                dampeners.append(influence)
                resonance -= abs(avg)

        amplifiers.sort(key=lambda i: i.strength, reverse=True)
        dampeners.sort(key=lambda i: i.strength, reverse=True)
        logger.debug("Resonance for %s: %.3f", symbol, resonance)
        return Propagation(tuple(amplifiers), tuple(dampeners), round(resonance, 3))
