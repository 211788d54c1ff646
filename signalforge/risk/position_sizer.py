"""Position sizing: pure math, no I/O.

Risk per trade starts at ``balance × risk_pct / 100`` and is scaled by
volatility, coherence, cross-asset resonance and a tanh curvature term.
Units are then derived from the stop distance and clamped to the maximum
position allowed.
"""

import math
from dataclasses import dataclass

from signalforge.strategy.indicators import finite_or

DEFAULT_VOLATILITY = 0.5
DEFAULT_COHERENCE = 0.5


@dataclass(frozen=True)
class RiskBudget:
    """Money at risk for one trade and the factors that produced it."""

    base_risk: float
    risk_amount: float
    multiplier: float  # coherence × resonance factor
    curvature: float


def calculate_risk_budget(
    balance: float,
    risk_pct: float,
    volatility: float = DEFAULT_VOLATILITY,
    coherence: float = DEFAULT_COHERENCE,
    resonance: float = 0.0,
) -> RiskBudget:
    """Scale the base risk by market conditions.

    Formula::

        base_risk   = balance × risk_pct / 100
        risk_amount = base_risk
                      × exp(-volatility × 10)
                      × (0.5 + coherence)
                      × (1 + resonance × 0.2)
                      × tanh(risk_pct / 100 × 10)

    Non-finite inputs fall back to their neutral defaults.
    """
    volatility = max(0.0, finite_or(volatility, DEFAULT_VOLATILITY))
    coherence = min(1.0, max(0.0, finite_or(coherence, DEFAULT_COHERENCE)))
    resonance = finite_or(resonance, 0.0)

    base_risk = max(0.0, balance * risk_pct / 100.0)
    vol_adjustment = math.exp(-volatility * 10)
    coherence_factor = 0.5 + coherence
    resonance_factor = max(0.0, 1 + resonance * 0.2)
    curvature = math.tanh(max(0.0, risk_pct) / 100.0 * 10)

    risk_amount = base_risk * vol_adjustment * coherence_factor * resonance_factor * curvature
    return RiskBudget(
        base_risk=base_risk,
        risk_amount=finite_or(risk_amount, 0.0),
        multiplier=coherence_factor * resonance_factor,
        curvature=curvature,
    )


def max_position_units(balance: float, max_position_pct: float, entry: float) -> float:
    """Largest position in units: ``balance × max_position_pct / 100 / entry``."""
    if entry <= 0:
        return 0.0
    return max(0.0, finite_or(balance * max_position_pct / 100.0 / entry, 0.0))


def calculate_position_size(
    risk_amount: float,
    entry: float,
    stop_loss: float,
    balance: float,
    max_position_pct: float,
    leverage: float = 1.0,
) -> float:
    """Units to trade so a stop-out loses *risk_amount* (before leverage).

    Formula::

        units = risk_amount / |entry - stop_loss| × leverage

    clamped to ``[0, max_position_units]``.  A zero stop distance yields 0.
    """
    risk_per_unit = abs(entry - stop_loss)
    if risk_per_unit <= 0 or entry <= 0:
        return 0.0
    units = finite_or(risk_amount / risk_per_unit * leverage, 0.0)
    return max(0.0, min(units, max_position_units(balance, max_position_pct, entry)))
