"""Stop-loss and take-profit calculation: pure math, no I/O.

The stop sits one ATR-derived stop distance against the trade; three take
profits follow the golden-ratio ladder ``{1, 1.618, 2.618}`` of
``stop_distance × reward_ratio`` in the trade's favour.  The reward ratio is
itself scaled by regime, coherence and momentum.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional

from signalforge.risk.position_sizer import (
    DEFAULT_COHERENCE,
    DEFAULT_VOLATILITY,
    calculate_position_size,
    calculate_risk_budget,
)
from signalforge.strategy.indicators import finite_or
from signalforge.strategy.models import BUY, SELL

logger = logging.getLogger("signalforge.risk.sl_tp")

GOLDEN_LADDER = (1.0, 1.618, 2.618)

REGIME_RR_MULTIPLIERS: dict[str, float] = {
    "TREND": 1.3,
    "RANGE": 0.7,
    "BREAKOUT": 1.5,
    "REVERSAL": 0.9,
}

MIN_REWARD_RATIO = 1.5
MAX_REWARD_RATIO = 10.0

# Deepest a SELL ladder may reach, as a fraction of entry.
MAX_SELL_REACH = 0.95


@dataclass(frozen=True)
class RiskParameters:
    """Trade levels and size for one signal.

    Invariant: ``stop_loss`` is on the opposite side of ``entry`` from every
    take profit, and ``position_size`` is finite and non-negative.
    """

    entry: float
    stop_loss: float
    take_profits: tuple[float, float, float]
    position_size: float
    risk_amount: float
    risk_per_unit: float
    stop_distance: float
    reward_ratio: float
    multiplier: float
    curvature: float


def calculate_reward_ratio(
    base_rr: float,
    regime: str,
    coherence: float = DEFAULT_COHERENCE,
    momentum: float = 0.0,
) -> float:
    """Regime-, coherence- and momentum-adjusted reward ratio.

    Formula::

        rr = base_rr × regime_multiplier
                     × (0.8 + coherence × 0.4)
                     × (0.9 + |momentum| × 2)

    clamped to [1.5, 10].  Unknown regimes use a multiplier of 1.
    """
    rr = base_rr * REGIME_RR_MULTIPLIERS.get(regime, 1.0)
    rr *= 0.8 + finite_or(coherence, DEFAULT_COHERENCE) * 0.4
    rr *= 0.9 + abs(finite_or(momentum, 0.0)) * 2
    rr = finite_or(rr, MIN_REWARD_RATIO)
    return max(MIN_REWARD_RATIO, min(MAX_REWARD_RATIO, rr))


def reward_ladder(reward_ratio: float) -> tuple[float, float, float]:
    """The three reward multiples of the stop distance."""
    return tuple(round(reward_ratio * step, 2) for step in GOLDEN_LADDER)


def calculate_stop_distance(atr: float, entry: float, coherence: float) -> float:
    """``ATR × (1.5 - coherence × 0.5)``.

    A missing or numerically zero ATR (under a millionth of entry) falls back
    to 2 % of entry.
    """
    atr = finite_or(atr, 0.0)
    if atr <= entry * 1e-6:
        atr = entry * 0.02
    coherence = min(1.0, max(0.0, finite_or(coherence, DEFAULT_COHERENCE)))
    return atr * (1.5 - coherence * 0.5)


def calculate_risk_parameters(
    entry: float,
    direction: str,
    atr: float,
    *,
    balance: float,
    risk_pct: float,
    max_position_pct: float,
    reward_ratio: float,
    leverage: float = 1.0,
    volatility: float = DEFAULT_VOLATILITY,
    coherence: float = DEFAULT_COHERENCE,
    resonance: float = 0.0,
) -> Optional[RiskParameters]:
    """Derive stop, take-profit ladder and position size.

    Args:
        entry: Entry price (must be positive and finite).
        direction: ``"BUY"`` or ``"SELL"``.
        atr: Current ATR; a missing value falls back to ``entry × 0.02``.
        balance: Account balance.
        risk_pct: Percent of balance risked per trade.
        max_position_pct: Cap on position notional, percent of balance.
        reward_ratio: Adjusted reward ratio (see ``calculate_reward_ratio``).
        leverage: Size multiplier on margin accounts.
        volatility: Annualised volatility of log returns.
        coherence: Spectral coherence in [0, 1].
        resonance: Cross-asset resonance.

    Returns:
        ``RiskParameters``, or ``None`` for a non-directional trade, an
        unusable entry price, or a SELL whose stop distance leaves no room
        for a positive take-profit ladder.  SELL reward ratios are capped so
        the last target stays at or above 5 % of entry.
    """
    if direction not in (BUY, SELL):
        return None
    if not math.isfinite(entry) or entry <= 0:
        logger.warning("Invalid entry price %r", entry)
        return None

    stop_distance = calculate_stop_distance(atr, entry, coherence)
    rr = max(MIN_REWARD_RATIO, finite_or(reward_ratio, MIN_REWARD_RATIO))

    if direction == SELL:
        reach_cap = entry * MAX_SELL_REACH / (stop_distance * GOLDEN_LADDER[-1])
        if reach_cap < MIN_REWARD_RATIO:
            logger.warning(
                "Stop distance %.6g too wide for a SELL ladder from %.6g", stop_distance, entry,
            )
            return None
        rr = min(rr, reach_cap)

    if direction == BUY:
        stop_loss = entry - stop_distance
        take_profits = tuple(entry + stop_distance * rr * step for step in GOLDEN_LADDER)
    else:
        stop_loss = entry + stop_distance
        take_profits = tuple(entry - stop_distance * rr * step for step in GOLDEN_LADDER)

    budget = calculate_risk_budget(balance, risk_pct, volatility, coherence, resonance)
    size = calculate_position_size(
        budget.risk_amount, entry, stop_loss, balance, max_position_pct, leverage,
    )

    return RiskParameters(
        entry=entry,
        stop_loss=stop_loss,
        take_profits=take_profits,
        position_size=size,
        risk_amount=budget.risk_amount,
        risk_per_unit=abs(entry - stop_loss),
        stop_distance=stop_distance,
        reward_ratio=rr,
        multiplier=budget.multiplier,
        curvature=budget.curvature,
    )
