"""Multi-agent consensus: five heuristic voters and the weighted aggregator.

Each agent is a pure function of candles or already-computed indicators and
returns an ``AgentVote``.  ``aggregate_votes`` has no hidden state, so the
same votes always produce the same ``ConsensusResult``.
"""

from typing import Sequence

from signalforge.market.models import Candle
from signalforge.strategy.indicators import finite_or, sma
from signalforge.strategy.models import (
    BUY,
    NEUTRAL,
    SELL,
    AgentVote,
    ConsensusResult,
    MomentumState,
    OrderFlowState,
)

DEFAULT_CONSENSUS_THRESHOLD = 0.4
TRIGGERING_VOLATILITY = ("BREAKOUT", "TURBULENT")


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def price_action_agent(candles: Sequence[Candle]) -> AgentVote:
    """Short (last 5) vs medium (5 before that) mean-close ordering.

    BUY when ``close > short > medium``, SELL on the mirror image.
    Confidence is ``|close - medium| / medium × 10``, capped at 0.8.
    """
    if len(candles) < 10:
        return AgentVote("price_action", NEUTRAL, 0.0)

    closes = [c.close for c in candles]
    last = closes[-1]
    short = sma(closes[-5:], 5)
    medium = sma(closes[-10:-5], 5)
    if medium <= 0:
        return AgentVote("price_action", NEUTRAL, 0.0)

    if last > short > medium:
        direction = BUY
    elif last < short < medium:
        direction = SELL
    else:
        direction = NEUTRAL

    strength = finite_or(abs(last - medium) / medium, 0.0)
    return AgentVote("price_action", direction, _clamp(strength * 10, 0.0, 0.8))


def momentum_agent(momentum: MomentumState) -> AgentVote:
    """Direction from the momentum sign; confidence ``|scalar| / 5`` capped at 0.7."""
    scalar = finite_or(momentum.scalar, 0.0)
    if scalar > 0:
        direction = BUY
    elif scalar < 0:
        direction = SELL
    else:
        return AgentVote("momentum", NEUTRAL, 0.0)
    return AgentVote("momentum", direction, _clamp(abs(scalar) / 5, 0.0, 0.7))


def order_flow_agent(flow: OrderFlowState) -> AgentVote:
    if flow.flow_direction == "STRONG_BUY":
        return AgentVote("order_flow", BUY, 0.6)
    if flow.flow_direction == "STRONG_SELL":
        return AgentVote("order_flow", SELL, 0.6)
    return AgentVote("order_flow", NEUTRAL, 0.0)


def volatility_agent(regime: str, candles: Sequence[Candle]) -> AgentVote:
    """Votes 0.4 in the direction of the latest close-to-close move when the
    volatility regime is BREAKOUT or TURBULENT; NEUTRAL/0.2 otherwise.

    A flat latest move stays NEUTRAL even in a triggering regime.
    """
    if regime not in TRIGGERING_VOLATILITY or len(candles) < 2:
        return AgentVote("volatility", NEUTRAL, 0.2)

    move = candles[-1].close - candles[-2].close
    if move > 0:
        return AgentVote("volatility", BUY, 0.4)
    if move < 0:
        return AgentVote("volatility", SELL, 0.4)
    return AgentVote("volatility", NEUTRAL, 0.2)


def coherence_agent(candles: Sequence[Candle], coherence: float) -> AgentVote:
    """Follows the 20-candle return when spectral coherence exceeds 0.7."""
    if coherence <= 0.7 or len(candles) <= 20:
        return AgentVote("coherence", NEUTRAL, 0.1)

    current = candles[-1].close
    past = candles[-20].close
    if current > past:
        direction = BUY
    elif current < past:
        direction = SELL
    else:
        return AgentVote("coherence", NEUTRAL, 0.1)
    return AgentVote("coherence", direction, _clamp(coherence * 0.8, 0.0, 1.0))


def aggregate_votes(
    votes: Sequence[AgentVote],
    threshold: float = DEFAULT_CONSENSUS_THRESHOLD,
) -> ConsensusResult:
    """Confidence-weighted vote.

    Each vote's confidence goes into its direction's bucket; BUY and SELL
    are then divided by the total confidence of all votes, NEUTRAL included.
    The larger side wins only if it strictly beats the other and exceeds
    *threshold*; otherwise the result is NEUTRAL carrying the larger score.
    """
    buy = sum(v.confidence for v in votes if v.direction == BUY)
    sell = sum(v.confidence for v in votes if v.direction == SELL)
    total = sum(v.confidence for v in votes)
    if total <= 0:
        return ConsensusResult(NEUTRAL, 0.0)

    buy_score = buy / total
    sell_score = sell / total
    if buy_score > sell_score and buy_score > threshold:
        return ConsensusResult(BUY, buy_score, buy_score, sell_score)
    if sell_score > buy_score and sell_score > threshold:
        return ConsensusResult(SELL, sell_score, buy_score, sell_score)
    return ConsensusResult(NEUTRAL, max(buy_score, sell_score), buy_score, sell_score)
