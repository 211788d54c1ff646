"""Signal model and validation."""

import math
from dataclasses import asdict, dataclass
from typing import Any, Optional

from signalforge.errors import InvalidNumeric, InvalidSignal
from signalforge.risk.gate import GateDecision
from signalforge.risk.sl_tp import RiskParameters
from signalforge.strategy.models import BUY, SELL, AgentVote, ConsensusResult, IndicatorSnapshot
from signalforge.strategy.mtf import Confirmation
from signalforge.strategy.resonance import Propagation


@dataclass(frozen=True)
class Signal:
    """The terminal record of one successful generation call.

    Never updated: a new candle batch produces a new ``Signal``.
    ``calibrated_confidence`` (0-100) is informational; the emission gate is
    applied to ``consensus.confidence``.
    """

    symbol: str
    timeframe: str
    timestamp: int  # epoch milliseconds of generation
    consensus: ConsensusResult
    risk: RiskParameters
    indicators: IndicatorSnapshot
    votes: tuple[AgentVote, ...] = ()
    calibrated_confidence: float = 0.0
    reward_ratios: tuple[float, float, float] = (0.0, 0.0, 0.0)
    propagation: Propagation = Propagation()
    confirmation: Optional[Confirmation] = None
    gate: Optional[GateDecision] = None
    market_type: str = "futures"
    leverage: float = 1.0

    @property
    def key(self) -> str:
        return f"{self.symbol}_{self.timeframe}_{self.timestamp}"

    @property
    def direction(self) -> str:
        return self.consensus.direction

    @property
    def confidence(self) -> float:
        return self.consensus.confidence

    @property
    def entry(self) -> float:
        return self.risk.entry

    @property
    def stop_loss(self) -> float:
        return self.risk.stop_loss

    @property
    def take_profits(self) -> tuple[float, float, float]:
        return self.risk.take_profits

    @property
    def position_size(self) -> float:
        return self.risk.position_size

    def to_dict(self) -> dict:
        data = asdict(self)
        data.update(
            key=self.key,
            direction=self.direction,
            confidence=self.confidence,
            entry=self.entry,
            stop_loss=self.stop_loss,
            take_profits=list(self.take_profits),
            position_size=self.position_size,
        )
        return data


def _non_finite_paths(value: Any, path: str = "") -> list[str]:
    if isinstance(value, bool):
        return []
    if isinstance(value, float):
        return [] if math.isfinite(value) else [path or "<root>"]
    if isinstance(value, dict):
        found: list[str] = []
        for k, v in value.items():
            found.extend(_non_finite_paths(v, f"{path}.{k}" if path else str(k)))
        return found
    if isinstance(value, (list, tuple)):
        found = []
        for i, v in enumerate(value):
            found.extend(_non_finite_paths(v, f"{path}[{i}]"))
        return found
    return []


def validate_signal(signal: Signal) -> None:
    """Reject a signal that must never leave the assembler.

    Raises ``InvalidNumeric`` if any numeric field is NaN or infinite, and
    ``InvalidSignal`` for a missing symbol, a non-directional consensus, a
    non-positive size or take profit, or a stop on the wrong side of entry.
    """
    bad = _non_finite_paths(signal.to_dict())
    if bad:
        raise InvalidNumeric(f"Non-finite values in {signal.symbol} signal: {', '.join(bad)}")

    if not signal.symbol or not signal.timeframe:
        raise InvalidSignal("Signal is missing symbol or timeframe")
    if signal.direction not in (BUY, SELL):
        raise InvalidSignal(f"Signal direction must be BUY or SELL, got {signal.direction}")
    if signal.entry <= 0:
        raise InvalidSignal(f"Invalid entry {signal.entry}")
    if signal.position_size <= 0:
        raise InvalidSignal(f"Invalid position size {signal.position_size}")
    if signal.direction == BUY and signal.stop_loss >= signal.entry:
        raise InvalidSignal(f"BUY stop {signal.stop_loss} is not below entry {signal.entry}")
    if signal.direction == SELL and signal.stop_loss <= signal.entry:
        raise InvalidSignal(f"SELL stop {signal.stop_loss} is not above entry {signal.entry}")
    if any(tp <= 0 for tp in signal.take_profits):
        raise InvalidSignal(f"Non-positive take profit in {signal.symbol} signal: {signal.take_profits}")
