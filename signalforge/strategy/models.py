"""Strategy data models: typed representations for indicator and agent outputs."""

from dataclasses import asdict, dataclass, field
from typing import Optional

BUY = "BUY"
SELL = "SELL"
NEUTRAL = "NEUTRAL"

DIRECTIONS = (BUY, SELL, NEUTRAL)


@dataclass(frozen=True)
class AgentVote:
    """One agent's opinion: a direction and a confidence in [0, 1]."""

    agent: str
    direction: str  # "BUY", "SELL" or "NEUTRAL"
    confidence: float


@dataclass(frozen=True)
class ConsensusResult:
    """Weighted aggregate of all agent votes."""

    direction: str
    confidence: float
    buy_score: float = 0.0
    sell_score: float = 0.0


@dataclass(frozen=True)
class MomentumState:
    scalar: float
    vector: tuple[float, ...]
    phase: float
    coherence: str  # "HIGH", "MEDIUM" or "LOW"


@dataclass(frozen=True)
class OrderFlowState:
    pressure: float
    imbalance: float
    dark_pool: bool
    dark_ratio: float
    flow_direction: str  # "STRONG_BUY", "STRONG_SELL" or "NEUTRAL"


@dataclass(frozen=True)
class VolatilityState:
    """Entropy-based description of the return distribution."""

    regime: str
    entropy: float
    chaos: float
    volatility: Optional[float] = None  # annualised stdev of log returns
    autocorrelation: tuple[float, ...] = ()


@dataclass(frozen=True)
class SRLevel:
    """A clustered support or resistance level."""

    price: float
    strength: float
    volume: float
    touches: int


@dataclass(frozen=True)
class SRLevels:
    support: tuple[SRLevel, ...] = ()
    resistance: tuple[SRLevel, ...] = ()
    current_price: float = 0.0
    in_support_zone: bool = False
    in_resistance_zone: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class VolumeBin:
    price: float
    volume: float
    percentage: float
    is_poc: bool


@dataclass(frozen=True)
class PatternMatch:
    pattern: str
    confidence: float
    position: int
    timestamp: int


@dataclass(frozen=True)
class RegimeResult:
    """Regime classifier output: arg-max label, its probability, full distribution."""

    regime: str
    confidence: float
    probabilities: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class IndicatorSnapshot:
    """All indicators computed for one (symbol, timeframe, candles) triple.

    Built once per candle batch and never mutated.
    """

    atr: float
    atr_zscore: float
    volatility_regime: str
    momentum: MomentumState
    order_flow: OrderFlowState
    volatility: VolatilityState
    fractal_dimension: float
    coherence: float
    support_resistance: SRLevels
    volume_profile: tuple[VolumeBin, ...]
    patterns: tuple[PatternMatch, ...]
    regime: RegimeResult

    def to_dict(self) -> dict:
        return asdict(self)
