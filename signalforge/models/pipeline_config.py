"""Pipeline configuration dataclass.

Represents one scanning pipeline in the multi-pipeline engine.
"""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PipelineConfig:
    """Configuration for a single signal pipeline.

    Replaces per-market copies of the generator: each pipeline differs only
    by market type, leverage, reward ratio and the symbols it scans.
    """

    name: str
    market_type: str = "futures"  # "futures" or "spot"
    leverage: float = 1.0
    risk_reward: float = 3.2
    symbols: list[str] = field(default_factory=lambda: ["BTCUSDT"])
    timeframes: list[str] = field(default_factory=lambda: ["1h"])
    poll_interval_seconds: int = 120
    enabled: bool = True
