"""SignalForge: application configuration.

Loads .env variables into a typed config object and reads the optional
``pipelines.json`` that describes which symbol sets to scan.
"""

import json
import logging
import os
import pathlib
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

from signalforge.models.pipeline_config import PipelineConfig

logger = logging.getLogger("signalforge.config")

DEFAULT_SCAN_SYMBOLS = [
    "BTCUSDT", "ETHUSDT", "BNBUSDT", "SOLUSDT",
    "XRPUSDT", "ADAUSDT", "DOGEUSDT", "MATICUSDT",
]
DEFAULT_SCAN_TIMEFRAMES = ["5m", "15m", "1h"]


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    account_balance: float
    risk_percent: float
    max_position_percent: float
    risk_reward: float
    market_type: str  # "futures" or "spot"
    leverage: float
    alert_threshold: float
    min_confidence: float
    consensus_threshold: float
    telegram_token: str
    telegram_chat_id: str
    exchange_base_url: str
    state_path: str
    log_level: str
    api_port: int
    scan_interval_seconds: int
    noise_seed: int

    @property
    def leverage_multiplier(self) -> float:
        """Leverage applied to position size; spot trades are unlevered."""
        if self.market_type == "futures":
            return self.leverage
        return 1.0

    @property
    def telegram_enabled(self) -> bool:
        return bool(self.telegram_token and self.telegram_chat_id)


def _env_float(name: str, default: str) -> float:
    raw = os.environ.get(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be numeric, got {raw!r}") from None


def _env_int(name: str, default: str) -> int:
    raw = os.environ.get(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be an integer, got {raw!r}") from None


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Nothing is strictly required: the pipeline runs against public market
    endpoints and logs alerts when Telegram is not configured.  Raises
    ``ValueError`` naming the variable when a numeric value cannot be parsed
    or the market type is unknown.
    """
    load_dotenv(dotenv_path=env_path)

    market_type = os.environ.get("MARKET_TYPE", "futures")
    if market_type not in ("futures", "spot"):
        raise ValueError(
            f"MARKET_TYPE must be 'futures' or 'spot', got '{market_type}'"
        )

    return Config(
        account_balance=_env_float("ACCOUNT_BALANCE", "100000"),
        risk_percent=_env_float("ACCOUNT_RISK_PERCENT", "0.8"),
        max_position_percent=_env_float("MAX_POSITION_SIZE", "10.0"),
        risk_reward=_env_float("QUANTUM_RR", "3.2"),
        market_type=market_type,
        leverage=_env_float("FUTURES_LEVERAGE", "5.0"),
        alert_threshold=_env_float("ALERT_THRESHOLD", "75"),
        min_confidence=_env_float("MIN_CONFIDENCE", "0.3"),
        consensus_threshold=_env_float("CONSENSUS_THRESHOLD", "0.4"),
        telegram_token=os.environ.get("TELEGRAM_TOKEN", ""),
        telegram_chat_id=os.environ.get("TELEGRAM_CHAT_ID", ""),
        exchange_base_url=os.environ.get("EXCHANGE_BASE_URL", "https://api.bitget.com"),
        state_path=os.environ.get("STATE_PATH", "data/signalforge_state.json"),
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        api_port=_env_int("API_PORT", "8080"),
        scan_interval_seconds=_env_int("SCAN_INTERVAL_SECONDS", "120"),
        noise_seed=_env_int("NOISE_SEED", "42"),
    )


def load_pipelines(
    config: Config,
    path: Optional[pathlib.Path] = None,
) -> list[PipelineConfig]:
    """Load pipeline definitions from ``pipelines.json``.

    The file holds ``{"pipelines": [{...}, ...]}``.  Missing keys inherit
    from *config*.  When the file does not exist, a single ``default``
    pipeline is synthesised from *config*.
    """
    if path is None:
        path = pathlib.Path("pipelines.json")

    if not path.exists():
        logger.info("No %s found, using a single default pipeline.", path)
        return [
            PipelineConfig(
                name="default",
                market_type=config.market_type,
                leverage=config.leverage_multiplier,
                risk_reward=config.risk_reward,
                symbols=list(DEFAULT_SCAN_SYMBOLS[:3]),
                timeframes=list(DEFAULT_SCAN_TIMEFRAMES),
                poll_interval_seconds=config.scan_interval_seconds,
            )
        ]

    raw = json.loads(path.read_text(encoding="utf-8"))
    pipelines: list[PipelineConfig] = []
    for entry in raw.get("pipelines", []):
        market_type = entry.get("market_type", config.market_type)
        default_leverage = config.leverage if market_type == "futures" else 1.0
        pipelines.append(
            PipelineConfig(
                name=entry["name"],
                market_type=market_type,
                leverage=float(entry.get("leverage", default_leverage)),
                risk_reward=float(entry.get("risk_reward", config.risk_reward)),
                symbols=list(entry.get("symbols", DEFAULT_SCAN_SYMBOLS[:3])),
                timeframes=list(entry.get("timeframes", DEFAULT_SCAN_TIMEFRAMES)),
                poll_interval_seconds=int(
                    entry.get("poll_interval_seconds", config.scan_interval_seconds)
                ),
                enabled=bool(entry.get("enabled", True)),
            )
        )
    return pipelines
