"""Should-trade gates: cross-asset filters consulted before a signal is emitted."""

import logging
import math
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Sequence

from signalforge.market.models import Candle
from signalforge.strategy.indicators import finite_or

logger = logging.getLogger("signalforge.risk.gate")

DOMINANCE_URL = "https://api.coingecko.com/api/v3/global"
DEFAULT_DOMINANCE = 50.0
RISK_OFF_DOMINANCE = 55.0
RISK_ON_DOMINANCE = 45.0


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    reason: str
    correlation: float = 0.0
    dominance: Optional[float] = None


class RiskGate(Protocol):
    async def should_trade(self, symbol: str) -> GateDecision:
        ...


class JsonFetcher(Protocol):
    async def get_json(self, url: str, params: Optional[dict] = None) -> Optional[Any]:
        ...


class AllowAllGate:
    """Never vetoes."""

    async def should_trade(self, symbol: str) -> GateDecision:
        return GateDecision(allowed=True, reason="gate disabled")


def close_correlation(a: Sequence[Candle], b: Sequence[Candle], window: int = 20) -> float:
    """Pearson correlation of the last *window* closes of two series.

    Returns 0 when either series is shorter than 10 candles or flat.
    """
    n = min(len(a), len(b), window)
    if n < 10:
        return 0.0
    xs = [c.close for c in a[-n:]]
    ys = [c.close for c in b[-n:]]
    mx = sum(xs) / n
    my = sum(ys) / n
    cov = sum((x - mx) * (y - my) for x, y in zip(xs, ys))
    var_x = sum((x - mx) ** 2 for x in xs)
    var_y = sum((y - my) ** 2 for y in ys)
    if var_x <= 0 or var_y <= 0:
        return 0.0
    corr = finite_or(cov / math.sqrt(var_x * var_y), 0.0)
    return max(-1.0, min(1.0, corr))


def risk_mode(dominance: float) -> str:
    """RISK_OFF when BTC dominance is above 55 %, RISK_ON below 45 %."""
    if dominance > RISK_OFF_DOMINANCE:
        return "RISK_OFF"
    if dominance < RISK_ON_DOMINANCE:
        return "RISK_ON"
    return "NEUTRAL"


class DominanceRiskGate:
    """Blocks altcoin signals while capital is rotating into BTC.

    BTC pairs always pass.  Other symbols are vetoed in RISK_OFF mode; the
    decision also reports the symbol's close correlation with BTCUSDT.  An
    unavailable dominance reading counts as neutral (50 %), so fetch
    failures never block a trade.
    """

    def __init__(
        self,
        http: JsonFetcher,
        source,
        dominance_url: str = DOMINANCE_URL,
        reference_symbol: str = "BTCUSDT",
    ) -> None:
        self._http = http
        self._source = source
        self._dominance_url = dominance_url
        self._reference = reference_symbol

    async def btc_dominance(self) -> float:
        payload = await self._http.get_json(self._dominance_url)
        try:
            value = float(payload["data"]["market_cap_percentage"]["btc"])
        except (TypeError, KeyError, ValueError):
            logger.warning("BTC dominance unavailable, assuming %.0f%%", DEFAULT_DOMINANCE)
            return DEFAULT_DOMINANCE
        return finite_or(value, DEFAULT_DOMINANCE)

    async def btc_correlation(self, symbol: str) -> float:
        reference = await self._source.fetch_candles(self._reference, "1h", 100)
        candles = await self._source.fetch_candles(symbol, "1h", 100)
        if not reference or not candles:
            return 0.0
        return close_correlation(reference, candles)

    async def should_trade(self, symbol: str) -> GateDecision:
        if "BTC" in symbol:
            return GateDecision(allowed=True, reason="BTC always allowed")

        dominance = await self.btc_dominance()
        mode = risk_mode(dominance)
        if mode == "RISK_OFF":
            return GateDecision(
                allowed=False,
                reason=f"Risk-off: BTC dominance {dominance:.1f}%",
                dominance=dominance,
            )

        correlation = await self.btc_correlation(symbol)
        if mode == "RISK_ON":
            reason = "Risk-on: alt season potential"
        elif correlation > 0.8:
            reason = "High correlation with BTC"
        else:
            reason = "Neutral market conditions"
        return GateDecision(
            allowed=True, reason=reason, correlation=correlation, dominance=dominance,
        )
