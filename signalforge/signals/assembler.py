"""Signal assembler: candles → indicators → consensus → risk → Signal.

``SignalAssembler.generate`` never raises for expected conditions.  Short
data, an unavailable fetch, low confidence, a gate veto or invalid numerics
each log one line and return ``None``.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional, Sequence

from signalforge.config import Config
from signalforge.errors import (
    FetchUnavailable,
    InsufficientData,
    InvalidNumeric,
    InvalidSignal,
    VetoedByRiskGate,
)
from signalforge.market.context import MarketDataContext
from signalforge.market.models import Candle
from signalforge.market.source import DataSource
from signalforge.models.pipeline_config import PipelineConfig
from signalforge.risk.gate import AllowAllGate, RiskGate
from signalforge.risk.position_sizer import DEFAULT_VOLATILITY
from signalforge.risk.sl_tp import (
    calculate_reward_ratio,
    calculate_risk_parameters,
    reward_ladder,
)
from signalforge.signals.models import Signal, validate_signal
from signalforge.strategy.agents import (
    aggregate_votes,
    coherence_agent,
    momentum_agent,
    order_flow_agent,
    price_action_agent,
    volatility_agent,
)
from signalforge.strategy.indicators import (
    calculate_atr,
    calculate_atr_zscore,
    calculate_coherence,
    calculate_fractal_dimension,
    calculate_momentum,
    calculate_order_flow,
    calculate_volatility_state,
    classify_volatility_regime,
)
from signalforge.strategy.models import NEUTRAL, AgentVote, IndicatorSnapshot
from signalforge.strategy.mtf import calibrate_confidence, confirm_timeframes
from signalforge.strategy.noise import ConstantNoise, NoiseSource, perturb_price
from signalforge.strategy.patterns import PatternAccuracyTracker, detect_patterns
from signalforge.strategy.regime import RegimeClassifier, regime_features
from signalforge.strategy.resonance import EntanglementNetwork, Propagation
from signalforge.strategy.sr_levels import calculate_levels, volume_profile

logger = logging.getLogger("signalforge.signals.assembler")

CANDLE_LIMIT = 200
MIN_CANDLES = 50
MAX_RELATED_SYMBOLS = 3


def build_snapshot(
    candles: Sequence[Candle],
    classifier: RegimeClassifier,
    noise: NoiseSource,
    coherence: Optional[float] = None,
    tracker: Optional[PatternAccuracyTracker] = None,
) -> IndicatorSnapshot:
    """Compute every indicator for one candle batch."""
    momentum = calculate_momentum(candles)
    flow = calculate_order_flow(candles)
    volatility = calculate_volatility_state(candles)
    fractal = calculate_fractal_dimension(candles)
    if coherence is None:
        coherence = calculate_coherence(candles)
    atr_z = calculate_atr_zscore(candles)

    features = regime_features(
        candles,
        momentum_scalar=momentum.scalar,
        entropy=volatility.entropy,
        pressure=flow.pressure,
        fractal_dimension=fractal,
        coherence=coherence,
        noise_term=noise.sample(),
    )

    return IndicatorSnapshot(
        atr=calculate_atr(candles),
        atr_zscore=atr_z,
        # The z-score is reported ×100; the regime thresholds are in σ.
        volatility_regime=classify_volatility_regime(atr_z / 100),
        momentum=momentum,
        order_flow=flow,
        volatility=volatility,
        fractal_dimension=fractal,
        coherence=coherence,
        support_resistance=calculate_levels(candles),
        volume_profile=tuple(volume_profile(candles)),
        patterns=tuple(detect_patterns(candles, tracker=tracker)),
        regime=classifier.predict(features),
    )


def collect_votes(candles: Sequence[Candle], snapshot: IndicatorSnapshot) -> list[AgentVote]:
    """Run the five agents.  A BREAKOUT regime arms the volatility agent
    regardless of the entropy volatility label."""
    if snapshot.regime.regime == "BREAKOUT":
        vol_label = "BREAKOUT"
    else:
        vol_label = snapshot.volatility.regime
    return [
        price_action_agent(candles),
        momentum_agent(snapshot.momentum),
        order_flow_agent(snapshot.order_flow),
        volatility_agent(vol_label, candles),
        coherence_agent(candles, snapshot.coherence),
    ]


class SignalAssembler:
    """Generates signals for one pipeline configuration.

    Args:
        config: Account and threshold settings.
        source: Candle/price provider (``None`` means unavailable).
        context: Shared caches and the signal history.
        pipeline: Market type, leverage and reward ratio override.
        gate: Should-trade gate; defaults to allowing everything.
        classifier: Regime classifier; seeded from ``config.noise_seed``.
        noise: Noise term for the regime features.
        perturb: Apply the price jitter layer to the entry price.
        confirm_mtf: Fetch 15m/1h/4h candles for calibrated confidence.
        clock: Wall-clock seconds, used for signal timestamps.
    """

    def __init__(
        self,
        config: Config,
        source: DataSource,
        context: MarketDataContext,
        pipeline: Optional[PipelineConfig] = None,
        gate: Optional[RiskGate] = None,
        classifier: Optional[RegimeClassifier] = None,
        noise: Optional[NoiseSource] = None,
        tracker: Optional[PatternAccuracyTracker] = None,
        perturb: bool = False,
        confirm_mtf: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._source = source
        self._context = context
        self._gate = gate or AllowAllGate()
        self._classifier = classifier or RegimeClassifier(seed=config.noise_seed)
        self._noise = noise or ConstantNoise()
        self._tracker = tracker
        self._perturb = perturb
        self._confirm_mtf = confirm_mtf
        self._clock = clock
        self._network = EntanglementNetwork(context)

        if pipeline is not None:
            self._market_type = pipeline.market_type
            self._leverage = pipeline.leverage if pipeline.market_type == "futures" else 1.0
            self._risk_reward = pipeline.risk_reward
        else:
            self._market_type = config.market_type
            self._leverage = config.leverage_multiplier
            self._risk_reward = config.risk_reward

    @property
    def context(self) -> MarketDataContext:
        return self._context

    async def generate(self, symbol: str, timeframe: str = "1h") -> Optional[Signal]:
        """Produce a signal for *symbol* on *timeframe*, or ``None``."""
        try:
            return await self._generate(symbol, timeframe)
        except (FetchUnavailable, InsufficientData) as exc:
            logger.info("No signal for %s %s: %s", symbol, timeframe, exc)
        except VetoedByRiskGate as exc:
            logger.info("Signal blocked: %s", exc)
        except (InvalidNumeric, InvalidSignal) as exc:
            logger.warning("Discarded %s %s signal: %s", symbol, timeframe, exc)
        return None

    async def _generate(self, symbol: str, timeframe: str) -> Optional[Signal]:
        candles, price = await asyncio.gather(
            self._source.fetch_candles(symbol, timeframe, CANDLE_LIMIT),
            self._source.fetch_price(symbol),
        )
        if candles is None:
            raise FetchUnavailable(f"candles for {symbol} {timeframe} unavailable")
        if len(candles) < MIN_CANDLES:
            raise InsufficientData(MIN_CANDLES, len(candles))
        if price is None:
            raise FetchUnavailable(f"price for {symbol} unavailable")

        coherence = calculate_coherence(candles)
        self._context.coherence_scores[symbol] = coherence
        snapshot = build_snapshot(
            candles, self._classifier, self._noise, coherence, self._tracker,
        )

        votes = collect_votes(candles, snapshot)
        consensus = aggregate_votes(votes, self._config.consensus_threshold)
        if consensus.direction == NEUTRAL or consensus.confidence < self._config.min_confidence:
            logger.info(
                "Low confidence for %s %s: %s %.3f",
                symbol, timeframe, consensus.direction, consensus.confidence,
            )
            return None

        propagation = await self._propagation(symbol, timeframe, candles)

        decision = await self._gate.should_trade(symbol)
        if not decision.allowed:
            raise VetoedByRiskGate(symbol, decision.reason)

        entry = price
        if self._perturb:
            entry = perturb_price(price, coherence, self._noise)

        reward_ratio = calculate_reward_ratio(
            self._risk_reward, snapshot.regime.regime, coherence, snapshot.momentum.scalar,
        )
        volatility = snapshot.volatility.volatility
        risk = calculate_risk_parameters(
            entry,
            consensus.direction,
            snapshot.atr,
            balance=self._config.account_balance,
            risk_pct=self._config.risk_percent,
            max_position_pct=self._config.max_position_percent,
            reward_ratio=reward_ratio,
            leverage=self._leverage,
            volatility=volatility if volatility is not None else DEFAULT_VOLATILITY,
            coherence=coherence,
            resonance=propagation.resonance,
        )
        if risk is None:
            raise InvalidSignal(f"no risk parameters for {symbol} at {entry}")

        confirmation = None
        confirmation_score = 0.0
        if self._confirm_mtf:
            confirmation = await confirm_timeframes(self._source, symbol, consensus.direction)
            confirmation_score = confirmation.score
        calibrated = calibrate_confidence(
            consensus.confidence * 100,
            confirmation_score,
            snapshot.volatility_regime,
            self._market_type,
        )

        signal = Signal(
            symbol=symbol,
            timeframe=timeframe,
            timestamp=int(self._clock() * 1000),
            consensus=consensus,
            risk=risk,
            indicators=snapshot,
            votes=tuple(votes),
            calibrated_confidence=round(calibrated, 2),
            reward_ratios=reward_ladder(risk.reward_ratio),
            propagation=propagation,
            confirmation=confirmation,
            gate=decision,
            market_type=self._market_type,
            leverage=self._leverage,
        )
        validate_signal(signal)

        self._context.record_signal(signal.key, signal)
        logger.info(
            "Signal %s %s: %s conf=%.3f entry=%.6f",
            symbol, timeframe, signal.direction, signal.confidence, signal.entry,
        )
        return signal

    async def _propagation(
        self, symbol: str, timeframe: str, candles: Sequence[Candle],
    ) -> Propagation:
        related = [s for s in self._context.watch_list if s != symbol][:MAX_RELATED_SYMBOLS]
        if not related:
            return Propagation()

        candles_by_symbol = {symbol: candles}
        for other in related:
            other_candles = await self._source.fetch_candles(other, timeframe, len(candles))
            if other_candles and len(other_candles) > MIN_CANDLES:
                candles_by_symbol[other] = other_candles
        return self._network.propagate(symbol, candles_by_symbol)
