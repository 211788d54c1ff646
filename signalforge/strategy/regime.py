"""Market regime classifier.

A fixed feed-forward scorer 8 → 16 → 32 → 64 → 32 → 16 → 4 with ReLU hidden
layers and a softmax head over TREND / RANGE / BREAKOUT / REVERSAL.  The
weights are drawn once from a seeded generator and never trained, so the
same seed always yields the same classifier.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import torch
import torch.nn as nn

from signalforge.market.models import Candle
from signalforge.strategy.indicators import (
    calculate_coherence,
    calculate_fractal_dimension,
    calculate_momentum,
    calculate_order_flow,
    calculate_volatility_state,
    finite_or,
)
from signalforge.strategy.models import RegimeResult
from signalforge.strategy.noise import ConstantNoise, NoiseSource

REGIMES = ("TREND", "RANGE", "BREAKOUT", "REVERSAL")
LAYER_WIDTHS = (8, 16, 32, 64, 32, 16, 4)
FEATURE_DIM = LAYER_WIDTHS[0]
MIN_CANDLES = 50


def build_network(widths: Sequence[int] = LAYER_WIDTHS) -> nn.Sequential:
    layers: list[nn.Module] = []
    for i in range(len(widths) - 1):
        layers.append(nn.Linear(widths[i], widths[i + 1]))
        if i < len(widths) - 2:
            layers.append(nn.ReLU())
    layers.append(nn.Softmax(dim=-1))
    return nn.Sequential(*layers)


def regime_features(
    candles: Sequence[Candle],
    momentum_scalar: float,
    entropy: float,
    pressure: float,
    fractal_dimension: float,
    coherence: float,
    noise_term: float,
) -> list[float]:
    """Assemble the 8-scalar feature vector.

    Order: momentum / 100, volatility entropy, order-flow pressure,
    fractal dimension - 1.5, coherence, 20-candle return, last candle
    (high - low) / close, noise term.  Non-finite entries become 0.
    """
    last = candles[-1]
    anchor = candles[-20].close if len(candles) >= 20 else candles[0].close
    window_return = last.close / anchor - 1 if anchor else 0.0
    bar_range = abs(last.high - last.low) / last.close if last.close else 0.0

    raw = [
        momentum_scalar / 100,
        entropy,
        pressure,
        fractal_dimension - 1.5,
        coherence,
        window_return,
        bar_range,
        noise_term,
    ]
    return [finite_or(f, 0.0) for f in raw]


class RegimeClassifier:
    """Deterministic regime scorer.

    Args:
        seed: Seed for the weight generator.
    """

    def __init__(self, seed: int = 42) -> None:
        self.seed = seed
        self.net = build_network()
        self._init_weights(seed)
        self.net.eval()

    def _init_weights(self, seed: int) -> None:
        generator = torch.Generator().manual_seed(seed)
        with torch.no_grad():
            for module in self.net:
                if isinstance(module, nn.Linear):
                    bound = 1.0 / math.sqrt(module.in_features)
                    module.weight.uniform_(-bound, bound, generator=generator)
                    module.bias.uniform_(-bound, bound, generator=generator)

    def predict(self, features: Sequence[float]) -> RegimeResult:
        """Score one feature vector."""
        if len(features) != FEATURE_DIM:
            raise ValueError(f"Expected {FEATURE_DIM} features, got {len(features)}")

        with torch.no_grad():
            x = torch.tensor([list(features)], dtype=torch.float32)
            probs = self.net(x)[0].tolist()

        best = max(range(len(REGIMES)), key=lambda i: probs[i])
        return RegimeResult(
            regime=REGIMES[best],
            confidence=probs[best],
            probabilities=dict(zip(REGIMES, probs)),
        )

    def detect(
        self,
        candles: Sequence[Candle],
        noise: Optional[NoiseSource] = None,
    ) -> RegimeResult:
        """Classify *candles*, computing the features from scratch.

        Fewer than 50 candles yields ``UNKNOWN`` with a uniform distribution.
        """
        if len(candles) < MIN_CANDLES:
            uniform = 1.0 / len(REGIMES)
            return RegimeResult(
                regime="UNKNOWN",
                confidence=uniform,
                probabilities={r: uniform for r in REGIMES},
            )

        noise = noise or ConstantNoise()
        features = regime_features(
            candles,
            momentum_scalar=calculate_momentum(candles).scalar,
            entropy=calculate_volatility_state(candles).entropy,
            pressure=calculate_order_flow(candles).pressure,
            fractal_dimension=calculate_fractal_dimension(candles),
            coherence=calculate_coherence(candles),
            noise_term=noise.sample(),
        )
        return self.predict(features)
