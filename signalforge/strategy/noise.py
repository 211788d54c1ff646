"""Injectable noise sources for the optional perturbation layer.

Any randomness in the pipeline goes through a ``NoiseSource`` so that a
seeded or constant source makes every run reproducible.
"""

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class NoiseSource(Protocol):
    def sample(self) -> float:
        """Return a value in ``[0, 1)``."""
        ...


class SeededNoise:
    """Uniform noise from a seeded numpy generator."""

    def __init__(self, seed: int = 42) -> None:
        self._rng = np.random.default_rng(seed)

    def sample(self) -> float:
        return float(self._rng.random())


class ConstantNoise:
    """Always returns the same value; the deterministic choice for tests."""

    def __init__(self, value: float = 0.5) -> None:
        if not 0.0 <= value < 1.0:
            raise ValueError(f"noise value must be in [0, 1), got {value}")
        self._value = value

    def sample(self) -> float:
        return self._value


def perturb_price(price: float, coherence: float, noise: NoiseSource) -> float:
    """Jitter *price* by at most ±0.05 %, less as coherence approaches 1.

        price × (1 + (u - 0.5) × 0.001 × (1 - coherence))
    """
    u = noise.sample()
    return price * (1 + (u - 0.5) * 0.001 * (1 - coherence))
