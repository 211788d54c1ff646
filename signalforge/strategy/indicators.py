"""Technical indicators: ATR, momentum, order flow, fractal dimension, entropy
volatility and spectral coherence.  Pure functions, no I/O.

Every function degrades to a documented neutral value when it is handed
fewer candles than it needs, and never returns NaN or infinity.
"""

import math
from typing import Sequence

import numpy as np

from signalforge.market.models import Candle
from signalforge.strategy.models import MomentumState, OrderFlowState, VolatilityState

_EPSILON = 1e-12


def finite_or(value: float, default: float) -> float:
    """Return *value* if it is a finite number, else *default*."""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(number):
        return default
    return number


def sma(values: Sequence[float], period: int) -> float:
    """Simple mean of the last *period* values (all of them if fewer)."""
    window = list(values)[-period:] if period > 0 else []
    if not window:
        return 0.0
    return finite_or(sum(window) / len(window), 0.0)


def log_returns(candles: Sequence[Candle]) -> list[float]:
    """Log close-to-close returns, skipping pairs with a non-positive close."""
    returns: list[float] = []
    for prev, cur in zip(candles, candles[1:]):
        if prev.close <= 0 or cur.close <= 0:
            continue
        returns.append(math.log(cur.close / prev.close))
    return returns


# ── ATR ──────────────────────────────────────────────────────────────────


def true_ranges(candles: Sequence[Candle]) -> list[float]:
    """True range of every candle after the first.

        TR = max(high - low, |high - prev_close|, |low - prev_close|)
    """
    return [
        max(
            cur.high - cur.low,
            abs(cur.high - prev.close),
            abs(cur.low - prev.close),
        )
        for prev, cur in zip(candles, candles[1:])
    ]


def calculate_atr(candles: Sequence[Candle], period: int = 14) -> float:
    """Average True Range: the mean of the last *period* true ranges.

    Needs ``period + 1`` candles (a previous close for the first TR).
    Returns ``0.0`` when there is not enough data.
    """
    if period <= 0 or len(candles) < period + 1:
        return 0.0
    recent = true_ranges(candles)[-period:]
    return finite_or(sum(recent) / len(recent), 0.0)


def calculate_atr_zscore(candles: Sequence[Candle], period: int = 14) -> float:
    """Z-score of the latest ATR against every earlier ATR window, ×100.

    The earlier windows are the rolling *period*-TR means ending before the
    last candle.  Needs ``2 × period`` candles and at least two earlier
    windows; returns ``0.0`` otherwise, or when the windows have no spread.
    """
    if period <= 0 or len(candles) < 2 * period:
        return 0.0

    trs = np.asarray(true_ranges(candles), dtype=float)
    rolling = np.convolve(trs, np.ones(period) / period, mode="valid")
    latest = rolling[-1]
    history = rolling[:-1]
    if len(history) < 2:
        return 0.0

    stdev = float(np.std(history, ddof=1))
    if not math.isfinite(stdev) or stdev < _EPSILON:
        return 0.0
    return finite_or((latest - float(np.mean(history))) / stdev * 100, 0.0)


def classify_volatility_regime(zscore: float) -> str:
    """Map a z-score to VERY_LOW / LOW / NORMAL / HIGH / VERY_HIGH.

    Thresholds are ±1 and ±2.  A non-finite score yields ``"UNKNOWN"``.
    """
    if not math.isfinite(zscore):
        return "UNKNOWN"
    if zscore > 2:
        return "VERY_HIGH"
    if zscore > 1:
        return "HIGH"
    if zscore < -2:
        return "VERY_LOW"
    if zscore < -1:
        return "LOW"
    return "NORMAL"


# ── Momentum ─────────────────────────────────────────────────────────────


def calculate_momentum(
    candles: Sequence[Candle],
    periods: Sequence[int] = (3, 7, 14),
) -> MomentumState:
    """Multi-period rate-of-change momentum.

    For each *p*: ``m_p = (close[-1] - close[-p]) / close[-p]``.

        scalar    = ±‖m‖ × 100   (sign of Σ m_p)
        phase     = atan2(m[1], m[0])
        coherence = HIGH if ‖m‖ > 0.02, MEDIUM if ‖m‖ > 0.005, else LOW

    Needs ``max(periods)`` candles; otherwise a zero state.
    """
    if not periods or len(candles) < max(periods):
        return MomentumState(scalar=0.0, vector=(), phase=0.0, coherence="LOW")

    current = candles[-1].close
    momenta: list[float] = []
    for p in periods:
        past = candles[-p].close
        momenta.append(finite_or((current - past) / past, 0.0) if past else 0.0)

    magnitude = math.sqrt(sum(m * m for m in momenta))
    sign = 1.0 if sum(momenta) >= 0 else -1.0

    second = momenta[1] if len(momenta) > 1 else 0.0
    phase = math.atan2(second, momenta[0] or 0.001)

    if magnitude > 0.02:
        coherence = "HIGH"
    elif magnitude > 0.005:
        coherence = "MEDIUM"
    else:
        coherence = "LOW"

    return MomentumState(
        scalar=finite_or(sign * magnitude * 100, 0.0),
        vector=tuple(m * 100 for m in momenta),
        phase=round(phase, 4),
        coherence=coherence,
    )


# ── Order flow ───────────────────────────────────────────────────────────


def calculate_order_flow(candles: Sequence[Candle], window: int = 20) -> OrderFlowState:
    """Buy/sell volume pressure over the trailing *window* candles.

    Bullish candles count as buy volume, bearish as sell volume; dojis
    (close == open) count as neither.  ``pressure = (buy - sell) / total``.
    A candle is dark-pool-like when its volume exceeds twice the window
    average while its range is under 1.5× its body.
    """
    neutral = OrderFlowState(
        pressure=0.0, imbalance=0.0, dark_pool=False, dark_ratio=0.0,
        flow_direction="NEUTRAL",
    )
    if len(candles) < window:
        return neutral

    recent = candles[-window:]
    avg_volume = sum(c.volume for c in recent) / len(recent)

    buy_volume = 0.0
    sell_volume = 0.0
    dark_volume = 0.0
    for c in recent:
        if c.is_bullish:
            buy_volume += c.volume
        elif c.is_bearish:
            sell_volume += c.volume
        if c.volume > 2 * avg_volume and c.range < c.body * 1.5:
            dark_volume += c.volume

    total = buy_volume + sell_volume
    if total <= 0:
        return neutral

    pressure = finite_or((buy_volume - sell_volume) / total, 0.0)
    if pressure > 0.1:
        flow = "STRONG_BUY"
    elif pressure < -0.1:
        flow = "STRONG_SELL"
    else:
        flow = "NEUTRAL"

    return OrderFlowState(
        pressure=round(pressure, 3),
        imbalance=round(abs(pressure), 3),
        dark_pool=dark_volume > total * 0.3,
        dark_ratio=round(finite_or(dark_volume / total, 0.0), 3),
        flow_direction=flow,
    )


# ── Fractal dimension ────────────────────────────────────────────────────


def calculate_fractal_dimension(candles: Sequence[Candle], window: int = 100) -> float:
    """Fractal dimension ``2 - H`` of the trailing *window* closes.

        H = log(path_length / range) / log(n - 1)

    Returns the neutral ``1.5`` with fewer than *window* candles or a flat
    price range.
    """
    if window < 3 or len(candles) < window:
        return 1.5

    prices = [c.close for c in candles[-window:]]
    path_length = sum(abs(b - a) for a, b in zip(prices, prices[1:]))
    price_range = max(prices) - min(prices)
    if price_range <= 0:
        return 1.5

    hurst = math.log(path_length / price_range) / math.log(len(prices) - 1)
    return round(finite_or(2 - hurst, 1.5), 3)


# ── Entropy volatility ───────────────────────────────────────────────────


def calculate_volatility_state(
    candles: Sequence[Candle],
    min_candles: int = 50,
) -> VolatilityState:
    """Describe the log-return distribution.

    Entropy is the 10-bin histogram entropy normalised by ``ln 10``; chaos
    is ``1 - |acf(1)|``.  Labels, first match wins:

        CHAOTIC     stdev > 0.02 and entropy > 0.8
        TURBULENT   stdev > 0.015
        COMPRESSED  stdev < 0.005 and entropy < 0.3 (or zero return range)
        FRACTAL     chaos > 0.7
        NORMAL      otherwise

    ``UNKNOWN`` with fewer than *min_candles* candles.
    """
    unknown = VolatilityState(regime="UNKNOWN", entropy=0.5, chaos=0.0)
    if len(candles) < min_candles:
        return unknown

    returns = np.asarray(log_returns(candles), dtype=float)
    if len(returns) < 10:
        return unknown

    low = float(returns.min())
    spread = float(returns.max()) - low
    if spread <= _EPSILON:
        return VolatilityState(regime="COMPRESSED", entropy=0.0, chaos=0.0, volatility=0.0)

    mean = float(returns.mean())
    variance = float(np.mean((returns - mean) ** 2))
    stdev = math.sqrt(variance)

    bins = np.clip(np.floor((returns - low) / spread * 10), 0, 9).astype(int)
    counts = np.bincount(bins, minlength=10)
    probs = counts[counts > 0] / len(returns)
    entropy = finite_or(-float(np.sum(probs * np.log(probs))) / math.log(10), 0.5)

    n = len(returns)
    deviations = returns - mean
    autocorrelation: list[float] = []
    for lag in range(1, min(5, n - 1) + 1):
        acf = np.sum(deviations[lag:] * deviations[:-lag]) / ((n - lag) * variance)
        autocorrelation.append(finite_or(acf, 0.0))

    chaos = 1 - abs(autocorrelation[0]) if autocorrelation else 0.0

    if stdev > 0.02 and entropy > 0.8:
        regime = "CHAOTIC"
    elif stdev > 0.015:
        regime = "TURBULENT"
    elif stdev < 0.005 and entropy < 0.3:
        regime = "COMPRESSED"
    elif chaos > 0.7:
        regime = "FRACTAL"
    else:
        regime = "NORMAL"

    return VolatilityState(
        regime=regime,
        entropy=round(entropy, 3),
        chaos=round(chaos, 3),
        volatility=round(finite_or(stdev * math.sqrt(365), 0.0), 3),
        autocorrelation=tuple(round(a, 3) for a in autocorrelation),
    )


# ── Spectral coherence ───────────────────────────────────────────────────


def calculate_coherence(candles: Sequence[Candle], min_candles: int = 50) -> float:
    """Share of spectral power held by the dominant frequency of log returns.

    Returns ``0.5`` with fewer than *min_candles* candles, fewer than 20
    returns, or a zero-power spectrum.
    """
    if len(candles) < min_candles:
        return 0.5

    returns = np.asarray(log_returns(candles), dtype=float)
    if len(returns) < 20:
        return 0.5

    spectrum = np.fft.fft(returns) / len(returns)
    power = np.abs(spectrum) ** 2
    total = float(power.sum())
    if total <= 0:
        return 0.5
    return round(finite_or(float(power.max()) / total, 0.5), 3)
