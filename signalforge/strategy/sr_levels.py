"""Support/Resistance level detection and volume profile: pure functions."""

import math
from dataclasses import dataclass, field
from typing import Sequence

from signalforge.market.models import Candle
from signalforge.strategy.indicators import finite_or
from signalforge.strategy.models import SRLevel, SRLevels, VolumeBin


@dataclass
class _SwingPoint:
    price: float
    volume: float
    index: int


@dataclass
class _Cluster:
    price: float
    volume: float
    points: list[_SwingPoint] = field(default_factory=list)


def find_swing_highs(candles: Sequence[Candle], window: int = 2) -> list[_SwingPoint]:
    """Candles whose high is strictly above the highs of *window* neighbours
    on each side."""
    points: list[_SwingPoint] = []
    for i in range(window, len(candles) - window):
        high = candles[i].high
        if all(
            candles[i - j].high < high and candles[i + j].high < high
            for j in range(1, window + 1)
        ):
            points.append(_SwingPoint(high, candles[i].volume, i))
    return points


def find_swing_lows(candles: Sequence[Candle], window: int = 2) -> list[_SwingPoint]:
    """Candles whose low is strictly below the lows of *window* neighbours
    on each side."""
    points: list[_SwingPoint] = []
    for i in range(window, len(candles) - window):
        low = candles[i].low
        if all(
            candles[i - j].low > low and candles[i + j].low > low
            for j in range(1, window + 1)
        ):
            points.append(_SwingPoint(low, candles[i].volume, i))
    return points


def cluster_points(
    points: list[_SwingPoint],
    tolerance: float,
    mean_volume: float,
) -> list[_Cluster]:
    """Greedily group swing points within *tolerance* (relative) of a cluster.

    Points are visited in ascending price order; each joins the first
    cluster whose running mean price is within tolerance, else starts a new
    one.  Returned clusters are sorted by strength, strongest first:

        strength = count × (1 + log10(cluster_volume / mean_volume))
    """
    clusters: list[_Cluster] = []
    for point in sorted(points, key=lambda p: p.price):
        for cluster in clusters:
            if cluster.price > 0 and abs(point.price - cluster.price) / cluster.price < tolerance:
                cluster.points.append(point)
                cluster.volume += point.volume
                cluster.price = sum(p.price for p in cluster.points) / len(cluster.points)
                break
        else:
            clusters.append(_Cluster(price=point.price, volume=point.volume, points=[point]))

    clusters.sort(key=lambda c: cluster_strength(c, mean_volume), reverse=True)
    return clusters


def cluster_strength(cluster: _Cluster, mean_volume: float) -> float:
    ratio = cluster.volume / mean_volume if mean_volume > 0 else 0.0
    # Zero-volume clusters score as if they had average volume.
    if ratio <= 0:
        ratio = 1.0
    return finite_or(len(cluster.points) * (1 + math.log10(ratio)), float(len(cluster.points)))


def _to_level(cluster: _Cluster, mean_volume: float) -> SRLevel:
    return SRLevel(
        price=round(cluster.price, 6),
        strength=round(cluster_strength(cluster, mean_volume), 2),
        volume=round(cluster.volume, 2),
        touches=len(cluster.points),
    )


def calculate_levels(
    candles: Sequence[Candle],
    levels: int = 5,
    tolerance: float = 0.005,
    min_candles: int = 50,
) -> SRLevels:
    """Detect clustered support and resistance levels.

    Args:
        candles: Ordered candle sequence.
        levels: Strongest clusters kept per side before filtering.
        tolerance: Relative price tolerance for clustering (0.005 = 0.5 %).
        min_candles: Below this, empty levels are returned.

    Returns:
        ``SRLevels`` with supports below ``1.05 × price`` (nearest first) and
        resistances above ``0.95 × price`` (nearest first).
    """
    if len(candles) < min_candles:
        return SRLevels()

    current = candles[-1].close
    mean_volume = sum(c.volume for c in candles) / len(candles)

    support = cluster_points(find_swing_lows(candles), tolerance, mean_volume)[:levels]
    resistance = cluster_points(find_swing_highs(candles), tolerance, mean_volume)[:levels]

    relevant_support = sorted(
        (c for c in support if c.price < current * 1.05),
        key=lambda c: c.price,
        reverse=True,
    )
    relevant_resistance = sorted(
        (c for c in resistance if c.price > current * 0.95),
        key=lambda c: c.price,
    )

    def _near(price: float) -> bool:
        return current > 0 and abs(price - current) / current < 0.02

    return SRLevels(
        support=tuple(_to_level(c, mean_volume) for c in relevant_support),
        resistance=tuple(_to_level(c, mean_volume) for c in relevant_resistance),
        current_price=current,
        in_support_zone=any(_near(c.price) for c in relevant_support),
        in_resistance_zone=any(_near(c.price) for c in relevant_resistance),
    )


def volume_profile(candles: Sequence[Candle], bins: int = 20) -> list[VolumeBin]:
    """Bucket closes into *bins* equal-width price bins weighted by volume.

    The highest-volume bin is flagged as point of control.  A flat price
    range puts all volume in the first bin, every bin priced at the close.
    """
    if not candles or bins <= 0:
        return []

    closes = [c.close for c in candles]
    low, high = min(closes), max(closes)
    price_range = high - low

    bin_size = price_range / bins
    volumes = [0.0] * bins
    for c in candles:
        index = min(bins - 1, int((c.close - low) / bin_size)) if price_range > 0 else 0
        volumes[index] += c.volume

    max_volume = max(volumes)
    return [
        VolumeBin(
            price=round(low + (i + 0.5) * bin_size, 6),
            volume=round(volume, 2),
            percentage=round(volume / max_volume * 100, 2) if max_volume > 0 else 0.0,
            is_poc=volume == max_volume,
        )
        for i, volume in enumerate(volumes)
    ]
