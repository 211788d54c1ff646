"""Tests for signalforge.strategy.sr_levels and signalforge.strategy.patterns."""

import pytest

from signalforge.market.models import Candle
from signalforge.strategy.patterns import (
    PatternAccuracyTracker,
    detect_patterns,
    is_bearish_engulfing,
    is_bullish_engulfing,
    is_doji,
    is_evening_star,
    is_hammer,
    is_morning_star,
    is_shooting_star,
    scan_patterns,
)
from signalforge.strategy.sr_levels import (
    calculate_levels,
    cluster_points,
    find_swing_highs,
    find_swing_lows,
    volume_profile,
    _SwingPoint,
)


# ── Helpers ──────────────────────────────────────────────────────────────


def _c(i, o, h, l, c, v=1.0) -> Candle:
    return Candle(timestamp=i * 3_600_000, open=o, high=h, low=l, close=c, volume=v)


def _from_lows(lows, last_close=None) -> list[Candle]:
    """Dojis two units tall sitting on each given low."""
    candles = [_c(i, low + 1, low + 2, low, low + 1) for i, low in enumerate(lows)]
    if last_close is not None:
        last = candles[-1]
        candles[-1] = _c(len(lows) - 1, last.open, max(last.high, last_close), last.low, last_close)
    return candles


def _two_support_clusters() -> list[Candle]:
    lows = [130.0] * 60
    for centre, value in ((10, 100.0), (20, 110.0), (30, 100.5), (40, 110.5)):
        lows[centre - 1] = lows[centre + 1] = 120.0
        lows[centre] = value
    lows[-1] = 114.0
    return _from_lows(lows, last_close=115.0)


def _flat(n=200, price=100.0) -> list[Candle]:
    return [_c(i, price, price, price, price) for i in range(n)]


# ── Swing points & clustering ────────────────────────────────────────────


class TestSwingPoints:
    def test_swing_low_needs_strict_neighbours(self):
        candles = _from_lows([5, 4, 3, 4, 5, 5, 5])
        lows = find_swing_lows(candles)
        assert [p.index for p in lows] == [2]
        assert lows[0].price == 3

    def test_equal_neighbours_not_a_swing(self):
        assert find_swing_lows(_from_lows([5, 3, 3, 3, 5])) == []

    def test_swing_high(self):
        candles = _from_lows([1, 2, 6, 2, 1])
        highs = find_swing_highs(candles)
        assert [p.index for p in highs] == [2]
        assert highs[0].price == 8

    def test_cluster_within_tolerance(self):
        points = [_SwingPoint(100.0, 1.0, 0), _SwingPoint(100.4, 1.0, 1), _SwingPoint(110.0, 1.0, 2)]
        clusters = cluster_points(points, tolerance=0.01, mean_volume=1.0)
        assert len(clusters) == 2
        assert len(clusters[0].points) == 2
        assert clusters[0].price == pytest.approx(100.2)


class TestSupportResistance:
    def test_two_support_clusters(self):
        levels = calculate_levels(_two_support_clusters(), tolerance=0.01)
        assert len(levels.support) == 2
        assert [lvl.price for lvl in levels.support] == [
            pytest.approx(110.25),
            pytest.approx(100.25),
        ]
        assert all(lvl.strength >= 1 for lvl in levels.support)
        assert all(lvl.touches == 2 for lvl in levels.support)

    def test_short_input_empty(self):
        levels = calculate_levels(_two_support_clusters()[:10])
        assert levels.support == ()
        assert levels.resistance == ()

    def test_flat_has_no_levels(self):
        levels = calculate_levels(_flat())
        assert levels.support == ()
        assert levels.resistance == ()

    def test_support_zone_flag(self):
        lows = [130.0] * 60
        lows[29], lows[30], lows[31] = 120.0, 112.0, 120.0
        levels = calculate_levels(_from_lows(lows, last_close=113.0))
        assert levels.in_support_zone is True
        assert levels.current_price == 113.0


class TestVolumeProfile:
    def test_flat_range_single_point_of_control(self):
        profile = volume_profile(_flat())
        assert len(profile) == 20
        assert [b for b in profile if b.is_poc] == [profile[0]]
        assert profile[0].volume == 200.0
        assert profile[0].percentage == 100.0
        assert all(b.price == 100.0 for b in profile)

    def test_point_of_control(self):
        candles = [_c(i, 100, 101, 99, 100.0 + (i % 10), v=1.0) for i in range(50)]
        candles.append(_c(50, 100, 101, 99, 100.0, v=500.0))
        profile = volume_profile(candles, bins=10)
        assert len(profile) == 10
        poc = [b for b in profile if b.is_poc]
        assert len(poc) == 1
        assert poc[0] is profile[0]
        assert poc[0].percentage == 100.0


# ── Pattern predicates ───────────────────────────────────────────────────


class TestPatternPredicates:
    def test_bullish_engulfing(self):
        c1 = _c(0, 105, 106, 99, 100)
        c2 = _c(1, 99, 107, 98, 106)
        assert is_bullish_engulfing(c1, c2)
        assert not is_bearish_engulfing(c1, c2)

    def test_engulfing_requires_containment(self):
        c1 = _c(0, 105, 106, 90, 95)
        c2 = _c(1, 94.9, 106, 94, 104)
        assert not is_bullish_engulfing(c1, c2)

    def test_bearish_engulfing(self):
        assert is_bearish_engulfing(_c(0, 100, 106, 99, 105), _c(1, 106, 107, 98, 99))

    def test_hammer(self):
        assert is_hammer(_c(0, 100, 101.2, 96, 101))

    def test_shooting_star(self):
        assert is_shooting_star(_c(0, 101, 105, 99.8, 100))

    def test_doji_includes_flat(self):
        assert is_doji(_c(0, 100, 100, 100, 100))
        assert is_doji(_c(0, 100, 101, 99, 100.1))
        assert not is_doji(_c(0, 100, 101, 99, 100.5))

    def test_morning_and_evening_star(self):
        assert is_morning_star(_c(0, 110, 111, 99, 100), _c(1, 99, 101, 97, 99.2), _c(2, 100, 108, 99, 107))
        assert is_evening_star(_c(0, 100, 111, 99, 110), _c(1, 111, 113, 109, 111.2), _c(2, 110, 111, 101, 102))


# ── Detection ────────────────────────────────────────────────────────────


class TestPatternDetection:
    def test_doji_on_every_flat_candle(self):
        candles = _flat()
        matches = scan_patterns(candles, lookback=len(candles))
        assert len(matches) == 200
        assert {m.pattern for m in matches} == {"DOJI"}
        assert sorted(m.position for m in matches) == list(range(200))

    def test_detect_top_three(self):
        matches = detect_patterns(_flat())
        assert len(matches) == 3
        assert all(m.pattern == "DOJI" for m in matches)

    def test_detect_needs_three_candles(self):
        assert detect_patterns(_flat(2)) == []

    def test_engulfing_position(self):
        candles = [
            _c(0, 100, 105, 99, 104),
            _c(1, 105, 106, 99, 100),
            _c(2, 99, 107, 98, 106),
        ]
        matches = detect_patterns(candles)
        assert [(m.pattern, m.position) for m in matches] == [("BULLISH_ENGULFING", 1)]
        assert matches[0].confidence == 0.7
        assert matches[0].timestamp == candles[1].timestamp


class TestPatternAccuracyTracker:
    def test_blend_after_ten_observations(self):
        tracker = PatternAccuracyTracker()
        outcomes = [True] * 7 + [False] * 3
        for outcome in outcomes[:-1]:
            assert tracker.record("DOJI", outcome) == 0.6
        assert tracker.record("DOJI", outcomes[-1]) == pytest.approx(0.8 * 0.7 + 0.2 * 0.6)

    def test_scan_uses_tracked_confidence(self):
        tracker = PatternAccuracyTracker(min_observations=1)
        tracker.record("DOJI", False)
        matches = scan_patterns(_flat(5), lookback=5, tracker=tracker)
        assert all(m.confidence == pytest.approx(0.12) for m in matches)

    def test_unknown_pattern_recorded_without_confidence(self):
        tracker = PatternAccuracyTracker()
        assert tracker.record("TWEEZER", True) == 0.0
