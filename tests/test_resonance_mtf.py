"""Tests for cross-asset resonance and multi-timeframe confirmation."""

from datetime import datetime, timezone

import pytest

from signalforge.market.context import MarketDataContext
from signalforge.market.models import Candle
from signalforge.strategy.mtf import (
    break_of_structure,
    calibrate_confidence,
    candle_bias,
    change_of_character,
    check_timeframe,
    confirm_timeframes,
    session_for,
    summarize,
    TimeframeCheck,
)
from signalforge.strategy.resonance import EntanglementNetwork, lagged_return_product


# ── Helpers ──────────────────────────────────────────────────────────────


def _c(i, o, h, l, c, v=1.0) -> Candle:
    return Candle(timestamp=i * 3_600_000, open=o, high=h, low=l, close=c, volume=v)


def _closes(values) -> list[Candle]:
    return [_c(i, v, v, v, v) for i, v in enumerate(values)]


def _alternating(n=60, first=100.0, second=200.0) -> list[Candle]:
    return _closes([first if i % 2 == 0 else second for i in range(n)])


def _trend(n=100, start=100.0, rate=1.001) -> list[Candle]:
    candles = []
    prev = start
    for i in range(n):
        close = prev * rate
        candles.append(_c(i, prev, max(prev, close) * 1.0002, min(prev, close) * 0.9998, close))
        prev = close
    return candles


class _FakeSource:
    def __init__(self, series):
        self.series = series
        self.requests = []

    async def fetch_candles(self, symbol, timeframe, limit=200):
        self.requests.append((symbol, timeframe, limit))
        return self.series.get(timeframe)

    async def fetch_price(self, symbol):
        return None


_WEDNESDAY = datetime(2024, 1, 3, tzinfo=timezone.utc)
_SATURDAY = datetime(2024, 1, 6, tzinfo=timezone.utc)


# ── Resonance ────────────────────────────────────────────────────────────


class TestLaggedReturnProduct:
    def test_lag_zero_and_one(self):
        assert lagged_return_product([1.0, 2.0, 3.0], [1.0, 1.0, 1.0], 0) == pytest.approx(2.0)
        assert lagged_return_product([1.0, 2.0, 3.0], [1.0, 1.0, 1.0], 1) == pytest.approx(2.5)

    def test_no_overlap(self):
        assert lagged_return_product([1.0], [1.0], 1) == 0.0


class TestEntanglementNetwork:
    def test_update_folds_sample(self):
        ctx = MarketDataContext()
        node = EntanglementNetwork(ctx).update("ETHUSDT", "BTCUSDT", 0.5, lag=0)
        assert node["correlation"] == pytest.approx(0.05)
        assert node["weight"] == pytest.approx(0.12)
        assert node["updates"] == 1
        assert ctx.entanglement["ETHUSDT_BTCUSDT_0"] is node

    def test_weight_floor(self):
        network = EntanglementNetwork(MarketDataContext())
        node = network.update("A", "B", 0.0)
        assert node["weight"] == 0.1

    def test_co_moving_symbol_amplifies(self):
        series = _alternating()
        network = EntanglementNetwork(MarketDataContext(), depth=0)
        result = network.propagate("ETHUSDT", {"ETHUSDT": series, "BTCUSDT": series})
        assert [a.symbol for a in result.amplifiers] == ["BTCUSDT"]
        assert result.dampeners == ()
        assert result.resonance == pytest.approx(0.48, abs=1e-3)

    def test_inverse_symbol_dampens(self):
        network = EntanglementNetwork(MarketDataContext(), depth=0)
        result = network.propagate(
            "ETHUSDT",
            {"ETHUSDT": _alternating(), "XRPUSDT": _alternating(first=200.0, second=100.0)},
        )
        assert [d.symbol for d in result.dampeners] == ["XRPUSDT"]
        assert result.dampeners[0].correlation < 0
        assert result.resonance < 0

    def test_weak_co_movement_ignored(self):
        series = _trend()
        result = EntanglementNetwork(MarketDataContext()).propagate(
            "ETHUSDT", {"ETHUSDT": series, "BTCUSDT": series}
        )
        assert result.amplifiers == ()
        assert result.resonance == 0.0

    def test_ordinary_swings_below_threshold(self):
        series = _alternating(first=100.0, second=105.0)
        ctx = MarketDataContext()
        result = EntanglementNetwork(ctx, depth=0).propagate(
            "ETHUSDT", {"ETHUSDT": series, "BTCUSDT": series}
        )
        assert result.resonance == 0.0
        assert ctx.entanglement["ETHUSDT_BTCUSDT_0"]["correlation"] == pytest.approx(
            0.1 * 0.0488 ** 2, rel=0.05
        )

    def test_length_mismatch_skipped(self):
        ctx = MarketDataContext()
        network = EntanglementNetwork(ctx)
        network.propagate("ETHUSDT", {"ETHUSDT": _alternating(60), "BTCUSDT": _alternating(40)})
        assert ctx.entanglement == {}

    def test_nodes_per_lag(self):
        ctx = MarketDataContext()
        series = _alternating()
        EntanglementNetwork(ctx, depth=3).propagate("ETHUSDT", {"ETHUSDT": series, "BTCUSDT": series})
        assert sorted(ctx.entanglement) == [f"ETHUSDT_BTCUSDT_{lag}" for lag in range(4)]


# ── Structure helpers ────────────────────────────────────────────────────


class TestStructure:
    def test_candle_bias(self):
        up = _c(0, 100, 102, 99, 101)
        down = _c(1, 101, 102, 99, 100)
        assert candle_bias([up, up]) == "BUY_STRONG"
        assert candle_bias([down, down]) == "SELL_STRONG"
        assert candle_bias([down, up]) == "BUY"
        assert candle_bias([up, down]) == "SELL"
        assert candle_bias([up]) == "NEUTRAL"

    def test_break_of_structure(self):
        candles = [_c(i, 100, 101, 99, 100) for i in range(19)]
        assert break_of_structure(candles + [_c(19, 100, 101.5, 99.5, 101)]) is True
        assert break_of_structure(candles + [_c(19, 100, 100.5, 99.5, 100)]) is False
        assert break_of_structure(candles[:5]) is False

    def test_change_of_character(self):
        c1 = _c(0, 101, 102, 100, 101)
        c2 = _c(1, 100.5, 101, 98, 99)
        c3 = _c(2, 99, 102, 98.5, 101.5)
        assert change_of_character([c1, c2, c3]) is True
        assert change_of_character([c1, c2]) is False


class TestTimeframeChecks:
    def test_missing_candles_do_not_confirm(self):
        check = check_timeframe("4h", None, "BUY")
        assert check.confirms is False

    def test_bullish_bias_confirms_buy(self):
        check = check_timeframe("1h", _trend(), "BUY")
        assert check.confirms is True
        assert check.bias == "BUY_STRONG"

    @pytest.mark.parametrize(
        "confirmed, score, label",
        [(3, 100.0, "STRONG"), (2, 200 / 3, "STRONG"), (1, 100 / 3, "MODERATE"), (0, 0.0, "WEAK")],
    )
    def test_summarize(self, confirmed, score, label):
        checks = [TimeframeCheck(tf, i < confirmed) for i, tf in enumerate(("15m", "1h", "4h"))]
        result = summarize(checks)
        assert result.score == pytest.approx(score)
        assert result.label == label

    def test_summarize_empty(self):
        assert summarize([]).label == "WEAK"

    @pytest.mark.asyncio
    async def test_confirm_timeframes_fetches_each(self):
        source = _FakeSource({"1h": _trend(), "4h": _trend()})
        result = await confirm_timeframes(source, "BTCUSDT", "BUY")
        assert [r[1] for r in source.requests] == ["15m", "1h", "4h"]
        assert result.score == pytest.approx(200 / 3)
        assert result.details[0].confirms is False


# ── Calibration ──────────────────────────────────────────────────────────


class TestSessions:
    @pytest.mark.parametrize(
        "hour, name, weight",
        [(3, "ASIA", 0.9), (10, "LONDON", 1.1), (15, "NEW_YORK", 1.2), (22, "OFF", 0.8)],
    )
    def test_weekday_sessions(self, hour, name, weight):
        session = session_for(_WEDNESDAY.replace(hour=hour))
        assert session.name == name
        assert session.weight == pytest.approx(weight)

    def test_weekend_discount(self):
        assert session_for(_SATURDAY.replace(hour=10)).weight == pytest.approx(1.1 * 0.7)


class TestCalibrateConfidence:
    def test_strong_confirmation_new_york_futures(self):
        now = _WEDNESDAY.replace(hour=15)
        assert calibrate_confidence(50.0, 100.0, "NORMAL", "futures", now) == pytest.approx(50 * 1.2 * 1.2 * 0.9)

    def test_spot_low_volatility(self):
        now = _WEDNESDAY.replace(hour=10)
        assert calibrate_confidence(50.0, 60.0, "LOW", "spot", now) == pytest.approx(50 * 1.1 * 1.1 * 1.1)

    def test_very_high_volatility_discount(self):
        now = _WEDNESDAY.replace(hour=10)
        assert calibrate_confidence(50.0, 0.0, "VERY_HIGH", "spot", now) == pytest.approx(50 * 1.1 * 0.8)

    def test_clamped_to_hundred(self):
        now = _WEDNESDAY.replace(hour=15)
        assert calibrate_confidence(95.0, 100.0, "LOW", "spot", now) == 100.0

    @pytest.mark.parametrize("base", [0.0, -10.0, float("nan")])
    def test_non_positive_is_zero(self, base):
        assert calibrate_confidence(base, 100.0, "NORMAL", now=_WEDNESDAY) == 0.0
