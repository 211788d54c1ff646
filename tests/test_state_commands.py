"""Tests for state persistence, the trade journal, text commands and notification sinks."""

import dataclasses
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from signalforge.commands.dispatcher import (
    HELP_TEXT,
    CommandDispatcher,
    HelpCommand,
    ScanCommand,
    SignalCommand,
    StatusCommand,
    UnknownCommand,
    WatchCommand,
    normalize_symbol,
    parse_command,
)
from signalforge.config import Config
from signalforge.market.context import MarketDataContext
from signalforge.market.models import Candle
from signalforge.notify.telegram import LogSink, TelegramSink
from signalforge.repos.state_repo import StateRepo, TradeJournal
from signalforge.signals.assembler import SignalAssembler


# ── Helpers ──────────────────────────────────────────────────────────────


def _make_config(**overrides) -> Config:
    defaults = dict(
        account_balance=100000.0,
        risk_percent=0.8,
        max_position_percent=10.0,
        risk_reward=3.2,
        market_type="futures",
        leverage=5.0,
        alert_threshold=75.0,
        min_confidence=0.3,
        consensus_threshold=0.4,
        telegram_token="",
        telegram_chat_id="",
        exchange_base_url="https://api.bitget.test",
        state_path="data/test_state.json",
        log_level="WARNING",
        api_port=8080,
        scan_interval_seconds=60,
        noise_seed=42,
    )
    defaults.update(overrides)
    return Config(**defaults)


def _trend(n=200, start=100.0, rate=1.001) -> list[Candle]:
    candles = []
    prev = start
    for i in range(n):
        close = prev * rate
        candles.append(
            Candle(i * 3_600_000, prev, max(prev, close) * 1.0002, min(prev, close) * 0.9998, close, 10.0)
        )
        prev = close
    return candles


class _MockSource:
    async def fetch_candles(self, symbol, timeframe, limit=200):
        return _trend()

    async def fetch_price(self, symbol):
        return _trend()[-1].close


async def _make_signal(symbol="BTCUSDT"):
    assembler = SignalAssembler(
        config=_make_config(),
        source=_MockSource(),
        context=MarketDataContext(),
        confirm_mtf=False,
    )
    signal = await assembler.generate("BTCUSDT", "1h")
    return dataclasses.replace(signal, symbol=symbol)


def _fake_assembler(generate=None) -> MagicMock:
    assembler = MagicMock()
    assembler.generate = AsyncMock(side_effect=generate or (lambda symbol, timeframe: None))
    assembler.context = MarketDataContext()
    return assembler


def _dispatcher(assembler=None, symbols=("BTCUSDT",), journal=None):
    sink = LogSink()
    dispatcher = CommandDispatcher(
        assembler or _fake_assembler(), sink, symbols=symbols, journal=journal
    )
    return dispatcher, sink


def _journal(*pnls) -> TradeJournal:
    journal = TradeJournal()
    for i, pnl in enumerate(pnls):
        journal.log_outcome("BTCUSDT", "BUY", 100.0, 100.0 + pnl, pnl, timestamp=i)
    return journal


# ── Trade journal ────────────────────────────────────────────────────────


class TestTradeJournal:
    def test_log_outcome_rounds(self):
        trade = TradeJournal().log_outcome(
            "ETHUSDT", "SELL", 2000.1234567, 1990.0, 12.346, confidence=0.8765, timestamp=5,
        )
        assert trade["entry"] == 2000.123457
        assert trade["pnl"] == 12.35
        assert trade["confidence"] == 0.88
        assert trade["timestamp"] == 5

    @pytest.mark.parametrize("bad", [float("nan"), float("inf")])
    def test_non_finite_rejected(self, bad):
        journal = TradeJournal()
        assert journal.log_outcome("BTCUSDT", "BUY", 100.0, bad, 1.0) is None
        assert journal.trades == []

    def test_empty_symbol_rejected(self):
        assert TradeJournal().log_outcome("", "BUY", 100.0, 101.0, 1.0) is None

    def test_stats(self):
        stats = _journal(100.0, 50.0, -30.0, 0.0).stats()
        assert stats["wins"] == 2
        assert stats["losses"] == 1
        assert stats["total"] == 3
        assert stats["trades"] == 4
        assert stats["win_rate"] == pytest.approx(66.67)
        assert stats["avg_win"] == 75.0
        assert stats["avg_loss"] == -30.0
        assert stats["expectancy"] == pytest.approx(40.0)
        assert stats["total_pnl"] == 120.0

    def test_expectancy_needs_both_sides(self):
        assert _journal(10.0, 20.0).stats()["expectancy"] == 0.0
        assert _journal(-10.0).stats()["expectancy"] == 0.0

    def test_empty_stats(self):
        stats = TradeJournal().stats()
        assert stats["total"] == 0
        assert stats["win_rate"] == 0.0

    def test_history_limit(self):
        journal = TradeJournal(limit=3)
        for i in range(5):
            journal.log_outcome("BTCUSDT", "BUY", 100.0, 101.0, float(i + 1), timestamp=i)
        assert [t["timestamp"] for t in journal.trades] == [2, 3, 4]

    def test_records_truncated_on_load(self):
        records = [{"pnl": 1.0, "timestamp": i} for i in range(10)]
        assert len(TradeJournal(records, limit=4).trades) == 4


# ── State repository ─────────────────────────────────────────────────────


class TestStateRepo:
    def test_missing_file_is_empty_state(self, tmp_path):
        state = StateRepo(str(tmp_path / "state.json")).load()
        assert state == {
            "entanglement_matrix": {},
            "coherence_scores": {},
            "trade_history": [],
            "watch_list": {},
            "meta": {},
        }

    def test_save_creates_parents(self, tmp_path):
        repo = StateRepo(str(tmp_path / "nested" / "dir" / "state.json"))
        repo.save({"coherence_scores": {"BTCUSDT": 0.5}})
        assert repo.load()["coherence_scores"] == {"BTCUSDT": 0.5}
        assert not (tmp_path / "nested" / "dir" / "state.json.tmp").exists()

    def test_corrupt_file_is_empty_state(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert StateRepo(str(path)).load()["trade_history"] == []

    def test_non_object_is_empty_state(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("[1, 2, 3]")
        assert StateRepo(str(path)).load()["watch_list"] == {}

    def test_persist_and_restore(self, tmp_path):
        repo = StateRepo(str(tmp_path / "state.json"))
        context = MarketDataContext()
        context.entanglement["ETHUSDT_BTCUSDT_0"] = {"correlation": 0.05, "weight": 0.12, "updates": 1}
        context.coherence_scores["ETHUSDT"] = 0.81
        context.watch("SOLUSDT", "4h")
        journal = _journal(25.0, -10.0)

        repo.persist(context, journal)
        saved = json.loads(repo.path.read_text())
        assert saved["meta"]["version"] == 1
        assert saved["meta"]["signals_in_memory"] == 0

        restored_context = MarketDataContext()
        restored_journal = repo.restore(restored_context)
        assert restored_context.entanglement == context.entanglement
        assert restored_context.coherence_scores == {"ETHUSDT": 0.81}
        assert restored_context.watch_list == {"SOLUSDT": {"timeframe": "4h"}}
        assert restored_journal.trades == journal.trades
        assert restored_journal.stats() == journal.stats()


# ── Command parsing ──────────────────────────────────────────────────────


class TestNormalizeSymbol:
    @pytest.mark.parametrize("raw", ["btc", "BTC", "btcusdt", "BTC/USDT", "btc-usdt"])
    def test_variants(self, raw):
        assert normalize_symbol(raw) == "BTCUSDT"


class TestParseCommand:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("/signal btc", SignalCommand("BTCUSDT", "1h")),
            ("/signal eth/usdt 4h", SignalCommand("ETHUSDT", "4h")),
            ("/SIGNAL sol 15m", SignalCommand("SOLUSDT", "15m")),
            ("/scan", ScanCommand("1h")),
            ("/scan 15m", ScanCommand("15m")),
            ("/watch doge 4h", WatchCommand("DOGEUSDT", "4h")),
            ("/unwatch doge", WatchCommand("DOGEUSDT", remove=True)),
            ("/status@SignalForgeBot", StatusCommand()),
            ("/start", HelpCommand()),
            ("/help", HelpCommand()),
        ],
    )
    def test_known_commands(self, text, expected):
        assert parse_command(text) == expected

    @pytest.mark.parametrize("text", ["/signal", "/signal btc 7x", "/scan 3y", "/watch", "/buy btc", "hello"])
    def test_unknown(self, text):
        assert parse_command(text) == UnknownCommand(text)

    def test_empty(self):
        assert parse_command("") == UnknownCommand("")


# ── Command dispatch ─────────────────────────────────────────────────────


class TestCommandDispatcher:
    @pytest.mark.asyncio
    async def test_signal_reply_sent(self):
        signal = await _make_signal()
        assembler = _fake_assembler(lambda symbol, timeframe: signal)
        dispatcher, sink = _dispatcher(assembler)

        reply = await dispatcher.handle("/signal btc 1h", destination="chat-1")

        assembler.generate.assert_awaited_once_with("BTCUSDT", "1h")
        assert "<b>BTCUSDT 1h BUY</b>" in reply
        assert sink.sent == [("chat-1", reply)]

    @pytest.mark.asyncio
    async def test_no_signal_reply(self):
        dispatcher, _ = _dispatcher()
        reply = await dispatcher.handle("/signal eth")
        assert reply == "No signal for <b>ETHUSDT 1h</b> right now."

    @pytest.mark.asyncio
    async def test_handler_failure_answers_politely(self):
        def explode(symbol, timeframe):
            raise RuntimeError("boom")

        dispatcher, sink = _dispatcher(_fake_assembler(explode))
        reply = await dispatcher.handle("/signal btc")
        assert reply == "No signal available right now."
        assert sink.sent == [(None, reply)]

    @pytest.mark.asyncio
    async def test_scan_ranks_signals(self):
        btc = await _make_signal("BTCUSDT")

        def generate(symbol, timeframe):
            if symbol == "SOLUSDT":
                raise RuntimeError("timeout")
            return btc if symbol == "BTCUSDT" else None

        dispatcher, _ = _dispatcher(
            _fake_assembler(generate), symbols=["BTCUSDT", "ETHUSDT", "SOLUSDT"]
        )
        reply = await dispatcher.handle("/scan 1h")
        lines = reply.splitlines()
        assert lines[0] == "<b>Scan 1h</b>"
        assert lines[1].startswith("BTCUSDT BUY ")
        assert len(lines) == 2

    @pytest.mark.asyncio
    async def test_scan_without_signals(self):
        dispatcher, _ = _dispatcher(symbols=["BTCUSDT", "ETHUSDT"])
        assert await dispatcher.handle("/scan 4h") == "Scan 4h: no signals."

    @pytest.mark.asyncio
    async def test_watch_and_unwatch(self):
        assembler = _fake_assembler()
        dispatcher, _ = _dispatcher(assembler)

        assert await dispatcher.handle("/watch sol 4h") == "Watching SOLUSDT 4h."
        assert assembler.context.watch_list == {"SOLUSDT": {"timeframe": "4h"}}
        assert await dispatcher.handle("/unwatch sol") == "Stopped watching SOLUSDT."
        assert await dispatcher.handle("/unwatch sol") == "SOLUSDT was not on the watch list."

    @pytest.mark.asyncio
    async def test_status(self):
        assembler = _fake_assembler()
        assembler.context.watch("ETHUSDT")
        dispatcher, _ = _dispatcher(assembler, journal=_journal(100.0, -50.0))
        reply = await dispatcher.handle("/status")
        assert "Signals in memory: 0" in reply
        assert "Watch list: ETHUSDT" in reply
        assert "Trades: 2" in reply
        assert "Win rate: 50.0%" in reply

    @pytest.mark.asyncio
    async def test_help_and_unknown(self):
        dispatcher, _ = _dispatcher()
        assert await dispatcher.handle("/help") == HELP_TEXT
        assert await dispatcher.handle("what now") == "Unknown command. Send /help for the list."


# ── Notification sinks ───────────────────────────────────────────────────


class TestLogSink:
    @pytest.mark.asyncio
    async def test_keeps_most_recent(self):
        sink = LogSink(keep=2)
        for text in ("a", "b", "c"):
            await sink.send(None, text)
        assert sink.sent == [(None, "b"), (None, "c")]


class TestTelegramSink:
    @pytest.mark.asyncio
    async def test_posts_send_message(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        sink = TelegramSink(
            _make_config(telegram_token="TOKEN", telegram_chat_id="42"),
            transport=httpx.MockTransport(handler),
        )
        await sink.send(None, "<b>hi</b>")

        assert len(requests) == 1
        assert requests[0].url.path == "/botTOKEN/sendMessage"
        body = json.loads(requests[0].content)
        assert body["chat_id"] == "42"
        assert body["text"] == "<b>hi</b>"
        assert body["parse_mode"] == "HTML"

    @pytest.mark.asyncio
    async def test_destination_overrides_chat(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"ok": True})

        sink = TelegramSink(
            _make_config(telegram_token="TOKEN", telegram_chat_id="42"),
            transport=httpx.MockTransport(handler),
        )
        await sink.send("99", "reply")
        assert json.loads(requests[0].content)["chat_id"] == "99"

    @pytest.mark.asyncio
    async def test_delivery_failure_not_raised(self):
        sink = TelegramSink(
            _make_config(telegram_token="TOKEN", telegram_chat_id="42"),
            transport=httpx.MockTransport(lambda request: httpx.Response(500)),
        )
        await sink.send(None, "lost")

    @pytest.mark.asyncio
    async def test_unconfigured_logs_instead(self):
        def handler(request):
            raise AssertionError("no request expected")

        sink = TelegramSink(_make_config(), transport=httpx.MockTransport(handler))
        await sink.send(None, "local only")
        assert sink._fallback.sent == [("", "local only")]
