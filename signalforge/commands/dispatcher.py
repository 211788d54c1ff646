"""Text command parsing and dispatch.

Commands are parsed into typed variants and routed through an explicit
dispatch table.  Handlers never leak exceptions to the user: a failure is
answered with a "no signal" style reply.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, Union

from signalforge.market.models import BITGET_TIMEFRAMES
from signalforge.notify.telegram import NotificationSink
from signalforge.repos.state_repo import TradeJournal
from signalforge.signals.assembler import SignalAssembler
from signalforge.signals.formatting import format_no_signal, format_signal

logger = logging.getLogger("signalforge.commands")

DEFAULT_TIMEFRAME = "1h"


@dataclass(frozen=True)
class SignalCommand:
    symbol: str
    timeframe: str = DEFAULT_TIMEFRAME


@dataclass(frozen=True)
class ScanCommand:
    timeframe: str = DEFAULT_TIMEFRAME


@dataclass(frozen=True)
class WatchCommand:
    symbol: str
    timeframe: str = DEFAULT_TIMEFRAME
    remove: bool = False


@dataclass(frozen=True)
class StatusCommand:
    pass


@dataclass(frozen=True)
class HelpCommand:
    pass


@dataclass(frozen=True)
class UnknownCommand:
    text: str


Command = Union[
    SignalCommand, ScanCommand, WatchCommand, StatusCommand, HelpCommand, UnknownCommand
]

HELP_TEXT = (
    "<b>Commands</b>\n"
    "/signal SYMBOL [TF]  generate a signal (e.g. /signal BTC 1h)\n"
    "/scan [TF]  scan the configured symbols\n"
    "/watch SYMBOL [TF]  add a symbol to the watch list\n"
    "/unwatch SYMBOL  remove a symbol from the watch list\n"
    "/status  context and journal statistics\n"
    "/help  this message"
)


def normalize_symbol(raw: str) -> str:
    """``btc``, ``BTC/USDT`` and ``btcusdt`` all become ``BTCUSDT``."""
    clean = re.sub(r"[^A-Z0-9]", "", raw.upper())
    if clean.endswith("USDT"):
        clean = clean[:-4]
    return f"{clean}USDT"


def _timeframe(args: Sequence[str], index: int) -> Optional[str]:
    if len(args) <= index:
        return DEFAULT_TIMEFRAME
    tf = args[index]
    return tf if tf in BITGET_TIMEFRAMES else None


def parse_command(text: str) -> Command:
    """Parse ``/name arg ...`` text into a command variant."""
    parts = (text or "").strip().split()
    if not parts or not parts[0].startswith("/"):
        return UnknownCommand(text or "")

    name = parts[0][1:].split("@", 1)[0].lower()
    args = parts[1:]

    if name == "signal" and args:
        tf = _timeframe(args, 1)
        if tf is not None:
            return SignalCommand(normalize_symbol(args[0]), tf)
    elif name == "scan":
        tf = _timeframe(args, 0)
        if tf is not None:
            return ScanCommand(tf)
    elif name == "watch" and args:
        tf = _timeframe(args, 1)
        if tf is not None:
            return WatchCommand(normalize_symbol(args[0]), tf)
    elif name == "unwatch" and args:
        return WatchCommand(normalize_symbol(args[0]), remove=True)
    elif name == "status":
        return StatusCommand()
    elif name in ("help", "start"):
        return HelpCommand()
    return UnknownCommand(text)


class CommandDispatcher:
    """Routes parsed commands to handlers and replies through a sink.

    Args:
        assembler: Generates signals for ``/signal`` and ``/scan``.
        sink: Where replies are sent.
        symbols: Symbols covered by ``/scan``.
        journal: Trade journal reported by ``/status``.
    """

    def __init__(
        self,
        assembler: SignalAssembler,
        sink: NotificationSink,
        symbols: Sequence[str],
        journal: Optional[TradeJournal] = None,
    ) -> None:
        self._assembler = assembler
        self._sink = sink
        self._symbols = list(symbols)
        self._journal = journal or TradeJournal()
        self._handlers: dict[type, Callable[..., Awaitable[str]]] = {
            SignalCommand: self._on_signal,
            ScanCommand: self._on_scan,
            WatchCommand: self._on_watch,
            StatusCommand: self._on_status,
            HelpCommand: self._on_help,
            UnknownCommand: self._on_unknown,
        }

    async def handle(self, text: str, destination: Optional[str] = None) -> str:
        """Parse *text*, run its handler, send and return the reply."""
        command = parse_command(text)
        handler = self._handlers[type(command)]
        try:
            reply = await handler(command)
        except Exception:
            logger.exception("Command %r failed", text)
            reply = "No signal available right now."
        await self._sink.send(destination, reply)
        return reply

    # ── Handlers ─────────────────────────────────────────────────────────

    async def _on_signal(self, command: SignalCommand) -> str:
        signal = await self._assembler.generate(command.symbol, command.timeframe)
        if signal is None:
            return format_no_signal(command.symbol, command.timeframe)
        return format_signal(signal)

    async def _on_scan(self, command: ScanCommand) -> str:
        found = []
        for symbol in self._symbols:
            try:
                signal = await self._assembler.generate(symbol, command.timeframe)
            except Exception:
                logger.exception("Scan of %s failed", symbol)
                continue
            if signal is not None:
                found.append(signal)
        if not found:
            return f"Scan {command.timeframe}: no signals."
        lines = [f"<b>Scan {command.timeframe}</b>"]
        for s in sorted(found, key=lambda s: s.confidence, reverse=True):
            lines.append(f"{s.symbol} {s.direction} {s.confidence * 100:.1f}%")
        return "\n".join(lines)

    async def _on_watch(self, command: WatchCommand) -> str:
        context = self._assembler.context
        if command.remove:
            if context.unwatch(command.symbol):
                return f"Stopped watching {command.symbol}."
            return f"{command.symbol} was not on the watch list."
        context.watch(command.symbol, command.timeframe)
        return f"Watching {command.symbol} {command.timeframe}."

    async def _on_status(self, command: StatusCommand) -> str:
        context = self._assembler.context
        stats = self._journal.stats()
        return "\n".join([
            "<b>Status</b>",
            f"Signals in memory: {len(context.signal_history)}",
            f"Watch list: {', '.join(context.watch_list) or 'empty'}",
            f"Entanglement nodes: {len(context.entanglement)}",
            f"Trades: {stats['trades']}  Win rate: {stats['win_rate']}%  "
            f"Expectancy: {stats['expectancy']}",
        ])

    async def _on_help(self, command: HelpCommand) -> str:
        return HELP_TEXT

    async def _on_unknown(self, command: UnknownCommand) -> str:
        return "Unknown command. Send /help for the list."
