"""Human-readable rendering of signals for the notification sinks (HTML)."""

from html import escape

from signalforge.signals.models import Signal
from signalforge.strategy.models import BUY


def _price(value: float) -> str:
    if value >= 100:
        return f"{value:,.2f}"
    if value >= 1:
        return f"{value:.4f}"
    return f"{value:.6f}"


def format_signal(signal: Signal) -> str:
    """Multi-line Telegram HTML message for one signal."""
    arrow = "🟢" if signal.direction == BUY else "🔴"
    snap = signal.indicators
    lines = [
        f"{arrow} <b>{escape(signal.symbol)} {escape(signal.timeframe)} {signal.direction}</b>",
        f"Confidence: <b>{signal.confidence * 100:.1f}%</b> "
        f"(calibrated {signal.calibrated_confidence:.1f}%)",
        "",
        f"Entry: <code>{_price(signal.entry)}</code>",
        f"Stop: <code>{_price(signal.stop_loss)}</code>",
    ]
    for i, tp in enumerate(signal.take_profits, start=1):
        lines.append(f"TP{i}: <code>{_price(tp)}</code>")
    lines += [
        f"Size: <code>{signal.position_size:.4f}</code> "
        f"({escape(signal.market_type)}, {signal.leverage:g}x)",
        f"Risk: <code>{signal.risk.risk_amount:.2f}</code>  "
        f"R:R {' / '.join(f'{r:g}' for r in signal.reward_ratios)}",
        "",
        f"Regime: {snap.regime.regime} ({snap.regime.confidence * 100:.0f}%)",
        f"Volatility: {snap.volatility_regime} / {snap.volatility.regime}",
        f"Momentum: {snap.momentum.scalar:.3f} ({snap.momentum.coherence})",
        f"Order flow: {snap.order_flow.flow_direction} ({snap.order_flow.pressure:+.3f})",
        f"Coherence: {snap.coherence:.3f}  Fractal: {snap.fractal_dimension:.3f}",
    ]

    sr = snap.support_resistance
    if sr.support:
        lines.append("Support: " + ", ".join(_price(level.price) for level in sr.support[:3]))
    if sr.resistance:
        lines.append("Resistance: " + ", ".join(_price(level.price) for level in sr.resistance[:3]))
    if snap.patterns:
        lines.append("Patterns: " + ", ".join(p.pattern for p in snap.patterns))
    if signal.confirmation is not None:
        lines.append(
            f"MTF: {signal.confirmation.label} ({signal.confirmation.score:.0f}%)"
        )
    return "\n".join(lines)


def format_no_signal(symbol: str, timeframe: str) -> str:
    return f"No signal for <b>{escape(symbol)} {escape(timeframe)}</b> right now."
