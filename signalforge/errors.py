"""Error taxonomy for the signal pipeline.

Every failure below is recoverable at a component boundary: indicators fall
back to neutral defaults, the assembler turns them into ``None``.  Only
programming errors are expected to reach the scan loop.
"""


class SignalForgeError(Exception):
    """Base class for all pipeline errors."""


class InsufficientData(SignalForgeError):
    """Fewer candles than an operation requires."""

    def __init__(self, required: int, available: int, what: str = "candles") -> None:
        self.required = required
        self.available = available
        super().__init__(
            f"Need at least {required} {what}, got {available}"
        )


class FetchUnavailable(SignalForgeError):
    """A data-source adapter returned no data for this cycle."""


class InvalidNumeric(SignalForgeError):
    """A computed value is NaN or infinite."""


class VetoedByRiskGate(SignalForgeError):
    """The should-trade gate declined the symbol."""

    def __init__(self, symbol: str, reason: str) -> None:
        self.symbol = symbol
        self.reason = reason
        super().__init__(f"{symbol} vetoed: {reason}")


class InvalidSignal(SignalForgeError):
    """An assembled signal failed structural validation."""
