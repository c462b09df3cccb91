"""Error taxonomy for the signal pipeline.

Validation and timeout errors end a generation request. Partial source
failures are recorded in data quality, never raised. Lifecycle errors are
raised for every rejected transition. Persistence failures are kept apart
from lifecycle errors: the decision stands, only the save needs a retry.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from signal_desk.signals.models import ApprovalDecision, TradeSignal


class SignalDeskError(Exception):
    """Base class for all pipeline errors."""

    retryable: bool = False

    def to_dict(self) -> dict:
        return {
            "error": type(self).__name__,
            "message": str(self),
            "retryable": self.retryable,
        }


# --- Validation gate ---


class ValidationError(SignalDeskError):
    """Raw payload rejected by the snapshot validator."""

    retryable = True


class MissingPriceData(ValidationError):
    def __init__(self, message: str = "No real price data available (currentPrice / marketData.price)") -> None:
        super().__init__(message)


class NotLiveData(ValidationError):
    def __init__(self, message: str = "Data not marked as live (isLiveData must be true)") -> None:
        super().__init__(message)


# --- Data collection ---


class PartialSourceFailure(SignalDeskError):
    """A single source failed within the fetch deadline.

    Collected into ``DataQuality.failed``; the pipeline keeps going.
    """

    retryable = True

    def __init__(self, source: str, message: str) -> None:
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class TimeoutExceeded(SignalDeskError):
    retryable = True

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Data collection exceeded {timeout:.1f}s deadline")
        self.timeout = timeout


class DataServiceError(SignalDeskError):
    """The upstream data service answered but reported failure."""

    retryable = True


# --- Risk engine ---


class RiskEngineError(SignalDeskError):
    pass


class InsufficientVolatilityData(RiskEngineError):
    def __init__(self) -> None:
        super().__init__("No volatility measure available (ATR, Bollinger bands or risk volatility)")


# --- Lifecycle ---


class LifecycleError(SignalDeskError):
    pass


class InvalidStateTransition(LifecycleError):
    def __init__(self, signal_id: str, current: str, attempted: str, reason: str = "") -> None:
        reason = reason or f"signal is {current}"
        super().__init__(f"Cannot {attempted} signal {signal_id}: {reason}")
        self.signal_id = signal_id
        self.current = current
        self.attempted = attempted
        self.reason = reason


class InvalidModification(LifecycleError):
    pass


class ReviewPending(LifecycleError):
    """A signal for this market is still awaiting a human decision."""

    def __init__(self, signal_id: str, symbol: str, timeframe: str) -> None:
        super().__init__(
            f"Signal {signal_id} for {symbol} {timeframe} is pending review; "
            "approve, reject or modify it before generating another"
        )
        self.signal_id = signal_id
        self.symbol = symbol
        self.timeframe = timeframe


class UnknownSignal(LifecycleError):
    def __init__(self, symbol: str, timeframe: str) -> None:
        super().__init__(f"No signal under review for {symbol} {timeframe}")
        self.symbol = symbol
        self.timeframe = timeframe


# --- Persistence ---


class PersistenceFailure(SignalDeskError):
    """Decision was made but could not be saved. Retry the save, not the review."""

    retryable = True

    def __init__(
        self,
        signal: TradeSignal,
        decision: ApprovalDecision,
        cause: BaseException,
    ) -> None:
        super().__init__(
            f"Decision {decision.outcome.value} for signal {signal.id} recorded "
            f"but not saved: {cause}"
        )
        self.signal = signal
        self.decision = decision
        self.cause = cause
