"""Circuit breaker exceptions.

Callers can distinguish between:
  - A policy built with invalid parameters (``ConfigError``).
  - A malformed wrap request (``WrappingError``).
  - A call being rejected because the circuit is open (``BreakerOpenError``).

Failures raised by the wrapped dependency are never converted into any of
these types.
"""

from enum import StrEnum


class BreakerError(Exception):
    """Base exception for the breakwater package."""


class ConfigError(BreakerError, ValueError):
    """Raised when a policy is constructed with invalid parameters."""


class WrappingErrorReason(StrEnum):
    """Why a wrap request was refused."""

    NIL_TARGET = "nil_target"
    NIL_INTERFACE = "nil_interface"
    NOT_AN_INTERFACE = "not_an_interface"
    MISSING_FAILURE_SIGNAL = "missing_failure_signal"
    ALREADY_WRAPPED = "already_wrapped"
    UNKNOWN_OPERATION = "unknown_operation"
    UNSUPPORTED_MEMBER = "unsupported_member"


class WrappingError(BreakerError, TypeError):
    """Raised when a target cannot be wrapped in a circuit breaker.

    Attributes:
        reason: Machine-readable refusal reason.
    """

    def __init__(self, reason: WrappingErrorReason, message: str) -> None:
        """Initialize a wrapping error payload.

        Args:
            reason: Refusal reason.
            message: Human-readable detail.
        """
        self.reason = reason
        super().__init__(f"{reason}: {message}")


class BreakerOpenError(BreakerError):
    """Raised instead of delegating while the circuit is open.

    Attributes:
        operation_id: Operation whose call was rejected.
        retry_after: Seconds until a reset attempt is due.
    """

    def __init__(
        self, operation_id: str | None = None, retry_after: float = 0.0
    ) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            operation_id: Operation rejected by the breaker.
            retry_after: Seconds until the next reset attempt is permitted.
        """
        self.operation_id = operation_id
        self.retry_after = retry_after
        super().__init__(
            f"circuit_open: {operation_id or '<unknown>'} retry_after={retry_after:g}s"
        )
