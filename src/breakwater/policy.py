"""Circuit breaker policies.

A policy owns the breaker state machine for one protected resource:

  - ``CLOSED`` -> ``OPEN`` when classified failures inside the sliding
    threshold window reach the trip threshold (also from ``HALF_OPEN``).
  - ``OPEN`` -> ``HALF_OPEN`` when ``should_attempt_reset`` is asked at or
    after ``tripped_at + half_open_timeout``.
  - ``OPEN``/``HALF_OPEN`` -> ``CLOSED`` on any reported success.

The failure window is not cleared when the breaker closes, so failures recorded
shortly before a recovery still count towards the next trip.
"""

import threading
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from breakwater.exceptions import ConfigError
from breakwater.handlers import HandlerChain, StateChangeHandler
from breakwater.logging import BreakerLogger, get_logger, log_info
from breakwater.state import CircuitState, StateChangeEvent


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CircuitBreakerPolicy(ABC):
    """Decides transitions between circuit breaker states."""

    @abstractmethod
    def record_success(self, operation_id: str | None = None) -> None:
        """Report a successful call of a monitored operation."""

    @abstractmethod
    def record_classified_failure(
        self,
        timestamp: datetime | None = None,
        operation_id: str | None = None,
    ) -> None:
        """Report a failure whose kind counts against the breaker."""

    @abstractmethod
    def should_attempt_reset(self, timestamp: datetime | None = None) -> bool:
        """Return whether a call may probe the dependency while ``OPEN``.

        Implementations may transition ``OPEN`` -> ``HALF_OPEN`` as a side
        effect; callers must treat this as compare-and-transition.
        """

    @abstractmethod
    def current_state(self) -> CircuitState:
        """Return the current breaker state."""

    def should_short_circuit(self, timestamp: datetime | None = None) -> bool:
        """Return whether a monitored call must be rejected without delegating."""
        return (
            self.current_state() == CircuitState.OPEN
            and not self.should_attempt_reset(timestamp)
        )

    def retry_after(self, timestamp: datetime | None = None) -> float:
        """Return seconds until a reset attempt is due, ``0.0`` when unknown."""
        return 0.0


@dataclass(frozen=True, slots=True)
class WindowedPolicyConfig:
    """Windowed policy parameters.

    Attributes:
        trip_threshold: Classified failures inside the window that trip the
            breaker.
        half_open_timeout: Seconds to stay ``OPEN`` before a reset attempt.
        threshold_window: Length in seconds of the sliding failure window.
    """

    trip_threshold: int
    half_open_timeout: int
    threshold_window: int

    def __post_init__(self) -> None:
        for field_name in ("trip_threshold", "half_open_timeout", "threshold_window"):
            value = getattr(self, field_name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{field_name} must be an integer")
            if value < 1:
                raise ConfigError(f"{field_name} must be >= 1")


class WindowedPolicy(CircuitBreakerPolicy):
    """Trip after N classified failures per sliding window of W seconds.

    All mutating operations, including handler delivery, run under one
    reentrant lock owned by the instance. One policy should be shared by every
    wrapper protecting the same resource.
    """

    def __init__(
        self,
        trip_threshold: int,
        half_open_timeout: int,
        threshold_window: int,
        handlers: Iterable[StateChangeHandler] | None = None,
        *,
        name: str = "default",
        logger: BreakerLogger | None = None,
    ) -> None:
        """Build a windowed policy.

        Args:
            trip_threshold: Failures per window that move the breaker to
                ``OPEN``.
            half_open_timeout: Seconds after tripping before a reset attempt
                is permitted.
            threshold_window: Window in seconds over which failures are counted.
            handlers: Initial state-change handlers, in delivery order.
            name: Breaker name used in log events.
            logger: Structured logger. Defaults to the package logger.

        Raises:
            ConfigError: If any numeric parameter is not a positive integer.
        """
        self.config = WindowedPolicyConfig(
            trip_threshold=trip_threshold,
            half_open_timeout=half_open_timeout,
            threshold_window=threshold_window,
        )
        self.name = name
        self._logger = get_logger() if logger is None else logger
        self._lock = threading.RLock()
        self._failures: deque[datetime] = deque()
        self._tripped_at: datetime | None = None
        self._state = CircuitState.CLOSED
        self._handlers = HandlerChain(
            handlers, logger=self._logger, breaker_name=name
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def tripped_at(self) -> datetime | None:
        return self._tripped_at

    @property
    def failure_timestamps(self) -> tuple[datetime, ...]:
        """Failures currently inside the window, most recent first."""
        with self._lock:
            return tuple(self._failures)

    @property
    def handlers(self) -> tuple[StateChangeHandler, ...]:
        return self._handlers.snapshot()

    def _transition(self, new_state: CircuitState, operation_id: str | None) -> None:
        event = StateChangeEvent(self._state, new_state, operation_id)
        self._state = new_state
        log_info(
            self._logger,
            "circuit_breaker.state_change",
            breaker=self.name,
            old_state=str(event.old_state),
            new_state=str(event.new_state),
            operation_id=operation_id,
        )
        self.notify_handlers(event)

    def record_success(self, operation_id: str | None = None) -> None:
        """Close the breaker; no event is emitted when already ``CLOSED``."""
        with self._lock:
            if self._state == CircuitState.CLOSED:
                return
            self._tripped_at = None
            self._transition(CircuitState.CLOSED, operation_id)

    def record_classified_failure(
        self,
        timestamp: datetime | None = None,
        operation_id: str | None = None,
    ) -> None:
        """Add a failure to the window and trip when the threshold is reached.

        Timestamps are expected in non-decreasing order; entries older than
        ``timestamp - threshold_window`` are pruned from the tail.
        """
        now = _utcnow() if timestamp is None else timestamp
        cutoff = now - timedelta(seconds=self.config.threshold_window)
        with self._lock:
            self._failures.appendleft(now)
            while self._failures and self._failures[-1] < cutoff:
                self._failures.pop()

            if len(self._failures) >= self.config.trip_threshold and self._state in (
                CircuitState.CLOSED,
                CircuitState.HALF_OPEN,
            ):
                self._tripped_at = now
                self._transition(CircuitState.OPEN, operation_id)

    def should_attempt_reset(self, timestamp: datetime | None = None) -> bool:
        """Move ``OPEN`` -> ``HALF_OPEN`` once the half-open timeout elapsed."""
        now = _utcnow() if timestamp is None else timestamp
        with self._lock:
            if self._state != CircuitState.OPEN or self._tripped_at is None:
                return False
            due_at = self._tripped_at + timedelta(seconds=self.config.half_open_timeout)
            if now < due_at:
                return False
            self._tripped_at = None
            self._transition(CircuitState.HALF_OPEN, None)
            return True

    def current_state(self) -> CircuitState:
        return self._state

    def should_short_circuit(self, timestamp: datetime | None = None) -> bool:
        with self._lock:
            return super().should_short_circuit(timestamp)

    def retry_after(self, timestamp: datetime | None = None) -> float:
        now = _utcnow() if timestamp is None else timestamp
        with self._lock:
            if self._state != CircuitState.OPEN or self._tripped_at is None:
                return 0.0
            due_at = self._tripped_at + timedelta(seconds=self.config.half_open_timeout)
            return max((due_at - now).total_seconds(), 0.0)

    def attach_handler(self, handler: StateChangeHandler) -> None:
        """Notify ``handler`` on state changes; attaching twice is a no-op."""
        self._handlers.attach(handler)

    def detach_handler(self, handler: StateChangeHandler) -> None:
        """Stop notifying ``handler``; detaching an unknown handler is a no-op."""
        self._handlers.detach(handler)

    def notify_handlers(self, event: StateChangeEvent) -> None:
        """Deliver ``event`` to every attached handler in attachment order."""
        with self._lock:
            self._handlers.dispatch(event)
