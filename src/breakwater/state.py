"""Circuit breaker state primitives."""

from dataclasses import dataclass
from enum import StrEnum


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True, slots=True)
class StateChangeEvent:
    """Notification payload delivered to handlers on every transition.

    Attributes:
        old_state: State the policy left.
        new_state: State the policy entered.
        operation_id: Operation whose outcome caused the transition, or
            ``None`` for transitions with no associated call (reset attempts).
    """

    old_state: CircuitState
    new_state: CircuitState
    operation_id: str | None = None
