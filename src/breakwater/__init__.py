"""Circuit breakers for capability interfaces.

This package implements the circuit breaker pattern as a transparent wrapper:

  - ``WindowedPolicy`` trips after ``trip_threshold`` classified failures
    inside a sliding ``threshold_window`` and permits a reset attempt
    ``half_open_timeout`` seconds after tripping.
  - ``wrap`` returns an implementation of a ``Protocol`` or ABC whose
    ``@breaker_operation`` methods are routed through the policy. Other
    operations are delegated untouched.
  - Handlers attached to a policy receive a ``StateChangeEvent`` for every
    transition; a failing handler is logged and skipped.
"""

from breakwater.classification import (
    BreakerOperation,
    FailureClassificationTable,
    FailureKind,
    breaker_operation,
    is_capability_interface,
)
from breakwater.exceptions import (
    BreakerError,
    BreakerOpenError,
    ConfigError,
    WrappingError,
    WrappingErrorReason,
)
from breakwater.handlers import HandlerChain, StateChangeHandler
from breakwater.policy import (
    CircuitBreakerPolicy,
    WindowedPolicy,
    WindowedPolicyConfig,
)
from breakwater.state import CircuitState, StateChangeEvent
from breakwater.wrapper import CircuitBreakerProxy, is_wrapped, wrap

__all__ = [
    "BreakerError",
    "BreakerOpenError",
    "BreakerOperation",
    "CircuitBreakerPolicy",
    "CircuitBreakerProxy",
    "CircuitState",
    "ConfigError",
    "FailureClassificationTable",
    "FailureKind",
    "HandlerChain",
    "StateChangeEvent",
    "StateChangeHandler",
    "WindowedPolicy",
    "WindowedPolicyConfig",
    "WrappingError",
    "WrappingErrorReason",
    "breaker_operation",
    "is_capability_interface",
    "is_wrapped",
    "wrap",
]
