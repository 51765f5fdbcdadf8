"""State-change notification for circuit breaker policies."""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import Protocol

from breakwater.logging import BreakerLogger, log_exception
from breakwater.state import StateChangeEvent


class StateChangeHandler(Protocol):
    """Handler protocol for circuit breaker state transitions.

    Notes:
        Handlers run synchronously while the owning policy holds its lock.
        The lock is reentrant, so a handler may read the policy, but it should
        not drive further transitions from inside ``on_state_change``.
    """

    def on_state_change(self, event: StateChangeEvent) -> None:
        """Handle one circuit state transition."""


class HandlerChain:
    """Ordered, duplicate-free set of state-change handlers.

    Delivery iterates over a snapshot taken at dispatch time, so handlers may be
    attached or detached concurrently (including from inside a handler) without
    affecting an in-flight delivery.
    """

    def __init__(
        self,
        handlers: Iterable[StateChangeHandler] | None = None,
        *,
        logger: BreakerLogger,
        breaker_name: str,
    ) -> None:
        self._lock = threading.Lock()
        self._handlers: list[StateChangeHandler] = []
        self._logger = logger
        self._breaker_name = breaker_name
        for handler in handlers or ():
            self.attach(handler)

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def snapshot(self) -> tuple[StateChangeHandler, ...]:
        """Return the currently attached handlers in attachment order."""
        with self._lock:
            return tuple(self._handlers)

    def attach(self, handler: StateChangeHandler) -> None:
        """Attach ``handler`` unless it is already attached."""
        with self._lock:
            if handler not in self._handlers:
                self._handlers.append(handler)

    def detach(self, handler: StateChangeHandler) -> None:
        """Detach ``handler``; unknown handlers are ignored."""
        with self._lock:
            if handler in self._handlers:
                self._handlers.remove(handler)

    def dispatch(self, event: StateChangeEvent) -> None:
        """Deliver ``event`` to every handler, isolating handler failures."""
        for handler in self.snapshot():
            try:
                handler.on_state_change(event)
            except Exception:
                log_exception(
                    self._logger,
                    "circuit_breaker.handler_failed",
                    breaker=self._breaker_name,
                    handler=type(handler).__qualname__,
                    old_state=str(event.old_state),
                    new_state=str(event.new_state),
                    operation_id=event.operation_id,
                )
