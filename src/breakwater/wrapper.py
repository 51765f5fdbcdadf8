"""Transparent circuit breaker wrapping of capability interfaces.

``wrap`` returns an instance of a generated subclass of the interface whose
every operation dispatches through the policy:

  1. Monitored operation while the policy short-circuits: raise
     ``BreakerOpenError`` without touching the target.
  2. Otherwise delegate to the target. A normal return of a monitored
     operation reports success; a failure of a classified kind reports a
     failure. The target's result or exception reaches the caller unchanged.
  3. Unmonitored operations always delegate and never consult the policy.

The policy lock is taken only around the pre-check and the post-report, never
across the delegated call, so concurrent traffic is not serialized.
"""

from __future__ import annotations

import functools
import inspect
import types
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar, cast

from breakwater.classification import (
    FailureClassificationTable,
    interface_operations,
    interface_properties,
    is_capability_interface,
)
from breakwater.exceptions import (
    BreakerOpenError,
    WrappingError,
    WrappingErrorReason,
)
from breakwater.logging import get_logger, log_warning
from breakwater.policy import CircuitBreakerPolicy

T = TypeVar("T")

_DISPATCHER_ASSIGNED = ("__module__", "__name__", "__doc__")


def _utcnow() -> datetime:
    return datetime.now(UTC)


class CircuitBreakerProxy:
    """Identity marker and dispatch machinery shared by generated wrappers."""

    def __init__(
        self,
        target: object,
        policy: CircuitBreakerPolicy,
        classification: FailureClassificationTable,
    ) -> None:
        self._breaker_target = target
        self._breaker_policy = policy
        self._breaker_classification = classification

    @property
    def breaker_policy(self) -> CircuitBreakerPolicy:
        return self._breaker_policy

    @property
    def breaker_classification(self) -> FailureClassificationTable:
        return self._breaker_classification

    def __repr__(self) -> str:
        return (
            f"<{type(self).__qualname__} target={self._breaker_target!r} "
            f"state={self._breaker_policy.current_state()}>"
        )

    def _breaker_admit(self, operation_id: str) -> bool:
        """Run the pre-check and return whether the operation is monitored."""
        if not self._breaker_classification.is_monitored(operation_id):
            return False
        now = _utcnow()
        if self._breaker_policy.should_short_circuit(now):
            retry_after = self._breaker_policy.retry_after(now)
            log_warning(
                get_logger(),
                "circuit_breaker.call_rejected",
                operation_id=operation_id,
                retry_after=retry_after,
            )
            raise BreakerOpenError(operation_id, retry_after=retry_after)
        return True

    def _breaker_report_failure(self, operation_id: str, error: Exception) -> None:
        if self._breaker_classification.classifies(operation_id, error):
            # Stamped by the policy under its lock so the window stays ordered.
            self._breaker_policy.record_classified_failure(None, operation_id)

    def _breaker_call(
        self, operation_id: str, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Any:
        monitored = self._breaker_admit(operation_id)
        operation = getattr(self._breaker_target, operation_id)
        if not monitored:
            return operation(*args, **kwargs)

        try:
            result = operation(*args, **kwargs)
        except Exception as error:
            self._breaker_report_failure(operation_id, error)
            raise
        self._breaker_policy.record_success(operation_id)
        return result

    async def _breaker_call_async(
        self, operation_id: str, args: tuple[Any, ...], kwargs: dict[str, Any]
    ) -> Any:
        monitored = self._breaker_admit(operation_id)
        operation = getattr(self._breaker_target, operation_id)
        if not monitored:
            return await operation(*args, **kwargs)

        try:
            result = await operation(*args, **kwargs)
        except Exception as error:
            self._breaker_report_failure(operation_id, error)
            raise
        self._breaker_policy.record_success(operation_id)
        return result


_PROXY_RESERVED = frozenset(
    {"_breaker_target"}
    | {name for name in vars(CircuitBreakerProxy) if not name.startswith("__")}
)


def _make_dispatcher(
    operation_id: str, template: Callable[..., object]
) -> Callable[..., Any]:
    dispatcher: Callable[..., Any]
    if inspect.iscoroutinefunction(template):

        async def _dispatch_async(
            self: CircuitBreakerProxy, *args: Any, **kwargs: Any
        ) -> Any:
            return await self._breaker_call_async(operation_id, args, kwargs)

        dispatcher = _dispatch_async
    else:

        def _dispatch(self: CircuitBreakerProxy, *args: Any, **kwargs: Any) -> Any:
            return self._breaker_call(operation_id, args, kwargs)

        dispatcher = _dispatch

    # __dict__ is not copied: __isabstractmethod__ must not reach the proxy.
    functools.update_wrapper(
        dispatcher, template, assigned=_DISPATCHER_ASSIGNED, updated=()
    )
    return dispatcher


def _make_forwarder(name: str, template: property) -> property:
    def _get(self: CircuitBreakerProxy) -> Any:
        return getattr(self._breaker_target, name)

    def _set(self: CircuitBreakerProxy, value: Any) -> None:
        setattr(self._breaker_target, name, value)

    return property(
        _get, _set if template.fset is not None else None, doc=template.__doc__
    )


@functools.cache
def _proxy_class(interface: type) -> type[CircuitBreakerProxy]:
    """Build (once per interface) the wrapper class for ``interface``.

    Operations get dispatchers; properties read and write through to the
    target without consulting the policy.
    """
    class_name = f"CircuitBreaker{interface.__name__}"
    members: dict[str, Any] = {
        name: _make_forwarder(name, template)
        for name, template in interface_properties(interface).items()
    }
    for name, template in interface_operations(interface).items():
        dispatcher = _make_dispatcher(name, template)
        dispatcher.__qualname__ = f"{class_name}.{dispatcher.__name__}"
        members[name] = dispatcher

    clashes = members.keys() & _PROXY_RESERVED
    if clashes:
        raise WrappingError(
            WrappingErrorReason.UNSUPPORTED_MEMBER,
            f"{interface.__qualname__} declares names used by the wrapper: "
            f"{', '.join(sorted(clashes))}",
        )

    def _populate(namespace: dict[str, Any]) -> None:
        namespace["__module__"] = __name__
        namespace.update(members)

    proxy_cls = types.new_class(
        class_name, (CircuitBreakerProxy, interface), {}, _populate
    )
    leftover = getattr(proxy_cls, "__abstractmethods__", frozenset())
    if leftover:
        raise WrappingError(
            WrappingErrorReason.UNSUPPORTED_MEMBER,
            f"{interface.__qualname__} has abstract members the wrapper cannot "
            f"forward: {', '.join(sorted(leftover))}",
        )
    return cast(type[CircuitBreakerProxy], proxy_cls)


def is_wrapped(candidate: object) -> bool:
    """Return whether ``candidate`` is already wrapped in a circuit breaker."""
    return isinstance(candidate, CircuitBreakerProxy)


def wrap(
    target: T,
    interface: type[T],
    policy: CircuitBreakerPolicy,
    *,
    classification: FailureClassificationTable | None = None,
) -> T:
    """Wrap ``target`` so calls to ``interface`` operations obey ``policy``.

    Args:
        target: Implementation of ``interface`` to protect.
        interface: ``Protocol`` or ABC declaring the protected operations.
        policy: Policy shared by every wrapper of the same resource.
        classification: Explicit operation table. Defaults to the table built
            from ``@breaker_operation`` markers on ``interface``.

    Returns:
        A new instance implementing ``interface``.

    Raises:
        WrappingError: If the request is malformed; no wrapper is produced.
        TypeError: If ``policy`` is not a ``CircuitBreakerPolicy``.
    """
    if target is None:
        raise WrappingError(WrappingErrorReason.NIL_TARGET, "cannot wrap None")
    if interface is None:
        raise WrappingError(
            WrappingErrorReason.NIL_INTERFACE, "an interface type is required"
        )
    if not is_capability_interface(interface):
        raise WrappingError(
            WrappingErrorReason.NOT_AN_INTERFACE,
            f"{interface!r} is not a Protocol or ABC",
        )
    if is_wrapped(target):
        raise WrappingError(
            WrappingErrorReason.ALREADY_WRAPPED,
            "object is already wrapped in a circuit breaker",
        )
    if not isinstance(policy, CircuitBreakerPolicy):
        raise TypeError("policy must be a CircuitBreakerPolicy")

    if classification is None:
        table = FailureClassificationTable.from_interface(interface)
    else:
        table = classification
        unknown = set(table) - set(interface_operations(interface))
        if unknown:
            raise WrappingError(
                WrappingErrorReason.UNKNOWN_OPERATION,
                f"{interface.__qualname__} has no operations named "
                f"{', '.join(sorted(unknown))}",
            )

    proxy_cls = _proxy_class(interface)
    return cast(T, proxy_cls(target, policy, table))
