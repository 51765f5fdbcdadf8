"""Failure classification for capability interfaces.

Operations opt in to breaker protection with ``@breaker_operation``. The
decorator lists the exception types that count against the breaker and the
exceptions the operation declares to callers; ``BreakerOpenError`` must be one
of the latter so call sites can tell a rejected call from a domain failure.
"""

from __future__ import annotations

import inspect
from abc import ABC, ABCMeta
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Generic, Protocol, TypeVar

from breakwater.exceptions import (
    BreakerOpenError,
    WrappingError,
    WrappingErrorReason,
)

BREAKER_OPERATION_ATTR = "__breaker_operation__"
_INTERFACE_ROOTS: frozenset[object] = frozenset({object, Protocol, Generic, ABC})

FailureKind = type[Exception]
_F = TypeVar("_F", bound=Callable[..., object])


def _check_exception_types(kinds: Iterable[object]) -> None:
    for kind in kinds:
        if not (isinstance(kind, type) and issubclass(kind, Exception)):
            raise TypeError(f"{kind!r} is not an exception class")


@dataclass(frozen=True, slots=True)
class BreakerOperation:
    """Marker attached to an interface method eligible for breaker protection.

    Attributes:
        failure_kinds: Exception types that count as breaker failures.
        raises: Exception types the operation declares to its callers.
    """

    failure_kinds: frozenset[FailureKind]
    raises: tuple[FailureKind, ...] = ()

    @property
    def declares_open_signal(self) -> bool:
        return BreakerOpenError in self.raises


def breaker_operation(
    *failure_kinds: FailureKind,
    raises: Iterable[FailureKind] = (),
) -> Callable[[_F], _F]:
    """Mark an interface method as breaker-eligible.

    Args:
        *failure_kinds: Exception types that count against the breaker.
        raises: Exception types the operation may raise to callers. Must
            include ``BreakerOpenError`` for the interface to be wrappable.

    Raises:
        TypeError: If no failure kind is given or an entry is not an exception
            class.
    """
    if not failure_kinds:
        raise TypeError("breaker_operation requires at least one failure kind")
    declared = tuple(raises)
    _check_exception_types(failure_kinds)
    _check_exception_types(declared)
    marker = BreakerOperation(frozenset(failure_kinds), declared)

    def _decorate(func: _F) -> _F:
        setattr(func, BREAKER_OPERATION_ATTR, marker)
        return func

    return _decorate


def is_capability_interface(candidate: object) -> bool:
    """Return whether ``candidate`` is a ``Protocol`` or ABC class."""
    if not inspect.isclass(candidate):
        return False
    if getattr(candidate, "_is_protocol", False):
        return True
    return isinstance(candidate, ABCMeta)


# Members the generated wrapper class must own itself.
_CLASS_MACHINERY = frozenset(
    {
        "__init__",
        "__new__",
        "__init_subclass__",
        "__subclasshook__",
        "__class_getitem__",
        "__getattr__",
        "__getattribute__",
        "__setattr__",
        "__delattr__",
        "__annotate__",
        "__annotate_func__",
    }
)


def _as_function(member: object) -> Callable[..., object] | None:
    if isinstance(member, (staticmethod, classmethod)):
        member = member.__func__
    return member if inspect.isfunction(member) else None


def _marker_of(member: object) -> BreakerOperation | None:
    if isinstance(member, property):
        member = member.fget
    marker = getattr(_as_function(member), BREAKER_OPERATION_ATTR, None)
    return marker if isinstance(marker, BreakerOperation) else None


def _interface_members(interface: type) -> dict[str, object]:
    members: dict[str, object] = {}
    for cls in interface.__mro__:
        if cls in _INTERFACE_ROOTS:
            continue
        for name, member in vars(cls).items():
            if name not in members:
                members[name] = member
    return members


def interface_operations(interface: type) -> dict[str, Callable[..., object]]:
    """Return the operations of ``interface`` including inherited ones.

    Every function declared below the interface roots is an operation,
    dunders and underscore-prefixed names included. ``staticmethod`` and
    ``classmethod`` members are returned unwrapped. The most-derived
    declaration of each name wins.
    """
    operations: dict[str, Callable[..., object]] = {}
    for name, member in _interface_members(interface).items():
        function = _as_function(member)
        if function is not None and name not in _CLASS_MACHINERY:
            operations[name] = function
    return operations


def interface_properties(interface: type) -> dict[str, property]:
    """Return the properties of ``interface``, most-derived declaration first."""
    return {
        name: member
        for name, member in _interface_members(interface).items()
        if isinstance(member, property)
    }


def find_breaker_operation(interface: type, name: str) -> BreakerOperation | None:
    """Return the nearest ``@breaker_operation`` marker for ``name``, if any."""
    for cls in interface.__mro__:
        if cls in _INTERFACE_ROOTS:
            continue
        marker = _marker_of(vars(cls).get(name))
        if marker is not None:
            return marker
    return None


class FailureClassificationTable(Mapping[str, frozenset[FailureKind]]):
    """Immutable mapping of operation id to breaker-eligible failure kinds.

    Operations absent from the table are unmonitored.
    """

    __slots__ = ("_entries", "_kind_tuples")

    def __init__(
        self, entries: Mapping[str, Iterable[FailureKind]] | None = None
    ) -> None:
        frozen: dict[str, frozenset[FailureKind]] = {}
        for operation_id, kinds in (entries or {}).items():
            frozen_kinds = frozenset(kinds)
            _check_exception_types(frozen_kinds)
            frozen[operation_id] = frozen_kinds
        self._entries = MappingProxyType(frozen)
        self._kind_tuples = {op: tuple(kinds) for op, kinds in frozen.items()}

    @classmethod
    def from_interface(cls, interface: type) -> FailureClassificationTable:
        """Build the table from ``@breaker_operation`` markers on ``interface``.

        Raises:
            WrappingError: If a marked operation does not declare
                ``BreakerOpenError`` in its ``raises``, or if a marker sits on
                a member that cannot be dispatched as an operation.
        """
        operations = interface_operations(interface)
        entries: dict[str, frozenset[FailureKind]] = {}
        for name in _interface_members(interface):
            marker = find_breaker_operation(interface, name)
            if marker is None:
                continue
            if name not in operations:
                raise WrappingError(
                    WrappingErrorReason.UNSUPPORTED_MEMBER,
                    f"{interface.__qualname__}.{name} is marked but is not a "
                    "dispatchable method",
                )
            if not marker.declares_open_signal:
                raise WrappingError(
                    WrappingErrorReason.MISSING_FAILURE_SIGNAL,
                    f"{interface.__qualname__}.{name} must declare "
                    "BreakerOpenError in raises",
                )
            entries[name] = marker.failure_kinds
        return cls(entries)

    def __getitem__(self, operation_id: str) -> frozenset[FailureKind]:
        return self._entries[operation_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self._entries)!r})"

    def is_monitored(self, operation_id: str) -> bool:
        return operation_id in self._entries

    def classifies(self, operation_id: str, error: Exception) -> bool:
        """Return whether ``error`` counts against the breaker for the operation."""
        kinds = self._kind_tuples.get(operation_id)
        return kinds is not None and isinstance(error, kinds)
