from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Protocol

import pytest

from breakwater import (
    BreakerOpenError,
    FailureClassificationTable,
    WrappingError,
    WrappingErrorReason,
    breaker_operation,
    is_capability_interface,
)
from breakwater.classification import (
    BREAKER_OPERATION_ATTR,
    BreakerOperation,
    find_breaker_operation,
    interface_operations,
    interface_properties,
)


class _Inventory(Protocol):
    @breaker_operation(ConnectionError, raises=(BreakerOpenError, ConnectionError))
    def reserve(self, sku: str) -> bool: ...

    def describe(self) -> str: ...


class _AuditedInventory(_Inventory, Protocol):
    @breaker_operation(TimeoutError, KeyError, raises=(BreakerOpenError,))
    def audit(self, sku: str) -> None: ...

    def _private_helper(self) -> None: ...


class _Repository(ABC):
    @abstractmethod
    @breaker_operation(OSError, raises=(BreakerOpenError,))
    def load(self, key: str) -> bytes: ...

    @abstractmethod
    def keys(self) -> list[str]: ...


class _Undeclared(Protocol):
    @breaker_operation(ConnectionError, raises=(ConnectionError,))
    def reserve(self, sku: str) -> bool: ...


def test_breaker_operation_attaches_marker() -> None:
    marker = getattr(_Inventory.reserve, BREAKER_OPERATION_ATTR)

    assert marker == BreakerOperation(
        frozenset({ConnectionError}), (BreakerOpenError, ConnectionError)
    )
    assert marker.declares_open_signal is True


def test_breaker_operation_requires_a_failure_kind() -> None:
    with pytest.raises(TypeError, match="at least one failure kind"):
        breaker_operation(raises=(BreakerOpenError,))


@pytest.mark.parametrize("kind", ["ConnectionError", int, BaseException])
def test_breaker_operation_rejects_non_exception_kinds(kind: object) -> None:
    with pytest.raises(TypeError, match="is not an exception class"):
        breaker_operation(kind)  # type: ignore[arg-type]


def test_is_capability_interface_accepts_protocols_and_abcs() -> None:
    class _Concrete:
        pass

    assert is_capability_interface(_Inventory) is True
    assert is_capability_interface(_Repository) is True
    assert is_capability_interface(_Concrete) is False
    assert is_capability_interface(_Concrete()) is False
    assert is_capability_interface(None) is False


def test_interface_operations_include_inherited_and_private_methods() -> None:
    operations = interface_operations(_AuditedInventory)

    assert set(operations) == {"reserve", "describe", "audit", "_private_helper"}


def test_interface_operations_cover_dunders_and_static_members() -> None:
    class _Service(ABC):
        @abstractmethod
        def __call__(self, request: str) -> str: ...

        @staticmethod
        def version() -> str: ...

        @classmethod
        def create(cls) -> _Service: ...

        @property
        def endpoint(self) -> str: ...

    operations = interface_operations(_Service)

    assert set(operations) == {"__call__", "version", "create"}
    assert operations["version"].__name__ == "version"
    assert set(interface_properties(_Service)) == {"endpoint"}


def test_table_from_interface_monitors_marked_dunder() -> None:
    class _Fetcher(Protocol):
        @breaker_operation(ConnectionError, raises=(BreakerOpenError,))
        def __call__(self, url: str) -> bytes: ...

    table = FailureClassificationTable.from_interface(_Fetcher)

    assert dict(table) == {"__call__": frozenset({ConnectionError})}


def test_table_rejects_marker_on_property() -> None:
    class _Named(Protocol):
        @property
        @breaker_operation(ConnectionError, raises=(BreakerOpenError,))
        def name(self) -> str: ...

    with pytest.raises(WrappingError) as excinfo:
        FailureClassificationTable.from_interface(_Named)

    assert excinfo.value.reason == WrappingErrorReason.UNSUPPORTED_MEMBER
    assert "_Named.name" in str(excinfo.value)


def test_table_from_interface_walks_inherited_declarations() -> None:
    table = FailureClassificationTable.from_interface(_AuditedInventory)

    assert dict(table) == {
        "reserve": frozenset({ConnectionError}),
        "audit": frozenset({TimeoutError, KeyError}),
    }
    assert table.is_monitored("describe") is False


def test_table_from_abc_sees_markers_under_abstractmethod() -> None:
    table = FailureClassificationTable.from_interface(_Repository)

    assert dict(table) == {"load": frozenset({OSError})}


def test_table_rejects_operation_without_open_signal() -> None:
    with pytest.raises(WrappingError) as excinfo:
        FailureClassificationTable.from_interface(_Undeclared)

    assert excinfo.value.reason == WrappingErrorReason.MISSING_FAILURE_SIGNAL
    assert "_Undeclared.reserve" in str(excinfo.value)


def test_unmarked_override_keeps_inherited_marker() -> None:
    class _Override(_Inventory, Protocol):
        def reserve(self, sku: str) -> bool: ...

    assert find_breaker_operation(_Override, "reserve") is not None
    assert FailureClassificationTable.from_interface(_Override).is_monitored("reserve")


def test_classifies_uses_isinstance_semantics() -> None:
    table = FailureClassificationTable({"reserve": [OSError]})

    assert table.classifies("reserve", ConnectionRefusedError()) is True
    assert table.classifies("reserve", ValueError()) is False
    assert table.classifies("describe", OSError()) is False


def test_table_is_immutable_mapping() -> None:
    entries = {"reserve": [OSError]}
    table = FailureClassificationTable(entries)
    entries["reserve"].append(ValueError)

    assert table["reserve"] == frozenset({OSError})
    assert len(table) == 1
    assert list(table) == ["reserve"]
    with pytest.raises(TypeError):
        table["reserve"] = frozenset()  # type: ignore[index]


def test_table_rejects_non_exception_kinds() -> None:
    with pytest.raises(TypeError):
        FailureClassificationTable({"reserve": [str]})  # type: ignore[list-item]
