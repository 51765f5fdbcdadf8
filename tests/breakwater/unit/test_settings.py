from __future__ import annotations

from typing import Any, cast

import pytest
from pydantic import ValidationError

from breakwater import CircuitState, WindowedPolicy
from breakwater.settings import BreakerSettings
from tests.breakwater.support.fakes import FakeLogger, RecordingHandler


def _build_settings(**overrides: object) -> BreakerSettings:
    return BreakerSettings(**cast(Any, overrides))


def test_breaker_settings_defaults() -> None:
    settings = _build_settings()

    assert settings.trip_threshold == 5
    assert settings.half_open_timeout_seconds == 30
    assert settings.threshold_window_seconds == 60
    assert settings.log_level == "INFO"


def test_breaker_settings_read_prefixed_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("BREAKWATER_TRIP_THRESHOLD", "3")
    monkeypatch.setenv("breakwater_half_open_timeout_seconds", "12")
    monkeypatch.setenv("BREAKWATER_LOG_LEVEL", " debug ")

    settings = BreakerSettings()

    assert settings.trip_threshold == 3
    assert settings.half_open_timeout_seconds == 12
    assert settings.log_level == "DEBUG"


@pytest.mark.parametrize(
    "field_name",
    ["trip_threshold", "half_open_timeout_seconds", "threshold_window_seconds"],
)
def test_breaker_settings_reject_non_positive_values(field_name: str) -> None:
    with pytest.raises(ValidationError):
        _build_settings(**{field_name: 0})


def test_breaker_settings_reject_unknown_log_level() -> None:
    with pytest.raises(ValidationError):
        _build_settings(log_level="TRACE")


def test_build_policy_uses_settings(fake_logger: FakeLogger) -> None:
    handler = RecordingHandler()
    settings = _build_settings(
        trip_threshold=1,
        half_open_timeout_seconds=2,
        threshold_window_seconds=3,
    )

    policy = settings.build_policy([handler], name="geocoder", logger=fake_logger)
    policy.record_classified_failure(operation_id="geocode")

    assert isinstance(policy, WindowedPolicy)
    assert policy.name == "geocoder"
    assert policy.config.trip_threshold == 1
    assert policy.config.half_open_timeout == 2
    assert policy.config.threshold_window == 3
    assert policy.current_state() == CircuitState.OPEN
    assert len(handler.events) == 1
