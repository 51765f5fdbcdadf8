from __future__ import annotations

import pytest

import breakwater.policy as policy_mod
import breakwater.wrapper as wrapper_mod
from tests.breakwater.support.fakes import FakeClock, FakeLogger


@pytest.fixture
def fake_logger() -> FakeLogger:
    """Provide a fresh structured logger test double per test."""
    return FakeLogger()


@pytest.fixture
def fake_clock(monkeypatch: pytest.MonkeyPatch) -> FakeClock:
    """Freeze policy and wrapper time at a controllable instant."""
    clock = FakeClock()
    monkeypatch.setattr(policy_mod, "_utcnow", clock.now)
    monkeypatch.setattr(wrapper_mod, "_utcnow", clock.now)
    return clock
