from __future__ import annotations

from collections.abc import Iterable

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from breakwater.handlers import StateChangeHandler
from breakwater.logging import BreakerLogger, get_log_level_value
from breakwater.policy import WindowedPolicy

ENV_PREFIX = "BREAKWATER_"


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven defaults for windowed circuit breaker policies."""

    model_config = prefixed_settings_config(ENV_PREFIX)

    trip_threshold: int = Field(default=5, ge=1)
    half_open_timeout_seconds: int = Field(default=30, ge=1)
    threshold_window_seconds: int = Field(default=60, ge=1)
    log_level: str = "INFO"

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        get_log_level_value(normalized)
        return normalized

    def build_policy(
        self,
        handlers: Iterable[StateChangeHandler] | None = None,
        *,
        name: str = "default",
        logger: BreakerLogger | None = None,
    ) -> WindowedPolicy:
        """Build a ``WindowedPolicy`` from these settings."""
        return WindowedPolicy(
            self.trip_threshold,
            self.half_open_timeout_seconds,
            self.threshold_window_seconds,
            handlers,
            name=name,
            logger=logger,
        )
