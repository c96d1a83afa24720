"""Runtime settings for testwatch."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TestwatchSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    config_path: Path | None = Field(default=None, validation_alias="TESTWATCH_CONFIG")
    project_root: Path | None = Field(default=None, validation_alias="TESTWATCH_PROJECT_ROOT")
    log_level: str = Field(default="INFO", validation_alias="TESTWATCH_LOG_LEVEL")
    cache_ttl_seconds: float = Field(default=60.0, validation_alias="TESTWATCH_CACHE_TTL")
    kill_grace_seconds: float = Field(default=5.0, validation_alias="TESTWATCH_KILL_GRACE")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "TESTWATCH_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("cache_ttl_seconds", "kill_grace_seconds")
    @classmethod
    def _validate_non_negative(cls, value: float) -> float:
        if value < 0:
            raise ValueError("TESTWATCH_CACHE_TTL and TESTWATCH_KILL_GRACE must be >= 0")
        return value


@lru_cache(maxsize=1)
def get_settings() -> TestwatchSettings:
    """Return cached settings instance."""

    settings = TestwatchSettings()
    if settings.config_path is not None:
        settings.config_path = settings.config_path.expanduser().resolve()
    if settings.project_root is not None:
        settings.project_root = settings.project_root.expanduser().resolve()
    return settings


__all__ = ["TestwatchSettings", "get_settings"]
