from __future__ import annotations

from pathlib import Path
from typing import Literal

import structlog
from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from breakwater.circuit_breaker.config import CircuitBreakerConfig
from breakwater.logging import LogFormat, configure_structlog, get_log_level_value

StorageBackend = Literal["memory", "file", "null"]


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class BreakerSettings(BaseSettings):
    """Environment-driven defaults for breakers and their storage.

    Every field can be set through ``BREAKWATER_<FIELD>``.
    """

    model_config = prefixed_settings_config("BREAKWATER_")

    failure_threshold: int = 5
    success_threshold: int = 2
    timeout: int = 30
    half_open_max_attempts: int = 1
    storage_backend: StorageBackend = "memory"
    storage_dir: Path | None = None
    max_temp_file_age: int = 3600
    storage_retry_attempts: int = 1
    log_level: str = "INFO"
    log_format: LogFormat = "auto"

    @field_validator("storage_backend", mode="before")
    @classmethod
    def _normalize_storage_backend(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().upper()
        try:
            get_log_level_value(normalized)
        except ValueError as error:
            raise ValueError(f"{info.field_name}: {error}") from error
        return normalized

    @model_validator(mode="after")
    def _validate_breaker_settings(self) -> BreakerSettings:
        if self.storage_backend == "file" and self.storage_dir is None:
            raise ValueError("storage_dir is required when storage_backend is file")
        if self.max_temp_file_age < 0:
            raise ValueError("max_temp_file_age must be >= 0")
        if self.storage_retry_attempts < 1:
            raise ValueError("storage_retry_attempts must be >= 1")
        self.to_config()
        return self

    def to_config(self) -> CircuitBreakerConfig:
        """Build a validated ``CircuitBreakerConfig`` from these settings."""
        return CircuitBreakerConfig(
            failure_threshold=self.failure_threshold,
            success_threshold=self.success_threshold,
            timeout=self.timeout,
            half_open_max_attempts=self.half_open_max_attempts,
        )

    def configure_logging(self) -> structlog.stdlib.BoundLogger:
        """Configure structlog with ``log_level`` and ``log_format``."""
        return configure_structlog(
            log_level=self.log_level, log_format=self.log_format
        )
