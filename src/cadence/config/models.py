"""Configuration models using Pydantic."""

import logging
from pathlib import Path
from typing import Literal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator, model_validator

from cadence.config.paths import get_logs_path

logger = logging.getLogger(__name__)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]


class ConfigError(Exception):
    """Configuration error."""

    pass


class LoggingConfig(BaseModel):
    """Configuration for logging output."""

    level: LogLevel = "INFO"
    use_rich: bool = False
    # Also write JSONL files to logs_dir
    log_to_file: bool = False
    logs_dir: Path = Field(default_factory=get_logs_path)
    retention_days: int = Field(default=7, gt=0)

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> object:
        return value.upper() if isinstance(value, str) else value


class CadenceConfig(BaseModel):
    """Root configuration model.

    Durations are in seconds.
    """

    # Upper bound on executions running at the same time
    max_concurrency: int = Field(default=20, gt=0)
    # Idle wake-up period when the queue is empty or the scheduler is saturated
    poll_interval: float = Field(default=1.0, gt=0)
    # Longest the loop sleeps before re-checking the queue head
    poll_interval_cap: float = Field(default=30.0, gt=0)
    # Pause between retry attempts (0 retries immediately)
    retry_delay: float = Field(default=0.0, ge=0)
    # IANA timezone for evaluating calendar expressions
    timezone: str = "UTC"
    # JSONL task store; None runs without persistence
    store_path: Path | None = None
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value

    @model_validator(mode="after")
    def _validate_poll_cap(self) -> "CadenceConfig":
        if self.poll_interval_cap < self.poll_interval:
            raise ValueError(
                "poll_interval_cap must be greater than or equal to poll_interval"
            )
        return self
