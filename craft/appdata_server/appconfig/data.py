"""
Application configuration record.

AppConfig is the single live configuration of the application. It is an
ordinary entity with a fixed key, so it is stored, exported and exposed
through the same machinery as every other record type.

Invariants:
    - Values are immutable; a change is a new AppConfig
    - Stored under store_name "AppConfig", key 0
    - Boundary field names are camelCase, on-disk names are snake_case
    - Every field is required when decoding; defaults come from default()
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..entity.types import Entity

CONFIG_KEY = 0


class LogLevel(str, Enum):
    """Verbosity level for logging."""

    TRACE = "Trace"
    DEBUG = "Debug"
    INFO = "Info"
    WARN = "Warn"
    ERROR = "Error"
    OFF = "Off"

    def to_logging_level(self) -> Optional[int]:
        """Map to a stdlib logging level. None means logging is off."""
        return {
            LogLevel.TRACE: 5,
            LogLevel.DEBUG: logging.DEBUG,
            LogLevel.INFO: logging.INFO,
            LogLevel.WARN: logging.WARNING,
            LogLevel.ERROR: logging.ERROR,
            LogLevel.OFF: None,
        }[self]


class _ConfigSection(BaseModel):
    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


class LoggingConfig(_ConfigSection):
    """Logging system configuration."""

    model_config = ConfigDict(title="Logging Configuration")

    level: LogLevel = Field(
        ...,
        title="Log Level",
        description="Logging verbosity level",
        examples=[LogLevel.DEBUG.value],
    )
    file_logging: bool = Field(
        ...,
        title="File Logging Enabled",
        description="Whether to write logs to a file",
        examples=[False],
    )


class FeaturesConfig(_ConfigSection):
    """Feature flags and operational limits."""

    model_config = ConfigDict(title="Feature Configuration")

    dark_mode: bool = Field(
        ...,
        title="Dark Mode Enabled",
        description="Whether to use dark mode for the user interface",
        examples=[False],
    )
    max_concurrent: int = Field(
        ...,
        ge=1,
        le=32,
        title="Max Concurrent Operations",
        description="Maximum number of simultaneous operations (1-32)",
        examples=[8],
    )


class AppConfig(Entity):
    """Application configuration root structure."""

    model_config = ConfigDict(
        title="Application Configuration",
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    store_name: ClassVar[str] = "AppConfig"
    fixed_key: ClassVar[Optional[int]] = CONFIG_KEY

    logging: LoggingConfig = Field(..., description="Logging system configuration")
    features: FeaturesConfig = Field(..., description="Feature flags and limitations")

    @classmethod
    def default(cls) -> AppConfig:
        """Compiled-in configuration used when none is stored."""
        return cls(
            logging=LoggingConfig(level=LogLevel.INFO, file_logging=False),
            features=FeaturesConfig(dark_mode=False, max_concurrent=8),
        )
