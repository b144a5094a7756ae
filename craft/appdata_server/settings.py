"""
Process settings for the AppData server.

Settings come from environment variables prefixed APPDATA_ (and an
optional .env file). They cover where data lives and how the process
runs; user-facing preferences live in AppConfig instead.

Invariants:
    - All settings have sensible defaults for local development
    - Settings are read once at startup

How to change safely:
    - Add new settings with defaults that keep existing setups working
    - Never move a user preference here; it belongs in AppConfig
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """AppData server configuration."""

    # Storage
    data_dir: Path = Field(default=Path("data"), description="Directory for the store file")
    db_filename: str = Field(default="appdata.db")
    wal_mode: bool = Field(default=True, description="Enable SQLite WAL mode")
    busy_timeout_ms: int = Field(default=5000, ge=0)

    # HTTP
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8765, ge=1, le=65535)
    cors_origins: list[str] = Field(
        default=["http://localhost:1420", "tauri://localhost"],
    )

    # Logging
    log_format: Literal["text", "json"] = Field(default="text")
    log_dir: Path | None = Field(
        default=None,
        description="Directory for app.log/error.log (defaults to <data_dir>/logs)",
    )

    # Startup
    register_samples: bool = Field(default=True, description="Register the sample entity types")

    model_config = SettingsConfigDict(env_prefix="APPDATA_", env_file=".env", extra="ignore")

    @property
    def resolved_log_dir(self) -> Path:
        """Directory used for file logging."""
        return self.log_dir if self.log_dir is not None else self.data_dir / "logs"

    def log_config(self) -> None:
        """Log the effective settings."""
        logger.info(
            "Settings loaded",
            extra={
                "data_dir": str(self.data_dir),
                "db_filename": self.db_filename,
                "wal_mode": self.wal_mode,
                "host": self.host,
                "port": self.port,
                "log_format": self.log_format,
                "log_dir": str(self.resolved_log_dir),
                "register_samples": self.register_samples,
            },
        )
