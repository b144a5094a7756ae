"""
AppData Server - Main entry point.

This module wires the process together at startup:
- Logging (text or JSON, level and file logging driven by AppConfig)
- The process-wide key-value store
- Entity registration (AppConfig plus the configured entity types)
- The shared configuration cell
- The HTTP API

Usage:
    python -m craft.appdata_server.main

Configuration is via APPDATA_* environment variables.
See settings.py for all available settings.

Invariants:
    - Every entity type is registered before the first request
    - A duplicate registration aborts startup
    - AppConfig observers are registered before the config is initialized,
      so they see the initial value

How to change safely:
    - Register new entity types in Server.entity_types
    - Test the startup and shutdown sequence when adding components
"""

from __future__ import annotations

import logging
import sys
import threading
from collections.abc import AsyncGenerator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path

import json_log_formatter
import uvicorn
from fastapi import FastAPI

from .api import AppDataCommands, create_http_app
from .appconfig import AppConfig, ConfigCell, get_config_cell, reset_config
from .entity import Entity
from .errors import AppDataError
from .registry import EntityRegistry, get_registry, reset_registry
from .samples import SAMPLE_ENTITIES
from .settings import Settings
from .storage import init_store, reset_store

logger = logging.getLogger(__name__)

TRACE = 5
TEXT_FORMAT = "[%(asctime)s %(levelname)s %(name)s] %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def build_formatter(log_format: str) -> logging.Formatter:
    """Formatter for the configured log format."""
    if log_format == "json":
        return json_log_formatter.JSONFormatter()
    return logging.Formatter(TEXT_FORMAT, datefmt=TEXT_DATE_FORMAT)


def setup_logging(settings: Settings) -> None:
    """Configure console logging.

    The level is set to INFO here and later driven by AppConfig through
    LoggingConfigApplier.

    Args:
        settings: Process settings
    """
    logging.addLevelName(TRACE, "TRACE")

    handler = logging.StreamHandler()
    handler.setFormatter(build_formatter(settings.log_format))

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.INFO)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


class LoggingConfigApplier:
    """AppConfig observer that applies the logging section.

    - logging.level sets the root logger level (Off silences everything)
    - logging.file_logging attaches app.log (all records) and error.log
      (ERROR and above) under log_dir, and detaches them when turned off

    Attributes:
        log_dir: Directory for the log files
    """

    def __init__(self, log_dir: Path, formatter: logging.Formatter | None = None) -> None:
        self.log_dir = Path(log_dir)
        self._formatter = formatter or build_formatter("text")
        self._file_handlers: list[logging.Handler] = []
        self._lock = threading.Lock()

    @property
    def file_logging(self) -> bool:
        """Whether file handlers are attached."""
        return bool(self._file_handlers)

    def __call__(self, config: AppConfig) -> None:
        root_logger = logging.getLogger()
        level = config.logging.level.to_logging_level()
        root_logger.setLevel(logging.CRITICAL + 1 if level is None else level)

        with self._lock:
            if config.logging.file_logging and not self._file_handlers:
                self._attach(root_logger)
            elif not config.logging.file_logging and self._file_handlers:
                self._detach(root_logger)

    def _attach(self, root_logger: logging.Logger) -> None:
        self.log_dir.mkdir(parents=True, exist_ok=True)

        app_handler = logging.FileHandler(self.log_dir / "app.log", encoding="utf-8")
        app_handler.setFormatter(self._formatter)

        error_handler = logging.FileHandler(self.log_dir / "error.log", encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(self._formatter)

        self._file_handlers = [app_handler, error_handler]
        for handler in self._file_handlers:
            root_logger.addHandler(handler)
        logger.info(f"File logging enabled: {self.log_dir}")

    def _detach(self, root_logger: logging.Logger) -> None:
        for handler in self._file_handlers:
            root_logger.removeHandler(handler)
            handler.close()
        self._file_handlers = []
        logger.info("File logging disabled")

    def close(self) -> None:
        """Detach file handlers, if any."""
        with self._lock:
            if self._file_handlers:
                self._detach(logging.getLogger())


class Server:
    """AppData process orchestrator.

    Manages the lifecycle of the store, registry, config cell and HTTP app.

    Attributes:
        settings: Process settings
        entity_types: Entity types registered at startup (besides AppConfig)
        registry: Entity registry (after setup)
        config_cell: Configuration cell (after setup)
        commands: Boundary commands (after setup)

    Example:
        >>> server = Server(Settings(data_dir="/tmp/appdata"))
        >>> commands = server.setup()
        >>> await commands.list_identifiers()
        ['AppConfig', 'ProductConfig', 'SystemSettings', 'UserProfile']
        >>> server.teardown()
    """

    def __init__(
        self,
        settings: Settings | None = None,
        entity_types: Iterable[type[Entity]] | None = None,
    ) -> None:
        self.settings = settings or Settings()
        if entity_types is None:
            entity_types = SAMPLE_ENTITIES if self.settings.register_samples else ()
        self.entity_types = tuple(entity_types)

        self.registry: EntityRegistry | None = None
        self.config_cell: ConfigCell | None = None
        self.commands: AppDataCommands | None = None
        self._owns_state = False
        self.log_applier = LoggingConfigApplier(
            self.settings.resolved_log_dir,
            build_formatter(self.settings.log_format),
        )

    @property
    def ready(self) -> bool:
        """Whether setup() completed."""
        return self.commands is not None

    def setup(self) -> AppDataCommands:
        """Initialize store, registry and configuration.

        Returns:
            Boundary commands bound to the initialized components

        Raises:
            DuplicateRegistrationError: If two types share a store name
            AlreadyInitializedError: If the process was already set up
            StoreError: If the store cannot be opened
        """
        logger.info("Starting AppData server")
        self.settings.log_config()

        # Fails without side effects if another server owns the process state.
        try:
            store = init_store(
                self.settings.data_dir,
                filename=self.settings.db_filename,
                wal_mode=self.settings.wal_mode,
                busy_timeout_ms=self.settings.busy_timeout_ms,
            )
        except Exception as e:
            logger.error(f"Server startup failed: {e}")
            raise
        self._owns_state = True

        try:
            self.registry = get_registry()
            self.config_cell = get_config_cell(store)
            self.registry.register(AppConfig, store=self.config_cell)
            for entity_type in self.entity_types:
                self.registry.register(entity_type)

            self.config_cell.watch(self.log_applier)
            self.config_cell.init()

            self.commands = AppDataCommands(self.registry, self.config_cell)
        except Exception as e:
            logger.error(f"Server startup failed: {e}", exc_info=True)
            self.teardown()
            raise

        logger.info(f"AppData server ready with {len(self.registry)} registered types")
        return self.commands

    def teardown(self) -> None:
        """Release the process-wide state this server created."""
        if not self._owns_state:
            return
        self._owns_state = False
        self.log_applier.close()
        reset_config()
        reset_registry()
        reset_store()
        self.registry = None
        self.config_cell = None
        self.commands = None
        logger.info("AppData server stopped")

    @asynccontextmanager
    async def lifespan(self, app: FastAPI) -> AsyncGenerator[None, None]:
        """FastAPI lifespan: tear down on shutdown."""
        yield
        self.teardown()

    def create_app(self) -> FastAPI:
        """Create the HTTP app, running setup() first if needed."""
        commands = self.commands if self.ready else self.setup()
        return create_http_app(
            commands,
            cors_origins=self.settings.cors_origins,
            lifespan=self.lifespan,
        )


def main() -> None:
    """Main entry point."""
    settings = Settings()
    setup_logging(settings)

    server = Server(settings)
    try:
        app = server.create_app()
    except AppDataError as e:
        print(f"Startup error: {e}", file=sys.stderr)
        sys.exit(1)

    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
