"""
Shared configuration cell.

The ConfigCell holds the one live AppConfig of the process. It is the
AppConfig persistence adapter with two additions: every successful save
is republished into a globally readable slot, and observers are notified
of every committed value.

Invariants:
    - Reads never block and never take a lock shared with writers
    - A reader gets a whole value, either the old or the new one
    - The slot changes only after the value is durably stored
    - Observers run in registration order, after the commit
    - An observer failure never turns a durable commit into a failure
    - Every write of the config record (save, import) publishes the result
    - The config record is never removed

How to change safely:
    - Never mutate a published AppConfig; publish a new one
    - Keep observers fast: saves wait for them
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import IO, Any, Optional

from pydantic import ValidationError as PydanticValidationError

from ..entity.store import EntityStore
from ..errors import (
    AlreadyInitializedError,
    NotFoundError,
    ValidationError,
    format_validation_errors,
)
from ..storage.kv_store import KvStore
from .data import CONFIG_KEY, AppConfig

logger = logging.getLogger(__name__)

ConfigObserver = Callable[[AppConfig], None]

# Global cell instance
_global_cell: Optional[ConfigCell] = None
_cell_lock = threading.Lock()


class ConfigCell(EntityStore[AppConfig]):
    """Atomically swappable holder of the live AppConfig.

    Publishing is a single reference assignment of an immutable value, so
    current() needs no lock: whatever reference it reads stays valid for
    as long as the caller holds it.

    Example:
        >>> cell = ConfigCell(kv)
        >>> cell.watch(lambda cfg: print("dark mode:", cfg.features.dark_mode))
        >>> cell.init().features.max_concurrent
        dark mode: False
        8
        >>> features = FeaturesConfig(dark_mode=True, max_concurrent=4)
        >>> cell.save(cell.current().model_copy(update={"features": features}))
        dark mode: True
        >>> cell.current().features.max_concurrent
        4
    """

    def __init__(self, kv: KvStore | None = None) -> None:
        super().__init__(AppConfig, kv)
        self._current: Optional[AppConfig] = None
        self._observers: tuple[ConfigObserver, ...] = ()
        self._observers_lock = threading.Lock()
        self._write_lock = threading.Lock()

    @property
    def initialized(self) -> bool:
        """Whether init() has published a value."""
        return self._current is not None

    def init(self) -> AppConfig:
        """Load the stored configuration, creating the default if absent.

        Returns:
            The initial configuration

        Raises:
            AlreadyInitializedError: If called more than once
            StoreError: If the store cannot be read or written
        """
        with self._write_lock:
            if self._current is not None:
                raise AlreadyInitializedError("AppConfig already initialized")

            config = self.get(CONFIG_KEY)
            if config is None:
                config = AppConfig.default()
                super().save(config)
                logger.info("Created default AppConfig")
            else:
                logger.info("Loaded AppConfig from store")

            self._current = config
            self._notify(config)
        return config

    def current(self) -> AppConfig:
        """The latest committed configuration.

        Raises:
            NotFoundError: If init() has not been called
        """
        config = self._current
        if config is None:
            raise NotFoundError("AppConfig not initialized", id=AppConfig.store_name)
        return config

    def save(self, entity: AppConfig) -> None:
        """Persist a new configuration, then publish it and notify observers.

        The value is validated strictly before anything is written, since
        model_copy() skips validators. If persistence fails the published
        value and observers are untouched.

        Raises:
            ValidationError: If entity is not a valid AppConfig
            StoreError: If the write fails
        """
        config = _validate(entity)
        with self._write_lock:
            super().save(config)
            self._current = config
            self._notify(config)
        logger.info("AppConfig saved")

    def remove(self, key: int) -> None:
        """Refuse to delete the live configuration record.

        Raises:
            ValidationError: If key is the configuration key
        """
        if key == CONFIG_KEY:
            raise ValidationError(
                "AppConfig cannot be removed; save a new value instead",
                errors=[f"key: {key} is the live configuration"],
            )
        super().remove(key)

    def import_(self, source: IO[Any]) -> int:
        """Import an AppConfig export document and publish the result.

        Returns:
            Number of records written

        Raises:
            DecodingError: If the document is invalid (nothing is written)
        """
        with self._write_lock:
            written = super().import_(source)
            config = self.get(CONFIG_KEY)
            if config is not None:
                self._current = config
                self._notify(config)
        logger.info("AppConfig imported")
        return written

    def reload(self) -> AppConfig:
        """Re-read the configuration from the store and publish it.

        Raises:
            NotFoundError: If no configuration is stored
        """
        with self._write_lock:
            config = self.get(CONFIG_KEY)
            if config is None:
                raise NotFoundError("Config not found", id=AppConfig.store_name)
            self._current = config
            self._notify(config)
        return config

    def bind(self, kv: KvStore) -> None:
        """Attach a key-value store to a cell created without one.

        Raises:
            AlreadyInitializedError: If the cell is bound to another store,
                or already published a value from the process store
        """
        with self._write_lock:
            if self._kv is kv:
                return
            if self._kv is not None or self._current is not None:
                raise AlreadyInitializedError(
                    "AppConfig cell is already bound to a key-value store"
                )
            self._kv = kv

    def watch(self, callback: ConfigObserver) -> None:
        """Register an observer. Observers cannot be removed."""
        with self._observers_lock:
            self._observers = self._observers + (callback,)

    def _notify(self, config: AppConfig) -> None:
        for callback in self._observers:
            try:
                callback(config)
            except Exception:
                logger.exception(f"AppConfig observer {callback!r} failed")


def _validate(entity: AppConfig) -> AppConfig:
    if not isinstance(entity, AppConfig):
        raise ValidationError(f"Expected AppConfig, got {type(entity).__name__}")
    try:
        return AppConfig.model_validate_json(entity.to_store_bytes(), strict=True)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid AppConfig",
            errors=format_validation_errors(e),
        ) from e
    except (ValueError, TypeError) as e:
        raise ValidationError(f"Invalid AppConfig: {e}") from e


def init_config(kv: KvStore | None = None) -> AppConfig:
    """Create the global configuration cell and initialize it.

    Raises:
        AlreadyInitializedError: If the global cell is already initialized
    """
    return get_config_cell(kv).init()


def get_config_cell(kv: KvStore | None = None) -> ConfigCell:
    """Get the global configuration cell, creating it if needed.

    A cell created earlier without a store (e.g. by watch()) is bound to
    kv when one is given.

    Raises:
        AlreadyInitializedError: If kv differs from the store the cell uses
    """
    global _global_cell
    with _cell_lock:
        if _global_cell is None:
            _global_cell = ConfigCell(kv)
        elif kv is not None:
            _global_cell.bind(kv)
        return _global_cell


def get_config() -> AppConfig:
    """The live configuration (lock-free)."""
    cell = _global_cell
    if cell is None:
        raise NotFoundError("AppConfig not initialized", id=AppConfig.store_name)
    return cell.current()


def save_config(config: AppConfig) -> None:
    """Persist and publish a new configuration."""
    get_config_cell().save(config)


def load_config() -> AppConfig:
    """Re-read the configuration from the store."""
    return get_config_cell().reload()


def watch(callback: ConfigObserver) -> None:
    """Register a configuration observer on the global cell."""
    get_config_cell().watch(callback)


def reset_config() -> None:
    """Forget the global configuration cell (for testing only).

    Warning: This is intended for test cleanup only.
    Never use in production code.
    """
    global _global_cell
    with _cell_lock:
        _global_cell = None
