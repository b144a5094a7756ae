"""
Boundary operations for AppData.

AppDataCommands is the request/response surface exposed to the UI (or any
other caller). Each command resolves an identifier to a façade and
forwards the call; it carries no domain logic of its own.

Store calls may block on I/O, so every command runs them in a worker
thread. A caller that gives up on a command only drops the result: the
store operation still runs to completion and the store never stays in a
transitional state.

Invariants:
    - Unknown identifiers raise NotFoundError
    - Errors propagate as AppDataError subclasses; nothing is defaulted
    - Identifier lists and schema lists share the same sorted order

How to change safely:
    - New commands must be thin: resolve, forward, translate
    - Keep the HTTP routes in http_server.py in sync
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
from collections.abc import Callable
from typing import Any, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from ..appconfig.cell import ConfigCell, get_config_cell
from ..appconfig.data import AppConfig
from ..errors import ValidationError, format_validation_errors
from ..registry.facade import EntityFacade
from ..registry.registry import EntityRegistry, get_registry

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking store call off the event loop.

    The call is shielded: cancelling the awaiting task does not stop the
    worker, whose late result is discarded. A late failure is logged.
    """
    worker = asyncio.ensure_future(asyncio.to_thread(func, *args))
    try:
        return await asyncio.shield(worker)
    except asyncio.CancelledError:
        worker.add_done_callback(_log_abandoned_failure)
        raise


def _log_abandoned_failure(worker: asyncio.Future) -> None:
    if worker.cancelled():
        return
    exc = worker.exception()
    if exc is not None:
        logger.error(f"Abandoned store call failed: {exc}", exc_info=exc)


class AppDataCommands:
    """Boundary commands over the entity registry and the config cell.

    Attributes:
        registry: Entity registry (global registry if omitted)
        config_cell: Configuration cell (global cell if omitted)

    Example:
        >>> commands = AppDataCommands()
        >>> await commands.list_identifiers()
        ['AppConfig', 'ProductConfig', 'SystemSettings', 'UserProfile']
        >>> await commands.find_next_key("UserProfile", 0)
        0
    """

    def __init__(
        self,
        registry: Optional[EntityRegistry] = None,
        config_cell: Optional[ConfigCell] = None,
    ) -> None:
        self._registry = registry
        self._config_cell = config_cell

    @property
    def registry(self) -> EntityRegistry:
        return self._registry if self._registry is not None else get_registry()

    @property
    def config_cell(self) -> ConfigCell:
        return self._config_cell if self._config_cell is not None else get_config_cell()

    def _resolve(self, id: str) -> EntityFacade:
        return self.registry.get(id)

    # =========================================================================
    # Entity records
    # =========================================================================

    async def list_identifiers(self) -> list[str]:
        """All registered identifiers, sorted."""
        return self.registry.list_ids()

    async def list_schemas(self) -> list[dict[str, Any]]:
        """Schemas of all registered types, in identifier order."""
        return self.registry.list_schemas()

    async def get_schema(self, id: str) -> dict[str, Any]:
        """Schema of one registered type."""
        return self._resolve(id).schema()

    async def get_record(self, id: str, key: int) -> Optional[bytes]:
        """Encoded record, or None if the key is absent."""
        facade = self._resolve(id)
        return await run_blocking(facade.get, key)

    async def save_record(self, id: str, data: bytes) -> int:
        """Decode and persist a record.

        Returns:
            Key the record was saved under
        """
        facade = self._resolve(id)
        key = await run_blocking(facade.save, data)
        logger.debug(f"Saved {id} record", extra={"key": key})
        return key

    async def remove_record(self, id: str, key: int) -> None:
        """Delete a record. Absent keys are not an error."""
        facade = self._resolve(id)
        await run_blocking(facade.remove, key)

    async def exists_record(self, id: str, key: int) -> bool:
        """Whether a record exists."""
        facade = self._resolve(id)
        return await run_blocking(facade.exists, key)

    async def find_next_key(self, id: str, start: int = 0) -> int:
        """Smallest free key >= start."""
        facade = self._resolve(id)
        return await run_blocking(facade.find_next_available_key, start)

    async def export_records(self, id: str) -> bytes:
        """Export document with every record of a type."""
        facade = self._resolve(id)
        sink = io.BytesIO()
        await run_blocking(facade.export, sink)
        return sink.getvalue()

    async def import_records(self, id: str, data: bytes) -> int:
        """Merge an export document into the store.

        Returns:
            Number of records written
        """
        facade = self._resolve(id)
        return await run_blocking(facade.import_, io.BytesIO(data))

    # =========================================================================
    # Configuration
    # =========================================================================

    async def get_config_schema(self) -> dict[str, Any]:
        """JSON Schema of AppConfig."""
        return AppConfig.schema_description()

    async def get_config(self) -> AppConfig:
        """The live configuration."""
        return self.config_cell.current()

    async def save_config(self, config: AppConfig | bytes | str | dict[str, Any]) -> AppConfig:
        """Validate, persist and publish a new configuration.

        Raises:
            ValidationError: If config is not a valid AppConfig
        """
        if not isinstance(config, AppConfig):
            config = _parse_config(config)
        await run_blocking(self.config_cell.save, config)
        return config

    async def reload_config(self) -> AppConfig:
        """Re-read the configuration from the store."""
        return await run_blocking(self.config_cell.reload)


def _parse_config(data: bytes | str | dict[str, Any]) -> AppConfig:
    if isinstance(data, dict):
        data = json.dumps(data)
    try:
        return AppConfig.model_validate_json(data, strict=True)
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid AppConfig",
            errors=format_validation_errors(e),
        ) from e
