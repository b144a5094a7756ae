"""
Persistence adapter for entity types.

EntityStore implements the record operations once for any Entity
subclass, delegating byte storage to the key-value store:
- get / save / remove / exists by numeric key
- Bulk export / import as a JSON document
- Linear search for the next free key

Invariants:
    - save() and remove() are flushed before they return
    - import_() validates the whole document before the first write
    - import_() only touches records of its own store name
    - find_next_available_key() never returns an existing key

How to change safely:
    - Keep the export document format backward compatible
    - If key density grows, replace the linear scan with a free list;
      the returned key must stay the smallest free key >= start
"""

from __future__ import annotations

import io
import json
import logging
from typing import IO, Any, Generic, TypeVar

from pydantic import ValidationError as PydanticValidationError

from ..errors import DecodingError, KeyOverflowError, StoreError, format_validation_errors
from ..storage.kv_store import KvStore, get_store
from .types import KEY_MAX, Entity, check_key, decode_key, encode_key

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)

EXPORT_FORMAT_VERSION = 1


class EntityStore(Generic[E]):
    """Typed record operations for one entity type.

    Attributes:
        entity_cls: The entity type handled by this store
        store_name: entity_cls.store_name

    Example:
        >>> profiles = EntityStore(UserProfile, kv)
        >>> profiles.save(UserProfile(id=7, name="Ada"))
        >>> profiles.get(7).name
        'Ada'
        >>> profiles.find_next_available_key(7)
        8
    """

    def __init__(self, entity_cls: type[E], kv: KvStore | None = None) -> None:
        """Create a store.

        Args:
            entity_cls: Entity subclass to persist
            kv: Key-value store (process-wide store if omitted)
        """
        self.entity_cls = entity_cls
        self.store_name = entity_cls.get_store_name()
        self._kv = kv

    @property
    def kv(self) -> KvStore:
        """Key-value store, resolved lazily so types can register before init."""
        return self._kv if self._kv is not None else get_store()

    def get(self, key: int) -> E | None:
        """Load one record.

        Returns:
            The record, or None if absent

        Raises:
            StoreError: If reading or decoding the stored bytes fails
        """
        data = self.kv.get(self.store_name, encode_key(key))
        if data is None:
            return None
        try:
            return self.entity_cls.from_store_bytes(data)
        except DecodingError as e:
            raise StoreError(
                f"Corrupt {self.store_name} record at key {key}: {e.message}"
            ) from e

    def save(self, entity: E) -> None:
        """Write a record under its own key and flush.

        Raises:
            StoreError: If serialization or the write fails
        """
        if not isinstance(entity, self.entity_cls):
            raise TypeError(
                f"{self.store_name} store cannot save {type(entity).__name__}"
            )
        key = entity.get_key()
        try:
            data = entity.to_store_bytes()
        except (ValueError, TypeError) as e:
            raise StoreError(f"Failed to serialize {self.store_name} record {key}: {e}") from e

        self.kv.put(self.store_name, encode_key(key), data)
        self.kv.flush()
        logger.debug(f"Saved {self.store_name} record", extra={"key": key})

    def remove(self, key: int) -> None:
        """Delete a record and flush. Absent keys are not an error."""
        self.kv.delete(self.store_name, encode_key(key))
        self.kv.flush()
        logger.debug(f"Removed {self.store_name} record", extra={"key": key})

    def exists(self, key: int) -> bool:
        """Check whether a record exists."""
        return self.kv.exists(self.store_name, encode_key(key))

    def count(self) -> int:
        """Number of stored records of this type."""
        return self.kv.count(self.store_name)

    def list_keys(self) -> list[int]:
        """All stored keys, ascending."""
        return [decode_key(k) for k in self.kv.keys(self.store_name)]

    def find_next_available_key(self, start: int = 0) -> int:
        """Smallest key >= start that is not in use.

        Raises:
            KeyOverflowError: If every key from start to KEY_MAX is taken
        """
        key = check_key(start)
        while self.exists(key):
            if key == KEY_MAX:
                raise KeyOverflowError(
                    f"Key overflow: no free {self.store_name} key at or above {start}",
                    start=start,
                )
            key += 1
        return key

    def export(self, sink: IO[Any]) -> int:
        """Write every record of this type to a file-like sink.

        The document is {"store_name", "version", "records"}, with records
        ordered by key. Text and binary sinks are both accepted.

        Returns:
            Number of exported records
        """
        records = []
        for key_bytes, data in self.kv.export_all(self.store_name):
            try:
                records.append(json.loads(data))
            except ValueError as e:
                raise StoreError(
                    f"Corrupt {self.store_name} record at key {decode_key(key_bytes)}"
                ) from e

        document = json.dumps(
            {
                "store_name": self.store_name,
                "version": EXPORT_FORMAT_VERSION,
                "records": records,
            },
            indent=2,
            ensure_ascii=False,
        )
        if _is_binary(sink):
            sink.write(document.encode("utf-8"))
        else:
            sink.write(document)

        logger.info(f"Exported {len(records)} {self.store_name} records")
        return len(records)

    def import_(self, source: IO[Any]) -> int:
        """Merge records from an exported document into the store.

        The whole document is decoded before anything is written; the
        write itself is a single transaction. Records with the same key
        replace existing ones, the last occurrence in the document wins.

        Returns:
            Number of records written

        Raises:
            DecodingError: If the document or any record is invalid
            StoreError: If the write fails
        """
        raw = source.read()
        try:
            document = json.loads(raw)
        except ValueError as e:
            raise DecodingError(f"Import document is not valid JSON: {e}") from e

        if not isinstance(document, dict) or not isinstance(document.get("records"), list):
            raise DecodingError("Import document must be an object with a 'records' list")
        if document.get("store_name") != self.store_name:
            raise DecodingError(
                f"Import document is for '{document.get('store_name')}', "
                f"expected '{self.store_name}'"
            )

        by_key: dict[bytes, bytes] = {}
        for index, item in enumerate(document["records"]):
            try:
                entity = self.entity_cls.model_validate_json(json.dumps(item), strict=True)
            except PydanticValidationError as e:
                raise DecodingError(
                    f"Import record #{index} is not a valid {self.store_name}",
                    errors=format_validation_errors(e),
                ) from e
            by_key[encode_key(entity.get_key())] = entity.to_store_bytes()

        written = self.kv.import_all(self.store_name, by_key.items())
        self.kv.flush()
        return written


def _is_binary(stream: IO[Any]) -> bool:
    mode = getattr(stream, "mode", None)
    if isinstance(mode, str):
        return "b" in mode
    # io.BytesIO and friends have no mode
    return not isinstance(stream, io.TextIOBase)
