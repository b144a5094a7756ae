"""
Type-erased entity façade.

An EntityFacade wraps the EntityStore of one concrete entity type behind
byte-oriented operations, so heterogeneous types can live in one registry
and be invoked by identifier. Payloads cross the façade in the boundary
encoding (JSON with alias field names).

Invariants:
    - save() decodes the full payload before any store write
    - Decoding rejects unknown, missing and mistyped fields
    - The façade owns no mutable state; all state is in the store
"""

from __future__ import annotations

import logging
from typing import IO, Any, Generic, TypeVar

from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticSerializationError

from ..entity.raw import RawEntity
from ..entity.store import EntityStore
from ..entity.types import Entity
from ..errors import DecodingError, EncodingError, format_validation_errors

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


class EntityFacade(Generic[E]):
    """Byte-level view of one entity type.

    Attributes:
        id: Registry identifier (the entity's store name)
        entity_cls: Concrete entity type
        store: Typed persistence adapter

    Example:
        >>> facade = EntityFacade(UserProfile, EntityStore(UserProfile, kv))
        >>> facade.save(b'{"id": 1, "name": "Ada", ...}')
        >>> facade.get(1)
        b'{"id":1,"name":"Ada",...}'
    """

    def __init__(self, entity_cls: type[E], store: EntityStore[E] | None = None) -> None:
        self.entity_cls = entity_cls
        self.store: EntityStore[E] = store if store is not None else EntityStore(entity_cls)
        if self.store.entity_cls is not entity_cls:
            raise TypeError(
                f"Store for {self.store.entity_cls.__name__} cannot back {entity_cls.__name__}"
            )
        self.id = entity_cls.get_store_name()
        self._codec = RawEntity[entity_cls]

    def __repr__(self) -> str:
        return f"EntityFacade(id={self.id!r}, type={self.type_name})"

    @property
    def type_name(self) -> str:
        """Python type name of the wrapped entity."""
        return self.entity_cls.type_name()

    def schema(self) -> dict[str, Any]:
        """JSON Schema of the wrapped entity."""
        return self.entity_cls.schema_description()

    def encode(self, entity: E) -> bytes:
        """Encode an entity in the boundary encoding.

        Raises:
            EncodingError: If the value cannot be serialized
        """
        try:
            return self._codec(entity).model_dump_json(by_alias=True).encode("utf-8")
        except (PydanticSerializationError, PydanticValidationError, ValueError) as e:
            raise EncodingError(f"Failed to encode {self.id} record: {e}") from e

    def decode(self, data: bytes | str) -> E:
        """Decode a boundary payload into a concrete entity.

        Raises:
            DecodingError: If the payload is malformed or fails validation
        """
        try:
            return self._codec.model_validate_json(data, strict=True).into_entity()
        except PydanticValidationError as e:
            raise DecodingError(
                f"Invalid {self.id} payload",
                errors=format_validation_errors(e),
            ) from e

    def get(self, key: int) -> bytes | None:
        """Load a record and return it in the boundary encoding."""
        entity = self.store.get(key)
        if entity is None:
            return None
        return self.encode(entity)

    def save(self, data: bytes | str) -> int:
        """Decode a payload and persist it.

        Returns:
            Key the record was saved under
        """
        entity = self.decode(data)
        self.store.save(entity)
        return entity.get_key()

    def remove(self, key: int) -> None:
        """Delete a record. Absent keys are not an error."""
        self.store.remove(key)

    def exists(self, key: int) -> bool:
        """Check whether a record exists."""
        return self.store.exists(key)

    def find_next_available_key(self, start: int = 0) -> int:
        """Smallest free key >= start."""
        return self.store.find_next_available_key(start)

    def export(self, sink: IO[Any]) -> int:
        """Export every record of this type to sink."""
        return self.store.export(sink)

    def import_(self, source: IO[Any]) -> int:
        """Import records of this type from source."""
        return self.store.import_(source)
