"""
Entity contract for AppData.

An entity is a record type that can be persisted and addressed by a
string identifier at runtime. Every entity type declares:
- store_name: Stable identifier chosen by the type itself
- key_field: Name of the unsigned 32-bit key field (or fixed_key)
- default(): A default value
- schema_description(): JSON Schema for building forms and validators

Invariants:
    - store_name is unique across all registered types
    - Keys are integers in [0, KEY_MAX]
    - Store keys are 4-byte big-endian, so byte order == numeric order
    - Decoding is strict: unknown, missing or mistyped fields are rejected

How to change safely:
    - Never rename store_name of a type that has data on disk
    - Add new fields with defaults so old records still decode
    - Keep KEY_BYTES in sync with KEY_MAX

Example:
    >>> class Note(Entity):
    ...     store_name: ClassVar[str] = "Note"
    ...     id: int = 0
    ...     text: str = ""
    >>> note = Note(id=3, text="hi")
    >>> note.get_key()
    3
"""

from __future__ import annotations

from typing import Any, ClassVar, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from ..errors import DecodingError, InvalidKeyError, format_validation_errors

KEY_MAX = 2**32 - 1
KEY_BYTES = 4

EntityT = TypeVar("EntityT", bound="Entity")


def check_key(key: int) -> int:
    """Validate a numeric key.

    Raises:
        InvalidKeyError: If key is not an int in [0, KEY_MAX]
    """
    if isinstance(key, bool) or not isinstance(key, int):
        raise InvalidKeyError(f"Key must be an integer, got {type(key).__name__}")
    if key < 0 or key > KEY_MAX:
        raise InvalidKeyError(f"Key {key} out of range [0, {KEY_MAX}]")
    return key


def encode_key(key: int) -> bytes:
    """Encode a numeric key as big-endian store bytes."""
    return check_key(key).to_bytes(KEY_BYTES, "big")


def decode_key(data: bytes) -> int:
    """Decode big-endian store bytes into a numeric key."""
    if len(data) != KEY_BYTES:
        raise InvalidKeyError(f"Store key must be {KEY_BYTES} bytes, got {len(data)}")
    return int.from_bytes(data, "big")


class Entity(BaseModel):
    """Base class for every persistable record type.

    Subclasses set store_name and either key when the key lives in a
    field (key_field, default "id") or fixed_key when the type is a
    singleton stored under a constant key.

    Attributes:
        store_name: Globally unique identifier of the type
        key_field: Name of the key field
        fixed_key: Constant key for singleton types (overrides key_field)
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    store_name: ClassVar[str] = ""
    key_field: ClassVar[str] = "id"
    fixed_key: ClassVar[Optional[int]] = None

    @classmethod
    def __pydantic_init_subclass__(cls, **kwargs: Any) -> None:
        super().__pydantic_init_subclass__(**kwargs)
        if not cls.store_name:
            return
        if cls.fixed_key is not None:
            check_key(cls.fixed_key)
        elif cls.key_field not in cls.model_fields:
            raise TypeError(
                f"Entity '{cls.__name__}' declares key_field '{cls.key_field}' "
                "but has no such field"
            )

    @classmethod
    def get_store_name(cls) -> str:
        """Stable identifier of this entity type."""
        if not cls.store_name:
            raise TypeError(f"Entity '{cls.__name__}' does not declare a store_name")
        return cls.store_name

    @classmethod
    def type_name(cls) -> str:
        """Fully qualified Python type name, used in diagnostics."""
        return f"{cls.__module__}.{cls.__qualname__}"

    @classmethod
    def default(cls: type[EntityT]) -> EntityT:
        """Build the default value of this type.

        Types with required fields override this; decoding still
        requires every field to be present.
        """
        return cls()

    @classmethod
    def schema_description(cls) -> dict[str, Any]:
        """JSON Schema of this type, using boundary (alias) field names."""
        return cls.model_json_schema(by_alias=True)

    def get_key(self) -> int:
        """Numeric key of this record."""
        if self.fixed_key is not None:
            return self.fixed_key
        return getattr(self, self.key_field)

    def set_key(self, key: int) -> None:
        """Assign the numeric key. Singleton types ignore this."""
        check_key(key)
        if self.fixed_key is not None:
            return
        setattr(self, self.key_field, key)

    # On-disk codec

    def to_store_bytes(self) -> bytes:
        """Serialize for the key-value store (field names, compact JSON)."""
        return self.model_dump_json(by_alias=False).encode("utf-8")

    @classmethod
    def from_store_bytes(cls: type[EntityT], data: bytes) -> EntityT:
        """Deserialize a value written by to_store_bytes().

        Raises:
            DecodingError: If the bytes do not form a valid record
        """
        try:
            return cls.model_validate_json(data, strict=True)
        except PydanticValidationError as e:
            raise DecodingError(
                f"Stored {cls.get_store_name()} record is invalid",
                errors=format_validation_errors(e),
            ) from e
