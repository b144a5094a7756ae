"""
RawEntity - an owning wrapper around a concrete entity value.

The wrapper lets code that only knows the entity type at runtime carry a
value through the boundary codec. It is a pydantic RootModel, so its
serialized form is exactly the serialized form of the inner entity: no
envelope, no extra keys.

Invariants:
    - RawEntity[E] encodes to the same bytes as the inner E
    - Decoding those bytes as E or as RawEntity[E] yields equal values
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import RootModel

from .types import Entity

E = TypeVar("E", bound=Entity)


class RawEntity(RootModel[E], Generic[E]):
    """Newtype holding one entity value."""

    root: E

    @classmethod
    def wrap(cls, entity: E) -> RawEntity[E]:
        """Wrap an entity instance."""
        return RawEntity[type(entity)](entity)

    def as_entity(self) -> E:
        """Borrow the inner value."""
        return self.root

    def into_entity(self) -> E:
        """Take the inner value out of the wrapper."""
        return self.root

    def get_key(self) -> int:
        """Key of the inner entity."""
        return self.root.get_key()

    def set_key(self, key: int) -> None:
        """Assign the key of the inner entity."""
        self.root.set_key(key)
