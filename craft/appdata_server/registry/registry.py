"""
Entity Registry for AppData.

The EntityRegistry is the central authority for all persistable types.
It provides:
- One-time registration of entity types under their store name
- Lookup of the type-erased façade by identifier
- Sorted enumeration of identifiers and schemas

Invariants:
    - Registration happens at startup, before boundary traffic
    - An identifier is registered at most once; duplicates are a hard error
    - Entries are never replaced or removed
    - Lookups are safe concurrently with each other at all times

How to change safely:
    - Register all types in main.setup() before serving
    - Never rename a registered type's store_name once data exists

Example:
    >>> registry = EntityRegistry()
    >>> registry.register(UserProfile)
    >>> registry.list_ids()
    ['UserProfile']
    >>> registry.get("UserProfile").exists(1)
    False
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Iterator, List, Optional

from ..entity.store import EntityStore
from ..entity.types import Entity
from ..errors import DuplicateRegistrationError, NotFoundError
from .facade import EntityFacade

logger = logging.getLogger(__name__)

# Global registry instance
_global_registry: Optional[EntityRegistry] = None
_registry_lock = threading.Lock()


class EntityRegistry:
    """Mapping of identifier to entity façade.

    Thread-safety:
        - Registration is serialized by an internal lock
        - Lookups are lock-free dict reads
        - Registration concurrent with lookups is not supported

    Example:
        >>> registry = EntityRegistry()
        >>> registry.register(UserProfile)
        >>> registry.register(ProductConfig)
        >>> registry.list_ids()
        ['ProductConfig', 'UserProfile']
    """

    def __init__(self) -> None:
        """Initialize an empty registry."""
        self._facades: Dict[str, EntityFacade] = {}
        self._lock = threading.Lock()

    def __contains__(self, id: object) -> bool:
        return id in self._facades

    def __len__(self) -> int:
        return len(self._facades)

    def register(
        self,
        entity_cls: type[Entity],
        store: Optional[EntityStore] = None,
    ) -> EntityFacade:
        """Register an entity type.

        Args:
            entity_cls: The entity type to register
            store: Persistence adapter to use (a plain EntityStore if omitted)

        Returns:
            The façade now registered under entity_cls.store_name

        Raises:
            DuplicateRegistrationError: If the store name is already registered
        """
        # Building the default proves the type satisfies the contract.
        default = entity_cls.default()
        id = default.get_store_name()
        facade = EntityFacade(entity_cls, store)

        with self._lock:
            existing = self._facades.get(id)
            if existing is not None:
                raise DuplicateRegistrationError(
                    id=id,
                    existing_type=existing.type_name,
                    new_type=facade.type_name,
                )
            self._facades[id] = facade

        logger.info(f"AppData registered: id={id}, type={facade.type_name}")
        return facade

    def lookup(self, id: str) -> Optional[EntityFacade]:
        """Get a façade by identifier.

        Returns:
            EntityFacade if registered, None otherwise
        """
        return self._facades.get(id)

    def get(self, id: str) -> EntityFacade:
        """Get a façade by identifier.

        Raises:
            NotFoundError: If id is not registered
        """
        facade = self._facades.get(id)
        if facade is None:
            raise NotFoundError(f"AppData not found: {id}", id=id)
        return facade

    def list_ids(self) -> List[str]:
        """All registered identifiers, sorted."""
        return sorted(self._facades)

    def list_schemas(self) -> List[Dict[str, Any]]:
        """Schemas of all registered types, in list_ids() order."""
        return [self._facades[id].schema() for id in self.list_ids()]

    def facades(self) -> Iterator[EntityFacade]:
        """Iterate over façades in identifier order."""
        for id in self.list_ids():
            yield self._facades[id]

    def to_dict(self) -> Dict[str, Any]:
        """Describe the registry: identifier -> Python type name."""
        return {id: self._facades[id].type_name for id in self.list_ids()}


def get_registry() -> EntityRegistry:
    """Get the global entity registry.

    Creates a new registry if none exists.
    """
    global _global_registry
    with _registry_lock:
        if _global_registry is None:
            _global_registry = EntityRegistry()
        return _global_registry


def reset_registry() -> None:
    """Reset the global registry (for testing only).

    Warning: This is intended for test cleanup only.
    Never use in production code.
    """
    global _global_registry
    with _registry_lock:
        _global_registry = None
