"""
Registry module for AppData.

This module maps string identifiers to type-erased entity façades so the
boundary can address any registered record type at runtime:
- EntityFacade: byte-level operations over one entity type
- EntityRegistry: identifier -> façade map, registered once at startup

Invariants:
    - Identifiers are the entity store names
    - Duplicate registration aborts startup
    - Entries are immutable once registered
"""

from .facade import EntityFacade
from .registry import EntityRegistry, get_registry, reset_registry

__all__ = [
    "EntityFacade",
    "EntityRegistry",
    "get_registry",
    "reset_registry",
]
