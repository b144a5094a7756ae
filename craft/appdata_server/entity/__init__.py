"""
Entity module for AppData - the typed side of persistence.

This module provides:
- Entity: base class every persistable record type derives from
- EntityStore: generic record operations for one entity type
- RawEntity: owning newtype used when the type is only known at runtime

Invariants:
    - store_name is chosen by the type, never by configuration
    - Keys are unsigned 32-bit integers
    - Decoding external or stored bytes is strict

How to change safely:
    - Keep the on-disk codec (to_store_bytes) stable for existing data
    - Add fields with defaults; never repurpose a field name
"""

from .raw import RawEntity
from .store import EntityStore
from .types import KEY_BYTES, KEY_MAX, Entity, check_key, decode_key, encode_key

__all__ = [
    "Entity",
    "EntityStore",
    "RawEntity",
    "KEY_MAX",
    "KEY_BYTES",
    "check_key",
    "encode_key",
    "decode_key",
]
