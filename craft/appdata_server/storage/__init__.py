"""
Storage module for AppData - the durable embedded key-value store.

The store is a capability consumed by the entity adapters: it knows
nothing about entity types, only store names, byte keys and byte values.

Invariants:
    - Exactly one process-wide store, initialized once at startup
    - Writes are durable before they return
    - Bulk imports are atomic per store name

How to change safely:
    - Keep the byte-level contract stable; adapters depend on it
    - Run the storage unit tests against any new backend
"""

from .kv_store import KvStore, get_store, init_store, reset_store

__all__ = [
    "KvStore",
    "init_store",
    "get_store",
    "reset_store",
]
