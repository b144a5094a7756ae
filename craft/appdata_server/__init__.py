"""
AppData Server - typed record storage addressed by identifier.

This package implements a persistence layer for desktop-style apps:
- Entity types (pydantic models) registered once at startup
- A registry that maps each store name to a type-erased façade
- Byte-level CRUD, bulk import/export and free-key search per type
- A shared AppConfig cell with lock-free reads and change observers
- A durable embedded key-value store (SQLite) underneath

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌────────────────┐
    │  UI / HTTP  │────▶│ AppData      │────▶│ EntityRegistry │
    │   caller    │     │ Commands     │     └───────┬────────┘
    └─────────────┘     └──────┬───────┘             │ id
                               │                     ▼
                               │             ┌────────────────┐
                               │             │ EntityFacade   │ bytes <-> Entity
                               │             └───────┬────────┘
                               ▼                     ▼
                        ┌─────────────┐      ┌────────────────┐
                        │ ConfigCell  │─────▶│ EntityStore    │
                        │ (AppConfig) │      └───────┬────────┘
                        └─────────────┘              ▼
                                             ┌────────────────┐
                                             │ KvStore        │
                                             │ (SQLite)       │
                                             └────────────────┘

Invariants:
    - Store names are unique; duplicate registration aborts startup
    - Writes are durable before they return
    - The live AppConfig is published only after it is stored
    - Malformed payloads are rejected before any write

How to change safely:
    - Add fields to entities with defaults
    - Never rename a store_name that has data on disk
"""

from ._version import __version__

__all__ = ["__version__"]
