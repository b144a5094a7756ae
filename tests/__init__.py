"""
AppData Test Suite.

This package contains:
- unit/: Unit tests (temporary SQLite store, no network)
- integration/: HTTP API and startup wiring tests
"""
