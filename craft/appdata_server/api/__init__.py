"""
API module for AppData.

This module provides the external interfaces:
- AppDataCommands: the boundary operations (async, store work off-loop)
- HTTP server: REST routes over the same commands

Invariants:
    - Commands only resolve identifiers, forward, and translate errors
    - HTTP endpoints have the same semantics as the commands

How to change safely:
    - Add new commands, don't change existing signatures
    - HTTP routes should mirror command names
"""

from .commands import AppDataCommands, run_blocking
from .http_server import create_http_app

__all__ = [
    "AppDataCommands",
    "run_blocking",
    "create_http_app",
]
