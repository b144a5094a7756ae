"""
Application configuration for AppData.

AppConfig is stored like any other entity (store name "AppConfig",
key 0) and held in memory by the process-wide ConfigCell, which readers
access without locking and which notifies observers after every commit.

Invariants:
    - Exactly one live AppConfig per process
    - The in-memory value is published only after it is stored

How to change safely:
    - Add new settings with defaults so stored configs keep decoding
    - Keep field titles/descriptions current; clients render forms from them
"""

from .cell import (
    ConfigCell,
    ConfigObserver,
    get_config,
    get_config_cell,
    init_config,
    load_config,
    reset_config,
    save_config,
    watch,
)
from .data import CONFIG_KEY, AppConfig, FeaturesConfig, LoggingConfig, LogLevel

__all__ = [
    "AppConfig",
    "LoggingConfig",
    "FeaturesConfig",
    "LogLevel",
    "CONFIG_KEY",
    "ConfigCell",
    "ConfigObserver",
    "init_config",
    "get_config_cell",
    "get_config",
    "save_config",
    "load_config",
    "watch",
    "reset_config",
]
