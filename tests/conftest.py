"""
Shared fixtures for AppData tests.
"""

import tempfile

import pytest

from craft.appdata_server.appconfig import reset_config
from craft.appdata_server.registry import reset_registry
from craft.appdata_server.storage import KvStore, reset_store


@pytest.fixture(autouse=True)
def reset_globals():
    """Every test starts and ends without process-wide state."""
    reset_config()
    reset_registry()
    reset_store()
    yield
    reset_config()
    reset_registry()
    reset_store()


@pytest.fixture
def data_dir():
    """Create temporary data directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def kv(data_dir):
    """Fresh key-value store in the temporary directory."""
    store = KvStore(data_dir, wal_mode=False)
    yield store
    store.close()
