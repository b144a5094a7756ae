"""
Embedded key-value store for AppData.

This module manages the single SQLite database that holds every record
of every registered entity type. It offers the byte-level capability the
persistence adapters build on:
- get / put / delete / exists by (store_name, key)
- Bulk export / import of one store name
- Explicit flush (WAL checkpoint)

Invariants:
    - One SQLite file per process (one handle, initialized once)
    - One logical table per entity type, grouped by store_name
    - Keys are opaque bytes; values are opaque bytes
    - put/delete are durable when they return (autocommit, synchronous=FULL)
    - import_all touches only rows of its own store_name, in one transaction

How to change safely:
    - Never change the records table layout without a rebuild path
    - Keep every write in autocommit or an explicit transaction
    - Do not share connections across threads

Table schema:
    records:
        - store_name TEXT
        - key BLOB
        - value BLOB
        - updated_at INTEGER (Unix ms)
        - PRIMARY KEY (store_name, key)
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import time
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from ..errors import AlreadyInitializedError, StoreError

logger = logging.getLogger(__name__)

# Global store instance
_global_store: KvStore | None = None
_store_lock = threading.Lock()


class KvStore:
    """SQLite-backed durable key-value store.

    Thread safety:
        Each operation opens its own connection.
        SQLite handles concurrent access via WAL mode.

    Example:
        >>> store = KvStore("/var/lib/appdata")
        >>> store.put("UserProfile", b"\\x00\\x00\\x00\\x01", b'{"id":1}')
        >>> store.get("UserProfile", b"\\x00\\x00\\x00\\x01")
        b'{"id":1}'
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str | Path,
        filename: str = "appdata.db",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Open (and create if needed) the store.

        Args:
            data_dir: Directory for the SQLite database file
            filename: Database file name inside data_dir
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout

        Raises:
            StoreError: If the database cannot be created
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / filename
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._closed = False

        with self._get_connection(create=True) as conn:
            self._create_schema(conn)
        logger.info(f"Opened key-value store: {self.db_path}")

    @contextmanager
    def _get_connection(self, create: bool = False) -> Iterator[sqlite3.Connection]:
        """Get a database connection.

        Args:
            create: Whether to create the database file if missing

        Yields:
            SQLite connection

        Raises:
            StoreError: If the store is closed or SQLite fails
        """
        if self._closed:
            raise StoreError(f"Key-value store is closed: {self.db_path}")
        if not create and not self.db_path.exists():
            raise StoreError(f"Key-value store not found: {self.db_path}")

        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except (OSError, sqlite3.Error) as e:
            raise StoreError(f"Failed to open key-value store {self.db_path}: {e}") from e

        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            # A committed write must survive a crash right after it returns.
            conn.execute("PRAGMA synchronous = FULL")
            yield conn
        except sqlite3.Error as e:
            raise StoreError(f"Key-value store operation failed: {e}") from e
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS records (
                store_name TEXT NOT NULL,
                key BLOB NOT NULL,
                value BLOB NOT NULL,
                updated_at INTEGER NOT NULL,
                PRIMARY KEY (store_name, key)
            );

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    def get(self, store_name: str, key: bytes) -> bytes | None:
        """Read one record.

        Returns:
            Stored bytes, or None if the key is absent
        """
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT value FROM records WHERE store_name = ? AND key = ?",
                (store_name, key),
            ).fetchone()
        return bytes(row[0]) if row else None

    def put(self, store_name: str, key: bytes, value: bytes) -> None:
        """Insert or replace one record."""
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO records (store_name, key, value, updated_at)
                VALUES (?, ?, ?, ?)
                """,
                (store_name, key, value, int(time.time() * 1000)),
            )
        logger.debug("Put record", extra={"store_name": store_name, "size": len(value)})

    def delete(self, store_name: str, key: bytes) -> None:
        """Delete one record. A missing key is not an error."""
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM records WHERE store_name = ? AND key = ?",
                (store_name, key),
            )

    def exists(self, store_name: str, key: bytes) -> bool:
        """Check whether a record exists."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "SELECT 1 FROM records WHERE store_name = ? AND key = ?",
                (store_name, key),
            )
            return cursor.fetchone() is not None

    def keys(self, store_name: str) -> list[bytes]:
        """List every key of a store name in byte order."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key FROM records WHERE store_name = ? ORDER BY key",
                (store_name,),
            ).fetchall()
        return [bytes(row[0]) for row in rows]

    def count(self, store_name: str) -> int:
        """Count records of a store name."""
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM records WHERE store_name = ?",
                (store_name,),
            ).fetchone()
        return int(row[0])

    def export_all(self, store_name: str) -> list[tuple[bytes, bytes]]:
        """Read every (key, value) pair of a store name, ordered by key."""
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT key, value FROM records WHERE store_name = ? ORDER BY key",
                (store_name,),
            ).fetchall()
        return [(bytes(k), bytes(v)) for k, v in rows]

    def import_all(self, store_name: str, items: Iterable[tuple[bytes, bytes]]) -> int:
        """Write many records of one store name atomically.

        Existing keys are overwritten, other keys are kept. Later items
        win over earlier items with the same key.

        Args:
            store_name: Target store name
            items: (key, value) pairs

        Returns:
            Number of items written
        """
        now = int(time.time() * 1000)
        written = 0
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                for key, value in items:
                    conn.execute(
                        """
                        INSERT OR REPLACE INTO records (store_name, key, value, updated_at)
                        VALUES (?, ?, ?, ?)
                        """,
                        (store_name, key, value, now),
                    )
                    written += 1
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.info(f"Imported {written} records into {store_name}")
        return written

    def flush(self) -> None:
        """Checkpoint the WAL into the main database file."""
        if not self.wal_mode:
            return
        with self._get_connection() as conn:
            conn.execute("PRAGMA wal_checkpoint(FULL)")

    def close(self) -> None:
        """Close the store. Later operations raise StoreError."""
        if self._closed:
            return
        self.flush()
        self._closed = True
        logger.info(f"Closed key-value store: {self.db_path}")

    @property
    def closed(self) -> bool:
        """Whether close() has been called."""
        return self._closed


def init_store(
    data_dir: str | Path,
    filename: str = "appdata.db",
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> KvStore:
    """Open the process-wide key-value store.

    Returns:
        The new global KvStore

    Raises:
        AlreadyInitializedError: If the store was already initialized
        StoreError: If the database cannot be opened
    """
    global _global_store
    with _store_lock:
        if _global_store is not None:
            raise AlreadyInitializedError(
                f"Key-value store has already been initialized: {_global_store.db_path}"
            )
        _global_store = KvStore(
            data_dir,
            filename=filename,
            wal_mode=wal_mode,
            busy_timeout_ms=busy_timeout_ms,
        )
        return _global_store


def get_store() -> KvStore:
    """Get the process-wide key-value store.

    Raises:
        StoreError: If init_store() has not been called
    """
    store = _global_store
    if store is None:
        raise StoreError("Key-value store not initialized")
    return store


def reset_store() -> None:
    """Close and forget the global store (for testing only).

    Warning: This is intended for test cleanup only.
    Never use in production code.
    """
    global _global_store
    with _store_lock:
        if _global_store is not None:
            _global_store.close()
        _global_store = None
