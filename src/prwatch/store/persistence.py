"""Key/value persistence for small JSON documents.

Stores the seen-state and followed-item documents between runs. The SQLite
store opens a connection per operation; values are opaque strings (callers
serialize to JSON).
"""

import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Protocol

from prwatch.exceptions import PersistenceError

logger = logging.getLogger(__name__)


class PersistenceStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> bool: ...

    def delete(self, key: str) -> bool: ...


class SqliteKeyValueStore:
    """SQLite-backed key/value store.

    Errors are logged and reported through return values rather than
    raised; persistence is best-effort.
    """

    def __init__(self, db_path: Path) -> None:
        """Initialize the store.

        Args:
            db_path: Path to the SQLite database file

        Raises:
            PersistenceError: If the schema cannot be created
        """
        self.db_path = db_path
        try:
            self._init_db()
        except sqlite3.Error as e:
            raise PersistenceError(f"Cannot open key/value store at {db_path}: {e}") from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get a database connection with row factory."""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self._get_connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def get(self, key: str) -> str | None:
        try:
            with self._get_connection() as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"Failed to read '{key}': {e}")
            return None
        return row["value"] if row else None

    def set(self, key: str, value: str) -> bool:
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                    """,
                    (key, value, datetime.now().isoformat()),
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to write '{key}': {e}")
            return False
        return True

    def delete(self, key: str) -> bool:
        try:
            with self._get_connection() as conn:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to delete '{key}': {e}")
            return False
        return cursor.rowcount > 0

    def keys(self) -> list[str]:
        with self._get_connection() as conn:
            return [row["key"] for row in conn.execute("SELECT key FROM kv_store ORDER BY key")]


class MemoryKeyValueStore:
    """In-process store, for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self.data: dict[str, str] = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> bool:
        self.data[key] = value
        self.writes += 1
        return True

    def delete(self, key: str) -> bool:
        return self.data.pop(key, None) is not None
