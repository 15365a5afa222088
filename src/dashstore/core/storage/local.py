"""
Local cache: the synchronous, always-available fallback of record.

Values are JSON documents stored under the keys from
:mod:`dashstore.core.storage.keys`. Two implementations are provided: a
SQLite file cache used by the CLI and an in-memory cache for tests and
embedding hosts that bring their own persistence.

Usage:
    cache = SqliteLocalCache(Path(".dashstore/cache.db"))
    cache.set("appSettings", {"autoSave": True})
    cache.get("appSettings")
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from dashstore.core.errors import LocalCommitError

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS entries (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""


@runtime_checkable
class LocalCache(Protocol):
    """
    Protocol for local cache implementations.

    Reads never raise: a missing or unreadable entry is reported as None.
    Writes raise LocalCommitError so the caller can leave the aggregate
    ``unsaved`` and retry on the next debounce.
    """

    def get(self, key: str) -> Any | None:
        """Return the decoded value stored under ``key``, or None."""
        ...

    def set(self, key: str, value: Any) -> None:
        """
        Store a JSON-serializable value.

        Raises:
            LocalCommitError: If the value cannot be serialized or stored
        """
        ...

    def delete(self, key: str) -> None:
        ...

    def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with ``prefix``, sorted."""
        ...


def _encode(key: str, value: Any) -> str:
    try:
        return json.dumps(value, sort_keys=True)
    except (TypeError, ValueError) as e:
        raise LocalCommitError(f"Value for '{key}' is not serializable: {e}", key=key) from e


def _decode(key: str, text: str) -> Any | None:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("Ignoring corrupt local cache entry %s: %s", key, e)
        return None


class MemoryLocalCache:
    """In-process cache. Values are stored encoded, so reads return copies."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        text = self._data.get(key)
        return None if text is None else _decode(key, text)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = _encode(key, value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


class SqliteLocalCache:
    """
    SQLite-backed cache file.

    The connection is opened lazily, in WAL mode, and each write is
    committed immediately.

    Args:
        db_path: Path of the cache database; parent directories are created
    """

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self._conn: sqlite3.Connection | None = None

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path))
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(SCHEMA)
            conn.commit()
            self._conn = conn
        return self._conn

    def get(self, key: str) -> Any | None:
        try:
            row = self._connection().execute(
                "SELECT value FROM entries WHERE key = ?", (key,)
            ).fetchone()
        except sqlite3.Error as e:
            logger.warning("Failed to read '%s' from local cache: %s", key, e)
            return None
        return None if row is None else _decode(key, row[0])

    def set(self, key: str, value: Any) -> None:
        text = _encode(key, value)
        try:
            conn = self._connection()
            conn.execute(
                """
                INSERT INTO entries (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (key, text),
            )
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise LocalCommitError(f"Failed to save '{key}' to local cache: {e}", key=key) from e
        logger.debug("Stored %s in local cache (%d bytes)", key, len(text))

    def delete(self, key: str) -> None:
        try:
            conn = self._connection()
            conn.execute("DELETE FROM entries WHERE key = ?", (key,))
            conn.commit()
        except (sqlite3.Error, OSError) as e:
            raise LocalCommitError(f"Failed to delete '{key}' from local cache: {e}", key=key) from e

    def keys(self, prefix: str = "") -> list[str]:
        rows = self._connection().execute(
            "SELECT key FROM entries WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        return [row[0] for row in rows]

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None


__all__ = ["LocalCache", "MemoryLocalCache", "SqliteLocalCache"]
