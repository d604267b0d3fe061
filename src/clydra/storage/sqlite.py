"""SQLite key/value store backend.

Provides persistent local storage in a single database file.
Uses aiosqlite for async access.
"""

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import aiosqlite

from ..errors import VersionConflictError
from .base import KeyValueStore, StoredValue


class SQLiteKeyValueStore(KeyValueStore):
    """SQLite-backed key/value store.

    Survives process restarts, which is what crash recovery relies on.
    Several processes may open the same file; the version column keeps
    their writes from overwriting each other unnoticed.
    """

    def __init__(self, path: str | Path = "~/.clydra/local.db"):
        self._db_path = Path(path).expanduser()
        self._connection: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database file and create the schema."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._connection = await aiosqlite.connect(self._db_path)
        await self._connection.execute("""
            CREATE TABLE IF NOT EXISTS entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                version INTEGER NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        await self._connection.commit()

    async def disconnect(self) -> None:
        """Close database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("SQLite store is not connected; call connect() first")
        return self._connection

    async def _current_version(self, key: str) -> int:
        connection = self._require_connection()
        async with connection.execute(
            "SELECT version FROM entries WHERE key = ?",
            (key,)
        ) as cursor:
            row = await cursor.fetchone()
        return row[0] if row else 0

    async def get(self, key: str) -> StoredValue | None:
        connection = self._require_connection()
        async with connection.execute(
            "SELECT value, version FROM entries WHERE key = ?",
            (key,)
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None
        value_json, version = row
        return StoredValue(json.loads(value_json), version)

    async def set(
        self,
        key: str,
        value: Any,
        expected_version: int | None = None
    ) -> int:
        connection = self._require_connection()
        async with self._write_lock:
            actual = await self._current_version(key)
            if expected_version is not None and expected_version != actual:
                raise VersionConflictError(key, expected_version, actual or None)

            version = actual + 1
            await connection.execute("""
                INSERT INTO entries (key, value, version, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    version = excluded.version,
                    updated_at = excluded.updated_at
            """, (key, json.dumps(value), version, datetime.now(timezone.utc).isoformat()))
            await connection.commit()
        return version

    async def delete(self, key: str, expected_version: int | None = None) -> bool:
        connection = self._require_connection()
        async with self._write_lock:
            actual = await self._current_version(key)
            if expected_version is not None and expected_version != actual:
                raise VersionConflictError(key, expected_version, actual or None)
            if actual == 0:
                return False

            await connection.execute("DELETE FROM entries WHERE key = ?", (key,))
            await connection.commit()
        return True

    async def keys(self, prefix: str = "") -> list[str]:
        connection = self._require_connection()
        # substr comparison avoids LIKE wildcards inside the prefix
        async with connection.execute(
            "SELECT key FROM entries WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix)
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    @property
    def backend_type(self) -> str:
        return "sqlite"

    @property
    def db_path(self) -> Path:
        return self._db_path
