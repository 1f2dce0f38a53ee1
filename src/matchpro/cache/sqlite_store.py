# src/matchpro/cache/sqlite_store.py — v1
"""SQLite-based object store (CACHE_BACKEND=sqlite).

Uses stdlib sqlite3 — no external dependency. One row per key, upserted.
Statements run in worker threads over one shared connection, serialized
by a lock.
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
import threading
from pathlib import Path
from typing import Any, Callable

from matchpro.cache.base_cache_store import JSON_CONTENT_TYPE, BaseObjectStore
from matchpro.core.errors import StoreUnavailable

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS objects (
    key TEXT PRIMARY KEY,
    body BLOB NOT NULL,
    content_type TEXT NOT NULL,
    updated_at TEXT DEFAULT CURRENT_TIMESTAMP
);
"""

_UPSERT = """INSERT INTO objects (key, body, content_type, updated_at)
   VALUES (?, ?, ?, CURRENT_TIMESTAMP)
   ON CONFLICT(key) DO UPDATE SET
       body = excluded.body,
       content_type = excluded.content_type,
       updated_at = excluded.updated_at"""


class SqliteObjectStore(BaseObjectStore):
    """SQLite-backed object store for single-host deployments."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)
        self._lock = threading.Lock()

    @property
    def backend_name(self) -> str:
        return "sqlite"

    async def get(self, key: str) -> bytes | None:
        row = await self._run(
            "read", self._fetch_one, "SELECT body FROM objects WHERE key = ?", (key,), key=key
        )
        if row is None:
            return None
        return bytes(row[0])

    async def put(
        self, key: str, body: bytes, content_type: str = JSON_CONTENT_TYPE
    ) -> None:
        await self._run(
            "write", self._write, _UPSERT, (key, sqlite3.Binary(body), content_type), key=key
        )

    async def delete(self, key: str) -> None:
        await self._run(
            "delete", self._write, "DELETE FROM objects WHERE key = ?", (key,), key=key
        )

    async def list_keys(self, prefix: str = "") -> list[str]:
        rows = await self._run(
            "list",
            self._fetch_all,
            "SELECT key FROM objects WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        )
        return [row[0] for row in rows]

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    async def _run(
        self, action: str, fn: Callable[..., Any], *args: Any, key: str | None = None
    ) -> Any:
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"SQLite {action} failed: {e}", key=key) from e

    def _fetch_one(self, sql: str, params: tuple) -> Any:
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    def _fetch_all(self, sql: str, params: tuple) -> list[Any]:
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def _write(self, sql: str, params: tuple) -> None:
        with self._lock:
            self._conn.execute(sql, params)
            self._conn.commit()
