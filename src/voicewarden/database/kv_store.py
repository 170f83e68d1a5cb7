"""
Key-value storage for persisted state.

The state store only needs two operations: read one key, and write several
keys at once. :class:`SqliteKeyValueStore` provides them on top of a single
long-lived aiosqlite connection; :class:`MemoryKeyValueStore` keeps values in
a dict for tests and ephemeral runs.

Usage
-----
    store = SqliteKeyValueStore(app_config.database_path)
    await store.open()

    value = await store.get("voicewarden_ownerships_v1")
    await store.set_many({"a": {...}, "b": [...]})

    await store.close()
"""

from __future__ import annotations

import asyncio
import copy
import json
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Mapping, Protocol

import aiosqlite

from voicewarden.util.logger import get_logger

logger = get_logger("kv_store")

_PRAGMAS = [
    "PRAGMA journal_mode = WAL",
    "PRAGMA synchronous = NORMAL",
    "PRAGMA temp_store = MEMORY",
]

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL
)
"""


class KeyValueStore(Protocol):
    """Async key-value capability used by the state store."""

    async def get(self, key: str) -> Any: ...

    async def set_many(self, values: Mapping[str, Any]) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store. Values are deep-copied in and out."""

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._values: Dict[str, Any] = copy.deepcopy(dict(initial or {}))
        self.write_count = 0

    async def get(self, key: str) -> Any:
        return copy.deepcopy(self._values.get(key))

    async def set_many(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self._values[key] = copy.deepcopy(value)
        self.write_count += 1

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._values)


class SqliteKeyValueStore:
    """
    JSON-valued key-value table in a SQLite database.

    One connection is opened for the lifetime of the process. Writes go
    through :meth:`transaction`, which serialises writers and commits (or
    rolls back) atomically, so :meth:`set_many` is all-or-nothing.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self._conn: aiosqlite.Connection | None = None
        self._write_sem = asyncio.Semaphore(1)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Open the database, apply pragmas and create the table."""
        if self._conn is not None:
            logger.warning("[KV STORE] open() called but connection already exists, ignoring")
            return

        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = await aiosqlite.connect(self._path)

        for pragma in _PRAGMAS:
            await self._conn.execute(pragma)
        await self._conn.execute(_SCHEMA)
        await self._conn.commit()

        logger.info("[KV STORE] Opened key-value store at %s", self._path)

    async def close(self) -> None:
        if self._conn is None:
            return

        try:
            await self._conn.execute("PRAGMA wal_checkpoint(TRUNCATE)")
            await self._conn.commit()
        except Exception:
            logger.exception("[KV STORE] WAL checkpoint failed during close")
        finally:
            await self._conn.close()
            self._conn = None
            logger.info("[KV STORE] Connection closed")

    @property
    def connection(self) -> aiosqlite.Connection:
        """
        The raw aiosqlite connection.

        Raises:
            RuntimeError: If :meth:`open` has not been awaited yet.
        """
        if self._conn is None:
            raise RuntimeError("SqliteKeyValueStore: connection is not open. Call await store.open() first.")
        return self._conn

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        conn = self.connection

        async with self._write_sem:
            try:
                yield conn
                await conn.commit()
            except Exception:
                await conn.rollback()
                raise

    # ------------------------------------------------------------------
    # Key-value API
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any:
        """Return the decoded value stored under ``key``, or None."""
        async with self.connection.execute("SELECT value FROM kv_store WHERE key = ?", (key,)) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return json.loads(row[0])

    async def set_many(self, values: Mapping[str, Any]) -> None:
        """Write every key in ``values`` in a single transaction."""
        now = time.time()
        rows = [(key, json.dumps(value), now) for key, value in values.items()]
        async with self.transaction() as conn:
            await conn.executemany(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                rows,
            )
        logger.debug("[KV STORE] Wrote %d key(s)", len(rows))
