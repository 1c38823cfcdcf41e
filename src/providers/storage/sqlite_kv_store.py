"""SQLite-backed durable key-value store.

Persists the durable cache tier to a single table in ``data/cache.db``.
Uses ``aiosqlite`` for async I/O.  Each operation opens its own
connection, which keeps the store safe to share across event loops and
threads at the cost of a connect per call (entries are small JSON blobs).
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path

import aiosqlite
import structlog

from src.interfaces.kv_store import IKeyValueStore
from src.utils.errors import StorageError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_DB_PATH = Path("data/cache.db")

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS {table} (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

_UPSERT_SQL = """\
INSERT INTO {table} (key, value)
VALUES (?, ?)
ON CONFLICT(key)
DO UPDATE SET value      = excluded.value,
              updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now');
"""

_SELECT_SQL = "SELECT value FROM {table} WHERE key = ?;"

_DELETE_SQL = "DELETE FROM {table} WHERE key = ?;"

_ALL_KEYS_SQL = "SELECT key FROM {table} ORDER BY key;"


class SQLiteKeyValueStore(IKeyValueStore):
    """Durable string store in one SQLite table.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.  Parent directories are created.
    table_name:
        Table to use, so several stores can share one database file.
    """

    def __init__(self, db_path: str | Path = _DEFAULT_DB_PATH, table_name: str = "kv_store") -> None:
        if not table_name.isidentifier():
            msg = f"Invalid table name: {table_name!r}"
            raise ValueError(msg)
        self._db_path = Path(db_path)
        self._table = table_name
        self._initialized = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create the table if needed.  Called lazily by every operation."""
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_CREATE_TABLE_SQL.format(table=self._table))
                await db.commit()
        except (aiosqlite.Error, OSError) as exc:
            raise StorageError(str(exc), provider_name=self.get_provider_name()) from exc
        self._initialized = True
        logger.info("kv_store_initialized", path=str(self._db_path), table=self._table)

    # ------------------------------------------------------------------
    # IKeyValueStore implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> str | None:
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(_SELECT_SQL.format(table=self._table), (key,))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageError(str(exc), provider_name=self.get_provider_name()) from exc
        return row[0] if row else None

    async def set(self, key: str, value: str) -> None:
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_UPSERT_SQL.format(table=self._table), (key, value))
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(str(exc), provider_name=self.get_provider_name()) from exc

    async def remove(self, key: str) -> None:
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.execute(_DELETE_SQL.format(table=self._table), (key,))
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(str(exc), provider_name=self.get_provider_name()) from exc

    async def remove_many(self, keys: Iterable[str]) -> None:
        """Delete all *keys* in one transaction."""
        params = [(key,) for key in keys]
        if not params:
            return
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                await db.executemany(_DELETE_SQL.format(table=self._table), params)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageError(str(exc), provider_name=self.get_provider_name()) from exc

    async def list_keys(self) -> list[str]:
        await self._ensure_initialized()
        try:
            async with aiosqlite.connect(str(self._db_path)) as db:
                cursor = await db.execute(_ALL_KEYS_SQL.format(table=self._table))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise StorageError(str(exc), provider_name=self.get_provider_name()) from exc
        return [row[0] for row in rows]

    def get_provider_name(self) -> str:
        return f"sqlite_kv:{self._table}"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _ensure_initialized(self) -> None:
        # CREATE TABLE IF NOT EXISTS is idempotent, so a racing double
        # initialisation is harmless.
        if not self._initialized:
            await self.initialize()
