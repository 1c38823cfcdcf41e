"""Durable key-value store providers (the persisted tier of the cache).

Two implementations of IKeyValueStore (src/interfaces/kv_store.py):
    - SQLiteKeyValueStore - aiosqlite, one table, survives restarts
    - MemoryKeyValueStore - plain dict, for tests and ephemeral sessions

main.py picks SQLite unless ``CACHE_PERSISTENT`` is turned off.
"""

from src.providers.storage.memory_kv_store import MemoryKeyValueStore
from src.providers.storage.sqlite_kv_store import SQLiteKeyValueStore

__all__ = ["MemoryKeyValueStore", "SQLiteKeyValueStore"]
