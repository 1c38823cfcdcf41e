"""Two-tier TTL cache sitting between the app and the remote backend.

# ─── HOW THE CACHE WORKS ───────────────────────────────────────────────
#
#   caller ──get_or_fetch(key, loader, ttl)──→ CacheService
#                                               │
#                  1. memory tier (TLRUCache) ──┤ hit → return
#                  2. durable tier (IKeyValueStore, JSON) ──┤ hit → promote
#                                               │            to memory, return
#                  3. await loader()  ──────────┘ store in both tiers, return
#
# - Entries carry their own timestamp + ttl (CacheEntry).  An entry is
#   valid iff now - timestamp < ttl; expired entries are dropped on read.
# - The durable tier is best effort.  Storage and (de)serialisation
#   failures are logged and behave like a miss; only a failing loader
#   reaches the caller.
# - get_or_fetch does NOT coalesce concurrent cold calls: two callers
#   missing the same key both run their loader and the last write wins.
# - A periodic sweep evicts expired memory entries that nobody reads.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import threading
import time
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

import structlog
from cachetools import TLRUCache
from pydantic import ValidationError

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.kv_store import IKeyValueStore
from src.models.cache import CacheEntry
from src.utils.errors import CacheSerializationError, StorageError
from src.utils.logging import get_logger
from src.utils.timers import PeriodicTask

_T = TypeVar("_T")

DEFAULT_NAMESPACE_PREFIX = "scbc_cache_"
DEFAULT_TTL_MINUTES = 5.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 5 * 60.0


class CacheService(ICacheProvider):
    """Memory + durable read-through/write-through cache.

    Parameters
    ----------
    store:
        Durable tier.  Keys are written as ``namespace_prefix + key``.
    namespace_prefix:
        Prefix marking durable keys owned by this cache; :meth:`clear`
        only deletes keys carrying it.
    default_ttl_minutes:
        TTL used when a caller passes ``None``.
    memory_max_entries:
        Upper bound for the memory tier.  Past it the least recently used
        entry leaves memory (it stays in the durable tier).
    sweep_interval_seconds:
        Period of the background memory sweep started by
        :meth:`start_sweeper`.
    clock:
        Wall-clock source in seconds.  Injected by tests.
    """

    def __init__(
        self,
        store: IKeyValueStore,
        namespace_prefix: str = DEFAULT_NAMESPACE_PREFIX,
        default_ttl_minutes: float = DEFAULT_TTL_MINUTES,
        memory_max_entries: int = 1000,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not namespace_prefix:
            msg = "namespace_prefix must be non-empty"
            raise ValueError(msg)
        self._store = store
        self._prefix = namespace_prefix
        self._default_ttl_minutes = default_ttl_minutes
        self._clock = clock
        self._lock = threading.RLock()
        # Bumped by every write so a durable read can tell it raced one.
        self._writes = 0
        self._memory: TLRUCache[str, CacheEntry] = TLRUCache(
            maxsize=memory_max_entries,
            ttu=lambda _key, entry, _now: entry.expires_at,
            timer=self._now_ms,
        )
        self._sweeper = PeriodicTask("cache_sweep", sweep_interval_seconds, self.cleanup_memory_cache)
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # ICacheProvider implementation
    # ------------------------------------------------------------------

    async def get(self, key: str) -> Any | None:
        """Return the cached data for *key*, or ``None`` on a miss."""
        entry = await self._lookup(key)
        return None if entry is None else entry.data

    async def set(self, key: str, value: Any, ttl_minutes: float | None = None) -> None:
        """Cache *value* in memory, then persist it to the durable tier."""
        ttl = self._resolve_ttl(ttl_minutes)
        entry = CacheEntry.create(value, ttl, self._now_ms())

        with self._lock:
            self._writes += 1
            # TLRUCache silently ignores already-expired inserts, so drop the
            # previous entry first or it would outlive its replacement.
            self._memory.pop(key, None)
            self._memory[key] = entry

        try:
            payload = self._encode(entry)
        except CacheSerializationError as exc:
            self._logger.error("cache_serialize_error", key=key, error=str(exc))
            return

        try:
            await self._store.set(self._storage_key(key), payload)
        except StorageError as exc:
            self._logger.error("cache_set_error", key=key, error=str(exc))
            return

        self._logger.debug("cache_set", key=key, ttl_minutes=ttl)

    async def remove(self, key: str) -> None:
        """Delete *key* from both tiers.  Absent keys are a no-op."""
        with self._lock:
            self._writes += 1
            self._memory.pop(key, None)
        try:
            await self._store.remove(self._storage_key(key))
        except StorageError as exc:
            self._logger.error("cache_remove_error", key=key, error=str(exc))
            return
        self._logger.debug("cache_removed", key=key)

    async def remove_many(self, keys: Iterable[str]) -> None:
        """Delete several keys from both tiers in one durable round trip."""
        keys = list(keys)
        with self._lock:
            self._writes += 1
            for key in keys:
                self._memory.pop(key, None)
        try:
            await self._store.remove_many(self._storage_key(k) for k in keys)
        except StorageError as exc:
            self._logger.error("cache_remove_error", keys=keys, error=str(exc))
            return
        self._logger.debug("cache_removed", keys=keys)

    async def clear(self) -> None:
        """Empty memory and delete every namespaced durable key."""
        with self._lock:
            self._writes += 1
            self._memory.clear()
        try:
            owned = [k for k in await self._store.list_keys() if k.startswith(self._prefix)]
            await self._store.remove_many(owned)
        except StorageError as exc:
            self._logger.error("cache_clear_error", error=str(exc))
            return
        self._logger.info("cache_cleared", removed_keys=len(owned))

    async def get_or_fetch(
        self,
        key: str,
        loader: Callable[[], Awaitable[_T]],
        ttl_minutes: float | None = None,
    ) -> _T:
        """Return the cached value for *key*, or load, cache and return it.

        A cached ``None`` counts as a hit.  Loader exceptions propagate
        unchanged and leave the cache untouched.
        """
        entry = await self._lookup(key)
        if entry is not None:
            return entry.data

        self._logger.debug("cache_fetch", key=key)
        try:
            fresh = await loader()
        except Exception as exc:
            self._logger.warning("cache_fetch_failed", key=key, error=str(exc))
            raise

        await self.set(key, fresh, ttl_minutes)
        return fresh

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def cleanup_memory_cache(self) -> int:
        """Evict every expired memory entry.  Returns how many were removed."""
        with self._lock:
            expired = self._memory.expire()
        cleaned = len(expired)
        if cleaned:
            self._logger.debug("memory_cache_cleanup", items_removed=cleaned)
        return cleaned

    async def purge_expired_storage(self) -> int:
        """Delete expired or unreadable entries from the durable tier.

        Returns the number of durable keys removed.  Storage failures are
        logged and reported as zero.
        """
        now = self._now_ms()
        stale: list[str] = []
        try:
            for storage_key in await self._store.list_keys():
                if not storage_key.startswith(self._prefix):
                    continue
                raw = await self._store.get(storage_key)
                if raw is None:
                    continue
                try:
                    entry = self._decode(raw)
                except CacheSerializationError:
                    stale.append(storage_key)
                    continue
                if not entry.is_valid(now):
                    stale.append(storage_key)
            await self._store.remove_many(stale)
        except StorageError as exc:
            self._logger.error("cache_purge_error", error=str(exc))
            return 0

        if stale:
            self._logger.info("storage_cache_purged", items_removed=len(stale))
        return len(stale)

    def start_sweeper(self) -> None:
        """Start the periodic memory sweep on the running event loop."""
        self._sweeper.start()

    async def stop_sweeper(self) -> None:
        await self._sweeper.stop()

    def get_stats(self) -> dict[str, Any]:
        """Return counters for monitoring and the CLI."""
        with self._lock:
            memory_items = len(self._memory)
        return {
            "memory_items": memory_items,
            "memory_max_items": self._memory.maxsize,
            "namespace_prefix": self._prefix,
            "storage_provider": self._store.get_provider_name(),
            "sweeper_running": self._sweeper.running,
        }

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _lookup(self, key: str) -> CacheEntry | None:
        """Memory first, then durable storage.  ``None`` means miss."""
        with self._lock:
            # Lazily drops anything past its ttl, including this key.
            self._memory.expire()
            entry = self._memory.get(key)
            writes = self._writes
        if entry is not None:
            self._logger.debug("cache_hit", key=key, tier="memory")
            return entry

        storage_key = self._storage_key(key)
        try:
            raw = await self._store.get(storage_key)
        except StorageError as exc:
            self._logger.error("cache_get_error", key=key, error=str(exc))
            return None

        if raw is not None:
            try:
                entry = self._decode(raw)
            except CacheSerializationError as exc:
                self._logger.warning("cache_entry_corrupt", key=key, error=str(exc)[:200])
                return None

            if entry.is_valid(self._now_ms()):
                with self._lock:
                    # A write during the durable read wins over what was read.
                    if self._writes == writes:
                        self._memory[key] = entry
                self._logger.debug("cache_hit", key=key, tier="storage")
                return entry

            with self._lock:
                untouched = self._writes == writes
            if untouched:
                await self.remove(key)
            self._logger.debug("cache_expired", key=key)

        self._logger.debug("cache_miss", key=key)
        return None

    def _resolve_ttl(self, ttl_minutes: float | None) -> float:
        return self._default_ttl_minutes if ttl_minutes is None else ttl_minutes

    @staticmethod
    def _encode(entry: CacheEntry) -> str:
        try:
            return entry.model_dump_json()
        except ValueError as exc:
            raise CacheSerializationError(f"Cannot encode cache entry: {exc}") from exc

    @staticmethod
    def _decode(raw: str) -> CacheEntry:
        try:
            return CacheEntry.model_validate_json(raw)
        except ValidationError as exc:
            raise CacheSerializationError(f"Cannot decode cache entry: {exc}") from exc

    def _storage_key(self, key: str) -> str:
        return self._prefix + key

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)
