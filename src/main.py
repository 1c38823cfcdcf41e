"""Data-layer assembly.

Builds the cache service, listener registry and the remote adapters from
``Settings`` + ``config/config.yaml`` and hands them out as one
:class:`DataLayer`.  Nothing here is a module-level singleton: the host
app (or a test) builds one DataLayer and injects its parts where needed.

Typical use::

    async with data_layer_lifespan(remote=firestore_adapter) as layer:
        events = await layer.queries.get_events()
        handle = layer.live.watch_friend_requests(uid, on_requests)
        ...
        handle()
"""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

import structlog
from pydantic import ValidationError

from src.config.loader import load_config
from src.config.settings import Settings
from src.interfaces.kv_store import IKeyValueStore
from src.interfaces.remote_store import IRemoteStore
from src.providers.remote.memory_remote_store import MemoryRemoteStore
from src.providers.storage.memory_kv_store import MemoryKeyValueStore
from src.providers.storage.sqlite_kv_store import SQLiteKeyValueStore
from src.services.cache_service import CacheService
from src.services.listener_registry import ListenerRegistry
from src.services.live_queries import LiveQueryService
from src.services.query_cache import CachedQueryService
from src.utils.errors import ConfigurationError
from src.utils.logging import configure_logging, get_logger
from src.utils.timers import TimerFactory, start_thread_timer

logger: structlog.BoundLogger = get_logger(__name__)


@dataclass
class DataLayer:
    """Everything the app needs from the data layer, already wired."""

    cache: CacheService
    registry: ListenerRegistry
    queries: CachedQueryService
    live: LiveQueryService
    config: dict[str, Any] = field(default_factory=dict)

    async def close(self) -> None:
        """Stop the sweep and tear down every live subscription."""
        await self.cache.stop_sweeper()
        self.registry.shutdown()


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------


def _load_settings(settings: Settings | None) -> Settings:
    if settings is not None:
        return settings
    try:
        return Settings()
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid data-layer settings: {exc}") from exc


def _build_store(config: dict[str, Any]) -> IKeyValueStore:
    """SQLite when persistence is on, otherwise a throwaway dict."""
    cache_cfg = config["cache"]
    if cache_cfg["persistent"]:
        return SQLiteKeyValueStore(cache_cfg["db_path"])
    logger.info("cache_persistence_disabled")
    return MemoryKeyValueStore()


def build_data_layer(
    settings: Settings | None = None,
    remote: IRemoteStore | None = None,
    store: IKeyValueStore | None = None,
    clock: Callable[[], float] = time.time,
    timer_factory: TimerFactory = start_thread_timer,
) -> DataLayer:
    """Assemble a :class:`DataLayer`.

    Parameters
    ----------
    settings:
        Explicit settings; read from the environment when omitted.
    remote:
        Remote document store client.  Defaults to an empty
        :class:`MemoryRemoteStore` (local development).
    store:
        Durable tier override; otherwise chosen from settings.
    clock, timer_factory:
        Time sources, injected by tests.

    Raises
    ------
    ConfigurationError
        If settings or config/config.yaml are invalid.
    """
    settings = _load_settings(settings)
    config = load_config(settings=settings)
    cache_cfg = config["cache"]
    listener_cfg = config["listeners"]

    if remote is None:
        logger.warning("remote_store_defaulted", provider="memory_remote")
        remote = MemoryRemoteStore()

    cache = CacheService(
        store or _build_store(config),
        namespace_prefix=cache_cfg["namespace_prefix"],
        default_ttl_minutes=cache_cfg["default_ttl_minutes"],
        memory_max_entries=cache_cfg["memory_max_entries"],
        sweep_interval_seconds=cache_cfg["sweep_interval_seconds"],
        clock=clock,
    )
    registry = ListenerRegistry(
        idle_timeout=listener_cfg["idle_timeout_seconds"],
        timer_factory=timer_factory,
        replay_latest=listener_cfg["replay_latest"],
    )

    logger.info(
        "data_layer_built",
        storage=cache.get_stats()["storage_provider"],
        remote=remote.get_provider_name(),
        idle_timeout_seconds=listener_cfg["idle_timeout_seconds"],
    )
    return DataLayer(
        cache=cache,
        registry=registry,
        queries=CachedQueryService(cache, remote, cache_cfg.get("ttl_minutes")),
        live=LiveQueryService(registry, remote),
        config=config,
    )


@asynccontextmanager
async def data_layer_lifespan(
    settings: Settings | None = None,
    remote: IRemoteStore | None = None,
    **overrides: Any,
) -> AsyncIterator[DataLayer]:
    """Configure logging, build the data layer and run its background sweep.

    Everything is torn down on exit, including live subscriptions that are
    still inside their idle grace period.
    """
    settings = _load_settings(settings)
    config = load_config(settings=settings)
    configure_logging(
        config["logging"]["level"], json_output=config["app"]["env"] == "production"
    )
    layer = build_data_layer(settings, remote, **overrides)
    layer.cache.start_sweeper()
    try:
        yield layer
    finally:
        await layer.close()
        logger.info("data_layer_closed")
