"""Utility modules for the data layer.

- **errors** -- Exception hierarchy rooted at DataLayerError.
- **logging** -- structlog setup: coloured console in development,
  JSON in production.
- **timers** -- Cancellable fire-once timers (listener idle teardown) and
  the asyncio periodic task behind the cache sweep.
"""

from src.utils.errors import (
    CacheSerializationError,
    ConfigurationError,
    DataLayerError,
    RemoteStoreError,
    StorageError,
    SubscriptionError,
)
from src.utils.logging import configure_logging, get_logger
from src.utils.timers import PeriodicTask, TimerFactory, TimerHandle, start_thread_timer

__all__ = [
    "CacheSerializationError",
    "ConfigurationError",
    "DataLayerError",
    "PeriodicTask",
    "RemoteStoreError",
    "StorageError",
    "SubscriptionError",
    "TimerFactory",
    "TimerHandle",
    "configure_logging",
    "get_logger",
    "start_thread_timer",
]
