"""Abstract base class for the application-facing cache.

Defines the contract the rest of the app codes against: read-through
``get_or_fetch`` plus explicit get/set/remove/clear.  The two-tier
:class:`~src.services.cache_service.CacheService` is the production
implementation; tests and tools may swap in anything honouring the same
contract.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterable
from typing import Any, TypeVar

_T = TypeVar("_T")


class ICacheProvider(ABC):
    """Contract for key-value cache services.

    All operations are async because the durable tier does I/O.  None of
    ``get``/``set``/``remove``/``clear`` raise for storage failures.
    """

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Retrieve the value stored under *key*.

        Returns
        -------
        Any or None
            The cached value if present and not expired; ``None`` otherwise.
        """

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_minutes: float | None = None) -> None:
        """Store *value* under *key* for *ttl_minutes*.

        Parameters
        ----------
        key:
            The cache key.
        value:
            A JSON-serialisable value.
        ttl_minutes:
            Time-to-live in minutes.  ``None`` means the provider default.
        """

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove the entry stored under *key*.  No-op if absent."""

    async def remove_many(self, keys: Iterable[str]) -> None:
        """Remove every key in *keys*."""
        for key in keys:
            await self.remove(key)

    @abstractmethod
    async def clear(self) -> None:
        """Remove every entry owned by this cache."""

    @abstractmethod
    async def get_or_fetch(
        self,
        key: str,
        loader: Callable[[], Awaitable[_T]],
        ttl_minutes: float | None = None,
    ) -> _T:
        """Return the cached value for *key*, loading and caching it on a miss.

        Parameters
        ----------
        key:
            The cache key.
        loader:
            Zero-argument coroutine function producing a fresh value.  Never
            called on a hit.  If it raises, the exception propagates and
            nothing is cached.
        ttl_minutes:
            Time-to-live for a freshly loaded value.
        """
