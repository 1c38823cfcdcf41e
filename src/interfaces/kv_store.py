"""Abstract base class for durable key-value stores.

The durable tier of the cache persists JSON-encoded entries as plain
strings.  On the device this is platform storage; here it is SQLite by
default, or a dict for tests.  Implementations raise
:class:`~src.utils.errors.StorageError` on I/O failure and never retry;
the cache service decides what a failure means.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable


class IKeyValueStore(ABC):
    """Contract for string-keyed, string-valued persistent storage."""

    @abstractmethod
    async def get(self, key: str) -> str | None:
        """Return the value stored under *key*, or ``None`` if absent."""

    @abstractmethod
    async def set(self, key: str, value: str) -> None:
        """Store *value* under *key*, replacing any existing value."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Delete *key*.  No-op if the key does not exist."""

    @abstractmethod
    async def list_keys(self) -> list[str]:
        """Return every key currently stored."""

    async def remove_many(self, keys: Iterable[str]) -> None:
        """Delete every key in *keys*.

        The default removes keys one at a time; backends with a bulk delete
        should override it.
        """
        for key in keys:
            await self.remove(key)

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier used in logs and error messages."""
