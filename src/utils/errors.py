"""Custom exception hierarchy for the book-club data layer.

All data-layer exceptions inherit from :class:`DataLayerError`, which
carries an optional ``provider_name`` so log lines can identify which
backend (e.g. "sqlite_kv", "memory_remote", "firestore") caused the
failure.

    DataLayerError  (base -- catch-all for any data-layer error)
    +-- StorageError             (durable key-value store I/O)
    +-- CacheSerializationError  (cache entry encode/decode)
    +-- SubscriptionError        (live listener setup)
    +-- RemoteStoreError         (remote document store query/subscribe)
    +-- ConfigurationError       (startup / invalid settings)

The cache service swallows ``StorageError`` and ``CacheSerializationError``
(they degrade to a cache miss); everything else reaches the caller.
"""


class DataLayerError(Exception):
    """Base exception for all data-layer errors.

    The ``__str__`` method prefixes the provider name in brackets for
    structured log output, e.g. ``[sqlite_kv] database is locked``.
    """

    def __init__(
        self,
        message: str = "An unexpected data-layer error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Cache-layer errors (never surfaced above the cache service)
# ---------------------------------------------------------------------------

class StorageError(DataLayerError):
    """Raised by a durable key-value store when a read or write fails."""

    def __init__(
        self,
        message: str = "Durable storage operation failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class CacheSerializationError(DataLayerError):
    """Raised when a cache entry cannot be encoded to or decoded from JSON."""

    def __init__(
        self,
        message: str = "Cache entry serialization failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Remote backend errors
# ---------------------------------------------------------------------------

class SubscriptionError(DataLayerError):
    """Raised when establishing a live remote subscription fails."""

    def __init__(
        self,
        message: str = "Failed to establish live subscription",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class RemoteStoreError(DataLayerError):
    """Raised by remote document store adapters on query or subscribe failure."""

    def __init__(
        self,
        message: str = "Remote document store request failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Startup errors
# ---------------------------------------------------------------------------

class ConfigurationError(DataLayerError):
    """Raised when configuration is invalid or missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
