"""Public interface definitions for the data layer's collaborators.

Every external service is accessed through the abstract base classes in
this package.  Concrete adapters implement them and are injected by
``src/main.py``, so tests can swap in fakes without touching business
logic.

CONCRETE PROVIDER MAP:
    Interface          →  Concrete implementations
    ─────────────────────────────────────────────────────────────────────
    IKeyValueStore     →  SQLiteKeyValueStore, MemoryKeyValueStore
                          (src/providers/storage/)
    IRemoteStore       →  MemoryRemoteStore (src/providers/remote/);
                          the production backend client is supplied
                          by the host app
    ICacheProvider     →  CacheService (src/services/cache_service.py)
"""

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.kv_store import IKeyValueStore
from src.interfaces.remote_store import IRemoteStore, Unsubscribe

__all__ = [
    "ICacheProvider",
    "IKeyValueStore",
    "IRemoteStore",
    "Unsubscribe",
]
