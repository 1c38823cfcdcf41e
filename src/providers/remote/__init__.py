"""Remote document store adapters.

MemoryRemoteStore implements IRemoteStore (src/interfaces/remote_store.py)
entirely in-process.  The production backend client lives in the mobile
app; anything implementing the same two methods can be injected instead.
"""

from src.providers.remote.memory_remote_store import MemoryRemoteStore

__all__ = ["MemoryRemoteStore"]
