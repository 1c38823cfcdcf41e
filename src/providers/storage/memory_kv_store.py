"""Dict-backed key-value store.

Nothing survives the process, which makes it the durable tier of choice
for tests and for sessions where persistence is switched off.
"""

from __future__ import annotations

from src.interfaces.kv_store import IKeyValueStore


class MemoryKeyValueStore(IKeyValueStore):
    """In-process :class:`IKeyValueStore`."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> str | None:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def list_keys(self) -> list[str]:
        return list(self._data)

    def get_provider_name(self) -> str:
        return "memory_kv"
