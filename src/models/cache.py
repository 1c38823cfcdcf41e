"""Cache entry model shared by the memory and durable cache tiers.

A :class:`CacheEntry` is immutable: re-caching a key builds a new entry
rather than touching the old one.  Times are kept in epoch milliseconds so
the persisted JSON (``{"data": ..., "timestamp": ..., "ttl": ...}``) stays
readable by the mobile client that shares the same storage layout.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_MS_PER_MINUTE = 60 * 1000


class CacheEntry(BaseModel):
    """A cached payload plus the time it was stored and how long it lives."""

    model_config = ConfigDict(frozen=True)

    # Opaque payload; must survive a JSON round trip for the durable tier.
    data: Any = None
    # Creation time, epoch milliseconds.
    timestamp: int
    # Validity window in milliseconds, measured from ``timestamp``.
    ttl: int = Field(ge=0)

    @classmethod
    def create(cls, data: Any, ttl_minutes: float, now_ms: int) -> CacheEntry:
        """Build an entry stamped at *now_ms* living for *ttl_minutes*."""
        return cls(data=data, timestamp=now_ms, ttl=int(ttl_minutes * _MS_PER_MINUTE))

    @property
    def expires_at(self) -> int:
        """First instant (epoch ms) at which the entry is no longer valid."""
        return self.timestamp + self.ttl

    def is_valid(self, now_ms: int) -> bool:
        """Return ``True`` while ``now - timestamp < ttl``."""
        return (now_ms - self.timestamp) < self.ttl
