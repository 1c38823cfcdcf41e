"""Data-layer models: re-exports all public model classes.

    - cache.py  : CacheEntry, the TTL-bounded payload wrapper
    - remote.py : Remote document store vocabulary (queries, documents)
"""

from __future__ import annotations

from src.models.cache import CacheEntry
from src.models.remote import (
    DOCUMENT_ID_FIELD,
    Document,
    FilterOp,
    QueryDescriptor,
    QueryFilter,
)

__all__ = [
    "CacheEntry",
    "DOCUMENT_ID_FIELD",
    "Document",
    "FilterOp",
    "QueryDescriptor",
    "QueryFilter",
]
