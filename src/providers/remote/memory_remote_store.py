"""In-memory remote document store.

Stands in for the managed document database during local development and
tests.  Collections are dicts of ``{doc_id: fields}``; live subscriptions
receive the full matching result set once on subscribe and again after
every write to their collection, the way the real backend's snapshot
listeners behave.
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from typing import Any

import structlog

from src.interfaces.remote_store import IRemoteStore, Unsubscribe
from src.models.remote import (
    DOCUMENT_ID_FIELD,
    Document,
    FilterOp,
    QueryDescriptor,
    QueryFilter,
)
from src.utils.errors import RemoteStoreError
from src.utils.logging import get_logger

_OPS: dict[FilterOp, Callable[[Any, Any], bool]] = {
    FilterOp.EQ: lambda a, b: a == b,
    FilterOp.NE: lambda a, b: a != b,
    FilterOp.LT: lambda a, b: a is not None and a < b,
    FilterOp.LTE: lambda a, b: a is not None and a <= b,
    FilterOp.GT: lambda a, b: a is not None and a > b,
    FilterOp.GTE: lambda a, b: a is not None and a >= b,
    FilterOp.IN: lambda a, b: a in b,
    FilterOp.ARRAY_CONTAINS: lambda a, b: isinstance(a, (list, tuple)) and b in a,
}


def _matches(doc_id: str, fields: dict[str, Any], flt: QueryFilter) -> bool:
    actual = doc_id if flt.field == DOCUMENT_ID_FIELD else fields.get(flt.field)
    try:
        return _OPS[flt.op](actual, flt.value)
    except TypeError:
        # Mixed types never compare equal in the real backend either.
        return False


class _Subscription:
    __slots__ = ("descriptor", "on_update", "on_error")

    def __init__(
        self,
        descriptor: QueryDescriptor,
        on_update: Callable[[list[Document]], None],
        on_error: Callable[[Exception], None] | None,
    ) -> None:
        self.descriptor = descriptor
        self.on_update = on_update
        self.on_error = on_error


class MemoryRemoteStore(IRemoteStore):
    """Thread-safe in-process :class:`IRemoteStore`."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: dict[int, _Subscription] = {}
        self._ids = itertools.count(1)
        self._lock = threading.RLock()
        self._offline = False
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Writes (test / dev seeding)
    # ------------------------------------------------------------------

    def put(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Create or replace a document and notify live queries on *collection*."""
        with self._lock:
            self._collections.setdefault(collection, {})[doc_id] = dict(fields)
        self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document (no-op if absent) and notify live queries."""
        with self._lock:
            removed = self._collections.get(collection, {}).pop(doc_id, None)
        if removed is not None:
            self._notify(collection)

    def fail_subscriptions(self, collection: str, error: Exception) -> None:
        """Push *error* down the error channel of every live query on *collection*."""
        for sub in self._subscribers_for(collection):
            if sub.on_error is not None:
                sub.on_error(error)

    def set_offline(self, offline: bool) -> None:
        """While offline, new queries and subscriptions raise RemoteStoreError."""
        self._offline = offline

    @property
    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    # ------------------------------------------------------------------
    # IRemoteStore implementation
    # ------------------------------------------------------------------

    async def query(self, descriptor: QueryDescriptor) -> list[Document]:
        self._check_online(descriptor)
        return self._run(descriptor)

    def subscribe(
        self,
        descriptor: QueryDescriptor,
        on_update: Callable[[list[Document]], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> Unsubscribe:
        self._check_online(descriptor)
        sub_id = next(self._ids)
        with self._lock:
            self._subscriptions[sub_id] = _Subscription(descriptor, on_update, on_error)
        self._logger.debug("remote_subscribed", collection=descriptor.collection, sub_id=sub_id)

        on_update(self._run(descriptor))

        def unsubscribe() -> None:
            with self._lock:
                removed = self._subscriptions.pop(sub_id, None)
            if removed is not None:
                self._logger.debug("remote_unsubscribed", sub_id=sub_id)

        return unsubscribe

    def get_provider_name(self) -> str:
        return "memory_remote"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _run(self, descriptor: QueryDescriptor) -> list[Document]:
        with self._lock:
            docs = [
                Document(id=doc_id, data=dict(fields))
                for doc_id, fields in self._collections.get(descriptor.collection, {}).items()
                if all(_matches(doc_id, fields, f) for f in descriptor.filters)
            ]

        if descriptor.order_by:
            key = descriptor.order_by
            # Documents missing the order field go last in either direction.
            present = [d for d in docs if d.data.get(key) is not None]
            missing = [d for d in docs if d.data.get(key) is None]
            present.sort(key=lambda d: d.data[key], reverse=descriptor.descending)
            docs = present + missing
        if descriptor.limit is not None:
            docs = docs[: descriptor.limit]
        return docs

    def _check_online(self, descriptor: QueryDescriptor) -> None:
        if self._offline:
            raise RemoteStoreError(
                f"Backend unreachable (collection {descriptor.collection!r})",
                provider_name=self.get_provider_name(),
            )

    def _subscribers_for(self, collection: str) -> list[_Subscription]:
        with self._lock:
            return [s for s in self._subscriptions.values() if s.descriptor.collection == collection]

    def _notify(self, collection: str) -> None:
        for sub in self._subscribers_for(collection):
            sub.on_update(self._run(sub.descriptor))
