"""Cached one-shot queries against the remote document store.

Every read the app makes through here goes through
:meth:`CacheService.get_or_fetch`, so the remote backend is only hit on a
cache miss.  Writes happen elsewhere; after a write the caller invokes the
matching ``invalidate_*`` helper so readers never see stale aggregates.
"""

from __future__ import annotations

from typing import Any

import structlog

from src.interfaces.cache_provider import ICacheProvider
from src.interfaces.remote_store import IRemoteStore
from src.models.remote import DOCUMENT_ID_FIELD, FilterOp, QueryDescriptor, QueryFilter
from src.services.cache_keys import CacheKeys
from src.utils.logging import get_logger

# Minutes each resource stays cached unless config/config.yaml says otherwise.
DEFAULT_TTL_MINUTES: dict[str, float] = {
    "events": 5,
    "event_details": 5,
    "user_profile": 30,
    "faqs": 60 * 24,
    "faqs_admin": 5,
    "monthly_book": 60,
    "notifications": 2,
}

EVENTS_COLLECTION = "events"
USERS_COLLECTION = "users"
FAQ_COLLECTION = "faqs"
MONTHLY_BOOKS_COLLECTION = "monthlyBooks"
NOTIFICATIONS_COLLECTION = "notifications"


def _by_id(collection: str, doc_id: str) -> QueryDescriptor:
    return QueryDescriptor(
        collection=collection,
        filters=(QueryFilter(field=DOCUMENT_ID_FIELD, value=doc_id),),
        limit=1,
    )


class CachedQueryService:
    """Read-through access to remote collections.

    Parameters
    ----------
    cache:
        The application cache.
    remote:
        The remote document store.
    ttl_minutes:
        Per-resource TTL overrides, keyed like :data:`DEFAULT_TTL_MINUTES`.
    """

    def __init__(
        self,
        cache: ICacheProvider,
        remote: IRemoteStore,
        ttl_minutes: dict[str, float] | None = None,
    ) -> None:
        self._cache = cache
        self._remote = remote
        self._ttl = {**DEFAULT_TTL_MINUTES, **(ttl_minutes or {})}
        self._logger: structlog.BoundLogger = get_logger(__name__)

    async def fetch(
        self,
        key: str,
        descriptor: QueryDescriptor,
        ttl_minutes: float | None = None,
    ) -> list[dict[str, Any]]:
        """Return the records matching *descriptor*, cached under *key*."""

        async def _load() -> list[dict[str, Any]]:
            docs = await self._remote.query(descriptor)
            self._logger.debug(
                "remote_query", key=key, collection=descriptor.collection, results=len(docs)
            )
            return [doc.to_record() for doc in docs]

        return await self._cache.get_or_fetch(key, _load, ttl_minutes)

    async def fetch_one(
        self,
        key: str,
        descriptor: QueryDescriptor,
        ttl_minutes: float | None = None,
    ) -> dict[str, Any] | None:
        """Like :meth:`fetch` but returns the first record or ``None``."""
        records = await self.fetch(key, descriptor, ttl_minutes)
        return records[0] if records else None

    # ------------------------------------------------------------------
    # Resource helpers
    # ------------------------------------------------------------------

    async def get_events(self, user_id: str | None = None) -> list[dict[str, Any]]:
        """Approved events (all, or hosted by *user_id*), soonest first."""
        filters = [QueryFilter(field="status", value="approved")]
        if user_id:
            filters.append(QueryFilter(field="createdBy", value=user_id))
        descriptor = QueryDescriptor(
            collection=EVENTS_COLLECTION, filters=tuple(filters), order_by="date"
        )
        return await self.fetch(CacheKeys.events(user_id), descriptor, self._ttl["events"])

    async def get_event_details(self, event_id: str) -> dict[str, Any] | None:
        return await self.fetch_one(
            CacheKeys.event_details(event_id),
            _by_id(EVENTS_COLLECTION, event_id),
            self._ttl["event_details"],
        )

    async def get_user_profile(self, user_id: str) -> dict[str, Any] | None:
        return await self.fetch_one(
            CacheKeys.user_profile(user_id),
            _by_id(USERS_COLLECTION, user_id),
            self._ttl["user_profile"],
        )

    async def get_published_faqs(self) -> list[dict[str, Any]]:
        descriptor = QueryDescriptor(
            collection=FAQ_COLLECTION,
            filters=(QueryFilter(field="isPublished", value=True),),
            order_by="order",
        )
        return await self.fetch(CacheKeys.faqs(), descriptor, self._ttl["faqs"])

    async def get_all_faqs(self) -> list[dict[str, Any]]:
        """Every FAQ including drafts, for the admin screen."""
        descriptor = QueryDescriptor(collection=FAQ_COLLECTION, order_by="createdAt", descending=True)
        return await self.fetch(CacheKeys.faqs_admin(), descriptor, self._ttl["faqs_admin"])

    async def get_monthly_book(self) -> dict[str, Any] | None:
        descriptor = QueryDescriptor(
            collection=MONTHLY_BOOKS_COLLECTION,
            filters=(QueryFilter(field="isCurrent", value=True),),
            limit=1,
        )
        return await self.fetch_one(CacheKeys.monthly_book(), descriptor, self._ttl["monthly_book"])

    async def get_notifications(self, user_id: str, limit: int = 50) -> list[dict[str, Any]]:
        """Newest-first notifications for *user_id*, at most *limit* of them.

        One list per user is cached and sliced per call, so callers asking
        for different limits share the entry and its invalidation.
        """
        descriptor = QueryDescriptor(
            collection=NOTIFICATIONS_COLLECTION,
            filters=(
                QueryFilter(field="userId", value=user_id),
                QueryFilter(field="isDeleted", op=FilterOp.NE, value=True),
            ),
            order_by="createdAt",
            descending=True,
        )
        records = await self.fetch(
            CacheKeys.notifications(user_id), descriptor, self._ttl["notifications"]
        )
        return records[:limit]

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------

    async def invalidate_event(self, event_id: str, user_ids: tuple[str, ...] = ()) -> None:
        """Drop the event's detail entry and every list it may appear in."""
        await self._cache.remove_many(CacheKeys.event_related(event_id, user_ids))

    async def invalidate_faqs(self) -> None:
        await self._cache.remove_many(CacheKeys.faq_related())

    async def invalidate_user_profile(self, user_id: str) -> None:
        await self._cache.remove(CacheKeys.user_profile(user_id))

    async def invalidate_notifications(self, user_id: str) -> None:
        await self._cache.remove(CacheKeys.notifications(user_id))
