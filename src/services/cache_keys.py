"""Well-known cache and listener keys.

Every call site that touches the same logical resource must derive the
same key, so keys are only ever built here.  The cache namespace is flat:
there is no prefix-based invalidation, which is why the ``*_related``
helpers list every key an update can make stale.
"""

from __future__ import annotations

from collections.abc import Iterable


class CacheKeys:
    """Keys for :class:`~src.services.cache_service.CacheService` entries."""

    @staticmethod
    def events(user_id: str | None = None) -> str:
        return f"events_{user_id or 'all'}"

    @staticmethod
    def user_profile(user_id: str) -> str:
        return f"user_profile_{user_id}"

    @staticmethod
    def event_details(event_id: str) -> str:
        return f"event_details_{event_id}"

    @staticmethod
    def monthly_book() -> str:
        return "monthly_book_current"

    @staticmethod
    def notifications(user_id: str) -> str:
        return f"notifications_{user_id}"

    @staticmethod
    def faqs() -> str:
        return "faqs_published"

    @staticmethod
    def faqs_admin() -> str:
        return f"{CacheKeys.faqs()}_admin"

    @staticmethod
    def event_related(event_id: str, user_ids: Iterable[str] = ()) -> list[str]:
        """Keys made stale by a change to *event_id*.

        The event's own detail entry, the global list, and the per-user
        lists of *user_ids* (typically the host and anyone who RSVP'd).
        """
        keys = [CacheKeys.event_details(event_id), CacheKeys.events()]
        keys.extend(CacheKeys.events(uid) for uid in dict.fromkeys(user_ids) if uid)
        return keys

    @staticmethod
    def faq_related() -> list[str]:
        """Keys made stale by any FAQ create/edit/delete."""
        return [CacheKeys.faqs(), CacheKeys.faqs_admin()]


class ListenerKeys:
    """Keys for :class:`~src.services.listener_registry.ListenerRegistry` entries."""

    @staticmethod
    def events() -> str:
        return "events_approved"

    @staticmethod
    def friend_requests(user_id: str) -> str:
        return f"friend_requests_incoming_{user_id}"

    @staticmethod
    def user_friends(user_id: str) -> str:
        return f"user_friends_{user_id}"

    @staticmethod
    def notifications(user_id: str) -> str:
        return f"notifications_{user_id}"
