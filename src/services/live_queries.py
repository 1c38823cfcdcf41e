"""Live remote queries shared through the listener registry.

Each ``watch_*`` method maps a logical resource to a listener key and a
remote query.  However many screens watch the same resource, the remote
store sees one subscription; it is cancelled only after every watcher has
let go and the registry's idle grace period has passed.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from src.interfaces.remote_store import IRemoteStore
from src.models.remote import Document, QueryDescriptor, QueryFilter
from src.services.cache_keys import ListenerKeys
from src.services.listener_registry import ListenerHandle, ListenerRegistry, ListenerSink, Teardown

EVENTS_COLLECTION = "events"
FRIEND_REQUESTS_COLLECTION = "friendRequests"
FRIENDSHIPS_COLLECTION = "friendships"
NOTIFICATIONS_COLLECTION = "notifications"

Records = list[dict[str, Any]]


def _records(docs: list[Document]) -> Records:
    return [doc.to_record() for doc in docs]


def _sorted_by_date(docs: list[Document]) -> Records:
    # The backend cannot combine the status filter with ordering on date
    # without a composite index, so ordering happens client side.
    records = _records(docs)
    records.sort(key=lambda r: (r.get("date") is None, r.get("date") or ""))
    return records


class LiveQueryService:
    """Deduplicated live queries.

    Parameters
    ----------
    registry:
        Shared listener registry.
    remote:
        Remote document store providing ``subscribe``.
    """

    def __init__(self, registry: ListenerRegistry, remote: IRemoteStore) -> None:
        self._registry = registry
        self._remote = remote

    def watch(
        self,
        key: str,
        descriptor: QueryDescriptor,
        callback: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None = None,
        transform: Callable[[list[Document]], Any] = _records,
    ) -> ListenerHandle:
        """Attach *callback* to the live query *descriptor* shared under *key*.

        *transform* turns each raw result set into the value every watcher
        receives; it runs once per update, not once per watcher.
        """

        def setup(sink: ListenerSink) -> Teardown:
            return self._remote.subscribe(
                descriptor,
                lambda docs: sink.emit(transform(docs)),
                sink.error,
            )

        return self._registry.attach(key, setup, callback, on_error)

    def watch_events(
        self,
        callback: Callable[[Records], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> ListenerHandle:
        """Approved events, soonest first."""
        descriptor = QueryDescriptor.where(EVENTS_COLLECTION, status="approved")
        return self.watch(ListenerKeys.events(), descriptor, callback, on_error, _sorted_by_date)

    def watch_friend_requests(
        self,
        user_id: str,
        callback: Callable[[Records], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> ListenerHandle:
        """Pending requests addressed to *user_id*, newest first."""
        descriptor = QueryDescriptor(
            collection=FRIEND_REQUESTS_COLLECTION,
            filters=(
                QueryFilter(field="toUserId", value=user_id),
                QueryFilter(field="status", value="pending"),
            ),
            order_by="createdAt",
            descending=True,
        )
        return self.watch(ListenerKeys.friend_requests(user_id), descriptor, callback, on_error)

    def watch_notifications(
        self,
        user_id: str,
        callback: Callable[[Records], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> ListenerHandle:
        descriptor = QueryDescriptor(
            collection=NOTIFICATIONS_COLLECTION,
            filters=(QueryFilter(field="userId", value=user_id),),
            order_by="createdAt",
            descending=True,
        )
        return self.watch(ListenerKeys.notifications(user_id), descriptor, callback, on_error)

    def watch_user_friends(
        self,
        user_id: str,
        callback: Callable[[Records], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> ListenerHandle:
        """Friends of *user_id*.

        A friendship stores the pair as ``user1``/``user2``, so two remote
        queries are needed.  Both live behind the one listener key and are
        torn down together.
        """

        def setup(sink: ListenerSink) -> Teardown:
            halves: dict[str, Records] = {"user1": [], "user2": []}

            def on_side(mine: str, other: str) -> Callable[[list[Document]], None]:
                def _update(docs: list[Document]) -> None:
                    friends = [
                        {
                            "id": doc.data.get(f"{other}Id"),
                            "displayName": doc.data.get(f"{other}Name"),
                            "profilePicture": doc.data.get(f"{other}ProfilePicture"),
                        }
                        for doc in docs
                    ]
                    # The last merge delivered always holds both newest halves.
                    with sink.lock:
                        halves[mine] = friends
                        sink.emit(halves["user1"] + halves["user2"])

                return _update

            unsubscribe_first = self._remote.subscribe(
                QueryDescriptor(
                    collection=FRIENDSHIPS_COLLECTION,
                    filters=(QueryFilter(field="user1Id", value=user_id),),
                    order_by="createdAt",
                    descending=True,
                ),
                on_side("user1", "user2"),
                sink.error,
            )
            try:
                unsubscribe_second = self._remote.subscribe(
                    QueryDescriptor(
                        collection=FRIENDSHIPS_COLLECTION,
                        filters=(QueryFilter(field="user2Id", value=user_id),),
                        order_by="createdAt",
                        descending=True,
                    ),
                    on_side("user2", "user1"),
                    sink.error,
                )
            except Exception:
                unsubscribe_first()
                raise

            def teardown() -> None:
                unsubscribe_first()
                unsubscribe_second()

            return teardown

        return self._registry.attach(ListenerKeys.user_friends(user_id), setup, callback, on_error)
