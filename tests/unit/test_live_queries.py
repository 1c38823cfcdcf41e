"""Unit tests for LiveQueryService on top of the registry and MemoryRemoteStore."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest

from src.models.remote import Document, QueryDescriptor
from src.providers.remote.memory_remote_store import MemoryRemoteStore
from src.services.listener_registry import ListenerRegistry
from src.services.live_queries import LiveQueryService
from src.utils.errors import RemoteStoreError
from tests.helpers import ManualTimerFactory


@pytest.fixture()
def live(registry: ListenerRegistry, remote: MemoryRemoteStore) -> LiveQueryService:
    return LiveQueryService(registry, remote)


def _ids(mock: MagicMock) -> list[list[str]]:
    return [[r["id"] for r in c.args[0]] for c in mock.call_args_list]


class TestWatchEvents:
    def test_events_sorted_by_date_with_undated_last(
        self, live: LiveQueryService, remote: MemoryRemoteStore
    ) -> None:
        remote.put("events", "late", {"date": "2025-06-01", "status": "approved"})
        remote.put("events", "undated", {"status": "approved"})
        remote.put("events", "early", {"date": "2025-01-01", "status": "approved"})
        remote.put("events", "hidden", {"date": "2024-01-01", "status": "pending"})

        cb = MagicMock()
        live.watch_events(cb)

        assert _ids(cb) == [["early", "late", "undated"]]

    def test_watchers_share_one_remote_subscription(
        self, live: LiveQueryService, remote: MemoryRemoteStore, registry: ListenerRegistry
    ) -> None:
        first, second = MagicMock(), MagicMock()
        live.watch_events(first)
        live.watch_events(second)

        assert remote.subscription_count == 1
        assert registry.ref_count("events_approved") == 2

        remote.put("events", "e1", {"date": "2025-01-01", "status": "approved"})

        assert _ids(first)[-1] == ["e1"]
        assert _ids(second) == [["e1"]]

    def test_remote_unsubscribed_only_after_grace_period(
        self,
        live: LiveQueryService,
        remote: MemoryRemoteStore,
        timers: ManualTimerFactory,
    ) -> None:
        handle_a = live.watch_events(MagicMock())
        handle_b = live.watch_events(MagicMock())

        handle_a()
        handle_b()
        assert remote.subscription_count == 1

        timers.fire_pending()
        assert remote.subscription_count == 0


class TestWatchPerUser:
    def test_friend_requests(self, live: LiveQueryService, remote: MemoryRemoteStore) -> None:
        remote.put("friendRequests", "r1", {"toUserId": "u1", "status": "pending", "createdAt": 1})
        remote.put("friendRequests", "r2", {"toUserId": "u1", "status": "accepted", "createdAt": 2})
        remote.put("friendRequests", "r3", {"toUserId": "u2", "status": "pending", "createdAt": 3})

        cb = MagicMock()
        handle = live.watch_friend_requests("u1", cb)
        remote.put("friendRequests", "r4", {"toUserId": "u1", "status": "pending", "createdAt": 4})

        assert handle.key == "friend_requests_incoming_u1"
        assert _ids(cb) == [["r1"], ["r4", "r1"]]

    def test_notifications_keyed_per_user(
        self, live: LiveQueryService, remote: MemoryRemoteStore
    ) -> None:
        live.watch_notifications("u1", MagicMock())
        live.watch_notifications("u2", MagicMock())

        assert remote.subscription_count == 2

    def test_user_friends_merges_both_sides(
        self, live: LiveQueryService, remote: MemoryRemoteStore
    ) -> None:
        remote.put(
            "friendships",
            "f1",
            {"user1Id": "u1", "user2Id": "u2", "user2Name": "Bea", "createdAt": 1},
        )
        remote.put(
            "friendships",
            "f2",
            {"user1Id": "u3", "user1Name": "Cal", "user2Id": "u1", "createdAt": 2},
        )

        cb = MagicMock()
        live.watch_user_friends("u1", cb)

        assert remote.subscription_count == 2
        assert cb.call_args.args[0] == [
            {"id": "u2", "displayName": "Bea", "profilePicture": None},
            {"id": "u3", "displayName": "Cal", "profilePicture": None},
        ]

    def test_user_friends_concurrent_halves_deliver_latest_merge(
        self, live: LiveQueryService, remote: MemoryRemoteStore, registry: ListenerRegistry
    ) -> None:
        updaters = []
        original = remote.subscribe

        def capturing_subscribe(descriptor, on_update, on_error=None):
            updaters.append(on_update)
            return original(descriptor, on_update, on_error)

        remote.subscribe = capturing_subscribe  # type: ignore[method-assign]
        cb = MagicMock()
        live.watch_user_friends("u1", cb)
        first_side, second_side = updaters

        threads = [
            threading.Thread(
                target=first_side,
                args=([Document(id="f1", data={"user1Id": "u1", "user2Id": "u2"})],),
            ),
            threading.Thread(
                target=second_side,
                args=([Document(id="f2", data={"user1Id": "u3", "user2Id": "u1"})],),
            ),
        ]
        # Hold delivery so both updates are in flight before either lands.
        with registry._lock:
            for thread in threads:
                thread.start()
            time.sleep(0.05)
        for thread in threads:
            thread.join(timeout=5)

        assert cb.call_count == 4
        assert [f["id"] for f in cb.call_args.args[0]] == ["u2", "u3"]

    def test_user_friends_single_key_tears_down_both(
        self,
        live: LiveQueryService,
        remote: MemoryRemoteStore,
        registry: ListenerRegistry,
        timers: ManualTimerFactory,
    ) -> None:
        handle = live.watch_user_friends("u1", MagicMock())
        live.watch_user_friends("u1", MagicMock())()

        assert registry.active_keys() == ["user_friends_u1"]
        assert remote.subscription_count == 2

        handle()
        timers.fire_pending()

        assert remote.subscription_count == 0


class TestGenericWatch:
    def test_custom_transform_runs_once_per_update(
        self, live: LiveQueryService, remote: MemoryRemoteStore
    ) -> None:
        transform = MagicMock(side_effect=lambda docs: len(docs))
        a, b = MagicMock(), MagicMock()

        live.watch("count_users", QueryDescriptor(collection="users"), a, transform=transform)
        live.watch("count_users", QueryDescriptor(collection="users"), b, transform=transform)
        remote.put("users", "u1", {})

        assert transform.call_count == 2
        a.assert_called_with(1)
        b.assert_called_once_with(1)

    def test_remote_errors_reach_on_error(
        self, live: LiveQueryService, remote: MemoryRemoteStore, registry: ListenerRegistry
    ) -> None:
        on_error = MagicMock()
        live.watch_events(MagicMock(), on_error=on_error)

        exc = PermissionError("denied")
        remote.fail_subscriptions("events", exc)

        on_error.assert_called_once_with(exc)
        assert registry.active_keys() == ["events_approved"]


class TestRemoteOffline:
    def test_setup_failure_surfaces_remote_error(
        self, live: LiveQueryService, remote: MemoryRemoteStore, registry: ListenerRegistry
    ) -> None:
        remote.set_offline(True)

        with pytest.raises(RemoteStoreError):
            live.watch_events(MagicMock())

        assert registry.active_keys() == []

    def test_user_friends_half_open_is_rolled_back(
        self, live: LiveQueryService, remote: MemoryRemoteStore, registry: ListenerRegistry
    ) -> None:
        original = remote.subscribe
        calls = 0

        def flaky_subscribe(*args, **kwargs):
            nonlocal calls
            calls += 1
            if calls == 2:
                remote.set_offline(True)
            return original(*args, **kwargs)

        remote.subscribe = flaky_subscribe  # type: ignore[method-assign]

        with pytest.raises(RemoteStoreError):
            live.watch_user_friends("u1", MagicMock())

        assert remote.subscription_count == 0
        assert registry.active_keys() == []
