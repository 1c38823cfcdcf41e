"""Unit tests for ListenerRegistry: dedup, fan-out, idle teardown, revival."""

from __future__ import annotations

import threading
from typing import Any
from unittest.mock import MagicMock

import pytest

from src.services.listener_registry import ListenerRegistry, ListenerSink
from src.utils.errors import SubscriptionError
from tests.helpers import ManualTimerFactory


class _FakeRemote:
    """Records setup/teardown calls and lets the test push values."""

    def __init__(self) -> None:
        self.setup_calls = 0
        self.teardown_calls = 0
        self.sinks: list[ListenerSink] = []

    def setup(self, sink: ListenerSink):
        self.setup_calls += 1
        self.sinks.append(sink)

        def teardown() -> None:
            self.teardown_calls += 1

        return teardown

    def emit(self, value: Any) -> None:
        self.sinks[-1].emit(value)


@pytest.fixture()
def fake_remote() -> _FakeRemote:
    return _FakeRemote()


# ======================================================================
# Deduplication and fan-out
# ======================================================================


class TestDedup:
    def test_first_attach_runs_setup_once(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        registry.attach("requests_u1", fake_remote.setup, lambda _: None)

        assert fake_remote.setup_calls == 1
        assert registry.active_keys() == ["requests_u1"]
        assert registry.ref_count("requests_u1") == 1

    def test_second_attach_reuses_subscription(self, registry: ListenerRegistry) -> None:
        setup_one = MagicMock(return_value=lambda: None)
        setup_two = MagicMock(return_value=lambda: None)
        cb1, cb2 = MagicMock(), MagicMock()

        registry.attach("requests_u1", setup_one, cb1)
        registry.attach("requests_u1", setup_two, cb2)

        assert setup_one.call_count + setup_two.call_count == 1
        assert registry.ref_count("requests_u1") == 2

        sink: ListenerSink = setup_one.call_args.args[0]
        sink.emit(["req-a"])
        sink.emit(["req-a", "req-b"])

        assert [c.args[0] for c in cb1.call_args_list] == [["req-a"], ["req-a", "req-b"]]
        assert [c.args[0] for c in cb2.call_args_list] == [["req-a"], ["req-a", "req-b"]]

    def test_different_keys_get_separate_subscriptions(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        registry.attach("requests_u1", fake_remote.setup, lambda _: None)
        registry.attach("requests_u2", fake_remote.setup, lambda _: None)

        assert fake_remote.setup_calls == 2
        assert sorted(registry.active_keys()) == ["requests_u1", "requests_u2"]

    def test_fan_out_in_attachment_order(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        order: list[str] = []
        registry.attach("k", fake_remote.setup, lambda v: order.append(f"a:{v}"))
        registry.attach("k", fake_remote.setup, lambda v: order.append(f"b:{v}"))
        registry.attach("k", fake_remote.setup, lambda v: order.append(f"c:{v}"))

        fake_remote.emit(1)

        assert order == ["a:1", "b:1", "c:1"]

    def test_same_callback_attached_twice_counts_twice(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        cb = MagicMock()
        first = registry.attach("k", fake_remote.setup, cb)
        registry.attach("k", fake_remote.setup, cb)

        fake_remote.emit("x")
        assert cb.call_count == 2

        first()
        fake_remote.emit("y")
        assert cb.call_count == 3
        assert registry.ref_count("k") == 1

    def test_raising_callback_does_not_block_others(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        after = MagicMock()
        registry.attach("k", fake_remote.setup, MagicMock(side_effect=ValueError("boom")))
        registry.attach("k", fake_remote.setup, after)

        fake_remote.emit("v")

        after.assert_called_once_with("v")

    def test_snapshot_pushed_during_setup_reaches_first_caller(
        self, registry: ListenerRegistry
    ) -> None:
        def setup(sink: ListenerSink):
            sink.emit("initial")
            return lambda: None

        cb = MagicMock()
        registry.attach("k", setup, cb)

        cb.assert_called_once_with("initial")

    def test_late_attacher_only_sees_later_values_by_default(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        registry.attach("k", fake_remote.setup, lambda _: None)
        fake_remote.emit("before")

        late = MagicMock()
        registry.attach("k", fake_remote.setup, late)
        late.assert_not_called()

        fake_remote.emit("after")
        late.assert_called_once_with("after")

    def test_replay_latest_hands_last_value_to_late_attacher(
        self, timers: ManualTimerFactory, fake_remote: _FakeRemote
    ) -> None:
        registry = ListenerRegistry(timer_factory=timers, replay_latest=True)
        registry.attach("k", fake_remote.setup, lambda _: None)
        fake_remote.emit("snapshot-1")

        late = MagicMock()
        registry.attach("k", fake_remote.setup, late)

        late.assert_called_once_with("snapshot-1")


# ======================================================================
# Detach, idle teardown and revival
# ======================================================================


class TestIdleTeardown:
    def test_disposer_stops_delivery_immediately(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        cb = MagicMock()
        handle = registry.attach("k", fake_remote.setup, cb)
        registry.attach("k", fake_remote.setup, lambda _: None)

        handle()
        fake_remote.emit("v")

        cb.assert_not_called()
        assert handle.active is False

    def test_disposer_is_idempotent(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        h1 = registry.attach("k", fake_remote.setup, lambda _: None)
        registry.attach("k", fake_remote.setup, lambda _: None)

        h1()
        h1()
        h1.dispose()

        assert registry.ref_count("k") == 1

    def test_teardown_waits_for_grace_period(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        handle = registry.attach("k", fake_remote.setup, lambda _: None)
        handle()

        assert fake_remote.teardown_calls == 0
        assert registry.active_keys() == ["k"]
        assert len(timers.pending) == 1
        assert timers.pending[0].delay == 300

        timers.fire_pending()

        assert fake_remote.teardown_calls == 1
        assert registry.active_keys() == []

    def test_no_timer_while_callers_remain(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        h1 = registry.attach("k", fake_remote.setup, lambda _: None)
        registry.attach("k", fake_remote.setup, lambda _: None)

        h1()

        assert timers.pending == []

    def test_attach_during_grace_period_revives_without_resubscribing(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        registry.attach("k", fake_remote.setup, lambda _: None)()
        armed = timers.timers[0]

        revived = MagicMock()
        registry.attach("k", fake_remote.setup, revived)

        assert armed.cancelled is True
        assert fake_remote.setup_calls == 1
        assert registry.ref_count("k") == 1

        fake_remote.emit("still-live")
        revived.assert_called_once_with("still-live")

    def test_stale_timer_firing_after_revival_does_nothing(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        registry.attach("k", fake_remote.setup, lambda _: None)()
        stale = timers.timers[0]
        registry.attach("k", fake_remote.setup, lambda _: None)

        # Simulates a timer thread that was already running when cancelled.
        stale.fire()

        assert fake_remote.teardown_calls == 0
        assert registry.active_keys() == ["k"]

    def test_stale_timer_cannot_tear_down_recreated_entry(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        registry.attach("k", fake_remote.setup, lambda _: None)()
        first_timer = timers.timers[0]
        first_timer.fire()
        assert fake_remote.teardown_calls == 1

        # Same key, brand-new entry.
        registry.attach("k", fake_remote.setup, lambda _: None)
        first_timer.fire()

        assert fake_remote.setup_calls == 2
        assert fake_remote.teardown_calls == 1
        assert registry.active_keys() == ["k"]

    def test_teardown_runs_at_most_once(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        registry.attach("k", fake_remote.setup, lambda _: None)()
        timer = timers.timers[0]

        timer.fire()
        timer.fire()
        registry.shutdown()

        assert fake_remote.teardown_calls == 1

    def test_values_after_teardown_are_dropped(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        cb = MagicMock()
        registry.attach("k", fake_remote.setup, cb)()
        timers.fire_pending()

        fake_remote.sinks[0].emit("late")

        cb.assert_not_called()

    def test_zero_idle_timeout_tears_down_immediately(self, fake_remote: _FakeRemote) -> None:
        registry = ListenerRegistry(idle_timeout=0)
        registry.attach("k", fake_remote.setup, lambda _: None)()

        assert fake_remote.teardown_calls == 1
        assert registry.active_keys() == []

    def test_negative_idle_timeout_rejected(self) -> None:
        with pytest.raises(ValueError):
            ListenerRegistry(idle_timeout=-1)

    def test_teardown_error_is_contained(
        self, registry: ListenerRegistry, timers: ManualTimerFactory
    ) -> None:
        def setup(sink: ListenerSink):
            def teardown() -> None:
                raise RuntimeError("already closed")

            return teardown

        registry.attach("k", setup, lambda _: None)()
        timers.fire_pending()

        assert registry.active_keys() == []

    def test_real_thread_timer_tears_down(self, fake_remote: _FakeRemote) -> None:
        registry = ListenerRegistry(idle_timeout=0.01)
        done = threading.Event()

        def setup(sink: ListenerSink):
            return done.set

        registry.attach("k", setup, lambda _: None)()

        assert done.wait(timeout=2.0)
        assert registry.active_keys() == []


# ======================================================================
# Error channel and setup failures
# ======================================================================


class TestErrors:
    def test_remote_errors_go_to_on_error_without_teardown(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        on_error = MagicMock()
        cb = MagicMock()
        registry.attach("k", fake_remote.setup, cb, on_error=on_error)

        exc = PermissionError("rules changed")
        fake_remote.sinks[0].error(exc)

        on_error.assert_called_once_with(exc)
        assert fake_remote.teardown_calls == 0
        fake_remote.emit("still flowing")
        cb.assert_called_once_with("still flowing")

    def test_remote_error_without_handlers_is_logged_only(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        registry.attach("k", fake_remote.setup, lambda _: None)
        fake_remote.sinks[0].error(RuntimeError("transient"))

        assert registry.active_keys() == ["k"]

    def test_setup_failure_raises_and_registers_nothing(self, registry: ListenerRegistry) -> None:
        def setup(sink: ListenerSink):
            raise ConnectionError("offline")

        with pytest.raises(SubscriptionError):
            registry.attach("k", setup, lambda _: None)

        assert registry.active_keys() == []

    def test_retry_after_setup_failure_runs_setup_again(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote
    ) -> None:
        def failing(sink: ListenerSink):
            raise ConnectionError("offline")

        with pytest.raises(SubscriptionError):
            registry.attach("k", failing, lambda _: None)

        registry.attach("k", fake_remote.setup, lambda _: None)
        assert fake_remote.setup_calls == 1


# ======================================================================
# Shutdown / stats
# ======================================================================


class TestShutdown:
    def test_shutdown_tears_down_active_and_idle_entries(
        self,
        registry: ListenerRegistry,
        fake_remote: _FakeRemote,
        timers: ManualTimerFactory,
    ) -> None:
        registry.attach("busy", fake_remote.setup, lambda _: None)
        registry.attach("idle", fake_remote.setup, lambda _: None)()

        registry.shutdown()

        assert fake_remote.teardown_calls == 2
        assert registry.active_keys() == []
        assert all(t.cancelled for t in timers.timers)

    def test_dispose_after_shutdown_is_noop(
        self, registry: ListenerRegistry, fake_remote: _FakeRemote, timers: ManualTimerFactory
    ) -> None:
        handle = registry.attach("k", fake_remote.setup, lambda _: None)
        registry.shutdown()

        handle()

        assert timers.timers == []
        assert fake_remote.teardown_calls == 1

    def test_stats(self, registry: ListenerRegistry, fake_remote: _FakeRemote) -> None:
        registry.attach("a", fake_remote.setup, lambda _: None)
        registry.attach("a", fake_remote.setup, lambda _: None)
        registry.attach("b", fake_remote.setup, lambda _: None)()

        assert registry.get_stats() == {
            "active_listeners": 2,
            "idle_listeners": 1,
            "attached_callbacks": 2,
        }
