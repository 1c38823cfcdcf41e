"""Deduplicated live-subscription fan-out with idle teardown.

Many independent consumers may want "live updates for resource R".  The
registry keeps at most ONE underlying remote subscription per logical key
and fans every update out to all attached callbacks.

# ─── LIFECYCLE OF ONE KEY ──────────────────────────────────────────────
#
#   Absent ──attach──→ Active(refs=1)      setup(sink) runs once
#   Active ──attach──→ Active(refs+1)      idle timer (if any) cancelled
#   Active ──dispose─→ Active(refs-1)      refs==0 → arm idle timer
#   Idle   ──timer───→ Absent              teardown() runs once
#   Idle   ──attach──→ Active(refs=1)      same remote subscription reused
#
# - Delivery happens under the registry lock, in attachment order.  Once a
#   handle's dispose() returns, its callback is never called again.
# - A raising callback is logged and skipped; the others still get the value.
# - Remote error-channel events go to the attachments' on_error callbacks.
#   They never tear the subscription down.
# - Idle timers are matched by key AND by the arming token, so a late timer
#   can never tear down an entry that was revived or recreated.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import itertools
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog

from src.utils.errors import DataLayerError, SubscriptionError
from src.utils.logging import get_logger
from src.utils.timers import TimerFactory, TimerHandle, start_thread_timer

DEFAULT_IDLE_TIMEOUT_SECONDS = 5 * 60.0

Teardown = Callable[[], None]


@dataclass
class _ListenerEntry:
    """Internal state for one logical subscription."""

    key: str
    ref_count: int = 0
    # token -> callback; dicts keep insertion (= attachment) order.
    callbacks: dict[int, Callable[[Any], None]] = field(default_factory=dict)
    error_callbacks: dict[int, Callable[[Exception], None]] = field(default_factory=dict)
    teardown: Teardown | None = None
    idle_timer: TimerHandle | None = None
    idle_token: object | None = None
    torn_down: bool = False
    has_latest: bool = False
    latest: Any = None


class ListenerSink:
    """Handed to ``setup``; the remote subscription pushes through it."""

    def __init__(self, registry: ListenerRegistry, entry: _ListenerEntry) -> None:
        self._registry = registry
        self._entry = entry

    @property
    def key(self) -> str:
        return self._entry.key

    @property
    def lock(self) -> threading.RLock:
        """The lock delivery runs under.

        Hold it around a read-modify-emit so no other delivery for any key
        lands in between.  Re-entrant, so ``emit`` may be called inside.
        """
        return self._registry._lock

    def emit(self, value: Any) -> None:
        """Deliver *value* to every attached callback."""
        self._registry._deliver(self._entry, value)

    def error(self, exc: Exception) -> None:
        """Report an error from the remote subscription's error channel."""
        self._registry._deliver_error(self._entry, exc)


class ListenerHandle:
    """Returned by :meth:`ListenerRegistry.attach`.

    Calling the handle (or :meth:`dispose`) detaches the callback.  Extra
    calls are no-ops.
    """

    def __init__(self, registry: ListenerRegistry, entry: _ListenerEntry, token: int) -> None:
        self._registry = registry
        self._entry = entry
        self._token = token
        self._disposed = False

    @property
    def key(self) -> str:
        return self._entry.key

    @property
    def active(self) -> bool:
        return not self._disposed

    def dispose(self) -> None:
        if self._disposed:
            return
        self._disposed = True
        self._registry._detach(self._entry, self._token)

    def __call__(self) -> None:
        self.dispose()


class ListenerRegistry:
    """Multiplexes live subscriptions by key.

    Parameters
    ----------
    idle_timeout:
        Seconds an unreferenced subscription is kept alive before teardown.
        ``0`` tears down as soon as the last callback detaches.
    timer_factory:
        Creates the fire-once idle timers.  Tests inject a manual one.
    replay_latest:
        When ``True``, a caller attaching to an already-active key is
        immediately handed the last value emitted on it.
    """

    def __init__(
        self,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT_SECONDS,
        timer_factory: TimerFactory = start_thread_timer,
        replay_latest: bool = False,
    ) -> None:
        if idle_timeout < 0:
            msg = f"idle_timeout must be >= 0, got {idle_timeout}"
            raise ValueError(msg)
        self._idle_timeout = idle_timeout
        self._timer_factory = timer_factory
        self._replay_latest = replay_latest
        self._entries: dict[str, _ListenerEntry] = {}
        self._tokens = itertools.count(1)
        self._lock = threading.RLock()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def attach(
        self,
        key: str,
        setup: Callable[[ListenerSink], Teardown],
        callback: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None = None,
    ) -> ListenerHandle:
        """Attach *callback* to the live subscription for *key*.

        Parameters
        ----------
        key:
            Logical subscription identity (see ``ListenerKeys``).
        setup:
            Called with a :class:`ListenerSink` only when no subscription is
            active for *key*.  Must establish the remote subscription and
            return its zero-argument teardown.
        callback:
            Receives every value emitted after attaching.
        on_error:
            Receives errors from the remote error channel.

        Returns
        -------
        ListenerHandle
            Idempotent disposer.

        Raises
        ------
        SubscriptionError
            If *setup* fails.  Nothing is registered in that case.
        """
        with self._lock:
            entry = self._entries.get(key)
            token = next(self._tokens)

            if entry is None:
                entry = _ListenerEntry(key=key)
                self._add_attachment(entry, token, callback, on_error)
                self._entries[key] = entry
                # Callback is registered first so a snapshot pushed
                # synchronously from inside setup() is not lost.
                try:
                    entry.teardown = setup(ListenerSink(self, entry))
                except Exception as exc:
                    del self._entries[key]
                    entry.torn_down = True
                    self._logger.warning("listener_setup_failed", key=key, error=str(exc))
                    if isinstance(exc, DataLayerError):
                        raise
                    raise SubscriptionError(f"Setup failed for listener {key!r}: {exc}") from exc
                self._logger.debug("listener_created", key=key)
            else:
                self._cancel_idle_timer(entry)
                self._add_attachment(entry, token, callback, on_error)
                self._logger.debug("listener_reused", key=key, ref_count=entry.ref_count)
                if self._replay_latest and entry.has_latest:
                    self._invoke(entry.key, callback, entry.latest)

            return ListenerHandle(self, entry, token)

    def active_keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def ref_count(self, key: str) -> int:
        """Attached callbacks for *key*; ``0`` for idle or unknown keys."""
        with self._lock:
            entry = self._entries.get(key)
            return entry.ref_count if entry else 0

    def get_stats(self) -> dict[str, int]:
        with self._lock:
            entries = list(self._entries.values())
        return {
            "active_listeners": len(entries),
            "idle_listeners": sum(1 for e in entries if e.ref_count == 0),
            "attached_callbacks": sum(e.ref_count for e in entries),
        }

    def shutdown(self) -> None:
        """Cancel all idle timers and tear down every subscription now."""
        with self._lock:
            entries = list(self._entries.values())
            self._entries.clear()
            for entry in entries:
                self._cancel_idle_timer(entry)
                entry.torn_down = True
                entry.callbacks.clear()
                entry.error_callbacks.clear()
                entry.ref_count = 0
        for entry in entries:
            self._run_teardown(entry)
        if entries:
            self._logger.info("listener_registry_shutdown", torn_down=len(entries))

    # ------------------------------------------------------------------
    # Called by ListenerSink / ListenerHandle
    # ------------------------------------------------------------------

    def _deliver(self, entry: _ListenerEntry, value: Any) -> None:
        with self._lock:
            if entry.torn_down:
                return
            entry.latest = value
            entry.has_latest = True
            for token, callback in list(entry.callbacks.items()):
                # A callback may dispose another attachment mid-delivery.
                if token in entry.callbacks:
                    self._invoke(entry.key, callback, value)

    def _deliver_error(self, entry: _ListenerEntry, exc: Exception) -> None:
        with self._lock:
            if entry.torn_down:
                return
            handlers = list(entry.error_callbacks.values())
            if not handlers:
                self._logger.warning("listener_remote_error", key=entry.key, error=str(exc))
                return
            for handler in handlers:
                self._invoke(entry.key, handler, exc)

    def _detach(self, entry: _ListenerEntry, token: int) -> None:
        teardown_now = False
        with self._lock:
            if token not in entry.callbacks:
                return
            del entry.callbacks[token]
            entry.error_callbacks.pop(token, None)
            entry.ref_count -= 1
            self._logger.debug("listener_detached", key=entry.key, ref_count=entry.ref_count)

            if entry.ref_count > 0 or entry.torn_down:
                return
            if self._idle_timeout == 0:
                self._entries.pop(entry.key, None)
                entry.torn_down = True
                teardown_now = True
            else:
                armed = object()
                entry.idle_token = armed
                entry.idle_timer = self._timer_factory(
                    self._idle_timeout,
                    lambda: self._on_idle_timeout(entry.key, armed),
                )
        if teardown_now:
            self._run_teardown(entry)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_idle_timeout(self, key: str, armed: object) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.idle_token is not armed or entry.ref_count > 0:
                return
            del self._entries[key]
            entry.torn_down = True
            entry.idle_timer = None
            entry.idle_token = None
        self._run_teardown(entry)

    def _run_teardown(self, entry: _ListenerEntry) -> None:
        teardown, entry.teardown = entry.teardown, None
        if teardown is None:
            return
        try:
            teardown()
        except Exception as exc:
            self._logger.warning("listener_teardown_error", key=entry.key, error=str(exc))
            return
        self._logger.debug("listener_torn_down", key=entry.key)

    def _add_attachment(
        self,
        entry: _ListenerEntry,
        token: int,
        callback: Callable[[Any], None],
        on_error: Callable[[Exception], None] | None,
    ) -> None:
        entry.callbacks[token] = callback
        if on_error is not None:
            entry.error_callbacks[token] = on_error
        entry.ref_count += 1

    @staticmethod
    def _cancel_idle_timer(entry: _ListenerEntry) -> None:
        if entry.idle_timer is not None:
            entry.idle_timer.cancel()
        entry.idle_timer = None
        entry.idle_token = None

    def _invoke(self, key: str, func: Callable[[Any], None], arg: Any) -> None:
        try:
            func(arg)
        except Exception as exc:
            self._logger.warning(
                "listener_callback_error",
                key=key,
                error=str(exc),
                callback=getattr(func, "__name__", repr(func)),
            )
