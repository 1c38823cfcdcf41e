"""Cancellable timer primitives used by the cache and listener layers.

Two shapes are provided:

1. **Fire-once timers** -- :data:`TimerFactory` is any callable that takes
   ``(delay_seconds, callback)`` and returns a :class:`TimerHandle`.  The
   listener registry uses one per idle entry.  The default factory,
   :func:`start_thread_timer`, runs the callback on a daemon
   ``threading.Timer`` so idle teardown works whether or not an event loop
   is running (remote SDK callbacks usually arrive on their own threads).

2. **Periodic tasks** -- :class:`PeriodicTask` runs a synchronous function
   every ``interval`` seconds on the running asyncio loop until stopped.
   The cache service uses it for the memory-tier sweep.
"""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Callable
from typing import Protocol

import structlog

from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


class TimerHandle(Protocol):
    """Anything with a ``cancel()`` that prevents a pending callback."""

    def cancel(self) -> None: ...


TimerFactory = Callable[[float, Callable[[], None]], TimerHandle]


def start_thread_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    """Schedule *callback* after *delay* seconds on a daemon thread."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class PeriodicTask:
    """Run *func* every *interval* seconds on the current event loop.

    Exceptions raised by *func* are logged and the loop keeps going; a
    sweep that fails once should not stop future sweeps.
    """

    def __init__(self, name: str, interval: float, func: Callable[[], object]) -> None:
        if interval <= 0:
            msg = f"interval must be positive, got {interval}"
            raise ValueError(msg)
        self._name = name
        self._interval = interval
        self._func = func
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop.  Must be called with an event loop running."""
        if self.running:
            return
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"periodic:{self._name}"
        )
        _logger.debug("periodic_task_started", task=self._name, interval=self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        _logger.debug("periodic_task_stopped", task=self._name)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval)
            try:
                self._func()
            except Exception as exc:
                _logger.warning("periodic_task_error", task=self._name, error=str(exc))
