"""Time doubles shared by the test suite."""

from __future__ import annotations

from collections.abc import Callable


class FakeClock:
    """Manually advanced wall clock, in seconds."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float = 0.0, minutes: float = 0.0) -> None:
        self.now += seconds + minutes * 60


class ManualTimer:
    """Timer handle that only fires when the test says so."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        self.delay = delay
        self.callback = callback
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        """Run the callback the way a real timer thread would.

        Tests may also fire a cancelled timer to simulate one that had
        already started running when ``cancel()`` was called.
        """
        self.fired = True
        self.callback()


class ManualTimerFactory:
    """Timer factory recording every timer the registry arms."""

    def __init__(self) -> None:
        self.timers: list[ManualTimer] = []

    def __call__(self, delay: float, callback: Callable[[], None]) -> ManualTimer:
        timer = ManualTimer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[ManualTimer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    def fire_pending(self) -> int:
        pending = self.pending
        for timer in pending:
            timer.fire()
        return len(pending)
