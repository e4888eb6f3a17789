"""Clock/timer collaborators.

All delays are milliseconds (see ``parse_duration``).
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable
from typing import Protocol, runtime_checkable


class Timer:
    """Cancelable handle for a scheduled callback."""

    __slots__ = ("_callback", "_cancelled", "_handle", "interval")

    def __init__(
        self, callback: Callable[[], None], interval: int | None = None
    ) -> None:
        self._callback = callback
        self._cancelled = False
        self._handle: asyncio.TimerHandle | None = None
        self.interval = interval

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self) -> None:
        if not self._cancelled:
            self._callback()


@runtime_checkable
class Scheduler(Protocol):
    def call_later(self, delay: int, callback: Callable[[], None]) -> Timer: ...

    def call_every(self, interval: int, callback: Callable[[], None]) -> Timer: ...


class AsyncioScheduler:
    """Scheduler on the running asyncio event loop."""

    def call_later(self, delay: int, callback: Callable[[], None]) -> Timer:
        timer = Timer(callback)
        loop = asyncio.get_running_loop()
        timer._handle = loop.call_later(delay / 1000, timer._fire)
        return timer

    def call_every(self, interval: int, callback: Callable[[], None]) -> Timer:
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = Timer(callback, interval)
        loop = asyncio.get_running_loop()

        def tick() -> None:
            if timer.cancelled:
                return
            # Re-arm first so the callback may cancel the timer
            timer._handle = loop.call_later(interval / 1000, tick)
            timer._fire()

        timer._handle = loop.call_later(interval / 1000, tick)
        return timer


class ManualScheduler:
    """Deterministic scheduler driven by ``advance``; time starts at 0."""

    def __init__(self) -> None:
        self._now = 0
        self._queue: list[tuple[int, int, Timer]] = []
        self._seq = itertools.count()

    @property
    def now(self) -> int:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for _, _, timer in self._queue if not timer.cancelled)

    def call_later(self, delay: int, callback: Callable[[], None]) -> Timer:
        timer = Timer(callback)
        heapq.heappush(self._queue, (self._now + delay, next(self._seq), timer))
        return timer

    def call_every(self, interval: int, callback: Callable[[], None]) -> Timer:
        if interval <= 0:
            raise ValueError("interval must be positive")
        timer = Timer(callback, interval)
        heapq.heappush(self._queue, (self._now + interval, next(self._seq), timer))
        return timer

    def advance(self, ms: int) -> None:
        """Move time forward, firing every timer that falls due in order."""
        target = self._now + ms
        while self._queue and self._queue[0][0] <= target:
            due, _, timer = heapq.heappop(self._queue)
            self._now = due
            if timer.cancelled:
                continue
            if timer.interval is not None:
                heapq.heappush(
                    self._queue, (due + timer.interval, next(self._seq), timer)
                )
            timer._fire()
        self._now = target
