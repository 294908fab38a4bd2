"""Coalescing scheduler decoupled from any particular timer primitive.

``CoalescingScheduler`` implements a trailing debounce: ``request()`` arms
a timer, and another ``request()`` before it fires cancels and re-arms it,
so a burst of triggers produces exactly one run.  ``cancel()`` drops the
pending run and ``flush()`` runs it immediately.

Timer backends:
    ManualTimers  - virtual clock advanced explicitly (tests, batch CLI).
    AsyncioTimers - ``loop.call_later`` on a running event loop.
"""
from __future__ import annotations

import asyncio
import heapq
import itertools
from collections.abc import Callable, Hashable
from typing import Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class TimerBackend(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------


class _ManualTimer:
    __slots__ = ("due", "seq", "callback", "cancelled")

    def __init__(self, due: float, seq: int, callback: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: _ManualTimer) -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class ManualTimers:
    """Virtual-time timer backend.

    Timers fire in (due time, creation order) order during ``advance``.
    Callbacks may schedule new timers; those fire in the same ``advance``
    call if they fall due within it.
    """

    def __init__(self) -> None:
        self._now = 0.0
        self._queue: list[_ManualTimer] = []
        self._seq = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        return sum(1 for t in self._queue if not t.cancelled)

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualTimer:
        timer = _ManualTimer(self._now + max(delay, 0.0), next(self._seq), callback)
        heapq.heappush(self._queue, timer)
        return timer

    def advance(self, seconds: float) -> None:
        """Move the clock forward, firing every timer that falls due."""
        target = self._now + seconds
        while self._queue and self._queue[0].due <= target:
            timer = heapq.heappop(self._queue)
            if timer.cancelled:
                continue
            self._now = timer.due
            timer.callback()
        self._now = target

    def run_all(self, *, limit: int = 10_000) -> None:
        """Fire timers until none remain (bounded to avoid runaway loops)."""
        for _ in range(limit):
            live = [t for t in self._queue if not t.cancelled]
            if not live:
                return
            self.advance(min(t.due for t in live) - self._now)
        raise RuntimeError(f"timers still pending after {limit} rounds")


class AsyncioTimers:
    """Timer backend on an asyncio event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)


# ---------------------------------------------------------------------------
# Coalescing
# ---------------------------------------------------------------------------


class CoalescingScheduler:
    """Trailing-debounce wrapper around a single callback."""

    def __init__(
        self,
        timers: TimerBackend,
        delay: float,
        callback: Callable[[], None],
    ) -> None:
        self._timers = timers
        self._delay = delay
        self._callback = callback
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def request(self, delay: float | None = None) -> None:
        """Arm (or re-arm) the timer; the latest request wins."""
        self.cancel()
        self._handle = self._timers.call_later(
            self._delay if delay is None else delay, self._fire,
        )

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def flush(self) -> bool:
        """Run a pending request now. Returns False if nothing was pending."""
        if self._handle is None:
            return False
        self.cancel()
        self._callback()
        return True

    def _fire(self) -> None:
        self._handle = None
        self._callback()


class KeyedCoalescer[K: Hashable, V]:
    """Per-key trailing debounce carrying the latest value for each key.

    ``submit(key, value)`` replaces any pending value for *key* and resets
    that key's timer; other keys are unaffected.  When a key's timer fires,
    ``sink(key, value)`` receives the most recent value.
    """

    def __init__(
        self,
        timers: TimerBackend,
        delay: float,
        sink: Callable[[K, V], None],
    ) -> None:
        self._timers = timers
        self._delay = delay
        self._sink = sink
        self._pending: dict[K, tuple[V, TimerHandle]] = {}

    def pending_keys(self) -> list[K]:
        return list(self._pending)

    def submit(self, key: K, value: V) -> None:
        previous = self._pending.pop(key, None)
        if previous is not None:
            previous[1].cancel()
        handle = self._timers.call_later(self._delay, lambda: self._fire(key))
        self._pending[key] = (value, handle)

    def cancel(self, key: K) -> None:
        previous = self._pending.pop(key, None)
        if previous is not None:
            previous[1].cancel()

    def cancel_all(self) -> None:
        for key in list(self._pending):
            self.cancel(key)

    def flush(self) -> None:
        """Deliver every pending value now, in submission order."""
        for key in list(self._pending):
            value, handle = self._pending.pop(key)
            handle.cancel()
            self._sink(key, value)

    def _fire(self, key: K) -> None:
        entry = self._pending.pop(key, None)
        if entry is not None:
            self._sink(key, entry[0])
