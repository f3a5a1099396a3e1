"""
Cooperative scheduling for session timers and capture polling.

All timed behaviour in the exam room (clock ticks, escalation delays,
pose sampling, settle pauses) runs as callbacks on a single Scheduler.
Production code uses the asyncio event loop; tests drive a VirtualScheduler
and advance time explicitly.
"""

import asyncio
import heapq
import itertools
import logging
import time
from typing import Any, Callable, Coroutine, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Tolerance when comparing accumulated float deadlines
_EPSILON = 1e-9

DoneCallback = Callable[[Any, Optional[BaseException]], None]


class ScheduledCall:
    """Handle for a pending callback"""

    def __init__(self, when: float, callback: Callable[..., Any], args: Tuple[Any, ...] = ()):
        self.when = when
        self._callback = callback
        self._args = args
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        self._cancelled = True

    def run(self):
        if not self._cancelled:
            self._callback(*self._args)


class Scheduler:
    """Interface for the single cooperative execution context"""

    def now(self) -> float:
        """Monotonic time in seconds, used for deadlines"""
        raise NotImplementedError

    def time(self) -> float:
        """Wall-clock timestamp in seconds, used for audit records"""
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledCall:
        raise NotImplementedError

    def spawn(self, coro: Coroutine, on_done: DoneCallback) -> Optional[asyncio.Future]:
        """
        Run a coroutine without blocking the timers.

        ``on_done(result, error)`` is called once the coroutine finishes;
        exactly one of the two is meaningful.
        """
        raise NotImplementedError


class VirtualScheduler(Scheduler):
    """
    Deterministic scheduler driven by explicit time advancement.

    Usage:
        scheduler = VirtualScheduler()
        scheduler.call_later(1.0, tick)
        scheduler.advance(1.0)   # runs tick
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._queue: List[Tuple[float, int, ScheduledCall]] = []
        self._counter = itertools.count()

    def now(self) -> float:
        return self._now

    def time(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledCall:
        handle = ScheduledCall(self._now + max(0.0, delay), callback, args)
        heapq.heappush(self._queue, (handle.when, next(self._counter), handle))
        return handle

    def spawn(self, coro: Coroutine, on_done: DoneCallback) -> Optional[asyncio.Future]:
        """
        Step the coroutine to completion right away.

        Only coroutines that never wait on an event loop can run here
        (bare ``await asyncio.sleep(0)`` is fine); anything else is
        reported to ``on_done`` as a RuntimeError.
        """
        try:
            while True:
                if coro.send(None) is not None:
                    coro.close()
                    on_done(None, RuntimeError("VirtualScheduler cannot wait on event loop futures"))
                    return None
        except StopIteration as stop:
            on_done(stop.value, None)
        except Exception as e:
            on_done(None, e)
        return None

    @property
    def pending(self) -> int:
        return sum(1 for _, _, handle in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> int:
        """
        Move time forward, running every callback that falls due.

        Callbacks scheduled by callbacks are honoured if they fall inside
        the window. Returns the number of callbacks run.
        """
        target = self._now + seconds
        ran = 0
        while self._queue and self._queue[0][0] <= target + _EPSILON:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, when)
            handle.run()
            ran += 1
        self._now = max(self._now, target)
        return ran

    def run_until_idle(self, max_steps: int = 100_000) -> int:
        """Run callbacks in deadline order until nothing is pending"""
        ran = 0
        while self._queue and ran < max_steps:
            when, _, handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, when)
            handle.run()
            ran += 1
        return ran


class _LoopCall(ScheduledCall):
    """ScheduledCall that also cancels its event-loop timer"""

    timer: Optional[asyncio.TimerHandle] = None

    def cancel(self):
        super().cancel()
        if self.timer is not None:
            self.timer.cancel()


class AsyncioScheduler(Scheduler):
    """Scheduler backed by a running asyncio event loop"""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop or asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time()

    def time(self) -> float:
        return time.time()

    def call_later(self, delay: float, callback: Callable[..., Any], *args: Any) -> ScheduledCall:
        delay = max(0.0, delay)
        handle = _LoopCall(self._loop.time() + delay, callback, args)
        handle.timer = self._loop.call_later(delay, handle.run)
        return handle

    def spawn(self, coro: Coroutine, on_done: DoneCallback) -> Optional[asyncio.Future]:
        task = self._loop.create_task(coro)

        def finished(done: asyncio.Future):
            if done.cancelled():
                on_done(None, asyncio.CancelledError())
            elif done.exception() is not None:
                on_done(None, done.exception())
            else:
                on_done(done.result(), None)

        task.add_done_callback(finished)
        return task
