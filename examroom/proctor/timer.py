"""
Session Clock - Countdown timer that drives auto-submission on expiry
"""

import logging
from typing import Callable, Optional

from ..config import settings
from .scheduling import Scheduler, ScheduledCall

logger = logging.getLogger(__name__)

TICK_SECONDS = 1


class SessionClock:
    """
    Counts down from ``duration_minutes * 60`` seconds, one tick per second.

    ``on_expire`` is called exactly once when the countdown reaches zero,
    after which the clock stops. ``stop()`` halts ticking without firing.
    The remaining time is only ever reset by ``start()``.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        duration_minutes: int,
        on_expire: Callable[[], None],
        on_tick: Optional[Callable[[int], None]] = None
    ):
        if duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")

        self.scheduler = scheduler
        self.duration_minutes = duration_minutes
        self._on_expire = on_expire
        self._on_tick = on_tick

        self.time_left = 0
        self._handle: Optional[ScheduledCall] = None
        self._running = False
        self._started = False
        self._expired = False

    @property
    def total_seconds(self) -> int:
        return self.duration_minutes * 60

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def expired(self) -> bool:
        return self._expired

    @property
    def elapsed(self) -> int:
        return self.total_seconds - self.time_left

    @property
    def is_warning(self) -> bool:
        """True when the candidate should be warned about the remaining time"""
        return self._running and self.time_left < settings.TIMER_WARNING_SECONDS

    def start(self):
        """Reset to the full duration and begin ticking"""
        if self._started:
            raise RuntimeError("SessionClock can only be started once")

        self._started = True
        self._running = True
        self.time_left = self.total_seconds
        self._schedule()
        logger.debug(f"Clock started: {self.time_left}s")

    def stop(self):
        """Halt ticking; never fires expiry"""
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def format_remaining(self) -> str:
        minutes, seconds = divmod(max(0, self.time_left), 60)
        return f"{minutes:02d}:{seconds:02d}"

    def _schedule(self):
        self._handle = self.scheduler.call_later(TICK_SECONDS, self._tick)

    def _tick(self):
        self._handle = None
        if not self._running:
            return

        self.time_left = max(0, self.time_left - TICK_SECONDS)

        if self._on_tick is not None:
            self._on_tick(self.time_left)

        if self.time_left > 0:
            self._schedule()
            return

        self._running = False
        self._expired = True
        logger.info("Session clock reached zero")
        self._on_expire()
