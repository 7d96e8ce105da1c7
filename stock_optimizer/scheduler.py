"""Scheduler daemon for the recurring in-process jobs.

No external scheduler library is required: a ``PeriodicTask`` is a callback
plus a rule for its next run time, and ``SchedulerDaemon`` ticks every 30 s
running whatever is due.

Typical usage via the CLI::

    stockopt start-scheduler

Jobs wired by ``OptimizationEngine.build_scheduler()``:
  - **Daily**  indicator refresh followed by prediction verification, at
                ``tracker.indicator_refresh_time`` (local HH:MM clock).
  - **Weekly** performance sweep, on ``tracker.sweep_weekday`` at
                ``tracker.sweep_time``.

The sweep has to run in the same process that applies recommendations,
because the metrics it refreshes are held in memory. A failing job is logged
and rescheduled; it never stops the daemon.
"""

from __future__ import annotations

import logging
import platform
import signal
import time as _time
from datetime import datetime, time
from typing import Callable, Optional, Sequence

from stock_optimizer.utils.time_utils import next_daily_run, next_weekly_run

log = logging.getLogger(__name__)

TICK_SECONDS = 30


class PeriodicTask:
    """A named callback with a next-run rule.

    ``next_after(now)`` must return a datetime strictly after ``now``.
    """

    def __init__(
        self,
        name: str,
        callback: Callable[[], object],
        next_after: Callable[[datetime], datetime],
    ) -> None:
        self.name = name
        self.callback = callback
        self.next_after = next_after
        self.due_at: Optional[datetime] = None

    @classmethod
    def daily(cls, name: str, at: time, callback: Callable[[], object]) -> "PeriodicTask":
        return cls(name, callback, lambda now: next_daily_run(now, at))

    @classmethod
    def weekly(
        cls, name: str, weekday: int, at: time, callback: Callable[[], object]
    ) -> "PeriodicTask":
        return cls(name, callback, lambda now: next_weekly_run(now, weekday, at))

    def schedule(self, now: datetime) -> datetime:
        self.due_at = self.next_after(now)
        return self.due_at

    def run_if_due(self, now: datetime) -> bool:
        """Run the callback if due, then reschedule. Returns whether it ran.

        Exceptions from the callback are logged, not raised.
        """
        if self.due_at is None:
            self.schedule(now)
        if now < self.due_at:
            return False

        log.info("[%s] Running (due %s)", self.name, self.due_at.isoformat(timespec="seconds"))
        try:
            self.callback()
            log.info("[%s] Completed successfully.", self.name)
        except Exception as exc:
            log.error("[%s] Failed: %s", self.name, exc, exc_info=True)

        self.schedule(now)
        log.info("[%s] Next run: %s", self.name, self.due_at.isoformat(timespec="seconds"))
        return True


class SchedulerDaemon:
    """Runs a set of ``PeriodicTask`` objects until stopped.

    Parameters
    ----------
    tasks:
        Tasks to run; each is scheduled from the daemon's start time.
    tick_seconds:
        Sleep between due-checks.
    clock:
        Local wall clock; defaults to ``datetime.now``.
    """

    def __init__(
        self,
        tasks: Sequence[PeriodicTask],
        tick_seconds: float = TICK_SECONDS,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.tasks = list(tasks)
        self.tick_seconds = tick_seconds
        self._clock = clock
        self._running = False

    def run_pending(self, now: Optional[datetime] = None) -> list[str]:
        """Run every task due at ``now``; returns the names that ran."""
        now = now or self._clock()
        return [task.name for task in self.tasks if task.run_if_due(now)]

    def stop(self) -> None:
        self._running = False

    # ── Main loop ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Start the daemon. Blocks until Ctrl-C (or SIGTERM on Linux/macOS)."""
        now = self._clock()
        for task in self.tasks:
            task.schedule(now)
            log.info("[%s] First run: %s", task.name, task.due_at.isoformat(timespec="seconds"))

        self._running = True

        def _shutdown(signum, frame):  # noqa: ANN001
            log.info("Signal %d received, stopping scheduler.", signum)
            self._running = False

        signal.signal(signal.SIGINT, _shutdown)
        if platform.system() != "Windows":
            signal.signal(signal.SIGTERM, _shutdown)

        log.info("Scheduler started with %d tasks.", len(self.tasks))
        while self._running:
            self.run_pending()
            _time.sleep(self.tick_seconds)

        log.info("Scheduler stopped.")
