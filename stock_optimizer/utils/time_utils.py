"""
Date and time helpers shared by the optimizer, tracker and scheduler.

All timestamps are timezone-aware UTC. Market data is keyed by calendar
``date``; recommendation ages are measured in whole calendar days.
"""

from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def today_utc() -> date:
    """Return today's calendar date in UTC."""
    return utcnow().date()


def days_between(start: date | datetime, end: date | datetime) -> int:
    """Whole calendar days from ``start`` to ``end`` (negative if reversed)."""
    if isinstance(start, datetime):
        start = start.date()
    if isinstance(end, datetime):
        end = end.date()
    return (end - start).days


def parse_hhmm(value: str) -> time:
    """Parse ``"HH:MM"`` into a ``datetime.time``."""
    return time.fromisoformat(value)


def next_daily_run(now: datetime, at: time) -> datetime:
    """Next datetime strictly after ``now`` whose wall-clock time is ``at``."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_weekly_run(now: datetime, weekday: int, at: time) -> datetime:
    """Next datetime strictly after ``now`` on ``weekday`` (Monday=0) at ``at``."""
    candidate = now.replace(hour=at.hour, minute=at.minute, second=0, microsecond=0)
    candidate += timedelta(days=(weekday - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate
