"""Calendar windows (day, ISO week, month) used to credit task deposits."""

from __future__ import annotations

import calendar
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo

from vice_bank.errors import InvalidInputError
from vice_bank.schema import Frequency

_ONE_TICK = timedelta(microseconds=1)


@dataclass(frozen=True)
class Window:
    """Inclusive ``[start, end]`` span of one frequency window."""

    start: datetime
    end: datetime

    def contains(self, timestamp: datetime) -> bool:
        return self.start <= timestamp <= self.end


def ensure_aware(timestamp: object, zone: tzinfo | None = None) -> datetime:
    """Reject anything that is not a timezone-aware datetime.

    With ``zone`` the timestamp is also converted to it, so that windows of
    deposits entered from different offsets line up.
    """

    if not isinstance(timestamp, datetime):
        raise InvalidInputError(f"Invalid timestamp: {timestamp!r}", ["date"])
    if timestamp.tzinfo is None or timestamp.utcoffset() is None:
        raise InvalidInputError(f"Timestamp must be timezone-aware: {timestamp.isoformat()}", ["date"])
    if zone is not None:
        return timestamp.astimezone(zone)
    return timestamp


def _first_day(day: date, frequency: Frequency) -> date:
    if frequency is Frequency.DAILY:
        return day
    if frequency is Frequency.WEEKLY:
        return day - timedelta(days=day.weekday())
    return day.replace(day=1)


def _next_first_day(first: date, frequency: Frequency) -> date:
    if frequency is Frequency.DAILY:
        return first + timedelta(days=1)
    if frequency is Frequency.WEEKLY:
        return first + timedelta(days=7)
    _, days_in_month = calendar.monthrange(first.year, first.month)
    return first + timedelta(days=days_in_month)


def window_for(timestamp: datetime, frequency: Frequency | str) -> Window:
    """Return the window of ``frequency`` that contains ``timestamp``.

    Both bounds are wall-clock times in the timestamp's own timezone; the end
    is one microsecond before the following window starts.
    """

    timestamp = ensure_aware(timestamp)
    frequency = Frequency.parse(frequency)
    zone = timestamp.tzinfo

    first = _first_day(timestamp.date(), frequency)
    following = _next_first_day(first, frequency)

    start = datetime.combine(first, time.min, tzinfo=zone)
    end = datetime.combine(following, time.min, tzinfo=zone) - _ONE_TICK
    return Window(start=start, end=end)
