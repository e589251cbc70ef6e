"""
Interval Calendar
=================

Maps a UTC calendar date to its 96 canonical quarter-hour instants.

Every date is a UTC day, so every day has exactly 96 intervals.
Pure functions, no state.
"""

from __future__ import annotations
from datetime import date, datetime, time, timedelta, timezone
from functools import lru_cache
from typing import Tuple

from ..contracts.base import ErrorCode, ValidationError

INTERVAL = timedelta(minutes=15)
INTERVALS_PER_DAY = 96


@lru_cache(maxsize=1024)
def canonical_instants(day: date) -> Tuple[datetime, ...]:
    """The 96 UTC instants of ``day``, 15 minutes apart from 00:00:00Z."""
    if isinstance(day, datetime):
        day = day.date()
    start = datetime.combine(day, time(0, 0), tzinfo=timezone.utc)
    return tuple(start + INTERVAL * i for i in range(INTERVALS_PER_DAY))


def is_aligned(instant: datetime) -> bool:
    """True when the instant falls exactly on a quarter-hour boundary."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return (
        instant.minute % 15 == 0
        and instant.second == 0
        and instant.microsecond == 0
    )


def calendar_date_of(instant: datetime) -> date:
    """UTC calendar date of an instant (naive instants are taken as UTC)."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return instant.date()


def coerce_date(value: object) -> date:
    """Accept a date, a datetime (its UTC date) or a YYYY-MM-DD string."""
    if isinstance(value, datetime):
        return calendar_date_of(value)
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            pass
    raise ValidationError(
        f"Malformed calendar date: {value!r}", ErrorCode.INVALID_QUERY, date=repr(value)
    )


def interval_index(instant: datetime) -> int:
    """Position 0..95 of an aligned instant within its day."""
    if instant.tzinfo is not None:
        instant = instant.astimezone(timezone.utc)
    return (instant.hour * 60 + instant.minute) // 15
