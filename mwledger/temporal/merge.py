"""
Merge Policy
============

Folds update events into the 96 quarter-hour values of one day.

RULE: last non-absent write wins, in replay order.
- A present value overwrites whatever was there
- An absent value never overwrites
- Instants outside the day being folded are ignored

The fold is associative over the replay order, which is what lets a
snapshot (a fold of a prefix) seed the fold of the remaining suffix.
"""

from __future__ import annotations
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from ..contracts.temporal import ZERO, SeriesPoint, UpdateEvent
from .calendar import INTERVALS_PER_DAY, calendar_date_of, canonical_instants, interval_index


class SeriesState:
    """Mutable accumulator for one (category, day) fold."""

    def __init__(self, day: date, points: Optional[Sequence[SeriesPoint]] = None):
        self.day = day
        self._instants = canonical_instants(day)
        self._values: List[Decimal] = [ZERO] * INTERVALS_PER_DAY
        self._reported: List[bool] = [False] * INTERVALS_PER_DAY
        self.events_applied = 0

        if points is not None:
            if len(points) != INTERVALS_PER_DAY:
                raise ValueError(f"Expected {INTERVALS_PER_DAY} points, got {len(points)}")
            for i, point in enumerate(points):
                self._values[i] = point.value
                self._reported[i] = point.reported

    def apply(self, event: UpdateEvent) -> None:
        for entry in event.entries:
            if entry.value is None:
                continue
            if calendar_date_of(entry.instant) != self.day:
                continue
            i = interval_index(entry.instant)
            self._values[i] = entry.value
            self._reported[i] = True
        self.events_applied += 1

    def to_points(self) -> Tuple[SeriesPoint, ...]:
        return tuple(
            SeriesPoint(instant=instant, value=value, reported=reported)
            for instant, value, reported in zip(self._instants, self._values, self._reported)
        )


def fold(day: date, events: Iterable[UpdateEvent]) -> SeriesState:
    """Fold events (already in replay order) from the all-default state."""
    state = SeriesState(day)
    for event in events:
        state.apply(event)
    return state
