"""
Series Index
============

Secondary index from (category, calendar date) to the events touching
that date, ordered by (arrival_timestamp, event_id).

The index is DERIVED: it can always be rebuilt from the event log.
It is not thread-safe on its own; the event log guards it with its
append lock.
"""

from __future__ import annotations
from bisect import insort
from collections import defaultdict
from datetime import date, datetime
from typing import Dict, Iterable, List, Tuple

from ..contracts.temporal import EventId, UpdateEvent

SeriesKey = Tuple[str, date]
IndexKey = Tuple[datetime, int]


class SeriesIndex:
    """(category, date) -> ordered (arrival, event id) keys."""

    def __init__(self):
        self._series: Dict[SeriesKey, List[IndexKey]] = {}
        self._dates: Dict[str, set] = defaultdict(set)

    @classmethod
    def from_events(cls, events: Iterable[UpdateEvent]) -> SeriesIndex:
        index = cls()
        for event in events:
            index.insert(event)
        return index

    def insert(self, event: UpdateEvent) -> Tuple[date, ...]:
        """
        Insert the event under every date its entries touch.

        Binary-search insertion keeps each list ordered even when an
        arrival timestamp is earlier than ones already indexed.
        Returns the touched dates.
        """
        touched = event.touched_dates()
        key = (event.arrival_timestamp, event.event_id.value)
        for day in touched:
            series_key = (event.category, day)
            keys = self._series.get(series_key)
            if keys is None:
                keys = []
                self._series[series_key] = keys
            insort(keys, key)
            self._dates[event.category].add(day)
        return touched

    def events_for(self, category: str, day: date) -> Tuple[EventId, ...]:
        keys = self._series.get((category, day), ())
        return tuple(EventId(event_id) for _, event_id in keys)

    def size(self, category: str, day: date) -> int:
        return len(self._series.get((category, day), ()))

    def dates_for(self, category: str) -> Tuple[date, ...]:
        return tuple(sorted(self._dates.get(category, ())))

    def categories(self) -> Tuple[str, ...]:
        return tuple(sorted(c for c, days in self._dates.items() if days))

    def __len__(self) -> int:
        return len(self._series)
