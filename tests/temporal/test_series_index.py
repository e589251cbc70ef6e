"""
Series Index Tests

(category, date) -> event ids ordered by (arrival_timestamp, event_id).
"""

from decimal import Decimal

from mwledger.contracts.temporal import EventId, SeriesEntry, UpdateEvent
from mwledger.temporal.series_index import SeriesIndex

from ..fixtures import DAY, NEXT_DAY, T1, T2, T3, at


def make_event(event_id: int, arrival, *instants, category: str = "a") -> UpdateEvent:
    entries = tuple(SeriesEntry(instant, Decimal("1")) for instant in instants)
    return UpdateEvent.create(EventId(event_id), category, arrival, entries, "")


class TestSeriesIndex:

    def test_orders_by_arrival_not_id(self):
        index = SeriesIndex()
        index.insert(make_event(1, T3, at(6)))
        index.insert(make_event(2, T1, at(6)))
        index.insert(make_event(3, T2, at(6)))
        assert index.events_for("a", DAY) == (EventId(2), EventId(3), EventId(1))

    def test_equal_arrivals_order_by_id(self):
        index = SeriesIndex()
        index.insert(make_event(2, T1, at(6)))
        index.insert(make_event(1, T1, at(6)))
        assert index.events_for("a", DAY) == (EventId(1), EventId(2))

    def test_insert_returns_touched_dates(self):
        index = SeriesIndex()
        touched = index.insert(make_event(1, T1, at(6), at(7), at(1, day=NEXT_DAY)))
        assert touched == (DAY, NEXT_DAY)
        assert index.size("a", DAY) == 1
        assert index.size("a", NEXT_DAY) == 1

    def test_unknown_series_is_empty(self):
        index = SeriesIndex()
        assert index.events_for("missing", DAY) == ()
        assert index.size("missing", DAY) == 0
        assert index.dates_for("missing") == ()

    def test_dates_and_categories_are_sorted(self):
        index = SeriesIndex()
        index.insert(make_event(1, T1, at(1, day=NEXT_DAY), category="b"))
        index.insert(make_event(2, T1, at(1), category="b"))
        index.insert(make_event(3, T1, at(1), category="a"))
        assert index.categories() == ("a", "b")
        assert index.dates_for("b") == (DAY, NEXT_DAY)
        assert len(index) == 3

    def test_from_events_matches_incremental(self):
        events = [make_event(1, T2, at(6)), make_event(2, T1, at(6)), make_event(3, T3, at(7))]
        incremental = SeriesIndex()
        for event in events:
            incremental.insert(event)
        rebuilt = SeriesIndex.from_events(events)
        assert rebuilt.events_for("a", DAY) == incremental.events_for("a", DAY)
