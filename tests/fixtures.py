"""
Shared Test Fixtures

Fixed instants and small factories for deterministic testing.
All fixtures are explicit - arrival times always come from a replay clock.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Iterable, List, Optional

from mwledger.engine import LedgerConfig, SeriesLedger
from mwledger.storage import StorageBackend
from mwledger.temporal.clock import LogicalClock
from mwledger.temporal.event_log import EventLog
from mwledger.temporal.snapshots import SnapshotConfig


# =============================================================================
# FIXED INSTANTS (deterministic)
# =============================================================================

DAY = date(2024, 1, 1)
NEXT_DAY = date(2024, 1, 2)

T1 = datetime(2024, 1, 1, 8, 0, 0, tzinfo=timezone.utc)
T2 = datetime(2024, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
T3 = datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    """A UTC instant on ``day``."""
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def arrivals(count: int, start: datetime = T1, step: timedelta = timedelta(minutes=1)) -> List[datetime]:
    return [start + step * i for i in range(count)]


# =============================================================================
# FACTORIES
# =============================================================================

def make_log(ticks: Iterable[datetime], storage: Optional[StorageBackend] = None) -> EventLog:
    return EventLog(storage=storage, clock=LogicalClock.from_ticks(ticks))


def make_ledger(
    ticks: Iterable[datetime],
    snapshots: Optional[SnapshotConfig] = None,
    storage: Optional[StorageBackend] = None,
    executor=None
) -> SeriesLedger:
    return SeriesLedger(
        config=LedgerConfig(snapshots=snapshots),
        clock=LogicalClock.from_ticks(ticks),
        storage=storage,
        executor=executor
    )


def scenario_entries():
    """The first update of the consumption scenario: (value, instant) pairs."""
    return [
        ("1.25", at(6, 0)),
        (None, at(6, 15)),
        ("1.30", at(6, 30)),
    ]
