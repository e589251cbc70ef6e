"""
Temporal Layer
==============

Event-sourced storage and reconstruction of quarter-hour series.

INVARIANTS:
- All series are derived from the append-only event log
- No mutation of stored events
- Same log prefix -> same reconstructed series (deterministic)
- Snapshots are an optimization only

Modules:
- calendar: the 96 canonical UTC instants of a day
- clock: injectable logical clock
- event_log: append-only event storage
- series_index: (category, date) -> ordered event references
- merge: the last-non-absent-write-wins fold
- snapshots: materialized folds and staleness
- reconstruction: point-in-time series queries
"""

from .calendar import INTERVAL, INTERVALS_PER_DAY, canonical_instants, is_aligned
from .clock import ClockExhausted, LogicalClock
from .event_log import EventLog, LogState, validate_update
from .series_index import SeriesIndex
from .snapshots import SnapshotCache, SnapshotConfig, SnapshotEntry, SnapshotMaterializer
from .reconstruction import ReconstructionEngine

__all__ = [
    'INTERVAL',
    'INTERVALS_PER_DAY',
    'canonical_instants',
    'is_aligned',
    'ClockExhausted',
    'LogicalClock',
    'EventLog',
    'LogState',
    'validate_update',
    'SeriesIndex',
    'SnapshotCache',
    'SnapshotConfig',
    'SnapshotEntry',
    'SnapshotMaterializer',
    'ReconstructionEngine',
]
