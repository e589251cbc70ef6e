"""
Megawatt Series Ledger

This package records quarter-hour megawatt measurements per category as an
append-only event log and reconstructs any (category, date) series as it
looked at any past instant. Each layer communicates only through explicit
contracts, never through shared mutable state.

LAYER STRUCTURE:
================

1. CONTRACTS (contracts/)
   - Responsibility: Immutable data types and the error model
   - Outputs: UpdateEvent, ReconstructedSeries, Error, LedgerError
   - MUST NOT: Hold state or perform I/O

2. TEMPORAL LAYER (temporal/)
   - Responsibility: Event log, series index, fold, snapshots, reconstruction
   - Allowed inputs: Validated updates, (category, date, cutoff) queries
   - Outputs: EventId, ReconstructedSeries
   - MUST NOT: Mutate or delete a stored event

3. STORAGE LAYER (storage/)
   - Responsibility: Durable append-only persistence of events
   - Allowed inputs: UpdateEvent from the event log
   - MUST NOT: Interpret events or decide ordering

4. QUERY PRIMITIVES (query/)
   - Responsibility: Sum, average, count and peak over one series
   - MUST NOT: Read the log or the cache

5. OBSERVABILITY & AUDIT LAYER (observability/)
   - Responsibility: Audit trail and metrics
   - MUST NOT: Modify system behavior

6. API ADAPTER (api/)
   - Responsibility: HTTP ingestion, query and reporting over SeriesLedger
   - MUST NOT: Contain business logic

CONSTRAINTS ENFORCED:
=====================
- Immutability-first: events are frozen and never rewritten
- Append-only: the log is the only source of truth
- Deterministic: the same log prefix and cutoff give the same series
- Explicit errors: every rejection carries an ErrorCode
- All instants are UTC
"""

from .contracts.base import (
    CategoryError, Error, ErrorCode, LedgerError, StorageError, Timestamp,
    ValidationError
)
from .contracts.temporal import (
    EventId, ReconstructedSeries, SeriesEntry, SeriesPoint, UpdateEvent
)
from .engine import LedgerConfig, SeriesLedger
from .temporal.clock import LogicalClock

__version__ = "0.1.0"

__all__ = [
    'CategoryError',
    'Error',
    'ErrorCode',
    'LedgerError',
    'StorageError',
    'Timestamp',
    'ValidationError',
    'EventId',
    'ReconstructedSeries',
    'SeriesEntry',
    'SeriesPoint',
    'UpdateEvent',
    'LedgerConfig',
    'SeriesLedger',
    'LogicalClock',
]
