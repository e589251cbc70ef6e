"""
Immutable Event Log
===================

Append-only storage of update events with monotonic event ids.

INVARIANTS:
- No updates or deletes - append only
- Every event has a strictly increasing event id
- Hash chain for integrity verification
- The series index is updated in the same critical section as the
  append, so readers never observe one without the other
- A failed storage write leaves both the log and the index untouched

This is the SOURCE OF TRUTH for every series.
Series are DERIVED from this log, never stored separately.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, List, Optional, Tuple
import logging
import threading

from ..contracts.base import (
    CategoryError, Error, ErrorCode, StorageError, Timestamp, ValidationError
)
from ..contracts.temporal import EventId, SeriesEntry, UpdateEvent
from ..storage import InMemoryStorageBackend, StorageBackend
from .calendar import is_aligned
from .clock import LogicalClock, ensure_clock
from .series_index import SeriesIndex

logger = logging.getLogger(__name__)

IndexListener = Callable[[UpdateEvent, Tuple[date, ...]], None]


@dataclass(frozen=True)
class LogState:
    """Immutable snapshot of log state."""
    head: EventId
    head_hash: str
    event_count: int

    @staticmethod
    def empty() -> LogState:
        return LogState(head=EventId(0), head_hash="", event_count=0)


def validate_update(category: object, entries: Iterable[object]) -> Tuple[SeriesEntry, ...]:
    """
    Validate and normalize an incoming update.

    Raises CategoryError for an empty/non-string category and
    ValidationError for any malformed, negative or misaligned entry.
    Nothing is stored when this raises.
    """
    if not isinstance(category, str) or not category:
        raise CategoryError(
            f"Category must be a non-empty string, got {category!r}",
            ErrorCode.INVALID_CATEGORY
        )
    if entries is None or isinstance(entries, (str, bytes)):
        raise ValidationError(
            "Entries must be a sequence", ErrorCode.MALFORMED_PAYLOAD
        )

    normalized = []
    for position, raw in enumerate(entries):
        entry = SeriesEntry.coerce(raw)
        if not is_aligned(entry.instant):
            raise ValidationError(
                f"Instant {Timestamp(entry.instant).to_iso()} is not on a 15-minute boundary",
                ErrorCode.MISALIGNED_INSTANT,
                position=position
            )
        normalized.append(entry)
    return tuple(normalized)


class EventLog:
    """
    Append-only event log.

    GUARANTEES:
    ===========
    1. NO updates - events are immutable once written
    2. NO deletes - log only grows
    3. Atomic - an event is persisted, stored and indexed, or not at all
    4. Verifiable - hash chain ensures integrity

    The clock and the storage backend are injected.
    """

    def __init__(
        self,
        storage: Optional[StorageBackend] = None,
        clock: Optional[LogicalClock] = None
    ):
        self._storage = storage if storage is not None else InMemoryStorageBackend()
        self._clock = ensure_clock(clock)
        self._lock = threading.RLock()

        # Arena: event id N lives at position N - 1
        self._events: List[UpdateEvent] = []
        self._head = EventId(0)
        self._head_hash = ""

        # Derived, not authoritative
        self._index = SeriesIndex()
        self._listeners: List[IndexListener] = []

        self._hydrate()

    # =========================================================================
    # WRITE PATH
    # =========================================================================

    def append(self, category: str, entries: Iterable[object]) -> EventId:
        """
        Append an update to the log.

        This is the ONLY write operation.
        """
        normalized = validate_update(category, entries)

        with self._lock:
            event_id = self._head.next()
            arrival = Timestamp.coerce(self._clock.now()).value

            event = UpdateEvent.create(
                event_id=event_id,
                category=category,
                arrival_timestamp=arrival,
                entries=normalized,
                previous_hash=self._head_hash
            )

            try:
                self._storage.append(event)
            except StorageError:
                raise
            except Exception as e:
                raise StorageError(
                    f"Storage backend failed: {e}",
                    ErrorCode.STORAGE_FAILURE,
                    event_id=event_id.value
                ) from e

            self._commit(event)

        logger.debug(
            "Appended event %d to %r (%d entries)",
            event_id.value, category, len(normalized)
        )
        return event_id

    def _commit(self, event: UpdateEvent) -> None:
        """Make a persisted event visible. Caller holds the lock."""
        self._events.append(event)
        self._head = event.event_id
        self._head_hash = event.entry_hash

        touched = self._index.insert(event)

        for listener in self._listeners:
            try:
                listener(event, touched)
            except Exception:
                # Listeners maintain derived state only
                logger.warning(
                    "Index listener failed for event %d", event.event_id.value,
                    exc_info=True
                )

    def add_listener(self, listener: IndexListener) -> None:
        """Register a callback invoked inside the append critical section."""
        with self._lock:
            self._listeners.append(listener)

    # =========================================================================
    # HYDRATION
    # =========================================================================

    def _hydrate(self) -> None:
        loaded = 0
        for event in self._storage.iter_events():
            self._load_verified(event)
            loaded += 1
        if loaded:
            logger.info("Hydrated %d events from storage (head=%d)", loaded, self._head.value)

    def _load_verified(self, event: UpdateEvent) -> None:
        """
        Load an existing event from storage.

        VERIFIES:
        1. Event id is the next in line
        2. Previous hash matches current head
        3. Entry hash is valid for its content
        """
        expected = self._head.next()
        if event.event_id != expected:
            raise StorageError(
                f"Invalid event id on load: expected {expected.value}, got {event.event_id.value}",
                ErrorCode.TIMELINE_CORRUPTION
            )
        if event.previous_hash != self._head_hash:
            raise StorageError(
                f"Broken hash chain at event {event.event_id.value}",
                ErrorCode.TIMELINE_CORRUPTION
            )
        if not event.verify_hash():
            raise StorageError(
                f"Corrupt event {event.event_id.value}: hash mismatch",
                ErrorCode.TIMELINE_CORRUPTION
            )
        self._commit(event)

    # =========================================================================
    # READ PATH
    # =========================================================================

    @property
    def state(self) -> LogState:
        with self._lock:
            return LogState(
                head=self._head,
                head_hash=self._head_hash,
                event_count=len(self._events)
            )

    @property
    def head(self) -> EventId:
        return self._head

    @property
    def clock(self) -> LogicalClock:
        return self._clock

    def __len__(self) -> int:
        return len(self._events)

    def get_event(self, event_id: EventId) -> Optional[UpdateEvent]:
        with self._lock:
            if event_id.value < 1 or event_id.value > len(self._events):
                return None
            return self._events[event_id.value - 1]

    def read_events_after(self, event_id: Optional[EventId] = None) -> List[UpdateEvent]:
        """Events with id strictly greater than event_id, in id order."""
        floor = event_id.value if event_id else 0
        with self._lock:
            return list(self._events[max(floor, 0):])

    def events_for(self, category: str, day: date) -> Tuple[EventId, ...]:
        with self._lock:
            return self._index.events_for(category, day)

    def indexed_events(self, category: str, day: date) -> Tuple[UpdateEvent, ...]:
        """
        Point-in-time view of the events touching (category, day),
        ordered by (arrival_timestamp, event_id).
        """
        with self._lock:
            return tuple(
                self._events[event_id.value - 1]
                for event_id in self._index.events_for(category, day)
            )

    def index_size(self, category: str, day: date) -> int:
        with self._lock:
            return self._index.size(category, day)

    def categories(self) -> Tuple[str, ...]:
        with self._lock:
            return self._index.categories()

    def dates_for(self, category: str) -> Tuple[date, ...]:
        with self._lock:
            return self._index.dates_for(category)

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def rebuild_index(self) -> None:
        """Rebuild the series index from the arena and swap it in."""
        with self._lock:
            self._index = SeriesIndex.from_events(self._events)
        logger.info("Rebuilt series index over %d events", len(self._events))

    def verify_integrity(self) -> Tuple[bool, Optional[Error]]:
        """
        Verify hash chain integrity.

        Returns (is_valid, error) tuple.
        """
        with self._lock:
            events = list(self._events)

        expected_previous = ""
        for event in events:
            if event.previous_hash != expected_previous or not event.verify_hash():
                return (False, Error.create(
                    ErrorCode.TIMELINE_CORRUPTION,
                    f"Hash chain broken at event {event.event_id.value}",
                    expected_hash=expected_previous,
                    actual_hash=event.previous_hash
                ))
            expected_previous = event.entry_hash

        return (True, None)
