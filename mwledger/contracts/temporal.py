"""
Temporal Contracts
==================

Immutable records stored in the event log and the derived series shapes
returned by reconstruction.

INVARIANTS:
- An UpdateEvent is never modified after creation
- Event identity is a monotonically assigned integer (EventId)
- Events form a hash chain for integrity verification
- A ReconstructedSeries always holds exactly one point per quarter-hour
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Iterator, Mapping, Optional, Tuple
import hashlib

from .base import ErrorCode, Timestamp, ValidationError


ZERO = Decimal("0.00")


@dataclass(frozen=True, order=True)
class EventId:
    """
    Immutable position in the log.
    EventId(0) is the empty-log sentinel; real events start at 1.
    """
    value: int

    def next(self) -> EventId:
        return EventId(self.value + 1)


def coerce_value(raw: object) -> Optional[Decimal]:
    """
    Parse a measurement value.

    None stays None (absent). Floats go through str() so 1.1 stays 1.1.
    Raises ValidationError for non-numeric, non-finite or negative input.
    """
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ValidationError(
            f"Malformed value: {raw!r}", ErrorCode.MALFORMED_VALUE, value=repr(raw)
        )
    try:
        if isinstance(raw, Decimal):
            value = raw
        elif isinstance(raw, (int, float, str)):
            value = Decimal(str(raw).strip())
        else:
            raise TypeError(type(raw).__name__)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(
            f"Malformed value: {raw!r}", ErrorCode.MALFORMED_VALUE, value=repr(raw)
        )

    if not value.is_finite():
        raise ValidationError(
            f"Value must be finite: {raw!r}", ErrorCode.MALFORMED_VALUE, value=repr(raw)
        )
    if value < 0:
        raise ValidationError(
            f"Value must be non-negative: {value}", ErrorCode.NEGATIVE_VALUE, value=str(value)
        )
    if value.is_zero() and value.is_signed():
        value = value.copy_abs()
    return value


@dataclass(frozen=True)
class SeriesEntry:
    """One (instant, value) pair of an update. value=None means absent."""
    instant: datetime
    value: Optional[Decimal] = None

    @property
    def is_present(self) -> bool:
        return self.value is not None

    @staticmethod
    def coerce(raw: object) -> SeriesEntry:
        """
        Accept a SeriesEntry, a (value, instant) pair or a mapping with
        'value' and 'instant' keys. Instants are normalized to UTC.
        """
        if isinstance(raw, SeriesEntry):
            instant, value = raw.instant, raw.value
        elif isinstance(raw, Mapping):
            if 'instant' not in raw:
                raise ValidationError(
                    "Entry is missing 'instant'", ErrorCode.MALFORMED_PAYLOAD, entry=repr(raw)
                )
            instant, value = raw['instant'], raw.get('value')
        elif isinstance(raw, (tuple, list)) and len(raw) == 2:
            value, instant = raw
        else:
            raise ValidationError(
                f"Malformed entry: {raw!r}", ErrorCode.MALFORMED_PAYLOAD, entry=repr(raw)
            )

        return SeriesEntry(
            instant=Timestamp.coerce(instant).value,
            value=coerce_value(value)
        )

    def canonical(self) -> str:
        rendered = '~' if self.value is None else str(self.value)
        return f"{Timestamp(self.instant).to_iso()}={rendered}"


@dataclass(frozen=True)
class UpdateEvent:
    """
    Immutable update event.

    INVARIANTS:
    - Once written, never modified
    - arrival_timestamp is assigned by the log, never by the client
    - Events form a hash chain (previous_hash -> entry_hash)
    """
    event_id: EventId
    category: str
    arrival_timestamp: datetime
    entries: Tuple[SeriesEntry, ...]
    previous_hash: str = ""
    entry_hash: str = ""

    @staticmethod
    def compute_hash(
        event_id: EventId,
        category: str,
        arrival_timestamp: datetime,
        entries: Tuple[SeriesEntry, ...],
        previous_hash: str
    ) -> str:
        hash_content = (
            f"{event_id.value}|"
            f"{category}|"
            f"{Timestamp(arrival_timestamp).to_iso()}|"
            f"{';'.join(e.canonical() for e in entries)}|"
            f"{previous_hash}"
        )
        return hashlib.sha256(hash_content.encode('utf-8')).hexdigest()

    @staticmethod
    def create(
        event_id: EventId,
        category: str,
        arrival_timestamp: datetime,
        entries: Tuple[SeriesEntry, ...],
        previous_hash: str
    ) -> UpdateEvent:
        """Factory for deterministic event creation."""
        return UpdateEvent(
            event_id=event_id,
            category=category,
            arrival_timestamp=arrival_timestamp,
            entries=entries,
            previous_hash=previous_hash,
            entry_hash=UpdateEvent.compute_hash(
                event_id, category, arrival_timestamp, entries, previous_hash
            )
        )

    def verify_hash(self) -> bool:
        return self.entry_hash == UpdateEvent.compute_hash(
            self.event_id, self.category, self.arrival_timestamp,
            self.entries, self.previous_hash
        )

    @property
    def sort_key(self) -> Tuple[datetime, int]:
        """Replay order: arrival first, event id as tiebreaker."""
        return (self.arrival_timestamp, self.event_id.value)

    def touched_dates(self) -> Tuple[date, ...]:
        return tuple(sorted({e.instant.date() for e in self.entries}))


@dataclass(frozen=True)
class SeriesPoint:
    """
    One reconstructed quarter-hour.
    reported is False when no event ever supplied a value (default 0.00).
    """
    instant: datetime
    value: Decimal = ZERO
    reported: bool = False


@dataclass(frozen=True)
class ReconstructedSeries:
    """
    The 96-point series of one (category, date) as of a cutoff.

    cutoff=None means "everything in the log at query time".
    events_applied, events_replayed and snapshot_used describe how the
    result was obtained and are excluded from equality.
    """
    category: str
    date: date
    cutoff: Optional[datetime]
    points: Tuple[SeriesPoint, ...]
    events_applied: int = field(default=0, compare=False)
    events_replayed: int = field(default=0, compare=False)
    snapshot_used: bool = field(default=False, compare=False)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[SeriesPoint]:
        return iter(self.points)

    def values(self) -> Tuple[Decimal, ...]:
        return tuple(p.value for p in self.points)

    def as_pairs(self) -> Tuple[Tuple[datetime, Decimal], ...]:
        return tuple((p.instant, p.value) for p in self.points)

    def point_at(self, instant: datetime) -> SeriesPoint:
        target = Timestamp.coerce(instant).value
        for point in self.points:
            if point.instant == target:
                return point
        raise KeyError(instant)

    def value_at(self, instant: datetime) -> Decimal:
        return self.point_at(instant).value


@dataclass(frozen=True)
class Revision:
    """One event that set a value at an instant."""
    event_id: EventId
    arrival_timestamp: datetime
    value: Decimal


@dataclass(frozen=True)
class RevisionHistory:
    """Every present write to one instant, in replay order."""
    category: str
    instant: datetime
    revisions: Tuple[Revision, ...]

    def value_as_of(self, cutoff: datetime) -> Decimal:
        current = ZERO
        for revision in self.revisions:
            if revision.arrival_timestamp > cutoff:
                break
            current = revision.value
        return current
