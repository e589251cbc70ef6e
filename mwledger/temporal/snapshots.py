"""
Snapshot Cache
==============

Materialized folds of (category, date) series, used to shorten replay.

Doctrine: snapshots are optimization artifacts. They are always
rebuildable from the event log, and deleting or disabling the cache never
changes a reconstruction, only its cost.

STALENESS:
- A snapshot is keyed by its bucket: the arrival instant of the last
  event it incorporates
- An event landing with arrival <= bucket for the same series marks the
  snapshot stale (kept for inspection, excluded from lookup)
- Readers additionally check the snapshot boundary against their own
  view of the index before trusting it
"""

from __future__ import annotations
from bisect import bisect_right
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple
import logging
import threading

from ..contracts.base import Error, ErrorCode
from ..contracts.temporal import EventId, SeriesPoint, UpdateEvent
from .event_log import EventLog
from .merge import fold
from .series_index import SeriesKey

logger = logging.getLogger(__name__)


@dataclass
class SnapshotConfig:
    """Configuration for the snapshot cache."""
    enabled: bool = True
    interval: int = 32  # New events per series between materializations
    max_entries_per_series: int = 8


@dataclass(frozen=True)
class SnapshotEntry:
    """
    A folded prefix of one series.

    Immutable once created; staleness is recorded by replacement.
    """
    category: str
    date: date
    bucket: datetime
    last_event_id: EventId
    event_count: int  # Index positions folded, i.e. the suffix starts here
    points: Tuple[SeriesPoint, ...]
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stale: bool = False

    @property
    def order_key(self) -> Tuple[datetime, int]:
        return (self.bucket, self.last_event_id.value)


@dataclass(frozen=True)
class CacheStats:
    total_entries: int
    stale_entries: int
    hit_count: int
    miss_count: int
    store_count: int
    invalidation_count: int
    eviction_count: int
    rejection_count: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hit_count + self.miss_count
        return self.hit_count / total if total > 0 else 0.0


class SnapshotCache:
    """
    Per-series ordered snapshot store.

    Has its own lock and never calls into the event log, so holding it can
    never block an append.
    """

    def __init__(self, config: Optional[SnapshotConfig] = None):
        self._config = config or SnapshotConfig()
        self._lock = threading.Lock()
        self._entries: Dict[SeriesKey, List[SnapshotEntry]] = {}
        self._generations: Dict[SeriesKey, int] = {}
        self._hits = 0
        self._misses = 0
        self._stores = 0
        self._invalidations = 0
        self._evictions = 0
        self._rejections = 0
        self._last_rejection: Optional[Error] = None

    @property
    def config(self) -> SnapshotConfig:
        return self._config

    def lookup(
        self,
        category: str,
        day: date,
        cutoff: Optional[datetime] = None
    ) -> Optional[SnapshotEntry]:
        """Latest non-stale snapshot with bucket <= cutoff (any when None)."""
        with self._lock:
            for entry in reversed(self._entries.get((category, day), ())):
                if entry.stale:
                    continue
                if cutoff is None or entry.bucket <= cutoff:
                    self._hits += 1
                    return entry
            self._misses += 1
            return None

    def store(self, entry: SnapshotEntry, expected_generation: Optional[int] = None) -> bool:
        """
        Add a snapshot. Returns False (and stores nothing) when the series
        was invalidated since expected_generation was read.
        """
        key = (entry.category, entry.date)
        with self._lock:
            if (expected_generation is not None
                    and self._generations.get(key, 0) != expected_generation):
                return False

            entries = self._entries.setdefault(key, [])
            if any(e.order_key == entry.order_key and not e.stale for e in entries):
                return False
            # Ordered by (bucket, last event id)
            position = bisect_right([e.order_key for e in entries], entry.order_key)
            entries.insert(position, entry)
            self._stores += 1
            self._evict(entries)
            return True

    def _evict(self, entries: List[SnapshotEntry]) -> None:
        limit = max(self._config.max_entries_per_series, 1)
        while len(entries) > limit:
            stale = [i for i, e in enumerate(entries) if e.stale]
            del entries[stale[0] if stale else 0]
            self._evictions += 1

    def invalidate(self, category: str, day: date, arrival: datetime) -> int:
        """Mark every snapshot of the series with bucket >= arrival stale."""
        key = (category, day)
        marked = 0
        with self._lock:
            entries = self._entries.get(key)
            if not entries:
                return 0
            for i, entry in enumerate(entries):
                if not entry.stale and entry.bucket >= arrival:
                    entries[i] = replace(entry, stale=True)
                    marked += 1
            if marked:
                self._generations[key] = self._generations.get(key, 0) + 1
                self._invalidations += marked
        if marked:
            logger.debug("Marked %d snapshots of %r/%s stale", marked, category, day)
        return marked

    def mark_stale(self, entry: SnapshotEntry) -> None:
        with self._lock:
            self._mark_stale_locked(entry)

    def reject(self, entry: SnapshotEntry, reason: Error) -> None:
        """
        Mark a snapshot returned by lookup stale after the reader found it
        inconsistent. Its lookup is recounted as a miss.
        """
        with self._lock:
            self._mark_stale_locked(entry)
            self._hits = max(self._hits - 1, 0)
            self._misses += 1
            self._rejections += 1
            self._last_rejection = reason

    def _mark_stale_locked(self, entry: SnapshotEntry) -> None:
        key = (entry.category, entry.date)
        entries = self._entries.get(key, [])
        for i, existing in enumerate(entries):
            if existing.order_key == entry.order_key and not existing.stale:
                entries[i] = replace(existing, stale=True)
                self._generations[key] = self._generations.get(key, 0) + 1
                self._invalidations += 1

    @property
    def last_rejection(self) -> Optional[Error]:
        with self._lock:
            return self._last_rejection

    def on_event(self, event: UpdateEvent, touched: Tuple[date, ...]) -> None:
        """Event log listener: invalidate snapshots the new event precedes."""
        for day in touched:
            self.invalidate(event.category, day, event.arrival_timestamp)

    def generation(self, category: str, day: date) -> int:
        with self._lock:
            return self._generations.get((category, day), 0)

    def latest_event_count(self, category: str, day: date) -> int:
        with self._lock:
            counts = [e.event_count for e in self._entries.get((category, day), ()) if not e.stale]
            return max(counts) if counts else 0

    def entries(self, category: str, day: date) -> Tuple[SnapshotEntry, ...]:
        with self._lock:
            return tuple(self._entries.get((category, day), ()))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            all_entries = [e for entries in self._entries.values() for e in entries]
            return CacheStats(
                total_entries=len(all_entries),
                stale_entries=sum(1 for e in all_entries if e.stale),
                hit_count=self._hits,
                miss_count=self._misses,
                store_count=self._stores,
                invalidation_count=self._invalidations,
                eviction_count=self._evictions,
                rejection_count=self._rejections,
            )


class SnapshotMaterializer:
    """
    Builds snapshots from a consistent prefix of the log.

    Never holds the log's append lock while folding or storing, and never
    raises: failures are logged and counted.
    """

    def __init__(self, log: EventLog, cache: SnapshotCache):
        self._log = log
        self._cache = cache
        self._failures = 0
        self._last_error: Optional[Error] = None

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def last_error(self) -> Optional[Error]:
        return self._last_error

    def materialize(self, category: str, day: date) -> Optional[SnapshotEntry]:
        try:
            generation = self._cache.generation(category, day)
            view = self._log.indexed_events(category, day)
            if not view:
                return None

            state = fold(day, view)
            last = view[-1]
            entry = SnapshotEntry(
                category=category,
                date=day,
                bucket=last.arrival_timestamp,
                last_event_id=last.event_id,
                event_count=len(view),
                points=state.to_points(),
            )
            if not self._cache.store(entry, expected_generation=generation):
                logger.debug("Dropped snapshot of %r/%s (invalidated or duplicate)", category, day)
                return None
            logger.debug(
                "Materialized %r/%s at event %d (%d events)",
                category, day, last.event_id.value, len(view)
            )
            return entry
        except Exception as e:
            self._failures += 1
            self._last_error = Error.create(
                ErrorCode.SNAPSHOT_MATERIALIZATION_FAILED, str(e),
                category=category, date=day.isoformat()
            )
            logger.warning("Snapshot materialization failed for %r/%s", category, day, exc_info=True)
            return None

    def maybe_materialize(self, category: str, day: date) -> Optional[SnapshotEntry]:
        """Materialize once `interval` events accumulated since the last snapshot."""
        config = self._cache.config
        if not config.enabled or config.interval <= 0:
            return None
        pending = self._log.index_size(category, day) - self._cache.latest_event_count(category, day)
        if pending < config.interval:
            return None
        return self.materialize(category, day)
