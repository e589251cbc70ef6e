"""
Engine Orchestration Module

This module provides the unified interface for coordinating the ledger
layers while maintaining strict boundary separation.

DESIGN PRINCIPLES:
==================
1. Layers communicate ONLY through contracts
2. The event log is the single writer; everything else is derived
3. All operations are traceable through observability
4. Snapshot upkeep never delays or fails an append
"""

from __future__ import annotations
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Tuple
import logging
import os
import time

from .contracts.base import Error, ErrorCode, LedgerError
from .contracts.events import AuditEventType
from .contracts.temporal import EventId, ReconstructedSeries, RevisionHistory, UpdateEvent
from .observability import ObservabilityConfig, ObservabilityEngine
from .query import SeriesSummary, summarize
from .storage import StorageBackend, StorageConfig, create_backend
from .temporal.calendar import coerce_date
from .temporal.clock import LogicalClock
from .temporal.event_log import EventLog
from .temporal.reconstruction import ReconstructionEngine
from .temporal.snapshots import CacheStats, SnapshotCache, SnapshotConfig, SnapshotMaterializer

logger = logging.getLogger(__name__)

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _env_flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


def _env_int(environ: Mapping[str, str], name: str, default: int) -> int:
    raw = environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


@dataclass
class LedgerConfig:
    """Unified configuration for the entire ledger."""
    storage: StorageConfig = None
    snapshots: SnapshotConfig = None
    observability: ObservabilityConfig = None

    def __post_init__(self):
        self.storage = self.storage or StorageConfig()
        self.snapshots = self.snapshots or SnapshotConfig()
        self.observability = self.observability or ObservabilityConfig()

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> LedgerConfig:
        """
        Build a configuration from MWL_* environment variables.

        MWL_STORAGE_BACKEND          memory | file (default memory)
        MWL_STORAGE_DIR              directory of events.jsonl (file backend)
        MWL_FSYNC                    fsync every append (default off)
        MWL_SNAPSHOTS_ENABLED        default on
        MWL_SNAPSHOT_INTERVAL        new events per series between snapshots
        MWL_SNAPSHOT_MAX_PER_SERIES  snapshots kept per series
        MWL_METRICS_ENABLED          default on
        """
        env = os.environ if environ is None else environ

        backend_type = env.get("MWL_STORAGE_BACKEND", "memory").strip().lower() or "memory"
        storage_dir = env.get("MWL_STORAGE_DIR") or None
        if backend_type == "file" and storage_dir is None:
            storage_dir = os.path.join(os.getcwd(), "data", "events")

        defaults = SnapshotConfig()
        return cls(
            storage=StorageConfig(
                backend_type=backend_type,
                storage_dir=storage_dir,
                fsync=_env_flag(env, "MWL_FSYNC", False),
            ),
            snapshots=SnapshotConfig(
                enabled=_env_flag(env, "MWL_SNAPSHOTS_ENABLED", defaults.enabled),
                interval=_env_int(env, "MWL_SNAPSHOT_INTERVAL", defaults.interval),
                max_entries_per_series=_env_int(
                    env, "MWL_SNAPSHOT_MAX_PER_SERIES", defaults.max_entries_per_series
                ),
            ),
            observability=ObservabilityConfig(
                enable_metrics=_env_flag(env, "MWL_METRICS_ENABLED", True),
            ),
        )


class SeriesLedger:
    """
    Unified facade over the megawatt series ledger.

    LAYER FLOW:
    ===========
    1. Append: validated update -> EventLog (storage + index, one lock)
    2. Snapshot upkeep: after the lock, inline or on an injected executor
    3. Reconstruct: ordered index view -> snapshot seed -> replay to cutoff
    4. Summarize: aggregation primitives over a reconstructed series
    5. Observability: records activity of every layer

    NO LAYER BYPASSES THIS FLOW.
    """

    def __init__(
        self,
        config: Optional[LedgerConfig] = None,
        clock: Optional[LogicalClock] = None,
        storage: Optional[StorageBackend] = None,
        executor: Optional[Executor] = None
    ):
        self._config = config or LedgerConfig()
        self._observability = ObservabilityEngine(self._config.observability)

        self._storage = storage if storage is not None else create_backend(self._config.storage)
        self._log = EventLog(self._storage, clock)

        self._cache = SnapshotCache(self._config.snapshots)
        self._log.add_listener(self._cache.on_event)
        self._materializer = SnapshotMaterializer(self._log, self._cache)
        self._reconstruction = ReconstructionEngine(self._log, self._cache)
        self._executor = executor

        self._observability.log_audit(
            "ledger_started", AuditEventType.SYSTEM, layer="engine",
            backend=self._config.storage.backend_type,
            events=len(self._log),
            snapshots=self._config.snapshots.enabled
        )

    # =========================================================================
    # INGESTION INTERFACE
    # =========================================================================

    def append(self, category: str, entries: Iterable[object]) -> EventId:
        """
        Append one update event.

        Raises ValidationError, CategoryError or StorageError; nothing is
        stored when it raises.
        """
        try:
            event_id = self._log.append(category, entries)
        except LedgerError as e:
            self._observability.collect_metric(
                "append_rejections_total", 1.0, {"error_code": e.code.name}
            )
            self._observability.log_audit(
                "append_rejected", AuditEventType.ERROR, layer="log",
                category=category, error_code=e.code.name
            )
            raise

        event = self._log.get_event(event_id)
        self._observability.collect_metric(
            "events_appended_total", 1.0, {"category": category}
        )
        self._observability.log_audit(
            "event_appended", AuditEventType.INGESTION,
            entity_id=str(event_id.value), layer="log",
            category=category, entries=len(event.entries)
        )
        self._collect_cache_gauges()
        self._schedule_materialization(category, event.touched_dates())
        return event_id

    # =========================================================================
    # SNAPSHOT UPKEEP
    # =========================================================================

    def _schedule_materialization(self, category: str, days: Tuple[date, ...]) -> None:
        if not self._config.snapshots.enabled or not days:
            return
        if self._executor is not None:
            self._executor.submit(self._materialize_pending, category, days)
        else:
            self._materialize_pending(category, days)

    def _materialize_pending(self, category: str, days: Tuple[date, ...]) -> int:
        stored = 0
        for day in days:
            failures = self._materializer.failure_count
            entry = self._materializer.maybe_materialize(category, day)
            stored += self._record_materialization(category, day, entry is not None, failures)
        return stored

    def _record_materialization(
        self,
        category: str,
        day: date,
        stored: bool,
        failures_before: int
    ) -> int:
        if self._materializer.failure_count > failures_before:
            self._observability.collect_metric(
                "snapshot_failures_total",
                float(self._materializer.failure_count - failures_before)
            )
            self._observability.log_audit(
                "snapshot_failed", AuditEventType.ERROR, layer="cache",
                entity_id=f"{category}/{day.isoformat()}",
                error_code=self._materializer.last_error.code.name
            )
        if not stored:
            return 0
        self._observability.collect_metric("snapshot_materializations_total", 1.0)
        self._observability.log_audit(
            "snapshot_stored", AuditEventType.CACHE, layer="cache",
            entity_id=f"{category}/{day.isoformat()}"
        )
        return 1

    def materialize_snapshots(
        self,
        category: Optional[str] = None,
        day: Optional[object] = None
    ) -> int:
        """
        Materialize snapshots now, e.g. from a periodic timer.

        Covers every indexed series unless narrowed by category and/or day.
        Returns the number of snapshots stored. Never raises for cache
        failures.
        """
        if not self._config.snapshots.enabled:
            return 0

        target_day = coerce_date(day) if day is not None else None
        categories = (category,) if category is not None else self._log.categories()

        stored = 0
        for cat in categories:
            days = (target_day,) if target_day is not None else self._log.dates_for(cat)
            for d in days:
                failures = self._materializer.failure_count
                entry = self._materializer.materialize(cat, d)
                stored += self._record_materialization(cat, d, entry is not None, failures)

        logger.info("Materialized %d snapshots", stored)
        return stored

    def _collect_cache_gauges(self) -> None:
        self._observability.collect_metric(
            "snapshot_invalidations_total",
            float(self._cache.stats().invalidation_count)
        )

    # =========================================================================
    # QUERY INTERFACE
    # =========================================================================

    def reconstruct(
        self,
        category: str,
        day: object,
        cutoff: Optional[object] = None
    ) -> ReconstructedSeries:
        """The 96-point series of (category, day) as of cutoff (None = latest)."""
        started = time.perf_counter()
        series = self._reconstruction.reconstruct(category, day, cutoff)
        elapsed_ms = (time.perf_counter() - started) * 1000

        self._observability.collect_metric("reconstruct_duration_ms", elapsed_ms)
        self._observability.collect_metric("replayed_events", float(series.events_replayed))
        if self._config.snapshots.enabled:
            self._observability.collect_metric(
                "snapshot_hits_total" if series.snapshot_used else "snapshot_misses_total", 1.0
            )
        self._observability.log_audit(
            "series_reconstructed", AuditEventType.QUERY, layer="engine",
            entity_id=f"{category}/{series.date.isoformat()}",
            cutoff=series.cutoff.isoformat() if series.cutoff else "latest",
            replayed=series.events_replayed,
            snapshot=series.snapshot_used
        )
        return series

    def summarize(
        self,
        category: str,
        day: object,
        cutoff: Optional[object] = None
    ) -> SeriesSummary:
        """Aggregates of the reconstructed series."""
        return summarize(self.reconstruct(category, day, cutoff))

    def revisions(self, category: str, instant: object) -> RevisionHistory:
        """Every value ever written to one instant, in replay order."""
        return self._reconstruction.revisions(category, instant)

    def get_event(self, event_id: EventId) -> Optional[UpdateEvent]:
        return self._log.get_event(event_id)

    def read_events_after(self, event_id: Optional[EventId] = None) -> List[UpdateEvent]:
        return self._log.read_events_after(event_id)

    def categories(self) -> Tuple[str, ...]:
        return self._log.categories()

    def dates_for(self, category: str) -> Tuple[date, ...]:
        return self._log.dates_for(category)

    @property
    def head(self) -> EventId:
        return self._log.head

    @property
    def event_count(self) -> int:
        return len(self._log)

    # =========================================================================
    # MAINTENANCE INTERFACE
    # =========================================================================

    def verify_integrity(self) -> Tuple[bool, Optional[Error]]:
        is_valid, error = self._log.verify_integrity()
        if not is_valid:
            logger.error("Integrity check failed: %s", error.message)
            self._observability.log_audit(
                "integrity_failed", AuditEventType.ERROR, layer="log",
                error_code=ErrorCode.TIMELINE_CORRUPTION.name
            )
        return is_valid, error

    def rebuild_index(self) -> None:
        self._log.rebuild_index()
        self._observability.log_audit("index_rebuilt", AuditEventType.SYSTEM, layer="log")

    def clear_snapshots(self) -> None:
        self._cache.clear()
        self._observability.log_audit("snapshots_cleared", AuditEventType.CACHE, layer="cache")

    def cache_stats(self) -> CacheStats:
        return self._cache.stats()

    def close(self) -> None:
        self._storage.close()

    # =========================================================================
    # OBSERVABILITY INTERFACE
    # =========================================================================

    def get_audit_log(self, layers: Optional[List[str]] = None) -> List:
        """Get unified audit log."""
        return self._observability.get_unified_log(layers)

    def get_audit_report(self) -> Dict:
        return self._observability.generate_audit_report()

    def get_metrics(self):
        """Get metrics collector."""
        return self._observability.get_metrics()

    # =========================================================================
    # DIRECT LAYER ACCESS (for advanced use cases)
    # =========================================================================

    @property
    def config(self) -> LedgerConfig:
        return self._config

    @property
    def event_log(self) -> EventLog:
        """Direct access to the event log."""
        return self._log

    @property
    def snapshot_cache(self) -> SnapshotCache:
        """Direct access to the snapshot cache."""
        return self._cache

    @property
    def materializer(self) -> SnapshotMaterializer:
        return self._materializer

    @property
    def reconstruction_engine(self) -> ReconstructionEngine:
        return self._reconstruction

    @property
    def observability_layer(self) -> ObservabilityEngine:
        """Direct access to observability layer."""
        return self._observability
