"""
Observability & Audit Layer

RESPONSIBILITY: Audit trail and metrics for every ledger layer
ALLOWED INPUTS: Audit entries and metric points from other layers
OUTPUTS: AuditLog, Metrics

WHAT THIS LAYER MUST NOT DO:
============================
- Modify ledger behavior
- Filter or interpret events (only record them)
- Block or delay appends or reconstructions

BOUNDARY ENFORCEMENT:
=====================
- Receives immutable records only
- Provides read-only access to logs and metrics
- Bounded memory: each collector keeps the most recent entries
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Dict, List, Optional, Tuple
import hashlib
import itertools

from ..contracts.base import Timestamp
from ..contracts.events import AuditEventType, AuditLogEntry, MetricPoint


# =============================================================================
# LOG COLLECTORS (One per layer)
# =============================================================================

class LogCollector:
    """
    Append-only collector of audit entries for one layer.
    Oldest entries fall off once max_entries is reached.
    """

    def __init__(self, layer_name: str, max_entries: int = 10_000):
        self._layer_name = layer_name
        self._entries: Deque[AuditLogEntry] = deque(maxlen=max_entries)
        self._sequence: int = 0

    def collect(self, entry: AuditLogEntry):
        """Collect an audit entry (append-only)."""
        self._entries.append(entry)
        self._sequence += 1

    def get_entries(
        self,
        event_type: Optional[AuditEventType] = None,
        action: Optional[str] = None
    ) -> List[AuditLogEntry]:
        """Get entries, optionally filtered."""
        entries = list(self._entries)

        if event_type:
            entries = [e for e in entries if e.event_type == event_type]

        if action:
            entries = [e for e in entries if e.action == action]

        return entries

    @property
    def layer_name(self) -> str:
        return self._layer_name

    @property
    def entry_count(self) -> int:
        """Total entries ever collected (including dropped ones)."""
        return self._sequence


# =============================================================================
# METRICS COLLECTOR
# =============================================================================

class MetricType(Enum):
    """Types of metrics collected."""
    COUNTER = "counter"
    GAUGE = "gauge"
    HISTOGRAM = "histogram"
    TIMING = "timing"


@dataclass
class MetricDefinition:
    """Definition of a metric to collect."""
    name: str
    metric_type: MetricType
    description: str
    labels: Tuple[str, ...] = field(default_factory=tuple)


class MetricsCollector:
    """
    Collect and aggregate metrics from all layers.

    Metrics are append-only time series data points.
    """

    def __init__(self, max_points_per_metric: int = 10_000):
        self._max_points = max_points_per_metric
        self._metrics: Dict[str, Deque[MetricPoint]] = {}
        self._definitions: Dict[str, MetricDefinition] = {}
        self._register_default_metrics()

    def _register_default_metrics(self):
        """Register standard metrics."""
        defaults = [
            MetricDefinition(
                name="events_appended_total",
                metric_type=MetricType.COUNTER,
                description="Events accepted by the log",
                labels=("category",)
            ),
            MetricDefinition(
                name="append_rejections_total",
                metric_type=MetricType.COUNTER,
                description="Appends rejected by validation or storage",
                labels=("error_code",)
            ),
            MetricDefinition(
                name="replayed_events",
                metric_type=MetricType.HISTOGRAM,
                description="Events replayed per reconstruction after snapshot seeding"
            ),
            MetricDefinition(
                name="reconstruct_duration_ms",
                metric_type=MetricType.TIMING,
                description="Reconstruction time in milliseconds"
            ),
            MetricDefinition(
                name="snapshot_hits_total",
                metric_type=MetricType.COUNTER,
                description="Reconstructions seeded from a snapshot"
            ),
            MetricDefinition(
                name="snapshot_misses_total",
                metric_type=MetricType.COUNTER,
                description="Reconstructions replayed from the start"
            ),
            MetricDefinition(
                name="snapshot_materializations_total",
                metric_type=MetricType.COUNTER,
                description="Snapshots stored"
            ),
            MetricDefinition(
                name="snapshot_failures_total",
                metric_type=MetricType.COUNTER,
                description="Snapshot materializations that failed"
            ),
            MetricDefinition(
                name="snapshot_invalidations_total",
                metric_type=MetricType.GAUGE,
                description="Snapshots marked stale so far"
            ),
        ]

        for definition in defaults:
            self.register_metric(definition)

    def register_metric(self, definition: MetricDefinition):
        """Register a new metric definition."""
        self._definitions[definition.name] = definition
        if definition.name not in self._metrics:
            self._metrics[definition.name] = deque(maxlen=self._max_points)

    def record(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Record a metric data point."""
        if metric_name not in self._metrics:
            self._metrics[metric_name] = deque(maxlen=self._max_points)

        label_tuple = tuple(sorted(labels.items())) if labels else ()

        point = MetricPoint(
            metric_name=metric_name,
            value=value,
            timestamp=Timestamp.now(),
            labels=label_tuple
        )
        self._metrics[metric_name].append(point)

    def get_metric(self, metric_name: str) -> List[MetricPoint]:
        return list(self._metrics.get(metric_name, ()))

    def get_latest(self, metric_name: str) -> Optional[MetricPoint]:
        points = self._metrics.get(metric_name)
        return points[-1] if points else None

    def get_definition(self, metric_name: str) -> Optional[MetricDefinition]:
        return self._definitions.get(metric_name)

    def total(self, metric_name: str) -> float:
        return sum(p.value for p in self._metrics.get(metric_name, ()))

    def compute_aggregates(self, metric_name: str) -> Dict[str, float]:
        """Compute aggregate statistics for a metric."""
        values = [p.value for p in self._metrics.get(metric_name, ())]

        if not values:
            return {}

        return {
            'count': len(values),
            'sum': sum(values),
            'min': min(values),
            'max': max(values),
            'avg': sum(values) / len(values),
        }


# =============================================================================
# OBSERVABILITY ENGINE (Orchestrates all observability)
# =============================================================================

@dataclass
class ObservabilityConfig:
    """Configuration for observability engine."""
    enable_metrics: bool = True
    enable_audit: bool = True
    max_entries_per_layer: int = 10_000


class ObservabilityEngine:
    """
    Central Observability Engine.

    BOUNDARY ENFORCEMENT:
    - ONLY observes, never modifies
    - Provides read-only access to collected data
    """

    LAYERS = ('log', 'cache', 'engine', 'api')

    def __init__(self, config: Optional[ObservabilityConfig] = None):
        self._config = config or ObservabilityConfig()
        self._counter = itertools.count(1)

        self._collectors: Dict[str, LogCollector] = {
            name: LogCollector(name, self._config.max_entries_per_layer)
            for name in self.LAYERS
        }

        self._metrics = (
            MetricsCollector(self._config.max_entries_per_layer)
            if self._config.enable_metrics else None
        )

    def collect_audit(self, entry: AuditLogEntry):
        """Collect an audit log entry from any layer."""
        if not self._config.enable_audit:
            return
        collector = self._collectors.get(entry.layer)
        if collector:
            collector.collect(entry)

    def log_audit(
        self,
        action: str,
        event_type: AuditEventType = AuditEventType.SYSTEM,
        entity_id: Optional[str] = None,
        layer: str = "engine",
        **metadata: object
    ):
        """Helper to log audit entry directly."""
        now = Timestamp.now()
        entry_id = hashlib.sha256(
            f"{layer}_{action}|{next(self._counter)}|{now.to_iso()}".encode()
        ).hexdigest()[:16]

        self.collect_audit(AuditLogEntry(
            entry_id=f"audit_{entry_id}",
            event_type=event_type,
            timestamp=now,
            layer=layer,
            action=action,
            entity_id=entity_id,
            metadata=tuple((k, str(v)) for k, v in sorted(metadata.items()))
        ))

    def collect_metric(
        self,
        metric_name: str,
        value: float,
        labels: Optional[Dict[str, str]] = None
    ):
        """Collect a metric data point."""
        if self._metrics:
            self._metrics.record(metric_name, value, labels)

    def get_unified_log(self, layers: Optional[List[str]] = None) -> List[AuditLogEntry]:
        """Get unified log from all or specified layers, oldest first."""
        target_layers = layers or list(self._collectors.keys())

        all_entries = []
        for layer_name in target_layers:
            collector = self._collectors.get(layer_name)
            if collector:
                all_entries.extend(collector.get_entries())

        all_entries.sort(key=lambda e: e.timestamp.value)
        return all_entries

    def get_layer_log(self, layer_name: str) -> List[AuditLogEntry]:
        collector = self._collectors.get(layer_name)
        if not collector:
            return []
        return collector.get_entries()

    def get_metrics(self) -> Optional[MetricsCollector]:
        """Get metrics collector (read-only access)."""
        return self._metrics

    def generate_audit_report(self) -> Dict:
        """Summarize the audit trail by layer and event type."""
        entries = self.get_unified_log()

        by_layer: Dict[str, int] = {}
        by_type: Dict[str, int] = {}

        for entry in entries:
            by_layer[entry.layer] = by_layer.get(entry.layer, 0) + 1
            by_type[entry.event_type.value] = by_type.get(entry.event_type.value, 0) + 1

        return {
            'total_entries': len(entries),
            'by_layer': by_layer,
            'by_event_type': by_type,
            'generated_at': Timestamp.now().to_iso()
        }
