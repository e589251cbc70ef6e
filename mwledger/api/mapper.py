"""
API Mapper
==========

Transforms reconstructed series and summaries into response DTOs.
Values are rendered as decimal strings, never floats, so no precision is
lost on the wire.
"""
from decimal import Decimal
from typing import Any, Dict, Optional

from ..contracts.base import Timestamp
from ..contracts.temporal import ReconstructedSeries, RevisionHistory, UpdateEvent
from ..query import SeriesSummary

_CENTS = Decimal("0.01")


def format_value(value: Decimal) -> str:
    """Render with at least two decimals, keeping any finer precision."""
    if value.as_tuple().exponent > -2:
        value = value.quantize(_CENTS)
    return format(value, "f")


def format_instant(instant) -> Optional[str]:
    return Timestamp(instant).to_iso() if instant is not None else None


def map_event_receipt(event: UpdateEvent) -> Dict[str, Any]:
    return {
        "event_id": event.event_id.value,
        "arrival_timestamp": format_instant(event.arrival_timestamp),
    }


def map_series_to_dto(series: ReconstructedSeries) -> Dict[str, Any]:
    """Map ReconstructedSeries to SeriesDTO (96 instant/value pairs)."""
    return {
        "category": series.category,
        "date": series.date.isoformat(),
        "cutoff": format_instant(series.cutoff),
        "points": [
            {"instant": format_instant(p.instant), "value": format_value(p.value)}
            for p in series.points
        ],
    }


def map_summary_to_dto(summary: SeriesSummary) -> Dict[str, Any]:
    return {
        "category": summary.category,
        "date": summary.date.isoformat(),
        "cutoff": format_instant(summary.cutoff),
        "total": format_value(summary.total),
        "average": format_value(summary.average),
        "peak": format_value(summary.peak),
        "count": summary.count,
        "reported": summary.reported,
    }


def map_revisions_to_dto(history: RevisionHistory) -> Dict[str, Any]:
    return {
        "category": history.category,
        "instant": format_instant(history.instant),
        "revisions": [
            {
                "event_id": r.event_id.value,
                "arrival_timestamp": format_instant(r.arrival_timestamp),
                "value": format_value(r.value),
            }
            for r in history.revisions
        ],
    }
