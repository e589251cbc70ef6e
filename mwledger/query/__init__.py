"""
Aggregation Primitives

RESPONSIBILITY: Numeric summaries over one reconstructed series
ALLOWED INPUTS: ReconstructedSeries
OUTPUTS: Decimal / int summaries, SeriesSummary

WHAT THIS LAYER MUST NOT DO:
============================
- Read the event log or the snapshot cache
- Combine categories (callers compose these primitives for that)
- Treat defaulted instants differently from reported zeros

A series always has 96 points, so there is no empty-input case.
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from ..contracts.temporal import ZERO, ReconstructedSeries


def sum_series(series: ReconstructedSeries) -> Decimal:
    return sum((p.value for p in series.points), ZERO)


def count_series(series: ReconstructedSeries) -> int:
    return len(series.points)


def average_series(series: ReconstructedSeries) -> Decimal:
    return sum_series(series) / Decimal(count_series(series))


def count_reported(series: ReconstructedSeries) -> int:
    """Instants some event actually supplied a value for."""
    return sum(1 for p in series.points if p.reported)


def peak_series(series: ReconstructedSeries) -> Decimal:
    return max((p.value for p in series.points), default=ZERO)


@dataclass(frozen=True)
class SeriesSummary:
    """Immutable numeric summary of one series."""
    category: str
    date: date
    cutoff: Optional[datetime]
    total: Decimal
    average: Decimal
    peak: Decimal
    count: int
    reported: int


def summarize(series: ReconstructedSeries) -> SeriesSummary:
    return SeriesSummary(
        category=series.category,
        date=series.date,
        cutoff=series.cutoff,
        total=sum_series(series),
        average=average_series(series),
        peak=peak_series(series),
        count=count_series(series),
        reported=count_reported(series),
    )
