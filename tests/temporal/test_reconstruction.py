"""
Reconstruction Engine Tests
===========================

INVARIANTS TESTED:
1. Default completeness: 96 points, 0.00 where nothing was reported
2. Null preserves prior
3. Later arrival wins; cutoffs between arrivals see the earlier value
4. Monotonicity in cutoff
5. Backfilled arrivals are replayed in arrival order
"""

import pytest
from datetime import timedelta
from decimal import Decimal

from mwledger.contracts.base import ErrorCode, ValidationError
from mwledger.contracts.temporal import ZERO, EventId
from mwledger.temporal.calendar import canonical_instants
from mwledger.temporal.reconstruction import ReconstructionEngine

from ..fixtures import DAY, NEXT_DAY, T1, T2, T3, at, make_log, scenario_entries


def engine_for(ticks):
    log = make_log(ticks)
    return log, ReconstructionEngine(log)


# =============================================================================
# SCENARIOS
# =============================================================================

class TestConsumptionScenario:

    def test_first_update(self):
        log, engine = engine_for([T1, T2])
        log.append("consumption", scenario_entries())

        series = engine.reconstruct("consumption", DAY, cutoff=T1)

        assert len(series) == 96
        assert series.value_at(at(6, 0)) == Decimal("1.25")
        assert series.value_at(at(6, 15)) == Decimal("0.00")
        assert series.value_at(at(6, 30)) == Decimal("1.30")
        others = [p for p in series if p.instant not in (at(6, 0), at(6, 30))]
        assert all(p.value == ZERO for p in others)

    def test_second_update(self):
        log, engine = engine_for([T1, T2])
        log.append("consumption", scenario_entries())
        log.append("consumption", [("2.00", at(6, 0))])

        assert engine.reconstruct("consumption", DAY, cutoff=T1).value_at(at(6)) == Decimal("1.25")
        assert engine.reconstruct("consumption", DAY, cutoff=T2).value_at(at(6)) == Decimal("2.00")
        # 06:30 untouched by the second update
        assert engine.reconstruct("consumption", DAY, cutoff=T2).value_at(at(6, 30)) == Decimal("1.30")


# =============================================================================
# PROPERTIES
# =============================================================================

class TestDefaultCompleteness:

    def test_unknown_series_is_all_default(self):
        _, engine = engine_for([])
        series = engine.reconstruct("nothing", DAY)
        assert [p.instant for p in series] == list(canonical_instants(DAY))
        assert all(p.value == ZERO and not p.reported for p in series)
        assert series.events_applied == 0

    def test_cutoff_before_first_event(self):
        log, engine = engine_for([T2])
        log.append("a", [("5", at(6))])
        series = engine.reconstruct("a", DAY, cutoff=T1)
        assert series.values() == (ZERO,) * 96

    def test_values_render_with_two_decimals(self):
        _, engine = engine_for([])
        assert str(engine.reconstruct("a", DAY).value_at(at(0))) == "0.00"


class TestMergeSemantics:

    def test_null_preserves_prior(self):
        log, engine = engine_for([T1, T2])
        log.append("a", [("4.50", at(12))])
        log.append("a", [(None, at(12)), ("1", at(13))])
        assert engine.reconstruct("a", DAY, cutoff=T2).value_at(at(12)) == Decimal("4.50")

    def test_later_arrival_wins(self):
        log, engine = engine_for([T1, T3])
        log.append("a", [("1", at(12))])
        log.append("a", [("2", at(12))])

        between = T1 + (T3 - T1) / 2
        assert engine.reconstruct("a", DAY, cutoff=between).value_at(at(12)) == Decimal("1")
        assert engine.reconstruct("a", DAY, cutoff=T3).value_at(at(12)) == Decimal("2")
        assert engine.reconstruct("a", DAY).value_at(at(12)) == Decimal("2")

    def test_backfilled_arrival_replays_in_arrival_order(self):
        # Second append carries an earlier arrival (log replay / backfill)
        log, engine = engine_for([T2, T1])
        log.append("a", [("2", at(12))])
        log.append("a", [("1", at(12))])

        assert engine.reconstruct("a", DAY, cutoff=T1).value_at(at(12)) == Decimal("1")
        assert engine.reconstruct("a", DAY).value_at(at(12)) == Decimal("2")

    def test_entries_of_other_days_are_ignored(self):
        log, engine = engine_for([T1])
        log.append("a", [("1", at(23, 45)), ("9", at(0, 0, day=NEXT_DAY))])
        assert engine.reconstruct("a", DAY).value_at(at(23, 45)) == Decimal("1")
        assert engine.reconstruct("a", NEXT_DAY).value_at(at(0, 0, day=NEXT_DAY)) == Decimal("9")
        assert engine.reconstruct("a", NEXT_DAY).value_at(at(23, 45, day=NEXT_DAY)) == ZERO

    def test_categories_are_isolated(self):
        log, engine = engine_for([T1, T2])
        log.append("consumption", [("1", at(6))])
        log.append("generation", [("7", at(6))])
        assert engine.reconstruct("consumption", DAY).value_at(at(6)) == Decimal("1")


class TestMonotonicity:

    def test_values_change_only_at_arrivals(self):
        ticks = [T1, T2, T3]
        log, engine = engine_for(ticks)
        log.append("a", [("1", at(6))])
        log.append("a", [(None, at(6)), ("3", at(7))])
        log.append("a", [("2", at(6))])

        previous = engine.reconstruct("a", DAY, cutoff=T1 - timedelta(minutes=1)).points
        for arrival, following in zip(ticks, ticks[1:] + [T3 + timedelta(hours=1)]):
            at_arrival = engine.reconstruct("a", DAY, cutoff=arrival).points
            assert at_arrival != previous

            probe = arrival + timedelta(minutes=1)
            while probe < following:
                assert engine.reconstruct("a", DAY, cutoff=probe).points == at_arrival
                probe += timedelta(minutes=17)
            previous = at_arrival


# =============================================================================
# QUERY INPUTS
# =============================================================================

class TestQueryInputs:

    def test_iso_cutoff_and_date_strings(self):
        log, engine = engine_for([T1])
        log.append("a", [("1", at(6))])
        by_string = engine.reconstruct("a", "2024-01-01", cutoff="2024-01-01T08:00:00Z")
        assert by_string == engine.reconstruct("a", DAY, cutoff=T1)
        assert by_string.cutoff == T1

    def test_malformed_cutoff_raises(self):
        _, engine = engine_for([])
        with pytest.raises(ValidationError) as exc_info:
            engine.reconstruct("a", DAY, cutoff="soon")
        assert exc_info.value.code == ErrorCode.MALFORMED_INSTANT

    def test_malformed_date_raises(self):
        _, engine = engine_for([])
        with pytest.raises(ValidationError) as exc_info:
            engine.reconstruct("a", "01/01/2024")
        assert exc_info.value.code == ErrorCode.INVALID_QUERY

    def test_replay_statistics(self):
        log, engine = engine_for([T1, T2, T3])
        for _ in range(3):
            log.append("a", [("1", at(6))])
        series = engine.reconstruct("a", DAY, cutoff=T2)
        assert series.events_applied == 2
        assert series.events_replayed == 2
        assert not series.snapshot_used


# =============================================================================
# REVISIONS
# =============================================================================

class TestRevisions:

    def test_revision_history_in_replay_order(self):
        log, engine = engine_for([T2, T1, T3])
        log.append("a", [("2", at(6))])
        log.append("a", [("1", at(6))])
        log.append("a", [(None, at(6)), ("5", at(7))])

        history = engine.revisions("a", at(6))

        assert [r.event_id for r in history.revisions] == [EventId(2), EventId(1)]
        assert [r.value for r in history.revisions] == [Decimal("1"), Decimal("2")]
        assert history.value_as_of(T1) == Decimal("1")
        assert history.value_as_of(T3) == Decimal("2")

    def test_revision_history_agrees_with_reconstruction(self):
        log, engine = engine_for([T1, T2, T3])
        log.append("a", [("1", at(6))])
        log.append("a", [("2", at(6))])
        log.append("a", [("3", at(7))])
        history = engine.revisions("a", "2024-01-01T06:00:00Z")
        for cutoff in (T1, T2, T3):
            assert history.value_as_of(cutoff) == engine.reconstruct("a", DAY, cutoff).value_at(at(6))
