import pytest
from datetime import date

from models import (
    ConflictType, InspectionSchedule, IssueSeverity, ResolutionSource, ResolutionStatus, ScheduleConflict,
)
from utils.conflicts import ConflictDetector, overlap_days


@pytest.fixture
def detector(rules):
    return ConflictDetector(rules)


def _of_type(conflicts, conflict_type):
    return [c for c in conflicts if c.conflict_type == conflict_type]


class TestTradeOverlap:
    def test_overlapping_framing_crews(self, detector, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("T2", "framing", "2026-05-12", "2026-05-18", trade="B"),
        ]
        conflicts = detector.detect(tasks)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.conflict_type == ConflictType.TRADE_OVERLAP
        assert conflict.severity == IssueSeverity.HIGH
        assert conflict.affected_tasks == ["T1", "T2"]
        assert conflict.auto_resolvable is True
        assert "2026-05-16" in conflict.suggested_resolution
        assert conflict.project_id == "p1"

    def test_short_overlap_is_medium(self, detector, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-01", "2026-05-10", trade="B"),
            make_task("T2", "framing", "2026-05-10", "2026-05-20", trade="B"),
        ]
        assert overlap_days(*tasks) == 1
        assert detector.detect(tasks)[0].severity == IssueSeverity.MEDIUM

    def test_every_pair_reported_exactly_once(self, detector, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-01", "2026-05-10", trade="B"),
            make_task("T2", "framing", "2026-05-05", "2026-05-12", trade="B"),
            make_task("T3", "framing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("T4", "framing", "2026-05-20", "2026-05-25", trade="B"),
            make_task("T5", "framing", "2026-05-01", "2026-05-25", trade="C"),
            make_task("T6", "framing", "2026-05-01", "2026-05-25", trade=None),
        ]
        overlaps = _of_type(detector.detect(tasks), ConflictType.TRADE_OVERLAP)
        assert sorted(c.affected_tasks for c in overlaps) == [["T1", "T2"], ["T1", "T3"], ["T2", "T3"]]

    def test_inspection_on_later_task_blocks_auto_shift(self, detector, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("T2", "framing", "2026-05-12", "2026-05-18", trade="B", inspection_required=True),
        ]
        assert detector.detect(tasks)[0].auto_resolvable is False

    def test_dependent_work_blocks_auto_shift(self, detector, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("T2", "framing", "2026-05-12", "2026-05-18", trade="B"),
            make_task("T3", "rough_in", "2026-05-19", "2026-05-25", trade="electrical"),
        ]
        overlaps = _of_type(detector.detect(tasks), ConflictType.TRADE_OVERLAP)
        assert len(overlaps) == 1
        assert overlaps[0].auto_resolvable is False

    def test_pinned_inspection_blocks_auto_shift(self, detector, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("T2", "framing", "2026-05-12", "2026-05-18", trade="B"),
        ]
        pinned = InspectionSchedule("framing", "framing", date(2026, 5, 20), True,
                                    auto_scheduled=False, project_id="p1")
        engine_picked = InspectionSchedule("framing", "framing", date(2026, 5, 20), True,
                                           auto_scheduled=True, project_id="p1")
        assert detector.detect(tasks, [pinned])[0].auto_resolvable is False
        assert detector.detect(tasks, [engine_picked])[0].auto_resolvable is True

    def test_unknown_phase_and_bad_dates_are_skipped(self, detector, make_task):
        tasks = [
            make_task("T1", "framing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("X", "roofing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("Y", "framing", "2026-05-15", "2026-05-08", trade="B"),
        ]
        assert detector.detect(tasks) == []


class TestSequenceAndInspectionConflicts:
    def test_sequence_violation(self, detector, make_task):
        tasks = [
            make_task("foundation-1", "foundation", "2026-05-01", "2026-05-10", trade="A"),
            make_task("framing-1", "framing", "2026-05-08", "2026-05-20", trade="B"),
        ]
        conflicts = detector.detect(tasks)

        assert len(conflicts) == 1
        conflict = conflicts[0]
        assert conflict.conflict_type == ConflictType.SEQUENCE_VIOLATION
        assert conflict.severity == IssueSeverity.CRITICAL
        assert conflict.auto_resolvable is False
        assert conflict.signature == "sequence_violation:foundation-1,framing-1"

    def test_pending_inspection_blocks_early_dependent_work(self, detector, make_task):
        tasks = [
            make_task("F1", "foundation", "2026-05-01", "2026-05-10", trade="concrete"),
            make_task("FR1", "framing", "2026-05-11", "2026-05-15", trade="carpentry"),
            make_task("FR2", "framing", "2026-05-13", "2026-05-20", trade="roofing"),
        ]
        inspection = InspectionSchedule("foundation", "foundation", date(2026, 5, 12), False, project_id="p1")

        blocking = _of_type(detector.detect(tasks, [inspection]), ConflictType.INSPECTION_BLOCKING)

        assert len(blocking) == 1
        assert blocking[0].affected_tasks == ["F1", "FR1"]
        assert blocking[0].severity == IssueSeverity.CRITICAL

    def test_met_prerequisites_do_not_block(self, detector, make_task):
        tasks = [
            make_task("F1", "foundation", "2026-05-01", "2026-05-10", status="completed"),
            make_task("FR1", "framing", "2026-05-11", "2026-05-15"),
        ]
        inspection = InspectionSchedule("foundation", "foundation", date(2026, 5, 12), True, project_id="p1")
        assert detector.detect(tasks, [inspection]) == []


class TestResourceConflicts:
    def _tasks(self, make_task):
        return [
            make_task("E1", "rough_in", "2026-05-01", "2026-05-10", trade="electrical"),
            make_task("E2", "rough_in", "2026-05-05", "2026-05-12", trade="electrical"),
            make_task("E3", "rough_in", "2026-05-08", "2026-05-15", trade="electrical"),
        ]

    def test_crew_capacity_exceeded(self, rules, make_task):
        detector = ConflictDetector(rules, trade_capacity={"electrical": 2})
        resource = _of_type(detector.detect(self._tasks(make_task)), ConflictType.RESOURCE_CONFLICT)

        assert len(resource) == 1
        assert resource[0].affected_tasks == ["E1", "E2", "E3"]
        assert resource[0].severity == IssueSeverity.MEDIUM

    def test_disabled_without_capacities(self, detector, make_task):
        conflicts = detector.detect(self._tasks(make_task))
        assert _of_type(conflicts, ConflictType.RESOURCE_CONFLICT) == []
        assert len(_of_type(conflicts, ConflictType.TRADE_OVERLAP)) == 3


class TestConflictIdentity:
    def _tasks(self, make_task):
        return [
            make_task("T1", "framing", "2026-05-08", "2026-05-15", trade="B"),
            make_task("T2", "framing", "2026-05-12", "2026-05-18", trade="B"),
        ]

    def test_repeated_runs_give_same_signatures(self, detector, make_task):
        first = detector.detect(self._tasks(make_task))
        second = detector.detect(self._tasks(make_task))
        assert [c.signature for c in first] == [c.signature for c in second]

    def test_resolved_conflicts_are_not_reemitted(self, detector, make_task):
        resolved = ScheduleConflict("trade_overlap", "high", ["T2", "T1"], "shift",
                                    resolution_status=ResolutionStatus.RESOLVED, project_id="p1")
        assert detector.detect(self._tasks(make_task), prior_conflicts=[resolved]) == []

    def test_superseded_conflicts_come_back_with_their_id(self, detector, make_task):
        superseded = ScheduleConflict("trade_overlap", "high", ["T1", "T2"], "shift", conflict_id="c-1",
                                      resolution_status=ResolutionStatus.RESOLVED,
                                      resolution_source=ResolutionSource.SUPERSEDED, project_id="p1")
        found = detector.detect(self._tasks(make_task), prior_conflicts=[superseded])

        assert [c.signature for c in found] == ["trade_overlap:T1,T2"]
        assert found[0].conflict_id == "c-1"
        assert found[0].resolution_status == ResolutionStatus.OPEN

    def test_open_conflicts_keep_their_id(self, detector, make_task):
        prior = ScheduleConflict("trade_overlap", "high", ["T1", "T2"], "shift",
                                 conflict_id="keep-me", project_id="p1")
        assert detector.detect(self._tasks(make_task), prior_conflicts=[prior])[0].conflict_id == "keep-me"

    def test_empty_input(self, detector):
        assert detector.detect([]) == []
