import pytest
from datetime import date

from models import InspectionSchedule, InspectionStatus, Phase
from utils.calendar import AdvancedCalendar
from utils.inspections import InspectionScheduler


@pytest.fixture
def scheduler(rules):
    return InspectionScheduler(rules, AdvancedCalendar(), lead_time_days=1, daily_capacity=1)


def _by_phase(inspections):
    return {i.required_for_phase: i for i in inspections}


class TestInspectionScheduler:
    def test_foundation_inspection_day_after_completion(self, scheduler, make_task):
        tasks = [make_task("F1", "foundation", "2026-05-01", "2026-05-10", status="completed")]

        inspections = scheduler.schedule(tasks)

        assert len(inspections) == 1
        inspection = inspections[0]
        assert inspection.inspection_type == "foundation"
        assert inspection.required_for_phase == Phase.FOUNDATION
        assert inspection.optimal_date == date(2026, 5, 11)
        assert inspection.prerequisites_met is True
        assert inspection.auto_scheduled is True
        assert inspection.project_id == "p1"

    def test_prerequisites_need_every_phase_task_completed(self, scheduler, make_task):
        tasks = [
            make_task("F1", "foundation", "2026-05-01", "2026-05-06", status="completed"),
            make_task("F2", "foundation", "2026-05-04", "2026-05-10", status="in_progress"),
        ]
        assert scheduler.schedule(tasks)[0].prerequisites_met is False

    def test_waits_for_predecessor_phases(self, scheduler, make_task):
        tasks = [
            make_task("S1", "site_prep", "2026-05-01", "2026-05-12"),
            make_task("F1", "foundation", "2026-05-05", "2026-05-10"),
        ]
        inspections = scheduler.schedule(tasks)
        assert [i.required_for_phase for i in inspections] == [Phase.FOUNDATION]
        assert inspections[0].optimal_date == date(2026, 5, 13)

    def test_holiday_pushes_inspection(self, rules, make_task):
        scheduler = InspectionScheduler(rules, AdvancedCalendar(holidays=["2026-05-11"]))
        tasks = [make_task("F1", "foundation", "2026-05-01", "2026-05-10")]
        assert scheduler.schedule(tasks)[0].optimal_date == date(2026, 5, 12)

    def test_one_inspection_per_day(self, scheduler, make_task):
        tasks = [
            make_task("F1", "foundation", "2026-05-01", "2026-05-07"),
            make_task("FR1", "framing", "2026-05-01", "2026-05-07"),
        ]
        inspections = _by_phase(scheduler.schedule(tasks))
        assert inspections[Phase.FOUNDATION].optimal_date == date(2026, 5, 8)
        assert inspections[Phase.FRAMING].optimal_date == date(2026, 5, 11)

    def test_higher_capacity_allows_same_day(self, rules, make_task):
        scheduler = InspectionScheduler(rules, daily_capacity=2)
        tasks = [
            make_task("F1", "foundation", "2026-05-01", "2026-05-07"),
            make_task("FR1", "framing", "2026-05-01", "2026-05-07"),
        ]
        dates = {i.optimal_date for i in scheduler.schedule(tasks)}
        assert dates == {date(2026, 5, 8)}

    def test_manual_date_is_authoritative_and_holds_its_slot(self, scheduler, make_task):
        tasks = [
            make_task("F1", "foundation", "2026-05-01", "2026-05-10", status="completed"),
            make_task("FR1", "framing", "2026-05-11", "2026-05-19"),
        ]
        manual = InspectionSchedule("foundation", "foundation", date(2026, 5, 20), False,
                                    auto_scheduled=False, project_id="p1", inspection_id="manual-1")

        inspections = _by_phase(scheduler.schedule(tasks, [manual]))

        foundation = inspections[Phase.FOUNDATION]
        assert foundation.optimal_date == date(2026, 5, 20)
        assert foundation.auto_scheduled is False
        assert foundation.prerequisites_met is True
        assert foundation.inspection_id == "manual-1"
        assert inspections[Phase.FRAMING].optimal_date == date(2026, 5, 21)

    def test_passed_inspection_keeps_its_date(self, scheduler, make_task):
        tasks = [make_task("F1", "foundation", "2026-05-01", "2026-05-10", status="completed")]
        passed = InspectionSchedule("foundation", "foundation", date(2026, 5, 4), True,
                                    project_id="p1", status=InspectionStatus.PASSED)
        assert scheduler.schedule(tasks, [passed])[0].optimal_date == date(2026, 5, 4)

    def test_auto_record_is_recomputed_in_place(self, scheduler, make_task):
        tasks = [make_task("F1", "foundation", "2026-05-01", "2026-05-10")]
        stale = InspectionSchedule("foundation", "foundation", date(2026, 5, 30), False,
                                   project_id="p1", inspection_id="insp-1")
        inspection = scheduler.schedule(tasks, [stale])[0]
        assert inspection.optimal_date == date(2026, 5, 11)
        assert inspection.inspection_id == "insp-1"

    def test_requested_inspection_on_other_phase(self, scheduler, make_task):
        tasks = [make_task("D1", "finishing", "2026-05-01", "2026-05-06", inspection_required=True)]
        inspections = scheduler.schedule(tasks)
        assert [i.inspection_type for i in inspections] == ["finishing"]
        assert inspections[0].optimal_date == date(2026, 5, 7)

    def test_phases_without_inspection_or_tasks(self, scheduler, make_task):
        assert scheduler.schedule([make_task("S1", "site_prep", "2026-05-01", "2026-05-06")]) == []
        assert scheduler.schedule([]) == []

    def test_punch_list_gets_final_inspection(self, scheduler, make_task):
        tasks = [make_task("P1", "punch_list", "2026-06-29", "2026-07-01")]
        assert scheduler.schedule(tasks)[0].inspection_type == "final"

    def test_capacity_must_be_positive(self, rules):
        with pytest.raises(ValueError):
            InspectionScheduler(rules, daily_capacity=0)
