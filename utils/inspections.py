import logging
from collections import Counter, defaultdict
from typing import Dict, Iterable, List, Optional

from defaults import INSPECTION_REQUIREMENTS, inspection_type_for
from models import InspectionSchedule, InspectionStatus, Phase, PhaseOrderingRules, Task
from utils.calendar import AdvancedCalendar

logger = logging.getLogger(__name__)


class InspectionScheduler:
    """
    Books regulatory inspections on the first free workday after a phase
    (and everything it waits on) is expected to finish.
    """

    def __init__(self, rules: PhaseOrderingRules, calendar: Optional[AdvancedCalendar] = None,
                 lead_time_days: int = 1, daily_capacity: int = 1):
        if daily_capacity < 1:
            raise ValueError("Daily inspection capacity must be at least 1")
        self.rules = rules
        self.calendar = calendar or AdvancedCalendar()
        self.lead_time_days = lead_time_days
        self.daily_capacity = daily_capacity

    def inspected_phases(self, tasks: Iterable[Task]) -> List[Phase]:
        """Phases present in ``tasks`` that mandate or request an inspection, in phase order."""
        phases = set()
        for task in tasks:
            phase = task.known_phase
            if phase is None:
                continue
            if phase in INSPECTION_REQUIREMENTS or task.inspection_required:
                phases.add(phase)
        return sorted(phases, key=lambda p: p.rank)

    def schedule(self, tasks: List[Task], existing: Iterable[InspectionSchedule] = ()) -> List[InspectionSchedule]:
        by_project = defaultdict(list)
        for task in tasks:
            if task.is_schedulable:
                by_project[task.project_id].append(task)

        existing_by_key = {}
        for record in existing:
            existing_by_key[(record.project_id, record.required_for_phase)] = record

        results = []
        for project_id in sorted(by_project):
            results.extend(self._schedule_project(project_id, by_project[project_id], existing_by_key))
        return results

    def _schedule_project(self, project_id: str, tasks: List[Task], existing_by_key: Dict) -> List[InspectionSchedule]:
        by_phase = defaultdict(list)
        for task in tasks:
            by_phase[task.known_phase].append(task)
        present = set(by_phase)

        # Records fixed by a person, or already carried out, keep their date and hold their slot
        booked = Counter()
        for (record_project, _phase), record in existing_by_key.items():
            if record_project == project_id and self._is_fixed(record):
                booked[record.optimal_date] += 1

        results = []
        for phase in self.inspected_phases(tasks):
            phase_tasks = by_phase[phase]
            prerequisites_met = all(t.is_completed for t in phase_tasks)
            current = existing_by_key.get((project_id, phase))

            if current is not None and self._is_fixed(current):
                current.prerequisites_met = prerequisites_met
                results.append(current)
                logger.debug(f"Keeping {phase.value} inspection on {current.optimal_date} for {project_id}")
                continue

            ready_on = max(t.end_date for t in phase_tasks)
            for pred_phase in self.rules.required_predecessors(phase, present):
                ready_on = max([ready_on] + [t.end_date for t in by_phase[pred_phase]])

            optimal_date = self.calendar.add_workdays(ready_on, self.lead_time_days)
            while booked[optimal_date] >= self.daily_capacity:
                optimal_date = self.calendar.add_workdays(optimal_date, 1)
            booked[optimal_date] += 1

            inspection = InspectionSchedule(
                inspection_type=inspection_type_for(phase),
                required_for_phase=phase,
                optimal_date=optimal_date,
                prerequisites_met=prerequisites_met,
                auto_scheduled=True,
                project_id=project_id,
            )
            if current is not None:
                inspection.inspection_id = current.inspection_id
            results.append(inspection)

        logger.info(f"📅 Scheduled {len(results)} inspections for project {project_id}")
        return results

    @staticmethod
    def _is_fixed(record: InspectionSchedule) -> bool:
        return not record.auto_scheduled or record.status != InspectionStatus.SCHEDULED
