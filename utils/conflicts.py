"""
Conflict detection over a project task snapshot.

Four kinds of conflict are reported: trade double-booking, sequence
violations, work starting before a blocking inspection, and crews
booked beyond their capacity. Each conflict is identified by its
signature (type plus sorted affected task ids), which keeps repeated runs
over unchanged data stable and lets manually resolved conflicts stay
resolved.
"""

import logging
from collections import defaultdict
from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from defaults import TRADE_OVERLAP_HIGH_RATIO
from helpers import TaskGraph, TradeIntervalIndex, build_dependency_graph, present_phases
from models import (
    ConflictType, InspectionSchedule, InspectionStatus, IssueSeverity,
    PhaseOrderingRules, ScheduleConflict, Task,
)
from utils.sequence_validator import SequenceValidator

logger = logging.getLogger(__name__)

TYPE_ORDER = list(ConflictType)


def overlap_days(a: Task, b: Task) -> int:
    """Number of shared calendar days between two tasks (0 when disjoint)."""
    return max(0, (min(a.end_date, b.end_date) - max(a.start_date, b.start_date)).days + 1)


class ConflictDetector:

    def __init__(self, rules: PhaseOrderingRules, trade_capacity: Optional[Dict[str, int]] = None,
                 high_overlap_ratio: float = TRADE_OVERLAP_HIGH_RATIO):
        self.rules = rules
        self.validator = SequenceValidator(rules)
        self.trade_capacity = dict(trade_capacity or {})
        self.high_overlap_ratio = high_overlap_ratio

    def detect(self, tasks: List[Task], inspections: Iterable[InspectionSchedule] = (),
               prior_conflicts: Iterable[ScheduleConflict] = ()) -> List[ScheduleConflict]:
        """
        Detect the currently open conflicts.

        Tasks with an unknown phase or unusable dates are skipped. Conflicts
        whose signature was resolved by hand are not reported again; open and
        superseded ones keep their previous id.
        """
        usable = [t for t in tasks if t.is_schedulable]
        skipped = len(tasks) - len(usable)
        if skipped:
            logger.debug(f"Skipping {skipped} task(s) with unknown phase or bad dates")

        inspections = list(inspections)
        by_project = defaultdict(list)
        for task in usable:
            by_project[task.project_id].append(task)

        found: Dict[str, ScheduleConflict] = {}
        for project_id in sorted(by_project):
            project_tasks = by_project[project_id]
            project_inspections = [i for i in inspections if i.project_id == project_id]
            graph = build_dependency_graph(project_tasks, self.rules)

            for conflict in (
                self._trade_overlaps(project_tasks, graph, project_inspections)
                + self._sequence_violations(project_tasks)
                + self._inspection_blocking(project_tasks, project_inspections)
                + self._resource_conflicts(project_tasks)
            ):
                conflict.project_id = project_id
                found.setdefault(conflict.signature, conflict)

        resolved = set()
        open_ids = {}
        for prior in prior_conflicts:
            if prior.suppressed:
                resolved.add(prior.signature)
            else:
                open_ids[prior.signature] = prior.conflict_id

        conflicts = []
        for signature, conflict in found.items():
            if signature in resolved:
                continue
            if signature in open_ids:
                conflict.conflict_id = open_ids[signature]
            conflicts.append(conflict)

        conflicts.sort(key=lambda c: (TYPE_ORDER.index(c.conflict_type), c.signature))
        logger.info(f"🔍 Detected {len(conflicts)} open conflicts ({len(found) - len(conflicts)} previously resolved)")
        return conflicts

    # ------------------------------------------------------------------
    # Trade overlap
    # ------------------------------------------------------------------
    def _trade_overlaps(self, tasks: List[Task], graph: TaskGraph,
                        inspections: List[InspectionSchedule]) -> List[ScheduleConflict]:
        task_by_id = {t.id: t for t in tasks}
        index = TradeIntervalIndex(tasks)
        conflicts = []

        for trade in index.trades():
            for a_id, b_id in index.overlapping_pairs(trade):
                a, b = task_by_id[a_id], task_by_id[b_id]
                earlier, later = sorted((a, b), key=lambda t: (t.start_date, t.id))
                days = overlap_days(a, b)
                shorter = min(a.duration_days, b.duration_days)
                severity = IssueSeverity.HIGH if days >= self.high_overlap_ratio * shorter else IssueSeverity.MEDIUM

                shifted_start = earlier.end_date + timedelta(days=1)
                shifted_end = later.end_date + (shifted_start - later.start_date)
                auto = self._can_shift(later, shifted_end, graph, task_by_id, inspections)

                if auto:
                    resolution = (
                        f"Shift '{later.name}' ({later.id}) to start on {shifted_start}, "
                        f"after '{earlier.name}' ({earlier.id}) finishes"
                    )
                else:
                    resolution = (
                        f"Assign a second {trade} crew or re-sequence '{later.name}' manually; "
                        f"shifting it would push into dependent work or an inspection"
                    )

                conflicts.append(ScheduleConflict(
                    conflict_type=ConflictType.TRADE_OVERLAP,
                    severity=severity,
                    affected_tasks=[a.id, b.id],
                    suggested_resolution=resolution,
                    description=(
                        f"Trade '{trade}' is double-booked for {days} day(s) "
                        f"({max(a.start_date, b.start_date)} to {min(a.end_date, b.end_date)})"
                    ),
                    auto_resolvable=auto,
                ))
        return conflicts

    def _can_shift(self, task: Task, shifted_end, graph: TaskGraph, task_by_id: Dict[str, Task],
                   inspections: List[InspectionSchedule]) -> bool:
        if task.inspection_required:
            return False
        for succ_id in graph.successors.get(task.id, ()):
            if task_by_id[succ_id].start_date <= shifted_end:
                return False
        # Only dates fixed by a person stay put; engine-picked dates follow the work
        for inspection in inspections:
            if (
                inspection.required_for_phase == task.known_phase
                and not inspection.auto_scheduled
                and inspection.status == InspectionStatus.SCHEDULED
                and inspection.optimal_date <= shifted_end
            ):
                return False
        return True

    # ------------------------------------------------------------------
    # Sequence violation
    # ------------------------------------------------------------------
    def _sequence_violations(self, tasks: List[Task]) -> List[ScheduleConflict]:
        conflicts = []
        for task in tasks:
            blocking = self.validator.blocking_predecessors(task, tasks)
            if not blocking:
                continue
            blockers = [p for preds in blocking.values() for p in preds]
            latest_end = max(p.end_date for p in blockers)
            phases = ", ".join(phase.value for phase in blocking)
            conflicts.append(ScheduleConflict(
                conflict_type=ConflictType.SEQUENCE_VIOLATION,
                severity=IssueSeverity.CRITICAL,
                affected_tasks=[task.id] + [p.id for p in blockers],
                suggested_resolution=(
                    f"Move '{task.name}' to start on {latest_end + timedelta(days=1)} "
                    f"or bring the {phases} work forward"
                ),
                description=(
                    f"'{task.name}' starts on {task.start_date} before prerequisite phase "
                    f"{phases} completes on {latest_end}"
                ),
                auto_resolvable=False,
            ))
        return conflicts

    # ------------------------------------------------------------------
    # Inspection blocking
    # ------------------------------------------------------------------
    def _inspection_blocking(self, tasks: List[Task], inspections: List[InspectionSchedule]) -> List[ScheduleConflict]:
        present = present_phases(tasks)
        conflicts = []
        for inspection in inspections:
            if inspection.prerequisites_met or inspection.status == InspectionStatus.CANCELLED:
                continue
            phase = inspection.required_for_phase
            inspected_ids = [t.id for t in tasks if t.known_phase == phase]
            dependents = self.rules.dependent_phases(phase, present)

            for task in tasks:
                if task.known_phase not in dependents or task.start_date >= inspection.optimal_date:
                    continue
                conflicts.append(ScheduleConflict(
                    conflict_type=ConflictType.INSPECTION_BLOCKING,
                    severity=IssueSeverity.CRITICAL,
                    affected_tasks=[task.id] + inspected_ids,
                    suggested_resolution=(
                        f"Hold '{task.name}' until the {inspection.inspection_type} inspection "
                        f"on {inspection.optimal_date} has passed"
                    ),
                    description=(
                        f"'{task.name}' starts on {task.start_date}, before the pending "
                        f"{inspection.inspection_type} inspection on {inspection.optimal_date}"
                    ),
                    auto_resolvable=False,
                ))
        return conflicts

    # ------------------------------------------------------------------
    # Crew capacity
    # ------------------------------------------------------------------
    def _resource_conflicts(self, tasks: List[Task]) -> List[ScheduleConflict]:
        if not self.trade_capacity:
            return []

        index = TradeIntervalIndex(tasks)
        conflicts = []
        for trade in index.trades():
            capacity = self.trade_capacity.get(trade)
            if capacity is None:
                continue

            groups = []
            active = []
            for start, end, task_id in index.intervals[trade]:
                active = [a for a in active if a[0] >= start]
                active.append((end, task_id))
                if len(active) > capacity:
                    groups.append(frozenset(tid for _end, tid in active))

            maximal = [g for g in set(groups) if not any(g < other for other in groups)]
            for group in sorted(maximal, key=sorted):
                conflicts.append(ScheduleConflict(
                    conflict_type=ConflictType.RESOURCE_CONFLICT,
                    severity=IssueSeverity.MEDIUM,
                    affected_tasks=list(group),
                    suggested_resolution=f"Stagger these {trade} tasks or add crews beyond {capacity}",
                    description=f"{len(group)} concurrent {trade} tasks exceed crew capacity of {capacity}",
                    auto_resolvable=False,
                ))
        return conflicts
