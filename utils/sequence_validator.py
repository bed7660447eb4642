"""
Sequence validation of construction tasks against phase-ordering rules.

Every task gets exactly one ValidationResult, in input order. Data problems
(bad dates, unknown phases) are reported as critical issues rather than
raised, so one broken record never hides the findings for the others.
"""

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional

from models import (
    InspectionSchedule, IssueSeverity, Phase, PhaseOrderingRules, Task,
    TaskStatus, ValidationIssue, ValidationResult,
)

logger = logging.getLogger(__name__)

PREREQUISITE_MESSAGE = "Starts before prerequisite phase completes"


class SequenceValidator:

    def __init__(self, rules: PhaseOrderingRules):
        self.rules = rules

    # ------------------------------------------------------------------
    # Prerequisite analysis (shared with the conflict detector)
    # ------------------------------------------------------------------
    def blocking_predecessors(self, task: Task, project_tasks: Iterable[Task]) -> Dict[Phase, List[Task]]:
        """
        Unfinished predecessor tasks that end after ``task`` starts, grouped
        by the predecessor phase whose completion threshold is not met.
        """
        phase = task.known_phase
        if phase is None or not task.has_valid_dates:
            return {}

        by_phase = defaultdict(list)
        for other in project_tasks:
            if other.id != task.id and other.known_phase is not None:
                by_phase[other.known_phase].append(other)

        blocking = {}
        for pred_phase, threshold in self.rules.required_predecessors(phase, set(by_phase)).items():
            preds = by_phase.get(pred_phase, [])
            if not preds:
                continue
            done = [
                p for p in preds
                if p.is_completed or (p.has_valid_dates and p.end_date <= task.start_date)
            ]
            if len(done) / len(preds) >= threshold:
                continue
            late = [
                p for p in preds
                if not p.is_completed and p.has_valid_dates and p.end_date > task.start_date
            ]
            if late:
                blocking[pred_phase] = sorted(late, key=lambda p: (p.end_date, p.id))
        return blocking

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self, tasks: List[Task], inspections: Optional[Iterable[InspectionSchedule]] = None,
                 as_of: Optional[date] = None) -> List[ValidationResult]:
        as_of = as_of or date.today()

        by_project = defaultdict(list)
        for task in tasks:
            by_project[task.project_id].append(task)

        approved = set()
        for inspection in inspections or []:
            if inspection.status.is_approved_equivalent:
                approved.add((inspection.project_id, inspection.required_for_phase))

        results = []
        for task in tasks:
            issues, recommendations = self._check_task(task, by_project[task.project_id], approved, as_of)
            results.append(ValidationResult(
                task_id=task.id,
                task_name=task.name,
                issues=issues,
                recommendations=recommendations,
            ))

        invalid = sum(1 for r in results if not r.is_valid)
        logger.debug(f"Validated {len(results)} tasks, {invalid} invalid")
        return results

    def _check_task(self, task: Task, project_tasks: List[Task], approved: set, as_of: date):
        issues: List[ValidationIssue] = []
        recommendations: List[str] = []

        phase = task.known_phase
        if phase is None:
            issues.append(ValidationIssue(
                severity=IssueSeverity.CRITICAL,
                description=f"Unknown phase '{task.phase}'",
                remediation=f"Use one of: {', '.join(p.value for p in Phase)}",
                code="unknown_phase",
            ))

        if not task.has_valid_dates:
            if task.start_date is None or task.end_date is None:
                description = "Start or end date is missing"
            else:
                description = f"End date {task.end_date} is before start date {task.start_date}"
            issues.append(ValidationIssue(
                severity=IssueSeverity.CRITICAL,
                description=description,
                remediation="Correct the task dates so that end date is on or after start date",
                code="invalid_dates",
            ))
        elif phase is not None:
            for pred_phase, blockers in self.blocking_predecessors(task, project_tasks).items():
                latest_end = max(p.end_date for p in blockers)
                shift_to = latest_end + timedelta(days=1)
                issues.append(ValidationIssue(
                    severity=IssueSeverity.CRITICAL,
                    description=(
                        f"{PREREQUISITE_MESSAGE}: {pred_phase.value} task(s) "
                        f"{', '.join(p.id for p in blockers)} end on {latest_end}, "
                        f"after this task starts on {task.start_date}"
                    ),
                    remediation=f"Shift start date to {shift_to} or later",
                    code="prerequisite_incomplete",
                ))
                recommendations.append(
                    f"Shift start date of '{task.name}' from {task.start_date} to {shift_to}"
                )

        if task.inspection_required and phase is not None and (task.project_id, phase) not in approved:
            issues.append(ValidationIssue(
                severity=IssueSeverity.HIGH,
                description=f"Required {phase.value} inspection has not been scheduled",
                remediation="Schedule the inspection before work in dependent phases begins",
                code="inspection_not_scheduled",
            ))
            recommendations.append(f"Book the {phase.value} inspection")

        # Awareness only, these never make a task invalid
        if task.status == TaskStatus.BLOCKED:
            issues.append(ValidationIssue(
                severity=IssueSeverity.MEDIUM,
                description="Task is marked as blocked",
                remediation="Clear the blocker or re-plan dependent work",
                code="task_blocked",
            ))
        if task.is_completed and task.end_date is not None and task.end_date > as_of:
            issues.append(ValidationIssue(
                severity=IssueSeverity.MEDIUM,
                description=f"Task is completed but its end date {task.end_date} is in the future",
                remediation="Update the end date to the actual completion date",
                code="completed_in_future",
            ))
        if not task.assigned_trade:
            issues.append(ValidationIssue(
                severity=IssueSeverity.LOW,
                description="No trade assigned",
                code="no_trade_assigned",
            ))
            recommendations.append(f"Assign a trade to '{task.name}'")
        if task.status == TaskStatus.IN_PROGRESS and task.start_date is not None and as_of < task.start_date:
            issues.append(ValidationIssue(
                severity=IssueSeverity.LOW,
                description=f"Task is in progress before its planned start {task.start_date}",
                remediation="Move the start date to the actual start",
                code="started_early",
            ))

        return issues, recommendations
