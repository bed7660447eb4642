"""
Persistence collaborator for the schedule intelligence engine.

Reads task snapshots and stores the two pieces of state that outlive an
analysis run: conflict resolution status and inspection records.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy import or_

from backend.database import DatabaseManager
from backend.db_models import InspectionScheduleDB, ScheduleConflictDB, TaskDB
from models import (
    InspectionSchedule, Phase, ResolutionSource, ResolutionStatus, ScheduleConflict, Task,
    signature_digest,
)

logger = logging.getLogger(__name__)


def _task_from_row(row: TaskDB) -> Task:
    return Task(
        id=row.task_id,
        name=row.name,
        phase=row.phase,
        start_date=row.start_date,
        end_date=row.end_date,
        status=row.status,
        assigned_trade=row.assigned_trade,
        inspection_required=bool(row.inspection_required),
        project_id=row.project_id,
        depends_on=tuple(row.depends_on or ()),
    )


def _conflict_from_row(row: ScheduleConflictDB) -> ScheduleConflict:
    return ScheduleConflict(
        conflict_id=row.id,
        conflict_type=row.conflict_type,
        severity=row.severity,
        affected_tasks=list(row.affected_tasks or []),
        suggested_resolution=row.suggested_resolution,
        description=row.description or "",
        auto_resolvable=bool(row.auto_resolvable),
        resolution_status=row.resolution_status,
        resolution_source=row.resolution_source,
        project_id=row.project_id,
    )


def _inspection_from_row(row: InspectionScheduleDB) -> InspectionSchedule:
    return InspectionSchedule(
        inspection_id=row.id,
        inspection_type=row.inspection_type,
        required_for_phase=row.required_for_phase,
        optimal_date=row.optimal_date,
        prerequisites_met=bool(row.prerequisites_met),
        auto_scheduled=bool(row.auto_scheduled),
        project_id=row.project_id,
        status=row.status,
    )


class ScheduleRepository:

    def __init__(self, db_manager: Optional[DatabaseManager] = None):
        self.db = db_manager or DatabaseManager()

    # ------------------------- Tasks -------------------------
    def save_tasks(self, project_id: str, tasks: Iterable[Task]) -> int:
        """Insert or update tasks by (project, task id). Returns the number written."""
        count = 0
        with self.db.get_session() as session:
            existing = {
                row.task_id: row
                for row in session.query(TaskDB).filter(TaskDB.project_id == project_id)
            }
            for task in tasks:
                row = existing.get(task.id)
                if row is None:
                    row = TaskDB(project_id=project_id, task_id=task.id)
                    session.add(row)
                    existing[task.id] = row
                row.name = task.name
                row.phase = task.phase
                row.start_date = task.start_date
                row.end_date = task.end_date
                row.status = task.status.value
                row.assigned_trade = task.assigned_trade
                row.inspection_required = task.inspection_required
                row.depends_on = list(task.depends_on)
                count += 1
        logger.info(f"💾 Saved {count} tasks for project {project_id}")
        return count

    def load_tasks(self, project_id: str) -> List[Task]:
        with self.db.get_session() as session:
            rows = (
                session.query(TaskDB)
                .filter(TaskDB.project_id == project_id)
                .order_by(TaskDB.id)
                .all()
            )
            return [_task_from_row(row) for row in rows]

    # ------------------------- Conflicts -------------------------
    def list_conflicts(self, project_id: str, status: Optional[ResolutionStatus] = None) -> List[ScheduleConflict]:
        with self.db.get_session() as session:
            query = session.query(ScheduleConflictDB).filter(ScheduleConflictDB.project_id == project_id)
            if status is not None:
                query = query.filter(ScheduleConflictDB.resolution_status == ResolutionStatus(status).value)
            return [_conflict_from_row(row) for row in query.order_by(ScheduleConflictDB.signature)]

    def sync_conflicts(self, project_id: str, detected: List[ScheduleConflict]) -> List[ScheduleConflict]:
        """
        Store the open conflicts of a detection run.

        Conflicts are matched by signature and keep their id. Open conflicts
        from earlier runs that were not detected again are marked resolved as
        superseded; a superseded conflict that is detected again is reopened.
        Conflicts resolved by hand stay resolved. Nothing is deleted.
        """
        detected_keys = {signature_digest(c.signature) for c in detected}
        superseded = reopened = 0

        with self.db.get_session() as session:
            rows = {
                row.signature_hash: row
                for row in session.query(ScheduleConflictDB).filter(ScheduleConflictDB.project_id == project_id)
            }

            for conflict in detected:
                conflict.project_id = project_id
                key = signature_digest(conflict.signature)
                row = rows.get(key)
                if row is None:
                    row = ScheduleConflictDB(
                        id=conflict.conflict_id,
                        project_id=project_id,
                        signature=conflict.signature,
                        signature_hash=key,
                        conflict_type=conflict.conflict_type.value,
                        resolution_status=ResolutionStatus.OPEN.value,
                    )
                    session.add(row)
                    rows[key] = row
                elif row.resolution_status == ResolutionStatus.RESOLVED.value:
                    if row.resolution_source == ResolutionSource.SUPERSEDED.value:
                        row.resolution_status = ResolutionStatus.OPEN.value
                        row.resolution_source = None
                        row.resolved_at = None
                        reopened += 1
                    else:
                        # resolved by someone since the snapshot was read; leave it resolved
                        conflict.resolution_status = ResolutionStatus.RESOLVED
                        conflict.resolution_source = ResolutionSource.MANUAL
                        conflict.conflict_id = row.id
                        continue
                conflict.conflict_id = row.id

                row.severity = conflict.severity.value
                row.affected_tasks = list(conflict.affected_tasks)
                row.suggested_resolution = conflict.suggested_resolution
                row.description = conflict.description
                row.auto_resolvable = conflict.auto_resolvable

            for key, row in rows.items():
                if key not in detected_keys and row.resolution_status == ResolutionStatus.OPEN.value:
                    row.resolution_status = ResolutionStatus.RESOLVED.value
                    row.resolution_source = ResolutionSource.SUPERSEDED.value
                    row.resolved_at = datetime.utcnow()
                    superseded += 1

        if superseded:
            logger.info(f"Marked {superseded} superseded conflict(s) resolved for project {project_id}")
        if reopened:
            logger.info(f"⚠️ Reopened {reopened} conflict(s) that came back in project {project_id}")
        return [c for c in detected if c.resolution_status == ResolutionStatus.OPEN]

    def resolve_conflict(self, project_id: str, signature_or_id: str) -> bool:
        """
        Single conditional update; resolving an already-resolved conflict
        changes nothing and returns False.
        """
        with self.db.get_session() as session:
            updated = (
                session.query(ScheduleConflictDB)
                .filter(
                    ScheduleConflictDB.project_id == project_id,
                    or_(
                        ScheduleConflictDB.signature_hash == signature_digest(signature_or_id),
                        ScheduleConflictDB.id == signature_or_id,
                    ),
                    ScheduleConflictDB.resolution_status == ResolutionStatus.OPEN.value,
                )
                .update(
                    {
                        ScheduleConflictDB.resolution_status: ResolutionStatus.RESOLVED.value,
                        ScheduleConflictDB.resolution_source: ResolutionSource.MANUAL.value,
                        ScheduleConflictDB.resolved_at: datetime.utcnow(),
                    },
                    synchronize_session=False,
                )
            )
        return updated > 0

    # ------------------------- Inspections -------------------------
    def list_inspections(self, project_id: str) -> List[InspectionSchedule]:
        with self.db.get_session() as session:
            rows = (
                session.query(InspectionScheduleDB)
                .filter(InspectionScheduleDB.project_id == project_id)
                .all()
            )
            inspections = [_inspection_from_row(row) for row in rows]
        return sorted(inspections, key=lambda i: i.required_for_phase.rank)

    def get_inspection(self, project_id: str, phase) -> Optional[InspectionSchedule]:
        with self.db.get_session() as session:
            row = (
                session.query(InspectionScheduleDB)
                .filter_by(project_id=project_id, required_for_phase=Phase(phase).value)
                .first()
            )
            return _inspection_from_row(row) if row else None

    def upsert_inspection(self, inspection: InspectionSchedule) -> InspectionSchedule:
        """Insert or update the inspection keyed by (project, phase)."""
        with self.db.get_session() as session:
            row = (
                session.query(InspectionScheduleDB)
                .filter_by(project_id=inspection.project_id,
                           required_for_phase=inspection.required_for_phase.value)
                .first()
            )
            if row is None:
                row = InspectionScheduleDB(
                    id=inspection.inspection_id,
                    project_id=inspection.project_id,
                    required_for_phase=inspection.required_for_phase.value,
                )
                session.add(row)
            else:
                inspection.inspection_id = row.id

            row.inspection_type = inspection.inspection_type
            row.optimal_date = inspection.optimal_date
            row.prerequisites_met = inspection.prerequisites_met
            row.auto_scheduled = inspection.auto_scheduled
            row.status = inspection.status.value
        return inspection
