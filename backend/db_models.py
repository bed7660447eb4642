from datetime import datetime

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Text, JSON,
    CheckConstraint, Index, UniqueConstraint
)

from backend.database import Base
from models import (
    ConflictType, InspectionStatus, IssueSeverity, Phase, ResolutionSource, ResolutionStatus, TaskStatus,
)

# Constants for validation
VALID_TASK_STATUS = [s.value for s in TaskStatus]
VALID_CONFLICT_TYPES = [t.value for t in ConflictType]
VALID_SEVERITIES = [s.value for s in IssueSeverity]
VALID_RESOLUTION_STATUS = [s.value for s in ResolutionStatus]
VALID_RESOLUTION_SOURCES = [s.value for s in ResolutionSource]
VALID_INSPECTION_STATUS = [s.value for s in InspectionStatus]
VALID_PHASES = [p.value for p in Phase]


def _in(column, values):
    return f"{column} IN ({', '.join(repr(v) for v in values)})"


class TaskDB(Base):
    """
    Task snapshot rows. Phase and dates are stored as received so the
    validator can report bad records.
    """
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(String(64), nullable=False, index=True)
    task_id = Column(String(64), nullable=False)
    name = Column(String(200), nullable=False)
    phase = Column(String(50), nullable=False)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    status = Column(String(20), default="not_started", nullable=False)
    assigned_trade = Column(String(100), nullable=True)
    inspection_required = Column(Boolean, default=False, nullable=False)
    depends_on = Column(JSON, default=list)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "task_id", name="uq_task_project_task"),
        CheckConstraint(_in("status", VALID_TASK_STATUS), name="valid_task_status"),
        Index("idx_tasks_project_start", "project_id", "start_date"),
    )

    def __repr__(self):
        return f"<Task {self.project_id}/{self.task_id} {self.phase}>"


class ScheduleConflictDB(Base):
    __tablename__ = "schedule_conflicts"

    id = Column(String(36), primary_key=True)
    project_id = Column(String(64), nullable=False, index=True)
    signature = Column(Text, nullable=False)
    signature_hash = Column(String(64), nullable=False)  # sha256 hex of signature
    conflict_type = Column(String(30), nullable=False)
    severity = Column(String(10), nullable=False)
    affected_tasks = Column(JSON, nullable=False, default=list)
    suggested_resolution = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=True)
    auto_resolvable = Column(Boolean, default=False, nullable=False)
    resolution_status = Column(String(10), default="open", nullable=False)
    resolution_source = Column(String(12), nullable=True)
    detected_at = Column(DateTime, default=datetime.utcnow)
    resolved_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("project_id", "signature_hash", name="uq_conflict_project_signature"),
        CheckConstraint(_in("conflict_type", VALID_CONFLICT_TYPES), name="valid_conflict_type"),
        CheckConstraint(_in("severity", VALID_SEVERITIES), name="valid_conflict_severity"),
        CheckConstraint(_in("resolution_status", VALID_RESOLUTION_STATUS), name="valid_resolution_status"),
        CheckConstraint(_in("resolution_source", VALID_RESOLUTION_SOURCES), name="valid_resolution_source"),
        Index("idx_conflicts_project_status", "project_id", "resolution_status"),
    )

    def __repr__(self):
        return f"<Conflict {self.signature} ({self.resolution_status})>"


class InspectionScheduleDB(Base):
    __tablename__ = "inspection_schedules"

    id = Column(String(36), primary_key=True)
    project_id = Column(String(64), nullable=False, index=True)
    inspection_type = Column(String(50), nullable=False)
    required_for_phase = Column(String(50), nullable=False)
    optimal_date = Column(Date, nullable=False)
    prerequisites_met = Column(Boolean, default=False, nullable=False)
    auto_scheduled = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), default="scheduled", nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("project_id", "required_for_phase", name="uq_inspection_project_phase"),
        CheckConstraint(_in("required_for_phase", VALID_PHASES), name="valid_inspection_phase"),
        CheckConstraint(_in("status", VALID_INSPECTION_STATUS), name="valid_inspection_status"),
    )

    def __repr__(self):
        return f"<Inspection {self.project_id}/{self.required_for_phase} on {self.optimal_date}>"
