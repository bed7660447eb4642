"""
Domain model for the construction schedule intelligence engine.

Task records are read-only snapshots supplied by the caller; every other
type here is a derived analysis artefact recomputed on each run.
"""

import hashlib
import uuid
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import date
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple

from exceptions import GraphCycleError
from utils.calendar import to_date


class Phase(str, Enum):
    """Construction phases in their fixed relative order."""

    SITE_PREP = "site_prep"
    FOUNDATION = "foundation"
    FRAMING = "framing"
    ROUGH_IN = "rough_in"
    INSPECTION = "inspection"
    FINISHING = "finishing"
    PUNCH_LIST = "punch_list"

    @property
    def rank(self) -> int:
        return list(Phase).index(self)

    @classmethod
    def parse(cls, value) -> Optional["Phase"]:
        """Return the matching phase, or None for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


class IssueSeverity(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def blocks_validity(self) -> bool:
        return self in (IssueSeverity.CRITICAL, IssueSeverity.HIGH)


class ConflictType(str, Enum):
    SEQUENCE_VIOLATION = "sequence_violation"
    TRADE_OVERLAP = "trade_overlap"
    RESOURCE_CONFLICT = "resource_conflict"
    INSPECTION_BLOCKING = "inspection_blocking"


class ResolutionStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class ResolutionSource(str, Enum):
    MANUAL = "manual"          # someone resolved it
    SUPERSEDED = "superseded"  # a later run no longer detected it


class InspectionStatus(str, Enum):
    SCHEDULED = "scheduled"
    PASSED = "passed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_approved_equivalent(self) -> bool:
        return self in (InspectionStatus.SCHEDULED, InspectionStatus.PASSED)


class OptimizationType(str, Enum):
    OVERLAP_PARALLEL_TRADES = "overlap_parallel_trades"
    REORDER_NON_CRITICAL = "reorder_non_critical"
    COMPRESS_BUFFER = "compress_buffer"


class HandoffStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BLOCKED = "blocked"


def _new_id() -> str:
    return str(uuid.uuid4())


def _plain(value):
    """Convert enums and dates inside asdict() output to JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    return value


@dataclass(frozen=True)
class Task:
    """
    A scheduled unit of construction work.

    The phase is kept as supplied so that records with an unknown phase can
    still be reported by the validator; use ``known_phase`` for the enum.
    Dates are inclusive calendar days.
    """

    id: str
    name: str
    phase: str
    start_date: Optional[date]
    end_date: Optional[date]
    status: TaskStatus = TaskStatus.NOT_STARTED
    assigned_trade: Optional[str] = None
    inspection_required: bool = False
    project_id: str = ""
    depends_on: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "id", str(self.id))
        if isinstance(self.phase, Phase):
            object.__setattr__(self, "phase", self.phase.value)
        object.__setattr__(self, "status", TaskStatus(self.status))
        object.__setattr__(self, "depends_on", tuple(str(d) for d in (self.depends_on or ())))
        if self.assigned_trade is not None and not str(self.assigned_trade).strip():
            object.__setattr__(self, "assigned_trade", None)

    @classmethod
    def from_dict(cls, data: dict, project_id: Optional[str] = None) -> "Task":
        """Build a task from a plain mapping, parsing date strings."""
        values = dict(data)
        values["start_date"] = to_date(values.get("start_date"))
        values["end_date"] = to_date(values.get("end_date"))
        if project_id is not None:
            values["project_id"] = project_id
        return cls(**values)

    @property
    def known_phase(self) -> Optional[Phase]:
        return Phase.parse(self.phase)

    @property
    def has_valid_dates(self) -> bool:
        return (
            self.start_date is not None
            and self.end_date is not None
            and self.end_date >= self.start_date
        )

    @property
    def duration_days(self) -> int:
        if not self.has_valid_dates:
            return 0
        return (self.end_date - self.start_date).days + 1

    @property
    def is_completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED

    @property
    def is_schedulable(self) -> bool:
        """True when the task can take part in graph and interval analysis."""
        return self.known_phase is not None and self.has_valid_dates

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class ValidationIssue:
    severity: IssueSeverity
    description: str
    remediation: Optional[str] = None
    code: Optional[str] = None

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class ValidationResult:
    task_id: str
    task_name: str
    issues: List[ValidationIssue] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)
    is_valid: bool = field(init=False)

    def __post_init__(self):
        self.is_valid = not any(i.severity.blocks_validity for i in self.issues)

    @property
    def critical_issues(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == IssueSeverity.CRITICAL]

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class ScheduleConflict:
    conflict_type: ConflictType
    severity: IssueSeverity
    affected_tasks: List[str]
    suggested_resolution: str
    description: str = ""
    auto_resolvable: bool = False
    resolution_status: ResolutionStatus = ResolutionStatus.OPEN
    project_id: str = ""
    conflict_id: str = field(default_factory=_new_id)
    resolution_source: Optional[ResolutionSource] = None

    def __post_init__(self):
        self.conflict_type = ConflictType(self.conflict_type)
        self.severity = IssueSeverity(self.severity)
        self.resolution_status = ResolutionStatus(self.resolution_status)
        if self.resolution_source is not None:
            self.resolution_source = ResolutionSource(self.resolution_source)
        self.affected_tasks = sorted(str(t) for t in self.affected_tasks)

    @property
    def signature(self) -> str:
        """Stable identity of a conflict: type plus sorted affected task ids."""
        return conflict_signature(self.conflict_type, self.affected_tasks)

    @property
    def suppressed(self) -> bool:
        """Resolved by hand. Superseded conflicts are reported again if they come back."""
        return (self.resolution_status == ResolutionStatus.RESOLVED
                and self.resolution_source != ResolutionSource.SUPERSEDED)

    def to_dict(self) -> dict:
        data = _plain(asdict(self))
        data["signature"] = self.signature
        return data


def conflict_signature(conflict_type, affected_tasks) -> str:
    conflict_type = ConflictType(conflict_type)
    return f"{conflict_type.value}:{','.join(sorted(str(t) for t in affected_tasks))}"


def signature_digest(signature: str) -> str:
    """Fixed-length key for a signature of any length."""
    return hashlib.sha256(signature.encode("utf-8")).hexdigest()


@dataclass
class InspectionSchedule:
    inspection_type: str
    required_for_phase: Phase
    optimal_date: date
    prerequisites_met: bool
    auto_scheduled: bool = True
    project_id: str = ""
    status: InspectionStatus = InspectionStatus.SCHEDULED
    inspection_id: str = field(default_factory=_new_id)

    def __post_init__(self):
        self.required_for_phase = Phase(self.required_for_phase)
        self.status = InspectionStatus(self.status)

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class OptimizationAction:
    type: OptimizationType
    description: str
    tasks_affected: List[str]
    time_impact: int

    def __post_init__(self):
        self.type = OptimizationType(self.type)
        if self.time_impact < 0:
            raise ValueError(f"time_impact must be >= 0, got {self.time_impact}")

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class OptimizedSchedule:
    optimizations_applied: List[OptimizationAction] = field(default_factory=list)
    estimated_time_saved: int = 0
    new_completion_date: Optional[date] = None
    original_completion_date: Optional[date] = None
    critical_path: List[str] = field(default_factory=list)
    critical_path_days: int = 0
    critical_path_floor_date: Optional[date] = None

    def to_dict(self) -> dict:
        return _plain(asdict(self))


@dataclass
class TradeHandoff:
    from_task: str
    to_task: str
    from_trade: str
    to_trade: str
    handoff_date: date
    status: HandoffStatus = HandoffStatus.PENDING

    def to_dict(self) -> dict:
        return _plain(asdict(self))


class PhaseOrderingRules:
    """
    Directed acyclic dependency graph over phases.

    Each phase maps to the phases that must reach a minimum completion
    fraction before it may start. The table is static domain knowledge and
    is handed to the engine at construction time.
    """

    def __init__(self, requirements: Dict, version: str = "1"):
        self.version = version
        self._requirements: Dict[Phase, Dict[Phase, float]] = {phase: {} for phase in Phase}
        for phase, predecessors in requirements.items():
            phase = Phase(phase)
            if not isinstance(predecessors, dict):
                predecessors = {p: 1.0 for p in predecessors}
            for predecessor, threshold in predecessors.items():
                threshold = float(threshold)
                if not 0.0 < threshold <= 1.0:
                    raise ValueError(
                        f"Completion threshold for {phase.value} <- {predecessor} must be in (0, 1], got {threshold}"
                    )
                self._requirements[phase][Phase(predecessor)] = threshold
        self._check_acyclic()

    def _check_acyclic(self):
        indegree = {phase: 0 for phase in Phase}
        successors = {phase: [] for phase in Phase}
        for phase, predecessors in self._requirements.items():
            for predecessor in predecessors:
                indegree[phase] += 1
                successors[predecessor].append(phase)

        queue = deque(phase for phase, deg in indegree.items() if deg == 0)
        visited = 0
        while queue:
            current = queue.popleft()
            visited += 1
            for succ in successors[current]:
                indegree[succ] -= 1
                if indegree[succ] == 0:
                    queue.append(succ)

        if visited != len(indegree):
            cyclic = sorted(p.value for p, deg in indegree.items() if deg > 0)
            raise GraphCycleError(f"Cycle detected in phase ordering rules: {cyclic}", cyclic)

    def requirements(self, phase) -> Dict[Phase, float]:
        """Direct predecessor phases and their completion thresholds."""
        return dict(self._requirements[Phase(phase)])

    def required_predecessors(self, phase, present_phases: Optional[Set[Phase]] = None) -> Dict[Phase, float]:
        """
        Predecessor phases that gate ``phase`` within a project.

        A predecessor with no tasks in the project is replaced by its own
        predecessors, so a project that skips a phase is still ordered.
        """
        resolved: Dict[Phase, float] = {}
        for predecessor, threshold in self._requirements[Phase(phase)].items():
            if present_phases is None or predecessor in present_phases:
                resolved[predecessor] = max(threshold, resolved.get(predecessor, 0.0))
            else:
                for inner, inner_threshold in self.required_predecessors(predecessor, present_phases).items():
                    resolved[inner] = max(inner_threshold, resolved.get(inner, 0.0))
        return resolved

    def dependent_phases(self, phase, present_phases: Optional[Set[Phase]] = None) -> Set[Phase]:
        """Phases (among ``present_phases`` when given) that directly wait on ``phase``."""
        phase = Phase(phase)
        return {
            candidate for candidate in Phase
            if (present_phases is None or candidate in present_phases)
            and phase in self.required_predecessors(candidate, present_phases)
        }

    def as_dict(self) -> Dict[str, Dict[str, float]]:
        return {
            phase.value: {p.value: t for p, t in predecessors.items()}
            for phase, predecessors in self._requirements.items()
        }
