import os
import tempfile
import bisect
import logging
from collections import defaultdict, deque
from typing import Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from exceptions import DataIntegrityError, FileContentError, GraphCycleError
from models import Phase, PhaseOrderingRules, Task, TaskStatus
from utils.calendar import to_date

logger = logging.getLogger(__name__)

TASK_SHEET_COLUMNS = [
    "TaskID", "TaskName", "Phase", "StartDate", "EndDate", "Status",
    "Trade", "InspectionRequired", "DependsOn",
]
REQUIRED_TASK_COLUMNS = ["TaskID", "TaskName", "Phase", "StartDate", "EndDate"]

# ------------------------- Parse Functions -------------------------


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "y", "x")


def _parse_text(value) -> str:
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return ""
    return str(value).strip()


def parse_task_excel(df: pd.DataFrame, project_id: str, strict: bool = False) -> List[Task]:
    """
    Parse an uploaded task sheet into Task objects.
    Expected columns: TaskID, TaskName, Phase, StartDate, EndDate, Status, Trade,
    InspectionRequired, DependsOn (comma separated task ids)

    Rows with bad dates or phases are kept so the validator can report them,
    unless ``strict`` is set, in which case DataIntegrityError is raised.
    """
    missing = [col for col in REQUIRED_TASK_COLUMNS if col not in df.columns]
    if missing:
        raise FileContentError(f"Task sheet is missing required columns: {missing}")

    tasks = []
    seen_ids = set()
    for _, row in df.iterrows():
        task_id = _parse_text(row.get("TaskID"))
        if not task_id:
            continue
        if task_id in seen_ids:
            raise FileContentError(f"Duplicate TaskID '{task_id}' in task sheet")
        seen_ids.add(task_id)

        status_raw = _parse_text(row.get("Status")).lower() or TaskStatus.NOT_STARTED.value
        try:
            status = TaskStatus(status_raw)
        except ValueError:
            logger.warning(f"⚠️ Unknown status '{status_raw}' for task {task_id}, using not_started")
            status = TaskStatus.NOT_STARTED

        depends_raw = _parse_text(row.get("DependsOn"))
        task = Task(
            id=task_id,
            name=_parse_text(row.get("TaskName")) or task_id,
            phase=_parse_text(row.get("Phase")).lower(),
            start_date=to_date(row.get("StartDate")),
            end_date=to_date(row.get("EndDate")),
            status=status,
            assigned_trade=_parse_text(row.get("Trade")) or None,
            inspection_required=_parse_bool(row.get("InspectionRequired")),
            project_id=project_id,
            depends_on=tuple(d.strip() for d in depends_raw.split(",") if d.strip()),
        )

        if strict:
            if task.known_phase is None:
                raise DataIntegrityError(f"Task {task_id} has unknown phase '{task.phase}'", task_id)
            if not task.has_valid_dates:
                raise DataIntegrityError(f"Task {task_id} has missing or inverted dates", task_id)
        tasks.append(task)

    logger.info(f"✅ Parsed {len(tasks)} tasks for project {project_id}")
    return tasks


def tasks_to_frame(tasks: Iterable[Task]) -> pd.DataFrame:
    """Inverse of parse_task_excel: one row per task in task-sheet layout."""
    records = []
    for task in tasks:
        records.append({
            "TaskID": task.id,
            "TaskName": task.name,
            "Phase": task.phase,
            "StartDate": task.start_date,
            "EndDate": task.end_date,
            "Status": task.status.value,
            "Trade": task.assigned_trade or "",
            "InspectionRequired": task.inspection_required,
            "DependsOn": ",".join(task.depends_on),
        })
    return pd.DataFrame(records, columns=TASK_SHEET_COLUMNS)


# ------------------------- Template Generation -------------------------

def generate_task_template(phases: Optional[List[Phase]] = None):
    """Generates an Excel template with one example row per phase."""
    phases = phases or list(Phase)
    records = []
    for idx, phase in enumerate(phases, start=1):
        records.append({
            "TaskID": f"T{idx}",
            "TaskName": "",
            "Phase": phase.value,
            "StartDate": "",
            "EndDate": "",
            "Status": TaskStatus.NOT_STARTED.value,
            "Trade": "",
            "InspectionRequired": False,
            "DependsOn": "",
        })
    df = pd.DataFrame(records, columns=TASK_SHEET_COLUMNS)
    temp_dir = tempfile.mkdtemp(prefix="task_template_")
    file_path = os.path.join(temp_dir, "task_template.xlsx")
    df.to_excel(file_path, index=False)
    return file_path


# Topological ordering util for task graphs
# -----------------------------
def Topo_order_tasks(task_ids: Iterable[str], predecessors: Dict[str, Set[str]]) -> List[str]:
    """
    Kahn ordering over task ids. Ties are broken by the input order so the
    result is deterministic. Raises GraphCycleError if a cycle remains.
    """
    task_ids = list(task_ids)
    position = {tid: i for i, tid in enumerate(task_ids)}
    indegree = {tid: 0 for tid in task_ids}
    successors = {tid: [] for tid in task_ids}

    for tid in task_ids:
        for p in predecessors.get(tid, ()):
            indegree[tid] += 1
            successors[p].append(tid)

    queue = deque([tid for tid in task_ids if indegree[tid] == 0])
    ordered_ids = []

    while queue:
        current = queue.popleft()
        ordered_ids.append(current)
        for succ in sorted(successors[current], key=position.get):
            indegree[succ] -= 1
            if indegree[succ] == 0:
                queue.append(succ)

    if len(ordered_ids) != len(task_ids):
        remaining = sorted(tid for tid, deg in indegree.items() if deg > 0)
        raise GraphCycleError(f"Cycle detected in task dependencies: {remaining}", remaining)

    return ordered_ids


class TaskGraph:
    """Task-level dependency graph (edges run predecessor -> successor)."""

    def __init__(self, tasks: Iterable[Task]):
        self.tasks: Dict[str, Task] = {t.id: t for t in tasks}
        self.predecessors: Dict[str, Set[str]] = {tid: set() for tid in self.tasks}
        self.successors: Dict[str, Set[str]] = {tid: set() for tid in self.tasks}

    def add_edge(self, pred: str, succ: str):
        if pred == succ:
            return
        self.predecessors[succ].add(pred)
        self.successors[pred].add(succ)

    def order(self) -> List[str]:
        ids = sorted(self.tasks, key=lambda tid: (self.tasks[tid].start_date, tid))
        return Topo_order_tasks(ids, self.predecessors)

    def descendants(self, task_id: str) -> Set[str]:
        seen = set()
        queue = deque(self.successors.get(task_id, ()))
        while queue:
            current = queue.popleft()
            if current in seen:
                continue
            seen.add(current)
            queue.extend(self.successors[current])
        return seen

    def related(self, a: str, b: str) -> bool:
        """True if either task is reachable from the other."""
        return b in self.descendants(a) or a in self.descendants(b)

    def edges(self) -> List[Tuple[str, str]]:
        return sorted((p, s) for s, preds in self.predecessors.items() for p in preds)


def build_dependency_graph(tasks: Iterable[Task], rules: PhaseOrderingRules) -> TaskGraph:
    """
    Task A depends on task B when A's phase requires B's phase and B starts
    no later than A, plus any explicit ``depends_on`` links. Tasks with an
    unknown phase or unusable dates are left out of the graph.
    """
    usable = [t for t in tasks if t.is_schedulable]
    graph = TaskGraph(usable)

    by_phase: Dict[Phase, List[Task]] = defaultdict(list)
    for task in usable:
        by_phase[task.known_phase].append(task)
    present = set(by_phase)

    for task in usable:
        for pred_phase in rules.required_predecessors(task.known_phase, present):
            for pred in by_phase.get(pred_phase, []):
                if pred.start_date <= task.start_date:
                    graph.add_edge(pred.id, task.id)

        for dep_id in task.depends_on:
            if dep_id in graph.tasks:
                graph.add_edge(dep_id, task.id)
            else:
                logger.debug(f"Task {task.id}: explicit dependency {dep_id} not in graph, ignored")

    return graph


def present_phases(tasks: Iterable[Task]) -> Set[Phase]:
    return {t.known_phase for t in tasks if t.known_phase is not None}


class TradeIntervalIndex:
    """
    Per-trade index of task date intervals kept sorted by start date.
    Intervals are inclusive on both ends.
    """

    def __init__(self, tasks: Iterable[Task] = ()):
        self.intervals: Dict[str, List[Tuple]] = defaultdict(list)  # trade -> sorted (start, end, task_id)
        for task in tasks:
            self.add(task)

    def add(self, task: Task):
        if not task.assigned_trade or not task.is_schedulable:
            return
        bisect.insort(self.intervals[task.assigned_trade], (task.start_date, task.end_date, task.id))

    def move(self, task: Task, start, end):
        """Re-book ``task`` on its trade for [start, end]."""
        if not task.assigned_trade:
            return
        booked = self.intervals[task.assigned_trade]
        booked[:] = [entry for entry in booked if entry[2] != task.id]
        bisect.insort(booked, (start, end, task.id))

    def trades(self) -> List[str]:
        return sorted(self.intervals)

    def overlapping_pairs(self, trade: str) -> List[Tuple[str, str]]:
        """
        Every pair of intersecting intervals for ``trade``, each reported
        once as (earlier-starting task, later-starting task).
        """
        pairs = []
        active: List[Tuple] = []
        for start, end, task_id in self.intervals.get(trade, []):
            active = [a for a in active if a[1] >= start]
            for _a_start, _a_end, a_id in active:
                pairs.append((a_id, task_id))
            active.append((start, end, task_id))
        return pairs

    def is_free(self, trade: str, start, end, ignore: Optional[str] = None) -> bool:
        for s, e, task_id in self.intervals.get(trade, []):
            if task_id == ignore:
                continue
            if s > end:
                break
            if e >= start:
                return False
        return True

    def blocking_end(self, trade: str, start, end, ignore: Optional[str] = None):
        """Latest end date among intervals intersecting [start, end], or None."""
        latest = None
        for s, e, task_id in self.intervals.get(trade, []):
            if task_id == ignore:
                continue
            if s > end:
                break
            if e >= start and (latest is None or e > latest):
                latest = e
        return latest
