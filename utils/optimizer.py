"""
Trade sequencing optimization built on a critical path analysis.

The optimizer only proposes actions; task records are never changed.
"""

import logging
from collections import defaultdict, deque
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from defaults import MAX_BUFFER_DAYS
from helpers import TaskGraph, TradeIntervalIndex, build_dependency_graph
from models import (
    InspectionSchedule, InspectionStatus, OptimizationAction, OptimizationType,
    OptimizedSchedule, PhaseOrderingRules, Task,
)

logger = logging.getLogger(__name__)

# (action, id of the task it moves, proposed start)
Candidate = Tuple[OptimizationAction, str, date]


class CPMAnalyzer:
    """
    Critical Path Method analyzer over task ids, durations (days) and
    predecessor lists.
    """

    def __init__(self, tasks: List[str], durations: Dict[str, int], dependencies: Dict[str, Iterable[str]]):
        """
        Args:
            tasks: Task ids in topological order
            durations: Duration in days per task id
            dependencies: Predecessor ids per task id
        """
        self.tasks = list(tasks)
        self.durations = durations
        self.dependencies = {tid: sorted(dependencies.get(tid, ())) for tid in self.tasks}

        # Graph structures
        self.adj = defaultdict(list)      # Successors
        self.rev_adj = defaultdict(list)  # Predecessors
        self.indeg = defaultdict(int)
        self.outdeg = defaultdict(int)

        # CPM results
        self.ES, self.EF = {}, {}  # Earliest Start/Finish
        self.LS, self.LF = {}, {}  # Latest Start/Finish
        self.float = {}
        self.project_duration = 0

    def build_graph(self):
        for tid in self.tasks:
            for pred in self.dependencies[tid]:
                self.adj[pred].append(tid)
                self.rev_adj[tid].append(pred)
                self.indeg[tid] += 1
                self.outdeg[pred] += 1

    def forward_pass(self):
        """Compute earliest start and finish offsets."""
        indeg = dict(self.indeg)
        queue = deque([tid for tid in self.tasks if indeg.get(tid, 0) == 0])

        while queue:
            current = queue.popleft()
            self.ES[current] = max((self.EF[p] for p in self.dependencies[current]), default=0)
            self.EF[current] = self.ES[current] + self.durations[current]

            for successor in self.adj[current]:
                indeg[successor] -= 1
                if indeg[successor] == 0:
                    queue.append(successor)

        self.project_duration = max(self.EF.values()) if self.EF else 0

    def backward_pass(self):
        """Compute latest start and finish offsets."""
        if not self.EF:
            raise ValueError("Must run forward pass before backward pass")

        outdeg = dict(self.outdeg)
        queue = deque([tid for tid in self.tasks if outdeg.get(tid, 0) == 0])
        for tid in queue:
            self.LF[tid] = self.project_duration
            self.LS[tid] = self.LF[tid] - self.durations[tid]

        while queue:
            current = queue.popleft()
            for predecessor in self.rev_adj[current]:
                self.LF[predecessor] = min(self.LF.get(predecessor, self.LS[current]), self.LS[current])
                self.LS[predecessor] = self.LF[predecessor] - self.durations[predecessor]
                outdeg[predecessor] -= 1
                if outdeg[predecessor] == 0:
                    queue.append(predecessor)

    def calculate_float(self):
        for tid in self.tasks:
            self.float[tid] = self.LS[tid] - self.ES[tid]

    def analyze(self) -> int:
        """Run full CPM analysis and return the project duration in days."""
        if not self.tasks:
            return 0
        self.build_graph()
        self.forward_pass()
        self.backward_pass()
        self.calculate_float()
        return self.project_duration

    def get_critical_tasks(self) -> List[str]:
        """Critical task ids (zero float), in topological order."""
        return [tid for tid in self.tasks if self.float.get(tid, 0) == 0]

    def get_critical_path(self) -> List[str]:
        """
        The longest chain of zero-float tasks, each starting the moment its
        predecessor finishes and ending at the project finish. Linear in the
        number of links; ties go to the earlier task in topological order.
        """
        depth, back = {}, {}
        for tid in self.tasks:
            if self.float.get(tid) != 0:
                continue
            depth[tid], back[tid] = 1, None
            for pred in self.dependencies[tid]:
                if pred in depth and self.EF[pred] == self.ES[tid] and depth[pred] + 1 > depth[tid]:
                    depth[tid], back[tid] = depth[pred] + 1, pred

        ends = [tid for tid in depth if self.EF[tid] == self.project_duration]
        if not ends:
            return []

        current = max(ends, key=lambda tid: depth[tid])
        path = []
        while current is not None:
            path.append(current)
            current = back[current]
        return path[::-1]


class TradeSequencingOptimizer:

    def __init__(self, rules: PhaseOrderingRules, max_buffer_days: int = MAX_BUFFER_DAYS):
        self.rules = rules
        self.max_buffer_days = max_buffer_days

    def optimize(self, tasks: List[Task], inspections: Iterable[InspectionSchedule] = ()) -> OptimizedSchedule:
        """
        Propose overlap, reorder and buffer-compression actions.

        Raises:
            GraphCycleError: if explicit task links make the dependency graph cyclic
        """
        usable = [t for t in tasks if t.is_schedulable]
        if not usable:
            return OptimizedSchedule()

        graph = build_dependency_graph(usable, self.rules)
        order = graph.order()

        cpm = CPMAnalyzer(order, {t.id: t.duration_days for t in usable}, graph.predecessors)
        floor_days = cpm.analyze()
        critical = set(cpm.get_critical_tasks())
        critical_path = cpm.get_critical_path()

        project_start = min(t.start_date for t in usable)
        naive_completion = max(t.end_date for t in usable)
        floor_date = project_start + timedelta(days=floor_days - 1)

        descendants = {tid: graph.descendants(tid) for tid in graph.tasks}
        inspection_dates = sorted(
            i.optimal_date for i in inspections if i.status != InspectionStatus.CANCELLED
        )
        trades = TradeIntervalIndex(usable)

        candidates = (
            self._overlap_candidates(graph, critical, descendants, trades)
            + self._reorder_candidates(graph, critical, trades, project_start)
            + self._buffer_candidates(graph, trades, inspection_dates)
        )
        actions = self._select(candidates, graph, TradeIntervalIndex(usable))

        saved = sum(a.time_impact for a in actions)
        new_completion = max(naive_completion - timedelta(days=saved), floor_date)

        logger.info(
            f"⚙️ Optimization: {len(actions)} action(s), {saved} day(s) saved, "
            f"critical path {floor_days} day(s)"
        )
        return OptimizedSchedule(
            optimizations_applied=actions,
            estimated_time_saved=saved,
            new_completion_date=new_completion,
            original_completion_date=naive_completion,
            critical_path=critical_path,
            critical_path_days=floor_days,
            critical_path_floor_date=floor_date,
        )

    # ------------------------------------------------------------------
    # Shared bounds
    # ------------------------------------------------------------------
    @staticmethod
    def _predecessor_bound(task_id: str, graph: TaskGraph) -> Optional[date]:
        ends = [graph.tasks[p].end_date for p in graph.predecessors[task_id]]
        return max(ends) + timedelta(days=1) if ends else None

    @staticmethod
    def _free_start(task: Task, start: date, trades: TradeIntervalIndex) -> date:
        """Earliest start on or after ``start`` that keeps ``task``'s trade single-booked."""
        if not task.assigned_trade:
            return start
        span = timedelta(days=task.duration_days - 1)
        while start < task.start_date:
            blocking = trades.blocking_end(task.assigned_trade, start, start + span, ignore=task.id)
            if blocking is None:
                return start
            start = blocking + timedelta(days=1)
        return task.start_date

    # ------------------------------------------------------------------
    # Candidate actions
    # ------------------------------------------------------------------
    def _overlap_candidates(self, graph: TaskGraph, critical: Set[str], descendants: Dict[str, Set[str]],
                            trades: TradeIntervalIndex) -> List[Candidate]:
        non_critical = sorted(
            (graph.tasks[tid] for tid in graph.tasks if tid not in critical),
            key=lambda t: (t.start_date, t.id),
        )
        candidates = []
        for later in non_critical:
            best = None
            for earlier in non_critical:
                if earlier.id == later.id or earlier.end_date >= later.start_date:
                    continue
                if not earlier.assigned_trade or not later.assigned_trade:
                    continue
                if earlier.assigned_trade == later.assigned_trade:
                    continue
                if later.id in descendants[earlier.id] or earlier.id in descendants[later.id]:
                    continue

                new_start = earlier.start_date
                bound = self._predecessor_bound(later.id, graph)
                if bound is not None and bound > new_start:
                    new_start = bound
                new_start = self._free_start(later, new_start, trades)
                impact = (later.start_date - new_start).days
                if impact > 0 and (best is None or impact > best[0]):
                    best = (impact, earlier, new_start)

            if best is None:
                continue
            impact, earlier, new_start = best
            candidates.append((OptimizationAction(
                type=OptimizationType.OVERLAP_PARALLEL_TRADES,
                description=(
                    f"Run '{later.name}' ({later.assigned_trade}) alongside '{earlier.name}' "
                    f"({earlier.assigned_trade}): start it on {new_start} instead of {later.start_date}"
                ),
                tasks_affected=[earlier.id, later.id],
                time_impact=impact,
            ), later.id, new_start))
        return candidates

    def _reorder_candidates(self, graph: TaskGraph, critical: Set[str], trades: TradeIntervalIndex,
                            project_start: date) -> List[Candidate]:
        tasks = sorted(graph.tasks.values(), key=lambda t: (t.end_date, t.id))
        if len(tasks) < 2:
            return []
        last, runner_up = tasks[-1], tasks[-2]
        if last.id in critical or last.end_date == runner_up.end_date:
            return []

        new_start = self._predecessor_bound(last.id, graph) or project_start
        new_start = self._free_start(last, new_start, trades)
        if new_start >= last.start_date:
            return []

        new_end = new_start + timedelta(days=last.duration_days - 1)
        impact = (last.end_date - max(new_end, runner_up.end_date)).days
        if impact <= 0:
            return []
        return [(OptimizationAction(
            type=OptimizationType.REORDER_NON_CRITICAL,
            description=(
                f"Move non-critical '{last.name}' earlier to start on {new_start}; "
                f"it no longer sets the completion date"
            ),
            tasks_affected=[last.id],
            time_impact=impact,
        ), last.id, new_start)]

    def _buffer_candidates(self, graph: TaskGraph, trades: TradeIntervalIndex,
                           inspection_dates: List[date]) -> List[Candidate]:
        candidates = []
        for task in sorted(graph.tasks.values(), key=lambda t: (t.start_date, t.id)):
            if not graph.predecessors[task.id]:
                continue
            latest_pred_end = max(graph.tasks[p].end_date for p in graph.predecessors[task.id])
            idle = (task.start_date - latest_pred_end).days - 1
            if idle <= self.max_buffer_days:
                continue
            if any(latest_pred_end < d < task.start_date for d in inspection_dates):
                continue

            new_start = latest_pred_end + timedelta(days=self.max_buffer_days + 1)
            new_start = self._free_start(task, new_start, trades)
            impact = (task.start_date - new_start).days
            if impact <= 0:
                continue
            candidates.append((OptimizationAction(
                type=OptimizationType.COMPRESS_BUFFER,
                description=(
                    f"Pull '{task.name}' in from {task.start_date} to {new_start}, "
                    f"cutting a {idle}-day buffer to {self.max_buffer_days}"
                ),
                tasks_affected=[task.id],
                time_impact=impact,
            ), task.id, new_start))
        return candidates

    @staticmethod
    def _select(candidates: List[Candidate], graph: TaskGraph, booked: TradeIntervalIndex) -> List[OptimizationAction]:
        """
        Greedy pick by impact; ties go to the earliest affected start, then
        task id. ``booked`` starts as the current trade intervals and follows
        every accepted move, so a later pick cannot double-book a trade that
        an earlier pick already filled.
        """
        def rank(candidate):
            action = candidate[0]
            earliest = min(graph.tasks[tid].start_date for tid in action.tasks_affected)
            return (-action.time_impact, earliest, sorted(action.tasks_affected))

        used = set()
        selected = []
        for action, moved_id, new_start in sorted(candidates, key=rank):
            if used.intersection(action.tasks_affected):
                continue
            task = graph.tasks[moved_id]
            new_end = new_start + timedelta(days=task.duration_days - 1)
            if task.assigned_trade and not booked.is_free(task.assigned_trade, new_start, new_end, ignore=moved_id):
                logger.debug(f"Skipping {action.type.value} on {moved_id}: {task.assigned_trade} already booked")
                continue
            booked.move(task, new_start, new_end)
            used.update(action.tasks_affected)
            selected.append(action)
        return selected
