"""
Schedule intelligence engine: validation, conflict detection, inspection
scheduling and trade sequencing over one project's task snapshot.
"""

import copy
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Optional

from config.settings import settings as default_settings
from defaults import DEFAULT_RULES
from exceptions import AnalysisTimeoutError, GraphCycleError, InspectionNotFoundError
from helpers import build_dependency_graph
from models import (
    InspectionSchedule, OptimizedSchedule, Phase, PhaseOrderingRules,
    ScheduleConflict, Task, TradeHandoff, ValidationResult,
)
from utils.calendar import AdvancedCalendar, to_date
from utils.conflicts import ConflictDetector
from utils.handoffs import build_handoff_sequence, upcoming_handoffs
from utils.inspections import InspectionScheduler
from utils.optimizer import CPMAnalyzer, TradeSequencingOptimizer
from utils.sequence_validator import SequenceValidator

logger = logging.getLogger(__name__)

__all__ = ["AnalysisReport", "CPMAnalyzer", "ScheduleIntelligenceEngine"]


@dataclass
class AnalysisReport:
    project_id: str
    task_count: int
    rules_version: str
    validation: List[ValidationResult] = field(default_factory=list)
    conflicts: List[ScheduleConflict] = field(default_factory=list)
    inspections: List[InspectionSchedule] = field(default_factory=list)
    optimization: Optional[OptimizedSchedule] = None
    optimization_error: Optional[str] = None
    handoffs: List[TradeHandoff] = field(default_factory=list)
    generated_at: datetime = field(default_factory=datetime.now)

    @property
    def optimization_available(self) -> bool:
        return self.optimization is not None

    @property
    def invalid_tasks(self) -> List[ValidationResult]:
        return [r for r in self.validation if not r.is_valid]

    def to_dict(self) -> dict:
        return {
            "project_id": self.project_id,
            "task_count": self.task_count,
            "rules_version": self.rules_version,
            "generated_at": self.generated_at.isoformat(),
            "validation": [r.to_dict() for r in self.validation],
            "conflicts": [c.to_dict() for c in self.conflicts],
            "inspections": [i.to_dict() for i in self.inspections],
            "optimization": self.optimization.to_dict() if self.optimization else None,
            "optimization_error": self.optimization_error,
            "handoffs": [h.to_dict() for h in self.handoffs],
        }


class ScheduleIntelligenceEngine:
    """
    Facade over the four analyses.

    Task data comes from ``repository`` once per call; only conflict
    resolution state and inspection records are written back.
    """

    def __init__(self, repository, rules: PhaseOrderingRules = DEFAULT_RULES, settings=default_settings):
        self.repository = repository
        self.rules = rules
        self.settings = settings
        self.calendar = AdvancedCalendar(holidays=settings.HOLIDAYS, workweek=settings.DEFAULT_WORKWEEK)

        self.validator = SequenceValidator(rules)
        self.detector = ConflictDetector(rules, trade_capacity=settings.TRADE_CAPACITY)
        self.scheduler = InspectionScheduler(
            rules,
            calendar=self.calendar,
            lead_time_days=settings.INSPECTION_LEAD_TIME_DAYS,
            daily_capacity=settings.DAILY_INSPECTION_CAPACITY,
        )
        self.optimizer = TradeSequencingOptimizer(rules)

    # ------------------------------------------------------------------
    # Time-bounded execution
    # ------------------------------------------------------------------
    def _run_bounded(self, jobs: dict) -> dict:
        """
        Run named callables concurrently and join them within the time budget.
        Raises AnalysisTimeoutError for the first job still running when the
        budget runs out; no partial results are returned.
        """
        budget = self.settings.ANALYSIS_TIME_BUDGET_SECONDS
        pool = ThreadPoolExecutor(max_workers=max(1, min(self.settings.MAX_WORKERS, len(jobs))))
        try:
            futures = {name: pool.submit(fn) for name, fn in jobs.items()}
            deadline = time.monotonic() + budget
            results = {}
            for name, future in futures.items():
                try:
                    results[name] = future.result(timeout=max(0.0, deadline - time.monotonic()))
                except FutureTimeoutError:
                    logger.error(f"⏱️ {name} exceeded the {budget:.1f}s analysis budget")
                    raise AnalysisTimeoutError(name, budget)
            return results
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

    def _snapshot(self, project_id: str) -> List[Task]:
        tasks = self.repository.load_tasks(project_id)
        logger.debug(f"Loaded {len(tasks)} tasks for project {project_id}")
        return tasks

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def validate_task_sequence(self, tasks: List[Task], as_of: Optional[date] = None) -> List[ValidationResult]:
        if not tasks:
            return []
        inspections = []
        for project_id in sorted({t.project_id for t in tasks}):
            inspections.extend(self.repository.list_inspections(project_id))
        snapshot = copy.deepcopy(list(tasks))
        return self._run_bounded({
            "validate_task_sequence": lambda: self.validator.validate(snapshot, inspections, as_of),
        })["validate_task_sequence"]

    def detect_schedule_conflicts(self, project_id: str) -> List[ScheduleConflict]:
        tasks = self._snapshot(project_id)
        existing = self.repository.list_inspections(project_id)
        prior = self.repository.list_conflicts(project_id)

        def job():
            plan = self.scheduler.schedule(tasks, existing)
            return self.detector.detect(tasks, plan, prior)

        detected = self._run_bounded({"detect_schedule_conflicts": job})["detect_schedule_conflicts"]
        return self.repository.sync_conflicts(project_id, detected)

    def auto_schedule_inspections(self, project_id: str) -> List[InspectionSchedule]:
        tasks = self._snapshot(project_id)
        existing = self.repository.list_inspections(project_id)
        inspections = self._run_bounded({
            "auto_schedule_inspections": lambda: self.scheduler.schedule(tasks, existing),
        })["auto_schedule_inspections"]
        return [self.repository.upsert_inspection(i) for i in inspections]

    def optimize_trade_sequencing(self, project_id: str) -> OptimizedSchedule:
        """
        Raises:
            GraphCycleError: when the task dependency graph is cyclic
        """
        tasks = self._snapshot(project_id)
        existing = self.repository.list_inspections(project_id)

        def job():
            plan = self.scheduler.schedule(tasks, existing)
            return self.optimizer.optimize(tasks, plan)

        return self._run_bounded({"optimize_trade_sequencing": job})["optimize_trade_sequencing"]

    def resolve_conflict(self, project_id: str, signature_or_id: str) -> bool:
        """Mark a conflict resolved. Returns False when it was already resolved (or unknown)."""
        changed = self.repository.resolve_conflict(project_id, signature_or_id)
        if changed:
            logger.info(f"✅ Conflict {signature_or_id} resolved for project {project_id}")
        else:
            logger.info(f"Conflict {signature_or_id} already resolved or unknown, nothing to do")
        return changed

    def override_inspection_date(self, project_id: str, phase, new_date) -> InspectionSchedule:
        """
        Pin an inspection to a date chosen by a person. Later scheduling runs
        keep this date.
        """
        phase = Phase(phase)
        record = self.repository.get_inspection(project_id, phase)
        if record is None:
            raise InspectionNotFoundError(
                f"No {phase.value} inspection recorded for project {project_id}"
            )
        record.optimal_date = to_date(new_date)
        record.auto_scheduled = False
        logger.info(f"📌 {phase.value} inspection for {project_id} pinned to {record.optimal_date}")
        return self.repository.upsert_inspection(record)

    def get_trade_handoffs(self, project_id: str, within_days: Optional[int] = None,
                           as_of: Optional[date] = None) -> List[TradeHandoff]:
        as_of = as_of or date.today()
        graph = build_dependency_graph(self._snapshot(project_id), self.rules)
        handoffs = build_handoff_sequence(graph, as_of)
        if within_days is not None:
            handoffs = upcoming_handoffs(handoffs, as_of, within_days)
        return handoffs

    def run_full_analysis(self, project_id: str, as_of: Optional[date] = None) -> AnalysisReport:
        """
        Run the four analyses concurrently over one snapshot.

        A cyclic dependency graph only disables the optimization; the other
        results are still returned. Exceeding the time budget fails the run.
        """
        as_of = as_of or date.today()
        tasks = self._snapshot(project_id)
        existing = self.repository.list_inspections(project_id)
        prior = self.repository.list_conflicts(project_id)

        def validate():
            own = copy.deepcopy(tasks)
            return self.validator.validate(own, copy.deepcopy(existing), as_of)

        def detect():
            own = copy.deepcopy(tasks)
            plan = self.scheduler.schedule(own, copy.deepcopy(existing))
            return self.detector.detect(own, plan, copy.deepcopy(prior))

        def schedule():
            return self.scheduler.schedule(copy.deepcopy(tasks), copy.deepcopy(existing))

        def optimize():
            own = copy.deepcopy(tasks)
            plan = self.scheduler.schedule(own, copy.deepcopy(existing))
            try:
                return self.optimizer.optimize(own, plan)
            except GraphCycleError as e:
                return e

        started = time.monotonic()
        results = self._run_bounded({
            "validate_task_sequence": validate,
            "detect_schedule_conflicts": detect,
            "auto_schedule_inspections": schedule,
            "optimize_trade_sequencing": optimize,
        })

        report = AnalysisReport(
            project_id=project_id,
            task_count=len(tasks),
            rules_version=self.rules.version,
            validation=results["validate_task_sequence"],
            conflicts=self.repository.sync_conflicts(project_id, results["detect_schedule_conflicts"]),
            inspections=[self.repository.upsert_inspection(i) for i in results["auto_schedule_inspections"]],
        )

        optimization = results["optimize_trade_sequencing"]
        if isinstance(optimization, GraphCycleError):
            logger.warning(f"⚠️ Optimization unavailable for {project_id}: {optimization}")
            report.optimization_error = f"Optimization unavailable: {optimization}"
        else:
            report.optimization = optimization

        report.handoffs = build_handoff_sequence(build_dependency_graph(tasks, self.rules), as_of)
        logger.info(
            f"📊 Full analysis of {project_id}: {len(tasks)} tasks, {len(report.invalid_tasks)} invalid, "
            f"{len(report.conflicts)} conflicts in {time.monotonic() - started:.2f}s"
        )
        return report
