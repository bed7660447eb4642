class ScheduleIntelligenceError(Exception):
    """Base class for errors raised by the schedule intelligence engine."""

    pass


class DataIntegrityError(ScheduleIntelligenceError):
    """Raised when task data has missing or inverted dates or an unknown phase."""

    def __init__(self, message, task_id=None):
        super().__init__(message)
        self.task_id = task_id


class GraphCycleError(ScheduleIntelligenceError):
    """Raised when the task dependency graph built for optimization contains a cycle."""

    def __init__(self, message, task_ids=None):
        super().__init__(message)
        self.task_ids = list(task_ids or [])


class AnalysisTimeoutError(ScheduleIntelligenceError):
    """Raised when an analysis run exceeds its configured time budget."""

    def __init__(self, operation, budget_seconds):
        super().__init__(
            f"{operation} exceeded its time budget of {budget_seconds:.1f}s; "
            f"retry or reduce the project scope"
        )
        self.operation = operation
        self.budget_seconds = budget_seconds


class InspectionNotFoundError(ScheduleIntelligenceError):
    """Raised when an inspection override targets a phase with no inspection record."""

    pass


class FileContentError(ScheduleIntelligenceError):
    """Raised when an uploaded task sheet is not as expected."""

    pass
