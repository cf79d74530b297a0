"""Errors raised by the recurrence engine and the task services."""


class PlannerError(Exception):
    """Base class for every error the planner reports to its callers."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class TaskNotFound(PlannerError):
    status_code = 404

    def __init__(self, task_id: int):
        super().__init__(f"Task {task_id} not found")
        self.task_id = task_id


class NoPendingOccurrence(PlannerError):
    status_code = 409

    def __init__(self, task_id: int | None):
        super().__init__(f"Task {task_id} has no pending occurrence to complete")
        self.task_id = task_id


class UnsupportedLegacyFormat(PlannerError):
    """The task still tracks completions as date strings instead of occurrences."""

    status_code = 409

    def __init__(self, task_id: int | None):
        super().__init__(
            f"Task {task_id} uses the legacy currentPeriodCompletions format; "
            "recreate it to use occurrence tracking"
        )
        self.task_id = task_id


class InvalidConfiguration(PlannerError):
    status_code = 422
