"""Exception types raised by the scheduler package."""

from __future__ import annotations


class CronTaskError(Exception):
    """Base class for all crontask errors."""


class ScheduleSyntaxError(CronTaskError, ValueError):
    """A schedule string is not a valid five-field cron expression."""

    def __init__(self, schedule: str, reason: str) -> None:
        self.schedule = schedule
        self.reason = reason
        super().__init__(f"Invalid schedule {schedule!r}: {reason}")


class InvalidTransition(CronTaskError):
    """A status change that the state machine does not allow."""

    def __init__(self, task_id: str, current: str, target: str) -> None:
        self.task_id = task_id
        self.current = current
        self.target = target
        super().__init__(f"Task {task_id!r} cannot move from {current} to {target}")


class TaskNotFound(CronTaskError, LookupError):
    """No status record or registration exists for a task id."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Unknown cron task: {task_id}")


class TaskNotEditable(CronTaskError):
    """The task's policy does not allow its schedule to be edited."""

    def __init__(self, task_id: str) -> None:
        self.task_id = task_id
        super().__init__(f"Cron task {task_id!r} does not allow schedule edits")
