"""Cron task system: status records, due detection, locking, and the run cycle."""

from crontask.scheduler.admin import StatusAdmin
from crontask.scheduler.due import DueDetector
from crontask.scheduler.errors import (
    CronTaskError,
    InvalidTransition,
    ScheduleSyntaxError,
    TaskNotEditable,
    TaskNotFound,
)
from crontask.scheduler.lock import LockManager
from crontask.scheduler.models import Priority, StatusRecord, TaskStatus
from crontask.scheduler.output import OutputSink, Verbosity
from crontask.scheduler.registry import (
    BaseCronTask,
    CronTask,
    TaskPolicy,
    TaskRegistry,
    task_registry,
)
from crontask.scheduler.runner import CycleReport, Outcome, TaskResult, TaskRunner
from crontask.scheduler.schedule import ScheduleEvaluator, validate_schedule
from crontask.scheduler.state import StatusStateMachine
from crontask.scheduler.store import StatusStore

__all__ = [
    "BaseCronTask",
    "CronTask",
    "CronTaskError",
    "CycleReport",
    "DueDetector",
    "InvalidTransition",
    "LockManager",
    "Outcome",
    "OutputSink",
    "Priority",
    "ScheduleEvaluator",
    "ScheduleSyntaxError",
    "StatusAdmin",
    "StatusRecord",
    "StatusStateMachine",
    "StatusStore",
    "TaskNotEditable",
    "TaskNotFound",
    "TaskPolicy",
    "TaskRegistry",
    "TaskResult",
    "TaskRunner",
    "TaskStatus",
    "Verbosity",
    "task_registry",
    "validate_schedule",
]
