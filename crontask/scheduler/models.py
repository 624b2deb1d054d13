"""StatusRecord data model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum


class TaskStatus(str, Enum):
    """Lifecycle state of a task's status record."""

    PENDING = "pending"
    CHECKING = "checking"
    RUNNING = "running"
    ERROR = "error"
    OFF = "off"


class Priority(str, Enum):
    """Execution ordering hint when several tasks are due together."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.NORMAL: 1, Priority.LOW: 2}


@dataclass
class StatusRecord:
    """Durable scheduling state for one registered task.

    Attributes:
        task_id: Stable identifier of the task implementation.
        schedule: Cron expression governing due-ness.
        status: Current lifecycle state.
        enabled: Whether the task may ever run.
        priority: Ordering hint within a cycle.
        running_instances: Number of executions currently in flight.
        last_checked: When a cycle last examined the task (UTC).
        last_run: When the task body last started (UTC).
        is_locked: Exclusive-execution guard held by the owning cycle.
    """

    task_id: str
    schedule: str
    status: TaskStatus = TaskStatus.PENDING
    enabled: bool = True
    priority: Priority = Priority.NORMAL
    running_instances: int = 0
    last_checked: datetime | None = None
    last_run: datetime | None = None
    is_locked: bool = False

    def __post_init__(self) -> None:
        self.status = TaskStatus(self.status)
        self.priority = Priority(self.priority)
        if self.running_instances < 0:
            msg = "running_instances cannot be negative"
            raise ValueError(msg)

    # -- Convenience properties ------------------------------------------------

    @property
    def is_runnable(self) -> bool:
        """Whether the cycle may consider this task at all."""
        return self.enabled and self.status not in (TaskStatus.OFF, TaskStatus.ERROR)

    def copy_from(self, other: StatusRecord) -> None:
        """Overwrite every field with *other*'s values (same task only)."""
        if other.task_id != self.task_id:
            msg = f"Cannot copy {other.task_id!r} onto {self.task_id!r}"
            raise ValueError(msg)
        self.schedule = other.schedule
        self.status = other.status
        self.enabled = other.enabled
        self.priority = other.priority
        self.running_instances = other.running_instances
        self.last_checked = other.last_checked
        self.last_run = other.last_run
        self.is_locked = other.is_locked

    def to_dict(self) -> dict:
        """JSON-friendly view, used by the CLI and HTTP endpoint."""
        return {
            "task_id": self.task_id,
            "schedule": self.schedule,
            "status": self.status.value,
            "enabled": self.enabled,
            "priority": self.priority.value,
            "running_instances": self.running_instances,
            "last_checked": format_timestamp(self.last_checked),
            "last_run": format_timestamp(self.last_run),
            "is_locked": self.is_locked,
        }

    # -- Serialization ---------------------------------------------------------

    def to_row(self) -> tuple:
        """Serialize to a tuple matching the ``cron_task_status`` column order."""
        return (
            self.task_id,
            self.schedule,
            self.status.value,
            int(self.enabled),
            self.priority.value,
            self.running_instances,
            format_timestamp(self.last_checked),
            format_timestamp(self.last_run),
            int(self.is_locked),
        )

    @classmethod
    def from_row(cls, row: tuple) -> StatusRecord:
        """Deserialize from a SQLite row tuple."""
        return cls(
            task_id=row[0],
            schedule=row[1],
            status=TaskStatus(row[2]),
            enabled=bool(row[3]),
            priority=Priority(row[4]),
            running_instances=max(int(row[5] or 0), 0),
            last_checked=parse_timestamp(row[6]),
            last_run=parse_timestamp(row[7]),
            is_locked=bool(row[8]),
        )


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.astimezone(UTC).isoformat()


def parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    # Rows written before timestamps carried an offset are UTC
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
