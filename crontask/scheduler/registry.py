"""Task registry: the catalog of cron tasks this process can run."""

from __future__ import annotations

import importlib
import inspect
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Protocol, runtime_checkable

from crontask.scheduler.models import Priority, TaskStatus

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskPolicy:
    """Per-task defaults and limits.

    Attributes:
        schedule: Cron expression used when the task's status record is first
            created. Later edits live on the record.
        status: Initial status for a new record. None falls back to
            ``DEFAULT_TASK_STATUS``.
        priority: Initial priority for a new record.
        max_execution_seconds: How long a run may stay ``running`` before it
            is treated as stuck. None falls back to
            ``DEFAULT_MAX_EXECUTION_SECONDS``.
        allow_multiple_instances: Whether overlapping runs are permitted.
        editable: Whether an administrator may change the schedule.
    """

    schedule: str = "* * * * *"
    status: TaskStatus | None = None
    priority: Priority = Priority.NORMAL
    max_execution_seconds: int | None = None
    allow_multiple_instances: bool = False
    editable: bool = False


@runtime_checkable
class CronTask(Protocol):
    """What the runner needs from a task."""

    def get_schedule(self) -> str | None: ...

    async def process(self) -> None: ...

    def default_policy(self) -> TaskPolicy: ...


class BaseCronTask:
    """Convenience base supplying the policy-driven parts of :class:`CronTask`.

    Subclasses set ``policy`` and implement ``process``::

        class CleanupTask(BaseCronTask):
            policy = TaskPolicy(schedule="0 3 * * *", priority=Priority.LOW)

            async def process(self) -> None:
                ...
    """

    policy: ClassVar[TaskPolicy] = TaskPolicy()

    def get_schedule(self) -> str | None:
        return self.policy.schedule

    def default_policy(self) -> TaskPolicy:
        return self.policy

    async def process(self) -> None:
        raise NotImplementedError


class FunctionTask(BaseCronTask):
    """Adapts a plain async function into a :class:`CronTask`."""

    def __init__(self, fn: Callable[[], Awaitable[None]], policy: TaskPolicy) -> None:
        self._fn = fn
        self.policy = policy

    async def process(self) -> None:
        await self._fn()


@dataclass
class TaskEntry:
    """Internal representation of a registered task."""

    task_id: str
    factory: Callable[[], CronTask]


class TaskRegistry:
    """Explicit mapping of task id to a factory that builds the task.

    Supports two registration styles:

    1. Decorator (for stateless async functions)::

        @registry.task("cleanup", schedule="0 3 * * *")
        async def cleanup() -> None:
            ...

    2. Factory (for task classes)::

        registry.register("digest", DigestTask)
    """

    def __init__(self) -> None:
        self._tasks: dict[str, TaskEntry] = {}

    def register(self, task_id: str, factory: Callable[[], CronTask]) -> None:
        """Register *factory* under *task_id*. Ids must be unique."""
        if not task_id:
            msg = "Cron task id must not be empty"
            raise ValueError(msg)
        if task_id in self._tasks:
            msg = f"Cron task '{task_id}' is already registered"
            raise ValueError(msg)
        self._tasks[task_id] = TaskEntry(task_id=task_id, factory=factory)
        logger.debug("Registered cron task: %s", task_id)

    def task(
        self,
        task_id: str,
        *,
        schedule: str = "* * * * *",
        status: TaskStatus | None = None,
        priority: Priority = Priority.NORMAL,
        max_execution_seconds: int | None = None,
        allow_multiple_instances: bool = False,
        editable: bool = False,
    ) -> Callable:
        """Decorator to register an async function as a cron task."""
        policy = TaskPolicy(
            schedule=schedule,
            status=status,
            priority=priority,
            max_execution_seconds=max_execution_seconds,
            allow_multiple_instances=allow_multiple_instances,
            editable=editable,
        )

        def decorator(fn: Callable[[], Awaitable[None]]) -> Callable[[], Awaitable[None]]:
            if not inspect.iscoroutinefunction(fn):
                msg = f"Cron task '{task_id}' must be an async function"
                raise TypeError(msg)
            self.register(task_id, lambda: FunctionTask(fn, policy))
            return fn

        return decorator

    def get(self, task_id: str) -> TaskEntry | None:
        """Look up a registration by id."""
        return self._tasks.get(task_id)

    def create(self, task_id: str) -> CronTask:
        """Build a fresh task instance. Raises KeyError for unknown ids."""
        return self._tasks[task_id].factory()

    @property
    def task_ids(self) -> list[str]:
        """All registered ids, in registration order."""
        return list(self._tasks)

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks


def load_task_modules(modules: Iterable[str]) -> None:
    """Import modules whose import side effect registers tasks."""
    for name in modules:
        importlib.import_module(name)
        logger.info("Loaded cron task module: %s", name)


# Global registry. Import this from task modules to register tasks.
task_registry = TaskRegistry()
