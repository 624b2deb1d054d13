"""StatusAdmin: administrative edits to cron task status records.

These writes bypass the run cycle's lock. Each is a single targeted update,
so a concurrent cycle's own writes to other columns are not lost.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crontask.scheduler.errors import TaskNotEditable, TaskNotFound
from crontask.scheduler.models import Priority
from crontask.scheduler.registry import task_registry
from crontask.scheduler.schedule import validate_schedule
from crontask.scheduler.state import StatusStateMachine

if TYPE_CHECKING:
    from crontask.scheduler.models import StatusRecord
    from crontask.scheduler.registry import TaskRegistry
    from crontask.scheduler.store import StatusStore

logger = logging.getLogger(__name__)


class StatusAdmin:
    """Operations an administrator may perform on status records.

    Args:
        store: StatusStore holding the records.
        registry: Registered tasks, consulted for edit permissions.
    """

    def __init__(self, store: StatusStore, registry: TaskRegistry | None = None) -> None:
        self._store = store
        self._registry = registry if registry is not None else task_registry
        self._states = StatusStateMachine(store)

    async def _get(self, task_id: str) -> StatusRecord:
        record = await self._store.get_status(task_id)
        if record is None:
            raise TaskNotFound(task_id)
        return record

    async def list_statuses(self) -> list[StatusRecord]:
        return await self._store.list_statuses()

    async def get(self, task_id: str) -> StatusRecord:
        return await self._get(task_id)

    async def reset(self, task_id: str) -> StatusRecord:
        """Clear an ``error`` status so the task runs again."""
        record = await self._get(task_id)
        await self._states.reset(record)
        return record

    async def enable(self, task_id: str) -> StatusRecord:
        return await self._set_enabled(task_id, True)

    async def disable(self, task_id: str) -> StatusRecord:
        return await self._set_enabled(task_id, False)

    async def _set_enabled(self, task_id: str, enabled: bool) -> StatusRecord:
        record = await self._get(task_id)
        await self._store.update_fields(task_id, enabled=enabled)
        record.enabled = enabled
        logger.info("Cron task %s %s", task_id, "enabled" if enabled else "disabled")
        return record

    async def turn_on(self, task_id: str) -> StatusRecord:
        record = await self._get(task_id)
        await self._states.turn_on(record)
        return record

    async def turn_off(self, task_id: str) -> StatusRecord:
        record = await self._get(task_id)
        await self._states.turn_off(record)
        return record

    async def set_priority(self, task_id: str, priority: Priority | str) -> StatusRecord:
        level = Priority(priority)
        record = await self._get(task_id)
        await self._store.update_fields(task_id, priority=level)
        record.priority = level
        logger.info("Cron task %s priority set to %s", task_id, level.value)
        return record

    async def set_schedule(self, task_id: str, schedule: str) -> StatusRecord:
        """Change a task's schedule.

        Raises:
            TaskNotEditable: if the task's policy does not allow edits.
            ScheduleSyntaxError: if *schedule* is invalid; nothing is saved.
        """
        record = await self._get(task_id)
        if not self._is_editable(task_id):
            raise TaskNotEditable(task_id)
        cleaned = validate_schedule(schedule)
        await self._store.update_fields(task_id, schedule=cleaned)
        record.schedule = cleaned
        logger.info("Cron task %s schedule set to %r", task_id, cleaned)
        return record

    async def delete(self, task_id: str) -> None:
        """Status records are never deleted."""
        msg = f"Cron task status records cannot be deleted ({task_id})"
        raise PermissionError(msg)

    def _is_editable(self, task_id: str) -> bool:
        if task_id not in self._registry:
            return False
        return self._registry.create(task_id).default_policy().editable
