"""StatusStateMachine: the allowed lifecycle of a task's status record.

::

    off ──┐                ┌──> running ──> pending
          ├──> checking ───┤        │
    pending ┘              └──> pending
                  │                 │
                  └──────> error <──┘ (stuck)
                             │
                             └──> pending (administrative reset)

``unlock()`` on the lock manager forces ``pending`` from any state as the
last step of a cycle that held the lock.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crontask.scheduler.errors import InvalidTransition
from crontask.scheduler.models import TaskStatus

if TYPE_CHECKING:
    from datetime import datetime

    from crontask.scheduler.models import StatusRecord
    from crontask.scheduler.store import StatusStore

logger = logging.getLogger(__name__)

TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.CHECKING, TaskStatus.OFF}),
    TaskStatus.OFF: frozenset({TaskStatus.CHECKING, TaskStatus.PENDING}),
    TaskStatus.CHECKING: frozenset({TaskStatus.RUNNING, TaskStatus.PENDING, TaskStatus.ERROR}),
    TaskStatus.RUNNING: frozenset({TaskStatus.PENDING, TaskStatus.ERROR}),
    TaskStatus.ERROR: frozenset({TaskStatus.PENDING, TaskStatus.OFF}),
}


def can_transition(current: TaskStatus, target: TaskStatus) -> bool:
    return target in TRANSITIONS[current]


class StatusStateMachine:
    """Applies status transitions and persists each one as it happens.

    Args:
        store: StatusStore holding the records.
    """

    def __init__(self, store: StatusStore) -> None:
        self._store = store

    def _require(self, record: StatusRecord, target: TaskStatus) -> None:
        if not can_transition(record.status, target):
            raise InvalidTransition(record.task_id, record.status.value, target.value)

    async def _refresh(self, record: StatusRecord) -> None:
        stored = await self._store.get_status(record.task_id)
        if stored is not None:
            record.copy_from(stored)

    # -- Stuck detection -------------------------------------------------------

    async def check_stuck(
        self, record: StatusRecord, max_execution_seconds: int, now: datetime
    ) -> bool:
        """Move a run that has exceeded its allowed time to ``error``.

        A ``running`` task is measured from its last start. A ``checking``
        task is measured from the latest of its last start and last check.
        Returns True if the record was moved to ``error``.
        """
        if record.status == TaskStatus.RUNNING:
            started = record.last_run
        elif record.status == TaskStatus.CHECKING:
            stamps = [ts for ts in (record.last_run, record.last_checked) if ts is not None]
            started = max(stamps, default=None)
        else:
            return False

        if started is None:
            return False
        elapsed = (now - started).total_seconds()
        if elapsed <= max_execution_seconds:
            return False

        observed = record.status
        updated = await self._store.update_fields(
            record.task_id,
            status=TaskStatus.ERROR,
            is_locked=False,
            expected_status=[observed],
        )
        if not updated:
            # Another cycle moved it on between our read and this write
            await self._refresh(record)
            return False

        record.status = TaskStatus.ERROR
        record.is_locked = False
        logger.warning(
            "Cron task %s stuck in %s for %ds (limit %ds), marked as error",
            record.task_id,
            observed.value,
            int(elapsed),
            max_execution_seconds,
        )
        return True

    # -- Run lifecycle ---------------------------------------------------------

    async def mark_checked(self, record: StatusRecord, now: datetime) -> None:
        """Record that the task was examined and found not due."""
        if record.last_checked is not None and record.last_checked >= now:
            return
        await self._store.update_fields(record.task_id, last_checked=now)
        record.last_checked = now

    async def begin_run(self, record: StatusRecord, now: datetime) -> None:
        """``checking`` → ``running``: count the instance and stamp the start.

        Raises:
            InvalidTransition: if the record is not ``checking`` or is
                disabled.
        """
        self._require(record, TaskStatus.RUNNING)
        if not record.enabled or not await self._store.start_instance(record.task_id, now):
            raise InvalidTransition(record.task_id, record.status.value, TaskStatus.RUNNING.value)
        await self._refresh(record)
        logger.info(
            "Cron task %s started (instances=%d)", record.task_id, record.running_instances
        )

    async def finish_run(self, record: StatusRecord) -> None:
        """Uncount a finished instance; back to ``pending`` when none remain."""
        await self._store.finish_instance(record.task_id)
        await self._refresh(record)
        logger.info(
            "Cron task %s finished (instances=%d)", record.task_id, record.running_instances
        )

    # -- Administrative transitions --------------------------------------------

    async def reset(self, record: StatusRecord) -> None:
        """``error`` → ``pending``, clearing the lock and instance count.

        Raises:
            InvalidTransition: if the record is not in ``error``.
        """
        if record.status != TaskStatus.ERROR:
            raise InvalidTransition(record.task_id, record.status.value, TaskStatus.PENDING.value)
        updated = await self._store.update_fields(
            record.task_id,
            status=TaskStatus.PENDING,
            is_locked=False,
            running_instances=0,
            expected_status=[TaskStatus.ERROR],
        )
        if not updated:
            await self._refresh(record)
            raise InvalidTransition(record.task_id, record.status.value, TaskStatus.PENDING.value)
        record.status = TaskStatus.PENDING
        record.is_locked = False
        record.running_instances = 0
        logger.info("Cron task %s reset from error to pending", record.task_id)

    async def turn_off(self, record: StatusRecord) -> None:
        """Switch an idle task ``off``."""
        await self._move(record, TaskStatus.OFF)

    async def turn_on(self, record: StatusRecord) -> None:
        """Switch an ``off`` task back to ``pending``."""
        if record.status == TaskStatus.ERROR:
            # Leaving error is only done through reset()
            raise InvalidTransition(record.task_id, record.status.value, TaskStatus.PENDING.value)
        await self._move(record, TaskStatus.PENDING)

    async def _move(self, record: StatusRecord, target: TaskStatus) -> None:
        if record.status == target:
            return
        self._require(record, target)
        updated = await self._store.update_fields(
            record.task_id, status=target, expected_status=[record.status]
        )
        if not updated:
            await self._refresh(record)
            raise InvalidTransition(record.task_id, record.status.value, target.value)
        logger.info(
            "Cron task %s moved from %s to %s", record.task_id, record.status.value, target.value
        )
        record.status = target
