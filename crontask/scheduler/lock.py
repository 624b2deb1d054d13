"""LockManager: per-task exclusive execution lock."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crontask.scheduler.models import TaskStatus

if TYPE_CHECKING:
    from crontask.scheduler.models import StatusRecord
    from crontask.scheduler.store import StatusStore

logger = logging.getLogger(__name__)


class LockManager:
    """Guards a task so that only one cycle works on it at a time.

    The lock lives on the status record itself. Acquiring it is one
    compare-and-set statement in the store, so two cycles that both saw the
    task unlocked cannot both win.

    Args:
        store: StatusStore holding the records.
    """

    def __init__(self, store: StatusStore) -> None:
        self._store = store

    async def lock(self, record: StatusRecord, *, allow_running: bool = False) -> bool:
        """Take the lock and move the task to ``checking``.

        Only an enabled ``pending`` task can be claimed, or one that is
        ``running`` when *allow_running* is set (overlapping instances).
        Returns False, leaving *record* untouched, if another cycle holds the
        lock or the stored row no longer qualifies.
        """
        if record.is_locked:
            return False
        expected = [TaskStatus.PENDING]
        if allow_running:
            expected.append(TaskStatus.RUNNING)
        if not await self._store.try_lock(record.task_id, expected):
            logger.debug("Cron task %s could not be locked", record.task_id)
            return False
        record.is_locked = True
        record.status = TaskStatus.CHECKING
        return True

    async def unlock(self, record: StatusRecord) -> None:
        """Drop the lock and force the task back to ``pending``."""
        await self._store.update_fields(
            record.task_id, is_locked=False, status=TaskStatus.PENDING
        )
        record.is_locked = False
        record.status = TaskStatus.PENDING

    async def drop(self, record: StatusRecord) -> None:
        """Drop the lock without touching the status."""
        await self._store.update_fields(record.task_id, is_locked=False)
        record.is_locked = False

    async def release(self, record: StatusRecord) -> None:
        """Drop the lock while instances may still be running.

        Only for tasks that allow overlapping runs: the status stays
        ``running`` as long as any instance is in flight.
        """
        await self._store.release_lock(record.task_id)
        refreshed = await self._store.get_status(record.task_id)
        if refreshed is not None:
            record.copy_from(refreshed)
        else:
            record.is_locked = False
