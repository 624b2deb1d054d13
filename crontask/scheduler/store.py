"""StatusStore: libsql persistence for cron task status records."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from crontask.db import connect
from crontask.scheduler.errors import TaskNotFound
from crontask.scheduler.models import Priority, StatusRecord, TaskStatus, format_timestamp
from crontask.scheduler.schedule import validate_schedule

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime
    from pathlib import Path

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS cron_task_status (
    task_id TEXT PRIMARY KEY,
    schedule TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    enabled INTEGER NOT NULL DEFAULT 1,
    priority TEXT NOT NULL DEFAULT 'normal',
    running_instances INTEGER NOT NULL DEFAULT 0,
    last_checked TEXT,
    last_run TEXT,
    is_locked INTEGER NOT NULL DEFAULT 0
)
"""

_COLUMNS = (
    "task_id, schedule, status, enabled, priority, running_instances, "
    "last_checked, last_run, is_locked"
)

# Sentinel so update_fields() can tell "leave alone" from "set to NULL".
_UNSET: Any = object()


class StatusStore:
    """Persists one status row per task in SQLite / Turso.

    Every write is a single SQL statement committed on its own, so updates
    are all-or-nothing and the compare-and-set methods (:meth:`try_lock`,
    :meth:`start_instance`, :meth:`finish_instance`) are atomic with respect
    to other cycles sharing the database.

    Pass an explicit *db_path* for test isolation (e.g. ``tmp_path /
    "test.db"``).
    """

    def __init__(self, db_path: Path | None = None) -> None:
        self._db_path = db_path
        self._initialised = False

    # -- Internal helpers ------------------------------------------------------

    async def _ensure_table(self, db) -> None:  # noqa: ANN001
        if not self._initialised:
            await db.execute(_CREATE_TABLE)
            await db.commit()
            self._initialised = True

    async def _fetch(self, db, task_id: str) -> StatusRecord | None:  # noqa: ANN001
        cursor = await db.execute(
            f"SELECT {_COLUMNS} FROM cron_task_status WHERE task_id = ?", (task_id,)
        )
        row = await cursor.fetchone()
        return StatusRecord.from_row(row) if row else None

    # -- CRUD ------------------------------------------------------------------

    async def get_status(self, task_id: str) -> StatusRecord | None:
        """Fetch a status record by task id, or None if not found."""
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            return await self._fetch(db, task_id)

    async def create_status(self, record: StatusRecord) -> StatusRecord:
        """Insert *record* unless a row for its task already exists.

        Returns the stored row, which is the pre-existing one when another
        cycle created it first.

        Raises:
            ScheduleSyntaxError: if the record's schedule is invalid.
        """
        record.schedule = validate_schedule(record.schedule)
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            cursor = await db.execute(
                f"""
                INSERT INTO cron_task_status ({_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(task_id) DO NOTHING
                """,
                record.to_row(),
            )
            await db.commit()
            if cursor.rowcount > 0:
                logger.info(
                    "Registered cron task status: %s (schedule=%r, status=%s)",
                    record.task_id,
                    record.schedule,
                    record.status.value,
                )
            stored = await self._fetch(db, record.task_id)
        return stored or record

    async def save_status(self, record: StatusRecord) -> StatusRecord:
        """Write every field of *record* in one statement.

        Raises:
            ScheduleSyntaxError: if the record's schedule is invalid.
            TaskNotFound: if no row exists for the task.
        """
        record.schedule = validate_schedule(record.schedule)
        row = record.to_row()
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            cursor = await db.execute(
                """
                UPDATE cron_task_status
                SET schedule = ?, status = ?, enabled = ?, priority = ?,
                    running_instances = ?, last_checked = ?, last_run = ?, is_locked = ?
                WHERE task_id = ?
                """,
                (*row[1:], row[0]),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise TaskNotFound(record.task_id)
        return record

    async def list_statuses(self) -> list[StatusRecord]:
        """Return every status record, ordered by task id."""
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM cron_task_status ORDER BY task_id"
            )
            rows = await cursor.fetchall()
            return [StatusRecord.from_row(row) for row in rows]

    async def get_or_create(
        self, task_id: str, default: Callable[[], StatusRecord]
    ) -> StatusRecord:
        """Return the task's record, creating it from *default()* on first sight."""
        record = await self.get_status(task_id)
        if record is not None:
            return record
        return await self.create_status(default())

    # -- Targeted updates ------------------------------------------------------

    async def update_fields(
        self,
        task_id: str,
        *,
        status: TaskStatus | None = None,
        enabled: bool | None = None,
        priority: Priority | None = None,
        schedule: str | None = None,
        running_instances: int | None = None,
        last_checked: datetime | None = _UNSET,
        last_run: datetime | None = _UNSET,
        is_locked: bool | None = None,
        expected_status: Iterable[TaskStatus] | None = None,
    ) -> bool:
        """Update only the given columns of one row.

        When *expected_status* is given the update applies only if the row's
        current status is one of them. Returns True if a row was updated.
        """
        fields: list[str] = []
        params: list[Any] = []

        if status is not None:
            fields.append("status = ?")
            params.append(TaskStatus(status).value)
        if enabled is not None:
            fields.append("enabled = ?")
            params.append(int(enabled))
        if priority is not None:
            fields.append("priority = ?")
            params.append(Priority(priority).value)
        if schedule is not None:
            fields.append("schedule = ?")
            params.append(validate_schedule(schedule))
        if running_instances is not None:
            fields.append("running_instances = ?")
            params.append(max(int(running_instances), 0))
        if last_checked is not _UNSET:
            fields.append("last_checked = ?")
            params.append(format_timestamp(last_checked))
        if last_run is not _UNSET:
            fields.append("last_run = ?")
            params.append(format_timestamp(last_run))
        if is_locked is not None:
            fields.append("is_locked = ?")
            params.append(int(is_locked))

        if not fields:
            return False

        sql = f"UPDATE cron_task_status SET {', '.join(fields)} WHERE task_id = ?"
        params.append(task_id)
        if expected_status is not None:
            allowed = [TaskStatus(s).value for s in expected_status]
            sql += f" AND status IN ({', '.join('?' for _ in allowed)})"
            params.extend(allowed)

        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            cursor = await db.execute(sql, tuple(params))
            await db.commit()
            return cursor.rowcount > 0

    # -- Compare-and-set -------------------------------------------------------

    async def try_lock(
        self, task_id: str, expected: Iterable[TaskStatus] = (TaskStatus.PENDING,)
    ) -> bool:
        """Atomically take the execution lock if nobody holds it.

        Sets ``is_locked`` and moves the status to ``checking`` in the same
        statement that checks the lock is free, the task is enabled and its
        status is one of *expected*. A task switched off or put in error
        after it was read is therefore never claimed.
        """
        allowed = [TaskStatus(s).value for s in expected]
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            cursor = await db.execute(
                f"""
                UPDATE cron_task_status
                SET is_locked = 1, status = ?
                WHERE task_id = ? AND is_locked = 0 AND enabled = 1
                    AND status IN ({', '.join('?' for _ in allowed)})
                """,
                (TaskStatus.CHECKING.value, task_id, *allowed),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def release_lock(self, task_id: str) -> None:
        """Clear the lock, leaving ``running`` if instances are still active."""
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            await db.execute(
                """
                UPDATE cron_task_status
                SET is_locked = 0,
                    status = CASE WHEN running_instances > 0 THEN ? ELSE ? END
                WHERE task_id = ?
                """,
                (TaskStatus.RUNNING.value, TaskStatus.PENDING.value, task_id),
            )
            await db.commit()

    async def start_instance(self, task_id: str, now: datetime) -> bool:
        """Mark one more execution as started.

        Applies only to an enabled task this cycle has locked and moved to
        ``checking``; returns False otherwise.
        """
        stamp = format_timestamp(now)
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            cursor = await db.execute(
                """
                UPDATE cron_task_status
                SET status = ?, running_instances = running_instances + 1,
                    last_run = ?, last_checked = ?
                WHERE task_id = ? AND enabled = 1 AND is_locked = 1 AND status = ?
                """,
                (TaskStatus.RUNNING.value, stamp, stamp, task_id, TaskStatus.CHECKING.value),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def finish_instance(self, task_id: str) -> None:
        """Mark one execution as finished.

        The status drops back to ``pending`` only when the last running
        instance finishes and nothing else has moved it off ``running``.
        """
        async with connect(self._db_path) as db:
            await self._ensure_table(db)
            await db.execute(
                """
                UPDATE cron_task_status
                SET status = CASE
                        WHEN running_instances <= 1 AND status = ? THEN ?
                        ELSE status
                    END,
                    running_instances = MAX(running_instances - 1, 0)
                WHERE task_id = ?
                """,
                (TaskStatus.RUNNING.value, TaskStatus.PENDING.value, task_id),
            )
            await db.commit()
