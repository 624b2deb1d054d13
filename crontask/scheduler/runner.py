"""TaskRunner: one pass over every registered cron task."""

from __future__ import annotations

import functools
import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from crontask.clock import SystemClock
from crontask.config import settings
from crontask.scheduler.due import DueDetector
from crontask.scheduler.errors import InvalidTransition, ScheduleSyntaxError
from crontask.scheduler.lock import LockManager
from crontask.scheduler.models import StatusRecord, TaskStatus
from crontask.scheduler.output import OutputSink, Verbosity
from crontask.scheduler.registry import task_registry
from crontask.scheduler.state import StatusStateMachine

if TYPE_CHECKING:
    from datetime import datetime

    from crontask.clock import Clock
    from crontask.scheduler.registry import CronTask, TaskRegistry
    from crontask.scheduler.store import StatusStore

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """What happened to a task in one cycle."""

    RAN = "ran"
    FAILED = "failed"
    NOT_DUE = "not_due"
    LOCKED = "locked"
    DISABLED = "disabled"
    OFF = "off"
    ERROR = "error"
    STUCK = "stuck"


@dataclass
class TaskResult:
    task_id: str
    outcome: Outcome
    message: str

    def to_dict(self) -> dict:
        return {"task_id": self.task_id, "outcome": self.outcome.value, "message": self.message}


@dataclass
class CycleReport:
    """Per-task results of a cycle, in execution order."""

    results: list[TaskResult] = field(default_factory=list)

    def get(self, task_id: str) -> TaskResult | None:
        return next((r for r in self.results if r.task_id == task_id), None)

    @property
    def ran(self) -> list[str]:
        return [r.task_id for r in self.results if r.outcome == Outcome.RAN]

    def summary(self) -> dict[str, int]:
        return dict(Counter(r.outcome.value for r in self.results))

    def to_dict(self) -> dict:
        return {"results": [r.to_dict() for r in self.results], "summary": self.summary()}


class TaskRunner:
    """Checks every registered task and runs the ones that are due.

    Tasks are handled one after another in priority order. Each task goes
    through the same steps: skip if disabled, off or in error; detect a
    stuck previous run; take the lock; decide due-ness; run; unlock. Every
    status change is written to the store as it happens, so a crash part
    way through leaves evidence the next cycle can act on.

    A failing task body is logged and reported but never stops the cycle.
    Store errors propagate to the caller.

    Args:
        store: StatusStore holding the status records.
        registry: Registered tasks (default: the global ``task_registry``).
        clock: Time source (default: system clock).
        timezone: IANA timezone schedules are read in (default from settings).
    """

    def __init__(
        self,
        store: StatusStore,
        registry: TaskRegistry | None = None,
        clock: Clock | None = None,
        timezone: str | None = None,
    ) -> None:
        self._store = store
        self._registry = registry if registry is not None else task_registry
        self._clock = clock or SystemClock()
        self._due = DueDetector(timezone)
        self._locks = LockManager(store)
        self._states = StatusStateMachine(store)

    async def run_cycle(
        self,
        sink: OutputSink | None = None,
        verbosity: Verbosity | None = None,
    ) -> CycleReport:
        """Run one invocation cycle and report one line per task to *sink*."""
        if sink is None:
            level = verbosity if verbosity is not None else Verbosity.parse(settings.cron_verbosity)
            sink = OutputSink(verbosity=level, clock=self._clock)
        report = CycleReport()

        task_ids = self._registry.task_ids
        if not task_ids:
            sink.output("There are no registered cron tasks to run", Verbosity.DEBUG)
            return report

        queue: list[tuple[CronTask, StatusRecord]] = []
        for task_id in task_ids:
            prepared = await self._prepare(task_id, sink, report)
            if prepared is not None:
                queue.append(prepared)

        # sorted() is stable, so registration order is kept within a tier
        queue.sort(key=lambda item: item[1].priority.rank)

        for task, record in queue:
            report.results.append(await self.run_task(task, record, sink))

        logger.info("Cron cycle finished: %s", report.summary())
        return report

    async def _prepare(
        self, task_id: str, sink: OutputSink, report: CycleReport
    ) -> tuple[CronTask, StatusRecord] | None:
        """Build the task and load (or create) its status record."""
        try:
            task = self._registry.create(task_id)
            schedule = task.get_schedule()
        except Exception as exc:
            logger.exception("Could not build cron task %s", task_id)
            report.results.append(
                self._report(sink, task_id, Outcome.FAILED, f"{task_id} failed: {exc}")
            )
            return None

        # A task without a schedule is never run
        if not schedule:
            report.results.append(
                self._report(
                    sink, task_id, Outcome.DISABLED, f"{task_id} is disabled, skipping.",
                    Verbosity.DEBUG,
                )
            )
            return None

        try:
            record = await self._store.get_or_create(
                task_id, functools.partial(self._default_record, task_id, task, schedule)
            )
        except ScheduleSyntaxError as exc:
            logger.error("Cron task %s has an invalid schedule: %s", task_id, exc)
            report.results.append(
                self._report(sink, task_id, Outcome.FAILED, f"{task_id} failed: {exc}")
            )
            return None
        return task, record

    def _default_record(self, task_id: str, task: CronTask, schedule: str) -> StatusRecord:
        policy = task.default_policy()
        status = policy.status or TaskStatus(settings.default_task_status)
        return StatusRecord(
            task_id=task_id,
            schedule=schedule,
            status=status,
            priority=policy.priority,
        )

    async def run_task(
        self, task: CronTask, record: StatusRecord, sink: OutputSink
    ) -> TaskResult:
        """Check and, if due, run a single task."""
        task_id = record.task_id
        policy = task.default_policy()

        skipped = self._skip(sink, record)
        if skipped is not None:
            return skipped

        now = self._clock.now()
        limit = policy.max_execution_seconds or settings.default_max_execution_seconds
        if await self._states.check_stuck(record, limit, now):
            return self._report(
                sink,
                task_id,
                Outcome.STUCK,
                f"{task_id} exceeded its allowed execution time of {limit}s, marked as error.",
            )

        if not await self._locks.lock(record, allow_running=policy.allow_multiple_instances):
            stored = await self._store.get_status(task_id)
            if stored is not None:
                record.copy_from(stored)
            return self._skip(sink, record) or self._report(
                sink,
                task_id,
                Outcome.LOCKED,
                f"{task_id} is locked by another invocation, skipping.",
                Verbosity.DEBUG,
            )

        released = False
        try:
            # We own the task now; work from the stored copy
            stored = await self._store.get_status(task_id)
            if stored is not None:
                record.copy_from(stored)

            skipped = self._skip(sink, record)
            if skipped is not None:
                released = await self._let_go(record)
                return skipped

            try:
                due = self._due.is_due(record, now)
            except ScheduleSyntaxError as exc:
                logger.error("Cron task %s has an invalid schedule: %s", task_id, exc)
                return self._report(sink, task_id, Outcome.FAILED, f"{task_id} failed: {exc}")

            if not due:
                await self._states.mark_checked(record, now)
                if policy.allow_multiple_instances:
                    await self._locks.release(record)
                    released = True
                return self._report(
                    sink, task_id, Outcome.NOT_DUE, self._next_run_message(record, now),
                    Verbosity.DEBUG,
                )

            try:
                await self._states.begin_run(record, now)
            except InvalidTransition as exc:
                logger.warning("Cron task %s could not start: %s", task_id, exc)
                stored = await self._store.get_status(task_id)
                if stored is not None:
                    record.copy_from(stored)
                released = await self._let_go(record)
                return self._skip(sink, record) or self._report(
                    sink,
                    task_id,
                    Outcome.LOCKED,
                    f"{task_id} changed state before it could start, skipping.",
                )

            if policy.allow_multiple_instances:
                await self._locks.release(record)
                released = True
            return await self._execute(task, record, sink)
        finally:
            if not released:
                if policy.allow_multiple_instances:
                    await self._locks.release(record)
                else:
                    await self._locks.unlock(record)

    def _skip(self, sink: OutputSink, record: StatusRecord) -> TaskResult | None:
        """Report a task that is disabled, switched off or in error; None otherwise."""
        task_id = record.task_id
        if not record.enabled:
            return self._report(
                sink, task_id, Outcome.DISABLED, f"{task_id} is disabled, skipping.",
                Verbosity.DEBUG,
            )
        if record.status == TaskStatus.OFF:
            return self._report(
                sink, task_id, Outcome.OFF, f"{task_id} is switched off, skipping.",
                Verbosity.DEBUG,
            )
        if record.status == TaskStatus.ERROR:
            return self._report(
                sink, task_id, Outcome.ERROR, f"{task_id} is in error state, skipping."
            )
        return None

    async def _let_go(self, record: StatusRecord) -> bool:
        """Drop the lock of a task switched off or failed while we held it.

        Returns True when the lock was dropped with the stored status kept.
        """
        if record.status in (TaskStatus.OFF, TaskStatus.ERROR):
            await self._locks.drop(record)
            return True
        return False

    async def _execute(
        self, task: CronTask, record: StatusRecord, sink: OutputSink
    ) -> TaskResult:
        task_id = record.task_id
        logger.info("Running cron task %s (priority=%s)", task_id, record.priority.value)
        try:
            await task.process()
        except Exception as exc:
            logger.exception("Cron task %s failed", task_id)
            return self._report(sink, task_id, Outcome.FAILED, f"{task_id} failed: {exc}")
        finally:
            await self._states.finish_run(record)
        return self._report(sink, task_id, Outcome.RAN, f"{task_id} ran successfully.")

    def _next_run_message(self, record: StatusRecord, now: datetime) -> str:
        next_run = self._due.next_run(record, now)
        if next_run is None:
            return f"{record.task_id} has no upcoming run."
        return f"{record.task_id} will run at {next_run.strftime('%Y-%m-%d %H:%M:%S')}."

    @staticmethod
    def _report(
        sink: OutputSink,
        task_id: str,
        outcome: Outcome,
        message: str,
        min_verbosity: Verbosity = Verbosity.NORMAL,
    ) -> TaskResult:
        sink.output(message, min_verbosity)
        return TaskResult(task_id=task_id, outcome=outcome, message=message)
