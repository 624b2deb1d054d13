"""DueDetector: decides whether a task runs in the current cycle."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from crontask.scheduler.schedule import ScheduleEvaluator

if TYPE_CHECKING:
    from datetime import datetime

    from crontask.scheduler.models import StatusRecord

logger = logging.getLogger(__name__)


class DueDetector:
    """Applies a record's schedule and history to the current instant.

    Two rules:

    - When the schedule matches the current minute the task is due, unless
      it already started within that same minute (the cycle was triggered
      twice).
    - Otherwise the task is due only if an occurrence fell between the last
      check and now, i.e. a run was missed while nothing was checking.

    Args:
        timezone: IANA timezone schedules are read in (default from settings).
    """

    def __init__(self, timezone: str | None = None) -> None:
        self._timezone = timezone

    def evaluator(self, record: StatusRecord) -> ScheduleEvaluator:
        return ScheduleEvaluator(record.schedule, self._timezone)

    def is_due(self, record: StatusRecord, now: datetime) -> bool:
        cron = self.evaluator(record)

        if cron.is_due(now):
            if record.last_run is None:
                return True
            return _minute(record.last_run) != _minute(now)

        # Nothing to measure a gap from on the very first check
        if record.last_checked is None:
            return False

        expected = cron.next_run_after(record.last_checked)
        if expected is not None and expected <= now:
            logger.info(
                "Cron task %s missed its run at %s (last checked %s)",
                record.task_id,
                expected.isoformat(),
                record.last_checked.isoformat(),
            )
            return True
        return False

    def next_run(self, record: StatusRecord, now: datetime) -> datetime | None:
        """When the task is next expected to run after *now*."""
        return self.evaluator(record).next_run_after(now)


def _minute(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)
