"""ScheduleEvaluator: cron expression evaluation on top of APScheduler.

Schedules are standard five-field crontab strings (minute, hour,
day-of-month, month, day-of-week). Evaluation has minute granularity: the
seconds of any instant passed in are ignored.

APScheduler's own ``CronTrigger.from_crontab`` numbers weekdays from Monday,
so the day-of-week field is rewritten into explicit day names before the
trigger is built. When both the day-of-month and day-of-week fields are
restricted, a time matches if either of them does, as in crontab(5).
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

from crontask.config import settings
from crontask.scheduler.errors import ScheduleSyntaxError

logger = logging.getLogger(__name__)

_DAY_NAMES = ["sun", "mon", "tue", "wed", "thu", "fri", "sat"]

_MACROS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}


class ScheduleEvaluator:
    """Answers "is it due" and "when next" for a single schedule string.

    Args:
        schedule: Five-field cron expression or one of the ``@hourly`` style
            macros.
        timezone: IANA timezone the schedule is read in (default from
            settings).

    Raises:
        ScheduleSyntaxError: if *schedule* cannot be parsed.
    """

    def __init__(self, schedule: str, timezone: str | None = None) -> None:
        self.schedule = schedule
        self.timezone = timezone or settings.scheduler_timezone
        self._trigger = _build_trigger(schedule, self.timezone)

    def is_due(self, now: datetime) -> bool:
        """Return True if the minute containing *now* matches the schedule."""
        minute = _floor_minute(now)
        fire_time = self._trigger.get_next_fire_time(None, minute)
        return fire_time is not None and fire_time == minute

    def next_run_after(self, timestamp: datetime) -> datetime | None:
        """Return the first matching minute strictly after *timestamp*'s minute.

        Returns None for schedules that can never fire again.
        """
        start = _floor_minute(timestamp) + timedelta(minutes=1)
        return self._trigger.get_next_fire_time(None, start)

    def __repr__(self) -> str:
        return f"ScheduleEvaluator({self.schedule!r}, timezone={self.timezone!r})"


def validate_schedule(schedule: str, timezone: str | None = None) -> str:
    """Check *schedule* and return it with surrounding whitespace removed.

    Raises:
        ScheduleSyntaxError: if the expression is invalid.
    """
    cleaned = (schedule or "").strip()
    ScheduleEvaluator(cleaned, timezone)
    return cleaned


def _build_trigger(schedule: str, timezone: str) -> CronTrigger | OrTrigger:
    expression = _MACROS.get(schedule.strip().lower(), schedule) if schedule else ""
    fields = expression.split()
    if len(fields) != 5:
        raise ScheduleSyntaxError(schedule, f"expected 5 fields, got {len(fields)}")

    minute, hour, day, month, day_of_week = fields
    try:
        weekdays = _translate_day_of_week(day_of_week)
        if day.startswith("*") or day_of_week.startswith("*"):
            return CronTrigger(
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=weekdays,
                timezone=timezone,
            )
        # Both day fields restricted: crontab fires when either one matches
        return OrTrigger(
            [
                CronTrigger(
                    minute=minute, hour=hour, day=day, month=month, timezone=timezone
                ),
                CronTrigger(
                    minute=minute,
                    hour=hour,
                    month=month,
                    day_of_week=weekdays,
                    timezone=timezone,
                ),
            ]
        )
    except ValueError as exc:
        raise ScheduleSyntaxError(schedule, str(exc)) from exc


def _translate_day_of_week(field: str) -> str:
    """Rewrite a crontab weekday field (0/7 = Sunday) as APScheduler day names."""
    if field == "*":
        return "*"
    days: set[int] = set()
    for part in field.split(","):
        days.update(_expand_day_part(part))
    return ",".join(_DAY_NAMES[day] for day in sorted(days))


def _expand_day_part(part: str) -> set[int]:
    step = 1
    has_step = "/" in part
    if has_step:
        part, step_text = part.split("/", 1)
        step = _parse_number(step_text)
        if step < 1:
            msg = f"invalid step in day-of-week field: {step_text!r}"
            raise ValueError(msg)

    if part == "*":
        start, end = 0, 6
    elif "-" in part:
        first, last = part.split("-", 1)
        start, end = _parse_day(first), _parse_day(last)
        if start > end:
            msg = f"day-of-week range out of order: {part!r}"
            raise ValueError(msg)
    else:
        start = _parse_day(part)
        end = 6 if has_step else start

    return {day % 7 for day in range(start, end + 1, step)}


def _parse_day(token: str) -> int:
    token = token.strip().lower()
    if token in _DAY_NAMES:
        return _DAY_NAMES.index(token)
    day = _parse_number(token)
    if not 0 <= day <= 7:
        msg = f"day-of-week value out of range: {token!r}"
        raise ValueError(msg)
    return day


def _parse_number(token: str) -> int:
    if not token.isdigit():
        msg = f"unrecognised day-of-week token: {token!r}"
        raise ValueError(msg)
    return int(token)


def _floor_minute(value: datetime) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.replace(second=0, microsecond=0)
