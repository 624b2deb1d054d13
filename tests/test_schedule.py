"""Tests for ScheduleEvaluator: cron expression evaluation."""

from datetime import UTC, datetime

import pytest

from crontask.scheduler.errors import ScheduleSyntaxError
from crontask.scheduler.schedule import ScheduleEvaluator, validate_schedule


def _at(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


# -- is_due --------------------------------------------------------------------


def test_hourly_due_on_the_hour_ignoring_seconds() -> None:
    cron = ScheduleEvaluator("0 * * * *", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 13, 0, 10)) is True
    assert cron.is_due(_at(2010, 6, 20, 13, 0, 59)) is True


def test_hourly_not_due_either_side_of_the_hour() -> None:
    cron = ScheduleEvaluator("0 * * * *", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 13, 1, 10)) is False
    assert cron.is_due(_at(2010, 6, 20, 12, 59, 50)) is False


def test_every_minute_is_always_due() -> None:
    cron = ScheduleEvaluator("* * * * *", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 7, 33, 1)) is True


def test_naive_datetimes_are_read_as_utc() -> None:
    cron = ScheduleEvaluator("30 9 * * *", "UTC")
    assert cron.is_due(datetime(2010, 6, 20, 9, 30, 5)) is True


def test_schedule_is_read_in_its_timezone() -> None:
    # 09:00 in Chicago (CDT, UTC-5) is 14:00 UTC
    cron = ScheduleEvaluator("0 9 * * *", "America/Chicago")
    assert cron.is_due(_at(2010, 6, 20, 14, 0)) is True
    assert cron.is_due(_at(2010, 6, 20, 9, 0)) is False


# -- next_run_after ------------------------------------------------------------


def test_next_run_after_is_strictly_later() -> None:
    cron = ScheduleEvaluator("0 * * * *", "UTC")
    assert cron.next_run_after(_at(2010, 6, 20, 13, 0, 10)) == _at(2010, 6, 20, 14, 0)
    assert cron.next_run_after(_at(2010, 6, 20, 13, 40)) == _at(2010, 6, 20, 14, 0)


def test_next_run_after_with_step() -> None:
    cron = ScheduleEvaluator("*/15 * * * *", "UTC")
    assert cron.next_run_after(_at(2010, 6, 20, 13, 7, 30)) == _at(2010, 6, 20, 13, 15)


def test_next_run_after_crosses_day_boundary() -> None:
    cron = ScheduleEvaluator("30 2 * * *", "UTC")
    assert cron.next_run_after(_at(2010, 6, 20, 13, 0)) == _at(2010, 6, 21, 2, 30)


# -- Day-of-week numbering -----------------------------------------------------


def test_zero_and_seven_mean_sunday() -> None:
    sunday_nine = _at(2010, 6, 20, 9, 0)  # 2010-06-20 was a Sunday
    assert ScheduleEvaluator("0 9 * * 0", "UTC").is_due(sunday_nine) is True
    assert ScheduleEvaluator("0 9 * * 7", "UTC").is_due(sunday_nine) is True
    assert ScheduleEvaluator("0 9 * * sun", "UTC").is_due(sunday_nine) is True


def test_one_means_monday() -> None:
    cron = ScheduleEvaluator("0 9 * * 1", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 9, 0)) is False
    assert cron.next_run_after(_at(2010, 6, 20, 9, 0)) == _at(2010, 6, 21, 9, 0)


def test_weekday_range_skips_weekend() -> None:
    cron = ScheduleEvaluator("0 9 * * 1-5", "UTC")
    # Friday 2010-06-25 -> Monday 2010-06-28
    assert cron.next_run_after(_at(2010, 6, 25, 9, 0)) == _at(2010, 6, 28, 9, 0)


def test_range_ending_in_seven_wraps_to_sunday() -> None:
    cron = ScheduleEvaluator("0 9 * * 5-7", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 9, 0)) is True  # Sunday
    assert cron.is_due(_at(2010, 6, 21, 9, 0)) is False  # Monday


def test_weekday_step_counts_from_sunday() -> None:
    cron = ScheduleEvaluator("0 0 * * */2", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 0, 0)) is True  # Sunday
    assert cron.is_due(_at(2010, 6, 21, 0, 0)) is False  # Monday
    assert cron.is_due(_at(2010, 6, 22, 0, 0)) is True  # Tuesday


# -- Day-of-month combined with day-of-week --------------------------------------


def test_restricted_day_fields_match_either() -> None:
    cron = ScheduleEvaluator("0 0 13 * 5", "UTC")
    assert cron.is_due(_at(2010, 6, 25, 0, 0)) is True  # Friday the 25th
    assert cron.is_due(_at(2010, 7, 13, 0, 0)) is True  # Tuesday the 13th
    assert cron.is_due(_at(2010, 6, 26, 0, 0)) is False  # Saturday the 26th


def test_restricted_day_fields_next_run_is_earliest_match() -> None:
    cron = ScheduleEvaluator("0 0 13 * 5", "UTC")
    assert cron.next_run_after(_at(2010, 6, 20, 13, 0)) == _at(2010, 6, 25, 0, 0)
    assert cron.next_run_after(_at(2010, 7, 9, 0, 0)) == _at(2010, 7, 13, 0, 0)


def test_wildcard_day_of_month_keeps_weekday_only() -> None:
    cron = ScheduleEvaluator("0 0 * * 5", "UTC")
    assert cron.is_due(_at(2010, 7, 13, 0, 0)) is False
    assert cron.is_due(_at(2010, 7, 16, 0, 0)) is True


def test_invalid_day_of_month_with_weekday_raises() -> None:
    with pytest.raises(ScheduleSyntaxError):
        ScheduleEvaluator("0 0 32 * 5", "UTC")


# -- Macros ----------------------------------------------------------------------


def test_hourly_macro() -> None:
    cron = ScheduleEvaluator("@hourly", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 13, 0, 10)) is True
    assert cron.is_due(_at(2010, 6, 20, 13, 5)) is False


def test_weekly_macro_runs_sunday_midnight() -> None:
    cron = ScheduleEvaluator("@weekly", "UTC")
    assert cron.is_due(_at(2010, 6, 20, 0, 0)) is True


# -- Validation ------------------------------------------------------------------


@pytest.mark.parametrize(
    "schedule",
    [
        "",
        "* * * *",
        "* * * * * *",
        "61 * * * *",
        "* 25 * * *",
        "every day",
        "0 9 * * 8",
        "0 9 * * 5-1",
        "0 9 * * funday",
    ],
)
def test_invalid_schedules_raise(schedule: str) -> None:
    with pytest.raises(ScheduleSyntaxError):
        ScheduleEvaluator(schedule, "UTC")


def test_schedule_syntax_error_is_a_value_error() -> None:
    with pytest.raises(ValueError, match="Invalid schedule"):
        validate_schedule("nope", "UTC")


def test_validate_schedule_strips_whitespace() -> None:
    assert validate_schedule("  0 * * * *  ", "UTC") == "0 * * * *"


def test_error_carries_schedule_and_reason() -> None:
    with pytest.raises(ScheduleSyntaxError) as info:
        validate_schedule("* * *", "UTC")
    assert info.value.schedule == "* * *"
    assert "expected 5 fields" in info.value.reason
