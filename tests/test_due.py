"""Tests for DueDetector: due-ness from schedule plus run history."""

from datetime import UTC, datetime

from crontask.scheduler.due import DueDetector
from crontask.scheduler.models import StatusRecord


def _at(*args: int) -> datetime:
    return datetime(*args, tzinfo=UTC)


def _hourly(**kwargs) -> StatusRecord:
    return StatusRecord(task_id="hourly", schedule="0 * * * *", **kwargs)


def test_first_run_matches_exact_minute() -> None:
    detector = DueDetector("UTC")
    assert detector.is_due(_hourly(), _at(2010, 6, 20, 13, 0, 10)) is True


def test_first_run_does_not_match_either_side() -> None:
    detector = DueDetector("UTC")
    assert detector.is_due(_hourly(), _at(2010, 6, 20, 13, 1, 10)) is False
    assert detector.is_due(_hourly(), _at(2010, 6, 20, 12, 59, 50)) is False


def test_schedule_from_run_history() -> None:
    detector = DueDetector("UTC")
    ran = _at(2010, 6, 20, 13, 30, 10)
    record = _hourly(last_run=ran, last_checked=ran)

    # Prior to the next hour mark
    assert detector.is_due(record, _at(2010, 6, 20, 13, 40)) is False
    # Just after the next hour mark
    assert detector.is_due(record, _at(2010, 6, 20, 14, 10)) is True
    # Delayed a whole day
    assert detector.is_due(record, _at(2010, 6, 21, 13, 40)) is True


def test_not_due_twice_in_the_same_minute() -> None:
    detector = DueDetector("UTC")
    record = _hourly(last_run=_at(2010, 6, 20, 13, 0, 10))
    assert detector.is_due(record, _at(2010, 6, 20, 13, 0, 40)) is False


def test_due_on_matching_minute_after_earlier_run() -> None:
    detector = DueDetector("UTC")
    record = _hourly(
        last_run=_at(2010, 6, 20, 14, 10), last_checked=_at(2010, 6, 20, 14, 40)
    )
    assert detector.is_due(record, _at(2010, 6, 20, 15, 0)) is True


def test_checked_but_never_run_catches_up() -> None:
    detector = DueDetector("UTC")
    record = _hourly(last_checked=_at(2010, 6, 20, 12, 30))
    assert detector.is_due(record, _at(2010, 6, 20, 13, 5)) is True


def test_recent_check_without_missed_run() -> None:
    detector = DueDetector("UTC")
    record = _hourly(last_checked=_at(2010, 6, 20, 13, 2))
    assert detector.is_due(record, _at(2010, 6, 20, 13, 30)) is False


def test_next_run() -> None:
    detector = DueDetector("UTC")
    assert detector.next_run(_hourly(), _at(2010, 6, 20, 13, 0, 10)) == _at(2010, 6, 20, 14, 0)
