"""Shared test fixtures."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from crontask.clock import FixedClock
from crontask.scheduler.registry import TaskRegistry
from crontask.scheduler.store import StatusStore


@pytest.fixture(autouse=True)
def _no_turso(monkeypatch: pytest.MonkeyPatch) -> None:
    """Ensure tests use local file, not remote Turso."""
    monkeypatch.setattr("crontask.config.settings.turso_database_url", "")


@pytest.fixture
async def store(tmp_path: Path) -> StatusStore:
    """A StatusStore backed by a temp database."""
    return StatusStore(db_path=tmp_path / "test.db")


@pytest.fixture
def clock() -> FixedClock:
    """A clock pinned to 2010-06-20 13:00:10 UTC (a Sunday)."""
    return FixedClock(datetime(2010, 6, 20, 13, 0, 10, tzinfo=UTC))


@pytest.fixture
def registry() -> TaskRegistry:
    """Fresh registry for each test."""
    return TaskRegistry()
