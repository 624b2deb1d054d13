"""Async database access for the status table, over libsql.

The ``libsql`` driver is synchronous; every call is pushed to a worker thread
with ``asyncio.to_thread()`` so the runner's event loop never blocks on I/O.
Connection target is determined by settings:

- **Production**: ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → remote Turso
- **Dev/test**: no Turso env vars → local SQLite file via ``database_path``

Each statement the store issues is a single ``execute`` followed by
``commit``, so a write is either fully applied or not at all.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

import libsql

from crontask.config import settings

if TYPE_CHECKING:
    from collections.abc import AsyncIterator
    from pathlib import Path

# Concurrent cycles contend on the same file; wait rather than fail fast.
_BUSY_TIMEOUT_MS = 5000


class _AsyncCursor:
    """Thin async wrapper around a synchronous libsql cursor."""

    def __init__(self, cursor: Any) -> None:
        self._cursor = cursor

    async def fetchone(self) -> tuple | None:
        return await asyncio.to_thread(self._cursor.fetchone)

    async def fetchall(self) -> list[tuple]:
        return await asyncio.to_thread(self._cursor.fetchall)

    @property
    def rowcount(self) -> int:
        return self._cursor.rowcount


class _AsyncConnection:
    """Thin async wrapper around a synchronous libsql connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> _AsyncCursor:
        cursor = await asyncio.to_thread(self._conn.execute, sql, params)
        return _AsyncCursor(cursor)

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open(local_path_override: Path | None) -> Any:
    """Pick the connection target and open it (runs in a worker thread).

    Turso is used only when no local override is given and a database URL
    is configured. Local files get WAL mode and a busy timeout.
    """
    if local_path_override is None and settings.turso_database_url:
        return libsql.connect(
            database=settings.turso_database_url, auth_token=settings.turso_auth_token
        )

    path = local_path_override or settings.database_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = libsql.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS}")
    return conn


async def get_connection(local_path_override: Path | None = None) -> _AsyncConnection:
    """Return an async-wrapped libsql connection.

    *local_path_override* (test isolation) wins over the Turso settings and
    over ``database_path``.
    """
    return _AsyncConnection(await asyncio.to_thread(_open, local_path_override))


@asynccontextmanager
async def connect(local_path_override: Path | None = None) -> AsyncIterator[_AsyncConnection]:
    """Open a connection for the duration of an ``async with`` block.

    Work not committed before the block exits is discarded on close.
    """
    conn = await get_connection(local_path_override)
    try:
        yield conn
    finally:
        await conn.close()
