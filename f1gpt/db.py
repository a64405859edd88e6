"""Async access to the session database over libsql.

The ``libsql`` driver is synchronous; every call is pushed onto a worker
thread with ``asyncio.to_thread()``.  The target is chosen from settings:

- ``TURSO_DATABASE_URL`` + ``TURSO_AUTH_TOKEN`` → hosted Turso database
- otherwise a local SQLite file at ``database_path``
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import libsql

from f1gpt.config import settings


class AsyncConnection:
    """Async facade over one libsql connection."""

    def __init__(self, conn: Any) -> None:
        self._conn = conn

    async def execute(self, sql: str, params: tuple = ()) -> Any:
        return await asyncio.to_thread(self._conn.execute, sql, params)

    async def fetchone(self, sql: str, params: tuple = ()) -> tuple | None:
        def _run() -> tuple | None:
            return self._conn.execute(sql, params).fetchone()

        return await asyncio.to_thread(_run)

    async def fetchall(self, sql: str, params: tuple = ()) -> list[tuple]:
        def _run() -> list[tuple]:
            return self._conn.execute(sql, params).fetchall()

        return await asyncio.to_thread(_run)

    async def commit(self) -> None:
        await asyncio.to_thread(self._conn.commit)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def _open_local(path: Path) -> Any:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = libsql.connect(str(path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    return conn


def _open(path: Path | None) -> Any:
    if path is not None:
        return _open_local(path)
    if settings.turso_database_url:
        return libsql.connect(
            database=settings.turso_database_url,
            auth_token=settings.turso_auth_token,
        )
    return _open_local(settings.database_path)


@asynccontextmanager
async def connect(path: Path | None = None) -> AsyncIterator[AsyncConnection]:
    """Open a connection for the duration of the ``async with`` block.

    An explicit *path* (test isolation) always selects a local file.
    """
    conn = AsyncConnection(await asyncio.to_thread(_open, path))
    try:
        yield conn
    finally:
        await conn.close()
