"""Tests for the async libsql connection wrapper."""

from pathlib import Path

from f1gpt.db import AsyncConnection, connect


class TestConnect:
    async def test_yields_async_connection(self, tmp_path: Path):
        async with connect(tmp_path / "test.db") as conn:
            assert isinstance(conn, AsyncConnection)

    async def test_creates_parent_dirs(self, tmp_path: Path):
        db_path = tmp_path / "nested" / "dir" / "test.db"
        async with connect(db_path):
            assert db_path.parent.exists()

    async def test_data_persists_across_connections(self, tmp_path: Path):
        db_path = tmp_path / "test.db"
        async with connect(db_path) as conn:
            await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
            await conn.execute("INSERT INTO t (name) VALUES (?)", ("leclerc",))
            await conn.commit()

        async with connect(db_path) as conn:
            assert await conn.fetchall("SELECT name FROM t") == [("leclerc",)]


class TestAsyncConnection:
    async def test_fetchone(self, tmp_path: Path):
        async with connect(tmp_path / "test.db") as conn:
            await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, val TEXT)")
            await conn.execute("INSERT INTO t (val) VALUES (?)", ("hello",))
            await conn.commit()

            assert await conn.fetchone("SELECT val FROM t WHERE id = 1") == ("hello",)

    async def test_fetchone_returns_none_when_empty(self, tmp_path: Path):
        async with connect(tmp_path / "test.db") as conn:
            await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY)")
            assert await conn.fetchone("SELECT * FROM t WHERE id = ?", (999,)) is None

    async def test_rowcount(self, tmp_path: Path):
        async with connect(tmp_path / "test.db") as conn:
            await conn.execute("CREATE TABLE t (id INTEGER PRIMARY KEY, name TEXT)")
            await conn.execute("INSERT INTO t (name) VALUES (?)", ("a",))
            await conn.execute("INSERT INTO t (name) VALUES (?)", ("b",))
            await conn.commit()

            cursor = await conn.execute("DELETE FROM t")
            assert cursor.rowcount == 2
