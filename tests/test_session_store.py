"""Tests for SessionStore."""

from datetime import UTC, datetime
from pathlib import Path

import pytest

from f1gpt.models import ConversationMessage
from f1gpt.sessions import SESSION_STORAGE_VERSION, SessionStore


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "sessions.db"


@pytest.fixture
def store(db_path: Path) -> SessionStore:
    return SessionStore(db_path=db_path)


class TestListSessions:
    async def test_empty_store_gets_default_session(self, store):
        sessions = await store.list_sessions()
        assert len(sessions) == 1
        assert sessions[0].name == "New Chat"
        assert sessions[0].messages == []

    async def test_default_session_is_persisted(self, store):
        first = await store.list_sessions()
        second = await store.list_sessions()
        assert [s.id for s in first] == [s.id for s in second]

    async def test_oldest_first(self, store):
        a = await store.create("Bahrain")
        b = await store.create("Jeddah")
        assert [s.id for s in await store.list_sessions()] == [a.id, b.id]


class TestCreate:
    async def test_named(self, store):
        session = await store.create("Monaco")
        assert session.name == "Monaco"
        assert (await store.get(session.id)).name == "Monaco"

    async def test_unnamed_sessions_are_numbered(self, store):
        first = await store.create()
        second = await store.create()
        assert first.name == "New Chat 1"
        assert second.name == "New Chat 2"


class TestUpdate:
    async def test_rename(self, store):
        session = await store.create("Old")
        renamed = await store.rename(session.id, "New")
        assert renamed.name == "New"

    async def test_rename_missing_returns_none(self, store):
        assert await store.rename("missing", "x") is None

    async def test_update_messages(self, store):
        session = await store.create("Race")
        stamp = datetime(2025, 5, 20, 10, 0, tzinfo=UTC)
        updated = await store.update_messages(session.id, [
            ConversationMessage(id="m1", role="user", content="Next race?", created_at=stamp),
            ConversationMessage(id="m2", role="assistant", content="Monaco."),
        ])
        assert [m.id for m in updated.messages] == ["m1", "m2"]
        assert updated.messages[0].created_at == stamp
        assert updated.messages[1].created_at is not None

    async def test_update_messages_missing_returns_none(self, store):
        assert await store.update_messages("missing", []) is None


class TestDelete:
    async def test_delete(self, store):
        keep = await store.create("Keep")
        drop = await store.create("Drop")
        assert await store.delete(drop.id) is True
        assert await store.get(drop.id) is None
        assert [s.id for s in await store.list_sessions()] == [keep.id]

    async def test_delete_missing(self, store):
        assert await store.delete("missing") is False

    async def test_deleting_last_session_recreates_default(self, store):
        only = await store.create("Only")
        await store.delete(only.id)
        sessions = await store.list_sessions()
        assert len(sessions) == 1
        assert sessions[0].name == "New Chat"

    async def test_clear(self, store):
        await store.create("One")
        await store.create("Two")
        fresh = await store.clear()
        sessions = await store.list_sessions()
        assert [s.id for s in sessions] == [fresh.id]


class TestVersioning:
    async def test_version_change_discards_sessions(self, db_path):
        old = SessionStore(db_path=db_path, version="0.9")
        stale = await old.create("Stale")

        current = SessionStore(db_path=db_path)
        assert await current.get(stale.id) is None
        sessions = await current.list_sessions()
        assert [s.name for s in sessions] == ["New Chat"]

    async def test_same_version_keeps_sessions(self, db_path):
        session = await SessionStore(db_path=db_path).create("Kept")
        reopened = SessionStore(db_path=db_path, version=SESSION_STORAGE_VERSION)
        assert (await reopened.get(session.id)).name == "Kept"
