"""SessionStore — chat session persistence via libsql.

Sessions are stored as one row each, with the message list serialized as
JSON.  The ``schema_meta`` table records ``SESSION_STORAGE_VERSION``; when the
stored version differs, every session is discarded and the store starts over
with a single default session.
"""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from f1gpt.db import AsyncConnection, connect
from f1gpt.models import ChatSession, ConversationMessage

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

SESSION_STORAGE_VERSION = "1.0"
DEFAULT_SESSION_NAME = "New Chat"

_CREATE_SESSIONS = """
CREATE TABLE IF NOT EXISTS chat_sessions (
    id         TEXT PRIMARY KEY,
    name       TEXT NOT NULL,
    created_at TEXT NOT NULL,
    messages   TEXT NOT NULL DEFAULT '[]'
)
"""

_CREATE_META = """
CREATE TABLE IF NOT EXISTS schema_meta (
    key   TEXT PRIMARY KEY,
    value TEXT NOT NULL
)
"""


def _row_to_session(row: tuple) -> ChatSession:
    return ChatSession(
        id=row[0],
        name=row[1],
        created_at=datetime.fromisoformat(row[2]),
        messages=[ConversationMessage.model_validate(m) for m in json.loads(row[3])],
    )


def _dump_messages(messages: Sequence[ConversationMessage]) -> str:
    return json.dumps([m.model_dump(mode="json", by_alias=True) for m in messages])


class SessionStore:
    """Persists chat sessions keyed by session id.

    Pass an explicit *db_path* for test isolation (e.g.
    ``tmp_path / "sessions.db"``).
    """

    def __init__(self, db_path: Path | None = None, version: str = SESSION_STORAGE_VERSION) -> None:
        self._db_path = db_path
        self._version = version
        self._initialised = False

    async def _ensure_schema(self, db: AsyncConnection) -> None:
        if self._initialised:
            return
        await db.execute(_CREATE_SESSIONS)
        await db.execute(_CREATE_META)
        row = await db.fetchone("SELECT value FROM schema_meta WHERE key = 'version'")
        stored = row[0] if row else None
        if stored != self._version:
            if stored is not None:
                logger.warning(
                    "Session storage version changed (%s -> %s), clearing sessions",
                    stored,
                    self._version,
                )
            await db.execute("DELETE FROM chat_sessions")
            await db.execute(
                "INSERT OR REPLACE INTO schema_meta (key, value) VALUES ('version', ?)",
                (self._version,),
            )
        await db.commit()
        self._initialised = True

    async def _insert(self, db: AsyncConnection, name: str) -> ChatSession:
        session = ChatSession(name=name, created_at=datetime.now(UTC))
        await db.execute(
            "INSERT INTO chat_sessions (id, name, created_at, messages) VALUES (?, ?, ?, ?)",
            (session.id, session.name, session.created_at.isoformat(), "[]"),
        )
        return session

    async def _count(self, db: AsyncConnection) -> int:
        row = await db.fetchone("SELECT COUNT(*) FROM chat_sessions")
        return row[0] if row else 0

    # -- Read ------------------------------------------------------------------

    async def list_sessions(self) -> list[ChatSession]:
        """All sessions, oldest first.  Creates the default session when empty."""
        async with connect(self._db_path) as db:
            await self._ensure_schema(db)
            rows = await db.fetchall("SELECT * FROM chat_sessions ORDER BY created_at, rowid")
            if not rows:
                session = await self._insert(db, DEFAULT_SESSION_NAME)
                await db.commit()
                return [session]
            return [_row_to_session(row) for row in rows]

    async def get(self, session_id: str) -> ChatSession | None:
        async with connect(self._db_path) as db:
            await self._ensure_schema(db)
            row = await db.fetchone("SELECT * FROM chat_sessions WHERE id = ?", (session_id,))
            return _row_to_session(row) if row else None

    # -- Write -----------------------------------------------------------------

    async def create(self, name: str | None = None) -> ChatSession:
        """Create a session.  Unnamed sessions are numbered ``New Chat N``."""
        async with connect(self._db_path) as db:
            await self._ensure_schema(db)
            if not name:
                name = f"{DEFAULT_SESSION_NAME} {await self._count(db) + 1}"
            session = await self._insert(db, name)
            await db.commit()
        logger.info("Created session %s (%s)", session.id, session.name)
        return session

    async def rename(self, session_id: str, name: str) -> ChatSession | None:
        async with connect(self._db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute(
                "UPDATE chat_sessions SET name = ? WHERE id = ?", (name, session_id)
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
        return await self.get(session_id)

    async def update_messages(
        self, session_id: str, messages: Sequence[ConversationMessage]
    ) -> ChatSession | None:
        """Replace a session's messages.  Messages without a timestamp get "now"."""
        now = datetime.now(UTC)
        stamped = [
            m if m.created_at is not None else m.model_copy(update={"created_at": now})
            for m in messages
        ]
        async with connect(self._db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute(
                "UPDATE chat_sessions SET messages = ? WHERE id = ?",
                (_dump_messages(stamped), session_id),
            )
            await db.commit()
            if cursor.rowcount == 0:
                return None
        return await self.get(session_id)

    # -- Delete ----------------------------------------------------------------

    async def delete(self, session_id: str) -> bool:
        """Delete a session.  Deleting the last one recreates the default session."""
        async with connect(self._db_path) as db:
            await self._ensure_schema(db)
            cursor = await db.execute("DELETE FROM chat_sessions WHERE id = ?", (session_id,))
            removed = cursor.rowcount > 0
            if removed and await self._count(db) == 0:
                await self._insert(db, DEFAULT_SESSION_NAME)
            await db.commit()
        if removed:
            logger.info("Deleted session %s", session_id)
        return removed

    async def clear(self) -> ChatSession:
        """Remove every session and return the fresh default one."""
        async with connect(self._db_path) as db:
            await self._ensure_schema(db)
            await db.execute("DELETE FROM chat_sessions")
            session = await self._insert(db, DEFAULT_SESSION_NAME)
            await db.commit()
        logger.info("Cleared all sessions")
        return session
