"""Persisted chat sessions."""

from f1gpt.sessions.store import SESSION_STORAGE_VERSION, SessionStore

__all__ = ["SESSION_STORAGE_VERSION", "SessionStore"]
