"""Data models for chat messages, retrieved documents and sessions."""

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


class ConversationMessage(BaseModel):
    """A single conversation message as sent by the chat client."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(default_factory=_new_id)
    role: Literal["user", "assistant", "system"]
    content: str
    created_at: datetime | None = Field(default=None, alias="createdAt")


class ChatRequest(BaseModel):
    """Body of ``POST /api/chat``."""

    model_config = ConfigDict(extra="ignore")

    messages: list[ConversationMessage]


class RetrievedDocument(BaseModel):
    """A similarity search hit. Extra store columns are kept as metadata."""

    model_config = ConfigDict(extra="allow")

    text: str
    distance: float | None = None


class ChatSession(BaseModel):
    """A persisted chat session."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=_new_id)
    name: str = "New Chat"
    created_at: datetime = Field(alias="createdAt")
    messages: list[ConversationMessage] = Field(default_factory=list)
