"""Wire framings for streamed chat answers.

``data`` is the AI SDK data stream protocol used by ``useChat`` front ends:
one ``<type>:<json>\\n`` line per part.  ``text`` streams the raw answer
text and can only signal a failure by ending early.
"""

from __future__ import annotations

import json
import uuid
from typing import Any


def _part(code: str, value: Any) -> bytes:
    return f"{code}:{json.dumps(value, ensure_ascii=False)}\n".encode()


class DataStreamEncoder:
    """AI SDK data stream protocol (v1)."""

    content_type = "text/plain; charset=utf-8"
    headers = {"X-Vercel-AI-Data-Stream": "v1"}

    def __init__(self, message_id: str | None = None) -> None:
        self.message_id = message_id or f"msg-{uuid.uuid4().hex[:16]}"

    def start(self) -> bytes:
        return _part("f", {"messageId": self.message_id})

    def text(self, chunk: str) -> bytes:
        return _part("0", chunk)

    def error(self, message: str) -> bytes:
        return _part("3", message)

    def finish(self, reason: str = "stop") -> bytes:
        usage = {"promptTokens": 0, "completionTokens": 0}
        return _part("e", {"finishReason": reason, "usage": usage, "isContinued": False}) + _part(
            "d", {"finishReason": reason, "usage": usage}
        )


class TextStreamEncoder:
    """Plain UTF-8 text chunks."""

    content_type = "text/plain; charset=utf-8"
    headers: dict[str, str] = {}

    def start(self) -> bytes:
        return b""

    def text(self, chunk: str) -> bytes:
        return chunk.encode()

    def error(self, message: str) -> bytes:
        return b""

    def finish(self, reason: str = "stop") -> bytes:
        return b""


def get_encoder(protocol: str) -> DataStreamEncoder | TextStreamEncoder:
    if protocol == "data":
        return DataStreamEncoder()
    if protocol == "text":
        return TextStreamEncoder()
    raise ValueError(f"Unknown stream protocol: {protocol}")
