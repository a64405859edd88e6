"""Shared test fixtures."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from f1gpt.rag.pipeline import RagPipeline
from f1gpt.rag.vector_store import CollectionHandle

FIXED_NOW = datetime(2025, 5, 20, 12, 0, tzinfo=UTC)


class FakeGenerator:
    """Completion generator that yields canned chunks and records each call."""

    model = "fake-model"

    def __init__(self, chunks: list[str] | None = None, error: Exception | None = None) -> None:
        self.chunks = ["Hello", " world"] if chunks is None else chunks
        self.error = error
        self.calls: list[dict] = []
        self.finished = False
        self.closed = False

    async def stream(self, system, messages, *, temperature, max_tokens):
        self.calls.append({
            "system": system,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        })
        try:
            for chunk in self.chunks:
                yield chunk
            if self.error is not None:
                raise self.error
            self.finished = True
        finally:
            self.closed = True

    async def close(self) -> None:
        pass


@pytest.fixture
def embedder() -> MagicMock:
    e = MagicMock()
    e.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    e.close = AsyncMock()
    return e


@pytest.fixture
def store() -> MagicMock:
    s = MagicMock()
    s.get_or_create_collection = AsyncMock(
        return_value=CollectionHandle(name="f1gpt", table=MagicMock())
    )
    s.search = AsyncMock(return_value=[])
    return s


@pytest.fixture
def generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def pipeline(embedder: MagicMock, store: MagicMock, generator: FakeGenerator) -> RagPipeline:
    """A pipeline over mocked gateways with a frozen clock."""
    return RagPipeline(
        embedder,
        store,
        generator,
        collection_name="f1gpt",
        search_limit=10,
        temperature=0.2,
        max_tokens=1500,
        timeout=1.0,
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def make_generator() -> type[FakeGenerator]:
    """Factory for generators with custom chunks or a mid-stream error."""
    return FakeGenerator
