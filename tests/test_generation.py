"""Tests for the streaming completion clients."""

from contextlib import aclosing
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import anthropic
import openai
import pytest

from f1gpt.errors import GenerationError
from f1gpt.rag.generation import (
    AnthropicGenerator,
    CompletionGenerator,
    OpenAIGenerator,
    create_generator,
)

SYSTEM = "You are F1GPT."
MESSAGES = [{"role": "user", "content": "Next race?"}]


# -- Helpers -----------------------------------------------------------------


def _chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class _FakeOpenAIStream:
    def __init__(self, chunks, error: Exception | None = None) -> None:
        self._chunks = chunks
        self._error = error
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    async def __aiter__(self):
        for chunk in self._chunks:
            yield chunk
        if self._error is not None:
            raise self._error


class _FakeAnthropicStream:
    def __init__(self, texts, error: Exception | None = None) -> None:
        self._texts = texts
        self._error = error
        self.closed = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True

    @property
    async def text_stream(self):
        for text in self._texts:
            yield text
        if self._error is not None:
            raise self._error


async def _collect(generator) -> list[str]:
    return [
        chunk
        async for chunk in generator.stream(SYSTEM, MESSAGES, temperature=0.2, max_tokens=1500)
    ]


# -- OpenAI ------------------------------------------------------------------


class TestOpenAIGenerator:
    def _client(self, stream: _FakeOpenAIStream) -> MagicMock:
        client = MagicMock()
        client.chat.completions.create = AsyncMock(return_value=stream)
        client.close = AsyncMock()
        return client

    async def test_yields_deltas(self):
        stream = _FakeOpenAIStream([_chunk("Monaco"), _chunk(None), _chunk(" on 25 May")])
        client = self._client(stream)
        generator = OpenAIGenerator(client=client, model="gpt-4o-mini")

        assert await _collect(generator) == ["Monaco", " on 25 May"]
        assert stream.closed is True

    async def test_request_shape(self):
        client = self._client(_FakeOpenAIStream([]))
        await _collect(OpenAIGenerator(client=client, model="gpt-4o-mini"))

        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["messages"] == [{"role": "system", "content": SYSTEM}, *MESSAGES]
        assert kwargs["temperature"] == 0.2
        assert kwargs["max_completion_tokens"] == 1500
        assert kwargs["stream"] is True

    async def test_skips_chunks_without_choices(self):
        stream = _FakeOpenAIStream([SimpleNamespace(choices=[]), _chunk("ok")])
        generator = OpenAIGenerator(client=self._client(stream))
        assert await _collect(generator) == ["ok"]

    async def test_request_error_maps_to_generation_error(self):
        client = MagicMock()
        client.chat.completions.create = AsyncMock(side_effect=openai.OpenAIError("bad key"))

        with pytest.raises(GenerationError):
            await _collect(OpenAIGenerator(client=client))

    async def test_mid_stream_error_maps_to_generation_error(self):
        stream = _FakeOpenAIStream([_chunk("Par")], error=openai.OpenAIError("reset"))
        generator = OpenAIGenerator(client=self._client(stream))

        received = []
        with pytest.raises(GenerationError):
            async for chunk in generator.stream(SYSTEM, MESSAGES, temperature=0.2, max_tokens=10):
                received.append(chunk)
        assert received == ["Par"]

    async def test_early_close_exits_response(self):
        stream = _FakeOpenAIStream([_chunk("a"), _chunk("b")])
        generator = OpenAIGenerator(client=self._client(stream))

        chunks = generator.stream(SYSTEM, MESSAGES, temperature=0.2, max_tokens=10)
        async with aclosing(chunks):
            async for _ in chunks:
                break
        assert stream.closed is True


# -- Anthropic ---------------------------------------------------------------


class TestAnthropicGenerator:
    def _client(self, stream: _FakeAnthropicStream) -> MagicMock:
        client = MagicMock()
        client.messages.stream = MagicMock(return_value=stream)
        client.close = AsyncMock()
        return client

    async def test_yields_text(self):
        stream = _FakeAnthropicStream(["Hello", " world"])
        client = self._client(stream)
        generator = AnthropicGenerator(client=client, model="claude-sonnet-4-5-20250929")

        assert await _collect(generator) == ["Hello", " world"]
        assert stream.closed is True
        client.messages.stream.assert_called_once_with(
            model="claude-sonnet-4-5-20250929",
            max_tokens=1500,
            temperature=0.2,
            system=SYSTEM,
            messages=MESSAGES,
        )

    async def test_error_maps_to_generation_error(self):
        stream = _FakeAnthropicStream(["Hi"], error=anthropic.AnthropicError("overloaded"))
        generator = AnthropicGenerator(client=self._client(stream))

        with pytest.raises(GenerationError):
            await _collect(generator)


# -- Factory -----------------------------------------------------------------


class TestCreateGenerator:
    def test_openai(self):
        generator = create_generator("openai")
        assert isinstance(generator, OpenAIGenerator)
        assert isinstance(generator, CompletionGenerator)

    def test_anthropic(self):
        assert isinstance(create_generator("anthropic"), AnthropicGenerator)

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            create_generator("gemini")

    async def test_close_releases_client(self):
        client = MagicMock()
        client.close = AsyncMock()
        generator = OpenAIGenerator(client=client)
        await generator.close()
        client.close.assert_awaited_once()
