"""Streaming completion clients.

Each generator yields text deltas as the provider produces them. Closing the
async iterator early (client disconnect) exits the provider's stream context,
which closes the underlying HTTP response.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

import anthropic
import openai

from f1gpt.config import settings
from f1gpt.errors import GenerationError

if TYPE_CHECKING:
    from anthropic import AsyncAnthropic
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


@runtime_checkable
class CompletionGenerator(Protocol):
    """Protocol that all completion providers must satisfy."""

    @property
    def model(self) -> str: ...

    def stream(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> AsyncGenerator[str, None]:
        """Yield answer text chunks for *messages* under *system*."""
        ...

    async def close(self) -> None: ...


class OpenAIGenerator:
    """Chat completions streaming via the OpenAI API."""

    def __init__(self, client: AsyncOpenAI | None = None, model: str | None = None) -> None:
        self._client = client
        self._model = model or settings.chat_model

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=settings.openai_api_key or None)
        return self._client

    async def stream(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> AsyncGenerator[str, None]:
        try:
            client = self._get_client()
            response = await client.chat.completions.create(
                model=self._model,
                messages=[{"role": "system", "content": system}, *messages],
                temperature=temperature,
                max_completion_tokens=max_tokens,
                stream=True,
            )
            async with response:
                async for chunk in response:
                    if not chunk.choices:
                        continue
                    delta = chunk.choices[0].delta.content
                    if delta:
                        yield delta
        except openai.OpenAIError as exc:
            raise GenerationError(f"OpenAI completion failed: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


class AnthropicGenerator:
    """Messages streaming via the Anthropic API."""

    def __init__(self, client: AsyncAnthropic | None = None, model: str | None = None) -> None:
        self._client = client
        self._model = model or settings.claude_model

    @property
    def model(self) -> str:
        return self._model

    def _get_client(self) -> AsyncAnthropic:
        if self._client is None:
            self._client = anthropic.AsyncAnthropic(api_key=settings.anthropic_api_key or None)
        return self._client

    async def stream(
        self,
        system: str,
        messages: list[dict[str, str]],
        *,
        temperature: float,
        max_tokens: int,
    ) -> AsyncGenerator[str, None]:
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system,
            "messages": messages,
        }
        try:
            client = self._get_client()
            async with client.messages.stream(**kwargs) as stream:
                async for text in stream.text_stream:
                    yield text
        except anthropic.AnthropicError as exc:
            raise GenerationError(f"Anthropic completion failed: {exc}") from exc

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


def create_generator(provider: str | None = None) -> CompletionGenerator:
    """Build the generator for *provider* (defaults to ``settings.completion_provider``)."""
    provider = (provider or settings.completion_provider).lower()
    if provider == "openai":
        return OpenAIGenerator()
    if provider == "anthropic":
        return AnthropicGenerator()
    raise ValueError(f"Unknown completion provider: {provider}")
