"""OpenAI embedding client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import openai

from f1gpt.config import settings
from f1gpt.errors import EmbeddingError

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class EmbeddingClient:
    """Turns text into fixed-dimension vectors.

    The underlying ``AsyncOpenAI`` client is created lazily so the object can
    be constructed at startup without network access, and replaced with a
    mock in tests.
    """

    def __init__(
        self,
        client: AsyncOpenAI | None = None,
        model: str | None = None,
        dimension: int | None = None,
    ) -> None:
        self._client = client
        self.model = model or settings.embedding_model
        self.dimension = dimension or settings.embedding_dimension

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = openai.AsyncOpenAI(api_key=settings.openai_api_key or None)
        return self._client

    async def embed(self, text: str) -> list[float]:
        """Return the embedding of *text*.

        Empty (or whitespace-only) text yields an empty vector without a
        provider call; callers treat that as "nothing to search for".

        Raises:
            EmbeddingError: on any provider, auth, rate limit or network error.
        """
        if not text.strip():
            return []
        return (await self.embed_many([text]))[0]

    async def embed_many(self, texts: list[str]) -> list[list[float]]:
        """Embed a batch of texts in one request, preserving order."""
        if not texts:
            return []
        try:
            client = self._get_client()
            response = await client.embeddings.create(
                model=self.model,
                input=texts,
                encoding_format="float",
            )
        except openai.OpenAIError as exc:
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        vectors = [item.embedding for item in sorted(response.data, key=lambda d: d.index)]
        if len(vectors) != len(texts):
            raise EmbeddingError(
                f"Embedding provider returned {len(vectors)} vectors for {len(texts)} inputs"
            )
        logger.debug("Embedded %d text(s) with %s", len(texts), self.model)
        return vectors

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
