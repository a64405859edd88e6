"""Retrieval-augmented generation pipeline.

One request moves through the stages in order::

    RECEIVE -> EMBED -> RETRIEVE -> ASSEMBLE -> BUILD_PROMPT -> GENERATE -> DONE

Embedding and search failures are absorbed (the answer is generated with an
empty context and ``degraded`` set). A collection that cannot be opened or
created is fatal and raised as ``CollectionUnavailableError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import aclosing
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from f1gpt.config import settings
from f1gpt.errors import (
    CollectionUnavailableError,
    EmbeddingError,
    InvalidRequestError,
    VectorStoreError,
)
from f1gpt.models import ChatRequest, ConversationMessage, RetrievedDocument
from f1gpt.rag.context import assemble_context
from f1gpt.rag.prompt import DEFAULT_POLICY, PromptPolicy, build_system_prompt

if TYPE_CHECKING:
    from f1gpt.rag.embeddings import EmbeddingClient
    from f1gpt.rag.generation import CompletionGenerator
    from f1gpt.rag.vector_store import VectorStoreGateway

logger = logging.getLogger(__name__)


class Stage(Enum):
    RECEIVE = "receive"
    EMBED = "embed"
    RETRIEVE = "retrieve"
    ASSEMBLE = "assemble"
    BUILD_PROMPT = "build_prompt"
    GENERATE = "generate"
    DONE = "done"


@dataclass
class PreparedChat:
    """Everything needed to start streaming an answer."""

    query: str
    context: str
    system_prompt: str
    messages: list[dict[str, str]]
    documents: list[RetrievedDocument] = field(default_factory=list)
    degraded: bool = False


def parse_chat_request(payload: Any) -> list[ConversationMessage]:
    """Validate a decoded request body and return its messages.

    Raises:
        InvalidRequestError: if the body is not ``{"messages": [...]}`` with
            well-formed messages.
    """
    if not isinstance(payload, dict):
        raise InvalidRequestError("Request body must be a JSON object")
    try:
        return ChatRequest.model_validate(payload).messages
    except ValidationError as exc:
        raise InvalidRequestError(f"Invalid chat request: {exc.error_count()} error(s)") from exc


def extract_query(messages: Sequence[ConversationMessage]) -> str:
    """Content of the last user message, or ``""`` when there is none."""
    for message in reversed(messages):
        if message.role == "user":
            return message.content
    return ""


def to_provider_messages(
    messages: Sequence[ConversationMessage],
) -> tuple[list[dict[str, str]], str]:
    """Split history into provider chat turns and client-supplied system text."""
    turns = [
        {"role": m.role, "content": m.content}
        for m in messages
        if m.role in ("user", "assistant")
    ]
    system = "\n\n".join(m.content for m in messages if m.role == "system" and m.content.strip())
    return turns, system


class RagPipeline:
    """Request-scoped orchestration over long-lived, injected gateways."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStoreGateway,
        generator: CompletionGenerator,
        *,
        collection_name: str | None = None,
        search_limit: int | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
        policy: PromptPolicy = DEFAULT_POLICY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.generator = generator
        self.collection_name = collection_name or settings.collection_name
        self.search_limit = search_limit or settings.search_limit
        self.temperature = settings.temperature if temperature is None else temperature
        self.max_tokens = max_tokens or settings.max_output_tokens
        self.timeout = timeout or settings.retrieval_timeout
        self.policy = policy
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _embed(self, query: str) -> list[float] | None:
        """Return the query vector, or None when embedding failed."""
        try:
            async with asyncio.timeout(self.timeout):
                return await self.embedder.embed(query)
        except EmbeddingError as exc:
            logger.warning("Embedding failed, continuing without context: %s", exc)
        except TimeoutError:
            logger.warning(
                "Embedding timed out after %.1fs, continuing without context", self.timeout
            )
        return None

    async def retrieve(self, query: str) -> tuple[list[RetrievedDocument], bool]:
        """Run the EMBED and RETRIEVE stages.

        Returns:
            ``(documents, degraded)``. ``degraded`` is True when embedding or
            search failed and the documents list was replaced by ``[]``.

        Raises:
            CollectionUnavailableError: the collection could not be opened or
                created.
        """
        logger.debug("Stage %s: query=%r", Stage.EMBED.value, query[:80])
        vector = await self._embed(query)

        logger.debug("Stage %s: collection=%s", Stage.RETRIEVE.value, self.collection_name)
        try:
            async with asyncio.timeout(self.timeout):
                handle = await self.store.get_or_create_collection(self.collection_name)
        except VectorStoreError as exc:
            logger.error("Vector store error fetching collection (%s): %s", exc.kind.value, exc)
            raise CollectionUnavailableError(str(exc)) from exc
        except TimeoutError as exc:
            logger.error("Timed out fetching collection '%s'", self.collection_name)
            raise CollectionUnavailableError("Timed out fetching collection") from exc

        if vector is None:
            return [], True
        if not vector:
            return [], False

        try:
            async with asyncio.timeout(self.timeout):
                docs = await self.store.search(handle, vector, self.search_limit)
        except VectorStoreError as exc:
            logger.warning("Vector query failed, continuing without context: %s", exc)
            return [], True
        except TimeoutError:
            logger.warning(
                "Vector query timed out after %.1fs, continuing without context", self.timeout
            )
            return [], True
        return docs, False

    async def prepare(self, messages: Sequence[ConversationMessage]) -> PreparedChat:
        """Run every stage up to (not including) GENERATE."""
        query = extract_query(messages)
        docs, degraded = await self.retrieve(query)

        logger.debug("Stage %s: %d document(s)", Stage.ASSEMBLE.value, len(docs))
        context = assemble_context(docs)

        logger.debug("Stage %s", Stage.BUILD_PROMPT.value)
        turns, client_system = to_provider_messages(messages)
        system_prompt = build_system_prompt(
            context,
            self._clock(),
            self.policy,
            extra_instructions=client_system,
        )

        logger.info(
            "Prepared chat: %d message(s), %d document(s)%s",
            len(turns),
            len(docs),
            " (degraded)" if degraded else "",
        )
        return PreparedChat(
            query=query,
            context=context,
            system_prompt=system_prompt,
            messages=turns,
            documents=docs,
            degraded=degraded,
        )

    async def stream(self, prepared: PreparedChat) -> AsyncIterator[str]:
        """GENERATE stage: yield answer chunks as the provider produces them.

        ``GenerationError`` propagates to the caller mid-stream; nothing is
        retried.
        """
        logger.debug(
            "Stage %s: model=%s temperature=%s max_tokens=%d",
            Stage.GENERATE.value,
            self.generator.model,
            self.temperature,
            self.max_tokens,
        )
        chunks = 0
        provider_stream = self.generator.stream(
            prepared.system_prompt,
            prepared.messages,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )
        async with aclosing(provider_stream):
            async for chunk in provider_stream:
                chunks += 1
                yield chunk
        logger.debug("Stage %s: %d chunk(s)", Stage.DONE.value, chunks)

    async def close(self) -> None:
        """Release the gateways owned by this pipeline."""
        await self.embedder.close()
        await self.generator.close()
        self.store.close()
