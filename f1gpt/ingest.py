"""Batch ingestion: chunk already-extracted text, embed it, store the rows.

Fetching and cleaning web pages happens upstream; this job takes plain text
(files or strings) and produces collection rows of ``vector``, ``text``,
``source`` and ``chunk_index``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from langchain_text_splitters import RecursiveCharacterTextSplitter

from f1gpt.config import settings

if TYPE_CHECKING:
    from f1gpt.rag.embeddings import EmbeddingClient
    from f1gpt.rag.vector_store import VectorStoreGateway

logger = logging.getLogger(__name__)

EMBED_BATCH_SIZE = 64


@dataclass
class IngestReport:
    sources: int = 0
    chunks: int = 0
    skipped: int = 0


class Ingestor:
    """Splits, embeds and stores source texts in the document collection."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: VectorStoreGateway,
        *,
        collection_name: str | None = None,
        chunk_size: int | None = None,
        chunk_overlap: int | None = None,
    ) -> None:
        self.embedder = embedder
        self.store = store
        self.collection_name = collection_name or settings.collection_name
        self.splitter = RecursiveCharacterTextSplitter(
            chunk_size=chunk_size or settings.chunk_size,
            chunk_overlap=settings.chunk_overlap if chunk_overlap is None else chunk_overlap,
        )

    def split(self, text: str) -> list[str]:
        return [c for c in self.splitter.split_text(text) if c.strip()]

    async def ingest_text(self, source: str, text: str) -> int:
        """Chunk *text*, embed every chunk and insert the rows.  Returns the row count."""
        chunks = self.split(text)
        if not chunks:
            logger.warning("No text to ingest from %s", source)
            return 0

        handle = await self.store.get_or_create_collection(self.collection_name)
        inserted = 0
        for start in range(0, len(chunks), EMBED_BATCH_SIZE):
            batch = chunks[start : start + EMBED_BATCH_SIZE]
            vectors = await self.embedder.embed_many(batch)
            rows: list[dict[str, Any]] = [
                {"vector": vector, "text": chunk, "source": source, "chunk_index": start + i}
                for i, (chunk, vector) in enumerate(zip(batch, vectors, strict=True))
            ]
            inserted += await self.store.add_documents(handle, rows)

        logger.info("Ingested %s: %d chunk(s)", source, inserted)
        return inserted

    async def ingest_files(self, paths: list[Path]) -> IngestReport:
        """Ingest each readable text file; unreadable files are skipped and logged."""
        report = IngestReport()
        for path in paths:
            try:
                text = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping %s: %s", path, exc)
                report.skipped += 1
                continue
            report.chunks += await self.ingest_text(str(path), text)
            report.sources += 1
        return report
