"""LanceDB gateway for the F1 document collection.

Owns the long-lived async connection and the collection handles opened
through it. Provider exceptions are normalised into ``VectorStoreError``
with a ``StoreErrorKind`` so callers never inspect error text.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import lancedb
import pyarrow as pa

from f1gpt.config import settings
from f1gpt.errors import StoreErrorKind, VectorStoreError
from f1gpt.models import RetrievedDocument

if TYPE_CHECKING:
    from lancedb import AsyncConnection
    from lancedb.table import AsyncTable

logger = logging.getLogger(__name__)

# LanceDB names the metric "dot"; the ingestion job historically used "dot_product".
_METRIC_ALIASES = {
    "cosine": "cosine",
    "dot": "dot",
    "dot_product": "dot",
    "l2": "l2",
    "euclidean": "l2",
}

_NOT_FOUND_MARKERS = ("not found", "does not exist", "no such table")
_EXISTS_MARKERS = ("already exists",)


def collection_schema(dimension: int) -> pa.Schema:
    """Arrow schema for a document collection with *dimension*-wide vectors."""
    return pa.schema([
        pa.field("vector", pa.list_(pa.float32(), dimension)),
        pa.field("text", pa.utf8()),
        pa.field("source", pa.utf8()),
        pa.field("chunk_index", pa.int32()),
    ])


def classify_error(exc: BaseException) -> StoreErrorKind:
    """Map a provider exception onto the closed set of store error kinds."""
    if isinstance(exc, VectorStoreError):
        return exc.kind
    status = getattr(exc, "status_code", None)
    if status == 404:
        return StoreErrorKind.NOT_FOUND
    if isinstance(exc, (ValueError, LookupError, FileNotFoundError)):
        message = str(exc).lower()
        if any(marker in message for marker in _NOT_FOUND_MARKERS):
            return StoreErrorKind.NOT_FOUND
    if isinstance(exc, (ConnectionError, TimeoutError, OSError)):
        return StoreErrorKind.UNAVAILABLE
    if isinstance(status, int) and status >= 500:
        return StoreErrorKind.UNAVAILABLE
    return StoreErrorKind.OTHER


def _is_already_exists(exc: BaseException) -> bool:
    return isinstance(exc, ValueError) and any(
        marker in str(exc).lower() for marker in _EXISTS_MARKERS
    )


@dataclass
class CollectionHandle:
    """An open collection inside the vector store."""

    name: str
    table: AsyncTable


class VectorStoreGateway:
    """Fetch-or-create collections and run nearest-neighbour searches.

    Safe to share between concurrent requests: the connection is opened once
    under a lock, and handles are cached per collection name.
    """

    def __init__(
        self,
        uri: str | None = None,
        *,
        api_key: str | None = None,
        dimension: int | None = None,
        metric: str | None = None,
        connection: AsyncConnection | None = None,
    ) -> None:
        self.uri = uri or settings.lancedb_uri
        self._api_key = api_key if api_key is not None else settings.lancedb_api_key
        self.dimension = dimension or settings.embedding_dimension
        metric_name = (metric or settings.similarity_metric).lower()
        if metric_name not in _METRIC_ALIASES:
            raise ValueError(f"Unsupported similarity metric: {metric_name}")
        self.metric = _METRIC_ALIASES[metric_name]
        self._connection = connection
        self._handles: dict[str, CollectionHandle] = {}
        self._lock = asyncio.Lock()

    async def _get_connection(self) -> AsyncConnection:
        if self._connection is None:
            async with self._lock:
                if self._connection is None:
                    kwargs: dict[str, Any] = {}
                    if self._api_key:
                        kwargs["api_key"] = self._api_key
                        kwargs["region"] = settings.lancedb_region
                    logger.info("Opening LanceDB connection: %s", self.uri)
                    try:
                        self._connection = await lancedb.connect_async(self.uri, **kwargs)
                    except Exception as exc:
                        raise VectorStoreError(
                            f"Failed to connect to vector store: {exc}", classify_error(exc)
                        ) from exc
        return self._connection

    async def get_or_create_collection(self, name: str | None = None) -> CollectionHandle:
        """Open collection *name*, creating it if the store reports it missing.

        Creation tolerates a concurrent creator: ``exist_ok`` is set, and an
        "already exists" error is resolved by opening the table again.

        Raises:
            VectorStoreError: when opening fails for any reason other than
                "not found", or when creation fails.
        """
        name = name or settings.collection_name
        cached = self._handles.get(name)
        if cached is not None:
            return cached

        db = await self._get_connection()
        try:
            table = await db.open_table(name)
        except Exception as exc:
            kind = classify_error(exc)
            if kind is not StoreErrorKind.NOT_FOUND:
                raise VectorStoreError(f"Failed to open collection '{name}': {exc}", kind) from exc
            logger.info("Collection '%s' not found, creating it", name)
            table = await self._create(db, name)

        handle = CollectionHandle(name=name, table=table)
        self._handles[name] = handle
        return handle

    async def _create(self, db: AsyncConnection, name: str) -> AsyncTable:
        schema = collection_schema(self.dimension)
        try:
            return await db.create_table(name, schema=schema, exist_ok=True)
        except Exception as exc:
            if _is_already_exists(exc):
                logger.info("Collection '%s' was created concurrently, opening it", name)
                try:
                    return await db.open_table(name)
                except Exception as reopen_exc:
                    raise VectorStoreError(
                        f"Failed to open collection '{name}': {reopen_exc}",
                        classify_error(reopen_exc),
                    ) from reopen_exc
            raise VectorStoreError(
                f"Failed to create collection '{name}': {exc}", classify_error(exc)
            ) from exc

    async def search(
        self,
        handle: CollectionHandle,
        vector: list[float],
        limit: int | None = None,
    ) -> list[RetrievedDocument]:
        """Return up to *limit* documents nearest to *vector*, nearest first.

        Raises:
            VectorStoreError: on any query failure.
        """
        limit = limit or settings.search_limit
        if not vector:
            return []
        try:
            rows = await (
                handle.table.query()
                .nearest_to(vector)
                .distance_type(self.metric)
                .limit(limit)
                .to_list()
            )
        except Exception as exc:
            raise VectorStoreError(
                f"Search on '{handle.name}' failed: {exc}", classify_error(exc)
            ) from exc

        docs = [_to_document(row) for row in rows]
        logger.debug("Search on '%s' returned %d document(s)", handle.name, len(docs))
        return docs

    async def add_documents(self, handle: CollectionHandle, rows: list[dict[str, Any]]) -> int:
        """Insert rows (``vector``, ``text``, ``source``, ``chunk_index``)."""
        if not rows:
            return 0
        try:
            await handle.table.add(rows)
        except Exception as exc:
            raise VectorStoreError(
                f"Insert into '{handle.name}' failed: {exc}", classify_error(exc)
            ) from exc
        logger.info("Added %d row(s) to '%s'", len(rows), handle.name)
        return len(rows)

    async def count(self, handle: CollectionHandle) -> int:
        return await handle.table.count_rows()

    async def drop_collection(self, name: str) -> None:
        """Drop collection *name* if it exists (used to rebuild the index)."""
        db = await self._get_connection()
        handle = self._handles.pop(name, None)
        if handle is not None:
            handle.table.close()
        await db.drop_table(name, ignore_missing=True)
        logger.info("Dropped collection '%s'", name)

    def close(self) -> None:
        """Release cached handles and the connection."""
        for handle in self._handles.values():
            handle.table.close()
        self._handles.clear()
        if self._connection is not None:
            self._connection.close()
            self._connection = None
            logger.info("Closed LanceDB connection")


def _to_document(row: dict[str, Any]) -> RetrievedDocument:
    metadata = {k: v for k, v in row.items() if k not in ("vector", "text", "_distance")}
    return RetrievedDocument(
        text=str(row.get("text") or ""),
        distance=row.get("_distance"),
        **metadata,
    )
