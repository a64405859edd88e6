"""Exception types shared across the RAG pipeline and HTTP layer."""

from __future__ import annotations

from enum import Enum


class F1GPTError(Exception):
    """Base class for all application errors."""


class InvalidRequestError(F1GPTError):
    """The chat request body is structurally invalid."""


class EmbeddingError(F1GPTError):
    """The embedding provider failed to produce a vector."""


class GenerationError(F1GPTError):
    """The completion provider failed while streaming an answer."""


class StoreErrorKind(Enum):
    """Closed set of vector store failure kinds."""

    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


class VectorStoreError(F1GPTError):
    """A vector store operation failed.

    ``kind`` is the normalised classification; callers branch on it rather
    than on the provider's error text.
    """

    def __init__(self, message: str, kind: StoreErrorKind = StoreErrorKind.OTHER) -> None:
        super().__init__(message)
        self.kind = kind


class CollectionUnavailableError(F1GPTError):
    """The document collection could not be opened or created."""
