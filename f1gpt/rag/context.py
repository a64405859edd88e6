"""Serialize retrieved documents into the context blob injected into prompts."""

import json
from collections.abc import Sequence

from f1gpt.models import RetrievedDocument

EMPTY_CONTEXT = "[]"


def assemble_context(docs: Sequence[RetrievedDocument]) -> str:
    """Return the document texts, in order, as a JSON array of strings."""
    return json.dumps([doc.text for doc in docs], ensure_ascii=False)


def parse_context(blob: str) -> list[str]:
    """Inverse of :func:`assemble_context`. An empty blob means no context."""
    if not blob.strip():
        return []
    texts = json.loads(blob)
    if not isinstance(texts, list):
        raise ValueError("Context blob must be a JSON array")
    return [str(t) for t in texts]
