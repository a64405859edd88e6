"""Retrieval-augmented generation: embeddings, vector search, prompt, streaming."""

from f1gpt.rag.context import assemble_context, parse_context
from f1gpt.rag.pipeline import PreparedChat, RagPipeline, Stage, extract_query
from f1gpt.rag.prompt import DEFAULT_POLICY, PromptPolicy, build_system_prompt, extract_context

__all__ = [
    "DEFAULT_POLICY",
    "PreparedChat",
    "PromptPolicy",
    "RagPipeline",
    "Stage",
    "assemble_context",
    "build_system_prompt",
    "extract_context",
    "extract_query",
    "parse_context",
]
