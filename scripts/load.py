#!/usr/bin/env python3
"""Load plain-text F1 documents into the vector collection.

Each file is split into overlapping chunks, embedded, and inserted as one
row per chunk.  The collection is created on first use.

Usage examples:
    # Load every .txt/.md file under data/raw
    uv run python scripts/load.py data/raw

    # Specific files into a non-default collection
    uv run python scripts/load.py standings.txt calendar.md --collection f1_2025

    # Drop and rebuild the collection first
    uv run python scripts/load.py data/raw --reset
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Allow running from project root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from f1gpt.config import settings
from f1gpt.ingest import Ingestor
from f1gpt.rag.embeddings import EmbeddingClient
from f1gpt.rag.vector_store import VectorStoreGateway

TEXT_SUFFIXES = {".txt", ".md"}


def collect_files(inputs: list[str]) -> list[Path]:
    """Expand directories into their text files, keeping explicit files as given."""
    files: list[Path] = []
    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob("*") if p.suffix.lower() in TEXT_SUFFIXES))
        else:
            files.append(path)
    return files


async def run(args: argparse.Namespace) -> int:
    store = VectorStoreGateway()
    embedder = EmbeddingClient()
    try:
        if args.reset:
            await store.drop_collection(args.collection)

        ingestor = Ingestor(
            embedder,
            store,
            collection_name=args.collection,
            chunk_size=args.chunk_size,
            chunk_overlap=args.chunk_overlap,
        )
        report = await ingestor.ingest_files(collect_files(args.inputs))
        handle = await store.get_or_create_collection(args.collection)
        total = await store.count(handle)
    finally:
        await embedder.close()
        store.close()

    print(
        f"Loaded {report.chunks} chunk(s) from {report.sources} file(s), "
        f"skipped {report.skipped}. Collection '{args.collection}' has {total} row(s)."
    )
    return 0 if report.skipped == 0 else 1


def main() -> None:
    parser = argparse.ArgumentParser(description="Load text documents into the F1GPT collection")
    parser.add_argument("inputs", nargs="+", help="Text files or directories to load")
    parser.add_argument("--collection", default=settings.collection_name, help="Collection name")
    parser.add_argument("--chunk-size", type=int, default=settings.chunk_size)
    parser.add_argument("--chunk-overlap", type=int, default=settings.chunk_overlap)
    parser.add_argument("--reset", action="store_true", help="Drop the collection before loading")
    args = parser.parse_args()

    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, settings.log_level),
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
