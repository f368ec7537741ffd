#!/usr/bin/env python3
"""
Seed the Chroma collection with text documents for demos or tests.

Loads every .txt and .md file under a directory, splits each file on
blank lines into passages of at most --max-chars characters, and stores
the passages in the configured collection (CHROMA_URL, CHROMA_PERSIST_DIR
or CHROMA_COLLECTION). Use --reset to empty the collection first.

Run from project root:

    python scripts/seed_documents.py
    python scripts/seed_documents.py data/documents --reset
"""

import argparse
import logging
import sys
from pathlib import Path

# Project root on path so "agentic_rag" resolves
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from agentic_rag.services.retrieval import ChromaRetrievalService

logger = logging.getLogger("seed_documents")

DEFAULT_DIR = _ROOT / "data" / "documents"
SUFFIXES = {".txt", ".md"}


def split_passages(text: str, max_chars: int) -> list[str]:
    """Group blank-line separated paragraphs into passages up to max_chars."""
    passages: list[str] = []
    current = ""
    for paragraph in (p.strip() for p in text.split("\n\n")):
        if not paragraph:
            continue
        if current and len(current) + len(paragraph) + 2 > max_chars:
            passages.append(current)
            current = paragraph
        else:
            current = f"{current}\n\n{paragraph}" if current else paragraph
    if current:
        passages.append(current)
    return passages


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed the Chroma collection.")
    parser.add_argument(
        "directory",
        nargs="?",
        type=Path,
        default=DEFAULT_DIR,
        help=f"Directory of .txt/.md files (default: {DEFAULT_DIR})",
    )
    parser.add_argument(
        "--max-chars",
        type=int,
        default=1500,
        help="Maximum characters per stored passage.",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete every document in the collection before seeding.",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO)

    files = sorted(
        p for p in args.directory.rglob("*")
        if p.is_file() and p.suffix.lower() in SUFFIXES
    )
    if not files:
        sys.exit(f"No .txt or .md files found under {args.directory}")

    service = ChromaRetrievalService()
    if args.reset:
        existing = service.count()
        service.clear()
        print(f"Cleared {existing} existing documents.")

    total = 0
    for path in files:
        passages = split_passages(path.read_text(encoding="utf-8"), args.max_chars)
        if not passages:
            continue
        service.add_documents(
            passages,
            metadatas=[
                {"source": path.name, "passage": i}
                for i in range(len(passages))
            ],
            ids=[f"{path.stem}-{i}" for i in range(len(passages))],
        )
        total += len(passages)
        print(f"  added: {path.name} ({len(passages)} passages)")

    print(f"Done. Seeded {total} passages; collection now holds {service.count()}.")


if __name__ == "__main__":
    main()
