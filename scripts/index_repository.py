"""
Index a local repository checkout into the configured vector store.

Usage:
    python scripts/index_repository.py <owner> <repo> <path-to-checkout> [--create-schema]

Reads configuration from .env (GEMINI_API_KEY, DATABASE_URL, ...). Files are
embedded under the same repository key the review workflow retrieves with.
"""
import argparse
import asyncio
import logging
import os
from typing import Iterator

from dotenv import load_dotenv
load_dotenv()

from pr_review_server.api.dependencies import get_embedder, get_embedding_limiter, get_vector_store
from pr_review_server.db.session import create_schema
from pr_review_server.embeddings.models import FileChunk
from pr_review_server.indexing.orchestrator import IndexingOrchestrator
from pr_review_server.providers.github import is_binary_path
from pr_review_server.repositories import RepositoryIdentity

SKIP_DIRS = {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build"}


def iter_checkout(root: str) -> Iterator[FileChunk]:
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIP_DIRS)
        for filename in sorted(filenames):
            full = os.path.join(dirpath, filename)
            rel = os.path.relpath(full, root).replace(os.sep, "/")
            if is_binary_path(rel):
                continue
            try:
                with open(full, encoding="utf-8") as fh:
                    content = fh.read()
            except (UnicodeDecodeError, OSError):
                print(f"Skipping unreadable file {rel}")
                continue
            yield FileChunk(path=rel, content=content)


async def main(args: argparse.Namespace) -> None:
    if args.create_schema:
        print("Creating schema...")
        await create_schema()

    identity = RepositoryIdentity(owner=args.owner, name=args.repo)
    orchestrator = IndexingOrchestrator(
        get_embedder(),
        get_vector_store(),
        limiter=get_embedding_limiter(),
    )

    print(f"Indexing {identity.key} from {args.path}...")
    stats = await orchestrator.index_repository(
        identity.key,
        iter_checkout(args.path),
        check_existing=not args.force,
    )

    if stats.already_indexed:
        print("Repository already indexed. Use --force to re-index.")
        return
    print(
        f"Done: {stats.records_written} records from {stats.files_seen} files "
        f"({stats.files_skipped} skipped)."
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("owner")
    parser.add_argument("repo")
    parser.add_argument("path")
    parser.add_argument("--create-schema", action="store_true")
    parser.add_argument("--force", action="store_true", help="Re-index even if vectors exist.")
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main(parser.parse_args()))
