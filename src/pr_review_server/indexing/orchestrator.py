"""
Repository Indexing

Converts a repository's files into vector records:

1. Dedup short-circuit: if the repository already has any record, do nothing.
2. For each file, build a labeled block ("File: <path>" + content), truncate
   it to the embedding budget and embed it. An empty vector (quota / rate
   limit) skips the file instead of aborting the run.
3. Embedding calls pass through a shared token bucket.
4. Records are flushed to the vector store in fixed-size batches as they
   accumulate.

Any non-degradable embedding failure aborts the run. Batches flushed before
the failure stay in the store; the run is expected to be retried wholesale.
"""

from __future__ import annotations

import logging
from typing import Iterable, List, NamedTuple, Optional

from ..config import settings
from ..embeddings.embedder import Embedder
from ..embeddings.models import FileChunk, IndexRecord, build_file_block
from ..embeddings.rate_limiter import TokenBucket
from ..db.vector_store import VectorStore

logger = logging.getLogger("review.indexing")


class IndexingStats(NamedTuple):
    """Outcome of one indexing run."""
    repository_id: str
    files_seen: int
    records_written: int
    files_skipped: int
    already_indexed: bool


class IndexingOrchestrator:
    """
    Sequential, throttled indexer for one repository at a time.

    Instances are cheap; the token bucket is what must be shared across
    concurrent indexing tasks.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        limiter: Optional[TokenBucket] = None,
        char_budget: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        self._embedder = embedder
        self._vector_store = vector_store
        self._limiter = limiter
        self._char_budget = char_budget or settings.embedding_char_budget
        self._batch_size = batch_size or settings.upsert_batch_size

    @property
    def char_budget(self) -> int:
        return self._char_budget

    async def is_indexed(self, repository_id: str) -> bool:
        return await self._vector_store.has_repository(repository_id)

    async def index_repository(
        self,
        repository_id: str,
        files: Iterable[FileChunk],
        check_existing: bool = True,
    ) -> IndexingStats:
        """
        Index every file of a repository unless it was indexed before.

        Parameters
        ----------
        repository_id : str
            Partition key from `repositories.repository_key()`.

        files : Iterable[FileChunk]
            Files to index, in the order they should be embedded.

        check_existing : bool
            Probe for prior records first. Callers that already probed (and
            may be retrying after a partial flush) pass False; records are
            overwritten by id, never duplicated.

        Returns
        -------
        IndexingStats
        """
        if check_existing and await self.is_indexed(repository_id):
            logger.info("Repository %s already indexed, skipping", repository_id)
            return IndexingStats(repository_id, 0, 0, 0, already_indexed=True)

        pending: List[IndexRecord] = []
        seen = written = skipped = 0

        for chunk in files:
            seen += 1
            block = build_file_block(chunk.path, chunk.content, self._char_budget)

            if self._limiter is not None:
                await self._limiter.acquire()

            vector = await self._embedder.embed(block)
            if not vector:
                skipped += 1
                logger.warning("No embedding for %s in %s, skipping file", chunk.path, repository_id)
                continue

            pending.append(
                IndexRecord.for_file(repository_id, chunk.path, block, vector)
            )

            if len(pending) >= self._batch_size:
                written += await self._vector_store.upsert(pending)
                pending = []

        if pending:
            written += await self._vector_store.upsert(pending)

        if not written:
            logger.warning("No vectors generated for %s", repository_id)
        else:
            logger.info(
                "Indexed %d of %d files for %s (%d skipped)",
                written,
                seen,
                repository_id,
                skipped,
            )

        return IndexingStats(repository_id, seen, written, skipped, already_indexed=False)
