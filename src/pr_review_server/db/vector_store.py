"""
Vector Store

PostgreSQL + pgvector based vector storage and similarity search.

Contract (shared with `embeddings.index.InMemoryVectorStore`):

- `upsert(records)` writes records in fixed-size batches; a failing batch
  aborts the remaining ones (already-committed batches stay).
- `query(vector, repository_id, top_k)` returns metadata dicts filtered
  strictly by repository, ordered by similarity descending.
- `has_repository(repository_id)` probes for any existing record.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy import select, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import CodeEmbedding
from ..config import settings
from ..embeddings.models import IndexRecord

logger = logging.getLogger("review.vector_store")


class VectorStore(Protocol):
    """Vector store gateway used by indexing and retrieval."""

    async def upsert(self, records: Sequence[IndexRecord]) -> int: ...

    async def query(
        self,
        vector: List[float],
        repository_id: str,
        top_k: int = 5,
    ) -> List[Dict[str, Any]]: ...

    async def has_repository(self, repository_id: str) -> bool: ...

    async def count(self, repository_id: str) -> int: ...


def iter_batches(records: Sequence[IndexRecord], batch_size: int):
    """Yield consecutive slices of at most `batch_size` records."""
    if batch_size <= 0:
        raise ValueError("batch_size must be positive")
    for start in range(0, len(records), batch_size):
        yield records[start : start + batch_size]


class PgVectorStore:
    """
    PostgreSQL-backed vector store using pgvector for similarity search.

    Every batch runs in its own session and transaction, so indexing runs that
    span minutes never hold a connection between provider calls.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        batch_size: Optional[int] = None,
    ) -> None:
        """
        Parameters
        ----------
        session_factory : async_sessionmaker
            Factory producing AsyncSession instances.
        batch_size : Optional[int]
            Records per upsert statement. Defaults to settings.upsert_batch_size.
        """
        self._session_factory = session_factory
        self._batch_size = batch_size or settings.upsert_batch_size

    async def upsert(self, records: Sequence[IndexRecord]) -> int:
        """
        Insert or overwrite records keyed by their deterministic id.

        Returns
        -------
        int
            Number of records written.
        """
        written = 0
        for batch in iter_batches(list(records), self._batch_size):
            rows = [
                {
                    "id": r.id,
                    "repository_id": r.repository_id,
                    "path": r.path,
                    "content": r.content,
                    "embedding": r.vector,
                }
                for r in batch
            ]
            stmt = pg_insert(CodeEmbedding).values(rows)
            stmt = stmt.on_conflict_do_update(
                index_elements=[CodeEmbedding.id],
                set_={
                    "repository_id": stmt.excluded.repository_id,
                    "path": stmt.excluded.path,
                    "content": stmt.excluded.content,
                    "embedding": stmt.excluded.embedding,
                    "updated_at": func.now(),
                },
            )

            async with self._session_factory() as session:
                await session.execute(stmt)
                await session.commit()

            written += len(batch)
            logger.debug("Upserted batch of %d records", len(batch))

        return written

    async def query(
        self,
        vector: List[float],
        repository_id: str,
        top_k: int = 5,
    ) -> List[Dict[str, Any]]:
        """
        Search for similar files using cosine similarity.

        Returns
        -------
        List[Dict[str, Any]]
            Metadata dicts with keys: repository_id, path, content, score.
        """
        cosine_distance = CodeEmbedding.embedding.cosine_distance(vector)

        stmt = (
            select(
                CodeEmbedding.repository_id,
                CodeEmbedding.path,
                CodeEmbedding.content,
                (1 - cosine_distance).label("score"),
            )
            .where(CodeEmbedding.repository_id == repository_id)
            .order_by(cosine_distance)
            .limit(top_k)
        )

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = result.all()

        return [
            {
                "repository_id": row.repository_id,
                "path": row.path,
                "content": row.content,
                "score": float(row.score),
            }
            for row in rows
        ]

    async def has_repository(self, repository_id: str) -> bool:
        stmt = (
            select(CodeEmbedding.id)
            .where(CodeEmbedding.repository_id == repository_id)
            .limit(1)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.first() is not None

    async def count(self, repository_id: str) -> int:
        stmt = select(func.count()).select_from(CodeEmbedding).where(
            CodeEmbedding.repository_id == repository_id
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar() or 0
