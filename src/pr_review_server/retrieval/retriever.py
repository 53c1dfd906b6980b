"""
Context Retrieval

Embeds a natural-language query and returns the text of the most similar
indexed files of one repository, best match first.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..config import settings
from ..embeddings.embedder import Embedder
from ..db.vector_store import VectorStore

logger = logging.getLogger("review.retriever")


class ContextRetriever:
    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        top_k: Optional[int] = None,
    ) -> None:
        self._embedder = embedder
        self._vector_store = vector_store
        self._top_k = settings.retrieval_top_k if top_k is None else top_k

    async def retrieve(
        self,
        query: str,
        repository_id: str,
        top_k: Optional[int] = None,
    ) -> List[str]:
        """
        Return up to `top_k` context snippets for `query`.

        An empty query embedding (blank query, quota exhaustion) returns an
        empty list without contacting the vector store.
        """
        vector = await self._embedder.embed(query)
        if not vector:
            logger.info("No query embedding for %s, returning empty context", repository_id)
            return []

        matches = await self._vector_store.query(
            vector,
            repository_id=repository_id,
            top_k=self._top_k if top_k is None else top_k,
        )

        # Matches arrive score-descending; keep that order
        return [m["content"] for m in matches if m.get("content")]
