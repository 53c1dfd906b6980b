"""
In-Memory Vector Index

A numpy-backed implementation of the vector store gateway, used for local
runs (`vector_backend = "memory"`) and tests.

Key Properties
--------------
- Records keyed by deterministic id (upsert overwrites)
- Cosine similarity over L2-normalized vectors
- Strict repository filtering on every query
- Thread-safe via an internal RLock
"""

from __future__ import annotations

from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from .models import IndexRecord
from ..config import settings


class VectorIndexError(RuntimeError):
    """Raised on invalid vectors (dimension mismatch, zero length)."""


class InMemoryVectorStore:
    """
    Process-local vector store with the same async contract as PgVectorStore.
    """

    def __init__(self, batch_size: Optional[int] = None) -> None:
        self._records: Dict[str, IndexRecord] = {}
        self._vectors: Dict[str, np.ndarray] = {}
        self._dim: Optional[int] = None
        self._batch_size = batch_size or settings.upsert_batch_size
        self._lock = RLock()

        # Diagnostics, useful for asserting batching behavior
        self.upsert_batches: List[int] = []
        self.query_count = 0

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _normalize(vector: Sequence[float]) -> np.ndarray:
        arr = np.asarray(vector, dtype="float32")
        norm = np.linalg.norm(arr)
        if norm == 0:
            return arr
        return arr / norm

    def _validate(self, vector: Sequence[float]) -> None:
        if len(vector) == 0:
            raise VectorIndexError("Embedding vectors must be non-empty.")
        if self._dim is not None and len(vector) != self._dim:
            raise VectorIndexError(
                f"Inconsistent embedding dimensionality: expected {self._dim}, got {len(vector)}."
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def upsert(self, records: Sequence[IndexRecord]) -> int:
        records = list(records)
        written = 0

        for start in range(0, len(records), self._batch_size):
            batch = records[start : start + self._batch_size]
            with self._lock:
                for record in batch:
                    self._validate(record.vector)
                # Apply the whole batch only once every vector validated
                for record in batch:
                    if self._dim is None:
                        self._dim = len(record.vector)
                    self._records[record.id] = record
                    self._vectors[record.id] = self._normalize(record.vector)
            self.upsert_batches.append(len(batch))
            written += len(batch)

        return written

    async def query(
        self,
        vector: List[float],
        repository_id: str,
        top_k: int = 5,
    ) -> List[Dict[str, Any]]:
        with self._lock:
            self.query_count += 1

            ids = [
                rid for rid, rec in self._records.items()
                if rec.repository_id == repository_id
            ]
            if not ids or top_k <= 0:
                return []

            self._validate(vector)
            q = self._normalize(vector)
            matrix = np.stack([self._vectors[rid] for rid in ids])
            scores = matrix @ q

            # Stable sort keeps insertion order among equal scores
            order = np.argsort(-scores, kind="stable")[:top_k]

            results: List[Dict[str, Any]] = []
            for idx in order:
                record = self._records[ids[int(idx)]]
                results.append({**record.metadata, "score": float(scores[int(idx)])})
            return results

    async def has_repository(self, repository_id: str) -> bool:
        with self._lock:
            return any(r.repository_id == repository_id for r in self._records.values())

    async def count(self, repository_id: str) -> int:
        with self._lock:
            return sum(1 for r in self._records.values() if r.repository_id == repository_id)

    def get(self, record_id: str) -> Optional[IndexRecord]:
        with self._lock:
            return self._records.get(record_id)

    def ids(self, repository_id: Optional[str] = None) -> List[str]:
        with self._lock:
            return sorted(
                rid for rid, rec in self._records.items()
                if repository_id is None or rec.repository_id == repository_id
            )
