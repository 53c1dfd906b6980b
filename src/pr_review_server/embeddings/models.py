"""
Embedding Data Models

This module defines the canonical records that flow through indexing:

- `FileChunk`: one file read from the repository tree (ephemeral)
- `IndexRecord`: one vector plus its metadata, as stored in the vector index

Each IndexRecord corresponds to ONE embedding vector and ONE truncated file.
"""

from __future__ import annotations

from typing import List, Dict, Any
from pydantic import BaseModel, Field, ConfigDict

from ..repositories import record_id


def truncate_text(text: str, budget: int) -> str:
    """
    Clip text to at most ``budget`` characters.

    Idempotent: truncating an already-truncated value returns it unchanged.
    """
    if budget <= 0:
        return ""
    return text[:budget]


def build_file_block(path: str, content: str, budget: int) -> str:
    """
    Return the labeled, truncated block that gets embedded and stored.
    """
    return truncate_text(f"File: {path}\n\n{content}", budget)


class FileChunk(BaseModel):
    """
    A (path, content) pair read from the repository at index time.
    """

    path: str = Field(..., min_length=1, description="Repository-relative file path.")
    content: str = Field(default="", description="Raw file text.")

    model_config = ConfigDict(frozen=True, extra="forbid")


class IndexRecord(BaseModel):
    """
    A single vector index entry.

    This model is the authoritative schema for:
    - Vector store upserts
    - Similarity query result metadata
    """

    id: str = Field(..., min_length=1)
    repository_id: str = Field(..., min_length=1)
    path: str = Field(..., min_length=1)
    content: str = Field(..., description="Truncated labeled file block.")
    vector: List[float] = Field(..., min_length=1)

    model_config = ConfigDict(
        extra="forbid",
        frozen=True,
    )

    @classmethod
    def for_file(
        cls,
        repository_id: str,
        path: str,
        content: str,
        vector: List[float],
    ) -> "IndexRecord":
        return cls(
            id=record_id(repository_id, path),
            repository_id=repository_id,
            path=path,
            content=content,
            vector=vector,
        )

    @property
    def metadata(self) -> Dict[str, Any]:
        return {
            "repository_id": self.repository_id,
            "path": self.path,
            "content": self.content,
        }
