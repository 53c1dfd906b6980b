"""
SQLAlchemy Models

Defines the database schema for:
- Code embeddings (vector storage with pgvector)
- Connected repositories and provider credentials (read by the pipeline)
- Persisted review results
- Durable workflow instances and their committed steps
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Column,
    String,
    Integer,
    Text,
    DateTime,
    Index,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from pgvector.sqlalchemy import Vector

from ..config import settings


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


# ---------------------------------------------------------------------
# Code Embedding Model
# ---------------------------------------------------------------------

class CodeEmbedding(Base):
    """
    Vector embedding for one repository file.

    The primary key is the deterministic record id, so re-indexing a file
    overwrites its row.
    """
    __tablename__ = "code_embedding"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    repository_id: Mapped[str] = mapped_column(String(160), nullable=False, index=True)
    path: Mapped[str] = mapped_column(Text, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    embedding = Column(Vector(settings.embedding_dimensions), nullable=False)


# ---------------------------------------------------------------------
# Repository & Credential Models
# ---------------------------------------------------------------------

class Repository(Base):
    """
    A repository connected by a user. Created by the connection flow.
    """
    __tablename__ = "repository"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    owner: Mapped[str] = mapped_column(String(39), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    full_name: Mapped[str] = mapped_column(String(160), nullable=False)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("owner", "name", name="uq_repository_owner_name"),
    )


class ProviderCredential(Base):
    """
    An OAuth access token a user granted for a source-host provider.
    """
    __tablename__ = "provider_credential"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    provider_id: Mapped[str] = mapped_column(String(32), nullable=False)
    access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("idx_credential_user_provider", "user_id", "provider_id"),
    )


# ---------------------------------------------------------------------
# Review Model
# ---------------------------------------------------------------------

class Review(Base):
    """
    Outcome of one review request: either a completed review or a failure.
    """
    __tablename__ = "review"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    repository_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    pr_number: Mapped[int] = mapped_column(Integer, nullable=False)
    pr_title: Mapped[str] = mapped_column(Text, nullable=False)
    pr_url: Mapped[str] = mapped_column(Text, nullable=False)
    review: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)  # completed | failed
    instance_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        Index("idx_review_repository_pr", "repository_id", "pr_number"),
    )


# ---------------------------------------------------------------------
# Durable Workflow Models
# ---------------------------------------------------------------------

class WorkflowInstance(Base):
    """
    One durable execution of a workflow (review or indexing).
    """
    __tablename__ = "workflow_instance"

    instance_id: Mapped[str] = mapped_column(Text, primary_key=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    state: Mapped[str] = mapped_column(String(32), nullable=False)
    payload: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class WorkflowStep(Base):
    """
    The committed result of one named step of one workflow instance.

    Presence of a row means the step's side effects already happened.
    """
    __tablename__ = "workflow_step"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    instance_id: Mapped[str] = mapped_column(Text, nullable=False)
    step_name: Mapped[str] = mapped_column(String(64), nullable=False)
    result: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)
    committed_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("instance_id", "step_name", name="uq_step_instance_name"),
    )
