"""
Database Package

Provides SQLAlchemy async session management, model definitions and the
PostgreSQL-backed stores (vectors, workflow steps, reviews).
"""

from .session import async_engine, AsyncSessionLocal, create_schema
from .models import (
    Base,
    CodeEmbedding,
    Repository,
    ProviderCredential,
    Review,
    WorkflowInstance,
    WorkflowStep,
)
from .vector_store import VectorStore, PgVectorStore

__all__ = [
    "async_engine",
    "AsyncSessionLocal",
    "create_schema",
    "Base",
    "CodeEmbedding",
    "Repository",
    "ProviderCredential",
    "Review",
    "WorkflowInstance",
    "WorkflowStep",
    "VectorStore",
    "PgVectorStore",
]
