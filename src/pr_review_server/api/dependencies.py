from functools import lru_cache

from ..config import settings
from ..db.reviews import SqlReviewStore
from ..db.session import AsyncSessionLocal
from ..db.vector_store import PgVectorStore, VectorStore
from ..db.workflow_store import SqlStepStore
from ..embeddings.embedder import Embedder
from ..embeddings.index import InMemoryVectorStore
from ..embeddings.rate_limiter import TokenBucket, bucket_from_interval
from ..indexing.orchestrator import IndexingOrchestrator
from ..llm.client import LLMClient
from ..providers.github import GitHubClient
from ..retrieval.retriever import ContextRetriever
from ..review.engine import ReviewEngine
from ..workflows.indexing import IndexRepositoryWorkflow
from ..workflows.queue import WorkflowDispatcher
from ..workflows.review import ReviewWorkflow
from ..workflows.runtime import InMemoryStepStore, StepStore


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_embedder() -> Embedder:
    return Embedder()


@lru_cache
def get_provider_client() -> GitHubClient:
    return GitHubClient()


@lru_cache
def get_vector_store() -> VectorStore:
    if settings.vector_backend == "memory":
        return InMemoryVectorStore()
    return PgVectorStore(AsyncSessionLocal)


@lru_cache
def get_step_store() -> StepStore:
    if settings.workflow_store_backend == "memory":
        return InMemoryStepStore()
    return SqlStepStore(AsyncSessionLocal)


@lru_cache
def get_review_store() -> SqlReviewStore:
    return SqlReviewStore(AsyncSessionLocal)


# One bucket for the whole process: concurrent indexing runs share it
@lru_cache
def get_embedding_limiter() -> TokenBucket:
    return bucket_from_interval()


def get_retriever() -> ContextRetriever:
    return ContextRetriever(get_embedder(), get_vector_store())


def get_review_workflow() -> ReviewWorkflow:
    return ReviewWorkflow(
        provider=get_provider_client(),
        reviews=get_review_store(),
        retriever=get_retriever(),
        engine=ReviewEngine(get_llm_client()),
        step_store=get_step_store(),
    )


def get_indexing_workflow() -> IndexRepositoryWorkflow:
    return IndexRepositoryWorkflow(
        provider=get_provider_client(),
        credentials=get_review_store(),
        orchestrator=IndexingOrchestrator(
            get_embedder(),
            get_vector_store(),
            limiter=get_embedding_limiter(),
        ),
        step_store=get_step_store(),
    )


@lru_cache
def get_dispatcher() -> WorkflowDispatcher:
    review_workflow = get_review_workflow()
    indexing_workflow = get_indexing_workflow()
    return WorkflowDispatcher(
        review_handler=review_workflow.run,
        indexing_handler=indexing_workflow.run,
    )
