"""
Repository Indexing Workflow

Runs once per `repository.connected` event:

    checking-index -> listing-files -> indexing -> done | failed

If the repository already has vectors, the workflow finishes without
listing files (dedup short-circuit).
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import settings
from ..core.errors import MissingCredentialError
from ..db.reviews import ReviewStore
from ..embeddings.models import FileChunk, truncate_text
from ..indexing.orchestrator import IndexingOrchestrator
from ..providers.github import ProviderClient
from ..review.models import RepositoryConnected
from .runtime import NO_RETRY, RetryPolicy, StepStore, WorkflowRun

logger = logging.getLogger("review.workflow")

WORKFLOW_KIND = "indexing"


class IndexingState(str, Enum):
    CHECKING_INDEX = "checking-index"
    LISTING_FILES = "listing-files"
    INDEXING = "indexing"
    DONE = "done"
    FAILED = "failed"


class IndexRepositoryWorkflow:
    def __init__(
        self,
        provider: ProviderClient,
        credentials: ReviewStore,
        orchestrator: IndexingOrchestrator,
        step_store: StepStore,
        retry: Optional[RetryPolicy] = None,
        provider_id: Optional[str] = None,
    ) -> None:
        self._provider = provider
        self._credentials = credentials
        self._orchestrator = orchestrator
        self._step_store = step_store
        self._retry = retry
        self._provider_id = provider_id or settings.github_provider_id

    async def run(self, event: RepositoryConnected) -> Optional[IndexingState]:
        """Execute (or resume) indexing. None if another run holds the lease."""
        async with self._step_store.lease(event.instance_id) as acquired:
            if not acquired:
                logger.info("[%s] already running, skipping duplicate run", event.instance_id)
                return None
            return await self._execute(event)

    async def _execute(self, event: RepositoryConnected) -> IndexingState:
        wf = WorkflowRun(
            event.instance_id,
            WORKFLOW_KIND,
            self._step_store,
            payload=event.model_dump(mode="json"),
        )
        repository_id = event.repository.key

        try:
            already = await wf.run_step(
                "check-index",
                lambda: self._orchestrator.is_indexed(repository_id),
                retry=NO_RETRY,
                state=IndexingState.CHECKING_INDEX.value,
            )
            if already:
                logger.info("[%s] %s already indexed", event.instance_id, repository_id)
                await wf.set_state(IndexingState.DONE.value)
                return IndexingState.DONE

            files = await wf.run_step(
                "list-files",
                lambda: self._list_files(event),
                retry=self._retry,
                state=IndexingState.LISTING_FILES.value,
            )

            stats = await wf.run_step(
                "index-codebase",
                lambda: self._index(repository_id, files),
                retry=self._retry,
                state=IndexingState.INDEXING.value,
            )
        except Exception as exc:
            logger.exception("[%s] indexing workflow failed", event.instance_id)
            try:
                await wf.set_state(IndexingState.FAILED.value, error=str(exc) or type(exc).__name__)
            except Exception:
                logger.exception("[%s] could not record failed state", event.instance_id)
            return IndexingState.FAILED

        logger.info(
            "[%s] indexed %s: %d records from %d files",
            event.instance_id,
            repository_id,
            stats["records_written"],
            stats["files_seen"],
        )
        await wf.set_state(IndexingState.DONE.value)
        return IndexingState.DONE

    async def _list_files(self, event: RepositoryConnected) -> List[Dict[str, Any]]:
        token = await self._credentials.get_credential(event.user_id, self._provider_id)
        if not token:
            raise MissingCredentialError(
                f"No {self._provider_id} access token found for user {event.user_id}"
            )
        files = await self._provider.list_files(token, event.owner, event.repo)
        # Only the embedded prefix of each file is needed downstream
        budget = self._orchestrator.char_budget
        return [
            FileChunk(path=f.path, content=truncate_text(f.content, budget)).model_dump()
            for f in files
        ]

    async def _index(self, repository_id: str, files: List[Dict[str, Any]]) -> Dict[str, Any]:
        stats = await self._orchestrator.index_repository(
            repository_id,
            (FileChunk(**f) for f in files),
            check_existing=False,
        )
        return stats._asdict()
