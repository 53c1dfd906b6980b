"""
Review Workflow

Durable pipeline for one pull-request review request:

    fetching-diff -> retrieving-context -> generating-review
        -> posting-comment -> saving-review -> done

with a terminal `failed` state reachable from any step.

Degrade-and-continue policies
-----------------------------
- retrieving-context: any failure degrades to an empty context list.
- generating-review: quota / rate-limit failures produce a placeholder text
  (handled by ReviewEngine).
- saving-review: failure is logged; the posted comment stays valid.

Every other failure is caught at the top level, a `failed` review record is
persisted on a best-effort basis, and the instance ends in `failed`.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, List, Optional

from ..config import settings
from ..core.errors import MissingCredentialError
from ..db.reviews import ReviewStore
from ..providers.github import ProviderClient
from ..repositories import pull_request_url
from ..retrieval.retriever import ContextRetriever
from ..review.engine import ReviewEngine
from ..review.models import ReviewRequest, ReviewResult, ReviewStatus
from ..review.prompts import build_review_prompt, build_review_query
from .runtime import NO_RETRY, RetryPolicy, StepStore, WorkflowRun

logger = logging.getLogger("review.workflow")

WORKFLOW_KIND = "review"
FAILED_FETCH_TITLE = "Failed to fetch PR"


class ReviewState(str, Enum):
    FETCHING_DIFF = "fetching-diff"
    RETRIEVING_CONTEXT = "retrieving-context"
    GENERATING_REVIEW = "generating-review"
    POSTING_COMMENT = "posting-comment"
    SAVING_REVIEW = "saving-review"
    DONE = "done"
    FAILED = "failed"


class ReviewWorkflow:
    """
    Runs review requests step by step against a StepStore.

    The same request (same event id) always maps to the same instance id, so
    calling `run()` again after a crash resumes at the first uncommitted step.
    """

    def __init__(
        self,
        provider: ProviderClient,
        reviews: ReviewStore,
        retriever: ContextRetriever,
        engine: ReviewEngine,
        step_store: StepStore,
        retry: Optional[RetryPolicy] = None,
        provider_id: Optional[str] = None,
        web_base_url: Optional[str] = None,
    ) -> None:
        self._provider = provider
        self._reviews = reviews
        self._retriever = retriever
        self._engine = engine
        self._step_store = step_store
        self._retry = retry
        self._provider_id = provider_id or settings.github_provider_id
        self._web_base_url = web_base_url or settings.github_web_base_url

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, request: ReviewRequest) -> Optional[ReviewState]:
        """
        Execute (or resume) the workflow for `request`.

        Returns
        -------
        Optional[ReviewState]
            DONE or FAILED. None if another run of the same instance holds
            the lease. Never raises for step failures.
        """
        async with self._step_store.lease(request.instance_id) as acquired:
            if not acquired:
                logger.info("[%s] already running, skipping duplicate run", request.instance_id)
                return None
            return await self._execute(request)

    async def _execute(self, request: ReviewRequest) -> ReviewState:
        wf = WorkflowRun(
            request.instance_id,
            WORKFLOW_KIND,
            self._step_store,
            payload=request.model_dump(mode="json"),
        )
        pr_data: Optional[Dict[str, Any]] = None

        try:
            pr_data = await wf.run_step(
                "fetch-pr-data",
                lambda: self._fetch_pr_data(request),
                retry=self._retry,
                state=ReviewState.FETCHING_DIFF.value,
            )

            context = await wf.run_step(
                "retrieve-context",
                lambda: self._retrieve_context(request, pr_data),
                retry=NO_RETRY,
                state=ReviewState.RETRIEVING_CONTEXT.value,
            )

            review = await wf.run_step(
                "generate-ai-review",
                lambda: self._generate_review(pr_data, context),
                retry=self._retry,
                state=ReviewState.GENERATING_REVIEW.value,
            )

            await wf.run_step(
                "post-comment",
                lambda: self._post_comment(request, review),
                retry=self._retry,
                state=ReviewState.POSTING_COMMENT.value,
            )
        except Exception as exc:
            logger.exception("[%s] review workflow failed", request.instance_id)
            await self._record_failure(wf, request, pr_data, exc)
            return ReviewState.FAILED

        try:
            await wf.run_step(
                "save-review",
                lambda: self._save_review(request, pr_data, review),
                retry=self._retry,
                state=ReviewState.SAVING_REVIEW.value,
            )
        except Exception:
            # The comment is already posted; bookkeeping failure does not undo it
            logger.exception("[%s] failed to persist completed review", request.instance_id)

        await wf.set_state(ReviewState.DONE.value)
        return ReviewState.DONE

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _credential(self, request: ReviewRequest) -> str:
        token = await self._reviews.get_credential(request.user_id, self._provider_id)
        if not token:
            raise MissingCredentialError(
                f"No {self._provider_id} access token found for user {request.user_id}"
            )
        return token

    async def _fetch_pr_data(self, request: ReviewRequest) -> Dict[str, Any]:
        token = await self._credential(request)
        data = await self._provider.fetch_diff(token, request.owner, request.repo, request.pr_number)
        return data.model_dump()

    async def _retrieve_context(self, request: ReviewRequest, pr_data: Dict[str, Any]) -> List[str]:
        query = build_review_query(pr_data["title"], pr_data.get("description"))
        try:
            return await self._retriever.retrieve(query, request.repository.key)
        except Exception:
            logger.exception(
                "[%s] context retrieval failed, continuing without context",
                request.instance_id,
            )
            return []

    async def _generate_review(self, pr_data: Dict[str, Any], context: List[str]) -> str:
        prompt = build_review_prompt(
            title=pr_data["title"],
            description=pr_data.get("description"),
            context=context,
            diff=pr_data["diff"],
        )
        review = await self._engine.review(prompt)
        if ReviewEngine.is_degraded(review):
            logger.warning("Model quota exhausted, posting placeholder review")
        return review

    async def _post_comment(self, request: ReviewRequest, review: str) -> Dict[str, Any]:
        # Credential is re-read rather than committed to the step log
        token = await self._credential(request)
        await self._provider.post_comment(token, request.owner, request.repo, request.pr_number, review)
        return {"posted": True}

    async def _save_review(
        self,
        request: ReviewRequest,
        pr_data: Dict[str, Any],
        review: str,
    ) -> Dict[str, Any]:
        await self._reviews.save_review(
            ReviewResult(
                owner=request.owner,
                repo=request.repo,
                pr_number=request.pr_number,
                pr_title=pr_data["title"],
                pr_url=pull_request_url(self._web_base_url, request.owner, request.repo, request.pr_number),
                review=review,
                status=ReviewStatus.COMPLETED,
                instance_id=request.instance_id,
            )
        )
        return {"status": ReviewStatus.COMPLETED.value}

    # ------------------------------------------------------------------
    # Failure handling
    # ------------------------------------------------------------------

    async def _record_failure(
        self,
        wf: WorkflowRun,
        request: ReviewRequest,
        pr_data: Optional[Dict[str, Any]],
        exc: Exception,
    ) -> None:
        message = str(exc) or type(exc).__name__

        try:
            await wf.set_state(ReviewState.FAILED.value, error=message)
        except Exception:
            logger.exception("[%s] could not record failed state", request.instance_id)

        title = pr_data["title"] if pr_data else FAILED_FETCH_TITLE
        try:
            await self._reviews.save_review(
                ReviewResult(
                    owner=request.owner,
                    repo=request.repo,
                    pr_number=request.pr_number,
                    pr_title=title,
                    pr_url=pull_request_url(self._web_base_url, request.owner, request.repo, request.pr_number),
                    review=f"Error: {message}",
                    status=ReviewStatus.FAILED,
                    instance_id=request.instance_id,
                )
            )
        except Exception:
            logger.exception("[%s] could not persist failed review record", request.instance_id)
