"""
Review Routes

Read-only views over persisted review records and workflow instances.
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends, HTTPException, Query, status

from .models import ReviewRecord, WorkflowStatusResponse
from .dependencies import get_review_store, get_step_store
from ..auth.security import require_scopes
from ..auth.models import ServiceContext
from ..core.errors import RepositoryNotFoundError
from ..db.reviews import SqlReviewStore
from ..workflows.runtime import StepStore

router = APIRouter(tags=["reviews"])


@router.get(
    "/reviews/{owner}/{repo}",
    response_model=List[ReviewRecord],
    summary="List recent reviews of a repository",
)
async def list_reviews(
    owner: str,
    repo: str,
    caller: Annotated[ServiceContext, Depends(require_scopes("reviews"))],
    reviews: Annotated[SqlReviewStore, Depends(get_review_store)],
    limit: int = Query(default=50, ge=1, le=50),
) -> List[ReviewRecord]:
    try:
        records = await reviews.list_reviews(owner, repo, limit=limit)
    except RepositoryNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    return [ReviewRecord.model_validate(r) for r in records]


@router.get(
    "/workflows/{instance_id:path}",
    response_model=WorkflowStatusResponse,
    summary="Get the state of a workflow instance",
)
async def get_workflow(
    instance_id: str,
    caller: Annotated[ServiceContext, Depends(require_scopes("events"))],
    step_store: Annotated[StepStore, Depends(get_step_store)],
) -> WorkflowStatusResponse:
    instance = await step_store.get_instance(instance_id)
    if instance is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown workflow instance")
    return WorkflowStatusResponse(**instance._asdict())
