"""
Event Routes

Ingress for the trigger events that start workflows:

- `repository.connected {owner, repo, userId}` -> repository indexing
- `pr.review.requested {owner, repo, prNumber, userId}` -> review workflow

Events are validated, turned into workflow jobs and queued; the response
returns as soon as the job is enqueued.
"""

from typing import Annotated, Union

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError

from .models import EventAccepted, EventRequest
from .dependencies import get_dispatcher
from ..auth.security import require_scopes
from ..auth.models import ServiceContext
from ..review.models import RepositoryConnected, ReviewRequest
from ..workflows.queue import WorkflowDispatcher

router = APIRouter(prefix="/events", tags=["events"])


def _build_job(req: EventRequest) -> Union[ReviewRequest, RepositoryConnected]:
    """
    Convert an event into its workflow job, preserving the delivery id.
    """
    data = dict(req.data)
    if req.id:
        data["event_id"] = req.id

    if req.name == "pr.review.requested":
        return ReviewRequest.model_validate(data)
    return RepositoryConnected.model_validate(data)


@router.post(
    "",
    response_model=EventAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Enqueue a trigger event",
)
async def ingest_event(
    req: EventRequest,
    caller: Annotated[ServiceContext, Depends(require_scopes("events"))],
    dispatcher: Annotated[WorkflowDispatcher, Depends(get_dispatcher)],
) -> EventAccepted:
    try:
        job = _build_job(req)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=exc.errors(include_url=False, include_context=False),
        )

    queue_size = await dispatcher.dispatch(job)
    return EventAccepted(instance_id=job.instance_id, queue_size=queue_size)
