"""
API Models

Pydantic request/response models for the trigger-event ingress and the
read-only review / workflow status endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..review.models import EventName


class EventRequest(BaseModel):
    """
    A trigger event.

    `id` identifies the delivery; redelivering the same id resumes the same
    workflow instance instead of starting a new one.
    """
    name: EventName
    data: Dict[str, Any]
    id: Optional[str] = Field(default=None, min_length=1, max_length=100)

    model_config = ConfigDict(extra="forbid")


class EventAccepted(BaseModel):
    status: Literal["queued"] = "queued"
    instance_id: str
    queue_size: int = Field(..., ge=0)


class ReviewRecord(BaseModel):
    pr_number: int
    pr_title: str
    pr_url: str
    review: str
    status: Literal["completed", "failed"]
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class WorkflowStatusResponse(BaseModel):
    instance_id: str
    kind: str
    state: str
    error: Optional[str] = None
    committed_steps: List[str] = Field(default_factory=list)
