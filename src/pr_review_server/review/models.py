"""
Review Pipeline Models

Messages that start workflows and the record a review workflow hands to
persistence.
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..repositories import RepositoryIdentity


class ReviewStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class RepositoryConnected(BaseModel):
    """`repository.connected` event payload. Starts indexing."""

    owner: str
    repo: str
    user_id: str = Field(..., min_length=1, alias="userId")
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="after")
    def _check_repository(self):
        RepositoryIdentity(owner=self.owner, name=self.repo)
        return self

    @property
    def repository(self) -> RepositoryIdentity:
        return RepositoryIdentity(owner=self.owner, name=self.repo)

    @property
    def instance_id(self) -> str:
        return f"index:{self.repository.key}:{self.event_id}"


class ReviewRequest(BaseModel):
    """`pr.review.requested` event payload. One review workflow instance."""

    owner: str
    repo: str
    pr_number: int = Field(..., ge=1, alias="prNumber")
    user_id: str = Field(..., min_length=1, alias="userId")
    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    @model_validator(mode="after")
    def _check_repository(self):
        RepositoryIdentity(owner=self.owner, name=self.repo)
        return self

    @property
    def repository(self) -> RepositoryIdentity:
        return RepositoryIdentity(owner=self.owner, name=self.repo)

    @property
    def instance_id(self) -> str:
        return f"review:{self.repository.key}#{self.pr_number}:{self.event_id}"


class ReviewResult(BaseModel):
    """The record persisted once per review request."""

    owner: str
    repo: str
    pr_number: int = Field(..., ge=1)
    pr_title: str
    pr_url: str
    review: str
    status: ReviewStatus
    instance_id: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")


EventName = Literal["repository.connected", "pr.review.requested"]
