"""
Authentication Models

Strongly-typed caller context produced after service JWT verification.
"""

from typing import List
from pydantic import BaseModel, Field, ConfigDict


class ServiceContext(BaseModel):
    """
    Verified identity of the upstream application emitting trigger events.
    """

    client_id: str = Field(
        ...,
        min_length=1,
        description="Issuer of the service token (e.g., review-app).",
    )

    scopes: List[str] = Field(
        default_factory=list,
        description="Operations granted to the caller.",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )
