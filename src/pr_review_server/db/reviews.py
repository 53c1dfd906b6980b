"""
Review Persistence

The narrow slice of persistence the review pipeline reads and writes:

- one provider credential per (user, provider)
- one review record per review request
"""

from __future__ import annotations

import logging
from typing import List, Optional, Protocol

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import ProviderCredential, Repository, Review
from ..core.errors import RepositoryNotFoundError
from ..review.models import ReviewResult

logger = logging.getLogger("review.persistence")


class ReviewStore(Protocol):
    async def get_credential(self, user_id: str, provider_id: str) -> Optional[str]: ...

    async def save_review(self, result: ReviewResult) -> None: ...


class SqlReviewStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_credential(self, user_id: str, provider_id: str) -> Optional[str]:
        """
        Return the stored access token, or None if the user never linked one.
        """
        async with self._session_factory() as session:
            result = await session.execute(
                select(ProviderCredential.access_token)
                .where(
                    ProviderCredential.user_id == user_id,
                    ProviderCredential.provider_id == provider_id,
                )
                .limit(1)
            )
            row = result.first()
        return row[0] if row else None

    async def _find_repository(self, session: AsyncSession, owner: str, name: str) -> Optional[Repository]:
        # Hosts treat owner/name case-insensitively
        result = await session.execute(
            select(Repository).where(
                func.lower(Repository.owner) == owner.lower(),
                func.lower(Repository.name) == name.lower(),
            )
        )
        return result.scalars().first()

    async def save_review(self, result: ReviewResult) -> None:
        """
        Persist a review record.

        Raises
        ------
        RepositoryNotFoundError
            If the repository is not connected.
        """
        async with self._session_factory() as session:
            repository = await self._find_repository(session, result.owner, result.repo)
            if repository is None:
                raise RepositoryNotFoundError(
                    f"Repository {result.owner}/{result.repo} is not connected"
                )

            session.add(
                Review(
                    repository_id=repository.id,
                    pr_number=result.pr_number,
                    pr_title=result.pr_title,
                    pr_url=result.pr_url,
                    review=result.review,
                    status=result.status.value,
                    instance_id=result.instance_id,
                )
            )
            await session.commit()

        logger.info(
            "Saved %s review for %s/%s#%d",
            result.status.value,
            result.owner,
            result.repo,
            result.pr_number,
        )

    async def list_reviews(self, owner: str, name: str, limit: int = 50) -> List[Review]:
        async with self._session_factory() as session:
            repository = await self._find_repository(session, owner, name)
            if repository is None:
                raise RepositoryNotFoundError(f"Repository {owner}/{name} is not connected")

            result = await session.execute(
                select(Review)
                .where(Review.repository_id == repository.id)
                .order_by(Review.created_at.desc(), Review.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())
