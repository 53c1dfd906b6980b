"""
Workflow Step Store

PostgreSQL-backed committed-step log keyed by (instance_id, step_name).

Run exclusivity across processes uses session-level advisory locks keyed by
`hashtext(instance_id)`; the lock lives as long as the lease's connection.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .models import WorkflowInstance, WorkflowStep
from ..workflows.runtime import TERMINAL_STATES, InstanceStatus, StepRecord


class SqlStepStore:
    """
    Durable StepStore.

    Results are wrapped as {"value": result} so scalars and lists persist in
    the JSONB column. A commit racing another commit for the same step keeps
    the first one (ON CONFLICT DO NOTHING).
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get_step(self, instance_id: str, step_name: str) -> Optional[StepRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowStep.result).where(
                    WorkflowStep.instance_id == instance_id,
                    WorkflowStep.step_name == step_name,
                )
            )
            row = result.first()

        if row is None:
            return None
        payload = row[0] or {}
        return StepRecord(step_name, payload.get("value"))

    async def commit_step(self, instance_id: str, step_name: str, result: Any) -> None:
        stmt = (
            pg_insert(WorkflowStep)
            .values(instance_id=instance_id, step_name=step_name, result={"value": result})
            .on_conflict_do_nothing(constraint="uq_step_instance_name")
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def set_state(
        self,
        instance_id: str,
        kind: str,
        state: str,
        error: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> None:
        # payload is written on insert only
        stmt = pg_insert(WorkflowInstance).values(
            instance_id=instance_id,
            kind=kind,
            state=state,
            error=error,
            payload=payload,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[WorkflowInstance.instance_id],
            set_={"state": state, "error": error, "updated_at": func.now()},
        )
        async with self._session_factory() as session:
            await session.execute(stmt)
            await session.commit()

    async def get_instance(self, instance_id: str) -> Optional[InstanceStatus]:
        async with self._session_factory() as session:
            instance = await session.get(WorkflowInstance, instance_id)
            if instance is None:
                return None

            result = await session.execute(
                select(WorkflowStep.step_name)
                .where(WorkflowStep.instance_id == instance_id)
                .order_by(WorkflowStep.committed_at, WorkflowStep.id)
            )
            steps = [row[0] for row in result.all()]

        return InstanceStatus(
            instance.instance_id,
            instance.kind,
            instance.state,
            instance.error,
            steps,
        )

    async def list_incomplete(self) -> List[Tuple[str, Dict[str, Any]]]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(WorkflowInstance.kind, WorkflowInstance.payload)
                .where(
                    WorkflowInstance.state.not_in(sorted(TERMINAL_STATES)),
                    WorkflowInstance.payload.is_not(None),
                )
                .order_by(WorkflowInstance.created_at)
            )
            return [(row.kind, row.payload) for row in result.all()]

    @asynccontextmanager
    async def lease(self, instance_id: str) -> AsyncIterator[bool]:
        """
        Hold a PostgreSQL advisory lock on `instance_id` for the duration of
        the block. Yields False without waiting if another session holds it.
        """
        lock_key = func.hashtext(instance_id)
        async with self._session_factory() as session:
            result = await session.execute(select(func.pg_try_advisory_lock(lock_key)))
            acquired = bool(result.scalar())
            try:
                yield acquired
            finally:
                if acquired:
                    await session.execute(select(func.pg_advisory_unlock(lock_key)))
