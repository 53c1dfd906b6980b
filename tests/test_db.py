"""
Database Model & Statement Tests

No database is required:
- Model construction and schema metadata
- Upsert statements compiled against the PostgreSQL dialect
"""

from unittest.mock import MagicMock
from uuid import uuid4

import pytest
from sqlalchemy.dialects import postgresql

from pr_review_server.config import settings
from pr_review_server.db.models import (
    Base,
    CodeEmbedding,
    Review,
    WorkflowInstance,
    WorkflowStep,
)
from pr_review_server.db.vector_store import PgVectorStore
from pr_review_server.db.workflow_store import SqlStepStore
from pr_review_server.embeddings.models import IndexRecord
from pr_review_server.review.models import ReviewRequest


class FakeSession:
    """Records executed statements instead of talking to PostgreSQL."""

    def __init__(self, log):
        self.log = log

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, stmt):
        self.log.append(stmt)
        return MagicMock()

    async def commit(self):
        self.log.append("COMMIT")


def _compile(stmt):
    return str(stmt.compile(dialect=postgresql.dialect()))


class TestModels:
    """Tests for table definitions."""

    def test_code_embedding_fields(self):
        row = CodeEmbedding(
            id="acme/widgets-src_2fapp_2epy",
            repository_id="acme/widgets",
            path="src/app.py",
            content="File: src/app.py\n\nprint(1)",
            embedding=[0.0] * settings.embedding_dimensions,
        )
        assert row.repository_id == "acme/widgets"
        assert CodeEmbedding.__table__.c.embedding.type.dim == settings.embedding_dimensions

    def test_review_record(self):
        repository_id = uuid4()
        review = Review(
            repository_id=repository_id,
            pr_number=42,
            pr_title="Add login",
            pr_url="https://github.com/acme/widgets/pull/42",
            review="LGTM",
            status="completed",
        )
        assert review.repository_id == repository_id
        assert review.instance_id is None

    def test_workflow_step_unique_per_instance(self):
        constraints = {c.name for c in WorkflowStep.__table__.constraints}
        assert "uq_step_instance_name" in constraints

    def test_workflow_instance_payload_optional(self):
        assert WorkflowInstance.__table__.c.payload.nullable

    def test_instance_id_columns_unbounded(self):
        request = ReviewRequest(
            owner="a" * 39,
            repo="r" * 100,
            prNumber=123456,
            userId="u",
            event_id="e" * 100,
        )
        assert len(request.instance_id) > 200

        for column in (
            WorkflowInstance.__table__.c.instance_id,
            WorkflowStep.__table__.c.instance_id,
            Review.__table__.c.instance_id,
        ):
            assert getattr(column.type, "length", None) is None

    def test_all_tables_registered(self):
        assert set(Base.metadata.tables) >= {
            "code_embedding",
            "repository",
            "provider_credential",
            "review",
            "workflow_instance",
            "workflow_step",
        }


class TestStatements:
    """Tests for the SQL the stores emit."""

    @pytest.mark.asyncio
    async def test_vector_upsert_batches_and_overwrites(self):
        log = []
        store = PgVectorStore(lambda: FakeSession(log), batch_size=2)
        records = [
            IndexRecord.for_file("acme/widgets", f"f{i}.py", f"File: f{i}.py", [0.1, 0.2])
            for i in range(3)
        ]

        written = await store.upsert(records)

        assert written == 3
        statements = [s for s in log if s != "COMMIT"]
        assert len(statements) == 2
        assert log.count("COMMIT") == 2
        sql = _compile(statements[0])
        assert "INSERT INTO code_embedding" in sql
        assert "ON CONFLICT (id) DO UPDATE" in sql

    @pytest.mark.asyncio
    async def test_step_commit_keeps_first_result(self):
        log = []
        store = SqlStepStore(lambda: FakeSession(log))

        await store.commit_step("wf-1", "fetch-pr-data", {"title": "Add login"})

        sql = _compile(log[0])
        assert "INSERT INTO workflow_step" in sql
        assert "ON CONFLICT ON CONSTRAINT uq_step_instance_name DO NOTHING" in sql

    @pytest.mark.asyncio
    async def test_state_upsert_preserves_payload(self):
        log = []
        store = SqlStepStore(lambda: FakeSession(log))

        await store.set_state("wf-1", "review", "fetching-diff", payload={"owner": "acme"})

        sql = _compile(log[0])
        assert "ON CONFLICT (instance_id) DO UPDATE" in sql
        update_clause = sql.split("DO UPDATE SET", 1)[1]
        assert "state" in update_clause
        assert "payload" not in update_clause

    @pytest.mark.asyncio
    async def test_long_instance_id_is_bound_whole(self):
        log = []
        store = SqlStepStore(lambda: FakeSession(log))
        instance_id = f"review:{'a' * 39}/{'r' * 100}#1:{'e' * 100}"

        await store.commit_step(instance_id, "fetch-pr-data", {"title": "Add login"})

        params = log[0].compile(dialect=postgresql.dialect()).params
        assert params["instance_id"] == instance_id

    @pytest.mark.asyncio
    async def test_lease_takes_and_releases_advisory_lock(self):
        log = []
        store = SqlStepStore(lambda: FakeSession(log))

        async with store.lease("review:acme/widgets#1:evt-1") as acquired:
            assert acquired
            assert len(log) == 1

        assert "pg_try_advisory_lock(hashtext(" in _compile(log[0])
        assert "pg_advisory_unlock(hashtext(" in _compile(log[1])

    @pytest.mark.asyncio
    async def test_lease_not_acquired_skips_unlock(self):
        log = []

        class BusySession(FakeSession):
            async def execute(self, stmt):
                result = await super().execute(stmt)
                result.scalar.return_value = False
                return result

        store = SqlStepStore(lambda: BusySession(log))

        async with store.lease("review:acme/widgets#1:evt-1") as acquired:
            assert not acquired

        assert len(log) == 1
