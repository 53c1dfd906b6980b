from unittest.mock import AsyncMock

import pytest

from pr_review_server.core.errors import FatalProviderError
from pr_review_server.embeddings.embedder import Embedder
from pr_review_server.embeddings.index import InMemoryVectorStore
from pr_review_server.embeddings.models import FileChunk
from pr_review_server.indexing.orchestrator import IndexingOrchestrator
from pr_review_server.repositories import repository_key


REPO = repository_key("acme", "widgets")


@pytest.fixture
def mock_embedder():
    mock = AsyncMock(spec=Embedder)
    mock.embed.return_value = [0.1, 0.2, 0.3]
    return mock


@pytest.fixture
def store():
    return InMemoryVectorStore(batch_size=100)


def _files(n=2):
    return [FileChunk(path=f"src/file{i}.py", content=f"print({i})") for i in range(n)]


@pytest.mark.asyncio
async def test_index_two_files(mock_embedder, store):
    files = [
        FileChunk(path="src/app.py", content="print('app')"),
        FileChunk(path="README.md", content="# Widgets"),
    ]
    orchestrator = IndexingOrchestrator(mock_embedder, store, char_budget=3000)

    stats = await orchestrator.index_repository(REPO, files)

    assert stats.records_written == 2
    assert stats.files_seen == 2
    assert not stats.already_indexed
    assert store.ids(REPO) == ["acme/widgets-README_2emd", "acme/widgets-src_2fapp_2epy"]

    record = store.get("acme/widgets-src_2fapp_2epy")
    assert record.content == "File: src/app.py\n\nprint('app')"
    assert record.path == "src/app.py"
    assert record.repository_id == REPO
    mock_embedder.embed.assert_any_await("File: src/app.py\n\nprint('app')")


@pytest.mark.asyncio
async def test_second_run_short_circuits(mock_embedder, store):
    orchestrator = IndexingOrchestrator(mock_embedder, store)
    await orchestrator.index_repository(REPO, _files())
    mock_embedder.embed.reset_mock()

    stats = await orchestrator.index_repository(REPO, _files())

    assert stats.already_indexed
    mock_embedder.embed.assert_not_awaited()
    assert await store.count(REPO) == 2


@pytest.mark.asyncio
async def test_quota_skip_drops_only_that_file(mock_embedder, store):
    mock_embedder.embed.side_effect = [[0.1, 0.2], [], [0.3, 0.4]]
    orchestrator = IndexingOrchestrator(mock_embedder, store)

    stats = await orchestrator.index_repository(REPO, _files(3))

    assert stats.records_written == 2
    assert stats.files_skipped == 1
    assert "acme/widgets-src_2ffile1_2epy" not in store.ids(REPO)


@pytest.mark.asyncio
async def test_fatal_error_aborts_run(mock_embedder, store):
    mock_embedder.embed.side_effect = [[0.1], FatalProviderError("bad request", "gemini", 400)]
    orchestrator = IndexingOrchestrator(mock_embedder, store)

    with pytest.raises(FatalProviderError):
        await orchestrator.index_repository(REPO, _files(3))

    assert await store.count(REPO) == 0


@pytest.mark.asyncio
async def test_records_flushed_in_batches(mock_embedder):
    store = InMemoryVectorStore(batch_size=1000)
    orchestrator = IndexingOrchestrator(mock_embedder, store, batch_size=100)

    stats = await orchestrator.index_repository(REPO, _files(250))

    assert stats.records_written == 250
    assert store.upsert_batches == [100, 100, 50]


@pytest.mark.asyncio
async def test_blocks_truncated_to_budget(mock_embedder, store):
    orchestrator = IndexingOrchestrator(mock_embedder, store, char_budget=50)

    await orchestrator.index_repository(REPO, [FileChunk(path="big.txt", content="x" * 10_000)])

    (text,), _ = mock_embedder.embed.await_args
    assert len(text) == 50
    assert len(store.get("acme/widgets-big_2etxt").content) == 50


@pytest.mark.asyncio
async def test_limiter_acquired_per_file(mock_embedder, store):
    limiter = AsyncMock()
    orchestrator = IndexingOrchestrator(mock_embedder, store, limiter=limiter)

    await orchestrator.index_repository(REPO, _files(3))

    assert limiter.acquire.await_count == 3


@pytest.mark.asyncio
async def test_check_existing_false_reindexes(mock_embedder, store):
    orchestrator = IndexingOrchestrator(mock_embedder, store)
    await orchestrator.index_repository(REPO, _files(2))

    stats = await orchestrator.index_repository(REPO, _files(2), check_existing=False)

    assert stats.records_written == 2
    assert await store.count(REPO) == 2
