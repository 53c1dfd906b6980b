import pytest

from pr_review_server.db.vector_store import iter_batches
from pr_review_server.embeddings.index import InMemoryVectorStore, VectorIndexError
from pr_review_server.embeddings.models import IndexRecord


def _record(repo, path, vector, content=None):
    return IndexRecord.for_file(repo, path, content or f"File: {path}\n\n...", vector)


@pytest.mark.asyncio
async def test_upsert_overwrites_by_id():
    store = InMemoryVectorStore()
    await store.upsert([_record("acme/widgets", "a.py", [1.0, 0.0], "old")])
    await store.upsert([_record("acme/widgets", "a.py", [1.0, 0.0], "new")])

    assert await store.count("acme/widgets") == 1
    assert store.get("acme/widgets-a_2epy").content == "new"


@pytest.mark.asyncio
async def test_query_orders_by_similarity():
    store = InMemoryVectorStore()
    await store.upsert([
        _record("acme/widgets", "far.py", [0.0, 1.0], "far"),
        _record("acme/widgets", "near.py", [1.0, 0.1], "near"),
        _record("acme/widgets", "mid.py", [1.0, 1.0], "mid"),
    ])

    results = await store.query([1.0, 0.0], "acme/widgets", top_k=3)

    assert [r["content"] for r in results] == ["near", "mid", "far"]
    assert results[0]["score"] > results[1]["score"] > results[2]["score"]
    assert results[0]["path"] == "near.py"


@pytest.mark.asyncio
async def test_query_filters_strictly_by_repository():
    store = InMemoryVectorStore()
    await store.upsert([
        _record("acme/widgets", "a.py", [1.0, 0.0], "mine"),
        _record("acme/gadgets", "a.py", [1.0, 0.0], "theirs"),
    ])

    results = await store.query([1.0, 0.0], "acme/widgets", top_k=10)

    assert [r["content"] for r in results] == ["mine"]
    assert await store.query([1.0, 0.0], "other/repo") == []


@pytest.mark.asyncio
async def test_query_respects_top_k():
    store = InMemoryVectorStore()
    await store.upsert([_record("r/x", f"f{i}.py", [1.0, float(i)]) for i in range(10)])

    assert len(await store.query([1.0, 0.0], "r/x", top_k=5)) == 5


@pytest.mark.asyncio
async def test_upsert_is_batched():
    store = InMemoryVectorStore(batch_size=100)
    await store.upsert([_record("r/x", f"f{i}.py", [1.0, 0.5]) for i in range(250)])

    assert store.upsert_batches == [100, 100, 50]
    assert await store.count("r/x") == 250


@pytest.mark.asyncio
async def test_dimension_mismatch_rejected():
    store = InMemoryVectorStore()
    await store.upsert([_record("r/x", "a.py", [1.0, 0.0])])

    with pytest.raises(VectorIndexError):
        await store.upsert([_record("r/x", "b.py", [1.0, 0.0, 0.0])])
    assert await store.count("r/x") == 1


@pytest.mark.asyncio
async def test_has_repository():
    store = InMemoryVectorStore()
    assert not await store.has_repository("r/x")
    await store.upsert([_record("r/x", "a.py", [1.0])])
    assert await store.has_repository("r/x")


def test_iter_batches():
    assert [len(b) for b in iter_batches(list(range(205)), 100)] == [100, 100, 5]
    with pytest.raises(ValueError):
        list(iter_batches([1], 0))
