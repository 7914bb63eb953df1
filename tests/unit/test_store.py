"""Tests for the document stores (in-memory and FAISS)."""
import math

import pytest

from kbchat.errors import StorageError
from kbchat.rag.store import DocumentStore, InMemoryDocumentStore
from kbchat.rag.store_faiss import FAISSDocumentStore

QUERY = [1.0, 0.0]


def at_similarity(similarity: float):
    """A 2-d vector whose cosine similarity with QUERY is ``similarity``."""
    return [similarity, math.sqrt(1.0 - similarity ** 2)]


@pytest.fixture(params=["memory", "faiss"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentStore()
    return FAISSDocumentStore(index_dir=tmp_path, embedding_model="stub-embed")


def test_stores_satisfy_the_capability_interface(tmp_path):
    assert isinstance(InMemoryDocumentStore(), DocumentStore)
    assert isinstance(FAISSDocumentStore(index_dir=tmp_path), DocumentStore)


@pytest.mark.asyncio
async def test_results_are_ranked_and_thresholded(store):
    await store.insert("low", at_similarity(0.2), {"n": 1})
    await store.insert("high", at_similarity(0.9), {"n": 2})
    await store.insert("mid", at_similarity(0.5), {"n": 3})

    results = await store.similarity_search(QUERY, threshold=0.3, limit=5)

    assert [r.content for r in results] == ["high", "mid"]
    assert results[0].similarity == pytest.approx(0.9, abs=1e-5)
    assert results[0].metadata == {"n": 2}
    assert all(r.similarity >= 0.3 for r in results)


@pytest.mark.asyncio
async def test_limit_truncates_results(store):
    for i in range(6):
        await store.insert(f"chunk {i}", at_similarity(0.4 + i * 0.1), {})

    results = await store.similarity_search(QUERY, threshold=0.0, limit=3)

    assert [r.content for r in results] == ["chunk 5", "chunk 4", "chunk 3"]


@pytest.mark.asyncio
async def test_ties_keep_insertion_order_across_repeated_queries(store):
    for name in ("first", "second", "third"):
        await store.insert(name, at_similarity(0.7), {})

    first = await store.similarity_search(QUERY, threshold=0.0, limit=5)
    second = await store.similarity_search(QUERY, threshold=0.0, limit=5)

    assert [r.content for r in first] == ["first", "second", "third"]
    assert [r.content for r in second] == [r.content for r in first]


@pytest.mark.asyncio
async def test_empty_store_returns_nothing(store):
    assert await store.similarity_search(QUERY, threshold=0.0, limit=5) == []


@pytest.mark.asyncio
async def test_dimension_mismatch_is_a_storage_error(store):
    await store.insert("two dims", [1.0, 0.0], {})

    with pytest.raises(StorageError):
        await store.insert("three dims", [1.0, 0.0, 0.0], {})


@pytest.mark.asyncio
async def test_zero_vector_is_rejected(store):
    with pytest.raises(StorageError):
        await store.insert("nothing", [0.0, 0.0], {})


@pytest.mark.asyncio
async def test_delete_document_removes_only_its_chunks(store):
    await store.insert("a1", at_similarity(0.9), {"filename": "a.txt"})
    await store.insert("b1", at_similarity(0.8), {"filename": "b.txt"})
    await store.insert("a2", at_similarity(0.7), {"filename": "a.txt"})

    assert await store.delete_document("a.txt") == 2
    assert await store.delete_document("missing.txt") == 0
    assert await store.count() == 1

    results = await store.similarity_search(QUERY, threshold=0.0, limit=5)
    assert [r.content for r in results] == ["b1"]


@pytest.mark.asyncio
async def test_stored_metadata_cannot_be_mutated_by_caller(store):
    metadata = {"filename": "a.txt", "tags": ["x"]}
    await store.insert("content", at_similarity(0.9), metadata)
    metadata["filename"] = "changed.txt"

    results = await store.similarity_search(QUERY, threshold=0.0, limit=1)
    assert results[0].metadata["filename"] == "a.txt"


@pytest.mark.asyncio
async def test_faiss_store_persists_across_instances(tmp_path):
    store = FAISSDocumentStore(index_dir=tmp_path, embedding_model="stub-embed")
    await store.init_or_load(dimension=2)
    await store.insert("kept", at_similarity(0.9), {"filename": "a.txt"})

    reopened = FAISSDocumentStore(index_dir=tmp_path, embedding_model="stub-embed")
    await reopened.init_or_load(dimension=2)

    results = await reopened.similarity_search(QUERY, threshold=0.3, limit=5)
    assert [r.content for r in results] == ["kept"]
    assert reopened.get_stats()["vector_count"] == 1


@pytest.mark.asyncio
async def test_faiss_store_rejects_index_built_with_other_dimension(tmp_path):
    store = FAISSDocumentStore(index_dir=tmp_path)
    await store.init_or_load(dimension=2)
    await store.insert("kept", at_similarity(0.9), {})

    with pytest.raises(StorageError, match="rebuild"):
        await FAISSDocumentStore(index_dir=tmp_path).init_or_load(dimension=3)


@pytest.mark.asyncio
async def test_faiss_rebuild_clears_everything(tmp_path):
    store = FAISSDocumentStore(index_dir=tmp_path)
    await store.insert("gone", at_similarity(0.9), {"filename": "a.txt"})

    await store.rebuild_index()

    assert await store.count() == 0
    assert await store.similarity_search(QUERY, threshold=0.0, limit=5) == []
