"""Tests for the ingest pipeline."""
from unittest.mock import AsyncMock

import pytest

from kbchat import config
from kbchat.errors import EmbeddingServiceError, InvalidParameters, StorageError
from kbchat.rag.ingest import IngestPipeline
from kbchat.rag.store import StoredChunkHandle


@pytest.mark.asyncio
async def test_ingest_text_stores_every_chunk_in_order(stub_embedder, memory_store):
    pipeline = IngestPipeline(stub_embedder, memory_store, chunk_size=5, chunk_overlap=0)

    result = await pipeline.ingest_text("AAAAABBBBBCCCCC", {"filename": "abc.txt"})

    assert result.chunks_created == 3
    assert result.filename == "abc.txt"
    assert [h.chunk_id for h in result.handles] == [1, 2, 3]
    assert stub_embedder.calls == ["AAAAA", "BBBBB", "CCCCC"]
    assert await memory_store.count() == 3


@pytest.mark.asyncio
async def test_chunk_metadata_carries_position(stub_embedder):
    store = AsyncMock()
    store.insert.return_value = StoredChunkHandle(chunk_id=1)
    pipeline = IngestPipeline(stub_embedder, store, chunk_size=5, chunk_overlap=2)

    await pipeline.ingest_text("AAAAABBBBBCCCCC", {"filename": "abc.txt"})

    metadata = [call.args[2] for call in store.insert.await_args_list]
    assert [m["chunk_index"] for m in metadata] == [0, 1, 2, 3, 4]
    assert all(m["total_chunks"] == 5 and m["filename"] == "abc.txt" for m in metadata)


@pytest.mark.asyncio
async def test_per_call_chunk_overrides(stub_embedder, memory_store):
    pipeline = IngestPipeline(stub_embedder, memory_store, chunk_size=100, chunk_overlap=0)

    result = await pipeline.ingest_text("AAAAABBBBBCCCCC", chunk_size=5, chunk_overlap=2)

    assert result.chunks_created == 5
    assert pipeline.chunker.chunk_size == 100


@pytest.mark.asyncio
async def test_embedding_failure_aborts_but_keeps_earlier_chunks(make_embedder, memory_store):
    embedder = make_embedder(fail_on=["BBBBB"])
    pipeline = IngestPipeline(embedder, memory_store, chunk_size=5, chunk_overlap=0)

    with pytest.raises(EmbeddingServiceError):
        await pipeline.ingest_text("AAAAABBBBBCCCCC", {"filename": "abc.txt"})

    assert await memory_store.count() == 1
    assert "CCCCC" not in embedder.calls


@pytest.mark.asyncio
async def test_storage_failure_propagates(stub_embedder):
    store = AsyncMock()
    store.insert.side_effect = StorageError("disk full")
    pipeline = IngestPipeline(stub_embedder, store, chunk_size=5, chunk_overlap=0)

    with pytest.raises(StorageError, match="disk full"):
        await pipeline.ingest_text("AAAAABBBBB")

    assert store.insert.await_count == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("text", ["", "   \n"])
async def test_empty_text_is_rejected(stub_embedder, memory_store, text):
    with pytest.raises(InvalidParameters):
        await IngestPipeline(stub_embedder, memory_store).ingest_text(text)


@pytest.mark.asyncio
async def test_ingest_upload_attaches_file_metadata(stub_embedder, memory_store):
    pipeline = IngestPipeline(stub_embedder, memory_store)

    result = await pipeline.ingest_upload("faq.txt", "text/plain", b"Our refund policy is generous.")

    assert result.chunks_created == 1
    hits = await memory_store.similarity_search([0, 1, 0, 0, 0, 0, 0.05], threshold=0.0, limit=1)
    assert hits[0].metadata["filename"] == "faq.txt"
    assert hits[0].metadata["file_type"] == "text/plain"
    assert "uploaded_at" in hits[0].metadata


@pytest.mark.asyncio
async def test_ingest_upload_replace_drops_previous_version(stub_embedder, memory_store):
    pipeline = IngestPipeline(stub_embedder, memory_store)
    await pipeline.ingest_upload("faq.txt", "text/plain", b"old shipping text")

    result = await pipeline.ingest_upload("faq.txt", "text/plain", b"new shipping text", replace=True)

    assert result.replaced_chunks == 1
    assert await memory_store.count() == 1


@pytest.mark.asyncio
async def test_ingest_upload_rejects_unsupported_type(stub_embedder, memory_store):
    with pytest.raises(InvalidParameters, match="Unsupported file type"):
        await IngestPipeline(stub_embedder, memory_store).ingest_upload(
            "image.png", "image/png", b"\x89PNG"
        )


@pytest.mark.asyncio
async def test_ingest_upload_rejects_oversized_file(stub_embedder, memory_store, monkeypatch):
    monkeypatch.setattr(config, "MAX_UPLOAD_BYTES", 10)

    with pytest.raises(InvalidParameters, match="too large"):
        await IngestPipeline(stub_embedder, memory_store).ingest_upload(
            "big.txt", "text/plain", b"x" * 11
        )

    assert stub_embedder.calls == []


@pytest.mark.asyncio
async def test_size_only_override_keeps_pipeline_overlap(stub_embedder, memory_store):
    pipeline = IngestPipeline(stub_embedder, memory_store, chunk_size=100, chunk_overlap=40)

    with pytest.raises(InvalidParameters, match="pass chunk_overlap"):
        await pipeline.ingest_text("AAAAABBBBBCCCCC", chunk_size=30)

    result = await pipeline.ingest_text("A" * 70, chunk_size=50)

    # windows start at 0, 10 and 20 because the overlap of 40 still applies
    assert result.chunks_created == 3
    assert stub_embedder.calls == ["A" * 50] * 3


@pytest.mark.asyncio
async def test_replace_calls_store_delete_document(stub_embedder):
    store = AsyncMock()
    store.delete_document.return_value = 3
    store.insert.return_value = StoredChunkHandle(chunk_id=4)

    result = await IngestPipeline(stub_embedder, store).ingest_upload(
        "faq.txt", "text/plain", b"shipping", replace=True
    )

    store.delete_document.assert_awaited_once_with("faq.txt")
    assert result.replaced_chunks == 3
