"""Tests for service construction and startup."""
import pytest

from kbchat.rag.store import DocumentStore, InMemoryDocumentStore
from kbchat.rag.store_faiss import FAISSDocumentStore
from kbchat.services import build_services, create_store


def test_create_store_by_backend_name():
    assert isinstance(create_store("memory"), InMemoryDocumentStore)
    with pytest.raises(ValueError, match="Unknown STORE_BACKEND"):
        create_store("pinecone")


@pytest.mark.asyncio
async def test_startup_detects_dimension_and_prepares_faiss(make_ollama_client, tmp_path):
    services = build_services(
        llm_client=make_ollama_client(), store=FAISSDocumentStore(index_dir=tmp_path)
    )

    await services.startup()

    assert services.embedder.dimension == 7
    assert services.store.get_stats()["initialized"] is True
    assert services.store.dimension == 7


@pytest.mark.asyncio
async def test_startup_tolerates_embedding_outage(make_ollama_client, tmp_path):
    services = build_services(
        llm_client=make_ollama_client(fail_embeddings=True),
        store=FAISSDocumentStore(index_dir=tmp_path),
    )

    await services.startup()

    assert services.embedder.dimension is None
    assert services.store.get_stats()["initialized"] is False


class SearchOnlyStore:
    """Implements search and insert but none of the management methods."""

    async def insert(self, content, embedding, metadata):
        raise NotImplementedError

    async def similarity_search(self, query_embedding, threshold, limit):
        return []


def test_document_store_interface_covers_management_methods(tmp_path):
    assert isinstance(InMemoryDocumentStore(), DocumentStore)
    assert isinstance(FAISSDocumentStore(index_dir=tmp_path), DocumentStore)
    assert not isinstance(SearchOnlyStore(), DocumentStore)


def test_build_services_rejects_incomplete_store(make_ollama_client):
    with pytest.raises(TypeError, match="SearchOnlyStore"):
        build_services(llm_client=make_ollama_client(), store=SearchOnlyStore())
