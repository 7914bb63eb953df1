"""Construction of the shared clients used by every request.

Built once at process start and passed explicitly to the web layer and the
scripts, so no module keeps a hidden global client.
"""
from dataclasses import dataclass
from typing import Optional
import structlog

from kbchat import config
from kbchat.llm_client import OllamaClient
from kbchat.rag.chat import ChatPipeline
from kbchat.rag.context import ContextAssembler
from kbchat.rag.embedder import EmbeddingClient
from kbchat.rag.ingest import IngestPipeline
from kbchat.rag.retriever import Retriever
from kbchat.rag.store import DocumentStore, InMemoryDocumentStore
from kbchat.rag.store_faiss import FAISSDocumentStore
from kbchat.rag.streamer import ResponseStreamer

logger = structlog.get_logger()


@dataclass
class Services:
    """The pipeline's collaborators, wired together."""

    llm_client: OllamaClient
    embedder: EmbeddingClient
    store: DocumentStore
    retriever: Retriever
    ingest: IngestPipeline
    chat: ChatPipeline

    async def startup(self) -> None:
        """Prepare the store; a missing embedding service only delays this."""
        if not isinstance(self.store, FAISSDocumentStore):
            return

        dimension = self.embedder.dimension
        if dimension is None:
            try:
                dimension = await self.embedder.detect_dimension()
            except Exception as e:
                logger.warning("embedding_dimension_unavailable", error=str(e))

        await self.store.init_or_load(dimension)

        if self.embedder.dimension is None:
            self.embedder.dimension = self.store.dimension


def create_store(backend: str = None, dimension: Optional[int] = None) -> DocumentStore:
    backend = backend or config.STORE_BACKEND

    if backend == "memory":
        return InMemoryDocumentStore(dimension=dimension)
    if backend == "faiss":
        return FAISSDocumentStore(dimension=dimension)

    raise ValueError(f"Unknown STORE_BACKEND: {backend!r} (expected 'faiss' or 'memory')")


def build_services(
    llm_client: Optional[OllamaClient] = None,
    store: Optional[DocumentStore] = None,
) -> Services:
    """Wire up the pipeline from configuration.

    Args:
        llm_client: Model server client (built from config when None)
        store: Document store (built from STORE_BACKEND when None)
    """
    llm_client = llm_client or OllamaClient()
    embedder = EmbeddingClient(llm_client, dimension=config.EMBEDDING_DIMENSION)
    store = store if store is not None else create_store(dimension=config.EMBEDDING_DIMENSION)
    if not isinstance(store, DocumentStore):
        raise TypeError(f"{type(store).__name__} does not implement the DocumentStore interface")

    retriever = Retriever(embedder, store)
    chat = ChatPipeline(
        retriever=retriever,
        assembler=ContextAssembler(),
        streamer=ResponseStreamer(llm_client),
    )

    logger.info(
        "services_built",
        store_backend=type(store).__name__,
        chat_model=config.CHAT_MODEL,
        embedding_model=embedder.model,
    )

    return Services(
        llm_client=llm_client,
        embedder=embedder,
        store=store,
        retriever=retriever,
        ingest=IngestPipeline(embedder, store),
        chat=chat,
    )
