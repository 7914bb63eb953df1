"""Retriever for semantic search over the knowledge base.

Handles:
- Query embedding generation
- Similarity search against the document store
- Limit/threshold enforcement
- Graceful degradation: any failure yields no context instead of an error
"""
from typing import List, Optional
from dataclasses import dataclass, field
import structlog

from kbchat import config
from kbchat.rag.embedder import EmbeddingClient
from kbchat.rag.store import DocumentStore, SimilarityResult

logger = structlog.get_logger()


@dataclass(frozen=True)
class RetrievalFailure:
    """Why a retrieval produced no context."""

    stage: str  # "embedding" or "search"
    error: str


@dataclass(frozen=True)
class RetrievalOutcome:
    """Either a context set or the failure that prevented one."""

    results: List[SimilarityResult] = field(default_factory=list)
    failure: Optional[RetrievalFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap_or_empty(self) -> List[SimilarityResult]:
        return list(self.results) if self.ok else []


class Retriever:
    """Semantic retriever for RAG pipeline."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: DocumentStore,
        limit: int = None,
        threshold: float = None,
    ):
        """Initialize the retriever.

        Args:
            embedder: Client used to embed queries
            store: Document store to search
            limit: Default maximum number of results (default from config)
            threshold: Default minimum similarity (default from config)
        """
        self.embedder = embedder
        self.store = store
        self.limit = config.RETRIEVAL_LIMIT if limit is None else limit
        self.threshold = config.SIMILARITY_THRESHOLD if threshold is None else threshold

    async def try_retrieve(
        self,
        query: str,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> RetrievalOutcome:
        """Retrieve relevant chunks, reporting failures as a value.

        Args:
            query: User query text
            limit: Maximum number of results (overrides default)
            threshold: Minimum similarity to include a result (overrides default)

        Returns:
            RetrievalOutcome holding results sorted best first, or the failure
        """
        limit = self.limit if limit is None else limit
        threshold = self.threshold if threshold is None else threshold

        if not query or not query.strip():
            logger.warning("empty_query_provided")
            return RetrievalOutcome()

        if limit <= 0:
            return RetrievalOutcome()

        logger.info(
            "retrieval_started",
            query_length=len(query),
            limit=limit,
            threshold=threshold,
        )

        try:
            query_embedding = await self.embedder.embed(query)
        except Exception as e:
            return self._failed("embedding", e, query)

        try:
            results = await self.store.similarity_search(
                query_embedding, threshold=threshold, limit=limit
            )
        except Exception as e:
            return self._failed("search", e, query)

        # Hold the store to its contract before handing results on
        results = sorted(
            (r for r in results if r.similarity >= threshold),
            key=lambda r: r.similarity,
            reverse=True,
        )[:limit]

        logger.info(
            "retrieval_completed",
            query_length=len(query),
            results_returned=len(results),
            top_similarity=results[0].similarity if results else None,
        )

        return RetrievalOutcome(results=results)

    async def retrieve(
        self,
        query: str,
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[SimilarityResult]:
        """Retrieve relevant chunks for a query.

        Never raises for embedding or store failures; those yield an empty list
        so that chat can continue without grounding.

        Returns:
            List of SimilarityResult objects, sorted by similarity (best first)
        """
        outcome = await self.try_retrieve(query, limit=limit, threshold=threshold)
        return outcome.unwrap_or_empty()

    def _failed(self, stage: str, error: Exception, query: str) -> RetrievalOutcome:
        logger.error(
            "retrieval_failed",
            stage=stage,
            error=str(error),
            error_type=type(error).__name__,
            query_preview=query[:100],
        )
        return RetrievalOutcome(failure=RetrievalFailure(stage=stage, error=str(error)))
