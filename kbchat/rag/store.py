"""Document store contract and an in-memory implementation.

A document store persists chunk content, embedding and metadata, and answers
cosine-similarity queries bounded by a threshold and a result limit. The
storage engine is swappable as long as it honours that contract.
"""
import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence, runtime_checkable
import numpy as np
import structlog

from kbchat.errors import StorageError

logger = structlog.get_logger()


@dataclass(frozen=True)
class StoredChunkHandle:
    """Identifies a chunk after it has been stored."""

    chunk_id: int


@dataclass(frozen=True)
class SimilarityResult:
    """A stored chunk scored against a query."""

    content: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.content,
            "similarity": self.similarity,
            "metadata": self.metadata,
        }


@runtime_checkable
class DocumentStore(Protocol):
    """Capability interface every storage engine provides.

    The web layer and ingestion rely on every method here, so an engine
    missing any of them is rejected when the services are built.
    """

    async def insert(
        self, content: str, embedding: Sequence[float], metadata: Dict[str, Any]
    ) -> StoredChunkHandle:
        ...

    async def similarity_search(
        self, query_embedding: Sequence[float], threshold: float, limit: int
    ) -> List[SimilarityResult]:
        ...

    async def delete_document(self, filename: str) -> int:
        ...

    async def count(self) -> int:
        ...

    def get_stats(self) -> Dict[str, Any]:
        ...


def normalize(embedding: Sequence[float], dimension: Optional[int] = None) -> np.ndarray:
    """Return a float32 unit vector so inner product equals cosine similarity.

    Raises:
        StorageError: On dimension mismatch or a zero vector
    """
    vector = np.asarray(embedding, dtype=np.float32).reshape(-1)

    if dimension is not None and vector.shape[0] != dimension:
        raise StorageError(
            f"Embedding dimension mismatch: expected {dimension}, got {vector.shape[0]}"
        )

    norm = float(np.linalg.norm(vector))
    if norm == 0.0 or not np.isfinite(norm):
        raise StorageError("Cannot store or search with a zero or non-finite vector")

    return vector / norm


class InMemoryDocumentStore:
    """Brute-force cosine store held in process memory.

    Useful for tests, demos and small knowledge bases. Results are ranked by
    descending similarity; ties keep insertion order.
    """

    def __init__(self, dimension: Optional[int] = None):
        self.dimension = dimension
        self._ids: List[int] = []
        self._contents: List[str] = []
        self._metadata: List[Dict[str, Any]] = []
        self._vectors: Optional[np.ndarray] = None
        self._next_id = 1

    async def insert(
        self, content: str, embedding: Sequence[float], metadata: Dict[str, Any]
    ) -> StoredChunkHandle:
        vector = normalize(embedding, self.dimension)
        if self.dimension is None:
            self.dimension = vector.shape[0]

        chunk_id = self._next_id
        self._next_id += 1

        row = vector.reshape(1, -1)
        self._vectors = row if self._vectors is None else np.vstack([self._vectors, row])
        self._ids.append(chunk_id)
        self._contents.append(content)
        self._metadata.append(copy.deepcopy(metadata or {}))

        logger.debug("chunk_stored", chunk_id=chunk_id, store="memory")
        return StoredChunkHandle(chunk_id=chunk_id)

    async def similarity_search(
        self, query_embedding: Sequence[float], threshold: float, limit: int
    ) -> List[SimilarityResult]:
        if limit <= 0 or self._vectors is None:
            return []

        query = normalize(query_embedding, self.dimension)
        scores = self._vectors @ query
        order = np.argsort(-scores, kind="stable")

        results = []
        for position in order[:limit]:
            similarity = float(scores[position])
            if similarity < threshold:
                break
            results.append(
                SimilarityResult(
                    content=self._contents[position],
                    similarity=similarity,
                    metadata=copy.deepcopy(self._metadata[position]),
                )
            )

        return results

    async def delete_document(self, filename: str) -> int:
        """Delete every chunk whose metadata names the given source file."""
        keep = [i for i, m in enumerate(self._metadata) if m.get("filename") != filename]
        removed = len(self._ids) - len(keep)

        if removed:
            self._ids = [self._ids[i] for i in keep]
            self._contents = [self._contents[i] for i in keep]
            self._metadata = [self._metadata[i] for i in keep]
            self._vectors = self._vectors[keep] if keep else None
            logger.info("document_deleted", filename=filename, chunks_removed=removed)

        return removed

    async def count(self) -> int:
        return len(self._ids)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "backend": "memory",
            "initialized": self._vectors is not None,
            "vector_count": len(self._ids),
            "dimension": self.dimension,
        }
