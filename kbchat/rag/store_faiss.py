"""FAISS document store for semantic search.

Handles:
- Cosine similarity via inner product over L2-normalised vectors
- FAISS index initialization, loading and persistence
- Chunk content and metadata persistence in SQLite
- Per-document deletion
"""
import asyncio
import json
import sqlite3
import threading
from pathlib import Path
from typing import List, Optional, Dict, Any, Sequence
import numpy as np
import faiss
import structlog

from kbchat import config, db
from kbchat.errors import StorageError
from kbchat.rag.store import SimilarityResult, StoredChunkHandle, normalize

logger = structlog.get_logger()

INDEX_TYPE = "IndexIDMap2(IndexFlatIP)"


class FAISSDocumentStore:
    """FAISS-backed document store with SQLite metadata.

    Vector ids are the SQLite row ids of the chunks, so ranking ties fall
    back to insertion order.
    """

    def __init__(
        self,
        index_dir: Path = None,
        dimension: Optional[int] = None,
        embedding_model: str = None,
    ):
        """Initialize the FAISS document store.

        Args:
            index_dir: Directory holding the index, its info file and the database
                (default: DATA_DIR)
            dimension: Embedding dimension; taken from the first insert when None
            embedding_model: Embedding model name recorded with the index
        """
        self.index_dir = Path(index_dir) if index_dir else config.DATA_DIR
        self.embedding_model = embedding_model or config.EMBEDDING_MODEL

        self.index_path = self.index_dir / config.VECTOR_INDEX_PATH.name
        self.info_path = self.index_dir / config.INDEX_INFO_PATH.name
        self.db_path = self.index_dir / config.DB_PATH.name

        self.index: Optional[faiss.Index] = None
        self.dimension: Optional[int] = dimension
        self.info: Dict[str, Any] = {}
        self._lock = threading.Lock()

        logger.info(
            "faiss_store_initialized",
            index_dir=str(self.index_dir),
            embedding_model=self.embedding_model,
        )

    async def init_or_load(self, dimension: Optional[int] = None) -> None:
        """Load an existing index, or create a new one when none is on disk.

        Args:
            dimension: Current embedding dimension, validated against a loaded index

        Raises:
            StorageError: If loading fails or the stored dimension differs
        """
        if dimension is not None:
            self.dimension = dimension

        try:
            await asyncio.to_thread(self._init_or_load_sync)
        except StorageError:
            raise
        except (sqlite3.Error, OSError, RuntimeError, ValueError) as e:
            logger.error("faiss_store_init_failed", error=str(e))
            raise StorageError(f"Failed to initialize document store: {e}") from e

    def _init_or_load_sync(self) -> None:
        with self._lock:
            db.init_database(self.db_path)

            if self.index_path.exists() and self.info_path.exists():
                logger.info("existing_index_detected", path=str(self.index_path))
                self._load_index()
            elif self.dimension is not None:
                logger.info("no_index_found_initializing_new")
                self._init_new_index(self.dimension)

    def _init_new_index(self, dimension: int) -> None:
        self.dimension = dimension
        self.index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimension))
        self.info = {
            "embedding_model": self.embedding_model,
            "embedding_dimension": dimension,
            "index_type": INDEX_TYPE,
            "metric": "cosine",
            "vector_count": 0,
        }

        logger.info("faiss_index_initialized", dimension=dimension, index_type=INDEX_TYPE)

    def _load_index(self) -> None:
        with open(self.info_path, "r") as f:
            self.info = json.load(f)

        stored_model = self.info.get("embedding_model")
        stored_dim = self.info.get("embedding_dimension")

        if self.dimension is not None and self.dimension != stored_dim:
            raise StorageError(
                f"Dimension mismatch: index was built with {stored_model} "
                f"(dim={stored_dim}), but current model {self.embedding_model} "
                f"has dim={self.dimension}. Please rebuild the index."
            )

        self.index = faiss.read_index(str(self.index_path))
        self.dimension = stored_dim

        logger.info(
            "faiss_index_loaded",
            dimension=self.dimension,
            vector_count=self.index.ntotal,
            model=stored_model,
        )

    def _save_index(self) -> None:
        self.index_dir.mkdir(parents=True, exist_ok=True)
        self.info["vector_count"] = self.index.ntotal

        faiss.write_index(self.index, str(self.index_path))
        with open(self.info_path, "w") as f:
            json.dump(self.info, f, indent=2)

        logger.debug("faiss_index_saved", vector_count=self.index.ntotal)

    async def insert(
        self, content: str, embedding: Sequence[float], metadata: Dict[str, Any]
    ) -> StoredChunkHandle:
        """Persist one chunk.

        Raises:
            StorageError: If the row or vector cannot be persisted; nothing is kept
        """
        vector = normalize(embedding, self.dimension)

        try:
            chunk_id = await asyncio.to_thread(
                self._insert_sync, content, vector, dict(metadata or {})
            )
        except StorageError:
            raise
        except (sqlite3.Error, OSError, RuntimeError, TypeError, ValueError) as e:
            logger.error("chunk_store_failed", error=str(e), error_type=type(e).__name__)
            raise StorageError(f"Failed to store chunk: {e}") from e

        return StoredChunkHandle(chunk_id=chunk_id)

    def _insert_sync(self, content: str, vector: np.ndarray, metadata: Dict[str, Any]) -> int:
        with self._lock:
            if self.index is None:
                db.init_database(self.db_path)
                self._init_new_index(vector.shape[0])

            chunk_id = db.insert_chunk(self.db_path, content, metadata)
            ids = np.array([chunk_id], dtype=np.int64)

            try:
                self.index.add_with_ids(vector.reshape(1, -1), ids)
                self._save_index()
            except Exception:
                self.index.remove_ids(ids)
                db.delete_chunks(self.db_path, [chunk_id])
                raise

            return chunk_id

    async def similarity_search(
        self, query_embedding: Sequence[float], threshold: float, limit: int
    ) -> List[SimilarityResult]:
        """Rank stored chunks by cosine similarity.

        Returns:
            At most ``limit`` results scoring at least ``threshold``, best first

        Raises:
            StorageError: If the query cannot be run
        """
        if limit <= 0 or self.index is None:
            return []

        query = normalize(query_embedding, self.dimension)

        try:
            return await asyncio.to_thread(self._search_sync, query, threshold, limit)
        except (sqlite3.Error, OSError, RuntimeError, ValueError) as e:
            logger.error("vector_search_failed", error=str(e))
            raise StorageError(f"Similarity search failed: {e}") from e

    def _search_sync(
        self, query: np.ndarray, threshold: float, limit: int
    ) -> List[SimilarityResult]:
        with self._lock:
            top_k = min(limit, self.index.ntotal)
            if top_k == 0:
                return []

            scores, ids = self.index.search(query.reshape(1, -1), top_k)

        hits = [
            (int(chunk_id), min(float(score), 1.0))
            for chunk_id, score in zip(ids[0], scores[0])
            if chunk_id != -1 and score >= threshold
        ]
        hits.sort(key=lambda hit: (-hit[1], hit[0]))

        rows = db.get_chunks_by_ids(self.db_path, [chunk_id for chunk_id, _ in hits])

        results = []
        for chunk_id, similarity in hits:
            row = rows.get(chunk_id)
            if row is None:
                logger.warning("vector_without_chunk_row", chunk_id=chunk_id)
                continue
            results.append(
                SimilarityResult(
                    content=row["content"],
                    similarity=similarity,
                    metadata=row["metadata"],
                )
            )

        logger.info("vector_search_completed", top_k=top_k, results_found=len(results))
        return results

    async def delete_document(self, filename: str) -> int:
        """Delete every chunk that came from one source file.

        Returns:
            Number of chunks removed
        """
        try:
            removed = await asyncio.to_thread(self._delete_sync, filename)
        except (sqlite3.Error, OSError, RuntimeError) as e:
            logger.error("document_delete_failed", filename=filename, error=str(e))
            raise StorageError(f"Failed to delete {filename}: {e}") from e

        if removed:
            logger.info("document_deleted", filename=filename, chunks_removed=removed)
        return removed

    def _delete_sync(self, filename: str) -> int:
        with self._lock:
            if self.index is None:
                return 0

            chunk_ids = db.get_chunk_ids_by_source(self.db_path, filename)
            if not chunk_ids:
                return 0

            self.index.remove_ids(np.array(chunk_ids, dtype=np.int64))
            self._save_index()
            return db.delete_chunks(self.db_path, chunk_ids)

    async def count(self) -> int:
        if self.index is None:
            return 0
        return self.index.ntotal

    async def rebuild_index(self) -> None:
        """Clear the index and every stored chunk.

        Raises:
            StorageError: If the files cannot be removed
        """
        logger.warning("rebuilding_index", index_dir=str(self.index_dir))

        try:
            await asyncio.to_thread(self._rebuild_sync)
        except (sqlite3.Error, OSError) as e:
            raise StorageError(f"Failed to rebuild index: {e}") from e

    def _rebuild_sync(self) -> None:
        with self._lock:
            for path in (self.index_path, self.info_path, self.db_path):
                if path.exists():
                    path.unlink()
                    logger.info("deleted_store_file", path=str(path))

            self.index = None
            db.init_database(self.db_path)
            if self.dimension is not None:
                self._init_new_index(self.dimension)

    def get_stats(self) -> Dict[str, Any]:
        """Get statistics about the document store."""
        if self.index is None:
            return {
                "backend": "faiss",
                "initialized": False,
                "vector_count": 0,
                "dimension": self.dimension,
            }

        return {
            "backend": "faiss",
            "initialized": True,
            "vector_count": self.index.ntotal,
            "dimension": self.dimension,
            "embedding_model": self.embedding_model,
            "index_exists_on_disk": self.index_path.exists(),
            "index_type": INDEX_TYPE,
        }
