"""Ingest pipeline for adding documents to the knowledge base.

Orchestrates:
- Text extraction from uploads
- Text chunking
- Embedding generation
- Chunk storage
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field
import structlog

from kbchat import config
from kbchat.errors import InvalidParameters
from kbchat.rag.chunker import TextChunker
from kbchat.rag.embedder import EmbeddingClient
from kbchat.rag.extract import extract_text
from kbchat.rag.store import DocumentStore, StoredChunkHandle

logger = structlog.get_logger()


@dataclass
class IngestResult:
    """Outcome of ingesting one document."""

    chunks_created: int
    text_length: int
    handles: List[StoredChunkHandle] = field(default_factory=list)
    filename: Optional[str] = None
    replaced_chunks: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "chunks_created": self.chunks_created,
            "text_length": self.text_length,
            "replaced_chunks": self.replaced_chunks,
        }


class IngestPipeline:
    """Pipeline for chunking, embedding and storing documents."""

    def __init__(
        self,
        embedder: EmbeddingClient,
        store: DocumentStore,
        chunk_size: int = None,
        chunk_overlap: int = None,
    ):
        """Initialize the ingest pipeline.

        Args:
            embedder: Client used to embed chunks
            store: Document store receiving the chunks
            chunk_size: Chunk size in characters (default from config)
            chunk_overlap: Chunk overlap in characters (default from config)
        """
        self.embedder = embedder
        self.store = store
        self.chunker = TextChunker(chunk_size=chunk_size, chunk_overlap=chunk_overlap)

        self.stats = {
            "documents_processed": 0,
            "chunks_created": 0,
            "embeddings_generated": 0,
        }

    async def ingest_text(
        self,
        text: str,
        metadata: Optional[Dict[str, Any]] = None,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
    ) -> IngestResult:
        """Chunk a document and store every chunk with its embedding.

        Chunks are processed strictly one after another. The first failure
        aborts the call; chunks stored before it remain in the store.

        Args:
            text: Document text
            metadata: Document-level metadata copied onto every chunk
            chunk_size: Per-call override of the chunk size; the pipeline's overlap
                still applies unless chunk_overlap is given too
            chunk_overlap: Per-call override of the chunk overlap

        Returns:
            IngestResult with the stored chunk handles

        Raises:
            InvalidParameters: If the text is empty or chunk parameters are invalid
            EmbeddingServiceError: If a chunk cannot be embedded
            StorageError: If a chunk cannot be stored
        """
        if not text or not text.strip():
            raise InvalidParameters("No text content to ingest")

        metadata = dict(metadata or {})

        if (
            chunk_size is not None
            and chunk_overlap is None
            and self.chunker.chunk_overlap >= chunk_size
        ):
            raise InvalidParameters(
                f"Pipeline overlap ({self.chunker.chunk_overlap}) must be less than "
                f"chunk size ({chunk_size}); pass chunk_overlap along with a small chunk_size"
            )

        chunker = self.chunker
        if chunk_size is not None or chunk_overlap is not None:
            chunker = TextChunker(
                chunk_size=self.chunker.chunk_size if chunk_size is None else chunk_size,
                chunk_overlap=(
                    self.chunker.chunk_overlap if chunk_overlap is None else chunk_overlap
                ),
            )

        chunks = chunker.chunk_text(text)
        total = len(chunks)

        logger.info(
            "ingesting_document",
            filename=metadata.get("filename"),
            text_length=len(text),
            **chunker.get_chunk_stats(chunks),
        )

        handles = []
        for chunk in chunks:
            chunk_metadata = {
                **metadata,
                "chunk_index": chunk.chunk_index,
                "total_chunks": total,
            }

            try:
                embedding = await self.embedder.embed(chunk.content)
                self.stats["embeddings_generated"] += 1
                handles.append(
                    await self.store.insert(chunk.content, embedding, chunk_metadata)
                )
            except Exception as e:
                logger.error(
                    "chunk_ingestion_failed",
                    filename=metadata.get("filename"),
                    chunk_index=chunk.chunk_index,
                    total_chunks=total,
                    chunks_stored=len(handles),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                raise

        self.stats["chunks_created"] += len(handles)
        self.stats["documents_processed"] += 1

        logger.info(
            "document_ingested",
            filename=metadata.get("filename"),
            chunks_created=len(handles),
        )

        return IngestResult(
            chunks_created=len(handles),
            text_length=len(text),
            handles=handles,
            filename=metadata.get("filename"),
        )

    async def ingest_upload(
        self,
        filename: str,
        content_type: Optional[str],
        data: bytes,
        replace: bool = False,
    ) -> IngestResult:
        """Extract text from an uploaded file and ingest it.

        Args:
            filename: Original file name (stored as the chunks' source)
            content_type: MIME type reported by the client
            data: Raw file bytes
            replace: Delete chunks from an earlier upload of the same file first

        Raises:
            InvalidParameters: For a missing, oversized, unsupported or empty file
            EmbeddingServiceError: If a chunk cannot be embedded
            StorageError: If a chunk cannot be stored or the old copy removed
        """
        if not filename:
            raise InvalidParameters("No file provided")

        if len(data) > config.MAX_UPLOAD_BYTES:
            raise InvalidParameters(
                f"File too large ({len(data)} bytes, max {config.MAX_UPLOAD_BYTES})"
            )

        text = extract_text(filename, content_type, data)

        replaced = 0
        if replace:
            replaced = await self.store.delete_document(filename)

        metadata = {
            "filename": filename,
            "file_type": content_type or "",
            "uploaded_at": datetime.now(timezone.utc).isoformat(),
        }

        result = await self.ingest_text(text, metadata)
        result.replaced_chunks = replaced
        return result
