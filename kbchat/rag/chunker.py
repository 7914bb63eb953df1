"""Text chunking with overlap for RAG pipeline.

Implements fixed-size character windows to avoid tokenizer dependencies.
"""
from typing import List, Optional
from dataclasses import dataclass
import structlog

from kbchat import config
from kbchat.errors import InvalidParameters

logger = structlog.get_logger()


@dataclass(frozen=True)
class TextChunk:
    """Represents a chunk of text with position information."""

    content: str
    char_start: int
    char_end: int
    chunk_index: int


class TextChunker:
    """Character-based text chunker with overlap support."""

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        max_chunks: Optional[int] = None,
        max_text_length: Optional[int] = None,
    ):
        """Initialize the text chunker.

        Args:
            chunk_size: Size of each chunk in characters (default from config)
            chunk_overlap: Overlap between chunks in characters (default from config)
            max_chunks: Ceiling on chunks produced per text (default from config)
            max_text_length: Longer input is truncated before chunking (default from config)

        Raises:
            InvalidParameters: If size <= 0, overlap < 0 or overlap >= size
                (including a default overlap that does not fit an explicit size)
        """
        self.chunk_size = config.CHUNK_SIZE if chunk_size is None else chunk_size
        self.chunk_overlap = config.CHUNK_OVERLAP if chunk_overlap is None else chunk_overlap
        self.max_chunks = config.MAX_CHUNKS if max_chunks is None else max_chunks
        self.max_text_length = (
            config.MAX_TEXT_LENGTH if max_text_length is None else max_text_length
        )

        # Validate parameters
        if self.chunk_size <= 0:
            raise InvalidParameters(f"Chunk size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0:
            raise InvalidParameters(
                f"Overlap must not be negative, got {self.chunk_overlap}"
            )
        if self.chunk_overlap >= self.chunk_size and chunk_overlap is None:
            raise InvalidParameters(
                f"Default overlap ({self.chunk_overlap}) must be less than chunk "
                f"size ({self.chunk_size}); pass an overlap along with a small size"
            )
        if self.chunk_overlap >= self.chunk_size:
            raise InvalidParameters(
                f"Overlap ({self.chunk_overlap}) must be less than "
                f"chunk size ({self.chunk_size})"
            )
        if self.max_chunks <= 0 or self.max_text_length <= 0:
            raise InvalidParameters("Chunk and text length ceilings must be positive")

        logger.debug(
            "chunker_initialized",
            chunk_size=self.chunk_size,
            chunk_overlap=self.chunk_overlap,
        )

    def chunk_text(self, text: str) -> List[TextChunk]:
        """Split text into overlapping chunks.

        Windows start at offset 0 and advance by ``chunk_size - chunk_overlap``.
        The last window may be shorter than ``chunk_size``; chunking stops as
        soon as a window reaches the end of the text.

        Args:
            text: Text to chunk

        Returns:
            List of TextChunk objects (empty only for empty text)
        """
        if not text:
            return []

        if len(text) > self.max_text_length:
            logger.warning(
                "text_truncated_before_chunking",
                text_length=len(text),
                max_text_length=self.max_text_length,
            )
            text = text[: self.max_text_length]

        text_length = len(text)
        step = self.chunk_size - self.chunk_overlap

        chunks = []
        start = 0

        while start < text_length:
            end = min(start + self.chunk_size, text_length)

            chunks.append(
                TextChunk(
                    content=text[start:end],
                    char_start=start,
                    char_end=end,
                    chunk_index=len(chunks),
                )
            )

            if end >= text_length:
                break

            if len(chunks) >= self.max_chunks:
                logger.warning(
                    "max_chunk_limit_reached",
                    max_chunks=self.max_chunks,
                    chars_dropped=text_length - end,
                )
                break

            start += step

        logger.info(
            "text_chunked",
            text_length=text_length,
            chunk_count=len(chunks),
            avg_chunk_size=sum(len(c.content) for c in chunks) // len(chunks),
        )

        return chunks

    def get_chunk_stats(self, chunks: List[TextChunk]) -> dict:
        """Get statistics about a set of chunks.

        Args:
            chunks: List of TextChunk objects

        Returns:
            Dictionary with chunk statistics
        """
        if not chunks:
            return {
                "chunk_count": 0,
                "total_chars": 0,
                "avg_chunk_size": 0,
                "min_chunk_size": 0,
                "max_chunk_size": 0,
                "overlap": self.chunk_overlap,
            }

        chunk_sizes = [len(c.content) for c in chunks]

        return {
            "chunk_count": len(chunks),
            "total_chars": sum(chunk_sizes),
            "avg_chunk_size": sum(chunk_sizes) // len(chunks),
            "min_chunk_size": min(chunk_sizes),
            "max_chunk_size": max(chunk_sizes),
            "overlap": self.chunk_overlap,
        }


def chunk_text(
    text: str,
    size: int = None,
    overlap: int = None,
    max_chunks: Optional[int] = None,
    max_text_length: Optional[int] = None,
) -> List[str]:
    """Split text into overlapping windows and return their contents.

    Args:
        text: Text to chunk
        size: Window size in characters (default from config)
        overlap: Characters shared by consecutive windows (default from config)
        max_chunks: Ceiling on the number of chunks (default from config)
        max_text_length: Truncation length applied before chunking (default from config)

    Returns:
        List of chunk strings

    Raises:
        InvalidParameters: If size <= 0, overlap < 0 or overlap >= size
            (overriding only the size keeps the default overlap)
    """
    chunker = TextChunker(
        chunk_size=size,
        chunk_overlap=overlap,
        max_chunks=max_chunks,
        max_text_length=max_text_length,
    )
    return [chunk.content for chunk in chunker.chunk_text(text)]
