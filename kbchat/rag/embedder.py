"""Embedding client wrapping the Ollama embeddings endpoint."""
from numbers import Real
from typing import List, Optional
import httpx
import structlog

from kbchat import config
from kbchat.errors import EmbeddingServiceError
from kbchat.llm_client import OllamaClient

logger = structlog.get_logger()


class EmbeddingClient:
    """Turns text into a fixed-length vector with one service call per text."""

    def __init__(
        self,
        llm_client: OllamaClient,
        model: str = None,
        dimension: Optional[int] = None,
    ):
        """Initialize the embedding client.

        Args:
            llm_client: Client used to reach the embedding service
            model: Embedding model name (default from config)
            dimension: Expected vector dimension; detected lazily when None
        """
        self.llm_client = llm_client
        self.model = model or config.EMBEDDING_MODEL
        self.dimension = dimension

    async def embed(self, text: str) -> List[float]:
        """Embed a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding vector

        Raises:
            EmbeddingServiceError: If the service fails or the response is malformed
        """
        try:
            response = await self.llm_client.embeddings(prompt=text, model=self.model)
        except (httpx.HTTPError, ValueError) as e:
            logger.error(
                "embedding_request_failed",
                model=self.model,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmbeddingServiceError(f"Embedding service request failed: {e}") from e

        embedding = response.get("embedding") if isinstance(response, dict) else None

        if not embedding or not isinstance(embedding, list):
            raise EmbeddingServiceError("Embedding service returned no vector")

        if not all(isinstance(v, Real) and not isinstance(v, bool) for v in embedding):
            raise EmbeddingServiceError("Embedding service returned non-numeric values")

        if self.dimension is not None and len(embedding) != self.dimension:
            raise EmbeddingServiceError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {len(embedding)}"
            )

        return [float(v) for v in embedding]

    async def detect_dimension(self) -> int:
        """Detect and pin the embedding dimension by embedding a probe string.

        Returns:
            Embedding dimension

        Raises:
            EmbeddingServiceError: If embedding fails
        """
        if self.dimension is not None:
            return self.dimension

        logger.info("detecting_embedding_dimension", model=self.model)
        self.dimension = len(await self.embed("test"))
        logger.info("embedding_dimension_detected", dimension=self.dimension)
        return self.dimension
