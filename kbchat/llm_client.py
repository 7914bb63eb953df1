"""Ollama LLM client wrapper with error handling."""
import json
from typing import AsyncIterator, List, Dict, Optional
import httpx
import structlog

from kbchat import config

logger = structlog.get_logger()


class OllamaStreamError(RuntimeError):
    """Raised when Ollama reports an error inside a streamed response."""


class OllamaClient:
    """Async client for interacting with Ollama API."""

    def __init__(
        self,
        base_url: str = None,
        timeout: float = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize Ollama client.

        Args:
            base_url: Ollama API base URL (defaults to config.OLLAMA_BASE_URL)
            timeout: Request timeout in seconds (defaults to config.REQUEST_TIMEOUT)
            transport: Optional httpx transport (used to stub the server in tests)
        """
        self.base_url = base_url or config.OLLAMA_BASE_URL
        self.timeout = timeout or config.REQUEST_TIMEOUT
        self.transport = transport

    def _client(self, timeout: float = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout or self.timeout,
            transport=self.transport,
        )

    async def chat_stream(
        self,
        messages: List[Dict[str, str]],
        model: str = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion from Ollama.

        Yields each content fragment as soon as its NDJSON line arrives.
        Closing the generator closes the underlying HTTP response.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to config.CHAT_MODEL)
            temperature: Sampling temperature (0.0-2.0)

        Raises:
            httpx.HTTPError: On transport or HTTP status errors
            OllamaStreamError: If Ollama reports an error mid-stream
            ValueError: If a stream line is not valid JSON
        """
        model = model or config.CHAT_MODEL

        payload = {
            "model": model,
            "messages": messages,
            "stream": True,
        }

        if temperature is not None:
            payload["options"] = {"temperature": temperature}

        logger.info(
            "ollama_chat_stream_request",
            model=model,
            message_count=len(messages),
        )

        fragments = 0
        async with self._client() as client:
            async with client.stream("POST", "/api/chat", json=payload) as response:
                response.raise_for_status()

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue

                    data = json.loads(line)

                    if "error" in data:
                        raise OllamaStreamError(data["error"])

                    content = data.get("message", {}).get("content", "")
                    if content:
                        fragments += 1
                        yield content

                    if data.get("done"):
                        break

        logger.info("ollama_chat_stream_completed", model=model, fragments=fragments)

    async def embeddings(
        self,
        prompt: str,
        model: str = None,
    ) -> Dict:
        """Generate embeddings for a text prompt.

        Args:
            prompt: Text to embed
            model: Model to use (defaults to config.EMBEDDING_MODEL)

        Returns:
            Response dict with 'embedding' list

        Raises:
            httpx.HTTPError: On API errors
        """
        model = model or config.EMBEDDING_MODEL

        payload = {
            "model": model,
            "prompt": prompt,
        }

        try:
            async with self._client() as client:
                logger.debug(
                    "ollama_embedding_request",
                    model=model,
                    prompt_length=len(prompt),
                )

                response = await client.post("/api/embeddings", json=payload)
                response.raise_for_status()

                data = response.json()

                logger.debug(
                    "ollama_embedding_response",
                    model=model,
                    dimension=len(data.get("embedding") or []),
                )

                return data

        except httpx.HTTPError as e:
            logger.error("ollama_embedding_error", error=str(e))
            raise

    async def list_models(self) -> List[str]:
        """List all available Ollama models.

        Returns:
            List of model names

        Raises:
            httpx.HTTPError: On API errors
        """
        try:
            async with self._client(timeout=5.0) as client:
                response = await client.get("/api/tags")
                response.raise_for_status()
                data = response.json()
                return [m["name"] for m in data.get("models", [])]
        except httpx.HTTPError as e:
            logger.error("ollama_list_models_error", error=str(e))
            raise
