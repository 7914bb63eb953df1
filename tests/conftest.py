"""Pytest configuration and shared fixtures."""
import json
from typing import Dict, List, Optional, Sequence

import httpx
import pytest

from kbchat import config
from kbchat.errors import EmbeddingServiceError
from kbchat.llm_client import OllamaClient
from kbchat.rag.store import InMemoryDocumentStore


# Vocabulary for the stub embedding model: one dimension per keyword plus a
# small constant so no text embeds to the zero vector.
KEYWORDS = ["return", "refund", "shipping", "payment", "warranty", "support"]


def keyword_vector(text: str) -> List[float]:
    lowered = text.lower()
    return [float(lowered.count(word)) for word in KEYWORDS] + [0.05]


class StubEmbedder:
    """Embedding client stand-in with canned vectors."""

    def __init__(
        self,
        vectors: Optional[Dict[str, List[float]]] = None,
        fail_on: Sequence[str] = (),
    ):
        self.vectors = vectors or {}
        self.fail_on = set(fail_on)
        self.model = "stub-embed"
        self.dimension = None
        self.calls: List[str] = []

    async def embed(self, text: str) -> List[float]:
        self.calls.append(text)
        if text in self.fail_on:
            raise EmbeddingServiceError(f"cannot embed {text!r}")
        return self.vectors.get(text) or keyword_vector(text)


class StubLLM:
    """Generation client stand-in that streams canned fragments."""

    def __init__(self, fragments: Sequence[str] = ("Hello", ", ", "world"), fail_after: int = None):
        self.fragments = list(fragments)
        self.fail_after = fail_after
        self.closed = False
        self.emitted = 0
        self.requests: List[List[Dict[str, str]]] = []

    async def chat_stream(self, messages, model=None, temperature=None):
        self.requests.append(messages)
        try:
            for i, fragment in enumerate(self.fragments):
                if self.fail_after is not None and i == self.fail_after:
                    raise httpx.ReadError("connection reset")
                self.emitted += 1
                yield fragment
        finally:
            self.closed = True


def ollama_handler(
    fragments: Sequence[str] = ("The answer", " is 42."),
    fail_embeddings: bool = False,
    stream_error: Optional[str] = None,
):
    """Build a request handler that mimics the Ollama HTTP API."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/embeddings":
            if fail_embeddings:
                return httpx.Response(500, json={"error": "model not loaded"})
            prompt = json.loads(request.content)["prompt"]
            return httpx.Response(200, json={"embedding": keyword_vector(prompt)})

        if request.url.path == "/api/chat":
            lines = [
                json.dumps({"message": {"role": "assistant", "content": f}, "done": False})
                for f in fragments
            ]
            if stream_error:
                lines.append(json.dumps({"error": stream_error}))
            lines.append(json.dumps({"message": {"role": "assistant", "content": ""}, "done": True}))
            return httpx.Response(200, content=("\n".join(lines) + "\n").encode())

        if request.url.path == "/api/tags":
            return httpx.Response(
                200,
                json={"models": [{"name": config.CHAT_MODEL}, {"name": config.EMBEDDING_MODEL}]},
            )

        return httpx.Response(404, json={"error": "not found"})

    return handler


@pytest.fixture
def stub_embedder():
    return StubEmbedder()


@pytest.fixture
def stub_llm():
    return StubLLM()


@pytest.fixture
def memory_store():
    return InMemoryDocumentStore()


@pytest.fixture
def make_ollama_client():
    """Factory for an OllamaClient backed by a stubbed transport."""

    def factory(**handler_options) -> OllamaClient:
        transport = httpx.MockTransport(ollama_handler(**handler_options))
        return OllamaClient(base_url="http://ollama.test", timeout=5.0, transport=transport)

    return factory


@pytest.fixture
def make_embedder():
    return StubEmbedder


@pytest.fixture
def make_llm():
    return StubLLM
