"""Prompt construction from retrieved chunks and conversation history."""
from typing import Any, Dict, List, Sequence
from dataclasses import dataclass, field
import structlog

from kbchat import config
from kbchat.rag.store import SimilarityResult

logger = structlog.get_logger()

SOURCE_PREVIEW_CHARS = 100

BASE_INSTRUCTIONS = "You are a helpful AI assistant."

GROUNDED_INSTRUCTIONS = """Answer the user's question based on the provided context from the knowledge base.

If the context contains relevant information, use it to provide accurate answers and mention that the information comes from the knowledge base.
If the context doesn't contain relevant information, you can provide a general answer but mention that it's not from the specific knowledge base.

Always be helpful, concise, and accurate."""

UNGROUNDED_INSTRUCTIONS = """Answer the user's question from your general knowledge.

Always be helpful, concise, and accurate."""


@dataclass(frozen=True)
class SourceRef:
    """Display/audit record for one chunk used to ground an answer."""

    index: int
    content: str
    similarity: float
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "content": self.content,
            "similarity": self.similarity,
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class AssembledContext:
    """A system preamble plus the sources it was built from."""

    preamble: str
    sources: List[SourceRef] = field(default_factory=list)

    @property
    def grounded(self) -> bool:
        return bool(self.sources)


def _preview(content: str) -> str:
    if len(content) <= SOURCE_PREVIEW_CHARS:
        return content
    return content[:SOURCE_PREVIEW_CHARS] + "..."


class ContextAssembler:
    """Turns retrieved chunks into a model-ready instructional preamble."""

    def __init__(self, max_history_messages: int = None):
        self.max_history_messages = (
            config.MAX_HISTORY_MESSAGES if max_history_messages is None
            else max_history_messages
        )

    def assemble(self, retrieved: Sequence[SimilarityResult]) -> AssembledContext:
        """Build the preamble and source list for a retrieved context set.

        Chunks are numbered from 1 in input order and injected verbatim. With
        no chunks the preamble carries no knowledge-base framing at all.
        """
        if not retrieved:
            return AssembledContext(preamble=f"{BASE_INSTRUCTIONS} {UNGROUNDED_INSTRUCTIONS}")

        context_parts = []
        sources = []

        for i, result in enumerate(retrieved, 1):
            context_parts.append(f"[{i}] {result.content}")
            sources.append(
                SourceRef(
                    index=i,
                    content=_preview(result.content),
                    similarity=result.similarity,
                    metadata=dict(result.metadata),
                )
            )

        context = "\n".join(context_parts)
        preamble = (
            f"{BASE_INSTRUCTIONS} {GROUNDED_INSTRUCTIONS}\n\n"
            f"Relevant information from knowledge base:\n\n{context}"
        )

        logger.debug(
            "context_assembled",
            num_chunks=len(sources),
            preamble_length=len(preamble),
        )

        return AssembledContext(preamble=preamble, sources=sources)

    def build_messages(
        self, preamble: str, history: Sequence[Dict[str, str]]
    ) -> List[Dict[str, str]]:
        """Build the message list sent to the chat model.

        Args:
            preamble: System preamble from assemble()
            history: Conversation so far, oldest first, ending with the user turn

        Returns:
            System message followed by the most recent conversation turns
        """
        recent = list(history)[-max(self.max_history_messages, 1):]

        messages = [{"role": "system", "content": preamble}]
        for message in recent:
            role = "user" if message.get("role") == "user" else "assistant"
            messages.append({"role": role, "content": message.get("content", "")})

        return messages
