"""Chat pipeline: retrieve, assemble, stream."""
from typing import AsyncIterator, Dict, List, Optional, Sequence
from dataclasses import dataclass, field
import structlog

from kbchat.errors import InvalidParameters
from kbchat.rag.context import ContextAssembler, SourceRef
from kbchat.rag.retriever import Retriever
from kbchat.rag.streamer import ResponseStreamer

logger = structlog.get_logger()


@dataclass
class ChatTurn:
    """Everything needed to stream one answer."""

    messages: List[Dict[str, str]]
    sources: List[SourceRef] = field(default_factory=list)
    query: str = ""

    @property
    def grounded(self) -> bool:
        return bool(self.sources)


class ChatPipeline:
    """Grounds a conversation's latest question and streams the answer."""

    def __init__(
        self,
        retriever: Retriever,
        assembler: ContextAssembler,
        streamer: ResponseStreamer,
    ):
        self.retriever = retriever
        self.assembler = assembler
        self.streamer = streamer

    async def prepare(
        self,
        history: Sequence[Dict[str, str]],
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> ChatTurn:
        """Retrieve context for the last user message and build model input.

        Retrieval failures never surface here; they produce an ungrounded turn.

        Raises:
            InvalidParameters: If the conversation is empty or does not end
                with a non-empty user message
        """
        if not history:
            raise InvalidParameters("Conversation has no messages")

        last = history[-1]
        query = (last.get("content") or "").strip()
        if last.get("role") != "user" or not query:
            raise InvalidParameters("Last message must be a non-empty user message")

        results = await self.retriever.retrieve(query, limit=limit, threshold=threshold)
        context = self.assembler.assemble(results)
        messages = self.assembler.build_messages(context.preamble, history)

        logger.info(
            "chat_turn_prepared",
            history_length=len(history),
            grounded=context.grounded,
            source_count=len(context.sources),
        )

        return ChatTurn(messages=messages, sources=context.sources, query=query)

    def stream(self, turn: ChatTurn) -> AsyncIterator[str]:
        """Stream the answer for a prepared turn."""
        return self.streamer.stream(turn.messages, turn.sources)
