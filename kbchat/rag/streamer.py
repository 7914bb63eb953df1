"""Streams model output to the caller as it arrives."""
from contextlib import aclosing
from typing import AsyncIterator, Dict, List, Optional, Sequence
import structlog

from kbchat import config
from kbchat.errors import GenerationStreamError
from kbchat.llm_client import OllamaClient
from kbchat.rag.context import SourceRef

logger = structlog.get_logger()


def sources_summary(source_count: int) -> str:
    """The synthetic trailer appended after a grounded answer."""
    return f"\n\n---\n**Sources:** {source_count} relevant documents found"


class ResponseStreamer:
    """Re-emits generation fragments unit by unit, then a sources trailer."""

    def __init__(
        self,
        llm_client: OllamaClient,
        model: str = None,
        temperature: Optional[float] = None,
    ):
        self.llm_client = llm_client
        self.model = model or config.CHAT_MODEL
        self.temperature = config.CHAT_TEMPERATURE if temperature is None else temperature

    async def stream(
        self,
        messages: List[Dict[str, str]],
        sources: Sequence[SourceRef] = (),
    ) -> AsyncIterator[str]:
        """Stream the model's answer.

        The returned generator is lazy and single-use. Fragments are yielded in
        arrival order with no buffering. Closing the generator early closes the
        upstream response.

        Raises:
            GenerationStreamError: If the generation service fails; fragments
                already yielded are not retracted
        """
        fragments = 0
        upstream = self.llm_client.chat_stream(
            messages, model=self.model, temperature=self.temperature
        )

        try:
            async with aclosing(upstream) as chunks:
                async for text in chunks:
                    if not text:
                        continue
                    fragments += 1
                    yield text
        except GenerationStreamError:
            raise
        except Exception as e:
            logger.error(
                "generation_stream_failed",
                error=str(e),
                error_type=type(e).__name__,
                fragments_emitted=fragments,
            )
            raise GenerationStreamError(f"Generation stream failed: {e}") from e

        if sources:
            yield sources_summary(len(sources))

        logger.info(
            "generation_stream_completed",
            fragments=fragments,
            source_count=len(sources),
        )
