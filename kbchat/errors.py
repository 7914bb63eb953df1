"""Error types raised by the knowledge-base pipeline."""


class KBChatError(Exception):
    """Base class for pipeline errors."""


class InvalidParameters(KBChatError):
    """Bad chunking parameters, missing text, or a malformed request."""


class EmbeddingServiceError(KBChatError):
    """The embedding service was unreachable or returned a bad response."""


class StorageError(KBChatError):
    """The document store failed to persist or query chunks."""


class GenerationStreamError(KBChatError):
    """The generation service failed while a response was streaming."""
