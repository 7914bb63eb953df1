"""Request bodies accepted by the HTTP API."""
from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from kbchat import config


class ChatMessage(BaseModel):
    """One turn of the conversation."""
    role: Literal["user", "assistant", "system"]
    content: str = Field(..., max_length=config.MAX_MESSAGE_LENGTH)


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""
    messages: List[ChatMessage] = Field(..., min_length=1)
    limit: Optional[int] = Field(default=None, ge=1, le=50)
    threshold: Optional[float] = Field(default=None, ge=-1.0, le=1.0)


class QueryRequest(BaseModel):
    """Body of POST /api/retrieve."""
    query: str = Field(..., min_length=1, max_length=config.MAX_MESSAGE_LENGTH)
    limit: Optional[int] = Field(default=None, ge=1, le=50)
    threshold: Optional[float] = Field(default=None, ge=-1.0, le=1.0)
