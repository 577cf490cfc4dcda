import time
from enum import Enum
from typing import List, Literal, Optional

from pydantic import BaseModel, Field


class ChatMessage(BaseModel):
    role: Literal["user", "assistant", "system"]
    content: str


class StreamStatus(str, Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    ABORTED = "aborted"
    FAILED = "failed"


class StreamSession(BaseModel):
    """
    Resumable state of one logical generation request.

    accumulated_text only ever grows while the record exists; the store
    enforces this on every write.
    """

    id: str = Field(..., description="Stream id shared with the client")
    original_messages: List[ChatMessage] = Field(
        default_factory=list,
        description="Conversation history the generation was based on",
    )
    model: Optional[str] = Field(
        None, description="Model that is (or was last) producing output"
    )
    provider_id: Optional[str] = Field(None, description="Provider serving `model`")
    accumulated_text: str = Field("", description="Everything generated so far")
    created_at: float = Field(
        default_factory=time.time, description="Creation timestamp (epoch seconds)"
    )
    last_updated_at: float = Field(
        default_factory=time.time,
        description="Timestamp of the last appended chunk (epoch seconds)",
    )
    auth_token: Optional[str] = Field(
        default=None,
        repr=False,
        description="Client supplied upstream credential kept for resume",
    )
    status: StreamStatus = Field(default=StreamStatus.STREAMING)


__all__ = ["ChatMessage", "StreamSession", "StreamStatus"]
