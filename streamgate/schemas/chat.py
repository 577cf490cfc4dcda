from __future__ import annotations

import re
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from streamgate.models import ChatMessage, StreamStatus
from streamgate.settings import settings

_MODEL_ID_RE = re.compile(r"^[A-Za-z0-9/_.:-]+$")
_STREAM_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class ChatStreamRequest(BaseModel):
    """
    Inbound generation request.

    Limits that depend on deployment (message count, content size, token
    bound, allow-list) are read from settings at validation time.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    messages: List[ChatMessage]
    model: Optional[str] = Field(default=None, max_length=100)
    temperature: Optional[float] = Field(default=None, ge=0, le=2)
    max_tokens: Optional[int] = Field(default=None, alias="maxTokens", ge=1)
    resume: bool = False
    stream_id: Optional[str] = Field(default=None, alias="streamId", max_length=100)
    partial_content: Optional[str] = Field(default=None, alias="partialContent")
    token: Optional[str] = Field(default=None, max_length=1000, repr=False)

    @field_validator("messages")
    @classmethod
    def _check_messages(cls, value: List[ChatMessage]) -> List[ChatMessage]:
        if not value:
            raise ValueError("Messages array cannot be empty")
        if len(value) > settings.max_messages:
            raise ValueError(f"Too many messages (max {settings.max_messages})")
        for idx, message in enumerate(value):
            if not message.content:
                raise ValueError(f"Message {idx} content cannot be empty")
            if len(message.content) > settings.max_message_chars:
                raise ValueError(
                    f"Message {idx} content too long (max {settings.max_message_chars} characters)"
                )
        return value

    @field_validator("model")
    @classmethod
    def _check_model(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if not _MODEL_ID_RE.match(value):
            raise ValueError("Model name contains invalid characters")
        allowed = settings.get_allowed_models()
        if allowed and value not in allowed:
            raise ValueError(f"Model '{value}' is not allowed")
        return value

    @field_validator("stream_id")
    @classmethod
    def _check_stream_id(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        if not _STREAM_ID_RE.match(value):
            raise ValueError("Stream ID contains invalid characters")
        return value

    @model_validator(mode="after")
    def _check_bounds(self) -> "ChatStreamRequest":
        if self.resume and not self.stream_id:
            raise ValueError("streamId is required when resume is true")
        if self.max_tokens is not None and self.max_tokens > settings.max_tokens_limit:
            raise ValueError(f"maxTokens must be <= {settings.max_tokens_limit}")
        if (
            self.partial_content is not None
            and len(self.partial_content) > settings.max_partial_chars
        ):
            raise ValueError(
                f"Partial content too long (max {settings.max_partial_chars} characters)"
            )
        return self

    def effective_temperature(self) -> float:
        if self.temperature is None:
            return settings.default_temperature
        return self.temperature

    def effective_max_tokens(self) -> int:
        if self.max_tokens is None:
            return min(settings.default_max_tokens, settings.max_tokens_limit)
        return self.max_tokens


class StreamStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stream_id: str = Field(..., alias="streamId")
    model: Optional[str] = None
    accumulated_text: str = Field("", alias="accumulatedText")
    last_updated_at: float = Field(..., alias="lastUpdatedAt")
    status: StreamStatus
    active: bool = False


class StreamCancelResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    stream_id: str = Field(..., alias="streamId")
    cancelled: bool


__all__ = ["ChatStreamRequest", "StreamCancelResponse", "StreamStatusResponse"]
