from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field, HttpUrl


class ProviderConfig(BaseModel):
    """
    Static configuration for an upstream generation provider, usually loaded from env.
    """

    id: str = Field(..., description="Provider unique identifier (short slug)")
    name: str = Field(..., description="Human readable provider name")
    base_url: HttpUrl = Field(..., description="API base URL")
    api_key: Optional[str] = Field(
        default=None,
        description=(
            "Upstream bearer credential. May be omitted for raw-protocol "
            "providers when clients supply their own token."
        ),
    )
    transport: Literal["http", "sdk"] = Field(
        default="http",
        description="'http' = raw event-stream protocol, 'sdk' = official vendor SDK",
    )
    sdk_vendor: Optional[Literal["openai", "claude"]] = Field(
        default=None,
        description="Official SDK used when transport == 'sdk'; detected when omitted",
    )
    chat_path: str = Field(
        default="/v1/chat/completions",
        description="Path of the chat-completion endpoint for the http transport",
    )
    models: List[str] = Field(
        default_factory=list,
        description="Model ids served by this provider; empty means catch-all",
    )
    custom_headers: Optional[Dict[str, str]] = Field(
        None, description="Extra headers to send to this provider"
    )
    retryable_status_codes: Optional[List[int]] = Field(
        default=None,
        description=(
            "HTTP status codes that should be treated as retryable for this "
            "provider (e.g. [429, 500, 502, 503, 504])."
        ),
    )

    def serves(self, model_id: str) -> bool:
        return model_id in self.models


__all__ = ["ProviderConfig"]
