"""
Provider adapter contract.

Every upstream transport (raw event-stream over httpx, official vendor SDK)
is exposed to the routing layer as an async iterator of text fragments.
Failures surface as exceptions the error classifier understands: either
UpstreamStreamError (carries the HTTP status) or the transport's own
exception type.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from streamgate.models import ChatMessage, ProviderConfig


@dataclass(frozen=True)
class GenerationParams:
    temperature: float
    max_tokens: int
    user: Optional[str] = None


class UpstreamStreamError(Exception):
    """
    Upstream answered with a non-success status, or reported an error
    inside an otherwise healthy event stream.
    """

    def __init__(
        self,
        *,
        status_code: int | None,
        message: str,
        text: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message
        self.text = text


class ProviderAdapter(ABC):
    """
    Streams one generation attempt against a single provider/model pair.
    """

    def __init__(self, provider: ProviderConfig) -> None:
        self.provider = provider

    def resolve_token(self, client_token: str | None) -> str | None:
        # Provider-level credentials win over a client supplied token.
        return self.provider.api_key or client_token

    @abstractmethod
    def stream_text(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
        client_token: str | None = None,
    ) -> AsyncIterator[str]:
        """
        Yield non-empty text fragments in upstream order.

        Closing the iterator (or cancelling the task consuming it) must
        release the upstream connection.
        """


__all__ = ["GenerationParams", "ProviderAdapter", "UpstreamStreamError"]
