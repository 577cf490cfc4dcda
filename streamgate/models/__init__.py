from .provider import ProviderConfig
from .stream_session import ChatMessage, StreamSession, StreamStatus

__all__ = [
    "ChatMessage",
    "ProviderConfig",
    "StreamSession",
    "StreamStatus",
]
