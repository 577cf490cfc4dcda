from .chat import ChatStreamRequest, StreamCancelResponse, StreamStatusResponse

__all__ = ["ChatStreamRequest", "StreamCancelResponse", "StreamStatusResponse"]
