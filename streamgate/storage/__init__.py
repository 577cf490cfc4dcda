from .janitor import StreamStoreJanitor
from .stream_store import (
    InMemoryStreamStore,
    StreamExistsError,
    StreamNotFoundError,
    StreamStore,
)

__all__ = [
    "InMemoryStreamStore",
    "StreamExistsError",
    "StreamNotFoundError",
    "StreamStore",
    "StreamStoreJanitor",
]
