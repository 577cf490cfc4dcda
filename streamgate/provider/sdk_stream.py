"""
同步 SDK 流的跨线程关闭句柄。

SDK 流在后台线程里阻塞读取；消费方（asyncio 侧）被取消时，直接在当前线程
关闭 SDK 的流对象，底层 HTTP 连接随之断开，工作线程的阻塞读取会立刻返回。
"""

from __future__ import annotations

import threading
from typing import Any

from streamgate.logging_config import logger


def close_quietly(stream: Any) -> None:
    close = getattr(stream, "close", None)
    if not callable(close):
        return
    try:
        close()
    except Exception as exc:
        logger.debug("Ignoring error while closing SDK stream: %s", exc)


class SDKStreamHandle:
    """
    Shared between the worker thread that reads an SDK stream and the async
    consumer. Whichever side calls close() first tears the stream down; a
    stream attached after close() is closed immediately by the worker.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stream: Any = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def attach(self, stream: Any) -> bool:
        with self._lock:
            if self._closed:
                return False
            self._stream = stream
            return True

    def close(self) -> None:
        with self._lock:
            self._closed = True
            stream, self._stream = self._stream, None
        if stream is not None:
            close_quietly(stream)


__all__ = ["SDKStreamHandle", "close_quietly"]
