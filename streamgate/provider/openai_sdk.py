"""
Helpers for calling OpenAI via 官方 Python SDK。

同步 SDK 在后台线程中消费，分片通过队列传回异步上下文。
"""

from __future__ import annotations

import threading
from queue import SimpleQueue
from typing import Any, AsyncIterator, Dict, Optional, Sequence

import anyio

from streamgate.models import ChatMessage

from .sdk_stream import SDKStreamHandle, close_quietly


class OpenAISDKError(Exception):
    """Raised when the openai SDK is unavailable or returns an error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _create_client(api_key: str, base_url: Optional[str]):
    try:
        from openai import OpenAI  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise OpenAISDKError("openai 未安装，请执行: pip install openai") from exc

    kwargs: Dict[str, Any] = {"api_key": api_key}
    if base_url:
        kwargs["base_url"] = str(base_url)
    return OpenAI(**kwargs)


def _chunk_text(chunk: Any) -> Optional[str]:
    choices = getattr(chunk, "choices", None)
    if not choices:
        return None
    delta = getattr(choices[0], "delta", None)
    content = getattr(delta, "content", None)
    if isinstance(content, str) and content:
        return content
    return None


def _build_payload(
    model_id: str,
    messages: Sequence[ChatMessage],
    temperature: float,
    max_tokens: int,
    user: Optional[str],
) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "model": model_id,
        "messages": [m.model_dump() for m in messages],
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": True,
    }
    if user:
        payload["user"] = user
    return payload


async def stream_text(
    *,
    api_key: str,
    model_id: str,
    messages: Sequence[ChatMessage],
    temperature: float,
    max_tokens: int,
    base_url: Optional[str],
    user: Optional[str] = None,
) -> AsyncIterator[str]:
    """
    流式 chat.completions 调用，仅产出非空文本分片。

    Closing the iterator (or cancelling the consuming task) closes the SDK
    stream from the async side, so a worker blocked on a stalled upstream
    read is released instead of waiting for the next chunk.
    """
    client = _create_client(api_key, base_url)
    payload = _build_payload(model_id, messages, temperature, max_tokens, user)

    queue: SimpleQueue[Any] = SimpleQueue()
    sentinel = object()
    handle = SDKStreamHandle()

    def _worker():
        try:
            stream = client.chat.completions.create(**payload)
            if not handle.attach(stream):
                close_quietly(stream)
                return
            for chunk in stream:
                if handle.closed:
                    break
                text = _chunk_text(chunk)
                if text:
                    queue.put(text)
        except Exception as exc:
            # After close() the SDK read fails; nobody is listening any more.
            if not handle.closed:
                queue.put(exc)
        finally:
            handle.close()
            queue.put(sentinel)

    thread = threading.Thread(target=_worker, daemon=True)
    thread.start()

    try:
        while True:
            item = await anyio.to_thread.run_sync(queue.get, abandon_on_cancel=True)
            if item is sentinel:
                break
            if isinstance(item, Exception):
                raise OpenAISDKError(
                    f"openai 流式调用失败: {item}",
                    status_code=getattr(item, "status_code", None),
                ) from item
            yield item
    finally:
        handle.close()


__all__ = ["OpenAISDKError", "stream_text"]
