"""
Claude/Anthropic 官方 SDK 调用封装。

仅在 ProviderConfig.transport == "sdk" 时启用，避免和 HTTP 代理路径混用。
"""

from __future__ import annotations

import threading
from queue import SimpleQueue
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

import anyio

from streamgate.models import ChatMessage

from .sdk_stream import SDKStreamHandle


class ClaudeSDKError(Exception):
    """Raised when the anthropic SDK is unavailable or returns an error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


def _create_client(api_key: str, base_url: Optional[str]):
    try:
        from anthropic import Anthropic  # type: ignore
    except ImportError as exc:  # pragma: no cover - import guard
        raise ClaudeSDKError("anthropic 未安装，请执行: pip install anthropic") from exc

    kwargs: Dict[str, Any] = {"api_key": api_key}
    if base_url:
        kwargs["base_url"] = str(base_url)
    return Anthropic(**kwargs)


def split_system_prompt(
    messages: Sequence[ChatMessage],
) -> Tuple[Optional[str], List[Dict[str, str]]]:
    """
    Anthropic 不接受 role=system 的消息，需要放到顶层 system 参数里。
    """
    system_parts: List[str] = []
    conversation: List[Dict[str, str]] = []
    for message in messages:
        if message.role == "system":
            system_parts.append(message.content)
        else:
            conversation.append({"role": message.role, "content": message.content})
    system = "\n\n".join(system_parts) if system_parts else None
    return system, conversation


def _event_text(event: Any) -> Optional[str]:
    if getattr(event, "type", None) != "content_block_delta":
        return None
    delta = getattr(event, "delta", None)
    text = getattr(delta, "text", None)
    if isinstance(text, str) and text:
        return text
    return None


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
    流式 messages.stream 调用。使用后台线程消费同步 SDK，只回传文本增量。
    """
    client = _create_client(api_key, base_url)
    system, conversation = split_system_prompt(messages)
    payload: Dict[str, Any] = {
        "model": model_id,
        "messages": conversation,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if system:
        payload["system"] = system
    if user:
        payload["metadata"] = {"user_id": user}

    queue: SimpleQueue[Any] = SimpleQueue()
    sentinel = object()
    handle = SDKStreamHandle()

    def _worker():
        try:
            with client.messages.stream(**payload) as stream:
                if not handle.attach(stream):
                    return
                for event in stream:
                    if handle.closed:
                        break
                    text = _event_text(event)
                    if text:
                        queue.put(text)
        except Exception as exc:
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
                raise ClaudeSDKError(
                    f"anthropic 流式调用失败: {item}",
                    status_code=getattr(item, "status_code", None),
                ) from item
            yield item
    finally:
        # Closes the MessageStream the worker may be blocked on.
        handle.close()


__all__ = ["ClaudeSDKError", "split_system_prompt", "stream_text"]
