"""
Raw event-stream adapter (OpenAI compatible chat completions over httpx).

Upstream bytes may be split at arbitrary positions, including in the middle
of a line or a multi-byte UTF-8 sequence, so decoding is incremental and
only complete lines are parsed.
"""

from __future__ import annotations

import codecs
import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import httpx

from streamgate.logging_config import logger
from streamgate.models import ChatMessage, ProviderConfig
from streamgate.settings import settings

from .base import GenerationParams, ProviderAdapter, UpstreamStreamError

DONE_MARKER = "[DONE]"


class SSELineDecoder:
    """
    Incremental decoder turning raw byte chunks into complete text lines.

    A trailing partial line is carried over to the next feed(); flush()
    returns whatever is left once the upstream body ends.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""

    def feed(self, chunk: bytes) -> List[str]:
        self._buffer += self._decoder.decode(chunk)
        if "\n" not in self._buffer:
            return []
        *lines, self._buffer = self._buffer.split("\n")
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> List[str]:
        self._buffer += self._decoder.decode(b"", final=True)
        rest, self._buffer = self._buffer, ""
        rest = rest.rstrip("\r")
        return [rest] if rest else []


def _error_message_from_payload(error: Any) -> str:
    if isinstance(error, dict):
        message = error.get("message") or error.get("detail")
        if isinstance(message, str) and message:
            return message
        return json.dumps(error, ensure_ascii=False)
    return str(error)


def _error_status_from_payload(error: Any) -> Optional[int]:
    if not isinstance(error, dict):
        return None
    code = error.get("code") or error.get("status")
    if isinstance(code, int):
        return code
    if isinstance(code, str) and code.isdigit():
        return int(code)
    return None


def parse_sse_line(line: str) -> Optional[str]:
    """
    Extract the text fragment carried by one event-stream line.

    Returns None for lines that carry no text (comments, keep-alives,
    non-data fields, malformed JSON, empty deltas). Returns DONE_MARKER
    for the end-of-stream sentinel. Raises UpstreamStreamError when the
    upstream reports an error in-band.
    """
    if not line or line.startswith(":"):
        return None
    if not line.startswith("data:"):
        return None

    data = line[len("data:"):].strip()
    if not data:
        return None
    if data == DONE_MARKER:
        return DONE_MARKER

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.debug("Skipping malformed upstream event line: %r", data[:200])
        return None
    if not isinstance(payload, dict):
        return None

    if payload.get("error"):
        error = payload["error"]
        raise UpstreamStreamError(
            status_code=_error_status_from_payload(error),
            message=_error_message_from_payload(error),
            text=data,
        )

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    if isinstance(content, str) and content:
        return content
    return None


def _join_url(base_url: Any, path: str) -> str:
    return str(base_url).rstrip("/") + "/" + path.lstrip("/")


class HttpStreamAdapter(ProviderAdapter):
    """
    Streams chat completions from an OpenAI compatible endpoint using the
    shared httpx.AsyncClient.
    """

    def __init__(self, provider: ProviderConfig, client: httpx.AsyncClient) -> None:
        super().__init__(provider)
        self.client = client

    def build_headers(self, token: str | None) -> Dict[str, str]:
        headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "text/event-stream",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if settings.upstream_referer:
            headers["HTTP-Referer"] = settings.upstream_referer
        if settings.upstream_title:
            headers["X-Title"] = settings.upstream_title
        if self.provider.custom_headers:
            headers.update(self.provider.custom_headers)
        return headers

    def build_payload(
        self,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model_id,
            "messages": [m.model_dump() for m in messages],
            "stream": True,
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
        }
        if params.user:
            payload["user"] = params.user
        return payload

    async def stream_text(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
        client_token: str | None = None,
    ) -> AsyncIterator[str]:
        url = _join_url(self.provider.base_url, self.provider.chat_path)
        headers = self.build_headers(self.resolve_token(client_token))
        payload = self.build_payload(model_id, messages, params)

        async with self.client.stream("POST", url, headers=headers, json=payload) as resp:
            if resp.status_code >= 400:
                text_bytes = await resp.aread()
                text = text_bytes.decode("utf-8", errors="ignore")
                logger.warning(
                    "Upstream %s returned %s for model=%s; response=%s",
                    self.provider.id,
                    resp.status_code,
                    model_id,
                    text[:500],
                )
                raise UpstreamStreamError(
                    status_code=resp.status_code,
                    message=_message_from_error_body(text) or f"HTTP {resp.status_code}",
                    text=text,
                )

            decoder = SSELineDecoder()
            async for chunk in resp.aiter_bytes():
                if not chunk:
                    continue
                for line in decoder.feed(chunk):
                    fragment = parse_sse_line(line)
                    if fragment is None:
                        continue
                    if fragment == DONE_MARKER:
                        return
                    yield fragment

            for line in decoder.flush():
                fragment = parse_sse_line(line)
                if fragment is None:
                    continue
                if fragment == DONE_MARKER:
                    return
                yield fragment


def _message_from_error_body(text: str) -> Optional[str]:
    try:
        payload = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return text.strip()[:500] or None
    if isinstance(payload, dict):
        if "error" in payload:
            return _error_message_from_payload(payload["error"])
        message = payload.get("message") or payload.get("detail")
        if isinstance(message, str):
            return message
    return text.strip()[:500] or None


__all__ = [
    "DONE_MARKER",
    "HttpStreamAdapter",
    "SSELineDecoder",
    "parse_sse_line",
]
