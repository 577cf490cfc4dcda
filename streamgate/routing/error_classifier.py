"""
上游错误分类

把 ProviderAdapter 抛出的原始异常映射为四类：
- validation: 请求本身无效，换 provider 也没用；
- authentication: 凭证缺失/无效，直接终止 fallback 链；
- rate_limit: 上游限流，可换其它 provider 重试；
- availability: 模型/服务暂不可用或网络错误，可重试。

400/422 中“模型或能力不被支持”的错误视为 availability，允许切换候选。
"""

from __future__ import annotations

import json
from typing import Any, Literal, Optional, Sequence

import httpx

FailureKind = Literal["validation", "authentication", "rate_limit", "availability"]


_UNSUPPORTED_MARKERS = (
    "does not support",
    "do not support",
    "not support",
    "unsupported",
    "not enabled",
    "not available",
    "no endpoints found",
)

_MODEL_HINTS = (
    "model",
    "tool",
    "tools",
    "function",
    "vision",
    "image",
    "multimodal",
)


class UpstreamFailure(Exception):
    """Classified upstream error; the raw exception is kept as __cause__."""

    def __init__(
        self,
        *,
        kind: FailureKind,
        retryable: bool,
        status_code: Optional[int],
        message: str,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.retryable = retryable
        self.status_code = status_code
        self.message = message

    def __str__(self) -> str:
        if self.status_code is not None:
            return f"{self.kind} ({self.status_code}): {self.message}"
        return f"{self.kind}: {self.message}"


def _extract_message_from_json(obj: Any) -> str | None:
    if isinstance(obj, dict):
        # OpenAI: {"error": {"message": "...", ...}}
        if isinstance(obj.get("error"), dict):
            msg = obj["error"].get("message")
            if isinstance(msg, str) and msg.strip():
                return msg.strip()
        # Anthropic style: {"type":"error","error":{"message": "..."}} handled above;
        # flat {"message": "..."} here.
        msg = obj.get("message")
        if isinstance(msg, str) and msg.strip():
            return msg.strip()
        detail = obj.get("detail")
        if isinstance(detail, str) and detail.strip():
            return detail.strip()
    return None


def extract_error_message(error_text: str | None) -> str:
    if not error_text:
        return ""
    text = str(error_text)
    try:
        parsed = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return text
    msg = _extract_message_from_json(parsed)
    return msg or text


def is_model_unavailable(status_code: int | None, error_text: str | None) -> bool:
    """
    只对 400/422 做保守识别；其它状态码按常规规则处理。
    """
    if status_code not in (400, 422):
        return False
    msg = extract_error_message(error_text).lower()
    if not msg:
        return False
    if not any(marker in msg for marker in _UNSUPPORTED_MARKERS):
        return False
    return any(hint in msg for hint in _MODEL_HINTS)


def _kind_for_status(status_code: int) -> FailureKind:
    if status_code in (401, 403):
        return "authentication"
    if status_code == 429:
        return "rate_limit"
    if status_code in (404, 408) or status_code >= 500:
        return "availability"
    return "validation"


def classify_upstream_error(
    exc: BaseException,
    retryable_status_codes: Optional[Sequence[int]] = None,
) -> UpstreamFailure:
    """
    Map a raw adapter exception to an UpstreamFailure.

    When the provider declares `retryable_status_codes`, that list decides
    retryability for HTTP statuses; the kind is still derived from the status.
    """
    if isinstance(exc, UpstreamFailure):
        return exc

    status_code = getattr(exc, "status_code", None)
    if not isinstance(status_code, int):
        status_code = None
    text = getattr(exc, "text", None)
    message = extract_error_message(text) if text else str(exc)
    if not message:
        message = exc.__class__.__name__

    if status_code is None:
        # Network level failure (connect/read timeout, reset) or an SDK error
        # without a status: the provider is unreachable, try the next one.
        if isinstance(exc, httpx.TransportError):
            message = f"{exc.__class__.__name__}: {message}"
        return UpstreamFailure(
            kind="availability",
            retryable=True,
            status_code=None,
            message=message,
        )

    if is_model_unavailable(status_code, text or message):
        return UpstreamFailure(
            kind="availability",
            retryable=True,
            status_code=status_code,
            message=message,
        )

    kind = _kind_for_status(status_code)
    if retryable_status_codes:
        retryable = status_code in retryable_status_codes
    else:
        retryable = kind in ("rate_limit", "availability")
    return UpstreamFailure(
        kind=kind,
        retryable=retryable,
        status_code=status_code,
        message=message,
    )


__all__ = [
    "FailureKind",
    "UpstreamFailure",
    "classify_upstream_error",
    "extract_error_message",
    "is_model_unavailable",
]
