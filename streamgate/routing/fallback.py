"""
候选 Provider 重试逻辑（流式）

- 按顺序尝试候选 (provider, model)；可重试失败则切换下一个；
- 第一个产出文本的候选“胜出”，之后的失败不再 fallback，避免重复输出；
- 被限流的 provider 在本次请求内不再尝试；
- 取消（CancelledError）不是错误，不做分类，直接向上传播。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, Sequence, Set, Tuple

from streamgate.logging_config import logger
from streamgate.models import ChatMessage, ProviderConfig
from streamgate.provider.base import GenerationParams, ProviderAdapter

from .candidates import Candidate
from .error_classifier import UpstreamFailure, classify_upstream_error

AdapterFactory = Callable[[ProviderConfig], ProviderAdapter]


class FallbackExhausted(Exception):
    """Every candidate failed with a retryable error."""

    def __init__(self, last_failure: Optional[UpstreamFailure], attempted: int) -> None:
        self.last_failure = last_failure
        self.attempted = attempted
        if last_failure is None:
            message = "No upstream candidate could be attempted"
        else:
            message = f"All {attempted} upstream candidates failed; last error: {last_failure}"
        super().__init__(message)


class MidStreamFailure(Exception):
    """The serving candidate failed after it had already produced output."""

    def __init__(self, candidate: Candidate, failure: UpstreamFailure) -> None:
        self.candidate = candidate
        self.failure = failure
        super().__init__(
            f"{candidate.provider_id}/{candidate.model_id} failed mid-stream: {failure}"
        )


@dataclass
class Attempt:
    provider_id: str
    model_id: str
    failure: Optional[UpstreamFailure] = None


class FallbackOrchestrator:
    """
    Drives one request through the candidate chain.

    `stream()` yields (candidate, text) pairs; `served_by` is set to the
    candidate that produced the output, `attempts` records every call made.
    """

    def __init__(self, adapter_factory: AdapterFactory) -> None:
        self.adapter_factory = adapter_factory
        self.attempts: List[Attempt] = []
        self.served_by: Optional[Candidate] = None

    async def stream(
        self,
        candidates: Sequence[Candidate],
        messages: Sequence[ChatMessage],
        params: GenerationParams,
        client_token: Optional[str] = None,
    ) -> AsyncIterator[Tuple[Candidate, str]]:
        last_failure: Optional[UpstreamFailure] = None
        rate_limited: Set[str] = set()

        for candidate in candidates:
            if candidate.provider_id in rate_limited:
                logger.info(
                    "fallback: skipping %s/%s (provider rate limited earlier in this request)",
                    candidate.provider_id,
                    candidate.model_id,
                )
                continue

            attempt = Attempt(provider_id=candidate.provider_id, model_id=candidate.model_id)
            self.attempts.append(attempt)
            started = False
            iterator = None
            try:
                adapter = self.adapter_factory(candidate.provider)
                iterator = adapter.stream_text(
                    model_id=candidate.model_id,
                    messages=messages,
                    params=params,
                    client_token=client_token,
                )
                async for text in iterator:
                    if not text:
                        continue
                    if not started:
                        started = True
                        self.served_by = candidate
                        logger.info(
                            "fallback: %s/%s started streaming (attempt %d)",
                            candidate.provider_id,
                            candidate.model_id,
                            len(self.attempts),
                        )
                    yield candidate, text
                if not started:
                    self.served_by = candidate
                return
            except Exception as exc:
                failure = classify_upstream_error(
                    exc, candidate.provider.retryable_status_codes
                )
                attempt.failure = failure
                if started:
                    logger.warning(
                        "fallback: %s/%s failed after output began: %s",
                        candidate.provider_id,
                        candidate.model_id,
                        failure,
                    )
                    raise MidStreamFailure(candidate, failure) from exc

                logger.warning(
                    "fallback: %s/%s failed (kind=%s retryable=%s): %s",
                    candidate.provider_id,
                    candidate.model_id,
                    failure.kind,
                    failure.retryable,
                    failure.message,
                )
                if not failure.retryable:
                    raise failure from exc
                if failure.kind == "rate_limit":
                    rate_limited.add(candidate.provider_id)
                last_failure = failure
            finally:
                aclose = getattr(iterator, "aclose", None)
                if aclose is not None:
                    await aclose()

        raise FallbackExhausted(last_failure, len(self.attempts))


__all__ = [
    "AdapterFactory",
    "Attempt",
    "FallbackExhausted",
    "FallbackOrchestrator",
    "MidStreamFailure",
]
