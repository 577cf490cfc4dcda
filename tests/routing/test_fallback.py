from __future__ import annotations

import httpx
import pytest

from streamgate.models import ChatMessage
from streamgate.provider.base import GenerationParams, UpstreamStreamError
from streamgate.routing.candidates import Candidate
from streamgate.routing.error_classifier import UpstreamFailure
from streamgate.routing.fallback import (
    FallbackExhausted,
    FallbackOrchestrator,
    MidStreamFailure,
)

MESSAGES = [ChatMessage(role="user", content="Tell me a story")]
PARAMS = GenerationParams(temperature=0.7, max_tokens=256)


def _fail(status_code: int, message: str = "upstream failed") -> UpstreamStreamError:
    return UpstreamStreamError(status_code=status_code, message=message)


async def _drain(orchestrator: FallbackOrchestrator, candidates) -> list[tuple[str, str]]:
    return [
        (candidate.model_id, text)
        async for candidate, text in orchestrator.stream(candidates, MESSAGES, PARAMS)
    ]


@pytest.mark.asyncio
async def test_fallback_tries_candidates_in_declared_order(fake_upstream, provider_factory):
    candidates = [
        Candidate(provider_factory("pa"), "A"),
        Candidate(provider_factory("pb"), "B"),
        Candidate(provider_factory("pc"), "C"),
    ]
    fake_upstream.script("A", _fail(503))
    fake_upstream.script("B", _fail(502))
    fake_upstream.script("C", "Once", " upon")

    orchestrator = FallbackOrchestrator(fake_upstream.factory)
    out = await _drain(orchestrator, candidates)

    assert out == [("C", "Once"), ("C", " upon")]
    assert fake_upstream.called_models == ["A", "B", "C"]
    assert orchestrator.served_by is candidates[2]
    assert [a.failure.kind if a.failure else None for a in orchestrator.attempts] == [
        "availability",
        "availability",
        None,
    ]


@pytest.mark.asyncio
async def test_non_retryable_failure_short_circuits(fake_upstream, provider_factory):
    candidates = [
        Candidate(provider_factory("pa"), "A"),
        Candidate(provider_factory("pb"), "B"),
    ]
    original = _fail(401, "invalid api key")
    fake_upstream.script("A", original)
    fake_upstream.script("B", "never")

    orchestrator = FallbackOrchestrator(fake_upstream.factory)
    with pytest.raises(UpstreamFailure) as exc_info:
        await _drain(orchestrator, candidates)

    assert exc_info.value.kind == "authentication"
    assert exc_info.value.__cause__ is original
    assert fake_upstream.called_models == ["A"]
    assert orchestrator.served_by is None


@pytest.mark.asyncio
async def test_all_retryable_failures_surface_the_last_error(fake_upstream, provider_factory):
    request = httpx.Request("POST", "https://pc.example.com/v1/chat/completions")
    candidates = [
        Candidate(provider_factory("pa"), "A"),
        Candidate(provider_factory("pb"), "B"),
        Candidate(provider_factory("pc"), "C"),
    ]
    fake_upstream.script("A", _fail(500))
    fake_upstream.script("B", _fail(429, "rate limited"))
    fake_upstream.script("C", httpx.ConnectError("refused", request=request))

    orchestrator = FallbackOrchestrator(fake_upstream.factory)
    with pytest.raises(FallbackExhausted) as exc_info:
        await _drain(orchestrator, candidates)

    assert exc_info.value.attempted == 3
    assert exc_info.value.last_failure.kind == "availability"
    assert exc_info.value.last_failure.status_code is None


@pytest.mark.asyncio
async def test_rate_limited_provider_is_skipped_for_rest_of_request(
    fake_upstream, provider_factory
):
    shared = provider_factory("shared", models=["A", "B"])
    other = provider_factory("other", models=["C"])
    candidates = [Candidate(shared, "A"), Candidate(shared, "B"), Candidate(other, "C")]
    fake_upstream.script("A", _fail(429, "rate limited"))
    fake_upstream.script("B", "never")
    fake_upstream.script("C", "hello")

    orchestrator = FallbackOrchestrator(fake_upstream.factory)
    out = await _drain(orchestrator, candidates)

    assert out == [("C", "hello")]
    assert fake_upstream.called_models == ["A", "C"]


@pytest.mark.asyncio
async def test_failure_after_output_is_not_retried(fake_upstream, provider_factory):
    candidates = [
        Candidate(provider_factory("pa"), "A"),
        Candidate(provider_factory("pb"), "B"),
    ]
    fake_upstream.script("A", "Once", _fail(503))
    fake_upstream.script("B", "Once upon a time")

    orchestrator = FallbackOrchestrator(fake_upstream.factory)
    seen: list[str] = []
    with pytest.raises(MidStreamFailure) as exc_info:
        async for _, text in orchestrator.stream(candidates, MESSAGES, PARAMS):
            seen.append(text)

    assert seen == ["Once"]
    assert exc_info.value.candidate is candidates[0]
    assert exc_info.value.failure.kind == "availability"
    assert fake_upstream.called_models == ["A"]


@pytest.mark.asyncio
async def test_every_attempt_releases_its_upstream(fake_upstream, provider_factory):
    candidates = [
        Candidate(provider_factory("pa"), "A"),
        Candidate(provider_factory("pb"), "B"),
    ]
    fake_upstream.script("A", _fail(503))
    fake_upstream.script("B", "ok")

    await _drain(FallbackOrchestrator(fake_upstream.factory), candidates)

    assert fake_upstream.closed == ["A", "B"]


@pytest.mark.asyncio
async def test_empty_candidate_list_is_exhausted_without_error(fake_upstream):
    with pytest.raises(FallbackExhausted) as exc_info:
        await _drain(FallbackOrchestrator(fake_upstream.factory), [])
    assert exc_info.value.last_failure is None
