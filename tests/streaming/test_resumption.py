import pytest

from streamgate.models import ChatMessage, StreamSession, StreamStatus
from streamgate.schemas import ChatStreamRequest
from streamgate.storage import InMemoryStreamStore
from streamgate.streaming import ResumptionCoordinator, build_continuation_prompt
from streamgate.streaming.resumption import (
    COMPLETE_WORD_INSTRUCTION,
    CONTINUE_INSTRUCTION,
    NO_REPEAT_INSTRUCTION,
    ends_mid_word,
    new_stream_id,
)

STORY = [ChatMessage(role="user", content="Tell me a story")]


@pytest.mark.parametrize(
    "text, expected",
    [
        ("Once upon", True),
        ("Once upon a ti", True),
        ("Once upon ", False),
        ("The end.", False),
        ("Really?", False),
        ("Wow!", False),
        ("", False),
    ],
)
def test_ends_mid_word(text, expected):
    assert ends_mid_word(text) is expected


def test_continuation_prompt_asks_to_finish_the_word_only_when_needed():
    mid = build_continuation_prompt("Once upon")
    assert mid == " ".join([CONTINUE_INSTRUCTION, COMPLETE_WORD_INSTRUCTION, NO_REPEAT_INSTRUCTION])

    clean = build_continuation_prompt("The end.")
    assert COMPLETE_WORD_INSTRUCTION not in clean
    assert clean.startswith(CONTINUE_INSTRUCTION)
    assert clean.endswith(NO_REPEAT_INSTRUCTION)


def test_new_stream_ids_are_unique():
    assert new_stream_id() != new_stream_id()


def _resume_request(**kwargs) -> ChatStreamRequest:
    payload = {"messages": [{"role": "user", "content": "Tell me a story"}], "resume": True}
    payload.update(kwargs)
    return ChatStreamRequest.model_validate(payload)


@pytest.fixture
def store() -> InMemoryStreamStore:
    return InMemoryStreamStore(retention_seconds=60)


@pytest.mark.asyncio
async def test_fresh_request_uses_client_messages(store):
    request = ChatStreamRequest.model_validate(
        {"messages": [{"role": "user", "content": "hi"}], "model": "openai/gpt-4o-mini"}
    )
    plan = await ResumptionCoordinator(store).plan(request)

    assert plan.resume is False
    assert plan.previous_content == ""
    assert plan.messages == request.messages
    assert plan.preferred_model == "openai/gpt-4o-mini"
    assert plan.stream_id


@pytest.mark.asyncio
async def test_resume_from_stored_text(store):
    await store.create(
        StreamSession(
            id="s1",
            original_messages=STORY,
            accumulated_text="Once upon",
            model="anthropic/claude-3.5-haiku",
            auth_token="client-token",
            status=StreamStatus.ABORTED,
        )
    )

    plan = await ResumptionCoordinator(store).plan(
        _resume_request(streamId="s1", messages=[{"role": "user", "content": "other"}])
    )

    assert plan.resume is True
    assert plan.source == "store"
    assert plan.previous_content == "Once upon"
    assert plan.base_messages == STORY
    assert [m.role for m in plan.messages] == ["user", "assistant", "user"]
    assert plan.messages[1].content == "Once upon"
    assert COMPLETE_WORD_INSTRUCTION in plan.messages[2].content
    assert plan.preferred_model == "anthropic/claude-3.5-haiku"
    assert plan.client_token == "client-token"


@pytest.mark.asyncio
async def test_partial_content_hint_wins_over_store(store):
    await store.create(StreamSession(id="s1", original_messages=STORY, accumulated_text="Once"))

    plan = await ResumptionCoordinator(store).plan(
        _resume_request(streamId="s1", partialContent="Once upon a time.")
    )

    assert plan.source == "hint"
    assert plan.previous_content == "Once upon a time."
    assert COMPLETE_WORD_INSTRUCTION not in plan.messages[-1].content


@pytest.mark.asyncio
async def test_unknown_stream_degrades_to_fresh_generation(store):
    plan = await ResumptionCoordinator(store).plan(_resume_request(streamId="missing"))

    assert plan.resume is True
    assert plan.session is None
    assert plan.source is None
    assert plan.previous_content == ""
    assert plan.is_continuation is False
    assert plan.messages == STORY


@pytest.mark.asyncio
async def test_expired_stream_is_not_resumable():
    now = [0.0]
    store = InMemoryStreamStore(retention_seconds=10, clock=lambda: now[0])
    await store.create(StreamSession(id="s1", original_messages=STORY, accumulated_text="Once"))
    now[0] = 30.0

    plan = await ResumptionCoordinator(store).plan(_resume_request(streamId="s1"))

    assert plan.session is None
    assert plan.previous_content == ""
    assert plan.messages == STORY


@pytest.mark.asyncio
async def test_unknown_stream_with_hint_still_continues(store):
    plan = await ResumptionCoordinator(store).plan(
        _resume_request(streamId="missing", partialContent="Once upon")
    )
    assert plan.is_continuation is True
    assert plan.messages[-2] == ChatMessage(role="assistant", content="Once upon")
