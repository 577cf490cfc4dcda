"""
Fresh-vs-resume decision and continuation prompt synthesis.

Previous content is looked up in priority order: the caller's partial
content hint, then the stored session text, else nothing (fresh). Resume
never fails: unknown or expired ids simply degrade to a fresh generation
using only what the client sent.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import List, Optional

from streamgate.models import ChatMessage, StreamSession
from streamgate.schemas import ChatStreamRequest
from streamgate.storage import StreamStore

CONTINUE_INSTRUCTION = "Continue from exactly where you stopped. Do not add ellipsis."
COMPLETE_WORD_INSTRUCTION = "Complete the current word/sentence first."
NO_REPEAT_INSTRUCTION = "Do not repeat any content."

_TERMINAL_PUNCTUATION = (".", "!", "?")


def new_stream_id() -> str:
    return str(uuid.uuid4())


def ends_mid_word(text: str) -> bool:
    """True when text stops inside a word or clause (no trailing space, no . ! ?)."""
    if not text or text[-1].isspace():
        return False
    return not text.rstrip().endswith(_TERMINAL_PUNCTUATION)


def build_continuation_prompt(previous_content: str) -> str:
    parts = [CONTINUE_INSTRUCTION]
    if ends_mid_word(previous_content):
        parts.append(COMPLETE_WORD_INSTRUCTION)
    parts.append(NO_REPEAT_INSTRUCTION)
    return " ".join(parts)


def build_continuation_messages(
    messages: List[ChatMessage], previous_content: str
) -> List[ChatMessage]:
    return [
        *messages,
        ChatMessage(role="assistant", content=previous_content),
        ChatMessage(role="user", content=build_continuation_prompt(previous_content)),
    ]


@dataclass
class ResumePlan:
    stream_id: str
    resume: bool
    base_messages: List[ChatMessage]
    messages: List[ChatMessage]
    previous_content: str = ""
    source: Optional[str] = None  # "hint" | "store" | None
    session: Optional[StreamSession] = None
    preferred_model: Optional[str] = None
    client_token: Optional[str] = None

    @property
    def is_continuation(self) -> bool:
        return bool(self.previous_content)


class ResumptionCoordinator:
    def __init__(self, store: StreamStore) -> None:
        self.store = store

    async def plan(
        self, request: ChatStreamRequest, *, stream_id: Optional[str] = None
    ) -> ResumePlan:
        stream_id = stream_id or request.stream_id or new_stream_id()
        messages = list(request.messages)

        if not request.resume:
            return ResumePlan(
                stream_id=stream_id,
                resume=False,
                base_messages=messages,
                messages=messages,
                preferred_model=request.model,
                client_token=request.token,
            )

        session = await self.store.get(stream_id)
        previous = ""
        source: Optional[str] = None
        if request.partial_content:
            previous, source = request.partial_content, "hint"
        elif session is not None and session.accumulated_text:
            previous, source = session.accumulated_text, "store"

        base = list(session.original_messages) if session is not None else messages
        effective = build_continuation_messages(base, previous) if previous else base

        return ResumePlan(
            stream_id=stream_id,
            resume=True,
            base_messages=base,
            messages=effective,
            previous_content=previous,
            source=source,
            session=session,
            preferred_model=request.model or (session.model if session else None),
            client_token=request.token or (session.auth_token if session else None),
        )


__all__ = [
    "COMPLETE_WORD_INSTRUCTION",
    "CONTINUE_INSTRUCTION",
    "NO_REPEAT_INSTRUCTION",
    "ResumePlan",
    "ResumptionCoordinator",
    "build_continuation_messages",
    "build_continuation_prompt",
    "ends_mid_word",
    "new_stream_id",
]
