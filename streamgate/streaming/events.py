"""
Outbound event-stream frames.

Every frame is a single `data: <json>\\n\\n` record with a `type`
discriminator so clients can dispatch without SSE `event:` fields.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional


def encode_event(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def stream_id_event(stream_id: str, *, resume: bool) -> str:
    return encode_event({"type": "streamId", "streamId": stream_id, "resume": resume})


def resume_event(stream_id: str, content: str) -> str:
    return encode_event({"type": "resume", "streamId": stream_id, "content": content})


def delta_event(content: str) -> str:
    return encode_event({"type": "delta", "content": content})


def done_event(stream_id: str, model: Optional[str]) -> str:
    return encode_event({"type": "done", "streamId": stream_id, "model": model})


def abort_event(stream_id: str, reason: str) -> str:
    return encode_event({"type": "abort", "streamId": stream_id, "reason": reason})


def error_event(
    stream_id: str,
    message: str,
    *,
    error_type: str,
    retryable: bool,
    resumable: bool,
) -> str:
    return encode_event(
        {
            "type": "error",
            "streamId": stream_id,
            "message": message,
            "errorType": error_type,
            "retryable": retryable,
            "resumable": resumable,
        }
    )


__all__ = [
    "abort_event",
    "delta_event",
    "done_event",
    "encode_event",
    "error_event",
    "resume_event",
    "stream_id_event",
]
