"""
Resumable chat streaming routes.

Everything that can fail synchronously (body size, validation, provider
resolution, credentials, takeover conflicts) is checked before the
StreamingResponse is returned, so those errors keep a real HTTP status.
Failures after that point travel in-band as terminal `error`/`abort` events.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from .deps import get_adapter_factory, get_lease_registry, get_providers, get_stream_store
from .errors import bad_request, conflict, not_found, payload_too_large, service_unavailable, unauthorized
from .logging_config import logger
from .models import ProviderConfig
from .provider.base import GenerationParams
from .routing import (
    FallbackOrchestrator,
    NoCredentialAvailable,
    NoProviderAvailable,
    build_candidates,
)
from .routing.fallback import AdapterFactory
from .schemas import ChatStreamRequest, StreamCancelResponse, StreamStatusResponse
from .settings import settings
from .storage import StreamStore
from .streaming import (
    ResumptionCoordinator,
    StreamBusyError,
    StreamLeaseRegistry,
    StreamRelay,
    new_stream_id,
)

router = APIRouter(tags=["chat"])

STREAM_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "X-Accel-Buffering": "no",
}


def format_validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    # ctx may hold exception instances that are not JSON serialisable.
    return [
        {
            "loc": [str(part) for part in err.get("loc", ())],
            "msg": _clean_message(str(err.get("msg", ""))),
            "type": err.get("type"),
        }
        for err in errors
    ]


def _clean_message(msg: str) -> str:
    prefix = "Value error, "
    return msg[len(prefix):] if msg.startswith(prefix) else msg


async def _read_body(request: Request) -> bytes:
    declared = request.headers.get("content-length")
    if declared is not None:
        try:
            declared_size = int(declared)
        except ValueError:
            raise bad_request("Invalid Content-Length header")
        if declared_size > settings.max_request_bytes:
            raise payload_too_large(
                f"Request body too large (max {settings.max_request_bytes} bytes)"
            )
    raw = await request.body()
    if len(raw) > settings.max_request_bytes:
        raise payload_too_large(
            f"Request body too large (max {settings.max_request_bytes} bytes)"
        )
    return raw


def parse_chat_request(raw: bytes) -> ChatStreamRequest:
    try:
        data = json.loads(raw or b"null")
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise bad_request("Malformed JSON body")
    if not isinstance(data, dict):
        raise bad_request("Request body must be a JSON object")
    try:
        return ChatStreamRequest.model_validate(data)
    except ValidationError as exc:
        errors = format_validation_errors(exc.errors())
        message = errors[0]["msg"] if errors else "Invalid request"
        raise bad_request(message, details={"errors": errors})


@router.post("/v1/chat/stream")
async def chat_stream(
    request: Request,
    x_user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    store: StreamStore = Depends(get_stream_store),
    registry: StreamLeaseRegistry = Depends(get_lease_registry),
    providers: List[ProviderConfig] = Depends(get_providers),
    adapter_factory: AdapterFactory = Depends(get_adapter_factory),
):
    body = parse_chat_request(await _read_body(request))
    logger.info(
        "chat: incoming model=%r resume=%s stream=%s messages=%d user=%s",
        body.model,
        body.resume,
        body.stream_id,
        len(body.messages),
        x_user_id,
    )

    stream_id = body.stream_id or new_stream_id()
    try:
        lease = await registry.acquire(stream_id, timeout=settings.stream_takeover_timeout)
    except StreamBusyError:
        raise conflict(
            f"Stream {stream_id} is still active and could not be taken over",
            details={"streamId": stream_id},
        )

    try:
        plan = await ResumptionCoordinator(store).plan(body, stream_id=stream_id)
        candidates = build_candidates(
            preferred_model=plan.preferred_model,
            fallback_models=settings.get_fallback_models(),
            providers=providers,
            client_token=plan.client_token,
        )
    except NoProviderAvailable as exc:
        registry.release(lease)
        raise service_unavailable(str(exc))
    except NoCredentialAvailable as exc:
        registry.release(lease)
        raise unauthorized(str(exc))
    except BaseException:
        registry.release(lease)
        raise

    relay = StreamRelay(
        plan=plan,
        candidates=candidates,
        params=GenerationParams(
            temperature=body.effective_temperature(),
            max_tokens=body.effective_max_tokens(),
            user=x_user_id,
        ),
        store=store,
        orchestrator=FallbackOrchestrator(adapter_factory),
        lease=lease,
        registry=registry,
    )
    relay.start()

    return StreamingResponse(
        relay.events(),
        media_type="text/event-stream",
        headers={**STREAM_HEADERS, "X-Stream-Id": plan.stream_id},
    )


@router.get("/v1/chat/stream/{stream_id}", response_model=StreamStatusResponse)
async def get_stream_status(
    stream_id: str,
    store: StreamStore = Depends(get_stream_store),
    registry: StreamLeaseRegistry = Depends(get_lease_registry),
) -> StreamStatusResponse:
    session = await store.get(stream_id)
    if session is None:
        raise not_found("Stream not found", details={"streamId": stream_id})
    return StreamStatusResponse(
        stream_id=session.id,
        model=session.model,
        accumulated_text=session.accumulated_text,
        last_updated_at=session.last_updated_at,
        status=session.status,
        active=registry.is_active(stream_id),
    )


@router.post(
    "/v1/chat/stream/{stream_id}/cancel",
    response_model=StreamCancelResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def cancel_stream(
    stream_id: str,
    registry: StreamLeaseRegistry = Depends(get_lease_registry),
) -> StreamCancelResponse:
    lease = registry.get(stream_id)
    if lease is None or not lease.cancel("cancel_requested"):
        raise not_found("No active stream with this id", details={"streamId": stream_id})
    logger.info("chat: cancel requested for stream %s", stream_id)
    return StreamCancelResponse(stream_id=stream_id, cancelled=True)


@router.delete("/v1/chat/stream/{stream_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_stream(
    stream_id: str,
    store: StreamStore = Depends(get_stream_store),
    registry: StreamLeaseRegistry = Depends(get_lease_registry),
) -> Response:
    lease = registry.get(stream_id)
    if lease is not None:
        lease.cancel("cancel_requested")
    deleted = await store.delete(stream_id)
    if not deleted and lease is None:
        raise not_found("Stream not found", details={"streamId": stream_id})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


__all__ = ["format_validation_errors", "parse_chat_request", "router"]
