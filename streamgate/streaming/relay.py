"""
StreamRelay: one generation request, from resume plan to terminal event.

The producer task owns the upstream call. Each chunk is mirrored into the
session store before it is offered to the client channel, so the stored
text is always everything the upstream produced so far, even when the
task is cancelled while waiting on a slow client. The channel is bounded:
a client that stops reading pauses upstream reads instead of growing an
in-memory backlog. The response body only drains the channel; when it
goes away the producer is cancelled, which tears down the upstream
connection.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterator, Optional, Sequence

from streamgate.logging_config import (
    OUTCOME_CANCELLED,
    OUTCOME_COMPLETED,
    OUTCOME_FAILED,
    OUTCOME_INTERRUPTED,
    cancellation_logger,
    logger,
    stream_context,
)
from streamgate.models import StreamSession, StreamStatus
from streamgate.provider.base import GenerationParams
from streamgate.routing import (
    Candidate,
    FallbackExhausted,
    FallbackOrchestrator,
    MidStreamFailure,
    UpstreamFailure,
)
from streamgate.settings import settings
from streamgate.storage import StreamNotFoundError, StreamStore

from .channel import ClientChannel
from .events import (
    abort_event,
    delta_event,
    done_event,
    error_event,
    resume_event,
    stream_id_event,
)
from .leases import StreamLease, StreamLeaseRegistry
from .resumption import ResumePlan


class StreamRelay:
    def __init__(
        self,
        *,
        plan: ResumePlan,
        candidates: Sequence[Candidate],
        params: GenerationParams,
        store: StreamStore,
        orchestrator: FallbackOrchestrator,
        lease: StreamLease,
        registry: StreamLeaseRegistry,
    ) -> None:
        self.plan = plan
        self.candidates = list(candidates)
        self.params = params
        self.store = store
        self.orchestrator = orchestrator
        self.lease = lease
        self.registry = registry
        self.channel = ClientChannel(
            plan.stream_id, max_pending=settings.stream_channel_max_pending
        )
        self.finished = asyncio.Event()
        self.model: Optional[str] = None
        self._generated_chars = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def stream_id(self) -> str:
        return self.plan.stream_id

    def start(self) -> asyncio.Task:
        if self._task is None:
            self._task = asyncio.create_task(
                self._produce(), name=f"stream-relay-{self.stream_id}"
            )
            self._task.add_done_callback(self._on_task_done)
            self.lease.attach(self._task)
        return self._task

    def _on_task_done(self, task: asyncio.Task) -> None:
        # A task cancelled before its first step never runs _produce's finally.
        self.channel.close()
        self.registry.release(self.lease)
        self.finished.set()

    async def events(self) -> AsyncIterator[str]:
        """Response body: drains the channel until the producer closes it."""
        self.start()
        try:
            async for frame in self.channel.frames():
                yield frame
        finally:
            self.channel.detach()
            if self._task is not None and not self._task.done():
                self.lease.cancel("client_disconnected")

    async def wait_finished(self) -> None:
        await self.finished.wait()

    def _has_resumable_text(self) -> bool:
        return self.plan.is_continuation or self._generated_chars > 0

    async def _open_session(self) -> None:
        plan = self.plan
        session = plan.session
        if session is not None and plan.previous_content.startswith(session.accumulated_text):
            extra = plan.previous_content[len(session.accumulated_text):]
            if extra:
                await self.store.append(plan.stream_id, extra)
            changes = {"status": StreamStatus.STREAMING}
            if plan.client_token:
                changes["auth_token"] = plan.client_token
            await self.store.update(plan.stream_id, **changes)
            return

        if session is not None:
            logger.info(
                "stream %s: partial content hint does not extend stored text; replacing session",
                plan.stream_id,
            )
        await self.store.create(
            StreamSession(
                id=plan.stream_id,
                original_messages=plan.base_messages,
                model=plan.preferred_model,
                accumulated_text=plan.previous_content,
                auth_token=plan.client_token,
            ),
            replace=True,
        )

    async def _append(self, text: str) -> None:
        try:
            await self.store.append(self.stream_id, text)
        except StreamNotFoundError:
            logger.warning("stream %s: session vanished while streaming", self.stream_id)

    async def _update(self, **changes) -> None:
        try:
            await self.store.update(self.stream_id, **changes)
        except StreamNotFoundError:
            logger.debug("stream %s: session gone, skipping update", self.stream_id)

    async def _mark(self, status: StreamStatus, **changes) -> None:
        await self._update(status=status, **changes)

    async def _produce(self) -> None:
        sid = self.stream_id
        channel = self.channel
        terminal: Optional[str] = None
        try:
            await channel.send(stream_id_event(sid, resume=self.plan.resume))
            if self.plan.resume and self.plan.is_continuation:
                await channel.send(resume_event(sid, self.plan.previous_content))
                logger.info(
                    "stream %s: resuming with %d chars of previous content (source=%s)",
                    sid,
                    len(self.plan.previous_content),
                    self.plan.source,
                    extra=stream_context(sid),
                )

            await self._open_session()

            upstream = self.orchestrator.stream(
                self.candidates,
                self.plan.messages,
                self.params,
                client_token=self.plan.client_token,
            )
            try:
                async for candidate, text in upstream:
                    if self.model is None:
                        self.model = candidate.model_id
                        await self._update(
                            model=candidate.model_id, provider_id=candidate.provider_id
                        )
                    self._generated_chars += len(text)
                    await self._append(text)
                    # Waits here while the client is behind.
                    await channel.send(delta_event(text))
            finally:
                await upstream.aclose()

            served = self.orchestrator.served_by
            if served is not None:
                self.model = served.model_id
            await self._mark(
                StreamStatus.COMPLETED,
                model=self.model,
                provider_id=served.provider_id if served else None,
            )
            terminal = done_event(sid, self.model)
            logger.info(
                "stream %s: completed by %s (%d chars generated)",
                sid,
                self.model,
                self._generated_chars,
                extra=stream_context(sid, OUTCOME_COMPLETED),
            )
        except asyncio.CancelledError:
            reason = self.lease.cancel_reason or "client_disconnected"
            cancellation_logger.info(
                "stream %s: cancelled after %d chars; partial output kept",
                sid,
                self._generated_chars,
                extra=stream_context(sid, OUTCOME_CANCELLED, reason=reason),
            )
            await self._mark(StreamStatus.ABORTED)
            terminal = abort_event(sid, reason)
            raise
        except MidStreamFailure as exc:
            logger.warning(
                "stream %s: %s", sid, exc, extra=stream_context(sid, OUTCOME_INTERRUPTED)
            )
            await self._mark(StreamStatus.ABORTED)
            terminal = error_event(
                sid,
                exc.failure.message,
                error_type=exc.failure.kind,
                retryable=False,
                resumable=True,
            )
        except FallbackExhausted as exc:
            logger.warning(
                "stream %s: %s",
                sid,
                exc,
                extra=stream_context(sid, OUTCOME_FAILED, reason="fallback_exhausted"),
            )
            await self._mark(StreamStatus.FAILED)
            last = exc.last_failure
            terminal = error_event(
                sid,
                last.message if last is not None else str(exc),
                error_type=last.kind if last is not None else "availability",
                retryable=True,
                resumable=self._has_resumable_text(),
            )
        except UpstreamFailure as exc:
            logger.warning(
                "stream %s: upstream rejected request: %s",
                sid,
                exc,
                extra=stream_context(sid, OUTCOME_FAILED, reason=exc.kind),
            )
            await self._mark(StreamStatus.FAILED)
            terminal = error_event(
                sid,
                exc.message,
                error_type=exc.kind,
                retryable=False,
                resumable=self._has_resumable_text(),
            )
        except Exception:
            logger.exception(
                "stream %s: unexpected relay failure",
                sid,
                extra=stream_context(sid, OUTCOME_FAILED, reason="internal"),
            )
            await self._mark(StreamStatus.FAILED)
            terminal = error_event(
                sid,
                "Internal gateway error",
                error_type="internal",
                retryable=False,
                resumable=self._has_resumable_text(),
            )
        finally:
            channel.close(terminal)
            self.registry.release(self.lease)
            self.finished.set()


__all__ = ["StreamRelay"]
