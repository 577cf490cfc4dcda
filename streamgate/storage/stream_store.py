"""
Resumable stream session storage.

StreamStore is the seam for a durable backend (e.g. Redis); the in-memory
implementation keeps everything in a process-local dict and loses state on
restart. Multiple gateway instances each have their own, independent view.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional

from streamgate.logging_config import logger
from streamgate.models import StreamSession

_UPDATABLE_FIELDS = frozenset({"model", "provider_id", "status", "auth_token"})


class StreamNotFoundError(KeyError):
    """No live session exists for the given stream id."""


class StreamExistsError(Exception):
    """A live session already exists for the given stream id."""


class StreamStore(ABC):
    @abstractmethod
    async def get(self, stream_id: str) -> Optional[StreamSession]:
        """Return a snapshot of the session, or None when unknown/expired."""

    @abstractmethod
    async def create(self, session: StreamSession, *, replace: bool = False) -> StreamSession:
        """
        Store a new session. Raises StreamExistsError when a live session
        with the same id exists, unless replace=True (last writer wins).
        """

    @abstractmethod
    async def append(self, stream_id: str, text: str) -> StreamSession:
        """Extend accumulated_text and bump last_updated_at."""

    @abstractmethod
    async def update(self, stream_id: str, **changes: Any) -> StreamSession:
        """Change metadata fields (model, provider_id, status, auth_token)."""

    @abstractmethod
    async def delete(self, stream_id: str) -> bool:
        ...

    @abstractmethod
    async def purge_expired(self) -> int:
        """Drop sessions older than the retention window; returns how many."""


class InMemoryStreamStore(StreamStore):
    def __init__(
        self,
        retention_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.retention_seconds = retention_seconds
        self.clock = clock
        self._sessions: Dict[str, StreamSession] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    def _is_expired(self, session: StreamSession, now: float) -> bool:
        return now - session.last_updated_at > self.retention_seconds

    def _live(self, stream_id: str) -> Optional[StreamSession]:
        session = self._sessions.get(stream_id)
        if session is None:
            return None
        if self._is_expired(session, self.clock()):
            # Expired entries are invisible even before the janitor runs.
            del self._sessions[stream_id]
            return None
        return session

    async def get(self, stream_id: str) -> Optional[StreamSession]:
        session = self._live(stream_id)
        return session.model_copy(deep=True) if session is not None else None

    async def create(self, session: StreamSession, *, replace: bool = False) -> StreamSession:
        if not replace and self._live(session.id) is not None:
            raise StreamExistsError(session.id)
        now = self.clock()
        stored = session.model_copy(
            update={"created_at": now, "last_updated_at": now}, deep=True
        )
        self._sessions[stored.id] = stored
        return stored.model_copy(deep=True)

    async def append(self, stream_id: str, text: str) -> StreamSession:
        session = self._live(stream_id)
        if session is None:
            raise StreamNotFoundError(stream_id)
        if text:
            session.accumulated_text += text
        session.last_updated_at = self.clock()
        return session.model_copy(deep=True)

    async def update(self, stream_id: str, **changes: Any) -> StreamSession:
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")
        session = self._live(stream_id)
        if session is None:
            raise StreamNotFoundError(stream_id)
        for key, value in changes.items():
            setattr(session, key, value)
        session.last_updated_at = self.clock()
        return session.model_copy(deep=True)

    async def delete(self, stream_id: str) -> bool:
        return self._sessions.pop(stream_id, None) is not None

    async def purge_expired(self) -> int:
        now = self.clock()
        expired = [sid for sid, s in self._sessions.items() if self._is_expired(s, now)]
        for sid in expired:
            del self._sessions[sid]
        if expired:
            logger.debug("Purged %d expired stream sessions", len(expired))
        return len(expired)


__all__ = [
    "InMemoryStreamStore",
    "StreamExistsError",
    "StreamNotFoundError",
    "StreamStore",
]
