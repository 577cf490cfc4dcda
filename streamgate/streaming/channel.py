from __future__ import annotations

import asyncio
from collections import deque
from enum import Enum
from typing import AsyncIterator, Deque, Optional

from streamgate.logging_config import logger


class ChannelState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ClientChannel:
    """
    Bounded hand-off between the producer (upstream side) and the response body.

    Open -> Closing: producer called close(); pending frames still drain.
    Closing -> Closed: consumer drained everything.
    Open/Closing -> Closed: consumer went away (detach()).

    send() waits while `max_pending` frames are undelivered, so a slow client
    throttles upstream reads. It only succeeds while Open; writes in any
    other state (including a send that was waiting when the channel left
    Open) are dropped and reported as False, never raised.

    close() takes the terminal frame and never waits: it is the one frame
    allowed past the bound, so cancellation can always finish.
    """

    def __init__(self, stream_id: str, *, max_pending: int = 32) -> None:
        if max_pending < 1:
            raise ValueError("max_pending must be >= 1")
        self.stream_id = stream_id
        self.max_pending = max_pending
        self.state = ChannelState.OPEN
        self._pending: Deque[str] = deque()
        self._readable = asyncio.Event()
        self._writable = asyncio.Event()
        self._writable.set()

    @property
    def is_open(self) -> bool:
        return self.state is ChannelState.OPEN

    @property
    def pending(self) -> int:
        return len(self._pending)

    def _drop(self) -> bool:
        logger.debug(
            "stream %s: dropping frame, channel is %s", self.stream_id, self.state.value
        )
        return False

    async def send(self, frame: str) -> bool:
        while self.state is ChannelState.OPEN and len(self._pending) >= self.max_pending:
            self._writable.clear()
            await self._writable.wait()
        if self.state is not ChannelState.OPEN:
            return self._drop()
        self._pending.append(frame)
        self._readable.set()
        return True

    def close(self, final_frame: Optional[str] = None) -> None:
        if self.state is not ChannelState.OPEN:
            return
        if final_frame is not None:
            self._pending.append(final_frame)
        self.state = ChannelState.CLOSING
        self._readable.set()
        self._writable.set()

    def detach(self) -> None:
        self.state = ChannelState.CLOSED
        self._pending.clear()
        self._readable.set()
        self._writable.set()

    async def frames(self) -> AsyncIterator[str]:
        while True:
            if self._pending and self.state is not ChannelState.CLOSED:
                frame = self._pending.popleft()
                self._writable.set()
                yield frame
                continue
            if self.state is not ChannelState.OPEN:
                self.state = ChannelState.CLOSED
                return
            self._readable.clear()
            await self._readable.wait()


__all__ = ["ChannelState", "ClientChannel"]
