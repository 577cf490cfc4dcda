"""
At most one active generation per stream id.

A second request for an id that is still generating supersedes the first:
the holder's producer task is cancelled (reason "superseded") and the new
request waits for it to persist its partial state and release. If that does
not happen within the takeover timeout the new request is rejected.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from streamgate.logging_config import logger


class StreamBusyError(Exception):
    """The current holder did not release the stream id in time."""


class StreamLease:
    def __init__(self, stream_id: str) -> None:
        self.stream_id = stream_id
        self.released = asyncio.Event()
        self.cancel_reason: Optional[str] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return not self.released.is_set()

    def attach(self, task: asyncio.Task) -> None:
        self._task = task
        if self.cancel_reason is not None:
            task.cancel()

    def cancel(self, reason: str) -> bool:
        """
        Cancel the producer owning this lease. The first reason wins.
        Returns False when the lease is already released.
        """
        if not self.active:
            return False
        if self.cancel_reason is None:
            self.cancel_reason = reason
        if self._task is not None and not self._task.done():
            self._task.cancel()
        return True

    def release(self) -> None:
        self.released.set()


class StreamLeaseRegistry:
    def __init__(self) -> None:
        self._leases: Dict[str, StreamLease] = {}

    def get(self, stream_id: str) -> Optional[StreamLease]:
        lease = self._leases.get(stream_id)
        if lease is None or not lease.active:
            return None
        return lease

    def is_active(self, stream_id: str) -> bool:
        return self.get(stream_id) is not None

    async def acquire(self, stream_id: str, *, timeout: float) -> StreamLease:
        while True:
            holder = self.get(stream_id)
            if holder is None:
                lease = StreamLease(stream_id)
                self._leases[stream_id] = lease
                return lease

            logger.info("stream %s: superseding active generation", stream_id)
            holder.cancel("superseded")
            try:
                await asyncio.wait_for(holder.released.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                raise StreamBusyError(stream_id) from None

    def release(self, lease: StreamLease) -> None:
        lease.release()
        if self._leases.get(lease.stream_id) is lease:
            del self._leases[lease.stream_id]


__all__ = ["StreamBusyError", "StreamLease", "StreamLeaseRegistry"]
