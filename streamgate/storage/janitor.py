from __future__ import annotations

import asyncio

from streamgate.logging_config import logger

from .stream_store import StreamStore


class StreamStoreJanitor:
    """Periodically evicts expired sessions in its own asyncio task."""

    def __init__(self, store: StreamStore, *, interval_seconds: float) -> None:
        self.store = store
        self.interval_seconds = interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name="stream-store-janitor")

    async def shutdown(self) -> None:
        self._stop_event.set()
        if self._task is not None:
            await self._task
            self._task = None

    async def run_once(self) -> int:
        try:
            purged = await self.store.purge_expired()
        except Exception:
            logger.exception("Unexpected error while purging expired stream sessions")
            return 0
        if purged:
            logger.info("Stream janitor evicted %d expired sessions", purged)
        return purged

    async def _run(self) -> None:
        while True:
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.interval_seconds)
                return
            except asyncio.TimeoutError:
                pass
            await self.run_once()


__all__ = ["StreamStoreJanitor"]
