import asyncio

import pytest

from streamgate.models import StreamSession
from streamgate.storage import InMemoryStreamStore, StreamStoreJanitor


class _BrokenStore(InMemoryStreamStore):
    async def purge_expired(self) -> int:
        raise RuntimeError("backend unavailable")


@pytest.mark.asyncio
async def test_run_once_purges_expired_sessions():
    now = [0.0]
    store = InMemoryStreamStore(retention_seconds=10, clock=lambda: now[0])
    await store.create(StreamSession(id="s1"))
    now[0] = 11.0

    janitor = StreamStoreJanitor(store, interval_seconds=60)
    assert await janitor.run_once() == 1
    assert len(store) == 0


@pytest.mark.asyncio
async def test_run_once_survives_store_errors():
    janitor = StreamStoreJanitor(_BrokenStore(retention_seconds=10), interval_seconds=60)
    assert await janitor.run_once() == 0


@pytest.mark.asyncio
async def test_janitor_runs_periodically_until_shutdown():
    now = [0.0]
    store = InMemoryStreamStore(retention_seconds=10, clock=lambda: now[0])
    await store.create(StreamSession(id="s1"))
    now[0] = 100.0

    janitor = StreamStoreJanitor(store, interval_seconds=0.01)
    janitor.start()
    assert janitor.running is True

    for _ in range(100):
        if len(store) == 0:
            break
        await asyncio.sleep(0.01)
    assert len(store) == 0

    await janitor.shutdown()
    assert janitor.running is False
