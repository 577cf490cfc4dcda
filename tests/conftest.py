"""
Shared pytest configuration.

This file ensures the project root is on sys.path so that `import streamgate`
works consistently in all tests, and provides a scripted fake upstream used
by the routing/streaming/route tests.
"""

import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List


# Ensure project root is importable for test modules.
ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import pytest  # noqa: E402

from streamgate.models import ProviderConfig  # noqa: E402
from streamgate.provider.base import ProviderAdapter  # noqa: E402


def make_provider(
    provider_id: str = "p1",
    *,
    models: List[str] | None = None,
    api_key: str | None = "sk-test",  # pragma: allowlist secret
    **kwargs: Any,
) -> ProviderConfig:
    return ProviderConfig(
        id=provider_id,
        name=provider_id.upper(),
        base_url=kwargs.pop("base_url", f"https://{provider_id}.example.com"),
        api_key=api_key,
        models=models or [],
        **kwargs,
    )


class FakeUpstream:
    """
    Scripted upstream keyed by model id.

    A script step is either a text chunk, an exception instance to raise,
    an asyncio.Event to wait on (simulates a stalled upstream), or a
    callable receiving the message list and returning a chunk.
    """

    def __init__(self) -> None:
        self.scripts: Dict[str, List[Any]] = {}
        self.calls: List[Dict[str, Any]] = []
        self.closed: List[str] = []

    def script(self, model_id: str, *steps: Any) -> None:
        self.scripts[model_id] = list(steps)

    def factory(self, provider: ProviderConfig) -> ProviderAdapter:
        return _FakeAdapter(provider, self)

    @property
    def called_models(self) -> List[str]:
        return [call["model_id"] for call in self.calls]


class _FakeAdapter(ProviderAdapter):
    def __init__(self, provider: ProviderConfig, upstream: FakeUpstream) -> None:
        super().__init__(provider)
        self.upstream = upstream

    async def stream_text(self, *, model_id, messages, params, client_token=None):
        self.upstream.calls.append(
            {
                "provider_id": self.provider.id,
                "model_id": model_id,
                "messages": list(messages),
                "params": params,
                "token": self.resolve_token(client_token),
            }
        )
        try:
            for step in self.upstream.scripts.get(model_id, []):
                if isinstance(step, BaseException):
                    raise step
                if isinstance(step, asyncio.Event):
                    await step.wait()
                    continue
                if callable(step):
                    step = step(messages)
                yield step
        finally:
            self.upstream.closed.append(model_id)


@pytest.fixture
def fake_upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def provider_factory():
    return make_provider
