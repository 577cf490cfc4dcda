"""
FastAPI dependencies.

Process-wide collaborators (shared httpx client, session store, lease
registry) live on app.state and are created by the lifespan in routes.py.
"""

from typing import List

import httpx
from fastapi import Request

from .models import ProviderConfig
from .provider.config import load_provider_configs
from .provider.sdk_selector import get_provider_adapter
from .routing.fallback import AdapterFactory
from .storage import StreamStore
from .streaming import StreamLeaseRegistry


def get_http_client(request: Request) -> httpx.AsyncClient:
    return request.app.state.http_client


def get_stream_store(request: Request) -> StreamStore:
    return request.app.state.stream_store


def get_lease_registry(request: Request) -> StreamLeaseRegistry:
    return request.app.state.lease_registry


def get_providers() -> List[ProviderConfig]:
    """
    Provider configs are re-read per request so env changes in tests and
    local .env edits are picked up without a restart.
    """
    return load_provider_configs()


def get_adapter_factory(request: Request) -> AdapterFactory:
    client = get_http_client(request)

    def _factory(provider: ProviderConfig):
        return get_provider_adapter(provider, client)

    return _factory


__all__ = [
    "get_adapter_factory",
    "get_http_client",
    "get_lease_registry",
    "get_providers",
    "get_stream_store",
]
