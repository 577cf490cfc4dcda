"""
SDK 厂商分发与探测，以及按 transport 选择 ProviderAdapter。

当前支持 openai 与 Claude/Anthropic 官方 SDK，后续新增厂商时在此集中配置。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Optional, Sequence
from urllib.parse import urlparse

import httpx

from streamgate.models import ChatMessage, ProviderConfig

from . import claude_sdk, openai_sdk
from .base import GenerationParams, ProviderAdapter, UpstreamStreamError
from .http_adapter import HttpStreamAdapter


@dataclass(frozen=True)
class SDKDriver:
    name: str
    stream_text: Callable[..., AsyncIterator[str]]


def _normalized_host(base_url: Any) -> str:
    try:
        host = base_url.host  # pydantic HttpUrl
    except AttributeError:
        parsed = urlparse(str(base_url))
        host = parsed.hostname or ""
    return (host or "").lower()


def normalize_base_url(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).rstrip("/")


def detect_sdk_vendor(provider: ProviderConfig) -> Optional[str]:
    """
    显式配置的 SDK_VENDOR 优先，否则根据 provider id 与 base_url 主机名推断。
    """
    if provider.sdk_vendor:
        return provider.sdk_vendor

    pid = provider.id.lower()
    host = _normalized_host(provider.base_url)

    if ("openai" in pid or "openai" in host) and "azure" not in pid and "azure" not in host:
        return "openai"

    if any(key in pid for key in ("claude", "anthropic")) or any(
        key in host for key in ("anthropic", "claude.ai")
    ):
        return "claude"

    return None


def get_sdk_driver(provider: ProviderConfig) -> Optional[SDKDriver]:
    vendor = detect_sdk_vendor(provider)
    if vendor == "openai":
        return SDKDriver(name="openai", stream_text=openai_sdk.stream_text)
    if vendor == "claude":
        return SDKDriver(name="claude", stream_text=claude_sdk.stream_text)
    return None


def strip_model_group(model_id: str) -> str:
    """
    "openai/gpt-4o-mini" -> "gpt-4o-mini"; vendor SDKs expect bare model ids.
    """
    if "/" in model_id:
        return model_id.split("/", 1)[1]
    return model_id


class SDKProviderAdapter(ProviderAdapter):
    def __init__(self, provider: ProviderConfig, driver: SDKDriver) -> None:
        super().__init__(provider)
        self.driver = driver

    async def stream_text(
        self,
        *,
        model_id: str,
        messages: Sequence[ChatMessage],
        params: GenerationParams,
        client_token: str | None = None,
    ) -> AsyncIterator[str]:
        token = self.resolve_token(client_token)
        if not token:
            raise UpstreamStreamError(
                status_code=401,
                message=f"Provider {self.provider.id} has no API key configured",
            )
        iterator = self.driver.stream_text(
            api_key=token,
            model_id=strip_model_group(model_id),
            messages=messages,
            temperature=params.temperature,
            max_tokens=params.max_tokens,
            base_url=normalize_base_url(self.provider.base_url),
            user=params.user,
        )
        try:
            async for text in iterator:
                yield text
        finally:
            await iterator.aclose()


class UnsupportedProviderError(Exception):
    """Raised when a provider asks for an SDK transport we cannot serve."""


def get_provider_adapter(
    provider: ProviderConfig, client: httpx.AsyncClient
) -> ProviderAdapter:
    if provider.transport == "sdk":
        driver = get_sdk_driver(provider)
        if driver is None:
            raise UnsupportedProviderError(
                f"Provider {provider.id} uses transport=sdk but no SDK vendor could be detected"
            )
        return SDKProviderAdapter(provider, driver)
    return HttpStreamAdapter(provider, client)


__all__ = [
    "SDKDriver",
    "SDKProviderAdapter",
    "UnsupportedProviderError",
    "detect_sdk_vendor",
    "get_provider_adapter",
    "get_sdk_driver",
    "normalize_base_url",
    "strip_model_group",
]
