from .base import GenerationParams, ProviderAdapter, UpstreamStreamError
from .config import get_provider_config, load_provider_configs, resolve_provider_for_model
from .sdk_selector import get_provider_adapter

__all__ = [
    "GenerationParams",
    "ProviderAdapter",
    "UpstreamStreamError",
    "get_provider_adapter",
    "get_provider_config",
    "load_provider_configs",
    "resolve_provider_for_model",
]
