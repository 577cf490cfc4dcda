"""
Build the ordered (provider, model) candidate list for one request.

Order: client-preferred model first (if any), then the fixed default
priority list from FALLBACK_MODELS, duplicates removed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence

from streamgate.logging_config import logger
from streamgate.models import ProviderConfig
from streamgate.provider.config import resolve_provider_for_model


@dataclass(frozen=True)
class Candidate:
    provider: ProviderConfig
    model_id: str

    @property
    def provider_id(self) -> str:
        return self.provider.id


class NoProviderAvailable(Exception):
    """No configured provider serves any of the candidate models."""


class NoCredentialAvailable(Exception):
    """Providers exist but none has a usable upstream credential."""


def candidate_models(preferred: Optional[str], fallback_models: Sequence[str]) -> List[str]:
    models: List[str] = []
    if preferred:
        models.append(preferred)
    for model_id in fallback_models:
        if model_id not in models:
            models.append(model_id)
    return models


def build_candidates(
    *,
    preferred_model: Optional[str],
    fallback_models: Sequence[str],
    providers: Sequence[ProviderConfig],
    client_token: Optional[str],
) -> List[Candidate]:
    """
    Resolve candidate models to providers.

    Candidates whose provider has no API key are kept only when the client
    supplied a token. Raises NoProviderAvailable / NoCredentialAvailable so
    the route can answer 503 / 401 before streaming starts.
    """
    resolved: List[Candidate] = []
    for model_id in candidate_models(preferred_model, fallback_models):
        cfg = resolve_provider_for_model(model_id, providers)
        if cfg is None:
            logger.debug("No provider serves model %s; dropping candidate", model_id)
            continue
        resolved.append(Candidate(provider=cfg, model_id=model_id))

    if not resolved:
        raise NoProviderAvailable("No configured provider serves the requested models")

    usable = [c for c in resolved if c.provider.api_key or client_token]
    if not usable:
        raise NoCredentialAvailable("No upstream credential available for the requested models")
    return usable


__all__ = [
    "Candidate",
    "NoCredentialAvailable",
    "NoProviderAvailable",
    "build_candidates",
    "candidate_models",
]
