from .candidates import (
    Candidate,
    NoCredentialAvailable,
    NoProviderAvailable,
    build_candidates,
)
from .error_classifier import UpstreamFailure, classify_upstream_error
from .fallback import FallbackExhausted, FallbackOrchestrator, MidStreamFailure

__all__ = [
    "Candidate",
    "FallbackExhausted",
    "FallbackOrchestrator",
    "MidStreamFailure",
    "NoCredentialAvailable",
    "NoProviderAvailable",
    "UpstreamFailure",
    "build_candidates",
    "classify_upstream_error",
]
