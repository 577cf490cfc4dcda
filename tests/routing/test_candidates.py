import pytest

from streamgate.routing.candidates import (
    NoCredentialAvailable,
    NoProviderAvailable,
    build_candidates,
    candidate_models,
)

FALLBACK = ["openai/gpt-4o-mini", "anthropic/claude-3.5-haiku", "google/gemini-flash-1.5"]


def test_candidate_models_puts_preferred_first_and_dedupes():
    assert candidate_models("anthropic/claude-3.5-haiku", FALLBACK) == [
        "anthropic/claude-3.5-haiku",
        "openai/gpt-4o-mini",
        "google/gemini-flash-1.5",
    ]
    assert candidate_models(None, FALLBACK) == FALLBACK


def test_build_candidates_resolves_providers(provider_factory):
    anthropic = provider_factory("anthropic", models=["anthropic/claude-3.5-haiku"])
    openrouter = provider_factory("openrouter")

    candidates = build_candidates(
        preferred_model="meta/llama-3",
        fallback_models=FALLBACK,
        providers=[anthropic, openrouter],
        client_token=None,
    )

    assert [(c.provider_id, c.model_id) for c in candidates] == [
        ("openrouter", "meta/llama-3"),
        ("openrouter", "openai/gpt-4o-mini"),
        ("anthropic", "anthropic/claude-3.5-haiku"),
        ("openrouter", "google/gemini-flash-1.5"),
    ]


def test_build_candidates_drops_unserved_models(provider_factory):
    anthropic = provider_factory("anthropic", models=["anthropic/claude-3.5-haiku"])

    candidates = build_candidates(
        preferred_model=None,
        fallback_models=FALLBACK,
        providers=[anthropic],
        client_token=None,
    )
    assert [c.model_id for c in candidates] == ["anthropic/claude-3.5-haiku"]


def test_build_candidates_without_providers_raises():
    with pytest.raises(NoProviderAvailable):
        build_candidates(
            preferred_model=None, fallback_models=FALLBACK, providers=[], client_token=None
        )


def test_keyless_providers_need_a_client_token(provider_factory):
    keyless = provider_factory("openrouter", api_key=None)

    with pytest.raises(NoCredentialAvailable):
        build_candidates(
            preferred_model=None,
            fallback_models=FALLBACK,
            providers=[keyless],
            client_token=None,
        )

    candidates = build_candidates(
        preferred_model=None,
        fallback_models=FALLBACK,
        providers=[keyless],
        client_token="client-token",
    )
    assert len(candidates) == 3
