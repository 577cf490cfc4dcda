"""
Provider configuration loading/parsing.

Providers are declared through environment variables:

    LLM_PROVIDERS=openrouter,openai
    LLM_PROVIDER_openrouter_NAME=OpenRouter
    LLM_PROVIDER_openrouter_BASE_URL=https://openrouter.ai/api
    LLM_PROVIDER_openai_NAME=OpenAI
    LLM_PROVIDER_openai_BASE_URL=https://api.openai.com/v1
    LLM_PROVIDER_openai_TRANSPORT=sdk
    LLM_PROVIDER_openai_API_KEY=...
    LLM_PROVIDER_openai_MODELS=openai/gpt-4o-mini,openai/gpt-4o

Only providers with NAME and BASE_URL are returned. Misconfigured providers
are skipped with a warning so that a single bad entry does not take the
whole gateway down.
"""

from __future__ import annotations

import json
import os
from typing import Dict, List, Optional, Sequence

from pydantic import ValidationError

from streamgate.logging_config import logger
from streamgate.models import ProviderConfig
from streamgate.settings import settings


REQUIRED_SUFFIXES = ("NAME", "BASE_URL")

_KNOWN_SUFFIXES = (
    "NAME",
    "BASE_URL",
    "TRANSPORT",
    "SDK_VENDOR",
    "API_KEY",
    "CHAT_PATH",
    "MODELS",
    "RETRYABLE_STATUS_CODES",
    "HEADERS_JSON",
)


def _env_key(provider_id: str, suffix: str) -> str:
    return f"LLM_PROVIDER_{provider_id}_{suffix}"


_DOTENV_CACHE: Optional[Dict[str, str]] = None


def _load_env_from_dotenv() -> Dict[str, str]:
    """
    Read provider variables from a local .env file when they are not
    exported in os.environ (local development without docker env_file).
    """
    global _DOTENV_CACHE
    if _DOTENV_CACHE is not None:
        return _DOTENV_CACHE

    env_path = os.getenv("STREAMGATE_ENV_FILE", ".env")
    data: Dict[str, str] = {}

    try:
        with open(env_path, "r", encoding="utf-8") as f:
            for line in f:
                stripped = line.strip()
                if not stripped or stripped.startswith("#") or "=" not in stripped:
                    continue
                key, value = stripped.split("=", 1)
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (
                    value.startswith("'") and value.endswith("'")
                ):
                    value = value[1:-1]
                if key:
                    data[key] = value
    except FileNotFoundError:
        data = {}
    except OSError as exc:
        logger.warning("Failed to load .env file %s: %s", env_path, exc)
        data = {}

    _DOTENV_CACHE = data
    return data


def _load_raw_provider_env(provider_id: str) -> Dict[str, str]:
    """
    Load raw variables for a provider, keyed by suffix (NAME, BASE_URL, ...).
    """
    raw: Dict[str, str] = {}
    for suffix in _KNOWN_SUFFIXES:
        env_var = _env_key(provider_id, suffix)
        value = os.getenv(env_var)
        if value is None:
            value = _load_env_from_dotenv().get(env_var)
        if value is not None:
            raw[suffix] = value
    return raw


def _parse_status_code_list(value: str) -> List[int]:
    """
    Parse a comma-separated list of HTTP status codes or ranges.

        "429,500,502-504" -> [429, 500, 502, 503, 504]
    """
    result: List[int] = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        if "-" in part:
            start_s, end_s = part.split("-", 1)
            try:
                start = int(start_s)
                end = int(end_s)
            except ValueError:
                logger.warning(
                    "Invalid status code range %r in RETRYABLE_STATUS_CODES, skipping",
                    part,
                )
                continue
            if start > end:
                start, end = end, start
            codes = range(start, end + 1)
        else:
            try:
                codes = [int(part)]
            except ValueError:
                logger.warning(
                    "Invalid status code %r in RETRYABLE_STATUS_CODES, skipping",
                    part,
                )
                continue
        for code in codes:
            if code not in result:
                result.append(code)
    return result


def _parse_provider_config(provider_id: str, raw: Dict[str, str]) -> ProviderConfig | None:
    """
    Convert raw env values into a ProviderConfig instance.
    Returns None if required fields are missing or validation fails.
    """
    missing = [s for s in REQUIRED_SUFFIXES if s not in raw]
    if missing:
        logger.warning(
            "Skipping provider %s due to missing required config: %s",
            provider_id,
            ", ".join(missing),
        )
        return None

    data: Dict[str, object] = {
        "id": provider_id,
        "name": raw["NAME"],
        "base_url": raw["BASE_URL"],
    }

    transport = raw.get("TRANSPORT", "http").strip().lower()
    if transport not in ("http", "sdk"):
        logger.warning(
            "Provider %s: invalid TRANSPORT=%r, falling back to http",
            provider_id,
            raw.get("TRANSPORT"),
        )
        transport = "http"
    data["transport"] = transport

    if "SDK_VENDOR" in raw:
        vendor = raw["SDK_VENDOR"].strip().lower()
        if vendor == "anthropic":
            vendor = "claude"
        if vendor in ("openai", "claude"):
            data["sdk_vendor"] = vendor
        else:
            logger.warning(
                "Provider %s: unknown SDK_VENDOR=%r, will detect from id/host",
                provider_id,
                raw["SDK_VENDOR"],
            )

    api_key = raw.get("API_KEY", "").strip()
    if api_key:
        data["api_key"] = api_key

    if raw.get("CHAT_PATH", "").strip():
        data["chat_path"] = raw["CHAT_PATH"].strip()

    if "MODELS" in raw:
        data["models"] = [m.strip() for m in raw["MODELS"].split(",") if m.strip()]

    if "RETRYABLE_STATUS_CODES" in raw:
        codes = _parse_status_code_list(raw["RETRYABLE_STATUS_CODES"])
        if codes:
            data["retryable_status_codes"] = codes

    if "HEADERS_JSON" in raw:
        try:
            headers = json.loads(raw["HEADERS_JSON"])
        except json.JSONDecodeError as exc:
            logger.warning("Provider %s: invalid HEADERS_JSON payload: %s", provider_id, exc)
            headers = None
        if isinstance(headers, dict):
            data["custom_headers"] = {str(k): str(v) for k, v in headers.items()}
        elif headers is not None:
            logger.warning(
                "Provider %s: HEADERS_JSON must be an object, got %r",
                provider_id,
                type(headers),
            )

    try:
        return ProviderConfig(**data)
    except ValidationError as exc:
        logger.warning(
            "Skipping provider %s due to validation error: %s",
            provider_id,
            exc,
        )
        return None


def load_provider_configs() -> List[ProviderConfig]:
    """
    Load all configured providers from environment, skipping invalid ones.
    """
    providers: List[ProviderConfig] = []
    for provider_id in settings.get_llm_provider_ids():
        raw = _load_raw_provider_env(provider_id)
        if not raw:
            logger.warning(
                "Provider %s listed in LLM_PROVIDERS but has no env config; skipping",
                provider_id,
            )
            continue
        cfg = _parse_provider_config(provider_id, raw)
        if cfg is not None:
            providers.append(cfg)
    return providers


def get_provider_config(provider_id: str) -> ProviderConfig | None:
    for cfg in load_provider_configs():
        if cfg.id == provider_id:
            return cfg
    return None


def resolve_provider_for_model(
    model_id: str, providers: Sequence[ProviderConfig]
) -> ProviderConfig | None:
    """
    Pick the provider that serves `model_id`: an explicit MODELS entry wins,
    otherwise the first catch-all provider (no MODELS configured).
    """
    for cfg in providers:
        if cfg.serves(model_id):
            return cfg
    for cfg in providers:
        if not cfg.models:
            return cfg
    return None


__all__ = ["load_provider_configs", "get_provider_config", "resolve_provider_for_model"]
