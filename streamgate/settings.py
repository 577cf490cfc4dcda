from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


_DEFAULT_FALLBACK_MODELS = (
    "openai/gpt-4o-mini,"
    "anthropic/claude-3.5-haiku,"
    "google/gemini-flash-1.5"
)


def _split_csv(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    items: List[str] = []
    for item in raw.split(","):
        value = item.strip()
        if value and value not in items:
            items.append(value)
    return items


class Settings(BaseSettings):
    # Read from OS env and optional .env file in project root.
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Application log level for our streamgate logger.
    # Can be overridden via LOG_LEVEL env var, e.g. "DEBUG" while debugging.
    log_level: str = Field(
        "INFO",
        alias="LOG_LEVEL",
        description="Application log level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_timezone: Optional[str] = Field(
        default=None,
        alias="LOG_TIMEZONE",
        description="Timezone name for log timestamps, e.g. 'Asia/Shanghai'. Defaults to system local time.",
    )
    log_dir: str = Field("logs", alias="LOG_DIR")

    # HTTP timeouts
    upstream_timeout: float = Field(600.0, alias="UPSTREAM_TIMEOUT")

    # Raw provider id list; concrete provider configs are derived from this.
    llm_providers_raw: Optional[str] = Field(
        default=None,
        alias="LLM_PROVIDERS",
        description="Comma-separated provider ids, e.g. 'openrouter,openai'",
    )

    # Fixed default priority list appended after the client-preferred model.
    fallback_models_raw: str = Field(
        _DEFAULT_FALLBACK_MODELS,
        alias="FALLBACK_MODELS",
        description="Comma-separated model ids tried in order when the preferred model fails",
    )
    allowed_models_raw: Optional[str] = Field(
        default=None,
        alias="ALLOWED_MODELS",
        description="Optional comma-separated allow-list of client selectable models",
    )

    # Generation parameter defaults and bounds.
    default_temperature: float = Field(0.7, alias="DEFAULT_TEMPERATURE")
    default_max_tokens: int = Field(4096, alias="DEFAULT_MAX_TOKENS")
    max_tokens_limit: int = Field(32768, alias="MAX_TOKENS_LIMIT")

    # Request shape limits.
    max_messages: int = Field(100, alias="MAX_MESSAGES")
    max_message_chars: int = Field(50000, alias="MAX_MESSAGE_CHARS")
    max_partial_chars: int = Field(100000, alias="MAX_PARTIAL_CHARS")
    max_request_bytes: int = Field(1024 * 1024, alias="MAX_REQUEST_BYTES")

    # Partial-result retention (process local; lost on restart).
    stream_retention_seconds: int = Field(
        24 * 60 * 60,
        alias="STREAM_RETENTION_SECONDS",
        description="Sessions untouched for longer than this are no longer resumable",
    )
    stream_cleanup_interval_seconds: float = Field(
        600.0, alias="STREAM_CLEANUP_INTERVAL_SECONDS"
    )
    stream_takeover_timeout: float = Field(
        5.0,
        alias="STREAM_TAKEOVER_TIMEOUT",
        description="Seconds a request waits for a still-active stream with the same id to release",
    )
    stream_channel_max_pending: int = Field(
        32,
        alias="STREAM_CHANNEL_MAX_PENDING",
        ge=1,
        description="Undelivered frames per client before upstream reads pause",
    )

    # Attribution headers for raw-protocol upstreams (OpenRouter style).
    upstream_referer: Optional[str] = Field(None, alias="UPSTREAM_REFERER")
    upstream_title: Optional[str] = Field(None, alias="UPSTREAM_TITLE")

    def get_llm_provider_ids(self) -> List[str]:
        """
        Return configured provider ids from LLM_PROVIDERS.
        Whitespace is stripped and empty entries are ignored.
        """
        return _split_csv(self.llm_providers_raw)

    def get_fallback_models(self) -> List[str]:
        return _split_csv(self.fallback_models_raw)

    def get_allowed_models(self) -> List[str]:
        """
        Empty list means "no allow-list": any well-formed model id is accepted.
        """
        return _split_csv(self.allowed_models_raw)


settings = Settings()  # Reads from environment if available
