from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()


class Settings(BaseSettings):
    # Fallback credential, only used when a node has no credential node configured
    gemini_api_key: str | None = Field(default=None, alias="GEMINI_API_KEY")
    gemini_base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta", alias="GEMINI_BASE_URL"
    )
    gemini_request_timeout_seconds: float = Field(default=60.0, alias="GEMINI_REQUEST_TIMEOUT_SECONDS")
    gemini_stream_timeout_seconds: float = Field(default=600.0, alias="GEMINI_STREAM_TIMEOUT_SECONDS")
    media_fetch_timeout_seconds: float = Field(default=30.0, alias="MEDIA_FETCH_TIMEOUT_SECONDS")
    # Advisory status display
    status_clear_delay_seconds: float = Field(default=3.0, alias="STATUS_CLEAR_DELAY_SECONDS")
    # Where file output formats write when no directory is configured
    default_save_directory: str = Field(default=".", alias="DEFAULT_SAVE_DIRECTORY")
    # Chat session storage: "memory" (per node instance) or "redis"
    chat_store: str = Field(default="memory", alias="CHAT_STORE")
    redis_url: str | None = Field(default=None, alias="REDIS_URL")
    chat_history_ttl_days: int = Field(default=30, alias="CHAT_HISTORY_TTL_DAYS")
    # Unset means unbounded growth
    chat_max_sessions: int | None = Field(default=None, alias="CHAT_MAX_SESSIONS")
    chat_max_turns: int | None = Field(default=None, alias="CHAT_MAX_TURNS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    development_mode: bool = Field(default=False, alias="DEVELOPMENT_MODE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @property
    def uses_redis_chat_store(self) -> bool:
        """Return True when chat histories should be persisted in Redis.

        Requires both ``CHAT_STORE=redis`` and a ``REDIS_URL``.
        """
        return self.chat_store.strip().lower() == "redis" and bool(self.redis_url)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()  # type: ignore[call-arg]


def is_development_mode() -> bool:
    """Return True ONLY if DEVELOPMENT_MODE=true is set (the CLI then logs at DEBUG)."""
    return bool(get_settings().development_mode)
