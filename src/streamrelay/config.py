"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    anthropic_api_key: SecretStr = Field(
        ...,
        validation_alias=AliasChoices("ANTHROPIC_API_KEY", "anthropic_api_key"),
    )
    anthropic_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.anthropic.com/v1"),
        validation_alias=AliasChoices("ANTHROPIC_BASE_URL", "base_url"),
    )
    anthropic_version: str = Field(
        default="2023-06-01",
        validation_alias=AliasChoices("ANTHROPIC_VERSION", "anthropic_version"),
    )
    default_model: str = Field(
        default="claude-sonnet-4-5-20250929",
        validation_alias=AliasChoices("ANTHROPIC_MODEL", "default_model"),
    )

    chat_max_tokens: int = Field(
        default=4096,
        ge=1,
        validation_alias=AliasChoices("CHAT_MAX_TOKENS", "chat_max_tokens"),
    )
    tools_max_tokens: int = Field(
        default=1024,
        ge=1,
        validation_alias=AliasChoices("TOOLS_MAX_TOKENS", "tools_max_tokens"),
    )
    story_max_tokens: int = Field(
        default=1024,
        ge=1,
        validation_alias=AliasChoices("STORY_MAX_TOKENS", "story_max_tokens"),
    )
    sse_max_tokens: int = Field(
        default=1024,
        ge=1,
        validation_alias=AliasChoices("SSE_MAX_TOKENS", "sse_max_tokens"),
    )

    max_turns: int = Field(
        default=10,
        ge=1,
        validation_alias=AliasChoices("AGENT_MAX_TURNS", "max_turns"),
    )
    request_timeout: float = Field(
        default=120.0,
        ge=1,
        validation_alias=AliasChoices("ANTHROPIC_TIMEOUT", "timeout"),
    )
    turn_timeout: float = Field(
        default=90.0,
        ge=1,
        validation_alias=AliasChoices("TURN_TIMEOUT", "turn_timeout"),
    )
    overall_timeout: float = Field(
        default=300.0,
        ge=1,
        validation_alias=AliasChoices("REQUEST_TIMEOUT", "overall_timeout"),
    )
    tool_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("TOOL_TIMEOUT", "tool_timeout"),
    )

    sse_ping_seconds: int = Field(
        default=15,
        ge=1,
        validation_alias=AliasChoices("SSE_PING_SECONDS", "sse_ping_seconds"),
    )
    stream_max_buffer_bytes: int = Field(
        default=1024 * 1024,
        ge=1024,
        validation_alias=AliasChoices(
            "STREAM_MAX_BUFFER_BYTES", "stream_max_buffer_bytes"
        ),
    )
    tool_result_display_cap: int = Field(
        default=500,
        ge=1,
        validation_alias=AliasChoices("TOOL_RESULT_DISPLAY_CAP", "tool_result_display_cap"),
    )
    cumulative_text: bool = Field(
        default=False,
        validation_alias=AliasChoices("PROVIDER_CUMULATIVE_TEXT", "cumulative_text"),
    )
    enable_web_search: bool = Field(
        default=True,
        validation_alias=AliasChoices("ENABLE_WEB_SEARCH", "enable_web_search"),
    )
    web_search_max_uses: int = Field(
        default=5,
        ge=1,
        validation_alias=AliasChoices("WEB_SEARCH_MAX_USES", "web_search_max_uses"),
    )

    server_host: str = Field(
        default="0.0.0.0",
        validation_alias=AliasChoices("RELAY_HOST", "server_host"),
    )
    server_port: int = Field(
        default=8000,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("RELAY_PORT", "server_port"),
    )
    server_reload: bool = Field(
        default=False,
        validation_alias=AliasChoices("RELAY_RELOAD", "server_reload"),
    )

    chat_database_path: Path = Field(
        default_factory=lambda: Path("data/conversations.db"),
        validation_alias=AliasChoices("CHAT_DATABASE_PATH", "chat_db"),
    )
    logging_settings_path: Path = Field(
        default_factory=lambda: Path("logging_settings.conf"),
        validation_alias=AliasChoices("LOGGING_SETTINGS_PATH", "logging_settings_path"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["PROJECT_ROOT", "Settings", "get_settings"]
