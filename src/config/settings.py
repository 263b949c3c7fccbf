"""Configuration management using Pydantic Settings."""

from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    """Application configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    env: Literal["development", "production", "testing"] = Field(default="development", alias="APP_ENV")
    debug: bool = Field(default=False, alias="APP_DEBUG")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(default="json", alias="LOG_FORMAT")


class SupabaseConfig(BaseSettings):
    """Supabase (PostgREST) configuration for the credential directory and message store."""

    model_config = SettingsConfigDict(extra="ignore")

    url: str = Field(default="", alias="SUPABASE_URL")
    service_role_key: SecretStr = Field(default=SecretStr(""), alias="SUPABASE_SERVICE_ROLE_KEY")
    messages_table: str = Field(default="emails", alias="SUPABASE_MESSAGES_TABLE")
    credentials_table: str = Field(default="workspace_emails", alias="SUPABASE_CREDENTIALS_TABLE")
    timeout_seconds: int = Field(default=30, alias="SUPABASE_TIMEOUT")
    max_retries: int = Field(default=3, alias="SUPABASE_MAX_RETRIES")
    retry_backoff_base: float = Field(default=0.5, alias="SUPABASE_RETRY_BACKOFF")

    @property
    def is_configured(self) -> bool:
        """True when both the project URL and the service key are present."""
        return bool(self.url) and bool(self.service_role_key.get_secret_value())


class ImapConfig(BaseSettings):
    """Remote mailbox (IMAP) configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    host: str = Field(default="imap.gmail.com", alias="IMAP_HOST")
    port: int = Field(default=993, alias="IMAP_PORT")
    timeout_seconds: int = Field(default=30, alias="IMAP_TIMEOUT")

    # Server-side names for the well-known folder aliases
    sent_folder: str = Field(default="[Gmail]/Sent Mail", alias="IMAP_SENT_FOLDER")
    drafts_folder: str = Field(default="[Gmail]/Drafts", alias="IMAP_DRAFTS_FOLDER")
    spam_folder: str = Field(default="[Gmail]/Spam", alias="IMAP_SPAM_FOLDER")
    trash_folder: str = Field(default="[Gmail]/Trash", alias="IMAP_TRASH_FOLDER")


class SyncConfig(BaseSettings):
    """Mailbox sync job configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    default_limit: int = Field(default=50, alias="SYNC_DEFAULT_LIMIT")
    max_limit: int = Field(default=500, alias="SYNC_MAX_LIMIT")
    snippet_length: int = Field(default=200, alias="SYNC_SNIPPET_LENGTH")
    draft_match_window_seconds: int = Field(default=300, alias="SYNC_DRAFT_MATCH_WINDOW")
    filter_batch_size: int = Field(default=50, alias="SYNC_FILTER_BATCH_SIZE")
    lock_ttl_seconds: int = Field(default=300, alias="SYNC_LOCK_TTL")


class RedisConfig(BaseSettings):
    """Redis configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")
    lock_prefix: str = Field(default="mailsync:lock", alias="REDIS_LOCK_PREFIX")


class AdminConfig(BaseSettings):
    """API gateway / admin configuration."""

    model_config = SettingsConfigDict(extra="ignore")

    api_key: SecretStr = Field(alias="ADMIN_API_KEY")
    port: int = Field(default=8080, alias="ADMIN_PORT")
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        alias="ADMIN_CORS_ORIGINS",
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_origins(cls, v: str | list[str]) -> list[str]:
        """Parse comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v


class Settings(BaseSettings):
    """Master settings combining all configuration sections."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    app: AppConfig = Field(default_factory=AppConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
    imap: ImapConfig = Field(default_factory=ImapConfig)
    sync: SyncConfig = Field(default_factory=SyncConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)


# Global settings instance
settings = Settings()
