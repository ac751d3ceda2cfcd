"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
Airtable and webhook credentials are optional here so the app can boot
without them; operations that need them raise ConfigurationError.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """
    Application settings.

    All values loaded from .env file or environment variables.
    Validation happens automatically on startup.
    """

    model_config = SettingsConfigDict(
        env_file=(".env", "../.env"),  # Check current dir, then parent
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"  # Ignore extra env vars
    )

    # ===================
    # AIRTABLE
    # ===================
    airtable_api_key: Optional[str] = Field(
        None,
        description="Airtable personal access token"
    )
    airtable_base_id: Optional[str] = Field(
        None,
        description="Airtable base ID (app...)"
    )
    airtable_table_name: str = Field(
        default="Apps",
        description="Table holding the app records"
    )

    # ===================
    # NOTIFICATION WEBHOOK
    # ===================
    webhook_url: Optional[str] = Field(
        None,
        description="Endpoint receiving the finalized import payload"
    )
    webhook_timeout_seconds: float = Field(
        default=10,
        gt=0,
        le=120,
        description="Timeout for the webhook POST"
    )

    # ===================
    # IMPORT SETTINGS
    # ===================
    remote_lookup_concurrency: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Parallel Airtable lookups (1 = one row at a time)"
    )
    session_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=24 * 60,
        description="Minutes an idle import session is kept in memory"
    )
    max_upload_bytes: int = Field(
        default=5 * 1024 * 1024,
        ge=1024,
        description="Largest accepted upload"
    )

    # ===================
    # APP SETTINGS
    # ===================
    environment: str = Field(
        default="development",
        pattern="^(development|staging|production)$",
        description="Application environment"
    )
    debug: bool = Field(
        default=True,
        description="Enable debug mode"
    )
    log_level: str = Field(
        default="INFO",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        description="Logging level"
    )
    api_host: str = Field(
        default="0.0.0.0",
        description="API host"
    )
    api_port: int = Field(
        default=8000,
        ge=1000,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Origins allowed to drive the import wizard"
    )

    # ===================
    # COMPUTED PROPERTIES
    # ===================
    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def airtable_configured(self) -> bool:
        """Check if Airtable credentials are present."""
        return bool(self.airtable_api_key and self.airtable_base_id)

    @property
    def webhook_configured(self) -> bool:
        """Check if the notification webhook is set."""
        return bool(self.webhook_url)


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload.

    Returns:
        Settings: Application settings

    Raises:
        ValidationError: If env vars are present but invalid
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
