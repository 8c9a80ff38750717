"""
Application settings loaded from environment variables.

Uses pydantic-settings for validation and type safety.
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
    # SUPABASE
    # ===================
    supabase_url: str = Field(
        ...,
        description="Supabase project URL"
    )
    supabase_key: str = Field(
        ...,
        description="Supabase anon/public key"
    )
    supabase_service_key: Optional[str] = Field(
        None,
        description="Supabase service role key (for admin operations)"
    )

    # ===================
    # IMPORT PIPELINE
    # ===================
    import_match_threshold: int = Field(
        default=85,
        ge=0,
        le=100,
        description="Minimum similarity (0-100) to accept a lead name match"
    )
    import_max_contact_slots: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Maximum contacts detected per lead row"
    )
    import_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Rows per insert request when committing an import"
    )
    import_existing_fetch_limit: int = Field(
        default=10000,
        ge=100,
        le=100000,
        description="Maximum existing records fetched for matching"
    )
    import_session_ttl_minutes: int = Field(
        default=30,
        ge=1,
        le=720,
        description="Minutes an idle import session is kept in memory"
    )
    import_max_file_bytes: int = Field(
        default=10 * 1024 * 1024,
        ge=1024,
        description="Largest accepted upload in bytes"
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
        ge=1,
        le=65535,
        description="API port"
    )
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed browser origins (JSON list in env)"
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache so settings are only loaded once.
    Call get_settings.cache_clear() to reload.
    """
    return Settings()


# For convenient imports: from config.settings import settings
settings = get_settings()
