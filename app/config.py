# =============================================================================
# app/config.py - Application Settings
# =============================================================================
# This module loads configuration from environment variables using pydantic-settings.
# It provides a single Settings class with all configuration values.
#
# Usage:
#   from app.config import settings
#   print(settings.SETTLEMENT_WINDOW_DAYS)
#
# Environment variables are loaded from:
# 1. System environment variables
# 2. .env file in project root (if exists)
#
# The Settings class validates all values at startup, so a bad royalty rate
# or a missing Stripe key fails the worker on boot instead of mid-batch.
# =============================================================================

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses pydantic-settings to:
    - Automatically load from .env file
    - Validate types and constraints
    - Provide sensible defaults for development

    All settings are accessed via the global `settings` instance.
    """

    # -------------------------------------------------------------------------
    # Supabase Configuration
    # -------------------------------------------------------------------------
    # Required - the settlement pipeline reads and writes through Supabase

    SUPABASE_URL: str = Field(
        ...,
        description="Supabase project URL (e.g., https://xxx.supabase.co)"
    )

    SUPABASE_SERVICE_KEY: str = Field(
        ...,
        description="Supabase service_role key (bypasses RLS)"
    )

    # -------------------------------------------------------------------------
    # Stripe Configuration
    # -------------------------------------------------------------------------

    STRIPE_SECRET_KEY: str = Field(
        ...,
        description="Stripe secret key used for Connect transfers to designers"
    )

    PAYOUT_CURRENCY: str = Field(
        default="sgd",
        min_length=3,
        max_length=3,
        description="ISO currency code for designer payouts"
    )

    # -------------------------------------------------------------------------
    # Redis Configuration (for Celery)
    # -------------------------------------------------------------------------

    REDIS_URL: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for Celery broker"
    )

    # -------------------------------------------------------------------------
    # Settlement Settings
    # -------------------------------------------------------------------------

    SETTLEMENT_WINDOW_DAYS: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Days a pre-order campaign accepts orders before settlement"
    )

    SETTLEMENT_SCHEDULE_HOUR: int = Field(
        default=2,
        ge=0,
        le=23,
        description="UTC hour at which Celery beat triggers the daily batch"
    )

    SETTLEMENT_SCHEDULE_MINUTE: int = Field(
        default=0,
        ge=0,
        le=59,
        description="UTC minute at which Celery beat triggers the daily batch"
    )

    SETTLEMENT_SECRET: str = Field(
        default="dev-settlement-secret-change-me",
        min_length=16,
        description="Shared secret the scheduler sends in X-Settlement-Secret"
    )

    DEFAULT_ROYALTY_RATE: Decimal = Field(
        default=Decimal("0.12"),
        ge=0,
        le=1,
        description="Designer royalty rate when the campaign has no copyright model"
    )

    DEFAULT_QUARTERLY_CAP: Decimal = Field(
        default=Decimal("5000"),
        ge=0,
        description="Designer quarterly earnings cap when the profile has none"
    )

    EXTERNAL_CALL_TIMEOUT_SECONDS: int = Field(
        default=20,
        ge=1,
        le=300,
        description="Timeout applied to database and transfer calls"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------

    ENVIRONMENT: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Current environment"
    )

    DEBUG: bool = Field(
        default=False,
        description="Enable debug mode (verbose logging)"
    )

    API_HOST: str = Field(
        default="0.0.0.0",
        description="Host to bind the API server to"
    )

    API_PORT: int = Field(
        default=8000,
        ge=1,
        le=65535,
        description="Port for the API server"
    )

    # CORS origins (comma-separated string that gets parsed)
    CORS_ORIGINS: str = Field(
        default="http://localhost:3000",
        description="Allowed CORS origins (comma-separated)"
    )

    # -------------------------------------------------------------------------
    # Pydantic Settings Configuration
    # -------------------------------------------------------------------------

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        # Don't fail if .env doesn't exist (production sets env vars directly)
        env_ignore_empty=True,
        case_sensitive=True,
    )

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def cors_origins_list(self) -> list[str]:
        """
        Parse CORS_ORIGINS string into a list.

        Example: "http://localhost:3000, https://myapp.com" -> ["http://localhost:3000", "https://myapp.com"]
        """
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached Settings instance.

    Using lru_cache ensures we only parse .env and validate once,
    not on every access.

    Returns:
        Settings: The application settings instance
    """
    return Settings()


# Global settings instance for easy importing
# Usage: from app.config import settings
settings = get_settings()
