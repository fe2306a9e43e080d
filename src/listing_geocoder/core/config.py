"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables (or a ``.env`` file)
following 12-factor principles.
"""

import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./listing_geocoder.db",
        description="Async SQLAlchemy connection string (postgresql+asyncpg:// in production)",
    )
    database_schema: str | None = Field(
        default=None,
        description="PostgreSQL schema for isolated environments (e.g., pr_42)",
    )

    @field_validator("database_schema")
    @classmethod
    def validate_database_schema(cls, v: str | None) -> str | None:
        if v is None:
            return None
        if not re.match(r"^[a-z_][a-z0-9_]{0,62}$", v):
            msg = "Invalid database_schema: must match ^[a-z_][a-z0-9_]{0,62}$"
            raise ValueError(msg)
        return v

    # Invocation surface
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )
    service_token: str | None = Field(
        default=None,
        description="Bearer token required by the geocoding endpoint (open when unset)",
    )

    # Geocoding provider
    geocoder_provider: str = Field(
        default="nominatim",
        description="Name of the registered geocoder provider",
    )
    geocoder_nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org/search",
        description="Nominatim search endpoint (self-hostable)",
    )
    geocoder_nominatim_email: str = Field(
        default="",
        description="Email for Nominatim usage policy compliance",
    )
    geocoder_nominatim_user_agent: str = Field(
        default="listing-geocoder/0.1",
        description="User-Agent sent to Nominatim",
    )
    geocoder_nominatim_country_codes: str = Field(
        default="",
        description="Comma-separated ISO country codes to restrict Nominatim results",
    )
    geocoder_timeout: float = Field(
        default=10.0,
        description="Per-request geocoder timeout in seconds",
        gt=0,
    )
    geocoder_min_interval: float = Field(
        default=1.0,
        description="Minimum seconds between consecutive provider calls",
        ge=0,
    )
    geocoder_max_simplifications: int = Field(
        default=3,
        description="How many progressively shortened address variants to try after the full address",
        ge=0,
    )
    geocoder_cache_ttl_days: int = Field(
        default=7,
        description="Days a cached geocoding result stays valid",
        gt=0,
    )

    # Queue / worker
    geocode_batch_size: int = Field(
        default=10,
        description="Queue items claimed per batch",
        gt=0,
        le=1000,
    )
    geocode_max_retries: int = Field(
        default=3,
        description="Failed attempts before an item is permanently failed",
        gt=0,
    )
    geocode_stale_after_minutes: int = Field(
        default=60,
        description="Minutes after which a processing item is presumed orphaned",
        gt=0,
    )
    geocode_cleanup_days: int = Field(
        default=30,
        description="Retention window for finished queue items",
        gt=0,
    )

    # Scheduler
    geocode_scheduler_enabled: bool = Field(
        default=True,
        description="Run the periodic geocoding scheduler inside the API process",
    )
    geocode_schedule_interval: int = Field(
        default=300,
        description="Seconds between scheduled batch runs",
        ge=1,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables a daily-rotated log file when set)",
    )
    log_json: bool = Field(
        default=False,
        description="Emit stderr logs as JSON lines instead of the human-readable format",
    )

    @property
    def geocoder_country_code_list(self) -> list[str]:
        """Parse the country code string into a lowercase list."""
        if not self.geocoder_nominatim_country_codes.strip():
            return []
        return [c.strip().lower() for c in self.geocoder_nominatim_country_codes.split(",") if c.strip()]


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
