"""Application configuration via Pydantic Settings.

All configuration is loaded from environment variables following 12-factor principles.
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
        description="PostgreSQL async connection string",
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

    # Trigger authorization
    cron_secret: str = Field(
        min_length=16,
        description="Shared secret required by the batch trigger and admin queue endpoints (minimum 16 characters)",
    )

    # Places: Nominatim (OpenStreetMap community data)
    places_nominatim_enabled: bool = Field(
        default=True,
        description="Enable the Nominatim community-dataset provider",
    )
    places_nominatim_base_url: str = Field(
        default="https://nominatim.openstreetmap.org",
        description="Nominatim base URL (self-hostable)",
    )
    places_nominatim_email: str = Field(
        default="",
        description="Email for Nominatim usage policy compliance",
    )
    places_nominatim_user_agent: str = Field(
        default="location-api/1.0",
        description="User-Agent header sent to Nominatim",
    )
    places_nominatim_timeout: float = Field(
        default=10.0,
        description="Nominatim request timeout in seconds",
        gt=0,
    )
    places_nominatim_min_interval: float = Field(
        default=1.0,
        description="Minimum spacing in seconds between Nominatim calls (public usage policy)",
        ge=1.0,
    )
    places_nominatim_limit: int = Field(
        default=50,
        description="Maximum results requested per Nominatim search",
        gt=0,
        le=50,
    )

    # Places: Google Places (commercial)
    places_google_api_key: str | None = Field(
        default=None,
        description="Google Places API key (commercial provider is skipped when unset)",
    )
    places_google_timeout: float = Field(
        default=10.0,
        description="Google Places request timeout in seconds",
        gt=0,
    )
    places_google_search_cost: float = Field(
        default=0.032,
        description="Estimated USD cost of one Text Search request",
        ge=0,
    )
    places_google_detail_cost: float = Field(
        default=0.017,
        description="Estimated USD cost of one Place Details request",
        ge=0,
    )
    places_google_max_detail_lookups: int = Field(
        default=20,
        description="Maximum Place Details lookups per search",
        ge=0,
    )

    # Places: AI discovery (Anthropic)
    places_ai_api_key: str | None = Field(
        default=None,
        description="Anthropic API key for the AI discovery fallback (skipped when unset)",
    )
    places_ai_model: str = Field(
        default="claude-haiku-4-5",
        description="Model used by the AI discovery provider",
    )
    places_ai_timeout: float = Field(
        default=30.0,
        description="AI discovery request timeout in seconds",
        gt=0,
    )
    places_ai_cost: float = Field(
        default=0.01,
        description="Fixed estimated USD cost per AI discovery invocation",
        ge=0,
    )

    # Resolver
    resolver_provider_order: str = Field(
        default="nominatim,google,ai",
        description="Comma-separated provider order, cheapest first",
    )
    resolver_sufficiency_threshold: int = Field(
        default=3,
        description="Minimum community results before costlier providers are skipped",
        gt=0,
    )
    resolver_cache_ttl_days: int = Field(
        default=30,
        description="Days a resolution result stays cached",
        gt=0,
    )

    @property
    def resolver_provider_order_list(self) -> list[str]:
        """Parse provider order string into a list of provider names.

        Returns:
            List of provider names in resolution order.
        """
        if not self.resolver_provider_order.strip():
            return []
        return [p.strip().lower() for p in self.resolver_provider_order.split(",") if p.strip()]

    # Import queue
    queue_batch_size: int = Field(
        default=10,
        description="Jobs claimed per processor invocation",
        gt=0,
        le=100,
    )
    queue_inter_job_delay: float = Field(
        default=2.0,
        description="Seconds to wait between jobs within a batch",
        ge=0,
    )
    queue_max_attempts: int = Field(
        default=3,
        description="Attempts before a job is marked permanently failed",
        gt=0,
    )
    queue_stale_after_minutes: int = Field(
        default=15,
        description="Minutes a job may stay processing before it is reclaimed",
        gt=0,
    )
    queue_default_priority: int = Field(
        default=100,
        description="Priority for manually enqueued jobs (lower = more urgent)",
        ge=1,
    )
    queue_card_created_priority: int = Field(
        default=10,
        description="Priority for jobs enqueued by card creation",
        ge=1,
    )
    queue_default_radius_km: float = Field(
        default=100.0,
        description="Search radius used when an enqueue request omits one",
        gt=0,
    )
    location_dedup_distance_m: float = Field(
        default=150.0,
        description="Locations of the same brand closer than this are treated as duplicates",
        gt=0,
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_dir: str | None = Field(
        default=None,
        description="Directory for log files (enables file logging with 24h rotation when set)",
    )

    # Environment
    environment: str = Field(
        default="production",
        description="Deployment environment name (e.g. production, dev, staging)",
    )

    # API
    api_v1_prefix: str = Field(
        default="/api/v1",
        description="API version prefix",
    )


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()  # type: ignore[call-arg]
