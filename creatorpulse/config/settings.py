"""
Application Settings.

Centralized configuration using Pydantic Settings with environment variable loading.
Provider credentials are optional at load time; components that need them raise
ConfigurationError when they are constructed without them.

Production Mode:
    When app_env="production", additional validations apply:
    - cron_secret must be set
    - debug must be False
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Supabase (Content, Creators, Snapshots)
    # -------------------------------------------------------------------------
    supabase_url: str | None = Field(default=None, description="Supabase project URL")
    supabase_key: SecretStr | None = Field(
        default=None, description="Supabase service role key"
    )

    # -------------------------------------------------------------------------
    # Redis (Job Queues / Rate Limiting)
    # -------------------------------------------------------------------------
    redis_url: str | None = Field(default=None, description="Redis connection URL")
    queue_key_prefix: str = Field(
        default="creatorpulse:queue",
        description="Prefix for queue keys in Redis",
    )

    # -------------------------------------------------------------------------
    # BrightData (LinkedIn snapshots)
    # -------------------------------------------------------------------------
    brightdata_api_key: SecretStr | None = Field(
        default=None, description="BrightData API key"
    )
    brightdata_base_url: str = Field(
        default="https://api.brightdata.com",
        description="BrightData API base URL",
    )
    brightdata_dataset_id: str = Field(
        default="gd_lyy3tktm25m4avu764",
        description="BrightData LinkedIn posts dataset id",
    )
    brightdata_rate_limit: int = Field(
        default=5, description="Max BrightData requests per rate window"
    )
    brightdata_rate_window_seconds: int = Field(
        default=60, description="BrightData rate window in seconds"
    )
    brightdata_lookback_hours: int = Field(
        default=48, description="Collection window for snapshot triggers"
    )
    brightdata_limit_per_input: int = Field(
        default=5, description="Max posts per profile URL per snapshot"
    )

    # -------------------------------------------------------------------------
    # Apify (Twitter / Threads)
    # -------------------------------------------------------------------------
    apify_api_token: SecretStr | None = Field(default=None, description="Apify API token")

    # -------------------------------------------------------------------------
    # OpenAI (Relevancy judgment)
    # -------------------------------------------------------------------------
    openai_api_key: SecretStr | None = Field(
        default=None, description="OpenAI API key for relevancy scoring"
    )
    relevancy_model: str = Field(default="gpt-4o-mini", description="Relevancy model")
    relevancy_batch_size: int = Field(default=100, ge=1, le=1000)
    relevancy_window_days: int = Field(
        default=7, description="Only content created within this window is scored"
    )
    relevancy_concurrency: int = Field(default=5, ge=1)
    relevancy_theme: str = Field(
        default="technology, startups, AI and business growth",
        description="Topic content is judged against",
    )
    relevancy_threshold: int | None = Field(
        default=60,
        ge=0,
        le=100,
        description="Scores below this soft-delete the content; unset keeps everything",
    )

    # -------------------------------------------------------------------------
    # Duplicate grouping
    # -------------------------------------------------------------------------
    dedup_batch_size: int = Field(default=100, ge=1, le=1000)
    dedup_similarity_threshold: float = Field(
        default=0.85, gt=0, le=1, description="Word overlap at which social posts match"
    )
    dedup_window_days: int = Field(
        default=30, ge=1, description="How far back social posts are compared"
    )

    # -------------------------------------------------------------------------
    # Feed fetching
    # -------------------------------------------------------------------------
    feed_timeout_seconds: float = Field(default=30.0, description="Feed fetch timeout")
    feed_max_items: int = Field(default=20, description="Max items taken from a feed")

    # -------------------------------------------------------------------------
    # Queue workers
    # -------------------------------------------------------------------------
    content_fetch_concurrency: int = Field(default=5, ge=1)
    creator_processing_concurrency: int = Field(default=10, ge=1)
    relevancy_scoring_concurrency: int = Field(default=3, ge=1)
    brightdata_concurrency: int = Field(default=2, ge=1)
    job_timeout_seconds: float = Field(
        default=300.0, description="Hard timeout for a single job attempt"
    )
    completed_job_retention_seconds: int = Field(
        default=24 * 3600, description="Max age of completed jobs kept for inspection"
    )
    completed_job_retention_count: int = Field(default=100)
    failed_job_retention_count: int = Field(default=500)
    cleanup_completed_older_than_seconds: int = Field(
        default=3600, description="Cleanup trigger removes completed jobs older than this"
    )

    # -------------------------------------------------------------------------
    # Application Settings
    # -------------------------------------------------------------------------
    app_env: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Application environment",
    )
    debug: bool = Field(default=True, description="Enable debug mode")
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)
    scheduler_enabled: bool = Field(
        default=True,
        description="Run the periodic triggers inside the API process",
    )
    cors_allowed_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Origins allowed to call the API",
    )

    # -------------------------------------------------------------------------
    # Security Settings
    # -------------------------------------------------------------------------
    cron_secret: SecretStr | None = Field(
        default=None,
        description="Bearer token required on cron endpoints when set",
    )

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.app_env == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.app_env == "development"

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate that production settings are secure."""
        if self.app_env == "production":
            errors = []

            if not self.cron_secret:
                errors.append("cron_secret must be set in production")

            if self.debug:
                errors.append("debug must be False in production")

            if errors:
                raise ValueError(
                    f"Production configuration errors: {'; '.join(errors)}"
                )

        return self


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call get_settings.cache_clear() to reload settings if needed.
    """
    return Settings()
