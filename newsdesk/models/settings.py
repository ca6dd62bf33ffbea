"""Settings and configuration management."""

import logging
from typing import Optional

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # AI Processing
    openrouter_api_key: Optional[str] = Field(None, description="OpenRouter")
    openrouter_model: str = Field(
        "google/gemini-2.5-pro", description="Model used for structured generation"
    )
    openrouter_timeout: float = Field(
        60.0, ge=5.0, le=300.0, description="OpenRouter API request timeout in seconds"
    )

    # Application Settings
    debug: bool = Field(False, description="Debug mode")
    log_level: str = Field("INFO", description="Log level")

    # Structured generation retry policy
    retry_max_attempts: int = Field(
        3, ge=1, le=10, description="Attempts for a structured generation call"
    )
    retry_base_delay: float = Field(
        1.0, ge=0.0, le=60.0, description="First retry delay in seconds"
    )
    retry_backoff_multiplier: float = Field(
        2.0, ge=1.0, le=10.0, description="Growth factor between retry delays"
    )
    retry_max_delay: float = Field(
        10.0, ge=0.0, le=300.0, description="Upper bound on a single retry delay"
    )

    # Content fetching
    fetch_timeout: float = Field(
        15.0, ge=3.0, le=120.0, description="Article fetch timeout in seconds"
    )
    fetch_max_attempts: int = Field(
        3, ge=1, le=6, description="Attempts per document before degrading"
    )
    fetch_base_delay: float = Field(
        1.0, ge=0.0, le=30.0, description="Base delay between fetch attempts"
    )
    fetch_max_delay: float = Field(
        8.0, ge=0.0, le=120.0, description="Upper bound on a fetch retry delay"
    )
    rate_limit_extra_delay: float = Field(
        5.0, ge=0.0, le=120.0, description="Extra delay added after HTTP 429"
    )
    min_body_bytes: int = Field(
        512, ge=0, description="Bodies smaller than this are treated as block pages"
    )
    max_content_chars: int = Field(
        5000, ge=100, le=100000, description="Maximum stored body text length"
    )
    max_images: int = Field(3, ge=0, le=20, description="Images kept per document")
    max_header_size: int = Field(
        81920,
        ge=8190,
        le=1048576,
        description="Maximum response header line/field size in bytes",
    )
    scrape_batch_size: int = Field(
        5, ge=1, le=50, description="Documents fetched together in one batch"
    )
    scrape_batch_pause: float = Field(
        0.5, ge=0.0, le=60.0, description="Pause between batches in seconds"
    )
    default_user_agent: str = Field(
        "Newsdesk-Bot/1.0",
        min_length=5,
        max_length=100,
        description="User-Agent for the minimal header profile",
    )

    @model_validator(mode="after")
    def check_delay_bounds(self) -> "Settings":
        """Keep the delay ceilings at or above their base values."""
        if self.retry_max_delay < self.retry_base_delay:
            logger.warning(
                "retry_max_delay is below retry_base_delay - raising it to match"
            )
            self.retry_max_delay = self.retry_base_delay
        if self.fetch_max_delay < self.fetch_base_delay:
            logger.warning(
                "fetch_max_delay is below fetch_base_delay - raising it to match"
            )
            self.fetch_max_delay = self.fetch_base_delay
        return self

    def retry_policy(self, on_retry=None):
        """Build the retry policy for structured generation calls."""
        from newsdesk.core.retry import RetryPolicy

        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
            max_delay=self.retry_max_delay,
            on_retry=on_retry,
        )

    def transport_config(self):
        """Build the HTTP transport configuration."""
        from newsdesk.fetchers.http_session import TransportConfig

        return TransportConfig(
            timeout=self.fetch_timeout,
            max_header_size=self.max_header_size,
        )
