"""Settings and configuration management."""

import logging
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


def split_csv(value: Optional[str]) -> List[str]:
    """Split a comma-separated setting into trimmed, non-empty parts."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Storage
    database_path: str = Field("newsdesk.db", description="SQLite database file")

    # Content Sources
    rss_feeds: Optional[str] = Field(
        None, description="Comma-separated feed URLs seeded into the feeds table"
    )
    extract_full_text: bool = Field(
        False, description="Fetch the linked page and store its readable text"
    )
    ingest_window_hours: int = Field(
        24, ge=1, le=168, description="Only ingest items published this recently"
    )

    # AI Processing
    openrouter_api_key: Optional[str] = Field(None, description="OpenRouter")
    openrouter_base_url: str = Field(
        "https://openrouter.ai/api/v1", description="Chat completions base URL"
    )
    openrouter_model: str = Field(
        "openai/gpt-4o-mini", description="Primary completion model"
    )
    openrouter_fallback_models: Optional[str] = Field(
        "google/gemini-flash-1.5-8b,meta-llama/llama-3.2-11b-vision-instruct:free",
        description="Comma-separated models tried when the primary fails",
    )
    ai_timeout: float = Field(
        60.0, ge=5.0, le=300.0, description="Upper bound for one AI call in seconds"
    )

    # OpenRouter Rate Limiting Settings
    openrouter_min_request_interval: float = Field(
        3.2,
        ge=0.0,
        le=10.0,
        description="Minimum seconds between OpenRouter requests (free tier: 20 req/min)",
    )
    openrouter_max_backoff_multiplier: float = Field(
        8.0,
        ge=2.0,
        le=32.0,
        description="Maximum backoff multiplier for consecutive failures",
    )

    # Pipeline batching
    scoring_batch_size: int = Field(3, ge=1, le=20, description="Items per batch")
    scoring_batch_delay: float = Field(
        2.0, ge=0.0, le=60.0, description="Seconds between scoring batches"
    )
    generation_batch_size: int = Field(
        2, ge=1, le=20, description="Items per generation batch"
    )
    generation_batch_delay: float = Field(
        3.0, ge=0.0, le=60.0, description="Seconds between generation batches"
    )

    # Selection
    max_active_articles: int = Field(
        3, ge=1, le=50, description="Articles activated per cycle"
    )
    fact_check_threshold: float = Field(
        15.0, ge=0.0, le=100.0, description="Minimum fact-check score to publish"
    )

    # Filtering and images
    blocked_domains: Optional[str] = Field(
        None, description="Comma-separated source hosts that are never ingested"
    )
    image_block_authors: Optional[str] = Field(
        None, description="Comma-separated authors whose images are dropped"
    )
    image_rehost_domains: Optional[str] = Field(
        "fbcdn.net", description="Comma-separated image hosts that get re-hosted"
    )
    image_storage_url: Optional[str] = Field(
        None, description="Object storage endpoint used for image re-hosting"
    )
    image_storage_bucket: str = Field("post-images", description="Storage bucket")
    image_storage_token: Optional[str] = Field(None, description="Storage token")
    image_public_base_url: Optional[str] = Field(
        None, description="Public URL prefix for re-hosted images"
    )

    # Notifications
    slack_webhook_url: Optional[str] = Field(None, description="Slack webhook")

    # Application Settings
    debug: bool = Field(False, description="Debug mode")
    log_level: str = Field("INFO", description="Log level")

    # API Timeout Settings (in seconds)
    rss_feed_timeout: float = Field(
        30.0, ge=5.0, le=120.0, description="RSS feed fetch timeout in seconds"
    )
    rss_content_timeout: float = Field(
        15.0,
        ge=5.0,
        le=60.0,
        description="RSS article content fetch timeout in seconds",
    )
    image_upload_timeout: float = Field(
        20.0, ge=3.0, le=120.0, description="Image download and upload timeout"
    )
    slack_timeout: float = Field(
        10.0, ge=1.0, le=60.0, description="Slack webhook timeout in seconds"
    )

    default_user_agent: str = Field(
        "Newsdesk/1.0",
        min_length=5,
        max_length=100,
        description="Default User-Agent for HTTP requests",
    )

    @property
    def feed_urls(self) -> List[str]:
        return split_csv(self.rss_feeds)

    @property
    def fallback_models(self) -> List[str]:
        return split_csv(self.openrouter_fallback_models)
