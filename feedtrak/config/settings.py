"""
FeedTrak Configuration System
=============================

Configuration management with environment variables and Pydantic models.
Environment variables (prefix ``FEEDTRAK_``, nested with ``__``) override
Field defaults.
"""

from pathlib import Path
from typing import List, Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings

from ..utils.exceptions import ConfigurationError, ErrorCode


class LogLevel(str, Enum):
    """Available log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class FetchSettings(BaseModel):
    """Outbound HTTP configuration."""
    request_timeout: int = Field(default=10, ge=1, le=120, description="Timeout for feed, page and API fetches in seconds")
    user_agent: str = Field(default="FeedTrak/1.0 (+feed discovery)", description="User agent for feed discovery")
    thumbnail_user_agent: str = Field(default="FeedTrak/1.0 (Thumbnail Fetcher)", description="User agent for article page fetches")
    excerpt_length: int = Field(default=300, ge=50, le=5000, description="Excerpt length in characters")


class IngestionSettings(BaseModel):
    """Entry ingestion limits."""
    new_feed_entry_limit: int = Field(default=15, ge=1, le=1000, description="Entries ingested on a feed's first fetch")
    existing_feed_entry_limit: int = Field(default=100, ge=1, le=1000, description="Entries ingested per refresh of a known feed")
    initial_unread_window: int = Field(default=15, ge=0, le=1000, description="Entries seeded as unread for a new subscriber")


class YouTubeSettings(BaseModel):
    """YouTube channel resolution configuration."""
    mirror_instances: List[str] = Field(
        default=[
            "https://inv.nadeko.net",
            "https://yewtu.be",
            "https://invidious.snopyta.org",
            "https://vid.puffyan.us",
        ],
        description="Read-only mirror API hosts queried for channel handles, in order",
    )
    browser_user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="User agent for channel page scraping",
    )
    consent_cookie: str = Field(
        default="CONSENT=YES+cb; SOCS=CAESHAgBEhJnd3NfMjAyMjA5MjktMF9SQzEaAnJvIAEaBgiAkvKZBg",
        description="Cookie header that skips the consent interstitial",
    )


class JobSettings(BaseModel):
    """Background job execution configuration."""
    worker_count: int = Field(default=4, ge=1, le=64, description="Worker threads")
    fetch_max_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per feed fetch job")
    fetch_backoff: List[int] = Field(default=[10, 30, 60], description="Seconds between fetch attempts")
    fetch_timeout: int = Field(default=30, ge=1, le=600, description="Seconds per fetch attempt")
    thumbnail_max_attempts: int = Field(default=2, ge=1, le=10, description="Attempts per thumbnail job")
    thumbnail_timeout: int = Field(default=15, ge=1, le=600, description="Seconds per thumbnail attempt")

    @field_validator('fetch_backoff')
    @classmethod
    def validate_backoff(cls, v):
        """Backoff delays must be non-negative."""
        if not v or any(delay < 0 for delay in v):
            raise ValueError("fetch_backoff must be a non-empty list of non-negative seconds")
        return v


class SchedulerSettings(BaseModel):
    """Recurring refresh configuration."""
    refresh_interval_minutes: int = Field(default=30, ge=1, description="Minutes between full refreshes")
    stale_after_minutes: int = Field(default=30, ge=1, description="Age after which a feed is stale")
    manual_refresh_min_age_minutes: int = Field(default=5, ge=0, description="Feeds fresher than this are skipped by refresh-all")
    thumbnail_interval_minutes: int = Field(default=60, ge=1, description="Minutes between thumbnail backfills")
    thumbnail_batch_size: int = Field(default=50, ge=1, le=10000, description="Entries per thumbnail backfill")


class OpmlSettings(BaseModel):
    """OPML upload configuration."""
    max_upload_bytes: int = Field(default=10 * 1024 * 1024, ge=1024, description="Maximum OPML upload size")
    allowed_extensions: List[str] = Field(default=[".xml", ".opml"], description="Accepted file extensions")
    candidate_encodings: List[str] = Field(
        default=["utf-8", "windows-1252", "iso-8859-1"],
        description="Encodings tried, in order, when the upload is not UTF-8",
    )


class DatabaseSettings(BaseModel):
    """Database configuration."""
    path: str = Field(default="data/feedtrak.db", description="SQLite database file path")
    pool_size: int = Field(default=5, ge=1, le=20, description="Connection pool size")


class LoggingSettings(BaseModel):
    """Logging configuration."""
    level: LogLevel = Field(default=LogLevel.INFO, description="Global log level")
    file_path: Optional[str] = Field(default="logs/feedtrak.log", description="Log file path")
    max_file_size_mb: int = Field(default=10, ge=1, le=100, description="Max log file size in MB")
    backup_count: int = Field(default=5, ge=1, le=20, description="Number of log backup files")
    structured_logging: bool = Field(default=False, description="Use structured JSON logging")
    console_logging: bool = Field(default=True, description="Enable console logging")


class FeedTrakSettings(BaseSettings):
    """Main application settings."""

    fetch: FetchSettings = Field(default_factory=FetchSettings)
    ingestion: IngestionSettings = Field(default_factory=IngestionSettings)
    youtube: YouTubeSettings = Field(default_factory=YouTubeSettings)
    jobs: JobSettings = Field(default_factory=JobSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    opml: OpmlSettings = Field(default_factory=OpmlSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    app_name: str = Field(default="FeedTrak", description="Application name")
    version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Enable debug mode")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "env_nested_delimiter": "__",
        "env_prefix": "FEEDTRAK_",
    }

    def validate_configuration(self) -> None:
        """Validate complete configuration."""
        errors = []

        if self.database.path != ":memory:":
            try:
                Path(self.database.path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid database path: {e}")

        if self.logging.file_path:
            try:
                Path(self.logging.file_path).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Invalid log file path: {e}")

        if self.ingestion.existing_feed_entry_limit < self.ingestion.new_feed_entry_limit:
            errors.append("existing_feed_entry_limit must not be below new_feed_entry_limit")

        if errors:
            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}",
                error_code=ErrorCode.CONFIG_INVALID
            )

    def get_effective_log_level(self) -> str:
        """Get effective log level considering debug mode."""
        if self.debug:
            return "DEBUG"
        return self.logging.level.value


def load_settings() -> FeedTrakSettings:
    """Load settings from environment variables and defaults.

    Returns:
        Loaded and validated settings

    Raises:
        ConfigurationError: If configuration is invalid
    """
    from dotenv import load_dotenv
    load_dotenv()

    try:
        settings = FeedTrakSettings()
        settings.validate_configuration()
        return settings

    except ConfigurationError:
        raise
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize settings: {e}",
            error_code=ErrorCode.CONFIG_INVALID
        ) from e


_settings: Optional[FeedTrakSettings] = None


def get_settings(reload: bool = False) -> FeedTrakSettings:
    """Get global settings instance (singleton pattern).

    Args:
        reload: Force reload of settings

    Returns:
        Global settings instance
    """
    global _settings

    if _settings is None or reload:
        _settings = load_settings()

    return _settings
