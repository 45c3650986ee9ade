"""Configuration models for infobot.

Provides Pydantic models for:
- DiscordConfig: webhook destination for notifications
- YouTubeSourceConfig / InstagramSourceConfig / LinkedInSourceConfig
- SchedulerSettings: check interval, cleanup time, error summary throttle
- StorageSettings: SQLite location and retention window
- NotificationSettings: mention and pacing options
- InfobotConfig: root model loaded from YAML by ConfigManager

Usage:
    from infobot.models.config import InfobotConfig

    config = InfobotConfig(
        discord={"webhook_url": "https://discord.com/api/webhooks/1/abc"},
        sources={"youtube": {"api_key": "...", "channel_id": "UC..."}},
    )
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, HttpUrl, field_validator

MIN_CHECK_INTERVAL_MINUTES = 5
MAX_CHECK_INTERVAL_MINUTES = 1440


def _blank_to_none(v: Optional[str]) -> Optional[str]:
    """Treat empty strings and unsubstituted ${VAR} placeholders as unset."""
    if v is None:
        return None
    v = str(v).strip()
    if v == "" or (v.startswith("${") and v.endswith("}")):
        return None
    return v


class DiscordConfig(BaseModel):
    """Discord webhook destination.

    Attributes:
        webhook_url: Channel webhook URL (from ${DISCORD_WEBHOOK_URL}).
        username: Optional display name override for webhook posts.
        avatar_url: Optional avatar override for webhook posts.
        timeout_seconds: HTTP timeout for webhook requests.
    """

    webhook_url: Optional[HttpUrl] = Field(
        default=None, description="Discord webhook URL from ${DISCORD_WEBHOOK_URL}"
    )
    username: Optional[str] = Field(default=None, max_length=80)
    avatar_url: Optional[HttpUrl] = None
    timeout_seconds: float = Field(default=10.0, ge=1.0, le=60.0)
    max_attempts: int = Field(
        default=3, ge=1, le=10, description="Attempts for timeouts and 5xx answers"
    )

    @field_validator("webhook_url", "avatar_url", "username", mode="before")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class YouTubeSourceConfig(BaseModel):
    """YouTube Data API source."""

    enabled: bool = True
    api_key: Optional[str] = None
    channel_id: Optional[str] = None
    channel_handle: Optional[str] = None
    max_results: int = Field(default=10, ge=1, le=50)

    @field_validator("api_key", "channel_id", "channel_handle", mode="before")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class InstagramSourceConfig(BaseModel):
    """Instagram profile scraped from the public web page."""

    enabled: bool = True
    username: Optional[str] = None
    max_results: int = Field(default=10, ge=1, le=50)
    request_delay_seconds: float = Field(
        default=10.0, ge=0.0, le=600.0, description="Base delay between requests"
    )
    rate_limit_wait_seconds: float = Field(
        default=30.0, ge=0.0, le=600.0, description="First wait after a 429"
    )
    max_attempts: int = Field(default=3, ge=1, le=10)

    @field_validator("username", mode="before")
    @classmethod
    def normalise_username(cls, v: Optional[str]) -> Optional[str]:
        v = _blank_to_none(v)
        if v is not None:
            v = v.lstrip("@")
        return v


class LinkedInSourceConfig(BaseModel):
    """LinkedIn profile scraped from the public web page."""

    enabled: bool = True
    profile_url: Optional[str] = None
    max_results: int = Field(default=10, ge=1, le=50)
    request_delay_seconds: float = Field(default=3.0, ge=0.0, le=600.0)
    rate_limit_wait_seconds: float = Field(default=30.0, ge=0.0, le=600.0)
    max_attempts: int = Field(default=3, ge=1, le=10)

    @field_validator("profile_url", mode="before")
    @classmethod
    def blank_is_unset(cls, v: Optional[str]) -> Optional[str]:
        return _blank_to_none(v)


class SourcesConfig(BaseModel):
    """All source configurations plus shared fetch settings."""

    youtube: YouTubeSourceConfig = Field(default_factory=YouTubeSourceConfig)
    instagram: InstagramSourceConfig = Field(default_factory=InstagramSourceConfig)
    linkedin: LinkedInSourceConfig = Field(default_factory=LinkedInSourceConfig)
    fetch_timeout_seconds: float = Field(
        default=15.0, ge=1.0, le=120.0, description="Timeout for every outbound fetch"
    )
    default_lookback_hours: int = Field(
        default=24,
        ge=1,
        le=720,
        description="Cursor used for a source that has never been checked",
    )


class SchedulerSettings(BaseModel):
    """Timing of check and cleanup cycles."""

    check_interval_minutes: int = Field(
        default=30,
        ge=MIN_CHECK_INTERVAL_MINUTES,
        le=MAX_CHECK_INTERVAL_MINUTES,
    )
    cleanup_hour: int = Field(default=2, ge=0, le=23)
    cleanup_minute: int = Field(default=0, ge=0, le=59)
    timezone: str = Field(default="UTC")
    initial_delay_seconds: float = Field(default=5.0, ge=0.0, le=300.0)
    error_summary_interval_seconds: float = Field(default=3600.0, ge=0.0)

    @field_validator("check_interval_minutes", mode="before")
    @classmethod
    def default_when_blank(cls, v):
        if isinstance(v, str) and _blank_to_none(v) is None:
            return 30
        return v


class StorageSettings(BaseModel):
    """Dedup Store location and retention."""

    database_path: str = Field(default="./data/infobot.db")
    retention_days: int = Field(default=30, ge=1, le=3650)

    @field_validator("database_path", mode="before")
    @classmethod
    def default_when_blank(cls, v: Optional[str]) -> str:
        return _blank_to_none(v) or "./data/infobot.db"


class NotificationSettings(BaseModel):
    """How items are announced in the channel."""

    mention_everyone: bool = Field(default=True)
    inter_message_delay_seconds: float = Field(default=1.0, ge=0.0, le=60.0)
    announce_startup: bool = Field(default=True)
    announce_shutdown: bool = Field(default=True)


class LoggingSettings(BaseModel):
    """Structured logging output."""

    level: str = Field(default="INFO")
    json_output: bool = Field(default=True)

    @field_validator("level", mode="before")
    @classmethod
    def normalise_level(cls, v: Optional[str]) -> str:
        v = _blank_to_none(v) or "INFO"
        v = v.upper()
        if v not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return v


class InfobotConfig(BaseModel):
    """Root configuration model"""

    model_config = ConfigDict(extra="forbid")

    discord: DiscordConfig = Field(default_factory=DiscordConfig)
    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    notification: NotificationSettings = Field(default_factory=NotificationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
