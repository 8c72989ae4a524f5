# ==============================================================================
# Application Configuration
# ==============================================================================
"""
Configuration management using pydantic-settings.

All configuration is loaded from environment variables, with support for
.env files via python-dotenv.
"""

from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file before any settings are instantiated
load_dotenv()


class PostgresSettings(BaseSettings):
    """PostgreSQL connection settings for the analytics tables."""

    model_config = SettingsConfigDict(env_prefix="PG_")

    host: str = Field(default="localhost", description="PostgreSQL host")
    port: int = Field(default=5432, description="PostgreSQL port")
    user: str = Field(default="postgres", description="PostgreSQL username")
    password: str = Field(default="postgres", description="PostgreSQL password")
    database: str = Field(default="sitepulse", description="Database name")
    schema_name: str = Field(default="public", description="Schema name")
    sslmode: str = Field(default="prefer", description="SSL mode")

    @property
    def connection_string(self) -> str:
        """Build PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}?sslmode={self.sslmode}"
        )


class ValkeySettings(BaseSettings):
    """Valkey (Redis-compatible) settings for context storage and change notifications."""

    model_config = SettingsConfigDict(env_prefix="VALKEY_")

    host: str = Field(default="localhost", description="Valkey host")
    port: int = Field(default=6379, description="Valkey port")
    password: Optional[str] = Field(default=None, description="Valkey password")
    db: int = Field(default=0, description="Valkey database number")
    ssl: bool = Field(default=False, description="Use SSL/TLS connection")

    # Browsing-context storage (session id persistence)
    context_ttl_minutes: int = Field(
        default=30, description="TTL for browsing-context storage keys in minutes"
    )
    channel_prefix: str = Field(
        default="sitepulse:changes:", description="Pub/sub channel prefix for table changes"
    )

    @property
    def url(self) -> str:
        """Build Valkey connection URL."""
        # Use rediss:// scheme for SSL connections
        scheme = "rediss" if self.ssl else "redis"
        if self.password:
            return f"{scheme}://:{self.password}@{self.host}:{self.port}/{self.db}"
        return f"{scheme}://{self.host}:{self.port}/{self.db}"


class GeolocationSettings(BaseSettings):
    """IP geolocation lookup settings."""

    model_config = SettingsConfigDict(env_prefix="GEO_")

    enabled: bool = Field(default=True, description="Resolve geolocation for events")
    url: str = Field(default="https://ipapi.co/json/", description="Geolocation lookup URL")
    timeout_seconds: float = Field(
        default=2.0, description="Hard timeout for the geolocation lookup"
    )


class TrackingSettings(BaseSettings):
    """Client-side capture and delivery settings."""

    model_config = SettingsConfigDict(env_prefix="TRACKING_")

    delivery_timeout_seconds: float = Field(
        default=5.0, description="Timeout for a single Data Store write"
    )
    settle_delay_seconds: float = Field(
        default=0.1, description="Delay before instrumenting a freshly mounted page"
    )
    scroll_throttle_seconds: float = Field(
        default=0.25, description="Quiet period before a scroll position is sampled"
    )


class DashboardSettings(BaseSettings):
    """Aggregation reader and realtime refresh settings."""

    model_config = SettingsConfigDict(env_prefix="DASHBOARD_")

    debounce_seconds: float = Field(
        default=1.0, description="Delay between a change notification and the re-pull"
    )
    poll_interval_seconds: float = Field(
        default=30.0, description="Fallback re-pull interval"
    )
    realtime_window_minutes: int = Field(
        default=5, description="Window for counting realtime visitors"
    )
    summary_window_days: int = Field(
        default=30, description="Days of history covered by the summary totals"
    )
    activity_feed_size: int = Field(default=20, description="Recent events kept in the feed")


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        extra="ignore",
    )

    # Nested settings
    postgres: PostgresSettings = Field(default_factory=PostgresSettings)
    valkey: ValkeySettings = Field(default_factory=ValkeySettings)
    geolocation: GeolocationSettings = Field(default_factory=GeolocationSettings)
    tracking: TrackingSettings = Field(default_factory=TrackingSettings)
    dashboard: DashboardSettings = Field(default_factory=DashboardSettings)

    # General settings
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Settings are loaded once and cached for subsequent calls.
    """
    return Settings()
