"""
Configuration for the channel sync service.

Provides settings for the collection scheduler, the remote
telemetry API, batch replication and both database pools.
"""
from functools import lru_cache
from typing import Literal
from urllib.parse import quote

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CollectorSettings(BaseSettings):
    """Collection scheduler configuration."""

    model_config = SettingsConfigDict(
        env_prefix="COLLECTOR_",
        env_file=".env",
        extra="ignore",
    )

    interval_ms: int = Field(default=10000, gt=0, description="Collection interval (milliseconds)")
    retry_attempts: int = Field(default=3, ge=0, description="Early retries after a failed cycle")
    retry_delay_ms: int = Field(default=5000, gt=0, description="Base delay before an early retry (milliseconds)")
    overlap_policy: Literal["skip", "queue"] = Field(
        default="skip",
        description="What to do with a tick that fires while a cycle is still running",
    )

    @property
    def interval(self) -> float:
        """Collection interval in seconds."""
        return self.interval_ms / 1000

    @property
    def retry_delay(self) -> float:
        """Retry delay in seconds."""
        return self.retry_delay_ms / 1000


class TelemetryApiSettings(BaseSettings):
    """Remote telemetry API configuration."""

    model_config = SettingsConfigDict(
        env_prefix="TELEMETRY_API_",
        env_file=".env",
        extra="ignore",
    )

    base_url: str = Field(default="http://localhost:8443", description="Telemetry API base URL")
    url_style: Literal["path", "query"] = Field(
        default="path",
        description="'path' for /channels/<id>?api_key=, 'query' for ?id=&auth_key=",
    )
    timeout: float = Field(default=5.0, gt=0, description="Request timeout in seconds")


class SyncSettings(BaseSettings):
    """Feed replication configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SYNC_",
        env_file=".env",
        extra="ignore",
    )

    enabled: bool = Field(default=True, description="Run the periodic sync worker")
    batch_size: int = Field(default=1000, gt=0, description="Rows replicated per batch")
    interval: float = Field(default=60.0, gt=0, description="Sync worker interval in seconds")
    start_id: int = Field(default=0, ge=0, description="Initial cursor (last processed entry_id)")


class DatabaseSettings(BaseSettings):
    """Connection pool configuration for one database."""

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    host: str = Field(default="localhost", description="Database host")
    port: int = Field(default=5432, description="Database port")
    name: str = Field(default="channel_sync", description="Database name")
    user: str = Field(default="postgres", description="Database user")
    password: str = Field(default="postgres", description="Database password")
    pool_min_size: int = Field(default=2, ge=0, description="Minimum pool connections")
    pool_max_size: int = Field(default=10, gt=0, description="Maximum pool connections")
    command_timeout: float = Field(default=30.0, gt=0, description="Per-query timeout in seconds")

    @property
    def dsn(self) -> str:
        """Build database DSN (credentials percent-encoded)."""
        user = quote(self.user, safe="")
        password = quote(self.password, safe="")
        return f"postgresql://{user}:{password}@{self.host}:{self.port}/{self.name}"


class MainDatabaseSettings(DatabaseSettings):
    """Destination database (channels, replicated feeds, process log)."""

    model_config = SettingsConfigDict(
        env_prefix="MAIN_DB_",
        env_file=".env",
        extra="ignore",
    )


class FeedsDatabaseSettings(DatabaseSettings):
    """Source database holding the raw channel feeds."""

    model_config = SettingsConfigDict(
        env_prefix="FEEDS_DB_",
        env_file=".env",
        extra="ignore",
    )

    name: str = Field(default="opt_opp", description="Database name")


class ChannelSyncSettings(BaseSettings):
    """Main configuration for the channel sync service."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Channel Sync")
    log_level: str = Field(default="INFO")

    # Sub-settings
    collector: CollectorSettings = Field(default_factory=CollectorSettings)
    telemetry_api: TelemetryApiSettings = Field(default_factory=TelemetryApiSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    main_db: MainDatabaseSettings = Field(default_factory=MainDatabaseSettings)
    feeds_db: FeedsDatabaseSettings = Field(default_factory=FeedsDatabaseSettings)


@lru_cache()
def get_settings() -> ChannelSyncSettings:
    """
    Get cached settings.

    Uses LRU cache to avoid re-reading environment variables on every access.
    """
    return ChannelSyncSettings()
