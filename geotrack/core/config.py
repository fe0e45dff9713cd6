"""
Application Configuration

This module provides centralized configuration management using Pydantic Settings.
Configuration can be loaded from environment variables or .env files.

These values are process defaults. Settings that users can change at runtime
(server URL, intervals, ...) are seeded from here into the ConfigurationStore
the first time the worker starts, after which the store is authoritative.
"""

from typing import Optional, List
from pathlib import Path
from functools import lru_cache
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Get project root directory
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Wake interval bounds (milliseconds)
MIN_WAKE_INTERVAL_MS = 60_000
MAX_WAKE_INTERVAL_MS = 1_800_000


class UploadSettings(BaseSettings):
    """Upload pipeline configuration"""
    server_url: str = Field(default="", description="Collector endpoint (empty disables uploads)")
    user_name: str = Field(default="default-user", description="User identifier sent with each fix")
    enabled: bool = Field(default=True, description="Upload enabled flag")
    foreground_interval_ms: int = Field(default=5000, gt=0, description="Throttle interval in foreground (ms)")
    background_interval_ms: int = Field(default=180000, gt=0, description="Throttle interval in background (ms)")
    forced_send_floor_ms: int = Field(
        default=1000, ge=0,
        description="Minimum spacing between a wake-cycle send and the previous send (ms)"
    )
    max_concurrent_sends: int = Field(default=2, ge=1, description="Size of the send worker pool")

    connect_timeout: float = Field(default=10.0, description="Connect timeout (seconds)")
    read_timeout: float = Field(default=30.0, description="Read timeout (seconds)")
    write_timeout: float = Field(default=30.0, description="Write timeout (seconds)")

    model_config = SettingsConfigDict(env_prefix="UPLOAD_")


class WakeSettings(BaseSettings):
    """Wake scheduler configuration"""
    interval_ms: int = Field(
        default=MIN_WAKE_INTERVAL_MS,
        ge=MIN_WAKE_INTERVAL_MS,
        le=MAX_WAKE_INTERVAL_MS,
        description="Wake cycle period (ms)"
    )
    settle_delay: float = Field(default=2.0, description="Wait after a forced fix before uploading (seconds)")
    max_hold: float = Field(default=600.0, description="Wake lock safety ceiling (seconds)")
    jitter: float = Field(default=0.05, ge=0, le=0.5, description="Timer jitter as a fraction of the period")

    model_config = SettingsConfigDict(env_prefix="WAKE_")


class ProviderSettings(BaseSettings):
    """Positioning provider configuration"""
    mode: str = Field(default="mock", description="Provider mode: mock, gpsd")
    retry_delay: float = Field(default=5.0, description="Delay before retrying provider initialization (seconds)")
    fix_interval: float = Field(default=2.0, description="Continuous fix cadence (seconds)")
    gpsd_host: str = Field(default="localhost", description="GPSD host")
    gpsd_port: int = Field(default=2947, description="GPSD port")
    mock_default_lat: float = Field(default=31.2304, description="Mock default latitude")
    mock_default_lon: float = Field(default=121.4737, description="Mock default longitude")
    probe_host: str = Field(default="1.1.1.1", description="Host used to check network reachability")
    probe_port: int = Field(default=53, description="Port used to check network reachability")
    probe_timeout: float = Field(default=3.0, description="Reachability probe timeout (seconds)")

    model_config = SettingsConfigDict(env_prefix="PROVIDER_")

    @field_validator('mode')
    @classmethod
    def validate_mode(cls, v):
        v = v.lower()
        if v not in ('mock', 'gpsd'):
            raise ValueError(f"Unknown provider mode: {v}")
        return v


class DatabaseSettings(BaseSettings):
    """Database configuration"""
    url: str = Field(
        default=f"sqlite:///{PROJECT_ROOT}/data/settings.db",
        description="Database connection URL"
    )
    echo: bool = Field(default=False, description="Echo SQL statements")
    pool_size: int = Field(default=5, description="Connection pool size")

    model_config = SettingsConfigDict(env_prefix="DATABASE_")


class APISettings(BaseSettings):
    """Control API configuration"""
    host: str = Field(default="127.0.0.1", description="API host")
    port: int = Field(default=8000, description="API port")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(env_prefix="API_")

    @field_validator('cors_origins', mode='before')
    @classmethod
    def parse_cors_origins(cls, v):
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',')]
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration"""
    level: str = Field(default="INFO", description="Log level")
    format: str = Field(
        default="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
        description="Log format"
    )
    file: Optional[str] = Field(
        default=str(PROJECT_ROOT / "logs" / "geotrack.log"),
        description="Log file path (empty to disable)"
    )
    rotation: str = Field(default="10 MB", description="Log file rotation")
    retention: str = Field(default="7 days", description="Log file retention")

    model_config = SettingsConfigDict(env_prefix="LOG_")


class Settings(BaseSettings):
    """Main application settings"""

    # Application info
    app_name: str = Field(default="GeoTrack Relay", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")

    # Sub-settings
    upload: UploadSettings = Field(default_factory=UploadSettings)
    wake: WakeSettings = Field(default_factory=WakeSettings)
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings instance (cached)
    """
    return Settings()


# Convenience access to settings
settings = get_settings()
