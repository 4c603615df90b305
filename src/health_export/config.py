"""Configuration management using pydantic-settings."""

import threading
from datetime import datetime, tzinfo
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

DEFAULT_HISTORICAL_START = datetime(2020, 1, 1)


class ExportSettings(BaseSettings):
    """Fetch window and export file settings."""

    model_config = SettingsConfigDict(env_prefix="EXPORT_")

    output_dir: Path = Field(
        default=Path("./health_export_data"), description="Directory for exported documents"
    )
    historical_start: datetime = Field(
        default=DEFAULT_HISTORICAL_START,
        description="Earliest instant fetched when no start date is given",
    )
    timezone: str | None = Field(
        default=None, description="IANA zone for calendar dates; system local if unset"
    )
    max_concurrent_fetches: int = Field(
        default=4, description="Per-category bound on concurrent record type reads"
    )
    indent: int = Field(default=2, description="JSON document indentation")
    category_file_suffix: str = Field(default="_data.json")
    summary_file_name: str = Field(default="all_health_data_summary.json")
    daily_steps_file_name: str = Field(default="daily_steps.json")
    heart_rate_file_name: str = Field(default="heart_rate_samples.json")
    combined_file_name: str = Field(default="historical_health_data.json")

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        """Validate timezone is a known IANA zone."""
        if v is None or not v.strip():
            return None
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown timezone '{v}'") from None
        return v

    @field_validator("max_concurrent_fetches")
    @classmethod
    def validate_max_concurrent_fetches(cls, v: int) -> int:
        """Validate fetch concurrency is reasonable."""
        if v < 1:
            raise ValueError(f"Max concurrent fetches must be at least 1, got {v}")
        if v > 64:
            raise ValueError(f"Max concurrent fetches too large (max 64), got {v}")
        return v

    @field_validator("indent")
    @classmethod
    def validate_indent(cls, v: int) -> int:
        if not 0 <= v <= 8:
            raise ValueError(f"Indent must be between 0 and 8, got {v}")
        return v

    @field_validator(
        "summary_file_name",
        "daily_steps_file_name",
        "heart_rate_file_name",
        "combined_file_name",
    )
    @classmethod
    def validate_file_name(cls, v: str) -> str:
        """Validate file names do not escape the output directory."""
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"Invalid file name '{v}'")
        return v

    def tzinfo(self) -> tzinfo | None:
        """Zone for calendar dates; None means the system local zone."""
        return ZoneInfo(self.timezone) if self.timezone else None

    def localize(self, value: datetime) -> datetime:
        """Read a naive datetime as wall time in the configured zone."""
        if value.tzinfo is not None:
            return value
        tz = self.tzinfo()
        if tz is None:
            return value.astimezone()
        return value.replace(tzinfo=tz)

    def historical_start_instant(self) -> datetime:
        """Historical start as an aware datetime in the configured zone."""
        return self.localize(self.historical_start)


class AppSettings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(env_prefix="APP_")

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: json or console")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        normalized = v.upper()
        if normalized not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level '{v}'. Must be one of: {', '.join(VALID_LOG_LEVELS)}"
            )
        return normalized

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        """Validate log format is valid."""
        normalized = v.lower()
        if normalized not in ("json", "console"):
            raise ValueError(f"Invalid log format '{v}'. Must be 'json' or 'console'")
        return normalized


class TracingSettings(BaseSettings):
    """OpenTelemetry tracing settings."""

    model_config = SettingsConfigDict(env_prefix="OTEL_")

    enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    service_name: str = Field(default="health-export", description="Service name for traces")


class MetricsSettings(BaseSettings):
    """Prometheus metrics settings."""

    model_config = SettingsConfigDict(env_prefix="METRICS_")

    enabled: bool = Field(default=True, description="Write the metrics textfile after each run")
    textfile: Path | None = Field(
        default=None, description="Write the text exposition here after each run"
    )


class Settings(BaseSettings):
    """Combined application settings."""

    export: ExportSettings = Field(default_factory=ExportSettings)
    app: AppSettings = Field(default_factory=AppSettings)
    tracing: TracingSettings = Field(default_factory=TracingSettings)
    metrics: MetricsSettings = Field(default_factory=MetricsSettings)

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables."""
        return cls(
            export=ExportSettings(),
            app=AppSettings(),
            tracing=TracingSettings(),
            metrics=MetricsSettings(),
        )


# Global settings instance with thread-safe initialization
_settings: Settings | None = None
_settings_lock = threading.Lock()


def get_settings() -> Settings:
    """Get or create the global settings instance.

    Thread-safe singleton pattern using double-checked locking.
    """
    global _settings
    if _settings is None:
        with _settings_lock:
            # Double-check after acquiring lock
            if _settings is None:
                _settings = Settings.load()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access reloads the environment."""
    global _settings
    with _settings_lock:
        _settings = None
