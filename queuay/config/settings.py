"""Configuration management for the Queuay execution engine."""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # OpenAI Configuration (failure diagnostics)
    openai_api_key: str = Field(default="", description="OpenAI API key")
    openai_model: str = Field(
        default="gpt-4o", description="Model used for heal proposals and inspections"
    )
    openai_temperature: float = Field(
        default=0.2, ge=0.0, le=2.0, description="Diagnostic model temperature"
    )
    openai_max_retries: int = Field(
        default=3, ge=1, description="Maximum API retry attempts"
    )
    openai_request_timeout_seconds: int = Field(
        default=120,
        ge=10,
        description="Request timeout for OpenAI API calls in seconds",
    )

    # Browser Configuration
    browser_headless: bool = Field(
        default=True, description="Run browser in headless mode"
    )
    browser_timeout: int = Field(
        default=30000, ge=1000, description="Default action timeout (ms)"
    )
    browser_viewport_width: int = Field(
        default=1280, ge=320, description="Session viewport width"
    )
    browser_viewport_height: int = Field(
        default=720, ge=240, description="Session viewport height"
    )
    network_idle_timeout_ms: int = Field(
        default=5000,
        ge=0,
        description="Upper bound for best-effort network-idle settling after a step",
    )
    verification_timeout_ms: int = Field(
        default=5000, ge=0, description="Upper bound for verification lookups"
    )

    # Execution Configuration
    retry_count: int = Field(
        default=3, ge=0, description="Retries per step after the first attempt"
    )
    retry_backoff_ms: int = Field(
        default=1000, ge=0, description="Fixed delay between step attempts (ms)"
    )
    screenshot_on_failure: bool = Field(
        default=True, description="Capture a screenshot when a story fails"
    )
    worker_concurrency: int = Field(
        default=3, ge=1, description="Runs processed in parallel by the worker pool"
    )
    scheduler_interval_seconds: int = Field(
        default=60, ge=1, description="Seconds between scheduled-job polls"
    )

    # Diagnostics Configuration
    heal_enabled: bool = Field(
        default=True, description="Request heal proposals for classified failures"
    )
    auto_heal_confidence_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Minimum confidence for a proposal to be auto-applicable",
    )
    dom_snapshot_max_chars: int = Field(
        default=5000, ge=0, description="DOM snapshot length sent to diagnostics"
    )

    # Logging Configuration
    log_level: str = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: str = Field(
        default="json",
        description="Log format (json or text)",
    )
    log_file: Optional[str] = Field(
        default=None, description="Log file path"
    )
    sanitize_logs: bool = Field(
        default=True, description="Redact secrets from log output"
    )

    # Storage Configuration
    data_dir: Path = Field(
        default=Path("data"), description="Data storage directory"
    )
    screenshots_dir: Path = Field(
        default=Path("data/screenshots"), description="Failure screenshots directory"
    )

    @field_validator("log_level")
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()

    @field_validator("log_format")
    def validate_log_format(cls, v: str) -> str:
        """Validate log format."""
        if v not in ["json", "text"]:
            raise ValueError(f"Invalid log format: {v}")
        return v

    @property
    def diagnostics_available(self) -> bool:
        """Whether an AI diagnostic service can be wired in."""
        return self.heal_enabled and bool(self.openai_api_key)

    def create_directories(self) -> None:
        """Create required directories if they don't exist."""
        for dir_path in [self.data_dir, self.screenshots_dir]:
            dir_path.mkdir(parents=True, exist_ok=True)


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)

    settings = Settings()
    settings.create_directories()
    return settings
