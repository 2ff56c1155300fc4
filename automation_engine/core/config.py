"""Application configuration using pydantic-settings."""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_prefix="AUTOMATION_",
    )

    # Server settings
    host: str = "0.0.0.0"
    port: int = 8000
    reload: bool = False
    log_level: Literal["debug", "info", "warning", "error"] = "info"

    # Application settings
    app_name: str = "Automation Engine"
    app_version: str = "0.1.0"
    debug: bool = False

    # CORS settings
    cors_origins: list[str] = ["*"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    # Persistence
    database_url: str | None = None

    # Retry defaults (milliseconds)
    default_max_retries: int = 3
    base_retry_delay_ms: int = 1000
    max_retry_delay_ms: int = 300_000
    retry_jitter: float = 0.1

    # Circuit breaker
    breaker_failure_threshold: int = 5
    breaker_recovery_timeout_ms: int = 30_000

    # Rate limiter (token bucket)
    rate_limit_points: int = 4
    rate_limit_duration_s: float = 1.0
    rate_limit_block_duration_s: float = 60.0

    # Response cache
    cache_default_ttl_s: int = 300

    # Browser pool
    browser_headless: bool = True
    browser_max_sessions_per_owner: int = 10
    browser_session_timeout_ms: int = 1_800_000
    browser_max_memory_per_session_bytes: int = 512 * 1024 * 1024
    browser_memory_sample_interval_s: float = 10.0
    browser_memory_check_interval_s: float = 30.0
    browser_idle_check_interval_s: float = 60.0
    browser_navigation_timeout_ms: int = 30_000
    browser_viewport_width: int = 1920
    browser_viewport_height: int = 1080
    browser_max_viewport_width: int = 3840
    browser_max_viewport_height: int = 2160
    browser_screenshot_dir: str = "./screenshots"

    # Scheduler
    scheduler_timezone: str = "UTC"
    scheduler_max_overlapping_runs: int = 10
    webhook_token_bytes: int = 32

    # Execution metrics and health
    metrics_window_s: float = 300.0
    metrics_min_samples: int = 5
    execution_time_warning_ms: int = 30_000
    execution_time_alert_ms: int = 120_000
    success_rate_warning: float = 80.0
    success_rate_alert: float = 50.0

    # Steps
    script_timeout_s: float = 5.0
    file_root: str = "./data"
    http_timeout_s: float = 30.0

    # SMTP (email destination)
    smtp_host: str | None = None
    smtp_port: int = 587
    smtp_username: str | None = None
    smtp_password: str | None = None
    smtp_sender: str = "automation@localhost"
    smtp_start_tls: bool = True


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
