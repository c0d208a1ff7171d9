"""Shared configuration management for the reminder service.

Based on Pydantic Settings v2 best practices:
https://docs.pydantic.dev/latest/concepts/pydantic_settings/
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable support.

    All settings can be overridden via environment variables with the prefix 'APP_'.
    Example: APP_WEBHOOK_URL=https://hooks.example.com/reminders
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Service configuration
    service_name: str = Field(
        default="bill-reminder-service",
        description="Service identifier for metrics and logs",
    )
    service_version: str = Field(
        default="0.1.0",
        description="Service version",
    )

    # Record storage
    storage_backend: Literal["memory", "redis"] = Field(
        default="memory",
        description="Invoice and ledger store: memory (single process) or redis (shared)",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL for the record store and the task queue",
    )
    redis_key_prefix: str = Field(
        default="billreminder",
        description="Prefix for every Redis key written by the stores",
    )

    # Notification provider configuration
    notification_provider: Literal["webhook", "log"] = Field(
        default="webhook",
        description="Notification provider: webhook (HTTP POST) or log (dry run)",
    )
    webhook_url: str = Field(
        default="",
        description="Webhook endpoint receiving reminder payloads (use APP_WEBHOOK_URL)",
    )
    webhook_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for a single webhook request",
        gt=0,
    )
    webhook_max_attempts: int = Field(
        default=3,
        description="Attempts per delivery before reporting failure",
        ge=1,
    )
    webhook_retry_wait_seconds: float = Field(
        default=1.0,
        description="Base of the exponential backoff between delivery attempts",
        ge=0,
    )

    # Reminder cycle
    reminder_interval_days: int = Field(
        default=7,
        description="Days between automatic reminders for one company",
        ge=1,
    )
    scheduler_enabled: bool = Field(
        default=True,
        description="Run the automatic reminder sweep inside the API process",
    )
    scheduler_tick_seconds: float = Field(
        default=60.0,
        description="Polling interval of the automatic reminder sweep",
        gt=0,
    )
    display_timezone: str = Field(
        default="Asia/Kolkata",
        description="Time zone used for timestamps shown to people and sent in payloads",
    )

    # Queue configuration (arq worker)
    queue_max_jobs: int = Field(
        default=10,
        description="Maximum concurrent jobs per worker",
    )
    queue_enabled: bool = Field(
        default=False,
        description="Accept API requests that enqueue jobs for the arq worker",
    )
    queue_job_timeout: int = Field(
        default=300,
        description="Job timeout in seconds",
    )

    # Ledger locking
    ledger_lock_timeout_seconds: float = Field(
        default=300.0,
        description="Expiry of a held company ledger lock; must outlast one delivery with retries",
        gt=0,
    )
    ledger_lock_wait_seconds: float = Field(
        default=60.0,
        description="How long a send waits for another holder of the company lock",
        gt=0,
    )

    # Import limits
    max_upload_bytes: int = Field(
        default=10 * 1024 * 1024,
        description="Maximum accepted spreadsheet size in bytes",
    )


def get_settings() -> Settings:
    """Factory function to get settings instance.

    Returns:
        Configured Settings instance
    """
    return Settings()
