"""
Settings Module for Uptime Pulse

Configuration management using Pydantic Settings.
Supports environment variables, .env files, and runtime overrides.
Every section is an independent BaseSettings class with its own prefix and
is aggregated by the top-level Settings class.
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Environment(str, Enum):
    """Application environment enumeration."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"
    TESTING = "testing"


class LogLevel(str, Enum):
    """Logging level enumeration."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DatabaseType(str, Enum):
    """Supported database types."""
    POSTGRESQL = "postgresql"
    SQLITE = "sqlite"


class QueueBackend(str, Enum):
    """Queue service implementations."""
    MEMORY = "memory"
    SQS = "sqs"


class AlertDispatchMode(str, Enum):
    """How the check worker hands a status change to the alert pipeline."""
    QUEUE = "queue"
    TASK = "task"


class BaseSettingsConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_default=True
    )


class DatabaseSettings(BaseSettingsConfig):
    """
    Database Configuration Settings

    Supports PostgreSQL (production) and SQLite (development, tests).
    ``url`` may be set directly (DB_URL) and then wins over the parts.
    """

    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True
    )

    type: DatabaseType = Field(
        default=DatabaseType.SQLITE,
        description="Database type: postgresql or sqlite"
    )
    url_override: Optional[str] = Field(
        default=None,
        alias="DB_URL",
        description="Full SQLAlchemy URL, overrides the individual parts"
    )

    host: str = Field(default="localhost", description="Database host address")
    port: int = Field(default=5432, ge=1, le=65535, description="Database port number")
    name: str = Field(
        default="uptime_pulse",
        min_length=1,
        max_length=64,
        description="Database name"
    )
    user: str = Field(default="postgres", min_length=1, max_length=64)
    password: SecretStr = Field(default=SecretStr(""), description="Database password")

    sqlite_path: Path = Field(
        default=Path("data/uptime_pulse.db"),
        description="Path to SQLite database file"
    )

    # Connection pool settings
    pool_size: int = Field(default=10, ge=1, le=100)
    max_overflow: int = Field(default=20, ge=0, le=100)
    pool_timeout: int = Field(default=30, ge=1, le=300)
    pool_recycle: int = Field(default=1800, ge=60, le=7200)
    pool_pre_ping: bool = Field(default=True)

    echo: bool = Field(default=False, description="Echo SQL queries (debug mode)")
    create_tables: bool = Field(
        default=True,
        description="Create missing tables on startup"
    )

    @property
    def url(self) -> str:
        """Generate database URL based on configuration."""
        if self.url_override:
            return self.url_override

        if self.type == DatabaseType.SQLITE:
            self.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
            return f"sqlite+aiosqlite:///{self.sqlite_path}"

        if self.type == DatabaseType.POSTGRESQL:
            password = self.password.get_secret_value()
            return (
                f"postgresql+asyncpg://{self.user}:{password}"
                f"@{self.host}:{self.port}/{self.name}"
            )

        raise ValueError(f"Unsupported database type: {self.type}")

    @field_validator("sqlite_path")
    @classmethod
    def validate_sqlite_path(cls, v: Path) -> Path:
        """Validate and normalize SQLite path."""
        if not v.suffix:
            v = v.with_suffix(".db")
        return v


class QueueSettings(BaseSettingsConfig):
    """
    Durable Queue Configuration

    ``backend=memory`` keeps every queue inside the process (development and
    tests). ``backend=sqs`` talks to AWS SQS; QUEUE_URLS is a JSON object
    mapping queue names to queue URLs.
    """

    model_config = SettingsConfigDict(
        env_prefix="QUEUE_",
        env_file=".env",
        extra="ignore"
    )

    backend: QueueBackend = Field(default=QueueBackend.MEMORY)
    region: str = Field(default="eu-central-1", description="AWS region for SQS")
    urls: Dict[str, str] = Field(
        default_factory=dict,
        description="Queue name -> queue URL (SQS backend only)"
    )
    aws_access_key_id: Optional[str] = Field(default=None)
    aws_secret_access_key: Optional[SecretStr] = Field(default=None)
    endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom SQS endpoint (e.g. a local emulator)"
    )

    @model_validator(mode="after")
    def validate_sqs_urls(self) -> "QueueSettings":
        """SQS without any queue URL cannot work."""
        if self.backend == QueueBackend.SQS and not self.urls:
            raise ValueError("QUEUE_URLS must be set when QUEUE_BACKEND=sqs")
        return self


class WorkerSettings(BaseSettingsConfig):
    """Worker pool configuration."""

    model_config = SettingsConfigDict(
        env_prefix="WORKER_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(default=True, description="Run the queue consumers")
    parallel_workers: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum concurrent handlers for independent queues"
    )
    idle_delay: float = Field(default=1.0, ge=0.0, description="Sleep after an empty receive")
    error_backoff: float = Field(default=5.0, ge=0.0, description="Sleep after a receive error")
    visibility_heartbeat: int = Field(
        default=0,
        ge=0,
        description="Extend visibility every N seconds while a handler runs (0 = off)"
    )


class SchedulerSettings(BaseSettingsConfig):
    """Check scheduler configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SCHEDULER_",
        env_file=".env",
        extra="ignore"
    )

    enabled: bool = Field(default=True, description="Run the periodic scheduling pass")
    batch_limit: int = Field(default=50, ge=1, le=1000)
    interval_seconds: int = Field(
        default=60,
        ge=1,
        description="Seconds between scheduling passes"
    )
    lease_seconds: int = Field(
        default=300,
        ge=1,
        description="How long a scheduled monitor stays claimed"
    )
    tick_interval: float = Field(default=2.0, gt=0.0)


class MonitoringSettings(BaseSettingsConfig):
    """Health check configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MONITOR_",
        env_file=".env",
        extra="ignore"
    )

    default_timeout: int = Field(
        default=10,
        ge=1,
        le=120,
        description="Request timeout in seconds when a monitor has none"
    )
    user_agent: str = Field(default="Uptime-Pulse-Monitor/1.0")
    follow_redirects: bool = Field(default=True)
    verify_ssl: bool = Field(default=True)
    history_window: int = Field(
        default=10,
        ge=1,
        le=500,
        description="History rows read when counting consecutive failures"
    )
    history_retention_days: int = Field(default=90, ge=1)


class AlertSettings(BaseSettingsConfig):
    """Alert pipeline configuration."""

    model_config = SettingsConfigDict(
        env_prefix="ALERT_",
        env_file=".env",
        extra="ignore"
    )

    dispatch_mode: AlertDispatchMode = Field(
        default=AlertDispatchMode.QUEUE,
        description="queue: publish ALERT_PROCESSING messages; task: background task"
    )


class NotificationSettings(BaseSettingsConfig):
    """Credentials and endpoints for notification providers."""

    model_config = SettingsConfigDict(
        env_prefix="NOTIFY_",
        env_file=".env",
        extra="ignore"
    )

    resend_api_key: Optional[SecretStr] = Field(default=None)
    resend_api_url: str = Field(default="https://api.resend.com/emails")
    resend_from_email: str = Field(default="alerts@uptime-pulse.dev")

    twilio_account_sid: Optional[str] = Field(default=None)
    twilio_auth_token: Optional[SecretStr] = Field(default=None)
    twilio_phone_number: Optional[str] = Field(default=None)
    twilio_api_base: str = Field(default="https://api.twilio.com/2010-04-01")

    webhook_timeout: float = Field(default=10.0, gt=0.0)
    request_timeout: float = Field(default=15.0, gt=0.0)
    brand_name: str = Field(default="Uptime Pulse")


class LoggingSettings(BaseSettingsConfig):
    """
    Logging Configuration Settings

    Console and file sinks for loguru, with rotation and retention.
    """

    model_config = SettingsConfigDict(
        env_prefix="LOG_",
        env_file=".env",
        extra="ignore"
    )

    level: LogLevel = Field(default=LogLevel.INFO, description="Minimum logging level")

    console_enabled: bool = Field(default=True)
    console_colored: bool = Field(default=True)

    file_enabled: bool = Field(default=False)
    file_path: Path = Field(default=Path("logs/uptime_pulse.log"))
    file_rotation: str = Field(default="10 MB")
    file_retention: str = Field(default="7 days")
    file_compression: str = Field(default="zip")
    json_enabled: bool = Field(default=False, description="Serialize file records as JSON")

    error_file_enabled: bool = Field(default=False)
    error_file_path: Path = Field(default=Path("logs/errors.log"))


class Settings(BaseSettingsConfig):
    """
    Main Settings Class

    Aggregates all settings sections and provides the main
    configuration interface for the application.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    environment: Environment = Field(default=Environment.DEVELOPMENT)
    debug: bool = Field(default=False)

    app_name: str = Field(default="Uptime Pulse")
    app_version: str = Field(default="1.0.0")

    # Health / status server
    web_enabled: bool = Field(default=True)
    web_host: str = Field(default="0.0.0.0")
    web_port: int = Field(default=8080, ge=1, le=65535)

    # Nested settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    queue: QueueSettings = Field(default_factory=QueueSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    scheduler: SchedulerSettings = Field(default_factory=SchedulerSettings)
    monitoring: MonitoringSettings = Field(default_factory=MonitoringSettings)
    alerts: AlertSettings = Field(default_factory=AlertSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        return self.environment == Environment.TESTING

    @model_validator(mode="after")
    def configure_for_environment(self) -> "Settings":
        """Apply environment-specific configuration."""
        if self.is_production:
            self.debug = False
            self.database.echo = False
        elif self.is_development and self.debug:
            self.logging.level = LogLevel.DEBUG
        return self

    def to_dict(self, *, exclude_secrets: bool = True) -> Dict[str, Any]:
        """Convert settings to dictionary."""
        data = self.model_dump()

        if exclude_secrets:
            def remove_secrets(obj: Any) -> Any:
                if isinstance(obj, dict):
                    return {
                        k: remove_secrets(v)
                        for k, v in obj.items()
                        if "password" not in k.lower()
                        and "secret" not in k.lower()
                        and "token" not in k.lower()
                        and "api_key" not in k.lower()
                    }
                if isinstance(obj, list):
                    return [remove_secrets(item) for item in obj]
                return obj

            data = remove_secrets(data)

        return data


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
