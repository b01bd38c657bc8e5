"""Application configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Any, Literal
from urllib.parse import quote

from pydantic import BaseModel, Field, RedisDsn, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BackoffConfig(BaseModel):
    """Delay strategy between retry attempts."""

    type: Literal["fixed", "exponential"] = "exponential"
    delay: float = Field(default=2.0, ge=0, description="Base delay in seconds")


class QueueConfig(BaseModel):
    """Per-queue defaults and worker pool sizing."""

    attempts: int = Field(default=3, ge=1)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)
    keep_completed: int = Field(default=100, ge=0)
    keep_failed: int = Field(default=500, ge=0)

    # Worker pool
    concurrency: int = Field(default=1, ge=1)
    rate_limit_max: int | None = Field(default=None, ge=1)
    rate_limit_duration_seconds: float = Field(default=1.0, gt=0)
    job_timeout_seconds: float = Field(default=300.0, gt=0)


def _email_queue_defaults() -> QueueConfig:
    return QueueConfig(
        attempts=3,
        backoff=BackoffConfig(type="exponential", delay=2.0),
        keep_completed=100,
        keep_failed=500,
        concurrency=5,
        rate_limit_max=10,
        rate_limit_duration_seconds=1.0,
    )


def _notification_queue_defaults() -> QueueConfig:
    return QueueConfig(
        attempts=2,
        backoff=BackoffConfig(type="fixed", delay=5.0),
        keep_completed=200,
        keep_failed=500,
        concurrency=10,
    )


def _lead_queue_defaults() -> QueueConfig:
    # Lead jobs call out to enrichment/CRM providers, keep the pool small.
    return QueueConfig(
        attempts=3,
        backoff=BackoffConfig(type="exponential", delay=3.0),
        keep_completed=100,
        keep_failed=300,
        concurrency=3,
    )


_QUEUE_DEFAULTS = {
    "email_queue": _email_queue_defaults,
    "notification_queue": _notification_queue_defaults,
    "lead_queue": _lead_queue_defaults,
}


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    environment: str = Field(default="development")

    # Redis (job broker)
    redis_url: RedisDsn | None = Field(default=None)
    redis_host: str = Field(default="localhost")
    redis_port: int = Field(default=6379)
    redis_username: str | None = Field(default=None)
    redis_password: str | None = Field(default=None)
    redis_db: int = Field(default=0)
    redis_max_retries: int = Field(default=10)
    queue_prefix: str = Field(default="leadflow")
    job_store: Literal["redis", "memory"] = Field(default="redis")

    # Queues
    email_queue: QueueConfig = Field(default_factory=_email_queue_defaults)
    notification_queue: QueueConfig = Field(default_factory=_notification_queue_defaults)
    lead_queue: QueueConfig = Field(default_factory=_lead_queue_defaults)

    # Worker loop
    job_worker_poll_interval_seconds: float = Field(default=1.0, gt=0)
    job_worker_reaper_interval_seconds: float = Field(default=30.0, gt=0)
    job_worker_lease_grace_seconds: float = Field(default=30.0, ge=0)

    # Event bus
    event_history_size: int = Field(default=1000, ge=1)

    # Monitoring
    metrics_port: int | None = Field(default=None, ge=1, le=65535)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "text"] = Field(default="json")

    @model_validator(mode="before")
    @classmethod
    def _merge_queue_overrides(cls, data: Any) -> Any:
        # A partial override (EMAIL_QUEUE__ATTEMPTS=5) keeps the queue's other defaults.
        if not isinstance(data, dict):
            return data
        for name, defaults in _QUEUE_DEFAULTS.items():
            override = data.get(name)
            if isinstance(override, dict):
                data = {**data, name: _deep_merge(defaults().model_dump(), override)}
        return data

    def redis_connection_url(self) -> str:
        if self.redis_url is not None:
            return str(self.redis_url)
        auth = ""
        if self.redis_password:
            auth = f"{quote(self.redis_username or '', safe='')}:{quote(self.redis_password, safe='')}@"
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/{self.redis_db}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
