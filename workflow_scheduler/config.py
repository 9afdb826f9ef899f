from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_QUEUE_URL = (
    "http://sqs.us-east-1.localhost.localstack.cloud:4566/000000000000/keeperhub-workflow-queue"
)


class Settings(BaseSettings):
    """Scheduler settings loaded from environment variables with validation."""

    model_config = SettingsConfigDict(
        env_file=(str(Path(__file__).resolve().parents[1] / ".env"), ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        populate_by_name=True,
    )

    database_url: str = Field(alias="DATABASE_URL")
    db_pool_size: int = Field(default=10, ge=1, le=100, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, ge=0, le=200, alias="DB_MAX_OVERFLOW")
    db_pool_timeout: int = Field(default=30, ge=1, le=300, alias="DB_POOL_TIMEOUT")
    db_pool_recycle: int = Field(default=1800, ge=60, alias="DB_POOL_RECYCLE")

    aws_region: str = Field(default="us-east-1", alias="AWS_REGION")
    aws_endpoint_url: str | None = Field(default=None, alias="AWS_ENDPOINT_URL")
    aws_access_key_id: str = Field(default="test", alias="AWS_ACCESS_KEY_ID")
    aws_secret_access_key: SecretStr = Field(default=SecretStr("test"), alias="AWS_SECRET_ACCESS_KEY")
    sqs_queue_url: str = Field(default=DEFAULT_QUEUE_URL, alias="SQS_QUEUE_URL")
    sqs_visibility_timeout: int = Field(default=300, ge=0, le=43200, alias="SQS_VISIBILITY_TIMEOUT")
    sqs_wait_time_seconds: int = Field(default=20, ge=0, le=20, alias="SQS_WAIT_TIME_SECONDS")
    sqs_max_messages: int = Field(default=10, ge=1, le=10, alias="SQS_MAX_MESSAGES")

    keeperhub_url: str = Field(default="http://localhost:3000", alias="KEEPERHUB_URL")
    service_api_key: SecretStr = Field(default=SecretStr(""), alias="SCHEDULER_SERVICE_API_KEY")
    execution_api_timeout: float = Field(default=30.0, gt=0, alias="EXECUTION_API_TIMEOUT")

    dispatch_window_seconds: int = Field(default=60, ge=1, le=3600, alias="DISPATCH_WINDOW_SECONDS")
    executor_backoff_seconds: float = Field(default=5.0, ge=0, alias="EXECUTOR_BACKOFF_SECONDS")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        alias="LOG_LEVEL",
    )

    @field_validator("aws_endpoint_url", mode="before")
    @classmethod
    def blank_endpoint_is_unset(cls, value: str | None) -> str | None:
        """An empty AWS_ENDPOINT_URL means "use the real AWS endpoint"."""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("keeperhub_url")
    @classmethod
    def validate_keeperhub_url(cls, value: str) -> str:
        """Require an http(s) base URL without a trailing slash."""
        normalized = value.strip()
        if not normalized.lower().startswith(("http://", "https://")):
            raise ValueError("KEEPERHUB_URL must start with http:// or https://")
        return normalized.rstrip("/")

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_log_level(cls, value: str) -> str:
        return value.upper() if isinstance(value, str) else value

    @field_validator("database_url")
    @classmethod
    def validate_database_url(cls, value: str) -> str:
        """Validate database URL is a PostgreSQL or SQLite SQLAlchemy connection string."""
        lowered = value.lower()
        if not lowered.startswith(("postgresql://", "postgresql+psycopg2://", "sqlite://")):
            raise ValueError(
                "DATABASE_URL must start with postgresql://, postgresql+psycopg2:// or sqlite://"
            )
        return value


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""
    return Settings()
