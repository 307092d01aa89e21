# backend/studio_booking/core/config.py
import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def is_running_tests() -> bool:
    """
    Detect if code is running under pytest.

    PYTEST_CURRENT_TEST is set automatically by pytest during test runs, and is
    not expected to be present in production environments.
    """
    return os.getenv("PYTEST_CURRENT_TEST") is not None


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="development | staging | production",
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./studio_booking.db",
        alias="DATABASE_URL",
        description="SQLAlchemy URL for the booking database",
    )
    db_pool_size: int = Field(default=5, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=5, alias="DB_MAX_OVERFLOW")
    # Fail fast when the pool is exhausted instead of blocking the request
    db_pool_timeout: int = Field(default=5, alias="DB_POOL_TIMEOUT")
    db_connect_timeout: int = Field(default=5, alias="DB_CONNECT_TIMEOUT")
    db_statement_timeout_ms: int = Field(default=15000, alias="DB_STATEMENT_TIMEOUT_MS")

    # Redis (advisory per-class locks + Celery broker fallback)
    redis_url: Optional[str] = Field(
        default=None,
        alias="REDIS_URL",
        description="Redis URL; when unset the per-class advisory lock is skipped",
    )
    redis_socket_timeout: float = Field(default=1.0, alias="REDIS_SOCKET_TIMEOUT")
    class_lock_ttl_seconds: int = Field(default=30, alias="CLASS_LOCK_TTL_SECONDS")
    lock_namespace: str = Field(default="studio-booking", alias="LOCK_NAMESPACE")

    # Booking policy
    default_cancellation_window_hours: int = Field(
        default=12,
        alias="DEFAULT_CANCELLATION_WINDOW_HOURS",
        description="Used when a studio has no cancellation window configured",
    )

    # Notifier
    notifier_url: Optional[str] = Field(
        default=None,
        alias="NOTIFIER_URL",
        description="Endpoint receiving outbox events; log-only delivery when unset",
    )
    notifier_timeout_seconds: float = Field(default=5.0, alias="NOTIFIER_TIMEOUT_SECONDS")
    outbox_batch_size: int = Field(default=200, alias="OUTBOX_BATCH_SIZE")
    outbox_max_attempts: int = Field(default=5, alias="OUTBOX_MAX_ATTEMPTS")

    # Celery
    celery_broker_url: Optional[str] = Field(default=None, alias="CELERY_BROKER_URL")

    # Payments
    stripe_secret_key: Optional[SecretStr] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_timeout_seconds: int = Field(default=8, alias="STRIPE_TIMEOUT_SECONDS")

    # Performance
    slow_operation_threshold_seconds: float = Field(
        default=1.0, alias="SLOW_OPERATION_THRESHOLD_SECONDS"
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("default_cancellation_window_hours")
    @classmethod
    def _non_negative_window(cls, value: int) -> int:
        if value < 0:
            raise ValueError("DEFAULT_CANCELLATION_WINDOW_HOURS must be >= 0")
        return value

    @field_validator("redis_url", "notifier_url", "celery_broker_url", mode="before")
    @classmethod
    def _blank_as_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def is_testing(self) -> bool:
        return is_running_tests()


settings = Settings()
