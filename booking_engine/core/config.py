# booking_engine/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz


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
    env_path = Path(__file__).parent.parent.parent / ".env"
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    environment: str = Field(
        default="development",
        alias="ENVIRONMENT",
        description="Deployment environment (development, testing, production)",
    )

    database_url: str = Field(
        default="sqlite+pysqlite:///./booking_engine.db",
        alias="DATABASE_URL",
        description="SQLAlchemy database URL",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        alias="REDIS_URL",
        description="Redis URL used as the Celery broker",
    )

    # Scheduling
    schedule_timezone: str = Field(
        default="Asia/Shanghai",
        alias="SCHEDULE_TIMEZONE",
        description="Timezone in which booking dates and times are interpreted",
    )
    direct_booking_mode: Literal["strict", "permissive"] = Field(
        default="permissive",
        alias="DIRECT_BOOKING_MODE",
        description=(
            "Conflict policy for the administrative direct-booking path. "
            "'permissive' allows duplicates and overlaps, 'strict' runs the conflict checks"
        ),
    )

    # Status lifecycle job
    status_job_batch_size: int = Field(
        default=500,
        alias="STATUS_JOB_BATCH_SIZE",
        ge=1,
        le=5000,
        description="Maximum bookings transitioned per batch transaction",
    )
    status_job_max_retries: int = Field(
        default=3,
        alias="STATUS_JOB_MAX_RETRIES",
        ge=1,
        description="Attempts per batch for transient database errors",
    )
    status_job_retry_delay_ms: int = Field(
        default=500,
        alias="STATUS_JOB_RETRY_DELAY_MS",
        ge=0,
        description="Linear backoff step between batch retries",
    )
    status_job_cron: str = Field(
        default="30 22 * * *",
        alias="STATUS_JOB_CRON",
        description="Five-field cron expression for the daily status job",
    )
    status_job_poll_interval_seconds: int = Field(
        default=300,
        alias="STATUS_JOB_POLL_INTERVAL_SECONDS",
        ge=0,
        description="Interval for the in-process poll loop (0 disables it)",
    )
    status_job_run_on_startup: bool = Field(
        default=True,
        alias="STATUS_JOB_RUN_ON_STARTUP",
        description="Run the status job once when a worker starts",
    )

    alert_webhook_url: Optional[str] = Field(
        default=None,
        alias="ALERT_WEBHOOK_URL",
        description="Webhook notified when a status job run fails",
    )

    # Legacy flags for backward compatibility
    is_testing: bool = False  # Set to True when running tests

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("direct_booking_mode", mode="before")
    @classmethod
    def _normalize_booking_mode(cls, v: object) -> object:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("schedule_timezone")
    @classmethod
    def _validate_timezone(cls, v: str) -> str:
        if v not in pytz.all_timezones_set:
            raise ValueError(f"Unknown timezone: {v}")
        return v


settings = Settings()
if is_running_tests():
    settings.is_testing = True
