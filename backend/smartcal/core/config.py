# backend/smartcal/core/config.py
import logging
import os
from pathlib import Path
from typing import List, Literal

from dotenv import load_dotenv
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
import pytz

from .constants import BRAND_NAME


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
    logger.debug(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


class Settings(BaseSettings):
    app_name: str = BRAND_NAME
    environment: Literal["development", "test", "staging", "production"] = Field(
        default="development",
        description="Deployment environment name",
    )
    log_level: str = Field(default="INFO", description="Root log level")

    database_url: str = Field(
        default="sqlite:///./smartcal.db",
        description="SQLAlchemy URL for the primary store",
    )
    database_echo: bool = False

    # Change feed transport. memory:// keeps everything in-process;
    # redis://host:6379 fans out across workers.
    broadcast_url: str = Field(default="memory://", description="Broadcaster backend URL")
    sse_heartbeat_interval: int = Field(default=15, ge=1, description="Seconds between SSE heartbeats")

    default_timezone: str = Field(default="UTC", description="Zone used when a profile has none")

    # Calendar grid hour axis, [start, end)
    calendar_start_hour: int = Field(default=7, ge=0, le=23)
    calendar_end_hour: int = Field(default=21, ge=1, le=24)
    calendar_tags: List[str] = Field(default_factory=lambda: ["work", "personal", "university"])

    slot_granularity_minutes: int = Field(default=15, ge=1, le=240)
    max_buffer_minutes: int = Field(default=60, ge=0)
    max_meeting_duration_minutes: int = Field(default=8 * 60, ge=1)
    max_slot_span_days: int = Field(default=62, ge=1)

    public_booking_base_url: str = Field(
        default="https://smartcal.com/book",
        description="Prefix for shareable booking page links",
    )

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        if value not in pytz.all_timezones_set:
            raise ValueError(f"Unknown time zone: {value}")
        return value

    @field_validator("public_booking_base_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @model_validator(mode="after")
    def _check_calendar_hours(self) -> "Settings":
        if self.calendar_start_hour >= self.calendar_end_hour:
            raise ValueError("calendar_start_hour must be before calendar_end_hour")
        return self

    @property
    def is_sqlite(self) -> bool:
        return self.database_url.startswith("sqlite")


settings = Settings()
