# backend/mentorline/core/config.py
import logging
import os
from pathlib import Path
from typing import Literal, Optional, Set

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
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
    logger.debug("[CONFIG] Looking for .env at: %s (exists=%s)", env_path, env_path.exists())
    load_dotenv(env_path)


NON_PROD_SITE_MODES: Set[str] = {
    "local",
    "dev",
    "development",
    "stg",
    "stage",
    "staging",
    "preview",
}
PROD_SITE_MODES: Set[str] = {"prod", "production", "live"}


def _classify_site_mode(raw_site_mode: str | None) -> tuple[str, bool, bool]:
    """Return normalized site mode with production/non-prod classification."""

    normalized = (raw_site_mode or "").strip().lower()
    is_prod = normalized in PROD_SITE_MODES
    is_non_prod = normalized in NON_PROD_SITE_MODES
    return normalized, is_prod, is_non_prod


class Settings(BaseSettings):
    # Runtime
    site_mode: str = Field(default="local", alias="SITE_MODE")
    environment: str = (
        "production" if _classify_site_mode(os.getenv("SITE_MODE", "local"))[1] else "development"
    )
    is_testing: bool = False  # Set to True when running tests

    # Storage
    database_url: str = Field(default="sqlite:///./mentorline.db", alias="DATABASE_URL")
    database_echo: bool = False

    # Redis / Celery
    redis_url: str = "redis://localhost:6379"
    celery_broker_url: Optional[str] = Field(default=None, alias="CELERY_BROKER_URL")

    # Per-mentor / per-session serialization
    scheduling_lock_backend: Literal["local", "redis"] = Field(
        default="local",
        description="Keyed mutex backend; use redis when running more than one process",
    )
    scheduling_lock_namespace: str = "mentorline"
    scheduling_lock_ttl_seconds: int = 30
    scheduling_lock_wait_seconds: float = 5.0

    # Availability policy
    default_timezone: str = "America/New_York"
    slot_step_minutes: int = Field(default=15, ge=5, le=60)
    blocked_date_min_days_ahead: int = Field(default=1, ge=0)
    blocked_date_horizon_days: int = Field(default=14, ge=1)

    # Call policy
    call_durations: list[int] = Field(default_factory=lambda: [30, 60])
    default_call_duration_minutes: int = 30
    default_hourly_rate: float = 50.0
    platform_fee_percent: float = Field(default=25.0, ge=0, le=100)
    requested_call_expiry_minutes: int = Field(
        default=30,
        description="REQUESTED calls without payment capture are cancelled after this long",
    )
    refund_cutoff_hours: int = 24

    # Group session policy
    group_min_lead_time_hours: int = 24
    group_quorum_window_hours: int = 24
    group_session_durations: list[int] = Field(default_factory=lambda: [45, 60, 90])
    group_min_capacity: int = 4
    group_max_capacity: int = 20
    group_min_price: float = 0.0
    group_max_price: float = 35.0

    # Reminders
    reminder_day_before_hours: int = 24
    reminder_hour_before_minutes: int = 60
    reminder_dispatch_batch_size: int = 200

    # Video room provisioning
    video_provider: Literal["fake", "daily"] = Field(default="fake", alias="VIDEO_PROVIDER")
    daily_api_key: SecretStr | None = Field(default=None, alias="DAILY_API_KEY")
    daily_api_base_url: str = "https://api.daily.co/v1"
    video_room_grace_minutes: int = 60

    # Notifications
    notification_provider: Literal["console", "resend"] = Field(
        default="console",
        alias="NOTIFICATION_PROVIDER",
        description="Notification provider name",
    )
    resend_api_key: str | None = Field(
        default=None,
        alias="RESEND_API_KEY",
        description="API key for Resend provider (optional)",
    )
    from_email: str = f"{BRAND_NAME} <hello@mentorline.app>"

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("default_timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone: {value}") from exc
        return value

    @field_validator("call_durations", "group_session_durations")
    @classmethod
    def _validate_durations(cls, value: list[int]) -> list[int]:
        if not value or any(int(v) <= 0 for v in value):
            raise ValueError("Durations must be a non-empty list of positive minutes")
        return sorted({int(v) for v in value})

    @model_validator(mode="after")
    def _validate_group_bounds(self) -> "Settings":
        if self.group_min_capacity > self.group_max_capacity:
            raise ValueError("group_min_capacity cannot exceed group_max_capacity")
        if self.group_min_price > self.group_max_price:
            raise ValueError("group_min_price cannot exceed group_max_price")
        return self

    def get_database_url(self) -> str:
        """Return the database URL used by the engine."""
        return self.database_url

    def get_broker_url(self) -> str:
        """Return the Celery broker URL, falling back to the Redis URL."""
        return self.celery_broker_url or self.redis_url


settings = Settings()
