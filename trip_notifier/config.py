"""
Environment-driven settings.

All values are read once by load_settings() and handed to each component.
Date math never touches the process default timezone; it always goes through
Settings.tzinfo().
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Optional

logger = logging.getLogger("trip_notifier.config")

DEFAULT_TIMEZONE = "Asia/Kolkata"
DEFAULT_POST_SERVICE_URL = "https://travelbuddy-posts-service-production.up.railway.app"
DEFAULT_USER_SERVICE_URL = "https://travelbuddy-user-service-production.up.railway.app"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _get_tz(tz_name: str) -> tzinfo:
    """Return a ZoneInfo instance with safe fallback."""
    try:
        from zoneinfo import ZoneInfo
        return ZoneInfo(tz_name or DEFAULT_TIMEZONE)
    except Exception:
        logger.warning(f"Unknown timezone {tz_name!r}, falling back to UTC")
        return timezone.utc


@dataclass(frozen=True)
class Settings:
    timezone: str = DEFAULT_TIMEZONE
    schedule_hour: int = 0
    schedule_minute: int = 30
    scheduler_enabled: bool = True
    reminder_window_hours: int = 24

    post_service_url: str = DEFAULT_POST_SERVICE_URL
    user_service_url: str = DEFAULT_USER_SERVICE_URL
    http_timeout_seconds: float = 10.0

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from: str = ""
    smtp_timeout_seconds: float = 15.0

    db_path: str = "/data/trips.db"
    max_trip_workers: int = 8
    max_delivery_workers: int = 8
    # How long shutdown waits for a running pass before closing the delivery pool
    shutdown_grace_seconds: float = 30.0

    # Gate for the duplicate-side-effect behavior of the lifecycle rules
    strict_transitions: bool = False

    log_level: str = "INFO"
    log_file: str = "/data/trip_notifier.log"
    admin_password: str = ""

    def tzinfo(self) -> tzinfo:
        return _get_tz(self.timezone)

    def now(self) -> datetime:
        """Current wall-clock time in the configured zone, timezone-aware."""
        return datetime.now(self.tzinfo())

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.smtp_from)


def load_settings(overrides: Optional[dict] = None) -> Settings:
    """Build Settings from the environment; overrides win over env values."""
    values = dict(
        timezone=os.getenv("APP_TIMEZONE", DEFAULT_TIMEZONE),
        schedule_hour=_env_int("SCHEDULE_HOUR", 0),
        schedule_minute=_env_int("SCHEDULE_MINUTE", 30),
        scheduler_enabled=_env_bool("SCHEDULER_ENABLED", True),
        reminder_window_hours=_env_int("REMINDER_WINDOW_HOURS", 24),
        post_service_url=os.getenv("POST_SERVICE_URL", DEFAULT_POST_SERVICE_URL).rstrip("/"),
        user_service_url=os.getenv("USER_SERVICE_URL", DEFAULT_USER_SERVICE_URL).rstrip("/"),
        http_timeout_seconds=_env_float("HTTP_TIMEOUT_SECONDS", 10.0),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_env_int("SMTP_PORT", 587),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_pass=os.getenv("SMTP_PASS", ""),
        smtp_from=os.getenv("SMTP_FROM", ""),
        smtp_timeout_seconds=_env_float("SMTP_TIMEOUT_SECONDS", 15.0),
        db_path=os.getenv("DB_PATH", "/data/trips.db"),
        max_trip_workers=_env_int("MAX_TRIP_WORKERS", 8),
        max_delivery_workers=_env_int("MAX_DELIVERY_WORKERS", 8),
        shutdown_grace_seconds=_env_float("SHUTDOWN_GRACE_SECONDS", 30.0),
        strict_transitions=_env_bool("STRICT_TRANSITIONS", False),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_file=os.getenv("LOG_FILE", "/data/trip_notifier.log"),
        admin_password=os.getenv("ADMIN_PASSWORD", ""),
    )
    if overrides:
        values.update(overrides)

    if not (0 <= values["schedule_hour"] <= 23 and 0 <= values["schedule_minute"] <= 59):
        raise ValueError(
            f"Invalid schedule time {values['schedule_hour']}:{values['schedule_minute']}"
        )
    if values["max_trip_workers"] < 1 or values["max_delivery_workers"] < 1:
        raise ValueError("Worker pool sizes must be at least 1")

    return Settings(**values)
