"""
Centralized configuration with environment variable overrides.

Scheduling policy defaults, recurrence limits, and notification formatting
are configurable here. Nothing is hardcoded in resolver or lifecycle logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from booking_engine.logging_context import install_request_id_filter

load_dotenv()

logger = logging.getLogger(__name__)

OVERRIDE_POLICIES = ("replace", "merge")
MONTH_OVERFLOW_POLICIES = ("skip", "clamp")
LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s [%(request_id)s]: %(message)s"


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    """Parse a boolean flag (true/false, 1/0, yes/no) from an env var."""
    raw = os.getenv(env_var, default).strip().lower()
    if raw in ("1", "true", "yes", "on"):
        return True
    if raw in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


@dataclass(frozen=True)
class SchedulingConfig:
    """Slot generation and recurrence expansion settings."""

    default_timezone: str = os.getenv("DEFAULT_TIMEZONE", "UTC")
    recurrence_horizon_days: int = _safe_int("RECURRENCE_HORIZON_DAYS", "365")
    recurrence_max_span_days: int = _safe_int("RECURRENCE_MAX_SPAN_DAYS", "1825")
    month_overflow: str = os.getenv("RECURRENCE_MONTH_OVERFLOW", "skip").lower()
    override_policy: str = os.getenv("AVAILABILITY_OVERRIDE_POLICY", "replace").lower()
    max_schedule_range_days: int = _safe_int("MAX_SCHEDULE_RANGE_DAYS", "62")


@dataclass(frozen=True)
class PolicyDefaults:
    """Policy values applied when a provider has no schedule settings row."""

    min_advance_minutes: int = _safe_int("DEFAULT_MIN_ADVANCE_MINUTES", "60")
    max_advance_days: int = _safe_int("DEFAULT_MAX_ADVANCE_DAYS", "30")
    allow_cancellation: bool = _safe_bool("DEFAULT_ALLOW_CANCELLATION", "true")
    cancellation_limit_hours: int = _safe_int("DEFAULT_CANCELLATION_LIMIT_HOURS", "24")


@dataclass(frozen=True)
class NotificationConfig:
    """Reminder sweep and message formatting settings."""

    reminder_lead_days: int = _safe_int("REMINDER_LEAD_DAYS", "1")
    date_format: str = os.getenv("NOTIFICATION_DATE_FORMAT", "%A, %B %d, %Y at %I:%M %p")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    scheduling: SchedulingConfig = field(default_factory=SchedulingConfig)
    policy: PolicyDefaults = field(default_factory=PolicyDefaults)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "storecast-scheduling")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not config.scheduling.default_timezone.strip():
        raise ValueError("DEFAULT_TIMEZONE must not be empty")
    if config.scheduling.recurrence_horizon_days < 1:
        raise ValueError(
            "RECURRENCE_HORIZON_DAYS must be >= 1, "
            f"got {config.scheduling.recurrence_horizon_days}"
        )
    if config.scheduling.recurrence_max_span_days < config.scheduling.recurrence_horizon_days:
        raise ValueError(
            "RECURRENCE_MAX_SPAN_DAYS must be >= RECURRENCE_HORIZON_DAYS, "
            f"got {config.scheduling.recurrence_max_span_days}"
        )
    if config.scheduling.month_overflow not in MONTH_OVERFLOW_POLICIES:
        raise ValueError(
            f"RECURRENCE_MONTH_OVERFLOW must be one of {MONTH_OVERFLOW_POLICIES}, "
            f"got {config.scheduling.month_overflow!r}"
        )
    if config.scheduling.override_policy not in OVERRIDE_POLICIES:
        raise ValueError(
            f"AVAILABILITY_OVERRIDE_POLICY must be one of {OVERRIDE_POLICIES}, "
            f"got {config.scheduling.override_policy!r}"
        )
    if config.scheduling.max_schedule_range_days < 1:
        raise ValueError(
            "MAX_SCHEDULE_RANGE_DAYS must be >= 1, "
            f"got {config.scheduling.max_schedule_range_days}"
        )
    if config.policy.min_advance_minutes < 0:
        raise ValueError(
            f"DEFAULT_MIN_ADVANCE_MINUTES must be >= 0, got {config.policy.min_advance_minutes}"
        )
    if config.policy.max_advance_days < 1:
        raise ValueError(
            f"DEFAULT_MAX_ADVANCE_DAYS must be >= 1, got {config.policy.max_advance_days}"
        )
    if config.policy.cancellation_limit_hours < 1:
        raise ValueError(
            "DEFAULT_CANCELLATION_LIMIT_HOURS must be >= 1, "
            f"got {config.policy.cancellation_limit_hours}"
        )
    if config.notifications.reminder_lead_days < 1:
        raise ValueError(
            f"REMINDER_LEAD_DAYS must be >= 1, got {config.notifications.reminder_lead_days}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_request_id_filter()
    logger.info("Configuration loaded for '%s'", config.app_name)
    return config


# Singleton instance
settings = load_config()
