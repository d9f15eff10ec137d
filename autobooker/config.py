"""
Centralized configuration with environment variable overrides.

Business hours, booking policy, session lifetimes and conversation limits
are configurable here. Nothing is hardcoded in engine or service logic.
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

from dotenv import load_dotenv

from autobooker.logging_context import install_session_filter

load_dotenv()

logger = logging.getLogger(__name__)


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _csv(env_var: str, default: str) -> tuple[str, ...]:
    raw = os.getenv(env_var, default)
    return tuple(part.strip() for part in raw.split(",") if part.strip())


DEFAULT_BUSINESS_HOURS: dict[str, dict[str, Optional[str]]] = {
    "monday": {"open": "09:00", "close": "18:00"},
    "tuesday": {"open": "09:00", "close": "18:00"},
    "wednesday": {"open": "09:00", "close": "18:00"},
    "thursday": {"open": "09:00", "close": "18:00"},
    "friday": {"open": "09:00", "close": "17:00"},
    "saturday": {"open": "09:00", "close": "13:00"},
    "sunday": {"open": None, "close": None},
}


def _business_hours_from_env() -> dict[str, dict[str, Optional[str]]]:
    """Read BUSINESS_HOURS as a JSON object, falling back to the default week."""
    raw = os.getenv("BUSINESS_HOURS")
    if not raw:
        return {day: dict(hours) for day, hours in DEFAULT_BUSINESS_HOURS.items()}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        raise ValueError(f"Invalid JSON for BUSINESS_HOURS: {raw!r}") from None
    if not isinstance(parsed, dict):
        raise ValueError("BUSINESS_HOURS must be a JSON object keyed by weekday")
    return parsed


@dataclass(frozen=True)
class BusinessConfig:
    """Business-specific settings loaded from environment or defaults."""

    name: str = os.getenv("BUSINESS_NAME", "Cabinet AutoBooker")
    timezone: str = os.getenv("BUSINESS_TIMEZONE", "Europe/Paris")
    hours: dict = field(default_factory=_business_hours_from_env)
    default_language: str = os.getenv("DEFAULT_LANGUAGE", "fr")


@dataclass(frozen=True)
class CalendarSettings:
    """Booking policy and calendar provider settings."""

    buffer_minutes: int = _safe_int("BUFFER_MINUTES", "15")
    advance_booking_days: int = _safe_int("ADVANCE_BOOKING_DAYS", "1")
    max_booking_days: int = _safe_int("MAX_BOOKING_DAYS", "60")
    slot_interval_minutes: int = _safe_int("SLOT_INTERVAL_MINUTES", "30")
    default_duration_minutes: int = _safe_int("DEFAULT_DURATION_MINUTES", "60")
    provider_timeout_sec: float = _safe_float("PROVIDER_TIMEOUT_SEC", "10.0")
    providers: tuple[str, ...] = _csv("CALENDAR_PROVIDERS", "memory")


@dataclass(frozen=True)
class SessionConfig:
    """Session lifetime settings."""

    ttl_hours: float = _safe_float("SESSION_TTL_HOURS", "24")
    max_inactive_hours: float = _safe_float("SESSION_MAX_INACTIVE_HOURS", "4")
    sweep_interval_sec: float = _safe_float("SESSION_SWEEP_INTERVAL_SEC", "300")


@dataclass(frozen=True)
class ConversationConfig:
    """Limits and pluggable components for the conversation engine."""

    max_message_length: int = _safe_int("MAX_MESSAGE_LENGTH", "2000")
    max_proposals: int = _safe_int("MAX_PROPOSALS", "5")
    default_service: str = os.getenv("DEFAULT_SERVICE", "consultation")
    intent_classifier: str = os.getenv("INTENT_CLASSIFIER", "rules")
    notifier: str = os.getenv("NOTIFIER", "recording")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    business: BusinessConfig = field(default_factory=BusinessConfig)
    calendar: CalendarSettings = field(default_factory=CalendarSettings)
    session: SessionConfig = field(default_factory=SessionConfig)
    conversation: ConversationConfig = field(default_factory=ConversationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    assistant_name: str = os.getenv("ASSISTANT_NAME", "AutoBooker")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.business.default_language not in ("fr", "en"):
        raise ValueError(
            f"DEFAULT_LANGUAGE must be 'fr' or 'en', got {config.business.default_language!r}"
        )
    cal = config.calendar
    if cal.buffer_minutes < 0:
        raise ValueError(f"BUFFER_MINUTES must be >= 0, got {cal.buffer_minutes}")
    if cal.advance_booking_days < 0:
        raise ValueError(
            f"ADVANCE_BOOKING_DAYS must be >= 0, got {cal.advance_booking_days}"
        )
    if cal.max_booking_days < cal.advance_booking_days:
        raise ValueError(
            "MAX_BOOKING_DAYS must be >= ADVANCE_BOOKING_DAYS, "
            f"got {cal.max_booking_days} < {cal.advance_booking_days}"
        )
    if cal.slot_interval_minutes < 1:
        raise ValueError(
            f"SLOT_INTERVAL_MINUTES must be >= 1, got {cal.slot_interval_minutes}"
        )
    if cal.default_duration_minutes < 1:
        raise ValueError(
            f"DEFAULT_DURATION_MINUTES must be >= 1, got {cal.default_duration_minutes}"
        )
    if cal.provider_timeout_sec <= 0:
        raise ValueError(
            f"PROVIDER_TIMEOUT_SEC must be > 0, got {cal.provider_timeout_sec}"
        )

    ses = config.session
    if ses.ttl_hours <= 0 or ses.max_inactive_hours <= 0:
        raise ValueError(
            "SESSION_TTL_HOURS and SESSION_MAX_INACTIVE_HOURS must be > 0, "
            f"got {ses.ttl_hours} / {ses.max_inactive_hours}"
        )
    if ses.sweep_interval_sec <= 0:
        raise ValueError(
            f"SESSION_SWEEP_INTERVAL_SEC must be > 0, got {ses.sweep_interval_sec}"
        )

    conv = config.conversation
    if conv.max_message_length < 1:
        raise ValueError(
            f"MAX_MESSAGE_LENGTH must be >= 1, got {conv.max_message_length}"
        )
    if conv.max_proposals < 1:
        raise ValueError(f"MAX_PROPOSALS must be >= 1, got {conv.max_proposals}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(session_tag)s%(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    install_session_filter()
    logger.info("Configuration loaded for '%s'", config.business.name)
    return config


# Singleton instance
settings = load_config()
