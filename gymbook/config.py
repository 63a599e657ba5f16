"""
Centralized configuration with environment variable overrides.

Booking, payment and notification settings are configurable here.
Nothing is hardcoded in coordinator, adapter or dispatcher logic.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from gymbook.logging_context import BookingIdFilter

load_dotenv()

logger = logging.getLogger(__name__)

PAYMENT_PROVIDERS = ("memory", "stripe")
NOTIFICATION_SENDERS = ("log", "resend")


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


@dataclass(frozen=True)
class BookingConfig:
    """Booking identity, stay limits and guest access settings."""

    max_stay_days: int = _safe_int("BOOKING_MAX_STAY_DAYS", "365")
    reference_prefix: str = os.getenv("BOOKING_REFERENCE_PREFIX", "BK-")
    reference_length: int = _safe_int("BOOKING_REFERENCE_LENGTH", "6")
    pin_length: int = _safe_int("BOOKING_PIN_LENGTH", "6")
    access_token_ttl_days: int = _safe_int("GUEST_ACCESS_TOKEN_TTL_DAYS", "90")
    pin_max_attempts: int = _safe_int("GUEST_PIN_MAX_ATTEMPTS", "5")
    pin_lockout_minutes: int = _safe_int("GUEST_PIN_LOCKOUT_MINUTES", "15")
    operator_email: str = os.getenv("OPERATOR_EMAIL", "bookings@example.com")


@dataclass(frozen=True)
class PaymentConfig:
    """Payment processor selection and retry policy."""

    provider: str = os.getenv("PAYMENT_PROVIDER", "memory")
    stripe_secret_key: str = os.getenv("STRIPE_SECRET_KEY", "")
    stripe_webhook_secret: str = os.getenv("STRIPE_WEBHOOK_SECRET", "")
    hold_lifetime_hours: int = _safe_int("PAYMENT_HOLD_LIFETIME_HOURS", "168")
    max_retries: int = _safe_int("PAYMENT_MAX_RETRIES", "3")
    retry_backoff_sec: float = _safe_float("PAYMENT_RETRY_BACKOFF_SEC", "0.5")


@dataclass(frozen=True)
class NotificationConfig:
    """Guest/host/operator message delivery settings."""

    sender: str = os.getenv("NOTIFICATION_SENDER", "log")
    resend_api_key: str = os.getenv("RESEND_API_KEY", "")
    from_address: str = os.getenv("NOTIFICATION_FROM_ADDRESS", "bookings@example.com")
    max_attempts: int = _safe_int("NOTIFICATION_MAX_ATTEMPTS", "5")
    backoff_sec: float = _safe_float("NOTIFICATION_BACKOFF_SEC", "1.0")
    max_backoff_sec: float = _safe_float("NOTIFICATION_MAX_BACKOFF_SEC", "60.0")
    dedupe_capacity: int = _safe_int("NOTIFICATION_DEDUPE_CAPACITY", "10000")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    booking: BookingConfig = field(default_factory=BookingConfig)
    payment: PaymentConfig = field(default_factory=PaymentConfig)
    notifications: NotificationConfig = field(default_factory=NotificationConfig)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    service_name: str = os.getenv("SERVICE_NAME", "gymbook")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if config.booking.max_stay_days < 1:
        raise ValueError(
            f"BOOKING_MAX_STAY_DAYS must be >= 1, got {config.booking.max_stay_days}"
        )
    if not 4 <= config.booking.reference_length <= 12:
        raise ValueError(
            "BOOKING_REFERENCE_LENGTH must be between 4 and 12, "
            f"got {config.booking.reference_length}"
        )
    if not 4 <= config.booking.pin_length <= 12:
        raise ValueError(
            f"BOOKING_PIN_LENGTH must be between 4 and 12, got {config.booking.pin_length}"
        )
    if config.booking.access_token_ttl_days < 1:
        raise ValueError(
            "GUEST_ACCESS_TOKEN_TTL_DAYS must be >= 1, "
            f"got {config.booking.access_token_ttl_days}"
        )
    if config.booking.pin_max_attempts < 1:
        raise ValueError(
            f"GUEST_PIN_MAX_ATTEMPTS must be >= 1, got {config.booking.pin_max_attempts}"
        )
    if config.booking.pin_lockout_minutes < 1:
        raise ValueError(
            "GUEST_PIN_LOCKOUT_MINUTES must be >= 1, "
            f"got {config.booking.pin_lockout_minutes}"
        )

    if config.payment.provider not in PAYMENT_PROVIDERS:
        raise ValueError(
            f"PAYMENT_PROVIDER must be one of {PAYMENT_PROVIDERS}, got {config.payment.provider!r}"
        )
    if config.payment.provider == "stripe" and not config.payment.stripe_secret_key:
        raise ValueError("STRIPE_SECRET_KEY is required when PAYMENT_PROVIDER=stripe")
    if config.payment.hold_lifetime_hours < 1:
        raise ValueError(
            "PAYMENT_HOLD_LIFETIME_HOURS must be >= 1, "
            f"got {config.payment.hold_lifetime_hours}"
        )
    if config.payment.max_retries < 1:
        raise ValueError(
            f"PAYMENT_MAX_RETRIES must be >= 1, got {config.payment.max_retries}"
        )
    if config.payment.retry_backoff_sec < 0:
        raise ValueError(
            f"PAYMENT_RETRY_BACKOFF_SEC must be >= 0, got {config.payment.retry_backoff_sec}"
        )

    if config.notifications.sender not in NOTIFICATION_SENDERS:
        raise ValueError(
            f"NOTIFICATION_SENDER must be one of {NOTIFICATION_SENDERS}, "
            f"got {config.notifications.sender!r}"
        )
    if config.notifications.sender == "resend" and not config.notifications.resend_api_key:
        raise ValueError("RESEND_API_KEY is required when NOTIFICATION_SENDER=resend")
    if config.notifications.max_attempts < 1:
        raise ValueError(
            "NOTIFICATION_MAX_ATTEMPTS must be >= 1, "
            f"got {config.notifications.max_attempts}"
        )
    if config.notifications.dedupe_capacity < 1:
        raise ValueError(
            "NOTIFICATION_DEDUPE_CAPACITY must be >= 1, "
            f"got {config.notifications.dedupe_capacity}"
        )
    for name, value in [
        ("NOTIFICATION_BACKOFF_SEC", config.notifications.backoff_sec),
        ("NOTIFICATION_MAX_BACKOFF_SEC", config.notifications.max_backoff_sec),
    ]:
        if value < 0:
            raise ValueError(f"{name} must be >= 0, got {value}")


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] [%(booking_id)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, BookingIdFilter) for f in handler.filters):
            handler.addFilter(BookingIdFilter())
    logger.info("Configuration loaded for '%s'", config.service_name)
    return config


# Singleton instance
settings = load_config()
