"""
Possession-based guest access to a booking.

The confirmation PIN is never put in a URL, a confirmation page or a
log line. A guest who wants it proves control of the e-mail address on
the booking: ``request_access`` mails a one-off access token, and only
``reveal_pin`` with that token returns the PIN. Tokens are stored as
SHA-256 digests.

``verify_pin`` lets a guest manage a booking with reference + PIN and
locks the reference for a while after repeated failures.
"""

import hashlib
import hmac
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from gymbook.config import BookingConfig
from gymbook.errors import GuestAccessDeniedError
from gymbook.logging_context import bound_booking_id, get_booking_logger
from gymbook.notifications import templates
from gymbook.notifications.dispatcher import NotificationDispatcher
from gymbook.schemas.booking_schema import BookingView
from gymbook.stores.booking_store import BookingStore
from gymbook.utils import mask_email, normalize_email

logger = get_booking_logger(__name__)

TOKEN_BYTES = 32
DENIED = "Access denied"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _digest(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class _AccessGrant:
    booking_id: str
    expires_at: datetime


@dataclass
class _PinFailures:
    count: int
    # Last failure plus the lockout window; the record is dropped after it.
    expires_at: datetime


class GuestAccess:
    """Issues access tokens and checks PINs for guests without accounts."""

    def __init__(
        self,
        store: BookingStore,
        dispatcher: NotificationDispatcher,
        config: Optional[BookingConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._dispatcher = dispatcher
        self._config = config or BookingConfig()
        self._clock = clock
        self._grants: dict[str, _AccessGrant] = {}
        self._pin_failures: dict[str, _PinFailures] = {}

    def _prune(self, now: datetime) -> None:
        """Drop expired grants and failure records."""
        for digest in [d for d, g in self._grants.items() if now >= g.expires_at]:
            del self._grants[digest]
        for key in [k for k, f in self._pin_failures.items() if now >= f.expires_at]:
            del self._pin_failures[key]

    async def request_access(self, reference: str, email: str) -> None:
        """
        Mail an access token to the booking's guest address.

        Returns nothing either way, so callers cannot discover which
        references exist.
        """
        now = self._clock()
        self._prune(now)
        booking = await self._store.get_by_reference(reference)
        if booking is None or booking.guest.email != normalize_email(email):
            logger.info("Access request for %s did not match a booking", mask_email(email))
            return

        token = secrets.token_hex(TOKEN_BYTES)
        digest = _digest(token)
        self._grants[digest] = _AccessGrant(
            booking_id=booking.id,
            expires_at=now + timedelta(days=self._config.access_token_ttl_days),
        )
        with bound_booking_id(booking.id):
            logger.info("Access token issued to %s", mask_email(booking.guest.email))
            self._dispatcher.dispatch(templates.access_code(booking, token, digest[:16]))

    async def reveal_pin(self, token: str) -> str:
        """
        Return the confirmation PIN for the booking ``token`` was issued for.

        Raises:
            GuestAccessDeniedError: Unknown or expired token.
        """
        digest = _digest(token.strip())
        grant = self._grants.get(digest)
        if grant is None:
            raise GuestAccessDeniedError(DENIED)
        if self._clock() >= grant.expires_at:
            del self._grants[digest]
            raise GuestAccessDeniedError("Access code has expired")
        booking = await self._store.get(grant.booking_id)
        with bound_booking_id(booking.id):
            logger.info("PIN revealed via access token")
        return booking.confirmation_pin.get_secret_value()

    async def verify_pin(self, reference: str, pin: str) -> BookingView:
        """
        Check reference + PIN and return the booking's public view.

        After ``pin_max_attempts`` failures the reference is locked for
        ``pin_lockout_minutes`` from the last failure, then unlocks.

        Raises:
            GuestAccessDeniedError: Wrong reference or PIN, or too many
                recent failed attempts for this reference.
        """
        now = self._clock()
        self._prune(now)
        key = reference.strip().upper()
        failures = self._pin_failures.get(key)
        if failures is not None and failures.count >= self._config.pin_max_attempts:
            logger.warning("PIN check refused for locked reference %s", key)
            raise GuestAccessDeniedError("Too many failed attempts")

        booking = await self._store.get_by_reference(key)
        expected = booking.confirmation_pin.get_secret_value() if booking else ""
        if booking is None or not hmac.compare_digest(
            pin.strip().encode("utf-8"), expected.encode("utf-8")
        ):
            count = failures.count + 1 if failures is not None else 1
            self._pin_failures[key] = _PinFailures(
                count=count,
                expires_at=now + timedelta(minutes=self._config.pin_lockout_minutes),
            )
            logger.info(
                "PIN check failed for %s (%d/%d)", key, count, self._config.pin_max_attempts
            )
            raise GuestAccessDeniedError(DENIED)

        self._pin_failures.pop(key, None)
        return booking.public_view()
