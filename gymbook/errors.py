"""
Error taxonomy for the booking core.

Local errors (validation, illegal transitions) are raised synchronously and
never leave a booking partially updated. Processor errors leave the booking
in its last committed state and carry the idempotency key to retry with.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from gymbook.schemas.booking_schema import PriceQuote


class BookingError(Exception):
    """Base class for every error raised by the booking core."""


class ValidationError(BookingError, ValueError):
    """Input has the wrong shape, dates are inconsistent, or values are out of range."""


class MinimumStayNotMetError(ValidationError):
    """Requested duration is shorter than the offer's minimum stay.

    ``anchor`` is the price at the minimum stay, for display.
    """

    def __init__(
        self,
        duration_days: int,
        min_stay_days: int,
        anchor: Optional[PriceQuote] = None,
    ) -> None:
        self.duration_days = duration_days
        self.min_stay_days = min_stay_days
        self.anchor = anchor
        super().__init__(
            f"Stay of {duration_days} day(s) is below the minimum of {min_stay_days} day(s)"
        )


class OfferUnavailableError(ValidationError):
    """The offer cannot be booked for these dates (blackout or capacity)."""


class RateUnavailableError(BookingError):
    """No price tier can be resolved for the offer and duration."""


class IllegalTransitionError(BookingError):
    """A lifecycle event was attempted from a state that does not allow it."""

    def __init__(self, current_state: str, event: str, message: Optional[str] = None) -> None:
        self.current_state = current_state
        self.event = event
        super().__init__(
            message or f"Event '{event}' is not allowed from state '{current_state}'"
        )


class StaleTransitionError(IllegalTransitionError):
    """The booking moved while an external call was in flight."""


class ProcessorError(BookingError):
    """The payment processor failed or could not be reached.

    Retry with the same ``idempotency_key`` when ``retryable`` is true.
    """

    def __init__(self, message: str, idempotency_key: str, retryable: bool = True) -> None:
        self.idempotency_key = idempotency_key
        self.retryable = retryable
        super().__init__(message)


class AuthorizationExpiredError(BookingError):
    """The card authorization lapsed before it could be used."""


class BookingNotFoundError(BookingError):
    """No booking exists with the given identifier."""


class GuestAccessDeniedError(BookingError):
    """Guest credentials (token, PIN) were missing, wrong, expired or locked out."""
