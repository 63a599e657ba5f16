"""
Booking lifecycle coordinator.

Drives one booking at a time through request, host decision, card hold,
authorization, capture and release. State changes are computed by the
BookingStateMachine and committed to the BookingStore.

Operations that call the payment processor run in three steps:

    1. lock the booking, read it and validate the event, unlock
    2. call the processor with the booking's idempotency key
    3. lock again, re-read, check nothing moved, commit

The lock is never held across the network call. If step 3 finds that a
concurrent duplicate already committed the same outcome it returns that
booking; any other change raises StaleTransitionError.

Notifications are handed to the dispatcher after the commit and never
block or fail a transition.
"""

import secrets
import string
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Callable, Optional

from gymbook.config import BookingConfig
from gymbook.errors import (
    AuthorizationExpiredError,
    BookingError,
    MinimumStayNotMetError,
    OfferUnavailableError,
    StaleTransitionError,
    ValidationError,
)
from gymbook.lifecycle.keyed_locks import KeyedLocks
from gymbook.lifecycle.state_machine import (
    HOLDING_STATES,
    OCCUPYING_STATES,
    BookingEvent,
    BookingState,
    BookingStateMachine,
)
from gymbook.logging_context import bound_booking_id, get_booking_logger
from gymbook.notifications import templates
from gymbook.notifications.dispatcher import NotificationDispatcher
from gymbook.payments.base import PaymentAuthority, idempotency_key
from gymbook.pricing.rate_engine import anchor_price, price_for
from gymbook.schemas.booking_schema import Booking, GuestDetails, StayQuote, TransitionRecord
from gymbook.schemas.offer_schema import BookingMode, Offer
from gymbook.schemas.payment_schema import AuthorizationStatus, HoldResult
from gymbook.stores.booking_store import BookingStore

logger = get_booking_logger(__name__)

REFERENCE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
MAX_REFERENCE_ATTEMPTS = 10

EXPIRED_REASON = "Payment authorization expired"
FULLY_BOOKED_REASON = "The offer is fully booked for these dates"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SweepReport:
    """Outcome of one expiry sweep."""

    released: list[Booking] = field(default_factory=list)
    failures: dict[str, str] = field(default_factory=dict)


class BookingCoordinator:
    """Serializes lifecycle transitions per booking id."""

    def __init__(
        self,
        store: BookingStore,
        authority: PaymentAuthority,
        dispatcher: NotificationDispatcher,
        config: Optional[BookingConfig] = None,
        clock: Callable[[], datetime] = _utcnow,
        locks: Optional[KeyedLocks] = None,
    ) -> None:
        self._store = store
        self._authority = authority
        self._dispatcher = dispatcher
        self._config = config or BookingConfig()
        self._clock = clock
        self._locks = locks or KeyedLocks()
        self._offer_locks = KeyedLocks()
        self._machine = BookingStateMachine()

    # --- Request and quote ---

    def quote(self, offer: Offer, start_date: date, end_date: date) -> StayQuote:
        """Price a stay for display, flagging stays that cannot be booked as-is."""
        duration = self._check_dates(start_date, end_date)
        price = price_for(duration, offer)
        blackout = offer.blackout_nights(start_date, end_date)
        if duration < offer.min_stay_days:
            return StayQuote(
                offer_id=offer.id,
                start_date=start_date,
                end_date=end_date,
                price=price,
                bookable=False,
                anchor=anchor_price(offer),
                reason=f"Minimum stay is {offer.min_stay_days} days",
            )
        if blackout:
            return StayQuote(
                offer_id=offer.id,
                start_date=start_date,
                end_date=end_date,
                price=price,
                bookable=False,
                reason=f"Unavailable on {', '.join(d.isoformat() for d in blackout)}",
            )
        return StayQuote(
            offer_id=offer.id,
            start_date=start_date,
            end_date=end_date,
            price=price,
            bookable=True,
        )

    async def request_booking(
        self,
        offer: Offer,
        start_date: date,
        end_date: date,
        guest: GuestDetails,
        notes: Optional[str] = None,
    ) -> Booking:
        """
        Create a booking in REQUESTED.

        Raises:
            ValidationError: Dates are inconsistent, in the past or too long.
            OfferUnavailableError: Blackout dates or no capacity left.
            MinimumStayNotMetError: Stay is shorter than the offer allows.
                The error carries the anchor price at the minimum stay.
            RateUnavailableError: The offer has no usable rate.
        """
        duration = self._check_dates(start_date, end_date)
        self._check_not_in_past(start_date)

        blackout = offer.blackout_nights(start_date, end_date)
        if blackout:
            raise OfferUnavailableError(
                f"Offer {offer.id} is unavailable on "
                f"{', '.join(d.isoformat() for d in blackout)}"
            )
        if duration < offer.min_stay_days:
            raise MinimumStayNotMetError(duration, offer.min_stay_days, anchor=anchor_price(offer))

        price = price_for(duration, offer)
        await self._check_capacity(offer.id, offer.capacity, start_date, end_date)

        booking_id = uuid.uuid4().hex
        with bound_booking_id(booking_id):
            booking = Booking(
                id=booking_id,
                confirmation_reference=await self._new_reference(),
                confirmation_pin=self._new_pin(),
                offer_id=offer.id,
                offer_snapshot=offer.snapshot(),
                start_date=start_date,
                end_date=end_date,
                guest=guest,
                notes=notes,
                total_amount=price.amount,
                currency=price.currency,
                billing_unit=price.unit,
                price_label=price.label,
                history=(TransitionRecord(state=BookingState.REQUESTED, at=self._clock()),),
            )
            await self._store.insert(booking)
            logger.info(
                "Booking %s requested for offer %s: %s (%s)",
                booking.confirmation_reference, offer.id, booking.formatted_total, price.label,
            )

            self._dispatcher.dispatch(templates.request_received(booking))
            if booking.booking_mode == BookingMode.REQUEST_TO_BOOK:
                self._dispatcher.dispatch(templates.host_new_request(booking))
        return booking

    # --- Host decision ---

    async def host_accept(self, booking_id: str) -> Booking:
        with bound_booking_id(booking_id):
            booking = await self._apply_local(booking_id, BookingEvent.HOST_ACCEPT)
            logger.info("Host accepted booking")
            self._dispatcher.dispatch(templates.request_accepted(booking))
            return booking

    async def host_decline(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        with bound_booking_id(booking_id):
            booking = await self._apply_local(booking_id, BookingEvent.HOST_DECLINE, reason=reason)
            logger.info("Host declined booking")
            self._dispatcher.dispatch(templates.request_declined(booking, reason))
            return booking

    # --- Card hold ---

    async def create_hold(self, booking_id: str) -> HoldResult:
        """
        Reserve the booking total on the guest's card.

        Safe to call again: a repeat while the hold exists returns the same
        processor result, since the idempotency key is the same.

        Raises:
            IllegalTransitionError: The booking is not ready for a hold.
            OfferUnavailableError: Capacity was taken while the hold was
                being created; the hold has been released again.
            ProcessorError: The processor failed; the booking is unchanged.
        """
        key = idempotency_key(booking_id, "create_hold")
        with bound_booking_id(booking_id):
            async with self._locks.hold(booking_id):
                booking = await self._store.get(booking_id)
                if booking.state != BookingState.HOLD_CREATED:
                    self._machine.next_state(
                        booking.state, BookingEvent.CREATE_HOLD, booking.booking_mode
                    )

            if booking.state != BookingState.HOLD_CREATED:
                await self._check_capacity(
                    booking.offer_id,
                    booking.offer_snapshot.capacity,
                    booking.start_date,
                    booking.end_date,
                    exclude_id=booking.id,
                )

            result = await self._authority.create_hold(
                booking.total_amount,
                booking.currency,
                key,
                metadata={
                    "booking_id": booking.id,
                    "reference": booking.confirmation_reference,
                },
            )
            if booking.state == BookingState.HOLD_CREATED:
                logger.info("Hold %s already exists", result.external_ref)
                return result

            over_capacity = False
            async with self._locks.hold(booking_id):
                current = await self._store.get(booking_id)
                if (
                    current.state == BookingState.HOLD_CREATED
                    and current.authorization_ref == result.external_ref
                ):
                    return result
                if current.version != booking.version:
                    stale = StaleTransitionError(
                        current.state.value,
                        BookingEvent.CREATE_HOLD.value,
                        f"Booking moved to '{current.state.value}' while the hold was created",
                    )
                else:
                    stale = None
                    async with self._offer_locks.hold(current.offer_id):
                        over_capacity = await self._over_capacity(current)
                        new_state = self._machine.next_state(
                            current.state, BookingEvent.CREATE_HOLD, current.booking_mode
                        )
                        updated = current.advance(
                            BookingEvent.CREATE_HOLD,
                            new_state,
                            self._clock(),
                            authorization_ref=result.external_ref,
                        )
                        await self._store.save(updated, current.version)

            if stale is not None:
                await self._authority.release(
                    result.external_ref, idempotency_key(booking_id, "release")
                )
                logger.warning("Released orphaned hold %s", result.external_ref)
                raise stale

            logger.info(
                "Hold %s created, expires %s", result.external_ref, result.expires_at.isoformat()
            )
            if over_capacity:
                await self.release(booking_id, reason=FULLY_BOOKED_REASON)
                raise OfferUnavailableError(FULLY_BOOKED_REASON)
            return result

    async def record_authorization(self, booking_id: str, external_ref: str) -> Booking:
        """
        Record that the guest authorized the hold. Idempotent on ``external_ref``.

        Raises:
            ValidationError: ``external_ref`` is not this booking's hold, or
                the processor does not report it as authorized.
            AuthorizationExpiredError: The hold lapsed; it has been released.
            IllegalTransitionError: The booking is not awaiting authorization.
        """
        with bound_booking_id(booking_id):
            async with self._locks.hold(booking_id):
                booking = await self._store.get(booking_id)
                if self._already_authorized(booking, external_ref):
                    logger.info("Authorization %s already recorded", external_ref)
                    return booking
                self._machine.next_state(
                    booking.state, BookingEvent.RECORD_AUTHORIZATION, booking.booking_mode
                )
                if booking.authorization_ref != external_ref:
                    raise ValidationError(
                        f"Payment reference {external_ref} does not belong to this booking"
                    )

            authorization = await self._authority.get_authorization(external_ref)
            if authorization.is_expired(self._clock()):
                await self.release(booking_id, reason=EXPIRED_REASON, automatic=True)
                raise AuthorizationExpiredError(
                    f"Authorization {external_ref} expired at "
                    f"{authorization.expires_at.isoformat()}"
                )
            if authorization.status != AuthorizationStatus.AUTHORIZED:
                raise ValidationError(
                    f"Payment {external_ref} is {authorization.status.value}, not authorized"
                )

            async with self._locks.hold(booking_id):
                current = await self._store.get(booking_id)
                if self._already_authorized(current, external_ref):
                    return current
                self._check_unchanged(current, booking, BookingEvent.RECORD_AUTHORIZATION)
                updated = current.advance(
                    BookingEvent.RECORD_AUTHORIZATION,
                    BookingState.AUTHORIZED,
                    self._clock(),
                )
                await self._store.save(updated, current.version)

            logger.info("Authorization %s recorded", external_ref)
            self._dispatcher.dispatch(
                templates.operator_detail(updated, self._config.operator_email)
            )
            self._dispatcher.dispatch(templates.authorized(updated))
            return updated

    async def capture(self, booking_id: str) -> Booking:
        """
        Charge the authorized hold. A repeat once CONFIRMED is a no-op.

        Raises:
            IllegalTransitionError: The booking is not AUTHORIZED.
            AuthorizationExpiredError: The hold lapsed; it has been released.
            ProcessorError: The processor failed; the booking is unchanged.
        """
        with bound_booking_id(booking_id):
            async with self._locks.hold(booking_id):
                booking = await self._store.get(booking_id)
                if booking.state == BookingState.CONFIRMED:
                    logger.info("Booking already captured")
                    return booking
                self._machine.next_state(
                    booking.state, BookingEvent.CAPTURE, booking.booking_mode
                )

            authorization = await self._authority.get_authorization(booking.authorization_ref)
            if authorization.is_expired(self._clock()):
                await self.release(booking_id, reason=EXPIRED_REASON, automatic=True)
                raise AuthorizationExpiredError(
                    f"Authorization {booking.authorization_ref} expired before capture"
                )

            await self._authority.capture(
                booking.authorization_ref, idempotency_key(booking_id, "capture")
            )

            async with self._locks.hold(booking_id):
                current = await self._store.get(booking_id)
                if current.state == BookingState.CONFIRMED:
                    return current
                self._check_unchanged(current, booking, BookingEvent.CAPTURE)
                updated = current.advance(
                    BookingEvent.CAPTURE, BookingState.CONFIRMED, self._clock()
                )
                await self._store.save(updated, current.version)

            logger.info("Captured %s", updated.formatted_total)
            self._dispatcher.dispatch(templates.charged(updated))
            return updated

    async def release(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        *,
        by_host: bool = False,
        automatic: bool = False,
    ) -> Booking:
        """
        Cancel the hold without charging.

        ``by_host`` ends the booking in HOST_DECLINED; otherwise it ends in
        RELEASED. ``automatic`` marks an expiry-driven release. A repeat
        once released is a no-op.

        Raises:
            IllegalTransitionError: No hold exists to release.
            ProcessorError: The processor failed; the booking is unchanged.
        """
        if by_host:
            event = BookingEvent.HOST_RELEASE
        elif automatic:
            event = BookingEvent.EXPIRE
        else:
            event = BookingEvent.RELEASE

        with bound_booking_id(booking_id):
            async with self._locks.hold(booking_id):
                booking = await self._store.get(booking_id)
                if self._already_released(booking):
                    logger.info("Hold already released")
                    return booking
                self._machine.next_state(booking.state, event, booking.booking_mode)

            await self._authority.release(
                booking.authorization_ref, idempotency_key(booking_id, "release")
            )

            async with self._locks.hold(booking_id):
                current = await self._store.get(booking_id)
                if self._already_released(current):
                    return current
                self._check_unchanged(current, booking, event)
                new_state = self._machine.next_state(current.state, event, current.booking_mode)
                updated = current.advance(event, new_state, self._clock(), reason=reason)
                await self._store.save(updated, current.version)

            logger.info("Hold released (%s): %s", event.value, reason or "no reason given")
            self._dispatcher.dispatch(templates.released(updated, reason))
            return updated

    # --- Expiry ---

    async def release_if_expired(self, booking_id: str) -> Optional[Booking]:
        """Release the booking's hold if the processor reports it expired."""
        with bound_booking_id(booking_id):
            booking = await self._store.get(booking_id)
            if booking.state not in HOLDING_STATES:
                return None
            authorization = await self._authority.get_authorization(booking.authorization_ref)
            if not authorization.is_expired(self._clock()):
                return None
            logger.info("Authorization expired at %s", authorization.expires_at.isoformat())
            return await self.release(booking_id, reason=EXPIRED_REASON, automatic=True)

    async def release_expired_holds(self) -> SweepReport:
        """Release every expired hold. One booking failing does not stop the sweep."""
        report = SweepReport()
        for booking in await self._store.list_in_states(HOLDING_STATES):
            try:
                released = await self.release_if_expired(booking.id)
            except BookingError as exc:
                with bound_booking_id(booking.id):
                    logger.error("Expiry sweep failed: %s", exc)
                report.failures[booking.id] = str(exc)
                continue
            if released is not None:
                report.released.append(released)
        if report.released or report.failures:
            logger.info(
                "Expiry sweep released %d hold(s), %d failure(s)",
                len(report.released), len(report.failures),
            )
        return report

    # --- After confirmation ---

    async def cancel(self, booking_id: str, reason: Optional[str] = None) -> Booking:
        with bound_booking_id(booking_id):
            booking = await self._apply_local(booking_id, BookingEvent.CANCEL, reason=reason)
            logger.info("Booking cancelled")
            self._dispatcher.dispatch(templates.cancelled(booking, reason))
            return booking

    async def get(self, booking_id: str) -> Booking:
        return await self._store.get(booking_id)

    # --- Internals ---

    async def _apply_local(
        self, booking_id: str, event: BookingEvent, reason: Optional[str] = None
    ) -> Booking:
        async with self._locks.hold(booking_id):
            booking = await self._store.get(booking_id)
            new_state = self._machine.next_state(booking.state, event, booking.booking_mode)
            updated = booking.advance(event, new_state, self._clock(), reason=reason)
            await self._store.save(updated, booking.version)
        return updated

    @staticmethod
    def _check_unchanged(current: Booking, read: Booking, event: BookingEvent) -> None:
        if current.version != read.version:
            raise StaleTransitionError(
                current.state.value,
                event.value,
                f"Booking moved from '{read.state.value}' to '{current.state.value}' "
                f"while '{event.value}' was in flight",
            )

    @staticmethod
    def _already_authorized(booking: Booking, external_ref: str) -> bool:
        return (
            booking.state in (BookingState.AUTHORIZED, BookingState.CONFIRMED)
            and booking.authorization_ref == external_ref
        )

    @staticmethod
    def _already_released(booking: Booking) -> bool:
        return (
            booking.state in (BookingState.RELEASED, BookingState.HOST_DECLINED)
            and booking.authorization_ref is not None
        )

    def _check_dates(self, start_date: date, end_date: date) -> int:
        if end_date <= start_date:
            raise ValidationError("end_date must be after start_date")
        duration = (end_date - start_date).days
        if duration > self._config.max_stay_days:
            raise ValidationError(
                f"Stays are limited to {self._config.max_stay_days} days, got {duration}"
            )
        return duration

    def _check_not_in_past(self, start_date: date) -> None:
        if start_date < self._clock().date():
            raise ValidationError(f"start_date {start_date.isoformat()} is in the past")

    async def _check_capacity(
        self,
        offer_id: str,
        capacity: Optional[int],
        start_date: date,
        end_date: date,
        exclude_id: Optional[str] = None,
    ) -> None:
        if capacity is None:
            return
        taken = await self._store.find_overlapping(
            offer_id, start_date, end_date, OCCUPYING_STATES, exclude_id=exclude_id
        )
        if len(taken) >= capacity:
            raise OfferUnavailableError(FULLY_BOOKED_REASON)

    async def _over_capacity(self, booking: Booking) -> bool:
        capacity = booking.offer_snapshot.capacity
        if capacity is None:
            return False
        taken = await self._store.find_overlapping(
            booking.offer_id,
            booking.start_date,
            booking.end_date,
            OCCUPYING_STATES,
            exclude_id=booking.id,
        )
        return len(taken) >= capacity

    async def _new_reference(self) -> str:
        length = self._config.reference_length
        for _ in range(MAX_REFERENCE_ATTEMPTS):
            code = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(length))
            reference = f"{self._config.reference_prefix}{code}".upper()
            if not await self._store.reference_exists(reference):
                return reference
        raise BookingError("Could not allocate a unique confirmation reference")

    def _new_pin(self) -> str:
        return "".join(secrets.choice(string.digits) for _ in range(self._config.pin_length))


__all__ = ["BookingCoordinator", "SweepReport"]
