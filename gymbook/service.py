"""
Booking service: the external interface of the booking core.

Takes and returns pydantic models, looks offers up in the catalog and
delegates lifecycle work to the BookingCoordinator. Processor calls are
retried here with bounded backoff, always under the same idempotency
key. Input validation failures surface as gymbook ValidationErrors.
"""

import asyncio
import logging
from datetime import date
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import pydantic

from gymbook.access.guest_access import GuestAccess
from gymbook.config import AppConfig, PaymentConfig
from gymbook.errors import ValidationError
from gymbook.lifecycle.coordinator import BookingCoordinator, SweepReport
from gymbook.lifecycle.state_machine import BookingState
from gymbook.notifications.dispatcher import NotificationDispatcher
from gymbook.notifications.senders import build_sender
from gymbook.payments import build_payment_authority, parse_authorization_webhook
from gymbook.payments.retry import retry_processor_call
from gymbook.schemas.booking_schema import (
    BookingView,
    CreateBookingRequest,
    CreateBookingResponse,
    HoldResponse,
    StatusResponse,
    StayQuote,
)
from gymbook.stores.booking_store import InMemoryBookingStore
from gymbook.stores.offer_catalog import OfferCatalog

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]

_STATUS_MESSAGES: dict[BookingState, str] = {
    BookingState.REQUESTED: "Request sent to the gym. You have not been charged.",
    BookingState.HOST_ACCEPTED: "Accepted. Complete payment to hold your spot. "
                                "You have not been charged.",
    BookingState.HOST_DECLINED: "The booking was declined. You have not been charged.",
    BookingState.HOLD_CREATED: "Waiting for card authorization. You have not been charged.",
    BookingState.AUTHORIZED: "Card authorized and on hold. You have not been charged.",
    BookingState.CONFIRMED: "Booking confirmed. Your card has been charged.",
    BookingState.RELEASED: "The card hold was released. You have not been charged.",
    BookingState.CANCELLED: "The booking was cancelled.",
}


def payment_status_message(state: BookingState) -> str:
    """Guest-facing status text. Says "not charged" for every state before CONFIRMED."""
    return _STATUS_MESSAGES[state]


def _parse_request(data: Union[CreateBookingRequest, Mapping[str, Any]]) -> CreateBookingRequest:
    if isinstance(data, CreateBookingRequest):
        return data
    try:
        return CreateBookingRequest.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(_describe(exc)) from exc


def _describe(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error["loc"]) or "input"
        parts.append(f"{location}: {error['msg']}")
    return "; ".join(parts)


class BookingService:
    """Facade over catalog, coordinator and guest access."""

    def __init__(
        self,
        catalog: OfferCatalog,
        coordinator: BookingCoordinator,
        access: GuestAccess,
        payment_config: Optional[PaymentConfig] = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.catalog = catalog
        self.coordinator = coordinator
        self.access = access
        self._payment_config = payment_config or PaymentConfig()
        self._sleep = sleep

    async def create_booking(
        self, data: Union[CreateBookingRequest, Mapping[str, Any]]
    ) -> CreateBookingResponse:
        request = _parse_request(data)
        try:
            guest = request.guest()
        except pydantic.ValidationError as exc:
            raise ValidationError(_describe(exc)) from exc
        offer = self.catalog.get(request.offer_id)
        booking = await self.coordinator.request_booking(
            offer, request.start_date, request.end_date, guest, request.notes
        )
        return CreateBookingResponse(
            booking_id=booking.id,
            confirmation_reference=booking.confirmation_reference,
        )

    def quote(self, offer_id: str, start_date: date, end_date: date) -> StayQuote:
        return self.coordinator.quote(self.catalog.get(offer_id), start_date, end_date)

    async def accept(self, booking_id: str) -> StatusResponse:
        booking = await self.coordinator.host_accept(booking_id)
        return self._status(booking.id, booking.state)

    async def create_hold(self, booking_id: str) -> HoldResponse:
        result = await self._with_retry(lambda: self.coordinator.create_hold(booking_id))
        booking = await self.coordinator.get(booking_id)
        return HoldResponse(
            booking_id=booking_id,
            status=booking.state,
            client_secret=result.client_secret,
        )

    async def confirm_authorization(
        self, booking_id: str, external_payment_ref: str
    ) -> StatusResponse:
        """Called by the guest's redirect and by the processor webhook; either may come first."""
        booking = await self.coordinator.record_authorization(booking_id, external_payment_ref)
        return self._status(booking.id, booking.state)

    async def handle_payment_webhook(
        self, payload: Union[bytes, str], signature: str, secret: str
    ) -> Optional[StatusResponse]:
        notice = parse_authorization_webhook(payload, signature, secret)
        if notice is None:
            return None
        return await self.confirm_authorization(notice.booking_id, notice.external_ref)

    async def capture(self, booking_id: str) -> StatusResponse:
        booking = await self._with_retry(lambda: self.coordinator.capture(booking_id))
        return self._status(booking.id, booking.state)

    async def decline_or_release(
        self,
        booking_id: str,
        reason: Optional[str] = None,
        *,
        by_host: bool = True,
        automatic: bool = False,
    ) -> StatusResponse:
        """
        Decline a pending request, or release the card hold of a later booking.

        A request that has no hold yet is declined. Otherwise the hold is
        released: into HOST_DECLINED when the host is refusing, RELEASED
        for an operator or an expiry.
        """
        booking = await self.coordinator.get(booking_id)
        if booking.state == BookingState.REQUESTED and not automatic:
            booking = await self.coordinator.host_decline(booking_id, reason)
        else:
            booking = await self._with_retry(
                lambda: self.coordinator.release(
                    booking_id, reason, by_host=by_host and not automatic, automatic=automatic
                )
            )
        return self._status(booking.id, booking.state)

    async def cancel(self, booking_id: str, reason: Optional[str] = None) -> StatusResponse:
        booking = await self.coordinator.cancel(booking_id, reason)
        return self._status(booking.id, booking.state)

    async def get_booking(self, booking_id: str) -> BookingView:
        booking = await self.coordinator.get(booking_id)
        return booking.public_view()

    async def release_expired_holds(self) -> SweepReport:
        return await self.coordinator.release_expired_holds()

    # --- Guest access ---

    async def request_access(self, reference: str, email: str) -> None:
        await self.access.request_access(reference, email)

    async def reveal_pin(self, token: str) -> str:
        return await self.access.reveal_pin(token)

    async def verify_pin(self, reference: str, pin: str) -> BookingView:
        return await self.access.verify_pin(reference, pin)

    # --- Internals ---

    async def _with_retry(self, call):
        return await retry_processor_call(
            call,
            max_attempts=self._payment_config.max_retries,
            backoff_sec=self._payment_config.retry_backoff_sec,
            sleep=self._sleep,
        )

    @staticmethod
    def _status(booking_id: str, state: BookingState) -> StatusResponse:
        return StatusResponse(
            booking_id=booking_id, status=state, message=payment_status_message(state)
        )


def build_service(
    config: AppConfig, catalog: Optional[OfferCatalog] = None
) -> tuple[BookingService, NotificationDispatcher]:
    """Wire an in-process service from configuration."""
    dispatcher = NotificationDispatcher(
        build_sender(config.notifications),
        max_attempts=config.notifications.max_attempts,
        backoff_sec=config.notifications.backoff_sec,
        max_backoff_sec=config.notifications.max_backoff_sec,
        dedupe_capacity=config.notifications.dedupe_capacity,
    )
    store = InMemoryBookingStore()
    coordinator = BookingCoordinator(
        store,
        build_payment_authority(config.payment),
        dispatcher,
        config=config.booking,
    )
    access = GuestAccess(store, dispatcher, config=config.booking)
    service = BookingService(
        catalog or OfferCatalog(), coordinator, access, payment_config=config.payment
    )
    return service, dispatcher
