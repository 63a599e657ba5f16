"""Shared test fixtures and helpers."""

from datetime import date, datetime, timedelta, timezone
from typing import Optional

import pytest

from gymbook.access.guest_access import GuestAccess
from gymbook.config import BookingConfig, PaymentConfig
from gymbook.lifecycle.coordinator import BookingCoordinator
from gymbook.lifecycle.state_machine import BookingStateMachine
from gymbook.notifications.dispatcher import NotificationDispatcher
from gymbook.notifications.schema import Notification, NotificationKind
from gymbook.notifications.senders import DeliveryError, NotificationSender
from gymbook.payments.in_memory import InMemoryPaymentAuthority
from gymbook.schemas.booking_schema import Booking, GuestDetails
from gymbook.schemas.offer_schema import BookingMode, Offer, OfferKind, RateTable
from gymbook.service import BookingService
from gymbook.stores.booking_store import InMemoryBookingStore
from gymbook.stores.offer_catalog import OfferCatalog

START_OF_TEST_TIME = datetime(2026, 11, 1, 9, 0, tzinfo=timezone.utc)
HOLD_LIFETIME = timedelta(hours=168)


class FakeClock:
    """Deterministic clock the tests move by hand."""

    def __init__(self, now: datetime = START_OF_TEST_TIME) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def today(self) -> date:
        return self.now.date()

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class RecordingSender(NotificationSender):
    """Keeps every delivered notification; can be told to fail first."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []
        self.failures_left = 0
        self.attempts = 0

    async def send(self, notification: Notification) -> None:
        self.attempts += 1
        if self.failures_left > 0:
            self.failures_left -= 1
            raise DeliveryError("mail server down")
        self.sent.append(notification)

    def of_kind(self, kind: NotificationKind) -> list[Notification]:
        return [n for n in self.sent if n.kind == kind]


class SleepRecorder:
    """Stand-in for asyncio.sleep that returns at once and records waits."""

    def __init__(self) -> None:
        self.waits: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.waits.append(seconds)


def make_guest(
    name: str = "Somchai Jaidee",
    email: str = "Somchai@Example.com",
    phone: str = "+66 81 234 5678",
) -> GuestDetails:
    return GuestDetails(name=name, email=email, phone=phone)


def make_offer(
    offer_id: str = "camp",
    kind: OfferKind = OfferKind.TRAINING_ACCOMMODATION,
    daily: Optional[int] = None,
    weekly: Optional[int] = 14000,
    monthly: Optional[int] = None,
    currency: str = "USD",
    min_stay_days: int = 1,
    booking_mode: BookingMode = BookingMode.REQUEST_TO_BOOK,
    **extra,
) -> Offer:
    return Offer(
        id=offer_id,
        name=extra.pop("name", "Camp stay"),
        gym_name=extra.pop("gym_name", "Rawai Lion Gym"),
        host_email=extra.pop("host_email", "host@rawailion.example"),
        kind=kind,
        rates=RateTable(daily=daily, weekly=weekly, monthly=monthly),
        currency=currency,
        min_stay_days=min_stay_days,
        booking_mode=booking_mode,
        **extra,
    )


def stay_dates(clock: FakeClock, days: int, lead: int = 10) -> tuple[date, date]:
    start = clock.today() + timedelta(days=lead)
    return start, start + timedelta(days=days)


async def request(
    coordinator: BookingCoordinator,
    clock: FakeClock,
    offer: Offer,
    days: int = 5,
    lead: int = 10,
) -> Booking:
    start, end = stay_dates(clock, days, lead)
    return await coordinator.request_booking(offer, start, end, make_guest())


async def authorized_booking(
    coordinator: BookingCoordinator,
    authority: InMemoryPaymentAuthority,
    clock: FakeClock,
    offer: Offer,
    days: int = 5,
) -> Booking:
    """Walk a request-to-book booking up to AUTHORIZED."""
    booking = await request(coordinator, clock, offer, days)
    await coordinator.host_accept(booking.id)
    hold = await coordinator.create_hold(booking.id)
    authority.authenticate(hold.external_ref)
    return await coordinator.record_authorization(booking.id, hold.external_ref)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def booking_config():
    return BookingConfig(
        max_stay_days=365,
        reference_prefix="BK-",
        reference_length=6,
        pin_length=6,
        access_token_ttl_days=90,
        pin_max_attempts=3,
        pin_lockout_minutes=15,
        operator_email="ops@gymbook.example",
    )


@pytest.fixture
def payment_config():
    return PaymentConfig(provider="memory", max_retries=3, retry_backoff_sec=0.5)


@pytest.fixture
def machine():
    return BookingStateMachine()


@pytest.fixture
def training_offer():
    return make_offer(
        "drop-in", kind=OfferKind.TRAINING, daily=2000, weekly=None, name="Drop-in training"
    )


@pytest.fixture
def stay_offer():
    return make_offer("camp", weekly=14000)


@pytest.fixture
def instant_offer():
    return make_offer(
        "instant-drop-in",
        kind=OfferKind.TRAINING,
        daily=600,
        weekly=None,
        currency="THB",
        booking_mode=BookingMode.INSTANT,
    )


@pytest.fixture
def store():
    return InMemoryBookingStore()


@pytest.fixture
def authority(clock):
    return InMemoryPaymentAuthority(clock=clock, hold_lifetime=HOLD_LIFETIME)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def sleeper():
    return SleepRecorder()


@pytest.fixture
def dispatcher(sender, sleeper):
    return NotificationDispatcher(
        sender, max_attempts=3, backoff_sec=1.0, max_backoff_sec=60.0, sleep=sleeper
    )


@pytest.fixture
def coordinator(store, authority, dispatcher, booking_config, clock):
    return BookingCoordinator(store, authority, dispatcher, config=booking_config, clock=clock)


@pytest.fixture
def access(store, dispatcher, booking_config, clock):
    return GuestAccess(store, dispatcher, config=booking_config, clock=clock)


@pytest.fixture
def catalog(training_offer, stay_offer, instant_offer):
    return OfferCatalog([training_offer, stay_offer, instant_offer])


@pytest.fixture
def service(catalog, coordinator, access, payment_config, sleeper):
    return BookingService(catalog, coordinator, access, payment_config=payment_config, sleep=sleeper)
