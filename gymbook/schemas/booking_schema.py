"""Booking, guest and quote data models."""

from datetime import date, datetime
from typing import Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    SecretStr,
    field_validator,
    model_validator,
)

from gymbook.currency import format_amount
from gymbook.lifecycle.state_machine import BookingEvent, BookingState
from gymbook.schemas.offer_schema import BookingMode, OfferSnapshot
from gymbook.utils import normalize_email, normalize_phone

MIN_NAME_LENGTH = 2
MIN_PHONE_DIGITS = 7
MAX_PHONE_DIGITS = 15

BillingUnit = Literal["day", "week", "month"]


class GuestDetails(BaseModel):
    """Guest contact snapshot taken at request time (not an account link)."""

    model_config = ConfigDict(frozen=True)

    name: str
    email: EmailStr
    phone: str

    @field_validator("name")
    @classmethod
    def _name(cls, value: str) -> str:
        value = " ".join(value.split())
        if len(value) < MIN_NAME_LENGTH:
            raise ValueError("guest name is too short")
        return value

    @field_validator("email", mode="before")
    @classmethod
    def _strip_email(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator("phone")
    @classmethod
    def _phone(cls, value: str) -> str:
        normalized = normalize_phone(value)
        digits = normalized.lstrip("+")
        if not MIN_PHONE_DIGITS <= len(digits) <= MAX_PHONE_DIGITS:
            raise ValueError(f"'{value}' is not a valid phone number")
        return normalized


class PriceQuote(BaseModel):
    """Rate engine output: a single charge amount in minor currency units."""

    model_config = ConfigDict(frozen=True)

    amount: int = Field(ge=0)
    currency: str
    unit: BillingUnit
    label: str
    duration_days: int = Field(ge=1)

    @property
    def display(self) -> str:
        return format_amount(self.amount, self.currency)


class StayQuote(BaseModel):
    """Price for a selected stay, with the anchor price when it is too short to book."""

    model_config = ConfigDict(frozen=True)

    offer_id: str
    start_date: date
    end_date: date
    price: PriceQuote
    bookable: bool
    anchor: Optional[PriceQuote] = None
    reason: Optional[str] = None


class TransitionRecord(BaseModel):
    """When a booking entered a state, and why."""

    model_config = ConfigDict(frozen=True)

    state: BookingState
    at: datetime
    event: Optional[BookingEvent] = None
    reason: Optional[str] = None


class Booking(BaseModel):
    """
    A guest reservation of an offer.

    Instances are immutable. The only way to change a booking is
    ``advance()``, which the coordinator calls with a state already
    validated by the state machine.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    confirmation_reference: str
    confirmation_pin: SecretStr
    offer_id: str
    offer_snapshot: OfferSnapshot
    start_date: date
    end_date: date
    guest: GuestDetails
    notes: Optional[str] = None
    total_amount: int = Field(ge=0)
    currency: str
    billing_unit: BillingUnit
    price_label: str
    state: BookingState = BookingState.REQUESTED
    authorization_ref: Optional[str] = None
    status_reason: Optional[str] = None
    history: tuple[TransitionRecord, ...] = ()
    version: int = 1

    @model_validator(mode="after")
    def _dates_in_order(self) -> "Booking":
        if self.end_date <= self.start_date:
            raise ValueError("end_date must be after start_date")
        return self

    @property
    def duration_days(self) -> int:
        return (self.end_date - self.start_date).days

    @property
    def booking_mode(self) -> BookingMode:
        return self.offer_snapshot.booking_mode

    @property
    def created_at(self) -> Optional[datetime]:
        return self.history[0].at if self.history else None

    @property
    def formatted_total(self) -> str:
        return format_amount(self.total_amount, self.currency)

    def entered_at(self, state: BookingState) -> Optional[datetime]:
        """Timestamp of the most recent entry into ``state``."""
        for record in reversed(self.history):
            if record.state == state:
                return record.at
        return None

    def advance(
        self,
        event: BookingEvent,
        new_state: BookingState,
        at: datetime,
        *,
        reason: Optional[str] = None,
        authorization_ref: Optional[str] = None,
    ) -> "Booking":
        """Return the next version of this booking after ``event``."""
        changes: dict = {
            "state": new_state,
            "history": self.history + (
                TransitionRecord(state=new_state, at=at, event=event, reason=reason),
            ),
            "version": self.version + 1,
            "status_reason": reason,
        }
        if authorization_ref is not None:
            changes["authorization_ref"] = authorization_ref
        return self.model_copy(update=changes)

    def public_view(self) -> "BookingView":
        return BookingView(
            booking_id=self.id,
            confirmation_reference=self.confirmation_reference,
            state=self.state,
            offer_name=self.offer_snapshot.name,
            gym_name=self.offer_snapshot.gym_name,
            start_date=self.start_date,
            end_date=self.end_date,
            guest_name=self.guest.name,
            total_amount=self.total_amount,
            currency=self.currency,
            formatted_total=self.formatted_total,
            price_label=self.price_label,
            status_reason=self.status_reason,
        )


class BookingView(BaseModel):
    """What a guest or host may see about a booking. Never includes the PIN."""

    model_config = ConfigDict(frozen=True)

    booking_id: str
    confirmation_reference: str
    state: BookingState
    offer_name: str
    gym_name: str
    start_date: date
    end_date: date
    guest_name: str
    total_amount: int
    currency: str
    formatted_total: str
    price_label: str
    status_reason: Optional[str] = None


class CreateBookingRequest(BaseModel):
    """Guest checkout input."""

    offer_id: str
    start_date: date
    end_date: date
    guest_name: str
    guest_email: str
    guest_phone: str
    notes: Optional[str] = Field(default=None, max_length=2000)

    def guest(self) -> GuestDetails:
        return GuestDetails(name=self.guest_name, email=self.guest_email, phone=self.guest_phone)


class CreateBookingResponse(BaseModel):
    booking_id: str
    confirmation_reference: str


class HoldResponse(BaseModel):
    booking_id: str
    status: BookingState
    client_secret: Optional[str] = None


class StatusResponse(BaseModel):
    booking_id: str
    status: BookingState
    message: str
