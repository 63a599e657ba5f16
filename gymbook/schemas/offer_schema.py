"""Offer and rate-table data models (read-only input to the booking core)."""

from datetime import date, timedelta
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, PositiveInt, field_validator, model_validator

from gymbook.schemas.amenities_schema import default_amenities, merge_amenities


class OfferKind(str, Enum):
    TRAINING = "training"
    TRAINING_ACCOMMODATION = "training_accommodation"
    ALL_INCLUSIVE = "all_inclusive"
    CUSTOM = "custom"


class BookingMode(str, Enum):
    REQUEST_TO_BOOK = "request_to_book"
    INSTANT = "instant"


class RateTable(BaseModel):
    """Per-offer price tiers, each in minor currency units."""

    model_config = ConfigDict(frozen=True)

    daily: Optional[PositiveInt] = None
    weekly: Optional[PositiveInt] = None
    monthly: Optional[PositiveInt] = None

    @model_validator(mode="after")
    def _at_least_one_rate(self) -> "RateTable":
        if self.daily is None and self.weekly is None and self.monthly is None:
            raise ValueError("at least one of daily, weekly or monthly must be set")
        return self


def _normalize_currency(value: str) -> str:
    code = value.strip().upper()
    if len(code) != 3 or not code.isalpha():
        raise ValueError(f"currency must be a 3-letter ISO code, got {value!r}")
    return code


class OfferSnapshot(BaseModel):
    """Copy of an offer's pricing terms taken when a booking is created.

    Bookings price from the snapshot only, so later edits to the offer
    never change what a guest was quoted.
    """

    model_config = ConfigDict(frozen=True)

    offer_id: str
    name: str = ""
    gym_name: str = ""
    host_email: Optional[str] = None
    kind: OfferKind
    rates: RateTable
    currency: str
    min_stay_days: int = Field(default=1, ge=1)
    booking_mode: BookingMode = BookingMode.REQUEST_TO_BOOK
    cancellation_window_days: Optional[int] = Field(default=None, ge=0)
    capacity: Optional[PositiveInt] = None
    amenities: dict[str, bool] = Field(default_factory=default_amenities)


class Offer(BaseModel):
    """A bookable package published by a gym."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    gym_name: str = ""
    host_email: Optional[str] = None
    kind: OfferKind
    rates: RateTable
    currency: str
    min_stay_days: int = Field(default=1, ge=1)
    booking_mode: BookingMode = BookingMode.REQUEST_TO_BOOK
    cancellation_window_days: Optional[int] = Field(default=None, ge=0)
    blackout_dates: frozenset[date] = Field(default_factory=frozenset)
    capacity: Optional[PositiveInt] = None
    amenities: dict[str, bool] = Field(default_factory=default_amenities)

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        return _normalize_currency(value)

    @field_validator("amenities", mode="before")
    @classmethod
    def _merge_amenities(cls, value: object) -> dict[str, bool]:
        if value is None:
            return default_amenities()
        if not isinstance(value, dict):
            raise ValueError("amenities must be a mapping of key to true/false")
        return merge_amenities(value)

    @model_validator(mode="after")
    def _required_tier_for_kind(self) -> "Offer":
        if self.kind == OfferKind.TRAINING and self.rates.daily is None:
            raise ValueError("training offers must define a daily rate")
        if self.kind != OfferKind.TRAINING and self.rates.weekly is None:
            raise ValueError(f"{self.kind.value} offers must define a weekly rate")
        return self

    def snapshot(self) -> OfferSnapshot:
        return OfferSnapshot(
            offer_id=self.id,
            name=self.name,
            gym_name=self.gym_name,
            host_email=self.host_email,
            kind=self.kind,
            rates=self.rates,
            currency=self.currency,
            min_stay_days=self.min_stay_days,
            booking_mode=self.booking_mode,
            cancellation_window_days=self.cancellation_window_days,
            capacity=self.capacity,
            amenities=dict(self.amenities),
        )

    def blackout_nights(self, start: date, end: date) -> list[date]:
        """Blackout dates falling on nights of the stay [start, end)."""
        if not self.blackout_dates:
            return []
        nights = (start + timedelta(days=i) for i in range((end - start).days))
        return [night for night in nights if night in self.blackout_dates]
