"""
Rate engine: turns a stay duration and an offer's tier table into one charge.

Pure and deterministic. No I/O, no clock, no state.

Billing rules:
    training         -> daily rate x days
    everything else  -> whole 30-day months plus whole 7-day weeks, weeks
                        rounded up. The weekly remainder is capped at one
                        more month, so the monthly bundle replaces weekly
                        blocks as soon as it is no more expensive. This
                        keeps the price non-decreasing in the duration.
                        Stays under 28 days keep the unit "week" and say
                        in the label when the cap applied.

A missing weekly rate is derived as monthly / 30 x 7. Rounding to the
currency's precision happens once, on the final amount.
"""

import logging
from decimal import Decimal
from typing import Optional, Union

from gymbook.currency import round_amount
from gymbook.errors import RateUnavailableError, ValidationError
from gymbook.schemas.booking_schema import BillingUnit, PriceQuote
from gymbook.schemas.offer_schema import Offer, OfferKind, OfferSnapshot, RateTable

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7
DAYS_PER_MONTH = 30
# Stays shorter than this are always presented as weekly billing.
MONTHLY_MIN_DAYS = 28

PricedOffer = Union[Offer, OfferSnapshot]


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _check_duration(duration_days: int) -> None:
    if isinstance(duration_days, bool) or not isinstance(duration_days, int):
        raise ValidationError(f"duration must be a whole number of days, got {duration_days!r}")
    if duration_days < 1:
        raise ValidationError(f"duration must be at least 1 day, got {duration_days}")


def resolve_weekly_rate(rates: RateTable) -> Decimal:
    """Weekly tier, or one derived from the monthly tier when absent."""
    if rates.weekly is not None:
        return Decimal(rates.weekly)
    if rates.monthly is not None:
        return Decimal(rates.monthly) / DAYS_PER_MONTH * DAYS_PER_WEEK
    raise RateUnavailableError("offer has neither a weekly nor a monthly rate")


def _quote(
    amount: Decimal, currency: str, unit: BillingUnit, label: str, duration_days: int
) -> PriceQuote:
    return PriceQuote(
        amount=round_amount(amount, currency),
        currency=currency,
        unit=unit,
        label=label,
        duration_days=duration_days,
    )


def _price_by_day(duration_days: int, rates: RateTable, currency: str) -> PriceQuote:
    if rates.daily is None:
        raise RateUnavailableError("training offers require a daily rate")
    amount = Decimal(rates.daily) * duration_days
    return _quote(amount, currency, "day", _plural(duration_days, "day"), duration_days)


def _price_by_blocks(duration_days: int, rates: RateTable, currency: str) -> PriceQuote:
    weekly = resolve_weekly_rate(rates)
    monthly: Optional[Decimal] = Decimal(rates.monthly) if rates.monthly is not None else None

    if monthly is None:
        weeks = -(-duration_days // DAYS_PER_WEEK)
        return _quote(weekly * weeks, currency, "week", _plural(weeks, "week"), duration_days)

    months, remainder_days = divmod(duration_days, DAYS_PER_MONTH)
    weeks = -(-remainder_days // DAYS_PER_WEEK)
    amount = monthly * months + weekly * weeks

    if monthly * (months + 1) <= amount:
        if duration_days < MONTHLY_MIN_DAYS:
            label = _plural(weeks, "week") + " (capped at the monthly rate)"
            return _quote(monthly, currency, "week", label, duration_days)
        months, weeks = months + 1, 0
        amount = monthly * months

    if months == 0:
        return _quote(amount, currency, "week", _plural(weeks, "week"), duration_days)

    label = _plural(months, "month")
    if weeks:
        label += " + " + _plural(weeks, "week")
    return _quote(amount, currency, "month", label, duration_days)


def price_for(duration_days: int, offer: PricedOffer) -> PriceQuote:
    """
    Price a stay of ``duration_days`` against the offer's tier table.

    Raises:
        ValidationError: duration is not a positive whole number of days.
        RateUnavailableError: no tier can be resolved for the offer's kind.
    """
    _check_duration(duration_days)
    if offer.kind == OfferKind.TRAINING:
        return _price_by_day(duration_days, offer.rates, offer.currency)
    return _price_by_blocks(duration_days, offer.rates, offer.currency)


def anchor_price(offer: PricedOffer) -> PriceQuote:
    """Price at the offer's minimum stay, shown when a shorter stay is selected."""
    return price_for(offer.min_stay_days, offer)
