"""Tests for the rate engine and currency rounding."""

from decimal import Decimal

import pytest

from gymbook.currency import ZERO_DECIMAL_CURRENCIES, format_amount, round_amount
from gymbook.errors import RateUnavailableError, ValidationError
from gymbook.pricing import anchor_price, price_for
from gymbook.pricing.rate_engine import resolve_weekly_rate
from gymbook.schemas.offer_schema import OfferKind, OfferSnapshot, RateTable
from tests.conftest import make_offer

DURATIONS = range(1, 400)


class TestScenarios:
    def test_training_five_days_is_daily_times_days(self):
        offer = make_offer(kind=OfferKind.TRAINING, daily=2000, weekly=None)
        quote = price_for(5, offer)
        assert quote.amount == 10000
        assert quote.unit == "day"
        assert quote.label == "5 days"

    def test_weekly_only_eleven_days_bills_two_weeks(self):
        offer = make_offer(weekly=14000)
        quote = price_for(11, offer)
        assert quote.amount == 28000
        assert quote.unit == "week"
        assert quote.label == "2 weeks"

    def test_anchor_price_is_price_at_min_stay(self):
        offer = make_offer(weekly=14000, min_stay_days=7)
        anchor = anchor_price(offer)
        assert anchor.duration_days == 7
        assert anchor.amount == 14000

    def test_single_day_label_is_singular(self):
        offer = make_offer(kind=OfferKind.TRAINING, daily=2000, weekly=None)
        assert price_for(1, offer).label == "1 day"


class TestMonthlyComposition:
    @pytest.fixture
    def offer(self):
        return make_offer(weekly=9500, monthly=32000, currency="THB")

    def test_under_a_month_bills_weeks(self, offer):
        quote = price_for(14, offer)
        assert quote.amount == 19000
        assert quote.unit == "week"

    def test_short_stay_capped_but_billed_in_weeks(self, offer):
        # 4 weeks = 38000 > one month = 32000
        quote = price_for(22, offer)
        assert quote.amount == 32000
        assert quote.unit == "week"
        assert quote.label == "4 weeks (capped at the monthly rate)"

    def test_monthly_bundle_from_28_days(self, offer):
        quote = price_for(28, offer)
        assert quote.amount == 32000
        assert quote.unit == "month"
        assert quote.label == "1 month"

    def test_exactly_thirty_days_is_one_month(self, offer):
        assert price_for(30, offer).amount == 32000

    def test_month_plus_remainder_weeks(self, offer):
        quote = price_for(40, offer)
        assert quote.amount == 32000 + 2 * 9500
        assert quote.label == "1 month + 2 weeks"

    def test_multi_month(self, offer):
        assert price_for(90, offer).amount == 3 * 32000

    def test_remainder_capped_at_next_month(self, offer):
        # 1 month + 4 weeks would be 70000; 2 months is 64000
        quote = price_for(52, offer)
        assert quote.amount == 64000
        assert quote.label == "2 months"

    def test_expensive_monthly_still_uses_weeks_beyond_28_days(self):
        offer = make_offer(weekly=10000, monthly=50000)
        assert price_for(28, offer).amount == 40000
        assert price_for(29, offer).amount == 50000


class TestDerivedWeeklyRate:
    def test_weekly_derived_from_monthly(self):
        rates = RateTable(monthly=30000)
        assert resolve_weekly_rate(rates) == Decimal(7000)

    def test_snapshot_without_weekly_prices_from_monthly(self):
        snapshot = OfferSnapshot(
            offer_id="x",
            kind=OfferKind.ALL_INCLUSIVE,
            rates=RateTable(monthly=30000),
            currency="USD",
        )
        assert price_for(10, snapshot).amount == 14000

    def test_no_weekly_or_monthly_is_rate_unavailable(self):
        snapshot = OfferSnapshot(
            offer_id="x",
            kind=OfferKind.CUSTOM,
            rates=RateTable(daily=1000),
            currency="USD",
        )
        with pytest.raises(RateUnavailableError):
            price_for(3, snapshot)

    def test_training_without_daily_is_rate_unavailable(self):
        snapshot = OfferSnapshot(
            offer_id="x",
            kind=OfferKind.TRAINING,
            rates=RateTable(weekly=5000),
            currency="USD",
        )
        with pytest.raises(RateUnavailableError):
            price_for(3, snapshot)


class TestDurationValidation:
    @pytest.mark.parametrize("bad", [0, -3, 2.5, "7", True])
    def test_rejects_non_positive_or_non_integer(self, bad):
        offer = make_offer()
        with pytest.raises(ValidationError):
            price_for(bad, offer)


class TestPricingProperties:
    @pytest.mark.parametrize("daily", [1, 600, 2000, 99999])
    def test_training_is_daily_times_days(self, daily):
        offer = make_offer(kind=OfferKind.TRAINING, daily=daily, weekly=None)
        for d in DURATIONS:
            assert price_for(d, offer).amount == daily * d

    @pytest.mark.parametrize("weekly", [1, 9500, 14000, 45001])
    def test_weekly_only_is_weekly_times_ceil_weeks(self, weekly):
        offer = make_offer(weekly=weekly)
        for d in DURATIONS:
            assert price_for(d, offer).amount == weekly * -(-d // 7)

    @pytest.mark.parametrize(
        "weekly,monthly",
        [(9500, 32000), (10000, 50000), (14000, 30000), (7001, 30000), (3, 10)],
    )
    def test_non_decreasing_in_duration(self, weekly, monthly):
        offer = make_offer(weekly=weekly, monthly=monthly)
        previous = 0
        for d in DURATIONS:
            amount = price_for(d, offer).amount
            assert amount >= previous, f"price dropped at {d} days"
            previous = amount

    @pytest.mark.parametrize("currency", sorted(ZERO_DECIMAL_CURRENCIES))
    def test_zero_decimal_amounts_are_whole(self, currency):
        snapshot = OfferSnapshot(
            offer_id="x",
            kind=OfferKind.ALL_INCLUSIVE,
            rates=RateTable(monthly=31999),
            currency=currency,
        )
        for d in DURATIONS:
            amount = price_for(d, snapshot).amount
            assert isinstance(amount, int)


class TestRounding:
    def test_zero_decimal_rounds_half_up_to_unit(self):
        assert round_amount(Decimal("7466.5"), "THB") == 7467
        assert round_amount(Decimal("7466.49"), "JPY") == 7466

    def test_two_decimal_rounds_to_whole_cents(self):
        assert round_amount(Decimal("7466.666"), "USD") == 7467
        assert round_amount(Decimal("100.4"), "EUR") == 100

    def test_negative_amount_rejected(self):
        with pytest.raises(ValueError):
            round_amount(Decimal("-1"), "USD")

    def test_derived_weekly_rounded_once_at_the_end(self):
        # 32000 / 30 * 7 = 7466.67 per week; two weeks round once to 14933
        snapshot = OfferSnapshot(
            offer_id="x",
            kind=OfferKind.ALL_INCLUSIVE,
            rates=RateTable(monthly=32000),
            currency="THB",
        )
        assert price_for(14, snapshot).amount == 14933


class TestFormatting:
    def test_zero_decimal_format(self):
        assert format_amount(150000, "THB") == "THB 150,000"

    def test_two_decimal_format(self):
        assert format_amount(10000, "usd") == "USD 100.00"
