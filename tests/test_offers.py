"""Tests for offer, rate-table and amenity models."""

from datetime import date

import pytest
from pydantic import ValidationError as PydanticValidationError

from gymbook.schemas.amenities_schema import (
    default_amenities,
    describe_amenities,
    known_amenity_keys,
    merge_amenities,
)
from gymbook.schemas.offer_schema import OfferKind, RateTable
from tests.conftest import make_offer


class TestAmenities:
    def test_defaults_cover_every_key(self):
        assert set(default_amenities()) == set(known_amenity_keys())

    def test_stored_value_wins(self):
        merged = merge_amenities({"wifi": False, "sauna": True})
        assert merged["wifi"] is False
        assert merged["sauna"] is True

    def test_missing_key_takes_default(self):
        merged = merge_amenities({"sauna": True})
        assert merged["towels"] is True
        assert merged["breakfast"] is False

    def test_unknown_key_dropped(self, caplog):
        merged = merge_amenities({"helipad": True})
        assert "helipad" not in merged
        assert "helipad" in caplog.text

    def test_non_boolean_rejected(self):
        with pytest.raises(ValueError, match="sauna"):
            merge_amenities({"sauna": "yes"})

    def test_describe_by_group(self):
        selection = merge_amenities({"lunch": True, "private_lessons": True, "wifi": False})
        assert describe_amenities(selection, group="meals") == ["Lunch"]
        assert "Private lessons" in describe_amenities(selection)


class TestOfferValidation:
    def test_rate_table_needs_a_rate(self):
        with pytest.raises(PydanticValidationError):
            RateTable()

    def test_rates_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            RateTable(weekly=0)

    def test_training_needs_daily(self):
        with pytest.raises(PydanticValidationError, match="daily"):
            make_offer(kind=OfferKind.TRAINING, daily=None, weekly=5000)

    def test_stay_offers_need_weekly(self):
        with pytest.raises(PydanticValidationError, match="weekly"):
            make_offer(kind=OfferKind.ALL_INCLUSIVE, weekly=None, monthly=30000)

    def test_currency_normalized(self):
        assert make_offer(currency=" thb ").currency == "THB"

    def test_bad_currency(self):
        with pytest.raises(PydanticValidationError):
            make_offer(currency="baht")

    def test_amenities_merged_on_offer(self):
        offer = make_offer(amenities={"laundry": True})
        assert offer.amenities["laundry"] is True
        assert offer.amenities["wifi"] is True

    def test_snapshot_copies_terms(self):
        offer = make_offer(min_stay_days=7, capacity=4, amenities={"sauna": True})
        snapshot = offer.snapshot()
        assert snapshot.offer_id == offer.id
        assert snapshot.rates == offer.rates
        assert snapshot.min_stay_days == 7
        assert snapshot.capacity == 4
        assert snapshot.amenities["sauna"] is True

    def test_blackout_nights_exclude_checkout(self):
        offer = make_offer(blackout_dates=frozenset({date(2026, 12, 1), date(2026, 12, 5)}))
        assert offer.blackout_nights(date(2026, 12, 1), date(2026, 12, 5)) == [date(2026, 12, 1)]
        assert offer.blackout_nights(date(2026, 12, 2), date(2026, 12, 4)) == []
