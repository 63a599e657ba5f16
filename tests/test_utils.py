"""Tests for shared utility functions."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from gymbook.schemas.booking_schema import GuestDetails
from gymbook.utils import mask_email, normalize_email, normalize_phone


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("081 234 5678") == "0812345678"

    def test_strips_dashes(self):
        assert normalize_phone("081-234-5678") == "0812345678"

    def test_strips_parentheses(self):
        assert normalize_phone("(081) 234 5678") == "0812345678"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+66 81 234 5678") == "+66812345678"

    def test_clean_number_unchanged(self):
        assert normalize_phone("0812345678") == "0812345678"

    def test_strips_whitespace(self):
        assert normalize_phone("  0812345678  ") == "0812345678"

    def test_mixed_separators(self):
        assert normalize_phone("+66 (81) 234-5678") == "+66812345678"


class TestEmail:
    def test_normalize_lowercases_and_trims(self):
        assert normalize_email("  Somchai@Example.COM ") == "somchai@example.com"

    def test_mask_keeps_domain(self):
        assert mask_email("somchai@example.com") == "s***@example.com"

    def test_mask_without_domain(self):
        assert mask_email("not-an-address") == "***"


class TestGuestEmail:
    @staticmethod
    def _guest(email):
        return GuestDetails(name="Somchai Jaidee", email=email, phone="+66 81 234 5678")

    @pytest.mark.parametrize(
        "email", ["guest@example.com", "first.last+tag@mail.example.co.th"]
    )
    def test_valid_addresses(self, email):
        assert self._guest(email).email == email

    def test_normalized_after_validation(self):
        assert self._guest("  Somchai@Example.COM ").email == "somchai@example.com"

    @pytest.mark.parametrize(
        "email",
        [
            "no-at-sign.example.com",
            "two words@example.com",
            "guest@example..com",
            "guest@.example.com",
        ],
    )
    def test_invalid_addresses(self, email):
        with pytest.raises(PydanticValidationError, match="email"):
            self._guest(email)
