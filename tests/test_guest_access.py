"""Tests for possession-based guest access to the confirmation PIN."""

import logging

import pytest

from gymbook.errors import GuestAccessDeniedError
from gymbook.notifications.schema import NotificationKind
from tests.conftest import authorized_booking, request


async def _token_for(access, dispatcher, sender, booking):
    await access.request_access(booking.confirmation_reference, booking.guest.email)
    await dispatcher.drain()
    message = sender.of_kind(NotificationKind.ACCESS_CODE)[-1]
    # The token is the line after the instruction.
    lines = message.body.splitlines()
    return lines[lines.index("Use this access code to view your booking PIN:") + 1]


class TestRequestAccess:
    @pytest.mark.asyncio
    async def test_mails_token_to_guest(self, access, coordinator, clock, stay_offer, dispatcher, sender):
        booking = await request(coordinator, clock, stay_offer)
        token = await _token_for(access, dispatcher, sender, booking)
        message = sender.of_kind(NotificationKind.ACCESS_CODE)[0]
        assert message.recipient == booking.guest.email
        assert len(token) == 64

    @pytest.mark.asyncio
    async def test_email_match_is_case_insensitive(
        self, access, coordinator, clock, stay_offer, dispatcher, sender
    ):
        booking = await request(coordinator, clock, stay_offer)
        await access.request_access(booking.confirmation_reference.lower(), "SOMCHAI@example.com")
        await dispatcher.drain()
        assert len(sender.of_kind(NotificationKind.ACCESS_CODE)) == 1

    @pytest.mark.asyncio
    async def test_wrong_email_sends_nothing_and_reveals_nothing(
        self, access, coordinator, clock, stay_offer, dispatcher, sender
    ):
        booking = await request(coordinator, clock, stay_offer)
        result = await access.request_access(booking.confirmation_reference, "other@example.com")
        unknown = await access.request_access("BK-ZZZZZZ", booking.guest.email)
        await dispatcher.drain()
        assert result is None and unknown is None
        assert sender.of_kind(NotificationKind.ACCESS_CODE) == []

    @pytest.mark.asyncio
    async def test_each_request_issues_a_new_token(
        self, access, coordinator, clock, stay_offer, dispatcher, sender
    ):
        booking = await request(coordinator, clock, stay_offer)
        first = await _token_for(access, dispatcher, sender, booking)
        second = await _token_for(access, dispatcher, sender, booking)
        assert first != second
        assert len(sender.of_kind(NotificationKind.ACCESS_CODE)) == 2


class TestRevealPin:
    @pytest.mark.asyncio
    async def test_token_reveals_pin(self, access, coordinator, clock, stay_offer, dispatcher, sender):
        booking = await request(coordinator, clock, stay_offer)
        token = await _token_for(access, dispatcher, sender, booking)
        assert await access.reveal_pin(token) == booking.confirmation_pin.get_secret_value()

    @pytest.mark.asyncio
    async def test_unknown_token_denied(self, access):
        with pytest.raises(GuestAccessDeniedError, match="Access denied"):
            await access.reveal_pin("0" * 64)

    @pytest.mark.asyncio
    async def test_expired_token_denied(
        self, access, coordinator, clock, stay_offer, dispatcher, sender, booking_config
    ):
        booking = await request(coordinator, clock, stay_offer)
        token = await _token_for(access, dispatcher, sender, booking)
        clock.advance(days=booking_config.access_token_ttl_days)
        with pytest.raises(GuestAccessDeniedError, match="expired"):
            await access.reveal_pin(token)
        with pytest.raises(GuestAccessDeniedError, match="Access denied"):
            await access.reveal_pin(token)

    @pytest.mark.asyncio
    async def test_raw_token_is_not_stored(self, access, coordinator, clock, stay_offer, dispatcher, sender):
        booking = await request(coordinator, clock, stay_offer)
        token = await _token_for(access, dispatcher, sender, booking)
        assert token not in access._grants


class TestPinNeverLeaks:
    @pytest.mark.asyncio
    async def test_pin_absent_from_logs_and_messages(
        self, access, coordinator, clock, training_offer, authority, dispatcher, sender, caplog
    ):
        with caplog.at_level(logging.DEBUG):
            booking = await authorized_booking(coordinator, authority, clock, training_offer)
            await coordinator.capture(booking.id)
            token = await _token_for(access, dispatcher, sender, booking)
            pin = await access.reveal_pin(token)
            await access.verify_pin(booking.confirmation_reference, pin)
            await dispatcher.drain()

        assert pin == booking.confirmation_pin.get_secret_value()
        assert pin not in caplog.text
        assert token not in caplog.text
        for message in sender.sent:
            assert pin not in message.body

    @pytest.mark.asyncio
    async def test_pin_hidden_in_repr_and_view(self, coordinator, clock, stay_offer):
        booking = await request(coordinator, clock, stay_offer)
        pin = booking.confirmation_pin.get_secret_value()
        assert pin not in repr(booking)
        assert pin not in booking.public_view().model_dump_json()


class TestVerifyPin:
    @pytest.mark.asyncio
    async def test_correct_pin_returns_view(self, access, coordinator, clock, stay_offer):
        booking = await request(coordinator, clock, stay_offer)
        view = await access.verify_pin(
            booking.confirmation_reference.lower(), booking.confirmation_pin.get_secret_value()
        )
        assert view.booking_id == booking.id
        assert view.confirmation_reference == booking.confirmation_reference

    @pytest.mark.asyncio
    async def test_wrong_pin_denied(self, access, coordinator, clock, stay_offer):
        booking = await request(coordinator, clock, stay_offer)
        with pytest.raises(GuestAccessDeniedError, match="Access denied"):
            await access.verify_pin(booking.confirmation_reference, "not-the-pin")

    @pytest.mark.asyncio
    async def test_unknown_reference_looks_like_wrong_pin(self, access):
        with pytest.raises(GuestAccessDeniedError, match="Access denied"):
            await access.verify_pin("BK-ZZZZZZ", "123456")

    @pytest.mark.asyncio
    async def test_locks_after_max_attempts(self, access, coordinator, clock, stay_offer):
        booking = await request(coordinator, clock, stay_offer)
        for _ in range(3):
            with pytest.raises(GuestAccessDeniedError, match="Access denied"):
                await access.verify_pin(booking.confirmation_reference, "wrong")
        with pytest.raises(GuestAccessDeniedError, match="Too many"):
            await access.verify_pin(
                booking.confirmation_reference, booking.confirmation_pin.get_secret_value()
            )

    @pytest.mark.asyncio
    async def test_success_resets_failure_count(self, access, coordinator, clock, stay_offer):
        booking = await request(coordinator, clock, stay_offer)
        pin = booking.confirmation_pin.get_secret_value()
        for _ in range(2):
            with pytest.raises(GuestAccessDeniedError):
                await access.verify_pin(booking.confirmation_reference, "wrong")
        await access.verify_pin(booking.confirmation_reference, pin)
        for _ in range(2):
            with pytest.raises(GuestAccessDeniedError):
                await access.verify_pin(booking.confirmation_reference, "wrong")
        view = await access.verify_pin(booking.confirmation_reference, pin)
        assert view.booking_id == booking.id

    @pytest.mark.asyncio
    async def test_lockout_lifts_after_window(
        self, access, coordinator, clock, stay_offer, booking_config
    ):
        booking = await request(coordinator, clock, stay_offer)
        pin = booking.confirmation_pin.get_secret_value()
        for _ in range(booking_config.pin_max_attempts):
            with pytest.raises(GuestAccessDeniedError):
                await access.verify_pin(booking.confirmation_reference, "wrong")

        clock.advance(minutes=booking_config.pin_lockout_minutes - 1)
        with pytest.raises(GuestAccessDeniedError, match="Too many"):
            await access.verify_pin(booking.confirmation_reference, pin)

        clock.advance(minutes=1)
        view = await access.verify_pin(booking.confirmation_reference, pin)
        assert view.booking_id == booking.id

    @pytest.mark.asyncio
    async def test_failures_spread_beyond_window_never_lock(
        self, access, coordinator, clock, stay_offer, booking_config
    ):
        booking = await request(coordinator, clock, stay_offer)
        for _ in range(booking_config.pin_max_attempts + 1):
            with pytest.raises(GuestAccessDeniedError, match="Access denied"):
                await access.verify_pin(booking.confirmation_reference, "wrong")
            clock.advance(minutes=booking_config.pin_lockout_minutes)


class TestStatePruning:
    @pytest.mark.asyncio
    async def test_expired_grants_dropped_on_next_request(
        self, access, coordinator, clock, stay_offer, dispatcher, sender, booking_config
    ):
        first = await request(coordinator, clock, stay_offer)
        await _token_for(access, dispatcher, sender, first)
        clock.advance(days=booking_config.access_token_ttl_days)

        await access.request_access(first.confirmation_reference, first.guest.email)
        assert len(access._grants) == 1

    @pytest.mark.asyncio
    async def test_stale_failure_records_dropped(
        self, access, coordinator, clock, stay_offer, booking_config
    ):
        booking = await request(coordinator, clock, stay_offer)
        for reference in ("BK-AAAAAA", "BK-BBBBBB"):
            with pytest.raises(GuestAccessDeniedError):
                await access.verify_pin(reference, "123456")
        assert len(access._pin_failures) == 2

        clock.advance(minutes=booking_config.pin_lockout_minutes)
        await access.verify_pin(
            booking.confirmation_reference, booking.confirmation_pin.get_secret_value()
        )
        assert access._pin_failures == {}
