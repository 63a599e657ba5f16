"""
Offline console demo: walks bookings through their lifecycle without any API keys.

Uses the real rate engine, state machine and coordinator with the
in-memory store, payment authority and a console notification sender.
No network calls. Designed for live demo walkthroughs.

Usage:
    python console_demo.py
    python console_demo.py --scenario instant
    python console_demo.py --scenario expiry
"""

import argparse
import asyncio
from datetime import date, datetime, timedelta, timezone

from gymbook.access.guest_access import GuestAccess
from gymbook.config import settings
from gymbook.errors import BookingError, MinimumStayNotMetError
from gymbook.lifecycle.coordinator import BookingCoordinator
from gymbook.notifications.dispatcher import NotificationDispatcher
from gymbook.notifications.schema import Notification, NotificationKind
from gymbook.notifications.senders import NotificationSender
from gymbook.payments.in_memory import InMemoryPaymentAuthority
from gymbook.service import BookingService
from gymbook.stores.booking_store import InMemoryBookingStore
from gymbook.stores.offer_catalog import sample_catalog

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

GUEST = {
    "guest_name": "Somchai Jaidee",
    "guest_email": "somchai@example.com",
    "guest_phone": "+66 81 234 5678",
}


class DemoClock:
    """Wall clock that the demo can fast-forward."""

    def __init__(self) -> None:
        self.now = datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


class ConsoleSender(NotificationSender):
    """Prints who would receive what. The PIN is never part of a message."""

    async def send(self, notification: Notification) -> None:
        print(
            f"{BLUE}  [mail -> {notification.audience.value}] "
            f"{notification.subject}{RESET}"
        )


class ConsoleSession:
    """Runs scripted booking scenarios in the terminal."""

    SCENARIOS = ("request", "instant", "short", "expiry", "access")

    def __init__(self) -> None:
        self.clock = DemoClock()
        self.catalog = sample_catalog()
        self.store = InMemoryBookingStore()
        self.authority = InMemoryPaymentAuthority(
            clock=self.clock,
            hold_lifetime=timedelta(hours=settings.payment.hold_lifetime_hours),
        )
        self.dispatcher = NotificationDispatcher(ConsoleSender(), sleep=self._no_wait)
        coordinator = BookingCoordinator(
            self.store, self.authority, self.dispatcher, config=settings.booking, clock=self.clock
        )
        access = GuestAccess(self.store, self.dispatcher, config=settings.booking, clock=self.clock)
        self.service = BookingService(
            self.catalog, coordinator, access, payment_config=settings.payment, sleep=self._no_wait
        )

    @staticmethod
    async def _no_wait(_: float) -> None:
        return None

    def say(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[gymbook]{RESET} {GREEN}{text}{RESET}")

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _dates(self, days: int, lead: int = 14) -> tuple[date, date]:
        start = self.clock().date() + timedelta(days=lead)
        return start, start + timedelta(days=days)

    async def _flush(self) -> None:
        await self.dispatcher.drain()

    # ------------------------------------------------------------------ #
    # Scenarios
    # ------------------------------------------------------------------ #

    async def _request_to_book(self) -> None:
        start, end = self._dates(40)
        quote = self.service.quote("rawai-camp-stay", start, end)
        self.say(f"Quote for 40 days: {quote.price.display} ({quote.price.label})")

        created = await self.service.create_booking(
            {"offer_id": "rawai-camp-stay", "start_date": start, "end_date": end, **GUEST}
        )
        self.system_log(f"Booking {created.confirmation_reference} requested")
        await self._flush()

        status = await self.service.accept(created.booking_id)
        self.say(status.message)
        hold = await self.service.create_hold(created.booking_id)
        self.system_log(f"Hold created, client secret issued ({len(hold.client_secret or '')} chars)")

        booking = await self.service.coordinator.get(created.booking_id)
        self.authority.authenticate(booking.authorization_ref)
        status = await self.service.confirm_authorization(created.booking_id, booking.authorization_ref)
        self.say(status.message)
        # The webhook and the redirect both report the authorization.
        await self.service.confirm_authorization(created.booking_id, booking.authorization_ref)
        self.system_log("Duplicate authorization ignored")

        status = await self.service.capture(created.booking_id)
        self.say(status.message)
        await self.service.capture(created.booking_id)
        self.system_log(f"Second capture was a no-op; processor captures: {self.authority.calls['capture']}")
        await self._flush()

    async def _instant(self) -> None:
        start, end = self._dates(5)
        created = await self.service.create_booking(
            {"offer_id": "rawai-drop-in", "start_date": start, "end_date": end, **GUEST}
        )
        self.system_log(f"Instant booking {created.confirmation_reference}, no host approval")
        self.authority.fail_next("create_hold", after_effect=True)
        hold = await self.service.create_hold(created.booking_id)
        self.system_log("First hold response was lost; retry replayed the same hold")
        self.say(f"Status: {hold.status.value}")
        await self._flush()

    async def _short_stay(self) -> None:
        start, end = self._dates(3)
        quote = self.service.quote("rawai-camp-stay", start, end)
        self.say(
            f"3 days: {quote.price.display}, bookable={quote.bookable}, "
            f"from {quote.anchor.display if quote.anchor else '-'} for the minimum stay"
        )
        try:
            await self.service.create_booking(
                {"offer_id": "rawai-camp-stay", "start_date": start, "end_date": end, **GUEST}
            )
        except MinimumStayNotMetError as exc:
            print(f"{YELLOW}  Rejected: {exc}{RESET}")

    async def _expiry(self) -> None:
        start, end = self._dates(7)
        created = await self.service.create_booking(
            {"offer_id": "rawai-drop-in", "start_date": start, "end_date": end, **GUEST}
        )
        await self.service.create_hold(created.booking_id)
        self.system_log("Guest never authorizes; fast-forwarding past the hold lifetime")
        self.clock.advance(timedelta(hours=settings.payment.hold_lifetime_hours, minutes=1))
        report = await self.service.release_expired_holds()
        self.say(f"Sweep released {len(report.released)} hold(s)")
        view = await self.service.get_booking(created.booking_id)
        self.say(f"Booking {view.confirmation_reference} is {view.state.value}")
        await self._flush()

    async def _access(self) -> None:
        start, end = self._dates(5)
        created = await self.service.create_booking(
            {"offer_id": "rawai-drop-in", "start_date": start, "end_date": end, **GUEST}
        )
        await self.service.request_access(created.confirmation_reference, GUEST["guest_email"])
        await self.service.request_access(created.confirmation_reference, "someone@else.example")
        await self._flush()
        self.system_log("Only the guest's inbox received an access code")
        sent = self.dispatcher.stats["delivered"]
        self.system_log(f"Messages delivered so far: {sent}")

    async def _play(self, name: str) -> None:
        handler = {
            "request": self._request_to_book,
            "instant": self._instant,
            "short": self._short_stay,
            "expiry": self._expiry,
            "access": self._access,
        }[name]
        print(f"\n{BOLD}=== {name} ==={RESET}")
        try:
            await handler()
        except BookingError as exc:
            print(f"{RED}  {type(exc).__name__}: {exc}{RESET}")

    def run_scenario(self, name: str) -> None:
        asyncio.run(self._run([name]))

    def run(self) -> None:
        asyncio.run(self._run(list(self.SCENARIOS)))

    async def _run(self, names: list[str]) -> None:
        for name in names:
            await self._play(name)
        await self.dispatcher.close()
        kinds = sorted({k.value for k in NotificationKind})
        self.system_log(f"Notification kinds available: {', '.join(kinds)}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Offline booking lifecycle demo")
    parser.add_argument(
        "--scenario",
        choices=ConsoleSession.SCENARIOS,
        default=None,
        help="Play a single scenario instead of all of them",
    )
    args = parser.parse_args()

    session = ConsoleSession()
    if args.scenario:
        session.run_scenario(args.scenario)
    else:
        session.run()


if __name__ == "__main__":
    main()
