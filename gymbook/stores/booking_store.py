"""
Booking persistence.

The coordinator talks to a BookingStore; the in-memory implementation is
used by the demo and tests. Writes are compare-and-swap on the booking's
``version``, so a transition computed from a stale read can never
overwrite a concurrent one.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, Optional

from gymbook.errors import BookingNotFoundError, StaleTransitionError, ValidationError
from gymbook.lifecycle.state_machine import BookingState
from gymbook.schemas.booking_schema import Booking

logger = logging.getLogger(__name__)


class BookingStore(ABC):
    """Storage contract for bookings."""

    @abstractmethod
    async def insert(self, booking: Booking) -> None:
        """Persist a new booking. Rejects duplicate ids and references."""

    @abstractmethod
    async def get(self, booking_id: str) -> Booking:
        """Raises BookingNotFoundError if absent."""

    @abstractmethod
    async def get_by_reference(self, reference: str) -> Optional[Booking]:
        ...

    @abstractmethod
    async def save(self, booking: Booking, expected_version: int) -> None:
        """Replace a booking if its stored version is still ``expected_version``.

        Raises:
            StaleTransitionError: Another writer committed first.
        """

    @abstractmethod
    async def list_in_states(self, states: Iterable[BookingState]) -> list[Booking]:
        ...

    @abstractmethod
    async def find_overlapping(
        self,
        offer_id: str,
        start: date,
        end: date,
        states: Iterable[BookingState],
        exclude_id: Optional[str] = None,
    ) -> list[Booking]:
        """Bookings of ``offer_id`` in ``states`` whose nights intersect [start, end)."""

    async def reference_exists(self, reference: str) -> bool:
        return await self.get_by_reference(reference) is not None


class InMemoryBookingStore(BookingStore):
    """Dict-backed store."""

    def __init__(self) -> None:
        self._bookings: dict[str, Booking] = {}
        self._by_reference: dict[str, str] = {}

    async def insert(self, booking: Booking) -> None:
        if booking.id in self._bookings:
            raise ValidationError(f"Booking {booking.id} already exists")
        if booking.confirmation_reference in self._by_reference:
            raise ValidationError(
                f"Confirmation reference {booking.confirmation_reference} is taken"
            )
        self._bookings[booking.id] = booking
        self._by_reference[booking.confirmation_reference] = booking.id
        logger.debug("Stored booking %s", booking.id)

    async def get(self, booking_id: str) -> Booking:
        booking = self._bookings.get(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    async def get_by_reference(self, reference: str) -> Optional[Booking]:
        booking_id = self._by_reference.get(reference.strip().upper())
        return self._bookings.get(booking_id) if booking_id else None

    async def save(self, booking: Booking, expected_version: int) -> None:
        current = await self.get(booking.id)
        if current.version != expected_version:
            raise StaleTransitionError(
                current.state.value,
                booking.state.value,
                f"Booking {booking.id} changed (version {current.version}, "
                f"expected {expected_version})",
            )
        self._bookings[booking.id] = booking

    async def list_in_states(self, states: Iterable[BookingState]) -> list[Booking]:
        wanted = set(states)
        return [b for b in self._bookings.values() if b.state in wanted]

    async def find_overlapping(
        self,
        offer_id: str,
        start: date,
        end: date,
        states: Iterable[BookingState],
        exclude_id: Optional[str] = None,
    ) -> list[Booking]:
        wanted = set(states)
        return [
            b
            for b in self._bookings.values()
            if b.offer_id == offer_id
            and b.state in wanted
            and b.id != exclude_id
            and b.start_date < end
            and start < b.end_date
        ]

    def __len__(self) -> int:
        return len(self._bookings)
