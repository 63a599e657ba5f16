"""
Mock offer catalog.

Offers are published and edited by gyms outside the booking core; the
core only reads them. In production this would be backed by the
listings database.
"""

import logging
from typing import Iterable, Optional

from gymbook.errors import ValidationError
from gymbook.schemas.offer_schema import BookingMode, Offer, OfferKind, RateTable

logger = logging.getLogger(__name__)


class OfferCatalog:
    """Read access to offers by id."""

    def __init__(self, offers: Optional[Iterable[Offer]] = None) -> None:
        self._offers: dict[str, Offer] = {}
        for offer in offers or ():
            self.publish(offer)

    def publish(self, offer: Offer) -> None:
        """Add or replace an offer. Existing bookings keep their snapshot."""
        self._offers[offer.id] = offer
        logger.debug("Published offer %s (%s)", offer.id, offer.kind.value)

    def get(self, offer_id: str) -> Offer:
        offer = self._offers.get(offer_id)
        if offer is None:
            raise ValidationError(f"Unknown offer '{offer_id}'")
        return offer

    def all(self) -> list[Offer]:
        return list(self._offers.values())

    def __contains__(self, offer_id: object) -> bool:
        return offer_id in self._offers

    def __len__(self) -> int:
        return len(self._offers)


def sample_catalog() -> OfferCatalog:
    """A small catalog of Thai gym offers for demos and local runs."""
    return OfferCatalog([
        Offer(
            id="rawai-drop-in",
            name="Drop-in training",
            gym_name="Rawai Lion Gym",
            host_email="host@rawailion.example",
            kind=OfferKind.TRAINING,
            rates=RateTable(daily=600),
            currency="THB",
            booking_mode=BookingMode.INSTANT,
        ),
        Offer(
            id="rawai-camp-stay",
            name="Training camp with bungalow",
            gym_name="Rawai Lion Gym",
            host_email="host@rawailion.example",
            kind=OfferKind.TRAINING_ACCOMMODATION,
            rates=RateTable(weekly=9500, monthly=32000),
            currency="THB",
            min_stay_days=7,
            capacity=12,
            amenities={"air_conditioning": True, "laundry": True},
        ),
        Offer(
            id="andaman-all-in",
            name="All-inclusive fight camp",
            gym_name="Andaman Fight Club",
            host_email="camp@andamanfight.example",
            kind=OfferKind.ALL_INCLUSIVE,
            rates=RateTable(weekly=45000, monthly=150000),
            currency="USD",
            min_stay_days=14,
            amenities={
                "airport_transfer": True,
                "breakfast": True,
                "lunch": True,
                "dinner": True,
                "private_lessons": True,
            },
        ),
    ])
