from gymbook.stores.booking_store import BookingStore, InMemoryBookingStore
from gymbook.stores.offer_catalog import OfferCatalog, sample_catalog

__all__ = ["BookingStore", "InMemoryBookingStore", "OfferCatalog", "sample_catalog"]
