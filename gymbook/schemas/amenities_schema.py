"""
Typed amenity and meal-plan configuration for offers.

Known keys live in AMENITY_REGISTRY with their code-defined defaults.
Stored selections are merged onto the registry so that a key introduced
by a later deploy gets its default without touching choices a gym has
already saved.
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AmenityDefinition:
    """A single known amenity switch."""

    key: str
    label: str
    default: bool = False
    group: str = "facility"


AMENITY_REGISTRY: tuple[AmenityDefinition, ...] = (
    AmenityDefinition("airport_transfer", "Airport transfer"),
    AmenityDefinition("towels", "Towels provided", default=True),
    AmenityDefinition("wifi", "Wi-Fi", default=True),
    AmenityDefinition("air_conditioning", "Air conditioning"),
    AmenityDefinition("laundry", "Laundry service"),
    AmenityDefinition("sauna", "Sauna"),
    AmenityDefinition("ice_bath", "Ice bath"),
    AmenityDefinition("private_lessons", "Private lessons", group="training"),
    AmenityDefinition("fight_arrangement", "Fight arrangement", group="training"),
    AmenityDefinition("breakfast", "Breakfast", group="meals"),
    AmenityDefinition("lunch", "Lunch", group="meals"),
    AmenityDefinition("dinner", "Dinner", group="meals"),
)

_REGISTRY_BY_KEY: dict[str, AmenityDefinition] = {d.key: d for d in AMENITY_REGISTRY}


def known_amenity_keys() -> list[str]:
    return [d.key for d in AMENITY_REGISTRY]


def default_amenities() -> dict[str, bool]:
    """Code-defined defaults for every registered key."""
    return {d.key: d.default for d in AMENITY_REGISTRY}


def merge_amenities(stored: Mapping[str, Any] | None) -> dict[str, bool]:
    """
    Merge stored amenity choices onto the registry defaults.

    Precedence: a stored value for a known key always wins; a registered
    key missing from storage takes its default; unknown stored keys are
    dropped with a warning. Non-boolean stored values are rejected.
    """
    merged = default_amenities()
    for key, value in (stored or {}).items():
        if key not in _REGISTRY_BY_KEY:
            logger.warning("Dropping unknown amenity key '%s'", key)
            continue
        if not isinstance(value, bool):
            raise ValueError(f"Amenity '{key}' must be true or false, got {value!r}")
        merged[key] = value
    return merged


def describe_amenities(selection: Mapping[str, bool], group: str | None = None) -> list[str]:
    """Return display labels for enabled amenities, in registry order."""
    return [
        d.label
        for d in AMENITY_REGISTRY
        if selection.get(d.key) and (group is None or d.group == group)
    ]
