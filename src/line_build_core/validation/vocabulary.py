"""Controlled equipment vocabulary used to gate semantic evaluation locally."""

from __future__ import annotations

from typing import Final

KNOWN_EQUIPMENT_CAPABILITIES: Final[tuple[str, ...]] = (
    "waterbath",
    "turbo",
    "fryer",
    "oven",
    "microwave",
    "hot_hold_wells",
    "grill",
    "flat_top",
    "steamer",
    "salamander",
)

# Consulted before the generic substring pass: "speed oven" is turbo, not oven.
EQUIPMENT_ALIASES: Final[tuple[tuple[str, str], ...]] = (
    ("deep fryer", "fryer"),
    ("deep-fryer", "fryer"),
    ("convection oven", "oven"),
    ("combi oven", "oven"),
    ("flat-top", "flat_top"),
    ("flat top", "flat_top"),
    ("flattop", "flat_top"),
    ("griddle", "flat_top"),
    ("char grill", "grill"),
    ("chargrill", "grill"),
    ("gas grill", "grill"),
    ("sous vide", "waterbath"),
    ("water bath", "waterbath"),
    ("turbo chef", "turbo"),
    ("turbochef", "turbo"),
    ("speed oven", "turbo"),
    ("rapid cook", "turbo"),
    ("holding cabinet", "hot_hold_wells"),
    ("heat lamp", "hot_hold_wells"),
    ("warming drawer", "hot_hold_wells"),
)


def match_equipment_to_capability(raw: str | None) -> str | None:
    """Map free-form equipment text to a canonical capability, or ``None``.

    Order: exact (case-insensitive), alias substring, capability substring.
    Total and side-effect free.
    """

    if not isinstance(raw, str):
        return None
    normalized = raw.strip().lower()
    if not normalized:
        return None

    if normalized in KNOWN_EQUIPMENT_CAPABILITIES:
        return normalized

    for alias, capability in EQUIPMENT_ALIASES:
        if alias in normalized:
            return capability

    for capability in KNOWN_EQUIPMENT_CAPABILITIES:
        if capability in normalized:
            return capability

    return None


__all__ = [
    "EQUIPMENT_ALIASES",
    "KNOWN_EQUIPMENT_CAPABILITIES",
    "match_equipment_to_capability",
]
