"""Guess areas from entity states when the hub exposes no registry.

Two sources are consulted per state: an explicit ``area`` attribute, and
failing that the leading words of the ``friendly_name`` ("Living Room Lamp 1"
gives "Living Room"). Device-ish leading words are rejected so "Sonoff Switch
1" does not become an area.
"""

from __future__ import annotations

from collections.abc import Iterable

from ha_light_bridge.models.schemas import SUPPORTED_DOMAINS, HAArea, HAEntityRegistration, HAState


AREA_NOUNS = frozenset(
    {
        "room",
        "bedroom",
        "bathroom",
        "kitchen",
        "office",
        "living",
        "dining",
        "family",
        "master",
        "guest",
        "hall",
        "hallway",
        "entrance",
        "foyer",
        "lobby",
        "garage",
        "basement",
        "attic",
        "closet",
        "storage",
        "porch",
        "patio",
        "deck",
        "balcony",
        "terrace",
    }
)

DEVICE_NAME_HINTS = (
    "lolin",
    "nodemcu",
    "esp",
    "arduino",
    "sonoff",
    "shelly",
    "zigbee",
    "zwave",
    "wifi",
    "bluetooth",
    "sensor",
    "switch",
    "light",
    "lamp",
    "bulb",
    "device",
    "module",
    "controller",
    "hub",
)

MIN_AREA_NAME_CHARS = 4


def normalize_area_id(name: str) -> str:
    return name.lower().replace(" ", "_")


def is_area_noun(word: str) -> bool:
    return word.lower() in AREA_NOUNS


def looks_like_device_name(name: str) -> bool:
    lowered = name.lower()
    return any(hint in lowered for hint in DEVICE_NAME_HINTS)


def is_supported_entity(entity_id: str) -> bool:
    return any(entity_id.startswith(f"{domain}.") for domain in SUPPORTED_DOMAINS)


def area_name_from_friendly_name(friendly_name: str) -> str | None:
    parts = friendly_name.split()
    if len(parts) < 2:
        return None

    if len(parts) >= 3 and is_area_noun(parts[1]):
        candidate = f"{parts[0]} {parts[1]}"
    else:
        candidate = parts[0]

    if len(candidate) < MIN_AREA_NAME_CHARS or looks_like_device_name(candidate):
        return None
    return candidate


def extract_area_name(state: HAState) -> str | None:
    explicit = state.attribute_str("area")
    if explicit is not None:
        return explicit

    friendly_name = state.attribute_str("friendly_name")
    if friendly_name is None:
        return None
    return area_name_from_friendly_name(friendly_name)


def extract_areas(states: Iterable[HAState]) -> list[HAArea]:
    areas: dict[str, HAArea] = {}
    for state in states:
        if not is_supported_entity(state.entity_id):
            continue
        name = extract_area_name(state)
        if name is None:
            continue
        area_id = normalize_area_id(name)
        if area_id not in areas:
            areas[area_id] = HAArea(area_id=area_id, name=name)
    return list(areas.values())


def extract_entity_registrations(states: Iterable[HAState]) -> list[HAEntityRegistration]:
    registrations: list[HAEntityRegistration] = []
    for state in states:
        if not is_supported_entity(state.entity_id):
            continue
        name = extract_area_name(state)
        registrations.append(
            HAEntityRegistration(
                entity_id=state.entity_id,
                area_id=normalize_area_id(name) if name is not None else None,
            )
        )
    return registrations
