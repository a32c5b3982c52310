"""Collision-free identifiers for UDP data keys and MQTT topics.

UDP devices multiplex onto shared listen ports and are told apart by the JSON
keys in each datagram, so every key must be unique across the fleet. The key
namespace is treated as global rather than per port.

Keys are opaque: a colliding candidate is regenerated from a fresh random UUID,
within a fixed attempt budget. MQTT topics are human-readable: a colliding
topic gets an incrementing ``_1``, ``_2``, ... suffix until it is free.

The device list is a snapshot supplied by the caller. Two flows allocating
from the same stale snapshot can still pick the same identifier.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Callable, Iterable

from zev_config.connection import identifier_fields
from zev_config.errors import AllocationExhausted, ConfigParseError
from zev_config.models import Device
from zev_config.presets import HTTP, MQTT, UDP

_LOGGER = logging.getLogger(__name__)

MAX_KEY_ATTEMPTS = 100

METER_KEY_SUFFIX = "_power_kwh"
CHARGER_KEY_SUFFIXES: dict[str, str] = {
    "power_key": "_power",
    "state_key": "_state",
    "user_id_key": "_user",
    "mode_key": "_mode",
}

UuidFactory = Callable[[], uuid.UUID]


def _device_identifiers(device: Device) -> dict[str, str]:
    try:
        return identifier_fields(device.config())
    except ConfigParseError as exc:
        _LOGGER.warning("Skipping %s '%s' with unreadable config: %s", device.kind, device.name, exc)
        return {}


# ---------------------------------------------------------------------------
# UDP data keys
# ---------------------------------------------------------------------------


def collect_data_keys(devices: Iterable[Device]) -> set[str]:
    """Every UDP key and HTTP power field already in use."""
    used: set[str] = set()
    for device in devices:
        if device.connection_type not in (UDP, HTTP):
            continue
        used.update(_device_identifiers(device).values())
    return used


def is_data_key_used(devices: Iterable[Device], key: str) -> bool:
    return key in collect_data_keys(devices)


def _allocate(
    used: set[str],
    make_candidate: Callable[[], dict[str, str]],
) -> dict[str, str]:
    for attempt in range(1, MAX_KEY_ATTEMPTS + 1):
        candidate = make_candidate()
        clashes = used.intersection(candidate.values())
        if not clashes:
            return candidate
        _LOGGER.debug("Key collision on attempt %d: %s", attempt, ", ".join(sorted(clashes)))
    raise AllocationExhausted(MAX_KEY_ATTEMPTS)


def generate_unique_data_key(
    devices: Iterable[Device],
    uuid_factory: UuidFactory = uuid.uuid4,
) -> str:
    """New ``{uuid}_power_kwh`` meter key not used by any device."""
    used = collect_data_keys(devices)
    keys = _allocate(used, lambda: {"data_key": f"{uuid_factory()}{METER_KEY_SUFFIX}"})
    return keys["data_key"]


def generate_unique_charger_keys(
    devices: Iterable[Device],
    uuid_factory: UuidFactory = uuid.uuid4,
) -> dict[str, str]:
    """Four charger keys sharing one random UUID, none of them in use."""
    used = collect_data_keys(devices)

    def candidate() -> dict[str, str]:
        base = str(uuid_factory())
        return {field: f"{base}{suffix}" for field, suffix in CHARGER_KEY_SUFFIXES.items()}

    return _allocate(used, candidate)


# ---------------------------------------------------------------------------
# MQTT topics
# ---------------------------------------------------------------------------


def mqtt_segment(text: str) -> str:
    """Lowercase and replace every non-alphanumeric character with ``_``."""
    return re.sub(r"[^a-z0-9]", "_", text.lower())


def build_mqtt_topic(
    name: str,
    building_name: str | None = None,
    apartment_unit: str | None = None,
) -> str:
    """Natural topic for a device before collision handling."""
    if building_name and apartment_unit:
        return f"meters/{mqtt_segment(building_name)}/{mqtt_segment(apartment_unit)}/{mqtt_segment(name)}"
    if building_name:
        return f"meters/{mqtt_segment(building_name)}/{mqtt_segment(name)}"
    return f"meters/{mqtt_segment(name)}"


def collect_mqtt_topics(devices: Iterable[Device]) -> set[str]:
    used: set[str] = set()
    for device in devices:
        if device.connection_type != MQTT:
            continue
        topic = _device_identifiers(device).get("mqtt_topic")
        if topic:
            used.add(topic)
    return used


def is_mqtt_topic_used(devices: Iterable[Device], topic: str) -> bool:
    return topic in collect_mqtt_topics(devices)


def generate_unique_mqtt_topic(
    devices: Iterable[Device],
    name: str,
    building_name: str | None = None,
    apartment_unit: str | None = None,
) -> str:
    """Natural topic, or the first free ``{topic}_{n}`` if it is taken."""
    used = collect_mqtt_topics(devices)
    topic = build_mqtt_topic(name, building_name, apartment_unit)
    candidate = topic
    counter = 1
    while candidate in used:
        candidate = f"{topic}_{counter}"
        counter += 1
    return candidate
