"""Fetch and parse the fleet (buildings, occupants, devices) from the ZEV API."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from zev_config.client import ZEVClient
from zev_config.errors import ConfigParseError
from zev_config.models import (
    EQUAL,
    Building,
    Charger,
    Device,
    Meter,
    Occupant,
    SharedMeterConfig,
)


@dataclass
class Fleet:
    """Snapshot of everything the configuration core checks against."""

    buildings: list[Building] = field(default_factory=list)
    occupants: list[Occupant] = field(default_factory=list)
    meters: list[Meter] = field(default_factory=list)
    chargers: list[Charger] = field(default_factory=list)
    shared_meters: list[SharedMeterConfig] = field(default_factory=list)

    @property
    def devices(self) -> list[Device]:
        return [*self.meters, *self.chargers]

    def building(self, building_id: int) -> Building | None:
        return next((b for b in self.buildings if b.id == building_id), None)

    def active_occupant_ids(self, building_id: int) -> list[int]:
        """Active occupants of a building, in id order."""
        return sorted(
            o.id for o in self.occupants if o.building_id == building_id and o.is_active
        )


def _parse_building(raw: dict[str, Any]) -> Building:
    return Building(id=raw["id"], name=raw.get("name", ""), is_group=bool(raw.get("is_group")))


def _parse_occupant(raw: dict[str, Any]) -> Occupant:
    return Occupant(
        id=raw["id"],
        first_name=raw.get("first_name", ""),
        last_name=raw.get("last_name", ""),
        building_id=raw.get("building_id"),
        apartment_unit=raw.get("apartment_unit") or None,
        is_active=raw.get("is_active", True),
    )


def _parse_meter(raw: dict[str, Any]) -> Meter:
    return Meter(
        id=raw["id"],
        name=raw.get("name", ""),
        building_id=raw.get("building_id", 0),
        connection_type=raw.get("connection_type", ""),
        connection_config=raw.get("connection_config") or "{}",
        meter_type=raw.get("meter_type", "total_meter"),
        user_id=raw.get("user_id"),
        apartment_unit=raw.get("apartment_unit") or None,
        is_active=raw.get("is_active", True),
    )


def _parse_charger(raw: dict[str, Any]) -> Charger:
    return Charger(
        id=raw["id"],
        name=raw.get("name", ""),
        building_id=raw.get("building_id", 0),
        connection_type=raw.get("connection_type", ""),
        connection_config=raw.get("connection_config") or "{}",
        preset=raw.get("preset") or "generic",
        is_active=raw.get("is_active", True),
    )


def _parse_custom_splits(raw: Any) -> dict[int, float]:
    """Occupant id keys arrive as strings in JSON objects."""
    if not raw:
        return {}
    try:
        if isinstance(raw, str):
            raw = json.loads(raw)
        return {int(k): float(v) for k, v in raw.items()}
    except (ValueError, TypeError, AttributeError) as exc:
        raise ConfigParseError(f"Invalid custom_splits {raw!r}: {exc}") from None


def _parse_shared_meter(raw: dict[str, Any]) -> SharedMeterConfig:
    return SharedMeterConfig(
        id=raw.get("id"),
        meter_id=raw["meter_id"],
        building_id=raw["building_id"],
        meter_name=raw.get("meter_name", ""),
        split_type=raw.get("split_type") or EQUAL,
        unit_price=float(raw.get("unit_price") or 0.0),
        custom_splits=_parse_custom_splits(raw.get("custom_splits")),
    )


async def fetch_devices(client: ZEVClient) -> tuple[list[Meter], list[Charger]]:
    """Fetch meters and chargers."""
    raw_meters = await client.get("/meters") or []
    raw_chargers = await client.get("/chargers") or []
    return [_parse_meter(m) for m in raw_meters], [_parse_charger(c) for c in raw_chargers]


async def fetch_fleet(client: ZEVClient) -> Fleet:
    """Fetch buildings, occupants, devices and shared meter configs."""
    meters, chargers = await fetch_devices(client)
    raw_buildings = await client.get("/buildings") or []
    raw_users = await client.get("/users") or []
    raw_shared = await client.get("/shared-meters") or []
    return Fleet(
        buildings=[_parse_building(b) for b in raw_buildings],
        occupants=[_parse_occupant(u) for u in raw_users],
        meters=meters,
        chargers=chargers,
        shared_meters=[_parse_shared_meter(s) for s in raw_shared],
    )
