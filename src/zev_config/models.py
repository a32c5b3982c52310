"""Data models for buildings, occupants, devices and shared meters."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from zev_config.connection import CHARGER, METER, ConnectionConfig, parse_config
from zev_config.presets import get_preset

EQUAL = "equal"
CUSTOM = "custom"
SPLIT_TYPES = (EQUAL, CUSTOM)


@dataclass
class Building:
    """A building (or complex) managed by the ZEV."""

    id: int
    name: str
    is_group: bool = False


@dataclass
class Occupant:
    """A resident user billed for a share of the building's consumption."""

    id: int
    first_name: str
    last_name: str
    building_id: int | None = None
    apartment_unit: str | None = None
    is_active: bool = True

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        if self.apartment_unit:
            name += f" (Apt {self.apartment_unit})"
        return name or f"#{self.id}"


@dataclass
class Meter:
    """An energy meter."""

    id: int | None
    name: str
    building_id: int
    connection_type: str
    connection_config: str | dict[str, Any] = "{}"  # as stored by the API
    meter_type: str = "total_meter"
    user_id: int | None = None
    apartment_unit: str | None = None
    is_active: bool = True

    kind = METER

    def config(self) -> ConnectionConfig:
        """Decoded connection configuration (raises ConfigParseError)."""
        return parse_config(self.connection_type, self.connection_config, METER)


@dataclass
class Charger:
    """An EV charger."""

    id: int | None
    name: str
    building_id: int
    connection_type: str
    connection_config: str | dict[str, Any] = "{}"  # as stored by the API
    preset: str = "generic"
    is_active: bool = True

    kind = CHARGER

    @property
    def supports_priority(self) -> bool:
        return get_preset(self.preset).supports_priority

    def config(self) -> ConnectionConfig:
        """Decoded connection configuration (raises ConfigParseError)."""
        return parse_config(
            self.connection_type, self.connection_config, CHARGER, get_preset(self.preset)
        )


Device = Meter | Charger


@dataclass
class SharedMeterConfig:
    """Cost split of a shared meter among a building's occupants."""

    id: int | None
    meter_id: int
    building_id: int
    meter_name: str = ""
    split_type: str = EQUAL
    unit_price: float = 0.0
    custom_splits: dict[int, float] = field(default_factory=dict)  # occupant id -> percent
