"""Meter and charger commands: build, validate and save device configurations."""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from typing import Any

import click

from zev_config.allocator import (
    collect_data_keys,
    collect_mqtt_topics,
    generate_unique_charger_keys,
    generate_unique_data_key,
    generate_unique_mqtt_topic,
)
from zev_config.connection import (
    CHARGER,
    KIND_CONNECTION_TYPES,
    METER,
    ConnectionConfig,
    HttpConfig,
    MqttConfig,
    UdpConfig,
    apply_preset,
    identifier_fields,
    new_config,
    serialize_config,
    switch_connection_type,
    update_config,
    validate_config,
)
from zev_config.context import Context, pass_ctx, run_async
from zev_config.errors import MissingField
from zev_config.models import Device, Meter
from zev_config.output import print_dry_run, print_info, print_ok, print_warn, render_json, render_presets
from zev_config.presets import DEFAULT_PRESET, MQTT, PRESETS, UDP, get_preset
from zev_config.registry import fetch_fleet

METER_TYPES = ("total_meter", "solar_meter", "apartment_meter", "heating_meter", "other")


@dataclass
class DeviceDraft:
    """Meter or charger being created or edited.

    UDP keys are allocated once, when a new draft is created, and reapplied if
    the draft is switched to UDP later. Existing devices are never re-keyed.
    """

    kind: str
    config: ConnectionConfig
    name: str = ""
    building_id: int | None = None
    building_name: str | None = None
    apartment_unit: str | None = None
    user_id: int | None = None
    meter_type: str = "total_meter"
    preset: str = DEFAULT_PRESET.name
    device_id: int | None = None
    fleet: list[Device] = field(default_factory=list)
    reserved_keys: dict[str, str] = field(default_factory=dict)

    @property
    def is_new(self) -> bool:
        return self.device_id is None

    @property
    def connection_type(self) -> str:
        return self.config.connection_type

    @classmethod
    def create(
        cls,
        kind: str,
        fleet: list[Device],
        connection_type: str = UDP,
        preset: str | None = None,
        name: str = "",
        building_id: int | None = None,
        building_name: str | None = None,
        apartment_unit: str | None = None,
    ) -> DeviceDraft:
        """New device draft with freshly allocated identifiers."""
        resolved = get_preset(preset)
        if kind == METER:
            reserved = {"data_key": generate_unique_data_key(fleet)}
        else:
            reserved = generate_unique_charger_keys(fleet)
        draft = cls(
            kind=kind,
            config=new_config(UDP, kind, resolved),
            name=name,
            building_id=building_id,
            building_name=building_name,
            apartment_unit=apartment_unit,
            preset=resolved.name,
            fleet=list(fleet),
            reserved_keys=reserved,
        )
        draft.config = draft._with_reserved_keys(draft.config)
        draft.change_connection_type(connection_type)
        draft.change_preset(resolved.name)
        return draft

    @classmethod
    def edit(cls, device: Device, fleet: list[Device]) -> DeviceDraft:
        """Draft for an existing device; its stored identifiers are kept as-is."""
        draft = cls(
            kind=device.kind,
            config=device.config(),
            name=device.name,
            building_id=device.building_id,
            device_id=device.id,
            fleet=[d for d in fleet if not (d.kind == device.kind and d.id == device.id)],
        )
        if isinstance(device, Meter):
            draft.apartment_unit = device.apartment_unit
            draft.user_id = device.user_id
            draft.meter_type = device.meter_type
        else:
            draft.preset = get_preset(device.preset).name
        return draft

    def _with_reserved_keys(self, config: ConnectionConfig) -> ConnectionConfig:
        if isinstance(config, UdpConfig) and self.reserved_keys:
            empty = {k: v for k, v in self.reserved_keys.items() if not config.signals.get(k)}
            return config.with_keys(empty) if empty else config
        if isinstance(config, HttpConfig) and self.kind == METER and not config.power_field:
            key = self.reserved_keys.get("data_key")
            if key:
                return dataclasses.replace(config, power_field=key)
        return config

    def _allocate_topic(self) -> None:
        if not (self.is_new and isinstance(self.config, MqttConfig) and self.name):
            return
        topic = generate_unique_mqtt_topic(
            self.fleet, self.name, self.building_name, self.apartment_unit
        )
        self.config = dataclasses.replace(self.config, topic=topic)

    def change_connection_type(self, connection_type: str) -> None:
        self.config = switch_connection_type(self.config, connection_type, get_preset(self.preset))
        self.config = self._with_reserved_keys(self.config)
        if connection_type == MQTT:
            self._allocate_topic()

    def change_preset(self, preset_name: str) -> None:
        """Apply a preset's value mappings, keeping all wiring fields.

        If the preset cannot be wired with the current connection type, the
        draft moves to the first type the preset supports.
        """
        preset = get_preset(preset_name)
        self.preset = preset.name
        allowed = [
            t for t in preset.supported_connection_types if t in KIND_CONNECTION_TYPES[self.kind]
        ]
        if allowed and self.connection_type not in allowed:
            self.change_connection_type(allowed[0])
        self.config = apply_preset(self.config, preset)

    def change_name(self, name: str) -> None:
        self.name = name
        self._allocate_topic()

    def set_fields(self, **changes: Any) -> None:
        """Operator edits by persisted field name."""
        if changes:
            self.config = update_config(self.config, **changes)

    def identifier_conflicts(self) -> list[str]:
        """Identifiers in this draft already used by another device."""
        ids = identifier_fields(self.config)
        if not ids:
            return []
        if isinstance(self.config, MqttConfig):
            used = collect_mqtt_topics(self.fleet)
        else:
            used = collect_data_keys(self.fleet)
        return sorted(v for v in ids.values() if v in used)

    def validate(self) -> None:
        if not self.name.strip():
            raise MissingField("name")
        if not self.building_id:
            raise MissingField("building_id")
        validate_config(self.config)

    def to_payload(self) -> dict[str, Any]:
        """Validated payload for the meters/chargers API."""
        self.validate()
        payload: dict[str, Any] = {
            "name": self.name,
            "building_id": self.building_id,
            "connection_type": self.connection_type,
            "connection_config": serialize_config(self.config),
            "is_active": True,
        }
        if self.kind == METER:
            payload["meter_type"] = self.meter_type
            payload["user_id"] = self.user_id
            payload["apartment_unit"] = self.apartment_unit or ""
        else:
            preset = get_preset(self.preset)
            payload["preset"] = preset.name
            payload["brand"] = preset.name
            payload["supports_priority"] = preset.supports_priority
        return payload


def _parse_overrides(values: tuple[str, ...]) -> dict[str, str]:
    """Parse repeated ``--set field=value`` options."""
    overrides: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected FIELD=VALUE, got '{item}'", param_hint="--set")
        overrides[key.strip()] = value
    return overrides


async def _add_device(
    ctx: Context,
    kind: str,
    name: str,
    building_id: int,
    connection_type: str,
    overrides: dict[str, str],
    preset: str | None = None,
    meter_type: str = "total_meter",
    apartment_unit: str | None = None,
    user_id: int | None = None,
) -> None:
    async with ctx.client() as client:
        fleet = await fetch_fleet(client)

        building = fleet.building(building_id)
        if building is None:
            raise click.ClickException(f"Building {building_id} not found")

        if user_id is not None and not apartment_unit:
            occupant = next((o for o in fleet.occupants if o.id == user_id), None)
            apartment_unit = occupant.apartment_unit if occupant else None

        draft = DeviceDraft.create(
            kind,
            fleet.devices,
            connection_type=connection_type,
            preset=preset,
            name=name,
            building_id=building_id,
            building_name=building.name,
            apartment_unit=apartment_unit,
        )
        draft.meter_type = meter_type
        draft.user_id = user_id
        draft.set_fields(**overrides)

        for ident in draft.identifier_conflicts():
            print_warn(f"'{ident}' is already used by another device")

        payload = draft.to_payload()
        print_info(f"{kind.capitalize()} '{name}' in {building.name} via {draft.connection_type}")
        render_json(payload)

        if ctx.dry_run:
            print_dry_run(f"Would create {kind} (use without --dry-run to apply)")
            return

        result = await client.post(f"/{kind}s", payload)
        new_id = result.get("id") if isinstance(result, dict) else None
        print_ok(f"Created {kind} '{name}'" + (f" (id {new_id})" if new_id else ""))


@click.group()
def meter() -> None:
    """Manage meters."""


@meter.command("add")
@click.argument("name")
@click.option("--building", "building_id", type=int, required=True, help="Building id")
@click.option(
    "--connection-type",
    type=click.Choice(KIND_CONNECTION_TYPES[METER]),
    default=UDP,
    show_default=True,
)
@click.option("--meter-type", type=click.Choice(METER_TYPES), default="total_meter", show_default=True)
@click.option("--apartment-unit", default=None, help="Apartment unit (used in MQTT topics)")
@click.option("--user-id", type=int, default=None, help="Occupant the meter belongs to")
@click.option("--set", "overrides", multiple=True, metavar="FIELD=VALUE", help="Set a connection field")
@pass_ctx
def meter_add(
    ctx: Context,
    name: str,
    building_id: int,
    connection_type: str,
    meter_type: str,
    apartment_unit: str | None,
    user_id: int | None,
    overrides: tuple[str, ...],
) -> None:
    """Create a meter with a collision-free UDP key or MQTT topic."""
    run_async(_add_device(
        ctx, METER, name, building_id, connection_type, _parse_overrides(overrides),
        meter_type=meter_type, apartment_unit=apartment_unit, user_id=user_id,
    ))


@click.group()
def charger() -> None:
    """Manage EV chargers."""


@charger.command("add")
@click.argument("name")
@click.option("--building", "building_id", type=int, required=True, help="Building id")
@click.option("--preset", type=click.Choice(sorted(PRESETS)), default=DEFAULT_PRESET.name, show_default=True)
@click.option(
    "--connection-type",
    type=click.Choice(KIND_CONNECTION_TYPES[CHARGER]),
    default=UDP,
    show_default=True,
)
@click.option("--set", "overrides", multiple=True, metavar="FIELD=VALUE", help="Set a connection field")
@pass_ctx
def charger_add(
    ctx: Context,
    name: str,
    building_id: int,
    preset: str,
    connection_type: str,
    overrides: tuple[str, ...],
) -> None:
    """Create a charger with collision-free UDP keys and preset value mappings."""
    run_async(_add_device(
        ctx, CHARGER, name, building_id, connection_type, _parse_overrides(overrides),
        preset=preset,
    ))


@click.command("presets")
def presets() -> None:
    """List device presets and their default value mappings."""
    render_presets(list(PRESETS.values()))
