"""Audit command: identifier collisions and incomplete configurations."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import asdict, dataclass, field

import click

from zev_config.connection import identifier_fields, validate_config
from zev_config.context import Context, pass_ctx, run_async
from zev_config.errors import ConfigParseError, ValidationError
from zev_config.models import Device
from zev_config.output import print_info, render_audit, render_json
from zev_config.presets import MQTT
from zev_config.registry import Fleet, fetch_fleet
from zev_config.splits import eligible_shared_meters, validate_split


@dataclass
class IdentifierCollision:
    """An identifier claimed by more than one device."""

    identifier: str
    transport: str
    devices: list[str] = field(default_factory=list)


@dataclass
class ConfigProblem:
    device: str
    message: str


@dataclass
class AuditReport:
    collisions: list[IdentifierCollision] = field(default_factory=list)
    problems: list[ConfigProblem] = field(default_factory=list)
    device_count: int = 0

    @property
    def ok(self) -> bool:
        return not self.collisions and not self.problems


def _label(device: Device) -> str:
    return f"{device.kind} #{device.id} '{device.name}'"


def find_collisions(devices: list[Device]) -> list[IdentifierCollision]:
    """Identifiers used by two or more devices.

    UDP keys and HTTP power fields share one namespace; MQTT topics another.
    """
    owners: dict[tuple[str, str], list[str]] = defaultdict(list)
    for device in devices:
        try:
            ids = identifier_fields(device.config())
        except ConfigParseError:
            continue
        transport = "mqtt" if device.connection_type == MQTT else "udp/http"
        label = _label(device)
        for ident in set(ids.values()):
            owners[(transport, ident)].append(label)

    return [
        IdentifierCollision(identifier=ident, transport=transport, devices=labels)
        for (transport, ident), labels in sorted(owners.items())
        if len(labels) > 1
    ]


def _device_problems(devices: list[Device]) -> list[ConfigProblem]:
    problems = []
    for device in devices:
        try:
            validate_config(device.config())
        except (ConfigParseError, ValidationError) as exc:
            problems.append(ConfigProblem(_label(device), str(exc)))
    return problems


def _shared_meter_problems(fleet: Fleet) -> list[ConfigProblem]:
    problems = []
    eligible = {m.id for m in eligible_shared_meters(fleet.meters)}
    for config in fleet.shared_meters:
        label = f"shared meter '{config.meter_name or config.meter_id}'"
        building = fleet.building(config.building_id)
        if building is not None and building.is_group:
            problems.append(ConfigProblem(label, "assigned to a building group instead of a building"))
        if config.meter_id not in eligible:
            problems.append(ConfigProblem(label, "meter is not a building-level heating/other meter"))
        occupant_ids = fleet.active_occupant_ids(config.building_id)
        try:
            validate_split(config.split_type, occupant_ids, config.custom_splits)
        except ValidationError as exc:
            problems.append(ConfigProblem(label, str(exc)))
    return problems


def build_audit_report(fleet: Fleet) -> AuditReport:
    devices = fleet.devices
    return AuditReport(
        collisions=find_collisions(devices),
        problems=_device_problems(devices) + _shared_meter_problems(fleet),
        device_count=len(devices),
    )


@click.command()
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    help="Output format",
)
@pass_ctx
def audit(ctx: Context, output_format: str) -> None:
    """Report duplicate identifiers and incomplete device configurations."""
    run_async(_audit(ctx, output_format))


async def _audit(ctx: Context, output_format: str) -> None:
    async with ctx.client() as client:
        fleet = await fetch_fleet(client)

    report = build_audit_report(fleet)
    if output_format == "json":
        render_json(asdict(report) | {"ok": report.ok})
        return

    print_info(f"Found {len(fleet.meters)} meter(s), {len(fleet.chargers)} charger(s)")
    render_audit(report)
