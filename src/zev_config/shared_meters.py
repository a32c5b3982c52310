"""Shared meter commands: configure and preview cost splits."""

from __future__ import annotations

import click

from zev_config.context import Context, pass_ctx, run_async
from zev_config.models import CUSTOM, SPLIT_TYPES
from zev_config.output import (
    print_dry_run,
    print_info,
    print_ok,
    print_warn,
    render_json,
    render_shares,
)
from zev_config.registry import Fleet, fetch_fleet
from zev_config.splits import SharedMeterDraft, allocate_cost, compute_shares, eligible_shared_meters


def _parse_shares(values: tuple[str, ...]) -> dict[int, str]:
    """Parse repeated ``--share OCCUPANT_ID=PERCENT`` options."""
    shares: dict[int, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        try:
            occupant_id = int(key)
        except ValueError:
            occupant_id = None
        if not sep or occupant_id is None:
            raise click.BadParameter(f"Expected OCCUPANT_ID=PERCENT, got '{item}'", param_hint="--share")
        shares[occupant_id] = value
    return shares


def build_draft(
    fleet: Fleet,
    building_id: int,
    meter_id: int,
    split_type: str,
    unit_price: float,
    shares: dict[int, str],
) -> SharedMeterDraft:
    """Draft for a new shared meter, checked against the fleet."""
    building = fleet.building(building_id)
    if building is None:
        raise click.ClickException(f"Building {building_id} not found")
    if building.is_group:
        raise click.ClickException(
            f"Building {building_id} ({building.name}) is a building group; "
            "shared meters belong to a single building"
        )
    meter = next((m for m in eligible_shared_meters(fleet.meters, building_id) if m.id == meter_id), None)
    if meter is None:
        raise click.ClickException(
            f"Meter {meter_id} is not a building-level heating/other meter of building {building_id}"
        )

    draft = SharedMeterDraft(unit_price=unit_price)
    draft.change_building(building_id, fleet.active_occupant_ids(building_id))
    draft.meter_id = meter.id
    draft.meter_name = meter.name
    draft.change_split_type(split_type)

    unknown = sorted(set(shares) - set(draft.occupant_ids))
    if unknown:
        raise click.ClickException(
            f"Not active occupants of building {building_id}: {', '.join(map(str, unknown))}"
        )
    for occupant_id, value in shares.items():
        draft.set_percentage(occupant_id, value)
    return draft


@click.group("shared-meter")
def shared_meter() -> None:
    """Manage shared meter cost splits."""


@shared_meter.command("add")
@click.option("--building", "building_id", type=int, required=True, help="Building id")
@click.option("--meter", "meter_id", type=int, required=True, help="Heating/other meter id")
@click.option("--split", "split_type", type=click.Choice(SPLIT_TYPES), default="equal", show_default=True)
@click.option("--price", "unit_price", type=float, required=True, help="Unit price (CHF/kWh)")
@click.option(
    "--share",
    "shares",
    multiple=True,
    metavar="OCCUPANT_ID=PERCENT",
    help="Custom percentage for an occupant (default: even division)",
)
@pass_ctx
def shared_meter_add(
    ctx: Context,
    building_id: int,
    meter_id: int,
    split_type: str,
    unit_price: float,
    shares: tuple[str, ...],
) -> None:
    """Configure how a shared meter's cost is split among occupants."""
    run_async(_shared_meter_add(ctx, building_id, meter_id, split_type, unit_price, _parse_shares(shares)))


async def _shared_meter_add(
    ctx: Context,
    building_id: int,
    meter_id: int,
    split_type: str,
    unit_price: float,
    shares: dict[int, str],
) -> None:
    async with ctx.client() as client:
        fleet = await fetch_fleet(client)
        if shares and split_type != CUSTOM:
            print_warn("--share is ignored for equal splits")
            shares = {}
        draft = build_draft(fleet, building_id, meter_id, split_type, unit_price, shares)

        if not draft.occupant_ids:
            print_warn(f"Building {building_id} has no active occupants")
        elif split_type == CUSTOM:
            render_shares(fleet.occupants, {oid: draft.custom_splits.get(oid, 0.0) for oid in draft.occupant_ids})
        else:
            print_info(f"Cost split evenly among {len(draft.occupant_ids)} active occupant(s) at billing time")

        payload = draft.to_payload()
        render_json(payload)

        if ctx.dry_run:
            print_dry_run("Would save shared meter config (use without --dry-run to apply)")
            return

        await client.post("/shared-meters", payload)
        print_ok(f"Shared meter '{draft.meter_name}' saved")


@shared_meter.command("shares")
@click.argument("config_id", type=int)
@click.option("--consumption", type=float, default=None, help="Consumption in kWh to price")
@click.option(
    "--proration",
    type=click.FloatRange(0.0, 1.0),
    default=1.0,
    show_default=True,
    help="Fraction of the billing period",
)
@pass_ctx
def shared_meter_shares(ctx: Context, config_id: int, consumption: float | None, proration: float) -> None:
    """Show each active occupant's share of a shared meter."""
    run_async(_shared_meter_shares(ctx, config_id, consumption, proration))


async def _shared_meter_shares(
    ctx: Context, config_id: int, consumption: float | None, proration: float
) -> None:
    async with ctx.client() as client:
        fleet = await fetch_fleet(client)

    config = next((c for c in fleet.shared_meters if c.id == config_id), None)
    if config is None:
        raise click.ClickException(f"Shared meter config {config_id} not found")

    occupant_ids = fleet.active_occupant_ids(config.building_id)
    shares = compute_shares(config, occupant_ids)
    amounts = None
    if consumption is not None:
        amounts = allocate_cost(config, consumption, occupant_ids, proration)
    print_info(f"{config.meter_name or config.meter_id}: {config.split_type} split at {config.unit_price:.3f}/kWh")
    render_shares(fleet.occupants, shares, amounts)
