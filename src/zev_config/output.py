"""Rich-based output formatters."""

from __future__ import annotations

import json as json_mod
import logging
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

if TYPE_CHECKING:
    from zev_config.audit import AuditReport
    from zev_config.models import Occupant
    from zev_config.presets import DevicePreset

console = Console()


def setup_logging(verbose: bool = False) -> None:
    """Route library logging through Rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=verbose)],
        force=True,
    )


def print_info(msg: str) -> None:
    console.print(f"[bold blue]INFO[/bold blue] {msg}")


def print_warn(msg: str) -> None:
    console.print(f"[bold yellow]WARN[/bold yellow] {msg}")


def print_ok(msg: str) -> None:
    console.print(f"[bold green] OK [/bold green] {msg}")


def print_dry_run(msg: str) -> None:
    console.print(f"[bold cyan]DRY-RUN[/bold cyan] {msg}")


def print_error(msg: str) -> None:
    console.print(f"[bold red]ERROR[/bold red] {msg}")


def render_json(data: Any) -> None:
    console.print_json(json_mod.dumps(data, default=str))


def render_presets(presets: list[DevicePreset]) -> None:
    """Preset catalog with default value mappings."""
    table = Table(title="Device Presets")
    table.add_column("Name", style="bold")
    table.add_column("Label")
    table.add_column("States (locked/auth/charging/idle)")
    table.add_column("Modes (normal/priority)")
    table.add_column("Priority?", justify="center")
    table.add_column("Connection Types", style="dim")

    for preset in presets:
        s = preset.default_states
        m = preset.default_modes
        table.add_row(
            preset.name,
            preset.label,
            f"{s.cable_locked}/{s.waiting_auth}/{s.charging}/{s.idle}",
            f"{m.normal}/{m.priority}",
            "Y" if preset.supports_priority else "",
            ", ".join(preset.supported_connection_types),
        )

    console.print(table)


def render_shares(
    occupants: list[Occupant],
    shares: dict[int, float],
    amounts: dict[int, float] | None = None,
    currency: str = "CHF",
) -> None:
    """Per-occupant share (and cost) of a shared meter."""
    table = Table(title="Shared Meter Split")
    table.add_column("Occupant", style="bold")
    table.add_column("Share", justify="right")
    if amounts is not None:
        table.add_column(f"Amount ({currency})", justify="right")

    by_id = {o.id: o for o in occupants}
    for oid, pct in shares.items():
        label = by_id[oid].display_name if oid in by_id else f"#{oid}"
        row = [label, f"{pct:.2f}%"]
        if amounts is not None:
            row.append(f"{amounts.get(oid, 0.0):.2f}")
        table.add_row(*row)

    total = sum(shares.values())
    style = "green" if abs(total - 100.0) <= 0.01 else "red"
    footer = ["[bold]Total[/bold]", f"[{style}]{total:.2f}%[/{style}]"]
    if amounts is not None:
        footer.append(f"{sum(amounts.values()):.2f}")
    table.add_row(*footer)
    console.print(table)


def render_audit(report: AuditReport) -> None:
    """Identifier collisions and invalid configurations."""
    console.rule("[bold]Identifier Uniqueness[/bold]")
    if report.collisions:
        table = Table(show_header=True)
        table.add_column("Identifier", style="bold")
        table.add_column("Transport")
        table.add_column("Devices")
        for collision in report.collisions:
            table.add_row(
                collision.identifier,
                collision.transport,
                ", ".join(collision.devices),
            )
        console.print(table)
        print_warn(f"{len(report.collisions)} identifier(s) shared by more than one device")
    else:
        print_ok(f"All identifiers unique across {report.device_count} device(s)")

    console.rule("[bold]Configuration[/bold]")
    if report.problems:
        for problem in report.problems:
            print_warn(f"{problem.device}: {problem.message}")
    else:
        print_ok("All device configurations are complete")
