"""Click CLI group and global options."""

from __future__ import annotations

from typing import Any

import click
from dotenv import load_dotenv

from zev_config.client import ZEVClientError
from zev_config.context import Context
from zev_config.errors import ZEVConfigError
from zev_config.output import setup_logging

load_dotenv()


class _ErrorHandlingGroup(click.Group):
    """Click group that catches API and validation errors and prints clean messages."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except (ZEVClientError, ZEVConfigError) as exc:
            raise click.ClickException(str(exc)) from None


@click.group(cls=_ErrorHandlingGroup)
@click.option(
    "--url",
    envvar="ZEV_URL",
    default=None,
    help="ZEV backend URL (or ZEV_URL env var)",
)
@click.option(
    "--token",
    envvar="ZEV_API_TOKEN",
    default=None,
    help="API token (or ZEV_API_TOKEN env var)",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Show planned changes without applying them",
)
@click.option("-v", "--verbose", is_flag=True, default=False, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, url: str | None, token: str | None, dry_run: bool, verbose: bool) -> None:
    """ZEV meter, charger and shared-cost configuration CLI."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj = Context(url=url, token=token, dry_run=dry_run)


# Register subcommands (imported after cli is defined to avoid circular deps)
from zev_config.audit import audit  # noqa: E402
from zev_config.devices import charger, meter, presets  # noqa: E402
from zev_config.shared_meters import shared_meter  # noqa: E402
from zev_config.watch import watch  # noqa: E402

cli.add_command(audit)
cli.add_command(charger)
cli.add_command(meter)
cli.add_command(presets)
cli.add_command(shared_meter)
cli.add_command(watch)
