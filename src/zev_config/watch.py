"""Watch command: poll the fleet and re-run the audit on a schedule."""

from __future__ import annotations

import asyncio
import logging

import click

from zev_config.audit import AuditReport, build_audit_report
from zev_config.client import ZEVClient, ZEVClientError
from zev_config.context import Context, pass_ctx, run_async
from zev_config.output import console, print_error, print_info, print_ok, render_audit
from zev_config.registry import fetch_fleet
from zev_config.scheduler import QUARTER_HOUR, Clock, PeriodicTask

_LOGGER = logging.getLogger(__name__)


class FleetWatcher:
    """Refresh the fleet periodically and report when the audit result changes."""

    def __init__(
        self,
        client: ZEVClient,
        interval: float,
        quarter_hour: bool = False,
        max_runs: int | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._client = client
        self._max_runs = max_runs
        self._done = asyncio.Event()
        self._last: AuditReport | None = None
        self.refreshes = 0
        self.task = PeriodicTask(
            self.refresh,
            interval,
            clock=clock,
            align=QUARTER_HOUR if quarter_hour else None,
            run_immediately=True,
        )

    async def refresh(self) -> None:
        self.refreshes += 1
        try:
            fleet = await fetch_fleet(self._client)
        except ZEVClientError as exc:
            # Keep polling; the backend may come back
            print_error(f"Refresh failed: {exc}")
            self._check_done()
            return
        report = build_audit_report(fleet)
        _LOGGER.debug("Refresh %d: %d device(s)", self.refreshes, report.device_count)

        if self._last is None or report != self._last:
            console.print()
            render_audit(report)
        self._last = report
        self._check_done()

    def _check_done(self) -> None:
        if self._max_runs and self.refreshes >= self._max_runs:
            self._done.set()

    async def run(self) -> None:
        """Run until *max_runs* refreshes are done or the task is cancelled."""
        self.task.start()
        try:
            await self._done.wait()
        finally:
            await self.task.stop()


@click.command()
@click.option(
    "--interval",
    type=click.IntRange(min=5),
    default=15,
    show_default=True,
    help="Seconds between refreshes",
)
@click.option(
    "--quarter-hour",
    is_flag=True,
    default=False,
    help="Refresh on quarter-hour boundaries (:00, :15, :30, :45) instead",
)
@click.option("--count", type=click.IntRange(min=1), default=None, help="Stop after N refreshes")
@pass_ctx
def watch(ctx: Context, interval: int, quarter_hour: bool, count: int | None) -> None:
    """Keep checking identifier uniqueness against the live device list."""
    try:
        run_async(_watch(ctx, interval, quarter_hour, count))
    except KeyboardInterrupt:
        print_ok("Stopped")


async def _watch(ctx: Context, interval: int, quarter_hour: bool, count: int | None) -> None:
    async with ctx.client() as client:
        schedule = "every quarter hour" if quarter_hour else f"every {interval}s"
        print_info(f"Watching {ctx.url} {schedule} (Ctrl+C to stop)")
        await FleetWatcher(client, interval, quarter_hour=quarter_hour, max_runs=count).run()
