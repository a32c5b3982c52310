"""Cancellable periodic tasks driven by an injectable clock."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Protocol

_LOGGER = logging.getLogger(__name__)

QUARTER_HOUR = 15 * 60


class Clock(Protocol):
    """Time source for scheduled tasks."""

    def now(self) -> float: ...

    async def sleep(self, seconds: float) -> None: ...


class SystemClock:
    """Wall clock backed by ``time.time`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


def seconds_until_boundary(now: float, period: float) -> float:
    """Seconds from *now* to the next multiple of *period* (epoch-aligned).

    Exactly on a boundary counts as due now.
    """
    remainder = now % period
    return 0.0 if remainder == 0 else period - remainder


class PeriodicTask:
    """Run an async callback every *interval* seconds until stopped.

    With *align* set, each run is scheduled on the next epoch-aligned multiple
    of *align* (e.g. ``QUARTER_HOUR`` for :00, :15, :30, :45) instead of a
    fixed delay after the previous run.

    Usage::

        task = PeriodicTask(refresh, interval=15)
        task.start()
        ...
        await task.stop()
    """

    def __init__(
        self,
        callback: Callable[[], Awaitable[None]],
        interval: float,
        clock: Clock | None = None,
        align: float | None = None,
        run_immediately: bool = False,
    ) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._callback = callback
        self._interval = interval
        self._clock = clock or SystemClock()
        self._align = align
        self._run_immediately = run_immediately
        self._task: asyncio.Task[None] | None = None
        self.runs = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def next_delay(self) -> float:
        if self._align:
            return seconds_until_boundary(self._clock.now(), self._align)
        return self._interval

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """Cancel the pending timer; safe to call more than once."""
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        if self._run_immediately:
            await self._run_once()
        while True:
            delay = self.next_delay()
            if self._align and delay == 0:
                # Just ran on a boundary; wait for the next one
                delay = self._align
            await self._clock.sleep(delay)
            await self._run_once()

    async def _run_once(self) -> None:
        try:
            await self._callback()
        except asyncio.CancelledError:
            raise
        except Exception:
            _LOGGER.exception("Periodic task failed")
        self.runs += 1
