"""Shared CLI context, imported by command modules without circular deps."""

from __future__ import annotations

import asyncio
from typing import Any

import click

from zev_config.client import ZEVClient, ZEVClientError


class Context:
    """Shared CLI context."""

    def __init__(self, url: str | None, token: str | None, dry_run: bool) -> None:
        self.url = url
        self.token = token
        self.dry_run = dry_run

    def client(self) -> ZEVClient:
        if not self.url:
            raise ZEVClientError("No API URL configured. Specify --url or set ZEV_URL.")
        return ZEVClient(self.url, self.token)


pass_ctx = click.make_pass_decorator(Context)


def run_async(coro: Any) -> Any:
    """Run an async function from a Click command."""
    return asyncio.run(coro)
