"""Shared wiring for command implementations."""

from __future__ import annotations

from pathlib import Path

from rich.console import Console
from rich.markup import escape

from ..config import Settings
from ..drift import DriftResolver
from ..errors import IamSyncError
from ..lifecycle import LifecycleDriver
from ..policy import OciPolicyClient, PolicyClient
from ..reconcile import Reconciler
from ..state import StateStore


def build_reconciler(
    settings: Settings,
    state_path: Path | None,
    *,
    client: PolicyClient | None = None,
    driver: LifecycleDriver | None = None,
) -> Reconciler:
    """Wire client, driver and state store from settings."""
    if client is None:
        client = OciPolicyClient.from_config(settings.oci)
    return Reconciler(
        client,
        driver or LifecycleDriver(settings.driver),
        store=StateStore(state_path),
        resolver=DriftResolver(accept_legacy=settings.drift.accept_legacy),
    )


def report_error(console: Console, e: IamSyncError) -> None:
    console.print(f"[red]error:[/red] {escape(str(e))}", highlight=False)
