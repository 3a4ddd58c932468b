"""plan / apply / destroy command implementations."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import Settings
from ..errors import ConfigError, IamSyncError, ManifestError
from ..lifecycle import LifecycleDriver
from ..manifest import load_manifest
from ..policy import PolicyClient
from ..reconcile import Action, ReconcilePlan, ReconcileResult
from .common import build_reconciler, report_error

ACTION_STYLES = {
    Action.CREATE: "green",
    Action.UPDATE: "yellow",
    Action.DELETE: "red",
    Action.REPLACE: "red",
    Action.DROP: "dim",
    Action.NOOP: "dim",
    Action.READ: "red",
}


def _plans_table(plans: list[ReconcilePlan]) -> Table:
    table = Table(title="Plan")
    table.add_column("Policy")
    table.add_column("Action")
    table.add_column("Reasons")
    for plan in plans:
        style = ACTION_STYLES.get(plan.action, "")
        table.add_row(plan.name, f"[{style}]{plan.action}[/{style}]" if style else plan.action, escape("; ".join(plan.reasons)))
    return table


def _results_table(results: list[ReconcileResult]) -> Table:
    table = Table(title="Apply")
    table.add_column("Policy")
    table.add_column("Action")
    table.add_column("Status")
    table.add_column("Polls", justify="right")
    table.add_column("Id")
    for result in results:
        status = "[green]ok[/green]" if result.success else f"[red]{escape(str(result.error))}[/red]"
        polls = sum(op.polls for op in result.operations)
        resource_id = result.record.id if result.record and result.record.id else ""
        table.add_row(result.name, result.action, status, str(polls), resource_id)
    return table


def run_plan(
    manifest_path: Path,
    *,
    settings: Settings,
    state_path: Path | None,
    output_json: bool = False,
    prune: bool = True,
    client: PolicyClient | None = None,
    console: Console | None = None,
) -> int:
    """Refresh tracked policies and print what apply would do. Never writes."""
    console = console or Console(stderr=True)
    try:
        manifest = load_manifest(manifest_path)
        reconciler = build_reconciler(settings, state_path, client=client)
        plans = reconciler.plan_all(manifest, prune=prune)
    except (ManifestError, ConfigError) as e:
        report_error(console, e)
        return 2
    except IamSyncError as e:
        report_error(console, e)
        return 1

    if output_json:
        payload = [{"name": p.name, "action": p.action, "reasons": p.reasons} for p in plans]
        print(json.dumps(payload, indent=2))
        return 0

    console.print(_plans_table(plans))
    changes = sum(1 for p in plans if p.writes)
    console.print(f"{changes} change(s) planned.", style="bold" if changes else "dim")
    return 0


def run_apply(
    manifest_path: Path,
    *,
    settings: Settings,
    state_path: Path | None,
    parallel: int = 1,
    prune: bool = True,
    client: PolicyClient | None = None,
    driver: LifecycleDriver | None = None,
    console: Console | None = None,
) -> int:
    """Reconcile every policy in the manifest."""
    console = console or Console(stderr=True)
    try:
        manifest = load_manifest(manifest_path)
        reconciler = build_reconciler(settings, state_path, client=client, driver=driver)
    except (ManifestError, ConfigError) as e:
        report_error(console, e)
        return 2

    results = reconciler.apply_all(manifest, parallelism=parallel, prune=prune)
    console.print(_results_table(results))

    failed = [r for r in results if not r.success]
    if failed:
        console.print(f"{len(failed)} of {len(results)} policies failed.", style="red")
        return 1
    return 0


def run_destroy(
    name: str,
    *,
    settings: Settings,
    state_path: Path | None,
    client: PolicyClient | None = None,
    driver: LifecycleDriver | None = None,
    console: Console | None = None,
) -> int:
    """Delete one tracked policy and discard its record."""
    console = console or Console(stderr=True)
    try:
        reconciler = build_reconciler(settings, state_path, client=client, driver=driver)
        result = reconciler.destroy(name)
    except ConfigError as e:
        report_error(console, e)
        return 2
    except IamSyncError as e:
        report_error(console, e)
        return 1

    op = result.operations[-1] if result.operations else None
    if result.action == Action.DROP:
        console.print(f"{name}: never created remotely, record discarded", style="yellow")
    elif op is not None and op.absent:
        console.print(f"{name}: already gone remotely, record discarded", style="yellow")
    else:
        console.print(f"{name}: deleted", style="green")
    return 0
