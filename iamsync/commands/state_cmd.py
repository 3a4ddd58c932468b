"""refresh / show / import / history command implementations."""

from __future__ import annotations

import json
from pathlib import Path

from rich.console import Console
from rich.table import Table

from ..audit_log import read_audit_log
from ..config import Settings
from ..errors import ConfigError, IamSyncError
from ..policy import PolicyClient
from ..state import StateStore
from .common import build_reconciler, report_error


def run_refresh(
    *,
    settings: Settings,
    state_path: Path | None,
    client: PolicyClient | None = None,
    console: Console | None = None,
) -> int:
    """Re-read every tracked policy into the state file."""
    console = console or Console(stderr=True)
    try:
        reconciler = build_reconciler(settings, state_path, client=client)
        records = reconciler.refresh_all()
    except ConfigError as e:
        report_error(console, e)
        return 2
    except IamSyncError as e:
        report_error(console, e)
        return 1

    table = Table(title="Tracked policies")
    table.add_column("Policy")
    table.add_column("Id")
    table.add_column("State")
    table.add_column("Etag")
    for record in records:
        table.add_row(
            record.name,
            record.id or "[yellow](gone)[/yellow]",
            record.observed.state or "",
            record.observed.etag or "",
        )
    console.print(table)
    return 0


def run_show(name: str, *, state_path: Path | None, console: Console | None = None) -> int:
    """Print one tracked record as JSON."""
    console = console or Console(stderr=True)
    try:
        record = StateStore(state_path).get(name)
    except ValueError as e:
        console.print(str(e), style="red")
        return 2
    if record is None:
        console.print(f"policy {name!r} is not tracked", style="red")
        return 1
    print(json.dumps(record.to_dict(), indent=2))
    return 0


def run_import(
    policy_id: str,
    *,
    name: str | None,
    settings: Settings,
    state_path: Path | None,
    client: PolicyClient | None = None,
    console: Console | None = None,
) -> int:
    """Adopt an existing remote policy into the state file."""
    console = console or Console(stderr=True)
    try:
        reconciler = build_reconciler(settings, state_path, client=client)
        record = reconciler.import_policy(policy_id, name=name)
    except ConfigError as e:
        report_error(console, e)
        return 2
    except IamSyncError as e:
        report_error(console, e)
        return 1
    except ValueError as e:
        console.print(str(e), style="red")
        return 1

    console.print(f"Imported {policy_id} as {record.name!r}", style="green")
    console.print("The next apply will write its statements once to start tracking them.", style="dim")
    return 0


def run_history(
    *,
    state_path: Path | None,
    last_n: int | None = None,
    name: str | None = None,
    console: Console | None = None,
) -> int:
    """Print recent write operations from the audit log."""
    console = console or Console(stderr=True)
    store = StateStore(state_path)
    entries = read_audit_log(store.state_dir, last_n=last_n, name=name)
    if not entries:
        console.print("No operations recorded.", style="dim")
        return 0

    table = Table(title="History")
    table.add_column("Time")
    table.add_column("Operation")
    table.add_column("Policy")
    table.add_column("Id")
    table.add_column("Etag")
    for entry in entries:
        table.add_row(entry.timestamp, entry.operation, entry.name, entry.resource_id or "", entry.etag or "")
    console.print(table)
    return 0
