"""
Audit log of remote write operations.

Every successful create, update and delete appends one JSON line next to the
state file:

    .iamsync/audit.log

Only identifiers and etags are logged, never statement text or secrets.
"""

import json
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass
class AuditEntry:
    """A single audit log entry."""
    timestamp: str
    operation: str
    resource_id: str | None
    name: str
    etag: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "AuditEntry":
        return cls(
            timestamp=data["timestamp"],
            operation=data["operation"],
            resource_id=data.get("resource_id"),
            name=data.get("name", ""),
            etag=data.get("etag"),
            metadata=data.get("metadata", {}),
        )


def get_audit_log_path(state_dir: Path) -> Path:
    return state_dir / "audit.log"


def log_operation(
    state_dir: Path,
    operation: str,
    *,
    resource_id: str | None,
    name: str,
    etag: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> AuditEntry:
    """
    Append an operation to the audit log.

    Args:
        state_dir: Directory holding the state file
        operation: "create" | "update" | "delete"
        resource_id: Remote identity of the policy
        name: Policy name
        etag: Etag recorded after the write, if any
        metadata: Additional context (e.g., drift types, polls)

    Returns:
        The appended entry
    """
    entry = AuditEntry(
        timestamp=datetime.now(timezone.utc).isoformat(),
        operation=operation,
        resource_id=resource_id,
        name=name,
        etag=etag,
        metadata=metadata or {},
    )

    log_path = get_audit_log_path(state_dir)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    # JSON Lines: one object per line
    with log_path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(entry.to_dict()) + "\n")

    return entry


def read_audit_log(
    state_dir: Path,
    last_n: int | None = None,
    *,
    name: str | None = None,
) -> list[AuditEntry]:
    """
    Read entries from the audit log, oldest first.

    Args:
        state_dir: Directory holding the state file
        last_n: If specified, return only the last N matching entries
        name: If specified, only entries for this policy
    """
    log_path = get_audit_log_path(state_dir)
    if not log_path.exists():
        return []

    with log_path.open("r", encoding="utf-8") as f:
        entries = [AuditEntry.from_dict(json.loads(raw)) for raw in f if raw.strip()]

    if name is not None:
        entries = [e for e in entries if e.name == name]
    if last_n is not None:
        entries = entries[-last_n:]
    return entries
