"""
Identity policy data model.

- PolicySpec: desired state as declared by the user
- RemotePolicy: the remote object as returned by the API
- ObservedPolicy: remote-authoritative fields copied into the local record
- TrackedPolicy: the local record of one managed policy
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class PolicySpec:
    """Desired state of a policy."""

    name: str
    description: str
    compartment_id: str
    statements: tuple[str, ...]

    def __post_init__(self) -> None:
        # Accept any sequence, keep an immutable ordered tuple.
        object.__setattr__(self, "statements", tuple(self.statements))

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "compartment_id": self.compartment_id,
            "statements": list(self.statements),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicySpec:
        return cls(
            name=str(data["name"]),
            description=str(data.get("description", "")),
            compartment_id=str(data["compartment_id"]),
            statements=tuple(str(s) for s in data.get("statements", [])),
        )


@dataclass
class RemotePolicy:
    """Policy as reported by the remote API."""

    id: str
    name: str
    compartment_id: str
    description: str
    statements: list[str]
    lifecycle_state: str
    etag: str | None = None
    time_created: datetime | None = None
    inactive_status: int | None = None
    version_date: str | None = None


@dataclass
class ObservedPolicy:
    """Remote-authoritative fields. The remote copy always wins for these."""

    state: str | None = None
    etag: str | None = None
    time_created: str | None = None
    description: str | None = None
    statements: list[str] = field(default_factory=list)
    inactive_status: int | None = None
    version_date: str | None = None

    @classmethod
    def from_remote(cls, remote: RemotePolicy) -> ObservedPolicy:
        return cls(
            state=remote.lifecycle_state,
            etag=remote.etag,
            time_created=remote.time_created.isoformat() if remote.time_created else None,
            description=remote.description,
            statements=list(remote.statements),
            inactive_status=remote.inactive_status,
            version_date=remote.version_date,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "etag": self.etag,
            "time_created": self.time_created,
            "description": self.description,
            "statements": list(self.statements),
            "inactive_status": self.inactive_status,
            "version_date": self.version_date,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ObservedPolicy:
        return cls(
            state=data.get("state"),
            etag=data.get("etag"),
            time_created=data.get("time_created"),
            description=data.get("description"),
            statements=list(data.get("statements") or []),
            inactive_status=data.get("inactive_status"),
            version_date=data.get("version_date"),
        )


@dataclass
class TrackedPolicy:
    """
    Local record of a policy under management.

    id, observed, fingerprint and last_applied_etag are owned by the driver;
    callers must not hand-edit them.
    """

    desired: PolicySpec
    id: str | None = None
    observed: ObservedPolicy = field(default_factory=ObservedPolicy)
    fingerprint: str | None = None
    last_applied_etag: str | None = None

    @property
    def name(self) -> str:
        return self.desired.name

    def assign_id(self, resource_id: str) -> None:
        """Set the remote identity. It is set once and never reassigned."""
        if self.id is not None and self.id != resource_id:
            raise ValueError(f"policy {self.name!r} already has id {self.id}, refusing {resource_id}")
        self.id = resource_id

    def forget_id(self) -> None:
        """Drop the identity after the remote resource is confirmed gone."""
        self.id = None
        self.observed = ObservedPolicy()
        self.fingerprint = None
        self.last_applied_etag = None

    def commit_write(self, fingerprint: str, etag: str | None) -> None:
        """Record a successful write. Both values always move together."""
        self.fingerprint = fingerprint
        self.last_applied_etag = etag

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "desired": self.desired.to_dict(),
            "observed": self.observed.to_dict(),
            "fingerprint": self.fingerprint,
            "last_applied_etag": self.last_applied_etag,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TrackedPolicy:
        return cls(
            desired=PolicySpec.from_dict(data["desired"]),
            id=data.get("id"),
            observed=ObservedPolicy.from_dict(data.get("observed") or {}),
            fingerprint=data.get("fingerprint"),
            last_applied_etag=data.get("last_applied_etag"),
        )
