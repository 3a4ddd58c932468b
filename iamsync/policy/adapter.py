"""
Identity policy adapter for the lifecycle driver.

Binds one TrackedPolicy to the remote policy API:
- create/update submit the desired fields
- update consults the DriftResolver before sending statements
- set_data copies remote-authoritative fields into the record and, after a
  write, commits fingerprint and last_applied_etag together
"""

from __future__ import annotations

import logging

from ..drift import DriftDecision, DriftResolver, fingerprint
from ..errors import NotFoundError
from ..lifecycle import AdapterMetadata, ResourceAdapter, register_adapter
from .client import PolicyClient
from .models import ObservedPolicy, PolicySpec, RemotePolicy, TrackedPolicy

logger = logging.getLogger(__name__)

RESOURCE_TYPE = "identity.policy"

CREATING = "CREATING"
ACTIVE = "ACTIVE"
DELETING = "DELETING"
DELETED = "DELETED"


class PolicyAdapter(ResourceAdapter):
    """Adapter for one identity policy."""

    def __init__(
        self,
        client: PolicyClient,
        record: TrackedPolicy,
        desired: PolicySpec | None = None,
        *,
        resolver: DriftResolver | None = None,
    ):
        self.client = client
        self.record = record
        self.desired = desired or record.desired
        self.resolver = resolver or DriftResolver()
        self.res: RemotePolicy | None = None
        self._pending_fingerprint: str | None = None
        self._write_etag: str | None = None

    @property
    def metadata(self) -> AdapterMetadata:
        return AdapterMetadata(resource_type=RESOURCE_TYPE, display_name=self.desired.name)

    def id(self) -> str | None:
        if self.res is not None:
            return self.res.id
        return self.record.id

    def state(self) -> str | None:
        if self.res is not None:
            return self.res.lifecycle_state
        return self.record.observed.state

    def created_pending(self) -> frozenset[str]:
        return frozenset({CREATING})

    def created_target(self) -> frozenset[str]:
        return frozenset({ACTIVE})

    def deleted_pending(self) -> frozenset[str]:
        return frozenset({DELETING})

    def deleted_target(self) -> frozenset[str]:
        return frozenset({DELETED})

    # -------------------------------------------------------------------------
    # Drift
    # -------------------------------------------------------------------------

    def statement_drift(self) -> DriftDecision:
        """Compare desired statements with the last write, using the last observed etag."""
        return self.resolver.resolve(
            stored_fingerprint=self.record.fingerprint,
            last_applied_etag=self.record.last_applied_etag,
            desired_statements=self.desired.statements,
            observed_etag=self.record.observed.etag,
        )

    def description_changed(self) -> bool:
        return self.desired.description != (self.record.observed.description or "")

    # -------------------------------------------------------------------------
    # Remote calls
    # -------------------------------------------------------------------------

    def create(self) -> None:
        spec = self.desired
        self.res = self.client.create(
            spec.name,
            spec.description,
            spec.compartment_id,
            spec.statements,
        )
        self.record.assign_id(self.res.id)
        self._stage_write(self.res)

    def get(self) -> None:
        resource_id = self.id()
        if resource_id is None:
            raise NotFoundError(f"policy {self.desired.name!r} has no id")
        self.res = self.client.get(resource_id)

    def update(self) -> None:
        resource_id = self.id()
        if resource_id is None:
            raise NotFoundError(f"policy {self.desired.name!r} has no id")

        description = self.desired.description if self.description_changed() else None
        decision = self.statement_drift()
        statements = self.desired.statements if decision.has_drift else None
        logger.debug("update %s: description=%s %s", resource_id, description is not None, decision.summary())

        if description is None and statements is None:
            logger.debug("update %s: nothing to send", resource_id)
            self._pending_fingerprint = decision.new_fingerprint
            return

        self.res = self.client.update(resource_id, description=description, statements=statements)
        self._stage_write(self.res)

    def delete(self) -> None:
        resource_id = self.id()
        if resource_id is None:
            raise NotFoundError(f"policy {self.desired.name!r} has no id")
        self.client.delete(resource_id)

    def observe(self) -> None:
        if self.res is not None:
            self.record.observed = ObservedPolicy.from_remote(self.res)

    def resume_create(self) -> None:
        """
        Adopt a create submitted by an earlier run as the pending write.

        record.desired still holds what that create submitted, so convergence
        commits its fingerprint like a create that was waited for.
        """
        self._pending_fingerprint = fingerprint(self.record.desired.statements)
        self._write_etag = None

    def set_data(self) -> None:
        if self.res is None:
            return
        self.observe()

        if self._pending_fingerprint is not None:
            # Etag as of convergence; the write response etag is the fallback.
            etag = self.res.etag or self._write_etag
            self.record.commit_write(self._pending_fingerprint, etag)
            self.record.desired = self.desired
            self._pending_fingerprint = None
            self._write_etag = None

    def _stage_write(self, res: RemotePolicy) -> None:
        self._pending_fingerprint = fingerprint(self.desired.statements)
        self._write_etag = res.etag


register_adapter(RESOURCE_TYPE, PolicyAdapter)
