"""
Reconciliation of desired policies against tracked records.

Orchestrates: refresh() → plan() → [create | update | delete | replace] → persist

plan() is pure: it only looks at the desired spec and the record as last
refreshed. Execution goes through the lifecycle driver, and the record is
persisted whether or not the operation succeeds, so an interrupted or timed
out pass can be resumed from the stored id alone.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .audit_log import log_operation
from .drift import DriftDecision, DriftResolver
from .errors import IamSyncError, NotFoundError
from .lifecycle import LifecycleDriver, OperationResult, build_adapter
from .manifest import Manifest
from .policy import (
    DELETED,
    RESOURCE_TYPE,
    ObservedPolicy,
    PolicyAdapter,
    PolicyClient,
    PolicySpec,
    TrackedPolicy,
)
from .state import StateStore

logger = logging.getLogger(__name__)


class Action:
    CREATE = "create"
    UPDATE = "update"
    NOOP = "noop"
    DELETE = "delete"
    REPLACE = "replace"  # create-time-only field changed: delete, then create
    DROP = "drop"  # desired removed and nothing exists remotely
    READ = "read"  # failed before a plan could be made


@dataclass
class ReconcilePlan:
    """What one reconciliation pass would do for one policy."""

    name: str
    action: str
    reasons: list[str] = field(default_factory=list)
    drift: DriftDecision | None = None

    @property
    def writes(self) -> bool:
        return self.action in (Action.CREATE, Action.UPDATE, Action.DELETE, Action.REPLACE)

    def summary(self) -> str:
        line = f"{self.name}: {self.action}"
        if self.reasons:
            line += " (" + "; ".join(self.reasons) + ")"
        return line


@dataclass
class ReconcileResult:
    """Outcome of one reconciliation pass for one policy."""

    plan: ReconcilePlan
    record: TrackedPolicy | None
    operations: list[OperationResult] = field(default_factory=list)
    error: IamSyncError | None = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def name(self) -> str:
        return self.plan.name

    @property
    def action(self) -> str:
        return self.plan.action


class Reconciler:
    """
    Drives identity policies toward their desired state.

    Each call handles one policy end to end; apply_all() fans out across
    independent policies, which share nothing but the state store.
    """

    def __init__(
        self,
        client: PolicyClient,
        driver: LifecycleDriver | None = None,
        *,
        store: StateStore | None = None,
        resolver: DriftResolver | None = None,
    ):
        self.client = client
        self.driver = driver or LifecycleDriver()
        self.store = store
        self.resolver = resolver or DriftResolver()

    def _adapter(self, record: TrackedPolicy, desired: PolicySpec | None = None) -> PolicyAdapter:
        return build_adapter(RESOURCE_TYPE, self.client, record, desired, resolver=self.resolver)

    def _lookup(self, name: str) -> TrackedPolicy | None:
        return self.store.get(name) if self.store is not None else None

    def _persist(self, record: TrackedPolicy) -> None:
        if self.store is not None:
            self.store.put(record)

    def _audit(self, operation: str, record: TrackedPolicy, resource_id: str | None, **metadata) -> None:
        if self.store is None:
            return
        log_operation(
            self.store.state_dir,
            operation,
            resource_id=resource_id,
            name=record.name,
            etag=record.last_applied_etag,
            metadata=metadata,
        )

    # -------------------------------------------------------------------------
    # refresh(): read remote truth into the record
    # -------------------------------------------------------------------------

    def refresh(self, record: TrackedPolicy) -> TrackedPolicy:
        """
        Re-read the remote policy into record.observed.

        A policy that no longer exists remotely loses its id, so the next
        plan recreates it.
        """
        if record.id is None:
            return record
        try:
            self.driver.read(self._adapter(record))
        except NotFoundError:
            logger.warning("policy %s (%s) no longer exists remotely", record.name, record.id)
            record.forget_id()
        return record

    # -------------------------------------------------------------------------
    # plan(): pure
    # -------------------------------------------------------------------------

    def plan(self, desired: PolicySpec | None, record: TrackedPolicy | None) -> ReconcilePlan:
        if desired is None:
            if record is None:
                raise ValueError("plan needs a desired policy or a tracked record")
            if record.id is None:
                return ReconcilePlan(record.name, Action.DROP, ["removed from manifest; nothing exists remotely"])
            return ReconcilePlan(record.name, Action.DELETE, ["removed from manifest"])

        if record is None or record.id is None:
            return ReconcilePlan(desired.name, Action.CREATE, ["not yet created"])

        if desired.compartment_id != record.desired.compartment_id:
            return ReconcilePlan(
                desired.name,
                Action.REPLACE,
                [f"compartment_id {record.desired.compartment_id} -> {desired.compartment_id}"],
            )

        adapter = self._adapter(record, desired)
        reasons: list[str] = []
        if adapter.description_changed():
            reasons.append("description changed")
        drift = adapter.statement_drift()
        if drift.has_drift:
            reasons.append(drift.summary())

        action = Action.UPDATE if reasons else Action.NOOP
        return ReconcilePlan(desired.name, action, reasons, drift)

    # -------------------------------------------------------------------------
    # apply(): effectful
    # -------------------------------------------------------------------------

    def apply(
        self,
        desired: PolicySpec | None,
        record: TrackedPolicy | None = None,
        *,
        refresh: bool = True,
    ) -> ReconcileResult:
        """Reconcile one policy. Raises IamSyncError on failure."""
        record = self._prepare(desired, record, refresh=refresh)
        return self.execute(self.plan(desired, record), desired, record)

    def _prepare(
        self,
        desired: PolicySpec | None,
        record: TrackedPolicy | None,
        *,
        refresh: bool = True,
    ) -> TrackedPolicy | None:
        name = desired.name if desired is not None else (record.name if record else None)
        if record is None and name is not None:
            record = self._lookup(name)
        if record is not None and refresh:
            self.refresh(record)
            self._resume(record)
        return record

    def _resume(self, record: TrackedPolicy) -> None:
        """Finish waiting on a create that an earlier run gave up on."""
        adapter = self._adapter(record)
        if record.id is None or record.observed.state not in adapter.created_pending():
            return
        if record.fingerprint is None:
            adapter.resume_create()
        try:
            self.driver.converge(adapter)
        finally:
            self._persist(record)
        if record.fingerprint is not None:
            self._audit("create", record, record.id, resumed=True)

    def execute(
        self,
        plan: ReconcilePlan,
        desired: PolicySpec | None,
        record: TrackedPolicy | None,
    ) -> ReconcileResult:
        """Carry out a plan computed against the same record."""
        logger.info("%s", plan.summary())
        result = ReconcileResult(plan=plan, record=record)

        if plan.action in (Action.DROP, Action.DELETE, Action.REPLACE, Action.UPDATE, Action.NOOP):
            if record is None:
                raise ValueError(f"{plan.action} plan for {plan.name!r} needs a tracked record")
        if plan.action not in (Action.DROP, Action.DELETE) and desired is None:
            raise ValueError(f"{plan.action} plan for {plan.name!r} needs a desired policy")

        if plan.action == Action.DROP:
            if self.store is not None:
                self.store.remove(plan.name)
            result.record = None
        elif plan.action == Action.NOOP:
            record.desired = desired
            self._persist(record)
        elif plan.action == Action.DELETE:
            self._delete(record, result)
            if self.store is not None:
                self.store.remove(record.name)
            result.record = None
        elif plan.action == Action.UPDATE:
            self._update(record, desired, result)
        else:
            if plan.action == Action.REPLACE:
                self._delete(record, result)
            if record is None:
                record = TrackedPolicy(desired=desired)
            elif record.id is None:
                record.desired = desired
            result.record = record
            self._create(record, result)
        return result

    def _create(self, record: TrackedPolicy, result: ReconcileResult) -> None:
        adapter = self._adapter(record)
        try:
            result.operations.append(self.driver.create(adapter))
        finally:
            self._persist(record)
        self._audit("create", record, record.id)

    def _update(self, record: TrackedPolicy, desired: PolicySpec, result: ReconcileResult) -> None:
        adapter = self._adapter(record, desired)
        try:
            result.operations.append(self.driver.update(adapter))
        finally:
            self._persist(record)
        drift = result.plan.drift
        self._audit("update", record, record.id, drift=drift.drift_types if drift else [])

    def _delete(self, record: TrackedPolicy, result: ReconcileResult) -> None:
        resource_id = record.id
        adapter = self._adapter(record)
        try:
            op = self.driver.delete(adapter)
        except IamSyncError:
            self._persist(record)
            raise
        result.operations.append(op)
        self._audit("delete", record, resource_id, absent=op.absent)
        record.forget_id()

    # -------------------------------------------------------------------------
    # Batch and lifecycle helpers
    # -------------------------------------------------------------------------

    def apply_all(self, manifest: Manifest, *, parallelism: int = 1, prune: bool = True) -> list[ReconcileResult]:
        """
        Reconcile every policy in the manifest.

        With prune, tracked policies missing from the manifest are deleted.
        Failures are reported per policy and do not stop the others.
        """
        work: list[tuple[PolicySpec | None, str]] = [(p, p.name) for p in manifest.policies]
        if prune and self.store is not None:
            work += [(None, name) for name in self.store.names() if manifest.get(name) is None]

        def run(item: tuple[PolicySpec | None, str]) -> ReconcileResult:
            desired, name = item
            record: TrackedPolicy | None = None
            plan = ReconcilePlan(name, Action.READ, ["refresh failed"])
            try:
                record = self._prepare(desired, self._lookup(name))
                plan = self.plan(desired, record)
                return self.execute(plan, desired, record)
            except IamSyncError as e:
                logger.error("%s: %s", name, e)
                return ReconcileResult(plan=plan, record=record, error=e)

        if parallelism <= 1:
            return [run(item) for item in work]
        with ThreadPoolExecutor(max_workers=parallelism) as pool:
            return list(pool.map(run, work))

    def plan_all(self, manifest: Manifest, *, prune: bool = True) -> list[ReconcilePlan]:
        """Refresh and plan every policy without writing anything remote."""
        plans: list[ReconcilePlan] = []
        for desired in manifest.policies:
            record = self._lookup(desired.name)
            if record is not None:
                self.refresh(record)
            plans.append(self.plan(desired, record))
        if prune and self.store is not None:
            for name in self.store.names():
                if manifest.get(name) is None:
                    record = self._lookup(name)
                    if record is not None:
                        plans.append(self.plan(None, self.refresh(record)))
        return plans

    def destroy(self, name: str) -> ReconcileResult:
        """Delete a tracked policy and discard its record."""
        record = self._lookup(name)
        if record is None:
            raise NotFoundError(f"policy {name!r} is not tracked")
        return self.apply(None, record, refresh=False)

    def import_policy(self, policy_id: str, name: str | None = None) -> TrackedPolicy:
        """
        Adopt an existing remote policy.

        The fingerprint and last applied etag stay empty, so the first apply
        writes the declared statements once and records them.
        """
        remote = self.client.get(policy_id)
        if remote.lifecycle_state == DELETED:
            raise NotFoundError("policy is deleted", resource_id=policy_id, last_state=DELETED)
        desired = PolicySpec(
            name=name or remote.name,
            description=remote.description,
            compartment_id=remote.compartment_id,
            statements=tuple(remote.statements),
        )
        if self.store is not None:
            existing = self.store.get(desired.name)
            if existing is not None and existing.id not in (None, policy_id):
                raise ValueError(f"policy {desired.name!r} is already tracked as {existing.id}")
            owner = self.store.find_by_id(policy_id)
            if owner is not None and owner.name != desired.name:
                raise ValueError(f"{policy_id} is already tracked as policy {owner.name!r}")

        record = TrackedPolicy(desired=desired)
        record.assign_id(policy_id)
        record.observed = ObservedPolicy.from_remote(remote)
        self._persist(record)
        logger.info("imported %s as %s", policy_id, desired.name)
        return record

    def refresh_all(self) -> list[TrackedPolicy]:
        """Re-read every tracked policy and persist the result."""
        if self.store is None:
            return []
        records: list[TrackedPolicy] = []
        for record in self.store.load().values():
            self.refresh(record)
            self._persist(record)
            records.append(record)
        return records
