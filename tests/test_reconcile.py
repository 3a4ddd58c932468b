"""
Tests for the reconciler.

Key properties:
1. Idempotence: an unchanged desired state and remote issue zero writes
2. Drift: an out-of-band etag change forces an update even if text matches
3. Noise: remote reformatting alone never triggers an update
"""

from __future__ import annotations

import pytest

from conftest import FakePolicyClient
from iamsync.audit_log import read_audit_log
from iamsync.drift import DriftType, fingerprint
from iamsync.errors import NotFoundError, OperationTimeoutError, RemoteError
from iamsync.lifecycle import LifecycleDriver
from iamsync.manifest import Manifest
from iamsync.policy import PolicySpec
from iamsync.reconcile import Action, ReconcilePlan, Reconciler
from iamsync.state import StateStore


def _with(spec: PolicySpec, **changes) -> PolicySpec:
    values = spec.to_dict()
    values.update(changes)
    return PolicySpec.from_dict(values)


class TestIdempotence:
    def test_second_pass_issues_no_writes(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        first = reconciler.apply(spec)
        assert first.action == Action.CREATE
        writes_after_create = client.writes()

        second = reconciler.apply(spec)

        assert second.action == Action.NOOP
        assert client.writes() == writes_after_create
        assert client.count("update") == 0

    def test_reformatted_remote_statements_are_noise(self, driver: LifecycleDriver, store: StateStore, spec: PolicySpec):
        client = FakePolicyClient(reformat=lambda s: s.replace("Allow", "allow") + " in tenancy")
        reconciler = Reconciler(client, driver, store=store)

        record = reconciler.apply(spec).record
        assert record is not None
        assert record.observed.statements != list(spec.statements)

        result = reconciler.apply(spec)

        assert result.action == Action.NOOP
        assert client.count("update") == 0


class TestDrift:
    def test_out_of_band_edit_forces_update(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        record = reconciler.apply(spec).record
        assert record is not None
        client.external_edit(record.id, statements=list(spec.statements))

        result = reconciler.apply(spec)

        assert result.action == Action.UPDATE
        assert result.plan.drift is not None
        assert result.plan.drift.drift_types == [DriftType.OUT_OF_BAND]
        assert client.count("update") == 1

    def test_changed_statements_update(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        reconciler.apply(spec)
        changed = _with(spec, statements=list(spec.statements) + ["Allow group B to read buckets"])

        result = reconciler.apply(changed)

        assert result.action == Action.UPDATE
        assert result.record is not None
        assert client.policies[result.record.id].statements == list(changed.statements)

    def test_description_change_updates(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        reconciler.apply(spec)

        result = reconciler.apply(_with(spec, description="updated"))

        assert result.action == Action.UPDATE
        assert result.plan.reasons == ["description changed"]

    def test_example_scenario(self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec):
        # Pass 1: create, record F0/E0
        reconciler.apply(spec)
        record = store.get(spec.name)
        assert record is not None
        f0, e0 = record.fingerprint, record.last_applied_etag
        assert f0 == fingerprint(spec.statements)
        assert e0 == client.policies[record.id].etag

        # Pass 2: nothing changed anywhere
        assert reconciler.apply(spec).action == Action.NOOP
        assert client.count("update") == 0

        # Pass 3: out-of-band edit, statements textually unchanged
        e1 = client.external_edit(record.id, statements=list(spec.statements))
        assert reconciler.apply(spec).action == Action.UPDATE
        record = store.get(spec.name)
        assert record is not None
        assert record.fingerprint == f0
        assert record.last_applied_etag != e0
        assert record.last_applied_etag == client.policies[record.id].etag
        assert e1 != e0

        # Pass 4: converged again
        assert reconciler.apply(spec).action == Action.NOOP
        assert client.count("update") == 1


class TestLifecycle:
    def test_remote_deleted_out_of_band_is_recreated(
        self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec
    ):
        first = reconciler.apply(spec).record
        assert first is not None
        old_id = first.id
        del client.policies[old_id]

        result = reconciler.apply(spec)

        assert result.action == Action.CREATE
        assert result.record is not None
        assert result.record.id != old_id
        assert client.count("create") == 2

    def test_compartment_change_replaces(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        old_id = reconciler.apply(spec).record.id  # type: ignore[union-attr]

        result = reconciler.apply(_with(spec, compartment_id="ocid1.compartment.oc1..new"))

        assert result.action == Action.REPLACE
        assert client.count("delete") == 1
        assert client.count("create") == 2
        assert result.record is not None
        assert result.record.id != old_id
        assert result.record.desired.compartment_id == "ocid1.compartment.oc1..new"

    def test_removed_policy_is_deleted_and_discarded(
        self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec
    ):
        policy_id = reconciler.apply(spec).record.id  # type: ignore[union-attr]

        result = reconciler.apply(None, store.get(spec.name))

        assert result.action == Action.DELETE
        assert result.record is None
        assert store.get(spec.name) is None
        assert client.policies[policy_id].lifecycle_state == "DELETED"

    def test_destroy_unknown_name(self, reconciler: Reconciler):
        with pytest.raises(NotFoundError):
            reconciler.destroy("nope")

    def test_timeout_keeps_record_for_resume(
        self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec
    ):
        client.script("create", ["CREATING"] * 100)

        with pytest.raises(OperationTimeoutError):
            reconciler.apply(spec)

        record = store.get(spec.name)
        assert record is not None
        assert record.id is not None
        assert record.fingerprint is None

        # The remote finishes later; the next pass resumes from the id alone.
        client.policies[record.id].lifecycle_state = "ACTIVE"
        client._scripts.clear()
        result = reconciler.apply(spec)

        assert result.action == Action.UPDATE
        assert client.count("create") == 1
        assert store.get(spec.name).fingerprint == fingerprint(spec.statements)  # type: ignore[union-attr]

    def test_timeout_keeps_last_observed_state(
        self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec
    ):
        client.script("create", ["CREATING"] * 100)

        with pytest.raises(OperationTimeoutError):
            reconciler.apply(spec)

        record = store.get(spec.name)
        assert record is not None
        assert record.observed.state == "CREATING"
        assert record.observed.etag is not None
        assert record.observed.etag == client.policies[record.id].etag  # type: ignore[index]
        assert record.last_applied_etag is None

    def test_resume_waits_out_pending_create(
        self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec
    ):
        client.script("create", ["CREATING"] * 100)
        with pytest.raises(OperationTimeoutError):
            reconciler.apply(spec)
        record = store.get(spec.name)
        assert record is not None and record.id is not None

        # Still creating when the next pass starts.
        client.hold(record.id, ["CREATING", "CREATING", "ACTIVE"])
        result = reconciler.apply(spec)

        assert result.action == Action.NOOP
        assert client.count("create") == 1
        assert client.count("update") == 0
        stored = store.get(spec.name)
        assert stored is not None
        assert stored.observed.state == "ACTIVE"
        assert stored.fingerprint == fingerprint(spec.statements)
        assert stored.last_applied_etag == client.policies[record.id].etag

        entries = read_audit_log(store.state_dir)
        assert [e.operation for e in entries] == ["create"]
        assert entries[0].metadata.get("resumed") is True

    def test_audit_log_records_writes(self, reconciler: Reconciler, store: StateStore, spec: PolicySpec):
        reconciler.apply(spec)
        reconciler.apply(spec)
        reconciler.apply(_with(spec, description="changed"))
        reconciler.destroy(spec.name)

        entries = read_audit_log(store.state_dir)

        assert [e.operation for e in entries] == ["create", "update", "delete"]
        assert all(e.name == spec.name for e in entries)


class TestBatch:
    def _manifest(self, *specs: PolicySpec) -> Manifest:
        return Manifest(path=None, policies=list(specs))

    def test_apply_all_prunes_undeclared(
        self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec
    ):
        other = _with(spec, name="other")
        reconciler.apply_all(self._manifest(spec, other))
        assert store.names() == ["bucket-access", "other"]

        results = reconciler.apply_all(self._manifest(spec))

        assert {r.name: r.action for r in results} == {"bucket-access": Action.NOOP, "other": Action.DELETE}
        assert store.names() == ["bucket-access"]

    def test_failure_does_not_stop_others(
        self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec
    ):
        reconciler.apply(spec)
        client.errors["create"] = RemoteError("quota exceeded", status=400)

        results = reconciler.apply_all(self._manifest(spec, _with(spec, name="new-one")))

        by_name = {r.name: r for r in results}
        assert by_name["bucket-access"].success
        assert not by_name["new-one"].success
        assert by_name["new-one"].action == Action.CREATE
        assert isinstance(by_name["new-one"].error, RemoteError)

    def test_parallel_apply(self, client: FakePolicyClient, driver: LifecycleDriver, store: StateStore, spec: PolicySpec):
        reconciler = Reconciler(client, driver, store=store)
        specs = [_with(spec, name=f"policy-{i}") for i in range(5)]

        results = reconciler.apply_all(self._manifest(*specs), parallelism=3)

        assert all(r.success for r in results)
        assert store.names() == sorted(s.name for s in specs)

    def test_plan_all_never_writes(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        reconciler.apply(spec)
        writes = client.writes()

        plans = reconciler.plan_all(self._manifest(_with(spec, description="x"), _with(spec, name="new")))

        assert [(p.name, p.action) for p in plans] == [("bucket-access", Action.UPDATE), ("new", Action.CREATE)]
        assert client.writes() == writes


class TestImport:
    def test_import_then_apply_writes_once(
        self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec
    ):
        remote = client.create(spec.name, spec.description, spec.compartment_id, spec.statements)
        client.policies[remote.id].lifecycle_state = "ACTIVE"
        client._scripts.clear()

        record = reconciler.import_policy(remote.id)

        assert record.id == remote.id
        assert record.fingerprint is None
        assert store.get(spec.name) is not None

        assert reconciler.apply(spec).action == Action.UPDATE
        assert reconciler.apply(spec).action == Action.NOOP
        assert client.count("update") == 1

    def test_import_under_other_name(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        remote = client.create(spec.name, spec.description, spec.compartment_id, spec.statements)

        record = reconciler.import_policy(remote.id, name="renamed")

        assert record.name == "renamed"

    def test_import_missing_policy(self, reconciler: Reconciler):
        with pytest.raises(NotFoundError):
            reconciler.import_policy("ocid1.policy.oc1..missing")

    def test_import_id_tracked_under_other_name(
        self, reconciler: Reconciler, client: FakePolicyClient, store: StateStore, spec: PolicySpec
    ):
        policy_id = reconciler.apply(spec).record.id  # type: ignore[union-attr]

        with pytest.raises(ValueError, match="already tracked as policy 'bucket-access'"):
            reconciler.import_policy(policy_id, name="second")

        assert store.names() == [spec.name]


class TestPlanGuards:
    def test_plan_needs_desired_or_record(self, reconciler: Reconciler):
        with pytest.raises(ValueError):
            reconciler.plan(None, None)

    @pytest.mark.parametrize("action", [Action.UPDATE, Action.DELETE, Action.NOOP, Action.REPLACE])
    def test_execute_without_record(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec, action):
        with pytest.raises(ValueError, match="needs a tracked record"):
            reconciler.execute(ReconcilePlan(spec.name, action), spec, None)

        assert client.calls == []

    def test_create_without_desired(self, reconciler: Reconciler, client: FakePolicyClient, spec: PolicySpec):
        with pytest.raises(ValueError, match="needs a desired policy"):
            reconciler.execute(ReconcilePlan(spec.name, Action.CREATE), None, None)

        assert client.calls == []
