"""Pytest configuration and fixtures."""

from __future__ import annotations

import copy
import threading
from collections import deque
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

import pytest

from iamsync.config import DriverConfig
from iamsync.errors import IamSyncError, NotFoundError
from iamsync.lifecycle import LifecycleDriver
from iamsync.policy import PolicySpec, RemotePolicy
from iamsync.reconcile import Reconciler
from iamsync.state import StateStore

# Scripted state meaning "get() reports the policy as absent"
NOT_FOUND = "<not found>"


class FakeClock:
    """Monotonic clock that only moves when sleep() is called."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakePolicyClient:
    """
    In-memory remote for identity policies.

    Each write bumps the etag. After create/update/delete, get() walks the
    state script set for that operation; the last scripted state sticks.
    """

    DEFAULT_SCRIPTS = {
        "create": ["ACTIVE"],
        "update": ["ACTIVE"],
        "delete": ["DELETING", "DELETED"],
    }

    def __init__(self, *, reformat: Callable[[str], str] | None = None):
        self.policies: dict[str, RemotePolicy] = {}
        self.calls: list[tuple[str, str | None]] = []
        self.errors: dict[str, IamSyncError] = {}
        self.reformat = reformat or (lambda s: s)
        self._next_scripts: dict[str, list[str]] = {}
        self._scripts: dict[str, deque[str]] = {}
        self._ids = 0
        self._etags = 0
        self._lock = threading.Lock()

    # -- test helpers ---------------------------------------------------------

    def script(self, operation: str, states: Sequence[str]) -> None:
        """States get() reports after the next `operation` call."""
        self._next_scripts[operation] = list(states)

    def hold(self, policy_id: str, states: Sequence[str]) -> None:
        """States get() reports for an existing policy, from now on."""
        self.policies[policy_id].lifecycle_state = states[0]
        self._scripts[policy_id] = deque(states)

    def count(self, operation: str) -> int:
        return sum(1 for op, _ in self.calls if op == operation)

    def writes(self) -> int:
        return sum(self.count(op) for op in ("create", "update", "delete"))

    def external_edit(
        self,
        policy_id: str,
        *,
        statements: Sequence[str] | None = None,
        description: str | None = None,
    ) -> str:
        """Modify a policy out-of-band; returns the new etag."""
        policy = self.policies[policy_id]
        if statements is not None:
            policy.statements = list(statements)
        if description is not None:
            policy.description = description
        policy.etag = self._next_etag()
        return policy.etag

    # -- internals ------------------------------------------------------------

    def _next_etag(self) -> str:
        with self._lock:
            self._etags += 1
            return f"E{self._etags}"

    def _next_id(self) -> str:
        with self._lock:
            self._ids += 1
            return f"ocid1.policy.oc1..{self._ids:04d}"

    def _raise(self, operation: str) -> None:
        error = self.errors.get(operation)
        if error is not None:
            raise error

    def _start_script(self, operation: str, policy_id: str) -> None:
        states = self._next_scripts.pop(operation, self.DEFAULT_SCRIPTS[operation])
        self._scripts[policy_id] = deque(states)

    def _advance(self, policy_id: str) -> None:
        script = self._scripts.get(policy_id)
        if not script:
            return
        state = script.popleft()
        if not script:
            del self._scripts[policy_id]
            if state == NOT_FOUND:
                self.policies.pop(policy_id, None)
            elif policy_id in self.policies:
                self.policies[policy_id].lifecycle_state = state
            return
        if state == NOT_FOUND:
            raise NotFoundError("policy not found", resource_id=policy_id)
        self.policies[policy_id].lifecycle_state = state

    # -- PolicyClient ---------------------------------------------------------

    def create(self, name, description, compartment_id, statements) -> RemotePolicy:
        self.calls.append(("create", None))
        self._raise("create")
        policy_id = self._next_id()
        self.policies[policy_id] = RemotePolicy(
            id=policy_id,
            name=name,
            compartment_id=compartment_id,
            description=description,
            statements=[self.reformat(s) for s in statements],
            lifecycle_state="CREATING",
            etag=self._next_etag(),
            time_created=datetime(2024, 1, 1, tzinfo=timezone.utc),
            inactive_status=None,
            version_date=None,
        )
        self._start_script("create", policy_id)
        return copy.deepcopy(self.policies[policy_id])

    def get(self, policy_id: str) -> RemotePolicy:
        self.calls.append(("get", policy_id))
        self._raise("get")
        self._advance(policy_id)
        if policy_id not in self.policies:
            raise NotFoundError("policy not found", resource_id=policy_id)
        return copy.deepcopy(self.policies[policy_id])

    def update(self, policy_id: str, *, description=None, statements=None) -> RemotePolicy:
        self.calls.append(("update", policy_id))
        self._raise("update")
        if policy_id not in self.policies:
            raise NotFoundError("policy not found", resource_id=policy_id)
        policy = self.policies[policy_id]
        if description is not None:
            policy.description = description
        if statements is not None:
            policy.statements = [self.reformat(s) for s in statements]
        policy.etag = self._next_etag()
        self._start_script("update", policy_id)
        return copy.deepcopy(policy)

    def delete(self, policy_id: str) -> None:
        self.calls.append(("delete", policy_id))
        self._raise("delete")
        if policy_id not in self.policies:
            raise NotFoundError("policy not found", resource_id=policy_id)
        self.policies[policy_id].lifecycle_state = "DELETING"
        self._start_script("delete", policy_id)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def driver_config() -> DriverConfig:
    return DriverConfig(
        create_timeout=30,
        update_timeout=30,
        delete_timeout=30,
        poll_interval=1.0,
        backoff_factor=1.0,
        max_poll_interval=1.0,
        not_found_checks=2,
    )


@pytest.fixture
def driver(driver_config: DriverConfig, clock: FakeClock) -> LifecycleDriver:
    return LifecycleDriver(driver_config, clock=clock.monotonic, sleep=clock.sleep)


@pytest.fixture
def client() -> FakePolicyClient:
    return FakePolicyClient()


@pytest.fixture
def store(tmp_path: Path) -> StateStore:
    return StateStore(tmp_path / ".iamsync" / "state.json")


@pytest.fixture
def reconciler(client: FakePolicyClient, driver: LifecycleDriver, store: StateStore) -> Reconciler:
    return Reconciler(client, driver, store=store)


@pytest.fixture
def spec() -> PolicySpec:
    return PolicySpec(
        name="bucket-access",
        description="Group A bucket access",
        compartment_id="ocid1.tenancy.oc1..aaaa",
        statements=(
            "Allow group A to read buckets",
            "Allow group A to write objects",
        ),
    )
