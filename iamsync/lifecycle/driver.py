"""
Lifecycle driver: create/read/update/delete with state polling.

Orchestrates: mutate (once) → poll get() until target | failure → set_data()

Key invariants:
- Mutating calls are issued exactly once; only polling repeats
- Any state outside the pending and target sets fails the operation
- The deadline is a hard wall-clock bound per polling phase
- On failure the tracked record keeps whatever was last fetched (no rollback)
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from ..config import DriverConfig
from ..errors import IamSyncError, NotFoundError, OperationTimeoutError, UnexpectedStateError
from .adapter import Operation, ResourceAdapter

logger = logging.getLogger(__name__)


@dataclass
class OperationResult:
    """Outcome of a successful driver operation."""

    operation: Operation
    resource_id: str | None
    final_state: str | None
    polls: int = 0
    elapsed: float = 0.0
    # True when delete found the resource already absent
    absent: bool = False


class LifecycleDriver:
    """
    Drives one adapter through one operation at a time.

    A driver holds no per-resource state, so one instance may serve many
    resources sequentially; callers wanting concurrency run one operation
    per resource per thread.
    """

    def __init__(
        self,
        config: DriverConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or DriverConfig()
        self._clock = clock
        self._sleep = sleep

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def create(self, adapter: ResourceAdapter) -> OperationResult:
        started = self._clock()
        logger.info("create %s: requested", adapter.metadata.resource_type)
        self._mutate(adapter, adapter.create)

        polls, state = self._wait(
            adapter,
            "create",
            pending=adapter.created_pending(),
            target=adapter.created_target(),
        )
        adapter.set_data()
        return self._finish(adapter, "create", state, polls, started)

    def read(self, adapter: ResourceAdapter) -> OperationResult:
        started = self._clock()
        try:
            adapter.get()
        except IamSyncError as e:
            raise e.attach(resource_id=adapter.id())

        state = adapter.state()
        if state in adapter.deleted_target():
            raise NotFoundError(
                f"{adapter.metadata.resource_type} is in deleted state",
                resource_id=adapter.id(),
                last_state=state,
            )
        adapter.set_data()
        return self._finish(adapter, "read", state, 1, started)

    def update(self, adapter: ResourceAdapter) -> OperationResult:
        started = self._clock()
        logger.info("update %s %s: requested", adapter.metadata.resource_type, adapter.id())
        self._mutate(adapter, adapter.update)

        # Update converges to the same target as create.
        polls, state = self._wait(
            adapter,
            "update",
            pending=adapter.created_pending(),
            target=adapter.created_target(),
        )
        adapter.set_data()
        return self._finish(adapter, "update", state, polls, started)

    def converge(self, adapter: ResourceAdapter) -> OperationResult:
        """
        Poll a resource already in flight to its created target.

        Nothing is mutated. Used to resume a create that an earlier run
        stopped waiting for; bounded by the create timeout.
        """
        started = self._clock()
        logger.info("create %s %s: resuming wait", adapter.metadata.resource_type, adapter.id())
        polls, state = self._wait(
            adapter,
            "create",
            pending=adapter.created_pending(),
            target=adapter.created_target(),
        )
        adapter.set_data()
        return self._finish(adapter, "create", state, polls, started)

    def delete(self, adapter: ResourceAdapter) -> OperationResult:
        started = self._clock()
        resource_id = adapter.id()
        logger.info("delete %s %s: requested", adapter.metadata.resource_type, resource_id)
        try:
            adapter.delete()
        except NotFoundError:
            logger.info("delete %s: already absent", resource_id)
            return OperationResult(
                operation="delete",
                resource_id=resource_id,
                final_state=None,
                elapsed=self._clock() - started,
                absent=True,
            )
        except IamSyncError as e:
            raise e.attach(resource_id=resource_id, last_state=adapter.state())

        try:
            polls, state = self._wait(
                adapter,
                "delete",
                pending=adapter.deleted_pending(),
                target=adapter.deleted_target(),
            )
        except _Absent as gone:
            return OperationResult(
                operation="delete",
                resource_id=resource_id,
                final_state=None,
                polls=gone.polls,
                elapsed=self._clock() - started,
                absent=True,
            )
        return self._finish(adapter, "delete", state, polls, started)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _mutate(self, adapter: ResourceAdapter, call: Callable[[], None]) -> None:
        try:
            call()
        except IamSyncError as e:
            raise e.attach(resource_id=adapter.id(), last_state=adapter.state())

    def _wait(
        self,
        adapter: ResourceAdapter,
        operation: Operation,
        *,
        pending: frozenset[str],
        target: frozenset[str],
    ) -> tuple[int, str | None]:
        """
        Poll get() until state is in target.

        The deadline counts from the first poll, not from the mutating call.
        Returns (polls, final_state). For delete, absence is target; it is
        signalled with _Absent so the caller can report it.
        """
        timeout = self.config.timeout_for(operation)
        deadline = self._clock() + timeout
        interval = self.config.poll_interval
        polls = 0
        missing = 0
        last_state: str | None = adapter.state()

        while True:
            polls += 1
            try:
                adapter.get()
            except NotFoundError as e:
                if operation == "delete":
                    logger.debug("delete %s: not found after %d polls", adapter.id(), polls)
                    raise _Absent(polls) from None
                missing += 1
                if missing > self.config.not_found_checks:
                    raise e.attach(resource_id=adapter.id(), last_state=last_state)
                logger.debug("%s %s: not found yet (%d)", operation, adapter.id(), missing)
                state = None
            except IamSyncError as e:
                raise e.attach(resource_id=adapter.id(), last_state=last_state)
            else:
                missing = 0
                adapter.observe()
                state = adapter.state()
                last_state = state
                logger.debug("%s %s: poll %d state=%s", operation, adapter.id(), polls, state)

                if state in target:
                    return polls, state
                if state not in pending:
                    raise UnexpectedStateError(
                        str(state),
                        expected=pending | target,
                        resource_id=adapter.id(),
                    )

            now = self._clock()
            if now >= deadline:
                raise OperationTimeoutError(
                    operation,
                    timeout,
                    resource_id=adapter.id(),
                    last_state=last_state,
                )
            self._sleep(min(interval, deadline - now))
            interval = min(interval * self.config.backoff_factor, self.config.max_poll_interval)

    def _finish(
        self,
        adapter: ResourceAdapter,
        operation: Operation,
        state: str | None,
        polls: int,
        started: float,
    ) -> OperationResult:
        result = OperationResult(
            operation=operation,
            resource_id=adapter.id(),
            final_state=state,
            polls=polls,
            elapsed=self._clock() - started,
        )
        log = logger.debug if operation == "read" else logger.info
        log(
            "%s %s: %s after %d polls (%.1fs)",
            operation,
            result.resource_id,
            state,
            polls,
            result.elapsed,
        )
        return result


class _Absent(Exception):
    """Delete polling observed the resource gone."""

    def __init__(self, polls: int):
        super().__init__(polls)
        self.polls = polls
