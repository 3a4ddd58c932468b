"""
Error taxonomy for reconciliation.

Every error raised by the lifecycle core carries the resource id and the
last observed remote state, so a caller can decide whether re-running the
whole reconciliation is safe.

- RemoteError: transport or API failure (never retried by the core)
- UnexpectedStateError: remote state outside the declared pending/target sets
- OperationTimeoutError: polling deadline exceeded
- NotFoundError: remote resource absent (an error for Read, success for Delete)
"""

from __future__ import annotations

from typing import Iterable


class IamSyncError(Exception):
    """Base class for all iamsync errors."""

    def __init__(
        self,
        message: str,
        *,
        resource_id: str | None = None,
        last_state: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.resource_id = resource_id
        self.last_state = last_state

    def attach(self, *, resource_id: str | None = None, last_state: str | None = None) -> "IamSyncError":
        """Fill in context the raiser did not know. Existing values win."""
        if self.resource_id is None and resource_id:
            self.resource_id = resource_id
        if self.last_state is None and last_state:
            self.last_state = last_state
        return self

    def __str__(self) -> str:
        parts = [self.message]
        if self.resource_id:
            parts.append(f"resource_id={self.resource_id}")
        if self.last_state:
            parts.append(f"last_state={self.last_state}")
        if len(parts) == 1:
            return self.message
        return f"{parts[0]} ({', '.join(parts[1:])})"


class RemoteError(IamSyncError):
    """The remote API call failed."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        code: str | None = None,
        request_id: str | None = None,
        resource_id: str | None = None,
        last_state: str | None = None,
    ):
        super().__init__(message, resource_id=resource_id, last_state=last_state)
        self.status = status
        self.code = code
        self.request_id = request_id


class NotFoundError(IamSyncError):
    """The remote resource does not exist (or no longer exists)."""


class UnexpectedStateError(IamSyncError):
    """The remote resource reached a state outside the declared sets."""

    def __init__(
        self,
        state: str,
        *,
        expected: Iterable[str] = (),
        resource_id: str | None = None,
    ):
        self.expected = sorted(set(expected))
        super().__init__(
            f"unexpected state {state!r}, expected one of {self.expected}",
            resource_id=resource_id,
            last_state=state,
        )


class OperationTimeoutError(IamSyncError):
    """The polling deadline expired before the target state was observed."""

    def __init__(
        self,
        operation: str,
        timeout: float,
        *,
        resource_id: str | None = None,
        last_state: str | None = None,
    ):
        super().__init__(
            f"{operation} did not converge within {timeout:g}s",
            resource_id=resource_id,
            last_state=last_state,
        )
        self.operation = operation
        self.timeout = timeout


class ManifestError(IamSyncError):
    """The desired-state manifest is invalid."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("invalid manifest: " + "; ".join(self.problems))


class ConfigError(IamSyncError):
    """The configuration file is invalid."""
