"""
Adapter protocol for remote resources driven through the lifecycle driver.

An adapter binds one tracked record to one remote resource. The driver only
ever talks to this interface, so pending/target state membership is data the
adapter supplies, not something the driver knows.

Key design decisions:
- Mutating calls (create/update/delete) are never retried by the driver
- get() is the only call repeated while polling
- observe() runs after every successful poll; set_data() runs once per
  successful operation, after convergence
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal

Operation = Literal["create", "read", "update", "delete"]


@dataclass(frozen=True)
class AdapterMetadata:
    """Static metadata about the resource type an adapter manages."""

    resource_type: str  # e.g., "identity.policy"
    display_name: str = ""


class ResourceAdapter(ABC):
    """
    Capability set consumed by LifecycleDriver.

    Implementations hold the tracked record and the last fetched remote
    object; id() and state() read from that object.
    """

    @property
    @abstractmethod
    def metadata(self) -> AdapterMetadata:
        ...

    # -------------------------------------------------------------------------
    # Identity and state of the last fetched remote object
    # -------------------------------------------------------------------------

    @abstractmethod
    def id(self) -> str | None:
        """Remote identity, or None before the resource exists."""
        ...

    @abstractmethod
    def state(self) -> str | None:
        """Remote lifecycle state of the last fetched object."""
        ...

    # -------------------------------------------------------------------------
    # State sets
    # -------------------------------------------------------------------------

    @abstractmethod
    def created_pending(self) -> frozenset[str]:
        ...

    @abstractmethod
    def created_target(self) -> frozenset[str]:
        ...

    @abstractmethod
    def deleted_pending(self) -> frozenset[str]:
        ...

    @abstractmethod
    def deleted_target(self) -> frozenset[str]:
        ...

    # -------------------------------------------------------------------------
    # Remote calls
    # -------------------------------------------------------------------------

    @abstractmethod
    def create(self) -> None:
        """Issue the create call. Raises RemoteError on failure."""
        ...

    @abstractmethod
    def get(self) -> None:
        """Fetch the remote object. Raises NotFoundError if it is gone."""
        ...

    @abstractmethod
    def update(self) -> None:
        """Issue the update call. Raises RemoteError on failure."""
        ...

    @abstractmethod
    def delete(self) -> None:
        """Issue the delete call. NotFoundError means it is already gone."""
        ...

    @abstractmethod
    def set_data(self) -> None:
        """Materialize the remote object back into the tracked record."""
        ...

    def observe(self) -> None:
        """
        Copy the last fetched object into the record without committing a write.

        Called after every successful poll, so a failed or timed out operation
        leaves the record at the last state actually seen.
        """
