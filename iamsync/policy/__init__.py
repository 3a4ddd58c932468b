"""
Identity policy resource: model, remote client and lifecycle adapter.

Importing this package registers PolicyAdapter under "identity.policy".
"""

from __future__ import annotations

from .adapter import ACTIVE, CREATING, DELETED, DELETING, RESOURCE_TYPE, PolicyAdapter
from .client import OciPolicyClient, PolicyClient
from .models import ObservedPolicy, PolicySpec, RemotePolicy, TrackedPolicy

__all__ = [
    "ACTIVE",
    "CREATING",
    "DELETED",
    "DELETING",
    "RESOURCE_TYPE",
    "ObservedPolicy",
    "OciPolicyClient",
    "PolicyAdapter",
    "PolicyClient",
    "PolicySpec",
    "RemotePolicy",
    "TrackedPolicy",
]
