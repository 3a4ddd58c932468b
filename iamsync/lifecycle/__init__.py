"""
Generic lifecycle driver for remote, eventually-consistent resources.

The driver polls a resource through pending states until it reaches a target
state or fails. Everything resource-specific lives behind ResourceAdapter.
"""

from __future__ import annotations

from .adapter import AdapterMetadata, Operation, ResourceAdapter
from .driver import LifecycleDriver, OperationResult
from .registry import (
    build_adapter,
    clear_adapters,
    get_adapter_factory,
    list_adapters,
    register_adapter,
)

__all__ = [
    # Adapter protocol
    "AdapterMetadata",
    "Operation",
    "ResourceAdapter",
    # Driver
    "LifecycleDriver",
    "OperationResult",
    # Registry
    "build_adapter",
    "clear_adapters",
    "get_adapter_factory",
    "list_adapters",
    "register_adapter",
]
