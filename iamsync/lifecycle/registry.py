"""
Adapter registry for resource type → adapter factory lookup.

Resource modules register a factory under their resource type name. The CLI
and reconciler look the factory up instead of importing concrete adapters.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from .adapter import ResourceAdapter

AdapterFactory = Callable[..., "ResourceAdapter"]

# Global registry: resource type → factory
_ADAPTERS: dict[str, AdapterFactory] = {}


def register_adapter(resource_type: str, factory: AdapterFactory) -> None:
    """
    Register an adapter factory by resource type.

    Args:
        resource_type: Resource type name (e.g., "identity.policy")
        factory: Callable building an adapter for one tracked record
    """
    _ADAPTERS[resource_type] = factory


def get_adapter_factory(resource_type: str) -> AdapterFactory | None:
    """Look up a factory, or None if the type is not registered."""
    return _ADAPTERS.get(resource_type)


def build_adapter(resource_type: str, *args: Any, **kwargs: Any) -> "ResourceAdapter":
    """Build an adapter through its registered factory."""
    factory = get_adapter_factory(resource_type)
    if factory is None:
        raise KeyError(f"no adapter registered for resource type {resource_type!r}")
    return factory(*args, **kwargs)


def list_adapters() -> list[str]:
    return sorted(_ADAPTERS)


def clear_adapters() -> None:
    """Clear all registered adapters (for testing)."""
    _ADAPTERS.clear()
