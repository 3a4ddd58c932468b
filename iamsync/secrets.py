"""
Secret references.

Configuration names secrets by reference ("<provider>:<key>"), never by value:

- env:VAR_NAME      environment variable
- file:/some/path   first line of a file (e.g. a mounted secret)

Only the reference is ever written to config, state or logs.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol


class SecretsProvider(Protocol):
    def supports(self, ref: str) -> bool:
        ...

    def get(self, ref: str) -> str | None:
        """Resolve a reference, or None when the secret is not available."""
        ...


class EnvSecretsProvider:
    """Resolve "env:VAR_NAME" from the process environment."""

    PREFIX = "env:"

    def supports(self, ref: str) -> bool:
        return ref.startswith(self.PREFIX)

    def get(self, ref: str) -> str | None:
        if not self.supports(ref):
            return None
        return os.environ.get(ref[len(self.PREFIX) :])


class FileSecretsProvider:
    """Resolve "file:PATH" to the file's first line, stripped."""

    PREFIX = "file:"

    def supports(self, ref: str) -> bool:
        return ref.startswith(self.PREFIX)

    def get(self, ref: str) -> str | None:
        if not self.supports(ref):
            return None
        path = Path(ref[len(self.PREFIX) :]).expanduser()
        if not path.is_file():
            return None
        lines = path.read_text(encoding="utf-8").splitlines()
        return lines[0].strip() if lines else ""


class CompositeSecretsProvider:
    """Try each provider in order until one returns a value."""

    def __init__(self, providers: list[SecretsProvider] | None = None):
        self.providers = providers or [EnvSecretsProvider(), FileSecretsProvider()]

    def supports(self, ref: str) -> bool:
        return any(p.supports(ref) for p in self.providers)

    def get(self, ref: str) -> str | None:
        for provider in self.providers:
            if provider.supports(ref):
                value = provider.get(ref)
                if value is not None:
                    return value
        return None


def resolve_secret(ref: str | None, provider: SecretsProvider | None = None) -> str | None:
    """Resolve a single optional reference."""
    if not ref:
        return None
    provider = provider or CompositeSecretsProvider()
    return provider.get(ref)
