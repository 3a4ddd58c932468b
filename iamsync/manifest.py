"""
Desired-state manifest.

Policies are declared as TOML array-of-tables entries; [defaults] supplies a
fallback compartment:

    [defaults]
    compartment_id = "ocid1.tenancy.oc1..aaaa"

    [[policy]]
    name = "bucket-access"
    description = "Group A bucket access"
    statements = ["Allow group A to read buckets"]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import coerce_dict
from .errors import ManifestError
from .policy.models import PolicySpec


@dataclass
class Manifest:
    """Desired policies, in declaration order."""

    path: Path | None
    policies: list[PolicySpec] = field(default_factory=list)

    def names(self) -> list[str]:
        return [p.name for p in self.policies]

    def get(self, name: str) -> PolicySpec | None:
        for policy in self.policies:
            if policy.name == name:
                return policy
        return None


def parse_manifest(data: dict[str, Any], path: Path | None = None) -> Manifest:
    """
    Build a Manifest from decoded TOML.

    All problems are collected and raised together as one ManifestError.
    """
    defaults = coerce_dict(data.get("defaults"))
    default_compartment = defaults.get("compartment_id")

    problems: list[str] = []
    policies: list[PolicySpec] = []
    seen: set[str] = set()

    raw_policies = data.get("policy", [])
    if not isinstance(raw_policies, list):
        raise ManifestError(["'policy' must be an array of tables ([[policy]])"])

    for idx, raw in enumerate(raw_policies):
        where = f"policy[{idx}]"
        if not isinstance(raw, dict):
            problems.append(f"{where}: must be a table")
            continue

        name = str(raw.get("name", "")).strip()
        if not name:
            problems.append(f"{where}: name is required")
            continue
        where = f"policy {name!r}"
        if name in seen:
            problems.append(f"{where}: duplicate name")
            continue
        seen.add(name)

        compartment_id = raw.get("compartment_id", default_compartment)
        if not isinstance(compartment_id, str) or not compartment_id.strip():
            problems.append(f"{where}: compartment_id is required (or set [defaults].compartment_id)")
            continue

        description = raw.get("description")
        if not isinstance(description, str) or not description.strip():
            problems.append(f"{where}: description is required")
            continue

        statements = raw.get("statements")
        if not isinstance(statements, list) or not statements:
            problems.append(f"{where}: statements must be a non-empty array")
            continue
        bad = [i for i, s in enumerate(statements) if not isinstance(s, str) or not s.strip()]
        if bad:
            problems.append(f"{where}: statements {bad} must be non-empty strings")
            continue

        policies.append(
            PolicySpec(
                name=name,
                description=description,
                compartment_id=compartment_id.strip(),
                statements=tuple(statements),
            )
        )

    if problems:
        raise ManifestError(problems)
    return Manifest(path=path, policies=policies)


def load_manifest(path: Path) -> Manifest:
    """Load desired policies from a TOML manifest."""
    import tomllib

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ManifestError([f"{path}: {e}"]) from e
    except OSError as e:
        raise ManifestError([f"{path}: {e.strerror or e}"]) from e
    return parse_manifest(data, path)
