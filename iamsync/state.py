"""
Local state store for tracked policies.

Records live in one JSON document keyed by policy name:

    .iamsync/state.json
    {"version": 1, "policies": {"<name>": {...TrackedPolicy...}}}

Writes go to a temp file that is then renamed over the original, so a crash
never leaves a half-written document. A lock serializes writers within the
process.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Any

from .policy.models import TrackedPolicy

STATE_VERSION = 1
DEFAULT_STATE_PATH = Path(".iamsync") / "state.json"


class StateStore:
    """JSON-file persistence for TrackedPolicy records."""

    def __init__(self, path: Path | None = None):
        self.path = path or DEFAULT_STATE_PATH
        self._lock = threading.Lock()

    @property
    def state_dir(self) -> Path:
        return self.path.parent

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"version": STATE_VERSION, "policies": {}}

        data = json.loads(self.path.read_text(encoding="utf-8"))
        version = data.get("version")
        if version != STATE_VERSION:
            raise ValueError(f"{self.path}: unsupported state version {version!r}")
        data.setdefault("policies", {})
        return data

    def _write(self, data: dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.path.with_suffix(".tmp")
        temp_path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
        temp_path.replace(self.path)

    def load(self) -> dict[str, TrackedPolicy]:
        """All tracked records, keyed by name."""
        with self._lock:
            data = self._read()
        return {name: TrackedPolicy.from_dict(raw) for name, raw in data["policies"].items()}

    def get(self, name: str) -> TrackedPolicy | None:
        with self._lock:
            raw = self._read()["policies"].get(name)
        return TrackedPolicy.from_dict(raw) if raw is not None else None

    def put(self, record: TrackedPolicy) -> None:
        with self._lock:
            data = self._read()
            data["policies"][record.name] = record.to_dict()
            self._write(data)

    def remove(self, name: str) -> bool:
        """Discard a record. Returns False if it was not tracked."""
        with self._lock:
            data = self._read()
            if name not in data["policies"]:
                return False
            del data["policies"][name]
            self._write(data)
            return True

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._read()["policies"])

    def find_by_id(self, resource_id: str) -> TrackedPolicy | None:
        for record in self.load().values():
            if record.id == resource_id:
                return record
        return None
