"""
Configuration loading.

Configuration is explicit data passed into the driver and the remote client,
never a process-wide default. The file format is TOML:

    [driver]
    create_timeout = 300
    poll_interval = 1.0

    [oci]
    profile = "DEFAULT"
    pass_phrase_ref = "env:OCI_KEY_PASSPHRASE"

    [drift]
    accept_legacy = false
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any

from .errors import ConfigError

DEFAULT_TIMEOUT_S = 300.0


@dataclass(frozen=True)
class DriverConfig:
    """Deadlines and polling cadence for the lifecycle driver (seconds)."""

    create_timeout: float = DEFAULT_TIMEOUT_S
    update_timeout: float = DEFAULT_TIMEOUT_S
    delete_timeout: float = DEFAULT_TIMEOUT_S
    poll_interval: float = 1.0
    backoff_factor: float = 2.0
    max_poll_interval: float = 10.0
    not_found_checks: int = 20

    def __post_init__(self) -> None:
        errors = self.validate()
        if errors:
            raise ConfigError("invalid driver config: " + "; ".join(errors))

    def validate(self) -> list[str]:
        errors: list[str] = []
        for name in ("create_timeout", "update_timeout", "delete_timeout"):
            if getattr(self, name) <= 0:
                errors.append(f"{name} must be positive")
        if self.poll_interval <= 0:
            errors.append("poll_interval must be positive")
        if self.backoff_factor < 1.0:
            errors.append("backoff_factor must be >= 1.0")
        if self.max_poll_interval < self.poll_interval:
            errors.append("max_poll_interval must be >= poll_interval")
        if self.not_found_checks < 0:
            errors.append("not_found_checks must be >= 0")
        return errors

    def timeout_for(self, operation: str) -> float:
        """Deadline for a polling phase ("create" | "update" | "delete")."""
        try:
            return float(getattr(self, f"{operation}_timeout"))
        except AttributeError:
            raise ValueError(f"no timeout configured for operation {operation!r}") from None


@dataclass(frozen=True)
class OciConfig:
    """How to build the OCI SDK client."""

    config_file: str = "~/.oci/config"
    profile: str = "DEFAULT"
    region: str | None = None
    # Reference (e.g. "env:OCI_KEY_PASSPHRASE"), never the passphrase itself
    pass_phrase_ref: str | None = None


@dataclass(frozen=True)
class DriftConfig:
    # Honour md5 fingerprints recorded by the older "#"-joined scheme
    accept_legacy: bool = False


@dataclass(frozen=True)
class Settings:
    driver: DriverConfig = field(default_factory=DriverConfig)
    oci: OciConfig = field(default_factory=OciConfig)
    drift: DriftConfig = field(default_factory=DriftConfig)


def coerce_dict(value: Any) -> dict[str, Any]:
    """Optional TOML tables: anything but a table reads as empty."""
    return value if isinstance(value, dict) else {}


def _pick(cls: type, raw: dict[str, Any], section: str) -> dict[str, Any]:
    known = {f.name: f for f in fields(cls)}
    unknown = sorted(set(raw) - set(known))
    if unknown:
        raise ConfigError(f"unknown keys in [{section}]: {', '.join(unknown)}")
    return dict(raw)


def _driver_from_dict(raw: dict[str, Any]) -> DriverConfig:
    values = _pick(DriverConfig, raw, "driver")
    try:
        for key, value in values.items():
            if key == "not_found_checks":
                values[key] = int(value)
            else:
                values[key] = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"invalid value in [driver]: {e}") from e
    return DriverConfig(**values)


def _oci_from_dict(raw: dict[str, Any]) -> OciConfig:
    values = _pick(OciConfig, raw, "oci")
    for key, value in values.items():
        if value is not None and not isinstance(value, str):
            raise ConfigError(f"[oci] {key} must be a string")
    return OciConfig(**values)


def _drift_from_dict(raw: dict[str, Any]) -> DriftConfig:
    values = _pick(DriftConfig, raw, "drift")
    for key, value in values.items():
        if not isinstance(value, bool):
            raise ConfigError(f"[drift] {key} must be true or false")
    return DriftConfig(**values)


def load_config(path: Path | None) -> Settings:
    """
    Load settings from a TOML file.

    A missing path (or None) yields the defaults.
    """
    import tomllib

    if path is None or not path.exists():
        return Settings()

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path}: {e}") from e

    return Settings(
        driver=_driver_from_dict(coerce_dict(data.get("driver"))),
        oci=_oci_from_dict(coerce_dict(data.get("oci"))),
        drift=_drift_from_dict(coerce_dict(data.get("drift"))),
    )
