"""
Remote API client for identity policies.

PolicyClient is the boundary the adapter consumes. OciPolicyClient binds it to
the OCI Python SDK; transport, auth, retries and pagination belong to the SDK.
Native SDK errors are translated here:

  - ServiceError 404       -> NotFoundError
  - any other SDK failure  -> RemoteError (status, code, opc-request-id kept)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Protocol, Sequence, TypeVar

import oci

from ..config import OciConfig
from ..errors import ConfigError, NotFoundError, RemoteError
from ..secrets import SecretsProvider, resolve_secret
from .models import RemotePolicy

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PolicyClient(Protocol):
    """Remote policy operations."""

    def create(
        self,
        name: str,
        description: str,
        compartment_id: str,
        statements: Sequence[str],
    ) -> RemotePolicy:
        ...

    def get(self, policy_id: str) -> RemotePolicy:
        ...

    def update(
        self,
        policy_id: str,
        *,
        description: str | None = None,
        statements: Sequence[str] | None = None,
    ) -> RemotePolicy:
        ...

    def delete(self, policy_id: str) -> None:
        ...


def _to_remote(data: Any, etag: str | None) -> RemotePolicy:
    version_date = getattr(data, "version_date", None)
    return RemotePolicy(
        id=data.id,
        name=data.name,
        compartment_id=data.compartment_id,
        description=data.description or "",
        statements=list(data.statements or []),
        lifecycle_state=data.lifecycle_state,
        etag=etag,
        time_created=getattr(data, "time_created", None),
        inactive_status=getattr(data, "inactive_status", None),
        version_date=str(version_date) if version_date is not None else None,
    )


def _etag(response: Any) -> str | None:
    headers = getattr(response, "headers", None) or {}
    return headers.get("etag") or headers.get("ETag")


class OciPolicyClient:
    """PolicyClient backed by oci.identity.IdentityClient."""

    def __init__(self, identity_client: Any):
        self._client = identity_client

    @classmethod
    def from_config(
        cls,
        cfg: OciConfig,
        *,
        secrets_provider: SecretsProvider | None = None,
    ) -> OciPolicyClient:
        """Build the SDK client from an OCI config file profile."""
        try:
            sdk_config = oci.config.from_file(
                file_location=str(Path(cfg.config_file).expanduser()),
                profile_name=cfg.profile,
            )
            if cfg.region:
                sdk_config["region"] = cfg.region
            pass_phrase = resolve_secret(cfg.pass_phrase_ref, secrets_provider)
            if pass_phrase is not None:
                sdk_config["pass_phrase"] = pass_phrase
            oci.config.validate_config(sdk_config)
        except oci.exceptions.ClientError as e:
            raise ConfigError(f"OCI config {cfg.config_file} [{cfg.profile}]: {e}") from e
        return cls(oci.identity.IdentityClient(sdk_config))

    def _call(self, what: str, resource_id: str | None, fn: Callable[[], T]) -> T:
        try:
            return fn()
        except oci.exceptions.ServiceError as e:
            headers = getattr(e, "headers", None) or {}
            request_id = headers.get("opc-request-id")
            if e.status == 404:
                raise NotFoundError(f"{what}: {e.code}", resource_id=resource_id) from e
            raise RemoteError(
                f"{what} failed: {e.status} {e.code}: {e.message}",
                status=e.status,
                code=e.code,
                request_id=request_id,
                resource_id=resource_id,
            ) from e
        except (oci.exceptions.RequestException, oci.exceptions.ClientError) as e:
            raise RemoteError(f"{what} failed: {e}", resource_id=resource_id) from e

    def create(
        self,
        name: str,
        description: str,
        compartment_id: str,
        statements: Sequence[str],
    ) -> RemotePolicy:
        details = oci.identity.models.CreatePolicyDetails(
            compartment_id=compartment_id,
            name=name,
            description=description,
            statements=list(statements),
        )
        response = self._call("create_policy", None, lambda: self._client.create_policy(details))
        logger.debug("create_policy %s: opc-request-id=%s", name, getattr(response, "request_id", None))
        return _to_remote(response.data, _etag(response))

    def get(self, policy_id: str) -> RemotePolicy:
        response = self._call("get_policy", policy_id, lambda: self._client.get_policy(policy_id))
        return _to_remote(response.data, _etag(response))

    def update(
        self,
        policy_id: str,
        *,
        description: str | None = None,
        statements: Sequence[str] | None = None,
    ) -> RemotePolicy:
        kwargs: dict[str, Any] = {}
        if description is not None:
            kwargs["description"] = description
        if statements is not None:
            kwargs["statements"] = list(statements)
        details = oci.identity.models.UpdatePolicyDetails(**kwargs)
        response = self._call(
            "update_policy",
            policy_id,
            lambda: self._client.update_policy(policy_id, details),
        )
        return _to_remote(response.data, _etag(response))

    def delete(self, policy_id: str) -> None:
        self._call("delete_policy", policy_id, lambda: self._client.delete_policy(policy_id))
