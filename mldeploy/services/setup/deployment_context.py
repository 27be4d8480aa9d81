from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

from mldeploy.services.management_service import ManagementResponse


class DeploymentValidationError(ValueError):
    """Caller input rejected before any network call was made."""


class ManagementTransport(Protocol):
    """Authenticated access to the management endpoints (see ManagementService)."""

    async def get(self, endpoint: str, *, params: Optional[Mapping[str, str]] = None) -> ManagementResponse: ...

    async def post(
        self,
        endpoint: str,
        *,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> ManagementResponse: ...

    async def put(
        self,
        endpoint: str,
        *,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> ManagementResponse: ...

    async def remove(self, endpoint: str, *, params: Optional[Mapping[str, str]] = None) -> ManagementResponse: ...


class SettingsResolver(Protocol):
    """Turns on-disk definitions into request payloads (see SettingsService)."""

    def resolve(self, namespace: str) -> dict[str, Any]: ...

    def list_items(self, namespace: str) -> list[str]: ...


@dataclass(frozen=True)
class DeploymentContext:
    """Everything one deployment run talks to: the cluster and the definitions.

    Passed explicitly to every setup service instead of living in module globals.
    """

    management: ManagementTransport
    settings: SettingsResolver
