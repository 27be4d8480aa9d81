from __future__ import annotations

import logging
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any, Iterable, Mapping, Optional
from urllib.parse import quote

from mldeploy.services.management_service import ManagementResponse, ManagementServiceError
from mldeploy.services.setup.deployment_context import DeploymentContext


logger = logging.getLogger(__name__)


def apply_allow_list(allowed: Optional[Iterable[str]], settings: Mapping[str, Any]) -> dict[str, Any]:
    """Keep only the allowed properties of `settings` (all of them when `allowed` is None).

    Property order of `settings` is preserved.
    """

    if allowed is None:
        return dict(settings)
    allowed_set = set(allowed)
    return {key: value for key, value in settings.items() if key in allowed_set}


@dataclass(frozen=True)
class ResourceIdentity:
    """Address of one resource instance on the cluster.

    `collection` is the endpoint resources of this kind are created under, e.g.
    "/manage/LATEST/databases/app-content/triggers". `name` is the identifying value
    appended to it for GET/PUT; it is None for singletons and for resources that are
    addressed by a query discriminator (`params`, e.g. {"uri": "..."}) instead.
    """

    kind: str
    collection: str
    name: Optional[str] = None
    params: Optional[Mapping[str, str]] = field(default=None, hash=False)
    database: Optional[str] = None

    @property
    def endpoint(self) -> str:
        if self.name is None:
            return self.collection
        return f"{self.collection}/{quote(str(self.name), safe='')}"

    @property
    def properties_endpoint(self) -> str:
        return f"{self.endpoint}/properties"

    @property
    def label(self) -> str:
        parts = [self.kind]
        if self.name is not None:
            parts.append(str(self.name))
        elif self.params:
            parts.append(",".join(f"{k}={v}" for k, v in self.params.items()))
        if self.database:
            parts.append(f"(database={self.database})")
        return " ".join(parts)


def unexpected_status(response: ManagementResponse, message: str) -> ManagementServiceError:
    """Build (and log) the error for a response outside the expected statuses."""

    error = ManagementServiceError.from_response(message, response)
    logger.error("%s", error)
    return error


def expect_status(response: ManagementResponse, expected: HTTPStatus, message: str) -> ManagementResponse:
    if response.status != expected:
        raise unexpected_status(response, message)
    return response


class ResourceUpsertService:
    """Create-if-absent / update-if-present for any management resource kind."""

    def __init__(self, context: DeploymentContext) -> None:
        self._context = context

    async def exists(self, identity: ResourceIdentity) -> bool:
        response = await self._context.management.get(identity.endpoint, params=identity.params)
        if response.found:
            return True
        if response.not_found:
            return False
        raise unexpected_status(response, f"Error when checking {identity.label}")

    async def create(self, identity: ResourceIdentity, payload: Mapping[str, Any]) -> str:
        logger.info("Creating %s", identity.label)
        response = await self._context.management.post(identity.collection, body=payload, params=identity.params)
        expect_status(response, HTTPStatus.CREATED, f"Error when creating {identity.label}")
        return f"{identity.label} created"

    async def update(self, identity: ResourceIdentity, payload: Mapping[str, Any]) -> str:
        if not payload:
            # Nothing updatable; the existing resource already satisfies the definition.
            logger.info("Nothing to update for %s", identity.label)
            return f"{identity.label} unchanged"

        logger.info("Updating %s", identity.label)
        response = await self._context.management.put(
            identity.properties_endpoint,
            body=payload,
            params=identity.params,
        )
        expect_status(response, HTTPStatus.NO_CONTENT, f"Error when updating {identity.label}")
        return f"{identity.label} updated"

    async def upsert(
        self,
        identity: ResourceIdentity,
        settings: Mapping[str, Any],
        *,
        allowed: Optional[Iterable[str]] = None,
    ) -> str:
        """GET the resource, then POST the full settings (404) or PUT the allowed ones (200).

        Returns a short outcome message ("... created" / "... updated" / "... unchanged").

        Raises:
            ManagementServiceError: on any status outside 200/404 for the check, 201 for
                the create or 204 for the update.
        """

        if await self.exists(identity):
            return await self.update(identity, apply_allow_list(allowed, settings))
        return await self.create(identity, settings)
