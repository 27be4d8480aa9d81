"""Shared fixtures: a scripted management transport and in-memory settings."""

from __future__ import annotations

import asyncio
import copy
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import pytest

from mldeploy.services.management_service import ManagementResponse
from mldeploy.services.settings_service import SettingsNotFoundError
from mldeploy.services.setup.deployment_context import DeploymentContext


@dataclass(frozen=True)
class Call:
    method: str
    endpoint: str
    body: Optional[dict[str, Any]]
    params: Optional[dict[str, str]]


def error_body(message: str) -> dict[str, Any]:
    return {"errorResponse": {"statusCode": 500, "message": message}}


class FakeManagementService:
    """Records every call and answers from scripted (method, endpoint[, params]) routes."""

    def __init__(self) -> None:
        self.calls: list[Call] = []
        self._routes: dict[tuple[str, str, Optional[frozenset]], ManagementResponse] = {}

    def on(
        self,
        method: str,
        endpoint: str,
        status: int,
        data: Any = None,
        *,
        params: Optional[Mapping[str, str]] = None,
    ) -> "FakeManagementService":
        key = (method.upper(), endpoint, frozenset(params.items()) if params else None)
        self._routes[key] = ManagementResponse(status=status, data=data)
        return self

    def calls_to(self, method: str, endpoint: Optional[str] = None) -> list[Call]:
        return [
            c for c in self.calls
            if c.method == method.upper() and (endpoint is None or c.endpoint == endpoint)
        ]

    async def _handle(
        self,
        method: str,
        endpoint: str,
        body: Optional[Mapping[str, Any]],
        params: Optional[Mapping[str, str]],
    ) -> ManagementResponse:
        self.calls.append(
            Call(method, endpoint, dict(body) if body is not None else None, dict(params) if params else None)
        )
        # Let sibling tasks interleave like real network calls would.
        await asyncio.sleep(0)
        specific = self._routes.get((method, endpoint, frozenset(params.items()) if params else None))
        if specific is not None:
            return specific
        generic = self._routes.get((method, endpoint, None))
        if generic is not None:
            return generic
        raise AssertionError(f"Unexpected call: {method} {endpoint} params={params}")

    async def get(self, endpoint, *, params=None):
        return await self._handle("GET", endpoint, None, params)

    async def post(self, endpoint, *, body=None, params=None):
        return await self._handle("POST", endpoint, body, params)

    async def put(self, endpoint, *, body=None, params=None):
        return await self._handle("PUT", endpoint, body, params)

    async def remove(self, endpoint, *, params=None):
        return await self._handle("DELETE", endpoint, None, params)


class FakeSettings:
    """Definitions keyed by full namespace path, e.g. "triggers/on-create"."""

    def __init__(self, definitions: Optional[dict[str, dict[str, Any]]] = None) -> None:
        self.definitions = dict(definitions or {})

    def resolve(self, namespace: str) -> dict[str, Any]:
        if namespace not in self.definitions:
            raise SettingsNotFoundError(f"No settings found for {namespace!r}")
        return copy.deepcopy(self.definitions[namespace])

    def list_items(self, namespace: str) -> list[str]:
        prefix = namespace + "/"
        return sorted(
            key[len(prefix):]
            for key in self.definitions
            if key.startswith(prefix) and "/" not in key[len(prefix):]
        )


@pytest.fixture
def management() -> FakeManagementService:
    return FakeManagementService()


@pytest.fixture
def settings() -> FakeSettings:
    return FakeSettings()


@pytest.fixture
def context(management: FakeManagementService, settings: FakeSettings) -> DeploymentContext:
    return DeploymentContext(management=management, settings=settings)
