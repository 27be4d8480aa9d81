from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any, Mapping, Optional

import aiohttp

from mldeploy.services.config import ManagementConfig


logger = logging.getLogger(__name__)

MANAGE_API_BASE = "/manage/LATEST"


class ManagementServiceError(RuntimeError):
    """Unexpected answer (or no answer) from the management API."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, server_message: Optional[str] = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.server_message = server_message

    @staticmethod
    def from_response(message: str, response: "ManagementResponse") -> "ManagementServiceError":
        details = response.error_message
        full = f"{message} [Error {response.status}]"
        if details:
            full = f"{full} {details}"
        return ManagementServiceError(full, status_code=response.status, server_message=details)


@dataclass(frozen=True)
class ManagementResponse:
    status: int
    data: Any = None

    @property
    def found(self) -> bool:
        return self.status == HTTPStatus.OK

    @property
    def not_found(self) -> bool:
        return self.status == HTTPStatus.NOT_FOUND

    @property
    def error_message(self) -> Optional[str]:
        # Typical error body: {"errorResponse": {"statusCode": 400, "message": "..."}}
        if isinstance(self.data, dict):
            error = self.data.get("errorResponse")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
        if isinstance(self.data, str) and self.data.strip():
            return self.data.strip()
        return None


def manage_path(*parts: str) -> str:
    """Build a management endpoint path, e.g. manage_path("databases", "Documents")."""

    cleaned = [str(p).strip("/") for p in parts if p is not None and str(p).strip("/")]
    return "/".join([MANAGE_API_BASE, *cleaned])


class ManagementService:
    """Minimal async client for the MarkLogic management REST API.

    Uses a shared aiohttp session owned by the caller (the FastAPI lifespan in the
    app, a test fixture otherwise). Endpoints are absolute paths such as
    "/manage/LATEST/databases/Documents"; the host/port come from ManagementConfig.
    """

    def __init__(self, config: ManagementConfig, *, session: aiohttp.ClientSession) -> None:
        self._config = config
        self._session = session
        self._auth = aiohttp.BasicAuth(config.username, config.password)
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)

    @staticmethod
    def _parse_body(raw: bytes, content_type: str) -> Any:
        if not raw:
            return None
        text = raw.decode("utf-8", errors="replace")
        if "json" in content_type:
            try:
                return json.loads(text)
            except ValueError:
                return text
        return text

    async def _request(
        self,
        *,
        method: str,
        endpoint: str,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> ManagementResponse:
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint

        url = f"{self._config.manage_base_url}{endpoint}"
        headers = {"Accept": "application/json"}

        try:
            async with self._session.request(
                method.upper(),
                url,
                json=dict(body) if body is not None else None,
                params=dict(params) if params else None,
                headers=headers,
                auth=self._auth,
                timeout=self._timeout,
            ) as resp:
                raw = await resp.read()
                return ManagementResponse(
                    status=resp.status,
                    data=self._parse_body(raw, resp.headers.get("Content-Type", "")),
                )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.exception("Management request failed (method=%s endpoint=%s)", method, endpoint)
            raise ManagementServiceError(f"Management request failed ({method} {endpoint})") from exc

    async def get(self, endpoint: str, *, params: Optional[Mapping[str, str]] = None) -> ManagementResponse:
        return await self._request(method="GET", endpoint=endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        *,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> ManagementResponse:
        return await self._request(method="POST", endpoint=endpoint, body=body, params=params)

    async def put(
        self,
        endpoint: str,
        *,
        body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> ManagementResponse:
        return await self._request(method="PUT", endpoint=endpoint, body=body, params=params)

    async def remove(self, endpoint: str, *, params: Optional[Mapping[str, str]] = None) -> ManagementResponse:
        return await self._request(method="DELETE", endpoint=endpoint, params=params)
