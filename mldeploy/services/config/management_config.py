from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import ClassVar


@dataclass(frozen=True)
class ManagementConfig:
    """Runtime configuration for MarkLogic management (and REST) API calls.

    `host` is the bare host name of one cluster node, e.g. "ml-node-1.internal".
    The management API is served on `manage_port`, the data-layer REST API on
    `rest_port`.
    """

    host: str
    username: str
    password: str = field(repr=False)
    scheme: str = "http"
    _DEFAULT_MANAGE_PORT: ClassVar[int] = 8002
    _DEFAULT_REST_PORT: ClassVar[int] = 8000
    _DEFAULT_TIMEOUT_SECONDS: ClassVar[float] = 30.0
    manage_port: int = _DEFAULT_MANAGE_PORT
    rest_port: int = _DEFAULT_REST_PORT
    timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS

    @property
    def manage_base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.manage_port}"

    @property
    def rest_base_url(self) -> str:
        return f"{self.scheme}://{self.host}:{self.rest_port}"

    @staticmethod
    def _int_from_env(name: str, default: int) -> int:
        raw = os.getenv(name)
        if not raw:
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            raise ValueError(f"Invalid {name}; must be an integer") from exc
        if value <= 0:
            raise ValueError(f"Invalid {name}; must be positive")
        return value

    @staticmethod
    def from_env() -> "ManagementConfig":
        host = (os.getenv("MARKLOGIC_HOST") or "").strip()
        if not host:
            raise ValueError("Missing required environment variable: MARKLOGIC_HOST")

        scheme = (os.getenv("MARKLOGIC_SCHEME") or "http").strip().lower()
        if scheme not in ("http", "https"):
            raise ValueError("Invalid MARKLOGIC_SCHEME; must be http or https")

        timeout_raw = os.getenv("MARKLOGIC_TIMEOUT_SECONDS")
        timeout_seconds = ManagementConfig._DEFAULT_TIMEOUT_SECONDS
        if timeout_raw:
            try:
                timeout_seconds = float(timeout_raw)
            except ValueError as exc:
                raise ValueError("Invalid MARKLOGIC_TIMEOUT_SECONDS; must be a number") from exc

        return ManagementConfig(
            host=host,
            username=os.getenv("MARKLOGIC_USERNAME", "admin"),
            password=os.getenv("MARKLOGIC_PASSWORD", ""),
            scheme=scheme,
            manage_port=ManagementConfig._int_from_env("MARKLOGIC_MANAGE_PORT", ManagementConfig._DEFAULT_MANAGE_PORT),
            rest_port=ManagementConfig._int_from_env("MARKLOGIC_REST_PORT", ManagementConfig._DEFAULT_REST_PORT),
            timeout_seconds=timeout_seconds,
        )
