from __future__ import annotations

import aiohttp
from fastapi import FastAPI, Request

from mldeploy.services.config import DeploySettingsConfig, DocumentLoaderConfig, ManagementConfig
from mldeploy.services.document_loader_service import DocumentLoaderService
from mldeploy.services.management_service import ManagementService
from mldeploy.services.settings_service import SettingsService
from mldeploy.services.setup.database_setup_service import DatabaseSetupService
from mldeploy.services.setup.deployment_context import DeploymentContext
from mldeploy.services.setup.deployment_service import DeploymentService


def get_http_session_from_app(app: FastAPI) -> aiohttp.ClientSession:
    session = getattr(app.state, "http_session", None)
    if session is None:
        raise RuntimeError("HTTP session not initialized (app.state.http_session)")
    if not isinstance(session, aiohttp.ClientSession):
        raise RuntimeError("Unexpected http_session type")
    return session


def get_http_session(request: Request) -> aiohttp.ClientSession:
    return get_http_session_from_app(request.app)


def get_settings_service() -> SettingsService:
    """Dependency provider for on-disk resource definitions."""

    return SettingsService(DeploySettingsConfig.from_env())


def get_management_service(request: Request) -> ManagementService:
    return ManagementService(ManagementConfig.from_env(), session=get_http_session(request))


def get_deployment_context(request: Request) -> DeploymentContext:
    """One context per request: the cluster transport plus the definitions to deploy."""

    return DeploymentContext(
        management=get_management_service(request),
        settings=get_settings_service(),
    )


def get_database_setup_service(request: Request) -> DatabaseSetupService:
    return DatabaseSetupService(get_deployment_context(request))


def get_deployment_service(request: Request) -> DeploymentService:
    return DeploymentService(get_deployment_context(request))


def get_document_loader_service(request: Request) -> DocumentLoaderService:
    return DocumentLoaderService(
        ManagementConfig.from_env(),
        session=get_http_session(request),
        loader=DocumentLoaderConfig.from_env(),
    )
