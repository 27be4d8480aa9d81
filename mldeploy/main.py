from contextlib import asynccontextmanager
import logging

import aiohttp
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette import status

from mldeploy.routes.databases import router as databases_router
from mldeploy.routes.deployments import router as deployments_router
from mldeploy.routes.documents import router as documents_router
from mldeploy.services.document_loader_service import DocumentLoadError
from mldeploy.services.management_service import ManagementServiceError
from mldeploy.services.setup.deployment_context import DeploymentValidationError
from mldeploy.services.settings_service import SettingsServiceError


def _ensure_logging() -> None:
    formatter = logging.Formatter("%(levelname)s: %(message)s")
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
    else:
        root.setLevel(logging.INFO)
        for handler in root.handlers:
            handler.setFormatter(formatter)


@asynccontextmanager
async def lifespan(app: FastAPI):
    _ensure_logging()
    async with aiohttp.ClientSession() as session:
        app.state.http_session = session
        yield
        app.state.http_session = None


app = FastAPI(lifespan=lifespan)

app.include_router(databases_router)
app.include_router(deployments_router)
app.include_router(documents_router)


@app.exception_handler(ManagementServiceError)
async def management_service_error_handler(request: Request, exc: ManagementServiceError) -> JSONResponse:
    """Map management API failures to a consistent HTTP response.

    The cluster answered with something unexpected (or did not answer), so this is
    reported as a gateway failure rather than a client error.

    Returns:
        502 Bad Gateway with a JSON body: {"detail": "..."}
    """
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": str(exc)},
    )


@app.exception_handler(DeploymentValidationError)
async def deployment_validation_error_handler(request: Request, exc: DeploymentValidationError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(SettingsServiceError)
async def settings_service_error_handler(request: Request, exc: SettingsServiceError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(DocumentLoadError)
async def document_load_error_handler(request: Request, exc: DocumentLoadError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.get("/")
async def root():
    return {"message": "MarkLogic deployer is running."}
