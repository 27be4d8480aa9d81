from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Path, Query
from starlette import status

from mldeploy.models.deployment import (
    DatabaseOperationRequest,
    DatabasePropertiesResponse,
    DeploymentResultResponse,
)
from mldeploy.services.dependencies import get_database_setup_service
from mldeploy.services.setup.database_setup_service import DatabaseSetupService

router = APIRouter(prefix="/databases", tags=["databases"])


@router.post("/{db_type}", response_model=DeploymentResultResponse)
async def initialize_database(
    db_type: str = Path(..., description="Database type, i.e. the name of its settings file"),
    svc: DatabaseSetupService = Depends(get_database_setup_service),
) -> DeploymentResultResponse:
    return DeploymentResultResponse(message=await svc.initialize_database(db_type))


@router.delete("/{db_type}", response_model=DeploymentResultResponse)
async def remove_database(
    db_type: str = Path(..., description="Database type, i.e. the name of its settings file"),
    forest_delete: Optional[str] = Query(default=None, description="configuration or data"),
    svc: DatabaseSetupService = Depends(get_database_setup_service),
) -> DeploymentResultResponse:
    return DeploymentResultResponse(message=await svc.remove_database(db_type, forest_delete))


@router.get("/{database}/properties", response_model=DatabasePropertiesResponse)
async def database_properties(
    database: str = Path(..., description="Database name"),
    svc: DatabaseSetupService = Depends(get_database_setup_service),
) -> DatabasePropertiesResponse:
    properties = await svc.get_database_properties(database)
    if properties is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Database not found: {database}")
    return DatabasePropertiesResponse(database=database, properties=properties)


@router.post("/{database}/operations", response_model=DeploymentResultResponse)
async def database_operation(
    payload: DatabaseOperationRequest,
    database: str = Path(..., description="Database name"),
    svc: DatabaseSetupService = Depends(get_database_setup_service),
) -> DeploymentResultResponse:
    name = await svc.database_operation(payload.operation, database)
    return DeploymentResultResponse(message=f"{payload.operation} issued at {name}")


@router.post("/{db_type}/rebalancer", response_model=DeploymentResultResponse)
async def initialize_rebalancer(
    db_type: str = Path(..., description="Database type, i.e. the name of its settings file"),
    svc: DatabaseSetupService = Depends(get_database_setup_service),
) -> DeploymentResultResponse:
    return DeploymentResultResponse(message=await svc.initialize_rebalancer(db_type))
