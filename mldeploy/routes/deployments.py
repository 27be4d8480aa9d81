from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from mldeploy.models.deployment import DeploymentResultResponse
from mldeploy.services.dependencies import get_deployment_service
from mldeploy.services.setup.deployment_service import DeploymentService

router = APIRouter(prefix="/deployments", tags=["deployments"])


@router.post("/{database}/triggers", response_model=DeploymentResultResponse)
async def deploy_triggers(
    database: str = Path(..., description="Database whose triggers database receives the triggers"),
    svc: DeploymentService = Depends(get_deployment_service),
) -> DeploymentResultResponse:
    return DeploymentResultResponse(message=await svc.deploy_triggers(database))


@router.post("/{database}/cpf", response_model=DeploymentResultResponse)
async def deploy_cpf(
    database: str = Path(..., description="Database whose triggers database receives CPF"),
    svc: DeploymentService = Depends(get_deployment_service),
) -> DeploymentResultResponse:
    return DeploymentResultResponse(message=await svc.deploy_cpf(database))


@router.post("/{database}/alerts", response_model=DeploymentResultResponse)
async def deploy_alerts(
    database: str = Path(..., description="Database receiving alert configs, actions and rules"),
    svc: DeploymentService = Depends(get_deployment_service),
) -> DeploymentResultResponse:
    return DeploymentResultResponse(message=await svc.deploy_alerts(database))
