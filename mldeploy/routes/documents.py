from __future__ import annotations

from fastapi import APIRouter, Depends

from mldeploy.models.deployment import DeploymentResultResponse, LoadDocumentsRequest
from mldeploy.services.dependencies import get_document_loader_service
from mldeploy.services.document_loader_service import DocumentLoaderService

router = APIRouter(prefix="/documents", tags=["documents"])


@router.post("/load", response_model=DeploymentResultResponse)
async def load_documents(
    payload: LoadDocumentsRequest,
    svc: DocumentLoaderService = Depends(get_document_loader_service),
) -> DeploymentResultResponse:
    message = await svc.load_documents(payload.root, payload.folder, payload.database)
    return DeploymentResultResponse(message=message)
