from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class DeploymentResultResponse(BaseModel):
    message: str


class DatabasePropertiesResponse(BaseModel):
    database: str
    properties: dict[str, Any]


class DatabaseOperationRequest(BaseModel):
    operation: str = Field(..., description="Management operation, e.g. clear-database")


class LoadDocumentsRequest(BaseModel):
    root: str = Field(..., description="Prefix stripped from file paths to build document URIs")
    folder: str = Field(..., description="Folder (under root) whose files are loaded")
    database: str
