"""
Composed FastAPI Dependencies

The app lifespan builds every long-lived collaborator once (stores, AI
client, object storage, pipeline, supervisor) and parks it on app.state.
The functions below hand those objects to route handlers; route handlers
import the Annotated aliases from here and never touch app.state directly.

Tests replace any of these through app.dependency_overrides.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from docuai.auth.token import TokenPayload, get_current_user
from docuai.processing.client import DocumentAIClient
from docuai.processing.pipeline import DocumentPipeline
from docuai.storage.s3 import ObjectStorageService
from docuai.store.base import CatalogStore, DocumentStore
from docuai.workers.supervisor import TaskSupervisor


def get_document_store(request: Request) -> DocumentStore:
    return request.app.state.document_store


def get_catalog_store(request: Request) -> CatalogStore:
    return request.app.state.catalog_store


def get_ai_client(request: Request) -> DocumentAIClient:
    return request.app.state.ai_client


def get_object_storage(request: Request) -> ObjectStorageService:
    return request.app.state.object_storage


def get_pipeline(request: Request) -> DocumentPipeline:
    return request.app.state.pipeline


def get_supervisor(request: Request) -> TaskSupervisor:
    return request.app.state.supervisor


# ---------------------------------------------------------------------------
# Type aliases for cleaner route signatures
# ---------------------------------------------------------------------------

CurrentUser = Annotated[TokenPayload,         Depends(get_current_user)]
Documents   = Annotated[DocumentStore,        Depends(get_document_store)]
Catalog     = Annotated[CatalogStore,         Depends(get_catalog_store)]
AIClient    = Annotated[DocumentAIClient,     Depends(get_ai_client)]
Storage     = Annotated[ObjectStorageService, Depends(get_object_storage)]
Pipeline    = Annotated[DocumentPipeline,     Depends(get_pipeline)]
Supervisor  = Annotated[TaskSupervisor,       Depends(get_supervisor)]
