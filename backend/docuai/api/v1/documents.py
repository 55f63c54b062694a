"""
Documents API Router
POST /api/documents/upload and the per-document read/delete/search routes.

Request lifecycle (upload):
  ┌─────────────────────────────────────────────────────────┐
  │ 1. JWT verification → user.sub is the owner (never      │
  │    client-supplied)                                     │
  │ 2. File presence, MIME allow-list, 50 MB size limit     │
  │ 3. Optional categoryId must name a known category       │
  │ 4. Document(status=uploaded) + queue item (QUEUED)      │
  │ 5. Pipeline run spawned on the TaskSupervisor           │
  │ 6. 200 {message, documentId, status: "processing"}      │
  └─────────────────────────────────────────────────────────┘

Upload validation failures return the ErrorResponse envelope as the body;
lookups raise HTTPException with the envelope in `detail`.
"""

from __future__ import annotations

import logging
import uuid
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, File, Form, HTTPException, UploadFile, status
from fastapi.responses import JSONResponse

from docuai.auth.dependencies import (
    AIClient,
    Catalog,
    CurrentUser,
    Documents,
    Pipeline,
    Storage,
    Supervisor,
)
from docuai.auth.token import TokenPayload
from docuai.models.documents import Document
from docuai.processing.client import ProviderError
from docuai.processing.pipeline import PipelineJob
from docuai.schemas.documents import (
    ALLOWED_CONTENT_TYPES,
    CONTENT_TYPE_EXTENSIONS,
    MAX_FILE_SIZE_BYTES,
    DocumentResponse,
    DocumentStatusResponse,
    DocumentUploadResponse,
    ErrorResponse,
    ExtractedImageResponse,
    QueueItemResponse,
    SearchRequest,
    SearchResponse,
    Stage,
    UploadErrors,
    VectorEmbeddingResponse,
)
from docuai.storage.s3 import StorageError
from docuai.store.base import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


async def _owned_document(store: DocumentStore, document_id: UUID, user: TokenPayload) -> Document:
    """404 if absent, 403 if another principal owns it."""
    doc = await store.get_document(document_id)
    if doc is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=UploadErrors.document_not_found(document_id).model_dump(),
        )
    if doc.user_id != user.sub:
        logger.warning("Ownership mismatch | doc=%s user=%s", document_id, user.sub)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=UploadErrors.forbidden().model_dump(),
        )
    return doc


# ---------------------------------------------------------------------------
# POST /documents/upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=DocumentUploadResponse,
    summary="Upload a document for processing",
    description=(
        "Accepts PDF, DOCX, PNG, JPEG or TIFF up to 50 MB. "
        "Returns immediately; poll GET /documents/{id}/status for progress."
    ),
    responses={
        200: {"model": DocumentUploadResponse, "description": "File accepted, processing started"},
        400: {"model": ErrorResponse, "description": "Missing file, bad type, bad size or unknown category"},
        401: {"model": ErrorResponse, "description": "Missing or invalid JWT"},
    },
)
async def upload_document(
    user:       CurrentUser,
    store:      Documents,
    catalog:    Catalog,
    pipeline:   Pipeline,
    supervisor: Supervisor,
    document:    Optional[UploadFile] = File(None, description="Document file (max 50 MB)"),
    category_id: Optional[str]        = Form(None, alias="categoryId"),
):
    if document is None or not document.filename:
        return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.missing_file())

    content_type = (document.content_type or "").split(";")[0].strip().lower()
    if content_type not in ALLOWED_CONTENT_TYPES:
        return _error(
            status.HTTP_400_BAD_REQUEST,
            UploadErrors.unsupported_file_type(document.filename, content_type or "unknown"),
        )

    # Guard before reading: UploadFile.size is known for spooled multipart parts
    if document.size is not None and document.size > MAX_FILE_SIZE_BYTES:
        return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.file_too_large(document.size))

    data = await document.read()
    if not data:
        return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.missing_file())
    if len(data) > MAX_FILE_SIZE_BYTES:
        return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.file_too_large(len(data)))

    category_uuid: UUID | None = None
    if category_id:
        try:
            category_uuid = UUID(category_id)
        except ValueError:
            return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.invalid_category(category_id))
        if await catalog.get_category(category_uuid) is None:
            return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.invalid_category(category_id))

    document_id = uuid.uuid4()
    doc = await store.create_document(
        id=document_id,
        user_id=user.sub,
        file_name=f"{document_id}{CONTENT_TYPE_EXTENSIONS[content_type]}",
        original_name=document.filename,
        file_size=len(data),
        mime_type=content_type,
        category_id=category_uuid,
    )
    queue_item = await store.create_processing_queue_item(
        document_id=doc.id, **Stage.QUEUED.as_fields()
    )

    supervisor.spawn(
        f"document:{doc.id}",
        pipeline.run(
            PipelineJob(
                document_id=doc.id,
                queue_item_id=queue_item.id,
                file_bytes=data,
                original_name=document.filename,
                mime_type=content_type,
                category_id=category_uuid,
            )
        ),
    )

    logger.info(
        "Upload accepted | doc=%s user=%s file=%s size=%d mime=%s",
        doc.id, user.sub, document.filename, len(data), content_type,
    )
    return DocumentUploadResponse(document_id=doc.id)


# ---------------------------------------------------------------------------
# GET /documents  — the caller's documents, newest first
# ---------------------------------------------------------------------------

@router.get("", response_model=list[DocumentResponse], summary="List my documents")
async def list_documents(user: CurrentUser, store: Documents) -> list[DocumentResponse]:
    docs = await store.get_user_documents(user.sub)
    return [DocumentResponse.model_validate(d) for d in docs]


# ---------------------------------------------------------------------------
# POST /documents/search
# ---------------------------------------------------------------------------

@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Similarity search over the caller's documents",
    responses={
        400: {"model": ErrorResponse, "description": "Blank query"},
        502: {"model": ErrorResponse, "description": "Embedding or vector endpoint failed"},
    },
)
async def search_documents(
    body:    SearchRequest,
    user:    CurrentUser,
    store:   Documents,
    ai:      AIClient,
    storage: Storage,
):
    query = (body.query or "").strip()
    if not query:
        return _error(status.HTTP_400_BAD_REQUEST, UploadErrors.missing_query())

    try:
        query_vector = await ai.embed_query(query)
        matches = await storage.search_similar_vectors(query_vector, limit=body.limit)
    except (ProviderError, StorageError) as exc:
        logger.error("Search failed | user=%s error=%s", user.sub, exc)
        return _error(status.HTTP_502_BAD_GATEWAY, UploadErrors.upstream_error(str(exc)))

    # the provider table is shared; only hand back chunks from the caller's documents
    owned = {str(d.id) for d in await store.get_user_documents(user.sub)}
    results = [
        m for m in matches
        if str((m.get("metadata") or {}).get("document_id")) in owned
    ]

    logger.info(
        "Search | user=%s matches=%d returned=%d", user.sub, len(matches), len(results),
    )
    return SearchResponse(query=query, results=results)


# ---------------------------------------------------------------------------
# GET /documents/{document_id}
# ---------------------------------------------------------------------------

_LOOKUP_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@router.get(
    "/{document_id}",
    response_model=DocumentResponse,
    summary="Get one document",
    responses=_LOOKUP_RESPONSES,
)
async def get_document(document_id: UUID, user: CurrentUser, store: Documents) -> DocumentResponse:
    doc = await _owned_document(store, document_id, user)
    return DocumentResponse.model_validate(doc)


@router.get(
    "/{document_id}/images",
    response_model=list[ExtractedImageResponse],
    summary="Images extracted from a document",
    responses=_LOOKUP_RESPONSES,
)
async def get_document_images(
    document_id: UUID, user: CurrentUser, store: Documents,
) -> list[ExtractedImageResponse]:
    await _owned_document(store, document_id, user)
    images = await store.get_document_images(document_id)
    return [ExtractedImageResponse.model_validate(i) for i in images]


@router.get(
    "/{document_id}/vectors",
    response_model=list[VectorEmbeddingResponse],
    summary="Local vector rows for a document, by chunk index",
    responses=_LOOKUP_RESPONSES,
)
async def get_document_vectors(
    document_id: UUID, user: CurrentUser, store: Documents,
) -> list[VectorEmbeddingResponse]:
    await _owned_document(store, document_id, user)
    vectors = await store.get_document_vectors(document_id)
    return [VectorEmbeddingResponse.model_validate(v) for v in vectors]


@router.get(
    "/{document_id}/status",
    response_model=DocumentStatusResponse,
    summary="Poll processing status",
    responses=_LOOKUP_RESPONSES,
)
async def get_document_status(
    document_id: UUID, user: CurrentUser, store: Documents,
) -> DocumentStatusResponse:
    doc = await _owned_document(store, document_id, user)
    items = await store.get_queue_items(document_id)
    return DocumentStatusResponse(
        document_id=doc.id,
        status=doc.status,
        processing_error=doc.processing_error,
        queue_item=QueueItemResponse.model_validate(items[0]) if items else None,
    )


# ---------------------------------------------------------------------------
# DELETE /documents/{document_id}  — hard delete, cascades
# ---------------------------------------------------------------------------

@router.delete(
    "/{document_id}",
    summary="Delete a document with its images, vectors and queue items",
    responses=_LOOKUP_RESPONSES,
)
async def delete_document(
    document_id: UUID,
    user:    CurrentUser,
    store:   Documents,
    storage: Storage,
) -> dict:
    doc = await _owned_document(store, document_id, user)
    images = await store.get_document_images(document_id)
    urls = [doc.storage_url, *(i.storage_url for i in images)]

    await store.delete_document(document_id)
    # objects are orphaned rather than blocking the delete if cleanup fails
    removed = await storage.delete_objects_for([u for u in urls if u])

    logger.info(
        "Document deleted | doc=%s user=%s images=%d objects_removed=%d",
        document_id, user.sub, len(images), removed,
    )
    return {"success": True}
