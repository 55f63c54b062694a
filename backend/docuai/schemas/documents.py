"""
Document Intake — Pydantic Request/Response Schemas

Covers:
  - Upload validation constants (allowed MIME types, size ceiling)
  - Status / step vocabularies and the canonical pipeline stage table
  - Response models for documents, images, vectors, queue items and stats
  - Structured error bodies and their factories

Design decisions:
  - document_id is always server-generated (UUID4); never client-supplied.
  - JSON bodies are camelCase (documentId, ocrText, …) to match the web
    client; Python attributes stay snake_case. Request models accept both.
  - All timestamps are timezone-aware UTC datetimes.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ---------------------------------------------------------------------------
# Allowed MIME types — enforced before anything is persisted
# ---------------------------------------------------------------------------

ALLOWED_CONTENT_TYPES: frozenset[str] = frozenset(
    {
        "application/pdf",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",  # .docx
        "image/png",
        "image/jpeg",
        "image/tiff",
    }
)

# 50 MB hard ceiling on the server (the web client pre-checks 10 MB)
MAX_FILE_SIZE_BYTES: int = 50 * 1024 * 1024

# Extension used when storing the original file, keyed by MIME type
CONTENT_TYPE_EXTENSIONS: dict[str, str] = {
    "application/pdf": ".pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document": ".docx",
    "image/png":  ".png",
    "image/jpeg": ".jpg",
    "image/tiff": ".tiff",
}


# ---------------------------------------------------------------------------
# Status vocabularies
# ---------------------------------------------------------------------------

class DocumentStatus(str, Enum):
    """Maps to documents.status."""
    UPLOADED    = "uploaded"
    PROCESSING  = "processing"
    COMPLETED   = "completed"
    FAILED      = "failed"


class QueueStatus(str, Enum):
    """Maps to processing_queue.status."""
    PENDING     = "pending"
    PROCESSING  = "processing"
    COMPLETED   = "completed"
    FAILED      = "failed"


class ProcessingStep(str, Enum):
    """Maps to processing_queue.step: the stage currently being worked on."""
    OCR            = "ocr"
    STORAGE        = "storage"
    VECTORIZATION  = "vectorization"
    COMPLETED      = "completed"


# ---------------------------------------------------------------------------
# Canonical stage table
#
# The only place step labels and progress floors are defined. The pipeline
# moves a queue item through these checkpoints in declaration order.
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StageCheckpoint:
    status:   QueueStatus
    step:     ProcessingStep
    progress: int


class Stage(Enum):
    QUEUED           = StageCheckpoint(QueueStatus.PENDING,    ProcessingStep.OCR,             0)
    STARTED          = StageCheckpoint(QueueStatus.PROCESSING, ProcessingStep.OCR,            10)
    OCR_DONE         = StageCheckpoint(QueueStatus.PROCESSING, ProcessingStep.STORAGE,        30)
    DOCUMENT_STORED  = StageCheckpoint(QueueStatus.PROCESSING, ProcessingStep.STORAGE,        50)
    IMAGES_STORED    = StageCheckpoint(QueueStatus.PROCESSING, ProcessingStep.VECTORIZATION,  60)
    EMBEDDED         = StageCheckpoint(QueueStatus.PROCESSING, ProcessingStep.VECTORIZATION,  80)
    COMPLETED        = StageCheckpoint(QueueStatus.COMPLETED,  ProcessingStep.COMPLETED,     100)

    @property
    def status(self) -> QueueStatus:
        return self.value.status

    @property
    def step(self) -> ProcessingStep:
        return self.value.step

    @property
    def progress(self) -> int:
        return self.value.progress

    def as_fields(self) -> dict[str, Any]:
        """Column values for a queue-item update at this checkpoint."""
        return {
            "status":   self.status.value,
            "step":     self.step.value,
            "progress": self.progress,
        }


# ---------------------------------------------------------------------------
# Base model — camelCase on the wire, attribute access from ORM rows
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# ---------------------------------------------------------------------------
# Upload response — returned before processing starts
# ---------------------------------------------------------------------------

class DocumentUploadResponse(CamelModel):
    message:     str = "Document uploaded successfully. Processing started."
    document_id: UUID
    status:      DocumentStatus = DocumentStatus.PROCESSING


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------

class DocumentResponse(CamelModel):
    id:               UUID
    user_id:          str
    file_name:        str
    original_name:    str
    file_size:        int
    mime_type:        str
    category_id:      UUID | None = None
    status:           DocumentStatus
    ocr_text:         str | None = None
    ai_analysis:      dict[str, Any] | None = None
    image_count:      int = 0
    vector_count:     int = 0
    storage_url:      str | None = None
    processing_error: str | None = None
    created_at:       datetime
    updated_at:       datetime


class ExtractedImageResponse(CamelModel):
    id:          UUID
    document_id: UUID
    file_name:   str
    storage_url: str
    annotation:  str | None = None
    page_number: int | None = None
    created_at:  datetime


class VectorEmbeddingResponse(CamelModel):
    id:          UUID
    document_id: UUID
    content:     str
    embedding:   list[float]
    metadata:    dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("chunk_metadata", "metadata"),
    )
    created_at:  datetime


class QueueItemResponse(CamelModel):
    id:          UUID
    document_id: UUID
    status:      QueueStatus
    step:        ProcessingStep
    progress:    int = Field(0, ge=0, le=100)
    error:       str | None = None
    created_at:  datetime
    updated_at:  datetime


class DocumentStatusResponse(CamelModel):
    """Polled by clients to render progress for a single document."""
    document_id:      UUID
    status:           DocumentStatus
    processing_error: str | None = None
    queue_item:       QueueItemResponse | None = None


class UserStatsResponse(CamelModel):
    documents_processed: int = 0
    images_extracted:    int = 0
    vector_embeddings:   int = 0
    storage_used:        int = Field(0, description="Sum of file sizes in bytes")


# ---------------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------------

class SearchRequest(CamelModel):
    query: str | None = None
    limit: int = Field(10, ge=1, le=50)


class SearchResponse(CamelModel):
    query:   str
    results: list[dict[str, Any]] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Structured error bodies
# ---------------------------------------------------------------------------

class ErrorDetail(BaseModel):
    """Single structured error; may appear in a list."""
    field:   str | None = Field(None, description="Request field that caused the error, if applicable")
    message: str
    code:    str         = Field(..., description="Machine-readable error code for client handling")


class ErrorResponse(BaseModel):
    """
    Uniform error envelope for all 4xx/5xx responses.
    Clients should check `error_code` for programmatic handling.
    """
    error_code: str               = Field(..., description="Stable machine-readable code")
    message:    str               = Field(..., description="Human-readable summary")
    details:    list[ErrorDetail] = Field(default_factory=list)
    request_id: str | None        = Field(None, description="Trace ID for log correlation")


# ---------------------------------------------------------------------------
# Pre-defined error factories (keeps route handlers thin)
# ---------------------------------------------------------------------------

class UploadErrors:
    """Factories for every documented error case."""

    @staticmethod
    def unsupported_file_type(filename: str, detected_type: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="UNSUPPORTED_FILE_TYPE",
            message=f"File type '{detected_type}' is not supported.",
            details=[
                ErrorDetail(
                    field="document",
                    message=(
                        f"'{filename}' has an unsupported type '{detected_type}'. "
                        f"Allowed: PDF, DOCX, PNG, JPEG, TIFF."
                    ),
                    code="UNSUPPORTED_FILE_TYPE",
                )
            ],
        )

    @staticmethod
    def file_too_large(size_bytes: int) -> ErrorResponse:
        max_mb = MAX_FILE_SIZE_BYTES // (1024 * 1024)
        return ErrorResponse(
            error_code="FILE_TOO_LARGE",
            message=f"Uploaded file exceeds the {max_mb} MB limit.",
            details=[
                ErrorDetail(
                    field="document",
                    message=f"Received {size_bytes:,} bytes; limit is {MAX_FILE_SIZE_BYTES:,} bytes.",
                    code="FILE_TOO_LARGE",
                )
            ],
        )

    @staticmethod
    def missing_file() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_FILE",
            message="No file was provided in the request.",
            details=[
                ErrorDetail(
                    field="document",
                    message="The 'document' multipart field is required.",
                    code="MISSING_FILE",
                )
            ],
        )

    @staticmethod
    def invalid_category(category_id: str) -> ErrorResponse:
        return ErrorResponse(
            error_code="INVALID_CATEGORY",
            message="The provided categoryId does not exist.",
            details=[
                ErrorDetail(
                    field="categoryId",
                    message=f"'{category_id}' is not a known category id.",
                    code="INVALID_CATEGORY",
                )
            ],
        )

    @staticmethod
    def document_not_found(document_id: UUID) -> ErrorResponse:
        return ErrorResponse(
            error_code="DOCUMENT_NOT_FOUND",
            message=f"Document '{document_id}' was not found.",
            details=[],
        )

    @staticmethod
    def forbidden() -> ErrorResponse:
        return ErrorResponse(
            error_code="FORBIDDEN",
            message="You do not have access to this document.",
            details=[],
        )

    @staticmethod
    def missing_query() -> ErrorResponse:
        return ErrorResponse(
            error_code="MISSING_QUERY",
            message="Search query is required.",
            details=[
                ErrorDetail(field="query", message="Provide a non-empty query string.", code="MISSING_QUERY")
            ],
        )

    @staticmethod
    def upstream_error(detail: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="UPSTREAM_ERROR",
            message="An upstream provider request failed.",
            details=(
                [ErrorDetail(field=None, message=detail, code="UPSTREAM_ERROR")]
                if detail
                else []
            ),
        )

    @staticmethod
    def not_found(resource: str, resource_id: Any) -> ErrorResponse:
        return ErrorResponse(
            error_code="NOT_FOUND",
            message=f"{resource} '{resource_id}' was not found.",
            details=[],
        )

    @staticmethod
    def internal_error(request_id: str | None = None) -> ErrorResponse:
        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="An unexpected error occurred. Our team has been notified.",
            details=[],
            request_id=request_id,
        )
