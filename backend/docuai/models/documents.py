"""
SQLAlchemy ORM Models — Documents and their pipeline outputs

Tables:
  documents           one uploaded file and its processing outcome
  extracted_images    images found by OCR, stored in object storage
  vector_embeddings   one row per text chunk with its embedding
  processing_queue    progress record polled by clients

Ownership: a Document owns its images, vectors and queue items. The foreign
keys cascade at the database level, and every DocumentStore implementation
deletes the children explicitly as part of delete_document().

Both store implementations build these classes directly (the in-memory
store never touches a session), so ids and timestamps are always assigned
in Python rather than left to server defaults.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Document — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """
    Tracks a single uploaded file from upload → OCR → storage → vectors.

    State machine (status column):
        uploaded   — row created, run spawned but not started
        processing — pipeline run in progress
        completed  — text, images and vectors persisted
        failed     — a stage raised; see processing_error
    """

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "status IN ('uploaded', 'processing', 'completed', 'failed')",
            name="documents_status_check",
        ),
        Index("idx_documents_user_created", "user_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Verified principal (token sub), never taken from the request body
    user_id: Mapped[str] = mapped_column(Text, nullable=False)

    file_name:     Mapped[str] = mapped_column(Text, nullable=False)
    original_name: Mapped[str] = mapped_column(Text, nullable=False)
    file_size:     Mapped[int] = mapped_column(BigInteger, nullable=False)
    mime_type:     Mapped[str] = mapped_column(Text, nullable=False)

    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("document_categories.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(Text, nullable=False, default="uploaded")

    ocr_text:    Mapped[Optional[str]]  = mapped_column(Text, nullable=True)
    ai_analysis: Mapped[Optional[dict]] = mapped_column(JSONB, nullable=True)

    image_count:  Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    vector_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    storage_url: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Public URL of the original file in object storage",
    )
    processing_error: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="Populated only when status='failed'",
    )

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} user={self.user_id} "
            f"status={self.status} file={self.original_name!r}>"
        )


# ---------------------------------------------------------------------------
# ExtractedImage — extracted_images
# ---------------------------------------------------------------------------

class ExtractedImage(Base):
    """One image found by OCR. Immutable once written."""

    __tablename__ = "extracted_images"
    __table_args__ = (
        Index("idx_extracted_images_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    file_name:   Mapped[str]           = mapped_column(Text, nullable=False)
    storage_url: Mapped[str]           = mapped_column(Text, nullable=False)
    annotation:  Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    page_number: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at:  Mapped[datetime]      = mapped_column(DateTime(timezone=True), nullable=False)


# ---------------------------------------------------------------------------
# VectorEmbedding — vector_embeddings
# ---------------------------------------------------------------------------

class VectorEmbedding(Base):
    """
    One text chunk and its embedding.

    The same vector is also inserted into the provider-side vector table
    (see ObjectStorageService.store_vector_embedding); no transaction spans
    the two writes.
    """

    __tablename__ = "vector_embeddings"
    __table_args__ = (
        Index("idx_vector_embeddings_document_id", "document_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    content:   Mapped[str]         = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(ARRAY(Float), nullable=False)

    # chunk_index, document_type, language, processing_date
    chunk_metadata: Mapped[dict] = mapped_column(
        "metadata",                 # PostgreSQL column name stays 'metadata'
        JSONB,
        nullable=False,
        default=dict,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    @property
    def chunk_index(self) -> int:
        return int((self.chunk_metadata or {}).get("chunk_index", 0))


# ---------------------------------------------------------------------------
# ProcessingQueueItem — processing_queue
# ---------------------------------------------------------------------------

class ProcessingQueueItem(Base):
    """
    Progress record for one pipeline run. Clients poll this, not the
    Document, to render progress bars.
    """

    __tablename__ = "processing_queue"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="processing_queue_status_check",
        ),
        CheckConstraint("progress BETWEEN 0 AND 100", name="processing_queue_progress_range"),
        Index("idx_processing_queue_document_id", "document_id"),
        Index("idx_processing_queue_status", "status"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    document_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    status:   Mapped[str]           = mapped_column(Text, nullable=False, default="pending")
    step:     Mapped[str]           = mapped_column(Text, nullable=False, default="ocr")
    progress: Mapped[int]           = mapped_column(Integer, nullable=False, default=0)
    error:    Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ProcessingQueueItem doc={self.document_id} status={self.status} "
            f"step={self.step} progress={self.progress}>"
        )
