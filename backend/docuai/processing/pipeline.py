"""
Document Processing Pipeline
════════════════════════════

One run per uploaded file, spawned by the upload route through
TaskSupervisor and executed on the API process's event loop:

  ┌──────────┐   ┌─────────────────────────┐   ┌─────────────────────────┐
  │   OCR    │ → │ storage: file + images  │ → │ vectorization: chunk →  │ → completed
  │ (10→30)  │   │       (30→50→60)        │   │ embed → dual write (80) │   (100)
  └──────────┘   └─────────────────────────┘   └─────────────────────────┘

Stages run strictly in sequence inside one run; separate runs interleave
freely at every await. Progress checkpoints come from schemas.documents.Stage.

Failure semantics:
  - Any exception escaping a stage ends the run: Document.status=failed with
    processing_error, queue item status=failed with the same error (progress
    is left at the last checkpoint reached). Nothing is re-raised; the run is
    detached from the request that started it.
  - A run cancelled at shutdown records the same failure, then lets the
    cancellation propagate.
  - A single image upload failure is logged and that image skipped.
  - The embedding call is all-or-nothing: if it fails, no vectors are written.
  - No stage is retried and a failed run is never resumed.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass

from docuai.processing.chunking import DEFAULT_CHUNK_SIZE, split_into_chunks
from docuai.processing.client import DocumentAIClient, OcrResult
from docuai.schemas.documents import CONTENT_TYPE_EXTENSIONS, DocumentStatus, QueueStatus, Stage
from docuai.storage.s3 import ObjectStorageService
from docuai.store.base import CatalogStore, Clock, DocumentStore, utcnow

logger = logging.getLogger(__name__)

CANCELLED_MESSAGE = "Processing cancelled at shutdown"


@dataclass(frozen=True)
class PipelineJob:
    """Everything a run needs; built by the upload route after validation."""
    document_id:   uuid.UUID
    queue_item_id: uuid.UUID
    file_bytes:    bytes
    original_name: str
    mime_type:     str
    category_id:   uuid.UUID | None = None


class DocumentPipeline:
    """
    Stateless across runs: one instance per process, shared by every run.
    All collaborators are injected.
    """

    def __init__(
        self,
        store:      DocumentStore,
        ai:         DocumentAIClient,
        storage:    ObjectStorageService,
        catalog:    CatalogStore | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        clock:      Clock = utcnow,
    ) -> None:
        self._store      = store
        self._ai         = ai
        self._storage    = storage
        self._catalog    = catalog
        self._chunk_size = chunk_size
        self._clock      = clock

    # ------------------------------------------------------------------
    # Public entry point
    # ------------------------------------------------------------------

    async def run(self, job: PipelineJob) -> None:
        doc_id = job.document_id
        t0 = time.monotonic()
        logger.info(
            "Pipeline start | doc=%s file=%s size=%d mime=%s",
            doc_id, job.original_name, len(job.file_bytes), job.mime_type,
        )

        try:
            await self._store.update_document_status(doc_id, DocumentStatus.PROCESSING.value)
            await self._checkpoint(job, Stage.STARTED)

            ocr = await self._ocr(job)
            image_count = await self._store_files(job, ocr)
            vector_count = await self._vectorize(job, ocr)

            await self._store.update_document(
                doc_id,
                status=DocumentStatus.COMPLETED.value,
                image_count=image_count,
                vector_count=vector_count,
                processing_error=None,
            )
            await self._checkpoint(job, Stage.COMPLETED)

        except asyncio.CancelledError:
            logger.warning("Pipeline cancelled | doc=%s", doc_id)
            await self._fail(job, CANCELLED_MESSAGE)
            raise
        except Exception as exc:
            logger.exception("Pipeline failed | doc=%s error=%s", doc_id, exc)
            await self._fail(job, str(exc) or type(exc).__name__)
            return

        logger.info(
            "Pipeline done | doc=%s images=%d vectors=%d elapsed_ms=%.0f",
            doc_id, image_count, vector_count, (time.monotonic() - t0) * 1000,
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _ocr(self, job: PipelineJob) -> OcrResult:
        ocr = await self._ai.extract_text_and_images(
            job.file_bytes,
            job.original_name,
            mime_type=job.mime_type,
            prompt_hint=await self._category_prompt(job.category_id),
        )
        await self._store.update_document(
            job.document_id,
            ocr_text=ocr.text,
            ai_analysis=ocr.analysis or None,
            image_count=len(ocr.images),
        )
        await self._checkpoint(job, Stage.OCR_DONE)
        return ocr

    async def _store_files(self, job: PipelineJob, ocr: OcrResult) -> int:
        ext = CONTENT_TYPE_EXTENSIONS.get(job.mime_type, "")
        storage_url = await self._storage.upload_document(job.file_bytes, f"{job.document_id}{ext}")
        await self._store.update_document(job.document_id, storage_url=storage_url)
        await self._checkpoint(job, Stage.DOCUMENT_STORED)

        stored = 0
        for i, image in enumerate(ocr.images, start=1):
            page = image.page_number if image.page_number is not None else 0
            try:
                url = await self._storage.upload_image(
                    image.image_bytes, f"{job.document_id}_page{page}_{i}.jpg"
                )
                await self._store.create_extracted_image(
                    document_id=job.document_id,
                    file_name=f"image_{i}.jpg",
                    storage_url=url,
                    annotation=image.annotation,
                    page_number=image.page_number,
                )
            except Exception as exc:
                logger.warning(
                    "Image skipped | doc=%s index=%d page=%s error=%s",
                    job.document_id, i, image.page_number, exc,
                )
                continue
            stored += 1

        await self._checkpoint(job, Stage.IMAGES_STORED)
        return stored

    async def _vectorize(self, job: PipelineJob, ocr: OcrResult) -> int:
        chunks = split_into_chunks(ocr.text, self._chunk_size)
        if not chunks:
            logger.info("No text to vectorize | doc=%s", job.document_id)
            await self._checkpoint(job, Stage.EMBEDDED)
            return 0

        # one batch call; a failure here leaves no vectors behind
        embeddings = await self._ai.create_embeddings(chunks)
        await self._checkpoint(job, Stage.EMBEDDED)

        processing_date = self._clock().isoformat()
        for index, (chunk, vector) in enumerate(zip(chunks, embeddings)):
            await self._store.create_vector_embedding(
                document_id=job.document_id,
                content=chunk,
                embedding=vector,
                chunk_metadata={
                    "chunk_index":     index,
                    "document_type":   ocr.document_type,
                    "language":        ocr.language,
                    "processing_date": processing_date,
                },
            )
            await self._storage.store_vector_embedding(
                vector,
                chunk,
                {
                    "document_id":   str(job.document_id),
                    "chunk_index":   index,
                    "file_name":     job.original_name,
                    "document_type": ocr.document_type,
                    "language":      ocr.language,
                },
            )

        return len(chunks)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _checkpoint(self, job: PipelineJob, stage: Stage) -> None:
        await self._store.update_processing_queue_item(job.queue_item_id, **stage.as_fields())
        logger.debug(
            "Checkpoint | doc=%s step=%s progress=%d",
            job.document_id, stage.step.value, stage.progress,
        )

    async def _category_prompt(self, category_id: uuid.UUID | None) -> str | None:
        if self._catalog is None or category_id is None:
            return None
        category = await self._catalog.get_category(category_id)
        return category.prompt_template if category else None

    async def _fail(self, job: PipelineJob, message: str) -> None:
        try:
            await self._store.update_document_status(
                job.document_id, DocumentStatus.FAILED.value, message
            )
            await self._store.update_processing_queue_item(
                job.queue_item_id, status=QueueStatus.FAILED.value, error=message
            )
        except Exception:
            # the store itself is failing; the supervisor log is all that's left
            logger.exception("Could not record failure | doc=%s", job.document_id)
