"""
Storage interfaces.

DocumentStore is the contract every persistence backend satisfies for the
intake pipeline; CatalogStore covers the CRUD resources around it. There is
exactly one production implementation (store/sql.py) and one in-memory fake
for tests (store/memory.py).

Contract highlights (enforced by tests/unit/test_store_contract.py against
every implementation):
  - create_* assigns an id and timestamps from the store's clock.
  - update_* refreshes updated_at and raises NotFoundError for unknown ids.
  - delete_document cascades to queue items, vectors and images.
  - get_user_documents / get_active_processing_items are newest-first.

No operation spans more than one transaction: a failure mid-cascade can
leave orphaned child rows (the database FKs also cascade, so this only
affects the in-memory fake in practice).
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from docuai.models.catalog import (
    DocumentCategory,
    LlmModel,
    LlmProvider,
    PromptFormat,
    UserLlmConfig,
)
from docuai.models.documents import (
    Document,
    ExtractedImage,
    ProcessingQueueItem,
    VectorEmbedding,
)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotFoundError(LookupError):
    """Raised when an update/delete targets an id the store does not hold."""

    def __init__(self, resource: str, resource_id: Any) -> None:
        self.resource    = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} {resource_id} not found")


class ConflictError(ValueError):
    """Raised when a write would violate a uniqueness rule (e.g. category name)."""


@dataclass(frozen=True)
class UserStats:
    documents_processed: int = 0
    images_extracted:    int = 0
    vector_embeddings:   int = 0
    storage_used:        int = 0


# ---------------------------------------------------------------------------
# Documents and pipeline outputs
# ---------------------------------------------------------------------------

class DocumentStore(ABC):

    # -- documents -------------------------------------------------------

    @abstractmethod
    async def create_document(self, **fields: Any) -> Document:
        """status defaults to 'uploaded', counts to 0, timestamps to now."""

    @abstractmethod
    async def get_document(self, document_id: uuid.UUID) -> Document | None: ...

    @abstractmethod
    async def update_document(self, document_id: uuid.UUID, **fields: Any) -> Document: ...

    @abstractmethod
    async def get_user_documents(self, user_id: str) -> list[Document]: ...

    async def update_document_status(
        self,
        document_id: uuid.UUID,
        status:      str,
        error:       str | None = None,
    ) -> Document:
        return await self.update_document(document_id, status=status, processing_error=error)

    @abstractmethod
    async def delete_document(self, document_id: uuid.UUID) -> bool:
        """Delete the document and all children. False if it did not exist."""

    # -- extracted images ------------------------------------------------

    @abstractmethod
    async def create_extracted_image(self, **fields: Any) -> ExtractedImage: ...

    @abstractmethod
    async def get_document_images(self, document_id: uuid.UUID) -> list[ExtractedImage]: ...

    # -- vectors ---------------------------------------------------------

    @abstractmethod
    async def create_vector_embedding(self, **fields: Any) -> VectorEmbedding: ...

    @abstractmethod
    async def get_document_vectors(self, document_id: uuid.UUID) -> list[VectorEmbedding]: ...

    # -- processing queue ------------------------------------------------

    @abstractmethod
    async def create_processing_queue_item(self, **fields: Any) -> ProcessingQueueItem: ...

    @abstractmethod
    async def update_processing_queue_item(
        self, item_id: uuid.UUID, **fields: Any
    ) -> ProcessingQueueItem: ...

    @abstractmethod
    async def get_active_processing_items(self, user_id: str) -> list[ProcessingQueueItem]:
        """Items with status='processing' whose document belongs to user_id."""

    @abstractmethod
    async def get_queue_items(self, document_id: uuid.UUID) -> list[ProcessingQueueItem]:
        """All queue items for a document, newest first."""

    # -- aggregates ------------------------------------------------------

    @abstractmethod
    async def get_user_stats(self, user_id: str) -> UserStats: ...


# ---------------------------------------------------------------------------
# Catalog resources
# ---------------------------------------------------------------------------

class CatalogStore(ABC):

    # -- categories ------------------------------------------------------

    @abstractmethod
    async def list_categories(self) -> list[DocumentCategory]: ...

    @abstractmethod
    async def get_category(self, category_id: uuid.UUID) -> DocumentCategory | None: ...

    @abstractmethod
    async def get_default_category(self) -> DocumentCategory | None: ...

    @abstractmethod
    async def create_category(self, **fields: Any) -> DocumentCategory:
        """When is_default is true every other category loses the flag."""

    @abstractmethod
    async def update_category(self, category_id: uuid.UUID, **fields: Any) -> DocumentCategory: ...

    @abstractmethod
    async def delete_category(self, category_id: uuid.UUID) -> bool: ...

    # -- providers / models ----------------------------------------------

    @abstractmethod
    async def list_providers(self) -> list[LlmProvider]:
        """Active providers only."""

    @abstractmethod
    async def get_provider(self, provider_id: uuid.UUID) -> LlmProvider | None: ...

    @abstractmethod
    async def create_provider(self, **fields: Any) -> LlmProvider: ...

    @abstractmethod
    async def create_model(self, **fields: Any) -> LlmModel: ...

    @abstractmethod
    async def get_model(self, model_id: uuid.UUID) -> LlmModel | None: ...

    @abstractmethod
    async def list_models(
        self, provider_id: uuid.UUID | None = None
    ) -> list[tuple[LlmModel, LlmProvider]]:
        """Active models of active providers, joined with their provider."""

    # -- user configs ----------------------------------------------------

    @abstractmethod
    async def list_user_configs(self, user_id: str) -> list[UserLlmConfig]: ...

    @abstractmethod
    async def upsert_user_config(self, user_id: str, **fields: Any) -> UserLlmConfig:
        """Insert or update by (user_id, model_id); is_primary unsets the others."""

    @abstractmethod
    async def update_user_config(
        self, config_id: uuid.UUID, user_id: str, **fields: Any
    ) -> UserLlmConfig: ...

    @abstractmethod
    async def delete_user_config(self, config_id: uuid.UUID, user_id: str) -> bool: ...

    # -- prompt formats --------------------------------------------------

    @abstractmethod
    async def list_prompt_formats(self) -> list[PromptFormat]: ...

    @abstractmethod
    async def get_prompt_format(self, format_id: uuid.UUID) -> PromptFormat | None: ...

    @abstractmethod
    async def create_prompt_format(self, **fields: Any) -> PromptFormat: ...

    @abstractmethod
    async def update_prompt_format(self, format_id: uuid.UUID, **fields: Any) -> PromptFormat: ...

    @abstractmethod
    async def delete_prompt_format(self, format_id: uuid.UUID) -> bool: ...
