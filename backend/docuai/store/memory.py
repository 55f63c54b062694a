"""
In-memory stores — test fakes for DocumentStore and CatalogStore.

Rows are the same ORM classes the SQL store returns, held in plain dicts.
Never wired by the app factory; tests inject them through
app.dependency_overrides or pass them to DocumentPipeline directly.
"""

from __future__ import annotations

import uuid
from typing import Any, Iterable, TypeVar

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
from docuai.store.base import (
    CatalogStore,
    Clock,
    ConflictError,
    DocumentStore,
    NotFoundError,
    UserStats,
    utcnow,
)

T = TypeVar("T")


def _newest_first(rows: Iterable[T]) -> list[T]:
    # reversed() first so rows with identical timestamps keep newest-first order
    return sorted(reversed(list(rows)), key=lambda r: r.created_at, reverse=True)


def _apply(row: Any, fields: dict[str, Any]) -> None:
    for key, value in fields.items():
        if not hasattr(type(row), key):
            raise AttributeError(f"{type(row).__name__} has no column {key!r}")
        setattr(row, key, value)


class InMemoryDocumentStore(DocumentStore):

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self.documents:   dict[uuid.UUID, Document]            = {}
        self.images:      dict[uuid.UUID, ExtractedImage]      = {}
        self.vectors:     dict[uuid.UUID, VectorEmbedding]     = {}
        self.queue_items: dict[uuid.UUID, ProcessingQueueItem] = {}

    # -- documents -------------------------------------------------------

    async def create_document(self, **fields: Any) -> Document:
        now = self._clock()
        values: dict[str, Any] = {
            "id":           uuid.uuid4(),
            "status":       "uploaded",
            "image_count":  0,
            "vector_count": 0,
            "created_at":   now,
            "updated_at":   now,
        }
        values.update(fields)
        doc = Document(**values)
        self.documents[doc.id] = doc
        return doc

    async def get_document(self, document_id: uuid.UUID) -> Document | None:
        return self.documents.get(document_id)

    async def update_document(self, document_id: uuid.UUID, **fields: Any) -> Document:
        doc = self.documents.get(document_id)
        if doc is None:
            raise NotFoundError("Document", document_id)
        _apply(doc, fields)
        doc.updated_at = self._clock()
        return doc

    async def get_user_documents(self, user_id: str) -> list[Document]:
        return _newest_first(d for d in self.documents.values() if d.user_id == user_id)

    async def delete_document(self, document_id: uuid.UUID) -> bool:
        if document_id not in self.documents:
            return False
        for table in (self.queue_items, self.vectors, self.images):
            for child_id in [k for k, row in table.items() if row.document_id == document_id]:
                del table[child_id]
        del self.documents[document_id]
        return True

    def _require_document(self, document_id: Any) -> None:
        # stands in for the foreign key on child tables
        if document_id not in self.documents:
            raise NotFoundError("Document", document_id)

    # -- extracted images ------------------------------------------------

    async def create_extracted_image(self, **fields: Any) -> ExtractedImage:
        self._require_document(fields.get("document_id"))
        image = ExtractedImage(id=uuid.uuid4(), created_at=self._clock(), **fields)
        self.images[image.id] = image
        return image

    async def get_document_images(self, document_id: uuid.UUID) -> list[ExtractedImage]:
        return [i for i in self.images.values() if i.document_id == document_id]

    # -- vectors ---------------------------------------------------------

    async def create_vector_embedding(self, **fields: Any) -> VectorEmbedding:
        self._require_document(fields.get("document_id"))
        vector = VectorEmbedding(id=uuid.uuid4(), created_at=self._clock(), **fields)
        self.vectors[vector.id] = vector
        return vector

    async def get_document_vectors(self, document_id: uuid.UUID) -> list[VectorEmbedding]:
        rows = [v for v in self.vectors.values() if v.document_id == document_id]
        return sorted(rows, key=lambda v: v.chunk_index)

    # -- processing queue ------------------------------------------------

    async def create_processing_queue_item(self, **fields: Any) -> ProcessingQueueItem:
        self._require_document(fields.get("document_id"))
        now = self._clock()
        values: dict[str, Any] = {
            "id":         uuid.uuid4(),
            "status":     "pending",
            "step":       "ocr",
            "progress":   0,
            "created_at": now,
            "updated_at": now,
        }
        values.update(fields)
        item = ProcessingQueueItem(**values)
        self.queue_items[item.id] = item
        return item

    async def update_processing_queue_item(
        self, item_id: uuid.UUID, **fields: Any
    ) -> ProcessingQueueItem:
        item = self.queue_items.get(item_id)
        if item is None:
            raise NotFoundError("ProcessingQueueItem", item_id)
        _apply(item, fields)
        item.updated_at = self._clock()
        return item

    async def get_active_processing_items(self, user_id: str) -> list[ProcessingQueueItem]:
        owned = {d.id for d in self.documents.values() if d.user_id == user_id}
        return _newest_first(
            q for q in self.queue_items.values()
            if q.document_id in owned and q.status == "processing"
        )

    async def get_queue_items(self, document_id: uuid.UUID) -> list[ProcessingQueueItem]:
        return _newest_first(q for q in self.queue_items.values() if q.document_id == document_id)

    # -- aggregates ------------------------------------------------------

    async def get_user_stats(self, user_id: str) -> UserStats:
        docs = [d for d in self.documents.values() if d.user_id == user_id]
        return UserStats(
            documents_processed=sum(1 for d in docs if d.status == "completed"),
            images_extracted=sum(d.image_count or 0 for d in docs),
            vector_embeddings=sum(d.vector_count or 0 for d in docs),
            storage_used=sum(d.file_size or 0 for d in docs),
        )


class InMemoryCatalogStore(CatalogStore):

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self.categories:     dict[uuid.UUID, DocumentCategory] = {}
        self.providers:      dict[uuid.UUID, LlmProvider]      = {}
        self.models:         dict[uuid.UUID, LlmModel]         = {}
        self.user_configs:   dict[uuid.UUID, UserLlmConfig]    = {}
        self.prompt_formats: dict[uuid.UUID, PromptFormat]     = {}

    # -- categories ------------------------------------------------------

    async def list_categories(self) -> list[DocumentCategory]:
        return sorted(self.categories.values(), key=lambda c: c.name)

    async def get_category(self, category_id: uuid.UUID) -> DocumentCategory | None:
        return self.categories.get(category_id)

    async def get_default_category(self) -> DocumentCategory | None:
        return next((c for c in self.categories.values() if c.is_default), None)

    def _check_category_name(self, name: str | None, exclude: uuid.UUID | None = None) -> None:
        if name is None:
            return
        if any(c.name == name and c.id != exclude for c in self.categories.values()):
            raise ConflictError(f"Category name {name!r} already exists")

    def _unset_default_categories(self) -> None:
        for category in self.categories.values():
            category.is_default = False

    async def create_category(self, **fields: Any) -> DocumentCategory:
        self._check_category_name(fields.get("name"))
        if fields.get("is_default"):
            self._unset_default_categories()
        now = self._clock()
        values: dict[str, Any] = {"is_default": False, "is_active": True}
        values.update(fields)
        category = DocumentCategory(id=uuid.uuid4(), created_at=now, updated_at=now, **values)
        self.categories[category.id] = category
        return category

    async def update_category(self, category_id: uuid.UUID, **fields: Any) -> DocumentCategory:
        category = self.categories.get(category_id)
        if category is None:
            raise NotFoundError("Category", category_id)
        self._check_category_name(fields.get("name"), exclude=category_id)
        if fields.get("is_default"):
            self._unset_default_categories()
        _apply(category, fields)
        category.updated_at = self._clock()
        return category

    async def delete_category(self, category_id: uuid.UUID) -> bool:
        return self.categories.pop(category_id, None) is not None

    # -- providers / models ----------------------------------------------

    async def list_providers(self) -> list[LlmProvider]:
        return sorted((p for p in self.providers.values() if p.is_active), key=lambda p: p.name)

    async def get_provider(self, provider_id: uuid.UUID) -> LlmProvider | None:
        return self.providers.get(provider_id)

    async def create_provider(self, **fields: Any) -> LlmProvider:
        values: dict[str, Any] = {"is_active": True}
        values.update(fields)
        provider = LlmProvider(id=uuid.uuid4(), created_at=self._clock(), **values)
        self.providers[provider.id] = provider
        return provider

    async def create_model(self, **fields: Any) -> LlmModel:
        if fields.get("provider_id") not in self.providers:
            raise NotFoundError("Provider", fields.get("provider_id"))
        values: dict[str, Any] = {"is_active": True}
        values.update(fields)
        model = LlmModel(id=uuid.uuid4(), created_at=self._clock(), **values)
        self.models[model.id] = model
        return model

    async def get_model(self, model_id: uuid.UUID) -> LlmModel | None:
        return self.models.get(model_id)

    async def list_models(
        self, provider_id: uuid.UUID | None = None
    ) -> list[tuple[LlmModel, LlmProvider]]:
        rows = []
        for model in self.models.values():
            provider = self.providers[model.provider_id]
            if not (model.is_active and provider.is_active):
                continue
            if provider_id is not None and model.provider_id != provider_id:
                continue
            rows.append((model, provider))
        return sorted(rows, key=lambda r: (r[1].name, r[0].name))

    # -- user configs ----------------------------------------------------

    async def list_user_configs(self, user_id: str) -> list[UserLlmConfig]:
        return sorted(
            (c for c in self.user_configs.values() if c.user_id == user_id),
            key=lambda c: c.created_at,
        )

    def _unset_primary(self, user_id: str, keep: uuid.UUID | None = None) -> None:
        for config in self.user_configs.values():
            if config.user_id == user_id and config.id != keep:
                config.is_primary = False

    async def upsert_user_config(self, user_id: str, **fields: Any) -> UserLlmConfig:
        now = self._clock()
        existing = next(
            (
                c for c in self.user_configs.values()
                if c.user_id == user_id and c.model_id == fields.get("model_id")
            ),
            None,
        )
        if existing is None:
            values: dict[str, Any] = {"is_enabled": True, "is_primary": False, "api_key": None}
            values.update(fields)
            existing = UserLlmConfig(
                id=uuid.uuid4(), user_id=user_id, created_at=now, updated_at=now, **values
            )
            self.user_configs[existing.id] = existing
        else:
            _apply(existing, fields)
            existing.updated_at = now
        if existing.is_primary:
            self._unset_primary(user_id, keep=existing.id)
        return existing

    async def update_user_config(
        self, config_id: uuid.UUID, user_id: str, **fields: Any
    ) -> UserLlmConfig:
        config = self.user_configs.get(config_id)
        if config is None or config.user_id != user_id:
            raise NotFoundError("UserLlmConfig", config_id)
        _apply(config, fields)
        config.updated_at = self._clock()
        if config.is_primary:
            self._unset_primary(user_id, keep=config.id)
        return config

    async def delete_user_config(self, config_id: uuid.UUID, user_id: str) -> bool:
        config = self.user_configs.get(config_id)
        if config is None or config.user_id != user_id:
            return False
        del self.user_configs[config_id]
        return True

    # -- prompt formats --------------------------------------------------

    async def list_prompt_formats(self) -> list[PromptFormat]:
        return sorted(self.prompt_formats.values(), key=lambda f: f.name)

    async def get_prompt_format(self, format_id: uuid.UUID) -> PromptFormat | None:
        return self.prompt_formats.get(format_id)

    def _check_format_name(self, name: str | None, exclude: uuid.UUID | None = None) -> None:
        if name is None:
            return
        if any(f.name == name and f.id != exclude for f in self.prompt_formats.values()):
            raise ConflictError(f"Prompt format name {name!r} already exists")

    async def create_prompt_format(self, **fields: Any) -> PromptFormat:
        self._check_format_name(fields.get("name"))
        now = self._clock()
        values: dict[str, Any] = {"is_default": False}
        values.update(fields)
        prompt_format = PromptFormat(id=uuid.uuid4(), created_at=now, updated_at=now, **values)
        self.prompt_formats[prompt_format.id] = prompt_format
        return prompt_format

    async def update_prompt_format(self, format_id: uuid.UUID, **fields: Any) -> PromptFormat:
        prompt_format = self.prompt_formats.get(format_id)
        if prompt_format is None:
            raise NotFoundError("PromptFormat", format_id)
        self._check_format_name(fields.get("name"), exclude=format_id)
        _apply(prompt_format, fields)
        prompt_format.updated_at = self._clock()
        return prompt_format

    async def delete_prompt_format(self, format_id: uuid.UUID) -> bool:
        return self.prompt_formats.pop(format_id, None) is not None
