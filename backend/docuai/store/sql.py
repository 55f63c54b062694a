"""
SQLAlchemy stores — the production DocumentStore and CatalogStore.

Each public method opens its own session and transaction from the injected
async_sessionmaker, so concurrent pipeline runs never share a session and a
failure rolls back only the operation that raised. Writes are
last-write-wins; there is no optimistic concurrency token.

Ids and timestamps are assigned in Python from the injected clock so the
SQL and in-memory stores behave identically under the contract suite.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

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

logger = logging.getLogger(__name__)

_Child = TypeVar("_Child", ExtractedImage, VectorEmbedding, ProcessingQueueItem)


class SqlDocumentStore(DocumentStore):

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        clock:    Clock = utcnow,
    ) -> None:
        self._sessions = sessions
        self._clock    = clock

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
        async with self._sessions() as session, session.begin():
            session.add(doc)
        return doc

    async def get_document(self, document_id: uuid.UUID) -> Document | None:
        async with self._sessions() as session:
            return await session.get(Document, document_id)

    async def update_document(self, document_id: uuid.UUID, **fields: Any) -> Document:
        async with self._sessions() as session, session.begin():
            doc = await session.get(Document, document_id)
            if doc is None:
                raise NotFoundError("Document", document_id)
            for key, value in fields.items():
                setattr(doc, key, value)
            doc.updated_at = self._clock()
        return doc

    async def get_user_documents(self, user_id: str) -> list[Document]:
        async with self._sessions() as session:
            result = await session.execute(
                select(Document)
                .where(Document.user_id == user_id)
                .order_by(Document.created_at.desc())
            )
            return list(result.scalars().all())

    async def delete_document(self, document_id: uuid.UUID) -> bool:
        async with self._sessions() as session, session.begin():
            if await session.get(Document, document_id) is None:
                return False
            # children first: queue items, vectors, images, then the document
            for model in (ProcessingQueueItem, VectorEmbedding, ExtractedImage):
                await session.execute(delete(model).where(model.document_id == document_id))
            await session.execute(delete(Document).where(Document.id == document_id))
        logger.info("Document deleted with children | doc=%s", document_id)
        return True

    async def _add_child(self, row: _Child) -> _Child:
        try:
            async with self._sessions() as session, session.begin():
                session.add(row)
        except IntegrityError as exc:
            raise NotFoundError("Document", row.document_id) from exc
        return row

    # -- extracted images ------------------------------------------------

    async def create_extracted_image(self, **fields: Any) -> ExtractedImage:
        image = ExtractedImage(id=uuid.uuid4(), created_at=self._clock(), **fields)
        return await self._add_child(image)

    async def get_document_images(self, document_id: uuid.UUID) -> list[ExtractedImage]:
        async with self._sessions() as session:
            result = await session.execute(
                select(ExtractedImage)
                .where(ExtractedImage.document_id == document_id)
                .order_by(ExtractedImage.created_at)
            )
            return list(result.scalars().all())

    # -- vectors ---------------------------------------------------------

    async def create_vector_embedding(self, **fields: Any) -> VectorEmbedding:
        vector = VectorEmbedding(id=uuid.uuid4(), created_at=self._clock(), **fields)
        return await self._add_child(vector)

    async def get_document_vectors(self, document_id: uuid.UUID) -> list[VectorEmbedding]:
        async with self._sessions() as session:
            result = await session.execute(
                select(VectorEmbedding)
                .where(VectorEmbedding.document_id == document_id)
                .order_by(VectorEmbedding.chunk_metadata["chunk_index"].as_integer())
            )
            return list(result.scalars().all())

    # -- processing queue ------------------------------------------------

    async def create_processing_queue_item(self, **fields: Any) -> ProcessingQueueItem:
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
        return await self._add_child(item)

    async def update_processing_queue_item(
        self, item_id: uuid.UUID, **fields: Any
    ) -> ProcessingQueueItem:
        async with self._sessions() as session, session.begin():
            item = await session.get(ProcessingQueueItem, item_id)
            if item is None:
                raise NotFoundError("ProcessingQueueItem", item_id)
            for key, value in fields.items():
                setattr(item, key, value)
            item.updated_at = self._clock()
        return item

    async def get_active_processing_items(self, user_id: str) -> list[ProcessingQueueItem]:
        async with self._sessions() as session:
            result = await session.execute(
                select(ProcessingQueueItem)
                .join(Document, Document.id == ProcessingQueueItem.document_id)
                .where(
                    Document.user_id == user_id,
                    ProcessingQueueItem.status == "processing",
                )
                .order_by(ProcessingQueueItem.created_at.desc())
            )
            return list(result.scalars().all())

    async def get_queue_items(self, document_id: uuid.UUID) -> list[ProcessingQueueItem]:
        async with self._sessions() as session:
            result = await session.execute(
                select(ProcessingQueueItem)
                .where(ProcessingQueueItem.document_id == document_id)
                .order_by(ProcessingQueueItem.created_at.desc())
            )
            return list(result.scalars().all())

    # -- aggregates ------------------------------------------------------

    async def get_user_stats(self, user_id: str) -> UserStats:
        async with self._sessions() as session:
            result = await session.execute(
                select(
                    func.count(Document.id).filter(Document.status == "completed"),
                    func.coalesce(func.sum(Document.image_count), 0),
                    func.coalesce(func.sum(Document.vector_count), 0),
                    func.coalesce(func.sum(Document.file_size), 0),
                ).where(Document.user_id == user_id)
            )
            processed, images, vectors, storage = result.one()
        return UserStats(
            documents_processed=int(processed),
            images_extracted=int(images),
            vector_embeddings=int(vectors),
            storage_used=int(storage),
        )


class SqlCatalogStore(CatalogStore):

    def __init__(
        self,
        sessions: async_sessionmaker[AsyncSession],
        clock:    Clock = utcnow,
    ) -> None:
        self._sessions = sessions
        self._clock    = clock

    # -- categories ------------------------------------------------------

    async def list_categories(self) -> list[DocumentCategory]:
        async with self._sessions() as session:
            result = await session.execute(select(DocumentCategory).order_by(DocumentCategory.name))
            return list(result.scalars().all())

    async def get_category(self, category_id: uuid.UUID) -> DocumentCategory | None:
        async with self._sessions() as session:
            return await session.get(DocumentCategory, category_id)

    async def get_default_category(self) -> DocumentCategory | None:
        async with self._sessions() as session:
            result = await session.execute(
                select(DocumentCategory).where(DocumentCategory.is_default.is_(True)).limit(1)
            )
            return result.scalars().first()

    @staticmethod
    async def _unset_default_categories(session: AsyncSession) -> None:
        await session.execute(
            update(DocumentCategory)
            .where(DocumentCategory.is_default.is_(True))
            .values(is_default=False)
        )

    async def create_category(self, **fields: Any) -> DocumentCategory:
        now = self._clock()
        values: dict[str, Any] = {"is_default": False, "is_active": True}
        values.update(fields)
        category = DocumentCategory(id=uuid.uuid4(), created_at=now, updated_at=now, **values)
        try:
            async with self._sessions() as session, session.begin():
                if category.is_default:
                    await self._unset_default_categories(session)
                session.add(category)
        except IntegrityError as exc:
            raise ConflictError(f"Category name {category.name!r} already exists") from exc
        return category

    async def update_category(self, category_id: uuid.UUID, **fields: Any) -> DocumentCategory:
        try:
            async with self._sessions() as session, session.begin():
                category = await session.get(DocumentCategory, category_id)
                if category is None:
                    raise NotFoundError("Category", category_id)
                if fields.get("is_default"):
                    await self._unset_default_categories(session)
                for key, value in fields.items():
                    setattr(category, key, value)
                category.updated_at = self._clock()
        except IntegrityError as exc:
            raise ConflictError(f"Category name {fields.get('name')!r} already exists") from exc
        return category

    async def delete_category(self, category_id: uuid.UUID) -> bool:
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(DocumentCategory).where(DocumentCategory.id == category_id)
            )
            return result.rowcount > 0

    # -- providers / models ----------------------------------------------

    async def list_providers(self) -> list[LlmProvider]:
        async with self._sessions() as session:
            result = await session.execute(
                select(LlmProvider)
                .where(LlmProvider.is_active.is_(True))
                .order_by(LlmProvider.name)
            )
            return list(result.scalars().all())

    async def get_provider(self, provider_id: uuid.UUID) -> LlmProvider | None:
        async with self._sessions() as session:
            return await session.get(LlmProvider, provider_id)

    async def create_provider(self, **fields: Any) -> LlmProvider:
        values: dict[str, Any] = {"is_active": True}
        values.update(fields)
        provider = LlmProvider(id=uuid.uuid4(), created_at=self._clock(), **values)
        async with self._sessions() as session, session.begin():
            session.add(provider)
        return provider

    async def create_model(self, **fields: Any) -> LlmModel:
        values: dict[str, Any] = {"is_active": True}
        values.update(fields)
        model = LlmModel(id=uuid.uuid4(), created_at=self._clock(), **values)
        async with self._sessions() as session, session.begin():
            session.add(model)
        return model

    async def get_model(self, model_id: uuid.UUID) -> LlmModel | None:
        async with self._sessions() as session:
            return await session.get(LlmModel, model_id)

    async def list_models(
        self, provider_id: uuid.UUID | None = None
    ) -> list[tuple[LlmModel, LlmProvider]]:
        stmt = (
            select(LlmModel, LlmProvider)
            .join(LlmProvider, LlmProvider.id == LlmModel.provider_id)
            .where(LlmModel.is_active.is_(True), LlmProvider.is_active.is_(True))
            .order_by(LlmProvider.name, LlmModel.name)
        )
        if provider_id is not None:
            stmt = stmt.where(LlmModel.provider_id == provider_id)
        async with self._sessions() as session:
            result = await session.execute(stmt)
            return [(model, provider) for model, provider in result.all()]

    # -- user configs ----------------------------------------------------

    async def list_user_configs(self, user_id: str) -> list[UserLlmConfig]:
        async with self._sessions() as session:
            result = await session.execute(
                select(UserLlmConfig)
                .where(UserLlmConfig.user_id == user_id)
                .order_by(UserLlmConfig.created_at)
            )
            return list(result.scalars().all())

    @staticmethod
    async def _unset_primary(session: AsyncSession, user_id: str, keep: uuid.UUID) -> None:
        await session.execute(
            update(UserLlmConfig)
            .where(UserLlmConfig.user_id == user_id, UserLlmConfig.id != keep)
            .values(is_primary=False)
        )

    async def upsert_user_config(self, user_id: str, **fields: Any) -> UserLlmConfig:
        now = self._clock()
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                select(UserLlmConfig).where(
                    UserLlmConfig.user_id == user_id,
                    UserLlmConfig.model_id == fields.get("model_id"),
                )
            )
            config = result.scalars().first()
            if config is None:
                values: dict[str, Any] = {"is_enabled": True, "is_primary": False}
                values.update(fields)
                config = UserLlmConfig(
                    id=uuid.uuid4(), user_id=user_id, created_at=now, updated_at=now, **values
                )
                session.add(config)
            else:
                for key, value in fields.items():
                    setattr(config, key, value)
                config.updated_at = now
            if config.is_primary:
                await self._unset_primary(session, user_id, keep=config.id)
        return config

    async def update_user_config(
        self, config_id: uuid.UUID, user_id: str, **fields: Any
    ) -> UserLlmConfig:
        async with self._sessions() as session, session.begin():
            config = await session.get(UserLlmConfig, config_id)
            if config is None or config.user_id != user_id:
                raise NotFoundError("UserLlmConfig", config_id)
            for key, value in fields.items():
                setattr(config, key, value)
            config.updated_at = self._clock()
            if config.is_primary:
                await self._unset_primary(session, user_id, keep=config.id)
        return config

    async def delete_user_config(self, config_id: uuid.UUID, user_id: str) -> bool:
        async with self._sessions() as session, session.begin():
            result = await session.execute(
                delete(UserLlmConfig).where(
                    UserLlmConfig.id == config_id,
                    UserLlmConfig.user_id == user_id,
                )
            )
            return result.rowcount > 0

    # -- prompt formats --------------------------------------------------

    async def list_prompt_formats(self) -> list[PromptFormat]:
        async with self._sessions() as session:
            result = await session.execute(select(PromptFormat).order_by(PromptFormat.name))
            return list(result.scalars().all())

    async def get_prompt_format(self, format_id: uuid.UUID) -> PromptFormat | None:
        async with self._sessions() as session:
            return await session.get(PromptFormat, format_id)

    async def create_prompt_format(self, **fields: Any) -> PromptFormat:
        now = self._clock()
        values: dict[str, Any] = {"is_default": False}
        values.update(fields)
        prompt_format = PromptFormat(id=uuid.uuid4(), created_at=now, updated_at=now, **values)
        try:
            async with self._sessions() as session, session.begin():
                session.add(prompt_format)
        except IntegrityError as exc:
            raise ConflictError(f"Prompt format name {prompt_format.name!r} already exists") from exc
        return prompt_format

    async def update_prompt_format(self, format_id: uuid.UUID, **fields: Any) -> PromptFormat:
        try:
            async with self._sessions() as session, session.begin():
                prompt_format = await session.get(PromptFormat, format_id)
                if prompt_format is None:
                    raise NotFoundError("PromptFormat", format_id)
                for key, value in fields.items():
                    setattr(prompt_format, key, value)
                prompt_format.updated_at = self._clock()
        except IntegrityError as exc:
            raise ConflictError(f"Prompt format name {fields.get('name')!r} already exists") from exc
        return prompt_format

    async def delete_prompt_format(self, format_id: uuid.UUID) -> bool:
        async with self._sessions() as session, session.begin():
            result = await session.execute(delete(PromptFormat).where(PromptFormat.id == format_id))
            return result.rowcount > 0
