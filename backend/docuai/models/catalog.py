"""
ORM Models — Categories, LLM catalog, per-user model configs, prompt formats

These back the CRUD resources around the intake pipeline:

  document_categories   document types with an extraction prompt template;
                        exactly one may be the default
  llm_providers         provider catalog (seeded, read-only over the API)
  llm_models            models offered by each provider
  user_llm_configs      a user's chosen models and API keys;
                        UNIQUE(user_id, model_id), at most one primary per user
  prompt_formats        reusable prompt structures shown in the UI
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from docuai.models.documents import Base


class DocumentCategory(Base):
    __tablename__ = "document_categories"

    id:   Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str]       = mapped_column(Text, nullable=False, unique=True)

    description:     Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    prompt_template: Mapped[str]           = mapped_column(Text, nullable=False)

    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active:  Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LlmProvider(Base):
    __tablename__ = "llm_providers"

    id:           Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name:         Mapped[str]       = mapped_column(Text, nullable=False, unique=True)
    display_name: Mapped[str]       = mapped_column(Text, nullable=False)
    is_active:    Mapped[bool]      = mapped_column(Boolean, nullable=False, default=True)
    created_at:   Mapped[datetime]  = mapped_column(DateTime(timezone=True), nullable=False)


class LlmModel(Base):
    __tablename__ = "llm_models"
    __table_args__ = (
        UniqueConstraint("provider_id", "name", name="uq_llm_models_provider_name"),
        Index("idx_llm_models_provider_id", "provider_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("llm_providers.id", ondelete="CASCADE"),
        nullable=False,
    )
    name:         Mapped[str]           = mapped_column(Text, nullable=False)
    display_name: Mapped[str]           = mapped_column(Text, nullable=False)
    description:  Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    max_tokens:         Mapped[Optional[int]]   = mapped_column(Integer, nullable=True)
    cost_per_1k_tokens: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    is_active:  Mapped[bool]     = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class UserLlmConfig(Base):
    """
    A user's configuration for one model. api_key is write-only over the API;
    responses only expose has_api_key.
    """

    __tablename__ = "user_llm_configs"
    __table_args__ = (
        UniqueConstraint("user_id", "model_id", name="uq_user_llm_configs_user_model"),
        Index("idx_user_llm_configs_user_id", "user_id"),
    )

    id:      Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str]       = mapped_column(Text, nullable=False)

    provider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("llm_providers.id", ondelete="CASCADE"),
        nullable=False,
    )
    model_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("llm_models.id", ondelete="CASCADE"),
        nullable=False,
    )
    api_key: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_primary: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class PromptFormat(Base):
    __tablename__ = "prompt_formats"

    id:   Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name: Mapped[str]       = mapped_column(Text, nullable=False, unique=True)

    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    structure:   Mapped[str]           = mapped_column(Text, nullable=False)
    best_for:    Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    purpose:     Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    is_default:  Mapped[bool]          = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
