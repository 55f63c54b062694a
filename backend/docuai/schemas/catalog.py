"""
Catalog resources — categories, LLM providers/models, user model configs,
prompt formats.

Create models validate required fields; Update models are fully optional
and only the fields present in the request body are applied
(model_dump(exclude_unset=True)). Fields backed by NOT NULL columns may be
omitted but not sent as null.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from docuai.schemas.documents import CamelModel


def _not_null(value: Any) -> Any:
    if value is None:
        raise ValueError("may be omitted but cannot be null")
    return value


# ---------------------------------------------------------------------------
# Document categories
# ---------------------------------------------------------------------------

class CategoryCreate(CamelModel):
    name:            str = Field(..., min_length=1, max_length=200)
    description:     str | None = None
    prompt_template: str = Field(..., min_length=1)
    is_default:      bool = False
    is_active:       bool = True


class CategoryUpdate(CamelModel):
    name:            str | None = Field(None, min_length=1, max_length=200)
    description:     str | None = None
    prompt_template: str | None = Field(None, min_length=1)
    is_default:      bool | None = None
    is_active:       bool | None = None

    @field_validator("name", "prompt_template", "is_default", "is_active")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class CategoryResponse(CamelModel):
    id:              UUID
    name:            str
    description:     str | None = None
    prompt_template: str
    is_default:      bool
    is_active:       bool
    created_at:      datetime
    updated_at:      datetime


# ---------------------------------------------------------------------------
# LLM catalog (read-only over the API)
# ---------------------------------------------------------------------------

class ProviderResponse(CamelModel):
    id:           UUID
    name:         str
    display_name: str
    is_active:    bool


class ModelResponse(CamelModel):
    id:                 UUID
    provider_id:        UUID
    name:               str
    display_name:       str
    description:        str | None = None
    max_tokens:         int | None = None
    cost_per_1k_tokens: float | None = None
    is_active:          bool


class ModelWithProviderResponse(ModelResponse):
    provider_name:         str
    provider_display_name: str


# ---------------------------------------------------------------------------
# Per-user model configs
# ---------------------------------------------------------------------------

class UserConfigCreate(CamelModel):
    provider_id: UUID
    model_id:    UUID
    api_key:     str | None = None
    is_enabled:  bool = True
    is_primary:  bool = False


class UserConfigUpdate(CamelModel):
    api_key:    str | None = None
    is_enabled: bool | None = None
    is_primary: bool | None = None

    @field_validator("is_enabled", "is_primary")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class UserConfigResponse(CamelModel):
    """The stored api_key never leaves the server; only its presence does."""

    id:          UUID
    user_id:     str
    provider_id: UUID
    model_id:    UUID
    is_enabled:  bool
    is_primary:  bool
    created_at:  datetime
    updated_at:  datetime

    has_api_key: bool = False

    @model_validator(mode="before")
    @classmethod
    def _mask_api_key(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return data
        # ORM row: copy the columns, replace the key with its presence
        values = {name: getattr(data, name) for name in cls.model_fields if name != "has_api_key"}
        values["has_api_key"] = bool(getattr(data, "api_key", None))
        return values


# ---------------------------------------------------------------------------
# Prompt formats
# ---------------------------------------------------------------------------

class PromptFormatCreate(CamelModel):
    name:        str = Field(..., min_length=1, max_length=200)
    description: str | None = None
    structure:   str = Field(..., min_length=1)
    best_for:    str | None = None
    purpose:     str | None = None
    is_default:  bool = False


class PromptFormatUpdate(CamelModel):
    name:        str | None = Field(None, min_length=1, max_length=200)
    description: str | None = None
    structure:   str | None = Field(None, min_length=1)
    best_for:    str | None = None
    purpose:     str | None = None
    is_default:  bool | None = None

    @field_validator("name", "structure", "is_default")
    @classmethod
    def _reject_null(cls, value: Any) -> Any:
        return _not_null(value)


class PromptFormatResponse(CamelModel):
    id:          UUID
    name:        str
    description: str | None = None
    structure:   str
    best_for:    str | None = None
    purpose:     str | None = None
    is_default:  bool
    created_at:  datetime
    updated_at:  datetime
