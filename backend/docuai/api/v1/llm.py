"""
LLM catalog + per-user model configuration router.

  GET    /llm/providers                 active providers
  GET    /llm/providers/{id}/models     active models of one provider
  GET    /llm/models                    every active model, with its provider
  GET    /llm/user-configs              the caller's configs
  POST   /llm/user-configs              upsert by (user, model)
  PUT    /llm/user-configs/{id}         partial update
  DELETE /llm/user-configs/{id}

API keys are write-only: responses carry hasApiKey instead of the key.
Configs belonging to another user behave exactly like unknown ids (404).
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from docuai.auth.dependencies import Catalog, CurrentUser
from docuai.schemas.catalog import (
    ModelResponse,
    ModelWithProviderResponse,
    ProviderResponse,
    UserConfigCreate,
    UserConfigResponse,
    UserConfigUpdate,
)
from docuai.schemas.documents import ErrorDetail, ErrorResponse
from docuai.store.base import NotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/llm", tags=["LLM Catalog"])

_NOT_FOUND = {404: {"model": ErrorResponse}}


# ---------------------------------------------------------------------------
# Catalog (read-only)
# ---------------------------------------------------------------------------

@router.get("/providers", response_model=list[ProviderResponse], summary="Active providers")
async def list_providers(user: CurrentUser, catalog: Catalog) -> list[ProviderResponse]:
    return [ProviderResponse.model_validate(p) for p in await catalog.list_providers()]


@router.get(
    "/providers/{provider_id}/models",
    response_model=list[ModelResponse],
    summary="Active models of one provider",
    responses=_NOT_FOUND,
)
async def list_provider_models(
    provider_id: UUID, user: CurrentUser, catalog: Catalog,
) -> list[ModelResponse]:
    if await catalog.get_provider(provider_id) is None:
        raise NotFoundError("Provider", provider_id)
    rows = await catalog.list_models(provider_id=provider_id)
    return [ModelResponse.model_validate(model) for model, _ in rows]


@router.get(
    "/models",
    response_model=list[ModelWithProviderResponse],
    summary="Every active model with its provider",
)
async def list_models(user: CurrentUser, catalog: Catalog) -> list[ModelWithProviderResponse]:
    return [
        ModelWithProviderResponse(
            **ModelResponse.model_validate(model).model_dump(),
            provider_name=provider.name,
            provider_display_name=provider.display_name,
        )
        for model, provider in await catalog.list_models()
    ]


# ---------------------------------------------------------------------------
# Per-user configs
# ---------------------------------------------------------------------------

@router.get("/user-configs", response_model=list[UserConfigResponse], summary="My model configs")
async def list_user_configs(user: CurrentUser, catalog: Catalog) -> list[UserConfigResponse]:
    return [UserConfigResponse.model_validate(c) for c in await catalog.list_user_configs(user.sub)]


@router.post(
    "/user-configs",
    response_model=UserConfigResponse,
    summary="Create or replace my config for a model",
    responses={400: {"model": ErrorResponse}, **_NOT_FOUND},
)
async def upsert_user_config(
    body: UserConfigCreate, user: CurrentUser, catalog: Catalog,
) -> UserConfigResponse:
    model = await catalog.get_model(body.model_id)
    if model is None:
        raise NotFoundError("Model", body.model_id)
    if model.provider_id != body.provider_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=ErrorResponse(
                error_code="MODEL_PROVIDER_MISMATCH",
                message="The model does not belong to the given provider.",
                details=[
                    ErrorDetail(
                        field="providerId",
                        message=f"Model '{model.id}' belongs to provider '{model.provider_id}'.",
                        code="MODEL_PROVIDER_MISMATCH",
                    )
                ],
            ).model_dump(),
        )

    config = await catalog.upsert_user_config(user.sub, **body.model_dump())
    logger.info(
        "User config saved | user=%s model=%s primary=%s", user.sub, model.name, config.is_primary,
    )
    return UserConfigResponse.model_validate(config)


@router.put(
    "/user-configs/{config_id}",
    response_model=UserConfigResponse,
    summary="Update one of my configs",
    responses=_NOT_FOUND,
)
async def update_user_config(
    config_id: UUID, body: UserConfigUpdate, user: CurrentUser, catalog: Catalog,
) -> UserConfigResponse:
    config = await catalog.update_user_config(
        config_id, user.sub, **body.model_dump(exclude_unset=True)
    )
    return UserConfigResponse.model_validate(config)


@router.delete("/user-configs/{config_id}", summary="Delete one of my configs", responses=_NOT_FOUND)
async def delete_user_config(config_id: UUID, user: CurrentUser, catalog: Catalog) -> dict:
    if not await catalog.delete_user_config(config_id, user.sub):
        raise NotFoundError("UserLlmConfig", config_id)
    return {"success": True}
