"""Prompt formats router: reusable prompt structures offered in the UI."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status

from docuai.auth.dependencies import Catalog, CurrentUser
from docuai.schemas.catalog import PromptFormatCreate, PromptFormatResponse, PromptFormatUpdate
from docuai.schemas.documents import ErrorResponse
from docuai.store.base import NotFoundError

router = APIRouter(prefix="/prompt-formats", tags=["Prompt Formats"])

_NOT_FOUND = {404: {"model": ErrorResponse}}


@router.get("", response_model=list[PromptFormatResponse], summary="List prompt formats")
async def list_prompt_formats(user: CurrentUser, catalog: Catalog) -> list[PromptFormatResponse]:
    return [PromptFormatResponse.model_validate(f) for f in await catalog.list_prompt_formats()]


@router.post(
    "",
    response_model=PromptFormatResponse,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"model": ErrorResponse}},
)
async def create_prompt_format(
    body: PromptFormatCreate, user: CurrentUser, catalog: Catalog,
) -> PromptFormatResponse:
    prompt_format = await catalog.create_prompt_format(**body.model_dump())
    return PromptFormatResponse.model_validate(prompt_format)


@router.get("/{format_id}", response_model=PromptFormatResponse, responses=_NOT_FOUND)
async def get_prompt_format(
    format_id: UUID, user: CurrentUser, catalog: Catalog,
) -> PromptFormatResponse:
    prompt_format = await catalog.get_prompt_format(format_id)
    if prompt_format is None:
        raise NotFoundError("PromptFormat", format_id)
    return PromptFormatResponse.model_validate(prompt_format)


@router.put("/{format_id}", response_model=PromptFormatResponse, responses=_NOT_FOUND)
async def update_prompt_format(
    format_id: UUID, body: PromptFormatUpdate, user: CurrentUser, catalog: Catalog,
) -> PromptFormatResponse:
    prompt_format = await catalog.update_prompt_format(
        format_id, **body.model_dump(exclude_unset=True)
    )
    return PromptFormatResponse.model_validate(prompt_format)


@router.delete("/{format_id}", responses=_NOT_FOUND)
async def delete_prompt_format(format_id: UUID, user: CurrentUser, catalog: Catalog) -> dict:
    if not await catalog.delete_prompt_format(format_id):
        raise NotFoundError("PromptFormat", format_id)
    return {"success": True}
