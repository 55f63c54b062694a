"""
Document categories router.

A category carries the prompt template appended to the OCR instruction for
documents uploaded under it. At most one category is the default; creating
or updating one with isDefault=true clears the flag everywhere else.

Duplicate names surface as 409 (ConflictError) and unknown ids as 404
(NotFoundError) through the app-level exception handlers.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, status

from docuai.auth.dependencies import Catalog, CurrentUser
from docuai.schemas.catalog import CategoryCreate, CategoryResponse, CategoryUpdate
from docuai.schemas.documents import ErrorResponse
from docuai.store.base import NotFoundError

router = APIRouter(prefix="/categories", tags=["Categories"])


@router.get("", response_model=list[CategoryResponse], summary="List categories")
async def list_categories(user: CurrentUser, catalog: Catalog) -> list[CategoryResponse]:
    return [CategoryResponse.model_validate(c) for c in await catalog.list_categories()]


@router.get(
    "/default",
    response_model=CategoryResponse,
    summary="The default category",
    responses={404: {"model": ErrorResponse}},
)
async def get_default_category(user: CurrentUser, catalog: Catalog) -> CategoryResponse:
    category = await catalog.get_default_category()
    if category is None:
        raise NotFoundError("Category", "default")
    return CategoryResponse.model_validate(category)


@router.post(
    "",
    response_model=CategoryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a category",
    responses={409: {"model": ErrorResponse}},
)
async def create_category(
    body: CategoryCreate, user: CurrentUser, catalog: Catalog,
) -> CategoryResponse:
    category = await catalog.create_category(**body.model_dump())
    return CategoryResponse.model_validate(category)


@router.get(
    "/{category_id}",
    response_model=CategoryResponse,
    summary="Get one category",
    responses={404: {"model": ErrorResponse}},
)
async def get_category(category_id: UUID, user: CurrentUser, catalog: Catalog) -> CategoryResponse:
    category = await catalog.get_category(category_id)
    if category is None:
        raise NotFoundError("Category", category_id)
    return CategoryResponse.model_validate(category)


@router.put(
    "/{category_id}",
    response_model=CategoryResponse,
    summary="Update a category",
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def update_category(
    category_id: UUID, body: CategoryUpdate, user: CurrentUser, catalog: Catalog,
) -> CategoryResponse:
    category = await catalog.update_category(category_id, **body.model_dump(exclude_unset=True))
    return CategoryResponse.model_validate(category)


@router.delete(
    "/{category_id}",
    summary="Delete a category",
    responses={404: {"model": ErrorResponse}},
)
async def delete_category(category_id: UUID, user: CurrentUser, catalog: Catalog) -> dict:
    if not await catalog.delete_category(category_id):
        raise NotFoundError("Category", category_id)
    return {"success": True}
