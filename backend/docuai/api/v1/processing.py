"""
Processing queue router — what the UI polls while runs are in flight.

GET /api/processing/active
    Queue items in status=processing whose document belongs to the caller,
    newest first. Items drop out as soon as a run completes or fails.
"""

from __future__ import annotations

from fastapi import APIRouter

from docuai.auth.dependencies import CurrentUser, Documents
from docuai.schemas.documents import QueueItemResponse

router = APIRouter(prefix="/processing", tags=["Processing"])


@router.get(
    "/active",
    response_model=list[QueueItemResponse],
    summary="In-flight processing items for the caller",
)
async def list_active_items(user: CurrentUser, store: Documents) -> list[QueueItemResponse]:
    items = await store.get_active_processing_items(user.sub)
    return [QueueItemResponse.model_validate(i) for i in items]
