"""Per-user usage counters for the dashboard."""

from __future__ import annotations

from fastapi import APIRouter

from docuai.auth.dependencies import CurrentUser, Documents
from docuai.schemas.documents import UserStatsResponse

router = APIRouter(prefix="/analytics", tags=["Analytics"])


@router.get("/stats", response_model=UserStatsResponse, summary="Document, image and vector counts")
async def get_stats(user: CurrentUser, store: Documents) -> UserStatsResponse:
    stats = await store.get_user_stats(user.sub)
    return UserStatsResponse.model_validate(stats)
