"""
Editorial calendar and AI copywriting routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend import content, copywriting
from backend.auth import current_user_id
from backend.config import Settings, get_settings
from backend.db import DbClient
from backend.dependencies import get_db_client
from backend.membership import require_feature
from backend.ratelimit import RateLimit, check_rate_limit, rate_limited
from backend.schemas import (
    CalendarContentRequest,
    GenerateCopyRequest,
    ManageContentItemRequest,
    RateCopyRequest,
)

router = APIRouter()

# Each generation is three model calls.
GENERATE_COPY_LIMIT = RateLimit(max_requests=10)


@router.post("/manage-content-item")
def manage_content_item(
    payload: ManageContentItemRequest,
    user_id: str = Depends(rate_limited("manage-content-item")),
    db: DbClient = Depends(get_db_client),
):
    item = content.manage_content_item(db, user_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "data": item}


@router.post("/get-calendar-content")
def get_calendar_content(
    payload: CalendarContentRequest,
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return {
        "data": content.get_calendar_content(db, user_id, start=payload.start, end=payload.end)
    }


@router.post("/get-content-types")
def get_content_types(user_id: str = Depends(current_user_id)):
    return {"data": content.get_content_types()}


@router.post("/generate-copy")
def generate_copy(
    payload: GenerateCopyRequest,
    user_id: str = Depends(require_feature("ai_copywriting")),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    check_rate_limit(db, user_id, "generate-copy", GENERATE_COPY_LIMIT)
    context = payload.model_dump(exclude={"content_type"}, exclude_none=True)
    return copywriting.generate_copy(
        db,
        user_id,
        content_type=payload.content_type,
        context=context,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
    )


@router.post("/rate-copy")
def rate_copy(
    payload: RateCopyRequest,
    user_id: str = Depends(require_feature("ai_copywriting")),
    db: DbClient = Depends(get_db_client),
):
    row = copywriting.rate_copy(
        db,
        user_id,
        generation_id=payload.generation_id,
        rating=payload.rating,
        feedback_text=payload.feedback_text,
    )
    return {"success": True, "data": row}
