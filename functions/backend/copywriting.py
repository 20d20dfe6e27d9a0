"""
AI copywriting operations: generate-copy and rate-copy.
"""

from __future__ import annotations

import logging
from typing import Optional

from google.genai import errors as genai_errors
from sqlalchemy import select

from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import AiCopyGenerationRow
from models import copywriting, gemini

logger = logging.getLogger(__name__)

MAX_PAST_FEEDBACK = 10


def _past_feedback(session, user_id: str, content_type: str) -> list[dict]:
    rows = session.execute(
        select(AiCopyGenerationRow)
        .where(
            AiCopyGenerationRow.user_id == user_id,
            AiCopyGenerationRow.content_type == content_type,
            AiCopyGenerationRow.user_rating.is_not(None),
        )
        .order_by(AiCopyGenerationRow.created_at.desc())
        .limit(MAX_PAST_FEEDBACK)
    ).scalars().all()
    return [
        {"user_rating": row.user_rating, "feedback_text": row.feedback_text} for row in rows
    ]


def generate_copy(
    db: DbClient,
    user_id: str,
    *,
    content_type: str,
    context: dict,
    api_key: Optional[str],
    model: str,
) -> dict:
    if not api_key:
        raise ApiError(503, "AI copywriting is not configured")
    if not content_type:
        raise ApiError(400, "content_type is required")

    with db.Session() as session:
        context = {**context, "past_feedback": _past_feedback(session, user_id, content_type)}

    try:
        result = copywriting.generate_copy(
            content_type, context, api_key=api_key, model=model
        )
    except gemini.GeminiInvalidResponseException:
        logger.error("[generate-copy] empty model response for %s", content_type)
        raise ApiError(502, "The AI model returned an empty response")
    except genai_errors.APIError as e:
        logger.error("[generate-copy] model call failed: %s", e)
        raise ApiError(502, "The AI model request failed")

    stored_context = {k: v for k, v in context.items() if k != "past_feedback"}
    with db.Session() as session:
        row = AiCopyGenerationRow(
            user_id=user_id,
            content_type=content_type,
            context=stored_context,
            generated_copy=result.copy,
            tokens_used=result.tokens_used,
            generation_time_ms=result.generation_time_ms,
        )
        session.add(row)
        session.commit()
        logger.info(
            "[generate-copy] %s: %d tokens in %dms",
            content_type,
            result.tokens_used,
            result.generation_time_ms,
        )
        return {
            "copy": result.copy,
            "tokens_used": result.tokens_used,
            "generation_time_ms": result.generation_time_ms,
            "id": row.id,
        }


def rate_copy(
    db: DbClient,
    user_id: str,
    *,
    generation_id: str,
    rating: int,
    feedback_text: Optional[str] = None,
) -> dict:
    if not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ApiError(400, "Rating must be between 1 and 5")

    with db.Session() as session:
        row = session.execute(
            select(AiCopyGenerationRow).where(
                AiCopyGenerationRow.id == generation_id,
                AiCopyGenerationRow.user_id == user_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise ApiError(404, "Generation not found")
        row.user_rating = rating
        row.feedback_text = feedback_text
        session.commit()
        return row_to_dict(row)
