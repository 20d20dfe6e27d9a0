"""
Editorial calendar: content items checked against the static catalogs.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from sqlalchemy import select

from backend.dates import parse_day
from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import ContentItemRow
from shared.content_types import (
    CATEGORIES,
    CONTENT_TYPES,
    PLATFORMS,
    normalize_platform,
    platform_color,
)

logger = logging.getLogger(__name__)

CONTENT_ACTIONS = ("create", "update", "delete")
CONTENT_STATUSES = ("idea", "drafting", "scheduled", "published")
TITLE_LIMIT = 300
MAX_CALENDAR_RANGE_DAYS = 366


def _check_type(content_type) -> str:
    if content_type not in CONTENT_TYPES:
        raise ApiError(400, "Invalid content type")
    return content_type


def _check_platform(platform) -> Optional[str]:
    if platform is None or platform == "":
        return None
    normalized = normalize_platform(platform)
    if normalized not in PLATFORMS:
        raise ApiError(400, "Invalid platform")
    return normalized


def _check_date(value) -> Optional[str]:
    if not value:
        return None
    day = parse_day(value)
    if day is None:
        raise ApiError(400, "Invalid planned publish date")
    return day.isoformat()


def _item_dict(item: ContentItemRow) -> dict:
    data = row_to_dict(item)
    data["color"] = (
        platform_color(item.platform)
        if item.platform
        else CONTENT_TYPES[item.content_type].color
    )
    return data


def manage_content_item(db: DbClient, user_id: str, body: dict) -> Optional[dict]:
    action = body.get("action")
    if action not in CONTENT_ACTIONS:
        raise ApiError(400, "Invalid or missing action")

    with db.Session() as session:
        if action == "create":
            title = (body.get("title") or "").strip()
            if not title:
                raise ApiError(400, "Title is required")
            status = body.get("status") or "idea"
            if status not in CONTENT_STATUSES:
                raise ApiError(400, "Invalid status value")
            item = ContentItemRow(
                user_id=user_id,
                title=title[:TITLE_LIMIT],
                content_type=_check_type(body.get("content_type")),
                platform=_check_platform(body.get("platform")),
                status=status,
                planned_publish_date=_check_date(body.get("planned_publish_date")),
                body=body.get("body"),
                tags=list(body.get("tags") or []),
            )
            session.add(item)
            session.commit()
            logger.info("[manage-content-item] created %s", item.id)
            return _item_dict(item)

        item = session.execute(
            select(ContentItemRow).where(
                ContentItemRow.id == body.get("id"), ContentItemRow.user_id == user_id
            )
        ).scalar_one_or_none()
        if item is None:
            raise ApiError(404, "Content item not found")

        if action == "delete":
            session.delete(item)
            session.commit()
            logger.info("[manage-content-item] deleted %s", item.id)
            return None

        if "title" in body:
            title = (body.get("title") or "").strip()
            if not title:
                raise ApiError(400, "Title is required")
            item.title = title[:TITLE_LIMIT]
        if "content_type" in body:
            item.content_type = _check_type(body["content_type"])
        if "platform" in body:
            item.platform = _check_platform(body["platform"])
        if "status" in body:
            if body["status"] not in CONTENT_STATUSES:
                raise ApiError(400, "Invalid status value")
            item.status = body["status"]
        if "planned_publish_date" in body:
            item.planned_publish_date = _check_date(body["planned_publish_date"])
        if "body" in body:
            item.body = body["body"]
        if "tags" in body:
            item.tags = list(body["tags"] or [])
        item.updated_at = time.time()
        session.commit()
        return _item_dict(item)


def get_calendar_content(db: DbClient, user_id: str, *, start: str, end: str) -> list[dict]:
    start_day = parse_day(start)
    end_day = parse_day(end)
    if start_day is None or end_day is None:
        raise ApiError(400, "start and end dates are required")
    if end_day < start_day:
        raise ApiError(400, "end must not be before start")
    if (end_day - start_day).days > MAX_CALENDAR_RANGE_DAYS:
        raise ApiError(400, "Date range too large")

    with db.Session() as session:
        items = session.execute(
            select(ContentItemRow)
            .where(
                ContentItemRow.user_id == user_id,
                ContentItemRow.planned_publish_date >= start_day.isoformat(),
                ContentItemRow.planned_publish_date <= end_day.isoformat(),
            )
            .order_by(
                ContentItemRow.planned_publish_date.asc(), ContentItemRow.created_at.asc()
            )
        ).scalars().all()
        return [_item_dict(item) for item in items]


def get_content_types() -> dict:
    return {
        "categories": list(CATEGORIES),
        "content_types": [t.as_dict() for t in CONTENT_TYPES.values()],
        "platforms": [
            {"id": p.id, "label": p.label, "short_label": p.short_label, "color": p.color}
            for p in PLATFORMS.values()
        ],
    }
