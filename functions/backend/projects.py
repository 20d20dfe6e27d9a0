"""
Projects (task groupings on a board) and the user's context tag catalog.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError

from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import ContextTagRow, ProjectRow, TaskRow

logger = logging.getLogger(__name__)

PROJECT_ACTIONS = ("create", "update", "delete", "duplicate_template")
PROJECT_FIELDS = (
    "name",
    "description",
    "status",
    "color",
    "start_date",
    "end_date",
    "is_template",
    "cycle_id",
)
DEFAULT_PROJECT_COLOR = "#6366f1"
INBOX_COLUMN = "todo"

TAG_ACTIONS = ("list", "create", "update", "delete", "seed-defaults")
DEFAULT_TAG_ICON = "🏷️"
DEFAULT_TAGS = (
    {"value": "deep-work", "label": "Deep Work", "icon": "🎯"},
    {"value": "admin", "label": "Admin", "icon": "📋"},
    {"value": "creative", "label": "Creative", "icon": "🎨"},
    {"value": "calls", "label": "Calls", "icon": "📞"},
    {"value": "email", "label": "Email", "icon": "📧"},
    {"value": "research", "label": "Research", "icon": "🔍"},
)


def _project_not_found(status_code: int = 404) -> ApiError:
    return ApiError(
        status_code, "Project not found or you don't have access to it.", code="NOT_FOUND"
    )


def _owned_project(session, user_id: str, project_id: Optional[str]) -> ProjectRow:
    project = session.execute(
        select(ProjectRow).where(ProjectRow.id == project_id, ProjectRow.user_id == user_id)
    ).scalar_one_or_none()
    if project is None:
        raise _project_not_found()
    return project


def _project_name(value) -> str:
    name = value.strip() if isinstance(value, str) else ""
    if not name:
        raise ApiError(400, "Project name is required.", code="VALIDATION_ERROR")
    return name


def manage_project(db: DbClient, user_id: str, action: Optional[str], project: dict) -> dict:
    """Apply one manage-project action; ``project`` holds only the supplied fields."""
    if action not in PROJECT_ACTIONS:
        raise ApiError(400, "Invalid operation requested.", code="INVALID_ACTION")
    if action != "create" and not project.get("id"):
        raise _project_not_found(400)

    with db.Session() as session:
        if action == "create":
            row = ProjectRow(
                user_id=user_id,
                name=_project_name(project.get("name")),
                description=project.get("description") or None,
                status=project.get("status") or "active",
                color=project.get("color") or DEFAULT_PROJECT_COLOR,
                start_date=project.get("start_date") or None,
                end_date=project.get("end_date") or None,
                is_template=bool(project.get("is_template")),
                cycle_id=project.get("cycle_id") or None,
            )
            session.add(row)

        elif action == "update":
            row = _owned_project(session, user_id, project["id"])
            for key in PROJECT_FIELDS:
                if key not in project:
                    continue
                if key == "name":
                    row.name = _project_name(project["name"])
                elif key == "is_template":
                    row.is_template = bool(project["is_template"])
                elif key == "status":
                    row.status = project["status"] or "active"
                else:
                    setattr(row, key, project[key])
            row.updated_at = time.time()

        elif action == "delete":
            row = _owned_project(session, user_id, project["id"])
            # Tasks of a deleted project go back to the inbox.
            moved = session.execute(
                update(TaskRow)
                .where(TaskRow.project_id == row.id, TaskRow.user_id == user_id)
                .values(project_id=None, project_column=INBOX_COLUMN, updated_at=time.time())
                .execution_options(synchronize_session=False)
            ).rowcount
            session.delete(row)
            session.commit()
            logger.info("[manage-project] deleted %s, moved %d task(s)", row.id, moved)
            message = (
                f"Project deleted. {moved} task(s) were moved to your inbox."
                if moved
                else "Project deleted."
            )
            return {"success": True, "message": message}

        else:
            template = _owned_project(session, user_id, project["id"])
            row = ProjectRow(
                user_id=user_id,
                name=(project.get("new_name") or "").strip() or f"{template.name} (Copy)",
                description=template.description,
                status="active",
                color=template.color,
                start_date=project.get("start_date") or None,
                end_date=project.get("end_date") or None,
                is_template=False,
            )
            session.add(row)

        session.commit()
        logger.info("[manage-project] %s %s", action, row.id)
        return {"data": row_to_dict(row)}


def _tag_value(label: str) -> str:
    return re.sub(r"\s+", "-", label.strip().lower())


def _owned_tag(session, user_id: str, tag_id: Optional[str]) -> ContextTagRow:
    tag = session.execute(
        select(ContextTagRow).where(ContextTagRow.id == tag_id, ContextTagRow.user_id == user_id)
    ).scalar_one_or_none()
    if tag is None:
        raise ApiError(404, "Tag not found")
    return tag


def manage_context_tags(db: DbClient, user_id: str, body: dict) -> dict:
    action = body.get("action")
    if action not in TAG_ACTIONS:
        raise ApiError(400, "Invalid action")
    if action in ("update", "delete") and not body.get("id"):
        raise ApiError(400, "Tag ID is required")

    logger.info("[manage-context-tags] user %s action %s", user_id, action)
    with db.Session() as session:
        if action == "list":
            tags = session.execute(
                select(ContextTagRow)
                .where(ContextTagRow.user_id == user_id)
                .order_by(ContextTagRow.sort_order.asc(), ContextTagRow.created_at.asc())
            ).scalars().all()
            return {"tags": [row_to_dict(tag) for tag in tags]}

        if action == "create":
            value, label = body.get("value"), body.get("label")
            if not value or not label:
                raise ApiError(400, "Value and label are required")
            last_order = session.execute(
                select(func.max(ContextTagRow.sort_order)).where(ContextTagRow.user_id == user_id)
            ).scalar_one()
            tag = ContextTagRow(
                user_id=user_id,
                value=_tag_value(value),
                label=label,
                icon=body.get("icon") or DEFAULT_TAG_ICON,
                sort_order=0 if last_order is None else last_order + 1,
            )
            session.add(tag)
            try:
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ApiError(400, "A tag with this name already exists") from e
            return {"tag": row_to_dict(tag)}

        if action == "update":
            tag = _owned_tag(session, user_id, body["id"])
            if body.get("label"):
                tag.label = body["label"]
            if body.get("icon"):
                tag.icon = body["icon"]
            if body.get("sort_order") is not None:
                tag.sort_order = body["sort_order"]
            session.commit()
            return {"tag": row_to_dict(tag)}

        if action == "delete":
            session.delete(_owned_tag(session, user_id, body["id"]))
            session.commit()
            return {"success": True}

        existing = session.execute(
            select(ContextTagRow.id).where(ContextTagRow.user_id == user_id).limit(1)
        ).scalar_one_or_none()
        if existing is not None:
            return {"message": "Tags already exist", "seeded": False}
        session.add_all(
            ContextTagRow(user_id=user_id, sort_order=order, **tag)
            for order, tag in enumerate(DEFAULT_TAGS)
        )
        session.commit()
        logger.info("[manage-context-tags] seeded %d default tags", len(DEFAULT_TAGS))
        return {"message": "Default tags created", "seeded": True}
