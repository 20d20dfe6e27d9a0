"""
Task operations: manage-task, get-all-tasks and create-tasks-from-priorities.
"""

from __future__ import annotations

import logging
import time
from datetime import timedelta
from typing import Any, Optional

from sqlalchemy import func, or_, select

from backend.dates import is_time_value, parse_day, today
from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import CycleRow, ProjectRow, SopRow, TaskRow, TaskScheduleHistoryRow

logger = logging.getLogger(__name__)

ACTIONS = ("create", "update", "delete", "toggle", "toggle_checklist_item", "detach_sop")
LEVELS = ("low", "medium", "high")
STATUSES = ("backlog", "todo", "in_progress", "blocked", "done")

TASK_TEXT_LIMIT = 500
DESCRIPTION_LIMIT = 5000
MAX_ESTIMATED_MINUTES = 1440

RESCHEDULE_WINDOW_DAYS = 30
RESCHEDULE_LOOP_COUNT = 3
RESCHEDULE_LOOP_DAYS = 7

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100
SMART_FILTER_DAYS = 90

# Updatable fields stored in NOT NULL columns.
LIST_FIELDS = ("recurrence_days", "checklist_progress", "context_tags", "subtasks")
REQUIRED_FIELDS = ("status", "day_order", "project_column")

# Fields an update may set directly.
UPDATABLE_FIELDS = (
    "scheduled_date",
    "priority",
    "recurrence_days",
    "sop_id",
    "checklist_progress",
    "priority_order",
    "daily_plan_id",
    "estimated_minutes",
    "actual_minutes",
    "energy_level",
    "context_tags",
    "goal_id",
    "category",
    "status",
    "waiting_on",
    "subtasks",
    "notes",
    "position_in_column",
    "planned_day",
    "day_order",
    "project_id",
    "project_column",
    "cycle_id",
)


def validate_task_request(body: dict) -> str:
    action = body.get("action")
    if not action or action not in ACTIONS:
        raise ApiError(400, "Invalid or missing action")

    if action == "create":
        text = body.get("task_text")
        if not isinstance(text, str) or not text.strip():
            raise ApiError(400, "Task text is required")
    elif not body.get("task_id"):
        raise ApiError(400, "Task ID is required for this action")

    for key in REQUIRED_FIELDS:
        if key in body and body[key] is None:
            raise ApiError(400, f"{key} cannot be null")

    if "priority" in body and body["priority"] is not None and body["priority"] not in LEVELS:
        raise ApiError(400, "Invalid priority value")
    if (
        "energy_level" in body
        and body["energy_level"] is not None
        and body["energy_level"] not in LEVELS
    ):
        raise ApiError(400, "Invalid energy level value")
    if "status" in body and body["status"] is not None and body["status"] not in STATUSES:
        raise ApiError(400, "Invalid status value")

    minutes = body.get("estimated_minutes")
    if minutes is not None and not 0 <= minutes <= MAX_ESTIMATED_MINUTES:
        raise ApiError(400, "Invalid estimated minutes (must be 0-1440)")
    return action


def _is_recurring(pattern: Optional[str]) -> bool:
    return bool(pattern) and pattern != "none"


def _time_or_none(value: Any) -> Optional[str]:
    return value if is_time_value(value) else None


def _get_task(session, user_id: str, task_id: str) -> TaskRow:
    task = session.execute(
        select(TaskRow).where(
            TaskRow.task_id == task_id,
            TaskRow.user_id == user_id,
            TaskRow.deleted_at.is_(None),
        )
    ).scalar_one_or_none()
    if task is None:
        raise ApiError(404, "Task not found")
    return task


def _create(session, user_id: str, body: dict) -> TaskRow:
    sop_id = body.get("sop_id")
    if sop_id:
        sop = session.execute(
            select(SopRow).where(SopRow.sop_id == sop_id, SopRow.user_id == user_id)
        ).scalar_one_or_none()
        if sop is not None:
            sop.times_used = (sop.times_used or 0) + 1

    description = body.get("task_description")
    pattern = body.get("recurrence_pattern")
    task = TaskRow(
        user_id=user_id,
        task_text=body["task_text"][:TASK_TEXT_LIMIT],
        task_description=description[:DESCRIPTION_LIMIT] if description else None,
        scheduled_date=body.get("scheduled_date") or None,
        priority=body.get("priority") or None,
        source=body.get("source") or "manual",
        is_completed=False,
        recurrence_pattern=pattern or None,
        recurrence_days=body.get("recurrence_days") or [],
        is_recurring_parent=_is_recurring(pattern),
        sop_id=sop_id or None,
        checklist_progress=body.get("checklist_progress") or [],
        priority_order=body.get("priority_order") or None,
        daily_plan_id=body.get("daily_plan_id") or None,
        estimated_minutes=body.get("estimated_minutes") or None,
        actual_minutes=body.get("actual_minutes") or None,
        time_block_start=_time_or_none(body.get("time_block_start")),
        time_block_end=_time_or_none(body.get("time_block_end")),
        energy_level=body.get("energy_level") or None,
        context_tags=body.get("context_tags") or [],
        goal_id=body.get("goal_id") or None,
        category=body.get("category") or None,
        status=body.get("status") or "backlog",
        waiting_on=body.get("waiting_on") or None,
        subtasks=body.get("subtasks") or [],
        notes=body.get("notes") or None,
        position_in_column=body.get("position_in_column") or None,
        planned_day=body.get("planned_day") or None,
        day_order=body.get("day_order") or 0,
        project_id=body.get("project_id") or None,
        project_column=body.get("project_column") or "todo",
        cycle_id=body.get("cycle_id") or None,
    )
    session.add(task)
    return task


def _days_between(start: Optional[str], end: Optional[str]) -> Optional[int]:
    start_day, end_day = parse_day(start), parse_day(end)
    if start_day is None or end_day is None:
        return None
    return (end_day - start_day).days


def _track_reschedule(session, user_id: str, task: TaskRow, body: dict) -> None:
    """Record a schedule change and refresh the task's reschedule counters."""
    prev_scheduled = task.planned_day or task.time_block_start
    prev_due = task.scheduled_date

    if "planned_day" in body:
        new_scheduled = body["planned_day"]
    elif "time_block_start" in body:
        new_scheduled = body["time_block_start"]
    else:
        new_scheduled = None
    new_due = body.get("scheduled_date")

    schedule_changed = (
        "planned_day" in body and prev_scheduled != body["planned_day"]
    ) or ("time_block_start" in body and task.time_block_start != body["time_block_start"])
    due_changed = "scheduled_date" in body and prev_due != body["scheduled_date"]
    if not (schedule_changed or due_changed):
        return

    original_scheduled = task.original_scheduled_at or prev_scheduled
    original_due = task.original_due_date or prev_due
    if not task.original_scheduled_at and prev_scheduled:
        task.original_scheduled_at = prev_scheduled
    if not task.original_due_date and prev_due:
        task.original_due_date = prev_due

    now = time.time()
    task.last_rescheduled_at = now
    session.add(
        TaskScheduleHistoryRow(
            user_id=user_id,
            task_id=task.task_id,
            previous_scheduled_at=prev_scheduled,
            new_scheduled_at=new_scheduled,
            previous_due_date=prev_due,
            new_due_date=new_due,
            change_source=body.get("change_source") or "api",
            changed_at=now,
        )
    )
    session.flush()

    window_start = now - RESCHEDULE_WINDOW_DAYS * 86400
    count = session.execute(
        select(func.count())
        .select_from(TaskScheduleHistoryRow)
        .where(
            TaskScheduleHistoryRow.task_id == task.task_id,
            TaskScheduleHistoryRow.user_id == user_id,
            TaskScheduleHistoryRow.changed_at >= window_start,
        )
    ).scalar_one()
    task.reschedule_count_30d = count

    days_pushed = 0
    if original_scheduled and new_scheduled:
        days_pushed = _days_between(original_scheduled, new_scheduled) or 0
    elif original_due and new_due:
        days_pushed = _days_between(original_due, new_due) or 0
    task.reschedule_loop_active = count >= RESCHEDULE_LOOP_COUNT or days_pushed >= RESCHEDULE_LOOP_DAYS


def _update(session, user_id: str, task: TaskRow, body: dict) -> None:
    _track_reschedule(session, user_id, task, body)

    if "task_text" in body and body["task_text"] is not None:
        task.task_text = body["task_text"][:TASK_TEXT_LIMIT]
    if "task_description" in body:
        description = body["task_description"]
        task.task_description = description[:DESCRIPTION_LIMIT] if description else None
    if "recurrence_pattern" in body:
        task.recurrence_pattern = body["recurrence_pattern"]
        task.is_recurring_parent = _is_recurring(body["recurrence_pattern"])
    if "is_completed" in body:
        task.is_completed = bool(body["is_completed"])
        task.completed_at = time.time() if task.is_completed else None
    for key in ("time_block_start", "time_block_end"):
        if key in body:
            setattr(task, key, _time_or_none(body[key]))
    for key in UPDATABLE_FIELDS:
        if key in body:
            value = body[key]
            setattr(task, key, [] if value is None and key in LIST_FIELDS else value)
    task.updated_at = time.time()


def _delete(session, user_id: str, task: TaskRow, delete_type: Optional[str]) -> None:
    now = time.time()
    doomed = [task.task_id]
    if task.is_recurring_parent and delete_type == "all":
        doomed.extend(
            session.execute(
                select(TaskRow.task_id).where(
                    TaskRow.parent_task_id == task.task_id, TaskRow.user_id == user_id
                )
            ).scalars()
        )
    if delete_type == "future" and task.parent_task_id:
        doomed.append(task.parent_task_id)

    for row in session.execute(
        select(TaskRow).where(TaskRow.task_id.in_(doomed), TaskRow.user_id == user_id)
    ).scalars():
        row.deleted_at = now


def _toggle_checklist_item(task: TaskRow, item_id: Any) -> None:
    progress = [dict(item) for item in (task.checklist_progress or [])]
    for item in progress:
        if item.get("item_id") == item_id:
            item["completed"] = not item.get("completed")
            break
    else:
        progress.append({"item_id": item_id, "completed": True})
    task.checklist_progress = progress


def manage_task(db: DbClient, user_id: str, body: dict) -> Optional[dict]:
    """Apply one manage-task action; ``body`` holds only the supplied fields."""
    action = validate_task_request(body)

    with db.Session() as session:
        if action == "create":
            task = _create(session, user_id, body)
        else:
            task = _get_task(session, user_id, body["task_id"])
            if action == "update":
                _update(session, user_id, task, body)
            elif action == "delete":
                _delete(session, user_id, task, body.get("delete_type"))
            elif action == "toggle":
                task.is_completed = not task.is_completed
                task.completed_at = time.time() if task.is_completed else None
            elif action == "toggle_checklist_item":
                _toggle_checklist_item(task, body.get("item_id"))
            elif action == "detach_sop":
                task.sop_id = None
        session.commit()

        if action == "delete":
            logger.info("[manage-task] deleted %s", task.task_id)
            return None
        session.refresh(task)
        return row_to_dict(task)


def list_tasks(
    db: DbClient,
    user_id: str,
    *,
    page_size: Optional[int] = None,
    cursor: Optional[float] = None,
    load_all: bool = False,
    filters: Optional[dict] = None,
) -> tuple[list[dict], dict]:
    """Cursor-paginated tasks, newest first. Returns (tasks, metadata)."""
    started = time.time()
    filters = {k: v for k, v in (filters or {}).items() if k in ("status", "project_id") and v}
    if not page_size or page_size <= 0:
        page_size = DEFAULT_PAGE_SIZE
    page_size = min(page_size, MAX_PAGE_SIZE)
    use_smart_filter = not load_all

    conditions = [TaskRow.user_id == user_id, TaskRow.deleted_at.is_(None)]
    if use_smart_filter:
        recent = time.time() - SMART_FILTER_DAYS * 86400
        conditions.append(or_(TaskRow.created_at >= recent, TaskRow.is_completed.is_(False)))
    if filters.get("status"):
        conditions.append(TaskRow.status == filters["status"])
    if filters.get("project_id"):
        conditions.append(TaskRow.project_id == filters["project_id"])

    with db.Session() as session:
        total_count = session.execute(
            select(func.count()).select_from(TaskRow).where(*conditions)
        ).scalar_one()

        query = select(TaskRow).where(*conditions)
        if cursor is not None:
            query = query.where(TaskRow.created_at < cursor)
        rows = session.execute(
            query.order_by(TaskRow.created_at.desc()).limit(page_size)
        ).scalars().all()

    tasks = [row_to_dict(row) for row in rows]
    has_more = len(tasks) == page_size
    query_time = int((time.time() - started) * 1000)
    if query_time > 1000:
        logger.warning("[get-all-tasks] SLOW QUERY: %dms", query_time)

    metadata = {
        "count": len(tasks),
        "totalCount": total_count,
        "hasMore": has_more,
        "nextCursor": tasks[-1]["created_at"] if has_more and tasks else None,
        "pageSize": page_size,
        "filters": filters,
        "useSmartFilter": use_smart_filter,
        "queryTime": query_time,
    }
    return tasks, metadata


def create_tasks_from_priorities(
    db: DbClient,
    user_id: str,
    *,
    priorities: list[str],
    cycle_id: Optional[str],
    month_in_cycle: Optional[int] = None,
    auto_schedule: bool = False,
) -> dict:
    if not priorities:
        raise ApiError(400, "priorities array is required")

    month = month_in_cycle or 1
    project_name = f"Month {month + 1} Priorities"
    cleaned = [p.strip() for p in priorities if p and p.strip()]

    with db.Session() as session:
        cycle = session.execute(
            select(CycleRow).where(CycleRow.cycle_id == cycle_id, CycleRow.user_id == user_id)
        ).scalar_one_or_none()
        if cycle is None:
            raise ApiError(404, "Cycle not found")
        if not cleaned:
            raise ApiError(400, "No valid priorities to create")

        project = session.execute(
            select(ProjectRow).where(
                ProjectRow.cycle_id == cycle_id,
                ProjectRow.user_id == user_id,
                ProjectRow.name == project_name,
            )
        ).scalar_one_or_none()
        if project is None:
            project = ProjectRow(
                user_id=user_id,
                cycle_id=cycle_id,
                name=project_name,
                description=f"Priorities rolled over from Month {month} review",
                status="active",
                color="#8B5CF6",
            )
            session.add(project)
            session.flush()

        next_month_start = (parse_day(cycle.start_date) or today()) + timedelta(days=month * 30)
        for index, text in enumerate(cleaned):
            scheduled = (
                (next_month_start + timedelta(days=index)).isoformat() if auto_schedule else None
            )
            session.add(
                TaskRow(
                    user_id=user_id,
                    cycle_id=cycle_id,
                    project_id=project.id,
                    task_text=text[:TASK_TEXT_LIMIT],
                    scheduled_date=scheduled,
                    status="todo",
                    priority="high",
                    source="monthly_review",
                    month_in_cycle=month + 1,
                )
            )
        project_id = project.id
        session.commit()

    logger.info("[create-tasks-from-priorities] created %d tasks", len(cleaned))
    return {
        "success": True,
        "tasks_created": len(cleaned),
        "project_id": project_id,
        "project_name": project_name,
    }
