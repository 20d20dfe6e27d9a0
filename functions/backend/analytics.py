"""
Time tracking: timer entries against tasks and the estimate-vs-actual analytics
built from them.
"""

from __future__ import annotations

import logging
import time
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import aliased

from backend.dates import start_of_week
from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import ProjectRow, TaskRow, TimeEntryRow

logger = logging.getLogger(__name__)

WEEKLY_WINDOW_DAYS = 13 * 7
BREAKDOWN_WINDOW_DAYS = 30
NO_PROJECT_ID = "no_project"
NO_PROJECT_COLOR = "#94A3B8"
UNTAGGED = "untagged"
# Share of the estimate a total may drift before it counts as a tendency.
TENDENCY_MARGIN = 0.1


def log_time_entry(
    db: DbClient,
    user_id: str,
    *,
    task_id: str,
    actual_minutes: int,
    estimated_minutes: Optional[int] = None,
    started_at: Optional[float] = None,
    complete: bool = False,
) -> dict:
    """Record a timer run against a task and copy the minutes onto the task."""
    now = time.time()
    with db.Session() as session:
        task = session.execute(
            select(TaskRow).where(
                TaskRow.task_id == task_id,
                TaskRow.user_id == user_id,
                TaskRow.deleted_at.is_(None),
            )
        ).scalar_one_or_none()
        if task is None:
            raise ApiError(404, "Task not found")

        entry = TimeEntryRow(
            user_id=user_id,
            task_id=task_id,
            estimated_minutes=(
                estimated_minutes if estimated_minutes is not None else task.estimated_minutes
            ),
            actual_minutes=actual_minutes,
            started_at=started_at,
            ended_at=now,
            logged_at=now,
        )
        session.add(entry)
        task.actual_minutes = actual_minutes
        if complete:
            task.is_completed = True
            task.status = "done"
            task.completed_at = now
        task.updated_at = now
        session.commit()
        logger.info("[log-time-entry] %d min on %s", actual_minutes, task_id)
        return {"success": True, "data": row_to_dict(entry)}


def _week_key(logged_at: float) -> str:
    day = datetime.fromtimestamp(logged_at, tz=timezone.utc).date()
    return start_of_week(day).isoformat()


def _tag_accuracy(actual: int, estimated: int) -> Optional[int]:
    if estimated <= 0:
        return None
    return round((1 - abs(actual - estimated) / estimated) * 100)


def _accuracy_metrics(entries, tag_summary: list[dict]) -> dict:
    # Only entries with both numbers say anything about estimating.
    paired = [e for e in entries if e.estimated_minutes and e.actual_minutes]
    total_estimated = sum(e.estimated_minutes for e in paired)
    total_actual = sum(e.actual_minutes for e in paired)

    accuracy = None
    tendency = "accurate"
    tendency_percent = 0
    if total_estimated > 0 and total_actual > 0:
        difference = total_actual - total_estimated
        tendency_percent = abs(round(difference / total_estimated * 100))
        if difference > total_estimated * TENDENCY_MARGIN:
            tendency = "underestimate"
        elif difference < -total_estimated * TENDENCY_MARGIN:
            tendency = "overestimate"
        accuracy = max(0, round((1 - abs(difference) / total_estimated) * 100))

    rated = [t for t in tag_summary if t["accuracy"] is not None]
    best = max(rated, key=lambda t: t["accuracy"], default=None)
    worst = min(rated, key=lambda t: t["accuracy"], default=None)
    return {
        "overall_accuracy_percent": accuracy,
        "tendency": tendency,
        "tendency_percent": tendency_percent,
        "total_estimated_minutes": total_estimated,
        "total_actual_minutes": total_actual,
        "best_estimated_tag": best["tag"] if best else None,
        "best_estimated_accuracy": best["accuracy"] if best else None,
        "worst_estimated_tag": worst["tag"] if worst else None,
        "worst_estimated_accuracy": worst["accuracy"] if worst else None,
    }


def get_time_analytics(db: DbClient, user_id: str) -> dict:
    now = time.time()
    weekly_since = now - WEEKLY_WINDOW_DAYS * 86400
    breakdown_since = now - BREAKDOWN_WINDOW_DAYS * 86400

    with db.Session() as session:
        entries = session.execute(
            select(TimeEntryRow)
            .where(TimeEntryRow.user_id == user_id, TimeEntryRow.logged_at >= weekly_since)
            .order_by(TimeEntryRow.logged_at.asc())
        ).scalars().all()

        weeks: dict = defaultdict(lambda: {"estimated": 0, "actual": 0, "count": 0})
        for entry in entries:
            week = weeks[_week_key(entry.logged_at)]
            week["estimated"] += entry.estimated_minutes or 0
            week["actual"] += entry.actual_minutes or 0
            week["count"] += 1
        weekly_time = [
            {
                "week_start": key,
                "estimated_minutes": week["estimated"],
                "actual_minutes": week["actual"],
                "task_count": week["count"],
            }
            for key, week in sorted(weeks.items())
        ]

        recent = session.execute(
            select(TimeEntryRow, TaskRow, ProjectRow)
            .select_from(TimeEntryRow)
            .join(TaskRow, TaskRow.task_id == TimeEntryRow.task_id)
            .outerjoin(ProjectRow, ProjectRow.id == TaskRow.project_id)
            .where(TimeEntryRow.user_id == user_id, TimeEntryRow.logged_at >= breakdown_since)
        ).all()

        projects: dict = {}
        tags: dict = defaultdict(lambda: {"minutes": 0, "estimated": 0, "count": 0})
        for entry, task, project in recent:
            project_id = task.project_id or NO_PROJECT_ID
            bucket = projects.setdefault(
                project_id,
                {
                    "project_id": project_id,
                    "project_name": project.name if project else "No Project",
                    "project_color": (project.color if project else None) or NO_PROJECT_COLOR,
                    "total_minutes": 0,
                    "task_count": 0,
                },
            )
            bucket["total_minutes"] += entry.actual_minutes or 0
            bucket["task_count"] += 1

            for tag in task.context_tags or [UNTAGGED]:
                tags[tag]["minutes"] += entry.actual_minutes or 0
                tags[tag]["estimated"] += entry.estimated_minutes or 0
                tags[tag]["count"] += 1

        project_breakdown = sorted(projects.values(), key=lambda p: -p["total_minutes"])
        tag_breakdown = sorted(
            (
                {
                    "tag": tag,
                    "total_minutes": data["minutes"],
                    "estimated_minutes": data["estimated"],
                    "task_count": data["count"],
                    "accuracy": _tag_accuracy(data["minutes"], data["estimated"]),
                }
                for tag, data in tags.items()
            ),
            key=lambda t: -t["total_minutes"],
        )

        parent = aliased(TaskRow, name="parent")
        recurring = session.execute(
            select(
                TaskRow.parent_task_id,
                parent.task_text,
                func.count(),
                func.avg(TaskRow.actual_minutes),
                func.avg(TaskRow.estimated_minutes),
            )
            .select_from(TaskRow)
            .join(parent, parent.task_id == TaskRow.parent_task_id)
            .where(
                TaskRow.user_id == user_id,
                parent.user_id == user_id,
                TaskRow.deleted_at.is_(None),
                TaskRow.actual_minutes.is_not(None),
            )
            .group_by(TaskRow.parent_task_id, parent.task_text)
        ).all()
        recurring_averages = sorted(
            (
                {
                    "parent_task_id": parent_task_id,
                    "task_text": task_text,
                    "instance_count": count,
                    "avg_actual_minutes": round(avg_actual or 0),
                    "avg_estimated_minutes": round(avg_estimated or 0),
                }
                for parent_task_id, task_text, count, avg_actual, avg_estimated in recurring
            ),
            key=lambda r: -r["instance_count"],
        )

        return {
            "weeklyTimeData": weekly_time,
            "projectBreakdown": project_breakdown,
            "tagBreakdown": tag_breakdown,
            "recurringTaskAverages": recurring_averages,
            "accuracyMetrics": _accuracy_metrics(entries, tag_breakdown),
        }
