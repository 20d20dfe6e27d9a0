"""
Habit definitions, daily completion logs and progress.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Optional

from sqlalchemy import select

from backend.cycles import current_cycle
from backend.dates import parse_day, today
from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import HabitLogRow, HabitRow

logger = logging.getLogger(__name__)

HABIT_NAME_LIMIT = 200
HABIT_ACTIONS = ("create", "update", "archive")
DEFAULT_PROGRESS_DAYS = 7
MAX_PROGRESS_DAYS = 90


def _owned_habit(session, user_id: str, habit_id: Optional[str]) -> HabitRow:
    habit = session.execute(
        select(HabitRow).where(HabitRow.habit_id == habit_id, HabitRow.user_id == user_id)
    ).scalar_one_or_none()
    if habit is None:
        raise ApiError(404, "Habit not found")
    return habit


def get_habits(db: DbClient, user_id: str) -> list[dict]:
    day = today().isoformat()
    with db.Session() as session:
        habits = session.execute(
            select(HabitRow)
            .where(HabitRow.user_id == user_id, HabitRow.is_active.is_(True))
            .order_by(HabitRow.created_at.asc())
        ).scalars().all()
        done = set(
            session.execute(
                select(HabitLogRow.habit_id).where(
                    HabitLogRow.user_id == user_id,
                    HabitLogRow.date == day,
                    HabitLogRow.completed.is_(True),
                )
            ).scalars()
        )
        return [
            {**row_to_dict(habit), "completed_today": habit.habit_id in done}
            for habit in habits
        ]


def manage_habit(db: DbClient, user_id: str, body: dict) -> Optional[dict]:
    action = body.get("action")
    if action not in HABIT_ACTIONS:
        raise ApiError(400, "Invalid or missing action")

    with db.Session() as session:
        if action == "create":
            name = (body.get("habit_name") or "").strip()
            if not name:
                raise ApiError(400, "Habit name is required")
            habit = HabitRow(
                user_id=user_id,
                habit_name=name[:HABIT_NAME_LIMIT],
                category=body.get("category") or None,
            )
            session.add(habit)
        else:
            habit = _owned_habit(session, user_id, body.get("habit_id"))
            if action == "update":
                if "habit_name" in body:
                    name = (body.get("habit_name") or "").strip()
                    if not name:
                        raise ApiError(400, "Habit name is required")
                    habit.habit_name = name[:HABIT_NAME_LIMIT]
                if "category" in body:
                    habit.category = body["category"] or None
                if "is_active" in body:
                    habit.is_active = bool(body["is_active"])
            else:
                habit.is_active = False
        session.commit()
        logger.info("[manage-habit] %s %s", action, habit.habit_id)
        return row_to_dict(habit)


def toggle_habit_log(
    db: DbClient, user_id: str, habit_id: str, day: Optional[str] = None
) -> dict:
    log_date = parse_day(day) if day else today()
    if log_date is None:
        raise ApiError(400, "Invalid date")

    with db.Session() as session:
        _owned_habit(session, user_id, habit_id)
        log = session.execute(
            select(HabitLogRow).where(
                HabitLogRow.habit_id == habit_id, HabitLogRow.date == log_date.isoformat()
            )
        ).scalar_one_or_none()
        if log is None:
            cycle = current_cycle(session, user_id)
            log = HabitLogRow(
                user_id=user_id,
                habit_id=habit_id,
                cycle_id=cycle.cycle_id if cycle else None,
                date=log_date.isoformat(),
                completed=True,
            )
            session.add(log)
        else:
            log.completed = not log.completed
        session.commit()
        return row_to_dict(log)


def get_habit_progress(db: DbClient, user_id: str, days: Optional[int] = None) -> list[dict]:
    """Per-habit completion percent and current streak over the last ``days`` days."""
    days = min(max(days or DEFAULT_PROGRESS_DAYS, 1), MAX_PROGRESS_DAYS)
    end = today()
    start = end - timedelta(days=days - 1)

    with db.Session() as session:
        habits = session.execute(
            select(HabitRow)
            .where(HabitRow.user_id == user_id, HabitRow.is_active.is_(True))
            .order_by(HabitRow.created_at.asc())
        ).scalars().all()
        logs = session.execute(
            select(HabitLogRow.habit_id, HabitLogRow.date).where(
                HabitLogRow.user_id == user_id,
                HabitLogRow.completed.is_(True),
                HabitLogRow.date >= start.isoformat(),
                HabitLogRow.date <= end.isoformat(),
            )
        ).all()

    completed: dict[str, set[str]] = {}
    for habit_id, log_date in logs:
        completed.setdefault(habit_id, set()).add(log_date)

    progress = []
    for habit in habits:
        dates = completed.get(habit.habit_id, set())
        streak = 0
        cursor = end
        # Today not yet done does not break a streak that ran through yesterday.
        if cursor.isoformat() not in dates:
            cursor -= timedelta(days=1)
        while cursor >= start and cursor.isoformat() in dates:
            streak += 1
            cursor -= timedelta(days=1)
        progress.append(
            {
                "habit_id": habit.habit_id,
                "habit_name": habit.habit_name,
                "completed_days": len(dates),
                "total_days": days,
                "completion_percent": round(len(dates) / days * 100),
                "current_streak": streak,
            }
        )
    return progress
