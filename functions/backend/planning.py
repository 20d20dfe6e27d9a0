"""
Weekly and daily plans, reviews and the dashboard summary.
"""

from __future__ import annotations

import calendar
import logging
import time
from datetime import date, timedelta
from typing import Any, Optional

from sqlalchemy import and_, func, select
from sqlalchemy.exc import IntegrityError

from backend.cycles import (
    CYCLE_LENGTH_DAYS,
    current_cycle,
    cycle_snapshot,
    is_complete,
    month_in_cycle,
    parse_json,
    string_list,
)
from backend.dates import parse_day, start_of_week, today
from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.tables import (
    CycleRow,
    DailyPlanRow,
    HabitLogRow,
    HabitRow,
    MonthlyReviewRow,
    TaskRow,
    WeeklyPlanRow,
    WeeklyReviewRow,
)

logger = logging.getLogger(__name__)

GOAL_REWRITE_LIMIT = 1000
THOUGHT_LIMIT = 500
FEELING_LIMIT = 200
SCRATCH_PAD_TITLE_LIMIT = 200
ONE_THING_LIMIT = 500
DEFAULT_MONTH_SCORE = 5
MONTH_LENGTH_DAYS = 30
STRONG_HABIT_CONSISTENCY = 70
REVIEW_LISTS = ("wins", "challenges", "lessons", "intentions")


def _top_three(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [v for v in values if isinstance(v, str) and v.strip()][:3]


def _clip(value: Any, limit: int) -> Optional[str]:
    return value[:limit] if isinstance(value, str) else None


def _get_or_create_week(session, user_id: str, cycle_id: str, monday: date) -> WeeklyPlanRow:
    """Fetch the week's plan, creating it; a concurrent insert falls back to refetch."""
    criteria = (
        WeeklyPlanRow.user_id == user_id,
        WeeklyPlanRow.cycle_id == cycle_id,
        WeeklyPlanRow.start_of_week == monday.isoformat(),
    )
    week = session.execute(select(WeeklyPlanRow).where(*criteria)).scalar_one_or_none()
    if week is not None:
        return week

    week = WeeklyPlanRow(
        user_id=user_id,
        cycle_id=cycle_id,
        start_of_week=monday.isoformat(),
        top_3_priorities=[],
        weekly_thought="",
        weekly_feeling="",
    )
    session.add(week)
    try:
        session.commit()
    except IntegrityError:
        session.rollback()
        logger.info("[get-weekly-plan] week created concurrently, refetching")
        week = session.execute(select(WeeklyPlanRow).where(*criteria)).scalar_one_or_none()
        if week is None:
            raise
    return week


def _habit_week_counts(session, user_id: str, week: WeeklyPlanRow) -> tuple[int, int]:
    """(possible, completed) habit check-ins for the week's seven days."""
    week_end = (parse_day(week.start_of_week) + timedelta(days=6)).isoformat()
    active_habits = session.execute(
        select(func.count())
        .select_from(HabitRow)
        .where(HabitRow.user_id == user_id, HabitRow.is_active.is_(True))
    ).scalar_one()
    completed_logs = session.execute(
        select(func.count())
        .select_from(HabitLogRow)
        .where(
            HabitLogRow.user_id == user_id,
            HabitLogRow.completed.is_(True),
            HabitLogRow.date >= week.start_of_week,
            HabitLogRow.date <= week_end,
        )
    ).scalar_one()
    return active_habits * 7, completed_logs


def _percent(part: int, whole: int) -> int:
    return round(part / whole * 100) if whole else 0


def _week_summary(session, user_id: str, week: WeeklyPlanRow) -> dict:
    daily_plans = session.execute(
        select(func.count())
        .select_from(DailyPlanRow)
        .where(DailyPlanRow.user_id == user_id, DailyPlanRow.week_id == week.week_id)
    ).scalar_one()
    possible, completed_logs = _habit_week_counts(session, user_id, week)
    review = session.execute(
        select(WeeklyReviewRow.review_id).where(
            WeeklyReviewRow.user_id == user_id, WeeklyReviewRow.week_id == week.week_id
        )
    ).scalar_one_or_none()
    return {
        "daily_plans_completed": daily_plans,
        "habit_completion_percent": _percent(completed_logs, possible),
        "review_completed": review is not None,
    }


def _metric_names(cycle: CycleRow) -> dict:
    return {f"metric_{n}_name": getattr(cycle, f"metric_{n}_name") for n in (1, 2, 3)}


def get_weekly_plan(db: DbClient, user_id: str) -> dict:
    """Return this week's plan (created on demand) wrapped as ``{"data": ...}``."""
    with db.Session() as session:
        cycle = current_cycle(session, user_id)
        if cycle is None:
            return {"error": "No active cycle found", "data": None}

        week = _get_or_create_week(session, user_id, cycle.cycle_id, start_of_week(today()))
        previous_start = (parse_day(week.start_of_week) - timedelta(days=7)).isoformat()
        previous_rewrite = session.execute(
            select(WeeklyPlanRow.goal_rewrite).where(
                WeeklyPlanRow.user_id == user_id,
                WeeklyPlanRow.start_of_week == previous_start,
            )
        ).scalars().first()

        data = {
            "week_id": week.week_id,
            "start_of_week": week.start_of_week,
            "top_3_priorities": week.top_3_priorities or [],
            "weekly_thought": week.weekly_thought or "",
            "weekly_feeling": week.weekly_feeling or "",
            "challenges": week.challenges,
            "adjustments": week.adjustments,
            "weekly_summary": _week_summary(session, user_id, week),
            "cycle_metrics": _metric_names(cycle),
            "metric_1_target": week.metric_1_target,
            "metric_2_target": week.metric_2_target,
            "metric_3_target": week.metric_3_target,
            "goal_rewrite": week.goal_rewrite or "",
            "previous_goal_rewrite": previous_rewrite or "",
            "cycle_goal": cycle.goal or "",
            "cycle": cycle_snapshot(cycle),
        }
    return {"data": data}


def save_weekly_plan(db: DbClient, user_id: str, body: dict) -> dict:
    with db.Session() as session:
        week = session.execute(
            select(WeeklyPlanRow).where(
                WeeklyPlanRow.week_id == body.get("week_id"), WeeklyPlanRow.user_id == user_id
            )
        ).scalar_one_or_none()
        if week is None:
            raise ApiError(404, "Weekly plan not found")

        week.top_3_priorities = _top_three(body.get("top_3_priorities"))
        week.weekly_thought = body.get("weekly_thought") or None
        week.weekly_feeling = body.get("weekly_feeling") or None
        week.challenges = body.get("challenges") or None
        week.adjustments = body.get("adjustments") or None
        week.metric_1_target = body.get("metric_1_target")
        week.metric_2_target = body.get("metric_2_target")
        week.metric_3_target = body.get("metric_3_target")
        week.goal_rewrite = _clip(body.get("goal_rewrite"), GOAL_REWRITE_LIMIT)
        week.updated_at = time.time()
        session.commit()

        logger.info("[save-weekly-plan] saved %s", week.week_id)
        return {
            "success": True,
            "data": {
                "week_id": week.week_id,
                "top_3_priorities": week.top_3_priorities,
                "weekly_thought": week.weekly_thought,
                "weekly_feeling": week.weekly_feeling,
                "challenges": week.challenges,
                "adjustments": week.adjustments,
            },
        }


def get_daily_plan(db: DbClient, user_id: str, day: Optional[str] = None) -> dict:
    plan_date = parse_day(day) if day else today()
    if plan_date is None:
        raise ApiError(400, "Invalid date")

    with db.Session() as session:
        plan = session.execute(
            select(DailyPlanRow).where(
                DailyPlanRow.user_id == user_id, DailyPlanRow.date == plan_date.isoformat()
            )
        ).scalar_one_or_none()
        if plan is None:
            cycle = current_cycle(session, user_id)
            week_id = None
            if cycle is not None:
                week_id = _get_or_create_week(
                    session, user_id, cycle.cycle_id, start_of_week(plan_date)
                ).week_id
            plan = DailyPlanRow(
                user_id=user_id,
                cycle_id=cycle.cycle_id if cycle else None,
                week_id=week_id,
                date=plan_date.isoformat(),
            )
            session.add(plan)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                plan = session.execute(
                    select(DailyPlanRow).where(
                        DailyPlanRow.user_id == user_id,
                        DailyPlanRow.date == plan_date.isoformat(),
                    )
                ).scalar_one()
        return {"data": row_to_dict(plan)}


def save_daily_plan(db: DbClient, user_id: str, body: dict) -> dict:
    deep_notes = body.get("deep_mode_notes")
    selected = body.get("selected_weekly_priorities")

    with db.Session() as session:
        plan = session.execute(
            select(DailyPlanRow).where(
                DailyPlanRow.day_id == body.get("day_id"), DailyPlanRow.user_id == user_id
            )
        ).scalar_one_or_none()
        if plan is None:
            raise ApiError(404, "Daily plan not found")

        plan.top_3_today = _top_three(body.get("top_3_today"))
        plan.selected_weekly_priorities = (
            [v for v in selected if isinstance(v, str) and v.strip()]
            if isinstance(selected, list)
            else []
        )
        plan.thought = (body.get("thought") or "")[:THOUGHT_LIMIT]
        plan.feeling = (body.get("feeling") or "")[:FEELING_LIMIT]
        plan.deep_mode_notes = deep_notes if isinstance(deep_notes, dict) else {}
        scratch = body.get("scratch_pad_content")
        plan.scratch_pad_content = scratch if isinstance(scratch, str) else ""
        plan.scratch_pad_title = _clip(body.get("scratch_pad_title"), SCRATCH_PAD_TITLE_LIMIT)
        plan.one_thing = _clip(body.get("one_thing"), ONE_THING_LIMIT)
        plan.goal_rewrite = _clip(body.get("goal_rewrite"), GOAL_REWRITE_LIMIT)
        plan.updated_at = time.time()
        session.commit()

        logger.info("[save-daily-plan] saved %s", plan.day_id)
        return {
            "success": True,
            "data": {
                "day_id": plan.day_id,
                "top_3_today": plan.top_3_today,
                "selected_weekly_priorities": plan.selected_weekly_priorities,
                "thought": plan.thought,
                "feeling": plan.feeling,
                "deep_mode_notes": plan.deep_mode_notes,
            },
        }


def save_weekly_review(
    db: DbClient,
    user_id: str,
    *,
    week_id: str,
    wins: list,
    habit_summary: Optional[dict],
    metric_1_actual: Optional[float] = None,
    metric_2_actual: Optional[float] = None,
    metric_3_actual: Optional[float] = None,
    share_to_community: bool = False,
) -> dict:
    with db.Session() as session:
        week = session.execute(
            select(WeeklyPlanRow).where(
                WeeklyPlanRow.week_id == week_id, WeeklyPlanRow.user_id == user_id
            )
        ).scalar_one_or_none()
        if week is None:
            raise ApiError(404, "Weekly plan not found")

        review = session.execute(
            select(WeeklyReviewRow).where(
                WeeklyReviewRow.user_id == user_id, WeeklyReviewRow.week_id == week_id
            )
        ).scalar_one_or_none()
        if review is None:
            review = WeeklyReviewRow(user_id=user_id, week_id=week_id)
            session.add(review)
        review.wins = [w for w in wins if w]
        review.habit_summary = habit_summary
        review.metric_1_actual = metric_1_actual
        review.metric_2_actual = metric_2_actual
        review.metric_3_actual = metric_3_actual
        review.share_to_community = share_to_community
        review.updated_at = time.time()
        session.commit()
        return {"success": True, "data": row_to_dict(review)}


def save_monthly_review(
    db: DbClient,
    user_id: str,
    *,
    cycle_id: str,
    month: int,
    wins: list,
    habit_trends: dict,
    thought_patterns: dict,
    next_month_priorities: Optional[list] = None,
    month_score: int = DEFAULT_MONTH_SCORE,
) -> dict:
    with db.Session() as session:
        cycle = session.execute(
            select(CycleRow).where(CycleRow.cycle_id == cycle_id, CycleRow.user_id == user_id)
        ).scalar_one_or_none()
        if cycle is None:
            raise ApiError(404, "Cycle not found")

        review = session.execute(
            select(MonthlyReviewRow).where(
                MonthlyReviewRow.user_id == user_id,
                MonthlyReviewRow.cycle_id == cycle_id,
                MonthlyReviewRow.month == month,
            )
        ).scalar_one_or_none()
        if review is None:
            review = MonthlyReviewRow(user_id=user_id, cycle_id=cycle_id, month=month)
            session.add(review)
        review.wins = [w for w in wins if w]
        review.habit_trends = habit_trends
        review.thought_patterns = thought_patterns
        review.next_month_priorities = [p for p in next_month_priorities or [] if p]
        review.month_score = month_score
        review.updated_at = time.time()
        session.commit()
        return {"success": True, "data": row_to_dict(review)}


def _metric_actuals(review: Optional[WeeklyReviewRow]) -> dict:
    return {
        f"metric_{n}_actual": getattr(review, f"metric_{n}_actual") if review else None
        for n in (1, 2, 3)
    }


def _cycle_progress(cycle: CycleRow) -> dict:
    start = parse_day(cycle.start_date)
    total_days = (parse_day(cycle.end_date) - start).days
    completed_days = (today() - start).days
    return {
        "total_days": total_days,
        "completed_days": completed_days,
        "percent": min(100, max(0, _percent(completed_days, total_days))),
    }


def _empty_weekly_review() -> dict:
    summary: dict = {key: [] for key in REVIEW_LISTS}
    summary.update(weekly_score=0, focus_reflection="")
    return summary


def get_weekly_review(db: DbClient, user_id: str) -> dict:
    """This week's review, created empty on first read, with habit and cycle progress.

    Without an active cycle the payload keeps its shape, carries ``error`` and
    still answers 200 so the review screen can render.
    """
    with db.Session() as session:
        cycle = current_cycle(session, user_id)
        if cycle is None:
            return {
                "error": "No active cycle",
                "week_id": None,
                "focus_area": None,
                **_empty_weekly_review(),
                "habit_stats": {"total": 0, "completed": 0, "percent": 0},
                "cycle_progress": {
                    "total_days": CYCLE_LENGTH_DAYS,
                    "completed_days": 0,
                    "percent": 0,
                },
            }

        week = _get_or_create_week(session, user_id, cycle.cycle_id, start_of_week(today()))
        criteria = (WeeklyReviewRow.user_id == user_id, WeeklyReviewRow.week_id == week.week_id)
        review = session.execute(select(WeeklyReviewRow).where(*criteria)).scalar_one_or_none()
        if review is None:
            review = WeeklyReviewRow(
                user_id=user_id, week_id=week.week_id, habit_summary=_empty_weekly_review()
            )
            session.add(review)
            try:
                session.commit()
                logger.info("[get-weekly-review] created review for week %s", week.week_id)
            except IntegrityError:
                session.rollback()
                review = session.execute(select(WeeklyReviewRow).where(*criteria)).scalar_one()

        previous_start = (parse_day(week.start_of_week) - timedelta(days=7)).isoformat()
        previous = session.execute(
            select(WeeklyReviewRow)
            .join(WeeklyPlanRow, WeeklyPlanRow.week_id == WeeklyReviewRow.week_id)
            .where(
                WeeklyReviewRow.user_id == user_id,
                WeeklyPlanRow.user_id == user_id,
                WeeklyPlanRow.start_of_week == previous_start,
            )
        ).scalars().first()

        summary = parse_json(review.habit_summary, {})
        lists = {key: string_list(summary.get(key)) for key in REVIEW_LISTS}
        lists["wins"] = string_list(review.wins) or lists["wins"]
        possible, completed = _habit_week_counts(session, user_id, week)
        return {
            "week_id": week.week_id,
            "focus_area": cycle.focus_area,
            **lists,
            "weekly_score": summary.get("weekly_score") or 0,
            "focus_reflection": summary.get("focus_reflection") or "",
            "share_to_community": review.share_to_community,
            "habit_stats": {
                "total": possible,
                "completed": completed,
                "percent": _percent(completed, possible),
            },
            "cycle_progress": _cycle_progress(cycle),
            "cycle_metrics": _metric_names(cycle),
            **_metric_actuals(review),
            "previous_metrics": _metric_actuals(previous) if previous is not None else None,
        }


def _month_range(cycle: CycleRow, month: int) -> tuple[date, date]:
    """First and last day of a cycle month; months are 30-day blocks from the start."""
    first = parse_day(cycle.start_date) + timedelta(days=(month - 1) * MONTH_LENGTH_DAYS)
    return first, first + timedelta(days=MONTH_LENGTH_DAYS - 1)


def _suggested_wins(by_category: dict, habit_consistency: int) -> list[str]:
    wins = []
    if by_category.get("content"):
        wins.append(f"Completed {by_category['content']} content tasks this month")
    if by_category.get("nurture"):
        wins.append(f"Completed {by_category['nurture']} nurture activities")
    if by_category.get("offer"):
        wins.append(f"Made {by_category['offer']} offers/sales activities")
    if habit_consistency >= STRONG_HABIT_CONSISTENCY:
        wins.append(f"Maintained {habit_consistency}% habit consistency")
    return wins


def get_monthly_review(db: DbClient, user_id: str) -> dict:
    """The current cycle month's review (created on first read) plus an execution summary."""
    with db.Session() as session:
        cycle = current_cycle(session, user_id)
        if cycle is None:
            raise ApiError(404, "No active cycle found")

        month = month_in_cycle(cycle)
        first_day, last_day = _month_range(cycle, month)
        criteria = (
            MonthlyReviewRow.user_id == user_id,
            MonthlyReviewRow.cycle_id == cycle.cycle_id,
            MonthlyReviewRow.month == month,
        )
        review = session.execute(select(MonthlyReviewRow).where(*criteria)).scalar_one_or_none()
        if review is None:
            review = MonthlyReviewRow(
                user_id=user_id,
                cycle_id=cycle.cycle_id,
                month=month,
                month_score=DEFAULT_MONTH_SCORE,
            )
            session.add(review)
            try:
                session.commit()
                logger.info("[get-monthly-review] created review for month %d", month)
            except IntegrityError:
                session.rollback()
                review = session.execute(select(MonthlyReviewRow).where(*criteria)).scalar_one()

        def count_tasks(*where) -> int:
            return session.execute(
                select(func.count())
                .select_from(TaskRow)
                .where(
                    TaskRow.user_id == user_id,
                    TaskRow.cycle_id == cycle.cycle_id,
                    TaskRow.deleted_at.is_(None),
                    *where,
                )
            ).scalar_one()

        completed_this_month = (
            TaskRow.is_completed.is_(True),
            TaskRow.completed_at >= calendar.timegm(first_day.timetuple()),
            TaskRow.completed_at < calendar.timegm((last_day + timedelta(days=1)).timetuple()),
        )
        by_category = dict(
            session.execute(
                select(TaskRow.category, func.count())
                .where(
                    TaskRow.user_id == user_id,
                    TaskRow.cycle_id == cycle.cycle_id,
                    TaskRow.deleted_at.is_(None),
                    TaskRow.category.in_(("content", "nurture", "offer")),
                    *completed_this_month,
                )
                .group_by(TaskRow.category)
            ).all()
        )

        logs = session.execute(
            select(HabitLogRow.completed).where(
                HabitLogRow.user_id == user_id,
                HabitLogRow.date >= first_day.isoformat(),
                HabitLogRow.date <= last_day.isoformat(),
            )
        ).scalars().all()
        habit_consistency = _percent(sum(1 for done in logs if done), len(logs))

        execution_summary = {
            "tasks_scheduled": count_tasks(
                TaskRow.scheduled_date >= first_day.isoformat(),
                TaskRow.scheduled_date <= last_day.isoformat(),
            ),
            "tasks_completed": count_tasks(*completed_this_month),
            "tasks_rescheduled_3plus": count_tasks(TaskRow.reschedule_count_30d >= 3),
            "content_tasks_completed": by_category.get("content", 0),
            "nurture_tasks_completed": by_category.get("nurture", 0),
            "offer_tasks_completed": by_category.get("offer", 0),
            "habit_consistency": habit_consistency,
        }
        return {
            "review_id": review.review_id,
            "cycle_id": cycle.cycle_id,
            "month": review.month,
            "month_in_cycle": month,
            "month_start": first_day.isoformat(),
            "month_end": last_day.isoformat(),
            "cycle_goal": cycle.goal,
            "wins": string_list(parse_json(review.wins, [])),
            "challenges": string_list(parse_json(review.habit_trends, {}).get("challenges")),
            "lessons": string_list(parse_json(review.thought_patterns, {}).get("lessons")),
            "priorities": string_list(parse_json(review.next_month_priorities, [])),
            "month_score": review.month_score or DEFAULT_MONTH_SCORE,
            "execution_summary": execution_summary,
            "suggested_wins": _suggested_wins(by_category, habit_consistency),
            "habit_consistency": habit_consistency,
            "cycle_progress_percent": _cycle_progress(cycle)["percent"],
        }


def _percent_change(start: Optional[float], current: Optional[float]) -> Optional[float]:
    if start is None or current is None or start == 0:
        return None
    return (current - start) / abs(start) * 100


def get_progress_metrics(db: DbClient, user_id: str) -> dict:
    """Cycle metrics from start value to the latest weekly actual, week by week."""
    with db.Session() as session:
        cycle = current_cycle(session, user_id)
        if cycle is None:
            return {"has_cycle": False, "message": "No active cycle found"}

        weeks = session.execute(
            select(WeeklyPlanRow.start_of_week, WeeklyReviewRow)
            .outerjoin(
                WeeklyReviewRow,
                and_(
                    WeeklyReviewRow.week_id == WeeklyPlanRow.week_id,
                    WeeklyReviewRow.user_id == user_id,
                ),
            )
            .where(WeeklyPlanRow.user_id == user_id, WeeklyPlanRow.cycle_id == cycle.cycle_id)
            .order_by(WeeklyPlanRow.start_of_week.asc())
        ).all()
        weekly_data = [
            {"week_number": number, "start_of_week": start, **_metric_actuals(review)}
            for number, (start, review) in enumerate(weeks, start=1)
        ]

        metrics: dict = {}
        for n in (1, 2, 3):
            start = getattr(cycle, f"metric_{n}_start")
            # Latest week that recorded this metric.
            current = next(
                (
                    week[f"metric_{n}_actual"]
                    for week in reversed(weekly_data)
                    if week[f"metric_{n}_actual"] is not None
                ),
                None,
            )
            metrics[f"metric_{n}_name"] = getattr(cycle, f"metric_{n}_name")
            metrics[f"metric_{n}_start"] = start
            metrics[f"metric_{n}_current"] = current
            metrics[f"metric_{n}_change"] = _percent_change(start, current)

        return {
            "has_cycle": True,
            "cycle_id": cycle.cycle_id,
            "metrics": metrics,
            "weekly_data": weekly_data,
            "cycle_start_date": cycle.start_date,
        }


def get_dashboard_summary(db: DbClient, user_id: str) -> dict:
    day = today()
    day_iso = day.isoformat()
    day_start = calendar.timegm(day.timetuple())

    weekly_status: dict = {"exists": False, "score": None}
    monthly_status: dict = {"exists": False, "score": None, "wins_count": 0}
    summary_status: dict = {"exists": False, "is_complete": False, "score": None, "wins_count": 0}

    with db.Session() as session:
        cycle = current_cycle(session, user_id)
        open_tasks = (TaskRow.user_id == user_id, TaskRow.deleted_at.is_(None))
        tasks_today = session.execute(
            select(func.count()).select_from(TaskRow).where(
                *open_tasks, TaskRow.scheduled_date == day_iso
            )
        ).scalar_one()
        completed_today = session.execute(
            select(func.count()).select_from(TaskRow).where(
                *open_tasks,
                TaskRow.is_completed.is_(True),
                TaskRow.completed_at >= day_start,
            )
        ).scalar_one()
        habits_today = session.execute(
            select(func.count()).select_from(HabitLogRow).where(
                HabitLogRow.user_id == user_id,
                HabitLogRow.date == day_iso,
                HabitLogRow.completed.is_(True),
            )
        ).scalar_one()
        active_habits = session.execute(
            select(func.count()).select_from(HabitRow).where(
                HabitRow.user_id == user_id, HabitRow.is_active.is_(True)
            )
        ).scalar_one()

        if cycle is not None:
            week = session.execute(
                select(WeeklyPlanRow).where(
                    WeeklyPlanRow.user_id == user_id,
                    WeeklyPlanRow.cycle_id == cycle.cycle_id,
                    WeeklyPlanRow.start_of_week == start_of_week(day).isoformat(),
                )
            ).scalar_one_or_none()
            if week is not None:
                review = session.execute(
                    select(WeeklyReviewRow).where(
                        WeeklyReviewRow.user_id == user_id,
                        WeeklyReviewRow.week_id == week.week_id,
                    )
                ).scalar_one_or_none()
                if review is not None and review.habit_summary:
                    weekly_status = {
                        "exists": True,
                        "score": review.habit_summary.get("weekly_score"),
                    }

            monthly = session.execute(
                select(MonthlyReviewRow).where(
                    MonthlyReviewRow.user_id == user_id,
                    MonthlyReviewRow.cycle_id == cycle.cycle_id,
                    MonthlyReviewRow.month == month_in_cycle(cycle, day),
                )
            ).scalar_one_or_none()
            if monthly is not None:
                wins = parse_json(monthly.wins, [])
                monthly_status = {
                    "exists": True,
                    "score": monthly.month_score,
                    "wins_count": len([w for w in wins if w]) if isinstance(wins, list) else 0,
                }

            if is_complete(cycle):
                summary = parse_json(cycle.supporting_projects, {})
                score = summary.get("cycle_score")
                summary_status = {
                    "exists": score is not None or bool(summary.get("identity_shifts")),
                    "is_complete": True,
                    "score": float(score) if score is not None else None,
                    "wins_count": 0,
                }

        data = {
            "has_active_cycle": cycle is not None,
            "cycle_id": cycle.cycle_id if cycle else None,
            "cycle_goal": cycle.goal if cycle else None,
            "days_remaining": (
                max(0, (parse_day(cycle.end_date) - day).days) if cycle else None
            ),
            "tasks_due_today": tasks_today,
            "tasks_completed_today": completed_today,
            "habits_completed_today": habits_today,
            "active_habits": active_habits,
            "weekly_review_status": weekly_status,
            "monthly_review_status": monthly_status,
            "cycle_summary_status": summary_status,
        }
    return {"data": data}
