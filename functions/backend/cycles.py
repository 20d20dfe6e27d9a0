"""
90-day cycles: wizard creation, current-cycle lookup, summaries and export.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import select, update

from backend.dates import parse_day, today
from backend.db import DbClient, row_to_dict
from backend.errors import ApiError
from backend.storage import StorageClient
from backend.tables import (
    ContentTopicRow,
    CycleRow,
    DailyPlanRow,
    HabitLogRow,
    HabitRow,
    MonthlyReviewRow,
    UserProfileRow,
    WeeklyPlanRow,
    WeeklyReviewRow,
    WizardCompletionRow,
)

logger = logging.getLogger(__name__)

CYCLE_LENGTH_DAYS = 90
MAX_CUSTOM_METRICS = 3
EXPORT_URL_TTL_SECONDS = 3600
DEFAULT_CYCLE_SCORE = 5

SNAPSHOT_FIELDS = (
    "cycle_id",
    "goal",
    "why",
    "identity",
    "focus_area",
    "start_date",
    "end_date",
    "metric_1_name",
    "metric_1_start",
    "metric_2_name",
    "metric_2_start",
    "metric_3_name",
    "metric_3_start",
)


def parse_json(value: Any, fallback: Any) -> Any:
    """Accept JSON columns that may hold encoded strings from older rows."""
    if not value:
        return fallback
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return fallback
    return value


def _coalesce(value: Any, default: Any) -> Any:
    return default if value is None else value


def string_list(values: Any) -> list[str]:
    if not isinstance(values, list):
        return []
    return [str(v) for v in values if v]


def current_cycle(session, user_id: str) -> Optional[CycleRow]:
    """The active cycle containing today, else the most recently started active one."""
    day = today().isoformat()
    cycle = session.execute(
        select(CycleRow)
        .where(
            CycleRow.user_id == user_id,
            CycleRow.is_active.is_(True),
            CycleRow.start_date <= day,
            CycleRow.end_date >= day,
        )
        .order_by(CycleRow.start_date.desc())
        .limit(1)
    ).scalar_one_or_none()
    if cycle is not None:
        return cycle
    return session.execute(
        select(CycleRow)
        .where(CycleRow.user_id == user_id, CycleRow.is_active.is_(True))
        .order_by(CycleRow.start_date.desc())
        .limit(1)
    ).scalar_one_or_none()


def current_or_latest_cycle(session, user_id: str) -> Optional[CycleRow]:
    cycle = current_cycle(session, user_id)
    if cycle is not None:
        return cycle
    return session.execute(
        select(CycleRow)
        .where(CycleRow.user_id == user_id)
        .order_by(CycleRow.end_date.desc())
        .limit(1)
    ).scalar_one_or_none()


def month_in_cycle(cycle: CycleRow, day=None) -> int:
    """1-based month of ``day`` within the cycle, clamped to 1..3."""
    start = parse_day(cycle.start_date) or today()
    elapsed = ((day or today()) - start).days
    return min(3, max(1, elapsed // 30 + 1))


def is_complete(cycle: CycleRow) -> bool:
    end = parse_day(cycle.end_date)
    return end is not None and today() > end


def cycle_snapshot(cycle: Optional[CycleRow]) -> Optional[dict]:
    if cycle is None:
        return None
    return {name: getattr(cycle, name) for name in SNAPSHOT_FIELDS}


def create_cycle_from_wizard(db: DbClient, user_id: str, wizard: dict) -> dict:
    start = today()
    end = start + timedelta(days=CYCLE_LENGTH_DAYS)
    scores = wizard.get("diagnosticScores") or {}
    planning_level = wizard.get("planningLevel") or "simple"

    cycle = CycleRow(
        user_id=user_id,
        goal=wizard.get("goal") or "My 90-Day Goal",
        why=wizard.get("whyItMatters") or None,
        identity=wizard.get("identity") or None,
        start_date=start.isoformat(),
        end_date=end.isoformat(),
        is_active=True,
        discover_score=_coalesce(scores.get("discover"), 5),
        nurture_score=_coalesce(scores.get("nurture"), 5),
        convert_score=_coalesce(scores.get("convert"), 5),
        focus_area=wizard.get("focusArea") or None,
        diagnostic_scores=scores or None,
        revenue_goal=wizard.get("revenueGoal") or None,
        offers_goal=_coalesce(wizard.get("offersGoal"), 90),
        weekly_planning_day=wizard.get("weeklyPlanningDay") or None,
        weekly_debrief_day=wizard.get("weeklyReviewDay") or None,
        office_hours_start=wizard.get("officeHoursStart") or None,
        office_hours_end=wizard.get("officeHoursEnd") or None,
        office_hours_days=wizard.get("officeHoursDays") or None,
        useful_belief=wizard.get("usefulBelief") or None,
        limiting_thought=wizard.get("limitingThought") or None,
        useful_thought=wizard.get("usefulThought") or None,
        accountability_person=wizard.get("accountabilityPerson") or None,
        things_to_remember=wizard.get("reminders") or None,
    )
    for index, metric in enumerate((wizard.get("customMetrics") or [])[:MAX_CUSTOM_METRICS]):
        number = index + 1
        setattr(cycle, f"metric_{number}_name", metric.get("name"))
        setattr(cycle, f"metric_{number}_start", metric.get("startValue"))
        setattr(cycle, f"metric_{number}_goal", metric.get("goalValue"))

    with db.Session() as session:
        session.add(cycle)
        session.flush()
        session.execute(
            update(CycleRow)
            .where(CycleRow.user_id == user_id, CycleRow.cycle_id != cycle.cycle_id)
            .values(is_active=False)
        )
        session.add(
            WizardCompletionRow(
                user_id=user_id,
                template_name="cycle-90-day",
                answers=wizard,
                planning_level=planning_level,
                created_cycle_id=cycle.cycle_id,
            )
        )

        profile = session.get(UserProfileRow, user_id)
        if profile is None:
            profile = UserProfileRow(user_id=user_id)
            session.add(profile)
        profile.default_planning_level = planning_level
        profile.updated_at = time.time()

        for content_id in wizard.get("selectedContentIds") or []:
            session.add(
                ContentTopicRow(
                    user_id=user_id, related_content_ids=[content_id], status="planned"
                )
            )
        cycle_id = cycle.cycle_id
        session.commit()

    logger.info("[create-cycle-from-wizard] created cycle %s for %s", cycle_id, user_id)
    return {"success": True, "cycle_id": cycle_id, "message": "Cycle created successfully"}


def get_current_cycle(db: DbClient, user_id: str) -> Optional[dict]:
    with db.Session() as session:
        return row_to_dict(current_cycle(session, user_id))


def habit_score(session, user_id: str, cycle_id: str) -> int:
    completed_flags = session.execute(
        select(HabitLogRow.completed).where(
            HabitLogRow.user_id == user_id, HabitLogRow.cycle_id == cycle_id
        )
    ).scalars().all()
    if not completed_flags:
        return 0
    return round(sum(1 for flag in completed_flags if flag) / len(completed_flags) * 100)


def get_cycle_summary(db: DbClient, user_id: str) -> dict:
    with db.Session() as session:
        cycle = current_or_latest_cycle(session, user_id)
        if cycle is None:
            raise ApiError(404, "No cycle found")

        summary = parse_json(cycle.supporting_projects, {})
        reviews = session.execute(
            select(MonthlyReviewRow)
            .where(MonthlyReviewRow.user_id == user_id, MonthlyReviewRow.cycle_id == cycle.cycle_id)
            .order_by(MonthlyReviewRow.month.asc())
        ).scalars().all()

        wins: list[str] = []
        challenges: list[str] = []
        lessons: list[str] = []
        for review in reviews:
            wins.extend(string_list(parse_json(review.wins, [])))
            challenges.extend(string_list(parse_json(review.habit_trends, {}).get("challenges")))
            lessons.extend(string_list(parse_json(review.thought_patterns, {}).get("lessons")))

        score = summary.get("cycle_score")
        return {
            "cycle_id": cycle.cycle_id,
            "cycle_goal": cycle.goal,
            "cycle_why": cycle.why,
            "cycle_identity": cycle.identity,
            "start_date": cycle.start_date,
            "end_date": cycle.end_date,
            "is_complete": is_complete(cycle),
            "has_summary": bool(
                summary.get("identity_shifts")
                or summary.get("final_results")
                or summary.get("cycle_score")
            ),
            "overall_wins": wins,
            "overall_challenges": challenges,
            "overall_lessons": lessons,
            "identity_shifts": string_list(summary.get("identity_shifts")),
            "final_results": string_list(summary.get("final_results")),
            "next_cycle_focus": string_list(summary.get("next_cycle_focus")),
            "cycle_score": float(score if score is not None else DEFAULT_CYCLE_SCORE),
            "overall_habit_score": habit_score(session, user_id, cycle.cycle_id),
        }


def save_cycle_summary(
    db: DbClient,
    user_id: str,
    *,
    cycle_id: str,
    identity_shifts: list[str],
    final_results: list[str],
    next_cycle_focus: list[str],
    cycle_score: Optional[int],
) -> dict:
    with db.Session() as session:
        cycle = session.execute(
            select(CycleRow).where(CycleRow.cycle_id == cycle_id, CycleRow.user_id == user_id)
        ).scalar_one_or_none()
        if cycle is None:
            raise ApiError(404, "Cycle not found")
        summary = dict(parse_json(cycle.supporting_projects, {}))
        summary.update(
            identity_shifts=string_list(identity_shifts),
            final_results=string_list(final_results),
            next_cycle_focus=string_list(next_cycle_focus),
        )
        if cycle_score is not None:
            summary["cycle_score"] = cycle_score
        cycle.supporting_projects = summary
        session.commit()
    return {"success": True, "data": summary}


def export_cycle(
    db: DbClient, storage: StorageClient, user_id: str, cycle_id: Optional[str] = None
) -> dict:
    """Write a cycle and everything planned inside it to storage as one JSON document."""
    with db.Session() as session:
        if cycle_id:
            cycle = session.execute(
                select(CycleRow).where(CycleRow.cycle_id == cycle_id, CycleRow.user_id == user_id)
            ).scalar_one_or_none()
        else:
            cycle = current_or_latest_cycle(session, user_id)
        if cycle is None:
            raise ApiError(404, "Cycle not found")

        weeks = session.execute(
            select(WeeklyPlanRow)
            .where(WeeklyPlanRow.user_id == user_id, WeeklyPlanRow.cycle_id == cycle.cycle_id)
            .order_by(WeeklyPlanRow.start_of_week.asc())
        ).scalars().all()
        week_ids = [week.week_id for week in weeks]
        days = session.execute(
            select(DailyPlanRow)
            .where(DailyPlanRow.user_id == user_id, DailyPlanRow.cycle_id == cycle.cycle_id)
            .order_by(DailyPlanRow.date.asc())
        ).scalars().all()
        weekly_reviews = (
            session.execute(
                select(WeeklyReviewRow).where(
                    WeeklyReviewRow.user_id == user_id, WeeklyReviewRow.week_id.in_(week_ids)
                )
            ).scalars().all()
            if week_ids
            else []
        )
        monthly_reviews = session.execute(
            select(MonthlyReviewRow)
            .where(MonthlyReviewRow.user_id == user_id, MonthlyReviewRow.cycle_id == cycle.cycle_id)
            .order_by(MonthlyReviewRow.month.asc())
        ).scalars().all()
        habits = session.execute(
            select(HabitRow).where(HabitRow.user_id == user_id)
        ).scalars().all()
        habit_logs = session.execute(
            select(HabitLogRow).where(
                HabitLogRow.user_id == user_id, HabitLogRow.cycle_id == cycle.cycle_id
            )
        ).scalars().all()

        document = {
            "exported_at": datetime.now(timezone.utc).isoformat(),
            "cycle": row_to_dict(cycle),
            "weekly_plans": [row_to_dict(row) for row in weeks],
            "daily_plans": [row_to_dict(row) for row in days],
            "weekly_reviews": [row_to_dict(row) for row in weekly_reviews],
            "monthly_reviews": [row_to_dict(row) for row in monthly_reviews],
            "habits": [row_to_dict(row) for row in habits],
            "habit_logs": [row_to_dict(row) for row in habit_logs],
        }
        exported_cycle_id = cycle.cycle_id

    path = f"exports/{user_id}/{exported_cycle_id}/{int(time.time())}.json"
    storage.upload_json(path, document)
    logger.info("[export-cycle] wrote %s", path)
    return {
        "success": True,
        "path": path,
        "url": storage.presign_get(path, expires_in=EXPORT_URL_TTL_SECONDS),
        "expires_in": EXPORT_URL_TTL_SECONDS,
    }
