"""
SQLAlchemy table definitions for the planner.

Timestamps are epoch seconds stored as floats; calendar dates are ISO
``YYYY-MM-DD`` strings so they compare correctly as text on every backend.
"""

from __future__ import annotations

import time
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def new_id() -> str:
    return uuid.uuid4().hex


def now_ts() -> float:
    return time.time()


class TaskRow(Base):
    __tablename__ = "tasks"

    task_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    task_text = Column(String(500), nullable=False)
    task_description = Column(Text, nullable=True)
    scheduled_date = Column(String(10), nullable=True)
    priority = Column(String, nullable=True)
    source = Column(String, nullable=False, default="manual")
    is_completed = Column(Boolean, nullable=False, default=False)
    completed_at = Column(Float, nullable=True)
    recurrence_pattern = Column(String, nullable=True)
    recurrence_days = Column(JSON, nullable=False, default=list)
    is_recurring_parent = Column(Boolean, nullable=False, default=False)
    parent_task_id = Column(String, nullable=True, index=True)
    sop_id = Column(String, nullable=True)
    checklist_progress = Column(JSON, nullable=False, default=list)
    priority_order = Column(Integer, nullable=True)
    daily_plan_id = Column(String, nullable=True)
    estimated_minutes = Column(Integer, nullable=True)
    actual_minutes = Column(Integer, nullable=True)
    time_block_start = Column(String, nullable=True)
    time_block_end = Column(String, nullable=True)
    energy_level = Column(String, nullable=True)
    context_tags = Column(JSON, nullable=False, default=list)
    goal_id = Column(String, nullable=True)
    category = Column(String, nullable=True)
    status = Column(String, nullable=False, default="backlog")
    waiting_on = Column(String, nullable=True)
    subtasks = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    position_in_column = Column(Integer, nullable=True)
    planned_day = Column(String, nullable=True)
    day_order = Column(Integer, nullable=False, default=0)
    project_id = Column(String, nullable=True, index=True)
    project_column = Column(String, nullable=False, default="todo")
    cycle_id = Column(String, nullable=True, index=True)
    month_in_cycle = Column(Integer, nullable=True)
    original_scheduled_at = Column(String, nullable=True)
    original_due_date = Column(String, nullable=True)
    last_rescheduled_at = Column(Float, nullable=True)
    reschedule_count_30d = Column(Integer, nullable=False, default=0)
    reschedule_loop_active = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False, default=now_ts, index=True)
    updated_at = Column(Float, nullable=False, default=now_ts)


class TaskScheduleHistoryRow(Base):
    __tablename__ = "task_schedule_history"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    task_id = Column(String, nullable=False, index=True)
    previous_scheduled_at = Column(String, nullable=True)
    new_scheduled_at = Column(String, nullable=True)
    previous_due_date = Column(String, nullable=True)
    new_due_date = Column(String, nullable=True)
    change_source = Column(String, nullable=False, default="api")
    changed_at = Column(Float, nullable=False, default=now_ts)


class SopRow(Base):
    __tablename__ = "sops"

    sop_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    sop_name = Column(String, nullable=False)
    times_used = Column(Integer, nullable=False, default=0)


class ProjectRow(Base):
    __tablename__ = "projects"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    cycle_id = Column(String, nullable=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="active")
    color = Column(String, nullable=True)
    start_date = Column(String(10), nullable=True)
    end_date = Column(String(10), nullable=True)
    is_template = Column(Boolean, nullable=False, default=False)
    created_at = Column(Float, nullable=False, default=now_ts)
    updated_at = Column(Float, nullable=False, default=now_ts)


class ContextTagRow(Base):
    __tablename__ = "user_context_tags"
    __table_args__ = (UniqueConstraint("user_id", "value"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    value = Column(String, nullable=False)
    label = Column(String, nullable=False)
    icon = Column(String, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False, default=now_ts)


class TimeEntryRow(Base):
    __tablename__ = "time_entries"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    task_id = Column(String, nullable=False, index=True)
    estimated_minutes = Column(Integer, nullable=True)
    actual_minutes = Column(Integer, nullable=False)
    entry_type = Column(String, nullable=False, default="timer")
    started_at = Column(Float, nullable=True)
    ended_at = Column(Float, nullable=True)
    logged_at = Column(Float, nullable=False, default=now_ts, index=True)


class CycleRow(Base):
    __tablename__ = "cycles_90_day"

    cycle_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    goal = Column(String, nullable=False)
    why = Column(Text, nullable=True)
    identity = Column(Text, nullable=True)
    start_date = Column(String(10), nullable=False)
    end_date = Column(String(10), nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    discover_score = Column(Integer, nullable=False, default=5)
    nurture_score = Column(Integer, nullable=False, default=5)
    convert_score = Column(Integer, nullable=False, default=5)
    focus_area = Column(String, nullable=True)
    diagnostic_scores = Column(JSON, nullable=True)
    revenue_goal = Column(Float, nullable=True)
    offers_goal = Column(Integer, nullable=True)
    weekly_planning_day = Column(String, nullable=True)
    weekly_debrief_day = Column(String, nullable=True)
    office_hours_start = Column(String, nullable=True)
    office_hours_end = Column(String, nullable=True)
    office_hours_days = Column(JSON, nullable=True)
    useful_belief = Column(Text, nullable=True)
    limiting_thought = Column(Text, nullable=True)
    useful_thought = Column(Text, nullable=True)
    accountability_person = Column(String, nullable=True)
    things_to_remember = Column(JSON, nullable=True)
    metric_1_name = Column(String, nullable=True)
    metric_1_start = Column(Float, nullable=True)
    metric_1_goal = Column(Float, nullable=True)
    metric_2_name = Column(String, nullable=True)
    metric_2_start = Column(Float, nullable=True)
    metric_2_goal = Column(Float, nullable=True)
    metric_3_name = Column(String, nullable=True)
    metric_3_start = Column(Float, nullable=True)
    metric_3_goal = Column(Float, nullable=True)
    supporting_projects = Column(JSON, nullable=True)
    created_at = Column(Float, nullable=False, default=now_ts)


class WizardCompletionRow(Base):
    __tablename__ = "wizard_completions"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    template_name = Column(String, nullable=False)
    answers = Column(JSON, nullable=False)
    planning_level = Column(String, nullable=False, default="simple")
    created_cycle_id = Column(String, nullable=True)
    completed_at = Column(Float, nullable=False, default=now_ts)


class UserProfileRow(Base):
    __tablename__ = "user_profiles"

    user_id = Column(String, primary_key=True)
    email = Column(String, nullable=True, index=True)
    default_planning_level = Column(String, nullable=False, default="simple")
    updated_at = Column(Float, nullable=False, default=now_ts)


class ContentTopicRow(Base):
    __tablename__ = "content_topics"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    related_content_ids = Column(JSON, nullable=False, default=list)
    status = Column(String, nullable=False, default="planned")
    created_at = Column(Float, nullable=False, default=now_ts)


class WeeklyPlanRow(Base):
    __tablename__ = "weekly_plans"
    __table_args__ = (UniqueConstraint("user_id", "cycle_id", "start_of_week"),)

    week_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    cycle_id = Column(String, nullable=False, index=True)
    start_of_week = Column(String(10), nullable=False)
    top_3_priorities = Column(JSON, nullable=False, default=list)
    weekly_thought = Column(Text, nullable=True)
    weekly_feeling = Column(Text, nullable=True)
    challenges = Column(Text, nullable=True)
    adjustments = Column(Text, nullable=True)
    metric_1_target = Column(Float, nullable=True)
    metric_2_target = Column(Float, nullable=True)
    metric_3_target = Column(Float, nullable=True)
    goal_rewrite = Column(String(1000), nullable=True)
    updated_at = Column(Float, nullable=False, default=now_ts)


class DailyPlanRow(Base):
    __tablename__ = "daily_plans"
    __table_args__ = (UniqueConstraint("user_id", "date"),)

    day_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    cycle_id = Column(String, nullable=True, index=True)
    week_id = Column(String, nullable=True, index=True)
    date = Column(String(10), nullable=False)
    top_3_today = Column(JSON, nullable=False, default=list)
    selected_weekly_priorities = Column(JSON, nullable=False, default=list)
    thought = Column(String(500), nullable=True)
    feeling = Column(String(200), nullable=True)
    deep_mode_notes = Column(JSON, nullable=False, default=dict)
    scratch_pad_content = Column(Text, nullable=True)
    scratch_pad_title = Column(String(200), nullable=True)
    one_thing = Column(String(500), nullable=True)
    goal_rewrite = Column(String(1000), nullable=True)
    updated_at = Column(Float, nullable=False, default=now_ts)


class WeeklyReviewRow(Base):
    __tablename__ = "weekly_reviews"
    __table_args__ = (UniqueConstraint("user_id", "week_id"),)

    review_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    week_id = Column(String, nullable=False)
    wins = Column(JSON, nullable=False, default=list)
    habit_summary = Column(JSON, nullable=True)
    metric_1_actual = Column(Float, nullable=True)
    metric_2_actual = Column(Float, nullable=True)
    metric_3_actual = Column(Float, nullable=True)
    share_to_community = Column(Boolean, nullable=False, default=False)
    updated_at = Column(Float, nullable=False, default=now_ts)


class MonthlyReviewRow(Base):
    __tablename__ = "monthly_reviews"
    __table_args__ = (UniqueConstraint("user_id", "cycle_id", "month"),)

    review_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    cycle_id = Column(String, nullable=False, index=True)
    month = Column(Integer, nullable=False)
    wins = Column(JSON, nullable=False, default=list)
    habit_trends = Column(JSON, nullable=False, default=dict)
    thought_patterns = Column(JSON, nullable=False, default=dict)
    next_month_priorities = Column(JSON, nullable=False, default=list)
    month_score = Column(Integer, nullable=False, default=5)
    updated_at = Column(Float, nullable=False, default=now_ts)


class HabitRow(Base):
    __tablename__ = "habits"

    habit_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    habit_name = Column(String(200), nullable=False)
    category = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(Float, nullable=False, default=now_ts)


class HabitLogRow(Base):
    __tablename__ = "habit_logs"
    __table_args__ = (UniqueConstraint("habit_id", "date"),)

    log_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    habit_id = Column(String, nullable=False, index=True)
    cycle_id = Column(String, nullable=True, index=True)
    date = Column(String(10), nullable=False)
    completed = Column(Boolean, nullable=False, default=True)


class ContentItemRow(Base):
    __tablename__ = "content_items"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(300), nullable=False)
    content_type = Column(String, nullable=False)
    platform = Column(String, nullable=True)
    status = Column(String, nullable=False, default="idea")
    planned_publish_date = Column(String(10), nullable=True)
    body = Column(Text, nullable=True)
    tags = Column(JSON, nullable=False, default=list)
    created_at = Column(Float, nullable=False, default=now_ts)
    updated_at = Column(Float, nullable=False, default=now_ts)


class AiCopyGenerationRow(Base):
    __tablename__ = "ai_copy_generations"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    content_type = Column(String, nullable=False)
    context = Column(JSON, nullable=False, default=dict)
    generated_copy = Column(Text, nullable=False)
    tokens_used = Column(Integer, nullable=False, default=0)
    generation_time_ms = Column(Integer, nullable=False, default=0)
    user_rating = Column(Integer, nullable=True)
    feedback_text = Column(Text, nullable=True)
    created_at = Column(Float, nullable=False, default=now_ts)


class ArcadeWalletRow(Base):
    __tablename__ = "arcade_wallet"

    user_id = Column(String, primary_key=True)
    coins_balance = Column(Integer, nullable=False, default=0)
    tokens_balance = Column(Integer, nullable=False, default=0)
    total_coins_earned = Column(Integer, nullable=False, default=0)
    updated_at = Column(Float, nullable=False, default=now_ts)


class ArcadeDailyPetRow(Base):
    __tablename__ = "arcade_daily_pet"
    __table_args__ = (UniqueConstraint("user_id", "date"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    date = Column(String(10), nullable=False)
    pet_type = Column(String, nullable=False)
    stage = Column(String, nullable=False, default="sleeping")
    tasks_completed_today = Column(Integer, nullable=False, default=0)
    hatched_at = Column(Float, nullable=True)
    updated_at = Column(Float, nullable=False, default=now_ts)


class ArcadeEventRow(Base):
    __tablename__ = "arcade_events"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    event_type = Column(String, nullable=False)
    coins_delta = Column(Integer, nullable=False, default=0)
    tokens_delta = Column(Integer, nullable=False, default=0)
    event_metadata = Column("metadata", JSON, nullable=False, default=dict)
    dedupe_key = Column(String, nullable=False, unique=True)
    created_at = Column(Float, nullable=False, default=now_ts)


class GoogleCalendarConnectionRow(Base):
    __tablename__ = "google_calendar_connection"

    user_id = Column(String, primary_key=True)
    google_user_id = Column(String, nullable=True)
    google_email = Column(String, nullable=True)
    refresh_token_encrypted = Column(Text, nullable=True)
    access_token_encrypted = Column(Text, nullable=True)
    token_expiry = Column(Float, nullable=False, default=0.0)
    is_active = Column(Boolean, nullable=False, default=True)
    selected_calendar_id = Column(String, nullable=True)
    selected_calendar_name = Column(String, nullable=True)
    updated_at = Column(Float, nullable=False, default=now_ts)


class GoogleSelectedCalendarRow(Base):
    __tablename__ = "google_selected_calendars"
    __table_args__ = (UniqueConstraint("user_id", "calendar_id"),)

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    calendar_id = Column(String, nullable=False)
    calendar_name = Column(String, nullable=False)
    color = Column(String, nullable=True)
    is_enabled = Column(Boolean, nullable=False, default=True)


class GoogleSyncStateRow(Base):
    __tablename__ = "google_sync_state"

    user_id = Column(String, primary_key=True)
    calendar_id = Column(String, primary_key=True)
    sync_token = Column(Text, nullable=True)
    sync_status = Column(String, nullable=False, default="active")
    last_error_message = Column(Text, nullable=True)
    last_full_sync_at = Column(Float, nullable=True)
    last_incremental_sync_at = Column(Float, nullable=True)
    updated_at = Column(Float, nullable=False, default=now_ts)


class EventSyncMappingRow(Base):
    __tablename__ = "event_sync_mapping"

    user_id = Column(String, primary_key=True)
    app_block_id = Column(String, primary_key=True)
    google_event_id = Column(String, nullable=False, index=True)
    google_etag = Column(String, nullable=True)
    sync_direction = Column(String, nullable=False, default="app_to_google")
    last_synced_at = Column(Float, nullable=False, default=now_ts)


class MembershipRow(Base):
    __tablename__ = "memberships"

    email = Column(String, primary_key=True)
    user_id = Column(String, nullable=True, index=True)
    ghl_contact_id = Column(String, nullable=True)
    tier = Column(String, nullable=False, default="free")
    status = Column(String, nullable=False, default="active")
    tags = Column(JSON, nullable=False, default=list)
    updated_at = Column(Float, nullable=False, default=now_ts)


class RateLimitRow(Base):
    __tablename__ = "rate_limits"

    user_id = Column(String, primary_key=True)
    endpoint = Column(String, primary_key=True)
    request_count = Column(Integer, nullable=False, default=0)
    window_start = Column(Float, nullable=False)


class SyncJobRow(Base):
    __tablename__ = "sync_jobs"

    job_id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, index=True)
    stage = Column(String, nullable=False, default="WAITING")
    result = Column(JSON, nullable=True)
    error = Column(Text, nullable=True)
    locked_at = Column(Float, nullable=True)
    created_at = Column(Float, nullable=False, default=now_ts)
    updated_at = Column(Float, nullable=False, default=now_ts)
