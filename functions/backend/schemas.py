"""
Pydantic request bodies for the planner API.

Bodies are dumped with ``exclude_unset=True`` before reaching the services so
"field omitted" and "field set to null" stay distinguishable. Value checks
with user-facing messages live in the services.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class PassthroughBody(BaseModel):
    """Body that keeps fields it does not declare."""

    model_config = ConfigDict(extra="allow")


# Tasks


class ManageTaskRequest(PassthroughBody):
    action: Optional[str] = None
    task_id: Optional[str] = None
    task_text: Optional[str] = None
    task_description: Optional[str] = None
    scheduled_date: Optional[str] = None
    priority: Optional[str] = None
    energy_level: Optional[str] = None
    status: Optional[str] = None
    estimated_minutes: Optional[int] = None
    actual_minutes: Optional[int] = None
    recurrence_pattern: Optional[str] = None
    recurrence_days: Optional[list] = None
    checklist_progress: Optional[list] = None
    context_tags: Optional[list] = None
    subtasks: Optional[list] = None
    is_completed: Optional[bool] = None
    sop_id: Optional[str] = None
    goal_id: Optional[str] = None
    category: Optional[str] = None
    daily_plan_id: Optional[str] = None
    waiting_on: Optional[str] = None
    notes: Optional[str] = None
    priority_order: Optional[int] = None
    position_in_column: Optional[int] = None
    planned_day: Optional[str] = None
    day_order: Optional[int] = None
    project_id: Optional[str] = None
    project_column: Optional[str] = None
    cycle_id: Optional[str] = None
    delete_type: Optional[str] = None
    item_id: Optional[str] = None


class GetAllTasksRequest(BaseModel):
    page_size: Optional[int] = Field(default=None, ge=1)
    cursor: Optional[float] = None
    load_all: bool = False
    status: Optional[str] = None
    project_id: Optional[str] = None


class CreateTasksFromPrioritiesRequest(BaseModel):
    priorities: list[Optional[str]] = Field(default_factory=list)
    cycle_id: str
    month_in_cycle: Optional[int] = Field(default=None, ge=0, le=3)
    auto_schedule: bool = False


# Cycles and planning


class CreateCycleRequest(BaseModel):
    """Wizard answers, in the client's camelCase keys."""

    model_config = ConfigDict(extra="allow")

    goal: Optional[str] = None


class CycleRequest(BaseModel):
    cycle_id: Optional[str] = None


class SaveCycleSummaryRequest(BaseModel):
    cycle_id: str
    identity_shifts: list[str] = Field(default_factory=list)
    final_results: list[str] = Field(default_factory=list)
    next_cycle_focus: list[str] = Field(default_factory=list)
    cycle_score: Optional[int] = Field(default=None, ge=1, le=10)


class SaveWeeklyPlanRequest(BaseModel):
    week_id: str
    top_3_priorities: list[Optional[str]] = Field(default_factory=list)
    weekly_thought: Optional[str] = None
    weekly_feeling: Optional[str] = None
    challenges: Optional[str] = None
    adjustments: Optional[str] = None
    metric_1_target: Optional[float] = None
    metric_2_target: Optional[float] = None
    metric_3_target: Optional[float] = None
    goal_rewrite: Optional[str] = None


class GetDailyPlanRequest(BaseModel):
    date: Optional[str] = None


class SaveDailyPlanRequest(BaseModel):
    day_id: str
    top_3_today: list[Optional[str]] = Field(default_factory=list)
    selected_weekly_priorities: Optional[list] = None
    thought: Optional[str] = None
    feeling: Optional[str] = None
    deep_mode_notes: Optional[Any] = None
    scratch_pad_content: Optional[str] = None
    scratch_pad_title: Optional[str] = None
    one_thing: Optional[str] = None
    goal_rewrite: Optional[str] = None


class SaveWeeklyReviewRequest(BaseModel):
    week_id: str
    wins: list = Field(default_factory=list)
    habit_summary: Optional[dict] = None
    metric_1_actual: Optional[float] = None
    metric_2_actual: Optional[float] = None
    metric_3_actual: Optional[float] = None
    share_to_community: bool = False


class SaveMonthlyReviewRequest(BaseModel):
    cycle_id: str
    month: int = Field(ge=1, le=3)
    wins: list = Field(default_factory=list)
    habit_trends: dict = Field(default_factory=dict)
    thought_patterns: dict = Field(default_factory=dict)
    next_month_priorities: list = Field(default_factory=list)
    month_score: int = Field(default=5, ge=1, le=10)


# Projects, context tags and time tracking


class ProjectFields(BaseModel):
    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    color: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    is_template: Optional[bool] = None
    cycle_id: Optional[str] = None
    new_name: Optional[str] = Field(default=None, alias="newName")

    model_config = ConfigDict(populate_by_name=True)


class ManageProjectRequest(BaseModel):
    action: Optional[str] = None
    project: ProjectFields = Field(default_factory=ProjectFields)


class ManageContextTagsRequest(BaseModel):
    action: Optional[str] = None
    id: Optional[str] = None
    value: Optional[str] = None
    label: Optional[str] = None
    icon: Optional[str] = None
    sort_order: Optional[int] = None


class LogTimeEntryRequest(BaseModel):
    task_id: str
    actual_minutes: int = Field(ge=1, le=1440)
    estimated_minutes: Optional[int] = Field(default=None, ge=0, le=1440)
    started_at: Optional[float] = None
    complete: bool = False


# Habits


class ManageHabitRequest(PassthroughBody):
    action: Optional[str] = None
    habit_id: Optional[str] = None
    habit_name: Optional[str] = None
    category: Optional[str] = None
    is_active: Optional[bool] = None


class ToggleHabitLogRequest(BaseModel):
    habit_id: str
    date: Optional[str] = None


class HabitProgressRequest(BaseModel):
    days: Optional[int] = Field(default=None, ge=1)


# Editorial calendar and copywriting


class ManageContentItemRequest(PassthroughBody):
    action: Optional[str] = None
    id: Optional[str] = None
    title: Optional[str] = None
    content_type: Optional[str] = None
    platform: Optional[str] = None
    status: Optional[str] = None
    planned_publish_date: Optional[str] = None
    body: Optional[str] = None
    tags: Optional[list[str]] = None


class CalendarContentRequest(BaseModel):
    start: str
    end: str


class GenerateCopyRequest(BaseModel):
    content_type: str
    business_profile: Optional[dict] = None
    product_to_promote: Optional[dict] = None
    additional_context: Optional[str] = Field(default=None, max_length=5000)
    controls: Optional[dict[str, str]] = None


class RateCopyRequest(BaseModel):
    generation_id: str
    rating: int
    feedback_text: Optional[str] = Field(default=None, max_length=2000)


# Arcade


class SelectPetRequest(BaseModel):
    pet_type: str


class CompletePetTaskRequest(BaseModel):
    index: int
    task_text: str = Field(default="", max_length=500)


class CelebrateWinRequest(BaseModel):
    index: int
    reflection: str = Field(default="", max_length=1000)


class ConvertCoinsRequest(BaseModel):
    coins: int


# Google Calendar


class OAuthStartRequest(BaseModel):
    origin: Optional[str] = None
    return_path: Optional[str] = Field(default=None, alias="returnPath")

    model_config = ConfigDict(populate_by_name=True)


class CalendarSelection(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: Optional[str] = None
    summary: Optional[str] = None
    color: Optional[str] = None
    is_enabled: bool = True


class SaveCalendarSelectionRequest(BaseModel):
    calendars: list[CalendarSelection]


class PushBlockRequest(BaseModel):
    block_id: Optional[str] = Field(default=None, alias="blockId")
    action: Optional[str] = None
    block: Optional[dict] = None

    model_config = ConfigDict(populate_by_name=True)


class CalendarEventsRequest(BaseModel):
    start_date: Optional[str] = Field(default=None, alias="startDate")
    end_date: Optional[str] = Field(default=None, alias="endDate")

    model_config = ConfigDict(populate_by_name=True)


class SyncJobRequest(BaseModel):
    job_id: str


# Membership and backups


class SaveBackupRequest(BaseModel):
    key: str
    data: Any = None


class LatestBackupRequest(BaseModel):
    key: str
