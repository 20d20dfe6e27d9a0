"""
Cycle, weekly/daily planning, review and dashboard routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend import cycles, planning
from backend.auth import current_user_id
from backend.db import DbClient
from backend.dependencies import get_db_client, get_storage_client
from backend.ratelimit import rate_limited
from backend.schemas import (
    CreateCycleRequest,
    CycleRequest,
    GetDailyPlanRequest,
    SaveCycleSummaryRequest,
    SaveDailyPlanRequest,
    SaveMonthlyReviewRequest,
    SaveWeeklyPlanRequest,
    SaveWeeklyReviewRequest,
)
from backend.storage import StorageClient

router = APIRouter()


@router.post("/create-cycle-from-wizard")
def create_cycle_from_wizard(
    payload: CreateCycleRequest,
    user_id: str = Depends(rate_limited("create-cycle-from-wizard")),
    db: DbClient = Depends(get_db_client),
):
    return cycles.create_cycle_from_wizard(db, user_id, payload.model_dump(exclude_unset=True))


@router.post("/get-current-cycle")
def get_current_cycle(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return {"data": cycles.get_current_cycle(db, user_id)}


@router.post("/get-cycle-summary")
def get_cycle_summary(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return cycles.get_cycle_summary(db, user_id)


@router.post("/save-cycle-summary")
def save_cycle_summary(
    payload: SaveCycleSummaryRequest,
    user_id: str = Depends(rate_limited("save-cycle-summary")),
    db: DbClient = Depends(get_db_client),
):
    return cycles.save_cycle_summary(db, user_id, **payload.model_dump())


@router.post("/export-cycle")
def export_cycle(
    payload: CycleRequest,
    user_id: str = Depends(rate_limited("export-cycle")),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    return cycles.export_cycle(db, storage, user_id, payload.cycle_id)


@router.post("/get-weekly-plan")
def get_weekly_plan(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return planning.get_weekly_plan(db, user_id)


@router.post("/save-weekly-plan")
def save_weekly_plan(
    payload: SaveWeeklyPlanRequest,
    user_id: str = Depends(rate_limited("save-weekly-plan")),
    db: DbClient = Depends(get_db_client),
):
    return planning.save_weekly_plan(db, user_id, payload.model_dump())


@router.post("/get-daily-plan")
def get_daily_plan(
    payload: GetDailyPlanRequest,
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return planning.get_daily_plan(db, user_id, payload.date)


@router.post("/save-daily-plan")
def save_daily_plan(
    payload: SaveDailyPlanRequest,
    user_id: str = Depends(rate_limited("save-daily-plan")),
    db: DbClient = Depends(get_db_client),
):
    return planning.save_daily_plan(db, user_id, payload.model_dump())


@router.post("/save-weekly-review")
def save_weekly_review(
    payload: SaveWeeklyReviewRequest,
    user_id: str = Depends(rate_limited("save-weekly-review")),
    db: DbClient = Depends(get_db_client),
):
    return planning.save_weekly_review(db, user_id, **payload.model_dump())


@router.post("/save-monthly-review")
def save_monthly_review(
    payload: SaveMonthlyReviewRequest,
    user_id: str = Depends(rate_limited("save-monthly-review")),
    db: DbClient = Depends(get_db_client),
):
    return planning.save_monthly_review(db, user_id, **payload.model_dump())


@router.post("/get-dashboard-summary")
def get_dashboard_summary(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return planning.get_dashboard_summary(db, user_id)


@router.post("/get-weekly-review")
def get_weekly_review(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return planning.get_weekly_review(db, user_id)


@router.post("/get-monthly-review")
def get_monthly_review(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return planning.get_monthly_review(db, user_id)


@router.post("/get-progress-metrics")
def get_progress_metrics(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return planning.get_progress_metrics(db, user_id)
