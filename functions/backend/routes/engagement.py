"""
Habit and arcade routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend import arcade, habits
from backend.auth import current_user_id
from backend.db import DbClient
from backend.dependencies import get_db_client
from backend.ratelimit import rate_limited
from backend.schemas import (
    CelebrateWinRequest,
    CompletePetTaskRequest,
    ConvertCoinsRequest,
    HabitProgressRequest,
    ManageHabitRequest,
    SelectPetRequest,
    ToggleHabitLogRequest,
)

router = APIRouter()


@router.post("/get-habits")
def get_habits(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return {"data": habits.get_habits(db, user_id)}


@router.post("/manage-habit")
def manage_habit(
    payload: ManageHabitRequest,
    user_id: str = Depends(rate_limited("manage-habit")),
    db: DbClient = Depends(get_db_client),
):
    habit = habits.manage_habit(db, user_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "data": habit}


@router.post("/toggle-habit-log")
def toggle_habit_log(
    payload: ToggleHabitLogRequest,
    user_id: str = Depends(rate_limited("toggle-habit-log")),
    db: DbClient = Depends(get_db_client),
):
    log = habits.toggle_habit_log(db, user_id, payload.habit_id, payload.date)
    return {"success": True, "data": log}


@router.post("/get-habit-progress")
def get_habit_progress(
    payload: HabitProgressRequest,
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return {"data": habits.get_habit_progress(db, user_id, payload.days)}


@router.post("/get-arcade-state")
def get_arcade_state(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return {"data": arcade.get_arcade_state(db, user_id)}


@router.post("/select-pet")
def select_pet(
    payload: SelectPetRequest,
    user_id: str = Depends(rate_limited("select-pet")),
    db: DbClient = Depends(get_db_client),
):
    return {"success": True, "data": arcade.select_pet(db, user_id, payload.pet_type)}


@router.post("/complete-pet-task")
def complete_pet_task(
    payload: CompletePetTaskRequest,
    user_id: str = Depends(rate_limited("complete-pet-task")),
    db: DbClient = Depends(get_db_client),
):
    return {
        "success": True,
        "data": arcade.complete_pet_task(
            db, user_id, index=payload.index, task_text=payload.task_text
        ),
    }


@router.post("/celebrate-win")
def celebrate_win(
    payload: CelebrateWinRequest,
    user_id: str = Depends(rate_limited("celebrate-win")),
    db: DbClient = Depends(get_db_client),
):
    return {
        "success": True,
        "data": arcade.celebrate_win(
            db, user_id, index=payload.index, reflection=payload.reflection
        ),
    }


@router.post("/convert-coins")
def convert_coins(
    payload: ConvertCoinsRequest,
    user_id: str = Depends(rate_limited("convert-coins")),
    db: DbClient = Depends(get_db_client),
):
    return {"success": True, "data": arcade.convert_coins(db, user_id, payload.coins)}
