"""
Task, project, context tag and time tracking routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from backend import analytics, projects, tasks
from backend.db import DbClient
from backend.dependencies import get_db_client
from backend.ratelimit import READ, rate_limited
from backend.schemas import (
    CreateTasksFromPrioritiesRequest,
    GetAllTasksRequest,
    LogTimeEntryRequest,
    ManageContextTagsRequest,
    ManageProjectRequest,
    ManageTaskRequest,
)

router = APIRouter()


@router.post("/manage-task")
def manage_task(
    payload: ManageTaskRequest,
    user_id: str = Depends(rate_limited("manage-task")),
    db: DbClient = Depends(get_db_client),
):
    task = tasks.manage_task(db, user_id, payload.model_dump(exclude_unset=True))
    return {"success": True, "data": task}


@router.post("/get-all-tasks")
def get_all_tasks(
    payload: GetAllTasksRequest,
    user_id: str = Depends(rate_limited("get-all-tasks", READ)),
    db: DbClient = Depends(get_db_client),
):
    data, metadata = tasks.list_tasks(
        db,
        user_id,
        page_size=payload.page_size,
        cursor=payload.cursor,
        load_all=payload.load_all,
        filters={"status": payload.status, "project_id": payload.project_id},
    )
    return {"data": data, "metadata": metadata}


@router.post("/create-tasks-from-priorities")
def create_tasks_from_priorities(
    payload: CreateTasksFromPrioritiesRequest,
    user_id: str = Depends(rate_limited("create-tasks-from-priorities")),
    db: DbClient = Depends(get_db_client),
):
    return tasks.create_tasks_from_priorities(
        db,
        user_id,
        priorities=payload.priorities,
        cycle_id=payload.cycle_id,
        month_in_cycle=payload.month_in_cycle,
        auto_schedule=payload.auto_schedule,
    )


@router.post("/manage-project")
def manage_project(
    payload: ManageProjectRequest,
    user_id: str = Depends(rate_limited("manage-project")),
    db: DbClient = Depends(get_db_client),
):
    return projects.manage_project(
        db, user_id, payload.action, payload.project.model_dump(exclude_unset=True)
    )


@router.post("/manage-context-tags")
def manage_context_tags(
    payload: ManageContextTagsRequest,
    user_id: str = Depends(rate_limited("manage-context-tags")),
    db: DbClient = Depends(get_db_client),
):
    return projects.manage_context_tags(db, user_id, payload.model_dump())


@router.post("/log-time-entry")
def log_time_entry(
    payload: LogTimeEntryRequest,
    user_id: str = Depends(rate_limited("log-time-entry")),
    db: DbClient = Depends(get_db_client),
):
    return analytics.log_time_entry(db, user_id, **payload.model_dump())


@router.post("/get-time-analytics")
def get_time_analytics(
    user_id: str = Depends(rate_limited("get-time-analytics", READ)),
    db: DbClient = Depends(get_db_client),
):
    return analytics.get_time_analytics(db, user_id)
