"""
Google Calendar, membership webhook and backup routes.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Body, Depends, Header, Query
from fastapi.responses import RedirectResponse

from backend import backups, google_calendar, membership
from backend.auth import AuthUser, current_user, current_user_id
from backend.config import Settings, get_settings
from backend.db import DbClient
from backend.dependencies import (
    get_db_client,
    get_google_client,
    get_queue_client,
    get_storage_client,
)
from backend.google_client import GoogleCalendarClient
from backend.queue import JobQueue
from backend.ratelimit import rate_limited
from backend.schemas import (
    CalendarEventsRequest,
    LatestBackupRequest,
    OAuthStartRequest,
    PushBlockRequest,
    SaveBackupRequest,
    SaveCalendarSelectionRequest,
    SyncJobRequest,
)
from backend.storage import StorageClient

router = APIRouter()


# Google Calendar


@router.post("/google-oauth-start")
def google_oauth_start(
    payload: OAuthStartRequest,
    user_id: str = Depends(current_user_id),
    google: GoogleCalendarClient = Depends(get_google_client),
    settings: Settings = Depends(get_settings),
):
    return google_calendar.oauth_start(
        google, settings, user_id, origin=payload.origin, return_path=payload.return_path
    )


@router.get("/google-oauth-callback")
def google_oauth_callback(
    code: Optional[str] = Query(default=None),
    state: Optional[str] = Query(default=None),
    error: Optional[str] = Query(default=None),
    db: DbClient = Depends(get_db_client),
    google: GoogleCalendarClient = Depends(get_google_client),
    settings: Settings = Depends(get_settings),
):
    """Browser redirect target for Google consent; never requires a bearer token."""
    url = google_calendar.oauth_callback(
        db, google, settings, code=code, state=state, error=error
    )
    return RedirectResponse(url, status_code=302)


@router.post("/google-get-status")
def google_get_status(
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return google_calendar.get_status(db, user_id)


@router.post("/google-save-calendar-selection")
def google_save_calendar_selection(
    payload: SaveCalendarSelectionRequest,
    user_id: str = Depends(rate_limited("google-save-calendar-selection")),
    db: DbClient = Depends(get_db_client),
):
    return google_calendar.save_calendar_selection(
        db, user_id, [c.model_dump() for c in payload.calendars]
    )


@router.post("/google-disconnect")
def google_disconnect(
    user_id: str = Depends(rate_limited("google-disconnect")),
    db: DbClient = Depends(get_db_client),
):
    return google_calendar.disconnect(db, user_id)


@router.post("/google-push-block")
def google_push_block(
    payload: PushBlockRequest,
    user_id: str = Depends(rate_limited("google-push-block")),
    db: DbClient = Depends(get_db_client),
    google: GoogleCalendarClient = Depends(get_google_client),
    settings: Settings = Depends(get_settings),
):
    return google_calendar.push_block(
        db,
        google,
        settings,
        user_id,
        block_id=payload.block_id,
        action=payload.action,
        block=payload.block,
    )


@router.post("/google-poll-changes")
def google_poll_changes(
    user_id: str = Depends(rate_limited("google-poll-changes")),
    db: DbClient = Depends(get_db_client),
    google: GoogleCalendarClient = Depends(get_google_client),
    settings: Settings = Depends(get_settings),
):
    return google_calendar.poll_changes(db, google, settings, user_id)


@router.post("/get-calendar-events")
def get_calendar_events(
    payload: CalendarEventsRequest,
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
    google: GoogleCalendarClient = Depends(get_google_client),
    settings: Settings = Depends(get_settings),
):
    return google_calendar.get_calendar_events(
        db,
        google,
        settings,
        user_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )


@router.post("/google-request-sync", status_code=202)
def google_request_sync(
    user_id: str = Depends(rate_limited("google-request-sync")),
    db: DbClient = Depends(get_db_client),
    queue: JobQueue = Depends(get_queue_client),
):
    return google_calendar.request_sync(db, queue, user_id)


@router.post("/google-sync-job-status")
def google_sync_job_status(
    payload: SyncJobRequest,
    user_id: str = Depends(current_user_id),
    db: DbClient = Depends(get_db_client),
):
    return google_calendar.get_sync_job(db, user_id, payload.job_id)


# Membership


@router.post("/ghl-membership-webhook")
def ghl_membership_webhook(
    payload: dict = Body(...),
    x_webhook_secret: Optional[str] = Header(default=None),
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings),
):
    membership.check_webhook_secret(settings.ghl_webhook_secret, x_webhook_secret)
    return {"success": True, "data": membership.apply_membership_webhook(db, payload)}


@router.post("/get-membership")
def get_membership(
    user: AuthUser = Depends(current_user),
    db: DbClient = Depends(get_db_client),
):
    return {"data": membership.get_membership(db, user.user_id, user.email)}


# Backups


@router.post("/save-backup")
def save_backup(
    payload: SaveBackupRequest,
    user_id: str = Depends(rate_limited("save-backup")),
    storage: StorageClient = Depends(get_storage_client),
):
    return backups.save_backup(storage, user_id, key=payload.key, data=payload.data)


@router.post("/get-latest-backup")
def get_latest_backup(
    payload: LatestBackupRequest,
    user_id: str = Depends(current_user_id),
    storage: StorageClient = Depends(get_storage_client),
):
    return {"data": backups.get_latest_backup(storage, user_id, key=payload.key)}
