"""
Google Calendar integration: OAuth connection, pushing time blocks as events,
polling for changes and reading events for the planner views.

Tokens are stored sealed with Fernet; the OAuth ``state`` parameter is a
short-lived signed JWT carrying the user, origin and return path.
"""

from __future__ import annotations

import base64
import hashlib
import json
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional
from urllib.parse import urlencode, urlparse

import jwt
from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError

from backend.config import Settings
from backend.db import DbClient, JobRecord
from backend.errors import ApiError
from backend.google_client import GoogleApiError, GoogleCalendarClient
from backend.queue import JobQueue
from backend.tables import (
    EventSyncMappingRow,
    GoogleCalendarConnectionRow,
    GoogleSelectedCalendarRow,
    GoogleSyncStateRow,
)

logger = logging.getLogger(__name__)

STATE_TTL_SECONDS = 300
STATE_PURPOSE = "google_oauth"
TOKEN_REFRESH_MARGIN_SECONDS = 300
DEFAULT_RETURN_PATH = "/settings"

POLL_PAGE_SIZE = 250
FULL_SYNC_PAST_DAYS = 30
FULL_SYNC_FUTURE_DAYS = 90
EVENTS_PAGE_SIZE = 100

PUSH_ACTIONS = ("create", "update", "delete")

RECONNECT_MESSAGE = "Failed to get valid access token. Please reconnect."


# Secrets


def _secret(settings: Settings) -> str:
    secret = settings.token_encryption_key or settings.jwt_secret
    if not secret:
        raise ApiError(503, "Token encryption is not configured")
    return secret


def _fernet(settings: Settings) -> Fernet:
    key = base64.urlsafe_b64encode(hashlib.sha256(_secret(settings).encode()).digest())
    return Fernet(key)


def seal(settings: Settings, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    return _fernet(settings).encrypt(value.encode()).decode()


def unseal(settings: Settings, value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    try:
        return _fernet(settings).decrypt(value.encode()).decode()
    except InvalidToken:
        logger.error("Stored Google token could not be decrypted")
        return None


def make_state(settings: Settings, user_id: str, origin: str, return_path: str) -> str:
    payload = {
        "sub": user_id,
        "origin": origin,
        "return_path": return_path,
        "purpose": STATE_PURPOSE,
        "exp": int(time.time()) + STATE_TTL_SECONDS,
    }
    return jwt.encode(payload, _secret(settings), algorithm="HS256")


def read_state(settings: Settings, state: str) -> dict:
    """Decode a state token. Raises jwt.ExpiredSignatureError or jwt.PyJWTError."""
    payload = jwt.decode(state, _secret(settings), algorithms=["HS256"])
    if payload.get("purpose") != STATE_PURPOSE or not payload.get("sub"):
        raise jwt.InvalidTokenError("not an OAuth state token")
    return payload


# Origins


def allowed_origin(settings: Settings, origin: Optional[str]) -> str:
    """The origin if it is one of ours, otherwise the default app origin."""
    if not origin:
        return settings.default_app_origin
    parsed = urlparse(origin)
    host = parsed.hostname or ""
    if parsed.scheme not in ("https", "http") or not host:
        return settings.default_app_origin
    if parsed.scheme == "http" and host != "localhost":
        return settings.default_app_origin
    if host in settings.allowed_origin_hosts or any(
        host.endswith(suffix) for suffix in settings.allowed_origin_suffixes
    ):
        return f"{parsed.scheme}://{parsed.netloc}"
    logger.warning("Rejected OAuth origin %s", origin)
    return settings.default_app_origin


def safe_return_path(path: Optional[str]) -> str:
    if not path or not path.startswith("/") or path.startswith("//"):
        return DEFAULT_RETURN_PATH
    return path


def _redirect(origin: str, return_path: str, params: dict) -> str:
    return f"{origin}{return_path}?{urlencode(params)}"


# Connection helpers


def _connection(session, user_id: str) -> Optional[GoogleCalendarConnectionRow]:
    connection = session.get(GoogleCalendarConnectionRow, user_id)
    if connection is None or not connection.is_active:
        return None
    return connection


def _require_connection(session, user_id: str) -> GoogleCalendarConnectionRow:
    connection = _connection(session, user_id)
    if connection is None:
        raise ApiError(400, "No active Google Calendar connection")
    return connection


def valid_access_token(
    session,
    google: GoogleCalendarClient,
    settings: Settings,
    connection: GoogleCalendarConnectionRow,
) -> Optional[str]:
    """A usable access token, refreshing it when it expires within five minutes."""
    access_token = unseal(settings, connection.access_token_encrypted)
    if access_token and connection.token_expiry - time.time() > TOKEN_REFRESH_MARGIN_SECONDS:
        return access_token

    refresh_token = unseal(settings, connection.refresh_token_encrypted)
    if not refresh_token:
        return None
    try:
        tokens = google.refresh_access_token(refresh_token)
    except GoogleApiError as e:
        logger.error("[google] token refresh failed for %s: %s", connection.user_id, e.message)
        return None

    access_token = tokens.get("access_token")
    if not access_token:
        return None
    connection.access_token_encrypted = seal(settings, access_token)
    connection.token_expiry = time.time() + int(tokens.get("expires_in", 3600))
    connection.updated_at = time.time()
    session.commit()
    return access_token


def _require_token(session, google, settings, connection) -> str:
    token = valid_access_token(session, google, settings, connection)
    if not token:
        raise ApiError(401, RECONNECT_MESSAGE)
    return token


def _sync_calendars(session, connection: GoogleCalendarConnectionRow) -> list[dict]:
    """Enabled calendars, falling back to the single legacy selection."""
    selected = session.execute(
        select(GoogleSelectedCalendarRow).where(
            GoogleSelectedCalendarRow.user_id == connection.user_id,
            GoogleSelectedCalendarRow.is_enabled.is_(True),
        )
    ).scalars().all()
    if selected:
        return [
            {"id": row.calendar_id, "name": row.calendar_name, "color": row.color}
            for row in selected
        ]
    if connection.selected_calendar_id:
        return [
            {
                "id": connection.selected_calendar_id,
                "name": connection.selected_calendar_name or connection.selected_calendar_id,
                "color": None,
            }
        ]
    return []


# OAuth


def oauth_start(
    google: GoogleCalendarClient,
    settings: Settings,
    user_id: str,
    *,
    origin: Optional[str] = None,
    return_path: Optional[str] = None,
) -> dict:
    if not google.configured:
        raise ApiError(503, "Google Calendar is not configured")
    state = make_state(
        settings, user_id, allowed_origin(settings, origin), safe_return_path(return_path)
    )
    return {"url": google.authorization_url(state)}


def oauth_callback(
    db: DbClient,
    google: GoogleCalendarClient,
    settings: Settings,
    *,
    code: Optional[str],
    state: Optional[str],
    error: Optional[str] = None,
) -> str:
    """Complete the OAuth flow and return the URL to redirect the browser to."""
    origin = settings.default_app_origin
    return_path = DEFAULT_RETURN_PATH

    def fail(message: str) -> str:
        logger.warning("[google-oauth-callback] %s", message)
        return _redirect(origin, return_path, {"oauth": "error", "error": message})

    if not state:
        return fail("invalid_state_data")
    try:
        payload = read_state(settings, state)
    except jwt.ExpiredSignatureError:
        return fail("authorization_expired_please_try_again")
    except jwt.PyJWTError:
        return fail("invalid_state_data")

    origin = allowed_origin(settings, payload.get("origin"))
    return_path = safe_return_path(payload.get("return_path"))
    user_id = payload["sub"]

    if error:
        return fail(error)
    if not code:
        return fail("missing_authorization_code")

    try:
        tokens = google.exchange_code(code)
        access_token = tokens["access_token"]
        user_info = google.get_user_info(access_token)
        calendars = google.list_calendars(access_token)
    except GoogleApiError as e:
        logger.error("[google-oauth-callback] Google request failed: %s", e.message)
        return fail("token_exchange_failed")
    except KeyError:
        return fail("token_exchange_failed")

    try:
        with db.Session() as session:
            connection = session.get(GoogleCalendarConnectionRow, user_id)
            if connection is None:
                connection = GoogleCalendarConnectionRow(user_id=user_id)
                session.add(connection)
            connection.google_user_id = user_info.get("id")
            connection.google_email = user_info.get("email")
            connection.access_token_encrypted = seal(settings, access_token)
            # Google omits the refresh token when the user re-consents.
            if tokens.get("refresh_token"):
                connection.refresh_token_encrypted = seal(settings, tokens["refresh_token"])
            connection.token_expiry = time.time() + int(tokens.get("expires_in", 3600))
            connection.is_active = True
            connection.updated_at = time.time()
            session.commit()
    except SQLAlchemyError:
        logger.exception("[google-oauth-callback] failed to save connection")
        return fail("failed_to_save_connection")

    logger.info("[google-oauth-callback] connected %s", user_id)
    listed = [
        {
            "id": c.get("id"),
            "summary": c.get("summary"),
            "primary": bool(c.get("primary")),
            "accessRole": c.get("accessRole"),
        }
        for c in calendars
    ]
    return _redirect(
        origin,
        return_path,
        {
            "oauth": "success",
            "calendars": json.dumps(listed),
            "email": user_info.get("email") or "",
        },
    )


def get_status(db: DbClient, user_id: str) -> dict:
    with db.Session() as session:
        connection = _connection(session, user_id)
        if connection is None:
            return {"connected": False}
        states = session.execute(
            select(GoogleSyncStateRow).where(GoogleSyncStateRow.user_id == user_id)
        ).scalars().all()
        synced = [
            ts
            for s in states
            for ts in (s.last_incremental_sync_at, s.last_full_sync_at)
            if ts is not None
        ]
        return {
            "connected": True,
            "email": connection.google_email,
            "selected_calendar_id": connection.selected_calendar_id,
            "selected_calendar_name": connection.selected_calendar_name,
            "calendars": _sync_calendars(session, connection),
            "last_synced_at": max(synced) if synced else None,
            "sync_errors": [
                {"calendar_id": s.calendar_id, "message": s.last_error_message}
                for s in states
                if s.sync_status == "error"
            ],
        }


def save_calendar_selection(db: DbClient, user_id: str, calendars: list[dict]) -> dict:
    """Replace the set of calendars used for sync."""
    picked = [c for c in calendars if c.get("id")]
    if not picked:
        raise ApiError(400, "At least one calendar is required")

    with db.Session() as session:
        connection = _require_connection(session, user_id)
        session.execute(
            delete(GoogleSelectedCalendarRow).where(
                GoogleSelectedCalendarRow.user_id == user_id
            )
        )
        seen = set()
        for c in picked:
            if c["id"] in seen:
                continue
            seen.add(c["id"])
            session.add(
                GoogleSelectedCalendarRow(
                    user_id=user_id,
                    calendar_id=c["id"],
                    calendar_name=c.get("name") or c.get("summary") or c["id"],
                    color=c.get("color"),
                    is_enabled=c.get("is_enabled", True),
                )
            )
        connection.selected_calendar_id = picked[0]["id"]
        connection.selected_calendar_name = (
            picked[0].get("name") or picked[0].get("summary") or picked[0]["id"]
        )
        connection.updated_at = time.time()
        session.commit()
        return {"success": True, "calendars": _sync_calendars(session, connection)}


def disconnect(db: DbClient, user_id: str) -> dict:
    with db.Session() as session:
        connection = session.get(GoogleCalendarConnectionRow, user_id)
        if connection is not None:
            connection.is_active = False
            connection.access_token_encrypted = None
            connection.refresh_token_encrypted = None
            connection.token_expiry = 0.0
            connection.updated_at = time.time()
        for table in (GoogleSelectedCalendarRow, GoogleSyncStateRow, EventSyncMappingRow):
            session.execute(delete(table).where(table.user_id == user_id))
        session.commit()
    logger.info("[google-disconnect] %s", user_id)
    return {"success": True}


# Push


def _event_body(block: dict) -> dict:
    tz = block.get("time_zone") or block.get("timeZone") or "UTC"
    return {
        "summary": block.get("title") or "Untitled Block",
        "description": block.get("description") or "",
        "start": {"dateTime": block.get("start_time") or block.get("startTime"), "timeZone": tz},
        "end": {"dateTime": block.get("end_time") or block.get("endTime"), "timeZone": tz},
    }


def push_block(
    db: DbClient,
    google: GoogleCalendarClient,
    settings: Settings,
    user_id: str,
    *,
    block_id: Optional[str],
    action: Optional[str],
    block: Optional[dict] = None,
) -> dict:
    """Mirror one app time block into the user's selected Google calendar."""
    if not block_id or not action:
        raise ApiError(400, "Block ID and action are required")
    if action not in PUSH_ACTIONS:
        raise ApiError(400, "Invalid action. Use create, update, or delete.")

    with db.Session() as session:
        connection = _require_connection(session, user_id)
        calendars = _sync_calendars(session, connection)
        if not calendars:
            raise ApiError(400, "No calendar selected")
        calendar_id = connection.selected_calendar_id or calendars[0]["id"]
        token = _require_token(session, google, settings, connection)
        mapping = session.get(EventSyncMappingRow, (user_id, block_id))

        if action == "create":
            if not block or not (block.get("start_time") or block.get("startTime")):
                raise ApiError(400, "Block start and end times are required")
            try:
                event = google.insert_event(token, calendar_id, _event_body(block))
            except GoogleApiError as e:
                raise ApiError(502, f"Google Calendar error: {e.message}")
            if mapping is None:
                mapping = EventSyncMappingRow(user_id=user_id, app_block_id=block_id)
                session.add(mapping)
            mapping.google_event_id = event["id"]
            mapping.google_etag = event.get("etag")
            mapping.sync_direction = "app_to_google"
            mapping.last_synced_at = time.time()
            session.commit()
            logger.info("[google-push-block] created %s for block %s", event["id"], block_id)
            return {"success": True, "result": event}

        if action == "update":
            if mapping is None:
                raise ApiError(404, "Event not found. Please create a new event.")
            try:
                event = google.update_event(
                    token, calendar_id, mapping.google_event_id, _event_body(block or {})
                )
            except GoogleApiError as e:
                if e.status_code == 404:
                    session.delete(mapping)
                    session.commit()
                    raise ApiError(404, "Event was deleted in Google Calendar")
                raise ApiError(502, f"Google Calendar error: {e.message}")
            mapping.google_etag = event.get("etag")
            mapping.last_synced_at = time.time()
            session.commit()
            return {"success": True, "result": event}

        if mapping is None:
            return {"success": True, "message": "No mapping found"}
        try:
            google.delete_event(token, calendar_id, mapping.google_event_id)
        except GoogleApiError as e:
            if e.status_code not in (404, 410):
                raise ApiError(502, f"Google Calendar error: {e.message}")
        session.delete(mapping)
        session.commit()
        return {"success": True, "result": {"deleted": block_id}}


# Poll


def _iso(dt: datetime) -> str:
    return dt.strftime("%Y-%m-%dT%H:%M:%SZ")


def _processed_event(event: dict, calendar: dict) -> dict:
    start = event.get("start") or {}
    end = event.get("end") or {}
    return {
        "googleEventId": event["id"],
        "title": event.get("summary") or "Untitled Event",
        "description": event.get("description"),
        "startTime": start.get("dateTime"),
        "endTime": end.get("dateTime"),
        "timeZone": start.get("timeZone"),
        "etag": event.get("etag"),
        "updated": event.get("updated"),
        "sourceCalendarId": calendar["id"],
        "sourceCalendarName": calendar["name"],
        "calendarColor": calendar.get("color"),
    }


def poll_changes(
    db: DbClient,
    google: GoogleCalendarClient,
    settings: Settings,
    user_id: str,
) -> dict:
    """Pull changes from every enabled calendar since its last sync token.

    A calendar without a token gets a full sync window. An expired token (410)
    is cleared and reported through ``requiresRetry``; any other failure is
    recorded on that calendar's sync state and the remaining calendars still run.
    """
    with db.Session() as session:
        connection = _require_connection(session, user_id)
        calendars = _sync_calendars(session, connection)
        if not calendars:
            raise ApiError(400, "No calendars selected for sync")
        token = _require_token(session, google, settings, connection)

        new_events: list[dict] = []
        updated_events: list[dict] = []
        deleted_ids: list[str] = []
        total_fetched = 0
        requires_retry = False

        for calendar in calendars:
            state = session.get(GoogleSyncStateRow, (user_id, calendar["id"]))
            if state is None:
                state = GoogleSyncStateRow(user_id=user_id, calendar_id=calendar["id"])
                session.add(state)

            params = {"maxResults": POLL_PAGE_SIZE, "singleEvents": "true"}
            full_sync = not state.sync_token
            if full_sync:
                now = datetime.now(timezone.utc)
                params["timeMin"] = _iso(now - timedelta(days=FULL_SYNC_PAST_DAYS))
                params["timeMax"] = _iso(now + timedelta(days=FULL_SYNC_FUTURE_DAYS))
                params["showDeleted"] = "false"
            else:
                params["syncToken"] = state.sync_token

            try:
                next_sync_token = None
                for page in google.iter_event_pages(token, calendar["id"], params):
                    items = page.get("items", [])
                    total_fetched += len(items)
                    for event in items:
                        if event.get("status") == "cancelled":
                            session.execute(
                                delete(EventSyncMappingRow).where(
                                    EventSyncMappingRow.user_id == user_id,
                                    EventSyncMappingRow.google_event_id == event["id"],
                                )
                            )
                            deleted_ids.append(event["id"])
                            continue
                        # All-day events have no dateTime and are not time blocks.
                        if not (event.get("start") or {}).get("dateTime"):
                            continue
                        mapping = session.execute(
                            select(EventSyncMappingRow).where(
                                EventSyncMappingRow.user_id == user_id,
                                EventSyncMappingRow.google_event_id == event["id"],
                            )
                        ).scalars().first()
                        if mapping is None:
                            new_events.append(_processed_event(event, calendar))
                        elif mapping.google_etag != event.get("etag"):
                            updated_events.append(
                                {**_processed_event(event, calendar), "appBlockId": mapping.app_block_id}
                            )
                            mapping.google_etag = event.get("etag")
                            mapping.last_synced_at = time.time()
                    next_sync_token = page.get("nextSyncToken") or next_sync_token
            except GoogleApiError as e:
                if e.status_code == 410:
                    logger.info("[google-poll-changes] sync token expired for %s", calendar["id"])
                    state.sync_token = None
                    state.sync_status = "token_expired"
                    requires_retry = True
                else:
                    logger.error(
                        "[google-poll-changes] calendar %s failed: %s", calendar["id"], e.message
                    )
                    state.sync_status = "error"
                    state.last_error_message = e.message
                state.updated_at = time.time()
                continue

            now_ts = time.time()
            state.sync_token = next_sync_token
            state.sync_status = "active"
            state.last_error_message = None
            if full_sync:
                state.last_full_sync_at = now_ts
            else:
                state.last_incremental_sync_at = now_ts
            state.updated_at = now_ts

        session.commit()

    if requires_retry:
        return {
            "message": "Sync token expired for one or more calendars, please retry for full sync",
            "requiresRetry": True,
        }

    logger.info(
        "[google-poll-changes] %s: %d fetched, %d new, %d updated, %d deleted",
        user_id,
        total_fetched,
        len(new_events),
        len(updated_events),
        len(deleted_ids),
    )
    return {
        "success": True,
        "calendarsPolled": len(calendars),
        "stats": {
            "totalFetched": total_fetched,
            "newEvents": len(new_events),
            "updatedEvents": len(updated_events),
            "deletedEvents": len(deleted_ids),
        },
        "newEvents": new_events,
        "updatedEvents": updated_events,
        "deletedEventIds": deleted_ids,
    }


# Read


def _range_bound(value: str, end_of_day: bool) -> str:
    if "T" in value:
        return value
    return f"{value}T23:59:59Z" if end_of_day else f"{value}T00:00:00Z"


def get_calendar_events(
    db: DbClient,
    google: GoogleCalendarClient,
    settings: Settings,
    user_id: str,
    *,
    start_date: Optional[str],
    end_date: Optional[str],
) -> dict:
    if not start_date or not end_date:
        raise ApiError(400, "startDate and endDate are required")

    with db.Session() as session:
        connection = _connection(session, user_id)
        if connection is None:
            return {"events": [], "connected": False}
        calendars = _sync_calendars(session, connection) or [
            {"id": "primary", "name": "Primary", "color": None}
        ]
        token = _require_token(session, google, settings, connection)

    params = {
        "timeMin": _range_bound(start_date, end_of_day=False),
        "timeMax": _range_bound(end_date, end_of_day=True),
        "singleEvents": "true",
        "orderBy": "startTime",
        "maxResults": EVENTS_PAGE_SIZE,
    }
    events = []
    for calendar in calendars:
        try:
            page = google.list_events(token, calendar["id"], params)
        except GoogleApiError as e:
            logger.error("[get-calendar-events] calendar %s failed: %s", calendar["id"], e.message)
            continue
        for event in page.get("items", []):
            events.append(
                {
                    "id": event.get("id"),
                    "summary": event.get("summary") or "Untitled Event",
                    "description": event.get("description"),
                    "start": event.get("start"),
                    "end": event.get("end"),
                    "location": event.get("location"),
                    "htmlLink": event.get("htmlLink"),
                    "hangoutLink": event.get("hangoutLink"),
                    "conferenceData": event.get("conferenceData"),
                    "attendees": event.get("attendees"),
                    "organizer": event.get("organizer"),
                    "status": event.get("status"),
                    "colorId": event.get("colorId"),
                    "calendarId": calendar["id"],
                    "calendarColor": calendar.get("color"),
                }
            )

    events.sort(
        key=lambda e: (e["start"] or {}).get("dateTime") or (e["start"] or {}).get("date") or ""
    )
    return {"events": events, "connected": True}


# Background sync


def request_sync(db: DbClient, queue: JobQueue, user_id: str) -> dict:
    with db.Session() as session:
        _require_connection(session, user_id)
    open_job = db.open_job_for(user_id)
    if open_job is not None:
        logger.info("[google-request-sync] %s already has job %s", user_id, open_job.job_id)
        return open_job.as_dict()
    job = db.create_sync_job(user_id)
    queue.enqueue(job.job_id)
    logger.info(
        "[google-request-sync] queued job %s for %s (%d pending)",
        job.job_id,
        user_id,
        queue.depth(),
    )
    return job.as_dict()


def get_sync_job(db: DbClient, user_id: str, job_id: str) -> dict:
    job: Optional[JobRecord] = db.get_job(job_id)
    if job is None or job.user_id != user_id:
        raise ApiError(404, "Job not found")
    return job.as_dict()
