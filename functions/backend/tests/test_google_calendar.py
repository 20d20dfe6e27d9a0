import json
import time
import unittest
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlparse

import jwt
import requests

from backend import google_calendar
from backend.db import JobStatus
from backend.dependencies import get_google_client
from backend.google_client import GoogleApiError, GoogleCalendarClient
from backend.tables import (
    EventSyncMappingRow,
    GoogleCalendarConnectionRow,
    GoogleSelectedCalendarRow,
    GoogleSyncStateRow,
)
from backend.tests.helpers import PREFIX, ApiTestCase, make_settings


def _query(url):
    return {k: v[0] for k, v in parse_qs(urlparse(url).query).items()}


class StateAndOriginTests(unittest.TestCase):
    def setUp(self):
        self.settings = make_settings()

    def test_state_round_trip(self):
        state = google_calendar.make_state(self.settings, "user-1", "https://a.test", "/plan")
        payload = google_calendar.read_state(self.settings, state)
        self.assertEqual(payload["sub"], "user-1")
        self.assertEqual(payload["return_path"], "/plan")

    def test_state_rejects_other_tokens(self):
        token = jwt.encode({"sub": "user-1"}, "test-encryption-key", algorithm="HS256")
        with self.assertRaises(jwt.InvalidTokenError):
            google_calendar.read_state(self.settings, token)

    def test_expired_state(self):
        token = jwt.encode(
            {"sub": "user-1", "purpose": "google_oauth", "exp": int(time.time()) - 10},
            "test-encryption-key",
            algorithm="HS256",
        )
        with self.assertRaises(jwt.ExpiredSignatureError):
            google_calendar.read_state(self.settings, token)

    def test_seal_unseal(self):
        sealed = google_calendar.seal(self.settings, "secret-token")
        self.assertNotEqual(sealed, "secret-token")
        self.assertEqual(google_calendar.unseal(self.settings, sealed), "secret-token")
        other = make_settings(token_encryption_key="another-key")
        self.assertIsNone(google_calendar.unseal(other, sealed))
        self.assertIsNone(google_calendar.seal(self.settings, None))

    def test_allowed_origin(self):
        default = self.settings.default_app_origin
        cases = {
            None: default,
            "https://plan.faithmariah.com": "https://plan.faithmariah.com",
            "https://preview-1.lovableproject.com": "https://preview-1.lovableproject.com",
            "http://localhost:5173": "http://localhost:5173",
            "http://plan.faithmariah.com": default,
            "https://evil.example.com": default,
            "javascript:alert(1)": default,
        }
        for origin, expected in cases.items():
            with self.subTest(origin=origin):
                self.assertEqual(google_calendar.allowed_origin(self.settings, origin), expected)

    def test_safe_return_path(self):
        self.assertEqual(google_calendar.safe_return_path("/calendar"), "/calendar")
        self.assertEqual(google_calendar.safe_return_path("//evil.com"), "/settings")
        self.assertEqual(google_calendar.safe_return_path("https://evil.com"), "/settings")
        self.assertEqual(google_calendar.safe_return_path(None), "/settings")


class GoogleCalendarTestCase(ApiTestCase):
    def connect(self, calendars=(("cal-1", "Work", "#f00"),), expiry_in=3600):
        with self.db.Session() as session:
            session.add(
                GoogleCalendarConnectionRow(
                    user_id=self.user_id,
                    google_email="me@gmail.com",
                    access_token_encrypted=google_calendar.seal(self.settings, "access-1"),
                    refresh_token_encrypted=google_calendar.seal(self.settings, "refresh-1"),
                    token_expiry=time.time() + expiry_in,
                    is_active=True,
                    selected_calendar_id=calendars[0][0] if calendars else None,
                )
            )
            for calendar_id, name, color in calendars:
                session.add(
                    GoogleSelectedCalendarRow(
                        user_id=self.user_id,
                        calendar_id=calendar_id,
                        calendar_name=name,
                        color=color,
                    )
                )
            session.commit()


class OAuthTests(GoogleCalendarTestCase):
    def test_oauth_start_returns_consent_url(self):
        self.google.authorization_url.side_effect = lambda state: f"https://consent?state={state}"
        response = self.post(
            "google-oauth-start", {"origin": "https://evil.example.com", "returnPath": "/calendar"}
        )
        self.assertEqual(response.status_code, 200, response.text)
        state = _query(response.json()["url"])["state"]
        payload = google_calendar.read_state(self.settings, state)
        self.assertEqual(payload["sub"], self.user_id)
        self.assertEqual(payload["origin"], self.settings.default_app_origin)
        self.assertEqual(payload["return_path"], "/calendar")

    def test_oauth_start_not_configured(self):
        self.google.configured = False
        response = self.post("google-oauth-start", {})
        self.assertEqual(response.status_code, 503)

    def _callback(self, **params):
        response = self.client.get(
            f"{PREFIX}/google-oauth-callback", params=params, follow_redirects=False
        )
        self.assertEqual(response.status_code, 302)
        return response.headers["location"]

    def _state(self, origin="http://localhost:5173", return_path="/calendar"):
        return google_calendar.make_state(self.settings, self.user_id, origin, return_path)

    def test_callback_success_saves_connection(self):
        self.google.exchange_code.return_value = {
            "access_token": "access-new",
            "refresh_token": "refresh-new",
            "expires_in": 3600,
        }
        self.google.get_user_info.return_value = {"id": "g-1", "email": "me@gmail.com"}
        self.google.list_calendars.return_value = [
            {"id": "primary-id", "summary": "Me", "primary": True, "accessRole": "owner"}
        ]

        location = self._callback(code="auth-code", state=self._state())
        self.assertTrue(location.startswith("http://localhost:5173/calendar?"))
        query = _query(location)
        self.assertEqual(query["oauth"], "success")
        self.assertEqual(query["email"], "me@gmail.com")
        self.assertEqual(json.loads(query["calendars"])[0]["id"], "primary-id")

        with self.db.Session() as session:
            connection = session.get(GoogleCalendarConnectionRow, self.user_id)
        self.assertTrue(connection.is_active)
        self.assertNotEqual(connection.access_token_encrypted, "access-new")
        self.assertEqual(
            google_calendar.unseal(self.settings, connection.refresh_token_encrypted),
            "refresh-new",
        )

    def test_callback_errors(self):
        expired = jwt.encode(
            {"sub": self.user_id, "purpose": "google_oauth", "exp": int(time.time()) - 5},
            "test-encryption-key",
            algorithm="HS256",
        )
        cases = [
            ({"code": "c"}, "invalid_state_data"),
            ({"code": "c", "state": "garbage"}, "invalid_state_data"),
            ({"code": "c", "state": expired}, "authorization_expired_please_try_again"),
            ({"state": self._state(), "error": "access_denied"}, "access_denied"),
            ({"state": self._state()}, "missing_authorization_code"),
        ]
        for params, error in cases:
            with self.subTest(error=error):
                query = _query(self._callback(**params))
                self.assertEqual(query["oauth"], "error")
                self.assertEqual(query["error"], error)

    def test_callback_token_exchange_failure(self):
        self.google.exchange_code.side_effect = GoogleApiError(400, "invalid_grant")
        location = self._callback(code="c", state=self._state())
        self.assertEqual(_query(location)["error"], "token_exchange_failed")
        self.assertTrue(location.startswith("http://localhost:5173/calendar?"))


class ConnectionTests(GoogleCalendarTestCase):
    def test_status_when_disconnected(self):
        self.assertEqual(self.post("google-get-status").json(), {"connected": False})

    def test_status_and_selection(self):
        self.connect()
        status = self.post("google-get-status").json()
        self.assertTrue(status["connected"])
        self.assertEqual(status["email"], "me@gmail.com")
        self.assertEqual(status["calendars"], [{"id": "cal-1", "name": "Work", "color": "#f00"}])

        response = self.post(
            "google-save-calendar-selection",
            {"calendars": [{"id": "cal-2", "summary": "Family"}, {"id": "cal-3", "name": "Gym"}]},
        )
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual([c["id"] for c in response.json()["calendars"]], ["cal-2", "cal-3"])
        status = self.post("google-get-status").json()
        self.assertEqual(status["selected_calendar_id"], "cal-2")
        self.assertEqual(status["selected_calendar_name"], "Family")

    def test_selection_errors(self):
        response = self.post("google-save-calendar-selection", {"calendars": []})
        self.assertEqual(response.json()["error"], "At least one calendar is required")
        response = self.post("google-save-calendar-selection", {"calendars": [{"id": "x"}]})
        self.assertEqual(response.json()["error"], "No active Google Calendar connection")

    def test_disconnect_clears_tokens_and_state(self):
        self.connect()
        with self.db.Session() as session:
            session.add(GoogleSyncStateRow(user_id=self.user_id, calendar_id="cal-1", sync_token="t"))
            session.commit()

        self.assertEqual(self.post("google-disconnect").json(), {"success": True})
        with self.db.Session() as session:
            connection = session.get(GoogleCalendarConnectionRow, self.user_id)
            self.assertFalse(connection.is_active)
            self.assertIsNone(connection.access_token_encrypted)
            self.assertEqual(session.query(GoogleSyncStateRow).count(), 0)
            self.assertEqual(session.query(GoogleSelectedCalendarRow).count(), 0)
        self.assertEqual(self.post("google-get-status").json(), {"connected": False})

    def test_expiring_token_is_refreshed(self):
        self.connect(expiry_in=60)
        self.google.refresh_access_token.return_value = {"access_token": "access-2", "expires_in": 3600}
        self.google.iter_event_pages.return_value = iter([{"items": [], "nextSyncToken": "s1"}])

        self.post("google-poll-changes")

        self.google.refresh_access_token.assert_called_once_with("refresh-1")
        self.assertEqual(self.google.iter_event_pages.call_args[0][0], "access-2")

    def test_failed_refresh_asks_to_reconnect(self):
        self.connect(expiry_in=0)
        self.google.refresh_access_token.side_effect = GoogleApiError(400, "invalid_grant")
        response = self.post("google-poll-changes")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], google_calendar.RECONNECT_MESSAGE)


class PushBlockTests(GoogleCalendarTestCase):
    BLOCK = {"title": "Deep work", "start_time": "2026-03-02T09:00:00Z", "end_time": "2026-03-02T11:00:00Z"}

    def setUp(self):
        super().setUp()
        self.connect()

    def _push(self, action, block=None, block_id="block-1"):
        return self.post("google-push-block", {"blockId": block_id, "action": action, "block": block})

    def test_create_update_delete(self):
        self.google.insert_event.return_value = {"id": "evt-1", "etag": "e1"}
        response = self._push("create", self.BLOCK)
        self.assertEqual(response.status_code, 200, response.text)
        token, calendar_id, body = self.google.insert_event.call_args[0]
        self.assertEqual((token, calendar_id), ("access-1", "cal-1"))
        self.assertEqual(body["summary"], "Deep work")
        self.assertEqual(body["start"], {"dateTime": "2026-03-02T09:00:00Z", "timeZone": "UTC"})

        self.google.update_event.return_value = {"id": "evt-1", "etag": "e2"}
        self.assertEqual(self._push("update", dict(self.BLOCK, title="Focus")).status_code, 200)
        self.assertEqual(self.google.update_event.call_args[0][2], "evt-1")
        with self.db.Session() as session:
            self.assertEqual(session.get(EventSyncMappingRow, (self.user_id, "block-1")).google_etag, "e2")

        response = self._push("delete")
        self.assertEqual(response.json()["result"], {"deleted": "block-1"})
        self.google.delete_event.assert_called_once_with("access-1", "cal-1", "evt-1")
        with self.db.Session() as session:
            self.assertIsNone(session.get(EventSyncMappingRow, (self.user_id, "block-1")))

    def test_validation(self):
        response = self.post("google-push-block", {"action": "create"})
        self.assertEqual(response.json()["error"], "Block ID and action are required")
        response = self._push("move")
        self.assertEqual(response.json()["error"], "Invalid action. Use create, update, or delete.")
        response = self._push("create", {"title": "No times"})
        self.assertEqual(response.json()["error"], "Block start and end times are required")

    def test_update_without_mapping(self):
        response = self._push("update", self.BLOCK)
        self.assertEqual(response.status_code, 404)

    def test_update_of_event_deleted_in_google(self):
        with self.db.Session() as session:
            session.add(
                EventSyncMappingRow(user_id=self.user_id, app_block_id="block-1", google_event_id="evt-9")
            )
            session.commit()
        self.google.update_event.side_effect = GoogleApiError(404, "Not Found")
        response = self._push("update", self.BLOCK)
        self.assertEqual(response.json()["error"], "Event was deleted in Google Calendar")
        with self.db.Session() as session:
            self.assertIsNone(session.get(EventSyncMappingRow, (self.user_id, "block-1")))

    def test_delete_without_mapping(self):
        response = self._push("delete")
        self.assertEqual(response.json(), {"success": True, "message": "No mapping found"})

    def test_google_failure_is_bad_gateway(self):
        self.google.insert_event.side_effect = GoogleApiError(500, "Backend Error")
        response = self._push("create", self.BLOCK)
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"], "Google Calendar error: Backend Error")


class PollChangesTests(GoogleCalendarTestCase):
    def setUp(self):
        super().setUp()
        self.connect(calendars=(("cal-1", "Work", "#f00"), ("cal-2", "Home", None)))

    def test_full_then_incremental_sync(self):
        with self.db.Session() as session:
            session.add(
                EventSyncMappingRow(
                    user_id=self.user_id, app_block_id="block-1", google_event_id="known", google_etag="old"
                )
            )
            session.commit()

        pages = {
            "cal-1": [
                {
                    "items": [
                        {"id": "new", "summary": "Lunch", "etag": "a", "start": {"dateTime": "2026-03-02T12:00:00Z"}},
                        {"id": "allday", "start": {"date": "2026-03-02"}},
                    ],
                    "nextPageToken": "p2",
                },
                {
                    "items": [{"id": "known", "etag": "new-etag", "start": {"dateTime": "2026-03-03T09:00:00Z"}}],
                    "nextSyncToken": "sync-1",
                },
            ],
            "cal-2": [{"items": [{"id": "gone", "status": "cancelled"}], "nextSyncToken": "sync-2"}],
        }
        self.google.iter_event_pages.side_effect = lambda token, calendar_id, params: iter(pages[calendar_id])

        result = self.post("google-poll-changes").json()
        self.assertEqual(result["calendarsPolled"], 2)
        self.assertEqual(
            result["stats"],
            {"totalFetched": 4, "newEvents": 1, "updatedEvents": 1, "deletedEvents": 1},
        )
        self.assertEqual(result["newEvents"][0]["sourceCalendarName"], "Work")
        self.assertEqual(result["newEvents"][0]["calendarColor"], "#f00")
        self.assertEqual(result["updatedEvents"][0]["appBlockId"], "block-1")
        self.assertEqual(result["deletedEventIds"], ["gone"])

        params = self.google.iter_event_pages.call_args_list[0][0][2]
        self.assertIn("timeMin", params)
        self.assertNotIn("syncToken", params)

        with self.db.Session() as session:
            state = session.get(GoogleSyncStateRow, (self.user_id, "cal-1"))
            self.assertEqual(state.sync_token, "sync-1")
            self.assertIsNotNone(state.last_full_sync_at)
            self.assertEqual(session.get(EventSyncMappingRow, (self.user_id, "block-1")).google_etag, "new-etag")

        self.google.iter_event_pages.side_effect = lambda token, calendar_id, params: iter(
            [{"items": [], "nextSyncToken": params["syncToken"] + "+"}]
        )
        self.post("google-poll-changes")
        params = self.google.iter_event_pages.call_args_list[-1][0][2]
        self.assertEqual(params["syncToken"], "sync-2")
        with self.db.Session() as session:
            state = session.get(GoogleSyncStateRow, (self.user_id, "cal-2"))
            self.assertEqual(state.sync_token, "sync-2+")
            self.assertIsNotNone(state.last_incremental_sync_at)

    def test_expired_sync_token_requires_retry(self):
        def pages(token, calendar_id, params):
            if calendar_id == "cal-1":
                raise GoogleApiError(410, "Sync token is no longer valid")
            return iter([{"items": [], "nextSyncToken": "sync-2"}])

        self.google.iter_event_pages.side_effect = pages
        result = self.post("google-poll-changes").json()
        self.assertTrue(result["requiresRetry"])
        with self.db.Session() as session:
            state = session.get(GoogleSyncStateRow, (self.user_id, "cal-1"))
            self.assertIsNone(state.sync_token)
            self.assertEqual(state.sync_status, "token_expired")

    def test_failing_calendar_does_not_stop_others(self):
        def pages(token, calendar_id, params):
            if calendar_id == "cal-1":
                raise GoogleApiError(403, "Forbidden")
            return iter([{"items": [], "nextSyncToken": "sync-2"}])

        self.google.iter_event_pages.side_effect = pages
        result = self.post("google-poll-changes").json()
        self.assertTrue(result["success"])

        status = self.post("google-get-status").json()
        self.assertEqual(status["sync_errors"], [{"calendar_id": "cal-1", "message": "Forbidden"}])
        self.assertIsNotNone(status["last_synced_at"])

    def test_unreachable_calendar_does_not_stop_others(self):
        def request(method, url, **kwargs):
            if "/calendars/cal-1/" in url:
                raise requests.ConnectionError("connection reset")
            response = MagicMock(ok=True, status_code=200, content=b"{}")
            response.json.return_value = {"items": [], "nextSyncToken": "sync-2"}
            return response

        session = MagicMock()
        session.request.side_effect = request
        client = GoogleCalendarClient("cid", "secret", "https://api.test/cb", session=session)
        self.app.dependency_overrides[get_google_client] = lambda: client

        response = self.post("google-poll-changes")
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()["calendarsPolled"], 2)
        with self.db.Session() as db_session:
            failed = db_session.get(GoogleSyncStateRow, (self.user_id, "cal-1"))
            synced = db_session.get(GoogleSyncStateRow, (self.user_id, "cal-2"))
            self.assertEqual(failed.sync_status, "error")
            self.assertIn("connection reset", failed.last_error_message)
            self.assertEqual(synced.sync_token, "sync-2")

    def test_poll_without_connection(self):
        response = self.post("google-poll-changes", user_id="user-2")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "No active Google Calendar connection")


class CalendarEventsTests(GoogleCalendarTestCase):
    def test_not_connected(self):
        response = self.post("get-calendar-events", {"startDate": "2026-03-01", "endDate": "2026-03-07"})
        self.assertEqual(response.json(), {"events": [], "connected": False})

    def test_requires_range(self):
        response = self.post("get-calendar-events", {"startDate": "2026-03-01"})
        self.assertEqual(response.status_code, 400)

    def test_merges_calendars_sorted_by_start(self):
        self.connect(calendars=(("cal-1", "Work", "#f00"), ("cal-2", "Home", "#0f0")))
        events = {
            "cal-1": {"items": [{"id": "b", "start": {"dateTime": "2026-03-02T10:00:00Z"}}]},
            "cal-2": {"items": [{"id": "a", "summary": "Run", "start": {"date": "2026-03-02"}}]},
        }
        self.google.list_events.side_effect = lambda token, calendar_id, params: events[calendar_id]

        data = self.post(
            "get-calendar-events", {"startDate": "2026-03-01", "endDate": "2026-03-07"}
        ).json()
        self.assertTrue(data["connected"])
        self.assertEqual([e["id"] for e in data["events"]], ["a", "b"])
        self.assertEqual(data["events"][0]["calendarColor"], "#0f0")
        self.assertEqual(data["events"][1]["summary"], "Untitled Event")

        params = self.google.list_events.call_args[0][2]
        self.assertEqual(params["timeMin"], "2026-03-01T00:00:00Z")
        self.assertEqual(params["timeMax"], "2026-03-07T23:59:59Z")

    def test_falls_back_to_primary(self):
        self.connect(calendars=())
        self.google.list_events.return_value = {"items": []}
        self.post("get-calendar-events", {"startDate": "2026-03-01", "endDate": "2026-03-07"})
        self.assertEqual(self.google.list_events.call_args[0][1], "primary")


class SyncJobTests(GoogleCalendarTestCase):
    def test_request_sync_queues_job(self):
        self.connect()
        response = self.post("google-request-sync")
        self.assertEqual(response.status_code, 202)
        job = response.json()
        self.assertEqual(job["status"], JobStatus.WAITING.name)
        self.assertEqual(self.queue.depth(), 1)

        status = self.post("google-sync-job-status", {"job_id": job["job_id"]}).json()
        self.assertEqual(status["job_id"], job["job_id"])

        other = self.post("google-sync-job-status", {"job_id": job["job_id"]}, user_id="user-2")
        self.assertEqual(other.status_code, 404)

    def test_request_sync_reuses_open_job(self):
        self.connect()
        first = self.post("google-request-sync").json()
        second = self.post("google-request-sync").json()
        self.assertEqual(second["job_id"], first["job_id"])
        self.assertEqual(self.queue.depth(), 1)

        self.db.update_job_progress(first["job_id"], status=JobStatus.SUCCESS)
        third = self.post("google-request-sync").json()
        self.assertNotEqual(third["job_id"], first["job_id"])
        self.assertEqual(self.queue.depth(), 2)

    def test_request_sync_requires_connection(self):
        response = self.post("google-request-sync")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.queue.depth(), 0)


class GoogleCalendarClientTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = GoogleCalendarClient("cid", "secret", "https://api.test/cb", session=self.session)

    def _response(self, status=200, payload=None):
        response = MagicMock()
        response.ok = status < 400
        response.status_code = status
        response.content = b"{}" if payload is not None else b""
        response.json.return_value = payload
        return response

    def test_authorization_url(self):
        query = _query(self.client.authorization_url("state-1"))
        self.assertEqual(query["state"], "state-1")
        self.assertEqual(query["access_type"], "offline")
        self.assertIn("calendar.events", query["scope"])

    def test_error_responses_raise(self):
        self.session.request.return_value = self._response(
            404, {"error": {"code": 404, "message": "Not Found"}}
        )
        with self.assertRaises(GoogleApiError) as ctx:
            self.client.update_event("token", "cal-1", "evt-1", {})
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.message, "Not Found")

    def test_transport_errors_raise(self):
        self.session.request.side_effect = requests.Timeout("read timed out")
        with self.assertRaises(GoogleApiError) as ctx:
            self.client.list_events("token", "cal-1", {})
        self.assertEqual(ctx.exception.status_code, 503)
        self.assertIn("read timed out", ctx.exception.message)

    def test_invalid_json_raises(self):
        response = self._response(200, {})
        response.json.side_effect = ValueError("bad json")
        self.session.request.return_value = response
        with self.assertRaises(GoogleApiError) as ctx:
            self.client.get_user_info("token")
        self.assertEqual(ctx.exception.status_code, 502)

    def test_delete_returns_nothing(self):
        self.session.request.return_value = self._response(204)
        self.assertIsNone(self.client.delete_event("token", "a@group.calendar.google.com", "evt"))
        url = self.session.request.call_args[0][1]
        self.assertIn("a%40group.calendar.google.com", url)
        self.assertEqual(
            self.session.request.call_args[1]["headers"], {"Authorization": "Bearer token"}
        )

    def test_iter_event_pages_follows_tokens(self):
        self.session.request.side_effect = [
            self._response(200, {"items": [1], "nextPageToken": "p2"}),
            self._response(200, {"items": [2], "nextSyncToken": "s"}),
        ]
        pages = list(self.client.iter_event_pages("token", "cal-1", {"maxResults": 1}))
        self.assertEqual(len(pages), 2)
        self.assertEqual(self.session.request.call_args[1]["params"]["pageToken"], "p2")

    def test_configured(self):
        self.assertTrue(self.client.configured)
        self.assertFalse(GoogleCalendarClient("", "", "").configured)


if __name__ == "__main__":
    unittest.main()
