"""
Thin HTTP client for Google OAuth and the Google Calendar v3 API.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional
from urllib.parse import quote, urlencode

import requests

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds
# Reported for timeouts and connection failures.
TRANSPORT_ERROR_STATUS = 503

AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
TOKEN_URL = "https://oauth2.googleapis.com/token"
USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
CALENDAR_API = "https://www.googleapis.com/calendar/v3"

SCOPES = (
    "https://www.googleapis.com/auth/calendar.events",
    "https://www.googleapis.com/auth/calendar.readonly",
    "https://www.googleapis.com/auth/userinfo.email",
)


class GoogleApiError(Exception):
    """A non-2xx answer from Google, carrying its status and message."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _error_message(response: requests.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    error = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or "Unknown error"
    return payload.get("error_description") or error or "Unknown error"


@dataclass
class GoogleCalendarClient:
    client_id: str
    client_secret: str
    redirect_uri: str
    session: requests.Session = field(default_factory=requests.Session)

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def _request(
        self,
        method: str,
        url: str,
        *,
        access_token: Optional[str] = None,
        **kwargs: Any,
    ) -> dict:
        headers = kwargs.pop("headers", {})
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            response = self.session.request(
                method, url, headers=headers, timeout=REQUEST_TIMEOUT, **kwargs
            )
        except requests.RequestException as e:
            logger.warning("Google request %s %s failed: %s", method, url, e)
            raise GoogleApiError(TRANSPORT_ERROR_STATUS, f"Could not reach Google: {e}") from e
        if not response.ok:
            raise GoogleApiError(response.status_code, _error_message(response))
        if response.status_code == 204 or not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise GoogleApiError(502, "Invalid response from Google") from e

    # OAuth

    def authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(SCOPES),
            "access_type": "offline",
            "prompt": "consent",
            "state": state,
        }
        return f"{AUTH_URL}?{urlencode(params)}"

    def exchange_code(self, code: str) -> dict:
        return self._request(
            "POST",
            TOKEN_URL,
            data={
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            },
        )

    def refresh_access_token(self, refresh_token: str) -> dict:
        return self._request(
            "POST",
            TOKEN_URL,
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "refresh_token": refresh_token,
                "grant_type": "refresh_token",
            },
        )

    def get_user_info(self, access_token: str) -> dict:
        return self._request("GET", USERINFO_URL, access_token=access_token)

    # Calendar

    def list_calendars(self, access_token: str) -> list[dict]:
        payload = self._request(
            "GET", f"{CALENDAR_API}/users/me/calendarList", access_token=access_token
        )
        return payload.get("items", [])

    def _events_url(self, calendar_id: str, event_id: Optional[str] = None) -> str:
        url = f"{CALENDAR_API}/calendars/{quote(calendar_id, safe='')}/events"
        if event_id:
            url = f"{url}/{quote(event_id, safe='')}"
        return url

    def insert_event(self, access_token: str, calendar_id: str, event: dict) -> dict:
        return self._request(
            "POST", self._events_url(calendar_id), access_token=access_token, json=event
        )

    def update_event(
        self, access_token: str, calendar_id: str, event_id: str, event: dict
    ) -> dict:
        return self._request(
            "PUT",
            self._events_url(calendar_id, event_id),
            access_token=access_token,
            json=event,
        )

    def delete_event(self, access_token: str, calendar_id: str, event_id: str) -> None:
        self._request(
            "DELETE", self._events_url(calendar_id, event_id), access_token=access_token
        )

    def list_events(self, access_token: str, calendar_id: str, params: dict) -> dict:
        """Fetch one page of events."""
        return self._request(
            "GET", self._events_url(calendar_id), access_token=access_token, params=params
        )

    def iter_event_pages(
        self, access_token: str, calendar_id: str, params: dict
    ) -> Iterator[dict]:
        """Yield every page of an events listing, following nextPageToken."""
        params = dict(params)
        while True:
            page = self.list_events(access_token, calendar_id, params)
            yield page
            page_token = page.get("nextPageToken")
            if not page_token:
                return
            params["pageToken"] = page_token
