"""
Shared fixtures for the API tests: an app wired to in-memory backends and
signed bearer tokens.
"""

import unittest
from unittest import mock

import jwt
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import Settings, get_settings
from backend.db import DbClient
from backend.dependencies import (
    get_db_client,
    get_google_client,
    get_queue_client,
    get_storage_client,
)
from backend.queue import InMemoryJobQueue
from backend.storage import InMemoryStorageClient

TEST_SECRET = "test-jwt-secret"
PREFIX = "/functions/v1"


def make_settings(**overrides) -> Settings:
    values = dict(
        use_in_memory_backends=True,
        jwt_secret=TEST_SECRET,
        token_encryption_key="test-encryption-key",
        google_client_id="cid",
        google_client_secret="csecret",
        google_redirect_uri="https://api.test/functions/v1/google-oauth-callback",
        gemini_api_key="gemini-key",
        ghl_webhook_secret="hook-secret",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def token_for(user_id: str, secret: str = TEST_SECRET, email: str | None = None) -> str:
    claims = {"sub": user_id}
    if email:
        claims["email"] = email
    return jwt.encode(claims, secret, algorithm="HS256")


class ApiTestCase(unittest.TestCase):
    user_id = "user-1"

    def setUp(self):
        self.settings = make_settings()
        patcher = mock.patch("backend.auth.get_settings", return_value=self.settings)
        patcher.start()
        self.addCleanup(patcher.stop)

        self.db = DbClient.in_memory()
        self.storage = InMemoryStorageClient()
        self.queue = InMemoryJobQueue()
        self.google = mock.MagicMock()
        self.google.configured = True

        self.app = create_app()
        self.app.dependency_overrides[get_settings] = lambda: self.settings
        self.app.dependency_overrides[get_db_client] = lambda: self.db
        self.app.dependency_overrides[get_storage_client] = lambda: self.storage
        self.app.dependency_overrides[get_queue_client] = lambda: self.queue
        self.app.dependency_overrides[get_google_client] = lambda: self.google
        self.client = TestClient(self.app)

    def headers(self, user_id=None, email=None):
        token = token_for(user_id or self.user_id, email=email)
        return {"Authorization": f"Bearer {token}"}

    def post(self, operation, json=None, user_id=None, email=None, **kwargs):
        return self.client.post(
            f"{PREFIX}/{operation}",
            json=json if json is not None else {},
            headers=self.headers(user_id, email),
            **kwargs,
        )
