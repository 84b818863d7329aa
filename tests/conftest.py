from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

# importing main builds a module-level app; keep it off the working directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

from healthdesk.config import Settings  # noqa: E402
from healthdesk.sso import IdentityProvider  # noqa: E402
from main import create_app  # noqa: E402

IDP_URL = "https://idp.example.test"


class FakeAnalyzer:
    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.error: Exception | None = None

    def _record(self, *call):
        self.calls.append(call)
        if self.error is not None:
            raise self.error

    def analyze_pdf(self, pdf_bytes, file_name=None):
        self._record("pdf", len(pdf_bytes), file_name)
        return "**Summary**\nAll values are within range."

    def analyze_text(self, raw_text, structured_data=None):
        self._record("text", raw_text, structured_data)
        return "## Overview\nYour `glucose` is *normal*."

    def chat(self, raw_text, prior_analysis, question):
        self._record("chat", raw_text, prior_analysis, question)
        return f"**Answer** to: {question}"


class FakeTokenEndpoint:
    """Stands in for the identity provider's token endpoint."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.body: dict | None = None
        self.claims = {
            "sub": "idp-user-1",
            "email": "Casey@Example.com",
            "name": "Casey Doe",
            "oid": "org_123",
        }

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.body is not None:
            return httpx.Response(self.status_code, json=self.body)
        id_token = jwt.encode(self.claims, "idp-signing-key", algorithm="HS256")
        return httpx.Response(self.status_code, json={"access_token": "at", "id_token": id_token})


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_url=f"sqlite:///{tmp_path / 'healthdesk-test.db'}",
        jwt_secret="test-secret",
        idp_environment_url=IDP_URL,
        idp_client_id="client-id",
        idp_client_secret="client-secret",
    )


@pytest.fixture
def token_endpoint() -> FakeTokenEndpoint:
    return FakeTokenEndpoint()


@pytest.fixture
def fake_analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def app(settings, token_endpoint, fake_analyzer):
    application = create_app(settings)
    idp = IdentityProvider(settings, transport=httpx.MockTransport(token_endpoint))
    application.state.identity_provider = idp
    application.state.session_store.identity_provider = idp
    application.state.analyzer = fake_analyzer
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def db_session(app):
    session = app.state.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def auth_headers() -> Callable[[str], dict[str, str]]:
    def _make(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture
def register(client, auth_headers):
    """Sign up a password user; returns (user_id, bearer headers)."""

    def _register(email: str, password: str = "correct-horse") -> tuple[str, dict[str, str]]:
        response = client.post(
            "/api/auth/signup",
            json={"email": email, "password": password, "fullName": email.split("@")[0]},
        )
        assert response.status_code == 201, response.text
        body = response.json()
        # tests choose explicitly between bearer and cookie auth
        client.cookies.clear()
        return body["user"]["id"], auth_headers(body["accessToken"])

    return _register
