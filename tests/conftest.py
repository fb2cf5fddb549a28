"""
Shared pytest fixtures for the ServiceNow Dashboard test suite.

Provides:
    - app: Flask application (session-scoped, TestingConfig)
    - app_context: pushed around every test (autouse)
    - client: Flask test client (no session)
    - session_token / auth_client: a client carrying a signed Basic-auth session
    - sn_response: factory for requests.Response objects
    - fake_http: MagicMock requests.Session injected into the gateway singleton

No test ever reaches a real ServiceNow instance: API tests either patch
gateway methods with patch.object or run the real gateway against
``fake_http``.
"""

import json

import pytest
import requests
from unittest.mock import MagicMock

from snowdash import create_app
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.integrations.servicenow_gateway import Credential
from snowdash.services.session_service import issue_session

TEST_USER = {
    "sys_id": "6816f79cc0a8016401c5a33be04be441",
    "user_name": "admin",
    "email": "admin@example.com",
}


# ── App fixtures ─────────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def app_context(app):
    """Per-test: push an app context so services can read current_app.config."""
    with app.app_context():
        yield


@pytest.fixture()
def client(app):
    """Flask test client without a session."""
    return app.test_client()


# ── Session fixtures ─────────────────────────────────────────────────────


@pytest.fixture()
def credential():
    return Credential.basic("admin", "secret")


@pytest.fixture()
def session_token(credential):
    """A signed session token for TEST_USER holding a Basic credential."""
    return issue_session(TEST_USER, credential)


@pytest.fixture()
def auth_client(app, session_token):
    """Test client with the session cookie set."""
    c = app.test_client()
    c.set_cookie(app.config["SESSION_COOKIE_NAME_SN"], session_token)
    return c


# ── HTTP fakes ───────────────────────────────────────────────────────────


@pytest.fixture()
def sn_response():
    """Factory: sn_response(status, body=None, headers=None, text=None) -> Response."""

    def _make(status=200, body=None, headers=None, text=None):
        resp = requests.Response()
        resp.status_code = status
        resp.url = "https://test.service-now.com/api/now"
        if body is not None:
            resp._content = json.dumps(body).encode("utf-8")
            resp.headers["Content-Type"] = "application/json"
        elif text is not None:
            resp._content = text.encode("utf-8")
        else:
            resp._content = b""
        resp.headers.update(headers or {})
        return resp

    return _make


@pytest.fixture()
def fake_http(monkeypatch, sn_response):
    """Inject a MagicMock requests.Session into the gateway singleton.

    Defaults to an empty Table API result; tests override
    ``fake_http.request.return_value`` or ``side_effect``.
    """
    session = MagicMock(spec=requests.Session)
    session.request.return_value = sn_response(200, {"result": []})
    monkeypatch.setattr(gw_module.servicenow_gateway, "_session", session)
    return session
