"""
Auth API tests.

Covers:
  - Basic and OAuth password sign-in
  - Session lookup, logout
  - OAuth authorization-code flow (state check)
  - Refresh grant
"""

from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest

from snowdash.core.exceptions import ServiceNowError
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.integrations.servicenow_gateway import Credential
from snowdash.services.session_service import decode_session, issue_session

GATEWAY = gw_module.servicenow_gateway

USER_ROW = {
    "sys_id": "6816f79cc0a8016401c5a33be04be441",
    "user_name": "admin",
    "email": "admin@example.com",
    "first_name": "System",
    "last_name": "Administrator",
}
OAUTH = {
    "SERVICENOW_CLIENT_ID": "cid",
    "SERVICENOW_CLIENT_SECRET": "csecret",
    "SERVICENOW_OAUTH_REDIRECT_URI": "https://dash.example.com/api/auth/oauth/callback",
}
GRANT = {"access_token": "at-1", "refresh_token": "rt-1", "expires_in": 1800}


def _session_cookie(app, res):
    name = app.config["SESSION_COOKIE_NAME_SN"]
    return [c for c in res.headers.getlist("Set-Cookie") if c.startswith(f"{name}=")]


@pytest.fixture()
def oauth_config(app):
    with patch.dict(app.config, OAUTH):
        yield


class TestBasicLogin:
    def test_success_sets_http_only_cookie(self, app, client):
        with patch.object(GATEWAY, "verify_basic_credentials", return_value=USER_ROW) as verify:
            res = client.post("/api/auth/login", json={"username": " admin ", "password": "pw"})

        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["authType"] == "basic"
        assert body["user"]["user_name"] == "admin"
        assert body["expiresIn"] == app.config["SESSION_EXPIRES"]
        assert body["instanceUrl"] == "https://test.service-now.com"
        verify.assert_called_once_with("admin", "pw")

        cookies = _session_cookie(app, res)
        assert len(cookies) == 1
        assert "HttpOnly" in cookies[0]
        assert "pw" not in res.get_data(as_text=True)

    def test_session_endpoint_after_login(self, client):
        with patch.object(GATEWAY, "verify_basic_credentials", return_value=USER_ROW):
            client.post("/api/auth/login", json={"username": "admin", "password": "pw"})
        res = client.get("/api/auth/session")
        assert res.status_code == 200
        body = res.get_json()
        assert body["authenticated"] is True
        assert body["user"] == {
            "sys_id": USER_ROW["sys_id"], "user_name": "admin", "email": "admin@example.com",
        }
        assert body["authType"] == "basic"
        assert body["expiresAt"].endswith("Z")

    def test_rejected_credentials(self, app, client):
        with patch.object(GATEWAY, "verify_basic_credentials", return_value=None):
            res = client.post("/api/auth/login", json={"username": "admin", "password": "bad"})
        assert res.status_code == 401
        assert res.get_json()["error"] == "Invalid ServiceNow credentials"
        assert _session_cookie(app, res) == []

    @pytest.mark.parametrize("body", [{}, {"username": "admin"}, {"password": "pw"}, {"username": " ", "password": "pw"}])
    def test_missing_fields(self, client, body):
        with patch.object(GATEWAY, "verify_basic_credentials") as verify:
            res = client.post("/api/auth/login", json=body)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Username and password are required"
        verify.assert_not_called()

    @pytest.mark.parametrize("body", [["admin", "pw"], "admin", 1])
    def test_non_object_body(self, client, body):
        with patch.object(GATEWAY, "verify_basic_credentials") as verify:
            res = client.post("/api/auth/login", json=body)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Request body must be a JSON object"
        verify.assert_not_called()

    def test_upstream_failure_is_502(self, client):
        with patch.object(GATEWAY, "verify_basic_credentials",
                          side_effect=ServiceNowError("Connection refused", None)):
            res = client.post("/api/auth/login", json={"username": "admin", "password": "pw"})
        assert res.status_code == 502
        assert res.get_json()["details"] == "Connection refused"

    def test_session_without_cookie(self, client):
        assert client.get("/api/auth/session").status_code == 401


class TestOAuthPasswordLogin:
    def test_password_grant_issues_oauth_session(self, oauth_config, client):
        with patch.object(GATEWAY, "password_grant", return_value=GRANT) as grant, \
                patch.object(GATEWAY, "get_records", return_value=[USER_ROW]):
            res = client.post("/api/auth/login", json={"username": "admin", "password": "pw"})
        assert res.status_code == 200
        body = res.get_json()
        assert body["authType"] == "oauth"
        assert body["expiresIn"] == 1800
        assert body["user"]["sys_id"] == USER_ROW["sys_id"]
        grant.assert_called_once_with("admin", "pw")

    def test_rejected_grant_is_401(self, oauth_config, client):
        with patch.object(GATEWAY, "password_grant", side_effect=ServiceNowError("invalid_grant", 401)):
            res = client.post("/api/auth/login", json={"username": "admin", "password": "bad"})
        assert res.status_code == 401

    def test_failed_user_lookup_still_signs_in(self, oauth_config, client):
        with patch.object(GATEWAY, "password_grant", return_value=GRANT), \
                patch.object(GATEWAY, "get_records", side_effect=ServiceNowError("ACL", 403)):
            res = client.post("/api/auth/login", json={"username": "jdoe", "password": "pw"})
        assert res.status_code == 200
        assert res.get_json()["user"]["user_name"] == "jdoe"
        assert res.get_json()["user"]["email"] == "jdoe@servicenow.com"


class TestOAuthCodeFlow:
    def test_authorize_requires_configuration(self, client):
        res = client.get("/api/auth/oauth/authorize")
        assert res.status_code == 400
        assert res.get_json()["error"] == "OAuth is not configured"

    def test_round_trip(self, oauth_config, client):
        res = client.get("/api/auth/oauth/authorize")
        assert res.status_code == 302
        location = urlparse(res.headers["Location"])
        assert location.netloc == "test.service-now.com"
        assert location.path == "/oauth_auth.do"
        state = parse_qs(location.query)["state"][0]

        with patch.object(GATEWAY, "exchange_code", return_value=GRANT) as exchange, \
                patch.object(GATEWAY, "get_user_profile", return_value=USER_ROW):
            res = client.get(f"/api/auth/oauth/callback?code=abc&state={state}")

        assert res.status_code == 200
        assert res.get_json()["authType"] == "oauth"
        exchange.assert_called_once_with("abc")

    def test_state_mismatch(self, oauth_config, client):
        client.get("/api/auth/oauth/authorize")
        with patch.object(GATEWAY, "exchange_code") as exchange:
            res = client.get("/api/auth/oauth/callback?code=abc&state=forged")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid OAuth state"
        exchange.assert_not_called()

    def test_state_is_single_use(self, oauth_config, client):
        res = client.get("/api/auth/oauth/authorize")
        state = parse_qs(urlparse(res.headers["Location"]).query)["state"][0]
        with patch.object(GATEWAY, "exchange_code", side_effect=ServiceNowError("bad code", 401)):
            first = client.get(f"/api/auth/oauth/callback?code=abc&state={state}")
            second = client.get(f"/api/auth/oauth/callback?code=abc&state={state}")
        assert first.status_code == 401
        assert second.status_code == 400

    def test_error_from_servicenow(self, client):
        res = client.get("/api/auth/oauth/callback?error=access_denied&error_description=User+denied")
        assert res.status_code == 401
        assert res.get_json()["error"] == "User denied"


class TestRefreshAndLogout:
    def test_basic_session_cannot_refresh(self, auth_client):
        with patch.object(GATEWAY, "refresh_token") as refresh:
            res = auth_client.post("/api/auth/refresh")
        assert res.status_code == 400
        assert res.get_json()["error"] == "Session cannot be refreshed"
        refresh.assert_not_called()

    def _oauth_client(self, app):
        token = issue_session(USER_ROW, Credential.bearer("at-0"), refresh_token="rt-0")
        c = app.test_client()
        c.set_cookie(app.config["SESSION_COOKIE_NAME_SN"], token)
        return c

    def test_oauth_refresh_issues_new_session(self, app, oauth_config):
        c = self._oauth_client(app)
        with patch.object(GATEWAY, "refresh_token", return_value={"access_token": "at-2"}) as refresh:
            res = c.post("/api/auth/refresh")
        assert res.status_code == 200
        refresh.assert_called_once_with("rt-0")

        cookie = _session_cookie(app, res)[0]
        token = cookie.split(";", 1)[0].split("=", 1)[1]
        info = decode_session(token)
        assert info.credential.token == "at-2"
        assert info.refresh_token == "rt-0"
        assert info.user_id == USER_ROW["sys_id"]

    def test_rejected_refresh_clears_cookie(self, app, oauth_config):
        c = self._oauth_client(app)
        with patch.object(GATEWAY, "refresh_token", side_effect=ServiceNowError("expired", 401)):
            res = c.post("/api/auth/refresh")
        assert res.status_code == 401
        cookie = _session_cookie(app, res)[0]
        assert "Expires=Thu, 01 Jan 1970" in cookie

    def test_logout(self, app, auth_client):
        res = auth_client.post("/api/auth/logout")
        assert res.status_code == 200
        assert res.get_json() == {"success": True, "message": "Logged out"}
        assert "Expires=Thu, 01 Jan 1970" in _session_cookie(app, res)[0]
        assert auth_client.get("/api/auth/session").status_code == 401
