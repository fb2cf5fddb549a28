"""
Auth Service — turns ServiceNow credentials into a dashboard session.

Two sign-in paths:
  - OAuth client configured: password grant (or the authorization-code
    redirect flow) yields a bearer token.
  - Otherwise: Basic auth, verified by looking the user up in sys_user.
"""

import logging
from dataclasses import dataclass

from flask import current_app

from snowdash.core.exceptions import ServiceNowError
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.integrations.servicenow_gateway import Credential, USER_LOOKUP_FIELDS
from snowdash.services import session_service

logger = logging.getLogger(__name__)


@dataclass
class LoginResult:
    token: str
    user: dict
    auth_type: str
    expires_in: int


def _user_summary(row: dict, username: str) -> dict:
    name = row.get("user_name") or username
    return {
        "sys_id": row.get("sys_id") or "",
        "user_name": name,
        "email": row.get("email") or f"{name}@servicenow.com",
        "first_name": row.get("first_name") or "",
        "last_name": row.get("last_name") or "",
    }


def _lookup_user(credential: Credential, username: str | None) -> dict:
    """Best-effort sys_user lookup for an OAuth credential."""
    gateway = gw_module.servicenow_gateway
    try:
        if username:
            rows = gateway.get_records(
                credential, "sys_user",
                query=f"user_name={username}", fields=USER_LOOKUP_FIELDS, limit=1,
            )
            if rows:
                return rows[0]
        return gateway.get_user_profile(credential)
    except ServiceNowError as exc:
        logger.warning("User lookup after OAuth sign-in failed status=%s", exc.status_code)
        return {}


def _finish(user: dict, credential: Credential, refresh_token=None, expires_in=None) -> LoginResult:
    token = session_service.issue_session(
        user, credential, refresh_token=refresh_token, expires_in=expires_in,
    )
    lifetime = current_app.config.get("SESSION_EXPIRES", session_service.DEFAULT_SESSION_EXPIRES)
    if expires_in:
        lifetime = min(lifetime, int(expires_in))
    logger.info("Session issued for user=%s auth=%s", user.get("user_name"),
                "oauth" if credential.is_oauth else "basic")
    return LoginResult(
        token=token,
        user=user,
        auth_type="oauth" if credential.is_oauth else "basic",
        expires_in=lifetime,
    )


def login_with_password(username: str, password: str) -> LoginResult | None:
    """Authenticate against ServiceNow. Returns None when credentials are rejected."""
    if not username or not password:
        return None
    gateway = gw_module.servicenow_gateway

    if gateway.oauth_configured:
        try:
            grant = gateway.password_grant(username, password)
        except ServiceNowError as exc:
            if exc.status_code in (400, 401, 403):
                logger.info("OAuth password grant rejected for user=%s", username)
                return None
            raise
        credential = Credential.bearer(grant["access_token"])
        user = _user_summary(_lookup_user(credential, username), username)
        return _finish(user, credential, grant.get("refresh_token"), grant.get("expires_in"))

    row = gateway.verify_basic_credentials(username, password)
    if not row:
        logger.info("Basic auth rejected for user=%s", username)
        return None
    return _finish(_user_summary(row, username), Credential.basic(username, password))


def complete_oauth(code: str) -> LoginResult:
    """Exchange an authorization code for a session."""
    grant = gw_module.servicenow_gateway.exchange_code(code)
    credential = Credential.bearer(grant["access_token"])
    row = _lookup_user(credential, None)
    user = _user_summary(row, row.get("user_name") or "")
    return _finish(user, credential, grant.get("refresh_token"), grant.get("expires_in"))


def refresh(info: session_service.SessionInfo) -> LoginResult | None:
    """Run the OAuth refresh grant. Returns None for Basic sessions or no refresh token."""
    if not info.credential.is_oauth or not info.refresh_token:
        return None
    grant = gw_module.servicenow_gateway.refresh_token(info.refresh_token)
    user = {"sys_id": info.user_id, "user_name": info.username, "email": info.email}
    return _finish(
        user,
        Credential.bearer(grant["access_token"]),
        grant.get("refresh_token") or info.refresh_token,
        grant.get("expires_in"),
    )
