"""
Auth Blueprint — ServiceNow sign-in and dashboard session endpoints.

  POST /api/auth/login            — username + password → session cookie
  GET  /api/auth/oauth/authorize  — redirect to the instance's OAuth consent page
  GET  /api/auth/oauth/callback   — authorization code → session cookie
  POST /api/auth/refresh          — OAuth refresh grant → new session cookie
  POST /api/auth/logout           — clear the session cookie
  GET  /api/auth/session          — who am I
"""

import logging
import secrets

from flask import Blueprint, current_app, g, jsonify, redirect, request, session

from snowdash.auth import clear_session_cookie, require_session, set_session_cookie
from snowdash.blueprints import instance_url, json_object
from snowdash.core.exceptions import ServiceNowError
from snowdash.integrations import servicenow_gateway as gw_module
from snowdash.services import auth_service
from snowdash.utils.errors import E, api_error
from snowdash.utils.helpers import to_iso

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

_OAUTH_STATE_KEY = "sn_oauth_state"


def _session_response(result, status=200):
    response = jsonify({
        "success": True,
        "user": result.user,
        "authType": result.auth_type,
        "expiresIn": result.expires_in,
        "instanceUrl": instance_url(),
    })
    set_session_cookie(response, result.token, result.expires_in)
    return response, status


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Authenticate against the ServiceNow instance.

    Body: { "username": "...", "password": "..." }
    """
    data = json_object(optional=True)
    username = str(data.get("username") or "").strip()
    password = data.get("password") or ""

    if not username or not password:
        return api_error(E.VALIDATION_REQUIRED, "Username and password are required")

    try:
        result = auth_service.login_with_password(username, password)
    except ServiceNowError as exc:
        logger.warning("Login upstream failure status=%s", exc.status_code)
        return api_error(E.UPSTREAM, "ServiceNow authentication failed",
                         status=502, details={"details": exc.message})

    if result is None:
        return api_error(E.UNAUTHORIZED, "Invalid ServiceNow credentials")
    return _session_response(result)


# ═══════════════════════════════════════════════════════════════
# OAuth authorization-code flow
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/oauth/authorize", methods=["GET"])
def oauth_authorize():
    """Redirect the browser to ServiceNow's consent page."""
    gateway = gw_module.servicenow_gateway
    if not gateway.oauth_configured or not current_app.config.get("SERVICENOW_OAUTH_REDIRECT_URI"):
        return api_error(E.CONFIGURATION, "OAuth is not configured", status=400)
    state = secrets.token_urlsafe(24)
    session[_OAUTH_STATE_KEY] = state
    return redirect(gateway.build_authorize_url(state))


@auth_bp.route("/oauth/callback", methods=["GET"])
def oauth_callback():
    """ServiceNow redirects here with ?code=&state=."""
    if request.args.get("error"):
        return api_error(E.UNAUTHORIZED, request.args.get("error_description") or request.args["error"])

    expected = session.pop(_OAUTH_STATE_KEY, None)
    state = request.args.get("state", "")
    if not expected or not secrets.compare_digest(expected, state):
        return api_error(E.VALIDATION_INVALID, "Invalid OAuth state")

    code = request.args.get("code", "")
    if not code:
        return api_error(E.VALIDATION_REQUIRED, "Authorization code is required")

    try:
        result = auth_service.complete_oauth(code)
    except ServiceNowError as exc:
        logger.warning("OAuth code exchange failed status=%s", exc.status_code)
        return api_error(E.UNAUTHORIZED, "OAuth sign-in failed", details={"details": exc.message})
    return _session_response(result)


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/refresh
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/refresh", methods=["POST"])
@require_session
def refresh():
    """Swap the session's OAuth refresh token for a fresh access token."""
    try:
        result = auth_service.refresh(g.sn_session)
    except ServiceNowError as exc:
        logger.info("Refresh grant rejected user=%s status=%s", g.current_username, exc.status_code)
        response, status = api_error(E.UNAUTHORIZED, "Session refresh failed",
                                     details={"details": exc.message})
        clear_session_cookie(response)
        return response, status

    if result is None:
        return api_error(E.VALIDATION_INVALID, "Session cannot be refreshed")
    return _session_response(result)


# ═══════════════════════════════════════════════════════════════
# POST /api/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """Clear the session cookie. Always succeeds."""
    session.pop(_OAUTH_STATE_KEY, None)
    response = jsonify({"success": True, "message": "Logged out"})
    clear_session_cookie(response)
    return response, 200


# ═══════════════════════════════════════════════════════════════
# GET /api/auth/session
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/session", methods=["GET"])
@require_session
def current_session():
    """Return the signed-in ServiceNow user."""
    info = g.sn_session
    return jsonify({
        "authenticated": True,
        "user": {
            "sys_id": info.user_id,
            "user_name": info.username,
            "email": info.email,
        },
        "authType": info.auth_type,
        "expiresAt": to_iso(info.expires_at),
        "instanceUrl": instance_url(),
    }), 200
