"""
ServiceNow Dashboard
Session authentication for API routes.

Provides:
    - Session token lookup from the httpOnly session cookie or an
      ``Authorization: Bearer <token>`` header
    - ``require_session`` decorator: rejects with 401 before any upstream call
    - Cookie helpers used by the auth blueprint

Security model:
    - Every /api/* endpoint except /api/auth/* and /api/health/* requires a
      valid session
    - The session carries the Fernet-encrypted ServiceNow credential; handlers
      read the decrypted credential from ``g.sn_credential``
"""

import functools
import logging
from typing import Optional

import jwt
from flask import current_app, g, jsonify, request

from snowdash.services.session_service import decode_session

logger = logging.getLogger(__name__)


def _cookie_name() -> str:
    return current_app.config.get("SESSION_COOKIE_NAME_SN", "snowdash_session")


def _get_token_from_request() -> Optional[str]:
    """Extract the session token from the cookie or the Authorization header."""
    token = request.cookies.get(_cookie_name(), "").strip()
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[7:].strip() or None
    return None


def load_session():
    """Decode the current request's session, or return None."""
    token = _get_token_from_request()
    if not token:
        return None
    try:
        return decode_session(token)
    except jwt.ExpiredSignatureError:
        logger.info("Expired session token on %s", request.path)
    except jwt.InvalidTokenError:
        logger.warning("Invalid session token on %s", request.path)
    return None


# ── Authentication decorator ─────────────────────────────────────────────────

def require_session(f):
    """
    Decorator: require a valid dashboard session for the endpoint.

    Sets g.sn_session (SessionInfo) and g.sn_credential (Credential).
    """
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        info = load_session()
        if info is None:
            return jsonify({"error": "Unauthorized"}), 401
        g.sn_session = info
        g.sn_credential = info.credential
        g.current_username = info.username
        return f(*args, **kwargs)

    return decorated


# ── Cookie helpers ───────────────────────────────────────────────────────────

def set_session_cookie(response, token: str, max_age: int):
    response.set_cookie(
        _cookie_name(),
        token,
        max_age=max_age,
        httponly=True,
        secure=bool(current_app.config.get("SESSION_COOKIE_SECURE")),
        samesite="Lax",
    )
    return response


def clear_session_cookie(response):
    response.delete_cookie(_cookie_name())
    return response
