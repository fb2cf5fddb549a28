"""
Session Service — signed session token carrying the ServiceNow credential.

Session token:  8 hours (configurable via SESSION_EXPIRES)
Algorithm:      HS256

Token payload:
{
    "sub": <sys_user sys_id>,
    "username": <user_name>,
    "email": <email>,
    "auth": "oauth" | "basic",
    "cred": <Fernet ciphertext of the access token or Basic pair>,
    "rt": <Fernet ciphertext of the OAuth refresh token>,   (optional)
    "type": "session",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

The browser only ever holds this token (httpOnly cookie). Credentials are
never exposed to client code and never logged.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt
from cryptography.fernet import InvalidToken
from flask import current_app

from snowdash.integrations.servicenow_gateway import Credential
from snowdash.utils.crypto import decrypt_secret, encrypt_secret


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_SESSION_EXPIRES = 8 * 3600
ALGORITHM = "HS256"
TOKEN_TYPE = "session"


def _get_secret():
    """Get the signing key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_session_expires():
    return current_app.config.get("SESSION_EXPIRES", DEFAULT_SESSION_EXPIRES)


@dataclass
class SessionInfo:
    """Decoded session: who the user is and how to call ServiceNow as them."""

    user_id: str
    username: str
    email: str
    credential: Credential
    refresh_token: str | None
    expires_at: datetime

    @property
    def auth_type(self) -> str:
        return "oauth" if self.credential.is_oauth else "basic"


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def issue_session(
    user: dict,
    credential: Credential,
    refresh_token: str | None = None,
    expires_in: int | None = None,
) -> str:
    """Sign a session token for ``user`` holding the encrypted credential.

    ``expires_in`` caps the lifetime (e.g. the OAuth access token lifetime);
    the configured SESSION_EXPIRES is the upper bound.
    """
    now = datetime.now(timezone.utc)
    lifetime = _get_session_expires()
    if expires_in:
        lifetime = min(lifetime, int(expires_in))
    payload = {
        "sub": user.get("sys_id") or user.get("user_name") or "",
        "username": user.get("user_name") or "",
        "email": user.get("email") or "",
        "auth": "oauth" if credential.is_oauth else "basic",
        "cred": encrypt_secret(credential.token),
        "type": TOKEN_TYPE,
        "iat": now,
        "exp": now + timedelta(seconds=lifetime),
        "jti": str(uuid.uuid4()),
    }
    if refresh_token:
        payload["rt"] = encrypt_secret(refresh_token)
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_session(token: str) -> SessionInfo:
    """
    Decode and verify a session token.

    Raises jwt.InvalidTokenError (or a subclass such as ExpiredSignatureError)
    on any failure, including a credential that no longer decrypts.
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])
    if payload.get("type") != TOKEN_TYPE:
        raise jwt.InvalidTokenError(f"Expected {TOKEN_TYPE} token, got {payload.get('type')}")

    try:
        secret = decrypt_secret(payload["cred"])
        refresh = decrypt_secret(payload["rt"]) if payload.get("rt") else None
    except (KeyError, InvalidToken) as exc:
        raise jwt.InvalidTokenError("Session credential could not be decrypted") from exc

    return SessionInfo(
        user_id=str(payload.get("sub", "")),
        username=payload.get("username", ""),
        email=payload.get("email", ""),
        credential=Credential(token=secret, is_oauth=payload.get("auth") == "oauth"),
        refresh_token=refresh,
        expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
    )
