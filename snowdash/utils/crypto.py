"""
Crypto utilities — Fernet symmetric encryption.

`encrypt_secret` / `decrypt_secret` protect the ServiceNow credential
(OAuth access token, refresh token or Basic-Auth pair) that travels inside
the signed session token. The JWT signature prevents tampering; Fernet keeps
the credential unreadable to anyone holding the cookie.

The key comes from the ENCRYPTION_KEY config value. When it is not set the
key is derived from SECRET_KEY, so a single stable SECRET_KEY is enough for
a working deployment.

  ENCRYPTION_KEY must be a 32-byte URL-safe base64 key generated via:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
"""

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken  # noqa: F401  (re-exported)
from flask import current_app


def _derive_key(secret: str) -> bytes:
    digest = hashlib.sha256(secret.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest)


def _get_fernet() -> Fernet:
    """Return a Fernet instance keyed from app config.

    Raises RuntimeError if neither ENCRYPTION_KEY nor SECRET_KEY is set.
    """
    raw_key = current_app.config.get("ENCRYPTION_KEY")
    if raw_key:
        return Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)
    secret = current_app.config.get("SECRET_KEY")
    if not secret:
        raise RuntimeError("Neither ENCRYPTION_KEY nor SECRET_KEY is configured")
    return Fernet(_derive_key(secret))


def encrypt_secret(plaintext: str) -> str:
    """Encrypt a plaintext secret and return URL-safe base64 ciphertext."""
    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a Fernet-encrypted ciphertext back to plaintext.

    Raises:
        cryptography.fernet.InvalidToken: If ciphertext is tampered or
            encrypted with a different key.
    """
    return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
