"""Symmetric encryption for platform tokens captured from release hooks.

Uses Fernet (AES-128-CBC + HMAC-SHA256) with a key derived from
`settings.secret_key` via SHA-256 → base64-urlsafe, so the API process that
stores a token and the worker process that reads it agree on the key as long
as SECRET_KEY is the same in both.
"""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet

from scangate.core.config import get_settings


def _get_fernet(secret_key: str | None = None) -> Fernet:
    raw = (secret_key or get_settings().secret_key).encode()
    digest = hashlib.sha256(raw).digest()
    return Fernet(base64.urlsafe_b64encode(digest))


def encrypt(value: str, secret_key: str | None = None) -> str:
    """Encrypt *value* and return the ciphertext as a UTF-8 string."""
    return _get_fernet(secret_key).encrypt(value.encode()).decode()


def decrypt(ciphertext: str, secret_key: str | None = None) -> str:
    """Decrypt *ciphertext* and return the original plaintext string."""
    return _get_fernet(secret_key).decrypt(ciphertext.encode()).decode()
