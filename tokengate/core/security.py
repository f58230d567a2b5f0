"""Security helpers (password hashing, action token generation)."""

from __future__ import annotations

import hashlib
import secrets

from argon2 import PasswordHasher, exceptions as argon_exc

_ph = PasswordHasher()
_PREFIX = "argon2$"


def hash_password(password: str) -> str:
    """Create a modern Argon2 hash with a prefix for detection."""
    hashed = _ph.hash(password)
    return f"{_PREFIX}{hashed}"


def verify_password(password: str, stored_hash: str | None) -> bool:
    stored = stored_hash or ""
    if not stored.startswith(_PREFIX):
        return False
    hashed = stored[len(_PREFIX) :]
    try:
        return _ph.verify(hashed, password)
    except (argon_exc.VerifyMismatchError, argon_exc.VerificationError, argon_exc.InvalidHashError):
        return False


def new_token_value(nbytes: int) -> str:
    """Random URL-safe token carrying ``nbytes`` bytes of entropy."""
    return secrets.token_urlsafe(nbytes)


def token_digest(value: str) -> str:
    """SHA-256 of the raw token; only the digest is persisted."""
    return hashlib.sha256(value.encode("utf-8")).hexdigest()
