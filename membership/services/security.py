from __future__ import annotations

import secrets

from passlib.context import CryptContext

# pbkdf2_sha256 is implemented inside passlib itself (no native backend needed).
_pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")

MIN_PASSWORD_LENGTH = 8


def hash_password(raw: str) -> str:
    return _pwd_context.hash(raw)


def verify_password(raw: str, hashed: str) -> bool:
    if not raw or not hashed:
        return False
    try:
        return _pwd_context.verify(raw, hashed)
    except ValueError:
        # Malformed/unknown hash in the row: treat as a failed match.
        return False


def generate_temporary_password() -> str:
    """Issued when an admin creates an account; shown once in the response."""
    return secrets.token_urlsafe(12)
