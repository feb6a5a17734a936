"""Console credentials: bcrypt password hashes and bearer tokens naming the acting user."""

from datetime import UTC, datetime, timedelta
from typing import Any

import bcrypt
import jwt

from app.core.config import settings

# Bcrypt cost factor. Tests lower it; production keeps 12.
BCRYPT_ROUNDS = 12

# Account field limits shared by the request schemas and the bootstrap script.
USERNAME_MIN_LEN = 2
USERNAME_MAX_LEN = 30
PASSWORD_MIN_LEN = 5
# bcrypt only reads the first 72 bytes.
PASSWORD_MAX_LEN = 72


def _password_bytes(plain_password: str) -> bytes:
    return plain_password.encode("utf-8")[:PASSWORD_MAX_LEN]


def hash_password(plain_password: str) -> str:
    """Salted bcrypt hash of plain_password; the plaintext is never stored."""
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    return bcrypt.hashpw(_password_bytes(plain_password), salt).decode("utf-8")


def verify_password(plain_password: str, hashed: str) -> bool:
    """True if plain_password matches hashed. A malformed stored hash never matches."""
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def create_access_token(sub: str | int, username: str) -> str:
    """Bearer token for user id sub, expiring after JWT_EXPIRE_MINUTES."""
    issued_at = datetime.now(UTC)
    payload: dict[str, Any] = {
        "sub": str(sub),
        "username": username,
        "iat": issued_at,
        "exp": issued_at + timedelta(minutes=settings.JWT_EXPIRE_MINUTES),
    }
    return jwt.encode(
        payload,
        settings.JWT_SECRET.get_secret_value(),
        algorithm=settings.JWT_ALGORITHM,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Verified claims of token. Raises jwt.PyJWTError if it is forged, malformed or expired."""
    return jwt.decode(
        token,
        settings.JWT_SECRET.get_secret_value(),
        algorithms=[settings.JWT_ALGORITHM],
        options={"require": ["sub", "exp"]},
    )


def token_user_id(token: str) -> int:
    """
    User id carried in token's sub claim.

    Raises jwt.InvalidTokenError when the claim is not a positive integer,
    so callers handle every bad token through one exception family.
    """
    sub = decode_access_token(token)["sub"]
    try:
        user_id = int(sub)
    except (TypeError, ValueError) as e:
        raise jwt.InvalidTokenError("sub is not a user id") from e
    if user_id < 1:
        raise jwt.InvalidTokenError("sub is not a user id")
    return user_id
