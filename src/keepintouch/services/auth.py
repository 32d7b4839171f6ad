from __future__ import annotations

from datetime import timedelta

import bcrypt
import jwt

from keepintouch.config import Settings
from keepintouch.services.schedule import utcnow

_ALGORITHM = "HS256"


class InvalidToken(Exception):
    """Raised when an access or reset token is missing, malformed, or expired."""


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _encode(user_id: int, purpose: str, secret: str, lifetime: timedelta) -> str:
    payload = {"user_id": user_id, "purpose": purpose, "exp": utcnow() + lifetime}
    return jwt.encode(payload, secret, algorithm=_ALGORITHM)


def _decode(token: str, purpose: str, secret: str) -> int:
    try:
        payload = jwt.decode(token, secret, algorithms=[_ALGORITHM])
    except jwt.InvalidTokenError as exc:
        raise InvalidToken(str(exc)) from exc
    if payload.get("purpose") != purpose or not isinstance(payload.get("user_id"), int):
        raise InvalidToken("Token has the wrong purpose")
    return payload["user_id"]


def create_access_token(user_id: int, settings: Settings) -> str:
    return _encode(
        user_id, "access", settings.jwt_secret, timedelta(days=settings.access_token_days)
    )


def decode_access_token(token: str, settings: Settings) -> int:
    """Return the user id carried by a valid access token."""
    return _decode(token, "access", settings.jwt_secret)


def create_reset_token(user_id: int, settings: Settings) -> str:
    return _encode(
        user_id,
        "reset",
        settings.reset_token_secret,
        timedelta(minutes=settings.reset_token_minutes),
    )


def decode_reset_token(token: str, settings: Settings) -> int:
    return _decode(token, "reset", settings.reset_token_secret)
