"""Request-scoped helpers shared by the routers: database, clock, and auth."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import AbstractContextManager
from datetime import date, datetime

from fastapi import HTTPException, Request, status

from keepintouch.config import Settings
from keepintouch.db import get_db
from keepintouch.services.auth import InvalidToken, decode_access_token
from keepintouch.services.schedule import parse_timestamp

logger = logging.getLogger(__name__)


def settings(request: Request) -> Settings:
    return request.app.state.settings


def db(request: Request) -> AbstractContextManager[sqlite3.Connection]:
    return get_db(settings(request).db_path)


def now(request: Request) -> datetime:
    """Current time from the application clock, as aware UTC."""
    return parse_timestamp(request.app.state.clock())


def today(request: Request) -> date:
    return now(request).date()


def current_user_id(request: Request) -> int:
    """Resolve the user from an ``Authorization: Bearer <token>`` header."""
    raw = str(request.headers.get("Authorization") or "").strip()
    if not raw.lower().startswith("bearer "):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
    token = raw.split(" ", 1)[1].strip()
    try:
        return decode_access_token(token, settings(request))
    except InvalidToken as exc:
        logger.info("Rejected access token: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication token"
        ) from exc


def not_found(what: str = "Contact") -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"{what} not found")
