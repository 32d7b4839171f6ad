from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, status

from keepintouch.routes import deps
from keepintouch.schemas import Credentials, EmailRequest, ResetPasswordRequest
from keepintouch.services.auth import (
    InvalidToken,
    create_access_token,
    create_reset_token,
    decode_reset_token,
    hash_password,
    verify_password,
)
from keepintouch.services.mailer import send_password_reset

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

_RESET_MESSAGE = "If a user with that email exists, a password reset link has been sent."


@router.post("/signup", status_code=status.HTTP_201_CREATED)
async def signup(request: Request, body: Credentials):
    with deps.db(request) as db:
        existing = db.execute("SELECT id FROM users WHERE email = ?", (body.email,)).fetchone()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="A user with this email already exists.",
            )
        cur = db.execute(
            "INSERT INTO users (email, password_hash) VALUES (?, ?)",
            (body.email, hash_password(body.password)),
        )
        user = db.execute(
            "SELECT id, email, created_at FROM users WHERE id = ?", (cur.lastrowid,)
        ).fetchone()
    return dict(user)


@router.post("/login")
async def login(request: Request, body: Credentials):
    with deps.db(request) as db:
        user = db.execute("SELECT * FROM users WHERE email = ?", (body.email,)).fetchone()
    if not user or not verify_password(body.password, user["password_hash"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid email or password."
        )
    return {"token": create_access_token(user["id"], deps.settings(request))}


@router.post("/forgot-password")
async def forgot_password(request: Request, body: EmailRequest):
    with deps.db(request) as db:
        user = db.execute("SELECT id FROM users WHERE email = ?", (body.email,)).fetchone()
    # Same answer whether or not the account exists.
    if not user:
        return {"message": _RESET_MESSAGE}

    settings = deps.settings(request)
    token = create_reset_token(user["id"], settings)
    reset_link = f"{settings.frontend_url.rstrip('/')}/reset-password/{token}"
    try:
        send_password_reset(body.email, reset_link)
    except Exception:
        logger.exception("Failed to send password reset email")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error during password reset request.",
        )
    return {"message": _RESET_MESSAGE}


@router.post("/reset-password")
async def reset_password(request: Request, body: ResetPasswordRequest):
    try:
        user_id = decode_reset_token(body.token, deps.settings(request))
    except InvalidToken:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid or expired password reset token.",
        )
    with deps.db(request) as db:
        db.execute(
            "UPDATE users SET password_hash = ? WHERE id = ?",
            (hash_password(body.password), user_id),
        )
    return {"message": "Password reset successfully."}
