from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from keepintouch.models import load_contacts
from keepintouch.routes import deps
from keepintouch.schemas import DeviceToken, FeedbackIn
from keepintouch.services.calendar_export import (
    CHECKIN_WINDOWS,
    EXPORT_KINDS,
    birthday_events,
    checkin_events,
    export_filename,
)
from keepintouch.services.mailer import send_feedback
from keepintouch.services.schedule import SORT_OPTIONS, project_agenda, sort_contacts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["index"])


def _templates(request: Request):
    return request.app.state.templates


def _like_escape(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


@router.get("/health")
async def health():
    return {"status": "ok", "message": "Server is awake."}


@router.get("/dashboard-data")
async def dashboard_data(
    request: Request,
    sort: str = "newest",
    descending: bool = True,
    user_id: int = Depends(deps.current_user_id),
):
    if sort not in SORT_OPTIONS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"sort must be one of: {', '.join(SORT_OPTIONS)}",
        )
    today = deps.today(request)
    with deps.db(request) as db:
        contacts = load_contacts(db, user_id)
        archived = db.execute(
            "SELECT COUNT(*) AS c FROM contacts WHERE is_archived = 1 AND user_id = ?",
            (user_id,),
        ).fetchone()
        tags = db.execute(
            "SELECT id, name FROM tags WHERE user_id = ? ORDER BY name", (user_id,)
        ).fetchall()
    ordered = sort_contacts(contacts, sort, descending, today)
    return {
        "contacts": [c.to_dict(today) for c in ordered],
        "archived_count": archived["c"],
        "tags": [dict(t) for t in tags],
    }


@router.get("/search")
async def search(request: Request, q: str = "", user_id: int = Depends(deps.current_user_id)):
    if not q:
        return {"results": {"contacts": [], "notes": []}}
    term = f"%{_like_escape(q)}%"
    today = deps.today(request)
    with deps.db(request) as db:
        contacts = [
            c for c in load_contacts(db, user_id) if q.casefold() in c.name.casefold()
        ]
        notes = db.execute(
            """SELECT n.*, c.name AS contact_name FROM notes n
               JOIN contacts c ON n.contact_id = c.id
               WHERE n.content LIKE ? ESCAPE '\\' AND c.is_archived = 0 AND n.user_id = ?
               ORDER BY n.created_at DESC""",
            (term, user_id),
        ).fetchall()
    return {
        "results": {
            "contacts": [c.to_dict(today) for c in contacts],
            "notes": [dict(n) for n in notes],
        }
    }


@router.post("/feedback")
async def feedback(
    request: Request, body: FeedbackIn, user_id: int = Depends(deps.current_user_id)
):
    with deps.db(request) as db:
        user = db.execute("SELECT email FROM users WHERE id = ?", (user_id,)).fetchone()
    try:
        send_feedback(user_id, user["email"] if user else None, body.content)
    except Exception:
        logger.exception("Failed to deliver feedback")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error while processing feedback.",
        )
    return {"message": "Feedback received successfully."}


@router.get("/tags")
async def list_tags(request: Request, user_id: int = Depends(deps.current_user_id)):
    with deps.db(request) as db:
        rows = db.execute(
            "SELECT id, name FROM tags WHERE user_id = ? ORDER BY name", (user_id,)
        ).fetchall()
    return {"tags": [dict(r) for r in rows]}


@router.post("/devices/token", status_code=status.HTTP_201_CREATED)
async def register_device(
    request: Request, body: DeviceToken, user_id: int = Depends(deps.current_user_id)
):
    with deps.db(request) as db:
        db.execute(
            """INSERT INTO devices (user_id, token) VALUES (?, ?)
               ON CONFLICT (token) DO UPDATE SET user_id = excluded.user_id""",
            (user_id, body.token),
        )
    return {"message": "Token saved successfully"}


@router.get("/agenda")
async def agenda(request: Request, user_id: int = Depends(deps.current_user_id)):
    today = deps.today(request)
    with deps.db(request) as db:
        contacts = load_contacts(db, user_id)
    return {
        "days": [
            {
                "date": day.date.isoformat(),
                "title": day.title,
                "contacts": [c.to_dict(today) for c in day.contacts],
            }
            for day in project_agenda(contacts, today)
        ]
    }


@router.get("/export/calendar")
async def export_calendar(
    request: Request,
    kind: str = "checkins",
    window: str = "7",
    user_id: int = Depends(deps.current_user_id),
):
    if kind not in EXPORT_KINDS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"kind must be one of: {', '.join(EXPORT_KINDS)}",
        )
    if window not in CHECKIN_WINDOWS:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"window must be one of: {', '.join(CHECKIN_WINDOWS)}",
        )
    today = deps.today(request)
    with deps.db(request) as db:
        contacts = load_contacts(db, user_id)
    if kind == "birthdays":
        events = birthday_events(contacts, today)
    else:
        events = checkin_events(contacts, window, today)
    filename = export_filename(kind, window)
    return _templates(request).TemplateResponse(
        request,
        "calendar.ics",
        {"events": events, "dtstamp": deps.now(request).strftime("%Y%m%dT%H%M%SZ")},
        media_type="text/calendar",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
