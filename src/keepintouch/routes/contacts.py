from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from keepintouch.db import id_params, snooze_until_sql
from keepintouch.models import load_contact, load_contacts
from keepintouch.routes import deps
from keepintouch.schemas import BatchRequest, ContactIn, NoteIn, SnoozeRequest, TagIn
from keepintouch.services.schedule import format_timestamp, parse_timestamp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/contacts", tags=["contacts"])


@router.get("")
async def list_contacts(request: Request, user_id: int = Depends(deps.current_user_id)):
    today = deps.today(request)
    with deps.db(request) as db:
        contacts = load_contacts(db, user_id)
    return {"contacts": [c.to_dict(today) for c in contacts]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_contact(
    request: Request, body: ContactIn, user_id: int = Depends(deps.current_user_id)
):
    last_checkin = body.last_checkin or deps.now(request)
    with deps.db(request) as db:
        cur = db.execute(
            """INSERT INTO contacts
                   (user_id, name, checkin_frequency, last_checkin, how_we_met, key_facts, birthday)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                user_id,
                body.name,
                body.checkin_frequency,
                format_timestamp(last_checkin),
                body.how_we_met,
                body.key_facts,
                body.birthday.isoformat() if body.birthday else None,
            ),
        )
        contact = load_contact(db, user_id, cur.lastrowid)
    return contact.to_dict(deps.today(request))


@router.get("/archived")
async def list_archived(request: Request, user_id: int = Depends(deps.current_user_id)):
    today = deps.today(request)
    with deps.db(request) as db:
        contacts = load_contacts(db, user_id, archived=True)
    contacts.sort(key=lambda c: c.name.casefold())
    return {"contacts": [c.to_dict(today) for c in contacts]}


@router.get("/archived/count")
async def archived_count(request: Request, user_id: int = Depends(deps.current_user_id)):
    with deps.db(request) as db:
        row = db.execute(
            "SELECT COUNT(*) AS c FROM contacts WHERE is_archived = 1 AND user_id = ?",
            (user_id,),
        ).fetchone()
    return {"count": row["c"]}


# --- Batch actions ---


def _batch(
    request: Request, user_id: int, ids: list[int], action: str, params: dict | None = None
) -> int:
    """Apply ``action`` to the user's contacts in ``ids``; returns rows touched."""
    in_list, id_values = id_params(ids)
    with deps.db(request) as db:
        cur = db.execute(
            f"{action} WHERE id IN ({in_list}) AND user_id = :user_id",
            {**(params or {}), **id_values, "user_id": user_id},
        )
    return cur.rowcount


@router.post("/batch-archive")
async def batch_archive(
    request: Request, body: BatchRequest, user_id: int = Depends(deps.current_user_id)
):
    n = _batch(request, user_id, body.contact_ids, "UPDATE contacts SET is_archived = 1")
    return {"message": f"{n} contacts archived successfully."}


@router.post("/batch-restore")
async def batch_restore(
    request: Request, body: BatchRequest, user_id: int = Depends(deps.current_user_id)
):
    n = _batch(request, user_id, body.contact_ids, "UPDATE contacts SET is_archived = 0")
    return {"message": f"{n} contacts restored successfully."}


@router.post("/batch-delete")
async def batch_delete(
    request: Request, body: BatchRequest, user_id: int = Depends(deps.current_user_id)
):
    n = _batch(request, user_id, body.contact_ids, "DELETE FROM contacts")
    return {"message": f"{n} contacts deleted successfully."}


@router.post("/batch-checkin")
async def batch_checkin(
    request: Request, body: BatchRequest, user_id: int = Depends(deps.current_user_id)
):
    n = _batch(
        request,
        user_id,
        body.contact_ids,
        "UPDATE contacts SET last_checkin = :checkin, snooze_until = NULL",
        {"checkin": format_timestamp(deps.now(request))},
    )
    return {"message": f"{n} contacts checked in successfully."}


@router.post("/batch-snooze")
async def batch_snooze(
    request: Request, body: BatchRequest, user_id: int = Depends(deps.current_user_id)
):
    if body.snooze is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="snooze object is required for batch snooze.",
        )
    expr, params = snooze_until_sql(
        body.snooze.unit, body.snooze.value, format_timestamp(deps.now(request))
    )
    n = _batch(
        request, user_id, body.contact_ids, f"UPDATE contacts SET snooze_until = {expr}", params
    )
    logger.info("Snoozed %d contacts (%s %s)", n, body.snooze.value, body.snooze.unit)
    return {"message": f"{n} contacts snoozed successfully."}


# --- Single contact ---


@router.get("/{contact_id}")
async def contact_detail(
    request: Request, contact_id: int, user_id: int = Depends(deps.current_user_id)
):
    with deps.db(request) as db:
        contact = load_contact(db, user_id, contact_id)
        if not contact:
            raise deps.not_found()
        notes = db.execute(
            "SELECT * FROM notes WHERE contact_id = ? ORDER BY created_at DESC, id DESC",
            (contact_id,),
        ).fetchall()
    data = contact.to_dict(deps.today(request))
    data["notes"] = [dict(n) for n in notes]
    return data


@router.put("/{contact_id}")
async def update_contact(
    request: Request,
    contact_id: int,
    body: ContactIn,
    user_id: int = Depends(deps.current_user_id),
):
    with deps.db(request) as db:
        cur = db.execute(
            """UPDATE contacts SET
                   name = ?,
                   checkin_frequency = ?,
                   how_we_met = ?,
                   key_facts = ?,
                   birthday = ?,
                   last_checkin = COALESCE(?, last_checkin),
                   snooze_until = NULL
               WHERE id = ? AND user_id = ?""",
            (
                body.name,
                body.checkin_frequency,
                body.how_we_met,
                body.key_facts,
                body.birthday.isoformat() if body.birthday else None,
                format_timestamp(body.last_checkin) if body.last_checkin else None,
                contact_id,
                user_id,
            ),
        )
        if cur.rowcount == 0:
            raise deps.not_found()
    return {"message": "Contact updated successfully"}


@router.delete("/{contact_id}")
async def delete_contact(
    request: Request, contact_id: int, user_id: int = Depends(deps.current_user_id)
):
    with deps.db(request) as db:
        cur = db.execute(
            "DELETE FROM contacts WHERE id = ? AND user_id = ?", (contact_id, user_id)
        )
    if cur.rowcount == 0:
        raise deps.not_found()
    return {"message": "Deleted successfully"}


@router.put("/{contact_id}/pin")
async def toggle_pin(
    request: Request, contact_id: int, user_id: int = Depends(deps.current_user_id)
):
    with deps.db(request) as db:
        db.execute(
            "UPDATE contacts SET is_pinned = NOT is_pinned WHERE id = ? AND user_id = ?",
            (contact_id, user_id),
        )
        contact = load_contact(db, user_id, contact_id)
    if not contact:
        raise deps.not_found()
    return {"contact": contact.to_dict(deps.today(request))}


def _set_archived(request: Request, contact_id: int, user_id: int, archived: bool) -> None:
    with deps.db(request) as db:
        cur = db.execute(
            "UPDATE contacts SET is_archived = ? WHERE id = ? AND user_id = ?",
            (int(archived), contact_id, user_id),
        )
    if cur.rowcount == 0:
        raise deps.not_found()


@router.put("/{contact_id}/archive")
async def archive_contact(
    request: Request, contact_id: int, user_id: int = Depends(deps.current_user_id)
):
    _set_archived(request, contact_id, user_id, True)
    return {"message": "Contact archived successfully"}


@router.put("/{contact_id}/restore")
async def restore_contact(
    request: Request, contact_id: int, user_id: int = Depends(deps.current_user_id)
):
    _set_archived(request, contact_id, user_id, False)
    return {"message": "Contact restored successfully"}


@router.post("/{contact_id}/checkin")
async def checkin(
    request: Request, contact_id: int, user_id: int = Depends(deps.current_user_id)
):
    checked_in = format_timestamp(deps.now(request))
    with deps.db(request) as db:
        cur = db.execute(
            """UPDATE contacts SET last_checkin = ?, snooze_until = NULL
               WHERE id = ? AND user_id = ?""",
            (checked_in, contact_id, user_id),
        )
    if cur.rowcount == 0:
        raise deps.not_found()
    return {
        "message": "Checked in successfully",
        "last_checkin": parse_timestamp(checked_in).isoformat(),
    }


@router.put("/{contact_id}/snooze")
async def snooze_contact(
    request: Request,
    contact_id: int,
    body: SnoozeRequest,
    user_id: int = Depends(deps.current_user_id),
):
    expr, params = snooze_until_sql(body.unit, body.value, format_timestamp(deps.now(request)))
    with deps.db(request) as db:
        cur = db.execute(
            f"UPDATE contacts SET snooze_until = {expr} WHERE id = :id AND user_id = :user_id",
            {**params, "id": contact_id, "user_id": user_id},
        )
        if cur.rowcount == 0:
            raise deps.not_found()
        row = db.execute(
            "SELECT snooze_until FROM contacts WHERE id = ?", (contact_id,)
        ).fetchone()
    return {
        "message": "Contact snoozed successfully",
        "snooze_until": parse_timestamp(row["snooze_until"]).isoformat(),
    }


# --- Tags ---


@router.post("/{contact_id}/tags", status_code=status.HTTP_201_CREATED)
async def add_tag(
    request: Request,
    contact_id: int,
    body: TagIn,
    user_id: int = Depends(deps.current_user_id),
):
    with deps.db(request) as db:
        if not load_contact(db, user_id, contact_id):
            raise deps.not_found()
        db.execute(
            "INSERT OR IGNORE INTO tags (name, user_id) VALUES (?, ?)", (body.tag_name, user_id)
        )
        tag = db.execute(
            "SELECT id, name FROM tags WHERE name = ? AND user_id = ?", (body.tag_name, user_id)
        ).fetchone()
        db.execute(
            "INSERT OR IGNORE INTO contact_tags (contact_id, tag_id) VALUES (?, ?)",
            (contact_id, tag["id"]),
        )
    return {"id": tag["id"], "name": tag["name"]}


@router.delete("/{contact_id}/tags/{tag_id}")
async def remove_tag(
    request: Request,
    contact_id: int,
    tag_id: int,
    user_id: int = Depends(deps.current_user_id),
):
    with deps.db(request) as db:
        db.execute(
            """DELETE FROM contact_tags
               WHERE contact_id = ? AND tag_id = ?
                 AND contact_id IN (SELECT id FROM contacts WHERE user_id = ?)""",
            (contact_id, tag_id, user_id),
        )
        # A tag no contact uses any more is dropped.
        still_used = db.execute(
            "SELECT 1 FROM contact_tags WHERE tag_id = ? LIMIT 1", (tag_id,)
        ).fetchone()
        if not still_used:
            db.execute("DELETE FROM tags WHERE id = ? AND user_id = ?", (tag_id, user_id))
    return {"message": "Tag removed successfully"}


# --- Notes ---


@router.get("/{contact_id}/notes")
async def list_notes(
    request: Request, contact_id: int, user_id: int = Depends(deps.current_user_id)
):
    with deps.db(request) as db:
        rows = db.execute(
            """SELECT n.* FROM notes n
               JOIN contacts c ON n.contact_id = c.id
               WHERE n.contact_id = ? AND c.user_id = ?
               ORDER BY n.created_at DESC, n.id DESC""",
            (contact_id, user_id),
        ).fetchall()
    return {"notes": [dict(r) for r in rows]}


@router.post("/{contact_id}/notes", status_code=status.HTTP_201_CREATED)
async def create_note(
    request: Request,
    contact_id: int,
    body: NoteIn,
    user_id: int = Depends(deps.current_user_id),
):
    with deps.db(request) as db:
        if not load_contact(db, user_id, contact_id):
            raise deps.not_found()
        cur = db.execute(
            """INSERT INTO notes (content, created_at, contact_id, user_id)
               VALUES (?, ?, ?, ?)""",
            (body.content, format_timestamp(deps.now(request)), contact_id, user_id),
        )
        note = db.execute("SELECT * FROM notes WHERE id = ?", (cur.lastrowid,)).fetchone()
    return dict(note)
