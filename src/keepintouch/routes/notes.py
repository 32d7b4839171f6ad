from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from keepintouch.routes import deps
from keepintouch.schemas import NoteIn
from keepintouch.services.schedule import format_timestamp, parse_timestamp

router = APIRouter(prefix="/api/notes", tags=["notes"])


@router.put("/{note_id}")
async def update_note(
    request: Request, note_id: int, body: NoteIn, user_id: int = Depends(deps.current_user_id)
):
    modified_at = format_timestamp(deps.now(request))
    with deps.db(request) as db:
        cur = db.execute(
            "UPDATE notes SET content = ?, modified_at = ? WHERE id = ? AND user_id = ?",
            (body.content, modified_at, note_id, user_id),
        )
    if cur.rowcount == 0:
        raise deps.not_found("Note")
    return {
        "message": "Note updated successfully",
        "modified_at": parse_timestamp(modified_at).isoformat(),
    }


@router.delete("/{note_id}")
async def delete_note(request: Request, note_id: int, user_id: int = Depends(deps.current_user_id)):
    with deps.db(request) as db:
        cur = db.execute("DELETE FROM notes WHERE id = ? AND user_id = ?", (note_id, user_id))
    if cur.rowcount == 0:
        raise deps.not_found("Note")
    return {"message": "Note deleted successfully"}
