from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from keepintouch.services.schedule import days_since, is_overdue, next_due_date, parse_timestamp


@dataclass
class User:
    id: int = 0
    email: str = ""
    password_hash: str = ""
    created_at: str = ""


@dataclass
class Tag:
    id: int = 0
    name: str = ""


@dataclass
class Note:
    id: int = 0
    contact_id: int = 0
    content: str = ""
    created_at: str = ""
    modified_at: str | None = None


@dataclass
class Contact:
    id: int = 0
    user_id: int = 0
    name: str = ""
    checkin_frequency: int = 0
    last_checkin: datetime | None = None
    snooze_until: datetime | None = None
    how_we_met: str | None = None
    key_facts: str | None = None
    birthday: date | None = None
    is_archived: bool = False
    is_pinned: bool = False
    # joined field
    tags: list[Tag] = field(default_factory=list)

    @classmethod
    def from_row(cls, row: sqlite3.Row, tags: list[Tag] | None = None) -> "Contact":
        """Build a contact from a ``contacts`` row, parsing stored timestamps."""
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            name=row["name"],
            checkin_frequency=row["checkin_frequency"],
            last_checkin=parse_timestamp(row["last_checkin"]) if row["last_checkin"] else None,
            snooze_until=parse_timestamp(row["snooze_until"]) if row["snooze_until"] else None,
            how_we_met=row["how_we_met"],
            key_facts=row["key_facts"],
            birthday=date.fromisoformat(row["birthday"]) if row["birthday"] else None,
            is_archived=bool(row["is_archived"]),
            is_pinned=bool(row["is_pinned"]),
            tags=list(tags or []),
        )

    def to_dict(self, today: date | None = None) -> dict[str, Any]:
        """JSON shape for the API, including computed check-in fields."""
        return {
            "id": self.id,
            "name": self.name,
            "checkin_frequency": self.checkin_frequency,
            "last_checkin": self.last_checkin.isoformat() if self.last_checkin else None,
            "snooze_until": self.snooze_until.isoformat() if self.snooze_until else None,
            "how_we_met": self.how_we_met,
            "key_facts": self.key_facts,
            "birthday": self.birthday.isoformat() if self.birthday else None,
            "is_archived": self.is_archived,
            "is_pinned": self.is_pinned,
            "tags": [{"id": t.id, "name": t.name} for t in self.tags],
            "next_checkin": _iso(next_due_date(self.last_checkin, self.checkin_frequency, today)),
            "days_since_checkin": (
                days_since(self.last_checkin, today) if self.last_checkin else None
            ),
            "is_overdue": is_overdue(self, today),
        }


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


def load_contacts(
    db: sqlite3.Connection, user_id: int, archived: bool = False
) -> list[Contact]:
    """Load a user's contacts (active or archived) with their tags."""
    rows = db.execute(
        """SELECT * FROM contacts
           WHERE user_id = ? AND is_archived = ?
           ORDER BY last_checkin, id""",
        (user_id, int(archived)),
    ).fetchall()
    tag_rows = db.execute(
        """SELECT ct.contact_id, t.id, t.name FROM contact_tags ct
           JOIN tags t ON t.id = ct.tag_id
           WHERE t.user_id = ?
           ORDER BY t.name""",
        (user_id,),
    ).fetchall()
    tags: dict[int, list[Tag]] = {}
    for r in tag_rows:
        tags.setdefault(r["contact_id"], []).append(Tag(id=r["id"], name=r["name"]))
    return [Contact.from_row(row, tags.get(row["id"])) for row in rows]


def load_contact(db: sqlite3.Connection, user_id: int, contact_id: int) -> Contact | None:
    row = db.execute(
        "SELECT * FROM contacts WHERE id = ? AND user_id = ?", (contact_id, user_id)
    ).fetchone()
    if not row:
        return None
    tag_rows = db.execute(
        """SELECT t.id, t.name FROM tags t
           JOIN contact_tags ct ON t.id = ct.tag_id
           WHERE ct.contact_id = ?
           ORDER BY t.name""",
        (contact_id,),
    ).fetchall()
    return Contact.from_row(row, [Tag(id=r["id"], name=r["name"]) for r in tag_rows])
