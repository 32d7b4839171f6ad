from __future__ import annotations

import json
import logging
import sqlite3
from datetime import date
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from keepintouch.config import Settings
from keepintouch.db import get_db, init_db
from keepintouch.models import load_contacts
from keepintouch.services.schedule import (
    format_timestamp,
    is_overdue,
    next_due_date,
    utcnow,
)

app = typer.Typer(help="KeepInTouch — check-in reminders for the people you care about")
console = Console()

_BACKUP_VERSION = 1


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _settings(db: Optional[Path]) -> Settings:
    settings = Settings.from_env()
    if db is not None:
        settings.db_path = db
    return settings


def _user_id(conn: sqlite3.Connection, email: str) -> int:
    row = conn.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()
    if not row:
        console.print(f"[red]No user with email {email}[/red]")
        raise typer.Exit(code=1)
    return row["id"]


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind to"),
    port: int = typer.Option(8000, help="Port to bind to"),
    reload: bool = typer.Option(False, help="Enable auto-reload"),
) -> None:
    """Start the KeepInTouch API server."""
    import uvicorn

    uvicorn.run("keepintouch.web:create_app", host=host, port=port, reload=reload, factory=True)


@app.command()
def init(db: Optional[Path] = typer.Option(None, help="Database file")) -> None:
    """Create the database schema."""
    settings = _settings(db)
    init_db(settings.db_path)
    console.print(f"[green]Database ready at {settings.db_path}[/green]")


@app.command()
def remind(
    email: str = typer.Option(..., help="Account email"),
    db: Optional[Path] = typer.Option(None, help="Database file"),
) -> None:
    """Show contacts that are due for a check-in."""
    settings = _settings(db)
    init_db(settings.db_path)
    today = utcnow().date()

    with get_db(settings.db_path) as conn:
        contacts = load_contacts(conn, _user_id(conn, email))

    overdue = [c for c in contacts if is_overdue(c, today)]
    if not overdue:
        console.print("[green]All caught up! Nobody is overdue.[/green]")
        return

    table = Table(title=f"Overdue Check-ins ({len(overdue)})")
    table.add_column("Contact", style="cyan")
    table.add_column("Last Check-in", style="dim")
    table.add_column("Every", style="magenta")
    table.add_column("Next Due", style="yellow")
    for c in sorted(overdue, key=lambda c: c.last_checkin):
        due = next_due_date(c.last_checkin, c.checkin_frequency, today)
        table.add_row(
            c.name,
            c.last_checkin.date().isoformat(),
            f"{c.checkin_frequency} days",
            due.isoformat() if due else "—",
        )
    console.print(table)


@app.command()
def backup(
    email: str = typer.Option(..., help="Account email"),
    output: Path = typer.Option(..., help="JSON file to write"),
    db: Optional[Path] = typer.Option(None, help="Database file"),
) -> None:
    """Write a user's contacts, notes, and tags to a JSON file."""
    settings = _settings(db)
    init_db(settings.db_path)

    with get_db(settings.db_path) as conn:
        user_id = _user_id(conn, email)
        contacts = load_contacts(conn, user_id) + load_contacts(conn, user_id, archived=True)
        entries = []
        for c in contacts:
            notes = conn.execute(
                """SELECT content, created_at, modified_at FROM notes
                   WHERE contact_id = ? ORDER BY created_at""",
                (c.id,),
            ).fetchall()
            entries.append(
                {
                    "name": c.name,
                    "checkin_frequency": c.checkin_frequency,
                    "last_checkin": format_timestamp(c.last_checkin),
                    "snooze_until": format_timestamp(c.snooze_until) if c.snooze_until else None,
                    "how_we_met": c.how_we_met,
                    "key_facts": c.key_facts,
                    "birthday": c.birthday.isoformat() if c.birthday else None,
                    "is_archived": c.is_archived,
                    "is_pinned": c.is_pinned,
                    "tags": [t.name for t in c.tags],
                    "notes": [dict(n) for n in notes],
                }
            )

    data = {
        "version": _BACKUP_VERSION,
        "exported_at": format_timestamp(utcnow()),
        "contacts": entries,
    }
    output.write_text(json.dumps(data, indent=2))
    console.print(f"[green]Backed up {len(entries)} contacts to {output}[/green]")


@app.command()
def restore(
    email: str = typer.Option(..., help="Account email"),
    input: Path = typer.Option(..., exists=True, dir_okay=False, help="Backup JSON file"),
    db: Optional[Path] = typer.Option(None, help="Database file"),
) -> None:
    """Load contacts from a backup file into a user's account."""
    settings = _settings(db)
    init_db(settings.db_path)
    data = json.loads(input.read_text())

    try:
        with get_db(settings.db_path) as conn:
            user_id = _user_id(conn, email)
            for entry in data.get("contacts", []):
                _restore_contact(conn, user_id, entry)
    except (KeyError, ValueError, TypeError, sqlite3.IntegrityError) as exc:
        console.print(f"[red]Invalid backup file, nothing restored: {exc}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Restored {len(data.get('contacts', []))} contacts[/green]")


def _optional_timestamp(value: Optional[str]) -> Optional[str]:
    return format_timestamp(value) if value else None


def _restore_contact(conn: sqlite3.Connection, user_id: int, entry: dict) -> None:
    """Insert one backed-up contact with its notes and tags.

    Dates are parsed before anything is written; a malformed one raises.
    """
    birthday = entry.get("birthday")
    cur = conn.execute(
        """INSERT INTO contacts
               (user_id, name, checkin_frequency, last_checkin, snooze_until,
                how_we_met, key_facts, birthday, is_archived, is_pinned)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            user_id,
            entry["name"],
            entry["checkin_frequency"],
            format_timestamp(entry["last_checkin"]),
            _optional_timestamp(entry.get("snooze_until")),
            entry.get("how_we_met"),
            entry.get("key_facts"),
            date.fromisoformat(birthday).isoformat() if birthday else None,
            int(bool(entry.get("is_archived"))),
            int(bool(entry.get("is_pinned"))),
        ),
    )
    contact_id = cur.lastrowid
    for note in entry.get("notes", []):
        conn.execute(
            """INSERT INTO notes (content, created_at, modified_at, contact_id, user_id)
               VALUES (?, ?, ?, ?, ?)""",
            (
                note["content"],
                format_timestamp(note["created_at"]),
                _optional_timestamp(note.get("modified_at")),
                contact_id,
                user_id,
            ),
        )
    for name in entry.get("tags", []):
        conn.execute("INSERT OR IGNORE INTO tags (name, user_id) VALUES (?, ?)", (name, user_id))
        conn.execute(
            """INSERT OR IGNORE INTO contact_tags (contact_id, tag_id)
               SELECT ?, id FROM tags WHERE name = ? AND user_id = ?""",
            (contact_id, name, user_id),
        )
