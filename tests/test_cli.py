from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from keepintouch.cli import app
from keepintouch.db import get_db, init_db

runner = CliRunner()


@pytest.fixture
def db_path(tmp_path):
    path = tmp_path / "cli.db"
    init_db(path)
    with get_db(path) as db:
        for email in ("me@example.com", "new@example.com"):
            db.execute(
                "INSERT INTO users (email, password_hash) VALUES (?, ?)", (email, "x")
            )
    return path


def _user(db_path, email="me@example.com"):
    with get_db(db_path) as db:
        return db.execute("SELECT id FROM users WHERE email = ?", (email,)).fetchone()["id"]


def _add_contact(db_path, name, last, freq=7):
    with get_db(db_path) as db:
        cur = db.execute(
            """INSERT INTO contacts (user_id, name, checkin_frequency, last_checkin)
               VALUES (?, ?, ?, ?)""",
            (_user(db_path), name, freq, last),
        )
    return cur.lastrowid


def test_init_creates_database(tmp_path):
    path = tmp_path / "fresh.db"
    result = runner.invoke(app, ["init", "--db", str(path)])
    assert result.exit_code == 0
    assert path.exists()


def test_remind_lists_overdue(db_path):
    _add_contact(db_path, "Sarah", "2000-01-01 00:00:00")
    result = runner.invoke(app, ["remind", "--email", "me@example.com", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "Overdue Check-ins (1)" in result.output
    assert "Sarah" in result.output


def test_remind_when_nobody_overdue(db_path):
    result = runner.invoke(app, ["remind", "--email", "me@example.com", "--db", str(db_path)])
    assert result.exit_code == 0
    assert "All caught up" in result.output


def test_unknown_email_exits(db_path):
    result = runner.invoke(app, ["remind", "--email", "ghost@example.com", "--db", str(db_path)])
    assert result.exit_code == 1


def test_backup_and_restore(db_path, tmp_path):
    contact_id = _add_contact(db_path, "Sarah", "2024-06-01 12:00:00")
    user_id = _user(db_path)
    with get_db(db_path) as db:
        db.execute(
            "INSERT INTO notes (content, created_at, contact_id, user_id) VALUES (?, ?, ?, ?)",
            ("Loves hiking", "2024-06-02 10:00:00", contact_id, user_id),
        )
        tag_id = db.execute(
            "INSERT INTO tags (name, user_id) VALUES (?, ?)", ("friends", user_id)
        ).lastrowid
        db.execute(
            "INSERT INTO contact_tags (contact_id, tag_id) VALUES (?, ?)", (contact_id, tag_id)
        )

    out = tmp_path / "backup.json"
    result = runner.invoke(
        app,
        ["backup", "--email", "me@example.com", "--output", str(out), "--db", str(db_path)],
    )
    assert result.exit_code == 0
    data = json.loads(out.read_text())
    assert data["version"] == 1
    [entry] = data["contacts"]
    assert entry["name"] == "Sarah"
    assert entry["last_checkin"] == "2024-06-01 12:00:00"
    assert entry["tags"] == ["friends"]
    assert entry["notes"][0]["content"] == "Loves hiking"

    result = runner.invoke(
        app,
        ["restore", "--email", "new@example.com", "--input", str(out), "--db", str(db_path)],
    )
    assert result.exit_code == 0
    assert "Restored 1 contacts" in result.output

    new_id = _user(db_path, "new@example.com")
    with get_db(db_path) as db:
        row = db.execute("SELECT * FROM contacts WHERE user_id = ?", (new_id,)).fetchone()
        assert row["name"] == "Sarah"
        assert row["last_checkin"] == "2024-06-01 12:00:00"
        notes = db.execute("SELECT content FROM notes WHERE user_id = ?", (new_id,)).fetchall()
        assert [n["content"] for n in notes] == ["Loves hiking"]
        tags = db.execute("SELECT name FROM tags WHERE user_id = ?", (new_id,)).fetchall()
        assert [t["name"] for t in tags] == ["friends"]


@pytest.mark.parametrize(
    "contact",
    [
        {"name": "Sarah", "checkin_frequency": 7, "last_checkin": "2024-06-01 12:00:00",
         "birthday": "July 4"},
        {"name": "Sarah", "checkin_frequency": 7, "last_checkin": "2024-06-01 12:00:00",
         "notes": [{"content": "hi", "created_at": "yesterday"}]},
        {"name": "Sarah", "checkin_frequency": 7, "last_checkin": "not a date"},
        {"name": "Sarah", "checkin_frequency": 7},
        {"name": "Sarah", "checkin_frequency": 0, "last_checkin": "2024-06-01 12:00:00"},
    ],
)
def test_restore_rejects_invalid_backup(db_path, tmp_path, contact):
    backup = tmp_path / "bad.json"
    good = {"name": "Tom", "checkin_frequency": 7, "last_checkin": "2024-06-01 12:00:00"}
    backup.write_text(json.dumps({"version": 1, "contacts": [good, contact]}))

    result = runner.invoke(
        app,
        ["restore", "--email", "new@example.com", "--input", str(backup), "--db", str(db_path)],
    )
    assert result.exit_code == 1
    assert "nothing restored" in result.output

    new_id = _user(db_path, "new@example.com")
    with get_db(db_path) as db:
        count = db.execute(
            "SELECT COUNT(*) AS c FROM contacts WHERE user_id = ?", (new_id,)
        ).fetchone()["c"]
    assert count == 0
