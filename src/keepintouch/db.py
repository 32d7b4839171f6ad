from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Iterable

from keepintouch.services.schedule import MAX_SNOOZE_DAYS, MAX_SNOOZE_HOURS

SCHEMA = """\
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TEXT NOT NULL DEFAULT (datetime('now'))
);

CREATE TABLE IF NOT EXISTS contacts (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    checkin_frequency INTEGER NOT NULL CHECK(checkin_frequency > 0),
    last_checkin TEXT NOT NULL,
    how_we_met TEXT,
    key_facts TEXT,
    birthday TEXT,
    is_archived INTEGER NOT NULL DEFAULT 0,
    is_pinned INTEGER NOT NULL DEFAULT 0,
    snooze_until TEXT
);

CREATE TABLE IF NOT EXISTS notes (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    modified_at TEXT,
    contact_id INTEGER NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS tags (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    UNIQUE (user_id, name)
);

CREATE TABLE IF NOT EXISTS contact_tags (
    contact_id INTEGER NOT NULL REFERENCES contacts(id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(id) ON DELETE CASCADE,
    PRIMARY KEY (contact_id, tag_id)
);

CREATE TABLE IF NOT EXISTS devices (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id INTEGER NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    token TEXT NOT NULL UNIQUE
);
"""

# Snooze expressions mirror services.schedule.resolve_snooze. Timestamps are
# stored in SQLite's datetime() format, so string max() orders them correctly.
_SNOOZE_TOMORROW_SQL = "datetime(:now, 'start of day', '+1 day', '+9 hours')"
_SNOOZE_INTERVAL_SQL = """datetime(
    max(
        datetime(:now),
        COALESCE(
            datetime(snooze_until),
            datetime(last_checkin, '+' || checkin_frequency || ' days')
        )
    ),
    :interval
)"""


def _connect(db_path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(str(db_path))
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: Path) -> None:
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = _connect(db_path)
    conn.executescript(SCHEMA)
    conn.close()


@contextmanager
def get_db(db_path: Path) -> Generator[sqlite3.Connection, None, None]:
    conn = _connect(db_path)
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def id_params(ids: Iterable[int]) -> tuple[str, dict[str, int]]:
    """Build a named-parameter IN list, e.g. ``(":id0, :id1", {...})``."""
    params = {f"id{i}": int(v) for i, v in enumerate(ids)}
    return ", ".join(f":{k}" for k in params), params


def snooze_until_sql(unit: str, value: int, now: str) -> tuple[str, dict[str, str]]:
    """Return the SQL expression and parameters that compute a new snooze_until."""
    if unit == "tomorrow":
        return _SNOOZE_TOMORROW_SQL, {"now": now}
    if unit not in ("days", "hours"):
        raise ValueError(f"Unsupported snooze unit: {unit!r}")
    limit = MAX_SNOOZE_DAYS if unit == "days" else MAX_SNOOZE_HOURS
    if not 0 < int(value) <= limit:
        raise ValueError(f"Snooze value must be between 1 and {limit} {unit}")
    return _SNOOZE_INTERVAL_SQL, {"now": now, "interval": f"+{int(value)} {unit}"}
