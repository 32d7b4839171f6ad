"""Calendar export: birthdays and projected check-ins as all-day events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable

from markupsafe import Markup

from keepintouch.services.schedule import effective_checkin_date, resolve_today

UID_DOMAIN = "keepintouch"
CHECKIN_WINDOWS = {
    "7": "next_7_days",
    "30": "next_30_days",
    "365": "next_year",
    "all": "all_upcoming",
}
EXPORT_KINDS = ("birthdays", "checkins")
ICS_LINE_OCTETS = 75


@dataclass
class CalendarEvent:
    uid: str
    start: date
    summary: str
    description: str
    rrule: str | None = None


def next_birthday(birthday: date | None, today: date | None = None) -> date | None:
    """The next occurrence of ``birthday`` on or after today.

    Feb 29 birthdays fall on Mar 1 in non-leap years.
    """
    if birthday is None:
        return None
    today = resolve_today(today)
    for year in (today.year, today.year + 1):
        try:
            candidate = date(year, birthday.month, birthday.day)
        except ValueError:
            candidate = date(year, 3, 1)
        if candidate >= today:
            return candidate
    return None


def birthday_events(contacts: Iterable[Any], today: date | None = None) -> list[CalendarEvent]:
    events = []
    for contact in contacts:
        start = next_birthday(contact.birthday, today)
        if start is None:
            continue
        events.append(
            CalendarEvent(
                uid=f"birthday-{contact.id}@{UID_DOMAIN}",
                start=start,
                summary=f"{contact.name}'s Birthday",
                description=f"Wish {contact.name} a happy birthday!",
                rrule="FREQ=YEARLY",
            )
        )
    return events


def checkin_events(
    contacts: Iterable[Any], window: str, today: date | None = None
) -> list[CalendarEvent]:
    """One event per projected check-in inside the window.

    ``window`` is a number of days ("7", "30", "365") or "all", in which case
    each contact gets a single event that repeats every ``checkin_frequency``
    days.
    """
    if window not in CHECKIN_WINDOWS:
        raise ValueError(f"Unsupported export window: {window!r}")
    today = resolve_today(today)
    events = []
    for contact in contacts:
        start = effective_checkin_date(contact, today)
        if start is None:
            continue
        if window == "all":
            events.append(
                _checkin_event(contact, start, f"FREQ=DAILY;INTERVAL={contact.checkin_frequency}")
            )
            continue
        limit = today + timedelta(days=int(window))
        occurrence = start
        while occurrence <= limit:
            events.append(_checkin_event(contact, occurrence))
            occurrence += timedelta(days=contact.checkin_frequency)
    events.sort(key=lambda e: (e.start, e.uid))
    return events


def _checkin_event(contact: Any, start: date, rrule: str | None = None) -> CalendarEvent:
    return CalendarEvent(
        uid=f"checkin-{contact.id}-{start:%Y%m%d}@{UID_DOMAIN}",
        start=start,
        summary=f"Check in with {contact.name}",
        description=f"Time to reconnect with {contact.name}!",
        rrule=rrule,
    )


def export_filename(kind: str, window: str = "7") -> str:
    if kind == "birthdays":
        return "birthdays.ics"
    return f"checkins_{CHECKIN_WINDOWS[window]}.ics"


def ics_escape(text: str) -> str:
    """Escape a TEXT value for iCalendar (RFC 5545 section 3.3.11)."""
    return (
        str(text)
        .replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def fold_line(line: str, limit: int = ICS_LINE_OCTETS) -> str:
    """Fold a content line so no physical line exceeds ``limit`` UTF-8 octets.

    Continuation lines start with a single space. Multi-byte characters are
    never split.
    """
    lines = []
    current, size = "", 0
    for ch in line:
        n = len(ch.encode("utf-8"))
        if size + n > limit:
            lines.append(current)
            current, size = " ", 1
        current += ch
        size += n
    lines.append(current)
    return "\r\n".join(lines)


def ics_property(value: str, name: str) -> Markup:
    """Render ``NAME:value`` as an escaped, folded iCalendar line."""
    return Markup(fold_line(f"{name}:{ics_escape(value)}"))
