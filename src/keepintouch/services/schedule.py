"""Check-in scheduling logic - no I/O dependencies.

All calendar-day arithmetic is done on the UTC calendar day. Every function
that depends on "today" or "now" takes it as an optional argument so callers
can pass the request clock; when omitted the current UTC time is used.

The SQL in ``keepintouch.db`` computes snoozes server-side and must stay in
step with :func:`resolve_snooze`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, Sequence

AGENDA_DAYS = 8
SNOOZE_UNITS = ("days", "hours", "tomorrow")
SORT_OPTIONS = ("newest", "name", "closest", "overdue")
_TOMORROW_HOUR = 9
# Upper bounds keep snoozes and cycles inside SQLite's datetime range.
MAX_SNOOZE_DAYS = 3650
MAX_SNOOZE_HOURS = MAX_SNOOZE_DAYS * 24
MAX_FREQUENCY_DAYS = 3650
STORAGE_FORMAT = "%Y-%m-%d %H:%M:%S"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: datetime | str) -> datetime:
    """Parse an ISO-8601 string (or datetime) into an aware UTC datetime.

    Naive values are taken to be UTC, which is how timestamps are stored.
    Malformed strings raise ``ValueError``.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    else:
        raise TypeError(f"Expected datetime or ISO string, got {type(value).__name__}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(value: datetime | str) -> str:
    """Render a timestamp in storage format (UTC, second precision)."""
    return parse_timestamp(value).strftime(STORAGE_FORMAT)


def resolve_today(today: date | None) -> date:
    return today if today is not None else utcnow().date()


def days_since(timestamp: datetime | str, today: date | None = None) -> int:
    """Calendar days between the timestamp's UTC date and today.

    Two timestamps on the same calendar day give 0 regardless of time of day.
    """
    return (resolve_today(today) - parse_timestamp(timestamp).date()).days


def next_due_date(
    last_checkin: datetime | str | None,
    frequency_days: int | None,
    today: date | None = None,
) -> date | None:
    """Soonest due date that is not before today, given the check-in history.

    Returns None when there is no due date (missing check-in or a missing or
    non-positive frequency). After several missed cycles this skips ahead by
    whole cycles instead of returning a date far in the past.
    """
    if not last_checkin or not frequency_days or frequency_days <= 0:
        return None
    today = resolve_today(today)
    last = parse_timestamp(last_checkin).date()
    elapsed = (today - last).days
    if elapsed <= frequency_days:
        return last + timedelta(days=frequency_days)
    cycles_missed = (elapsed - 1) // frequency_days
    return last + timedelta(days=(cycles_missed + 1) * frequency_days)


def has_active_snooze(snooze_until: datetime | str | None, today: date | None = None) -> bool:
    """True when a snooze lands today or later."""
    if not snooze_until:
        return False
    return parse_timestamp(snooze_until).date() >= resolve_today(today)


def is_overdue(contact: Any, today: date | None = None) -> bool:
    """Whether the contact's first due date after its last check-in has arrived."""
    today = resolve_today(today)
    if has_active_snooze(contact.snooze_until, today):
        return False
    frequency = contact.checkin_frequency
    if not contact.last_checkin or not frequency or frequency <= 0:
        return False
    due = parse_timestamp(contact.last_checkin).date() + timedelta(days=frequency)
    return due <= today


def effective_checkin_date(contact: Any, today: date | None = None) -> date | None:
    """The snooze date while a snooze is active, otherwise the next due date."""
    today = resolve_today(today)
    if has_active_snooze(contact.snooze_until, today):
        return parse_timestamp(contact.snooze_until).date()
    return next_due_date(contact.last_checkin, contact.checkin_frequency, today)


def resolve_snooze(
    unit: str,
    value: int,
    now: datetime | str,
    snooze_until: datetime | str | None = None,
    last_checkin: datetime | str | None = None,
    frequency_days: int = 0,
) -> datetime:
    """Compute a new ``snooze_until`` for one contact.

    ``tomorrow`` means 09:00 UTC on the day after ``now``. ``days`` and
    ``hours`` extend from the later of ``now`` and the current effective date
    (the existing snooze, or ``last_checkin + frequency_days``), so a snooze
    never pulls a reminder earlier and repeated snoozes stack forward.
    """
    now = parse_timestamp(now)
    if unit == "tomorrow":
        return datetime.combine(
            now.date() + timedelta(days=1), time(_TOMORROW_HOUR), tzinfo=timezone.utc
        )
    if unit == "days":
        delta, limit = timedelta(days=value), MAX_SNOOZE_DAYS
    elif unit == "hours":
        delta, limit = timedelta(hours=value), MAX_SNOOZE_HOURS
    else:
        raise ValueError(f"Unsupported snooze unit: {unit!r}")
    if not 0 < value <= limit:
        raise ValueError(f"Snooze value must be between 1 and {limit} {unit}")

    if snooze_until:
        baseline = parse_timestamp(snooze_until)
    elif last_checkin:
        baseline = parse_timestamp(last_checkin) + timedelta(days=frequency_days)
    else:
        baseline = now
    return max(now, baseline) + delta


@dataclass
class AgendaDay:
    """One day of the agenda window."""

    date: date
    title: str
    contacts: list[Any] = field(default_factory=list)


def agenda_day_title(day: date, today: date) -> str:
    offset = (day - today).days
    if offset == 0:
        return "Today"
    if offset == 1:
        return "Tomorrow"
    return f"{day:%A, %B} {day.day}"


def project_agenda(
    contacts: Iterable[Any], today: date | None = None, days: int = AGENDA_DAYS
) -> list[AgendaDay]:
    """Group contacts by their effective check-in date over the coming days.

    Contacts with no effective date, or one outside the window, are left out.
    Within a day contacts are ordered by name, ignoring case.
    """
    today = resolve_today(today)
    window = [today + timedelta(days=i) for i in range(days)]
    agenda = [AgendaDay(date=day, title=agenda_day_title(day, today)) for day in window]
    for contact in contacts:
        when = effective_checkin_date(contact, today)
        if when is None:
            continue
        offset = (when - today).days
        if 0 <= offset < days:
            agenda[offset].contacts.append(contact)
    for day in agenda:
        day.contacts.sort(key=lambda c: c.name.casefold())
    return agenda


def _due_key(contact: Any, sort_by: str, today: date) -> date | None:
    if sort_by == "closest":
        return next_due_date(contact.last_checkin, contact.checkin_frequency, today)
    frequency = contact.checkin_frequency
    if not contact.last_checkin or not frequency or frequency <= 0:
        return None
    return parse_timestamp(contact.last_checkin).date() + timedelta(days=frequency)


def sort_contacts(
    contacts: Sequence[Any],
    sort_by: str = "newest",
    descending: bool = True,
    today: date | None = None,
) -> list[Any]:
    """Dashboard order: pinned contacts by name, then the rest by ``sort_by``.

    ``closest`` puts the soonest next due date first. ``overdue`` puts the
    earliest unmet due date (last check-in plus one cycle) first. Contacts
    without a due date go last for both. ``descending=False`` reverses the
    unpinned part.
    """
    if sort_by not in SORT_OPTIONS:
        raise ValueError(f"Unsupported sort option: {sort_by!r}")
    today = resolve_today(today)
    pinned = sorted((c for c in contacts if c.is_pinned), key=lambda c: c.name.casefold())
    rest = [c for c in contacts if not c.is_pinned]

    if sort_by == "newest":
        rest.sort(key=lambda c: c.id, reverse=True)
    elif sort_by == "name":
        rest.sort(key=lambda c: c.name.casefold())
    else:
        dues = {id(c): _due_key(c, sort_by, today) for c in rest}
        dated = sorted((c for c in rest if dues[id(c)] is not None), key=lambda c: dues[id(c)])
        undated = [c for c in rest if dues[id(c)] is None]
        rest = dated + undated

    if not descending:
        rest.reverse()
    return pinned + rest
