from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from keepintouch.models import Contact
from keepintouch.services.schedule import (
    AGENDA_DAYS,
    MAX_SNOOZE_DAYS,
    days_since,
    effective_checkin_date,
    format_timestamp,
    is_overdue,
    next_due_date,
    parse_timestamp,
    project_agenda,
    resolve_snooze,
    sort_contacts,
)

UTC = timezone.utc


def _contact(name="Alice", last="2024-06-01T12:00:00Z", freq=7, snooze=None, **kw) -> Contact:
    return Contact(
        id=kw.pop("id", 1),
        name=name,
        checkin_frequency=freq,
        last_checkin=parse_timestamp(last) if last else None,
        snooze_until=parse_timestamp(snooze) if snooze else None,
        **kw,
    )


# --- parse / format ---


def test_parse_timestamp_naive_is_utc():
    dt = parse_timestamp("2024-01-01 10:00:00")
    assert dt == datetime(2024, 1, 1, 10, tzinfo=UTC)


def test_parse_timestamp_converts_offsets_to_utc():
    dt = parse_timestamp("2024-01-01T01:00:00+02:00")
    assert dt == datetime(2023, 12, 31, 23, tzinfo=UTC)


def test_parse_timestamp_accepts_z_suffix():
    assert parse_timestamp("2024-03-05T23:00:00Z") == datetime(2024, 3, 5, 23, tzinfo=UTC)


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(ValueError):
        parse_timestamp("not a date")


def test_format_timestamp_drops_microseconds():
    assert format_timestamp(datetime(2024, 1, 2, 3, 4, 5, 678, tzinfo=UTC)) == "2024-01-02 03:04:05"


# --- days_since ---


def test_days_since_same_day_is_zero_regardless_of_time():
    today = date(2024, 1, 20)
    assert days_since("2024-01-20T00:00:01Z", today) == 0
    assert days_since("2024-01-20T23:59:59Z", today) == 0


def test_days_since_counts_calendar_days_not_hours():
    # 23:59 the day before is still one calendar day ago
    assert days_since("2024-01-19T23:59:00Z", date(2024, 1, 20)) == 1
    assert days_since("2024-01-01T08:00:00Z", date(2024, 1, 20)) == 19


# --- next_due_date ---


def test_next_due_date_skips_missed_cycles():
    assert next_due_date("2024-01-01T00:00:00Z", 7, date(2024, 1, 20)) == date(2024, 1, 22)


def test_next_due_date_within_first_cycle():
    assert next_due_date("2024-01-01T00:00:00Z", 7, date(2024, 1, 3)) == date(2024, 1, 8)


def test_next_due_date_on_due_day_is_today():
    assert next_due_date("2024-01-01T00:00:00Z", 7, date(2024, 1, 8)) == date(2024, 1, 8)


def test_next_due_date_day_after_due_moves_to_next_cycle():
    assert next_due_date("2024-01-01T00:00:00Z", 7, date(2024, 1, 9)) == date(2024, 1, 15)


@pytest.mark.parametrize("freq", [None, 0, -3])
def test_next_due_date_without_frequency_is_none(freq):
    assert next_due_date("2024-01-01T00:00:00Z", freq, date(2024, 1, 9)) is None


def test_next_due_date_without_checkin_is_none():
    assert next_due_date(None, 7, date(2024, 1, 9)) is None


@pytest.mark.parametrize("freq", [1, 2, 3, 7, 14, 30, 90])
def test_next_due_date_never_in_the_past(freq):
    today = date(2024, 6, 10)
    for back in range(0, 200, 3):
        last = datetime(2024, 6, 10, 18, tzinfo=UTC) - timedelta(days=back)
        due = next_due_date(last, freq, today)
        assert due >= today
        assert due - timedelta(days=freq) < today or back <= freq


def test_next_due_date_is_idempotent():
    args = ("2023-11-05T13:00:00Z", 10, date(2024, 2, 1))
    assert next_due_date(*args) == next_due_date(*args)


def test_malformed_checkin_propagates():
    with pytest.raises(ValueError):
        next_due_date("yesterday-ish", 7, date(2024, 1, 1))


# --- is_overdue ---


def test_is_overdue_inclusive_on_due_day():
    contact = _contact(last="2024-06-03T20:00:00Z", freq=7)
    assert not is_overdue(contact, date(2024, 6, 9))
    assert is_overdue(contact, date(2024, 6, 10))


def test_is_overdue_false_right_after_checkin():
    for freq in (1, 7, 365):
        contact = _contact(last="2024-06-10T08:00:00Z", freq=freq)
        assert not is_overdue(contact, date(2024, 6, 10))


def test_active_snooze_suppresses_overdue():
    contact = _contact(last="2024-01-01T00:00:00Z", snooze="2024-06-12T09:00:00Z")
    assert not is_overdue(contact, date(2024, 6, 10))
    # snooze landing today still counts as active
    assert not is_overdue(contact, date(2024, 6, 12))
    assert is_overdue(contact, date(2024, 6, 13))


def test_is_overdue_without_checkin():
    assert not is_overdue(_contact(last=None), date(2024, 6, 10))


def test_effective_date_prefers_active_snooze():
    contact = _contact(last="2024-06-01T00:00:00Z", snooze="2024-06-20T09:00:00Z")
    assert effective_checkin_date(contact, date(2024, 6, 10)) == date(2024, 6, 20)


def test_effective_date_ignores_expired_snooze():
    contact = _contact(last="2024-06-01T00:00:00Z", snooze="2024-06-05T09:00:00Z")
    assert effective_checkin_date(contact, date(2024, 6, 10)) == date(2024, 6, 15)


# --- resolve_snooze ---


def test_snooze_tomorrow_is_nine_utc_next_day():
    result = resolve_snooze("tomorrow", 1, "2024-03-05T23:00:00Z")
    assert result == datetime(2024, 3, 6, 9, tzinfo=UTC)


def test_snooze_tomorrow_uses_utc_day():
    # 01:00 on the 6th in UTC+3 is still the 5th in UTC
    result = resolve_snooze("tomorrow", 1, "2024-03-06T01:00:00+03:00")
    assert result == datetime(2024, 3, 6, 9, tzinfo=UTC)


def test_snooze_days_from_now_when_already_overdue():
    now = datetime(2024, 6, 10, 15, 30, tzinfo=UTC)
    result = resolve_snooze("days", 3, now, None, "2024-06-01T12:00:00Z", 7)
    assert result == datetime(2024, 6, 13, 15, 30, tzinfo=UTC)


def test_snooze_never_shortens_a_later_due_date():
    now = datetime(2024, 6, 10, 15, 30, tzinfo=UTC)
    result = resolve_snooze("days", 1, now, None, "2024-06-09T12:00:00Z", 30)
    assert result == datetime(2024, 7, 10, 12, tzinfo=UTC)


def test_snooze_stacks_on_existing_snooze():
    now = datetime(2024, 6, 10, 15, 30, tzinfo=UTC)
    result = resolve_snooze("hours", 6, now, "2024-06-12T09:00:00Z", "2024-06-01T12:00:00Z", 7)
    assert result == datetime(2024, 6, 12, 15, tzinfo=UTC)


def test_snooze_monotonic_over_repeated_calls():
    now = datetime(2024, 6, 10, 15, 30, tzinfo=UTC)
    last = "2024-05-01T00:00:00Z"
    snooze = None
    previous = None
    for step, (unit, value) in enumerate([("days", 2), ("hours", 1), ("days", 1), ("hours", 30)]):
        snooze = resolve_snooze(unit, value, now + timedelta(hours=step), snooze, last, 7)
        if previous is not None:
            assert snooze >= previous
        previous = snooze


def test_snooze_rejects_unknown_unit():
    with pytest.raises(ValueError):
        resolve_snooze("weeks", 1, "2024-06-10T00:00:00Z")


def test_snooze_rejects_non_positive_value():
    with pytest.raises(ValueError):
        resolve_snooze("days", 0, "2024-06-10T00:00:00Z")


@pytest.mark.parametrize("unit,value", [("days", 3651), ("hours", 87601)])
def test_snooze_rejects_values_past_the_limit(unit, value):
    with pytest.raises(ValueError):
        resolve_snooze(unit, value, "2024-06-10T00:00:00Z")


def test_snooze_allows_the_limit():
    result = resolve_snooze("days", MAX_SNOOZE_DAYS, "2024-06-10T00:00:00Z")
    assert result == datetime(2034, 6, 8, tzinfo=UTC)


# --- agenda ---


def test_agenda_window_and_titles():
    agenda = project_agenda([], date(2024, 6, 10))
    assert len(agenda) == AGENDA_DAYS
    assert agenda[0].title == "Today"
    assert agenda[1].title == "Tomorrow"
    assert agenda[2].title == "Wednesday, June 12"
    assert agenda[-1].date == date(2024, 6, 17)


def test_agenda_includes_last_day_excludes_beyond():
    today = date(2024, 6, 10)
    inside = _contact("Inside", last="2024-06-10T07:00:00Z", freq=7, id=1)
    outside = _contact("Outside", last="2024-06-11T07:00:00Z", freq=7, id=2)
    agenda = project_agenda([inside, outside], today)
    assert [c.name for c in agenda[7].contacts] == ["Inside"]
    assert all(outside not in day.contacts for day in agenda)


def test_agenda_sorts_case_insensitively_within_day():
    today = date(2024, 6, 10)
    contacts = [
        _contact("bob", last="2024-06-05T00:00:00Z", freq=7, id=1),
        _contact("Alice", last="2024-06-05T22:00:00Z", freq=7, id=2),
        _contact("Carl", last="2024-06-05T10:00:00Z", freq=7, id=3),
    ]
    agenda = project_agenda(contacts, today)
    assert [c.name for c in agenda[2].contacts] == ["Alice", "bob", "Carl"]


def test_agenda_uses_snooze_date():
    today = date(2024, 6, 10)
    snoozed = _contact(last="2024-01-01T00:00:00Z", snooze="2024-06-11T09:00:00Z")
    agenda = project_agenda([snoozed], today)
    assert agenda[1].contacts == [snoozed]


def test_agenda_overdue_contact_lands_on_next_cycle():
    today = date(2024, 6, 10)
    overdue = _contact(last="2024-06-01T12:00:00Z", freq=7)
    agenda = project_agenda([overdue], today)
    assert agenda[5].contacts == [overdue]


def test_agenda_skips_contacts_without_due_date():
    agenda = project_agenda([_contact(last=None)], date(2024, 6, 10))
    assert all(not day.contacts for day in agenda)


# --- sort_contacts ---


def test_sort_pinned_first_by_name():
    contacts = [
        _contact("zed", id=1, is_pinned=True),
        _contact("Amy", id=2),
        _contact("bea", id=3, is_pinned=True),
    ]
    ordered = sort_contacts(contacts, "newest", today=date(2024, 6, 10))
    assert [c.name for c in ordered] == ["bea", "zed", "Amy"]


def test_sort_newest_and_reverse():
    contacts = [_contact("A", id=1), _contact("B", id=2), _contact("C", id=3)]
    assert [c.id for c in sort_contacts(contacts, "newest")] == [3, 2, 1]
    assert [c.id for c in sort_contacts(contacts, "newest", descending=False)] == [1, 2, 3]


def test_sort_overdue_puts_longest_overdue_first():
    today = date(2024, 6, 10)
    contacts = [
        _contact("Recent", last="2024-06-09T00:00:00Z", freq=7, id=1),
        _contact("Ancient", last="2024-01-01T00:00:00Z", freq=7, id=2),
        _contact("Never", last=None, id=3),
    ]
    ordered = sort_contacts(contacts, "overdue", today=today)
    assert [c.name for c in ordered] == ["Ancient", "Recent", "Never"]


def test_sort_closest_by_next_due_date():
    today = date(2024, 6, 10)
    contacts = [
        _contact("Later", last="2024-06-09T00:00:00Z", freq=30, id=1),
        _contact("Soon", last="2024-06-05T00:00:00Z", freq=7, id=2),
    ]
    assert [c.name for c in sort_contacts(contacts, "closest", today=today)] == ["Soon", "Later"]


def test_sort_rejects_unknown_option():
    with pytest.raises(ValueError):
        sort_contacts([], "random")
