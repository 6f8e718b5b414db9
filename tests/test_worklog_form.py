import datetime as dt

import pytest

from jira_task_viewer.errors import ErrorKind, ValidationError
from jira_task_viewer.worklog_form import WorklogDraft, parse_duration

from helpers import make_worklog


@pytest.mark.parametrize("text,seconds", [
    ("1h 30m", 5400),
    ("2h", 7200),
    ("45m", 2700),
    ("1h30m", 5400),
    ("90", 90),
])
def test_parse_duration(text, seconds):
    assert parse_duration(text) == seconds


@pytest.mark.parametrize("text", ["", "abc", "1x", "h"])
def test_parse_duration_rejects_garbage(text):
    with pytest.raises(ValidationError):
        parse_duration(text)


def test_create_draft_prefills_now():
    draft = WorklogDraft.for_create(dt.datetime(2024, 3, 5, 14, 7))
    assert (draft.date, draft.time, draft.duration) == ("2024-03-05", "14:07", "")
    assert draft.mode == "create"
    assert not draft.submitting


def test_edit_draft_copies_worklog():
    wl = make_worklog(id="42", time_spent_seconds=5400, comment="Pairing",
                      started_at=dt.datetime(2024, 1, 10, 9, 0))
    draft = WorklogDraft.for_edit(wl)
    assert draft.editing_id == "42"
    assert draft.mode == "edit"
    assert draft.duration == "1h 30m"
    assert draft.time == "09:00"
    assert draft.comment == "Pairing"


def test_edit_draft_without_start_time_uses_now():
    wl = make_worklog(id="43", started_at=None)
    draft = WorklogDraft.for_edit(wl, dt.datetime(2024, 2, 1, 8, 15))
    assert (draft.date, draft.time) == ("2024-02-01", "08:15")
    assert draft.editing_id == "43"


def test_typing_respects_field_alphabet():
    draft = WorklogDraft()
    draft.input_char("2")
    draft.input_char("x")
    assert draft.date == "2"
    draft.next_field(2)
    assert draft.focused_field == "duration"
    for ch in "1h 5m":
        draft.input_char(ch)
    draft.delete_char()
    assert draft.duration == "1h 5"
    draft.next_field()
    draft.input_char("q")
    assert draft.comment == "q"
    draft.next_field()
    assert draft.focused_field == "date"
    draft.next_field(-1)
    assert draft.focused_field == "comment"


def test_validate_builds_input():
    draft = WorklogDraft(date="2024-01-15", time="9:30", duration="1h 15m", comment="  review  ")
    entry = draft.validate()
    assert entry.time_spent_seconds == 4500
    assert entry.comment == "review"
    assert entry.started_at.tzinfo is not None
    assert (entry.started_at.hour, entry.started_at.minute) == (9, 30)


@pytest.mark.parametrize("fields,message", [
    (dict(date="2024-13-01", time="09:00", duration="1h"), "Invalid date"),
    (dict(date="15/01/2024", time="09:00", duration="1h"), "Bad date"),
    (dict(date="2024-01-15", time="9", duration="1h"), "Bad time"),
    (dict(date="2024-01-15", time="25:00", duration="1h"), "Invalid date"),
    (dict(date="2024-01-15", time="09:00", duration="0m"), "Cannot log 0 time"),
    (dict(date="2024-01-15", time="09:00", duration="25h"), "exceeds 24h"),
])
def test_validate_rejects(fields, message):
    with pytest.raises(ValidationError) as info:
        WorklogDraft(**fields).validate()
    assert message in info.value.message
    assert info.value.kind is ErrorKind.VALIDATION
