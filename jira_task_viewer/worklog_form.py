from __future__ import annotations

import datetime as dt
import re
from dataclasses import dataclass
from typing import Optional

from .errors import ValidationError
from .models import Worklog, WorklogInput, format_duration

WORKLOG_FIELDS = ("date", "time", "duration", "comment")
MAX_DURATION_SECONDS = 24 * 3600
MAX_COMMENT_LEN = 2000

_DURATION_PART = re.compile(r"(\d+)\s*([hms])", re.IGNORECASE)
_DURATION_FULL = re.compile(r"(\s*\d+\s*[hms]\s*)+", re.IGNORECASE)
_UNIT_SECONDS = {"h": 3600, "m": 60, "s": 1}
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{1,2}:\d{2}$")


def parse_duration(text: str) -> int:
    """Seconds from ``1h 30m`` / ``45m`` / ``2h`` / ``3600`` (bare number = seconds)."""
    raw = (text or "").strip()
    if not raw:
        raise ValidationError("Duration is required")
    if raw.isdigit():
        return int(raw)
    if not _DURATION_FULL.fullmatch(raw):
        raise ValidationError(f"Bad duration '{raw}' (use e.g. 1h 30m)")
    total = 0
    for m in _DURATION_PART.finditer(raw):
        total += int(m.group(1)) * _UNIT_SECONDS[m.group(2).lower()]
    return total


@dataclass
class WorklogDraft:
    date: str = ""
    time: str = ""
    duration: str = ""
    comment: str = ""
    editing_id: Optional[str] = None
    focus: int = 0
    pending_token: Optional[int] = None  # set while the save is in flight

    @classmethod
    def for_create(cls, now: Optional[dt.datetime] = None) -> "WorklogDraft":
        now = now or dt.datetime.now()
        return cls(date=now.date().isoformat(), time=now.strftime("%H:%M"))

    @classmethod
    def for_edit(cls, worklog: Worklog, now: Optional[dt.datetime] = None) -> "WorklogDraft":
        started = worklog.started_at or now or dt.datetime.now()
        if started.tzinfo is not None:
            started = started.astimezone()
        return cls(
            date=started.date().isoformat(),
            time=started.strftime("%H:%M"),
            duration=format_duration(worklog.time_spent_seconds),
            comment=worklog.comment or "",
            editing_id=worklog.id,
        )

    @property
    def submitting(self) -> bool:
        return self.pending_token is not None

    @property
    def mode(self) -> str:
        return "edit" if self.editing_id else "create"

    @property
    def focused_field(self) -> str:
        return WORKLOG_FIELDS[self.focus % len(WORKLOG_FIELDS)]

    def next_field(self, step: int = 1) -> None:
        self.focus = (self.focus + step) % len(WORKLOG_FIELDS)

    def input_char(self, ch: str) -> None:
        name = self.focused_field
        value = getattr(self, name)
        if name == "comment":
            if len(value) < MAX_COMMENT_LEN:
                setattr(self, name, value + ch)
            return
        # structured fields only take the characters their format uses
        allowed = {"date": "0123456789-", "time": "0123456789:", "duration": "0123456789hmsHMS "}[name]
        if ch in allowed:
            setattr(self, name, value + ch)

    def delete_char(self) -> None:
        name = self.focused_field
        setattr(self, name, getattr(self, name)[:-1])

    def validate(self) -> WorklogInput:
        """Structural checks; raises ``ValidationError`` before anything is sent."""
        date_s = self.date.strip()
        time_s = self.time.strip()
        if not _DATE_RE.match(date_s):
            raise ValidationError(f"Bad date '{date_s}' (use YYYY-MM-DD)")
        if not _TIME_RE.match(time_s):
            raise ValidationError(f"Bad time '{time_s}' (use HH:MM)")
        try:
            day = dt.date.fromisoformat(date_s)
            hh, mm = (int(p) for p in time_s.split(":"))
            started = dt.datetime.combine(day, dt.time(hh, mm))
        except ValueError:
            raise ValidationError(f"Invalid date/time '{date_s} {time_s}'")
        seconds = parse_duration(self.duration)
        if seconds <= 0:
            raise ValidationError("Cannot log 0 time")
        if seconds > MAX_DURATION_SECONDS:
            raise ValidationError("Duration exceeds 24h")
        started = started.astimezone()  # local wall time -> aware
        comment = self.comment.strip() or None
        return WorklogInput(started_at=started, time_spent_seconds=seconds, comment=comment)
