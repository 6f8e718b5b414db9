# Domain records and the use-case port.
#
# Records are frozen so that a snapshot of a list is a value: rollback compares
# and restores by equality, never by identity.

from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass
from typing import List, Optional, Protocol, Tuple

from .filters import FilterState


class IssueStatus(enum.Enum):
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    OTHER = "other"


_STATUS_NAMES = {
    "to do": IssueStatus.TODO,
    "todo": IssueStatus.TODO,
    "new": IssueStatus.TODO,
    "open": IssueStatus.TODO,
    "in progress": IssueStatus.IN_PROGRESS,
    "in review": IssueStatus.IN_PROGRESS,
    "done": IssueStatus.DONE,
    "closed": IssueStatus.DONE,
    "resolved": IssueStatus.DONE,
}


def status_from_name(name: Optional[str]) -> IssueStatus:
    return _STATUS_NAMES.get((name or "").strip().lower(), IssueStatus.OTHER)


@dataclass(frozen=True)
class Board:
    id: int
    name: str
    project_key: str = "UNKNOWN"
    board_type: str = "scrum"


@dataclass(frozen=True)
class Issue:
    key: str
    summary: str
    status: IssueStatus = IssueStatus.TODO
    status_name: str = ""
    assignee: Optional[str] = None
    priority: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class IssuePage:
    issues: Tuple[Issue, ...]
    next_cursor: Optional[int]
    has_more: bool
    total: Optional[int] = None


@dataclass(frozen=True)
class Worklog:
    id: str
    issue_key: str
    time_spent_seconds: int
    started_at: dt.datetime
    comment: Optional[str] = None
    author: str = ""
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    pending: bool = False  # optimistic entry not yet confirmed by the server


@dataclass(frozen=True)
class WorklogInput:
    """Validated worklog payload, ready to be sent to the tracker."""
    started_at: dt.datetime
    time_spent_seconds: int
    comment: Optional[str] = None


def format_duration(seconds: int) -> str:
    """Jira-style duration: ``1h 30m``, ``2h``, ``45m``."""
    seconds = max(0, int(seconds))
    hours, rem = divmod(seconds, 3600)
    minutes = rem // 60
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    if minutes:
        return f"{minutes}m"
    return "1m" if seconds else "0m"


class TrackerPort(Protocol):
    """Use cases the viewer consumes. Failures raise ``TrackerError`` subclasses."""

    def list_boards(self) -> List[Board]:
        ...

    def list_issues(self, board_id: int, filter: FilterState, cursor: Optional[int], page_size: int) -> IssuePage:
        ...

    def get_issue(self, issue_id: str) -> Issue:
        ...

    def list_worklogs(self, issue_id: str, page_cursor: Optional[int] = None, page_size: int = 50) -> List[Worklog]:
        ...

    def create_worklog(self, issue_id: str, entry: WorklogInput) -> Worklog:
        ...

    def update_worklog(self, issue_id: str, worklog_id: str, entry: WorklogInput) -> Worklog:
        ...

    def delete_worklog(self, issue_id: str, worklog_id: str) -> None:
        ...

