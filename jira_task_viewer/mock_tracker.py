"""In-memory tracker used for the offline demo (``--mock`` / ``MOCK_FETCH=1``) and tests."""
from __future__ import annotations

import datetime as dt
import itertools
import logging
import threading
from typing import Dict, List, Optional

from .errors import NotFound, TrackerError
from .filters import AssigneeFilter, FilterState, SortOrder, StatusFilter
from .models import Board, Issue, IssuePage, IssueStatus, Worklog, WorklogInput

logger = logging.getLogger('jira_task_viewer.mock')

ME = "me@example.com"

_STATUS_FOR_FILTER = {
    StatusFilter.TODO: IssueStatus.TODO,
    StatusFilter.IN_PROGRESS: IssueStatus.IN_PROGRESS,
    StatusFilter.DONE: IssueStatus.DONE,
}


def generate_mock_issues(project_key: str, count: int, now: Optional[dt.datetime] = None) -> List[Issue]:
    """Synthetic issues for offline demo & testing."""
    now = now or dt.datetime(2024, 1, 15, 9, 0, tzinfo=dt.timezone.utc)
    statuses = [("To Do", IssueStatus.TODO), ("In Progress", IssueStatus.IN_PROGRESS), ("Done", IssueStatus.DONE)]
    assignees = [ME, None, "someone@example.com"]
    priorities = ["High", "Medium", "Low"]
    issues: List[Issue] = []
    for i in range(1, count + 1):
        status_name, status = statuses[(i // 3) % len(statuses)]
        issues.append(Issue(
            key=f"{project_key}-{i}",
            summary=f"Task {i} of {project_key}",
            status=status,
            status_name=status_name,
            assignee=assignees[i % len(assignees)],
            priority=priorities[i % len(priorities)],
            created_at=now - dt.timedelta(days=i),
            updated_at=now - dt.timedelta(hours=(i * 7) % 50),
            description=f"Synthetic issue number {i}.",
        ))
    return issues


class MockTracker:
    """Implements ``TrackerPort`` over plain lists.

    ``fail_next(method, error)`` makes the next call of ``method`` raise
    ``error``; tests use it to exercise rollback paths.
    """

    def __init__(self, boards: Optional[List[Board]] = None, issues_per_board: int = 45):
        self.boards = boards if boards is not None else [
            Board(1, "Alpha board", "ALPHA"),
            Board(2, "Beta board", "BETA", "kanban"),
        ]
        self.issues: Dict[int, List[Issue]] = {
            b.id: generate_mock_issues(b.project_key, issues_per_board) for b in self.boards
        }
        self.worklogs: Dict[str, List[Worklog]] = {}
        self.calls: List[str] = []
        self._failures: Dict[str, List[TrackerError]] = {}
        self._ids = itertools.count(10000)
        self._lock = threading.Lock()

    def fail_next(self, method: str, error: TrackerError) -> None:
        self._failures.setdefault(method, []).append(error)

    def _enter(self, method: str) -> None:
        with self._lock:
            self.calls.append(method)
            queued = self._failures.get(method)
            if queued:
                raise queued.pop(0)

    def _issue(self, issue_id: str) -> Issue:
        for issues in self.issues.values():
            for issue in issues:
                if issue.key == issue_id:
                    return issue
        raise NotFound(f"Issue {issue_id} not found", 404)

    def list_boards(self) -> List[Board]:
        self._enter("list_boards")
        return list(self.boards)

    def list_issues(self, board_id: int, filter: FilterState, cursor: Optional[int], page_size: int) -> IssuePage:
        self._enter("list_issues")
        if board_id not in self.issues:
            raise NotFound(f"Board {board_id} not found", 404)
        rows = self.issues[board_id]
        if filter.assignee is AssigneeFilter.ME:
            rows = [r for r in rows if r.assignee == ME]
        elif filter.assignee is AssigneeFilter.UNASSIGNED:
            rows = [r for r in rows if r.assignee is None]
        if filter.status in _STATUS_FOR_FILTER:
            rows = [r for r in rows if r.status is _STATUS_FOR_FILTER[filter.status]]
        sort_key = (lambda r: r.updated_at) if filter.sort is SortOrder.UPDATED_DESC else (lambda r: r.created_at)
        rows = sorted(rows, key=sort_key, reverse=True)
        start = cursor or 0
        chunk = rows[start:start + page_size]
        end = start + len(chunk)
        has_more = end < len(rows)
        return IssuePage(issues=tuple(chunk), next_cursor=end if has_more else None, has_more=has_more, total=len(rows))

    def get_issue(self, issue_id: str) -> Issue:
        self._enter("get_issue")
        return self._issue(issue_id)

    def list_worklogs(self, issue_id: str, page_cursor: Optional[int] = None, page_size: int = 50) -> List[Worklog]:
        self._enter("list_worklogs")
        self._issue(issue_id)
        start = page_cursor or 0
        return list(self.worklogs.get(issue_id, [])[start:start + page_size])

    def create_worklog(self, issue_id: str, entry: WorklogInput) -> Worklog:
        self._enter("create_worklog")
        self._issue(issue_id)
        now = dt.datetime.now(dt.timezone.utc)
        wl = Worklog(id=str(next(self._ids)), issue_key=issue_id, time_spent_seconds=entry.time_spent_seconds,
                     started_at=entry.started_at, comment=entry.comment, author=ME, created_at=now, updated_at=now)
        self.worklogs.setdefault(issue_id, []).append(wl)
        logger.info("mock: created worklog %s on %s", wl.id, issue_id)
        return wl

    def update_worklog(self, issue_id: str, worklog_id: str, entry: WorklogInput) -> Worklog:
        self._enter("update_worklog")
        entries = self.worklogs.get(issue_id, [])
        for idx, wl in enumerate(entries):
            if wl.id == worklog_id:
                updated = Worklog(id=wl.id, issue_key=issue_id, time_spent_seconds=entry.time_spent_seconds,
                                  started_at=entry.started_at, comment=entry.comment, author=wl.author,
                                  created_at=wl.created_at, updated_at=dt.datetime.now(dt.timezone.utc))
                entries[idx] = updated
                return updated
        raise NotFound(f"Worklog {worklog_id} not found", 404)

    def delete_worklog(self, issue_id: str, worklog_id: str) -> None:
        self._enter("delete_worklog")
        entries = self.worklogs.get(issue_id, [])
        for idx, wl in enumerate(entries):
            if wl.id == worklog_id:
                del entries[idx]
                return None
        raise NotFound(f"Worklog {worklog_id} not found", 404)
