"""Jira Cloud REST adapter implementing ``TrackerPort``.

Uses the agile API for boards and board issues and the v3 platform API for
issues and worklogs. All calls are blocking; the UI runs them in a worker
thread.
"""
from __future__ import annotations

import datetime as dt
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from .errors import NotFound, RemoteRejection, TrackerError, TransportError, Unauthorized
from .filters import AssigneeFilter, FilterState, SortOrder, StatusFilter
from .models import Board, Issue, IssuePage, Worklog, WorklogInput, status_from_name

logger = logging.getLogger('jira_task_viewer.jira')

RETRY_STATUSES = (429, 502, 503, 504)
ISSUE_FIELDS = "summary,status,assignee,priority,created,updated,description"

_JQL_ASSIGNEE = {
    AssigneeFilter.ME: "assignee = currentUser()",
    AssigneeFilter.UNASSIGNED: "assignee is EMPTY",
    AssigneeFilter.ALL: None,
}
_JQL_STATUS = {
    StatusFilter.TODO: 'status = "To Do"',
    StatusFilter.IN_PROGRESS: 'status = "In Progress"',
    StatusFilter.DONE: 'status = "Done"',
    StatusFilter.ALL: None,
}
_JQL_ORDER = {
    SortOrder.UPDATED_DESC: "ORDER BY updated DESC",
    SortOrder.CREATED_DESC: "ORDER BY created DESC",
}


def build_jql(f: FilterState) -> str:
    clauses = [c for c in (_JQL_ASSIGNEE[f.assignee], _JQL_STATUS[f.status]) if c]
    order = _JQL_ORDER[f.sort]
    if not clauses:
        return order
    return f"{' AND '.join(clauses)} {order}"


def to_adf(text: str) -> Dict[str, Any]:
    """Wrap plain text in a one-paragraph Atlassian Document Format doc."""
    return {
        "type": "doc",
        "version": 1,
        "content": [{"type": "paragraph", "content": [{"type": "text", "text": text}]}],
    }


def flatten_adf(node: Any) -> Optional[str]:
    """Concatenate the text of an ADF document; paragraphs become lines."""
    if node is None:
        return None
    if isinstance(node, str):
        return node
    lines: List[str] = []
    for block in node.get("content") or []:
        parts = []
        for inline in block.get("content") or []:
            if inline.get("text"):
                parts.append(inline["text"])
        lines.append("".join(parts))
    text = "\n".join(lines).strip()
    return text or None


def parse_jira_datetime(value: Optional[str]) -> Optional[dt.datetime]:
    if not value:
        return None
    for fmt in ("%Y-%m-%dT%H:%M:%S.%f%z", "%Y-%m-%dT%H:%M:%S%z"):
        try:
            return dt.datetime.strptime(value, fmt)
        except ValueError:
            continue
    try:
        return dt.datetime.fromisoformat(value)
    except ValueError:
        logger.warning("unparseable Jira timestamp %r", value)
        return None


def format_jira_datetime(value: dt.datetime) -> str:
    if value.tzinfo is None:
        value = value.astimezone()
    return value.strftime("%Y-%m-%dT%H:%M:%S.000%z")


def _parse_retry_after_seconds(resp: Optional[requests.Response]) -> Optional[float]:
    if resp is None:
        return None
    ra = resp.headers.get('Retry-After') if resp.headers is not None else None
    if ra:
        try:
            return max(0.0, float(ra))
        except ValueError:
            return None
    return None


def board_from_json(data: Dict[str, Any]) -> Board:
    location = data.get("location") or {}
    return Board(
        id=int(data["id"]),
        name=data.get("name") or "",
        project_key=location.get("projectKey") or "UNKNOWN",
        board_type=data.get("type") or "scrum",
    )


def issue_from_json(data: Dict[str, Any]) -> Issue:
    fields = data.get("fields") or {}
    status_name = (fields.get("status") or {}).get("name") or ""
    return Issue(
        key=data["key"],
        summary=fields.get("summary") or "",
        status=status_from_name(status_name),
        status_name=status_name,
        assignee=(fields.get("assignee") or {}).get("displayName"),
        priority=(fields.get("priority") or {}).get("name"),
        created_at=parse_jira_datetime(fields.get("created")),
        updated_at=parse_jira_datetime(fields.get("updated")),
        description=flatten_adf(fields.get("description")),
    )


def worklog_from_json(data: Dict[str, Any], issue_key: str) -> Worklog:
    return Worklog(
        id=str(data["id"]),
        issue_key=issue_key,
        time_spent_seconds=int(data.get("timeSpentSeconds") or 0),
        started_at=parse_jira_datetime(data.get("started")),
        comment=flatten_adf(data.get("comment")),
        author=(data.get("author") or {}).get("displayName") or "",
        created_at=parse_jira_datetime(data.get("created")),
        updated_at=parse_jira_datetime(data.get("updated")),
    )


def worklog_payload(entry: WorklogInput) -> Dict[str, Any]:
    payload: Dict[str, Any] = {
        "timeSpentSeconds": entry.time_spent_seconds,
        "started": format_jira_datetime(entry.started_at),
    }
    if entry.comment:
        payload["comment"] = to_adf(entry.comment)
    return payload


def _session(email: str, api_token: str) -> requests.Session:
    s = requests.Session()
    s.auth = (email, api_token)
    s.headers["Accept"] = "application/json"
    return s


class JiraClient:
    def __init__(
        self,
        base_url: str,
        email: str,
        api_token: str,
        timeout: float = 30,
        session: Optional[requests.Session] = None,
        max_total_wait: float = 60,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session if session is not None else _session(email, api_token)
        self.max_total_wait = max_total_wait
        self._sleep = sleep

    # -- transport --------------------------------------------------------
    def _request(self, method: str, path: str, what: str, **kwargs) -> requests.Response:
        """Send a request, retrying rate limits and gateway errors with backoff."""
        url = f"{self.base_url}{path}"
        backoff = 2.0
        total_wait = 0.0
        while True:
            try:
                resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except (requests.exceptions.ConnectionError, requests.exceptions.Timeout) as exc:
                raise TransportError(f"Network error: {exc}") from exc
            status = resp.status_code
            if status in RETRY_STATUSES and (method == "GET" or status == 429):
                wait_s = _parse_retry_after_seconds(resp)
                if wait_s is None:
                    wait_s = backoff
                    backoff = min(30.0, backoff * 2)
                if total_wait + wait_s <= self.max_total_wait:
                    logger.info("%s %s: HTTP %d; waiting %.0fs", method, path, status, wait_s)
                    self._sleep(wait_s)
                    total_wait += wait_s
                    continue
            self._raise_for_status(resp, what)
            return resp

    @staticmethod
    def _raise_for_status(resp: requests.Response, what: str) -> None:
        status = resp.status_code
        if status < 400:
            return
        logger.warning("Jira returned %d for %s: %s", status, what, (resp.text or "")[:300])
        if status in (401, 403):
            raise Unauthorized(status=status)
        if status == 404:
            raise NotFound(f"{what} not found", status)
        raise RemoteRejection(f"Jira API Error: {status}", status)

    def _json(self, resp: requests.Response, what: str) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteRejection(f"Failed to parse {what}: {exc}", resp.status_code) from exc

    # -- TrackerPort -------------------------------------------------------
    def list_boards(self) -> List[Board]:
        resp = self._request("GET", "/rest/agile/1.0/board", "Boards", params={"maxResults": 100})
        data = self._json(resp, "boards")
        return [board_from_json(b) for b in data.get("values") or []]

    def list_issues(self, board_id: int, filter: FilterState, cursor: Optional[int], page_size: int) -> IssuePage:
        start_at = cursor or 0
        jql = build_jql(filter)
        logger.debug("board %s issues startAt=%d jql=%s", board_id, start_at, jql)
        resp = self._request(
            "GET", f"/rest/agile/1.0/board/{board_id}/issue", f"Board {board_id}",
            params={"startAt": start_at, "maxResults": page_size, "jql": jql, "fields": ISSUE_FIELDS},
        )
        data = self._json(resp, "issues")
        issues = tuple(issue_from_json(i) for i in data.get("issues") or [])
        total = data.get("total")
        end = int(data.get("startAt", start_at)) + len(issues)
        has_more = bool(issues) and (end < total if total is not None else len(issues) >= page_size)
        return IssuePage(issues=issues, next_cursor=end if has_more else None, has_more=has_more, total=total)

    def get_issue(self, issue_id: str) -> Issue:
        resp = self._request("GET", f"/rest/api/3/issue/{issue_id}", f"Issue {issue_id}",
                             params={"fields": ISSUE_FIELDS})
        return issue_from_json(self._json(resp, "issue"))

    def list_worklogs(self, issue_id: str, page_cursor: Optional[int] = None, page_size: int = 50) -> List[Worklog]:
        resp = self._request(
            "GET", f"/rest/api/3/issue/{issue_id}/worklog", f"Issue {issue_id}",
            params={"startAt": page_cursor or 0, "maxResults": page_size},
        )
        data = self._json(resp, "worklogs")
        return [worklog_from_json(w, issue_id) for w in data.get("worklogs") or []]

    def get_worklog(self, issue_id: str, worklog_id: str) -> Worklog:
        resp = self._request("GET", f"/rest/api/3/issue/{issue_id}/worklog/{worklog_id}", f"Worklog {worklog_id}")
        return worklog_from_json(self._json(resp, "worklog"), issue_id)

    def create_worklog(self, issue_id: str, entry: WorklogInput) -> Worklog:
        resp = self._request("POST", f"/rest/api/3/issue/{issue_id}/worklog", f"Issue {issue_id}",
                             json=worklog_payload(entry))
        created = self._json(resp, "worklog")
        return self._reread_worklog(issue_id, str(created["id"]), entry, created)

    def update_worklog(self, issue_id: str, worklog_id: str, entry: WorklogInput) -> Worklog:
        resp = self._request("PUT", f"/rest/api/3/issue/{issue_id}/worklog/{worklog_id}", f"Worklog {worklog_id}",
                             json=worklog_payload(entry))
        try:
            written = resp.json()
        except ValueError:
            written = {}
        return self._reread_worklog(issue_id, worklog_id, entry, written if isinstance(written, dict) else {})

    def _reread_worklog(self, issue_id: str, worklog_id: str, entry: WorklogInput,
                        written: Dict[str, Any]) -> Worklog:
        """Fetch the stored record, or build it from the write when that read fails."""
        try:
            return self.get_worklog(issue_id, worklog_id)
        except TrackerError as exc:
            logger.warning("re-read of worklog %s on %s failed, using the write response: %s",
                           worklog_id, issue_id, exc.message)
        data = dict(worklog_payload(entry))
        data.update(written)
        data["id"] = worklog_id
        return worklog_from_json(data, issue_id)

    def delete_worklog(self, issue_id: str, worklog_id: str) -> None:
        self._request("DELETE", f"/rest/api/3/issue/{issue_id}/worklog/{worklog_id}", f"Worklog {worklog_id}")
