"""Async command dispatcher.

Every network call is a ``Command`` tagged with a ``ResourceKey`` and a fresh
correlation token. The dispatcher remembers the latest token per key; a
``Completion`` is forwarded only while its token is still the latest one, so a
superseded or cancelled request can finish whenever it likes and its result is
simply dropped.

Execution is delegated to a runner (``Callable[[Command], None]``). The UI
runner executes the call in a worker thread and hands the completion back on
the event loop; tests use a runner that completes commands by hand. A runner
must never deliver a completion before ``dispatch`` has returned its token.
"""

from __future__ import annotations

import enum
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Hashable, Iterator, List, Optional

from .errors import ErrorKind, TrackerError, classify

logger = logging.getLogger('jira_task_viewer.dispatcher')

NEW_WORKLOG = "new"


class ResourceKind(enum.Enum):
    BOARDS = "boards"
    ISSUES_LIST = "issues_list"
    ISSUE_DETAIL = "issue_detail"
    WORKLOGS_LIST = "worklogs_list"
    WORKLOG_MUTATION = "worklog_mutation"


@dataclass(frozen=True)
class ResourceKey:
    kind: ResourceKind
    ident: Optional[str] = None

    @classmethod
    def boards(cls) -> "ResourceKey":
        return cls(ResourceKind.BOARDS)

    @classmethod
    def issues(cls, board_id: int) -> "ResourceKey":
        return cls(ResourceKind.ISSUES_LIST, str(board_id))

    @classmethod
    def issue(cls, issue_id: str) -> "ResourceKey":
        return cls(ResourceKind.ISSUE_DETAIL, issue_id)

    @classmethod
    def worklogs(cls, issue_id: str) -> "ResourceKey":
        return cls(ResourceKind.WORKLOGS_LIST, issue_id)

    @classmethod
    def worklog_mutation(cls, worklog_id: Optional[str] = None) -> "ResourceKey":
        return cls(ResourceKind.WORKLOG_MUTATION, worklog_id or NEW_WORKLOG)

    def __str__(self) -> str:
        return self.kind.value if self.ident is None else f"{self.kind.value}({self.ident})"


class RequestKind(enum.Enum):
    LIST_BOARDS = "list_boards"
    LIST_ISSUES = "list_issues"
    GET_ISSUE = "get_issue"
    LIST_WORKLOGS = "list_worklogs"
    CREATE_WORKLOG = "create_worklog"
    UPDATE_WORKLOG = "update_worklog"
    DELETE_WORKLOG = "delete_worklog"

    @property
    def is_mutation(self) -> bool:
        return self in (RequestKind.CREATE_WORKLOG, RequestKind.UPDATE_WORKLOG, RequestKind.DELETE_WORKLOG)


@dataclass(frozen=True)
class Command:
    key: ResourceKey
    token: int
    kind: RequestKind
    call: Callable[[], Any] = field(compare=False, repr=False)
    context: Any = None


@dataclass
class InFlightRequest:
    key: ResourceKey
    token: int
    kind: RequestKind
    scope: Optional[Hashable] = None
    fingerprint: Optional[Hashable] = None


@dataclass(frozen=True)
class Completion:
    key: ResourceKey
    token: int
    kind: RequestKind
    payload: Any = None
    error: Optional[TrackerError] = None
    context: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None


# process-wide so tokens never repeat across dispatcher instances
_tokens = itertools.count(1)


class Dispatcher:
    def __init__(self, runner: Callable[[Command], None]):
        self._runner = runner
        self._in_flight: Dict[ResourceKey, InFlightRequest] = {}
        self.superseded = 0
        self.dropped = 0

    def dispatch(
        self,
        key: ResourceKey,
        kind: RequestKind,
        call: Callable[[], Any],
        scope: Optional[Hashable] = None,
        fingerprint: Optional[Hashable] = None,
        context: Any = None,
    ) -> Optional[int]:
        """Issue ``call`` for ``key``; returns its token, or None when rejected.

        An identical idempotent request already in flight (same non-None
        fingerprint) makes this a no-op. Any other request for the same key is
        superseded: its token is forgotten and its result will be discarded.
        """
        current = self._in_flight.get(key)
        if current is not None:
            if fingerprint is not None and current.fingerprint == fingerprint:
                logger.debug("dispatch %s ignored: identical request %d in flight", key, current.token)
                return None
            logger.debug("dispatch %s supersedes token %d", key, current.token)
            self.superseded += 1
        token = next(_tokens)
        self._in_flight[key] = InFlightRequest(key=key, token=token, kind=kind, scope=scope, fingerprint=fingerprint)
        logger.debug("dispatch %s %s token=%d", kind.value, key, token)
        self._runner(Command(key=key, token=token, kind=kind, call=call, context=context))
        return token

    def accept(self, completion: Completion) -> bool:
        """Settle ``completion``; False means it is stale and must be ignored."""
        current = self._in_flight.get(completion.key)
        if current is None or current.token != completion.token:
            self.dropped += 1
            logger.debug("%s: dropping token %d for %s", ErrorKind.STALE_RESULT.value, completion.token, completion.key)
            return False
        del self._in_flight[completion.key]
        return True

    def cancel(self, key: ResourceKey) -> Optional[InFlightRequest]:
        req = self._in_flight.pop(key, None)
        if req is not None:
            logger.debug("cancel %s token=%d", key, req.token)
        return req

    def cancel_scope(self, scope: Hashable) -> List[InFlightRequest]:
        """Forget every request spawned by ``scope`` (a screen being popped)."""
        victims = [req for req in self._in_flight.values() if req.scope == scope]
        for req in victims:
            self.cancel(req.key)
        return victims

    def is_in_flight(self, key: ResourceKey) -> bool:
        return key in self._in_flight

    def latest_token(self, key: ResourceKey) -> Optional[int]:
        req = self._in_flight.get(key)
        return req.token if req is not None else None

    def in_flight(self) -> Iterator[InFlightRequest]:
        return iter(list(self._in_flight.values()))

    def __len__(self) -> int:
        return len(self._in_flight)


def run_command(command: Command) -> Completion:
    """Execute ``command.call`` synchronously and wrap the outcome."""
    try:
        payload = command.call()
    except Exception as exc:
        err = classify(exc)
        logger.warning("%s %s failed (%s): %s", command.kind.value, command.key, err.kind.value, err.message)
        return Completion(key=command.key, token=command.token, kind=command.kind, error=err, context=command.context)
    return Completion(key=command.key, token=command.token, kind=command.kind, payload=payload, context=command.context)
