"""Application controller.

``AppController`` is the single owner of UI state. Input commands come in via
``handle``, network results via ``handle_completion``, time via ``tick``; the
renderer only ever sees the immutable ``Snapshot`` returned by ``snapshot``.
Every screen kind has its own command table, so adding a screen without its
handlers fails at construction time.
"""
from __future__ import annotations

import dataclasses
import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from .dispatcher import Command, Completion, Dispatcher, ResourceKey, RequestKind
from .errors import ConcurrentMutationRejected, NotFound, TrackerError, ValidationError, user_message
from .filters import FILTER_FIELDS, FilterEngine, FilterState
from .keys import CommandKind, Direction, InputCommand
from .models import Board, Issue, TrackerPort, Worklog
from .mutations import MutationOp, MutationTracker
from .navigation import Screen, ScreenFrame, ScreenKind, ScreenStack
from .notifications import DEFAULT_TTL, Notification, NotificationQueue
from .pagination import DEFAULT_PAGE_SIZE, PageRequest, PaginationCursor
from .worklog_form import WorklogDraft

logger = logging.getLogger('jira_task_viewer.app')

DEFAULT_WORKLOG_PAGE_SIZE = 50

Handler = Callable[[InputCommand], None]


@dataclass(frozen=True)
class Snapshot:
    """Read-only view of the state, rebuilt for every render."""
    screen: Screen
    stack: Tuple[Screen, ...]
    selected: int
    selections: Tuple[int, ...]  # selection of every frame, parallel to stack
    boards: Tuple[Board, ...]
    boards_loading: bool
    board_id: Optional[int]
    issues: Tuple[Issue, ...]
    issues_loading: bool
    has_more: bool
    filter: FilterState
    filter_draft: Optional[FilterState]
    filter_field: int
    issue: Optional[Issue]
    issue_loading: bool
    worklogs: Tuple[Worklog, ...]
    worklogs_loading: bool
    draft: Optional[WorklogDraft]
    notifications: Tuple[Notification, ...]
    in_flight: int


@dataclass(frozen=True)
class MutationContext:
    op: MutationOp
    issue_key: str
    screen: Screen
    worklog_id: Optional[str] = None


def _clamp(index: int, size: int) -> int:
    if size <= 0:
        return 0
    return max(0, min(index, size - 1))


class AppController:
    def __init__(
        self,
        port: TrackerPort,
        runner: Callable[[Command], None],
        page_size: int = DEFAULT_PAGE_SIZE,
        worklog_page_size: int = DEFAULT_WORKLOG_PAGE_SIZE,
        notification_ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], dt.datetime] = dt.datetime.now,
    ):
        self.port = port
        self.dispatcher = Dispatcher(runner)
        self.stack = ScreenStack()
        self.filters = FilterEngine()
        self.issues: PaginationCursor[Issue] = PaginationCursor(page_size=page_size)
        self.worklogs = MutationTracker()
        self.notifications = NotificationQueue(ttl=notification_ttl, clock=clock)
        self.worklog_page_size = worklog_page_size
        self._now = now

        self.boards: List[Board] = []
        self.board_id: Optional[int] = None
        self.issue: Optional[Issue] = None
        self.should_quit = False

        self._screen_handlers: Dict[ScreenKind, Dict[CommandKind, Handler]] = {
            ScreenKind.BOARDS: {
                CommandKind.NAVIGATE: self._move_selection,
                CommandKind.SELECT: self._open_board,
                CommandKind.REFRESH: lambda cmd: self.load_boards(),
                CommandKind.CANCEL: self._go_back,
            },
            ScreenKind.BACKLOG: {
                CommandKind.NAVIGATE: self._scroll_backlog,
                CommandKind.SELECT: self._open_issue,
                CommandKind.OPEN_FILTER: self._open_filter,
                CommandKind.REFRESH: lambda cmd: self._reload_issues(),
                CommandKind.CANCEL: self._go_back,
            },
            ScreenKind.ISSUE_DETAIL: {
                CommandKind.NAVIGATE: self._move_selection,
                CommandKind.OPEN_WORKLOG_FORM: self._open_worklog_form,
                CommandKind.OPEN_WORKLOG_LIST: self._open_worklog_list,
                CommandKind.REFRESH: lambda cmd: self._load_issue_detail(),
                CommandKind.CANCEL: self._go_back,
            },
            ScreenKind.FILTER_MODAL: {
                CommandKind.NAVIGATE: self._cycle_filter_value,
                CommandKind.NEXT_FIELD: lambda cmd: self._move_filter_field(1),
                CommandKind.PREV_FIELD: lambda cmd: self._move_filter_field(-1),
                CommandKind.SELECT: self._apply_filter,
                CommandKind.CANCEL: self._go_back,
            },
            ScreenKind.WORKLOG_MODAL: {
                CommandKind.NEXT_FIELD: lambda cmd: self._draft().next_field(1),
                CommandKind.PREV_FIELD: lambda cmd: self._draft().next_field(-1),
                CommandKind.INPUT_CHAR: self._type_char,
                CommandKind.DELETE_CHAR: lambda cmd: self._draft().delete_char(),
                CommandKind.SUBMIT_WORKLOG: self._submit_worklog,
                CommandKind.CANCEL: self._go_back,
            },
            ScreenKind.WORKLOG_LIST_MODAL: {
                CommandKind.NAVIGATE: self._move_selection,
                CommandKind.EDIT_WORKLOG: self._edit_selected_worklog,
                CommandKind.DELETE_WORKLOG: self._delete_selected_worklog,
                CommandKind.OPEN_WORKLOG_FORM: self._open_worklog_form,
                CommandKind.CANCEL: self._go_back,
            },
        }
        missing = set(ScreenKind) - set(self._screen_handlers)
        if missing:
            raise RuntimeError(f"no command table for {sorted(k.value for k in missing)}")

        self._completion_handlers: Dict[RequestKind, Callable[[Completion], None]] = {
            RequestKind.LIST_BOARDS: self._on_boards,
            RequestKind.LIST_ISSUES: self._on_issues_page,
            RequestKind.GET_ISSUE: self._on_issue,
            RequestKind.LIST_WORKLOGS: self._on_worklogs,
            RequestKind.CREATE_WORKLOG: self._on_mutation,
            RequestKind.UPDATE_WORKLOG: self._on_mutation,
            RequestKind.DELETE_WORKLOG: self._on_mutation,
        }

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------
    def start(self) -> None:
        self.load_boards()

    def handle(self, command: InputCommand) -> None:
        if command.kind is CommandKind.QUIT:
            self.should_quit = True
            return
        screen = self.stack.current()
        handler = self._screen_handlers[screen.kind].get(command.kind)
        if handler is None:
            logger.debug("%s ignored on %s", command.kind.value, screen.kind.value)
            return
        handler(command)

    def handle_completion(self, completion: Completion) -> bool:
        """Apply a finished request; False when it was stale and dropped."""
        if not self.dispatcher.accept(completion):
            return False
        self._completion_handlers[completion.kind](completion)
        return True

    def tick(self, now: Optional[float] = None) -> bool:
        return self.notifications.expire(now) > 0

    def snapshot(self) -> Snapshot:
        frame = self.stack.top()
        screen = frame.screen
        filter_frame = self.stack.find(ScreenKind.FILTER_MODAL)
        draft_frame = self.stack.find(ScreenKind.WORKLOG_MODAL)
        draft = dataclasses.replace(draft_frame.draft) if draft_frame is not None else None
        return Snapshot(
            screen=screen,
            stack=tuple(self.stack.screens()),
            selected=frame.selected,
            selections=tuple(self.stack.selections()),
            boards=tuple(self.boards),
            boards_loading=self.dispatcher.is_in_flight(ResourceKey.boards()),
            board_id=self.board_id,
            issues=tuple(self.issues.items),
            issues_loading=self.issues.loading,
            has_more=self.issues.has_more,
            filter=self.filters.current,
            filter_draft=filter_frame.draft if filter_frame is not None else None,
            filter_field=filter_frame.selected if filter_frame is not None else 0,
            issue=self.issue,
            issue_loading=self.issue is not None and self.dispatcher.is_in_flight(ResourceKey.issue(self.issue.key)),
            worklogs=tuple(self.worklogs.entries),
            worklogs_loading=self.issue is not None and self.dispatcher.is_in_flight(ResourceKey.worklogs(self.issue.key)),
            draft=draft,
            notifications=tuple(self.notifications.visible()),
            in_flight=len(self.dispatcher),
        )

    # ------------------------------------------------------------------
    # navigation
    # ------------------------------------------------------------------
    def _pop(self) -> Optional[ScreenFrame]:
        frame = self.stack.pop()
        if frame is None:
            return None
        victims = self.dispatcher.cancel_scope(frame.screen)
        rolled_back = set()
        for req in victims:
            if req.kind.is_mutation:
                pending = self.worklogs.fail(req.token)
                if pending is not None:
                    rolled_back.add(pending.issue_key)
        for issue_key in rolled_back:
            if not self.worklogs.pending_for(issue_key) and issue_key == self.worklogs.issue_key:
                self._load_worklogs(issue_key)
        if frame.screen.kind is ScreenKind.BACKLOG:
            self.issues.reset()
        return frame

    def _go_back(self, cmd: InputCommand) -> None:
        if self._pop() is None:
            self.should_quit = True

    def _move_selection(self, cmd: InputCommand) -> None:
        frame = self.stack.top()
        size = self._list_size(frame.screen.kind)
        if cmd.direction is Direction.UP:
            frame.selected = _clamp(frame.selected - 1, size)
        elif cmd.direction is Direction.DOWN:
            frame.selected = _clamp(frame.selected + 1, size)

    def _list_size(self, kind: ScreenKind) -> int:
        if kind is ScreenKind.BOARDS:
            return len(self.boards)
        if kind is ScreenKind.BACKLOG:
            return len(self.issues)
        return len(self.worklogs.entries)

    # ------------------------------------------------------------------
    # boards
    # ------------------------------------------------------------------
    def load_boards(self) -> Optional[int]:
        return self.dispatcher.dispatch(
            ResourceKey.boards(), RequestKind.LIST_BOARDS, self.port.list_boards,
            scope=Screen.boards(), fingerprint="boards",
        )

    def _on_boards(self, completion: Completion) -> None:
        if not completion.ok:
            self.notifications.error(f"Failed to load boards: {user_message(completion.error)}")
            return
        self.boards = list(completion.payload)
        frame = self.stack.find(ScreenKind.BOARDS)
        frame.selected = _clamp(frame.selected, len(self.boards))

    def _open_board(self, cmd: InputCommand) -> None:
        if not self.boards:
            return
        board = self.boards[_clamp(self.stack.top().selected, len(self.boards))]
        self.board_id = board.id
        self.stack.push(Screen.backlog(board.id))
        self.issues.reset(self.filters.generation)
        self._load_next_page()

    # ------------------------------------------------------------------
    # backlog and pagination
    # ------------------------------------------------------------------
    def _load_next_page(self) -> Optional[int]:
        board_id = self.board_id
        request = self.issues.begin_load()
        if request is None or board_id is None:
            return None
        current = self.filters.current
        fingerprint = (board_id, request.generation, request.epoch, request.cursor)
        token = self.dispatcher.dispatch(
            ResourceKey.issues(board_id), RequestKind.LIST_ISSUES,
            lambda: self.port.list_issues(board_id, current, request.cursor, request.page_size),
            scope=Screen.backlog(board_id), fingerprint=fingerprint, context=request,
        )
        if token is None:
            self.issues.fail_load()
        return token

    def _reload_issues(self) -> None:
        self.issues.reset(self.filters.generation)
        self.stack.top().selected = 0
        self._load_next_page()

    def _scroll_backlog(self, cmd: InputCommand) -> None:
        self._move_selection(cmd)
        frame = self.stack.top()
        if self.issues.should_load_more(frame.selected, len(self.issues)):
            self._load_next_page()

    def _on_issues_page(self, completion: Completion) -> None:
        request: PageRequest = completion.context
        if not self.issues.is_current(request):
            logger.debug("issues page for generation %d epoch %d no longer current", request.generation, request.epoch)
            return
        if not completion.ok:
            self.issues.fail_load()
            self.notifications.error(f"Failed to load issues: {user_message(completion.error)}")
            return
        page = completion.payload
        self.issues.commit_page(page.issues, page.next_cursor, page.has_more)

    def _open_issue(self, cmd: InputCommand) -> None:
        if not len(self.issues):
            return
        issue = self.issues.items[_clamp(self.stack.top().selected, len(self.issues))]
        self.issue = issue
        self.stack.push(Screen.issue_detail(issue.key))
        self.worklogs.load(issue.key, [])
        self._load_issue_detail()

    # ------------------------------------------------------------------
    # filter modal
    # ------------------------------------------------------------------
    def _open_filter(self, cmd: InputCommand) -> None:
        self.stack.push(Screen.filter_modal(), draft=self.filters.current)

    def _move_filter_field(self, step: int) -> None:
        frame = self.stack.top()
        frame.selected = (frame.selected + step) % len(FILTER_FIELDS)

    def _cycle_filter_value(self, cmd: InputCommand) -> None:
        frame = self.stack.top()
        if cmd.direction is Direction.LEFT:
            step = -1
        elif cmd.direction is Direction.RIGHT:
            step = 1
        else:
            # up/down move between fields like Tab
            self._move_filter_field(1 if cmd.direction is Direction.DOWN else -1)
            return
        frame.draft = frame.draft.cycle_field(FILTER_FIELDS[frame.selected], step)

    def _apply_filter(self, cmd: InputCommand) -> None:
        draft = self.stack.top().draft
        before = self.filters.generation
        self._pop()
        self.filters.apply(draft)
        if self.filters.changed_since(before):
            logger.info("filter changed: %s", self.filters.current.summary())
            self._reload_issues()

    # ------------------------------------------------------------------
    # issue detail and worklogs
    # ------------------------------------------------------------------
    def _load_issue_detail(self) -> None:
        issue_key = self.stack.top().screen.issue_id
        self.dispatcher.dispatch(
            ResourceKey.issue(issue_key), RequestKind.GET_ISSUE,
            lambda: self.port.get_issue(issue_key),
            scope=Screen.issue_detail(issue_key), fingerprint=issue_key, context=issue_key,
        )
        self._load_worklogs(issue_key)

    def _load_worklogs(self, issue_key: str) -> Optional[int]:
        page_size = self.worklog_page_size
        return self.dispatcher.dispatch(
            ResourceKey.worklogs(issue_key), RequestKind.LIST_WORKLOGS,
            lambda: self.port.list_worklogs(issue_key, None, page_size),
            scope=Screen.issue_detail(issue_key), fingerprint=issue_key, context=issue_key,
        )

    def _on_issue(self, completion: Completion) -> None:
        if not completion.ok:
            self.notifications.error(f"Failed to load {completion.context}: {user_message(completion.error)}")
            return
        if self.issue is not None and self.issue.key == completion.context:
            self.issue = completion.payload

    def _on_worklogs(self, completion: Completion) -> None:
        if not completion.ok:
            self.notifications.error(f"Failed to load worklogs: {user_message(completion.error)}")
            return
        if completion.context != self.worklogs.issue_key:
            return
        self.worklogs.load(completion.context, list(completion.payload))
        frame = self.stack.top()
        if frame.screen.kind is ScreenKind.WORKLOG_LIST_MODAL:
            frame.selected = _clamp(frame.selected, len(self.worklogs.entries))

    def _open_worklog_list(self, cmd: InputCommand) -> None:
        issue_key = self.stack.top().screen.issue_id
        self.stack.push(Screen.worklog_list_modal(issue_key))
        if not self.worklogs.pending_for(issue_key):
            self._load_worklogs(issue_key)

    def _open_worklog_form(self, cmd: InputCommand) -> None:
        top = self.stack.top().screen
        screen = Screen.worklog_modal(top.issue_id)
        draft = WorklogDraft.for_create(self._now())
        if top.is_modal:
            self.stack.replace_top(screen, draft)
        else:
            self.stack.push(screen, draft)

    def _selected_worklog(self) -> Optional[Worklog]:
        entries = self.worklogs.entries
        if not entries:
            return None
        return entries[_clamp(self.stack.top().selected, len(entries))]

    def _edit_selected_worklog(self, cmd: InputCommand) -> None:
        worklog = self._selected_worklog()
        if worklog is None:
            return
        if worklog.pending:
            self._reject(ConcurrentMutationRejected(f"Worklog {worklog.id} is still being saved"))
            return
        issue_key = self.stack.top().screen.issue_id
        draft = WorklogDraft.for_edit(worklog, self._now())
        self.stack.replace_top(Screen.worklog_modal(issue_key, worklog.id), draft)

    def _delete_selected_worklog(self, cmd: InputCommand) -> None:
        worklog = self._selected_worklog()
        if worklog is None:
            return
        screen = self.stack.top().screen
        try:
            if worklog.pending:
                raise ConcurrentMutationRejected(f"Worklog {worklog.id} is still being saved")
            self.worklogs.check(worklog.id)
        except ConcurrentMutationRejected as exc:
            self._reject(exc)
            return
        issue_key, worklog_id = screen.issue_id, worklog.id
        token = self.dispatcher.dispatch(
            ResourceKey.worklog_mutation(worklog_id), RequestKind.DELETE_WORKLOG,
            lambda: self.port.delete_worklog(issue_key, worklog_id),
            scope=screen, context=MutationContext(MutationOp.DELETE, issue_key, screen, worklog_id),
        )
        self.worklogs.apply_delete(token, issue_key, worklog_id)
        self.stack.top().selected = _clamp(self.stack.top().selected, len(self.worklogs.entries))

    # ------------------------------------------------------------------
    # worklog form
    # ------------------------------------------------------------------
    def _draft(self) -> WorklogDraft:
        return self.stack.top().draft

    def _type_char(self, cmd: InputCommand) -> None:
        if cmd.char:
            self._draft().input_char(cmd.char)

    def _reject(self, exc: TrackerError) -> None:
        logger.info("%s: %s", exc.kind.value, exc.message)
        self.notifications.error(exc.message)

    def _submit_worklog(self, cmd: InputCommand) -> None:
        frame = self.stack.top()
        screen, draft = frame.screen, frame.draft
        if draft.submitting:
            return
        issue_key, worklog_id = screen.issue_id, screen.worklog_id
        try:
            entry = draft.validate()
            self.worklogs.check(worklog_id)
            if worklog_id is not None and worklog_id not in {w.id for w in self.worklogs.entries}:
                raise NotFound(f"Worklog {worklog_id} no longer exists")
        except (ValidationError, ConcurrentMutationRejected, NotFound) as exc:
            self._reject(exc)
            return

        if worklog_id is None:
            context = MutationContext(MutationOp.CREATE, issue_key, screen)
            token = self.dispatcher.dispatch(
                ResourceKey.worklog_mutation(), RequestKind.CREATE_WORKLOG,
                lambda: self.port.create_worklog(issue_key, entry),
                scope=screen, context=context,
            )
            placeholder = Worklog(id="", issue_key=issue_key, time_spent_seconds=entry.time_spent_seconds,
                                  started_at=entry.started_at, comment=entry.comment, author="you")
            self.worklogs.apply_create(token, issue_key, placeholder)
        else:
            current = next(w for w in self.worklogs.entries if w.id == worklog_id)
            context = MutationContext(MutationOp.UPDATE, issue_key, screen, worklog_id)
            token = self.dispatcher.dispatch(
                ResourceKey.worklog_mutation(worklog_id), RequestKind.UPDATE_WORKLOG,
                lambda: self.port.update_worklog(issue_key, worklog_id, entry),
                scope=screen, context=context,
            )
            updated = dataclasses.replace(current, time_spent_seconds=entry.time_spent_seconds,
                                          started_at=entry.started_at, comment=entry.comment)
            self.worklogs.apply_update(token, issue_key, updated)
        draft.pending_token = token

    def _on_mutation(self, completion: Completion) -> None:
        ctx: MutationContext = completion.context
        verb = {MutationOp.CREATE: "created", MutationOp.UPDATE: "updated", MutationOp.DELETE: "deleted"}[ctx.op]
        frame = self.stack.top()
        owns_modal = frame.screen == ctx.screen and isinstance(frame.draft, WorklogDraft) \
            and frame.draft.pending_token == completion.token
        if completion.ok:
            self.worklogs.succeed(completion.token, completion.payload)
            self.notifications.success(f"Worklog {verb} on {ctx.issue_key}")
            if owns_modal:
                self.stack.pop()
            return
        self.worklogs.fail(completion.token)
        self.notifications.error(f"Worklog not {verb}: {user_message(completion.error)}")
        if owns_modal:
            frame.draft.pending_token = None
        elif frame.screen.kind is ScreenKind.WORKLOG_LIST_MODAL:
            frame.selected = _clamp(frame.selected, len(self.worklogs.entries))

