"""prompt_toolkit front end.

Rendering is a set of pure functions from a ``Snapshot`` to formatted-text
fragments; key bindings translate key presses through ``keys.route`` into
controller commands. Network calls run in the default executor and their
completions are handed back to the controller on the event loop.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional, Set, Tuple

from prompt_toolkit.application import Application
from prompt_toolkit.filters import Condition
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.keys import Keys
from prompt_toolkit.layout import ConditionalContainer, Float, FloatContainer, HSplit, Layout, Window
from prompt_toolkit.layout.controls import FormattedTextControl
from prompt_toolkit.styles import Style
from prompt_toolkit.widgets import Frame

from .app import AppController, Snapshot
from .dispatcher import Command, Completion, run_command
from .filters import FILTER_FIELDS
from .keys import all_keys, help_line, route
from .models import Issue, IssueStatus, TrackerPort, format_duration
from .navigation import ScreenKind
from .notifications import Level
from .worklog_form import WORKLOG_FIELDS

logger = logging.getLogger('jira_task_viewer.ui')

Fragments = List[Tuple[str, str]]

TICK_SECONDS = 0.25

STYLE: Dict[str, str] = {
    'header': 'bold #ffd75f',
    'header.filter': '#87d7ff',
    'row': '#d0d0d0',
    'row.selected': 'reverse bold',
    'row.pending': 'italic #8a8a8a',
    'status.todo': '#87d7ff',
    'status.in_progress': '#ffd75f',
    'status.done': '#87ff5f',
    'status.other': '#d0d0d0',
    'muted': '#8a8a8a',
    'label': 'bold #87d7ff',
    'field': '#f0f0f0 bg:#303030',
    'field.focused': 'bold #ffffff bg:#875f00',
    'modal': 'bg:#1c1c1c #f0f0f0',
    'notify.success': 'bold #000000 bg:#87ff5f',
    'notify.error': 'bold #ffffff bg:#d70000',
    'statusbar': 'reverse',
}

_STATUS_STYLE = {
    IssueStatus.TODO: 'class:status.todo',
    IssueStatus.IN_PROGRESS: 'class:status.in_progress',
    IssueStatus.DONE: 'class:status.done',
    IssueStatus.OTHER: 'class:status.other',
}


class AsyncioRunner:
    """Runs commands in the default executor; completions come back on the loop thread."""

    def __init__(self, deliver: Optional[Callable[[Completion], object]] = None,
                 on_change: Optional[Callable[[], None]] = None):
        self.deliver = deliver
        self.on_change = on_change
        self._tasks: Set[asyncio.Task] = set()

    def __call__(self, command: Command) -> None:
        task = asyncio.get_running_loop().create_task(self._run(command))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, command: Command) -> None:
        loop = asyncio.get_running_loop()
        completion = await loop.run_in_executor(None, run_command, command)
        if self.deliver is not None:
            try:
                self.deliver(completion)
            except Exception:
                logger.exception("delivering %s %s failed", completion.kind.value, completion.key)
        if self.on_change is not None:
            self.on_change()


# -----------------------------
# Rendering
# -----------------------------
def _viewport(selected: int, total: int, height: int) -> Tuple[int, int]:
    """First and one-past-last row index so that ``selected`` stays visible."""
    height = max(1, height)
    if total <= height:
        return 0, total
    start = max(0, min(selected - height // 2, total - height))
    return start, start + height


def _row_style(is_selected: bool) -> str:
    return 'class:row.selected' if is_selected else 'class:row'


def render_boards(snap: Snapshot, selected: int, height: int) -> Fragments:
    frags: Fragments = [('class:header', ' Boards\n\n')]
    if not snap.boards:
        frags.append(('class:muted', '  Loading boards…\n' if snap.boards_loading else '  No boards.\n'))
        return frags
    start, end = _viewport(selected, len(snap.boards), height - 2)
    for idx in range(start, end):
        b = snap.boards[idx]
        frags.append((_row_style(idx == selected), f"  {b.id:>6}  {b.name:<40} {b.project_key:<10} {b.board_type}\n"))
    return frags


def _issue_row(issue: Issue) -> Tuple[str, str, str]:
    left = f"  {issue.key:<12} "
    status = f"{(issue.status_name or issue.status.value)[:14]:<14} "
    right = f"{issue.summary[:60]:<60} {(issue.assignee or '-')[:20]}\n"
    return left, status, right


def render_backlog(snap: Snapshot, selected: int, height: int) -> Fragments:
    frags: Fragments = [
        ('class:header', f" Backlog  board {snap.board_id}   "),
        ('class:header.filter', snap.filter.summary()),
        ('', '\n\n'),
    ]
    if not snap.issues:
        frags.append(('class:muted', '  Loading issues…\n' if snap.issues_loading else '  No issues match the filter.\n'))
        return frags
    start, end = _viewport(selected, len(snap.issues), height - 3)
    for idx in range(start, end):
        issue = snap.issues[idx]
        left, status, right = _issue_row(issue)
        if idx == selected:
            frags.append(('class:row.selected', left + status + right))
        else:
            frags.extend([('class:row', left), (_STATUS_STYLE[issue.status], status), ('class:row', right)])
    if snap.issues_loading:
        frags.append(('class:muted', '  Loading more…\n'))
    elif not snap.has_more:
        frags.append(('class:muted', f'  {len(snap.issues)} issues\n'))
    return frags


def render_issue_detail(snap: Snapshot, selected: int, height: int) -> Fragments:
    issue = snap.issue
    if issue is None:
        return [('class:muted', ' No issue selected.\n')]
    frags: Fragments = [('class:header', f" {issue.key}  {issue.summary}\n\n")]
    for label, value in (
        ("Status", issue.status_name or issue.status.value),
        ("Assignee", issue.assignee or "Unassigned"),
        ("Priority", issue.priority or "-"),
        ("Created", issue.created_at.strftime('%Y-%m-%d %H:%M') if issue.created_at else "-"),
        ("Updated", issue.updated_at.strftime('%Y-%m-%d %H:%M') if issue.updated_at else "-"),
    ):
        frags.append(('class:label', f"  {label:<10}"))
        frags.append(('class:row', f"{value}\n"))
    if issue.description:
        frags.append(('', '\n'))
        for line in issue.description.splitlines()[:8]:
            frags.append(('class:row', f"  {line}\n"))
    total = sum(w.time_spent_seconds for w in snap.worklogs)
    frags.append(('class:header', f"\n Worklogs ({len(snap.worklogs)}, {format_duration(total)} logged)"))
    if snap.worklogs_loading:
        frags.append(('class:muted', '  loading…'))
    frags.append(('', '\n'))
    frags.extend(_worklog_rows(snap, selected, max(3, height - 14)))
    return frags


def _worklog_rows(snap: Snapshot, selected: int, height: int) -> Fragments:
    frags: Fragments = []
    if not snap.worklogs:
        frags.append(('class:muted', '  No worklogs.\n'))
        return frags
    start, end = _viewport(selected, len(snap.worklogs), height)
    for idx in range(start, end):
        wl = snap.worklogs[idx]
        started = wl.started_at.strftime('%Y-%m-%d %H:%M') if wl.started_at else '-'
        line = f"  {started}  {format_duration(wl.time_spent_seconds):>7}  {wl.author[:16]:<16} {(wl.comment or '')[:40]}"
        if wl.pending:
            line += "  (saving…)"
        if idx == selected:
            style = 'class:row.selected'
        else:
            style = 'class:row.pending' if wl.pending else 'class:row'
        frags.append((style, line + "\n"))
    return frags


def render_filter_modal(snap: Snapshot) -> Fragments:
    draft = snap.filter_draft or snap.filter
    values = {
        "assignee": ("Assignee", draft.assignee.label()),
        "status": ("Status", draft.status.label()),
        "sort": ("Order by", draft.sort.label()),
    }
    frags: Fragments = []
    for idx, name in enumerate(FILTER_FIELDS):
        label, value = values[name]
        focused = idx == snap.filter_field
        frags.append(('class:label', f" {'›' if focused else ' '} {label:<10}"))
        frags.append(('class:field.focused' if focused else 'class:field', f" ◀ {value:<14} ▶ "))
        frags.append(('', '\n'))
    return frags


def render_worklog_modal(snap: Snapshot) -> Fragments:
    draft = snap.draft
    if draft is None:
        return []
    labels = {"date": "Date", "time": "Time", "duration": "Duration", "comment": "Comment"}
    hints = {"date": "YYYY-MM-DD", "time": "HH:MM", "duration": "e.g. 1h 30m", "comment": ""}
    frags: Fragments = []
    for idx, name in enumerate(WORKLOG_FIELDS):
        focused = idx == draft.focus % len(WORKLOG_FIELDS)
        value = getattr(draft, name)
        frags.append(('class:label', f" {'›' if focused else ' '} {labels[name]:<10}"))
        frags.append(('class:field.focused' if focused else 'class:field', f" {value}{'_' if focused else ''} "))
        frags.append(('class:muted', f"  {hints[name]}\n"))
    if draft.submitting:
        frags.append(('class:muted', '\n  Saving…\n'))
    return frags


def render_worklog_list_modal(snap: Snapshot, selected: int, height: int) -> Fragments:
    return _worklog_rows(snap, selected, height)


def render_notifications(snap: Snapshot) -> Fragments:
    frags: Fragments = []
    for note in snap.notifications:
        style = 'class:notify.success' if note.level is Level.SUCCESS else 'class:notify.error'
        frags.append((style, f" {note.message} "))
        frags.append(('', '\n'))
    return frags


def render_status(snap: Snapshot) -> Fragments:
    text = f" {snap.screen.title()} │ {help_line(snap.screen.kind)}"
    if snap.in_flight:
        text += f" │ {snap.in_flight} request(s) in flight"
    return [('class:statusbar', text)]


_BODY_RENDERERS = {
    ScreenKind.BOARDS: render_boards,
    ScreenKind.BACKLOG: render_backlog,
    ScreenKind.ISSUE_DETAIL: render_issue_detail,
}


def render_body(snap: Snapshot, height: int = 30) -> Fragments:
    """Fragments for the topmost non-modal screen."""
    for idx in range(len(snap.stack) - 1, -1, -1):
        screen = snap.stack[idx]
        if not screen.is_modal:
            return _BODY_RENDERERS[screen.kind](snap, snap.selections[idx], height)
    return []


def render_modal(snap: Snapshot, height: int = 20) -> Fragments:
    kind = snap.screen.kind
    if kind is ScreenKind.FILTER_MODAL:
        return render_filter_modal(snap)
    if kind is ScreenKind.WORKLOG_MODAL:
        return render_worklog_modal(snap)
    if kind is ScreenKind.WORKLOG_LIST_MODAL:
        return render_worklog_list_modal(snap, snap.selected, height)
    return []


# -----------------------------
# Key bindings
# -----------------------------
def handle_key(controller: AppController, key: str, data: Optional[str] = None) -> bool:
    """Route one key press to the controller; returns True when the app should exit."""
    command = route(controller.stack.current().kind, key, data)
    if command is not None:
        controller.handle(command)
    return controller.should_quit


def build_key_bindings(controller: AppController, invalidate: Callable[[], None]) -> KeyBindings:
    kb = KeyBindings()

    def _press(event, key: str) -> None:
        if handle_key(controller, key, event.data):
            event.app.exit()
            return
        invalidate()

    for key_name in all_keys():
        @kb.add(key_name)
        def _(event, key=key_name):
            _press(event, key)

    @kb.add(Keys.Any)
    def _(event):
        _press(event, event.data)

    return kb


# -----------------------------
# Application
# -----------------------------
def run_ui(port: TrackerPort, page_size: int = 20, worklog_page_size: int = 50,
           notification_ttl: float = 5.0) -> None:
    """Full-screen browser: boards → backlog → issue → worklogs."""
    runner = AsyncioRunner()
    controller = AppController(port, runner, page_size=page_size, worklog_page_size=worklog_page_size,
                               notification_ttl=notification_ttl)
    view: Dict[str, Snapshot] = {'snap': controller.snapshot()}
    app: Optional[Application] = None

    def invalidate() -> None:
        view['snap'] = controller.snapshot()
        if app is not None:
            app.invalidate()

    runner.deliver = controller.handle_completion
    runner.on_change = invalidate

    def _rows() -> int:
        if app is None:
            return 30
        return max(5, app.output.get_size().rows - 2)

    body = Window(FormattedTextControl(lambda: render_body(view['snap'], _rows())), wrap_lines=False)
    status = Window(FormattedTextControl(lambda: render_status(view['snap'])), height=1, style='class:statusbar')
    modal_open = Condition(lambda: view['snap'].screen.is_modal)
    has_notes = Condition(lambda: bool(view['snap'].notifications))
    modal = ConditionalContainer(
        Frame(Window(FormattedTextControl(lambda: render_modal(view['snap'], max(3, _rows() - 8)))),
              title=lambda: view['snap'].screen.title(), style='class:modal', width=80),
        filter=modal_open,
    )
    notes = ConditionalContainer(
        Window(FormattedTextControl(lambda: render_notifications(view['snap'])), width=60, height=3),
        filter=has_notes,
    )
    container = FloatContainer(
        content=HSplit([body, status]),
        floats=[Float(content=modal, top=2, left=4), Float(content=notes, top=0, right=1)],
    )
    kb = build_key_bindings(controller, invalidate)
    app = Application(layout=Layout(container), key_bindings=kb, full_screen=True, mouse_support=False,
                      style=Style.from_dict(STYLE))

    async def _ticker():
        while True:
            await asyncio.sleep(TICK_SECONDS)
            controller.tick()
            invalidate()

    async def _main():
        controller.start()
        invalidate()
        app.create_background_task(_ticker())
        await app.run_async()

    logger.info("UI starting")
    asyncio.run(_main())
    logger.info("UI stopped")
