import datetime as dt

from jira_task_viewer.keys import CommandKind, Direction, InputCommand
from jira_task_viewer.models import Issue, IssueStatus, Worklog


def make_worklog(**overrides) -> Worklog:
    base = dict(
        id='100',
        issue_key='ALPHA-1',
        time_spent_seconds=3600,
        started_at=dt.datetime(2024, 1, 10, 9, 0, tzinfo=dt.timezone.utc),
        comment='Initial work',
        author='me@example.com',
    )
    base.update(overrides)
    return Worklog(**base)


def make_issue(**overrides) -> Issue:
    base = dict(
        key='ALPHA-1',
        summary='Fix the login flow',
        status=IssueStatus.TODO,
        status_name='To Do',
        assignee='me@example.com',
        priority='High',
    )
    base.update(overrides)
    return Issue(**base)


def cmd(kind: CommandKind, direction: Direction = None, char: str = None) -> InputCommand:
    return InputCommand(kind, direction, char)


def down(ctl, times: int = 1) -> None:
    for _ in range(times):
        ctl.handle(cmd(CommandKind.NAVIGATE, Direction.DOWN))


def type_text(ctl, text: str) -> None:
    for ch in text:
        ctl.handle(cmd(CommandKind.INPUT_CHAR, char=ch))


def clear_field(ctl, length: int = 20) -> None:
    for _ in range(length):
        ctl.handle(cmd(CommandKind.DELETE_CHAR))


def open_backlog(ctl, runner, board_index: int = 0) -> None:
    """Load boards, enter one and deliver its first issues page."""
    ctl.start()
    runner.complete_all()
    down(ctl, board_index)
    ctl.handle(cmd(CommandKind.SELECT))
    runner.complete_all()


def open_issue(ctl, runner, issue_index: int = 0) -> None:
    open_backlog(ctl, runner)
    down(ctl, issue_index)
    ctl.handle(cmd(CommandKind.SELECT))
    runner.complete_all()
