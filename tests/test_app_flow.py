import dataclasses

from jira_task_viewer.dispatcher import RequestKind
from jira_task_viewer.errors import RemoteRejection, TransportError
from jira_task_viewer.filters import StatusFilter
from jira_task_viewer.keys import CommandKind, Direction
from jira_task_viewer.models import IssueStatus
from jira_task_viewer.navigation import ScreenKind
from jira_task_viewer.notifications import Level

from helpers import clear_field, cmd, down, make_worklog, open_backlog, open_issue, type_text


def _issue_loads(runner):
    return [c for c in runner.history if c.kind is RequestKind.LIST_ISSUES]


def _switch_status_to_done(ctl):
    ctl.handle(cmd(CommandKind.OPEN_FILTER))
    ctl.handle(cmd(CommandKind.NEXT_FIELD))
    ctl.handle(cmd(CommandKind.NAVIGATE, Direction.LEFT))
    ctl.handle(cmd(CommandKind.SELECT))


def _seed_worklogs(ctl, runner, port, *entries):
    key = ctl.issue.key
    port.worklogs[key] = [dataclasses.replace(e, issue_key=key) for e in entries]
    ctl.handle(cmd(CommandKind.REFRESH))
    runner.complete_all()
    return key


def _start_create(ctl, duration="1h 30m"):
    ctl.handle(cmd(CommandKind.OPEN_WORKLOG_FORM))
    ctl.handle(cmd(CommandKind.NEXT_FIELD))
    ctl.handle(cmd(CommandKind.NEXT_FIELD))
    type_text(ctl, duration)


def test_every_screen_kind_has_a_command_table(controller):
    assert set(controller._screen_handlers) == set(ScreenKind)
    assert set(controller._completion_handlers) == set(RequestKind)


def test_boards_load_and_open_backlog(controller, runner):
    open_backlog(controller, runner)
    snap = controller.snapshot()
    assert snap.screen.kind is ScreenKind.BACKLOG
    assert [b.id for b in snap.boards] == [1, 2]
    assert len(snap.issues) == 10
    assert snap.has_more is True
    assert all(i.assignee == "me@example.com" for i in snap.issues)


def test_filter_change_resets_pagination(controller, runner):
    open_backlog(controller, runner)
    down(controller, 5)
    runner.complete_all()
    assert len(controller.issues) == 15
    assert controller.issues.has_more is False

    _switch_status_to_done(controller)
    assert controller.filters.current.status is StatusFilter.DONE
    assert controller.issues.items == []
    assert controller.issues.has_more is True
    assert controller.issues.cursor is None
    assert controller.stack.top().selected == 0
    assert _issue_loads(runner)[-1].context.cursor is None


def test_applying_identical_filter_is_a_noop(controller, runner):
    open_backlog(controller, runner)
    loads = len(_issue_loads(runner))
    controller.handle(cmd(CommandKind.OPEN_FILTER))
    controller.handle(cmd(CommandKind.SELECT))
    assert controller.stack.current().kind is ScreenKind.BACKLOG
    assert len(_issue_loads(runner)) == loads
    assert len(controller.issues) == 10


def test_cancelled_filter_draft_is_discarded(controller, runner):
    open_backlog(controller, runner)
    controller.handle(cmd(CommandKind.OPEN_FILTER))
    controller.handle(cmd(CommandKind.NAVIGATE, Direction.RIGHT))
    assert controller.snapshot().filter_draft.assignee.value == "unassigned"
    controller.handle(cmd(CommandKind.CANCEL))
    assert controller.filters.generation == 0
    assert controller.snapshot().filter_draft is None


def test_load_more_dispatched_once_for_two_scroll_events(controller, runner):
    open_backlog(controller, runner)
    down(controller, 5)
    down(controller, 1)
    loads = _issue_loads(runner)
    assert len(loads) == 2
    assert loads[1].context.cursor == 10
    assert len(controller.dispatcher) == 1


def test_stale_page_for_old_filter_is_discarded(controller, runner):
    open_backlog(controller, runner)
    down(controller, 5)
    page2 = runner.last(RequestKind.LIST_ISSUES)
    assert page2.context.cursor == 10

    _switch_status_to_done(controller)
    fresh = runner.last(RequestKind.LIST_ISSUES)
    assert fresh is not page2
    # still one request per key
    assert len([r for r in controller.dispatcher.in_flight() if r.kind is RequestKind.LIST_ISSUES]) == 1

    assert runner.complete(page2) is False
    assert controller.issues.items == []
    assert runner.complete(fresh) is True
    assert controller.issues.items
    assert all(i.status is IssueStatus.DONE for i in controller.issues.items)


def test_failed_page_load_can_be_retried(controller, runner, port):
    open_backlog(controller, runner)
    port.fail_next("list_issues", TransportError("Network error: timed out"))
    down(controller, 5)
    runner.complete_all()
    assert controller.issues.loading is False
    assert len(controller.issues) == 10
    assert controller.notifications.visible()[-1].level is Level.ERROR
    down(controller, 1)
    assert runner.last(RequestKind.LIST_ISSUES).context.cursor == 10


def test_leaving_issue_detail_drops_its_results(controller, runner):
    open_backlog(controller, runner)
    controller.handle(cmd(CommandKind.SELECT))
    detail_cmd = runner.last(RequestKind.GET_ISSUE)
    controller.handle(cmd(CommandKind.CANCEL))
    assert controller.stack.current().kind is ScreenKind.BACKLOG
    assert not controller.dispatcher.is_in_flight(detail_cmd.key)
    assert runner.complete(detail_cmd) is False


def test_optimistic_create_visible_then_reconciled(controller, runner):
    open_issue(controller, runner)
    _start_create(controller)
    controller.handle(cmd(CommandKind.SUBMIT_WORKLOG))

    snap = controller.snapshot()
    assert snap.screen.kind is ScreenKind.WORKLOG_MODAL
    assert snap.draft.submitting
    assert len(snap.worklogs) == 1 and snap.worklogs[0].pending
    assert snap.worklogs[0].time_spent_seconds == 5400

    runner.complete(runner.last(RequestKind.CREATE_WORKLOG))
    snap = controller.snapshot()
    assert snap.screen.kind is ScreenKind.ISSUE_DETAIL
    assert [w.id for w in snap.worklogs] == ["10000"]
    assert not snap.worklogs[0].pending
    assert snap.notifications[-1].level is Level.SUCCESS


def test_failed_create_is_removed_and_error_notified(controller, runner, port):
    open_issue(controller, runner)
    _start_create(controller)
    port.fail_next("create_worklog", TransportError("Network error: timed out"))
    controller.handle(cmd(CommandKind.SUBMIT_WORKLOG))
    assert len(controller.worklogs.entries) == 1

    runner.complete(runner.last(RequestKind.CREATE_WORKLOG))
    snap = controller.snapshot()
    assert snap.worklogs == ()
    assert snap.notifications[-1].level is Level.ERROR
    assert "timed out" in snap.notifications[-1].message
    # modal stays open with the draft for a retry
    assert snap.screen.kind is ScreenKind.WORKLOG_MODAL
    assert snap.draft.duration == "1h 30m" and not snap.draft.submitting


def test_failed_delete_restores_exact_list(controller, runner, port):
    open_issue(controller, runner)
    _seed_worklogs(controller, runner, port, make_worklog(id="1"), make_worklog(id="2"), make_worklog(id="3"))
    controller.handle(cmd(CommandKind.OPEN_WORKLOG_LIST))
    runner.complete_all()
    before = list(controller.worklogs.entries)

    down(controller, 1)
    port.fail_next("delete_worklog", RemoteRejection("Jira API Error: 500", 500))
    controller.handle(cmd(CommandKind.DELETE_WORKLOG))
    assert [w.id for w in controller.worklogs.entries] == ["1", "3"]
    runner.complete(runner.last(RequestKind.DELETE_WORKLOG))
    assert controller.worklogs.entries == before
    assert controller.notifications.visible()[-1].level is Level.ERROR


def test_edit_worklog_from_list(controller, runner, port):
    open_issue(controller, runner)
    key = _seed_worklogs(controller, runner, port, make_worklog(id="7", time_spent_seconds=1800))
    controller.handle(cmd(CommandKind.OPEN_WORKLOG_LIST))
    runner.complete_all()
    controller.handle(cmd(CommandKind.EDIT_WORKLOG))
    assert controller.stack.current().worklog_id == "7"
    assert [s.kind for s in controller.stack.screens()][-2] is ScreenKind.ISSUE_DETAIL

    controller.handle(cmd(CommandKind.NEXT_FIELD))
    controller.handle(cmd(CommandKind.NEXT_FIELD))
    clear_field(controller)
    type_text(controller, "2h")
    controller.handle(cmd(CommandKind.SUBMIT_WORKLOG))
    assert controller.worklogs.entries[0].time_spent_seconds == 7200
    assert controller.worklogs.entries[0].pending

    runner.complete(runner.last(RequestKind.UPDATE_WORKLOG))
    assert controller.stack.current().kind is ScreenKind.ISSUE_DETAIL
    assert controller.worklogs.entries[0].pending is False
    assert port.worklogs[key][0].time_spent_seconds == 7200


def test_double_submit_dispatches_once(controller, runner):
    open_issue(controller, runner)
    _start_create(controller)
    controller.handle(cmd(CommandKind.SUBMIT_WORKLOG))
    controller.handle(cmd(CommandKind.SUBMIT_WORKLOG))
    assert len(runner.pending(RequestKind.CREATE_WORKLOG)) == 1
    assert len(controller.worklogs.entries) == 1


def test_invalid_form_is_never_sent(controller, runner):
    open_issue(controller, runner)
    _start_create(controller, duration="0m")
    controller.handle(cmd(CommandKind.SUBMIT_WORKLOG))
    assert runner.pending(RequestKind.CREATE_WORKLOG) == []
    assert controller.notifications.visible()[-1].message == "Cannot log 0 time"
    assert controller.stack.current().kind is ScreenKind.WORKLOG_MODAL


def test_cancel_while_saving_rolls_back_and_refreshes(controller, runner):
    open_issue(controller, runner)
    _start_create(controller)
    controller.handle(cmd(CommandKind.SUBMIT_WORKLOG))
    create = runner.last(RequestKind.CREATE_WORKLOG)

    controller.handle(cmd(CommandKind.CANCEL))
    assert controller.stack.current().kind is ScreenKind.ISSUE_DETAIL
    assert controller.worklogs.entries == []
    assert len(controller.worklogs) == 0
    assert runner.pending(RequestKind.LIST_WORKLOGS)

    # the server may still have applied it; the refresh shows the truth
    assert runner.complete(create) is False
    runner.complete_all()
    assert [w.pending for w in controller.worklogs.entries] == [False]


def test_at_most_one_request_per_key(controller, runner):
    open_backlog(controller, runner)
    controller.handle(cmd(CommandKind.REFRESH))
    controller.handle(cmd(CommandKind.REFRESH))
    keys = [r.key for r in controller.dispatcher.in_flight()]
    assert len(keys) == len(set(keys))
    assert controller.dispatcher.superseded >= 1


def test_quit_and_back_from_root(controller, runner):
    open_backlog(controller, runner)
    controller.handle(cmd(CommandKind.CANCEL))
    assert controller.stack.current().kind is ScreenKind.BOARDS
    assert controller.issues.items == []
    assert not controller.should_quit
    controller.handle(cmd(CommandKind.CANCEL))
    assert controller.should_quit


def test_notifications_expire_on_tick(controller, runner, port, clock):
    port.fail_next("list_boards", TransportError("Network error: refused"))
    controller.start()
    runner.complete_all()
    assert len(controller.snapshot().notifications) == 1
    clock.advance(5.5)
    assert controller.tick() is True
    assert controller.snapshot().notifications == ()


def test_snapshot_draft_is_a_copy(controller, runner):
    open_issue(controller, runner)
    controller.handle(cmd(CommandKind.OPEN_WORKLOG_FORM))
    snap = controller.snapshot()
    snap.draft.comment = "mutated"
    assert controller.stack.top().draft.comment == ""


def test_two_failed_deletes_from_list_restore_both(controller, runner, port):
    open_issue(controller, runner)
    _seed_worklogs(controller, runner, port, make_worklog(id="1"), make_worklog(id="2"), make_worklog(id="3"))
    controller.handle(cmd(CommandKind.OPEN_WORKLOG_LIST))
    runner.complete_all()
    before = list(controller.worklogs.entries)

    port.fail_next("delete_worklog", RemoteRejection("Jira API Error: 500", 500))
    port.fail_next("delete_worklog", RemoteRejection("Jira API Error: 500", 500))
    controller.handle(cmd(CommandKind.DELETE_WORKLOG))
    controller.handle(cmd(CommandKind.DELETE_WORKLOG))
    assert [w.id for w in controller.worklogs.entries] == ["3"]
    runner.complete_all()
    assert controller.worklogs.entries == before
    assert port.worklogs[controller.issue.key] == before
