import datetime as dt
import os
import sys
from typing import List, Optional

import pytest

ROOT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from jira_task_viewer.app import AppController
from jira_task_viewer.dispatcher import Command, Completion, RequestKind, run_command
from jira_task_viewer.mock_tracker import MockTracker

_UNSET = object()

FIXED_NOW = dt.datetime(2024, 1, 15, 9, 30)


class ManualRunner:
    """Collects dispatched commands; tests complete them explicitly, in any order."""

    def __init__(self):
        self.queue: List[Command] = []
        self.history: List[Command] = []
        self.deliver = None

    def __call__(self, command: Command) -> None:
        self.queue.append(command)
        self.history.append(command)

    def pending(self, kind: Optional[RequestKind] = None) -> List[Command]:
        return [c for c in self.queue if kind is None or c.kind is kind]

    def last(self, kind: RequestKind) -> Command:
        matches = self.pending(kind)
        assert matches, f"no pending {kind.value} command"
        return matches[-1]

    def complete(self, command: Optional[Command] = None, payload=_UNSET, error=None) -> bool:
        """Finish ``command`` (oldest by default) by running it, or with a forced payload/error."""
        if command is None:
            command = self.queue[0]
        self.queue.remove(command)
        if error is not None:
            completion = Completion(command.key, command.token, command.kind, error=error, context=command.context)
        elif payload is not _UNSET:
            completion = Completion(command.key, command.token, command.kind, payload=payload, context=command.context)
        else:
            completion = run_command(command)
        return self.deliver(completion)

    def complete_all(self, limit: int = 50) -> None:
        while self.queue and limit:
            self.complete()
            limit -= 1


class FixedClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def runner():
    return ManualRunner()


@pytest.fixture
def port():
    return MockTracker()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def controller(port, runner, clock):
    ctl = AppController(port, runner, page_size=10, clock=clock, now=lambda: FIXED_NOW)
    runner.deliver = ctl.handle_completion
    return ctl
