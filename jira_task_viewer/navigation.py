from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, List, Optional


class NavigationError(RuntimeError):
    """Raised when a push would put a modal on top of another modal."""


class ScreenKind(enum.Enum):
    BOARDS = "boards"
    BACKLOG = "backlog"
    ISSUE_DETAIL = "issue_detail"
    FILTER_MODAL = "filter_modal"
    WORKLOG_MODAL = "worklog_modal"
    WORKLOG_LIST_MODAL = "worklog_list_modal"


MODAL_KINDS = frozenset({ScreenKind.FILTER_MODAL, ScreenKind.WORKLOG_MODAL, ScreenKind.WORKLOG_LIST_MODAL})


@dataclass(frozen=True)
class Screen:
    kind: ScreenKind
    board_id: Optional[int] = None
    issue_id: Optional[str] = None
    worklog_id: Optional[str] = None  # WorklogModal in edit mode

    @classmethod
    def boards(cls) -> "Screen":
        return cls(ScreenKind.BOARDS)

    @classmethod
    def backlog(cls, board_id: int) -> "Screen":
        return cls(ScreenKind.BACKLOG, board_id=board_id)

    @classmethod
    def issue_detail(cls, issue_id: str) -> "Screen":
        return cls(ScreenKind.ISSUE_DETAIL, issue_id=issue_id)

    @classmethod
    def filter_modal(cls) -> "Screen":
        return cls(ScreenKind.FILTER_MODAL)

    @classmethod
    def worklog_modal(cls, issue_id: str, worklog_id: Optional[str] = None) -> "Screen":
        return cls(ScreenKind.WORKLOG_MODAL, issue_id=issue_id, worklog_id=worklog_id)

    @classmethod
    def worklog_list_modal(cls, issue_id: str) -> "Screen":
        return cls(ScreenKind.WORKLOG_LIST_MODAL, issue_id=issue_id)

    @property
    def is_modal(self) -> bool:
        return self.kind in MODAL_KINDS

    def title(self) -> str:
        if self.kind is ScreenKind.BOARDS:
            return "Boards"
        if self.kind is ScreenKind.BACKLOG:
            return f"Backlog (board {self.board_id})"
        if self.kind is ScreenKind.ISSUE_DETAIL:
            return self.issue_id or ""
        if self.kind is ScreenKind.FILTER_MODAL:
            return "Filter"
        if self.kind is ScreenKind.WORKLOG_MODAL:
            return f"Edit worklog {self.worklog_id}" if self.worklog_id else f"Log work on {self.issue_id}"
        return f"Worklogs for {self.issue_id}"


@dataclass
class ScreenFrame:
    screen: Screen
    draft: Any = None     # FilterState or WorklogDraft owned by a modal
    selected: int = 0


class ScreenStack:
    """Ordered screens; the last frame is the active one. Boards is the fixed root."""

    def __init__(self, root: Optional[Screen] = None):
        self._frames: List[ScreenFrame] = [ScreenFrame(root or Screen.boards())]

    def current(self) -> Screen:
        return self._frames[-1].screen

    def top(self) -> ScreenFrame:
        return self._frames[-1]

    def push(self, screen: Screen, draft: Any = None) -> ScreenFrame:
        if screen.is_modal and self.current().is_modal:
            raise NavigationError(f"cannot open {screen.kind.value} over {self.current().kind.value}")
        frame = ScreenFrame(screen, draft)
        self._frames.append(frame)
        return frame

    def pop(self) -> Optional[ScreenFrame]:
        """Remove the top frame; ``None`` on the root means quit."""
        if len(self._frames) == 1:
            return None
        return self._frames.pop()

    def replace_top(self, screen: Screen, draft: Any = None) -> ScreenFrame:
        if len(self._frames) == 1:
            raise NavigationError("cannot replace the root screen")
        if screen.is_modal and self._frames[-2].screen.is_modal:
            raise NavigationError(f"cannot open {screen.kind.value} over a modal")
        frame = ScreenFrame(screen, draft)
        self._frames[-1] = frame
        return frame

    def find(self, kind: ScreenKind) -> Optional[ScreenFrame]:
        for frame in reversed(self._frames):
            if frame.screen.kind is kind:
                return frame
        return None

    def screens(self) -> List[Screen]:
        return [f.screen for f in self._frames]

    def selections(self) -> List[int]:
        return [f.selected for f in self._frames]

    def __len__(self) -> int:
        return len(self._frames)
