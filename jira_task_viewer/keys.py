"""Key to command routing.

Keys are prompt_toolkit key names (``'j'``, ``'down'``, ``'enter'``,
``'escape'``, ``'s-tab'``...). Which command a key means depends only on the
kind of the active screen; the worklog form additionally turns printable
characters into text input.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional

from .navigation import ScreenKind


class Direction(enum.Enum):
    UP = "up"
    DOWN = "down"
    LEFT = "left"
    RIGHT = "right"


class CommandKind(enum.Enum):
    NAVIGATE = "navigate"
    SELECT = "select"
    OPEN_FILTER = "open_filter"
    OPEN_WORKLOG_FORM = "open_worklog_form"
    SUBMIT_WORKLOG = "submit_worklog"
    DELETE_WORKLOG = "delete_worklog"
    CANCEL = "cancel"
    QUIT = "quit"
    OPEN_WORKLOG_LIST = "open_worklog_list"
    EDIT_WORKLOG = "edit_worklog"
    NEXT_FIELD = "next_field"
    PREV_FIELD = "prev_field"
    INPUT_CHAR = "input_char"
    DELETE_CHAR = "delete_char"
    REFRESH = "refresh"


@dataclass(frozen=True)
class InputCommand:
    kind: CommandKind
    direction: Optional[Direction] = None
    char: Optional[str] = None


def _cmd(kind: CommandKind, direction: Optional[Direction] = None) -> InputCommand:
    return InputCommand(kind, direction)


UP = _cmd(CommandKind.NAVIGATE, Direction.UP)
DOWN = _cmd(CommandKind.NAVIGATE, Direction.DOWN)
LEFT = _cmd(CommandKind.NAVIGATE, Direction.LEFT)
RIGHT = _cmd(CommandKind.NAVIGATE, Direction.RIGHT)
QUIT = _cmd(CommandKind.QUIT)
CANCEL = _cmd(CommandKind.CANCEL)

_LIST_NAV = {'j': DOWN, 'down': DOWN, 'k': UP, 'up': UP}

KEYMAPS: Dict[ScreenKind, Dict[str, InputCommand]] = {
    ScreenKind.BOARDS: {
        **_LIST_NAV,
        'q': QUIT,
        'enter': _cmd(CommandKind.SELECT),
        'b': _cmd(CommandKind.REFRESH),
        'r': _cmd(CommandKind.REFRESH),
    },
    ScreenKind.BACKLOG: {
        **_LIST_NAV,
        'q': QUIT,
        'escape': CANCEL,
        'b': CANCEL,
        'enter': _cmd(CommandKind.SELECT),
        'f': _cmd(CommandKind.OPEN_FILTER),
        'r': _cmd(CommandKind.REFRESH),
    },
    ScreenKind.ISSUE_DETAIL: {
        **_LIST_NAV,
        'q': QUIT,
        'escape': CANCEL,
        'w': _cmd(CommandKind.OPEN_WORKLOG_FORM),
        'l': _cmd(CommandKind.OPEN_WORKLOG_LIST),
        'r': _cmd(CommandKind.REFRESH),
    },
    ScreenKind.FILTER_MODAL: {
        'q': QUIT,
        'escape': CANCEL,
        'enter': _cmd(CommandKind.SELECT),
        'tab': _cmd(CommandKind.NEXT_FIELD),
        'down': _cmd(CommandKind.NEXT_FIELD),
        'j': _cmd(CommandKind.NEXT_FIELD),
        's-tab': _cmd(CommandKind.PREV_FIELD),
        'up': _cmd(CommandKind.PREV_FIELD),
        'k': _cmd(CommandKind.PREV_FIELD),
        'left': LEFT,
        'h': LEFT,
        'right': RIGHT,
        'l': RIGHT,
    },
    ScreenKind.WORKLOG_MODAL: {
        'escape': CANCEL,
        'enter': _cmd(CommandKind.SUBMIT_WORKLOG),
        'tab': _cmd(CommandKind.NEXT_FIELD),
        'down': _cmd(CommandKind.NEXT_FIELD),
        's-tab': _cmd(CommandKind.PREV_FIELD),
        'up': _cmd(CommandKind.PREV_FIELD),
        'backspace': _cmd(CommandKind.DELETE_CHAR),
    },
    ScreenKind.WORKLOG_LIST_MODAL: {
        **_LIST_NAV,
        'q': QUIT,
        'escape': CANCEL,
        'enter': _cmd(CommandKind.EDIT_WORKLOG),
        'e': _cmd(CommandKind.EDIT_WORKLOG),
        'd': _cmd(CommandKind.DELETE_WORKLOG),
        'n': _cmd(CommandKind.OPEN_WORKLOG_FORM),
    },
}

# screens where unmapped printable keys are typed into a field
TEXT_INPUT_SCREENS = frozenset({ScreenKind.WORKLOG_MODAL})


def route(kind: ScreenKind, key: str, data: Optional[str] = None) -> Optional[InputCommand]:
    """Translate one key press on a screen of ``kind`` into a command (or None)."""
    if key == 'c-c':
        return QUIT
    command = KEYMAPS[kind].get(key)
    if command is not None:
        return command
    if kind in TEXT_INPUT_SCREENS:
        ch = data if data is not None else key
        if len(ch) == 1 and ch.isprintable():
            return InputCommand(CommandKind.INPUT_CHAR, char=ch)
    return None


def all_keys():
    """Every named key bound on some screen."""
    names = set()
    for keymap in KEYMAPS.values():
        names.update(keymap)
    names.add('c-c')
    return sorted(names)


def help_line(kind: ScreenKind) -> str:
    return HELP[kind]


HELP: Dict[ScreenKind, str] = {
    ScreenKind.BOARDS: "j/k move  Enter open board  r reload  q quit",
    ScreenKind.BACKLOG: "j/k move  Enter issue  f filter  r reload  Esc back  q quit",
    ScreenKind.ISSUE_DETAIL: "w log work  l worklogs  r reload  Esc back  q quit",
    ScreenKind.FILTER_MODAL: "Tab/j/k field  h/l change  Enter apply  Esc cancel",
    ScreenKind.WORKLOG_MODAL: "Tab next field  Backspace delete  Enter save  Esc cancel",
    ScreenKind.WORKLOG_LIST_MODAL: "j/k move  e edit  d delete  n new  Esc close",
}
