# Filter & sort state for the backlog.
#
# FilterState is a value; FilterEngine owns the committed value and a
# generation counter that increases on every real change so that requests made
# for an older generation can be recognised and dropped.

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Sequence, TypeVar


class AssigneeFilter(enum.Enum):
    ME = "me"
    UNASSIGNED = "unassigned"
    ALL = "all"

    def label(self) -> str:
        return {"me": "Me", "unassigned": "Unassigned", "all": "All"}[self.value]


class StatusFilter(enum.Enum):
    ALL = "all"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"

    def label(self) -> str:
        return {"all": "All", "todo": "To Do", "in_progress": "In Progress", "done": "Done"}[self.value]


class SortOrder(enum.Enum):
    UPDATED_DESC = "updated_desc"
    CREATED_DESC = "created_desc"

    def label(self) -> str:
        return {"updated_desc": "Updated (newest)", "created_desc": "Created (newest)"}[self.value]


ASSIGNEE_CYCLE: Sequence[AssigneeFilter] = (AssigneeFilter.ME, AssigneeFilter.UNASSIGNED, AssigneeFilter.ALL)
STATUS_CYCLE: Sequence[StatusFilter] = (StatusFilter.ALL, StatusFilter.TODO, StatusFilter.IN_PROGRESS, StatusFilter.DONE)
SORT_CYCLE: Sequence[SortOrder] = (SortOrder.UPDATED_DESC, SortOrder.CREATED_DESC)

# Field order inside the filter modal
FILTER_FIELDS = ("assignee", "status", "sort")

_E = TypeVar("_E", bound=enum.Enum)


def _step(cycle: Sequence[_E], current: _E, step: int) -> _E:
    idx = cycle.index(current)
    return cycle[(idx + step) % len(cycle)]


@dataclass(frozen=True)
class FilterState:
    assignee: AssigneeFilter = AssigneeFilter.ME
    status: StatusFilter = StatusFilter.ALL
    sort: SortOrder = SortOrder.UPDATED_DESC

    def cycle_assignee(self, step: int = 1) -> "FilterState":
        return replace(self, assignee=_step(ASSIGNEE_CYCLE, self.assignee, step))

    def cycle_status(self, step: int = 1) -> "FilterState":
        return replace(self, status=_step(STATUS_CYCLE, self.status, step))

    def cycle_sort(self, step: int = 1) -> "FilterState":
        return replace(self, sort=_step(SORT_CYCLE, self.sort, step))

    def cycle_field(self, field_name: str, step: int = 1) -> "FilterState":
        if field_name == "assignee":
            return self.cycle_assignee(step)
        if field_name == "status":
            return self.cycle_status(step)
        if field_name == "sort":
            return self.cycle_sort(step)
        raise ValueError(f"Unknown filter field: {field_name!r}")

    def summary(self) -> str:
        return f"assignee={self.assignee.label()} status={self.status.label()} sort={self.sort.label()}"


def validate_filter(value: FilterState) -> FilterState:
    """Reject values outside the enumerated sets.

    The UI can only produce valid enum members, so a failure here is a bug in
    the caller and is raised, not reported.
    """
    if not isinstance(value, FilterState):
        raise ValueError(f"Expected FilterState, got {type(value).__name__}")
    if not isinstance(value.assignee, AssigneeFilter):
        raise ValueError(f"Invalid assignee filter: {value.assignee!r}")
    if not isinstance(value.status, StatusFilter):
        raise ValueError(f"Invalid status filter: {value.status!r}")
    if not isinstance(value.sort, SortOrder):
        raise ValueError(f"Invalid sort order: {value.sort!r}")
    return value


class FilterEngine:
    def __init__(self, initial: FilterState = FilterState()):
        self.current = validate_filter(initial)
        self.generation = 0

    def apply(self, value: FilterState) -> FilterState:
        """Commit ``value``; bumps the generation only when something changed."""
        validate_filter(value)
        if value != self.current:
            self.current = value
            self.generation += 1
        return self.current

    def changed_since(self, generation: int) -> bool:
        return generation != self.generation
