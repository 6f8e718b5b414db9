import pytest

from jira_task_viewer.filters import (
    AssigneeFilter,
    FilterEngine,
    FilterState,
    SortOrder,
    StatusFilter,
    validate_filter,
)


def test_default_filter_is_me_all_updated():
    f = FilterState()
    assert f.assignee is AssigneeFilter.ME
    assert f.status is StatusFilter.ALL
    assert f.sort is SortOrder.UPDATED_DESC


def test_cycle_assignee_wraps_both_ways():
    f = FilterState()
    assert f.cycle_assignee().assignee is AssigneeFilter.UNASSIGNED
    assert f.cycle_assignee().cycle_assignee().cycle_assignee().assignee is AssigneeFilter.ME
    assert f.cycle_assignee(-1).assignee is AssigneeFilter.ALL


def test_cycle_status_order_matches_modal():
    seen = []
    f = FilterState()
    for _ in range(4):
        seen.append(f.status)
        f = f.cycle_status()
    assert seen == [StatusFilter.ALL, StatusFilter.TODO, StatusFilter.IN_PROGRESS, StatusFilter.DONE]
    assert f.status is StatusFilter.ALL


def test_cycle_field_dispatches_by_name():
    f = FilterState()
    assert f.cycle_field("sort").sort is SortOrder.CREATED_DESC
    with pytest.raises(ValueError):
        f.cycle_field("priority")


def test_summary_uses_labels():
    assert FilterState().summary() == "assignee=Me status=All sort=Updated (newest)"


def test_validate_filter_rejects_foreign_values():
    with pytest.raises(ValueError):
        validate_filter(FilterState(status="done"))
    with pytest.raises(ValueError):
        validate_filter("not a filter")


def test_engine_generation_bumps_only_on_change():
    engine = FilterEngine()
    assert engine.generation == 0
    engine.apply(FilterState())
    assert engine.generation == 0
    engine.apply(FilterState(status=StatusFilter.DONE))
    assert engine.generation == 1
    assert engine.current.status is StatusFilter.DONE
    assert engine.changed_since(0)
    assert not engine.changed_since(1)


def test_engine_apply_invalid_keeps_current():
    engine = FilterEngine()
    with pytest.raises(ValueError):
        engine.apply(FilterState(sort="newest"))
    assert engine.current == FilterState()
    assert engine.generation == 0
