"""Tests for task list warnings."""

from __future__ import annotations

from specfirst.tasks import Task, TaskList, validate_task_list


def _task(task_id: str, *deps: str, title: str = "Title", goal: str = "Goal") -> Task:
    return Task(id=task_id, title=title, goal=goal, dependencies=list(deps))


def test_clean_task_list_has_no_warnings() -> None:
    task_list = TaskList(tasks=[_task("T1"), _task("T2", "T1"), _task("T3", "T1", "T2")])

    assert validate_task_list(task_list) == []


def test_two_task_cycle_is_flagged() -> None:
    warnings = validate_task_list(TaskList(tasks=[_task("T1", "T2"), _task("T2", "T1")]))

    assert "circular dependency: T1 -> T2 -> T1" in warnings


def test_self_dependency_is_a_cycle() -> None:
    warnings = validate_task_list(TaskList(tasks=[_task("T1", "T1")]))

    assert warnings == ["circular dependency: T1 -> T1"]


def test_duplicate_and_unknown_references() -> None:
    warnings = validate_task_list(
        TaskList(tasks=[_task("T1"), _task("T1"), _task("T2", "T404")])
    )

    assert "duplicate task ID: T1" in warnings
    assert "task T2 depends on unknown task T404" in warnings


def test_empty_fields_are_reported() -> None:
    warnings = validate_task_list(
        TaskList(tasks=[Task(id="", title="Orphan", goal="x"), Task(id="T2")])
    )

    assert "task with empty ID found at index 0" in warnings
    assert "task T2 has empty title" in warnings
    assert "task T2 has empty goal" in warnings


def test_long_chain_is_not_a_cycle() -> None:
    tasks = [_task("T0")] + [_task(f"T{i}", f"T{i - 1}") for i in range(1, 200)]

    assert validate_task_list(TaskList(tasks=tasks)) == []


def test_sorted_by_id_and_lookup() -> None:
    task_list = TaskList(tasks=[_task("T2"), _task("T1")])

    assert [task.id for task in task_list.sorted_by_id().tasks] == ["T1", "T2"]
    assert task_list.task_by_id("T2") is task_list.tasks[0]
    assert task_list.task_by_id("T3") is None
