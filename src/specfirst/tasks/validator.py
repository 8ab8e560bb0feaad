"""Task list integrity checks.

Problems are returned as warnings; callers decide whether they block.
"""

from __future__ import annotations

from specfirst.graph import find_cycle, format_cycle
from specfirst.tasks.types import TaskList


def validate_task_list(task_list: TaskList) -> list[str]:
    """Return human-readable warnings for a task list."""
    warnings: list[str] = []
    seen: set[str] = set()

    for index, task in enumerate(task_list.tasks):
        task_ref = task.id
        if not task.id:
            task_ref = f"at index {index}"
            warnings.append(f"task with empty ID found {task_ref}")
        else:
            if task.id in seen:
                warnings.append(f"duplicate task ID: {task.id}")
            seen.add(task.id)

        if not task.title:
            warnings.append(f"task {task_ref} has empty title")
        if not task.goal:
            warnings.append(f"task {task_ref} has empty goal")

    graph = task_list.dependency_graph()
    cleared: set[str] = set()
    for task in task_list.tasks:
        for dep in task.dependencies:
            if dep not in seen:
                warnings.append(f"task {task.id} depends on unknown task {dep}")

        if not task.id:
            continue
        cycle = find_cycle(graph, task.id, cleared=cleared)
        if cycle is not None:
            warnings.append(f"circular dependency: {format_cycle(cycle)}")

    return warnings
