"""Task list types produced by decompose stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _texts(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int, float)):
        return [_text(value)]
    if not isinstance(value, list):
        raise TypeError(f"expected a list, got {type(value).__name__}")
    return [_text(item) for item in value if _text(item)]


@dataclass
class Task:
    """A decomposed unit of work."""

    id: str
    title: str = ""
    goal: str = ""
    acceptance_criteria: list[str] = field(default_factory=list)
    dependencies: list[str] = field(default_factory=list)
    files_touched: list[str] = field(default_factory=list)
    risk_level: str = ""  # low|medium|high
    estimated_scope: str = ""  # S|M|L
    non_goals: list[str] = field(default_factory=list)
    test_plan: list[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Task:
        """Build a task from a decoded mapping.

        Raises:
            TypeError: If ``data`` is not a mapping or a list field is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError(f"task entry must be a mapping, got {type(data).__name__}")
        return cls(
            id=_text(data.get("id")),
            title=_text(data.get("title")),
            goal=_text(data.get("goal")),
            acceptance_criteria=_texts(data.get("acceptance_criteria")),
            dependencies=_texts(data.get("dependencies")),
            files_touched=_texts(data.get("files_touched")),
            risk_level=_text(data.get("risk_level")),
            estimated_scope=_text(data.get("estimated_scope")),
            non_goals=_texts(data.get("non_goals")),
            test_plan=_texts(data.get("test_plan")),
        )


@dataclass
class TaskList:
    """Ordered collection of tasks."""

    tasks: list[Task] = field(default_factory=list)

    def task_by_id(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def sorted_by_id(self) -> TaskList:
        return TaskList(tasks=sorted(self.tasks, key=lambda task: task.id))

    def dependency_graph(self) -> dict[str, list[str]]:
        graph: dict[str, list[str]] = {}
        for task in self.tasks:
            if task.id and task.id not in graph:
                graph[task.id] = list(task.dependencies)
        return graph

    def __len__(self) -> int:
        return len(self.tasks)
