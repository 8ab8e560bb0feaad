"""Tolerant task list parser."""

from __future__ import annotations

import json
import logging
from typing import Any

import yaml

from specfirst.errors import TaskParseError
from specfirst.tasks.types import Task, TaskList

logger = logging.getLogger(__name__)

FENCE = "```"


def parse_task_list(content: str) -> TaskList:
    """Parse a task list from YAML, JSON, or Markdown with a fenced block.

    Strategies, first one yielding at least one task wins:

    1. YAML of the whole text (also covers most JSON)
    2. YAML of the first fenced code block
    3. Strict JSON of the whole text

    Raises:
        TaskParseError: If no strategy yields a task.
    """
    tasks = _from_yaml(content)
    if tasks:
        return TaskList(tasks=tasks)

    if FENCE in content:
        block = extract_code_block(content)
        if block:
            tasks = _from_yaml(block)
            if tasks:
                return TaskList(tasks=tasks)

    tasks = _from_json(content)
    if tasks:
        return TaskList(tasks=tasks)

    raise TaskParseError("failed to parse task list from content")


def extract_code_block(content: str) -> str:
    """Return the body of the first fenced code block.

    An unterminated fence yields the rest of the text.
    """
    start = content.find(FENCE)
    if start == -1:
        return ""
    line_end = content.find("\n", start)
    if line_end == -1:
        return ""
    body_start = line_end + 1

    end = content.find(FENCE, body_start)
    if end == -1:
        return content[body_start:].strip()
    return content[body_start:end].strip()


def _from_yaml(text: str) -> list[Task]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        logger.debug("task list is not YAML: %s", exc)
        return []
    return _tasks_from_document(data)


def _from_json(text: str) -> list[Task]:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        logger.debug("task list is not JSON: %s", exc)
        return []
    return _tasks_from_document(data)


def _tasks_from_document(data: Any) -> list[Task]:
    if not isinstance(data, dict):
        return []
    raw_tasks = data.get("tasks")
    if not isinstance(raw_tasks, list):
        return []
    try:
        return [Task.from_dict(item) for item in raw_tasks]
    except TypeError as exc:
        logger.debug("task entries are malformed: %s", exc)
        return []
