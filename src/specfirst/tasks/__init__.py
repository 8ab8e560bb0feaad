"""Task lists: tolerant parsing and dependency validation."""

from specfirst.tasks.decomposition import load_decomposition
from specfirst.tasks.parser import extract_code_block, parse_task_list
from specfirst.tasks.types import Task, TaskList
from specfirst.tasks.validator import validate_task_list

__all__ = [
    "Task",
    "TaskList",
    "extract_code_block",
    "load_decomposition",
    "parse_task_list",
    "validate_task_list",
]
