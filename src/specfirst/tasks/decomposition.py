"""Load the task list produced by a completed decompose stage."""

from __future__ import annotations

import logging

from specfirst.errors import DecompositionError, TaskParseError
from specfirst.protocol import Protocol
from specfirst.tasks.parser import parse_task_list
from specfirst.tasks.types import TaskList
from specfirst.tasks.validator import validate_task_list
from specfirst.workspace.paths import Workspace
from specfirst.workspace.state import State

logger = logging.getLogger(__name__)

DECOMPOSE_TYPE = "decompose"


def load_decomposition(
    protocol: Protocol,
    state: State,
    workspace: Workspace,
) -> tuple[TaskList, list[str]]:
    """Parse and validate the decompose stage's recorded artifacts.

    The first artifact that parses into at least one task is used; tasks
    come back sorted by ID.

    Returns:
        Tuple of (task_list, warnings)

    Raises:
        DecompositionError: If the protocol has no decompose stage, the stage
            is not completed, it recorded no artifacts, or none of them parse.
    """
    stages = protocol.stages_of_type(DECOMPOSE_TYPE)
    if not stages:
        raise DecompositionError(f"protocol {protocol.name!r} has no decompose stage")
    stage = stages[0]

    if not state.is_stage_completed(stage.id):
        raise DecompositionError(f"decompose stage {stage.id!r} is not completed")
    output = state.stage_outputs.get(stage.id)
    if output is None or not output.files:
        raise DecompositionError(f"decompose stage {stage.id!r} recorded no artifacts")

    for artifact in output.files:
        try:
            path = workspace.artifact_path(artifact)
        except ValueError as exc:
            logger.warning("skipping artifact %s: %s", artifact, exc)
            continue
        try:
            content = path.read_text(encoding="utf-8")
        except OSError as exc:
            logger.warning("cannot read artifact %s: %s", path, exc)
            continue
        try:
            task_list = parse_task_list(content)
        except TaskParseError:
            logger.debug("no tasks in %s", path)
            continue
        return task_list.sorted_by_id(), validate_task_list(task_list)

    raise DecompositionError(
        f"no task list found in artifacts of decompose stage {stage.id!r}"
    )
