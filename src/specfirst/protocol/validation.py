"""Structural validation for resolved protocols."""

from __future__ import annotations

import fnmatch
import logging
import posixpath
import re

from specfirst.errors import ProtocolValidationError
from specfirst.graph import find_cycle, format_cycle
from specfirst.protocol.types import STAGE_TYPES, Protocol, Stage

logger = logging.getLogger(__name__)

STAGE_ID_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_-]*$")


def validate_protocol(protocol: Protocol) -> None:
    """Validate a fully merged protocol.

    Checks run in a fixed order and the first violation is raised.

    Raises:
        ProtocolValidationError: On any invariant violation.
    """
    seen: set[str] = set()
    for stage in protocol.stages:
        validate_stage_id(stage.id)
        validate_template_path(stage.template, stage_id=stage.id)
        if stage.type not in STAGE_TYPES:
            raise ProtocolValidationError(
                f"stage {stage.id!r}: invalid stage type {stage.type!r} "
                "(must be one of: spec, decompose, task_prompt)"
            )
        if stage.id in seen:
            raise ProtocolValidationError(f"duplicate stage ID: {stage.id}")
        seen.add(stage.id)

    stage_map = {stage.id: stage for stage in protocol.stages}

    for stage in protocol.stages:
        for dep in stage.depends_on:
            if dep == stage.id:
                raise ProtocolValidationError(f"stage {stage.id!r} cannot depend on itself")
            if dep not in stage_map:
                raise ProtocolValidationError(
                    f"stage {stage.id!r} depends on unknown stage {dep!r}"
                )

    for stage in protocol.stages:
        _validate_inputs(stage, stage_map)

    for stage in protocol.stages:
        if stage.type != "task_prompt" or not stage.source:
            continue
        source = stage_map.get(stage.source)
        if source is None:
            raise ProtocolValidationError(
                f"stage {stage.id!r} references unknown source stage {stage.source!r}"
            )
        if source.type != "decompose":
            raise ProtocolValidationError(
                f"stage {stage.id!r} source must be a decompose stage, got {source.type!r}"
            )

    graph = protocol.dependency_graph()
    for stage in protocol.stages:
        cycle = find_cycle(graph, stage.id)
        if cycle is not None:
            raise ProtocolValidationError(
                f"circular dependency detected: {format_cycle(cycle)}"
            )

    for approval in protocol.approvals:
        if not approval.stage.strip():
            raise ProtocolValidationError("approval references empty stage")
        if not approval.role.strip():
            raise ProtocolValidationError(
                f"approval role is required for stage {approval.stage!r}"
            )
        if approval.stage not in stage_map:
            raise ProtocolValidationError(
                f"approval references unknown stage {approval.stage!r}"
            )


def validate_stage_id(stage_id: str) -> None:
    if not stage_id.strip():
        raise ProtocolValidationError("stage id is required")
    if stage_id != stage_id.lower():
        raise ProtocolValidationError(f"stage id {stage_id!r} must be lowercase")
    if not STAGE_ID_PATTERN.match(stage_id):
        raise ProtocolValidationError(
            f"invalid stage id {stage_id!r} "
            "(must be alphanumeric and may contain hyphens or underscores)"
        )


def validate_template_path(value: str, *, stage_id: str = "") -> None:
    """Reject empty, absolute and root-escaping template paths."""
    prefix = f"stage {stage_id!r}: " if stage_id else ""
    if not value.strip():
        raise ProtocolValidationError(f"{prefix}stage template is required")

    normalized = value.replace("\\", "/")
    clean = posixpath.normpath(normalized)
    if (
        normalized.startswith("/")
        or re.match(r"^[A-Za-z]:/", normalized)
        or clean in (".", "..")
        or clean.startswith("../")
    ):
        raise ProtocolValidationError(f"{prefix}invalid template path: {value}")


def match_pattern(pattern: str, candidate: str) -> bool:
    """Match an output declaration against an input name.

    Patterns containing ``*`` are globbed; everything else is compared
    literally.
    """
    if not pattern:
        return False
    if "*" in pattern:
        return _glob_match(pattern, candidate)
    return pattern == candidate


def _glob_match(pattern: str, candidate: str) -> bool:
    # Wildcards do not cross path separators.
    pattern_parts = pattern.split("/")
    candidate_parts = candidate.split("/")
    if len(pattern_parts) != len(candidate_parts):
        return False
    return all(
        fnmatch.fnmatchcase(part, pattern_part)
        for part, pattern_part in zip(candidate_parts, pattern_parts)
    )


def _validate_inputs(stage: Stage, stage_map: dict[str, Stage]) -> None:
    for input_name in stage.inputs:
        if not input_name:
            continue

        if _matches_dependency_output(stage, input_name, stage_map):
            continue

        # Stage-qualified "<stage-id>/<file>" inputs may name any stage, even one
        # outside depends_on.
        normalized = input_name.replace("\\", "/")
        if "/" in normalized:
            qualifier, filename = normalized.split("/", 1)
            target = stage_map.get(qualifier)
            if target is not None and any(
                match_pattern(out, filename) for out in target.outputs
            ):
                if qualifier not in stage.depends_on:
                    logger.debug(
                        "stage %s consumes %s without declaring a dependency on %s",
                        stage.id,
                        input_name,
                        qualifier,
                    )
                continue

        dep_info = [
            f"{dep_id} outputs: {stage_map[dep_id].outputs}" for dep_id in stage.depends_on
        ]
        raise ProtocolValidationError(
            f"stage {stage.id!r}: input {input_name!r} not found in outputs of any "
            f"dependency. Dependencies: {dep_info}"
        )


def _matches_dependency_output(
    stage: Stage, input_name: str, stage_map: dict[str, Stage]
) -> bool:
    for dep_id in stage.depends_on:
        for out in stage_map[dep_id].outputs:
            if match_pattern(out, input_name):
                return True
    return False
