"""Load the pieces every command needs: config, active protocol and state."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from specfirst.errors import (
    FileOperationError,
    ProtocolMismatchError,
    StageCompletionError,
    TaskParseError,
)
from specfirst.protocol import Protocol, Stage, load_protocol, protocol_path
from specfirst.protocol.validation import match_pattern
from specfirst.tasks import parse_task_list, validate_task_list
from specfirst.utils.fsops import copy_file, remove_path
from specfirst.utils.hashing import sha256_file, sha256_text
from specfirst.workspace.config import Config, load_config, resolve_active_protocol
from specfirst.workspace.paths import Workspace
from specfirst.workspace.state import StageOutput, State, load_state, save_state

logger = logging.getLogger(__name__)


@dataclass
class Application:
    """Loaded workspace context for one command invocation."""

    workspace: Workspace
    config: Config
    protocol: Protocol
    state: State

    def check_drift(self) -> None:
        """Refuse to continue when state belongs to another protocol.

        Raises:
            ProtocolMismatchError: If state.json names a different protocol.
        """
        if self.state.protocol and self.state.protocol != self.protocol.name:
            raise ProtocolMismatchError(
                f"state was started with protocol {self.state.protocol!r} but the "
                f"active protocol is {self.protocol.name!r}"
            )

    def complete_stage(
        self,
        stage_id: str,
        output_files: Sequence[Path],
        *,
        force: bool = False,
        prompt_file: Path | None = None,
    ) -> StageOutput:
        """Mark ``stage_id`` complete and store its outputs under ``artifacts/<stage>/``.

        Output files must live inside the project root; their project-relative
        path is kept below the stage directory. With ``force`` a completed
        stage is recorded again and artifacts it no longer lists are removed.

        The prompt hash is taken from ``prompt_file`` when given, otherwise
        from the stage template text.

        Returns:
            The recorded stage output.

        Raises:
            StageCompletionError: If the stage is unknown, blocked, already
                completed, or its outputs are rejected.
            FileOperationError: If copying an artifact fails.
            StateError: If state.json cannot be written.
        """
        stage = self.protocol.stage_by_id(stage_id)
        if stage is None:
            raise StageCompletionError(f"unknown stage: {stage_id}")

        for dep in stage.depends_on:
            if not self.state.is_stage_completed(dep):
                raise StageCompletionError(f"missing dependency: {dep}")

        previous = self.state.stage_outputs.get(stage_id)
        if (self.state.is_stage_completed(stage_id) or previous is not None) and not force:
            raise StageCompletionError(f"stage {stage_id} already completed; use --force to overwrite")

        sources = self._check_outputs(stage, output_files)
        if stage.effective_type == "decompose":
            for source in sources.values():
                _check_task_list(source)

        old_files = list(previous.files) if force and previous is not None else []
        if len(sources) < len(old_files):
            logger.warning(
                "forcing completion of %s with %d files; it previously had %d, obsolete artifacts will be removed",
                stage_id,
                len(sources),
                len(old_files),
            )

        stored: list[str] = []
        for rel, source in sources.items():
            value = f"{stage_id}/{rel}"
            copy_file(source, self.workspace.artifact_path(value))
            stored.append(value)

        for old in old_files:
            if old in stored:
                continue
            try:
                obsolete = self.workspace.artifact_path(old)
            except ValueError:
                logger.debug("skipping unresolvable artifact %s", old)
                continue
            remove_path(obsolete)
            logger.info("removed obsolete artifact %s", old)

        self.state.complete_stage(stage_id, stored, self._prompt_hash(stage, prompt_file))
        if not self.state.protocol:
            self.state.protocol = self.protocol.name
        following = self.protocol.next_stage(stage_id)
        if following is not None and self.state.current_stage == stage_id:
            self.state.current_stage = following.id

        save_state(self.workspace.state_path, self.state)
        logger.info("completed stage %s with %d artifact(s)", stage_id, len(stored))
        return self.state.stage_outputs[stage_id]

    def _check_outputs(self, stage: Stage, output_files: Sequence[Path]) -> dict[str, Path]:
        """Map project-relative POSIX paths to resolved output files."""
        if stage.outputs and not output_files:
            raise StageCompletionError(
                f"stage {stage.id!r} requires output artifacts but none were provided"
            )

        root = self.workspace.root.resolve()
        sources: dict[str, Path] = {}
        for output in output_files:
            resolved = Path(output).resolve()
            if not resolved.is_file():
                raise StageCompletionError(f"output file not found: {output}")
            try:
                rel = resolved.relative_to(root).as_posix()
            except ValueError as exc:
                raise StageCompletionError(f"output file is outside the project root: {output}") from exc

            if stage.outputs and not _matches_outputs(stage.outputs, rel):
                raise StageCompletionError(
                    f"output {rel} does not match stage {stage.id} outputs {stage.outputs}"
                )
            sources[rel] = resolved
        return sources

    def _prompt_hash(self, stage: Stage, prompt_file: Path | None) -> str:
        if prompt_file is not None:
            try:
                return sha256_file(prompt_file)
            except OSError as exc:
                raise FileOperationError("hashing prompt", prompt_file, exc) from exc

        template = self.workspace.templates_dir / stage.template
        if not template.is_file():
            logger.debug("no template at %s; prompt hash left empty", template)
            return ""
        return sha256_text(template.read_text(encoding="utf-8"))


def _matches_outputs(patterns: Sequence[str], rel: str) -> bool:
    candidates = (rel, PurePosixPath(rel).name)
    return any(match_pattern(pattern, candidate) for pattern in patterns for candidate in candidates)


def _check_task_list(path: Path) -> None:
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise StageCompletionError(f"failed to read task file {path}: {exc}") from exc
    try:
        task_list = parse_task_list(content)
    except TaskParseError as exc:
        raise StageCompletionError(f"failed to parse task list in {path}: {exc}") from exc

    warnings = validate_task_list(task_list)
    if warnings:
        raise StageCompletionError(f"invalid task list in {path}:\n" + "\n".join(warnings))


def load_application(workspace: Workspace, protocol_override: str | None = None) -> Application:
    """Build the application context for ``workspace``.

    Raises:
        ConfigError: If config.yaml is malformed.
        StateError: If state.json is malformed.
        ProtocolNotFoundError: If the active protocol cannot be located.
        ProtocolParseError: If the active protocol is malformed.
        ProtocolValidationError: If the active protocol is invalid.
    """
    config = load_config(workspace.config_path)
    reference = resolve_active_protocol(config, protocol_override)
    path = protocol_path(workspace.protocols_dir, reference)
    logger.debug("active protocol %s -> %s", reference, path)
    protocol = load_protocol(path)

    state = load_state(workspace.state_path)
    if not state.protocol and not state.completed_stages:
        state.protocol = protocol.name
        if not state.current_stage and protocol.stages:
            state.current_stage = protocol.stages[0].id

    return Application(workspace=workspace, config=config, protocol=protocol, state=state)
