"""Stage completion state (``.specfirst/state.json``)."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from specfirst.errors import StateError


def get_timestamp() -> str:
    """Return wallclock timestamp for state records."""
    return datetime.now(UTC).isoformat()


@dataclass
class StageOutput:
    """Artifacts recorded when a stage was completed."""

    files: list[str] = field(default_factory=list)
    completed_at: str = ""
    prompt_hash: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageOutput:
        files = data.get("files") or []
        if not isinstance(files, list):
            raise ValueError("'files' must be a list")
        return cls(
            files=[str(item) for item in files],
            completed_at=str(data.get("completed_at") or ""),
            prompt_hash=str(data.get("prompt_hash") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed_at": self.completed_at,
            "files": list(self.files),
            "prompt_hash": self.prompt_hash,
        }


@dataclass
class State:
    """Workflow progress for one workspace.

    ``attestations`` and ``epistemics`` belong to other commands and are
    round-tripped without interpretation.
    """

    protocol: str = ""
    current_stage: str = ""
    completed_stages: list[str] = field(default_factory=list)
    started_at: str = ""
    spec_version: str = ""
    stage_outputs: dict[str, StageOutput] = field(default_factory=dict)
    attestations: dict[str, Any] = field(default_factory=dict)
    epistemics: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def new(cls, protocol: str) -> State:
        return cls(protocol=protocol, started_at=get_timestamp())

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> State:
        raw_outputs = data.get("stage_outputs") or {}
        if not isinstance(raw_outputs, dict):
            raise ValueError("'stage_outputs' must be a mapping")
        completed = data.get("completed_stages") or []
        if not isinstance(completed, list):
            raise ValueError("'completed_stages' must be a list")

        return cls(
            protocol=str(data.get("protocol") or ""),
            current_stage=str(data.get("current_stage") or ""),
            completed_stages=[str(item) for item in completed],
            started_at=str(data.get("started_at") or ""),
            spec_version=str(data.get("spec_version") or ""),
            stage_outputs={
                str(stage_id): StageOutput.from_dict(output or {})
                for stage_id, output in raw_outputs.items()
            },
            attestations=dict(data.get("attestations") or {}),
            epistemics=dict(data.get("epistemics") or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "protocol": self.protocol,
            "current_stage": self.current_stage,
            "completed_stages": list(self.completed_stages),
            "started_at": self.started_at,
            "spec_version": self.spec_version,
            "stage_outputs": {
                stage_id: output.to_dict()
                for stage_id, output in sorted(self.stage_outputs.items())
            },
            "attestations": self.attestations,
        }
        if self.epistemics:
            payload["epistemics"] = self.epistemics
        return payload

    def is_stage_completed(self, stage_id: str) -> bool:
        return stage_id in self.completed_stages

    def complete_stage(self, stage_id: str, files: list[str], prompt_hash: str = "") -> None:
        """Record a stage completion with its artifact paths."""
        if stage_id not in self.completed_stages:
            self.completed_stages.append(stage_id)
        self.stage_outputs[stage_id] = StageOutput(
            files=list(files),
            completed_at=get_timestamp(),
            prompt_hash=prompt_hash,
        )


def load_state(state_path: Path) -> State:
    """Load state.json; a missing or empty file yields a fresh state.

    Raises:
        StateError: If the file is not valid JSON or has an invalid structure.
    """
    try:
        text = state_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return State.new("")
    except OSError as exc:
        raise StateError(f"Cannot read state at {state_path}: {exc}") from exc

    if not text.strip():
        return State.new("")

    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise StateError(f"Malformed JSON state at {state_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise StateError(f"Invalid state structure in {state_path}: expected an object")

    try:
        return State.from_dict(data)
    except (AttributeError, TypeError, ValueError) as exc:
        raise StateError(f"Invalid state structure in {state_path}: {exc}") from exc


def save_state(state_path: Path, state: State) -> None:
    """Write state.json atomically (temp file in the same directory, then replace)."""
    state_path.parent.mkdir(parents=True, exist_ok=True)
    payload = json.dumps(state.to_dict(), indent=2) + "\n"

    fd, tmp_name = tempfile.mkstemp(prefix=".state.", suffix=".tmp", dir=state_path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, state_path)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise StateError(f"Cannot write state at {state_path}: {exc}") from exc
