"""Protocol domain types."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

STAGE_TYPES: tuple[str, ...] = ("", "spec", "decompose", "task_prompt")


def _string_list(value: Any, field_name: str, owner: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise TypeError(f"{owner}: '{field_name}' must be a list")
    items: list[str] = []
    for item in value:
        if isinstance(item, (dict, list)):
            raise TypeError(f"{owner}: '{field_name}' entries must be strings")
        items.append("" if item is None else str(item))
    return items


def _string(value: Any, field_name: str, owner: str) -> str:
    if value is None:
        return ""
    if isinstance(value, (dict, list)):
        raise TypeError(f"{owner}: '{field_name}' must be a string")
    return str(value)


@dataclass
class Stage:
    """A single workflow step.

    ``prompt`` and ``output`` are carried through for the template renderer
    and are not interpreted here.
    """

    id: str
    name: str = ""
    type: str = ""
    template: str = ""
    intent: str = ""
    depends_on: list[str] = field(default_factory=list)
    inputs: list[str] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)
    source: str = ""
    optional: bool = False
    repeatable: bool = False
    terminal: bool = False
    prompt: dict[str, Any] | None = None
    output: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int) -> Stage:
        """Build a stage from a decoded YAML mapping.

        Raises:
            TypeError: If a field has the wrong shape.
        """
        if not isinstance(data, dict):
            raise TypeError(f"stage {index}: must be a mapping")
        owner = f"stage {data.get('id', index)!r}"

        prompt = data.get("prompt")
        if prompt is not None and not isinstance(prompt, dict):
            raise TypeError(f"{owner}: 'prompt' must be a mapping")
        output = data.get("output")
        if output is not None and not isinstance(output, dict):
            raise TypeError(f"{owner}: 'output' must be a mapping")

        return cls(
            id=_string(data.get("id"), "id", owner),
            name=_string(data.get("name"), "name", owner),
            type=_string(data.get("type"), "type", owner),
            template=_string(data.get("template"), "template", owner),
            intent=_string(data.get("intent"), "intent", owner),
            depends_on=_string_list(data.get("depends_on"), "depends_on", owner),
            inputs=_string_list(data.get("inputs"), "inputs", owner),
            outputs=_string_list(data.get("outputs"), "outputs", owner),
            source=_string(data.get("source"), "source", owner),
            optional=bool(data.get("optional", False)),
            repeatable=bool(data.get("repeatable", False)),
            terminal=bool(data.get("terminal", False)),
            prompt=prompt,
            output=output,
        )

    @property
    def effective_type(self) -> str:
        """Stage type with the empty default mapped to ``spec``."""
        return self.type or "spec"


@dataclass(frozen=True)
class Approval:
    """A role that must sign off on a stage."""

    stage: str
    role: str

    @classmethod
    def from_dict(cls, data: dict[str, Any], index: int) -> Approval:
        if not isinstance(data, dict):
            raise TypeError(f"approval {index}: must be a mapping")
        owner = f"approval {index}"
        return cls(
            stage=_string(data.get("stage"), "stage", owner),
            role=_string(data.get("role"), "role", owner),
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.stage, self.role)


@dataclass
class Protocol:
    """A workflow definition: stages, approvals and imported mixins."""

    name: str
    version: str = ""
    uses: list[str] = field(default_factory=list)
    stages: list[Stage] = field(default_factory=list)
    approvals: list[Approval] = field(default_factory=list)
    lint: dict[str, Any] | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Protocol:
        """Build an unresolved protocol from a decoded YAML document.

        Raises:
            TypeError: If the document or a field has the wrong shape.
        """
        if not isinstance(data, dict):
            raise TypeError("protocol document must be a mapping")

        raw_stages = data.get("stages") or []
        if not isinstance(raw_stages, list):
            raise TypeError("'stages' must be a list")
        raw_approvals = data.get("approvals") or []
        if not isinstance(raw_approvals, list):
            raise TypeError("'approvals' must be a list")
        lint = data.get("lint")
        if lint is not None and not isinstance(lint, dict):
            raise TypeError("'lint' must be a mapping")

        return cls(
            name=_string(data.get("name"), "name", "protocol"),
            version=_string(data.get("version"), "version", "protocol"),
            uses=_string_list(data.get("uses"), "uses", "protocol"),
            stages=[Stage.from_dict(item, idx) for idx, item in enumerate(raw_stages)],
            approvals=[
                Approval.from_dict(item, idx) for idx, item in enumerate(raw_approvals)
            ],
            lint=lint,
        )

    def stage_by_id(self, stage_id: str) -> Stage | None:
        for stage in self.stages:
            if stage.id == stage_id:
                return stage
        return None

    def stage_ids(self) -> list[str]:
        """Stage IDs in declaration order."""
        return [stage.id for stage in self.stages]

    def stages_of_type(self, stage_type: str) -> list[Stage]:
        return [stage for stage in self.stages if stage.type == stage_type]

    def next_stage(self, current_id: str) -> Stage | None:
        """Return the stage declared after ``current_id``, if any."""
        for idx, stage in enumerate(self.stages):
            if stage.id == current_id:
                if idx + 1 < len(self.stages):
                    return self.stages[idx + 1]
                return None
        return None

    def dependency_graph(self) -> dict[str, list[str]]:
        return {stage.id: list(stage.depends_on) for stage in self.stages}
