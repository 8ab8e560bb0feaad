"""Tests for loading the application context and completing stages."""

from __future__ import annotations

from pathlib import Path

import pytest

from specfirst.app import load_application
from specfirst.errors import ProtocolMismatchError, ProtocolNotFoundError, StageCompletionError
from specfirst.tasks import load_decomposition
from specfirst.utils.hashing import sha256_file, sha256_text
from specfirst.workspace import Workspace, load_state
from specfirst.workspace.config import PROTOCOL_ENV


@pytest.fixture(autouse=True)
def _no_protocol_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(PROTOCOL_ENV, raising=False)


def test_loads_config_protocol_and_state(workspace: Workspace) -> None:
    app = load_application(workspace)

    assert app.config.project_name == "demo"
    assert app.protocol.name == "multi-stage"
    assert app.state.completed_stages == ["requirements"]
    app.check_drift()


def test_fresh_state_starts_at_first_stage(workspace: Workspace) -> None:
    workspace.state_path.unlink()

    app = load_application(workspace)

    assert app.state.protocol == "multi-stage"
    assert app.state.current_stage == "requirements"


def test_missing_config_falls_back_to_default_protocol(workspace: Workspace) -> None:
    workspace.config_path.unlink()

    app = load_application(workspace)

    assert app.protocol.name == "multi-stage"


def test_override_pointing_nowhere(workspace: Workspace) -> None:
    with pytest.raises(ProtocolNotFoundError):
        load_application(workspace, "absent")


def test_drift_is_detected(workspace: Workspace) -> None:
    (workspace.protocols_dir / "lite.yaml").write_text(
        "name: lite\nstages:\n  - id: only\n    template: only.md\n",
        encoding="utf-8",
    )

    app = load_application(workspace, "lite")

    with pytest.raises(ProtocolMismatchError):
        app.check_drift()


# stage completion


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


VALID_TASKS = """\
tasks:
  - id: T1
    title: Create model
    goal: Persist users
  - id: T2
    title: Add form
    goal: Submit credentials
    dependencies: [T1]
"""


def test_complete_stage_stores_artifact_and_advances(workspace: Workspace) -> None:
    app = load_application(workspace)
    design = _write(workspace.root / "design.md", "# Design\n")

    output = app.complete_stage("design", [design])

    assert output.files == ["design/design.md"]
    assert (workspace.artifacts_dir / "design" / "design.md").read_text(encoding="utf-8") == "# Design\n"
    template = (workspace.templates_dir / "design.md").read_text(encoding="utf-8")
    assert output.prompt_hash == sha256_text(template)

    saved = load_state(workspace.state_path)
    assert saved.completed_stages == ["requirements", "design"]
    assert saved.current_stage == "decompose"
    assert saved.stage_outputs["design"].files == ["design/design.md"]


def test_complete_stage_keeps_project_relative_path(workspace: Workspace) -> None:
    app = load_application(workspace)
    design = _write(workspace.root / "docs" / "design.md", "# Design\n")

    output = app.complete_stage("design", [design])

    assert output.files == ["design/docs/design.md"]
    assert (workspace.artifacts_dir / "design" / "docs" / "design.md").is_file()


def test_complete_stage_hashes_prompt_file(workspace: Workspace, tmp_path: Path) -> None:
    app = load_application(workspace)
    design = _write(workspace.root / "design.md", "# Design\n")
    prompt = _write(tmp_path / "prompt.md", "compiled prompt\n")

    output = app.complete_stage("design", [design], prompt_file=prompt)

    assert output.prompt_hash == sha256_file(prompt)


def test_complete_unknown_stage(workspace: Workspace) -> None:
    with pytest.raises(StageCompletionError, match="unknown stage: ghost"):
        load_application(workspace).complete_stage("ghost", [])


def test_complete_requires_dependencies(workspace: Workspace) -> None:
    tasks = _write(workspace.root / "tasks.yaml", VALID_TASKS)

    with pytest.raises(StageCompletionError, match="missing dependency: design"):
        load_application(workspace).complete_stage("decompose", [tasks])

    assert not (workspace.artifacts_dir / "decompose").exists()


def test_repeat_completion_needs_force(workspace: Workspace) -> None:
    app = load_application(workspace)
    notes = _write(workspace.root / "notes" / "requirements.md", "# Requirements v2\n")

    with pytest.raises(StageCompletionError, match="already completed; use --force"):
        app.complete_stage("requirements", [notes])

    output = app.complete_stage("requirements", [notes], force=True)

    assert output.files == ["requirements/notes/requirements.md"]
    assert (workspace.artifacts_dir / "requirements" / "notes" / "requirements.md").is_file()
    assert not (workspace.artifacts_dir / "requirements" / "requirements.md").exists()
    assert load_state(workspace.state_path).completed_stages == ["requirements"]


def test_declared_outputs_are_required(workspace: Workspace) -> None:
    with pytest.raises(StageCompletionError, match="requires output artifacts"):
        load_application(workspace).complete_stage("design", [])


def test_output_must_match_declared_pattern(workspace: Workspace) -> None:
    readme = _write(workspace.root / "readme.txt", "hello\n")

    with pytest.raises(StageCompletionError, match="does not match stage design outputs"):
        load_application(workspace).complete_stage("design", [readme])


def test_output_must_be_inside_project(workspace: Workspace, tmp_path: Path) -> None:
    outside = _write(tmp_path / "elsewhere" / "design.md", "# Design\n")

    with pytest.raises(StageCompletionError, match="outside the project root"):
        load_application(workspace).complete_stage("design", [outside])


def test_missing_output_file(workspace: Workspace) -> None:
    with pytest.raises(StageCompletionError, match="output file not found"):
        load_application(workspace).complete_stage("design", [workspace.root / "design.md"])


def test_decompose_rejects_task_list_with_warnings(workspace: Workspace) -> None:
    app = load_application(workspace)
    app.complete_stage("design", [_write(workspace.root / "design.md", "# Design\n")])
    tasks = _write(
        workspace.root / "tasks.yaml",
        """\
tasks:
  - id: T1
    title: A
    goal: B
    dependencies: [T2]
  - id: T2
    title: C
    goal: D
    dependencies: [T1]
""",
    )

    with pytest.raises(StageCompletionError, match="circular dependency"):
        app.complete_stage("decompose", [tasks])

    saved = load_state(workspace.state_path)
    assert "decompose" not in saved.completed_stages
    assert not (workspace.artifacts_dir / "decompose").exists()


def test_decompose_rejects_unparseable_task_list(workspace: Workspace) -> None:
    app = load_application(workspace)
    app.complete_stage("design", [_write(workspace.root / "design.md", "# Design\n")])
    tasks = _write(workspace.root / "tasks.yaml", "just prose, no tasks\n")

    with pytest.raises(StageCompletionError, match="failed to parse task list"):
        app.complete_stage("decompose", [tasks])


def test_decompose_completion_feeds_task_loading(workspace: Workspace) -> None:
    app = load_application(workspace)
    app.complete_stage("design", [_write(workspace.root / "design.md", "# Design\n")])

    app.complete_stage("decompose", [_write(workspace.root / "tasks.yaml", VALID_TASKS)])

    reloaded = load_application(workspace)
    assert reloaded.state.current_stage == "implement"
    task_list, warnings = load_decomposition(reloaded.protocol, reloaded.state, workspace)
    assert [task.id for task in task_list.tasks] == ["T1", "T2"]
    assert warnings == []
