"""Pytest configuration and fixtures for SpecFirst tests."""
from __future__ import annotations

from pathlib import Path

import pytest

from specfirst.workspace import StageOutput, State, Workspace, load_state, save_state

MULTI_STAGE_PROTOCOL = """\
name: multi-stage
version: "1.0"
stages:
  - id: requirements
    name: Requirements
    type: spec
    template: requirements.md
    outputs: [requirements.md]
  - id: design
    name: Design
    type: spec
    template: design.md
    depends_on: [requirements]
    inputs: [requirements.md]
    outputs: [design.md]
  - id: decompose
    name: Decompose
    type: decompose
    template: decompose.md
    depends_on: [design]
    inputs: [design.md]
    outputs: [tasks.yaml]
  - id: implement
    name: Implement
    type: task_prompt
    template: task.md
    depends_on: [decompose]
    source: decompose
approvals:
  - stage: design
    role: architect
"""


def pytest_sessionfinish(session, exitstatus):
    """Check that coverage data was collected if --cov was requested.

    This prevents silent "no data collected" scenarios that produce 0% coverage
    without failing the test run.
    """
    cov_enabled = any("--cov" in str(arg) for arg in session.config.args)
    if not cov_enabled:
        return

    coverage_files = list(Path.cwd().glob(".coverage*"))
    if not coverage_files:
        pytest.exit(
            "Coverage was enabled but no data was collected. "
            "Check that tests import from 'specfirst' (the package) not 'src/specfirst'.",
            returncode=1,
        )


def read_tree(root: Path) -> dict[str, bytes]:
    """Map every file under ``root`` to its bytes, keyed by POSIX relative path."""
    if not root.exists():
        return {}
    if root.is_file():
        return {root.name: root.read_bytes()}
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def tree_bytes():
    return read_tree


@pytest.fixture
def workspace(tmp_path: Path) -> Workspace:
    """A populated workspace with the ``requirements`` stage completed."""
    ws = Workspace(root=tmp_path / "project")
    ws.protocols_dir.mkdir(parents=True)
    (ws.protocols_dir / "multi-stage.yaml").write_text(MULTI_STAGE_PROTOCOL, encoding="utf-8")

    ws.templates_dir.mkdir(parents=True)
    for name in ("requirements.md", "design.md", "decompose.md", "task.md"):
        (ws.templates_dir / name).write_text(f"# {name}\n{{{{ .ProjectName }}}}\n", encoding="utf-8")

    artifact = ws.artifacts_dir / "requirements" / "requirements.md"
    artifact.parent.mkdir(parents=True)
    artifact.write_text("# Requirements\n\n- users can log in\n", encoding="utf-8")

    ws.generated_dir.mkdir(parents=True)
    (ws.generated_dir / "requirements.prompt.md").write_text("prompt\n", encoding="utf-8")

    ws.config_path.write_text(
        "project_name: demo\nprotocol: multi-stage\nlanguage: python\n",
        encoding="utf-8",
    )

    state = State(
        protocol="multi-stage",
        current_stage="design",
        completed_stages=["requirements"],
        started_at="2026-01-01T00:00:00+00:00",
        stage_outputs={
            "requirements": StageOutput(
                files=["requirements/requirements.md"],
                completed_at="2026-01-01T00:05:00+00:00",
                prompt_hash="sha256:abc",
            )
        },
    )
    save_state(ws.state_path, state)
    return ws


@pytest.fixture
def decomposed_workspace(workspace: Workspace) -> Workspace:
    """Workspace whose decompose stage produced a task list."""
    tasks = workspace.artifacts_dir / "decompose" / "tasks.yaml"
    tasks.parent.mkdir(parents=True)
    tasks.write_text(
        """\
tasks:
  - id: T2
    title: Add login form
    goal: Users can submit credentials
    dependencies: [T1]
    files_touched: [web/login.py]
    risk_level: low
    estimated_scope: S
    acceptance_criteria:
      - form posts to /login
  - id: T1
    title: Create user model
    goal: Persist users
    test_plan:
      - unit test for model
""",
        encoding="utf-8",
    )
    state = load_state(workspace.state_path)
    state.complete_stage("design", [])
    state.complete_stage("decompose", ["decompose/tasks.yaml"])
    save_state(workspace.state_path, state)
    return workspace
