"""Tests for the specfirst command line."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from specfirst import __version__
from specfirst.cli import cli
from specfirst.workspace import Workspace
from specfirst.workspace.config import PROTOCOL_ENV

RUNNER = CliRunner()


@pytest.fixture(autouse=True)
def _no_protocol_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(PROTOCOL_ENV, raising=False)


def _invoke(workspace: Workspace, *args: str):
    return RUNNER.invoke(cli, ["--root", str(workspace.root), *args])


def test_version() -> None:
    result = RUNNER.invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_check_reports_progress(workspace: Workspace) -> None:
    result = _invoke(workspace, "check")

    assert result.exit_code == 0, result.output
    assert "Protocol: multi-stage v1.0" in result.output
    assert "Current stage: design" in result.output
    assert "Stages: 1/4 completed" in result.output
    assert "requirements" in result.output
    assert "implement" in result.output


def test_check_with_unknown_protocol_override(workspace: Workspace) -> None:
    result = _invoke(workspace, "--protocol", "missing", "check")

    assert result.exit_code == 1
    assert "Error: protocol not found" in result.output


def test_check_honours_protocol_env(workspace: Workspace, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(PROTOCOL_ENV, "from-env")

    result = _invoke(workspace, "check")

    assert result.exit_code == 1
    assert "from-env.yaml" in result.output


def test_check_refuses_protocol_drift(workspace: Workspace) -> None:
    (workspace.protocols_dir / "lite.yaml").write_text(
        "name: lite\nstages:\n  - id: only\n    template: only.md\n",
        encoding="utf-8",
    )

    result = _invoke(workspace, "--protocol", "lite", "check")

    assert result.exit_code == 1
    assert "state was started with protocol 'multi-stage'" in result.output


def test_protocol_list_and_show(workspace: Workspace) -> None:
    listed = _invoke(workspace, "protocol", "list")
    shown = _invoke(workspace, "protocol", "show", "multi-stage")

    assert listed.exit_code == 0
    assert "multi-stage" in listed.output
    assert shown.exit_code == 0, shown.output
    assert "decompose" in shown.output
    assert "approval design: architect" in shown.output


def test_protocol_validate(tmp_path: Path) -> None:
    good = tmp_path / "good.yaml"
    good.write_text("name: good\nstages:\n  - id: a\n    template: a.md\n", encoding="utf-8")
    bad = tmp_path / "bad.yaml"
    bad.write_text(
        "name: bad\nstages:\n  - id: a\n    template: a.md\n    depends_on: [a]\n",
        encoding="utf-8",
    )

    ok = RUNNER.invoke(cli, ["protocol", "validate", str(good)])
    failed = RUNNER.invoke(cli, ["protocol", "validate", str(bad)])

    assert ok.exit_code == 0
    assert "Protocol good is valid (1 stages)" in ok.output
    assert failed.exit_code == 1
    assert "Error: stage 'a' cannot depend on itself" in failed.output


def test_task_lists_sorted_tasks(decomposed_workspace: Workspace) -> None:
    result = _invoke(decomposed_workspace, "task")

    assert result.exit_code == 0, result.output
    assert result.output.index("T1") < result.output.index("T2")
    assert "Create user model" in result.output


def test_task_shows_details(decomposed_workspace: Workspace) -> None:
    result = _invoke(decomposed_workspace, "task", "T2")

    assert result.exit_code == 0, result.output
    assert "Goal: Users can submit credentials" in result.output
    assert "form posts to /login" in result.output
    assert "web/login.py" in result.output


def test_task_unknown_id(decomposed_workspace: Workspace) -> None:
    result = _invoke(decomposed_workspace, "task", "T99")

    assert result.exit_code == 1
    assert "task not found: T99" in result.output


def test_task_strict_fails_on_warnings(decomposed_workspace: Workspace) -> None:
    tasks_file = decomposed_workspace.artifacts_dir / "decompose" / "tasks.yaml"
    tasks_file.write_text(
        "tasks:\n  - id: T1\n    title: a\n    goal: b\n    dependencies: [T2]\n"
        "  - id: T2\n    title: c\n    goal: d\n    dependencies: [T1]\n",
        encoding="utf-8",
    )

    lenient = _invoke(decomposed_workspace, "task")
    strict = _invoke(decomposed_workspace, "task", "--strict")

    assert lenient.exit_code == 0
    assert "circular dependency: T1 -> T2 -> T1" in lenient.output
    assert strict.exit_code == 1
    assert "strict mode" in strict.output


def test_task_requires_decomposition(workspace: Workspace) -> None:
    result = _invoke(workspace, "task")

    assert result.exit_code == 1
    assert "decompose stage 'decompose' is not completed" in result.output


def test_complete_records_stage(workspace: Workspace) -> None:
    design = workspace.root / "design.md"
    design.write_text("# Design\n", encoding="utf-8")

    result = _invoke(workspace, "complete", "design", str(design))

    assert result.exit_code == 0, result.output
    assert "Completed stage design" in result.output
    assert "design/design.md" in result.output
    assert "Next stage: decompose" in result.output
    assert "Stages: 2/4 completed" in _invoke(workspace, "check").output


def test_complete_refusals_exit_non_zero(workspace: Workspace) -> None:
    tasks = workspace.root / "tasks.yaml"
    tasks.write_text("tasks:\n  - id: T1\n    title: a\n    goal: b\n", encoding="utf-8")

    blocked = _invoke(workspace, "complete", "decompose", str(tasks))
    repeated = _invoke(workspace, "complete", "requirements")

    assert blocked.exit_code == 1
    assert "Error: missing dependency: design" in blocked.output
    assert repeated.exit_code == 1
    assert "already completed; use --force" in repeated.output


def test_archive_lifecycle(workspace: Workspace) -> None:
    created = _invoke(workspace, "archive", "create", "v1", "--tag", "baseline", "--notes", "first")
    assert created.exit_code == 0, created.output
    assert "Snapshot v1 created" in created.output

    listed = _invoke(workspace, "archive", "list")
    assert "v1" in listed.output

    shown = _invoke(workspace, "archive", "show", "v1")
    assert shown.exit_code == 0
    assert "Protocol: multi-stage" in shown.output
    assert "Tags: baseline" in shown.output
    assert "Notes: first" in shown.output

    refused = _invoke(workspace, "archive", "restore", "v1")
    assert refused.exit_code == 1
    assert "use --force to overwrite" in refused.output

    restored = _invoke(workspace, "archive", "restore", "v1", "--force")
    assert restored.exit_code == 0, restored.output
    assert "Restored snapshot v1" in restored.output


def test_archive_compare(workspace: Workspace) -> None:
    assert _invoke(workspace, "archive", "create", "a").exit_code == 0
    (workspace.artifacts_dir / "extra.md").write_text("extra\n", encoding="utf-8")
    assert _invoke(workspace, "archive", "create", "b").exit_code == 0

    result = _invoke(workspace, "archive", "compare", "a", "b")
    same = _invoke(workspace, "archive", "compare", "a", "a")

    assert result.exit_code == 0
    assert "+ extra.md" in result.output
    assert "No artifact differences" in same.output


def test_archive_errors_exit_non_zero(workspace: Workspace) -> None:
    invalid = _invoke(workspace, "archive", "create", "bad name")
    missing = _invoke(workspace, "archive", "show", "ghost")

    assert invalid.exit_code == 1
    assert "invalid snapshot name" in invalid.output
    assert missing.exit_code == 1
    assert "snapshot not found: ghost" in missing.output
