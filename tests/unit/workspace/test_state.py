"""Tests for state.json persistence."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from specfirst.errors import StateError
from specfirst.workspace.state import State, load_state, save_state


def test_missing_state_is_fresh(tmp_path: Path) -> None:
    state = load_state(tmp_path / "state.json")

    assert state.protocol == ""
    assert state.completed_stages == []
    assert state.started_at


def test_round_trip_keeps_unknown_sections(tmp_path: Path) -> None:
    path = tmp_path / "state.json"
    path.write_text(
        json.dumps(
            {
                "protocol": "multi-stage",
                "current_stage": "design",
                "completed_stages": ["requirements"],
                "started_at": "2026-01-01T00:00:00Z",
                "stage_outputs": {
                    "requirements": {
                        "files": ["requirements/requirements.md"],
                        "completed_at": "2026-01-01T00:01:00Z",
                        "prompt_hash": "sha256:00",
                    }
                },
                "attestations": {"requirements:owner": {"status": "approved"}},
                "epistemics": {"assumptions": [{"id": "A1"}]},
            }
        ),
        encoding="utf-8",
    )

    state = load_state(path)
    save_state(path, state)
    reloaded = json.loads(path.read_text(encoding="utf-8"))

    assert state.is_stage_completed("requirements")
    assert state.stage_outputs["requirements"].files == ["requirements/requirements.md"]
    assert reloaded["attestations"] == {"requirements:owner": {"status": "approved"}}
    assert reloaded["epistemics"] == {"assumptions": [{"id": "A1"}]}
    assert list(tmp_path.iterdir()) == [path]


def test_complete_stage_records_outputs() -> None:
    state = State.new("multi-stage")
    state.complete_stage("requirements", ["requirements/requirements.md"], prompt_hash="sha256:ab")
    state.complete_stage("requirements", ["requirements/v2.md"])

    assert state.completed_stages == ["requirements"]
    assert state.stage_outputs["requirements"].files == ["requirements/v2.md"]
    assert state.stage_outputs["requirements"].completed_at


@pytest.mark.parametrize(
    "body",
    ["{not json", "[]", '{"completed_stages": "requirements"}', '{"stage_outputs": {"a": {"files": "x"}}}'],
)
def test_malformed_state_raises(tmp_path: Path, body: str) -> None:
    path = tmp_path / "state.json"
    path.write_text(body, encoding="utf-8")

    with pytest.raises(StateError):
        load_state(path)
