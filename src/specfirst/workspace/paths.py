"""Workspace layout and project root detection."""

from __future__ import annotations

import posixpath
import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

SPEC_DIR = ".specfirst"
ARTIFACTS_DIR = "artifacts"
GENERATED_DIR = "generated"
PROTOCOLS_DIR = "protocols"
TEMPLATES_DIR = "templates"
ARCHIVES_DIR = "archives"
CONFIG_FILE = "config.yaml"
STATE_FILE = "state.json"

ROOT_MARKERS: tuple[str, ...] = (SPEC_DIR, ".git")


@dataclass(frozen=True)
class Workspace:
    """Paths of a SpecFirst workspace rooted at a project directory."""

    root: Path

    @property
    def spec_dir(self) -> Path:
        return self.root / SPEC_DIR

    @property
    def artifacts_dir(self) -> Path:
        return self.spec_dir / ARTIFACTS_DIR

    @property
    def generated_dir(self) -> Path:
        return self.spec_dir / GENERATED_DIR

    @property
    def protocols_dir(self) -> Path:
        return self.spec_dir / PROTOCOLS_DIR

    @property
    def templates_dir(self) -> Path:
        return self.spec_dir / TEMPLATES_DIR

    @property
    def archives_dir(self) -> Path:
        return self.spec_dir / ARCHIVES_DIR

    @property
    def config_path(self) -> Path:
        return self.spec_dir / CONFIG_FILE

    @property
    def state_path(self) -> Path:
        return self.spec_dir / STATE_FILE

    @property
    def restore_staging_dir(self) -> Path:
        return self.root / f"{SPEC_DIR}_restore.tmp"

    def artifact_path(self, state_value: str) -> Path:
        """Absolute path of an artifact recorded in state.json."""
        rel = artifact_rel_from_state(state_value)
        return self.artifacts_dir.joinpath(*PurePosixPath(rel).parts)


def find_project_root(start: Path) -> Path:
    """Walk upward from ``start`` to the first directory holding a root marker.

    Falls back to ``start`` itself when no marker is found.
    """
    start = start.resolve()
    current = start
    while True:
        for marker in ROOT_MARKERS:
            if (current / marker).exists():
                return current
        parent = current.parent
        if parent == current:
            return start
        current = parent


def detect_workspace(start: Path | None = None, root_override: Path | None = None) -> Workspace:
    """Resolve the workspace for a command invocation."""
    if root_override is not None:
        return Workspace(root=root_override.expanduser().resolve())
    return Workspace(root=find_project_root(start or Path.cwd()))


def artifact_rel_from_state(value: str) -> str:
    """Normalize an artifact path recorded in state.json.

    State records paths relative to ``artifacts/`` (``stage/file.md``). Older
    states may hold absolute paths; those are cut at the last ``artifacts``
    component.

    Raises:
        ValueError: If the path is empty, escapes the artifacts tree, or is
            absolute without an ``artifacts`` component.
    """
    if not value:
        raise ValueError(f"invalid artifact path: {value!r}")
    normalized = value.replace("\\", "/")
    is_absolute = normalized.startswith("/") or bool(re.match(r"^[A-Za-z]:/", normalized))
    clean = posixpath.normpath(normalized)

    if is_absolute:
        parts = clean.split("/")
        for idx in range(len(parts) - 1, -1, -1):
            if parts[idx] == ARTIFACTS_DIR:
                rel = "/".join(parts[idx + 1 :])
                if rel in ("", "."):
                    break
                return rel
        raise ValueError(f"artifact path is outside artifacts dir: {value}")

    if clean in (".", "..") or clean.startswith("../"):
        raise ValueError(f"invalid artifact path: {value}")
    return clean
