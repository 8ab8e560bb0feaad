"""Snapshot naming rules and ``metadata.json`` handling."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from specfirst.errors import InvalidSnapshotNameError, SnapshotCorruptError
from specfirst.schemas.validator import validate_data

METADATA_FILENAME = "metadata.json"
METADATA_SCHEMA = "snapshot_metadata"

SNAPSHOT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")
MAX_SNAPSHOT_NAME_LENGTH = 128


def is_valid_snapshot_name(name: str) -> bool:
    """Check a snapshot name against the naming rules."""
    if not name or len(name) > MAX_SNAPSHOT_NAME_LENGTH:
        return False
    if ".." in name:
        return False
    return SNAPSHOT_NAME_PATTERN.match(name) is not None


def ensure_valid_snapshot_name(name: str) -> None:
    if not is_valid_snapshot_name(name):
        raise InvalidSnapshotNameError(name)


def archived_timestamp() -> str:
    """RFC 3339 UTC timestamp with second precision."""
    return datetime.now(UTC).replace(microsecond=0).isoformat().replace("+00:00", "Z")


@dataclass
class SnapshotMetadata:
    """Contents of a snapshot's metadata.json."""

    version: str
    protocol: str
    archived_at: str
    stages_completed: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    notes: str = ""

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": self.version,
            "protocol": self.protocol,
            "archived_at": self.archived_at,
            "stages_completed": list(self.stages_completed),
        }
        if self.tags:
            payload["tags"] = list(self.tags)
        if self.notes:
            payload["notes"] = self.notes
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapshotMetadata:
        return cls(
            version=data["version"],
            protocol=data["protocol"],
            archived_at=data["archived_at"],
            stages_completed=list(data.get("stages_completed") or []),
            tags=list(data.get("tags") or []),
            notes=data.get("notes") or "",
        )


def write_metadata(directory: Path, metadata: SnapshotMetadata) -> Path:
    path = directory / METADATA_FILENAME
    path.write_text(json.dumps(metadata.to_dict(), indent=2) + "\n", encoding="utf-8")
    return path


def read_metadata(directory: Path) -> SnapshotMetadata:
    """Read and schema-validate metadata.json from a snapshot directory.

    Raises:
        SnapshotCorruptError: If the file is missing, unparsable, or invalid.
    """
    path = directory / METADATA_FILENAME
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SnapshotCorruptError(f"archive is incomplete or corrupt: missing {path.name}") from exc
    except (OSError, json.JSONDecodeError) as exc:
        raise SnapshotCorruptError(f"cannot parse archive metadata {path}: {exc}") from exc

    try:
        validate_data(data, METADATA_SCHEMA, strict=True)
    except ValueError as exc:
        raise SnapshotCorruptError(f"invalid archive metadata {path}: {exc}") from exc
    return SnapshotMetadata.from_dict(data)
