"""Content hashing helpers for deterministic snapshot comparison."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from specfirst.errors import FileOperationError

if TYPE_CHECKING:
    from pathlib import Path

HASH_PREFIX = "sha256:"


def sha256_text(text: str) -> str:
    """Compute a prefixed SHA-256 for UTF-8 text (used for prompt hashes)."""
    return HASH_PREFIX + hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: Path) -> str:
    """Compute a prefixed SHA-256 for file bytes."""
    digest = hashlib.sha256()
    with path.open("rb") as handle:
        while True:
            chunk = handle.read(65536)
            if not chunk:
                break
            digest.update(chunk)
    return HASH_PREFIX + digest.hexdigest()


def collect_file_hashes(root: Path) -> dict[str, str]:
    """Map every regular file under ``root`` (POSIX relative path) to its hash.

    A missing ``root`` yields an empty map.

    Raises:
        FileOperationError: If ``root`` is not a directory or a file cannot be read.
    """
    if not root.exists():
        return {}
    if not root.is_dir():
        raise FileOperationError("hashing", root, "not a directory")

    hashes: dict[str, str] = {}
    for file_path in sorted(path for path in root.rglob("*") if path.is_file()):
        rel = file_path.relative_to(root).as_posix()
        try:
            hashes[rel] = sha256_file(file_path)
        except OSError as exc:
            raise FileOperationError("hashing", file_path, exc) from exc
    return hashes


@dataclass(frozen=True)
class HashDiff:
    """Sorted differences between two hash maps."""

    added: list[str]
    removed: list[str]
    changed: list[str]

    @property
    def is_empty(self) -> bool:
        return not (self.added or self.removed or self.changed)


def compare_hashes(before: dict[str, str], after: dict[str, str]) -> HashDiff:
    """Compute deterministic added/removed/changed lists from two hash maps."""
    before_keys = set(before)
    after_keys = set(after)

    return HashDiff(
        added=sorted(after_keys - before_keys),
        removed=sorted(before_keys - after_keys),
        changed=sorted(key for key in (before_keys & after_keys) if before[key] != after[key]),
    )
