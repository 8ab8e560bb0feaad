"""Reversible swap log for replacing live workspace paths.

Each live path is either moved aside to ``<path>.old`` (``backup``) or
recorded as absent (``created``) before a staged replacement is moved into
place (``install``). ``commit`` drops the backups; ``rollback`` undoes the
log newest-first so the workspace returns to its previous contents.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from specfirst.errors import (
    FileOperationError,
    RollbackError,
    SnapshotError,
    SpecFirstError,
)
from specfirst.utils.fsops import path_exists, remove_path

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".old"

EntryKind = Literal["backup", "created", "install"]


@dataclass(frozen=True)
class LogEntry:
    kind: EntryKind
    path: Path
    backup: Path | None = None


class SwapTransaction:
    """Ordered log of reversible filesystem moves."""

    def __init__(self) -> None:
        self.entries: list[LogEntry] = []
        self.closed = False

    def backup(self, path: Path) -> Path:
        """Move an existing live path to its ``.old`` sibling."""
        self._ensure_open()
        backup_path = path.with_name(path.name + BACKUP_SUFFIX)
        remove_path(backup_path)
        try:
            os.rename(path, backup_path)
        except OSError as exc:
            raise FileOperationError("backing up", path, exc) from exc
        self.entries.append(LogEntry("backup", path, backup_path))
        logger.debug("backed up %s -> %s", path, backup_path)
        return backup_path

    def record_created(self, path: Path) -> None:
        """Note that ``path`` did not exist, so rollback must delete it."""
        self._ensure_open()
        self.entries.append(LogEntry("created", path))

    def install(self, staged: Path, path: Path) -> None:
        """Move a staged component into its live location."""
        self._ensure_open()
        try:
            os.rename(staged, path)
        except OSError as exc:
            raise FileOperationError(f"installing {staged.name} at", path, exc) from exc
        self.entries.append(LogEntry("install", path))
        logger.debug("installed %s -> %s", staged, path)

    @property
    def backups(self) -> list[Path]:
        return [entry.backup for entry in self.entries if entry.backup is not None]

    def commit(self) -> None:
        """Delete every backup; the swapped-in contents become permanent.

        Raises:
            SnapshotError: If a backup could not be removed (names each one).
        """
        self._ensure_open()
        self.closed = True
        failures: list[str] = []
        for backup_path in self.backups:
            try:
                remove_path(backup_path)
            except SpecFirstError as exc:
                failures.append(str(exc))
        if failures:
            details = "; ".join(failures)
            raise SnapshotError(f"restore committed but stale backups remain: {details}")

    def rollback(self) -> None:
        """Undo the log newest-first.

        Every entry is attempted even if an earlier undo fails.

        Raises:
            RollbackError: Listing each step that could not be undone.
        """
        self._ensure_open()
        self.closed = True
        failures: list[str] = []
        for entry in reversed(self.entries):
            try:
                self._undo(entry)
            except (OSError, SpecFirstError) as exc:
                failures.append(f"{entry.kind} {entry.path}: {exc}")
        if failures:
            raise RollbackError(failures)

    def _undo(self, entry: LogEntry) -> None:
        if entry.kind in ("install", "created"):
            remove_path(entry.path)
            return
        if entry.backup is None:
            return
        if path_exists(entry.path):
            remove_path(entry.path)
        os.rename(entry.backup, entry.path)
        logger.info("restored %s from backup", entry.path)

    def _ensure_open(self) -> None:
        if self.closed:
            raise RuntimeError("transaction already committed or rolled back")
