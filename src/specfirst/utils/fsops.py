"""Filesystem copy and removal primitives for artifacts and snapshots."""

from __future__ import annotations

import logging
import os
import posixpath
import shutil
import tempfile
from pathlib import Path

from specfirst.errors import FileOperationError, RequiredDirectoryMissingError

logger = logging.getLogger(__name__)


def copy_file(src: Path, dst: Path) -> None:
    """Copy a file atomically (temp file beside ``dst``, then replace).

    Raises:
        FileOperationError: If the source is missing or the copy fails.
    """
    if not src.is_file():
        raise FileOperationError("copying", src, "source file does not exist")
    try:
        dst.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileOperationError("creating directory", dst.parent, exc) from exc

    fd, tmp_name = tempfile.mkstemp(prefix=".copyfile.", suffix=".tmp", dir=dst.parent)
    os.close(fd)
    try:
        shutil.copy2(src, tmp_name)
        os.replace(tmp_name, dst)
    except OSError as exc:
        Path(tmp_name).unlink(missing_ok=True)
        raise FileOperationError(f"copying {src} to", dst, exc) from exc


def copy_tree(src: Path, dst: Path, *, required: bool = False) -> bool:
    """Recursively copy ``src`` into ``dst``.

    Relative symlinks that stay inside the tree are recreated; absolute or
    traversing links are refused. Other non-regular files are skipped.

    Returns:
        False when an optional ``src`` does not exist, True otherwise.

    Raises:
        RequiredDirectoryMissingError: If ``src`` is missing and ``required``.
        FileOperationError: If ``src`` is not a directory or a copy fails.
    """
    if not src.exists() and not src.is_symlink():
        if required:
            raise RequiredDirectoryMissingError(src)
        return False
    if not src.is_dir():
        raise FileOperationError("copying", src, "source is not a directory")

    _ensure_dir(dst)
    for dirpath, dirnames, filenames in os.walk(src):
        current = Path(dirpath)
        target_dir = dst / current.relative_to(src)
        dirnames.sort()

        for name in list(dirnames):
            entry = current / name
            if entry.is_symlink():
                # os.walk does not descend into linked directories; copy the link itself.
                dirnames.remove(name)
                _copy_symlink(entry, target_dir / name)
            else:
                _ensure_dir(target_dir / name)

        for name in sorted(filenames):
            entry = current / name
            target = target_dir / name
            if entry.is_symlink():
                _copy_symlink(entry, target)
            elif entry.is_file():
                copy_file(entry, target)
            else:
                logger.info("skipping non-regular file %s", entry)
    return True


def remove_path(path: Path) -> None:
    """Remove a file, symlink or directory tree if it exists."""
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        raise FileOperationError("removing", path, exc) from exc


def path_exists(path: Path) -> bool:
    """True for existing paths, including dangling symlinks."""
    return path.exists() or path.is_symlink()


def _ensure_dir(path: Path) -> None:
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise FileOperationError("creating directory", path, exc) from exc


def _copy_symlink(link: Path, target: Path) -> None:
    link_target = os.readlink(link)
    normalized = link_target.replace("\\", "/")
    if normalized.startswith("/") or os.path.isabs(link_target):
        raise FileOperationError(
            "copying symlink",
            link,
            f"absolute link target {link_target!r} not allowed in archives",
        )
    if ".." in posixpath.normpath(normalized).split("/") or ".." in normalized.split("/"):
        raise FileOperationError(
            "copying symlink",
            link,
            f"link target {link_target!r} traverses outside the tree",
        )
    try:
        os.symlink(link_target, target)
    except OSError as exc:
        raise FileOperationError(f"creating symlink {link_target} at", target, exc) from exc
