"""Snapshot store: archive, restore and compare whole workspaces.

A snapshot is a directory ``<root>/<name>/`` holding copies of the
workspace components plus ``metadata.json``. Creation stages everything in
``.<name>.tmp`` and renames it into place. Restoration stages the archive next
to the workspace, checks its metadata against the archived protocol, then
swaps each live component through a :class:`SwapTransaction`.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from specfirst.errors import (
    ConfigError,
    FileOperationError,
    MetadataMismatchError,
    MissingArtifactError,
    ProtocolMismatchError,
    RestoreError,
    SnapshotCorruptError,
    SnapshotExistsError,
    SnapshotNotFoundError,
    SpecFirstError,
    WorkspaceNotEmptyError,
)
from specfirst.protocol import Protocol, load_protocol
from specfirst.protocol.resolver import PROTOCOL_NAME_PATTERN, PROTOCOL_SUFFIX
from specfirst.snapshot.metadata import (
    SnapshotMetadata,
    archived_timestamp,
    ensure_valid_snapshot_name,
    read_metadata,
    write_metadata,
)
from specfirst.snapshot.transaction import SwapTransaction
from specfirst.utils.fsops import copy_file, copy_tree, path_exists, remove_path
from specfirst.utils.hashing import HashDiff, collect_file_hashes, compare_hashes
from specfirst.workspace.config import Config, load_config
from specfirst.workspace.paths import (
    ARTIFACTS_DIR,
    CONFIG_FILE,
    GENERATED_DIR,
    PROTOCOLS_DIR,
    STATE_FILE,
    TEMPLATES_DIR,
    Workspace,
)
from specfirst.workspace.state import State

logger = logging.getLogger(__name__)

STAGING_PREFIX = "."
STAGING_SUFFIX = ".tmp"


@dataclass(frozen=True)
class Component:
    """One piece of workspace state carried by a snapshot."""

    name: str
    is_dir: bool
    required: bool

    def live_path(self, workspace: Workspace) -> Path:
        return workspace.spec_dir / self.name


# Order matters: restore swaps components in this order.
COMPONENTS: tuple[Component, ...] = (
    Component(ARTIFACTS_DIR, is_dir=True, required=False),
    Component(GENERATED_DIR, is_dir=True, required=False),
    Component(PROTOCOLS_DIR, is_dir=True, required=True),
    Component(TEMPLATES_DIR, is_dir=True, required=True),
    Component(CONFIG_FILE, is_dir=False, required=True),
    Component(STATE_FILE, is_dir=False, required=True),
)


SnapshotDiff = HashDiff


class SnapshotStore:
    """Named snapshots of a workspace kept under ``root``."""

    def __init__(self, root: Path, workspace: Workspace) -> None:
        self.root = root
        self.workspace = workspace

    @classmethod
    def for_workspace(cls, workspace: Workspace) -> SnapshotStore:
        return cls(workspace.archives_dir, workspace)

    def snapshot_dir(self, name: str) -> Path:
        ensure_valid_snapshot_name(name)
        return self.root / name

    def list_snapshots(self) -> list[str]:
        """Return snapshot names sorted lexicographically."""
        if not self.root.is_dir():
            return []
        return sorted(
            entry.name
            for entry in self.root.iterdir()
            if entry.is_dir() and not entry.name.startswith(STAGING_PREFIX)
        )

    def show(self, name: str) -> SnapshotMetadata:
        """Return the validated metadata of a snapshot."""
        return read_metadata(self._existing_snapshot(name))

    def create(
        self,
        name: str,
        *,
        config: Config,
        protocol: Protocol,
        state: State,
        tags: Sequence[str] = (),
        notes: str = "",
    ) -> Path:
        """Archive the current workspace as snapshot ``name``.

        Nothing under ``root`` changes unless the whole snapshot is written.

        Returns:
            The final snapshot directory.

        Raises:
            InvalidSnapshotNameError: If ``name`` fails the naming rules.
            ProtocolMismatchError: If state was started under another protocol.
            MissingArtifactError: If a recorded artifact is not on disk.
            SnapshotExistsError: If the snapshot already exists.
            RequiredDirectoryMissingError: If protocols/ or templates/ is missing.
            FileOperationError: If copying fails.
        """
        snapshot_root = self.snapshot_dir(name)

        if state.protocol and state.protocol != protocol.name:
            raise ProtocolMismatchError(
                f"state was started with protocol {state.protocol!r} but the active "
                f"protocol is {protocol.name!r}"
            )
        self._check_artifacts(state)
        if not config.protocol:
            logger.warning("config.yaml names no protocol; snapshot %s cannot be restored as-is", name)

        if path_exists(snapshot_root):
            raise SnapshotExistsError(f"snapshot already exists: {name}")

        # Snapshot names cannot start with a dot, so staging never collides with one.
        staging = snapshot_root.with_name(STAGING_PREFIX + snapshot_root.name + STAGING_SUFFIX)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            remove_path(staging)
            staging.mkdir()
        except OSError as exc:
            raise FileOperationError("creating snapshot staging directory", staging, exc) from exc

        try:
            for component in COMPONENTS:
                _copy_component(component, component.live_path(self.workspace), staging / component.name)

            metadata = SnapshotMetadata(
                version=name,
                protocol=protocol.name,
                archived_at=archived_timestamp(),
                stages_completed=list(state.completed_stages),
                tags=list(tags),
                notes=notes,
            )
            write_metadata(staging, metadata)
            staging.rename(snapshot_root)
        except OSError as exc:
            remove_path(staging)
            raise FileOperationError("finalizing snapshot", snapshot_root, exc) from exc
        except BaseException:
            remove_path(staging)
            raise

        logger.info("created snapshot %s at %s", name, snapshot_root)
        return snapshot_root

    def restore(self, name: str, *, force: bool = False) -> SnapshotMetadata:
        """Replace the live workspace with snapshot ``name``.

        Returns:
            The metadata of the restored snapshot.

        Raises:
            SnapshotNotFoundError: If the snapshot does not exist.
            WorkspaceNotEmptyError: If live data exists and ``force`` is False.
            SnapshotCorruptError: If the archive is missing required pieces.
            MetadataMismatchError: If metadata.json names another protocol.
            RestoreError: If the swap failed; the workspace was rolled back.
        """
        snapshot_root = self._existing_snapshot(name)
        live_paths = [component.live_path(self.workspace) for component in COMPONENTS]

        if not force:
            for live in live_paths:
                if path_exists(live):
                    raise WorkspaceNotEmptyError(live)

        staging = self.workspace.restore_staging_dir
        remove_path(staging)
        try:
            staging.mkdir(parents=True)
        except OSError as exc:
            raise FileOperationError("creating restore staging directory", staging, exc) from exc

        try:
            for component in COMPONENTS:
                try:
                    _copy_component(component, snapshot_root / component.name, staging / component.name)
                except SpecFirstError as exc:
                    raise SnapshotCorruptError(
                        f"failed to stage {component.name} from snapshot {name}: {exc}"
                    ) from exc

            metadata = self._check_archive(snapshot_root)
            self._swap_in(staging, name)
        finally:
            remove_path(staging)

        logger.info("restored snapshot %s into %s", name, self.workspace.spec_dir)
        return metadata

    def compare(self, left: str, right: str) -> SnapshotDiff:
        """Diff the artifacts of two snapshots by content hash.

        Paths only in ``right`` are added, only in ``left`` removed.
        """
        left_hashes = collect_file_hashes(self._existing_snapshot(left) / ARTIFACTS_DIR)
        right_hashes = collect_file_hashes(self._existing_snapshot(right) / ARTIFACTS_DIR)
        return compare_hashes(left_hashes, right_hashes)

    def _existing_snapshot(self, name: str) -> Path:
        snapshot_root = self.snapshot_dir(name)
        if not snapshot_root.exists():
            raise SnapshotNotFoundError(f"snapshot not found: {name}")
        if not snapshot_root.is_dir():
            raise SnapshotNotFoundError(f"snapshot is not a directory: {name}")
        return snapshot_root

    def _check_artifacts(self, state: State) -> None:
        for stage_id in sorted(state.stage_outputs):
            for artifact in state.stage_outputs[stage_id].files:
                try:
                    path = self.workspace.artifact_path(artifact)
                except ValueError as exc:
                    raise MissingArtifactError(stage_id, artifact) from exc
                if not path_exists(path):
                    raise MissingArtifactError(stage_id, artifact)

    def _check_archive(self, snapshot_root: Path) -> SnapshotMetadata:
        metadata = read_metadata(snapshot_root)

        try:
            archived_config = load_config(snapshot_root / CONFIG_FILE)
        except ConfigError as exc:
            raise SnapshotCorruptError(f"archive config is unreadable: {exc}") from exc
        protocol_name = archived_config.protocol
        if not protocol_name:
            raise SnapshotCorruptError("archive is incomplete or corrupt: config missing protocol")
        if not PROTOCOL_NAME_PATTERN.match(protocol_name):
            raise SnapshotCorruptError(
                f"archive config names an invalid protocol: {protocol_name!r}"
            )

        protocol_file = snapshot_root / PROTOCOLS_DIR / f"{protocol_name}{PROTOCOL_SUFFIX}"
        if not protocol_file.is_file():
            raise SnapshotCorruptError(
                f"archive is incomplete or corrupt: missing protocol file {protocol_file.name}"
            )
        try:
            archived_protocol = load_protocol(protocol_file)
        except SpecFirstError as exc:
            raise SnapshotCorruptError(f"cannot load archived protocol: {exc}") from exc

        if metadata.protocol != archived_protocol.name:
            raise MetadataMismatchError(
                f"archive metadata protocol mismatch: metadata={metadata.protocol} "
                f"protocol={archived_protocol.name}"
            )
        return metadata

    def _swap_in(self, staging: Path, name: str) -> None:
        spec_dir = self.workspace.spec_dir
        txn = SwapTransaction()
        try:
            if not spec_dir.exists():
                txn.record_created(spec_dir)
                spec_dir.mkdir(parents=True)

            for component in COMPONENTS:
                live = component.live_path(self.workspace)
                staged = staging / component.name
                if path_exists(live):
                    txn.backup(live)
                else:
                    txn.record_created(live)
                if path_exists(staged):
                    txn.install(staged, live)
        except (OSError, SpecFirstError) as exc:
            logger.warning("restore of %s failed, rolling back: %s", name, exc)
            txn.rollback()
            raise RestoreError(
                f"restore of snapshot {name} failed and the workspace was rolled back: {exc}"
            ) from exc

        txn.commit()


def _copy_component(component: Component, src: Path, dst: Path) -> None:
    if not component.is_dir:
        copy_file(src, dst)
        return
    copied = copy_tree(src, dst, required=component.required)
    if not copied:
        logger.warning("optional directory %s is missing; skipped", src)
