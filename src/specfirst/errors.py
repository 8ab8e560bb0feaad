"""Error types raised by the SpecFirst core.

Every public operation raises a subclass of :class:`SpecFirstError`. The
command layer prints the message to stderr and exits non-zero.
"""

from __future__ import annotations


class SpecFirstError(RuntimeError):
    """Base class for all SpecFirst refusals and failures."""


class FileOperationError(SpecFirstError):
    """Raised when a filesystem operation fails; names the operation and path."""

    def __init__(self, operation: str, path: object, reason: object) -> None:
        self.operation = operation
        self.path = str(path)
        super().__init__(f"{operation} {self.path}: {reason}")


class ConfigError(SpecFirstError):
    """Raised when config.yaml is malformed."""


class StateError(SpecFirstError):
    """Raised when state.json cannot be read or written."""


# Protocol resolution


class ProtocolNotFoundError(SpecFirstError):
    """Raised when a protocol file does not exist."""


class ProtocolParseError(SpecFirstError):
    """Raised when a protocol file is not valid YAML or has the wrong shape."""


class ProtocolValidationError(SpecFirstError):
    """Raised when a resolved protocol violates a structural invariant."""


class ImportCycleError(SpecFirstError):
    """Raised when a protocol import revisits a file already being resolved."""

    def __init__(self, path: object, stack: list[str]) -> None:
        self.path = str(path)
        self.stack = list(stack)
        chain = " -> ".join([*self.stack, self.path])
        super().__init__(f"circular protocol import detected: {chain}")


class ProtocolImportError(SpecFirstError):
    """Raised when resolving an imported protocol fails.

    The nested failure is chained as ``__cause__``; ``root_cause`` walks the
    chain down to the first error that is not itself an import wrapper.
    """

    def __init__(self, import_name: str, cause: BaseException) -> None:
        self.import_name = import_name
        super().__init__(f"importing {import_name!r}: {cause}")

    @property
    def root_cause(self) -> BaseException:
        current: BaseException = self
        while isinstance(current, ProtocolImportError) and current.__cause__ is not None:
            current = current.__cause__
        return current


class ProtocolMismatchError(SpecFirstError):
    """Raised when state.json was started under a different protocol."""


class StageCompletionError(SpecFirstError):
    """Raised when a stage cannot be marked complete."""


# Task graphs


class TaskParseError(SpecFirstError):
    """Raised when no parse strategy yields any task."""


class DecompositionError(SpecFirstError):
    """Raised when the task list of a decompose stage cannot be located."""


# Snapshots


class SnapshotError(SpecFirstError):
    """Base class for snapshot store failures."""


class InvalidSnapshotNameError(SnapshotError):
    """Raised when a snapshot name fails the naming rules."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"invalid snapshot name: {name!r}")


class SnapshotExistsError(SnapshotError):
    """Raised when creating a snapshot whose name is already taken."""


class SnapshotNotFoundError(SnapshotError):
    """Raised when a named snapshot does not exist."""


class SnapshotCorruptError(SnapshotError):
    """Raised when an archive is missing pieces needed to restore it."""


class MissingArtifactError(SnapshotError):
    """Raised when state.json records an artifact that is not on disk."""

    def __init__(self, stage_id: str, artifact_path: str) -> None:
        self.stage_id = stage_id
        self.artifact_path = artifact_path
        super().__init__(
            f"missing artifact for stage {stage_id}: {artifact_path} (snapshot aborted)"
        )


class RequiredDirectoryMissingError(SnapshotError):
    """Raised when protocols/ or templates/ is absent during a copy."""

    def __init__(self, path: object) -> None:
        self.path = str(path)
        super().__init__(f"required directory missing: {self.path}")


class MetadataMismatchError(SnapshotError):
    """Raised when metadata.json disagrees with the archived protocol."""


class WorkspaceNotEmptyError(SnapshotError):
    """Raised when restoring over existing data without force."""

    def __init__(self, path: object) -> None:
        self.path = str(path)
        super().__init__(f"workspace has data at {self.path}; use --force to overwrite")


class RestoreError(SnapshotError):
    """Raised when a restore failed mid-swap and the workspace was rolled back."""


class RollbackError(SnapshotError):
    """Raised when one or more rollback steps could not be undone."""

    def __init__(self, failures: list[str]) -> None:
        self.failures = list(failures)
        details = "\n".join(f"  - {item}" for item in self.failures)
        super().__init__(f"rollback incomplete; manual repair needed:\n{details}")
