"""Protocol loading with import (mixin) resolution.

A protocol may declare ``uses: [name, ...]``. Each name resolves to
``<importer dir>/<name>.yaml`` unless a custom resolver is supplied. Imports
are processed last-declared first and their stages are prepended, so after
the loop the stage list reads::

    [first import, ..., last import, local stages]

The backwards dedup pass then keeps the latest occurrence of every stage ID:
local definitions override imports and later imports override earlier ones.
Diamond imports hit the per-call cache and collapse without error.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from pathlib import Path

import yaml

from specfirst.errors import (
    ImportCycleError,
    ProtocolImportError,
    ProtocolNotFoundError,
    ProtocolParseError,
    SpecFirstError,
)
from specfirst.protocol.types import Approval, Protocol, Stage
from specfirst.protocol.validation import validate_protocol

logger = logging.getLogger(__name__)

PROTOCOL_SUFFIX = ".yaml"
PROTOCOL_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]*$")

ImportResolver = Callable[[str], Protocol]


@dataclass
class ResolutionContext:
    """Bookkeeping for one top-level :func:`load_protocol` call.

    Attributes:
        stack: Absolute paths currently being resolved, outermost first.
        cache: Fully merged protocols keyed by absolute path.
    """

    stack: list[str] = field(default_factory=list)
    cache: dict[str, Protocol] = field(default_factory=dict)


def load_protocol(path: Path, *, resolver: ImportResolver | None = None) -> Protocol:
    """Load, merge and validate a protocol file.

    Args:
        path: Protocol YAML file.
        resolver: Optional callable mapping an import name to a protocol. When
            omitted, imports are loaded from the importer's directory.

    Returns:
        The merged, validated protocol.

    Raises:
        ProtocolNotFoundError: If ``path`` does not exist.
        ProtocolParseError: If a file is not a valid protocol document.
        ImportCycleError: If an import chain revisits a file.
        ProtocolImportError: If an imported protocol fails to resolve.
        ProtocolValidationError: If the merged protocol is invalid.
    """
    protocol = resolve_protocol(Path(path), ResolutionContext(), resolver=resolver)
    validate_protocol(protocol)
    logger.debug(
        "loaded protocol %s with %d stages from %s",
        protocol.name,
        len(protocol.stages),
        path,
    )
    return protocol


def resolve_protocol(
    path: Path,
    context: ResolutionContext,
    *,
    resolver: ImportResolver | None = None,
) -> Protocol:
    """Parse ``path`` and merge its imports without validating the result."""
    abs_path = str(path.expanduser().resolve())

    if abs_path in context.stack:
        raise ImportCycleError(abs_path, context.stack)

    cached = context.cache.get(abs_path)
    if cached is not None:
        logger.debug("protocol cache hit: %s", abs_path)
        return cached

    protocol = parse_protocol_file(path)

    if protocol.uses:
        context.stack.append(abs_path)
        try:
            for import_name in reversed(protocol.uses):
                imported = _resolve_import(import_name, path.parent, context, resolver)
                protocol.stages = [*imported.stages, *protocol.stages]
                protocol.approvals = [*imported.approvals, *protocol.approvals]
        finally:
            context.stack.pop()

    protocol.stages = dedupe_stages(protocol.stages)
    protocol.approvals = dedupe_approvals(protocol.approvals)

    context.cache[abs_path] = protocol
    return protocol


def parse_protocol_file(path: Path) -> Protocol:
    """Read a single protocol file without resolving its imports."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ProtocolNotFoundError(f"protocol not found: {path}") from exc
    except OSError as exc:
        raise ProtocolParseError(f"cannot read protocol {path}: {exc}") from exc

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ProtocolParseError(f"malformed protocol YAML in {path}: {exc}") from exc

    if data is None:
        data = {}
    try:
        return Protocol.from_dict(data)
    except TypeError as exc:
        raise ProtocolParseError(f"invalid protocol structure in {path}: {exc}") from exc


def dedupe_stages(stages: list[Stage]) -> list[Stage]:
    """Keep the last occurrence of every stage ID, preserving order."""
    seen: set[str] = set()
    winners: list[Stage] = []
    for stage in reversed(stages):
        if stage.id in seen:
            continue
        seen.add(stage.id)
        winners.append(stage)
    winners.reverse()
    return winners


def dedupe_approvals(approvals: list[Approval]) -> list[Approval]:
    """Keep the last occurrence of every ``(stage, role)`` pair, preserving order."""
    seen: set[tuple[str, str]] = set()
    winners: list[Approval] = []
    for approval in reversed(approvals):
        if approval.key in seen:
            continue
        seen.add(approval.key)
        winners.append(approval)
    winners.reverse()
    return winners


def protocol_path(protocols_dir: Path, name_or_path: str) -> Path:
    """Map a protocol reference to a file.

    Absolute and ``./`` / ``../`` references are used as paths; anything else
    must be a plain protocol name under ``protocols_dir``.

    Raises:
        ProtocolNotFoundError: If a plain name is not a valid protocol name.
    """
    if Path(name_or_path).is_absolute() or name_or_path.startswith(("./", "../")):
        return Path(name_or_path)
    if not PROTOCOL_NAME_PATTERN.match(name_or_path):
        raise ProtocolNotFoundError(
            f"invalid protocol name: {name_or_path!r} (must start with a letter and "
            "contain only letters, numbers, hyphens, underscores)"
        )
    return protocols_dir / f"{name_or_path}{PROTOCOL_SUFFIX}"


def list_protocols(protocols_dir: Path) -> list[str]:
    """Return sorted protocol names available in ``protocols_dir``."""
    if not protocols_dir.is_dir():
        return []
    return sorted(
        entry.name[: -len(PROTOCOL_SUFFIX)]
        for entry in protocols_dir.iterdir()
        if entry.is_file() and entry.name.endswith(PROTOCOL_SUFFIX)
    )


def _resolve_import(
    import_name: str,
    base_dir: Path,
    context: ResolutionContext,
    resolver: ImportResolver | None,
) -> Protocol:
    try:
        if resolver is not None:
            imported = resolver(import_name)
        else:
            import_path = base_dir / f"{import_name}{PROTOCOL_SUFFIX}"
            imported = resolve_protocol(import_path, context)
    except ImportCycleError:
        # The cycle message already carries the full import chain.
        raise
    except SpecFirstError as exc:
        raise ProtocolImportError(import_name, exc) from exc

    # The cached protocol is shared between importers; hand out copies of the lists.
    return replace(imported, stages=list(imported.stages), approvals=list(imported.approvals))
