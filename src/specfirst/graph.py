"""Depth-first cycle search over dependency graphs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence


def find_cycle(
    graph: Mapping[str, Sequence[str]],
    node: str,
    path: list[str] | None = None,
    cleared: set[str] | None = None,
) -> list[str] | None:
    """Return the first cycle reachable from ``node``, or None.

    Args:
        graph: Node id -> ids it depends on. Unknown ids are treated as leaves.
        node: Node to start walking from.
        path: Nodes on the current walk, outermost first. Extended in place
            while walking and restored before returning.
        cleared: Nodes already proven acyclic. When given, nodes are added as
            their subtree finishes and are never walked again.

    Returns:
        The cycle as ``[a, b, ..., a]`` or None if no cycle is reachable.
    """
    if path is None:
        path = []
    return _walk(graph, node, path, set(path), cleared)


def _walk(
    graph: Mapping[str, Sequence[str]],
    node: str,
    path: list[str],
    on_path: set[str],
    cleared: set[str] | None,
) -> list[str] | None:
    if cleared is not None and node in cleared:
        return None
    if node in on_path:
        start = path.index(node)
        return [*path[start:], node]

    path.append(node)
    on_path.add(node)
    try:
        for dep in graph.get(node, ()):
            cycle = _walk(graph, dep, path, on_path, cleared)
            if cycle is not None:
                return cycle
    finally:
        path.pop()
        on_path.discard(node)

    if cleared is not None:
        cleared.add(node)
    return None


def format_cycle(cycle: Sequence[str]) -> str:
    """Render a cycle as ``a -> b -> a``."""
    return " -> ".join(cycle)
