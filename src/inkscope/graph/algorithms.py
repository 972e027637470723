"""Shared graph algorithms over knot links.

Pure functions that read a list of links without modifying it. Used by
the static validation layer for structural queries and by the unified
manager for integrity analysis.
"""

from __future__ import annotations

from collections import defaultdict, deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from inkscope.models.graph import GraphLink


def build_adjacency(links: Iterable[GraphLink]) -> dict[str, list[str]]:
    """Map each source knot to its targets, in link order (duplicates kept)."""
    adjacency: dict[str, list[str]] = defaultdict(list)
    for link in links:
        adjacency[link.source].append(link.target)
    return dict(adjacency)


def targets_of(links: Iterable[GraphLink], knot: str) -> list[str]:
    """Knots reachable in one step from ``knot``, in link order."""
    return [link.target for link in links if link.source == knot]


def sources_of(links: Iterable[GraphLink], knot: str) -> list[str]:
    """Knots with a link into ``knot``, in link order."""
    return [link.source for link in links if link.target == knot]


def reachable_from(links: Sequence[GraphLink], starts: Iterable[str]) -> set[str]:
    """Collect every knot reachable from any of ``starts``, starts included.

    Args:
        links: Graph links.
        starts: Entry knots for the traversal.

    Returns:
        Set of reachable knot names.
    """
    adjacency = build_adjacency(links)
    seen: set[str] = set()
    queue = deque(starts)
    while queue:
        knot = queue.popleft()
        if knot in seen:
            continue
        seen.add(knot)
        queue.extend(t for t in adjacency.get(knot, []) if t not in seen)
    return seen


def find_path(links: Sequence[GraphLink], start: str, goal: str) -> list[str] | None:
    """Breadth-first search for a shortest knot path.

    Ties between equally short paths are broken by link order, so the
    first shortest path found is returned.

    Args:
        links: Graph links.
        start: Knot to start from.
        goal: Knot to reach.

    Returns:
        Knot names from start to goal inclusive, ``[start]`` when they are
        equal, or None if goal is unreachable.
    """
    adjacency = build_adjacency(links)
    visited: set[str] = set()
    queue: deque[list[str]] = deque([[start]])

    while queue:
        path = queue.popleft()
        knot = path[-1]
        if knot == goal:
            return path
        if knot in visited:
            continue
        visited.add(knot)
        for target in adjacency.get(knot, []):
            if target not in visited:
                queue.append([*path, target])

    return None


def entry_points(knots: Sequence[str], links: Iterable[GraphLink]) -> list[str]:
    """Knots with no incoming links, in the order given."""
    has_incoming = {link.target for link in links}
    return [k for k in knots if k not in has_incoming]


def dead_ends(knots: Sequence[str], links: Iterable[GraphLink]) -> list[str]:
    """Knots with no outgoing links, in the order given."""
    has_outgoing = {link.source for link in links}
    return [k for k in knots if k not in has_outgoing]


def unreachable(knots: Sequence[str], links: Sequence[GraphLink], starts: Iterable[str]) -> list[str]:
    """Knots not reachable from any of ``starts``, in the order given."""
    reached = reachable_from(links, starts)
    return [k for k in knots if k not in reached]


def branching_factor(knot_count: int, link_count: int) -> float:
    """Average outgoing links per knot; 0.0 for an empty graph."""
    if knot_count == 0:
        return 0.0
    return link_count / knot_count
