"""Tests for knot graph algorithms."""

from __future__ import annotations

from inkscope.graph.algorithms import (
    branching_factor,
    build_adjacency,
    dead_ends,
    entry_points,
    find_path,
    reachable_from,
    sources_of,
    targets_of,
    unreachable,
)
from inkscope.models.graph import GraphLink


def _links(*pairs: tuple[str, str]) -> list[GraphLink]:
    return [GraphLink(source=s, target=t) for s, t in pairs]


DIAMOND = _links(("start", "left"), ("start", "right"), ("left", "end"), ("right", "end"))


class TestNeighbours:
    """One-step queries."""

    def test_adjacency_keeps_link_order(self) -> None:
        assert build_adjacency(DIAMOND) == {
            "start": ["left", "right"],
            "left": ["end"],
            "right": ["end"],
        }

    def test_targets_and_sources(self) -> None:
        assert targets_of(DIAMOND, "start") == ["left", "right"]
        assert sources_of(DIAMOND, "end") == ["left", "right"]
        assert targets_of(DIAMOND, "end") == []


class TestReachability:
    """Breadth-first reachability."""

    def test_reachable_includes_starts(self) -> None:
        assert reachable_from(DIAMOND, ["left"]) == {"left", "end"}

    def test_cycles_terminate(self) -> None:
        """Loops between knots do not hang the traversal."""
        links = _links(("a", "b"), ("b", "a"))

        assert reachable_from(links, ["a"]) == {"a", "b"}

    def test_unreachable_in_given_order(self) -> None:
        knots = ["start", "left", "right", "end", "island", "atoll"]

        assert unreachable(knots, DIAMOND, ["start"]) == ["island", "atoll"]


class TestFindPath:
    """Shortest knot paths."""

    def test_shortest_path_prefers_link_order(self) -> None:
        """Equal-length paths resolve to the one found first."""
        assert find_path(DIAMOND, "start", "end") == ["start", "left", "end"]

    def test_same_knot(self) -> None:
        assert find_path(DIAMOND, "left", "left") == ["left"]

    def test_no_path(self) -> None:
        assert find_path(DIAMOND, "end", "start") is None

    def test_shorter_route_wins(self) -> None:
        links = _links(("a", "b"), ("b", "c"), ("c", "d"), ("a", "d"))

        assert find_path(links, "a", "d") == ["a", "d"]


class TestStructureStats:
    """Entry points, dead ends and branching."""

    def test_entry_points_have_no_incoming(self) -> None:
        assert entry_points(["start", "left", "right", "end", "island"], DIAMOND) == [
            "start",
            "island",
        ]

    def test_dead_ends_have_no_outgoing(self) -> None:
        assert dead_ends(["start", "left", "right", "end"], DIAMOND) == ["end"]

    def test_branching_factor(self) -> None:
        assert branching_factor(4, 4) == 1.0
        assert branching_factor(0, 0) == 0.0
