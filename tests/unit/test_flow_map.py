"""Tests for knot flow maps."""

from __future__ import annotations

from inkscope.models.graph import GraphLink
from inkscope.runtime.flow_map import (
    EXAMPLE_KNOT_FLOW_MAP,
    KnotFlow,
    flow_map_from_dict,
    flow_map_from_links,
)


class TestKnotFlow:
    """Per-knot choice targets."""

    def test_target_for_index(self) -> None:
        flow = KnotFlow(choices=("a", "b"), default_target="z")

        assert flow.target_for(0) == "a"
        assert flow.target_for(1) == "b"
        assert flow.target_for(2) == "z"
        assert flow.target_for(-1) == "z"

    def test_from_dict_default_spellings(self) -> None:
        for key in ("default", "default_target", "defaultTarget"):
            flow = KnotFlow.from_dict({"choices": ["a"], key: "b"})
            assert flow == KnotFlow(choices=("a",), default_target="b")

    def test_from_dict_without_choices(self) -> None:
        assert KnotFlow.from_dict({}) == KnotFlow()


class TestFlowMaps:
    """Building whole maps."""

    def test_example_map_day_one(self) -> None:
        flow = EXAMPLE_KNOT_FLOW_MAP["day1_first_reaction"]

        assert len(flow.choices) == 4
        assert flow.default_target == "day1_direct_response"

    def test_from_links_groups_by_source(self) -> None:
        links = [
            GraphLink(source="hub", target="left"),
            GraphLink(source="hub", target="right"),
            GraphLink(source="left", target="end"),
        ]

        assert flow_map_from_links(links) == {
            "hub": KnotFlow(choices=("left", "right"), default_target="left"),
            "left": KnotFlow(choices=("end",), default_target="end"),
        }

    def test_from_dict(self) -> None:
        flow_map = flow_map_from_dict({"hub": {"choices": ["left", "right"], "default": "left"}})

        assert flow_map == {"hub": KnotFlow(choices=("left", "right"), default_target="left")}
