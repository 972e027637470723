"""Tests for the unified knot manager."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from inkscope.config import KnotConfig
from inkscope.manager import UnifiedKnotManager, analyze_structure, create_unified_knot_manager
from inkscope.models.graph import GraphLink, GraphNode, StoryGraph
from inkscope.models.knot import KnotInfo
from inkscope.runtime.flow_map import KnotFlow

if TYPE_CHECKING:
    from collections.abc import Callable

    from conftest import FakeClock


@pytest.fixture
def manager(
    choice_story: dict[str, Any], choice_story_source: str, clock: FakeClock
) -> UnifiedKnotManager:
    knots = UnifiedKnotManager(clock=clock)
    knots.set_compiled_story(choice_story)
    knots.add_source_file("story.ink", choice_story_source)
    return knots


def _graph(knots: list[str], pairs: list[tuple[str, str]]) -> StoryGraph:
    return StoryGraph(
        nodes=[GraphNode(id=k) for k in knots],
        links=[GraphLink(source=s, target=t) for s, t in pairs],
    )


class TestSetCompiledStory:
    """Loading compiled bytecode."""

    def test_compiled_knots(self, manager: UnifiedKnotManager) -> None:
        assert manager.get_all_knots() == [
            "game_start",
            "background_info",
            "character_setup",
            "ending",
            "orphan",
        ]

    def test_flow_map_regenerated_from_links(self, manager: UnifiedKnotManager) -> None:
        flow_map = manager.runtime_detector.get_knot_flow_map()

        assert flow_map["game_start"] == KnotFlow(
            choices=("character_setup", "background_info"),
            default_target="character_setup",
        )
        assert "ending" not in flow_map

    def test_configured_flow_map_kept_for_unlinked_knots(
        self, choice_story: dict[str, Any]
    ) -> None:
        config = KnotConfig(
            flow_map={
                "ending": KnotFlow(choices=("credits",)),
                "game_start": KnotFlow(choices=("stale",)),
            }
        )
        knots = UnifiedKnotManager(config)
        knots.set_compiled_story(choice_story)

        flow_map = knots.runtime_detector.get_knot_flow_map()
        assert flow_map["ending"] == KnotFlow(choices=("credits",))
        assert flow_map["game_start"].choices == ("character_setup", "background_info")

    def test_invalid_bytecode_keeps_previous_story(self, manager: UnifiedKnotManager) -> None:
        assert manager.set_compiled_story({"root": None}) is None
        assert "game_start" in manager.get_all_knots()

    def test_compiled_cache_disabled(self, choice_story: dict[str, Any]) -> None:
        """The graph still drives prediction when it is not cached."""
        knots = UnifiedKnotManager(enable_compiled_cache=False)
        compiled = knots.set_compiled_story(choice_story)

        assert compiled is not None
        assert knots.get_story_structure() is None
        assert "game_start" in knots.runtime_detector.get_knot_flow_map()

    def test_diagnostics(self, choice_story: dict[str, Any]) -> None:
        choice_story["root"][-1]["orphan"] = ["^Lost.", {"->": "nowhere"}]
        knots = UnifiedKnotManager()
        knots.set_compiled_story(choice_story)

        assert knots.diagnostics is not None
        assert [d.target for d in knots.diagnostics.dangling_diverts] == ["nowhere"]


class TestKnotQueries:
    """Knot lists, info and search."""

    def test_source_only_knots_sorted(
        self, choice_story_source: str, clock: FakeClock
    ) -> None:
        knots = UnifiedKnotManager(clock=clock)
        knots.add_source_file("b.ink", "=== zebra ===\n=== apple ===")
        knots.add_source_file("story.ink", choice_story_source)

        assert knots.get_all_knots() == [
            "apple",
            "background_info",
            "character_setup",
            "ending",
            "game_start",
            "orphan",
            "zebra",
        ]

    def test_compiled_cache_expires(self, manager: UnifiedKnotManager, clock: FakeClock) -> None:
        """After the compiled TTL, source knots are used instead."""
        manager.add_source_file("extra.ink", "=== extra ===")
        clock.advance(601.0)
        manager.add_source_file("story.ink", "=== game_start ===")
        manager.add_source_file("extra.ink", "=== extra ===")

        assert manager.get_all_knots() == ["extra", "game_start"]
        assert manager.get_story_structure() is None

    def test_knots_in_file(self, manager: UnifiedKnotManager, clock: FakeClock) -> None:
        assert manager.get_knots_in_file("story.ink")[0] == "game_start"
        assert manager.get_knots_in_file("other.ink") == []

        clock.advance(301.0)
        assert manager.get_knots_in_file("story.ink") == []

    def test_variables(self, manager: UnifiedKnotManager) -> None:
        assert manager.get_variables_in_file("story.ink") == ["score", "player_name"]
        assert manager.get_all_variables() == ["player_name", "score"]

    def test_knot_info(self, manager: UnifiedKnotManager) -> None:
        info = manager.get_knot_info("character_setup")

        assert info == KnotInfo(
            name="character_setup",
            file_path="story.ink",
            line_number=14,
            is_reachable=True,
            sources=["game_start", "background_info"],
            targets=["ending"],
        )

    def test_knot_info_camel_case(self, manager: UnifiedKnotManager) -> None:
        dumped = manager.get_knot_info("ending").model_dump(by_alias=True, exclude_none=True)

        assert dumped["filePath"] == "story.ink"
        assert dumped["lineNumber"] == 18
        assert dumped["isReachable"] is True

    def test_unknown_knot_info(self, manager: UnifiedKnotManager) -> None:
        info = manager.get_knot_info("missing")

        assert info.file_path is None
        assert info.is_reachable is False
        assert info.targets == []

    def test_remove_source_file(self, manager: UnifiedKnotManager) -> None:
        assert manager.remove_source_file("story.ink") is True
        assert manager.get_knot_info("ending").file_path is None

    def test_search_ranking(self, clock: FakeClock) -> None:
        """Exact match, then prefix matches, then the rest alphabetically."""
        knots = UnifiedKnotManager(clock=clock)
        knots.add_source_file(
            "s.ink",
            "\n".join(f"=== {k} ===" for k in ["the_end", "end_credits", "End", "ending", "bend"]),
        )

        assert [info.name for info in knots.search_knots("end")] == [
            "End",
            "end_credits",
            "ending",
            "bend",
            "the_end",
        ]

    def test_search_no_match(self, manager: UnifiedKnotManager) -> None:
        assert manager.search_knots("zzz") == []


class TestRuntime:
    """Current knot and choice prediction."""

    def test_current_knot(
        self, manager: UnifiedKnotManager, make_engine: Callable[..., Any]
    ) -> None:
        info = manager.get_current_knot(make_engine(pointer="background_info"))

        assert info.name == "background_info"
        assert info.is_current is True
        assert info.line_number == 10
        assert info.targets == ["character_setup"]

    def test_unknown_current_knot_uses_last_known(
        self, manager: UnifiedKnotManager, make_engine: Callable[..., Any]
    ) -> None:
        manager.get_current_knot(make_engine(pointer="ending"))

        assert manager.get_current_knot(make_engine(pointer="renamed")).name == "ending"

    def test_configured_fallback(
        self, choice_story: dict[str, Any], make_engine: Callable[..., Any]
    ) -> None:
        knots = UnifiedKnotManager(fallback_knot="character_setup")
        knots.set_compiled_story(choice_story)

        assert knots.get_current_knot(make_engine(pointer="c-3")).name == "character_setup"

    def test_predict_after_choice(
        self, manager: UnifiedKnotManager, make_engine: Callable[..., Any]
    ) -> None:
        """Compiled links drive prediction."""
        info = manager.predict_knot_after_choice(make_engine(), "game_start", 1)

        assert info.name == "background_info"
        assert info.is_current is None

    def test_predict_with_verification(
        self, manager: UnifiedKnotManager, make_engine: Callable[..., Any]
    ) -> None:
        engine = make_engine(pointer="game_start", next_position={"pointer": "background_info"})
        before = engine.state.ToJson()

        info = manager.predict_knot_after_choice(
            engine, "game_start", 0, verify_after_continue=True
        )

        assert info.name == "background_info"
        assert engine.state.ToJson() == before

    def test_record_step(
        self, manager: UnifiedKnotManager, make_engine: Callable[..., Any]
    ) -> None:
        manager.record_step(make_engine(pointer="game_start"))
        manager.record_step(make_engine(pointer="game_start"))
        manager.record_step(make_engine(pointer="ending"))

        assert manager.trail.visit_counts() == {"game_start": 1, "ending": 1}
        assert manager.trail.steps == 3


class TestStructure:
    """Structure report and integrity checks."""

    def test_structure_report(self, manager: UnifiedKnotManager) -> None:
        structure = manager.get_story_structure()

        assert structure is not None
        assert structure.stats.total_knots == 5
        assert structure.stats.total_connections == 5
        assert structure.stats.entry_points == ["game_start", "orphan"]
        assert structure.stats.unreachable_knots == []
        assert structure.stats.dead_ends == ["ending"]

    def test_analyze_structure_unreachable_cycle(self) -> None:
        """Knots only reachable from each other are unreachable."""
        report = analyze_structure(_graph(["a", "b", "x", "y"], [("a", "b"), ("x", "y"), ("y", "x")]))

        assert report.stats.entry_points == ["a"]
        assert report.stats.unreachable_knots == ["x", "y"]

    def test_integrity_without_story(self) -> None:
        report = UnifiedKnotManager().validate_story_integrity()

        assert not report.is_valid
        assert report.issues == ["No compiled story structure available for validation"]

    def test_integrity_linear_story(self, manager: UnifiedKnotManager) -> None:
        """Endings are not dead ends; low branching is a warning."""
        report = manager.validate_story_integrity()

        assert report.is_valid
        assert len(report.warnings) == 1
        assert "linear" in report.warnings[0]

    def test_integrity_problems(self, clock: FakeClock) -> None:
        story = {
            "root": [
                {},
                {
                    "a": ["^x", {"->": "b"}],
                    "b": ["^y", {"->": "a"}],
                    "c": ["^z", {"->": "d"}],
                    "d": ["^w", {"->": "c"}],
                    "stuck": [],
                },
            ]
        }
        knots = UnifiedKnotManager(clock=clock)
        knots.set_compiled_story(story)

        report = knots.validate_story_integrity()

        assert report.is_valid
        assert any("1 potential dead ends: stuck" in w for w in report.warnings)
        assert any("unreachable knots: a, b, c, d" in w for w in report.warnings)
        assert len(report.suggestions) == 2

    def test_integrity_no_entry_points(self) -> None:
        knots = UnifiedKnotManager()
        knots.set_compiled_story(
            {"root": [{}, {"a": ["^x", {"->": "b"}], "b": ["^y", {"->": "a"}]}]}
        )

        report = knots.validate_story_integrity()

        assert not report.is_valid
        assert "No entry points" in report.issues[0]

    def test_integrity_many_entry_points(self) -> None:
        knots = UnifiedKnotManager()
        knots.set_compiled_story(
            {"root": [{}, {name: ["^x", {"->": "end"}] for name in "abcd"} | {"end": []}]}
        )

        report = knots.validate_story_integrity()

        assert any("Multiple entry points found (4)" in w for w in report.warnings)

    def test_integrity_dangling_diverts(self) -> None:
        knots = UnifiedKnotManager()
        knots.set_compiled_story({"root": [{}, {"a": ["^x", {"->": "b"}], "b": [{"->": "gone"}]}]})

        report = knots.validate_story_integrity()

        assert any("diverts to unknown knots" in w for w in report.warnings)


class TestCaches:
    """Cache management."""

    def test_stats(self, manager: UnifiedKnotManager, clock: FakeClock) -> None:
        clock.advance(5.0)
        stats = manager.get_cache_stats()

        assert stats["source_files"] == 1
        assert stats["source_cache_size"] > 0
        assert stats["has_compiled_cache"] is True
        assert stats["compiled_cache_age"] == 5.0

    def test_clear_cache(self, manager: UnifiedKnotManager, make_engine: Callable[..., Any]) -> None:
        manager.get_current_knot(make_engine(pointer="ending"))
        manager.clear_cache()

        assert manager.get_all_knots() == []
        assert manager.get_cache_stats() == {
            "source_files": 0,
            "source_cache_size": 0,
            "has_compiled_cache": False,
            "compiled_cache_age": None,
        }
        assert manager.runtime_detector.get_last_known_knot() == "ending"

    def test_factory(self) -> None:
        knots = create_unified_knot_manager(KnotConfig(debug=True), static_cache_ttl=5.0)

        assert knots.config.debug is True
        assert knots.validation_layer.static_cache_ttl == 5.0
