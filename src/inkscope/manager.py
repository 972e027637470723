"""Unified knot manager.

Single entry point for host tooling. Combines source scanning (where a
knot is declared), the compiled graph (how knots connect) and runtime
detection (where the story is now) behind one object, each with its own
cache lifetime.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from inkscope.config import KnotConfig
from inkscope.graph.algorithms import (
    branching_factor,
    dead_ends,
    entry_points,
    sources_of,
    targets_of,
    unreachable,
)
from inkscope.graph.bytecode import build_story_graph
from inkscope.graph.errors import GraphDiagnostics
from inkscope.graph.validation_types import IntegrityReport, ValidationCheck
from inkscope.models.graph import StoryGraph  # noqa: TC001 - dataclass field type
from inkscope.models.knot import KnotInfo, StoryStats, StoryStructureReport
from inkscope.observability.logging import get_logger
from inkscope.runtime.detector import RuntimePositionDetector
from inkscope.runtime.flow_map import EXAMPLE_KNOT_FLOW_MAP, KnotFlowMap, flow_map_from_links
from inkscope.runtime.trail import KnotTrail
from inkscope.runtime.validation import StaticValidationLayer
from inkscope.source.scanner import SourceCache, SourceFileInfo, find_knot_line

if TYPE_CHECKING:
    from inkscope.runtime.engine import StoryEngine

log = get_logger(__name__)

# Branching factor bounds for the structure checks
LINEAR_BRANCHING = 1.2
COMPLEX_BRANCHING = 3.0
MAX_ENTRY_POINTS = 3

_TERMINAL_NAMES = frozenset({"DONE", "END"})


@dataclass
class CompiledStory:
    """Compiled graph held by the manager, with its analysis."""

    graph: StoryGraph
    report: StoryStructureReport
    diagnostics: GraphDiagnostics = field(default_factory=GraphDiagnostics)
    compiled_at: float = 0.0

    @property
    def all_knots(self) -> list[str]:
        return self.graph.node_ids


def analyze_structure(graph: StoryGraph) -> StoryStructureReport:
    """Entry points, unreachable knots and dead ends of a compiled graph.

    Entry points are knots nothing links to; reachability is measured from
    them.
    """
    knots = graph.node_ids
    entries = entry_points(knots, graph.links)
    return StoryStructureReport(
        nodes=list(graph.nodes),
        links=list(graph.links),
        stats=StoryStats(
            total_knots=len(knots),
            total_connections=len(graph.links),
            unreachable_knots=unreachable(knots, graph.links, entries),
            dead_ends=dead_ends(knots, graph.links),
            entry_points=entries,
        ),
    )


def _is_ending(knot: str) -> bool:
    return knot in _TERMINAL_NAMES or "end" in knot.lower()


class UnifiedKnotManager:
    """Knot provenance, structure and live position behind one object.

    Args:
        config: Settings; defaults are used when omitted.
        clock: Monotonic time source in seconds, shared by every cache.
        overrides: Individual :class:`KnotConfig` fields to override.
    """

    def __init__(
        self,
        config: KnotConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        **overrides: Any,
    ) -> None:
        self.config = (config or KnotConfig()).with_overrides(**overrides)
        self._clock = clock

        detector = RuntimePositionDetector(
            flow_map=self.config.flow_map,
            use_example_flow_map=self.config.use_example_flow_map,
            debug=self.config.debug,
        )
        self._validation = StaticValidationLayer(
            detector,
            enable_static_validation=self.config.enable_static_validation,
            static_cache_ttl=self.config.static_cache_ttl,
            clock=clock,
            debug=self.config.debug,
        )
        self._sources = SourceCache(
            self.config.source_cache_ttl,
            enabled=self.config.enable_source_cache,
            clock=clock,
        )
        self._compiled: CompiledStory | None = None
        self._trail = KnotTrail()

    @property
    def runtime_detector(self) -> RuntimePositionDetector:
        return self._validation.runtime_detector

    @property
    def validation_layer(self) -> StaticValidationLayer:
        return self._validation

    @property
    def trail(self) -> KnotTrail:
        return self._trail

    # -- sources ------------------------------------------------------------

    def add_source_file(self, file_path: str, content: str) -> SourceFileInfo:
        """Scan ink source text and register it under ``file_path``."""
        info = self._sources.add(file_path, content)
        log.info("source_file_added", file=file_path, knots=len(info.knots))
        return info

    def remove_source_file(self, file_path: str) -> bool:
        return self._sources.remove(file_path)

    def get_knots_in_file(self, file_path: str) -> list[str]:
        """Knots declared in a registered file, if its scan is still fresh."""
        entry = self._sources.get(file_path)
        return list(entry.knots) if entry else []

    def get_variables_in_file(self, file_path: str) -> list[str]:
        entry = self._sources.get(file_path)
        return list(entry.variables) if entry else []

    def get_all_variables(self) -> list[str]:
        names: set[str] = set()
        for entry in self._fresh_sources():
            names.update(entry.variables)
        return sorted(names)

    def _fresh_sources(self) -> list[SourceFileInfo]:
        return [entry for entry in self._sources if self._sources.is_fresh(entry.file_path)]

    # -- compiled story -----------------------------------------------------

    def set_compiled_story(self, bytecode: Any) -> CompiledStory | None:
        """Build the knot graph from compiled bytecode and make it current.

        Also regenerates the detector's flow map from the compiled links
        and refreshes the validation cache. Returns None, leaving the
        previous compiled story in place, if no graph could be built.
        """
        diagnostics = GraphDiagnostics()
        graph = build_story_graph(bytecode, diagnostics)
        if graph.is_empty:
            log.error("compiled_story_rejected", errors=diagnostics.errors)
            return None

        compiled = CompiledStory(
            graph=graph,
            report=analyze_structure(graph),
            diagnostics=diagnostics,
            compiled_at=self._clock(),
        )
        if self.config.enable_compiled_cache:
            self._compiled = compiled

        self.runtime_detector.set_knot_flow_map(self._flow_map_for(graph), replace=True)
        self._validation.set_story_graph(graph)

        log.info(
            "compiled_story_set",
            knots=len(graph.nodes),
            links=len(graph.links),
            dangling_diverts=len(diagnostics.dangling_diverts),
        )
        return compiled

    def _flow_map_for(self, graph: StoryGraph) -> KnotFlowMap:
        # Configured entries stay for knots the compiled links say nothing about
        flow_map: KnotFlowMap = dict(EXAMPLE_KNOT_FLOW_MAP) if self.config.use_example_flow_map else {}
        flow_map.update(self.config.flow_map)
        flow_map.update(flow_map_from_links(graph.links))
        return flow_map

    def _fresh_compiled(self) -> CompiledStory | None:
        if self._compiled is None:
            return None
        if (self._clock() - self._compiled.compiled_at) >= self.config.compiled_cache_ttl:
            return None
        return self._compiled

    @property
    def diagnostics(self) -> GraphDiagnostics | None:
        """Diagnostics of the current compiled story, if fresh."""
        compiled = self._fresh_compiled()
        return compiled.diagnostics if compiled else None

    # -- knot queries -------------------------------------------------------

    def get_all_knots(self) -> list[str]:
        """Compiled knot names, else the sorted union of scanned source knots."""
        compiled = self._fresh_compiled()
        if compiled is not None:
            return compiled.all_knots

        names: set[str] = set()
        for entry in self._fresh_sources():
            names.update(entry.knots)
        return sorted(names)

    def get_knot_info(self, name: str) -> KnotInfo:
        """Merge what sources and the compiled graph know about ``name``."""
        info = KnotInfo(name=name)

        for entry in self._fresh_sources():
            if name in entry.knots:
                info.file_path = entry.file_path
                info.line_number = find_knot_line(entry.content, name)
                break

        compiled = self._fresh_compiled()
        if compiled is not None:
            links = compiled.graph.links
            info.is_reachable = (
                name in compiled.all_knots
                and name not in compiled.report.stats.unreachable_knots
            )
            info.sources = sources_of(links, name)
            info.targets = targets_of(links, name)

        return info

    def search_knots(self, query: str) -> list[KnotInfo]:
        """Knots whose name contains ``query``, case-insensitively.

        Exact matches rank first, then prefix matches, then the rest
        alphabetically.
        """
        needle = query.lower()

        def rank(name: str) -> tuple[int, str]:
            lowered = name.lower()
            if lowered == needle:
                return (0, name)
            if lowered.startswith(needle):
                return (1, name)
            return (2, name)

        matches = [name for name in self.get_all_knots() if needle in name.lower()]
        return [self.get_knot_info(name) for name in sorted(matches, key=rank)]

    # -- runtime ------------------------------------------------------------

    def get_current_knot(self, engine: StoryEngine) -> KnotInfo:
        """Resolve the knot the engine is in, enriched with static info."""
        name = self._validation.get_current_knot_name(engine, self.config.fallback_knot)

        known = self.get_all_knots()
        if known and name not in known:
            last_known = self.runtime_detector.get_last_known_knot()
            log.warning("current_knot_unknown", knot=name, substitute=last_known)
            if last_known is not None:
                name = last_known

        info = self.get_knot_info(name)
        info.is_current = True
        return info

    def predict_knot_after_choice(
        self,
        engine: StoryEngine,
        current_knot: str,
        choice_index: int,
        *,
        verify_after_continue: bool = False,
    ) -> KnotInfo:
        """Predict the knot a choice leads to, enriched with static info."""
        name = self._validation.detect_knot_after_choice(
            engine,
            current_knot,
            choice_index,
            verify_after_continue=verify_after_continue,
        )
        known = self.get_all_knots()
        if known and name not in known:
            log.warning(
                "predicted_knot_unknown",
                knot=name,
                current=current_knot,
                choice_index=choice_index,
            )
        return self.get_knot_info(name)

    def record_step(self, engine: StoryEngine) -> KnotInfo:
        """Detect the current knot and log it on the trail."""
        info = self.get_current_knot(engine)
        if self._trail.record(info.name):
            log.debug("knot_entered", knot=info.name, visits=self._trail.visit_count(info.name))
        return info

    # -- structure ----------------------------------------------------------

    def get_story_structure(self) -> StoryStructureReport | None:
        """Graph and statistics of the compiled story, None if stale."""
        compiled = self._fresh_compiled()
        return compiled.report.model_copy(deep=True) if compiled else None

    def validate_story_integrity(self) -> IntegrityReport:
        """Run authoring checks over the compiled story. Never raises."""
        report = IntegrityReport()
        structure = self.get_story_structure()
        if structure is None:
            report.checks.append(
                ValidationCheck(
                    name="compiled_story",
                    severity="fail",
                    message="No compiled story structure available for validation",
                )
            )
            return report

        stats = structure.stats
        report.checks.append(_check_entry_points(stats.entry_points))

        if stats.unreachable_knots:
            report.checks.append(
                ValidationCheck(
                    name="reachability",
                    severity="warn",
                    message=f"Found {len(stats.unreachable_knots)} unreachable knots: "
                    f"{', '.join(stats.unreachable_knots)}",
                )
            )
            report.suggestions.append(
                "Consider adding diverts to unreachable knots or removing unused content"
            )
        else:
            report.checks.append(
                ValidationCheck(name="reachability", severity="pass", message="All knots reachable")
            )

        open_ends = [knot for knot in stats.dead_ends if not _is_ending(knot)]
        if open_ends:
            report.checks.append(
                ValidationCheck(
                    name="dead_ends",
                    severity="warn",
                    message=f"Found {len(open_ends)} potential dead ends: {', '.join(open_ends)}",
                )
            )
            report.suggestions.append(
                "Check that dead end knots are intentional endings or add continuation choices"
            )
        else:
            report.checks.append(
                ValidationCheck(name="dead_ends", severity="pass", message="No unexpected dead ends")
            )

        report.checks.append(_check_branching(stats.total_knots, stats.total_connections))

        diagnostics = self.diagnostics
        if diagnostics is not None and diagnostics.dangling_diverts:
            report.checks.append(
                ValidationCheck(
                    name="dangling_diverts",
                    severity="warn",
                    message=f"Found {len(diagnostics.dangling_diverts)} diverts to unknown knots",
                )
            )
            report.suggestions.append(diagnostics.format_report(self.get_all_knots()))

        log.info("story_integrity_checked", summary=report.summary)
        return report

    # -- caches -------------------------------------------------------------

    def clear_cache(self) -> None:
        """Forget sources, the compiled story and the validation graph.

        Detector memory and the trail are kept.
        """
        self._sources.clear()
        self._compiled = None
        self._validation.reset()
        log.debug("knot_caches_cleared")

    def get_cache_stats(self) -> dict[str, Any]:
        """Sizes and ages of the manager's caches."""
        return {
            "source_files": len(self._sources),
            "source_cache_size": self._sources.total_size,
            "has_compiled_cache": self._compiled is not None,
            "compiled_cache_age": (
                self._clock() - self._compiled.compiled_at if self._compiled else None
            ),
        }


def _check_entry_points(entries: list[str]) -> ValidationCheck:
    if not entries:
        return ValidationCheck(
            name="entry_points",
            severity="fail",
            message="No entry points found - story may have circular dependencies",
        )
    if len(entries) > MAX_ENTRY_POINTS:
        return ValidationCheck(
            name="entry_points",
            severity="warn",
            message=f"Multiple entry points found ({len(entries)}): {', '.join(entries)}",
        )
    return ValidationCheck(
        name="entry_points",
        severity="pass",
        message=f"Entry points: {', '.join(entries)}",
    )


def _check_branching(knot_count: int, link_count: int) -> ValidationCheck:
    factor = branching_factor(knot_count, link_count)
    if factor < LINEAR_BRANCHING:
        return ValidationCheck(
            name="branching",
            severity="warn",
            message=f"Story appears quite linear (average {factor:.2f} connections per knot)",
        )
    if factor > COMPLEX_BRANCHING:
        return ValidationCheck(
            name="branching",
            severity="warn",
            message=f"Story has high complexity (average {factor:.2f} connections per knot)",
        )
    return ValidationCheck(
        name="branching",
        severity="pass",
        message=f"Average {factor:.2f} connections per knot",
    )


def create_unified_knot_manager(
    config: KnotConfig | None = None,
    **options: Any,
) -> UnifiedKnotManager:
    """Create a manager from a config and/or individual overrides."""
    return UnifiedKnotManager(config, **options)
