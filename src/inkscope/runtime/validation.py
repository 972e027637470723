"""Static validation of runtime knot detection.

Wraps a :class:`RuntimePositionDetector` with a time-boxed cache of the
compiled knot graph. While the cache is fresh, detector output that
names no knot in the graph is replaced by the best available
alternative. When the cache is stale, missing or validation is off,
detector output passes through unchanged: a broken or old cache must
never stop playback.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from inkscope.graph.algorithms import (
    dead_ends,
    find_path,
    sources_of,
    targets_of,
    unreachable,
)
from inkscope.graph.bytecode import build_story_graph
from inkscope.graph.errors import GraphDiagnostics
from inkscope.models.graph import GraphLink, GraphNode, StoryGraph
from inkscope.observability.logging import get_logger
from inkscope.runtime.detector import RuntimePositionDetector

if TYPE_CHECKING:
    from inkscope.runtime.engine import StoryEngine

log = get_logger(__name__)

DEFAULT_STATIC_CACHE_TTL = 5 * 60.0
# Knots reachability is measured from, when present
ENTRY_CANDIDATES = ("game_start", "start")


@dataclass
class StoryStructure:
    """Cached static analysis of one compiled story."""

    graph: StoryGraph
    all_knots: list[str]
    unreachable_knots: list[str] = field(default_factory=list)
    dead_ends: list[str] = field(default_factory=list)

    @property
    def nodes(self) -> list[GraphNode]:
        return self.graph.nodes

    @property
    def links(self) -> list[GraphLink]:
        return self.graph.links

    def __contains__(self, knot: object) -> bool:
        return knot in self._knot_set

    def __post_init__(self) -> None:
        self._knot_set = frozenset(self.all_knots)

    @classmethod
    def from_graph(cls, graph: StoryGraph) -> StoryStructure:
        knots = graph.node_ids
        starts = [k for k in (*ENTRY_CANDIDATES, knots[0] if knots else None) if k in knots]
        return cls(
            graph=graph,
            all_knots=knots,
            unreachable_knots=unreachable(knots, graph.links, starts),
            dead_ends=dead_ends(knots, graph.links),
        )


class StaticValidationLayer:
    """Runtime detection cross-checked against the compiled knot graph.

    Args:
        detector: Detector to wrap. A new one is built from
            ``detector_options`` if omitted.
        enable_static_validation: Check detector output against the graph.
        static_cache_ttl: Seconds the cached graph stays authoritative.
        clock: Monotonic time source in seconds.
        debug: Emit DEBUG events for every decision.
        detector_options: Passed to :class:`RuntimePositionDetector`.
    """

    def __init__(
        self,
        detector: RuntimePositionDetector | None = None,
        *,
        enable_static_validation: bool = True,
        static_cache_ttl: float = DEFAULT_STATIC_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
        debug: bool = False,
        **detector_options: Any,
    ) -> None:
        self._detector = detector or RuntimePositionDetector(debug=debug, **detector_options)
        self.enable_static_validation = enable_static_validation
        self.static_cache_ttl = static_cache_ttl
        self.debug = debug
        self._clock = clock
        self._structure: StoryStructure | None = None
        self._cached_at = 0.0

    @property
    def runtime_detector(self) -> RuntimePositionDetector:
        return self._detector

    # -- cache --------------------------------------------------------------

    def set_story_structure(
        self,
        bytecode: Any,
        diagnostics: GraphDiagnostics | None = None,
    ) -> StoryStructure | None:
        """Rebuild the cached graph from compiled bytecode.

        An unusable document clears the cache instead, so detection falls
        back to unvalidated runtime results.
        """
        return self.set_story_graph(build_story_graph(bytecode, diagnostics))

    def set_story_graph(self, graph: StoryGraph) -> StoryStructure | None:
        """Cache an already built graph and restart its lifetime."""
        if graph.is_empty:
            log.warning("static_structure_unavailable")
            self.reset()
            return None

        self._structure = StoryStructure.from_graph(graph)
        self._cached_at = self._clock()
        log.info(
            "static_structure_updated",
            knots=len(self._structure.all_knots),
            links=len(graph.links),
            unreachable=len(self._structure.unreachable_knots),
            dead_ends=len(self._structure.dead_ends),
        )
        return self._structure

    def is_cache_fresh(self) -> bool:
        if self._structure is None:
            return False
        return (self._clock() - self._cached_at) < self.static_cache_ttl

    def _fresh_structure(self) -> StoryStructure | None:
        return self._structure if self.is_cache_fresh() else None

    def _validating(self) -> StoryStructure | None:
        return self._fresh_structure() if self.enable_static_validation else None

    def reset(self) -> None:
        """Drop the cached graph. Detector memory is kept."""
        self._structure = None
        self._cached_at = 0.0

    def get_all_knots(self) -> list[str]:
        structure = self._fresh_structure()
        if structure is None:
            log.warning("static_structure_stale")
            return []
        return list(structure.all_knots)

    def get_story_analysis(self) -> StoryStructure | None:
        structure = self._fresh_structure()
        if structure is None:
            return None
        return StoryStructure(
            graph=structure.graph,
            all_knots=list(structure.all_knots),
            unreachable_knots=list(structure.unreachable_knots),
            dead_ends=list(structure.dead_ends),
        )

    # -- validated detection ------------------------------------------------

    def get_current_knot_name(self, engine: StoryEngine, fallback: str | None = None) -> str:
        """Detect the current knot, replacing names the graph does not know.

        Replacement order: the knot known before this call, ``fallback``,
        the first knot of the graph. The replacement becomes the detector's
        last known knot.
        """
        previous = self._detector.get_last_known_knot()
        runtime_knot = self._detector.get_current_knot_name(engine, fallback)
        structure = self._validating()
        if structure is None or runtime_knot in structure:
            return runtime_knot

        log.warning("runtime_knot_not_in_static_structure", knot=runtime_knot)
        candidates = [k for k in (previous, fallback) if k is not None and k in structure]
        if candidates:
            substitute = candidates[0]
        elif structure.all_knots:
            substitute = structure.all_knots[0]
        else:
            return runtime_knot

        if self.debug:
            log.debug("static_substitute", knot=substitute, rejected=runtime_knot)
        self._detector.update_last_known_knot(substitute)
        return substitute

    def detect_knot_after_choice(
        self,
        engine: StoryEngine,
        current_knot: str,
        choice_index: int,
        *,
        verify_after_continue: bool = False,
    ) -> str:
        """Predict the knot a choice leads to, checked against the graph.

        An unknown ``current_knot`` is replaced by the last known knot
        before predicting. An unknown prediction is replaced by the
        graph's own targets of the current knot, indexed by the choice
        (clamped to the last target).
        """
        structure = self._validating()
        if structure is not None and current_knot not in structure:
            log.warning("current_knot_not_in_static_structure", knot=current_knot)
            last_known = self._detector.get_last_known_knot()
            if last_known is not None:
                current_knot = last_known

        predicted = self._detector.detect_knot_after_choice(
            engine,
            current_knot,
            choice_index,
            verify_after_continue=verify_after_continue,
        )

        structure = self._validating()
        if structure is None or predicted in structure:
            return predicted

        log.warning("predicted_knot_not_in_static_structure", knot=predicted)
        targets = targets_of(structure.links, current_knot)
        if targets:
            target = targets[min(max(choice_index, 0), len(targets) - 1)]
            if self.debug:
                log.debug("static_target_substitute", knot=target, rejected=predicted)
            return target
        return predicted

    # -- structural queries -------------------------------------------------

    def is_knot_reachable(self, knot: str) -> bool:
        """False only if a fresh graph marks ``knot`` unreachable."""
        structure = self._fresh_structure()
        if structure is None:
            return True
        return knot not in structure.unreachable_knots

    def is_dead_end(self, knot: str) -> bool:
        """True only if a fresh graph shows no links out of ``knot``."""
        structure = self._fresh_structure()
        if structure is None:
            return False
        return knot in structure.dead_ends

    def get_knot_targets(self, knot: str) -> list[str]:
        structure = self._fresh_structure()
        return targets_of(structure.links, knot) if structure else []

    def get_knot_sources(self, knot: str) -> list[str]:
        structure = self._fresh_structure()
        return sources_of(structure.links, knot) if structure else []

    def find_path(self, from_knot: str, to_knot: str) -> list[str] | None:
        """Shortest knot path between two knots, or None."""
        structure = self._fresh_structure()
        if structure is None:
            return None
        return find_path(structure.links, from_knot, to_knot)


def create_hybrid_knot_detector(
    bytecode: Any = None,
    **options: Any,
) -> StaticValidationLayer:
    """Create a validation layer, loading ``bytecode`` if given."""
    layer = StaticValidationLayer(**options)
    if bytecode is not None:
        layer.set_story_structure(bytecode)
    return layer
