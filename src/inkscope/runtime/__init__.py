"""Runtime package - knot position tracking for a live story engine."""

from inkscope.runtime.detector import (
    FINAL_FALLBACK_KNOT,
    SIGNAL_STRATEGIES,
    RuntimePositionDetector,
    create_knot_detector,
    detect_knot_after_choice,
    is_valid_knot_name,
    knot_from_call_stack,
    knot_from_current_pointer,
    knot_from_path_string,
    quick_detect_knot,
    resolve_from_signal,
)
from inkscope.runtime.engine import (
    RuntimeSignal,
    StoryEngine,
    read_runtime_signal,
    speculative_step,
)
from inkscope.runtime.flow_map import (
    EXAMPLE_KNOT_FLOW_MAP,
    KnotFlow,
    KnotFlowMap,
    flow_map_from_dict,
    flow_map_from_links,
)
from inkscope.runtime.trail import KnotTrail, KnotTransition
from inkscope.runtime.validation import (
    StaticValidationLayer,
    StoryStructure,
    create_hybrid_knot_detector,
)

__all__ = [
    "EXAMPLE_KNOT_FLOW_MAP",
    "FINAL_FALLBACK_KNOT",
    "SIGNAL_STRATEGIES",
    "KnotFlow",
    "KnotFlowMap",
    "KnotTrail",
    "KnotTransition",
    "RuntimePositionDetector",
    "RuntimeSignal",
    "StaticValidationLayer",
    "StoryEngine",
    "StoryStructure",
    "create_hybrid_knot_detector",
    "create_knot_detector",
    "detect_knot_after_choice",
    "flow_map_from_dict",
    "flow_map_from_links",
    "is_valid_knot_name",
    "knot_from_call_stack",
    "knot_from_current_pointer",
    "knot_from_path_string",
    "quick_detect_knot",
    "read_runtime_signal",
    "resolve_from_signal",
    "speculative_step",
]
