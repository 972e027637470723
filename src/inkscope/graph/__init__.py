"""Graph package - static knot graph of a compiled story.

Extracts knots and diverts from compiled bytecode and answers structural
questions (reachability, dead ends, paths) about the result.
"""

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
from inkscope.graph.bytecode import (
    RESERVED_KNOTS,
    build_story_graph,
    extract_named_content,
    load_bytecode,
)
from inkscope.graph.errors import BytecodeStructureError, DanglingDivert, GraphDiagnostics
from inkscope.graph.validation_types import IntegrityReport, ValidationCheck

__all__ = [
    "RESERVED_KNOTS",
    "BytecodeStructureError",
    "DanglingDivert",
    "GraphDiagnostics",
    "IntegrityReport",
    "ValidationCheck",
    "branching_factor",
    "build_adjacency",
    "build_story_graph",
    "dead_ends",
    "entry_points",
    "extract_named_content",
    "find_path",
    "load_bytecode",
    "reachable_from",
    "sources_of",
    "targets_of",
    "unreachable",
]
