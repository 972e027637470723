"""Pydantic models produced by inkscope.

Graph shapes for visualization and queries, and knot identity records
for the status line.
"""

from inkscope.models.graph import EMPTY_LABEL, GraphLink, GraphNode, StoryGraph
from inkscope.models.knot import KnotInfo, StoryStats, StoryStructureReport

__all__ = [
    "EMPTY_LABEL",
    "GraphLink",
    "GraphNode",
    "KnotInfo",
    "StoryGraph",
    "StoryStats",
    "StoryStructureReport",
]
