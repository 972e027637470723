"""Pydantic models for resolved knot identity and structure reports.

``KnotInfo`` is consumed by the status line; it serializes with camelCase
keys (``filePath``, ``lineNumber``, ...) via ``model_dump(by_alias=True)``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from inkscope.models.graph import GraphLink, GraphNode  # noqa: TC001 - pydantic needs runtime types


class KnotInfo(BaseModel):
    """A knot merged from source-scan provenance and compiled-graph structure."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    name: str
    file_path: str | None = None
    line_number: int | None = Field(default=None, ge=1)
    is_current: bool | None = None
    is_reachable: bool | None = None
    sources: list[str] | None = None
    targets: list[str] | None = None


class StoryStats(BaseModel):
    """Structural statistics over a compiled story graph."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    total_knots: int = 0
    total_connections: int = 0
    unreachable_knots: list[str] = Field(default_factory=list)
    dead_ends: list[str] = Field(default_factory=list)
    entry_points: list[str] = Field(default_factory=list)


class StoryStructureReport(BaseModel):
    """Compiled graph plus its statistics."""

    nodes: list[GraphNode] = Field(default_factory=list)
    links: list[GraphLink] = Field(default_factory=list)
    stats: StoryStats = Field(default_factory=StoryStats)
