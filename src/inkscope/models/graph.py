"""Pydantic models for the knot graph.

These are the shapes handed to graph consumers (the node-graph view,
search and integrity queries). Field names serialize as-is, matching
the ``{nodes: [{id}], links: [{source, target, label}]}`` wire format.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

# Label used for an edge when no text fragment preceded the divert.
EMPTY_LABEL = "…"


class GraphNode(BaseModel):
    """A top-level named knot."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Knot name", min_length=1)


class GraphLink(BaseModel):
    """A divert from one knot to another."""

    model_config = ConfigDict(frozen=True)

    source: str = Field(description="Knot the divert lives in")
    target: str = Field(description="Knot the divert jumps to")
    label: str = Field(default=EMPTY_LABEL, description="Most recent text before the divert")
    is_choice: bool = Field(
        default=False,
        exclude=True,
        description="Divert sits inside a choice branch",
    )


class StoryGraph(BaseModel):
    """Directed graph of knots and their transitions."""

    nodes: list[GraphNode] = Field(default_factory=list)
    links: list[GraphLink] = Field(default_factory=list)

    @property
    def node_ids(self) -> list[str]:
        """Knot names in document order."""
        return [n.id for n in self.nodes]

    @property
    def is_empty(self) -> bool:
        return not self.nodes
