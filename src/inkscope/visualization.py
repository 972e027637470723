"""Knot graph visualization.

Renders the compiled knot graph as DOT (Graphviz) or Mermaid markup,
marking entry points, dead ends, unreachable knots and the knot the
story is currently in.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from inkscope.graph.algorithms import dead_ends, entry_points, unreachable
from inkscope.models.graph import EMPTY_LABEL
from inkscope.observability.logging import get_logger

if TYPE_CHECKING:
    from inkscope.models.graph import StoryGraph

log = get_logger(__name__)

_KNOT_COLOR = "#ADD8E6"  # light blue
_START_COLOR = "#90EE90"  # light green
_ENDING_COLOR = "#FFB6C1"  # light pink
_UNREACHABLE_COLOR = "#D3D3D3"  # light grey
_CURRENT_BORDER = "#FF4500"  # orange-red
_CHOICE_COLOR = "#6A5ACD"  # slate blue


@dataclass
class VizNode:
    """A knot node in the visualization."""

    id: str
    is_start: bool = False
    is_ending: bool = False
    is_unreachable: bool = False
    is_current: bool = False
    outgoing_count: int = 0


@dataclass
class VizEdge:
    """A divert edge in the visualization."""

    from_id: str
    to_id: str
    label: str = ""
    is_choice: bool = False


@dataclass
class KnotGraphView:
    """Visualization data extracted from a knot graph."""

    nodes: list[VizNode] = field(default_factory=list)
    edges: list[VizEdge] = field(default_factory=list)


def build_knot_view(graph: StoryGraph, *, current_knot: str | None = None) -> KnotGraphView:
    """Extract visualization data from a knot graph.

    Args:
        graph: Compiled knot graph.
        current_knot: Knot to highlight, if any.

    Returns:
        KnotGraphView with nodes in graph order.
    """
    knots = graph.node_ids
    starts = set(entry_points(knots, graph.links))
    endings = set(dead_ends(knots, graph.links))
    orphans = set(unreachable(knots, graph.links, starts))

    outgoing: dict[str, int] = {}
    for link in graph.links:
        outgoing[link.source] = outgoing.get(link.source, 0) + 1

    nodes = [
        VizNode(
            id=knot,
            is_start=knot in starts,
            is_ending=knot in endings,
            is_unreachable=knot in orphans,
            is_current=knot == current_knot,
            outgoing_count=outgoing.get(knot, 0),
        )
        for knot in knots
    ]
    edges = [
        VizEdge(
            from_id=link.source,
            to_id=link.target,
            label="" if link.label == EMPTY_LABEL else _truncate(link.label, 40),
            is_choice=link.is_choice,
        )
        for link in graph.links
    ]

    log.debug("knot_view_built", nodes=len(nodes), edges=len(edges), current=current_knot)
    return KnotGraphView(nodes=nodes, edges=edges)


def render_dot(view: KnotGraphView, *, no_labels: bool = False) -> str:
    """Render a KnotGraphView as DOT (Graphviz) markup.

    Args:
        view: Knot graph data.
        no_labels: If True, omit choice labels on edges.

    Returns:
        DOT format string.
    """
    lines = [
        "digraph story {",
        "  rankdir=LR;",
        '  node [fontname="Helvetica" fontsize=10 style="filled,solid"];',
        '  edge [fontname="Helvetica" fontsize=8];',
        "",
    ]

    for node in view.nodes:
        attrs = _dot_node_attrs(node)
        attr_str = " ".join(f"{k}={v}" for k, v in attrs.items())
        lines.append(f'  "{_dot_escape(node.id)}" [{attr_str}];')

    lines.append("")

    for edge in view.edges:
        edge_attrs: dict[str, str] = {}
        if edge.is_choice:
            edge_attrs["color"] = f'"{_CHOICE_COLOR}"'
        if edge.label and not no_labels:
            edge_attrs["label"] = f'"{_dot_escape(edge.label)}"'
        edge_attr_str = " ".join(f"{k}={v}" for k, v in edge_attrs.items())
        suffix = f" [{edge_attr_str}]" if edge_attr_str else ""
        lines.append(f'  "{_dot_escape(edge.from_id)}" -> "{_dot_escape(edge.to_id)}"{suffix};')

    lines.append("}")
    return "\n".join(lines)


def render_mermaid(view: KnotGraphView, *, no_labels: bool = False) -> str:
    """Render a KnotGraphView as Mermaid markup.

    Args:
        view: Knot graph data.
        no_labels: If True, omit choice labels on edges.

    Returns:
        Mermaid format string.
    """
    lines = ["graph LR"]

    for node in view.nodes:
        safe_id = _mermaid_id(node.id)
        label = _mermaid_escape(node.id)
        if node.is_start:
            lines.append(f'  {safe_id}(["{label}"]):::start')
        elif node.is_ending:
            lines.append(f'  {safe_id}(["{label}"]):::ending')
        elif node.is_unreachable:
            lines.append(f'  {safe_id}["{label}"]:::unreachable')
        else:
            lines.append(f'  {safe_id}["{label}"]')
        if node.is_current:
            lines.append(f"  class {safe_id} current")

    lines.append("")

    for edge in view.edges:
        src = _mermaid_id(edge.from_id)
        dst = _mermaid_id(edge.to_id)
        if not no_labels and edge.label:
            lines.append(f'  {src} -->|"{_mermaid_escape(edge.label)}"| {dst}')
        else:
            lines.append(f"  {src} --> {dst}")

    lines.append("")
    lines.append(f"  classDef start fill:{_START_COLOR},stroke:#333")
    lines.append(f"  classDef ending fill:{_ENDING_COLOR},stroke:#333")
    lines.append(f"  classDef unreachable fill:{_UNREACHABLE_COLOR},stroke:#333,stroke-dasharray:4")
    lines.append(f"  classDef current stroke:{_CURRENT_BORDER},stroke-width:3px")

    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _truncate(text: str, max_len: int) -> str:
    """Truncate text with ellipsis if too long."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _dot_node_attrs(node: VizNode) -> dict[str, str]:
    """Build DOT attribute dict for a node."""
    attrs: dict[str, str] = {}

    if node.is_start:
        attrs["shape"] = "doubleoctagon"
        attrs["fillcolor"] = f'"{_START_COLOR}"'
    elif node.is_ending:
        attrs["shape"] = "octagon"
        attrs["fillcolor"] = f'"{_ENDING_COLOR}"'
    elif node.is_unreachable:
        attrs["shape"] = "box"
        attrs["fillcolor"] = f'"{_UNREACHABLE_COLOR}"'
        attrs["style"] = '"filled,dashed"'
    else:
        attrs["shape"] = "box"
        attrs["fillcolor"] = f'"{_KNOT_COLOR}"'

    if node.is_current:
        attrs["color"] = f'"{_CURRENT_BORDER}"'
        attrs["penwidth"] = '"2.5"'

    attrs["label"] = f'"{_dot_escape(node.id)}"'
    return attrs


def _dot_escape(text: str) -> str:
    """Escape special characters for DOT labels."""
    return text.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")


def _mermaid_id(node_id: str) -> str:
    """Convert a knot name to a Mermaid-safe identifier."""
    return node_id.replace(".", "_").replace(" ", "_").replace("-", "_")


def _mermaid_escape(text: str) -> str:
    """Escape special characters for Mermaid labels."""
    return text.replace('"', "&quot;").replace("\n", " ")
