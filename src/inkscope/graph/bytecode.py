"""Knot graph extraction from compiled ink bytecode.

The compiler emits a nested array/object tree. The last element of
``root`` maps knot names to their bodies; inside a body we look for
three things:

- text fragments: strings starting with ``^``
- diverts: objects with a ``->`` key naming a target
- choice points: objects whose ``*`` key references a sibling ``c-<n>``
  branch body

Pure functions, no I/O beyond optional JSON decoding of the document.
"""

from __future__ import annotations

import json
import re
from collections.abc import Collection, Mapping
from typing import Any

from inkscope.graph.errors import BytecodeStructureError, DanglingDivert, GraphDiagnostics
from inkscope.models.graph import EMPTY_LABEL, GraphLink, GraphNode, StoryGraph
from inkscope.observability.logging import get_logger

log = get_logger(__name__)

TEXT_PREFIX = "^"
DIVERT_KEY = "->"
CHOICE_KEY = "*"
METADATA_PREFIX = "#"
RESERVED_KNOTS = frozenset({"global decl"})

_CHOICE_REF_PATTERN = re.compile(r"\.c-(\d+)")


def load_bytecode(raw: str | bytes | Mapping[str, Any]) -> Any:
    """Decode a compiled story from JSON text, or pass a decoded one through.

    Raises:
        BytecodeStructureError: If the bytes are not UTF-8 or the text is not
            valid JSON.
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise BytecodeStructureError(f"not valid UTF-8 ({e.reason})") from e
    if isinstance(raw, str):
        try:
            return json.loads(raw.lstrip("\ufeff"))
        except json.JSONDecodeError as e:
            raise BytecodeStructureError(f"not valid JSON ({e.msg} at line {e.lineno})") from e
        except RecursionError as e:
            raise BytecodeStructureError("nesting too deep") from e
    return raw


def extract_named_content(bytecode: Any) -> dict[str, Any]:
    """Return the knot-name → body map of a compiled story.

    Metadata keys (``#...``) and the ``global decl`` pseudo-knot are dropped.

    Raises:
        BytecodeStructureError: If the document has no array ``root`` or
            its last element is not a mapping.
    """
    if not isinstance(bytecode, Mapping):
        raise BytecodeStructureError("document is not an object")

    root = bytecode.get("root")
    if not isinstance(root, list):
        raise BytecodeStructureError("missing or non-array root")
    if not root or not isinstance(root[-1], Mapping):
        raise BytecodeStructureError("root has no trailing named-content map")

    return {
        str(name): body
        for name, body in root[-1].items()
        if not str(name).startswith(METADATA_PREFIX) and name not in RESERVED_KNOTS
    }


def build_story_graph(
    bytecode: Any,
    diagnostics: GraphDiagnostics | None = None,
) -> StoryGraph:
    """Build the knot graph of a compiled story.

    Never raises. Structurally invalid input yields an empty graph and a
    diagnostic; a knot with a malformed body is skipped on its own.

    Args:
        bytecode: Decoded compiled story, or its JSON text.
        diagnostics: Optional collector for structural problems and
            dangling diverts.

    Returns:
        StoryGraph with one node per knot and one link per recorded divert.
    """
    diagnostics = diagnostics if diagnostics is not None else GraphDiagnostics()

    try:
        named = extract_named_content(load_bytecode(bytecode))
    except BytecodeStructureError as e:
        diagnostics.errors.append(e.reason)
        log.warning("bytecode_structure_invalid", reason=e.reason)
        return StoryGraph()

    bodies: dict[str, list[Any]] = {}
    for name, body in named.items():
        if not isinstance(body, list):
            diagnostics.skipped_knots.append(name)
            log.warning("knot_body_not_array", knot=name, kind=type(body).__name__)
            continue
        bodies[name] = body

    nodes = [GraphNode(id=name) for name in bodies]
    links: list[GraphLink] = []
    for name, body in bodies.items():
        walker = _KnotWalker(name, bodies.keys(), diagnostics)
        try:
            walker.walk(body)
        except RecursionError:
            diagnostics.skipped_knots.append(name)
            log.warning("knot_body_too_deep", knot=name)
            continue
        links.extend(walker.links)

    log.debug(
        "story_graph_built",
        nodes=len(nodes),
        links=len(links),
        dangling=len(diagnostics.dangling_diverts),
    )
    return StoryGraph(nodes=nodes, links=links)


class _KnotWalker:
    """Depth-first walk of one knot body, collecting its outgoing links."""

    def __init__(
        self,
        source: str,
        known: Collection[str],
        diagnostics: GraphDiagnostics,
    ) -> None:
        self.source = source
        self.known = known
        self.diagnostics = diagnostics
        self.links: list[GraphLink] = []
        self.last_text = ""
        self.used_main_line = False
        # Ancestor arrays, innermost last, for resolving c-<n> branches
        self._stack: list[list[Any]] = []
        # Branch bodies owned by a choice point; walked only as choices
        self._claimed: set[int] = set()

    def walk(self, items: list[Any], in_choice: bool = False) -> None:
        self._stack.append(items)
        self._claim_branches(items)

        for entry in items:
            if isinstance(entry, list):
                self.walk(entry, in_choice)
            elif isinstance(entry, str):
                if entry.startswith(TEXT_PREFIX):
                    self.last_text = entry[len(TEXT_PREFIX) :].strip()
            elif isinstance(entry, Mapping):
                self._visit_object(entry, in_choice)

        self._stack.pop()

    def _visit_object(self, obj: Mapping[str, Any], in_choice: bool) -> None:
        branch_key = _choice_branch_key(obj)
        if branch_key is not None:
            branch = self._find_branch(branch_key)
            if branch is not None:
                self.walk(branch, in_choice=True)
        elif isinstance(obj.get(DIVERT_KEY), str) and not obj.get("var"):
            self._record_divert(obj[DIVERT_KEY], in_choice)

        for value in obj.values():
            if isinstance(value, list) and id(value) not in self._claimed:
                self.walk(value, in_choice)

    def _claim_branches(self, items: list[Any]) -> None:
        for entry in items:
            if isinstance(entry, Mapping):
                key = _choice_branch_key(entry)
                branch = self._find_branch(key) if key is not None else None
                if branch is not None:
                    self._claimed.add(id(branch))

    def _find_branch(self, key: str) -> list[Any] | None:
        for container in reversed(self._stack):
            for entry in container:
                if isinstance(entry, Mapping) and isinstance(entry.get(key), list):
                    branch: list[Any] = entry[key]
                    return branch
        return None

    def _record_divert(self, target: str, in_choice: bool) -> None:
        if target not in self.known:
            if _looks_like_knot_reference(target, self.known):
                self.diagnostics.dangling_diverts.append(
                    DanglingDivert(source=self.source, target=target, in_choice=in_choice)
                )
                log.debug(
                    "divert_target_unresolved",
                    source=self.source,
                    target=target,
                    in_choice=in_choice,
                )
            return

        if not in_choice:
            if self.used_main_line:
                return
            self.used_main_line = True

        self.links.append(
            GraphLink(
                source=self.source,
                target=target,
                label=self.last_text or EMPTY_LABEL,
                is_choice=in_choice,
            )
        )


def _choice_branch_key(obj: Mapping[str, Any]) -> str | None:
    """Return ``c-<n>`` if obj is a choice point, else None."""
    ref = obj.get(CHOICE_KEY)
    if not isinstance(ref, str):
        return None
    match = _CHOICE_REF_PATTERN.search(ref)
    return f"c-{match.group(1)}" if match else None


def _looks_like_knot_reference(target: str, known: Collection[str]) -> bool:
    """True for targets that name a knot which does not exist.

    Relative paths (``.^.c-0``), root-indexed paths and stitches of a
    known knot are compiler-internal and not reported.
    """
    if target.startswith("."):
        return False
    head = target.split(".", 1)[0]
    return head not in known and not head.isdigit()
