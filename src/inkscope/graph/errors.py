"""Error and diagnostic types for knot graph extraction.

Structural problems in compiled bytecode never escape the graph builder;
they are recorded here so authoring errors stay visible without breaking
the graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from difflib import get_close_matches


@dataclass
class BytecodeStructureError(ValueError):
    """Raised when a compiled story document lacks the expected layout.

    Attributes:
        reason: What was wrong with the document.
    """

    reason: str

    def __post_init__(self) -> None:
        super().__init__(f"Invalid compiled story: {self.reason}")


@dataclass(frozen=True)
class DanglingDivert:
    """A divert whose target does not name any knot in the story.

    Attributes:
        source: Knot containing the divert.
        target: Raw divert target as written by the compiler.
        in_choice: True if the divert sat inside a choice branch.
    """

    source: str
    target: str
    in_choice: bool = False

    def suggestions(self, available: list[str]) -> list[str]:
        """Find knot names that the target might be a typo of."""
        head = self.target.split(".", 1)[0]
        return get_close_matches(head, available, n=3, cutoff=0.6)


@dataclass
class GraphDiagnostics:
    """Collected non-fatal problems from one graph build.

    Attributes:
        errors: Structural errors that emptied the graph.
        skipped_knots: Knots whose body was not an array.
        dangling_diverts: Diverts to names absent from the story.
    """

    errors: list[str] = field(default_factory=list)
    skipped_knots: list[str] = field(default_factory=list)
    dangling_diverts: list[DanglingDivert] = field(default_factory=list)

    @property
    def has_problems(self) -> bool:
        return bool(self.errors or self.skipped_knots or self.dangling_diverts)

    def format_report(self, available: list[str] | None = None) -> str:
        """Format the diagnostics as a readable report.

        Args:
            available: Known knot names, used to suggest fixes for
                dangling divert targets.

        Returns:
            Multi-line report, or an empty string if nothing was found.
        """
        if not self.has_problems:
            return ""

        lines: list[str] = []
        for error in self.errors:
            lines.append(f"error: {error}")
        for knot in self.skipped_knots:
            lines.append(f"skipped: knot '{knot}' has a malformed body")
        for divert in self.dangling_diverts[:20]:
            where = "choice" if divert.in_choice else "flow"
            line = f"dangling: {divert.source} -> {divert.target} ({where})"
            hints = divert.suggestions(available or [])
            if hints:
                line += f"; did you mean {', '.join(hints)}?"
            lines.append(line)
        if len(self.dangling_diverts) > 20:
            lines.append(f"... and {len(self.dangling_diverts) - 20} more dangling diverts")
        return "\n".join(lines)
