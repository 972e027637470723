"""Per-knot transition table used to predict where a choice lands.

A ``KnotFlowMap`` answers "if the player is in knot K and takes choice i,
which knot comes next?". It starts empty (or from story-supplied
configuration) and is regenerated from compiled links after every
compile.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from inkscope.models.graph import GraphLink


@dataclass(frozen=True)
class KnotFlow:
    """Transitions out of one knot.

    Attributes:
        choices: Target knot per choice index.
        default_target: Target when the index is past the end of choices.
    """

    choices: tuple[str, ...] = field(default_factory=tuple)
    default_target: str | None = None

    def target_for(self, choice_index: int) -> str | None:
        """Predicted target for a choice index, or None if unknown."""
        if 0 <= choice_index < len(self.choices):
            return self.choices[choice_index]
        return self.default_target

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> KnotFlow:
        """Create from ``{"choices": [...], "default": ...}``.

        ``defaultTarget`` and ``default_target`` are accepted for the
        default as well.
        """
        default = data.get("default", data.get("default_target", data.get("defaultTarget")))
        return cls(
            choices=tuple(str(c) for c in data.get("choices") or ()),
            default_target=str(default) if default else None,
        )


KnotFlowMap = dict[str, KnotFlow]

# A small "day one" story skeleton. Opt-in only; prediction normally comes
# from compiled links.
EXAMPLE_KNOT_FLOW_MAP: Mapping[str, KnotFlow] = {
    "game_start": KnotFlow(
        choices=("character_setup", "background_info"),
        default_target="character_setup",
    ),
    "background_info": KnotFlow(choices=("character_setup",), default_target="character_setup"),
    "character_setup": KnotFlow(
        choices=("profession_choice",), default_target="profession_choice"
    ),
    "profession_choice": KnotFlow(choices=("day1_start",), default_target="day1_start"),
    "day1_start": KnotFlow(choices=("day1_first_reaction",), default_target="day1_first_reaction"),
    "day1_first_reaction": KnotFlow(
        choices=(
            "day1_direct_response",
            "day1_cautious_response",
            "day1_analytical_first_response",
            "day1_technical_response",
        ),
        default_target="day1_direct_response",
    ),
}


def flow_map_from_links(links: Iterable[GraphLink]) -> KnotFlowMap:
    """Group links by source knot into a flow map.

    Each knot's targets become its choices in traversal order; the first
    target is the default.
    """
    grouped: dict[str, list[str]] = {}
    for link in links:
        grouped.setdefault(link.source, []).append(link.target)
    return {
        source: KnotFlow(choices=tuple(targets), default_target=targets[0])
        for source, targets in grouped.items()
    }


def flow_map_from_dict(data: Mapping[str, Mapping[str, Any]]) -> KnotFlowMap:
    """Parse a flow map from configuration data."""
    return {str(name): KnotFlow.from_dict(flow) for name, flow in data.items()}
