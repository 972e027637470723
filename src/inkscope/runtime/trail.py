"""Playback trail: the sequence of knots a session has passed through."""

from __future__ import annotations

from collections import Counter, deque
from dataclasses import dataclass


@dataclass(frozen=True)
class KnotTransition:
    """One change of knot during playback."""

    step: int
    from_knot: str | None
    to_knot: str


class KnotTrail:
    """Records knot transitions and per-knot visit counts.

    A visit is counted when playback enters a knot, not on every step
    spent inside it.

    Args:
        max_history: Number of transitions kept; older ones are dropped.
            Visit counts are unaffected.
    """

    def __init__(self, max_history: int = 1000) -> None:
        self._history: deque[KnotTransition] = deque(maxlen=max_history)
        self._visits: Counter[str] = Counter()
        self._current: str | None = None
        self._steps = 0

    @property
    def current(self) -> str | None:
        return self._current

    @property
    def steps(self) -> int:
        return self._steps

    @property
    def history(self) -> list[KnotTransition]:
        return list(self._history)

    def record(self, knot: str) -> bool:
        """Record that playback is in ``knot``.

        Returns:
            True if this step entered a new knot.
        """
        self._steps += 1
        if knot == self._current:
            return False
        self._history.append(KnotTransition(step=self._steps, from_knot=self._current, to_knot=knot))
        self._visits[knot] += 1
        self._current = knot
        return True

    def visit_count(self, knot: str) -> int:
        return self._visits[knot]

    def visit_counts(self) -> dict[str, int]:
        return dict(self._visits)

    def reset(self) -> None:
        """Forget everything, e.g. when the story restarts."""
        self._history.clear()
        self._visits.clear()
        self._current = None
        self._steps = 0
