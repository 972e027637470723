"""Runtime knot detection.

The ink runtime does not expose "the current knot". We infer it from
three signals of differing reliability, tried in order:

1. the call stack, newest frame first
2. the active thread's current pointer
3. the dotted current path string

then fall back to the caller's hint, the detector's own memory, and
finally ``start``. Each signal check is a pure function of a
:class:`RuntimeSignal`, so it can be tested against a hand-built signal.

Compiler-generated container names (``c-0``, ``b``, ``g-2``, ``7``) are
never accepted as knots.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from pathlib import PurePath
from typing import TYPE_CHECKING, Any

from inkscope.observability.logging import get_logger
from inkscope.runtime.engine import (
    RuntimeSignal,
    can_continue,
    read_runtime_signal,
    speculative_step,
)
from inkscope.runtime.flow_map import EXAMPLE_KNOT_FLOW_MAP, KnotFlow, KnotFlowMap

if TYPE_CHECKING:
    from inkscope.runtime.engine import StoryEngine

log = get_logger(__name__)

FINAL_FALLBACK_KNOT = "start"
DEFAULT_FLOW_NAME = "DEFAULT_FLOW"

_SYNTHETIC_NAME_PATTERNS = (
    re.compile(r"c-\d+"),  # choice branch
    re.compile(r"g-\d+"),  # gather
    re.compile(r"b"),  # conditional branch
    re.compile(r"\d+"),  # anonymous indexed container
)

SignalStrategy = Callable[[RuntimeSignal], str | None]


def is_valid_knot_name(name: Any) -> bool:
    """True if ``name`` can be an author-named knot.

    Rejects empty names, ``DEFAULT_FLOW`` and compiler-synthetic container
    names.
    """
    if not isinstance(name, str) or not name or name == DEFAULT_FLOW_NAME:
        return False
    return not any(p.fullmatch(name) for p in _SYNTHETIC_NAME_PATTERNS)


def knot_from_call_stack(signal: RuntimeSignal) -> str | None:
    """Newest call-stack frame whose container is a real knot."""
    for name in reversed(signal.frame_names or ()):
        if is_valid_knot_name(name):
            return name
    return None


def knot_from_current_pointer(signal: RuntimeSignal) -> str | None:
    """Container of the current pointer, if it is a real knot."""
    return signal.pointer_name if is_valid_knot_name(signal.pointer_name) else None


def knot_from_path_string(signal: RuntimeSignal) -> str | None:
    """First real knot name among the path string's dotted segments."""
    if not signal.path_string:
        return None
    for segment in signal.path_string.split("."):
        if is_valid_knot_name(segment):
            return segment
    return None


SIGNAL_STRATEGIES: tuple[tuple[str, SignalStrategy], ...] = (
    ("call_stack", knot_from_call_stack),
    ("current_pointer", knot_from_current_pointer),
    ("path_string", knot_from_path_string),
)


def resolve_from_signal(
    signal: RuntimeSignal,
    strategies: tuple[tuple[str, SignalStrategy], ...] = SIGNAL_STRATEGIES,
) -> tuple[str, str] | None:
    """Run the strategies in order and return ``(strategy, knot)`` of the first hit."""
    for strategy_name, strategy in strategies:
        try:
            knot = strategy(signal)
        except Exception as e:
            log.debug("knot_strategy_failed", strategy=strategy_name, error=str(e))
            continue
        if knot is not None:
            return strategy_name, knot
    return None


class RuntimePositionDetector:
    """Names the knot a live story is currently executing.

    Each instance owns its ``last_known_knot``; use one detector per
    story session.

    Args:
        flow_map: Initial knot flow map. Empty by default.
        use_example_flow_map: Seed the flow map with
            :data:`EXAMPLE_KNOT_FLOW_MAP` (entries in flow_map win).
        initial_knot: Starting value of the last known knot.
        debug: Emit per-step DEBUG events.
    """

    def __init__(
        self,
        flow_map: Mapping[str, KnotFlow] | None = None,
        *,
        use_example_flow_map: bool = False,
        initial_knot: str | None = None,
        debug: bool = False,
    ) -> None:
        self.debug = debug
        self._flow_map: KnotFlowMap = dict(EXAMPLE_KNOT_FLOW_MAP) if use_example_flow_map else {}
        self._flow_map.update(flow_map or {})
        self._last_known_knot: str | None = (
            initial_knot if is_valid_knot_name(initial_knot) else None
        )

    # -- memory -------------------------------------------------------------

    def update_last_known_knot(self, name: str | None) -> None:
        """Remember ``name`` as the last known knot if it is valid."""
        if not is_valid_knot_name(name) or name == self._last_known_knot:
            return
        self._last_known_knot = name
        if self.debug:
            log.debug("last_known_knot_updated", knot=name)

    def get_last_known_knot(self) -> str | None:
        return self._last_known_knot

    @property
    def last_known_knot(self) -> str | None:
        return self._last_known_knot

    def is_valid_knot_name(self, name: Any) -> bool:
        return is_valid_knot_name(name)

    # -- flow map -----------------------------------------------------------

    def add_knot_flow_mapping(
        self,
        knot: str,
        choices: list[str] | tuple[str, ...],
        default_target: str | None = None,
    ) -> None:
        """Set the transitions out of one knot."""
        self._flow_map[knot] = KnotFlow(choices=tuple(choices), default_target=default_target)
        if self.debug:
            log.debug("knot_flow_mapping_added", knot=knot, choices=len(choices))

    def set_knot_flow_map(self, flow_map: Mapping[str, KnotFlow], *, replace: bool = False) -> None:
        """Merge (or with ``replace=True``, swap in) a whole flow map."""
        if replace:
            self._flow_map = dict(flow_map)
        else:
            self._flow_map.update(flow_map)

    def get_knot_flow_map(self) -> KnotFlowMap:
        """Copy of the current flow map."""
        return dict(self._flow_map)

    def predict_target_knot(self, current_knot: str, choice_index: int) -> str:
        """Predict the knot a choice leads to.

        Returns the mapped choice target, else the knot's default target,
        else ``current_knot`` unchanged.
        """
        flow = self._flow_map.get(current_knot)
        predicted = flow.target_for(choice_index) if flow is not None else None
        if predicted is None:
            if self.debug:
                log.debug("no_flow_mapping", knot=current_knot, choice_index=choice_index)
            return current_knot
        if self.debug:
            log.debug(
                "target_predicted",
                knot=current_knot,
                choice_index=choice_index,
                predicted=predicted,
            )
        return predicted

    # -- detection ----------------------------------------------------------

    def detect_from_signal(self, signal: RuntimeSignal) -> str | None:
        """Knot named by the engine signals alone, without fallbacks."""
        hit = resolve_from_signal(signal)
        if hit is None:
            return None
        strategy_name, knot = hit
        if self.debug:
            log.debug("knot_detected", strategy=strategy_name, knot=knot)
        return knot

    def _detect(self, engine: StoryEngine) -> str | None:
        try:
            signal = read_runtime_signal(engine)
        except Exception as e:
            log.debug("runtime_signal_unreadable", error=str(e))
            signal = RuntimeSignal()
        return self.detect_from_signal(signal)

    def get_current_knot_name(self, engine: StoryEngine, fallback: str | None = None) -> str:
        """Name the knot the engine is currently executing.

        Never raises. Engine signals win over ``fallback``, which wins over
        the last known knot; ``start`` is returned when nothing is known.
        """
        detected = self._detect(engine)
        if detected is not None:
            self.update_last_known_knot(detected)
            return detected

        if fallback is not None and is_valid_knot_name(fallback):
            if self.debug:
                log.debug("knot_from_fallback", knot=fallback)
            return fallback

        if self._last_known_knot is not None:
            if self.debug:
                log.debug("knot_from_last_known", knot=self._last_known_knot)
            return self._last_known_knot

        if self.debug:
            log.debug("knot_detection_exhausted", result=FINAL_FALLBACK_KNOT)
        return FINAL_FALLBACK_KNOT

    def detect_knot_after_choice(
        self,
        engine: StoryEngine,
        current_knot: str,
        choice_index: int,
        *,
        verify_after_continue: bool = False,
    ) -> str:
        """Predict the knot a choice leads to, optionally verifying it.

        With ``verify_after_continue`` the engine is stepped once under a
        snapshot, the engine signals are read, and the snapshot is restored
        before returning. A different knot named by those signals replaces
        the prediction. Never raises.
        """
        predicted = self.predict_target_knot(current_knot, choice_index)
        self.update_last_known_knot(predicted)

        if not verify_after_continue:
            return predicted

        try:
            if not can_continue(engine):
                return predicted
        except Exception as e:
            log.debug("engine_can_continue_unreadable", error=str(e))
            return predicted

        try:
            with speculative_step(engine):
                detected = self._detect(engine)
        except Exception as e:
            log.warning("knot_verification_failed", predicted=predicted, error=str(e))
            return predicted

        if detected is not None and detected != predicted:
            if self.debug:
                log.debug("knot_verification_adjusted", predicted=predicted, detected=detected)
            self.update_last_known_knot(detected)
            return detected

        self.update_last_known_knot(predicted)
        return predicted

    def determine_initial_knot(
        self,
        file_path: str,
        known_knots: list[str] | None = None,
    ) -> str:
        """Pick the knot a story entered through ``file_path`` starts in.

        Uses the file stem when it is a valid knot name (and, when
        ``known_knots`` is given, one of them); otherwise the first known
        knot; otherwise ``start``. The result is remembered as the last
        known knot.
        """
        stem = PurePath(file_path.replace("\\", "/")).stem
        if is_valid_knot_name(stem) and (known_knots is None or stem in known_knots):
            initial = stem
        elif known_knots:
            initial = known_knots[0]
        else:
            initial = FINAL_FALLBACK_KNOT

        self.update_last_known_knot(initial)
        log.debug("initial_knot_determined", file=file_path, knot=initial)
        return initial


def create_knot_detector(**options: Any) -> RuntimePositionDetector:
    """Create a detector with the given constructor options."""
    return RuntimePositionDetector(**options)


def quick_detect_knot(engine: StoryEngine, fallback: str | None = None) -> str:
    """One-off detection with a fresh detector."""
    return RuntimePositionDetector().get_current_knot_name(engine, fallback)


def detect_knot_after_choice(
    engine: StoryEngine,
    current_knot: str,
    choice_index: int,
    *,
    verify_after_continue: bool = False,
    **options: Any,
) -> str:
    """One-off choice prediction with a fresh detector."""
    detector = RuntimePositionDetector(**options)
    return detector.detect_knot_after_choice(
        engine,
        current_knot,
        choice_index,
        verify_after_continue=verify_after_continue,
    )
