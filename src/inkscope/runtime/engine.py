"""Live story-engine boundary.

The engine is an external object (an ink runtime ``Story``). We read
three position signals from it and, for verification, step it under a
snapshot/restore guard. Attribute names follow the ink runtime
(``currentPathString``, ``callStack``, ``ToJson`` ...); snake_case
equivalents are accepted as well so Python ports of the runtime work
unchanged.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from inkscope.observability.logging import get_logger

log = get_logger(__name__)

_MISSING = object()


@runtime_checkable
class StoryState(Protocol):
    """Engine state as exposed by the ink runtime."""

    currentPathString: str | None  # noqa: N815 - ink runtime naming
    callStack: Any  # noqa: N815
    currentPointer: Any  # noqa: N815

    def ToJson(self) -> str: ...  # noqa: N802

    def LoadJson(self, json: str) -> None: ...  # noqa: N802


@runtime_checkable
class StoryEngine(Protocol):
    """Live story handle as exposed by the ink runtime.

    The readers below also accept the snake_case names of Python ports.
    """

    state: StoryState
    canContinue: bool  # noqa: N815
    currentChoices: list[Any]  # noqa: N815

    def Continue(self) -> str: ...  # noqa: N802

    def ChooseChoiceIndex(self, index: int) -> None: ...  # noqa: N802


@dataclass(frozen=True)
class RuntimeSignal:
    """One read of the engine's position signals.

    Any part may be None when the engine did not expose it or reading it
    failed.

    Attributes:
        frame_names: Container names of the call-stack frames, oldest first.
            A frame without a pointer contributes None.
        pointer_name: Container name of the active thread's current pointer.
        path_string: Dotted current path (``knot.stitch.3``).
    """

    frame_names: tuple[str | None, ...] | None = None
    pointer_name: str | None = None
    path_string: str | None = None
    errors: tuple[str, ...] = field(default=(), compare=False)


def get_attr(obj: Any, *names: str) -> Any:
    """Return the first attribute of ``obj`` present under any of ``names``."""
    if obj is None:
        return None
    for name in names:
        value = getattr(obj, name, _MISSING)
        if value is not _MISSING:
            return value
    return None


def call_method(obj: Any, names: tuple[str, ...], *args: Any) -> Any:
    """Call the first method of ``obj`` present under any of ``names``.

    Raises:
        AttributeError: If none of the names is callable on obj.
    """
    for name in names:
        method = getattr(obj, name, None)
        if callable(method):
            return method(*args)
    raise AttributeError(f"{type(obj).__name__} has none of {', '.join(names)}")


def _container_name(pointer: Any) -> str | None:
    container = get_attr(pointer, "container")
    name = get_attr(container, "name")
    return name if isinstance(name, str) else None


def _read_frame_names(state: Any) -> tuple[str | None, ...] | None:
    call_stack = get_attr(state, "callStack", "call_stack")
    elements = get_attr(call_stack, "elements")
    if elements is None:
        return None
    return tuple(
        _container_name(get_attr(element, "currentPointer", "current_pointer"))
        for element in elements
    )


def _read_pointer_name(state: Any) -> str | None:
    return _container_name(get_attr(state, "currentPointer", "current_pointer"))


def _read_path_string(state: Any) -> str | None:
    path = get_attr(state, "currentPathString", "current_path_string")
    if not isinstance(path, str) or path in ("", "null"):
        return None
    return path


def read_runtime_signal(engine: StoryEngine) -> RuntimeSignal:
    """Read all position signals from a live engine.

    Each signal is read independently; an engine property that raises
    only blanks that one signal.
    """
    errors: list[str] = []
    values: dict[str, Any] = {}

    try:
        state = get_attr(engine, "state")
    except Exception as e:
        log.debug("engine_state_unreadable", error=str(e))
        return RuntimeSignal(errors=(f"state: {e}",))

    readers = {
        "frame_names": _read_frame_names,
        "pointer_name": _read_pointer_name,
        "path_string": _read_path_string,
    }
    for key, reader in readers.items():
        try:
            values[key] = reader(state)
        except Exception as e:
            log.debug("engine_signal_unreadable", signal=key, error=str(e))
            errors.append(f"{key}: {e}")
            values[key] = None

    return RuntimeSignal(errors=tuple(errors), **values)


def can_continue(engine: StoryEngine) -> bool:
    """True if the engine has more content to emit."""
    value = get_attr(engine, "canContinue", "can_continue")
    if callable(value):
        value = value()
    return bool(value)


def save_state(engine: StoryEngine) -> str:
    """Serialize the engine state."""
    state = get_attr(engine, "state")
    result: str = call_method(state, ("ToJson", "to_json"))
    return result


def load_state(engine: StoryEngine, saved: str) -> None:
    """Restore a state produced by :func:`save_state`."""
    state = get_attr(engine, "state")
    call_method(state, ("LoadJson", "load_json"), saved)


@contextmanager
def speculative_step(engine: StoryEngine) -> Iterator[None]:
    """Advance the engine one step, restoring its state on exit.

    The snapshot is taken before stepping and restored on every exit
    path, including when the step itself raises. A failed restore is
    logged, not raised.

    Raises:
        Exception: Whatever snapshotting or stepping raised.
    """
    saved = save_state(engine)
    try:
        call_method(engine, ("Continue", "continue_story"))
        yield
    finally:
        try:
            load_state(engine, saved)
        except Exception:
            log.exception("story_state_restore_failed")
