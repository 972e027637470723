"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from types import SimpleNamespace
from typing import Any

import pytest


@pytest.fixture(autouse=True)
def isolate_inkscope_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep INKSCOPE_* variables from the developer's shell out of tests."""
    for key in list(os.environ):
        if key.startswith("INKSCOPE_"):
            monkeypatch.delenv(key)


# --- Compiled story fixtures ---


@pytest.fixture
def two_knot_story() -> dict[str, Any]:
    """Smallest story with a link: A says "go" and diverts to B."""
    return {
        "inkVersion": 21,
        "root": [
            {},
            {
                "A": ["^go", {"->": "B"}],
                "B": ["^end"],
            },
        ],
    }


@pytest.fixture
def choice_story() -> dict[str, Any]:
    """Compiler-shaped story with choices, a linear chain and an orphan knot.

    game_start offers two choices (character_setup, background_info),
    background_info and character_setup continue linearly, ending stops,
    and nothing diverts to orphan.
    """
    return {
        "inkVersion": 21,
        "root": [
            [{"->": "game_start"}, ["done", {"#n": "g-0"}], None],
            "done",
            {
                "game_start": [
                    [
                        "^Welcome aboard.",
                        "\n",
                        "ev",
                        "str",
                        "^Set up",
                        "/str",
                        "/ev",
                        {"*": ".^.c-0", "flg": 4},
                        "ev",
                        "str",
                        "^Background",
                        "/str",
                        "/ev",
                        {"*": ".^.c-1", "flg": 4},
                        {
                            "c-0": ["^Set up", "\n", {"->": "character_setup"}, {"#f": 5}],
                            "c-1": ["^Background", "\n", {"->": "background_info"}, {"#f": 5}],
                        },
                    ],
                    {"#f": 1},
                ],
                "background_info": ["^History.", "\n", {"->": "character_setup"}, {"#f": 1}],
                "character_setup": ["^Who are you?", "\n", {"->": "ending"}, {"#f": 1}],
                "ending": ["^The end.", "\n", "end", {"#f": 1}],
                "orphan": ["^Nobody comes here.", "\n", {"->": "ending"}, {"#f": 1}],
                "global decl": ["ev", 0, {"VAR=": "score"}, "/ev", "end", None],
                "#f": 1,
            },
        ],
        "listDefs": {},
    }


@pytest.fixture
def choice_story_source() -> str:
    """Ink source matching ``choice_story``."""
    return "\n".join(
        [
            "VAR score = 0",
            "VAR player_name = \"\"",
            "-> game_start",
            "",
            "=== game_start ===",
            "Welcome aboard.",
            "* [Set up] -> character_setup",
            "* [Background] -> background_info",
            "",
            "=== background_info ===",
            "History.",
            "-> character_setup",
            "",
            "=== character_setup ===",
            "Who are you?",
            "-> ending",
            "",
            "=== ending ===",
            "The end.",
            "-> END",
            "",
            "=== orphan ===",
            "Nobody comes here.",
            "-> ending",
            "",
            "=== function double(x) ===",
            "~ return x * 2",
        ]
    )


# --- Fake story engine ---


def make_pointer(name: str | None) -> Any:
    """Pointer whose container carries ``name`` (None for a null pointer)."""
    if name is None:
        return None
    return SimpleNamespace(container=SimpleNamespace(name=name))


class FakeState:
    """Story state exposing the three position signals and JSON snapshots."""

    def __init__(
        self,
        *,
        path: str | None = None,
        pointer: str | None = None,
        frames: list[str | None] | None = None,
    ) -> None:
        self.load_calls = 0
        self.set_position(path=path, pointer=pointer, frames=frames)

    def set_position(
        self,
        *,
        path: str | None = None,
        pointer: str | None = None,
        frames: list[str | None] | None = None,
    ) -> None:
        self._position = {"path": path, "pointer": pointer, "frames": frames}
        self.currentPathString = path
        self.currentPointer = make_pointer(pointer)
        self.callStack = (
            None
            if frames is None
            else SimpleNamespace(
                elements=[SimpleNamespace(currentPointer=make_pointer(n)) for n in frames]
            )
        )

    def ToJson(self) -> str:
        return json.dumps(self._position, sort_keys=True)

    def LoadJson(self, data: str) -> None:
        self.load_calls += 1
        self.set_position(**json.loads(data))


class FakeEngine:
    """Story handle whose ``Continue`` moves the state to a scripted position.

    Args:
        state: Initial state.
        next_position: Keyword arguments for ``FakeState.set_position``
            applied by ``Continue``. None means the story cannot continue.
        fail_on_continue: ``Continue`` moves the state, then raises.
    """

    def __init__(
        self,
        state: FakeState,
        *,
        next_position: dict[str, Any] | None = None,
        fail_on_continue: bool = False,
    ) -> None:
        self.state = state
        self.next_position = next_position
        self.fail_on_continue = fail_on_continue
        self.continue_calls = 0
        self.currentChoices: list[Any] = []
        self.chosen: list[int] = []

    @property
    def canContinue(self) -> bool:
        return self.next_position is not None or self.fail_on_continue

    def Continue(self) -> str:
        self.continue_calls += 1
        self.state.set_position(**(self.next_position or {"path": "broken.0"}))
        if self.fail_on_continue:
            raise RuntimeError("runtime error in story")
        return "Some text\n"

    def ChooseChoiceIndex(self, index: int) -> None:
        self.chosen.append(index)


EngineFactory = Callable[..., FakeEngine]


@pytest.fixture
def make_engine() -> EngineFactory:
    """Factory for fake engines.

    Keyword arguments ``path``, ``pointer`` and ``frames`` set the current
    position; ``next_position`` and ``fail_on_continue`` script ``Continue``.
    """

    def _make(
        *,
        path: str | None = None,
        pointer: str | None = None,
        frames: list[str | None] | None = None,
        next_position: dict[str, Any] | None = None,
        fail_on_continue: bool = False,
    ) -> FakeEngine:
        return FakeEngine(
            FakeState(path=path, pointer=pointer, frames=frames),
            next_position=next_position,
            fail_on_continue=fail_on_continue,
        )

    return _make


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
