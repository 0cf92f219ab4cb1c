"""Shared fixtures for typeahead tests."""
from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterator

import pytest

from typeahead.foundation.config import clear_settings_cache
from typeahead.runtime.observability.logging import CapturingRenderer, set_renderer
from typeahead.search import ScreenState, SearchStateController, StateKind


@pytest.fixture(autouse=True)
def logs() -> Iterator[CapturingRenderer]:
    """Capture all log output at debug level."""
    renderer = CapturingRenderer()
    set_renderer(renderer, level="DEBUG")
    yield renderer
    set_renderer(None, level="INFO")


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Fresh settings per test, isolated from the developer's environment."""
    for var in ("TYPEAHEAD_SEARCH_DEBOUNCE", "TYPEAHEAD_SEARCH_GRACE_PERIOD", "TYPEAHEAD_SEARCH_STARTED",
                "TYPEAHEAD_LOG_LEVEL", "TYPEAHEAD_LOG_FORMAT", "TYPEAHEAD_LOG_COLORS", "TYPEAHEAD_ENVIRONMENT"):
        monkeypatch.delenv(var, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


class StateRecorder:
    """Collects every state a controller emits, from a background observer."""

    def __init__(self, controller: SearchStateController) -> None:
        self.controller = controller
        self.states: list[ScreenState] = []
        self._changed = asyncio.Event()
        self._sub = controller.observe()
        self._task: asyncio.Task[None] | None = None

    async def __aenter__(self) -> StateRecorder:
        await self._sub.__aenter__()
        self._task = asyncio.create_task(self._drain())
        await asyncio.sleep(0)
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.stop()

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
            self._task = None
        await self._sub.aclose()

    async def _drain(self) -> None:
        async for state in self._sub:
            self.states.append(state)
            self._changed.set()

    @property
    def changes(self) -> list[ScreenState]:
        """Everything after the state that was current on subscribe."""
        return self.states[1:]

    @property
    def kinds(self) -> list[tuple[StateKind, str | None]]:
        return [(s.kind, s.query) for s in self.changes]

    async def wait_for(self, predicate: Callable[[ScreenState], bool], timeout: float = 1.0) -> ScreenState:
        """Wait until a recorded state satisfies ``predicate``; returns it."""
        async with asyncio.timeout(timeout):
            while True:
                for state in self.states:
                    if predicate(state):
                        return state
                self._changed.clear()
                await self._changed.wait()

    async def settle(self, timeout: float = 1.0) -> ScreenState:
        """Wait for the next terminal state."""
        return await self.wait_for(lambda s: s.is_terminal, timeout)


@pytest.fixture
def make_recorder() -> Callable[[SearchStateController], StateRecorder]:
    return StateRecorder
