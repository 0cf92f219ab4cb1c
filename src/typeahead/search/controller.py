"""Debounced search state machine.

SearchStateController turns keystrokes into a single observable ScreenState:

    on_text_changed("ko")  ->  Typing("ko")
      ... debounce window without newer input ...
    Loading("ko")  ->  fetch_models("ko")  ->  Success | Empty | Error

Newer input cancels whatever the previous input was doing (debounce wait or
lookup) and discards its eventual result. Every pipeline run carries a run
token; a state is emitted only while its token is still the current one, and
the check and the emission happen in the same synchronous step, so a
superseded run can never reach an observer even when its lookup ignores
cancellation.

Pipelines run while the state is observed. With the default
WHILE_SUBSCRIBED sharing, work is released once the last observer has been
gone for the grace period and resumed when an observer returns; the last
emitted state is kept throughout.

Example:
    >>> controller = SearchStateController(api.search_models, debounce=0.3)
    >>> async with controller, controller.observe() as states:
    ...     controller.on_text_changed("kot")
    ...     async for state in states:
    ...         render(state)
"""

from __future__ import annotations

import asyncio
import itertools
import time
from typing import TYPE_CHECKING

from pydantic import ValidationError

from typeahead.foundation.config import SearchSettings, get_settings
from typeahead.foundation.errors import ErrorCode, LookupFailure
from typeahead.runtime.concurrency import (
    SharingScope,
    SharingStarted,
    StateFlow,
    Subscription,
    TaskHandle,
    cancel_and_wait,
    spawn,
)
from typeahead.runtime.observability.logging import BoundLogger, get_logger, log_context

from .state import Error, Idle, Loading, ScreenState, Typing, coerce_models, settle

if TYPE_CHECKING:
    from types import TracebackType

    from .lookup import FetchModels


class SearchStateController:
    """Single search screen's state: input in, ScreenState out.

    Args:
        fetch_models: Lookup collaborator, called with the trimmed query
        debounce: Quiet period in seconds before a lookup (settings default 0.3)
        grace_period: Seconds work continues after the last observer leaves
            (settings default 5.0)
        started: SharingStarted policy (settings default WHILE_SUBSCRIBED)
        settings: SearchSettings to draw defaults from
        logger: Base logger; the controller binds its name to it
        name: Label used in log context

    All methods must be called on the event loop thread that runs the
    controller, except ``on_text_changed_threadsafe``.
    """

    def __init__(
        self,
        fetch_models: FetchModels,
        *,
        debounce: float | None = None,
        grace_period: float | None = None,
        started: SharingStarted | str | None = None,
        settings: SearchSettings | None = None,
        logger: BoundLogger | None = None,
        name: str | None = None,
    ) -> None:
        cfg = settings or get_settings().search
        self._fetch = fetch_models
        self._debounce = cfg.debounce if debounce is None else debounce
        if self._debounce < 0:
            raise ValueError(f"debounce must be >= 0, got {self._debounce}")
        self._name = name or f"search-{id(self):x}"
        self._log = (logger or get_logger("typeahead.search")).bind(controller=self._name)

        self._committed = ""
        self._generation = 0
        self._runs = itertools.count(1)
        self._current_run: int | None = None
        self._pipeline: TaskHandle[None] | None = None
        self._owed = False  # pipeline work outstanding for the committed text
        self._owed_debounce = True
        self._closed = False
        self._loop: asyncio.AbstractEventLoop | None = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass

        self._sharing = SharingScope(
            SharingStarted(started or cfg.started),
            cfg.grace_period if grace_period is None else grace_period,
            on_start=self._on_sharing_start,
            on_stop=self._on_sharing_stop,
            logger=self._log,
        )
        self._flow: StateFlow[ScreenState] = StateFlow(Idle(), sharing=self._sharing)
        self._sharing.launch()

    # ─────────────────────────────────────────────────────────────────────
    # Observation
    # ─────────────────────────────────────────────────────────────────────

    @property
    def name(self) -> str:
        return self._name

    @property
    def current_state(self) -> ScreenState:
        """Latest emitted state; Idle until the first non-blank input."""
        return self._flow.value

    @property
    def committed_query(self) -> str:
        """Latest committed input text (untrimmed)."""
        return self._committed

    @property
    def debounce(self) -> float:
        return self._debounce

    @property
    def sharing(self) -> SharingScope:
        return self._sharing

    @property
    def is_busy(self) -> bool:
        """Whether a debounce wait or lookup is running."""
        return self._pipeline is not None and not self._pipeline.done

    @property
    def closed(self) -> bool:
        return self._closed

    def snapshot(self) -> tuple[str, ScreenState]:
        """Committed query and current state, read together."""
        return self._committed, self._flow.value

    def observe(self) -> Subscription[ScreenState]:
        """Subscribe to states: the current one first, then every change in order."""
        return self._flow.subscribe()

    # ─────────────────────────────────────────────────────────────────────
    # Input
    # ─────────────────────────────────────────────────────────────────────

    def on_text_changed(self, text: str) -> None:
        """Record ``text`` as the latest input. Never blocks.

        Re-submitting the committed text is a no-op. Blank text settles to
        Idle at once; anything else shows Typing and schedules a lookup.
        """
        if self._closed:
            raise RuntimeError(f"{self._name} is closed")
        if text == self._committed:
            return
        self._bind_loop()
        self._committed = text
        self._generation += 1
        self._cancel_pipeline("superseded")

        if not text.strip():
            self._owed = False
            self._emit(Idle())
            return
        self._emit(Typing(query=text))
        self._schedule(debounce=True)

    def on_text_changed_threadsafe(self, text: str) -> None:
        """``on_text_changed`` for callers on other threads."""
        if self._closed:
            raise RuntimeError(f"{self._name} is closed")
        if self._loop is None:
            raise RuntimeError(f"{self._name} is not bound to an event loop yet")
        self._loop.call_soon_threadsafe(self.on_text_changed, text)

    def resubmit(self) -> bool:
        """Look the committed query up again right away, skipping the debounce.

        The way back out of Error without editing the text. Returns False
        when there is nothing to look up. While nobody observes, the lookup
        waits for the first observer and then starts without a debounce.
        """
        if self._closed:
            raise RuntimeError(f"{self._name} is closed")
        if not self._committed.strip():
            return False
        self._bind_loop()
        self._generation += 1
        self._cancel_pipeline("resubmitted")
        self._schedule(debounce=False)
        return True

    # ─────────────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────────────

    async def aclose(self) -> None:
        """Cancel outstanding work and end every subscription."""
        if self._closed:
            return
        self._closed = True
        self._sharing.close()
        handle = self._pipeline
        self._cancel_pipeline("closed")
        self._flow.close()
        await cancel_and_wait(handle)
        self._log.debug("controller closed", state=self._flow.value.kind)

    async def __aenter__(self) -> SearchStateController:
        self._bind_loop()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ─────────────────────────────────────────────────────────────────────
    # Pipeline
    # ─────────────────────────────────────────────────────────────────────

    def _bind_loop(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

    def _emit(self, state: ScreenState) -> None:
        if self._flow.emit(state):
            self._log.debug("state emitted", kind=state.kind, query=state.query)

    def _emit_if_current(self, run: int, state: ScreenState) -> bool:
        if run != self._current_run or self._closed:
            return False
        self._emit(state)
        return True

    def _schedule(self, *, debounce: bool) -> None:
        if not self._sharing.active:
            self._owed = True
            self._owed_debounce = debounce
            self._log.debug("lookup deferred until observed", query=self._committed, debounce=debounce)
            return
        self._owed = False
        self._owed_debounce = debounce
        run = next(self._runs)
        self._current_run = run
        self._pipeline = spawn(
            self._run_pipeline(run, self._generation, self._committed, debounce),
            name=f"{self._name}-run-{run}",
        )

    def _cancel_pipeline(self, reason: str) -> None:
        self._current_run = None
        if self._pipeline is not None and not self._pipeline.done:
            self._pipeline.cancel(reason)
            self._log.debug("pipeline cancelled", reason=reason)
        self._pipeline = None

    def _on_sharing_start(self) -> None:
        if self._owed and not self._closed and self._committed.strip():
            self._log.debug("resuming pipeline", query=self._committed)
            self._schedule(debounce=self._owed_debounce)

    def _on_sharing_stop(self) -> None:
        if self.is_busy:
            self._cancel_pipeline("unobserved")
            self._owed = True

    async def _run_pipeline(self, run: int, generation: int, text: str, debounce: bool) -> None:
        log = self._log.bind(run=run, generation=generation, query=text)
        if debounce and self._debounce:
            await asyncio.sleep(self._debounce)
        if not self._emit_if_current(run, Loading(query=text)):
            return

        query = text.strip()
        start = time.perf_counter()
        with log_context(search_query=query, search_generation=generation):
            try:
                raw = await self._fetch(query)
            except asyncio.CancelledError:
                log.debug("lookup cancelled", duration_ms=_elapsed_ms(start))
                raise
            except Exception as exc:
                self._fail(run, log, LookupFailure.from_exception(text, exc), exc, start)
                return

            try:
                items = coerce_models(raw)
            except (ValidationError, TypeError) as exc:
                failure = LookupFailure(
                    query=text,
                    message="lookup returned a malformed result",
                    code=ErrorCode.INVALID_RESPONSE,
                    recoverable=False,
                    exception_type=type(exc).__name__,
                )
                self._fail(run, log, failure, exc, start)
                return

        state = settle(text, items)
        if self._emit_if_current(run, state):
            log.info("lookup settled", kind=state.kind, count=len(items), duration_ms=_elapsed_ms(start))
        else:
            log.debug("superseded result discarded", count=len(items))

    def _fail(self, run: int, log: BoundLogger, failure: LookupFailure, exc: Exception, start: float) -> None:
        if self._emit_if_current(run, Error(query=failure.query, failure=failure)):
            log.warning("lookup failed", code=str(failure.code), error=failure.message,
                        cause=repr(exc), duration_ms=_elapsed_ms(start))
        else:
            log.debug("superseded failure discarded", error=repr(exc))


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
