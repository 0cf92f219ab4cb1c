"""Tests for StateFlow, SharingScope, and observer-driven pipeline lifetime."""

from __future__ import annotations

import asyncio

import pytest

from typeahead.foundation.testing import ScriptedLookup
from typeahead.runtime.concurrency import SharingScope, SharingStarted, StateFlow
from typeahead.search import Loading, Model, SearchStateController, Success, Typing

DEBOUNCE = 0.05
KOTLIN = [Model(id="1", title="Kotlin")]


# ─────────────────────────────────────────────────────────────────────────────
# StateFlow
# ─────────────────────────────────────────────────────────────────────────────


class TestStateFlow:
    """Current value first, then each distinct change in order."""

    @pytest.mark.asyncio
    async def test_subscriber_sees_current_value_then_changes(self) -> None:
        flow = StateFlow(0)
        flow.emit(1)
        async with flow.subscribe() as sub:
            flow.emit(2)
            flow.emit(3)
            assert [await sub.__anext__() for _ in range(3)] == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_equal_values_are_conflated(self) -> None:
        flow = StateFlow("a")
        async with flow.subscribe() as sub:
            assert flow.emit("a") is False
            assert flow.emit("b") is True
            assert flow.emit("b") is False
            assert sub.next_nowait() == "a"
            assert sub.next_nowait() == "b"
            assert sub.next_nowait() is None

    @pytest.mark.asyncio
    async def test_subscribers_see_identical_order(self) -> None:
        flow = StateFlow(0)
        first, second = flow.subscribe(), flow.subscribe()
        async with first, second:
            for value in range(1, 6):
                flow.emit(value)
            flow.close()
            assert [v async for v in first] == [v async for v in second] == list(range(6))

    @pytest.mark.asyncio
    async def test_close_ends_iteration_and_rejects_emit(self) -> None:
        flow = StateFlow(0)
        async with flow.subscribe() as sub:
            flow.close()
            assert [v async for v in sub] == [0]
            assert not sub.active
        assert flow.subscription_count == 0
        with pytest.raises(RuntimeError, match="closed"):
            flow.emit(1)

    @pytest.mark.asyncio
    async def test_subscription_registers_lazily(self) -> None:
        flow = StateFlow(0)
        sub = flow.subscribe()
        assert flow.subscription_count == 0
        assert sub.next_nowait() == 0
        assert flow.subscription_count == 1
        await sub.aclose()
        assert flow.subscription_count == 0


# ─────────────────────────────────────────────────────────────────────────────
# SharingScope
# ─────────────────────────────────────────────────────────────────────────────


class TestSharingScope:
    """Reference counting with a grace period before teardown."""

    @staticmethod
    def _scope(started: SharingStarted, grace: float, events: list[str]) -> SharingScope:
        return SharingScope(
            started,
            grace,
            on_start=lambda: events.append("start"),
            on_stop=lambda: events.append("stop"),
        )

    @pytest.mark.asyncio
    async def test_starts_on_first_subscriber(self) -> None:
        events: list[str] = []
        scope = self._scope(SharingStarted.WHILE_SUBSCRIBED, 0.05, events)
        scope.launch()
        assert not scope.active

        scope.acquire()
        scope.acquire()
        assert scope.active
        assert scope.subscribers == 2
        assert events == ["start"]

    @pytest.mark.asyncio
    async def test_stops_after_grace_period(self) -> None:
        events: list[str] = []
        scope = self._scope(SharingStarted.WHILE_SUBSCRIBED, 0.05, events)
        scope.acquire()
        scope.release()

        assert scope.active
        assert scope.stop_pending
        await asyncio.sleep(0.1)
        assert not scope.active
        assert not scope.stop_pending
        assert events == ["start", "stop"]

    @pytest.mark.asyncio
    async def test_returning_within_grace_keeps_running(self) -> None:
        events: list[str] = []
        scope = self._scope(SharingStarted.WHILE_SUBSCRIBED, 0.1, events)
        scope.acquire()
        scope.release()
        await asyncio.sleep(0.02)
        scope.acquire()
        await asyncio.sleep(0.15)

        assert scope.active
        assert events == ["start"]

    def test_zero_grace_stops_immediately(self) -> None:
        events: list[str] = []
        scope = self._scope(SharingStarted.WHILE_SUBSCRIBED, 0, events)
        scope.acquire()
        scope.release()
        assert events == ["start", "stop"]

    def test_eagerly_ignores_subscribers(self) -> None:
        events: list[str] = []
        scope = self._scope(SharingStarted.EAGERLY, 0, events)
        scope.launch()
        scope.acquire()
        scope.release()
        assert scope.active
        assert events == ["start"]

    def test_close_is_final(self) -> None:
        events: list[str] = []
        scope = self._scope(SharingStarted.WHILE_SUBSCRIBED, 0, events)
        scope.close()
        scope.acquire()
        assert not scope.active
        assert events == []

    def test_negative_grace_rejected(self) -> None:
        with pytest.raises(ValueError, match="grace_period"):
            SharingScope(grace_period=-1)


# ─────────────────────────────────────────────────────────────────────────────
# Controller under sharing policies
# ─────────────────────────────────────────────────────────────────────────────


class TestObservedPipelines:
    """Lookups run while someone is watching."""

    @pytest.mark.asyncio
    async def test_lookup_waits_for_an_observer(self, make_recorder) -> None:
        lookup = ScriptedLookup({"k": KOTLIN})
        async with SearchStateController(lookup, debounce=DEBOUNCE, grace_period=0.05) as controller:
            controller.on_text_changed("k")
            assert controller.current_state == Typing(query="k")
            await asyncio.sleep(DEBOUNCE * 3)
            lookup.assert_not_called()

            async with make_recorder(controller) as rec:
                state = await rec.settle()

        assert rec.states[0] == Typing(query="k")
        assert state == Success(query="k", items=KOTLIN)

    @pytest.mark.asyncio
    async def test_deferred_resubmit_skips_debounce(self, make_recorder) -> None:
        lookup = ScriptedLookup({"k": KOTLIN})
        async with SearchStateController(lookup, debounce=5.0, grace_period=0.05) as controller:
            controller.on_text_changed("k")
            assert controller.resubmit()
            lookup.assert_not_called()

            async with make_recorder(controller) as rec:
                await lookup.wait_called(timeout=1.0)
                state = await rec.settle()

        assert state == Success(query="k", items=KOTLIN)
        assert lookup.queries == ["k"]

    @pytest.mark.asyncio
    async def test_work_released_after_grace_and_resumed(self, make_recorder) -> None:
        lookup = ScriptedLookup({"k": KOTLIN})
        lookup.hold("k")
        async with SearchStateController(lookup, debounce=DEBOUNCE, grace_period=0.05) as controller:
            rec = make_recorder(controller)
            await rec.__aenter__()
            controller.on_text_changed("k")
            await lookup.wait_called()
            await rec.stop()

            assert controller.sharing.stop_pending
            await asyncio.sleep(0.15)
            assert lookup.cancelled == ["k"]
            assert not controller.is_busy
            assert controller.current_state == Loading(query="k")

            lookup.release("k")
            async with make_recorder(controller) as again:
                state = await again.settle()

        assert state == Success(query="k", items=KOTLIN)
        assert lookup.queries == ["k", "k"]

    @pytest.mark.asyncio
    async def test_observer_returning_within_grace_keeps_lookup(self, make_recorder) -> None:
        lookup = ScriptedLookup({"k": KOTLIN})
        lookup.hold("k")
        async with SearchStateController(lookup, debounce=DEBOUNCE, grace_period=0.5) as controller:
            rec = make_recorder(controller)
            await rec.__aenter__()
            controller.on_text_changed("k")
            await lookup.wait_called()
            await rec.stop()
            await asyncio.sleep(0.05)

            async with make_recorder(controller) as again:
                lookup.release("k")
                state = await again.settle()

        assert state == Success(query="k", items=KOTLIN)
        assert lookup.cancelled == []
        assert lookup.call_count == 1

    @pytest.mark.asyncio
    async def test_eager_controller_runs_unobserved(self) -> None:
        lookup = ScriptedLookup({"k": KOTLIN})
        async with SearchStateController(lookup, debounce=DEBOUNCE, started=SharingStarted.EAGERLY) as controller:
            controller.on_text_changed("k")
            await lookup.wait_called()
            await asyncio.sleep(0.01)
            assert controller.current_state == Success(query="k", items=KOTLIN)

    @pytest.mark.asyncio
    async def test_idle_controller_has_nothing_to_resume(self, make_recorder) -> None:
        lookup = ScriptedLookup()
        async with SearchStateController(lookup, debounce=DEBOUNCE, grace_period=0) as controller:
            async with make_recorder(controller):
                pass
            async with make_recorder(controller) as rec:
                await asyncio.sleep(DEBOUNCE * 2)

        assert len(rec.states) == 1
        lookup.assert_not_called()
