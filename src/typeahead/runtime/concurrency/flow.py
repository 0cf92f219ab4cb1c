"""Hot observable state with reference-counted sharing.

Provides the pieces a reactive component needs to expose a single current
value to any number of observers:

    - StateFlow: holds the current value; every subscription first sees the
      current value, then each distinct change in emission order
    - Subscription: async iterator + async context manager over a StateFlow
    - SharingScope: counts subscriptions and decides when upstream work
      runs; with WHILE_SUBSCRIBED, work stops only after the last observer
      has been gone for a grace period
    - SharingStarted: EAGERLY or WHILE_SUBSCRIBED

Example:
    >>> scope = SharingScope(SharingStarted.WHILE_SUBSCRIBED, grace_period=5.0,
    ...                      on_start=resume_work, on_stop=pause_work)
    >>> flow = StateFlow(Idle(), sharing=scope)
    >>> async with flow.subscribe() as states:
    ...     async for state in states:
    ...         render(state)
"""

from __future__ import annotations

import asyncio
from enum import StrEnum
from typing import TYPE_CHECKING, Callable, Generic, TypeVar

from typeahead.runtime.observability.logging import BoundLogger, get_logger

if TYPE_CHECKING:
    from types import TracebackType

T = TypeVar("T")

_CLOSED = object()


class SharingStarted(StrEnum):
    """When upstream work is allowed to run."""
    EAGERLY = "eagerly"                    # From creation until close
    WHILE_SUBSCRIBED = "while_subscribed"  # While observed, plus grace period


class SharingScope:
    """Reference-counted activity switch with timer-delayed teardown.

    ``on_start`` fires when work should (re)start, ``on_stop`` when it
    should be released. Both run synchronously on the event loop thread.
    """

    __slots__ = ("_started", "_grace", "_on_start", "_on_stop", "_count", "_active", "_timer", "_closed", "_log")

    def __init__(
        self,
        started: SharingStarted = SharingStarted.WHILE_SUBSCRIBED,
        grace_period: float = 5.0,
        *,
        on_start: Callable[[], None] | None = None,
        on_stop: Callable[[], None] | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        if grace_period < 0:
            raise ValueError(f"grace_period must be >= 0, got {grace_period}")
        self._started = SharingStarted(started)
        self._grace = grace_period
        self._on_start = on_start
        self._on_stop = on_stop
        self._count = 0
        self._active = False
        self._timer: asyncio.TimerHandle | None = None
        self._closed = False
        self._log = logger or get_logger("typeahead.sharing")

    @property
    def started(self) -> SharingStarted:
        return self._started

    @property
    def grace_period(self) -> float:
        return self._grace

    @property
    def active(self) -> bool:
        """Whether upstream work may run right now."""
        return self._active

    @property
    def subscribers(self) -> int:
        return self._count

    @property
    def stop_pending(self) -> bool:
        """Whether the grace timer is counting down."""
        return self._timer is not None

    def launch(self) -> None:
        """Activate immediately under EAGERLY; no-op otherwise."""
        if self._started is SharingStarted.EAGERLY:
            self._activate()

    def acquire(self) -> None:
        """A subscription opened."""
        if self._closed:
            return
        self._count += 1
        self._cancel_timer()
        self._activate()

    def release(self) -> None:
        """A subscription closed."""
        if self._closed or self._count == 0:
            return
        self._count -= 1
        if self._count or self._started is SharingStarted.EAGERLY:
            return
        if self._grace == 0:
            self._deactivate()
            return
        self._log.debug("last subscriber left", grace_period=self._grace)
        self._timer = asyncio.get_running_loop().call_later(self._grace, self._expire)

    def close(self) -> None:
        """Stop for good; later acquire/release calls are ignored."""
        self._cancel_timer()
        self._closed = True
        self._active = False

    def _expire(self) -> None:
        self._timer = None
        if self._count == 0:
            self._deactivate()

    def _activate(self) -> None:
        if self._active or self._closed:
            return
        self._active = True
        self._log.debug("sharing started", subscribers=self._count)
        if self._on_start is not None:
            self._on_start()

    def _deactivate(self) -> None:
        if not self._active:
            return
        self._active = False
        self._log.debug("sharing stopped")
        if self._on_stop is not None:
            self._on_stop()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None


class StateFlow(Generic[T]):
    """Hot holder of a single current value.

    ``emit`` is synchronous: the value becomes current and is queued to every
    open subscription before it returns, so observers see changes in exactly
    the order they were emitted. Consecutive equal values are conflated.
    """

    __slots__ = ("_value", "_subscriptions", "_sharing", "_closed")

    def __init__(self, initial: T, *, sharing: SharingScope | None = None) -> None:
        self._value = initial
        self._subscriptions: list[Subscription[T]] = []
        self._sharing = sharing
        self._closed = False

    @property
    def value(self) -> T:
        return self._value

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, value: T) -> bool:
        """Make ``value`` current. Returns False when it equals the current value."""
        if self._closed:
            raise RuntimeError("StateFlow is closed")
        if value == self._value:
            return False
        self._value = value
        for sub in self._subscriptions:
            sub._push(value)
        return True

    def subscribe(self) -> Subscription[T]:
        """New subscription; it registers on enter (or first iteration)."""
        return Subscription(self)

    def close(self) -> None:
        """End every subscription; iteration stops after already-queued values."""
        if self._closed:
            return
        self._closed = True
        for sub in list(self._subscriptions):
            sub._push(_CLOSED)  # type: ignore[arg-type]
            self._detach(sub)

    def _attach(self, sub: Subscription[T]) -> None:
        self._subscriptions.append(sub)
        sub._push(self._value)
        if self._sharing is not None:
            self._sharing.acquire()

    def _detach(self, sub: Subscription[T]) -> None:
        if sub in self._subscriptions:
            self._subscriptions.remove(sub)
            if self._sharing is not None:
                self._sharing.release()


class Subscription(Generic[T]):
    """One observer's view of a StateFlow.

    Use as ``async with flow.subscribe() as states: async for s in states``
    so the subscription is released deterministically. ``aclose()`` does the
    same for manual use.
    """

    __slots__ = ("_flow", "_queue", "_attached", "_finished")

    def __init__(self, flow: StateFlow[T]) -> None:
        self._flow = flow
        self._queue: asyncio.Queue[T] = asyncio.Queue()
        self._attached = False
        self._finished = False

    @property
    def active(self) -> bool:
        return self._attached and not self._finished

    def _push(self, value: T) -> None:
        self._queue.put_nowait(value)

    def _ensure_attached(self) -> None:
        if self._attached or self._finished:
            return
        if self._flow.closed:
            self._finished = True
            return
        self._attached = True
        self._flow._attach(self)

    async def __aenter__(self) -> Subscription[T]:
        self._ensure_attached()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        self._ensure_attached()
        if self._finished and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            self._finished = True
            raise StopAsyncIteration
        return item

    def next_nowait(self) -> T | None:
        """Next queued value without waiting, or None when nothing is queued."""
        self._ensure_attached()
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        if item is _CLOSED:
            self._finished = True
            return None
        return item

    async def aclose(self) -> None:
        if self._attached:
            self._flow._detach(self)
        self._finished = True
