"""Waiting on several lookups at once.

``fan_out`` starts everything and combines per FailurePolicy, ``gather_settled``
collects an outcome for each operation without raising, and ``race`` keeps the
first to finish. Race losers are cancelled; if one fails before the
cancellation lands, that failure is logged rather than raised.

Example:
    >>> # Ask two backends, keep whatever succeeds
    >>> settled = await fan_out(
    ...     primary("kot"),
    ...     mirror("kot"),
    ...     policy=FailurePolicy.ISOLATE,
    ... )

    >>> # Fastest replica wins
    >>> models = await race(replica_a("kot"), replica_b("kot"), timeout=2.0)
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, Literal, TypeVar, overload

from typeahead.runtime.observability.logging import BoundLogger, get_logger

from .task import FailurePolicy, TaskGroup, awaitable_name

T = TypeVar("T")


class SettledStatus(StrEnum):
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


@dataclass(slots=True, frozen=True)
class Settled(Generic[T]):
    """Outcome of one operation in a batch: a value or the exception it raised."""

    status: SettledStatus
    value: T | None = None
    error: BaseException | None = None

    @classmethod
    def of(cls, outcome: T | BaseException) -> Settled[T]:
        if isinstance(outcome, BaseException):
            return cls(SettledStatus.REJECTED, error=outcome)
        return cls(SettledStatus.FULFILLED, value=outcome)

    @property
    def is_fulfilled(self) -> bool:
        return self.status is SettledStatus.FULFILLED

    @property
    def is_rejected(self) -> bool:
        return not self.is_fulfilled

    def unwrap(self) -> T:
        """The value; a rejected outcome re-raises its exception."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        return default if self.is_rejected else self.value  # type: ignore[return-value]


# ─────────────────────────────────────────────────────────────────────────────
# Fan-out / fan-in
# ─────────────────────────────────────────────────────────────────────────────

async def gather_settled(*coros: Awaitable[T]) -> list[Settled[T]]:
    """Run everything to completion and report each outcome in input order.

    Failures of the operations are captured; cancelling the caller is not.
    """
    outcomes = await asyncio.gather(*coros, return_exceptions=True)
    return [Settled.of(o) for o in outcomes]


@overload
async def fan_out(
    *coros: Awaitable[T],
    policy: Literal[FailurePolicy.PROPAGATE] = ...,
    logger: BoundLogger | None = None,
) -> list[T]: ...


@overload
async def fan_out(
    *coros: Awaitable[T],
    policy: Literal[FailurePolicy.ISOLATE],
    logger: BoundLogger | None = None,
) -> list[Settled[T]]: ...


async def fan_out(
    *coros: Awaitable[T],
    policy: FailurePolicy = FailurePolicy.PROPAGATE,
    logger: BoundLogger | None = None,
) -> list[T] | list[Settled[T]]:
    """Start every operation concurrently and combine once all complete.

    Args:
        *coros: Operations to run
        policy: PROPAGATE returns plain values in input order and raises the
            first failure after cancelling siblings; ISOLATE returns a
            Settled per operation and logs each failure
        logger: Logger for contained failures

    Example:
        >>> a, b = await fan_out(fetch_user(1), fetch_orders(1))
    """
    if not coros:
        return []

    async def _run(aw: Awaitable[T]) -> T:
        return await aw

    policy = FailurePolicy(policy)
    async with TaskGroup(policy, name="fan_out", logger=logger) as tg:
        handles = [tg.spawn(_run(c), name=f"fan_out[{i}]") for i, c in enumerate(coros)]

    if policy is FailurePolicy.PROPAGATE:
        return [h.result() for h in handles]
    return [Settled.of(h.exception() or h.result()) for h in handles]


# ─────────────────────────────────────────────────────────────────────────────
# Race
# ─────────────────────────────────────────────────────────────────────────────

async def race(
    *coros: Awaitable[T],
    timeout: float | None = None,
    logger: BoundLogger | None = None,
) -> T:
    """Return the outcome of whichever operation finishes first.

    The rest are cancelled and awaited before returning. A loser
    that fails before its cancellation lands is logged and never raised;
    only the winner's outcome reaches the caller. Among operations that
    complete in the same loop step a success beats a failure.

    Raises:
        ValueError: Called with nothing to race
        TimeoutError: Nothing finished within ``timeout``
        Exception: Whatever the winner raised
    """
    if not coros:
        raise ValueError("race() needs at least one awaitable")

    log = logger or get_logger("typeahead.race")
    names = [awaitable_name(c) for c in coros]
    tasks = list(map(asyncio.ensure_future, coros))
    index = {id(t): i for i, t in enumerate(tasks)}

    try:
        done, _ = await asyncio.wait(tasks, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if not done:
            raise TimeoutError(f"race() timed out after {timeout}s")

        ordered = sorted(done, key=lambda t: index[id(t)])
        winner = next((t for t in ordered if not t.cancelled() and t.exception() is None), ordered[0])
    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        outcomes = await asyncio.gather(*tasks, return_exceptions=True)

    for task, outcome in zip(tasks, outcomes):
        if task is winner or isinstance(outcome, asyncio.CancelledError):
            continue
        if isinstance(outcome, BaseException):
            log.warning("race loser failed", task=names[index[id(task)]], error=repr(outcome))

    return winner.result()
