"""Tasks with an explicit failure domain.

TaskGroup runs sibling tasks whose lifetime is bounded by an ``async with``
block. Each group picks what a failing child does to its siblings:

    - FailurePolicy.PROPAGATE: first failure cancels siblings and is re-raised
    - FailurePolicy.ISOLATE: failures are contained to their branch and logged

Standalone ``spawn`` returns the same TaskHandle for work owned by a single
component, such as one search pipeline run; ``cancel_and_wait`` retires it.

Example:
    >>> async with TaskGroup() as tg:
    ...     kotlin = tg.spawn(fetch_models("kot"))
    ...     java = tg.spawn(fetch_models("java"))
    >>> kotlin.result(), java.result()

    >>> # Supervisor-style: one failing branch does not stop the others
    >>> async with TaskGroup(FailurePolicy.ISOLATE) as tg:
    ...     ok = tg.spawn(fetch_models("kot"))
    ...     bad = tg.spawn(flaky_lookup("kot"))
    >>> ok.result(), bad.exception()
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Coroutine
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from typeahead.runtime.observability.logging import BoundLogger, get_logger

if TYPE_CHECKING:
    from types import TracebackType

T = TypeVar("T")


class FailurePolicy(StrEnum):
    """What a failing branch does to its siblings."""
    PROPAGATE = "propagate"  # Cancel siblings, re-raise
    ISOLATE = "isolate"      # Contain to the branch, log it


class TaskState(StrEnum):
    """Where a spawned task is in its life."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True, eq=False)
class TaskHandle(Generic[T]):
    """A spawned task, seen from its owner.

    Reports state and outcome and allows cancellation. Awaiting the
    underlying asyncio.Task is left to ``wait`` and ``cancel_and_wait``.
    """

    task: asyncio.Task[T] = field(repr=False)
    name: str = ""

    def __post_init__(self) -> None:
        self.name = self.name or self.task.get_name()

    @property
    def state(self) -> TaskState:
        if not self.task.done():
            return TaskState.RUNNING
        if self.task.cancelled():
            return TaskState.CANCELLED
        return TaskState.FAILED if self.task.exception() is not None else TaskState.COMPLETED

    @property
    def done(self) -> bool:
        return self.task.done()

    def result(self) -> T:
        """Outcome of a finished task: its value, or its exception re-raised.

        Raises asyncio.InvalidStateError while still running and
        asyncio.CancelledError if it was cancelled.
        """
        return self.task.result()

    def exception(self) -> BaseException | None:
        """The failure, or None when it succeeded, was cancelled or is still running."""
        if not self.task.done() or self.task.cancelled():
            return None
        return self.task.exception()

    def cancel(self, msg: str | None = None) -> bool:
        """Request cancellation; False if the task already finished."""
        return self.task.cancel(msg)

    async def wait(self) -> T:
        return await self.task


class TaskGroup:
    """Sibling tasks bounded by an ``async with`` block.

    Leaving the block waits for every child. Leaving it with an exception,
    the host being cancelled included, cancels all children under either
    policy.

    PROPAGATE: the first failing child cancels its siblings the moment it
    fails, and the failure is raised on exit. Children that fail before that
    cancellation lands are raised together as an ExceptionGroup.

    ISOLATE: each failure is logged, kept on its handle and in ``failures``,
    and nothing is raised.

    Example:
        >>> try:
        ...     async with TaskGroup() as tg:
        ...         tg.spawn(primary("kot"))
        ...         tg.spawn(mirror("kot"))
        ... except ExceptionGroup as eg:
        ...     print([type(e).__name__ for e in eg.exceptions])
    """

    __slots__ = ("_policy", "_log", "_handles", "_errors", "_failures", "_phase")

    def __init__(
        self,
        policy: FailurePolicy = FailurePolicy.PROPAGATE,
        *,
        name: str | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._policy = FailurePolicy(policy)
        self._log = (logger or get_logger("typeahead.tasks")).bind(group=name or "anonymous", policy=str(self._policy))
        self._handles: list[TaskHandle[object]] = []
        self._errors: list[BaseException] = []
        self._failures: list[BaseException] = []
        self._phase = "new"  # new -> open -> exiting

    @property
    def policy(self) -> FailurePolicy:
        return self._policy

    @property
    def tasks(self) -> list[TaskHandle[object]]:
        return list(self._handles)

    @property
    def failures(self) -> list[BaseException]:
        """Failures contained under ISOLATE, in completion order."""
        return list(self._failures)

    def spawn(
        self,
        coro: Coroutine[object, object, T],
        *,
        name: str | None = None,
    ) -> TaskHandle[T]:
        """Start ``coro`` as a child of this group.

        Raises:
            RuntimeError: Outside the ``async with`` block, or once it is exiting
        """
        if self._phase != "open":
            coro.close()
            where = "outside its context manager" if self._phase == "new" else "while it is exiting"
            raise RuntimeError(f"Cannot spawn into a TaskGroup {where}")

        handle: TaskHandle[T] = TaskHandle(asyncio.create_task(coro, name=name))
        self._handles.append(handle)  # type: ignore[arg-type]
        handle.task.add_done_callback(self._child_done)
        if self._errors and self._policy is FailurePolicy.PROPAGATE:
            handle.cancel()
        return handle

    def _child_done(self, task: asyncio.Task[object]) -> None:
        if task.cancelled() or (exc := task.exception()) is None:
            return
        if self._policy is FailurePolicy.ISOLATE:
            self._failures.append(exc)
            self._log.warning("task failed, isolated", task=task.get_name(), error=repr(exc))
            return
        self._errors.append(exc)
        self._log.debug("task failed, cancelling siblings", task=task.get_name(), error=repr(exc))
        self._cancel_children()

    def _cancel_children(self) -> None:
        for handle in self._handles:
            if not handle.done:
                handle.cancel()

    async def __aenter__(self) -> TaskGroup:
        self._phase = "open"
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> bool:
        self._phase = "exiting"
        if exc_val is not None:
            self._cancel_children()

        children = [h.task for h in self._handles]
        try:
            # Children may not spawn more, so one pass over the list is enough
            await asyncio.wait(children) if children else None
        except asyncio.CancelledError:
            self._cancel_children()
            await asyncio.gather(*children, return_exceptions=True)
            raise

        if not self._errors:
            return False
        errors = list(self._errors)
        if exc_val is not None and not isinstance(exc_val, asyncio.CancelledError):
            errors.insert(0, exc_val)
        if len(errors) == 1:
            raise errors[0]
        raise BaseExceptionGroup("TaskGroup errors", errors)


async def checkpoint() -> None:
    """Yield to the event loop so a pending cancellation can land."""
    await asyncio.sleep(0)


def spawn(
    coro: Coroutine[object, object, T],
    *,
    name: str | None = None,
) -> TaskHandle[T]:
    """Start a task outside any group.

    The caller owns the handle and must cancel or await it; the search
    controller keeps exactly one such handle per pipeline run.
    """
    return TaskHandle(asyncio.create_task(coro, name=name))


async def cancel_and_wait(handle: TaskHandle[object] | None, msg: str | None = None) -> None:
    """Cancel ``handle`` and wait until the task has actually finished."""
    if handle is None:
        return
    handle.cancel(msg)
    await asyncio.gather(handle.task, return_exceptions=True)


def awaitable_name(aw: Awaitable[object]) -> str:
    """Best-effort label for a coroutine or future, for log context."""
    if isinstance(aw, asyncio.Task):
        return aw.get_name()
    return getattr(aw, "__qualname__", None) or type(aw).__name__
