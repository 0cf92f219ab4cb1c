"""Structured concurrency primitives for the search runtime.

Key Components:
    - TaskGroup: Structured task management with a per-group FailurePolicy
    - Wait strategies: fan_out, gather_settled, race
    - StateFlow: Hot observable value with ordered subscriptions
    - SharingScope: Reference-counted start/stop with grace-period teardown

Design Philosophy:
    - Structured concurrency: Tasks don't outlive their scope
    - Explicit failure domains: propagate or isolate, chosen per fan-out point
    - Cancellation-safe: Cancellation is never reported as a failure
    - Pure asyncio (Python 3.11+)

Example:
    >>> from typeahead.runtime.concurrency import FailurePolicy, TaskGroup, fan_out, race
    >>>
    >>> async with TaskGroup(FailurePolicy.ISOLATE) as tg:
    ...     tg.spawn(fetch_models("kot"))
    ...     tg.spawn(fetch_models("java"))
    >>>
    >>> result = await race(replica_a("kot"), replica_b("kot"))
"""

from __future__ import annotations

# Task management
from .task import (
    FailurePolicy,
    TaskGroup,
    TaskHandle,
    TaskState,
    cancel_and_wait,
    checkpoint,
    spawn,
)

# Wait strategies
from .wait import (
    Settled,
    SettledStatus,
    fan_out,
    gather_settled,
    race,
)

# Observable state
from .flow import (
    SharingScope,
    SharingStarted,
    StateFlow,
    Subscription,
)

__all__ = [
    # Task management
    "FailurePolicy",
    "TaskGroup",
    "TaskHandle",
    "TaskState",
    "cancel_and_wait",
    "checkpoint",
    "spawn",
    # Wait strategies
    "Settled",
    "SettledStatus",
    "fan_out",
    "gather_settled",
    "race",
    # Observable state
    "SharingScope",
    "SharingStarted",
    "StateFlow",
    "Subscription",
]
