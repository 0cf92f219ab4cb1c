"""Lookup collaborators.

A lookup is any coroutine function ``fetch(query) -> sequence of models``.
It may be slow, may fail, and must tolerate being cancelled at any await.

``merge_lookups`` fans one query out to several lookups and fans the
results back in under an explicit FailurePolicy.
"""

from __future__ import annotations

from collections.abc import Awaitable, Iterable, Mapping, Sequence
from typing import Protocol, Union, runtime_checkable

from typeahead.runtime.concurrency import FailurePolicy, fan_out
from typeahead.runtime.observability.logging import BoundLogger, get_logger

from .state import Model, coerce_models

RawModel = Union[Model, Mapping[str, object]]


@runtime_checkable
class FetchModels(Protocol):
    """Injected lookup: ``await fetch(query)`` returns models for ``query``."""

    def __call__(self, query: str, /) -> Awaitable[Sequence[RawModel]]: ...


def merge_lookups(
    *lookups: FetchModels,
    policy: FailurePolicy = FailurePolicy.ISOLATE,
    logger: BoundLogger | None = None,
) -> FetchModels:
    """Combine several lookups into one.

    Every lookup receives the query concurrently. Results are concatenated
    in lookup order and de-duplicated by ``Model.id`` (first wins).

    Under ISOLATE a failing lookup is logged and skipped; the combined
    lookup fails only when all of them fail, with the first failure. Under
    PROPAGATE the first failure cancels the others and fails the lookup.
    """
    if not lookups:
        raise ValueError("merge_lookups() requires at least one lookup")
    policy = FailurePolicy(policy)
    log = (logger or get_logger("typeahead.lookup")).bind(sources=len(lookups), policy=str(policy))

    async def merged(query: str) -> list[Model]:
        async def one(lookup: FetchModels) -> tuple[Model, ...]:
            return coerce_models(await lookup(query))

        if policy is FailurePolicy.PROPAGATE:
            return _dedupe(await fan_out(*(one(lookup) for lookup in lookups), logger=log))

        settled = await fan_out(*(one(lookup) for lookup in lookups), policy=policy, logger=log)
        good = [s.value for s in settled if s.is_fulfilled]
        if not good:
            log.warning("all sources failed", query=query)
            settled[0].unwrap()
        if len(good) < len(settled):
            log.info("partial results", query=query, failed=len(settled) - len(good))
        return _dedupe(good)

    merged.__qualname__ = f"merge_lookups[{', '.join(_name(lookup) for lookup in lookups)}]"
    return merged


def _dedupe(batches: Iterable[tuple[Model, ...]]) -> list[Model]:
    seen: set[str] = set()
    out: list[Model] = []
    for batch in batches:
        for model in batch:
            if model.id not in seen:
                seen.add(model.id)
                out.append(model)
    return out


def _name(lookup: object) -> str:
    return getattr(lookup, "__qualname__", None) or type(lookup).__name__
