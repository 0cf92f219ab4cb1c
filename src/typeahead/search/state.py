"""Screen states of the search UI and the models a lookup returns.

ScreenState is a closed union of frozen Pydantic models discriminated by
``kind``; exactly one of them is current at a time:

    Idle -> Typing(q) -> Loading(q) -> Success(q, items) | Empty(q) | Error(q, failure)

States are plain values: equal when their fields are equal, safe to share
across tasks, and serializable with ``dump_state``/``parse_state``.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import Annotated, Literal, TypeAlias, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from typeahead.foundation.errors import LookupFailure


class StateKind(StrEnum):
    """Discriminator for ScreenState variants."""
    IDLE = "idle"
    TYPING = "typing"
    LOADING = "loading"
    SUCCESS = "success"
    EMPTY = "empty"
    ERROR = "error"


TERMINAL_KINDS: frozenset[StateKind] = frozenset({StateKind.SUCCESS, StateKind.EMPTY, StateKind.ERROR})


class Model(BaseModel):
    """A lookup hit: identity plus display title."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: Annotated[str, Field(min_length=1, description="Unique identity")]
    title: str = Field(description="Display string")


class _State(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def is_terminal(self) -> bool:
        """Whether this state settles a lookup (Success, Empty or Error)."""
        return self.kind in TERMINAL_KINDS  # type: ignore[attr-defined]


class Idle(_State):
    """No query text."""
    kind: Literal[StateKind.IDLE] = Field(default=StateKind.IDLE, repr=False)

    @property
    def query(self) -> None:
        return None


class Typing(_State):
    """Text present, lookup not triggered yet."""
    kind: Literal[StateKind.TYPING] = Field(default=StateKind.TYPING, repr=False)
    query: str


class Loading(_State):
    """Lookup in flight for ``query``."""
    kind: Literal[StateKind.LOADING] = Field(default=StateKind.LOADING, repr=False)
    query: str


class Success(_State):
    """Lookup for ``query`` returned at least one model."""
    kind: Literal[StateKind.SUCCESS] = Field(default=StateKind.SUCCESS, repr=False)
    query: str
    items: Annotated[tuple[Model, ...], Field(min_length=1)]


class Empty(_State):
    """Lookup for ``query`` returned nothing."""
    kind: Literal[StateKind.EMPTY] = Field(default=StateKind.EMPTY, repr=False)
    query: str


class Error(_State):
    """Lookup for ``query`` failed."""
    kind: Literal[StateKind.ERROR] = Field(default=StateKind.ERROR, repr=False)
    query: str
    failure: LookupFailure


ScreenState: TypeAlias = Annotated[
    Union[Idle, Typing, Loading, Success, Empty, Error],
    Field(discriminator="kind"),
]

_state_adapter: TypeAdapter[ScreenState] = TypeAdapter(ScreenState)
_models_adapter: TypeAdapter[tuple[Model, ...]] = TypeAdapter(tuple[Model, ...])


def query_of(state: ScreenState) -> str | None:
    """Query a state refers to (None for Idle)."""
    return state.query


def settle(query: str, items: tuple[Model, ...]) -> Success | Empty:
    """Terminal state for a completed lookup."""
    return Success(query=query, items=items) if items else Empty(query=query)


def coerce_models(raw: object) -> tuple[Model, ...]:
    """Validate a lookup result into models.

    Accepts any iterable of ``Model`` instances or ``{"id", "title"}``
    mappings; order is preserved. Raises pydantic.ValidationError otherwise.
    """
    if isinstance(raw, (str, bytes, Mapping)):
        # A single mapping or string is never a sequence of models
        return _models_adapter.validate_python(raw)
    return _models_adapter.validate_python(tuple(raw))  # type: ignore[call-overload]


def dump_state(state: ScreenState) -> str:
    """Serialize a state to JSON text."""
    return orjson.dumps(_state_adapter.dump_python(state, mode="json")).decode()


def parse_state(data: str | bytes | Mapping[str, object]) -> ScreenState:
    """Parse a state from JSON text or a plain mapping."""
    if isinstance(data, (str, bytes)):
        return _state_adapter.validate_python(orjson.loads(data))
    return _state_adapter.validate_python(dict(data))
