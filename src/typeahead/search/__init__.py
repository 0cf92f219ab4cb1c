"""Search screen state: models, screen states, lookups and the controller."""

from .controller import SearchStateController
from .lookup import FetchModels, RawModel, merge_lookups
from .state import (
    TERMINAL_KINDS,
    Empty,
    Error,
    Idle,
    Loading,
    Model,
    ScreenState,
    StateKind,
    Success,
    Typing,
    coerce_models,
    dump_state,
    parse_state,
    query_of,
    settle,
)

__all__ = [
    # Controller
    "SearchStateController",
    # Lookups
    "FetchModels", "RawModel", "merge_lookups",
    # States
    "ScreenState", "StateKind", "TERMINAL_KINDS",
    "Idle", "Typing", "Loading", "Success", "Empty", "Error",
    "Model",
    # Helpers
    "coerce_models", "settle", "query_of", "dump_state", "parse_state",
]
