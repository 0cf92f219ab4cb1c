"""Typeahead - debounced, cancellable search state for async UIs.

Turns a stream of keystrokes and an async lookup into one observable
screen state: Idle, Typing, Loading, Success, Empty or Error. Superseded
input cancels outstanding work and its results never reach observers.

Quick Start:
    >>> import asyncio
    >>> from typeahead import Model, SearchStateController
    >>>
    >>> async def fetch_models(query: str) -> list[Model]:
    ...     return [Model(id="1", title="Kotlin")] if "k" in query else []
    >>>
    >>> async def main() -> None:
    ...     async with SearchStateController(fetch_models) as search:
    ...         async with search.observe() as states:
    ...             search.on_text_changed("k")
    ...             async for state in states:
    ...                 print(state)
    ...                 if state.is_terminal:
    ...                     break
    >>>
    >>> asyncio.run(main())

Failure domains for fan-out:
    >>> from typeahead import FailurePolicy, merge_lookups
    >>> fetch = merge_lookups(primary, mirror, policy=FailurePolicy.ISOLATE)

Configuration (environment):
    TYPEAHEAD_SEARCH_DEBOUNCE=0.3
    TYPEAHEAD_SEARCH_GRACE_PERIOD=5
    TYPEAHEAD_LOG_FORMAT=json
"""

from __future__ import annotations

from .foundation.config import LoggingSettings, SearchSettings, TypeaheadSettings, clear_settings_cache, get_settings
from .foundation.errors import ErrorCode, LookupException, LookupFailure, classify_exception
from .runtime.concurrency import (
    FailurePolicy,
    Settled,
    SharingScope,
    SharingStarted,
    StateFlow,
    Subscription,
    TaskGroup,
    TaskHandle,
    TaskState,
    fan_out,
    gather_settled,
    race,
)
from .runtime.observability import configure_from_settings, configure_logging, get_logger, log_context
from .search import (
    Empty,
    Error,
    FetchModels,
    Idle,
    Loading,
    Model,
    ScreenState,
    SearchStateController,
    StateKind,
    Success,
    Typing,
    dump_state,
    merge_lookups,
    parse_state,
)

__version__ = "0.1.0"

__all__ = [
    # Search
    "SearchStateController", "FetchModels", "merge_lookups",
    "ScreenState", "StateKind", "Idle", "Typing", "Loading", "Success", "Empty", "Error", "Model",
    "dump_state", "parse_state",
    # Errors
    "ErrorCode", "LookupFailure", "LookupException", "classify_exception",
    # Concurrency
    "FailurePolicy", "TaskGroup", "TaskHandle", "TaskState", "fan_out", "gather_settled", "race", "Settled",
    "StateFlow", "Subscription", "SharingScope", "SharingStarted",
    # Config
    "TypeaheadSettings", "SearchSettings", "LoggingSettings", "get_settings", "clear_settings_cache",
    # Logging
    "configure_logging", "configure_from_settings", "get_logger", "log_context",
]
