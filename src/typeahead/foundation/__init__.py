"""Foundation - Core building blocks for typeahead.

Contains: error handling, configuration, testing helpers.
"""

from __future__ import annotations

__all__ = [
    # Errors
    "ErrorCode", "LookupFailure", "LookupException", "classify_exception",
    # Config
    "TypeaheadSettings", "SearchSettings", "LoggingSettings", "get_settings", "clear_settings_cache",
    # Testing
    "ScriptedLookup", "LookupCall",
]


def __getattr__(name: str):
    """Lazy imports to avoid circular dependencies."""
    if name in ("ErrorCode", "LookupFailure", "LookupException", "classify_exception"):
        from . import errors
        return getattr(errors, name)

    if name in ("TypeaheadSettings", "SearchSettings", "LoggingSettings", "get_settings", "clear_settings_cache"):
        from . import config
        return getattr(config, name)

    if name in ("ScriptedLookup", "LookupCall"):
        from . import testing
        return getattr(testing, name)

    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
