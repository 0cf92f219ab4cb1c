"""Unified error handling for typeahead.

- ErrorCode: Standard error codes for lookup failures
- LookupFailure/LookupException: Structured failure value and its raisable wrapper
- classify_exception: exception class name -> ErrorCode mapping
- Json* aliases: Types for structured log and error payloads
"""

from .errors import ErrorCode, LookupException, LookupFailure, classify_exception
from .types import JsonDict, JsonMapping, JsonPrimitive, JsonValue

__all__ = [
    # Core errors
    "ErrorCode", "LookupFailure", "LookupException", "classify_exception",
    # Payload types
    "JsonDict", "JsonMapping", "JsonPrimitive", "JsonValue",
]
