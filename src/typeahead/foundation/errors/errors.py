"""Standardized lookup failures.

Provides error codes and a structured failure value that the search state
machine embeds in its Error state. Uses Pydantic for validation and
serialization.
"""

from __future__ import annotations

from enum import StrEnum
from functools import lru_cache
from typing import Annotated, Self

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    field_validator,
)


class ErrorCode(StrEnum):
    """Why a lookup failed, as a stable string a UI can branch on."""
    RATE_LIMITED = "RATE_LIMITED"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_QUERY = "INVALID_QUERY"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    NOT_FOUND = "NOT_FOUND"
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    UNKNOWN = "UNKNOWN"


# Matched against exception class names only, most derived class first;
# within one name the first matching pattern wins
_PATTERN_CODES: dict[str, ErrorCode] = {
    "timeout": ErrorCode.TIMEOUT,
    "connection": ErrorCode.NETWORK_ERROR,
    "network": ErrorCode.NETWORK_ERROR,
    "rate": ErrorCode.RATE_LIMITED,
    "limit": ErrorCode.RATE_LIMITED,
    "permission": ErrorCode.PERMISSION_DENIED,
    "forbidden": ErrorCode.PERMISSION_DENIED,
    "validation": ErrorCode.INVALID_RESPONSE,
    "parse": ErrorCode.INVALID_RESPONSE,
    "json": ErrorCode.INVALID_RESPONSE,
    "decode": ErrorCode.INVALID_RESPONSE,
    "value": ErrorCode.INVALID_QUERY,
    "notfound": ErrorCode.NOT_FOUND,
    "keyerror": ErrorCode.NOT_FOUND,
}


@lru_cache(maxsize=256)
def _classify_type(exc_type: type[BaseException]) -> ErrorCode:
    for cls in exc_type.__mro__:
        if cls in (BaseException, Exception, object):
            break
        name = cls.__name__.lower()
        for key, code in _PATTERN_CODES.items():
            if key in name:
                return code
    return ErrorCode.EXTERNAL_SERVICE_ERROR


def classify_exception(exc: BaseException) -> ErrorCode:
    """Pick an ErrorCode from the exception's class names.

    Only names along the MRO are consulted, never the message.
    """
    return _classify_type(type(exc))


# Failures worth surfacing with a "try again" hint
_RETRYABLE_CODES: frozenset[ErrorCode] = frozenset({
    ErrorCode.RATE_LIMITED,
    ErrorCode.TIMEOUT,
    ErrorCode.NETWORK_ERROR,
})


class LookupFailure(BaseModel):
    """Structured failure of a model lookup.

    Attributes:
        query: Query text the lookup was issued for
        message: Text shown to the user
        code: Classified cause
        recoverable: Whether re-submitting the query might succeed
        exception_type: Name of the originating exception class, if any
    """

    model_config = ConfigDict(
        frozen=True,
        validate_default=True,
        json_schema_extra={
            "title": "Lookup Failure",
            "description": "Structured error from a model lookup",
            "examples": [{
                "query": "kot",
                "message": "upstream timed out",
                "code": "TIMEOUT",
                "recoverable": True,
            }],
        },
    )

    query: str = Field(default="", description="Query the failed lookup was for")
    message: Annotated[str, Field(
        min_length=1,
        description="Human-readable error message",
    )]
    code: ErrorCode = Field(
        default=ErrorCode.UNKNOWN,
        description="Machine-readable error classification",
    )
    recoverable: bool = Field(
        default=True,
        description="Whether re-submitting might succeed",
    )
    exception_type: str | None = Field(default=None, repr=False)

    @field_validator("message", mode="before")
    @classmethod
    def _ensure_message(cls, v: object) -> object:
        """An exception may be passed as the message; its text (or type name) is used."""
        if isinstance(v, BaseException):
            return str(v) or type(v).__name__
        return v

    @computed_field
    @property
    def is_retryable(self) -> bool:
        """Whether this failure is typically transient (rate limits, timeouts, network)."""
        return self.code in _RETRYABLE_CODES

    @classmethod
    def create(
        cls,
        query: str,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        *,
        recoverable: bool = True,
    ) -> Self:
        return cls(query=query, message=message, code=code, recoverable=recoverable)

    @classmethod
    def from_exception(cls, query: str, exc: BaseException, *, recoverable: bool = True) -> Self:
        """Describe ``exc`` as the failure of the lookup for ``query``.

        A LookupException already carries a classified failure; it is
        re-targeted at ``query`` and returned unchanged otherwise.
        """
        if isinstance(exc, LookupException):
            return exc.failure.model_copy(update={"query": query})  # type: ignore[return-value]
        return cls(
            query=query,
            message=str(exc) or type(exc).__name__,
            code=classify_exception(exc),
            recoverable=recoverable,
            exception_type=type(exc).__name__,
        )

    def render(self) -> str:
        """Format failure for display."""
        hint = " (try again)" if self.recoverable and self.is_retryable else ""
        return f"[{self.code}] {self.message}{hint}"

    __str__ = render


class LookupException(Exception):
    """Exception wrapping a LookupFailure for raising from a collaborator."""

    __slots__ = ("failure",)

    def __init__(self, failure: LookupFailure) -> None:
        self.failure = failure
        super().__init__(failure.message)

    @classmethod
    def create(cls, message: str, code: ErrorCode = ErrorCode.UNKNOWN, *, query: str = "",
               recoverable: bool = True) -> Self:
        """Create lookup exception."""
        return cls(LookupFailure(query=query, message=message, code=code, recoverable=recoverable))
