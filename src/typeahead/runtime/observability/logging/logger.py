"""Structured logging for the search runtime.

Every entry is an event name plus key/value context. Context is layered,
later layers winning:

    log_context(...) scopes  ->  logger.bind(...)  ->  call-site keywords

Scoped context lives in a ContextVar, so it follows a lookup into any task
it spawns. Output goes through a pluggable renderer: console lines for
development, JSON lines for aggregation, or nothing at all.

Quick Start:
    >>> from typeahead.runtime.observability import configure_logging, get_logger, log_context
    >>>
    >>> configure_logging(format="json", level="DEBUG")
    >>> log = get_logger("typeahead.search").bind(controller="main-screen")
    >>> with log_context(search_query="kot"):
    ...     log.info("lookup settled", count=3)
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import sys
import time
import traceback
from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from functools import wraps
from typing import TYPE_CHECKING, Callable, ParamSpec, Protocol, TextIO, TypeVar, runtime_checkable

import orjson

from typeahead.foundation.errors import JsonDict, JsonValue

if TYPE_CHECKING:
    from types import TracebackType

    from typeahead.foundation.config import LoggingSettings

P = ParamSpec("P")
T = TypeVar("T")

_LEVELS: dict[str, int] = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}

# Scoped context; copied into every task created while a scope is open
_scoped: ContextVar[JsonDict] = ContextVar("typeahead_log_context", default={})


def _parse_level(level: str | int) -> int:
    if isinstance(level, int):
        return level
    try:
        return _LEVELS[level.lower()]
    except KeyError:
        raise ValueError(f"Unknown log level: {level!r}") from None


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


# ─────────────────────────────────────────────────────────────────────────────
# Entries and loggers
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class LogEntry:
    """One event, with its fully merged context."""

    timestamp: float
    level: str
    event: str
    context: JsonDict

    @property
    def when(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=UTC)

    def as_dict(self) -> JsonDict:
        """Flat mapping for machine output; context keys sit beside the fixed ones."""
        return {"timestamp": self.when.isoformat(), "level": self.level, "event": self.event, **self.context}


@dataclass(slots=True, frozen=True)
class BoundLogger:
    """Logger carrying bound context. ``bind``/``unbind`` return new loggers.

    Example:
        >>> log = get_logger("typeahead.search").bind(controller="main")
        >>> log.debug("state emitted", kind="typing", query="ko")
        # => 10:30:45.120 [debug] state emitted controller="main" kind="typing" logger="typeahead.search" query="ko"
    """

    context: JsonDict = field(default_factory=dict)
    renderer: LogRenderer | None = None
    level: int = logging.DEBUG

    def bind(self, **kw: JsonValue) -> BoundLogger:
        return replace(self, context={**self.context, **kw})

    def unbind(self, *keys: str) -> BoundLogger:
        return replace(self, context={k: v for k, v in self.context.items() if k not in keys})

    def with_renderer(self, renderer: LogRenderer) -> BoundLogger:
        """Same context, fixed renderer instead of the global one."""
        return replace(self, renderer=renderer)

    def is_enabled_for(self, level: int) -> bool:
        return level >= self.level

    def log(self, level: int, event: str, **kw: JsonValue) -> None:
        if level < self.level:
            return
        entry = LogEntry(time.time(), logging.getLevelName(level).lower(), event,
                         {**_scoped.get(), **self.context, **kw})
        (self.renderer or _active_renderer()).render(entry)

    def debug(self, event: str, **kw: JsonValue) -> None:
        self.log(logging.DEBUG, event, **kw)

    def info(self, event: str, **kw: JsonValue) -> None:
        self.log(logging.INFO, event, **kw)

    def warning(self, event: str, **kw: JsonValue) -> None:
        self.log(logging.WARNING, event, **kw)

    def error(self, event: str, **kw: JsonValue) -> None:
        self.log(logging.ERROR, event, **kw)

    def exception(self, event: str, exc: BaseException | None = None, **kw: JsonValue) -> None:
        """Error entry with a formatted traceback under ``exc_info``.

        Uses ``exc`` when given, otherwise the exception being handled.
        """
        trace = "".join(traceback.format_exception(exc)) if exc is not None else traceback.format_exc()
        self.log(logging.ERROR, event, exc_info=trace, **kw)

    def scope(self, **kw: JsonValue) -> log_context:
        """Context added to everything logged inside the block, by any logger.

        Example:
            >>> with log.scope(generation=4):
            ...     log.info("lookup started")  # includes generation
            >>> log.info("done")  # no generation
        """
        return log_context(**kw)


class log_context:
    """Add key/value pairs to every entry logged inside the block.

    Nests; inner values win. Tasks created inside the block keep the
    context after it exits.
    """

    __slots__ = ("_values", "_token")

    def __init__(self, **kw: JsonValue) -> None:
        self._values: JsonDict = dict(kw)
        self._token: object | None = None

    def __enter__(self) -> log_context:
        self._token = _scoped.set({**_scoped.get(), **self._values})
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _scoped.reset(self._token)  # type: ignore[arg-type]
            self._token = None


# ─────────────────────────────────────────────────────────────────────────────
# Renderers
# ─────────────────────────────────────────────────────────────────────────────


@runtime_checkable
class LogRenderer(Protocol):
    """Where entries go."""

    def render(self, entry: LogEntry) -> None: ...


_ANSI = {"bold": "1", "dim": "2", "red": "31", "green": "32", "yellow": "33", "blue": "34", "cyan": "36"}
_LEVEL_STYLE = {"debug": "dim", "info": "green", "warning": "yellow", "error": "red", "critical": "red"}


def _paint(text: str, style: str, enabled: bool) -> str:
    return f"\033[{_ANSI[style]}m{text}\033[0m" if enabled else text


def _format_value(value: object, colors: bool) -> str:
    match value:
        case str():
            return _paint(f'"{value}"', "yellow", colors)
        case None:
            return _paint("null", "blue", colors)
        case bool():
            return _paint(str(value).lower(), "blue", colors)
        case int() | float():
            return _paint(str(value), "blue", colors)
        case dict() | list() | tuple():
            return _paint(orjson.dumps(value, default=str).decode(), "dim", colors)
        case _:
            return str(value)


@dataclass(slots=True)
class ConsoleRenderer:
    """Human-readable lines: ``HH:MM:SS.mmm [level] event key=value ...``

    Keys are sorted. A traceback logged via ``exception()`` follows on its
    own lines. Colors are auto-detected from the stream when left as None.
    """

    output: TextIO = field(default_factory=lambda: sys.stderr)
    colors: bool | None = None
    show_timestamp: bool = True

    def __post_init__(self) -> None:
        if self.colors is None:
            isatty = getattr(self.output, "isatty", None)
            self.colors = bool(isatty and isatty())

    def render(self, entry: LogEntry) -> None:
        colors = bool(self.colors)
        parts = [_paint(entry.when.strftime("%H:%M:%S.%f")[:-3], "dim", colors)] if self.show_timestamp else []
        parts.append(_paint(f"[{entry.level}]", _LEVEL_STYLE.get(entry.level, "dim"), colors))
        parts.append(_paint(entry.event, "bold", colors))
        parts.extend(f"{_paint(k, 'cyan', colors)}={_format_value(v, colors)}"
                     for k, v in sorted(entry.context.items()) if k != "exc_info")
        print(" ".join(parts), file=self.output)
        if (trace := entry.context.get("exc_info")) is not None:
            print(_paint(str(trace).rstrip("\n"), "red", colors), file=self.output)


@dataclass(slots=True)
class JsonRenderer:
    """JSON Lines, one object per entry."""

    output: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, entry: LogEntry) -> None:
        line = orjson.dumps(entry.as_dict(), option=orjson.OPT_NON_STR_KEYS, default=str)
        self.output.write(line.decode() + "\n")


@dataclass(slots=True)
class NoOpRenderer:
    """Discards everything."""

    def render(self, entry: LogEntry) -> None:
        pass


@dataclass(slots=True)
class CapturingRenderer:
    """Keeps entries in memory; handy for asserting on log output in tests."""

    entries: list[LogEntry] = field(default_factory=list)

    def render(self, entry: LogEntry) -> None:
        self.entries.append(entry)

    def events(self, level: str | None = None) -> list[str]:
        return [e.event for e in self.entries if level is None or e.level == level]

    def clear(self) -> None:
        self.entries.clear()


# ─────────────────────────────────────────────────────────────────────────────
# Global configuration
# ─────────────────────────────────────────────────────────────────────────────


@dataclass(slots=True)
class _Config:
    renderer: LogRenderer | None = None
    level: int = logging.INFO


_config = _Config()


def configure_logging(
    format: str = "console",  # noqa: A002 - matches the settings field
    level: str = "INFO",
    *,
    output: TextIO | None = None,
    colors: bool | None = None,
) -> LogRenderer:
    """Install the global renderer and default level.

    ``format`` is "console" (stderr), "json" (stdout) or "none". Loggers
    created afterwards pick up ``level``.
    """
    match format:
        case "console":
            renderer: LogRenderer = ConsoleRenderer(output=output or sys.stderr, colors=colors)
        case "json":
            renderer = JsonRenderer(output=output or sys.stdout)
        case "none":
            renderer = NoOpRenderer()
        case _:
            raise ValueError(f"Unknown format: {format}. Use 'console', 'json', or 'none'")
    set_renderer(renderer, level)
    return renderer


def configure_from_settings(settings: LoggingSettings | None = None) -> LogRenderer:
    """Configure logging from ``TYPEAHEAD_LOG_*`` settings."""
    if settings is None:
        from typeahead.foundation.config import get_settings
        settings = get_settings().logging
    return configure_logging(format=settings.format, level=settings.level, colors=settings.colors)


def set_renderer(renderer: LogRenderer | None, level: str | None = None) -> None:
    """Swap the global renderer directly; None falls back to console output."""
    _config.renderer = renderer
    if level is not None:
        _config.level = _parse_level(level)


def get_logger(name: str | None = None, **initial_context: JsonValue) -> BoundLogger:
    """Logger at the configured level. ``name`` is bound as ``logger``."""
    context = {**initial_context, "logger": name} if name else dict(initial_context)
    return BoundLogger(context=context, level=_config.level)


def _active_renderer() -> LogRenderer:
    if _config.renderer is None:
        _config.renderer = ConsoleRenderer()
    return _config.renderer


# ─────────────────────────────────────────────────────────────────────────────
# Timing
# ─────────────────────────────────────────────────────────────────────────────


def timed(
    log: BoundLogger | None = None,
    *,
    level: str = "info",
    event: str = "operation completed",
) -> Callable[[Callable[P, T]], Callable[P, T]]:
    """Log how long the decorated function took, as ``duration_ms``.

    A raised exception is logged at error level as ``"<event> failed"`` and
    re-raised. Cancelling a decorated coroutine is logged at debug level as
    ``"<event> cancelled"``; it is never reported as a failure.
    """
    severity = _parse_level(level)

    def decorator(func: Callable[P, T]) -> Callable[P, T]:
        def report(start: float, suffix: str = "", at: int = severity, **extra: JsonValue) -> None:
            (log or get_logger()).log(at, f"{event}{suffix}", function=func.__name__,
                                      duration_ms=_elapsed_ms(start), **extra)

        if inspect.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)  # type: ignore[misc]
                except asyncio.CancelledError:
                    report(start, " cancelled", logging.DEBUG)
                    raise
                except Exception as exc:
                    report(start, " failed", logging.ERROR, error=str(exc))
                    raise
                report(start)
                return result

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                report(start, " failed", logging.ERROR, error=str(exc))
                raise
            report(start)
            return result

        return wrapper

    return decorator
