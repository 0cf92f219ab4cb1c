"""Tests for screen states, models, and lookup failures."""

from __future__ import annotations

import orjson
import pytest
from pydantic import ValidationError

from typeahead.foundation.errors import ErrorCode, LookupException, LookupFailure, classify_exception
from typeahead.search import (
    Empty,
    Error,
    Idle,
    Loading,
    Model,
    StateKind,
    Success,
    Typing,
    coerce_models,
    dump_state,
    parse_state,
    query_of,
    settle,
)

KOTLIN = Model(id="1", title="Kotlin")


class TestScreenState:
    """States are plain, comparable, serializable values."""

    def test_equality_is_structural(self) -> None:
        assert Typing(query="k") == Typing(query="k")
        assert Typing(query="k") != Loading(query="k")
        assert Idle() == Idle()

    def test_states_are_immutable(self) -> None:
        state = Typing(query="k")
        with pytest.raises(ValidationError):
            state.query = "ko"  # type: ignore[misc]

    def test_success_requires_items(self) -> None:
        with pytest.raises(ValidationError):
            Success(query="k", items=())

    def test_terminal_kinds(self) -> None:
        failure = LookupFailure.create("k", "boom")
        assert [s.is_terminal for s in (Idle(), Typing(query="k"), Loading(query="k"))] == [False] * 3
        assert all(s.is_terminal for s in (Success(query="k", items=[KOTLIN]), Empty(query="k"),
                                           Error(query="k", failure=failure)))

    def test_query_of(self) -> None:
        assert query_of(Idle()) is None
        assert query_of(Empty(query=" k ")) == " k "

    def test_settle_picks_success_or_empty(self) -> None:
        assert settle("k", (KOTLIN,)) == Success(query="k", items=[KOTLIN])
        assert settle("k", ()) == Empty(query="k")

    def test_json_round_trip_keeps_variant(self) -> None:
        state = Error(query="k", failure=LookupFailure.create("k", "slow", ErrorCode.TIMEOUT))
        payload = dump_state(state)

        assert orjson.loads(payload)["kind"] == "error"
        assert parse_state(payload) == state
        assert parse_state({"kind": "success", "query": "k", "items": [{"id": "1", "title": "Kotlin"}]}) \
            == Success(query="k", items=[KOTLIN])

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            parse_state({"kind": "searching", "query": "k"})

    def test_kind_is_a_string_enum(self) -> None:
        assert Loading(query="k").kind == "loading"
        assert Loading(query="k").kind is StateKind.LOADING


class TestCoerceModels:

    def test_accepts_models_and_mappings(self) -> None:
        items = coerce_models([KOTLIN, {"id": "2", "title": "Java", "extra": True}])
        assert items == (KOTLIN, Model(id="2", title="Java"))

    def test_accepts_generators(self) -> None:
        assert coerce_models(m for m in [KOTLIN]) == (KOTLIN,)

    @pytest.mark.parametrize("raw", [{"id": "1", "title": "Kotlin"}, "kotlin", [{"title": "no id"}], [{"id": "", "title": "x"}]])
    def test_rejects_malformed(self, raw: object) -> None:
        with pytest.raises(ValidationError):
            coerce_models(raw)


class TestLookupFailure:

    @pytest.mark.parametrize(
        ("exc", "code"),
        [
            (TimeoutError("upstream timed out"), ErrorCode.TIMEOUT),
            (ConnectionError("reset"), ErrorCode.NETWORK_ERROR),
            (PermissionError("nope"), ErrorCode.PERMISSION_DENIED),
            (ValueError("bad query"), ErrorCode.INVALID_QUERY),
            (KeyError("k"), ErrorCode.NOT_FOUND),
            (RuntimeError("boom"), ErrorCode.EXTERNAL_SERVICE_ERROR),
        ],
    )
    def test_classify_exception(self, exc: BaseException, code: ErrorCode) -> None:
        assert classify_exception(exc) == code

    def test_message_text_does_not_steer_classification(self) -> None:
        assert classify_exception(RuntimeError("rate limit on Pirates of the Caribbean")) == ErrorCode.EXTERNAL_SERVICE_ERROR
        assert classify_exception(RuntimeError("connection timeout")) == ErrorCode.EXTERNAL_SERVICE_ERROR

    def test_classification_follows_base_classes(self) -> None:
        class UpstreamRateLimit(Exception):
            pass

        class SlowReplica(TimeoutError):
            pass

        assert classify_exception(UpstreamRateLimit("x")) == ErrorCode.RATE_LIMITED
        assert classify_exception(SlowReplica("x")) == ErrorCode.TIMEOUT

    def test_from_exception(self) -> None:
        failure = LookupFailure.from_exception("kot", TimeoutError("upstream timed out"))

        assert failure.query == "kot"
        assert failure.code == ErrorCode.TIMEOUT
        assert failure.exception_type == "TimeoutError"
        assert failure.is_retryable
        assert str(failure) == "[TIMEOUT] upstream timed out (try again)"

    def test_message_never_empty(self) -> None:
        assert LookupFailure.from_exception("k", RuntimeError()).message == "RuntimeError"
        with pytest.raises(ValidationError):
            LookupFailure(query="k", message="")

    def test_lookup_exception_carries_failure(self) -> None:
        exc = LookupException.create("quota exhausted", ErrorCode.RATE_LIMITED, recoverable=False)
        failure = LookupFailure.from_exception("kot", exc)

        assert failure.query == "kot"
        assert failure.code == ErrorCode.RATE_LIMITED
        assert not failure.recoverable
        assert failure.render() == "[RATE_LIMITED] quota exhausted"
