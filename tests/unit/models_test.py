"""Unit tests for Pydantic models and the error taxonomy."""

import pickle
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from jsco.errors import JscoError, LoadError, ParseError, ParseTimeoutError
from jsco.models import AnalyzeOptions, CacheRecord, Position, Span, Support, SupportStatus


class TestSpanModel:
    """Tests for the Span model."""

    def test_overlapping_spans(self) -> None:
        """Spans sharing at least one byte overlap."""
        a = Span(start=Position(line=1, column=1), end=Position(line=1, column=5), start_byte=0, end_byte=4)
        b = Span(start=Position(line=1, column=4), end=Position(line=1, column=9), start_byte=3, end_byte=8)
        assert a.overlaps(b)
        assert b.overlaps(a)

    def test_adjacent_spans_do_not_overlap(self) -> None:
        a = Span(start=Position(line=1, column=1), end=Position(line=1, column=5), start_byte=0, end_byte=4)
        b = Span(start=Position(line=1, column=5), end=Position(line=1, column=9), start_byte=4, end_byte=8)
        assert not a.overlaps(b)

    def test_position_requires_line(self) -> None:
        with pytest.raises(ValidationError):
            Position(column=1)  # type: ignore[call-arg]


class TestSupportModel:
    def test_render(self) -> None:
        assert Support.minimum("80").render() == "80"
        assert Support.unsupported().render() == "unsupported"
        assert Support.unknown().render() == "unknown"

    def test_statuses(self) -> None:
        assert Support.minimum("1").status is SupportStatus.SUPPORTED


class TestAnalyzeOptions:
    def test_defaults(self) -> None:
        options = AnalyzeOptions()
        assert options.use_cache is True
        assert options.environments == frozenset()
        assert options.timeout is None

    def test_is_frozen(self) -> None:
        options = AnalyzeOptions()
        with pytest.raises(ValidationError):
            options.use_cache = False  # type: ignore[misc]


class TestCacheRecord:
    def test_payload_survives_json(self) -> None:
        """Binary payloads are stored as base64 inside the JSON document."""
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        record = CacheRecord(key="k", kind="payload", payload=b"\x00\xffconst x = 1;", created_at=now)
        restored = CacheRecord.model_validate_json(record.model_dump_json())
        assert restored.payload == b"\x00\xffconst x = 1;"
        assert restored.kind == "payload"

    def test_expiry(self) -> None:
        now = datetime(2025, 1, 1, tzinfo=timezone.utc)
        record = CacheRecord(key="k", payload=b"", created_at=now, expires_at=now + timedelta(seconds=10))
        assert not record.is_expired(now)
        assert record.is_expired(now + timedelta(seconds=10))
        assert not CacheRecord(key="k", payload=b"", created_at=now).is_expired(now + timedelta(days=999))


class TestErrors:
    def test_messages_and_kinds(self) -> None:
        error = LoadError("missing.js", "file not found")
        assert str(error) == "missing.js: file not found"
        assert error.kind == "load"
        assert isinstance(error, JscoError)
        assert ParseTimeoutError("a.js", "slow").kind == "parse"

    def test_errors_survive_pickling(self) -> None:
        """Errors raised in worker processes are pickled back to the caller."""
        error = ParseError("broken.js", "unexpected syntax at 3:7", line=3, column=7)
        restored = pickle.loads(pickle.dumps(error))
        assert type(restored) is ParseError
        assert restored.source == "broken.js"
        assert restored.message == "unexpected syntax at 3:7"
        assert (restored.line, restored.column) == (3, 7)
