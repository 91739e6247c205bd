"""Tests for rxapplog.entry - levels, entries and row conversion."""

import math
import re

import pytest

from rxapplog.entry import (
    LogEntry,
    LogLevel,
    QueuedLogEntry,
    normalize_context,
    to_json_value,
    utc_timestamp,
)


def test_level_order():
    assert LogLevel.DEBUG < LogLevel.INFO < LogLevel.WARN < LogLevel.ERROR < LogLevel.FATAL
    assert LogLevel.FATAL >= LogLevel.ERROR
    assert sorted([LogLevel.ERROR, LogLevel.DEBUG, LogLevel.WARN]) == [
        LogLevel.DEBUG,
        LogLevel.WARN,
        LogLevel.ERROR,
    ]


@pytest.mark.parametrize(
    "name, level",
    [
        ("info", LogLevel.INFO),
        ("WARN", LogLevel.WARN),
        ("warning", LogLevel.WARN),
        (" Error ", LogLevel.ERROR),
        ("critical", LogLevel.FATAL),
        (LogLevel.DEBUG, LogLevel.DEBUG),
    ],
)
def test_level_parse(name, level):
    assert LogLevel.parse(name) is level


def test_level_parse_unknown():
    with pytest.raises(ValueError, match="Unknown log level"):
        LogLevel.parse("verbose")


def test_to_json_value():
    class Price:
        def __str__(self):
            return "42 EUR"

    value = to_json_value({"ids": (1, 2), "price": Price(), "ratio": math.inf, 3: None})
    assert value == {"ids": [1, 2], "price": "42 EUR", "ratio": "inf", "3": None}


def test_normalize_context_empty():
    assert normalize_context(None) == {}
    assert normalize_context({}) == {}


def test_utc_timestamp_format():
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", utc_timestamp())


def test_entry_without_error():
    entry = LogEntry.create("info", "Deal opened", {"deal_id": "d-1"})
    assert entry.level is LogLevel.INFO
    assert entry.context == {"deal_id": "d-1"}
    assert entry.stack_trace is None
    assert entry.source is None


def test_entry_with_error():
    try:
        raise TimeoutError("gateway timeout")
    except TimeoutError as e:
        entry = LogEntry.create(LogLevel.ERROR, "Payment failed", None, e)

    assert entry.context == {"error_name": "TimeoutError"}
    assert "TimeoutError: gateway timeout" in entry.stack_trace
    assert "Traceback" in entry.stack_trace


def test_entry_is_immutable():
    entry = LogEntry.create("info", "x")
    with pytest.raises(AttributeError):
        entry.message = "y"  # type: ignore


def test_enrich_and_row():
    entry = LogEntry.create("warn", "Slow", {"ms": 900})
    queued = QueuedLogEntry.enrich(
        entry,
        default_source="frontend",
        url="/deals",
        user_agent="agent",
        session_id="1-abcdefg",
    )
    row = queued.to_row()

    assert set(row) == {
        "level",
        "message",
        "context",
        "source",
        "session_id",
        "url",
        "user_agent",
        "stack_trace",
        "created_at",
    }
    assert row["level"] == "warn"
    assert row["source"] == "frontend"
    assert row["url"] == "/deals"
    assert row["session_id"] == "1-abcdefg"
    assert row["context"] == {"ms": 900}
    assert row["created_at"] == queued.created_at


def test_enrich_keeps_explicit_source():
    entry = LogEntry.create("info", "x", source="worker")
    queued = QueuedLogEntry.enrich(
        entry, default_source="frontend", url="", user_agent="", session_id="s"
    )
    assert queued.source == "worker"
