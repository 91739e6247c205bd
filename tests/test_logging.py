import asyncio

import pytest
import reactivex as rx
from reactivex import operators as ops

from conftest import RecordingSink, make_pipeline
from rxapplog import AppLogException, LogEntry, LogLevel
from rxapplog.logging import (
    EmptyLogComp,
    NamedLogComp,
    drop_log,
    keep_log,
    log_filter,
    log_redirect_to,
)


class Collector:
    def __init__(self):
        self.items = []

    def on_next(self, value):
        self.items.append(value)

    def on_error(self, error):
        raise error

    def on_completed(self):
        pass


def test_log_filter():
    logs = [LogEntry.create("info", "a"), LogEntry.create("debug", "b"), "x"]
    collected = []
    rx.from_(logs).pipe(log_filter("info")).subscribe(collected.append)

    assert len(collected) == 1
    assert collected[0].message == "a"


def test_drop_log():
    items = [LogEntry.create("info", "a"), "keep"]
    collected = []
    rx.from_(items).pipe(drop_log()).subscribe(collected.append)

    assert collected == ["keep"]


def test_keep_log():
    entry = LogEntry.create("info", "a")
    collected = []
    rx.from_([entry, 2]).pipe(ops.map(keep_log(lambda x: x * 10))).subscribe(
        collected.append
    )

    assert collected == [entry, 20]


def test_log_redirect_to():
    target = Collector()
    output = []
    source = [LogEntry.create("warn", "x"), LogEntry.create("debug", "y"), 1]
    rx.from_(source).pipe(log_redirect_to(target, "info")).subscribe(output.append)

    assert output == [1]
    assert len(target.items) == 1
    assert target.items[0].message == "x"


def test_log_redirect_to_function():
    redirected = []
    rx.from_([LogEntry.create("error", "e")]).pipe(
        log_redirect_to(redirected.append)
    ).subscribe()

    assert [e.message for e in redirected] == ["e"]


def test_named_log_comp():
    received = []
    comp = NamedLogComp("deals")
    comp.set_super(received.append)
    comp.log("Fetched", context={"count": 3})
    comp.log("Failed", LogLevel.ERROR, error=KeyError("id"))

    first, second = received
    assert first.source == "deals"
    assert first.level is LogLevel.INFO
    assert first.context == {"count": 3}
    assert second.level is LogLevel.ERROR
    assert second.context == {"error_name": "KeyError"}


def test_named_log_comp_without_super():
    with pytest.raises(RuntimeError):
        NamedLogComp("orphan").log("x")


def test_log_comp_exceptions():
    inner = OSError("port in use")
    named = NamedLogComp("collector").get_exception(inner, note="bind")
    assert isinstance(named, AppLogException)
    assert named.source == "collector"
    assert EmptyLogComp().get_exception(inner).source == "Unknown"


def test_empty_log_comp_is_silent():
    comp = EmptyLogComp()
    comp.set_super(lambda _: pytest.fail("should not be called"))
    comp.log("nothing")


def test_named_log_comp_into_pipeline():
    sink = RecordingSink()

    async def main():
        pipeline = make_pipeline(sink)
        comp = NamedLogComp("checkout")
        comp.set_super(pipeline)
        comp.log("Paid", "info")
        comp.log("Debug detail", "debug")
        await pipeline.flush()

    asyncio.run(main())
    assert [(r["source"], r["message"]) for r in sink.calls[0]] == [("checkout", "Paid")]
