"""Shared test fixtures for rxapplog tests."""

import asyncio
import socket
from collections.abc import Sequence

import pytest

from rxapplog import InsertResult, LogPipeline, LogRow, LogSink, PipelineConfig


class RecordingSink(LogSink):
    """Fake sink recording every batch.

    ``results`` are consumed one per insert: an InsertResult is returned, an
    exception is raised. Once exhausted, inserts succeed. While ``gate`` is
    set to an unset asyncio.Event, inserts wait for it.
    """

    def __init__(self, results: Sequence[InsertResult | BaseException] = (), delay: float = 0.0):
        self.calls: list[list[LogRow]] = []
        self.results = list(results)
        self.delay = delay
        self.gate: asyncio.Event | None = None
        self.closed = False

    async def insert(self, rows):
        self.calls.append(list(rows))
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.results:
            result = self.results.pop(0)
            if isinstance(result, BaseException):
                raise result
            return result
        return InsertResult.success()

    async def close(self):
        self.closed = True

    def messages(self, call: int) -> list[str]:
        return [row["message"] for row in self.calls[call]]


class FailingSink(LogSink):
    """Fake sink rejecting every batch."""

    def __init__(self, error: str = "sink unavailable"):
        self.error = error
        self.calls = 0

    async def insert(self, rows):
        self.calls += 1
        return InsertResult.failure(self.error)


async def settle(seconds: float = 0.02) -> None:
    """Let scheduled flush tasks run."""
    await asyncio.sleep(seconds)


def make_pipeline(sink: LogSink, **config) -> LogPipeline:
    """A pipeline without global hooks or console output; the timer is kept
    out of the way unless ``flush_interval`` is given."""
    config.setdefault("flush_interval", 60.0)
    config.setdefault("console", False)
    return LogPipeline(sink, PipelineConfig(**config), capture_errors=False)


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def sink():
    return RecordingSink()
