"""The log pipeline: filter, enrich, queue and deliver log entries in batches.

States of a pipeline::

    Idle      no timer, empty queue
    Waiting   flush timer pending, entries queued, no flush running
    Flushing  a batch is out at the sink; further flush requests are no-ops

    Idle <-> Waiting -> Flushing -> (Waiting | Idle)

All queue mutation happens on the event loop the pipeline is bound to, so the
``flushing`` flag is the only guard needed between flushes.
"""

import asyncio
import threading
import time
from collections import deque
from collections.abc import Callable, Coroutine, Mapping
from dataclasses import dataclass
from typing import Any, TextIO

from opentelemetry._logs import LoggerProvider
from opentelemetry.metrics import MeterProvider
from reactivex import Subject

from ._otel_mixin import OTelLoggingMixin
from .capture import GlobalErrorCapture
from .config import PipelineConfig
from .console import ConsoleMirror
from .entry import LogEntry, LogLevel, QueuedLogEntry
from .mechanism import AppLogException
from .sinks.base import LogSink
from .telemetry.metrics import PipelineMetrics
from .utils import default_user_agent, get_short_error_info, process_session_id


def _running_loop() -> asyncio.AbstractEventLoop | None:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


@dataclass(frozen=True)
class FlushOutcome:
    """Result of one flush attempt, emitted to the pipeline's subscribers.

    Attributes:
        rows: Size of the batch handed to the sink.
        delivered: Whether the sink stored the batch.
        error: Failure description when not delivered.
        requeued: Entries put back at the front of the queue.
        dropped: Entries discarded because they exhausted the retry policy.
    """

    rows: int
    delivered: bool
    error: str | None = None
    requeued: int = 0
    dropped: int = 0


@dataclass
class _Slot:
    entry: QueuedLogEntry
    failures: int = 0


class LogPipeline(Subject, OTelLoggingMixin):
    """Batches structured log entries and delivers them to a :class:`LogSink`.

    Callers log through ``debug``/``info``/``warn``/``error``/``fatal`` (or
    ``log``), which never block: entries below the minimum level are dropped,
    the rest are mirrored to the console, enriched with url, user agent,
    session id and timestamp, and appended to an in-memory queue.

    A flush starts when the queue reaches ``batch_size``, when ``flush_interval``
    has passed since the first unflushed entry, right after a ``fatal`` entry,
    on explicit ``flush()``, and at process exit. A failed batch goes back to
    the front of the queue in its original order and is retried after the
    retry policy's backoff delay.

    As a ReactiveX subject the pipeline accepts :class:`LogEntry` items via
    ``on_next`` and emits one :class:`FlushOutcome` per flush attempt.

    The pipeline binds to an asyncio loop: ``loop`` if given, else the loop
    running when the first entry arrives, else a private loop on a daemon
    thread. Entries logged from other threads are handed over to that loop.
    ``flush()`` and ``aclose()`` must be awaited on the bound loop; use
    ``flush_sync()`` and ``close()`` from synchronous code.

    Parameters
    ----------
    sink : LogSink
        Where batches are delivered.
    config : PipelineConfig | None
        Batching, filtering and retry settings.
    loop : asyncio.AbstractEventLoop | None
        Loop to bind to immediately.
    location : Callable[[], str] | None
        Returns the current location (route, URL) recorded with each entry.
    capture_errors : bool
        Install :class:`GlobalErrorCapture` hooks (uncaught exceptions,
        unhandled asyncio errors, flush at exit).
    console_stream : TextIO | None
        Stream for the console mirror; defaults to ``sys.stderr``.
    name : str
        Component name used in diagnostics and metrics.
    logger_provider, meter_provider
        Optional OTel providers for diagnostics and metrics.

    Example:
        >>> pipeline = LogPipeline(MemoryLogSink(), PipelineConfig(batch_size=20))
        >>> pipeline.info("Deal opened", {"deal_id": "d-42"})
        >>> pipeline.error("Payment failed", {"deal_id": "d-42"}, exc)
    """

    def __init__(
        self,
        sink: LogSink,
        config: PipelineConfig | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        location: Callable[[], str] | None = None,
        capture_errors: bool = True,
        console_stream: TextIO | None = None,
        name: str = "LogPipeline",
        logger_provider: LoggerProvider | None = None,
        meter_provider: MeterProvider | None = None,
    ):
        super().__init__()
        self._sink = sink
        self._config = config if config else PipelineConfig()
        self._min_level = self._config.min_level
        self._location = location
        self._user_agent = self._config.user_agent or default_user_agent()
        self._session_id = process_session_id()

        self._name = name
        self._logger = (
            logger_provider.get_logger(f"rxapplog.{self._name}")
            if logger_provider
            else None
        )
        self._metrics = (
            PipelineMetrics(meter_provider, self._name) if meter_provider else None
        )
        self._console = (
            ConsoleMirror(console_stream) if self._config.console else None
        )

        self._queue: deque[_Slot] = deque()
        self._timer: asyncio.TimerHandle | None = None
        self._flushing = False
        self._consecutive_failures = 0
        self._tasks: set[asyncio.Task] = set()
        self._closed = False

        # Event loop binding; a private loop thread is started on demand
        self._loop: asyncio.AbstractEventLoop | None = None
        self._owns_loop = False
        self._thread: threading.Thread | None = None
        self._loop_ready = threading.Event()
        self._bind_lock = threading.Lock()

        self._capture = GlobalErrorCapture(self) if capture_errors else None
        if self._capture is not None:
            self._capture.install()

        if loop is not None:
            self._bind(loop)

    # ---------------- properties ---------------- #
    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def min_level(self) -> LogLevel:
        return self._min_level

    @property
    def pending(self) -> int:
        """Number of queued entries (not counting a batch out at the sink)."""
        return len(self._queue)

    @property
    def flushing(self) -> bool:
        return self._flushing

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def loop(self) -> asyncio.AbstractEventLoop | None:
        return self._loop

    # ---------------- logging API ---------------- #
    def set_min_level(self, level: LogLevel | str) -> None:
        self._min_level = LogLevel.parse(level)

    def debug(self, message: str, context: Mapping[str, Any] | None = None,
              error: BaseException | None = None) -> None:
        self.log(LogLevel.DEBUG, message, context, error)

    def info(self, message: str, context: Mapping[str, Any] | None = None,
             error: BaseException | None = None) -> None:
        self.log(LogLevel.INFO, message, context, error)

    def warn(self, message: str, context: Mapping[str, Any] | None = None,
             error: BaseException | None = None) -> None:
        self.log(LogLevel.WARN, message, context, error)

    warning = warn

    def error(self, message: str, context: Mapping[str, Any] | None = None,
              error: BaseException | None = None) -> None:
        self.log(LogLevel.ERROR, message, context, error)

    def fatal(self, message: str, context: Mapping[str, Any] | None = None,
              error: BaseException | None = None) -> None:
        """Log at ``fatal`` and start a flush right away."""
        self.log(LogLevel.FATAL, message, context, error)

    def log(
        self,
        level: LogLevel | str,
        message: str,
        context: Mapping[str, Any] | None = None,
        error: BaseException | None = None,
        source: str | None = None,
    ) -> None:
        level = LogLevel.parse(level)
        if level < self._min_level:
            self._record_filtered(level)
            return
        self._accept(LogEntry.create(level, message, context, error, source))

    # ---------------- Observer interface ---------------- #
    def on_next(self, value: LogEntry) -> None:
        """Accept an entry from a reactive stream; other items are ignored."""
        if not isinstance(value, LogEntry):
            return
        if value.level < self._min_level:
            self._record_filtered(value.level)
            return
        self._accept(value)

    def on_error(self, error: Exception) -> None:
        """Record the error as an ``error`` entry; the pipeline keeps running.

        For an :class:`AppLogException` the entry carries the component as
        ``source`` and the name and traceback of the underlying error.
        """
        if isinstance(error, AppLogException):
            self.log(
                LogLevel.ERROR, str(error), error=error.exception, source=error.source
            )
        else:
            self.log(LogLevel.ERROR, str(error), error=error)

    def on_completed(self) -> None:
        """Close the pipeline (final flush) and complete the subscribers."""
        self.close()

    # ---------------- flushing ---------------- #
    async def flush(self) -> FlushOutcome | None:
        """Deliver one batch from the front of the queue.

        Returns None without touching the sink when the queue is empty or a
        flush is already running.
        """
        loop = self._loop
        if loop is None or loop.is_closed():
            self._bind(asyncio.get_running_loop())
        batch = self._take_batch()
        if batch is None:
            return None
        return await self._deliver(batch)

    def flush_sync(self, timeout: float | None = 10.0) -> FlushOutcome | None:
        """Run :meth:`flush` from synchronous code.

        From a thread running the bound loop the flush is only scheduled and
        None is returned.
        """
        return self._run_sync(self.flush, timeout)

    async def aclose(self) -> None:
        """Stop timers, finish the running flush, drain the queue while the sink
        accepts batches, then close the sink and uninstall error capture."""
        if self._closed:
            return
        self._closed = True
        self._cancel_timer()

        current = asyncio.current_task()
        running = asyncio.get_running_loop()
        in_flight = [
            t
            for t in self._tasks
            if t is not current and not t.done() and t.get_loop() is running
        ]
        if in_flight:
            await asyncio.gather(*in_flight, return_exceptions=True)

        while self._queue:
            outcome = await self.flush()
            if outcome is None or not outcome.delivered:
                break
        if self._queue:
            self._log(f"Closed with {len(self._queue)} undelivered log rows", "WARN")

        try:
            await self._sink.close()
        except Exception as e:
            self._log(f"Failed to close sink: {get_short_error_info(e)}", "WARN")

        if self._capture is not None:
            self._capture.uninstall()
        super().on_completed()

    def close(self, timeout: float | None = 10.0) -> None:
        """Synchronous :meth:`aclose`; also stops a private loop thread."""
        try:
            self._run_sync(self.aclose, timeout)
        finally:
            if self._owns_loop and self._loop is not None:
                loop = self._loop
                if self._thread is not threading.current_thread():
                    if not loop.is_closed():
                        loop.call_soon_threadsafe(loop.stop)
                    if self._thread is not None:
                        self._thread.join(timeout=3.0)

    # ---------------- internals ---------------- #
    def _record_filtered(self, level: LogLevel) -> None:
        if self._metrics is not None:
            self._metrics.filtered.add(1, self._metrics.attrs(level=level.value))

    def _current_url(self) -> str:
        if self._location is None:
            return ""
        try:
            return str(self._location())
        except Exception:
            return ""

    def _accept(self, entry: LogEntry) -> None:
        if self._console is not None:
            self._console.write(entry)

        if self._closed:
            self._log(f"Pipeline closed, entry not queued: {entry.message}", "WARN")
            return

        queued = QueuedLogEntry.enrich(
            entry,
            default_source=self._config.source,
            url=self._current_url(),
            user_agent=self._user_agent,
            session_id=self._session_id,
        )
        loop = self._ensure_loop()
        if _running_loop() is loop:
            self._enqueue(queued)
        else:
            loop.call_soon_threadsafe(self._enqueue, queued)

    def _enqueue(self, queued: QueuedLogEntry) -> None:
        self._queue.append(_Slot(queued))
        if self._metrics is not None:
            self._metrics.enqueued.add(1, self._metrics.attrs(level=queued.level.value))

        if queued.level is LogLevel.FATAL:
            self._start_flush()
        elif len(self._queue) >= self._config.batch_size and not self._backing_off():
            self._start_flush()
        elif self._timer is None:
            self._schedule(self._config.flush_interval)

    def _backing_off(self) -> bool:
        # a full queue does not cut a retry delay short
        return self._consecutive_failures > 0 and self._timer is not None

    def _take_batch(self) -> list[_Slot] | None:
        self._cancel_timer()
        if not self._queue or self._flushing:
            return None
        self._flushing = True
        count = min(self._config.batch_size, len(self._queue))
        return [self._queue.popleft() for _ in range(count)]

    def _start_flush(self) -> None:
        batch = self._take_batch()
        if batch is None:
            return
        assert self._loop is not None
        task = self._loop.create_task(self._deliver(batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, batch: list[_Slot]) -> FlushOutcome:
        rows = [slot.entry.to_row() for slot in batch]
        started = time.perf_counter()
        error: str | None = None
        try:
            result = await asyncio.wait_for(
                self._sink.insert(rows), timeout=self._config.sink_timeout
            )
            if not result.ok:
                error = result.error
        except TimeoutError:
            error = f"Sink insert timed out after {self._config.sink_timeout}s"
        except asyncio.CancelledError:
            self._queue.extendleft(reversed(batch))
            self._flushing = False
            raise
        except Exception as e:
            error = get_short_error_info(e)

        if error is None:
            self._consecutive_failures = 0
            outcome = FlushOutcome(rows=len(rows), delivered=True)
        else:
            outcome = self._requeue(batch, error)
        self._flushing = False
        self._record_flush(outcome, (time.perf_counter() - started) * 1000.0)

        if self._queue and not self._closed:
            if outcome.delivered:
                delay = self._config.flush_interval
            else:
                delay = self._config.retry.get_delay(
                    self._consecutive_failures - 1, self._config.flush_interval
                )
            self._schedule(delay)

        self._emit(outcome)
        return outcome

    def _requeue(self, batch: list[_Slot], error: str) -> FlushOutcome:
        self._consecutive_failures += 1
        retry = self._config.retry
        kept: list[_Slot] = []
        dropped = 0
        for slot in batch:
            slot.failures += 1
            if retry.exhausted(slot.failures):
                dropped += 1
            else:
                kept.append(slot)
        self._queue.extendleft(reversed(kept))

        self._log(
            f"Failed to flush {len(batch)} log rows: {error}",
            "WARN",
            consecutive_failures=self._consecutive_failures,
        )
        if dropped:
            self._log(
                f"Dropped {dropped} log rows after {retry.max_retries} retries",
                "ERROR",
            )
        return FlushOutcome(
            rows=len(batch),
            delivered=False,
            error=error,
            requeued=len(kept),
            dropped=dropped,
        )

    def _record_flush(self, outcome: FlushOutcome, duration_ms: float) -> None:
        if self._metrics is None:
            return
        attrs = self._metrics.attrs()
        self._metrics.flush_duration.record(duration_ms, attrs)
        if outcome.delivered:
            self._metrics.delivered.add(outcome.rows, attrs)
            return
        self._metrics.flush_failures.add(1, attrs)
        if outcome.requeued:
            self._metrics.requeued.add(outcome.requeued, attrs)
        if outcome.dropped:
            self._metrics.dropped.add(outcome.dropped, attrs)

    def _emit(self, outcome: FlushOutcome) -> None:
        try:
            super().on_next(outcome)
        except Exception as e:
            self._log(f"Flush subscriber failed: {get_short_error_info(e)}", "ERROR")

    def _schedule(self, delay: float) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        self._cancel_timer()
        self._timer = loop.call_later(delay, self._on_timer)

    def _on_timer(self) -> None:
        self._timer = None
        self._start_flush()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ---------------- event loop plumbing ---------------- #
    def _bind(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop
        # handles and flags of a previous (closed) loop are void
        self._timer = None
        self._flushing = False
        if self._capture is not None:
            self._capture.attach_loop(loop)

    def _ensure_loop(self) -> asyncio.AbstractEventLoop:
        with self._bind_lock:
            loop = self._loop
            if loop is not None and not loop.is_closed():
                return loop
            running = _running_loop()
            if running is not None:
                self._bind(running)
            else:
                self._start_loop_thread()
            assert self._loop is not None
            return self._loop

    def _run_sync(
        self,
        make_coro: Callable[[], Coroutine[Any, Any, Any]],
        timeout: float | None,
    ) -> Any:
        loop = self._loop
        current = _running_loop()
        if loop is not None and (loop.is_running() or self._loop_thread_alive()):
            if current is loop:
                # cannot block the loop we are running on
                task = loop.create_task(make_coro())
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)
                return None
            return asyncio.run_coroutine_threadsafe(make_coro(), loop).result(timeout)
        if current is not None:
            task = current.create_task(make_coro())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
            return None
        if loop is not None and not loop.is_closed():
            return loop.run_until_complete(make_coro())
        return asyncio.run(make_coro())

    def _loop_thread_alive(self) -> bool:
        # the private loop may not have entered run_forever yet
        return self._owns_loop and self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        self._bind(loop)
        self._loop_ready.set()
        try:
            loop.run_forever()
        finally:
            loop.close()

    def _start_loop_thread(self) -> None:
        self._owns_loop = True
        self._loop_ready.clear()
        self._thread = threading.Thread(
            target=self._run_loop, name=f"{self._name}-loop", daemon=True
        )
        self._thread.start()
        self._loop_ready.wait()
