"""Process-wide error capture feeding a :class:`~rxapplog.pipeline.LogPipeline`."""

import atexit
import asyncio
import sys
import threading
import traceback
import weakref
from types import TracebackType
from typing import TYPE_CHECKING, Any

from .utils import get_short_error_info

if TYPE_CHECKING:
    from .pipeline import LogPipeline


def _innermost_frame(tb: TracebackType | None) -> traceback.FrameSummary | None:
    frames = traceback.extract_tb(tb) if tb is not None else []
    return frames[-1] if frames else None


class GlobalErrorCapture:
    """Routes otherwise unhandled errors into a pipeline at ``error`` level.

    Once installed:

    - ``sys.excepthook``: uncaught exceptions in the main thread are logged
      as ``"Uncaught: <error>"`` with filename, line and column of the
      innermost frame.
    - ``threading.excepthook``: same for worker threads, plus the thread name.
    - asyncio loop exception handler (per attached loop): errors nobody
      retrieved, e.g. a failed fire-and-forget task, are logged as
      ``"Unhandled async error: <reason>"``.
    - ``atexit``: the pipeline is closed, which flushes the queue.

    Previous hooks are still called afterwards, so the default traceback
    printing is unchanged. A failure inside a hook never masks the original
    error.
    """

    def __init__(self, pipeline: "LogPipeline", *, exit_timeout: float = 2.0):
        self._pipeline = pipeline
        self._exit_timeout = exit_timeout
        self._installed = False
        self._exiting = False
        self._prev_excepthook: Any = None
        self._prev_threading_hook: Any = None
        self._loops: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, Any] = (
            weakref.WeakKeyDictionary()
        )

    @property
    def installed(self) -> bool:
        return self._installed

    def install(self) -> None:
        if self._installed:
            return
        self._prev_excepthook = sys.excepthook
        sys.excepthook = self._excepthook
        self._prev_threading_hook = threading.excepthook
        threading.excepthook = self._threading_excepthook
        atexit.register(self._at_exit)
        self._installed = True

    def uninstall(self) -> None:
        if not self._installed:
            return
        if sys.excepthook == self._excepthook:
            sys.excepthook = self._prev_excepthook
        if threading.excepthook == self._threading_excepthook:
            threading.excepthook = self._prev_threading_hook
        for loop, previous in list(self._loops.items()):
            if (
                not loop.is_closed()
                and loop.get_exception_handler() == self._loop_exception_handler
            ):
                loop.set_exception_handler(previous)
        self._loops.clear()
        if not self._exiting:
            atexit.unregister(self._at_exit)
        self._installed = False

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Install the exception handler on ``loop``."""
        if not self._installed or loop in self._loops:
            return
        self._loops[loop] = loop.get_exception_handler()
        loop.set_exception_handler(self._loop_exception_handler)

    def record_uncaught(
        self,
        error: BaseException,
        tb: TracebackType | None = None,
        **extra: Any,
    ) -> None:
        frame = _innermost_frame(tb if tb is not None else error.__traceback__)
        context: dict[str, Any] = {
            "filename": frame.filename if frame else None,
            "line": frame.lineno if frame else None,
            "column": frame.colno if frame else None,
        }
        context.update(extra)
        self._pipeline.error(f"Uncaught: {get_short_error_info(error)}", context, error)

    def record_unhandled(self, context: dict[str, Any]) -> None:
        error = context.get("exception")
        if isinstance(error, BaseException):
            reason = str(error) or type(error).__name__
            self._pipeline.error(f"Unhandled async error: {reason}", None, error)
        else:
            reason = context.get("message", "unknown error")
            self._pipeline.error(f"Unhandled async error: {reason}")

    # ---------------- hooks ---------------- #
    def _excepthook(
        self,
        exc_type: type[BaseException],
        exc: BaseException,
        tb: TracebackType | None,
    ) -> None:
        if not issubclass(exc_type, KeyboardInterrupt):
            try:
                self.record_uncaught(exc, tb)
            except Exception:
                pass
        previous = self._prev_excepthook or sys.__excepthook__
        previous(exc_type, exc, tb)

    def _threading_excepthook(self, args: Any) -> None:
        if args.exc_type is not SystemExit and args.exc_value is not None:
            try:
                self.record_uncaught(
                    args.exc_value,
                    args.exc_traceback,
                    thread=args.thread.name if args.thread is not None else None,
                )
            except Exception:
                pass
        previous = self._prev_threading_hook or threading.__excepthook__
        previous(args)

    def _loop_exception_handler(
        self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]
    ) -> None:
        try:
            self.record_unhandled(context)
        except Exception:
            pass
        previous = self._loops.get(loop)
        if previous is not None:
            previous(loop, context)
        else:
            loop.default_exception_handler(context)

    def _at_exit(self) -> None:
        self._exiting = True
        try:
            self._pipeline.close(timeout=self._exit_timeout)
        except Exception:
            pass
