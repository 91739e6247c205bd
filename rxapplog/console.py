"""Console mirror of accepted log entries."""

import json
import sys
from typing import TextIO

from .entry import LogEntry


def format_console_line(entry: LogEntry) -> str:
    """
    Format an entry as ``[LEVEL] message`` followed by its context.

    Example:
        [WARN] Slow response {"route": "/deals", "ms": 2300}
    """
    line = f"[{entry.level.value.upper()}] {entry.message}"
    if entry.context:
        line += " " + json.dumps(entry.context, default=str, ensure_ascii=False)
    return line + "\n"


class ConsoleMirror:
    """Writes formatted entries to a text stream (stderr by default).

    The stream is looked up on every write so that redirections of
    ``sys.stderr`` made after construction are honoured.
    """

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream

    def write(self, entry: LogEntry) -> None:
        stream = self._stream if self._stream is not None else sys.stderr
        try:
            stream.write(format_console_line(entry))
            stream.flush()
        except Exception:
            # console failures are ignored
            pass
