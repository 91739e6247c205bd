"""JSON-lines file log store with rotation and cross-process locking."""

import asyncio
import glob
import json
import os
import re
import threading
from collections.abc import Sequence
from contextlib import contextmanager
from datetime import datetime, timedelta
from io import TextIOWrapper
from typing import Any

from ..entry import LogRow
from ..utils import get_short_error_info
from .base import InsertResult, LogSink

# Rotated files: base_YYYYMMDDTHHMMSSffffff.ext
_ROTATED_PATTERN = re.compile(r"^(.+)_(\d{8}T\d{12})(\.[^.]+)?$")
_ROTATED_FORMAT = "%Y%m%dT%H%M%S%f"


def _rotated_files(logfile: str) -> list[str]:
    """Rotated siblings of ``logfile``, oldest first."""
    base, ext = os.path.splitext(logfile)
    candidates = glob.glob(f"{glob.escape(base)}_*{ext}")
    rotated = []
    for path in candidates:
        match = _ROTATED_PATTERN.match(os.path.basename(path))
        if match and match.group(1) == os.path.basename(base):
            rotated.append((match.group(2), path))
    rotated.sort()
    return [path for _, path in rotated]


def read_jsonl_rows(logfile: str) -> list[dict[str, Any]]:
    """Read every row written by a :class:`JsonlFileLogSink`, oldest first.

    Rotated files are read before the active file. Torn lines left by an
    interrupted write are skipped.
    """
    rows: list[dict[str, Any]] = []
    paths = _rotated_files(logfile)
    if os.path.exists(logfile):
        paths.append(logfile)
    for path in paths:
        with open(path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                except json.JSONDecodeError:
                    continue
                if isinstance(row, dict):
                    rows.append(row)
    return rows


class JsonlFileLogSink(LogSink):
    """
    Log store appending one JSON object per row to ``logfile``.

    Features:
    - Rotation by row count or elapsed time: the active file is renamed to
      ``<base>_<timestamp><ext>`` and a fresh one is started
    - Removal of rotated files older than ``max_log_age``
    - Advisory cross-process lock (``fcntl`` on POSIX) around each batch
    - File I/O runs in a worker thread so the event loop is not blocked

    Parameters:
        logfile: Path of the active log file.
        rotate_interval: int = rotate after N rows, timedelta = after time
            elapsed, None = never rotate.
        max_log_age: Delete rotated files older than this during rotation.

    Example:
        >>> sink = JsonlFileLogSink("logs/app.jsonl", rotate_interval=10_000)
        >>> pipeline = LogPipeline(sink)
    """

    def __init__(
        self,
        logfile: str,
        *,
        rotate_interval: int | timedelta | None = None,
        max_log_age: timedelta | None = None,
    ):
        if isinstance(rotate_interval, int) and rotate_interval < 1:
            raise ValueError(f"rotate_interval must be >= 1, got {rotate_interval}")
        self._logfile = logfile
        self._rotate_interval = rotate_interval
        self._max_log_age = max_log_age

        self._file: TextIOWrapper | None = None
        self._row_count = 0
        self._opened_at: datetime | None = None
        self._thread_lock = threading.Lock()

    @property
    def logfile(self) -> str:
        return self._logfile

    async def insert(self, rows: Sequence[LogRow]) -> InsertResult:
        try:
            await asyncio.to_thread(self._write_rows, list(rows))
            return InsertResult.success()
        except Exception as e:
            return InsertResult.failure(get_short_error_info(e))

    async def close(self) -> None:
        with self._thread_lock:
            self._close_file()

    # ---------------- file plumbing (worker thread) ---------------- #
    def _write_rows(self, rows: list[LogRow]) -> None:
        lines = "".join(json.dumps(row, default=str, ensure_ascii=False) + "\n" for row in rows)
        with self._thread_lock, self._process_lock():
            if self._should_rotate():
                self._rotate()
            f = self._ensure_open()
            f.write(lines)
            f.flush()
            self._row_count += len(rows)

    def _ensure_open(self) -> TextIOWrapper:
        if self._file is None or self._file.closed:
            dir_name = os.path.dirname(self._logfile)
            if dir_name:
                os.makedirs(dir_name, exist_ok=True)
            existing = 0
            if os.path.exists(self._logfile):
                with open(self._logfile, encoding="utf-8") as f:
                    existing = sum(1 for line in f if line.strip())
            self._file = open(self._logfile, "a", encoding="utf-8")
            self._row_count = existing
            self._opened_at = datetime.now()
        return self._file

    def _close_file(self) -> None:
        if self._file is not None and not self._file.closed:
            self._file.close()
        self._file = None

    def _should_rotate(self) -> bool:
        if self._rotate_interval is None or self._file is None:
            return False
        if isinstance(self._rotate_interval, timedelta):
            return (
                self._opened_at is not None
                and datetime.now() - self._opened_at >= self._rotate_interval
            )
        return self._row_count >= self._rotate_interval

    def _rotate(self) -> None:
        self._close_file()
        base, ext = os.path.splitext(self._logfile)
        target = f"{base}_{datetime.now().strftime(_ROTATED_FORMAT)}{ext}"
        if os.path.exists(self._logfile):
            os.replace(self._logfile, target)
        self._row_count = 0
        self._cleanup_old_files()

    def _cleanup_old_files(self) -> None:
        if self._max_log_age is None:
            return
        cutoff = datetime.now() - self._max_log_age
        for path in _rotated_files(self._logfile):
            match = _ROTATED_PATTERN.match(os.path.basename(path))
            if match is None:
                continue
            try:
                rotated_at = datetime.strptime(match.group(2), _ROTATED_FORMAT)
            except ValueError:
                continue
            if rotated_at < cutoff:
                try:
                    os.remove(path)
                except OSError:
                    pass

    @contextmanager
    def _process_lock(self):
        """Exclusive advisory lock on ``<logfile>.lock`` (POSIX only)."""
        if os.name == "nt":  # pragma: no cover - platform specific guard
            yield
            return

        import fcntl

        lock_path = f"{self._logfile}.lock"
        dir_name = os.path.dirname(lock_path)
        if dir_name:
            os.makedirs(dir_name, exist_ok=True)
        with open(lock_path, "a+") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)
